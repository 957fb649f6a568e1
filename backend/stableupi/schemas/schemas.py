"""
Pydantic Schemas — Request & Response models for API validation.

Wire names follow the mobile client (camelCase); Python attributes stay
snake_case through field aliases.
"""
from datetime import datetime
from typing import Any, Optional, Dict, List

from pydantic import BaseModel, Field


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True


# ──────────────── Scans ────────────────

class ScanRequest(CamelModel):
    qr_data: str = Field(..., alias="qrData", description="Raw text decoded from the QR code")


class ScanResponse(CamelModel):
    qr_type: str = Field(..., alias="qrType")
    is_valid: bool = Field(..., alias="isValid")
    data: Dict[str, str]
    errors: List[str] = []
    formatted_data: Optional[str] = Field(None, alias="formattedData")


# ──────────────── Conversion ────────────────

class ConversionRequest(CamelModel):
    amount: Any = Field(None, description="INR amount to quote; validated by the conversion engine")
    chain_id: Optional[int] = Field(None, alias="chainId", description="EVM chain id; defaults to Arbitrum Sepolia")


class ConversionResponse(CamelModel):
    inr_amount: float = Field(..., alias="inrAmount")
    usd_amount: float = Field(..., alias="usdAmount")
    usdc_amount: float = Field(..., alias="usdcAmount")
    exchange_rate: float = Field(..., alias="exchangeRate")
    network_fee: float = Field(..., alias="networkFee")
    total_usdc_amount: float = Field(..., alias="totalUsdcAmount")
    chain_id: int = Field(..., alias="chainId")
    network_name: str = Field(..., alias="networkName")
    quoted_at: str = Field(..., alias="quotedAt")
    last_updated: str = Field(..., alias="lastUpdated")


class EthConversionRequest(CamelModel):
    wei: Any = Field(None, description="ETH amount in wei, as a decimal string")


class EthConversionResponse(CamelModel):
    wei: str
    eth: float
    eth_usd: float = Field(..., alias="ethUsd")
    usdc: float
    last_updated: str = Field(..., alias="lastUpdated")


class NetworkInfo(CamelModel):
    chain_id: int = Field(..., alias="chainId")
    network_name: str = Field(..., alias="networkName")
    network_fee: float = Field(..., alias="networkFee")


# ──────────────── Transactions ────────────────

class TransactionCreateRequest(CamelModel):
    upi_id: str = Field(..., alias="upiId", description="Merchant VPA from the scanned QR")
    merchant_name: Optional[str] = Field(None, alias="merchantName")
    inr_amount: Any = Field(..., alias="inrAmount")
    usdc_amount: Any = Field(None, alias="usdcAmount")
    chain_id: Optional[int] = Field(None, alias="chainId")
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    quote: bool = Field(False, description="Fetch a live quote and attach it to the record")


class OnchainUpdateRequest(CamelModel):
    wallet_address: str = Field(..., alias="walletAddress")
    chain_tx_hash: str = Field(..., alias="txnHash", min_length=1)
    is_success: bool = Field(..., alias="isSuccess")
    chain_id: Optional[int] = Field(None, alias="chainId")


class PayoutAttemptResponse(CamelModel):
    id: int
    provider: str
    transfer_id: str = Field(..., alias="transferId")
    provider_transfer_id: Optional[str] = Field(None, alias="providerTransferId")
    beneficiary_ref: Optional[str] = Field(None, alias="beneficiaryRef")
    amount: float
    mode: str
    status: str
    failure_reason: Optional[str] = Field(None, alias="failureReason")
    utr: Optional[str] = None
    reconcilable: bool = False
    initiated_at: Optional[datetime] = Field(None, alias="initiatedAt")
    processed_at: Optional[datetime] = Field(None, alias="processedAt")

    class Config:
        from_attributes = True
        populate_by_name = True


class TransactionResponse(CamelModel):
    id: int
    upi_id: str = Field(..., alias="upiId")
    merchant_name: Optional[str] = Field(None, alias="merchantName")
    inr_amount: float = Field(..., alias="inrAmount")
    usdc_amount_paid: Optional[float] = Field(None, alias="usdcAmountPaid")
    chain_id: Optional[int] = Field(None, alias="chainId")
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    chain_tx_hash: Optional[str] = Field(None, alias="txnHash")
    is_success: bool = Field(..., alias="isSuccess")
    state: str
    payout_triggered: bool = Field(..., alias="payoutTriggered")
    scanned_at: Optional[datetime] = Field(None, alias="scannedAt")
    paid_at: Optional[datetime] = Field(None, alias="paidAt")
    payout_attempt: Optional[PayoutAttemptResponse] = Field(None, alias="payoutAttempt")

    class Config:
        from_attributes = True
        populate_by_name = True


# ──────────────── Payouts ────────────────

class PayoutInitiateRequest(CamelModel):
    transaction_id: int = Field(..., alias="transactionId")
    transfer_id: Optional[str] = Field(None, alias="transferId", max_length=64)
    remarks: Optional[str] = None
    provider: Optional[str] = Field(None, description="cashfree | razorpay | sandbox; defaults to PAYOUT_PROVIDER")


class PayoutStatusResponse(CamelModel):
    transaction_id: int = Field(..., alias="transactionId")
    transition: str
    payout: PayoutAttemptResponse


class ReconcileRequest(CamelModel):
    transaction_ids: Optional[List[int]] = Field(None, alias="transactionIds")
    limit: Optional[int] = Field(None, ge=1, le=50)


class ReconcileItem(CamelModel):
    id: int
    ok: bool
    transition: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = Field(None, alias="errorCode")


class ReconcileResponse(CamelModel):
    checked: int
    updated: int
    failed: int
    results: List[ReconcileItem]


class PayoutStatsBucket(CamelModel):
    count: int
    total_amount: float = Field(..., alias="totalAmount")


class PayoutStatsResponse(CamelModel):
    total_payouts: int = Field(..., alias="totalPayouts")
    successful_payouts: int = Field(..., alias="successfulPayouts")
    success_rate: str = Field(..., alias="successRate")
    status_breakdown: Dict[str, PayoutStatsBucket] = Field(..., alias="statusBreakdown")


class WebhookAck(CamelModel):
    status: str
    reason: Optional[str] = None
    transition: Optional[str] = None
    transaction_id: Optional[int] = Field(None, alias="transactionId")
    payout_status: Optional[str] = Field(None, alias="payoutStatus")


# ──────────────── Beneficiaries ────────────────

class BeneficiaryCreateRequest(CamelModel):
    upi_id: str = Field(..., alias="upiId")
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    provider: Optional[str] = None


class BeneficiaryResponse(CamelModel):
    id: int
    provider: str
    upi_id: str = Field(..., alias="upiId")
    name: Optional[str] = None
    beneficiary_ref: str = Field(..., alias="beneficiaryRef")
    status: Optional[str] = None
    is_new: bool = Field(False, alias="isNewBeneficiary")


# ──────────────── Admin / Audit ────────────────

class AuditLogEntry(BaseModel):
    id: int
    transaction_id: int
    action: str
    payload_hash: Optional[str] = None
    previous_hash: Optional[str] = None
    timestamp: datetime
    log_metadata: Optional[Dict] = None

    class Config:
        from_attributes = True


class AuditVerifyResponse(BaseModel):
    valid: bool
    total_entries: int
    broken_at: Optional[int] = None
    message: Optional[str] = None


# ──────────────── Generic ────────────────

class HealthResponse(BaseModel):
    status: str
    database: str
    payout_provider: str
    uptime_seconds: float
    version: str


class ErrorResponse(BaseModel):
    detail: str
    error_code: Optional[str] = None
    details: Optional[Dict] = None
