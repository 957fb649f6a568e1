"""
Transaction Routes — Ledger records for scanned UPI payments and their
on-chain USDC leg.
"""
from fastapi import APIRouter, Depends, Request

from stableupi.config import get_settings
from stableupi.dependencies import client_ip, get_conversion_engine, get_orchestrator
from stableupi.schemas.schemas import OnchainUpdateRequest, TransactionCreateRequest, TransactionResponse
from stableupi.services.conversion import ConversionEngine
from stableupi.services.payout_orchestrator import ChainPayment, PayoutOrchestrator

settings = get_settings()

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionResponse, status_code=201)
def create_transaction(
    payload: TransactionCreateRequest,
    request: Request,
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
    engine: ConversionEngine = Depends(get_conversion_engine),
):
    """Store a scanned payment; optionally attach a live USDC quote."""
    record = orchestrator.record_scan(
        upi_id=payload.upi_id,
        merchant_name=payload.merchant_name,
        inr_amount=payload.inr_amount,
        usdc_amount=payload.usdc_amount,
        chain_id=payload.chain_id,
        wallet_address=payload.wallet_address,
        ip_address=client_ip(request),
    )
    if payload.quote:
        quote = engine.convert(record.inr_amount, payload.chain_id or settings.DEFAULT_CHAIN_ID)
        record = orchestrator.attach_quote(record.id, quote)
    return TransactionResponse.model_validate(record)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: int, orchestrator: PayoutOrchestrator = Depends(get_orchestrator)):
    return TransactionResponse.model_validate(orchestrator.ledger.get(transaction_id))


@router.put("/{transaction_id}/onchain", response_model=TransactionResponse)
def record_onchain(
    transaction_id: int,
    payload: OnchainUpdateRequest,
    request: Request,
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
):
    """Record the payer's on-chain USDC transfer result."""
    record = orchestrator.record_onchain_payment(
        transaction_id,
        ChainPayment(
            wallet_address=payload.wallet_address,
            chain_tx_hash=payload.chain_tx_hash,
            is_success=payload.is_success,
            chain_id=payload.chain_id,
        ),
        ip_address=client_ip(request),
    )
    return TransactionResponse.model_validate(record)
