"""
Cashfree Payouts adapter.

Cashfree answers in two shapes: the V2 API returns flat transfer objects
(`transfer_id`, `cf_transfer_id`, `status`, `transfer_utr`), the V1 API wraps
them as `{status, message, data: {referenceId, utr}}` or
`{data: {transfer: {...}}}`. Both are normalised here.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from stableupi.config import get_settings
from stableupi.errors import ProviderRejected
from stableupi.services.providers.base import (
    BeneficiaryDetails,
    BeneficiaryResult,
    HttpPayoutProvider,
    StatusUpdate,
    TransferResult,
)
from stableupi.services.state_machine import PayoutStatus
from stableupi.utils.hashing import hmac_sha256_b64, signatures_match
from stableupi.utils.validators import sanitize_remarks

logger = logging.getLogger(__name__)
settings = get_settings()

CASHFREE_STATUS = {
    "RECEIVED": PayoutStatus.INITIATED,
    "APPROVAL_PENDING": PayoutStatus.PROCESSING,
    "SCHEDULED": PayoutStatus.PROCESSING,
    "PENDING": PayoutStatus.PROCESSING,
    "QUEUED": PayoutStatus.PROCESSING,
    "SENT_TO_BENEFICIARY": PayoutStatus.PROCESSING,
    "SUCCESS": PayoutStatus.PROCESSED,
    "COMPLETED": PayoutStatus.PROCESSED,
    "FAILED": PayoutStatus.FAILED,
    "ERROR": PayoutStatus.FAILED,
    "REJECTED": PayoutStatus.FAILED,
    "MANUALLY_REJECTED": PayoutStatus.FAILED,
    "REVERSED": PayoutStatus.REVERSED,
}

WEBHOOK_EVENT_STATUS = {
    "TRANSFER_SUCCESS": PayoutStatus.PROCESSED,
    "TRANSFER_FAILED": PayoutStatus.FAILED,
    "TRANSFER_REJECTED": PayoutStatus.FAILED,
    "TRANSFER_REVERSED": PayoutStatus.REVERSED,
}


def map_cashfree_status(raw_status: Optional[str]) -> PayoutStatus:
    return CASHFREE_STATUS.get((raw_status or "").upper(), PayoutStatus.PROCESSING)


def normalize_transfer(payload: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Flatten a V1 or V2 transfer payload into canonical field names."""
    data = payload.get("data")
    if isinstance(data, dict):
        # V1: status lives on the envelope (initiate) or on data.transfer (status lookup)
        transfer = data.get("transfer") if isinstance(data.get("transfer"), dict) else data
        return {
            "transfer_id": transfer.get("transferId") or transfer.get("transfer_id"),
            "provider_transfer_id": transfer.get("referenceId") or transfer.get("cf_transfer_id"),
            "status": transfer.get("status") or payload.get("status"),
            "utr": transfer.get("utr") or transfer.get("transfer_utr"),
            "failure_reason": transfer.get("reason") or (
                payload.get("message") if payload.get("status") in ("ERROR", "FAILED") else None
            ),
        }
    return {
        "transfer_id": payload.get("transfer_id"),
        "provider_transfer_id": payload.get("cf_transfer_id"),
        "status": payload.get("status"),
        "utr": payload.get("transfer_utr") or payload.get("utr"),
        "failure_reason": payload.get("status_description") if payload.get("status") in (
            "FAILED", "REJECTED", "MANUALLY_REJECTED", "REVERSED"
        ) else None,
    }


def _as_str(value) -> Optional[str]:
    return None if value in (None, "") else str(value)


class CashfreePayoutProvider(HttpPayoutProvider):
    name = "cashfree"

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        client_id: str = settings.CASHFREE_CLIENT_ID,
        client_secret: str = settings.CASHFREE_CLIENT_SECRET,
        base_url: str = settings.CASHFREE_BASE_URL,
        api_version: str = settings.CASHFREE_API_VERSION,
        fundsource_id: str = settings.CASHFREE_FUNDSOURCE_ID,
        webhook_secret: str = settings.CASHFREE_WEBHOOK_SECRET,
        max_transfer_inr: str = settings.CASHFREE_MAX_TRANSFER_INR,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ):
        client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "x-api-version": api_version,
                "x-client-id": client_id,
                "x-client-secret": client_secret,
            },
        )
        super().__init__(client, Decimal(max_transfer_inr))
        self._fundsource_id = fundsource_id
        self._webhook_secret = webhook_secret or client_secret

    def add_beneficiary(self, details: BeneficiaryDetails) -> BeneficiaryResult:
        beneficiary_id = "BENE" + "".join(ch for ch in details.upi_id.upper() if ch.isalnum())[:46]
        body = {
            "beneficiary_id": beneficiary_id,
            "beneficiary_name": details.name,
            "beneficiary_instrument_details": {"vpa": details.upi_id},
        }
        contact = {k: v for k, v in (("beneficiary_email", details.email), ("beneficiary_phone", details.phone)) if v}
        if contact:
            body["beneficiary_contact_details"] = contact

        data = self._request("POST", "/payout/beneficiary", "Add beneficiary", json=body)
        ref = data.get("beneficiary_id") or (data.get("data") or {}).get("beneId") or beneficiary_id
        return BeneficiaryResult(
            beneficiary_ref=str(ref),
            status=str(data.get("beneficiary_status") or data.get("status") or "VERIFIED"),
            raw=data,
        )

    def initiate_transfer(
        self,
        beneficiary_ref: str,
        amount_inr: Decimal,
        transfer_id: str,
        mode: str = "upi",
        remarks: Optional[str] = None,
        beneficiary: Optional[BeneficiaryDetails] = None,
    ) -> TransferResult:
        details: Dict[str, Any] = {"beneficiary_id": beneficiary_ref}
        if beneficiary is not None:
            details["beneficiary_name"] = beneficiary.name
            details["beneficiary_instrument_details"] = {"vpa": beneficiary.upi_id}

        body = {
            "transfer_id": transfer_id,
            "transfer_amount": float(amount_inr),
            "transfer_currency": "INR",
            "transfer_mode": mode,
            "beneficiary_details": details,
            "transfer_remarks": sanitize_remarks(remarks),
        }
        if self._fundsource_id:
            body["fundsource_id"] = self._fundsource_id

        data = self._request("POST", "/payout/transfers", "Transfer", json=body)
        fields = normalize_transfer(data)
        status = map_cashfree_status(fields["status"])
        if status == PayoutStatus.FAILED:
            raise ProviderRejected(f"Transfer failed: {fields['failure_reason'] or data.get('message') or 'rejected'}")

        return TransferResult(
            provider_transfer_id=_as_str(fields["provider_transfer_id"]),
            status=status,
            utr=_as_str(fields["utr"]) if status == PayoutStatus.PROCESSED else None,
            raw=data,
        )

    def get_transfer_status(self, provider_transfer_id: Optional[str], transfer_id: str) -> StatusUpdate:
        params = {"cf_transfer_id": provider_transfer_id} if provider_transfer_id else {"transfer_id": transfer_id}
        data = self._request("GET", "/payout/transfers", "Get transfer status", params=params)
        fields = normalize_transfer(data)
        return StatusUpdate(
            status=map_cashfree_status(fields["status"]),
            provider_transfer_id=_as_str(fields["provider_transfer_id"]) or provider_transfer_id,
            transfer_id=_as_str(fields["transfer_id"]) or transfer_id,
            utr=_as_str(fields["utr"]),
            failure_reason=_as_str(fields["failure_reason"]),
            event="poll",
            raw=data,
        )

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        if not self._webhook_secret:
            return False
        timestamp = headers.get("x-webhook-timestamp", "")
        expected = hmac_sha256_b64(self._webhook_secret, timestamp.encode("utf-8") + raw_body)
        return signatures_match(expected, headers.get("x-webhook-signature"))

    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[StatusUpdate]:
        event = str(payload.get("type") or payload.get("event") or "").upper()
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        transfer = data.get("transfer") if isinstance(data.get("transfer"), dict) else data

        status = WEBHOOK_EVENT_STATUS.get(event)
        if status is None and transfer.get("status"):
            status = map_cashfree_status(transfer.get("status"))
        if status is None:
            return None

        fields = normalize_transfer(transfer)
        return StatusUpdate(
            status=status,
            provider_transfer_id=_as_str(fields["provider_transfer_id"]),
            transfer_id=_as_str(fields["transfer_id"]),
            utr=_as_str(fields["utr"]),
            failure_reason=_as_str(fields["failure_reason"] or transfer.get("reason")),
            event=event,
            raw=payload,
        )
