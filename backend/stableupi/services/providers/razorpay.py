"""
RazorpayX Payouts adapter.

A payee is a contact plus a `vpa` fund account; the fund account id is the
beneficiary reference. Amounts travel in paise.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from stableupi.config import get_settings
from stableupi.errors import ProviderRejected
from stableupi.services.providers.base import (
    PAYOUT_EVENT_STATUS,
    BeneficiaryDetails,
    BeneficiaryResult,
    HttpPayoutProvider,
    StatusUpdate,
    TransferResult,
    extract_payout_entity,
)
from stableupi.services.state_machine import PayoutStatus
from stableupi.utils.hashing import hmac_sha256_hex, signatures_match
from stableupi.utils.validators import sanitize_remarks

logger = logging.getLogger(__name__)
settings = get_settings()

RAZORPAY_STATUS = {
    "queued": PayoutStatus.INITIATED,
    "pending": PayoutStatus.INITIATED,
    "scheduled": PayoutStatus.INITIATED,
    "processing": PayoutStatus.PROCESSING,
    "processed": PayoutStatus.PROCESSED,
    "cancelled": PayoutStatus.FAILED,
    "rejected": PayoutStatus.FAILED,
    "failed": PayoutStatus.FAILED,
    "reversed": PayoutStatus.REVERSED,
}


def map_razorpay_status(raw_status: Optional[str]) -> PayoutStatus:
    return RAZORPAY_STATUS.get((raw_status or "").lower(), PayoutStatus.PROCESSING)


def to_paise(amount_inr: Decimal) -> int:
    return int((Decimal(str(amount_inr)) * 100).to_integral_value())


def _failure_reason(entity: Dict[str, Any]) -> Optional[str]:
    details = entity.get("status_details")
    if isinstance(details, dict) and details.get("description"):
        return details["description"]
    return entity.get("failure_reason")


class RazorpayPayoutProvider(HttpPayoutProvider):
    name = "razorpay"

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        key_id: str = settings.RAZORPAY_KEY_ID,
        key_secret: str = settings.RAZORPAY_KEY_SECRET,
        base_url: str = settings.RAZORPAY_BASE_URL,
        account_number: str = settings.RAZORPAY_ACCOUNT_NUMBER,
        webhook_secret: str = settings.RAZORPAY_WEBHOOK_SECRET,
        max_transfer_inr: str = settings.RAZORPAY_MAX_TRANSFER_INR,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ):
        client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            auth=(key_id, key_secret),
            headers={"Content-Type": "application/json"},
        )
        super().__init__(client, Decimal(max_transfer_inr))
        self._account_number = account_number
        self._webhook_secret = webhook_secret or key_secret

    def add_beneficiary(self, details: BeneficiaryDetails) -> BeneficiaryResult:
        contact_body = {"name": details.name, "type": "vendor", "reference_id": details.upi_id}
        if details.email:
            contact_body["email"] = details.email
        if details.phone:
            contact_body["contact"] = details.phone
        contact = self._request("POST", "/contacts", "Create contact", json=contact_body)

        fund_account = self._request(
            "POST",
            "/fund_accounts",
            "Create fund account",
            json={
                "contact_id": contact.get("id"),
                "account_type": "vpa",
                "vpa": {"address": details.upi_id},
            },
        )
        if not fund_account.get("id"):
            raise ProviderRejected("Create fund account failed: no id returned")

        return BeneficiaryResult(
            beneficiary_ref=str(fund_account["id"]),
            status="active" if fund_account.get("active", True) else "inactive",
            raw={"contact": contact, "fund_account": fund_account},
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
        body = {
            "account_number": self._account_number,
            "fund_account_id": beneficiary_ref,
            "amount": to_paise(amount_inr),
            "currency": "INR",
            "mode": mode.upper(),
            "purpose": "payout",
            "queue_if_low_balance": True,
            "reference_id": transfer_id,
            "narration": sanitize_remarks(remarks),
        }
        data = self._request(
            "POST",
            "/payouts",
            "Payout",
            json=body,
            headers={"X-Payout-Idempotency": transfer_id},
        )
        status = map_razorpay_status(data.get("status"))
        if status == PayoutStatus.FAILED:
            raise ProviderRejected(f"Payout failed: {_failure_reason(data) or data.get('status')}")

        return TransferResult(
            provider_transfer_id=data.get("id"),
            status=status,
            utr=data.get("utr") if status == PayoutStatus.PROCESSED else None,
            raw=data,
        )

    def get_transfer_status(self, provider_transfer_id: Optional[str], transfer_id: str) -> StatusUpdate:
        if provider_transfer_id:
            entity = self._request("GET", f"/payouts/{provider_transfer_id}", "Get payout")
        else:
            listing = self._request(
                "GET",
                "/payouts",
                "List payouts",
                params={"account_number": self._account_number, "reference_id": transfer_id},
            )
            items = listing.get("items") or []
            if not items:
                raise ProviderRejected(f"Get payout failed: no payout with reference {transfer_id}")
            entity = items[0]

        return StatusUpdate(
            status=map_razorpay_status(entity.get("status")),
            provider_transfer_id=entity.get("id") or provider_transfer_id,
            transfer_id=entity.get("reference_id") or transfer_id,
            utr=entity.get("utr"),
            failure_reason=_failure_reason(entity),
            event="poll",
            raw=entity,
        )

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        if not self._webhook_secret:
            return False
        expected = hmac_sha256_hex(self._webhook_secret, raw_body)
        return signatures_match(expected, headers.get("x-razorpay-signature"))

    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[StatusUpdate]:
        event = str(payload.get("event") or "").lower()
        entity = extract_payout_entity(payload)
        status = PAYOUT_EVENT_STATUS.get(event)
        if status is None and entity.get("status"):
            status = map_razorpay_status(entity.get("status"))
        if status is None:
            return None

        return StatusUpdate(
            status=status,
            provider_transfer_id=entity.get("id"),
            transfer_id=entity.get("reference_id"),
            utr=entity.get("utr"),
            failure_reason=_failure_reason(entity),
            event=event,
            raw=payload,
        )
