"""
Sandbox Payout Provider — Deterministic in-process payout rail.
In production, PAYOUT_PROVIDER selects Cashfree or Razorpay instead.

VPAs containing "fail" are rejected and VPAs containing "timeout" time out
after the transfer has been accepted, so a later poll still finds it.
Accepted transfers settle to processed on the first status poll.
"""
import json
import logging
import secrets
import threading
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from stableupi.config import get_settings
from stableupi.errors import ProviderRejected, UpstreamTimeout
from stableupi.services.providers.base import (
    PAYOUT_EVENT_STATUS,
    BeneficiaryDetails,
    BeneficiaryResult,
    PayoutProvider,
    StatusUpdate,
    TransferResult,
    extract_payout_entity,
)
from stableupi.services.state_machine import PayoutStatus
from stableupi.utils.hashing import hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)
settings = get_settings()

SIGNATURE_HEADER = "x-sandbox-signature"


class SandboxPayoutProvider(PayoutProvider):
    name = "sandbox"

    def __init__(
        self,
        max_transfer_inr: str = settings.SANDBOX_MAX_TRANSFER_INR,
        webhook_secret: str = settings.SANDBOX_WEBHOOK_SECRET,
    ):
        super().__init__(Decimal(max_transfer_inr))
        self._webhook_secret = webhook_secret
        self._lock = threading.Lock()
        self._beneficiaries: Dict[str, str] = {}
        self._transfers: Dict[str, dict] = {}

    def add_beneficiary(self, details: BeneficiaryDetails) -> BeneficiaryResult:
        ref = f"SBX-BENE-{uuid.uuid4().hex[:8].upper()}"
        with self._lock:
            self._beneficiaries[ref] = details.upi_id
        return BeneficiaryResult(beneficiary_ref=ref, status="active", raw={"vpa": details.upi_id})

    def initiate_transfer(
        self,
        beneficiary_ref: str,
        amount_inr: Decimal,
        transfer_id: str,
        mode: str = "upi",
        remarks: Optional[str] = None,
        beneficiary: Optional[BeneficiaryDetails] = None,
    ) -> TransferResult:
        vpa = (beneficiary.upi_id if beneficiary else self._beneficiaries.get(beneficiary_ref, "")).lower()
        if "fail" in vpa:
            raise ProviderRejected(f"Transfer failed: beneficiary {vpa} rejected by sandbox")

        provider_id = f"SBX-{uuid.uuid4().hex[:10].upper()}"
        record = {
            "id": provider_id,
            "reference_id": transfer_id,
            "amount": str(amount_inr),
            "mode": mode,
            "status": PayoutStatus.PROCESSING.value,
            "utr": None,
            "created_at": datetime.utcnow().isoformat(),
        }
        with self._lock:
            self._transfers[provider_id] = record

        if "timeout" in vpa:
            logger.info("sandbox transfer %s accepted but reply dropped", transfer_id)
            raise UpstreamTimeout("Transfer timed out")

        return TransferResult(provider_transfer_id=provider_id, status=PayoutStatus.PROCESSING, raw=dict(record))

    def _find(self, provider_transfer_id: Optional[str], transfer_id: str) -> Optional[dict]:
        if provider_transfer_id and provider_transfer_id in self._transfers:
            return self._transfers[provider_transfer_id]
        for record in self._transfers.values():
            if record["reference_id"] == transfer_id:
                return record
        return None

    def get_transfer_status(self, provider_transfer_id: Optional[str], transfer_id: str) -> StatusUpdate:
        with self._lock:
            record = self._find(provider_transfer_id, transfer_id)
            if record is None:
                raise ProviderRejected(f"Get transfer status failed: unknown transfer {transfer_id}")
            if record["status"] in (PayoutStatus.INITIATED.value, PayoutStatus.PROCESSING.value):
                record["status"] = PayoutStatus.PROCESSED.value
                record["utr"] = f"SBXUTR{secrets.randbelow(10 ** 10):010d}"
            snapshot = dict(record)

        return StatusUpdate(
            status=PayoutStatus(snapshot["status"]),
            provider_transfer_id=snapshot["id"],
            transfer_id=snapshot["reference_id"],
            utr=snapshot["utr"],
            event="poll",
            raw=snapshot,
        )

    def sign(self, raw_body: bytes) -> str:
        return hmac_sha256_hex(self._webhook_secret, raw_body)

    def build_webhook(
        self,
        transfer_id: str,
        status: PayoutStatus,
        utr: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Tuple[bytes, Dict[str, str]]:
        """Signed webhook body and headers reporting `status` for a sandbox transfer."""
        with self._lock:
            record = self._find(None, transfer_id) or {"id": None, "reference_id": transfer_id}
        entity = {
            "id": record["id"],
            "reference_id": transfer_id,
            "status": PayoutStatus(status).value,
            "utr": utr,
            "failure_reason": reason,
        }
        body = json.dumps({"event": f"payout.{PayoutStatus(status).value}", "payload": {"payout": {"entity": entity}}})
        raw = body.encode("utf-8")
        return raw, {SIGNATURE_HEADER: self.sign(raw), "content-type": "application/json"}

    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        if not self._webhook_secret:
            return False
        return signatures_match(self.sign(raw_body), headers.get(SIGNATURE_HEADER))

    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[StatusUpdate]:
        event = str(payload.get("event") or "").lower()
        status = PAYOUT_EVENT_STATUS.get(event)
        if status is None:
            return None
        entity = extract_payout_entity(payload)
        return StatusUpdate(
            status=status,
            provider_transfer_id=entity.get("id"),
            transfer_id=entity.get("reference_id"),
            utr=entity.get("utr"),
            failure_reason=entity.get("failure_reason"),
            event=event,
            raw=payload,
        )
