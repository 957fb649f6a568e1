"""
Payout Provider Contract — What the orchestrator needs from Cashfree, Razorpay
or any other INR payout rail.

Adapters normalise provider responses into the canonical dataclasses below
as soon as they are received, so provider-specific field names never reach
the orchestration logic.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx

from stableupi.errors import ProviderRejected, UpstreamTimeout, UpstreamUnavailable
from stableupi.services.state_machine import PayoutStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeneficiaryDetails:
    upi_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class BeneficiaryResult:
    beneficiary_ref: str
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferResult:
    provider_transfer_id: Optional[str]
    status: PayoutStatus
    utr: Optional[str] = None
    failure_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusUpdate:
    """A provider-reported status, from a webhook or a status poll."""

    status: PayoutStatus
    provider_transfer_id: Optional[str] = None
    transfer_id: Optional[str] = None
    utr: Optional[str] = None
    failure_reason: Optional[str] = None
    event: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class PayoutProvider(ABC):
    """Abstract INR payout rail."""

    name: str = "abstract"

    def __init__(self, max_transfer_inr: Decimal):
        self.max_transfer_inr = Decimal(str(max_transfer_inr))

    @abstractmethod
    def add_beneficiary(self, details: BeneficiaryDetails) -> BeneficiaryResult:
        """Register a UPI payee and return the provider's reference for it."""

    @abstractmethod
    def initiate_transfer(
        self,
        beneficiary_ref: str,
        amount_inr: Decimal,
        transfer_id: str,
        mode: str = "upi",
        remarks: Optional[str] = None,
        beneficiary: Optional[BeneficiaryDetails] = None,
    ) -> TransferResult:
        """Submit a transfer. Raises UpstreamTimeout, UpstreamUnavailable or ProviderRejected."""

    @abstractmethod
    def get_transfer_status(self, provider_transfer_id: Optional[str], transfer_id: str) -> StatusUpdate:
        """Look a transfer up by the provider id, falling back to our transfer id."""

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """Check the shared-secret signature of an inbound webhook. False when no secret is configured."""

    @abstractmethod
    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[StatusUpdate]:
        """Canonical update for a webhook body, or None for events we do not track."""


class HttpPayoutProvider(PayoutProvider):
    """Shared httpx plumbing: bounded waits and uniform error mapping."""

    def __init__(self, client: httpx.Client, max_transfer_inr: Decimal):
        super().__init__(max_transfer_inr)
        self._client = client

    def _request(self, method: str, path: str, prefix: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out: %s", self.name, prefix, exc)
            raise UpstreamTimeout(f"{prefix} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s transport error: %s", self.name, prefix, exc)
            raise UpstreamUnavailable(f"{prefix} failed: provider unreachable") from exc

        if response.status_code >= 500:
            raise UpstreamUnavailable(f"{prefix} failed ({response.status_code})")

        try:
            data = response.json()
        except ValueError:
            data = {"message": response.text}

        if response.status_code >= 400:
            detail = self._error_message(data) or response.reason_phrase
            raise ProviderRejected(f"{prefix} failed ({response.status_code}): {detail}")

        return data if isinstance(data, dict) else {"data": data}

    @staticmethod
    def _error_message(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("description") or error.get("reason")
        return data.get("message") or (error if isinstance(error, str) else None)

    def close(self):
        self._client.close()


PAYOUT_EVENT_STATUS = {
    "payout.queued": PayoutStatus.INITIATED,
    "payout.initiated": PayoutStatus.INITIATED,
    "payout.pending": PayoutStatus.INITIATED,
    "payout.processing": PayoutStatus.PROCESSING,
    "payout.processed": PayoutStatus.PROCESSED,
    "payout.failed": PayoutStatus.FAILED,
    "payout.rejected": PayoutStatus.FAILED,
    "payout.reversed": PayoutStatus.REVERSED,
}


def extract_payout_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Accepts `{payout: {...}}`, `{payload: {payout: {...}}}` and `{payload: {payout: {entity: {...}}}}`."""
    container = payload.get("payload") if isinstance(payload.get("payload"), dict) else payload
    payout = container.get("payout") or {}
    if isinstance(payout, dict) and isinstance(payout.get("entity"), dict):
        payout = payout["entity"]
    return payout if isinstance(payout, dict) else {}
