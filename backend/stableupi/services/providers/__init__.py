"""Payout provider adapters and the configured-provider lookup."""
from functools import lru_cache
from typing import Optional

from stableupi.config import get_settings
from stableupi.errors import ValidationError
from stableupi.services.providers.base import (
    BeneficiaryDetails,
    BeneficiaryResult,
    PayoutProvider,
    StatusUpdate,
    TransferResult,
)
from stableupi.services.providers.cashfree import CashfreePayoutProvider
from stableupi.services.providers.razorpay import RazorpayPayoutProvider
from stableupi.services.providers.sandbox import SandboxPayoutProvider

PROVIDERS = {
    "cashfree": CashfreePayoutProvider,
    "razorpay": RazorpayPayoutProvider,
    "sandbox": SandboxPayoutProvider,
}


@lru_cache()
def get_payout_provider(name: Optional[str] = None) -> PayoutProvider:
    """One shared adapter per provider name; defaults to PAYOUT_PROVIDER."""
    name = (name or get_settings().PAYOUT_PROVIDER or "sandbox").lower()
    try:
        return PROVIDERS[name]()
    except KeyError:
        raise ValidationError(f"Unknown payout provider: {name}") from None


__all__ = [
    "BeneficiaryDetails",
    "BeneficiaryResult",
    "PayoutProvider",
    "StatusUpdate",
    "TransferResult",
    "CashfreePayoutProvider",
    "RazorpayPayoutProvider",
    "SandboxPayoutProvider",
    "get_payout_provider",
]
