"""
Validators — Regex and rule-based checks for UPI identifiers and INR amounts.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

VPA_PATTERN = re.compile(r"^[\w.\-]+@[\w.\-]+$")
AMOUNT_PATTERN = re.compile(r"^\d+(\.\d{1,2})?$")
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
MCC_PATTERN = re.compile(r"^\d+$")

# Largest amount a Numeric(14, 2) column holds
MAX_INR_AMOUNT = Decimal("999999999999.99")


def validate_upi_vpa(vpa: str | None) -> bool:
    """Validate UPI VPA format: local@handle."""
    if not vpa:
        return False
    return bool(VPA_PATTERN.fullmatch(vpa))


def validate_upi_amount(amount: str | None) -> bool:
    """Non-negative decimal with at most 2 fractional digits (e.g. 250, 250.5, 250.00)."""
    if amount is None:
        return False
    return bool(AMOUNT_PATTERN.fullmatch(amount.strip()))


def validate_currency_code(code: str | None) -> bool:
    if not code:
        return False
    return bool(CURRENCY_PATTERN.fullmatch(code))


def validate_merchant_code(mcc: str | None) -> bool:
    if not mcc:
        return False
    return bool(MCC_PATTERN.fullmatch(mcc))


def parse_inr(value) -> Decimal | None:
    """Coerce an incoming amount to paise precision, rounding half up.

    None when the value is not a finite number or its magnitude exceeds
    MAX_INR_AMOUNT.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return None
        amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if abs(amount) > MAX_INR_AMOUNT:
        return None
    return amount


def sanitize_remarks(remarks: str | None, fallback: str = "UPI Payment", limit: int = 30) -> str:
    """Provider-safe transfer remarks: alphanumerics and spaces only, length capped."""
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", remarks or "")[:limit].strip()
    return cleaned or fallback
