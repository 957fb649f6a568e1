"""
UPI QR Parser — Decodes `upi://pay?` deep links into structured records.

Parsing never raises for malformed text: the caller always gets a
ParsedQrResponse, with `is_valid=False` and a populated error list when the
payload is unusable.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, quote

from stableupi.utils.validators import (
    validate_upi_vpa,
    validate_upi_amount,
    validate_currency_code,
    validate_merchant_code,
)

UPI_SCHEME_PREFIX = "upi://pay?"
DEFAULT_CURRENCY = "INR"

QR_TYPE_PERSONAL = "personal"
QR_TYPE_STATIC_MERCHANT = "static_merchant"
QR_TYPE_DYNAMIC_MERCHANT = "dynamic_merchant"

# UPI short key -> UpiQrRecord attribute, in display order
KNOWN_KEYS: Tuple[Tuple[str, str], ...] = (
    ("pa", "payee_address"),
    ("pn", "payee_name"),
    ("am", "amount"),
    ("cu", "currency_code"),
    ("mc", "merchant_category_code"),
    ("tr", "transaction_ref"),
    ("tn", "transaction_note"),
    ("mode", "mode"),
    ("purpose", "purpose"),
    ("orgid", "org_id"),
    ("sign", "signature"),
)
_ATTR_BY_KEY = dict(KNOWN_KEYS)

DISPLAY_LABELS = {
    "pa": "Payee Address (pa)",
    "pn": "Payee Name (pn)",
    "am": "Amount (am)",
    "cu": "Currency (cu)",
    "mc": "Merchant Code (mc)",
    "tr": "Transaction Reference (tr)",
    "tn": "Transaction Note (tn)",
    "mode": "Payment Mode",
    "purpose": "Purpose",
    "orgid": "Organization ID",
    "sign": "Digital Signature",
}


@dataclass(frozen=True)
class UpiQrRecord:
    """Typed view of a UPI payload. `extras` keeps unrecognised keys verbatim."""

    payee_address: Optional[str] = None
    payee_name: Optional[str] = None
    amount: Optional[str] = None
    currency_code: str = DEFAULT_CURRENCY
    merchant_category_code: Optional[str] = None
    transaction_ref: Optional[str] = None
    transaction_note: Optional[str] = None
    mode: Optional[str] = None
    purpose: Optional[str] = None
    org_id: Optional[str] = None
    signature: Optional[str] = None
    extras: Dict[str, str] = field(default_factory=dict)

    def to_upi_params(self) -> Dict[str, str]:
        """Short-key mapping (pa, pn, am, ...) followed by the extras."""
        params: Dict[str, str] = {"pa": self.payee_address or ""}
        for key, attr in KNOWN_KEYS[1:]:
            value = getattr(self, attr)
            if value is not None:
                params[key] = value
        for key, value in self.extras.items():
            params.setdefault(key, value)
        return params


@dataclass(frozen=True)
class ParsedQrResponse:
    qr_type: str
    is_valid: bool
    data: UpiQrRecord
    errors: List[str] = field(default_factory=list)

    def to_dict(self, include_formatted: bool = True) -> dict:
        body = {
            "qrType": self.qr_type,
            "isValid": self.is_valid,
            "data": self.data.to_upi_params(),
        }
        if self.errors:
            body["errors"] = list(self.errors)
        if include_formatted:
            body["formattedData"] = UpiQrParser.format_for_display(self)
        return body


class UpiQrParser:
    """Parser, validator and display projection for UPI QR payloads."""

    @staticmethod
    def parse(raw: str) -> ParsedQrResponse:
        """Parse and validate a scanned QR string.

        Args:
            raw: Text produced by a QR decoder. Length limits are enforced
                by the caller.

        Returns:
            ParsedQrResponse; invalid payloads are returned, never discarded.

        Raises:
            TypeError: If `raw` is not a string.
        """
        if not isinstance(raw, str):
            raise TypeError(f"QR payload must be a string, got {type(raw).__name__}")

        text = raw.strip()
        if not text:
            return ParsedQrResponse(
                qr_type=QR_TYPE_PERSONAL,
                is_valid=False,
                data=UpiQrRecord(),
                errors=["QR data cannot be empty"],
            )

        errors: List[str] = []
        if text[:len(UPI_SCHEME_PREFIX)].lower() == UPI_SCHEME_PREFIX:
            query = text[len(UPI_SCHEME_PREFIX):]
        else:
            errors.append('Invalid UPI QR format. Must start with "upi://pay?"')
            # Best effort: salvage whatever follows the first '?'
            _, sep, query = text.partition("?")
            if not sep:
                query = ""

        record = UpiQrParser._build_record(query)
        errors.extend(UpiQrParser.validate(record))

        return ParsedQrResponse(
            qr_type=UpiQrParser.classify(record),
            is_valid=not errors,
            data=record,
            errors=errors,
        )

    @staticmethod
    def _build_record(query: str) -> UpiQrRecord:
        known: Dict[str, str] = {}
        extras: Dict[str, str] = {}

        for key, value in parse_qsl(query, keep_blank_values=True):
            attr = _ATTR_BY_KEY.get(key.lower())
            if attr is None:
                if key:
                    extras.setdefault(key, value)
                continue
            # Keys match case-insensitively and the first occurrence wins.
            # Values are trimmed; blank values count as absent.
            if attr not in known and value.strip():
                known[attr] = value.strip()

        if "currency_code" not in known:
            known["currency_code"] = DEFAULT_CURRENCY
        return UpiQrRecord(extras=extras, **known)

    @staticmethod
    def classify(record: UpiQrRecord) -> str:
        """Amount pins the payment (dynamic); an MCC alone marks a static merchant."""
        if record.amount is not None:
            return QR_TYPE_DYNAMIC_MERCHANT
        if record.merchant_category_code is not None:
            return QR_TYPE_STATIC_MERCHANT
        return QR_TYPE_PERSONAL

    @staticmethod
    def validate(record: UpiQrRecord) -> List[str]:
        errors: List[str] = []

        if not record.payee_address:
            errors.append("Payee address (pa) is mandatory")
        elif not validate_upi_vpa(record.payee_address):
            errors.append("Payee address (pa) must be a valid UPI ID (local@handle)")

        if record.amount is not None and not validate_upi_amount(record.amount):
            errors.append("Amount (am) must be a non-negative number with at most 2 decimal places")

        if record.merchant_category_code is not None and not validate_merchant_code(record.merchant_category_code):
            errors.append("Merchant code (mc) must be numeric")

        if not validate_currency_code(record.currency_code):
            errors.append("Currency code (cu) must be 3 uppercase letters (e.g., INR, USD)")

        return errors

    @staticmethod
    def format_for_display(response: ParsedQrResponse) -> str:
        """Human-readable multi-line summary of a parse result."""
        lines = [
            f"QR Type: {response.qr_type.replace('_', ' ').upper()}",
            f"Valid: {'Yes' if response.is_valid else 'No'}",
            "",
        ]

        if response.errors:
            lines.append("Errors:")
            lines.extend(f"- {error}" for error in response.errors)
            lines.append("")

        params = response.data.to_upi_params()
        lines.append("Parsed Data:")
        lines.append(f"- {DISPLAY_LABELS['pa']}: {params['pa'] or 'Not provided'}")
        for key, _ in KNOWN_KEYS[1:]:
            if key in params:
                lines.append(f"- {DISPLAY_LABELS[key]}: {params[key]}")

        if response.data.extras:
            lines.append("")
            lines.append("Additional Parameters:")
            lines.extend(f"- {key}: {value}" for key, value in response.data.extras.items())

        return "\n".join(lines) + "\n"

    @staticmethod
    def build_uri(record: UpiQrRecord) -> str:
        """Render a record back into a `upi://pay?` deep link."""
        return UPI_SCHEME_PREFIX + urlencode(record.to_upi_params(), quote_via=quote, safe="@")


def parse_upi_qr(raw: str) -> ParsedQrResponse:
    return UpiQrParser.parse(raw)


def format_qr_for_display(response: ParsedQrResponse) -> str:
    return UpiQrParser.format_for_display(response)


def build_upi_uri(record: UpiQrRecord) -> str:
    return UpiQrParser.build_uri(record)
