"""
Scan Routes — UPI QR parsing and the per-session last-scan slot.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse

from stableupi.config import get_settings
from stableupi.dependencies import client_ip
from stableupi.errors import ValidationError
from stableupi.schemas.schemas import ScanRequest, ScanResponse
from stableupi.services.qr_parser import format_qr_for_display, parse_upi_qr
from stableupi.services.scan_store import LastScanStore, get_scan_store
from stableupi.utils.rate_limiter import rate_limit

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/scans", tags=["Scans"])

NO_SCAN_MESSAGE = "No QR data has been parsed yet. Please use POST /api/scans first."


def _session_key(request: Request, scan_session: Optional[str]) -> str:
    return scan_session or client_ip(request) or "anonymous"


@router.post("", response_model=ScanResponse)
def scan_qr(
    payload: ScanRequest,
    request: Request,
    scan_session: Optional[str] = Header(None, alias="scan-session"),
    store: LastScanStore = Depends(get_scan_store),
    _throttle: bool = Depends(rate_limit("scans")),
):
    """Parse a scanned UPI QR payload and remember it for this scan session."""
    if len(payload.qr_data) > settings.QR_MAX_LENGTH:
        raise ValidationError(f"QR data too long. Maximum length is {settings.QR_MAX_LENGTH} characters.")

    qr_string = payload.qr_data.strip()
    parsed = parse_upi_qr(qr_string)
    store.put(_session_key(request, scan_session), qr_string, parsed)

    logger.info("parsed %s QR (valid=%s)", parsed.qr_type, parsed.is_valid)
    return ScanResponse(**parsed.to_dict())


@router.get("/last", response_class=PlainTextResponse)
def last_scan(
    request: Request,
    scan_session: Optional[str] = Header(None, alias="scan-session"),
    store: LastScanStore = Depends(get_scan_store),
):
    """Plain-text summary of this session's most recent scan."""
    entry = store.get(_session_key(request, scan_session))
    if entry is None:
        return PlainTextResponse(NO_SCAN_MESSAGE, status_code=404)

    header = f"\nLast Parsed: {entry.stored_at.isoformat()}\nOriginal QR: {entry.qr_string}\n\n"
    return PlainTextResponse(header + format_qr_for_display(entry.parsed))
