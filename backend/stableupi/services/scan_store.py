"""
Last-Scan Store — Bounded, time-stamped single slot per scan session.

Each scan session (the `scan-session` header, or the client IP when absent)
owns exactly one slot; a new scan overwrites it. Slots expire after
LAST_SCAN_TTL_SECONDS and the oldest session is evicted beyond
LAST_SCAN_MAX_SESSIONS.
"""
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Callable, Optional

from stableupi.config import get_settings
from stableupi.services.qr_parser import ParsedQrResponse

settings = get_settings()


@dataclass(frozen=True)
class StoredScan:
    qr_string: str
    parsed: ParsedQrResponse
    stored_at: datetime


class LastScanStore:
    def __init__(
        self,
        ttl_seconds: int = settings.LAST_SCAN_TTL_SECONDS,
        max_sessions: int = settings.LAST_SCAN_MAX_SESSIONS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_sessions = max_sessions
        self._clock = clock
        self._slots: "OrderedDict[str, StoredScan]" = OrderedDict()
        self._lock = Lock()

    def put(self, session_key: str, qr_string: str, parsed: ParsedQrResponse) -> StoredScan:
        entry = StoredScan(qr_string=qr_string, parsed=parsed, stored_at=self._clock())
        with self._lock:
            self._slots.pop(session_key, None)
            self._slots[session_key] = entry
            while len(self._slots) > self._max_sessions:
                self._slots.popitem(last=False)
        return entry

    def get(self, session_key: str) -> Optional[StoredScan]:
        with self._lock:
            entry = self._slots.get(session_key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > self._ttl:
                del self._slots[session_key]
                return None
            return entry

    def clear(self, session_key: Optional[str] = None) -> None:
        with self._lock:
            if session_key is None:
                self._slots.clear()
            else:
                self._slots.pop(session_key, None)

    def __len__(self) -> int:
        return len(self._slots)


_store: Optional[LastScanStore] = None


def get_scan_store() -> LastScanStore:
    """FastAPI dependency: the process-wide store instance."""
    global _store
    if _store is None:
        _store = LastScanStore()
    return _store
