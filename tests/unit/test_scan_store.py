"""
Unit tests for the per-session last-scan store.
"""
from datetime import datetime, timedelta

import pytest

from stableupi.services.qr_parser import parse_upi_qr
from stableupi.services.scan_store import LastScanStore

pytestmark = pytest.mark.unit

QR = "upi://pay?pa=shop@upi&am=10"


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0)

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


def test_put_and_get(clock):
    store = LastScanStore(ttl_seconds=60, max_sessions=10, clock=clock)
    store.put("s1", QR, parse_upi_qr(QR))

    entry = store.get("s1")
    assert entry.qr_string == QR
    assert entry.parsed.data.payee_address == "shop@upi"
    assert entry.stored_at == clock.now


def test_sessions_are_isolated(clock):
    store = LastScanStore(clock=clock)
    store.put("s1", QR, parse_upi_qr(QR))
    assert store.get("s2") is None


def test_new_scan_overwrites_slot(clock):
    store = LastScanStore(clock=clock)
    store.put("s1", QR, parse_upi_qr(QR))
    store.put("s1", "upi://pay?pa=other@upi", parse_upi_qr("upi://pay?pa=other@upi"))

    assert store.get("s1").parsed.data.payee_address == "other@upi"
    assert len(store) == 1


def test_entries_expire(clock):
    store = LastScanStore(ttl_seconds=60, clock=clock)
    store.put("s1", QR, parse_upi_qr(QR))

    clock.now += timedelta(seconds=61)
    assert store.get("s1") is None
    assert len(store) == 0


def test_oldest_session_is_evicted(clock):
    store = LastScanStore(max_sessions=2, clock=clock)
    for key in ("a", "b", "c"):
        store.put(key, QR, parse_upi_qr(QR))

    assert store.get("a") is None
    assert store.get("b") is not None
    assert store.get("c") is not None


def test_rescan_refreshes_eviction_order(clock):
    store = LastScanStore(max_sessions=2, clock=clock)
    store.put("a", QR, parse_upi_qr(QR))
    store.put("b", QR, parse_upi_qr(QR))
    store.put("a", QR, parse_upi_qr(QR))
    store.put("c", QR, parse_upi_qr(QR))

    assert store.get("a") is not None
    assert store.get("b") is None


def test_clear(clock):
    store = LastScanStore(clock=clock)
    store.put("a", QR, parse_upi_qr(QR))
    store.put("b", QR, parse_upi_qr(QR))

    store.clear("a")
    assert store.get("a") is None
    store.clear()
    assert len(store) == 0
