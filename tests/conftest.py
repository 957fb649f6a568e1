"""
Pytest configuration and fixtures for StableUPI gateway tests

Provides an in-memory SQLite ledger, a fixed-rate price source and a
scriptable payout provider shared by unit and integration tests.
"""
import os
import tempfile

# Settings are read at import time; point them at throwaway locations first
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="stableupi-logs-"))
os.environ.setdefault("PAYOUT_PROVIDER", "sandbox")

import json  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Dict, Generator, List, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from stableupi.database import init_db  # noqa: E402
from stableupi.errors import ProviderRejected, UpstreamTimeout, UpstreamUnavailable  # noqa: E402
from stableupi.services.payout_orchestrator import ChainPayment, PayoutOrchestrator  # noqa: E402
from stableupi.services.price_source import PriceQuote, PriceSource  # noqa: E402
from stableupi.services.providers.base import (  # noqa: E402
    BeneficiaryDetails,
    BeneficiaryResult,
    PayoutProvider,
    StatusUpdate,
    TransferResult,
)
from stableupi.services.state_machine import PayoutStatus  # noqa: E402
from stableupi.utils.hashing import hmac_sha256_hex, signatures_match  # noqa: E402
from stableupi.utils.rate_limiter import reset_rate_limits  # noqa: E402


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests that don't require external services")
    config.addinivalue_line("markers", "integration: Route tests through the FastAPI TestClient")


# =======================
# TEST DOUBLES
# =======================

class FakePriceSource(PriceSource):
    """Fixed INR-per-USDT rate; set `error` to make every lookup fail."""

    def __init__(self, rate: str = "83"):
        self.rate = Decimal(rate)
        self.error: Optional[Exception] = None
        self.calls = 0

    def price(self, base_asset: str, quote_currency: str) -> PriceQuote:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return PriceQuote(
            base_asset=base_asset,
            quote_currency=quote_currency,
            rate=self.rate,
            as_of=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )


class FakePayoutProvider(PayoutProvider):
    """
    Scriptable payout rail.

    `outcome` controls the next initiate_transfer call: "processing",
    "processed", "reject", "timeout" or "unavailable". `statuses` maps our
    transfer ids to the status returned by get_transfer_status.
    """

    name = "fake"
    secret = "fake-webhook-secret"
    signature_header = "x-fake-signature"

    def __init__(self, max_transfer_inr: str = "25000"):
        super().__init__(Decimal(max_transfer_inr))
        self.outcome = "processing"
        self.statuses: Dict[str, StatusUpdate] = {}
        self.transfer_calls: List[dict] = []
        self.beneficiary_calls: List[BeneficiaryDetails] = []
        self.status_calls: List[str] = []
        self.status_error: Optional[Exception] = None

    def add_beneficiary(self, details: BeneficiaryDetails) -> BeneficiaryResult:
        self.beneficiary_calls.append(details)
        return BeneficiaryResult(beneficiary_ref=f"BENE_{len(self.beneficiary_calls)}", status="active")

    def initiate_transfer(self, beneficiary_ref, amount_inr, transfer_id, mode="upi", remarks=None, beneficiary=None):
        self.transfer_calls.append({
            "beneficiary_ref": beneficiary_ref,
            "amount": amount_inr,
            "transfer_id": transfer_id,
            "mode": mode,
        })
        provider_id = f"CF_{len(self.transfer_calls)}"
        if self.outcome == "reject":
            raise ProviderRejected("Transfer failed (422): Beneficiary VPA is invalid")
        if self.outcome == "timeout":
            raise UpstreamTimeout("Transfer timed out")
        if self.outcome == "unavailable":
            raise UpstreamUnavailable("Transfer failed: provider unreachable")
        if self.outcome == "processed":
            return TransferResult(provider_transfer_id=provider_id, status=PayoutStatus.PROCESSED, utr="UTR0001")
        return TransferResult(provider_transfer_id=provider_id, status=PayoutStatus.PROCESSING)

    def get_transfer_status(self, provider_transfer_id, transfer_id):
        self.status_calls.append(transfer_id)
        if self.status_error is not None:
            raise self.status_error
        update = self.statuses.get(transfer_id)
        if update is None:
            return StatusUpdate(status=PayoutStatus.PROCESSING, provider_transfer_id=provider_transfer_id)
        return update

    def sign(self, body: bytes) -> str:
        return hmac_sha256_hex(self.secret, body)

    def webhook(self, **entity) -> tuple:
        body = json.dumps(entity).encode("utf-8")
        return body, {self.signature_header: self.sign(body)}

    def verify_webhook(self, raw_body, headers):
        return signatures_match(self.sign(raw_body), headers.get(self.signature_header))

    def parse_webhook(self, payload):
        if payload.get("status") not in {s.value for s in PayoutStatus}:
            return None
        return StatusUpdate(
            status=PayoutStatus(payload["status"]),
            provider_transfer_id=payload.get("provider_transfer_id"),
            transfer_id=payload.get("transfer_id"),
            utr=payload.get("utr"),
            failure_reason=payload.get("reason"),
            event=payload.get("event", "transfer.update"),
            raw=payload,
        )


# =======================
# DATABASE FIXTURES
# =======================

@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory SQLite database shared across threads via StaticPool"""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =======================
# SERVICE FIXTURES
# =======================

@pytest.fixture
def price_source() -> FakePriceSource:
    return FakePriceSource()


@pytest.fixture
def fake_provider() -> FakePayoutProvider:
    return FakePayoutProvider()


@pytest.fixture
def orchestrator(db_session, fake_provider) -> PayoutOrchestrator:
    return PayoutOrchestrator(db_session, provider=fake_provider)


@pytest.fixture
def paid_transaction(orchestrator):
    """A 1000 INR record whose USDC leg is confirmed on-chain"""
    def _make(inr_amount="1000", upi_id="merchant@okaxis", tx_hash="0xabc"):
        record = orchestrator.record_scan(upi_id, "Test Merchant", inr_amount, usdc_amount="12.548193", chain_id=421614)
        return orchestrator.record_onchain_payment(
            record.id,
            ChainPayment(wallet_address="0xWALLET", chain_tx_hash=tx_hash, is_success=True, chain_id=421614),
        )
    return _make


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()
