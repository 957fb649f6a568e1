"""
FastAPI Dependencies — Shared collaborators injected into route handlers.
Tests swap these through app.dependency_overrides.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from stableupi.database import get_db
from stableupi.services.conversion import ConversionEngine
from stableupi.services.payout_orchestrator import PayoutOrchestrator
from stableupi.services.price_source import CoinGeckoPriceSource, PriceSource
from stableupi.services.providers import PayoutProvider, get_payout_provider


@lru_cache()
def get_price_source() -> PriceSource:
    return CoinGeckoPriceSource()


def get_conversion_engine(price_source: PriceSource = Depends(get_price_source)) -> ConversionEngine:
    return ConversionEngine(price_source)


def get_default_provider() -> PayoutProvider:
    return get_payout_provider()


def get_orchestrator(
    db: Session = Depends(get_db),
    provider: PayoutProvider = Depends(get_default_provider),
) -> PayoutOrchestrator:
    return PayoutOrchestrator(db, provider)


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None
