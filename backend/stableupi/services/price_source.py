"""
Price Source — Live INR rate for the stablecoin used as the USD/INR proxy.

The CoinGecko implementation fetches `simple/price` for the configured asset
(USDT by default) and keeps the last good rate for a short cache window.
Unreachable upstreams and unusable rates both raise UpstreamUnavailable; a
zero rate is never returned.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

import httpx

from stableupi.config import get_settings
from stableupi.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)
settings = get_settings()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PriceQuote:
    base_asset: str
    quote_currency: str
    rate: Decimal
    as_of: datetime


class PriceSource(ABC):
    @abstractmethod
    def price(self, base_asset: str, quote_currency: str) -> PriceQuote:
        """Return the current price of `base_asset` in `quote_currency`."""


def coerce_rate(value) -> Optional[Decimal]:
    """Positive finite Decimal, or None for anything unusable (0, negatives, NaN, junk)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not rate.is_finite() or rate <= 0:
        return None
    return rate


class CoinGeckoPriceSource(PriceSource):
    """CoinGecko `simple/price` client with a short-lived rate cache."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        base_url: str = settings.COINGECKO_BASE_URL,
        api_key: str = settings.COINGECKO_API_KEY,
        cache_seconds: int = settings.RATE_CACHE_SECONDS,
        max_age_seconds: int = settings.RATE_MAX_AGE_SECONDS,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)
        self._cache_ttl = timedelta(seconds=min(cache_seconds, 60))
        self._max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock
        self._cache: Dict[Tuple[str, str], Tuple[datetime, PriceQuote]] = {}
        self._lock = Lock()

    def price(self, base_asset: str, quote_currency: str) -> PriceQuote:
        key = (base_asset.lower(), quote_currency.lower())
        now = self._clock()

        with self._lock:
            cached = self._cache.get(key)
        if cached and now - cached[0] <= self._cache_ttl:
            return cached[1]

        quote = self._fetch(*key)
        if now - quote.as_of > self._max_age:
            raise UpstreamUnavailable(
                f"Exchange rate for {base_asset}/{quote_currency} is stale (as of {quote.as_of.isoformat()})"
            )

        with self._lock:
            self._cache[key] = (now, quote)
        return quote

    def _fetch(self, base_asset: str, quote_currency: str) -> PriceQuote:
        params = {
            "ids": base_asset,
            "vs_currencies": quote_currency,
            "include_last_updated_at": "true",
        }
        try:
            response = self._client.get("/simple/price", params=params)
        except httpx.HTTPError as exc:
            logger.warning("CoinGecko request failed: %s", exc)
            raise UpstreamUnavailable("Price source is unreachable") from exc

        if response.status_code != 200:
            logger.warning("CoinGecko returned %s: %s", response.status_code, response.text[:200])
            raise UpstreamUnavailable(f"Price source returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Invalid JSON received from price source") from exc

        entry = payload.get(base_asset) if isinstance(payload, dict) else None
        rate = coerce_rate(entry.get(quote_currency)) if isinstance(entry, dict) else None
        if rate is None:
            logger.error("Unusable rate from CoinGecko: %s", payload)
            raise UpstreamUnavailable("Invalid exchange rate data")

        as_of = self._clock()
        updated = entry.get("last_updated_at")
        if isinstance(updated, (int, float)) and not isinstance(updated, bool) and updated > 0:
            as_of = datetime.fromtimestamp(updated, tz=timezone.utc)

        return PriceQuote(base_asset=base_asset, quote_currency=quote_currency, rate=rate, as_of=as_of)

    def close(self):
        self._client.close()
