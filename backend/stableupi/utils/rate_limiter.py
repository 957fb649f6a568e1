"""
Simple Memory-based Rate Limiter.
Fixed window per client IP and route scope; process-local by nature.
"""
import time
from threading import Lock
from typing import Dict, Tuple

from fastapi import Request

from stableupi.config import get_settings
from stableupi.errors import GatewayError

settings = get_settings()

# In-memory storage: {(scope, ip): (window_start, count)}
_rate_limit_store: Dict[Tuple[str, str], Tuple[float, int]] = {}
_lock = Lock()


class RateLimitExceeded(GatewayError):
    status_code = 429
    code = "RATE_LIMITED"


def rate_limit(scope: str, requests: int | None = None, window: int | None = None):
    """
    Dependency for rate limiting.
    Example: Depends(rate_limit("scans", requests=5, window=60))
    """
    max_requests = requests or settings.RATE_LIMIT_REQUESTS
    window_seconds = window or settings.RATE_LIMIT_WINDOW_SECONDS

    def limiter(request: Request):
        ip = request.client.host if request.client else "unknown"
        key = (scope, ip)
        now = time.time()

        with _lock:
            last_ts, count = _rate_limit_store.get(key, (now, 0))

            # Reset window if expired
            if now - last_ts > window_seconds:
                last_ts, count = now, 0

            if count >= max_requests:
                raise RateLimitExceeded(
                    f"Rate limit exceeded. Try again in {int(window_seconds - (now - last_ts))} seconds."
                )

            _rate_limit_store[key] = (last_ts, count + 1)
        return True

    return limiter


def reset_rate_limits():
    with _lock:
        _rate_limit_store.clear()
