"""
StableUPI Gateway — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error rendering, and
initializes the database and logging on startup.
"""
import logging
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stableupi.config import get_settings
from stableupi.database import SessionLocal, init_db
from stableupi.errors import GatewayError
from stableupi.schemas.schemas import HealthResponse
from stableupi.routes import (
    scans_router, conversion_router, transactions_router, payouts_router,
    webhooks_router, beneficiaries_router, admin_router,
)
from stableupi.utils.log_setup import setup_logging

settings = get_settings()
logger = logging.getLogger("stableupi.main")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Pay any UPI merchant QR with USDC. Parses UPI QR payloads, quotes INR in "
        "USDC per chain, records the on-chain leg, and settles the merchant in INR "
        "through Cashfree or RazorpayX payouts with signed webhook reconciliation."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize logging and database tables, then log boot info."""
    setup_logging()
    init_db()

    logger.info(
        "\n%s\n  %s v%s\n  TIME: %s\n  PAYOUT PROVIDER: %s\n  COINGECKO KEY: %s\n  DATABASE: %s\n  DEBUG: %s\n%s",
        "=" * 60,
        settings.APP_NAME,
        settings.APP_VERSION,
        datetime.now().isoformat(),
        settings.PAYOUT_PROVIDER,
        "[OK] Loaded" if settings.COINGECKO_API_KEY else "[!] Missing (public tier)",
        settings.DATABASE_URL,
        settings.DEBUG,
        "=" * 60,
    )


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith("/api"):
        logger.info("-> %s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── Error Rendering ─────────────────────────────────────────────────
@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Invalid {field}: {first.get('msg', 'malformed request')}",
            "error_code": "VALIDATION_ERROR",
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"})


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(scans_router)
app.include_router(conversion_router)
app.include_router(transactions_router)
app.include_router(payouts_router)
app.include_router(webhooks_router)
app.include_router(beneficiaries_router)
app.include_router(admin_router)


@app.get("/health", tags=["Health"], response_model=HealthResponse)
def deep_health():
    """Detailed health check including dependency statuses."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError as exc:
        logger.error("health check database query failed: %s", exc)
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "payout_provider": settings.PAYOUT_PROVIDER,
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
