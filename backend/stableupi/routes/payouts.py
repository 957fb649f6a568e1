"""
Payout Routes — INR payout initiation, status polling, reconciliation and stats.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from stableupi.dependencies import client_ip, get_orchestrator
from stableupi.errors import ProviderRejected, UpstreamTimeout
from stableupi.schemas.schemas import (
    ErrorResponse,
    PayoutAttemptResponse,
    PayoutInitiateRequest,
    PayoutStatsResponse,
    PayoutStatusResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from stableupi.services.payout_orchestrator import PayoutOrchestrator
from stableupi.services.state_machine import PayoutStatus
from stableupi.utils.rate_limiter import rate_limit

router = APIRouter(prefix="/api/payouts", tags=["Payouts"])


@router.post(
    "/initiate",
    response_model=PayoutAttemptResponse,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def initiate_payout(
    payload: PayoutInitiateRequest,
    request: Request,
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
    _throttle: bool = Depends(rate_limit("payouts", requests=10)),
):
    """Start the INR payout for a transaction paid on-chain.

    A failed attempt is still recorded; it is reported as a 502 carrying the
    attempt so the client can show the reason and retry.
    """
    attempt = orchestrator.initiate_payout(
        payload.transaction_id,
        transfer_id=payload.transfer_id,
        remarks=payload.remarks,
        provider=payload.provider,
        ip_address=client_ip(request),
    )
    body = PayoutAttemptResponse.model_validate(attempt)
    if attempt.status != PayoutStatus.FAILED.value:
        return body

    error = UpstreamTimeout if attempt.reconcilable else ProviderRejected
    return JSONResponse(
        status_code=error.status_code,
        content={
            "detail": attempt.failure_reason or "Payout failed",
            "error_code": error.code,
            "details": body.model_dump(mode="json", by_alias=True),
        },
    )


@router.get("/status/{transaction_id}", response_model=PayoutStatusResponse)
def payout_status(transaction_id: int, orchestrator: PayoutOrchestrator = Depends(get_orchestrator)):
    """Poll the provider for the latest attempt and fold the answer into the ledger."""
    applied = orchestrator.poll_status(transaction_id)
    return PayoutStatusResponse(
        transaction_id=transaction_id,
        transition=applied.transition.value,
        payout=PayoutAttemptResponse.model_validate(applied.attempt),
    )


@router.post("/reconcile", response_model=ReconcileResponse)
def reconcile(payload: ReconcileRequest, orchestrator: PayoutOrchestrator = Depends(get_orchestrator)):
    if payload.transaction_ids:
        return orchestrator.reconcile_transactions(payload.transaction_ids)
    return orchestrator.reconcile_batch(payload.limit)


@router.get("/stats", response_model=PayoutStatsResponse)
def payout_stats(orchestrator: PayoutOrchestrator = Depends(get_orchestrator)):
    return orchestrator.payout_stats()
