"""
Webhook Routes — Signed payout status callbacks from Cashfree, Razorpay and
the sandbox rail.
"""
from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from stableupi.dependencies import get_orchestrator
from stableupi.schemas.schemas import ErrorResponse, WebhookAck
from stableupi.services.payout_orchestrator import PayoutOrchestrator

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/{provider}", response_model=WebhookAck, responses={401: {"model": ErrorResponse}})
async def receive_webhook(
    provider: str,
    request: Request,
    orchestrator: PayoutOrchestrator = Depends(get_orchestrator),
):
    """Verify the signature over the raw body, then apply the reported status."""
    raw_body = await request.body()
    return await run_in_threadpool(orchestrator.handle_webhook, provider, raw_body, dict(request.headers))
