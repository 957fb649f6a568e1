"""
Admin Routes — Ledger listing and audit trail access for operators.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from stableupi.database import get_db
from stableupi.schemas.schemas import AuditLogEntry, AuditVerifyResponse, TransactionResponse
from stableupi.services.audit_service import AuditService
from stableupi.services.ledger import TransactionLedger

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    state: Optional[str] = Query(None, description="Filter by ledger state, e.g. payout_failed"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Most recent records first."""
    records = TransactionLedger(db).list_transactions(state=state, limit=limit, offset=offset)
    return [TransactionResponse.model_validate(record) for record in records]


@router.get("/audit/{transaction_id}", response_model=list[AuditLogEntry])
def get_audit_trail(transaction_id: int, db: Session = Depends(get_db)):
    """Get the full audit trail for a transaction."""
    logs = AuditService.get_trail(db, transaction_id)
    if not logs:
        raise HTTPException(status_code=404, detail="No audit logs found for this transaction")
    return logs


@router.get("/audit/{transaction_id}/verify", response_model=AuditVerifyResponse)
def verify_audit_trail(transaction_id: int, db: Session = Depends(get_db)):
    return AuditService.verify_chain(db, transaction_id)
