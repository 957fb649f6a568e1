"""
Audit Log Model — Immutable, tamper-evident trail of ledger mutations.
Every action is SHA-256 hashed and chained per transaction.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON

from stableupi.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    transaction_id = Column(Integer, nullable=False, index=True)

    action = Column(String(50), nullable=False)
    # Actions: TXN_SCANNED, TXN_QUOTED, ONCHAIN_RECORDED, PAYOUT_INITIATED,
    #          PAYOUT_FAILED, PAYOUT_STATUS_APPLIED

    payload_hash = Column(String(64))       # SHA-256 chain hash of the action payload
    previous_hash = Column(String(64))      # Hash of the previous entry for this transaction

    ip_address = Column(String(45))

    log_metadata = Column(JSON, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)
