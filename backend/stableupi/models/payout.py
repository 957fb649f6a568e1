"""
Payout Attempt Model — One INR transfer try for a confirmed USDC receipt.
Rows are never deleted; failed attempts stay as the audit trail of retries.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, Numeric, Boolean
from sqlalchemy.orm import relationship

from stableupi.database import Base


class PayoutAttempt(Base):
    __tablename__ = "payout_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    transaction_id = Column(Integer, ForeignKey("upi_transactions.id"), nullable=False, index=True)

    provider = Column(String(16), nullable=False)              # cashfree | razorpay | sandbox
    transfer_id = Column(String(64), unique=True, nullable=False, index=True)
    provider_transfer_id = Column(String(64), unique=True, nullable=True, index=True)
    beneficiary_ref = Column(String(64))

    amount = Column(Numeric(14, 2), nullable=False)            # INR
    mode = Column(String(8), default="upi")

    status = Column(String(16), default="initiated", nullable=False)
    # Statuses: initiated | processing | processed | failed | reversed
    failure_reason = Column(String(512))
    utr = Column(String(64))                                   # only while status == processed
    reconcilable = Column(Boolean, default=False, nullable=False)  # timed out, outcome unknown

    raw_response = Column(JSON, default=dict)

    initiated_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    transaction = relationship("TransactionRecord", back_populates="payout_attempts")
