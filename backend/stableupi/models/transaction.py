"""
Transaction Record Model — One USDC-for-UPI payment, from scan to payout.
Maps to the 'upi_transactions' table.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Numeric, Boolean
from sqlalchemy.orm import relationship

from stableupi.database import Base


class TransactionRecord(Base):
    __tablename__ = "upi_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    # Merchant side (from the scanned QR)
    upi_id = Column(String(128), nullable=False, index=True)
    merchant_name = Column(String(128))
    inr_amount = Column(Numeric(14, 2), nullable=False)

    # Payer side (on-chain leg)
    usdc_amount_paid = Column(Numeric(20, 6))
    chain_id = Column(Integer)
    wallet_address = Column(String(64))
    chain_tx_hash = Column(String(80), unique=True, index=True, nullable=True)
    is_success = Column(Boolean, default=False, nullable=False)

    state = Column(String(24), default="scanned", nullable=False)
    # States: scanned → quoted → onchain_pending → onchain_confirmed → payout_initiated
    #         → payout_processing → payout_processed | payout_failed | payout_reversed

    payout_triggered = Column(Boolean, default=False, nullable=False)
    payout_locked = Column(Boolean, default=False, nullable=False)  # set while a non-failed attempt exists

    scanned_at = Column(DateTime, default=datetime.utcnow)
    paid_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payout_attempts = relationship(
        "PayoutAttempt",
        back_populates="transaction",
        order_by="PayoutAttempt.id",
    )

    @property
    def payout_attempt(self):
        """Latest payout attempt, or None before the first trigger."""
        return self.payout_attempts[-1] if self.payout_attempts else None
