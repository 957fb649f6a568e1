"""
Beneficiary Model — Merchant VPAs registered with a payout provider.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint

from stableupi.database import Base


class Beneficiary(Base):
    __tablename__ = "beneficiaries"
    __table_args__ = (UniqueConstraint("provider", "upi_id", name="uq_beneficiary_provider_vpa"),)

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    provider = Column(String(16), nullable=False)
    upi_id = Column(String(128), nullable=False, index=True)
    name = Column(String(128))

    beneficiary_ref = Column(String(64), nullable=False)   # Cashfree beneficiary_id | Razorpay fund_account_id
    status = Column(String(16), default="active")

    created_at = Column(DateTime, default=datetime.utcnow)
