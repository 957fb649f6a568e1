"""
Beneficiary Service — Registers merchant VPAs with the payout provider once
and reuses the stored reference afterwards.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stableupi.errors import PersistenceError, ValidationError
from stableupi.models.beneficiary import Beneficiary
from stableupi.services.providers.base import BeneficiaryDetails, PayoutProvider
from stableupi.utils.validators import validate_upi_vpa

logger = logging.getLogger(__name__)


class BeneficiaryService:
    def __init__(self, db: Session):
        self.db = db

    def find(self, provider_name: str, upi_id: str) -> Optional[Beneficiary]:
        return (
            self.db.query(Beneficiary)
            .filter(Beneficiary.provider == provider_name, Beneficiary.upi_id == upi_id)
            .first()
        )

    def resolve(
        self,
        provider: PayoutProvider,
        upi_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Tuple[Beneficiary, bool]:
        """Return (beneficiary, created) for a VPA, registering it upstream if new.

        Provider errors propagate unchanged; nothing is stored for them.
        """
        if not validate_upi_vpa(upi_id):
            raise ValidationError(f"Invalid UPI ID: {upi_id}")

        existing = self.find(provider.name, upi_id)
        if existing is not None:
            return existing, False

        details = BeneficiaryDetails(upi_id=upi_id, name=name or upi_id.split("@")[0], email=email, phone=phone)
        result = provider.add_beneficiary(details)

        beneficiary = Beneficiary(
            provider=provider.name,
            upi_id=upi_id,
            name=details.name,
            beneficiary_ref=result.beneficiary_ref,
            status=result.status,
        )
        self.db.add(beneficiary)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            # Lost a race with a concurrent registration of the same VPA
            existing = self.find(provider.name, upi_id)
            if existing is not None:
                return existing, False
            raise PersistenceError("Failed to store beneficiary") from exc

        self.db.refresh(beneficiary)
        logger.info("registered beneficiary %s with %s as %s", upi_id, provider.name, result.beneficiary_ref)
        return beneficiary, True
