"""
Beneficiary Routes — Register a merchant VPA with a payout provider ahead of
the first payout.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stableupi.database import get_db
from stableupi.dependencies import get_default_provider
from stableupi.schemas.schemas import BeneficiaryCreateRequest, BeneficiaryResponse
from stableupi.services.beneficiary_service import BeneficiaryService
from stableupi.services.providers import PayoutProvider, get_payout_provider

router = APIRouter(prefix="/api/beneficiaries", tags=["Beneficiaries"])


@router.post("", response_model=BeneficiaryResponse)
def register_beneficiary(
    payload: BeneficiaryCreateRequest,
    db: Session = Depends(get_db),
    default_provider: PayoutProvider = Depends(get_default_provider),
):
    """Idempotent: an already-registered VPA returns the stored reference."""
    provider = default_provider
    if payload.provider and payload.provider != default_provider.name:
        provider = get_payout_provider(payload.provider)

    beneficiary, created = BeneficiaryService(db).resolve(
        provider, payload.upi_id, payload.name, email=payload.email, phone=payload.phone
    )
    return BeneficiaryResponse(
        id=beneficiary.id,
        provider=beneficiary.provider,
        upi_id=beneficiary.upi_id,
        name=beneficiary.name,
        beneficiary_ref=beneficiary.beneficiary_ref,
        status=beneficiary.status,
        is_new=created,
    )
