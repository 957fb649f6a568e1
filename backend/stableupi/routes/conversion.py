"""
Conversion Routes — INR to USDC quotes, ETH valuation and the supported network list.
"""
from fastapi import APIRouter, Depends

from stableupi.config import get_settings
from stableupi.dependencies import get_conversion_engine
from stableupi.schemas.schemas import (
    ConversionRequest,
    ConversionResponse,
    EthConversionRequest,
    EthConversionResponse,
    NetworkInfo,
)
from stableupi.services.conversion import ConversionEngine
from stableupi.utils.rate_limiter import rate_limit

settings = get_settings()

router = APIRouter(prefix="/api/conversion", tags=["Conversion"])


@router.post("/inr-to-usd", response_model=ConversionResponse)
def inr_to_usd(
    payload: ConversionRequest,
    engine: ConversionEngine = Depends(get_conversion_engine),
    _throttle: bool = Depends(rate_limit("conversion")),
):
    """Quote an INR amount in USDC, including the network fee for the chain."""
    quote = engine.convert(payload.amount, payload.chain_id or settings.DEFAULT_CHAIN_ID)
    return ConversionResponse(**quote.to_dict())


@router.post("/eth-to-usdc", response_model=EthConversionResponse)
def eth_to_usdc(
    payload: EthConversionRequest,
    engine: ConversionEngine = Depends(get_conversion_engine),
    _throttle: bool = Depends(rate_limit("conversion")),
):
    """Value a wei amount in USDC at the ETH/USD spot price."""
    quote = engine.convert_wei(payload.wei)
    return EthConversionResponse(**quote.to_dict())


@router.get("/networks", response_model=list[NetworkInfo])
def list_networks(engine: ConversionEngine = Depends(get_conversion_engine)):
    return [NetworkInfo(**network) for network in engine.networks()]
