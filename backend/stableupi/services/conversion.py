"""
Conversion Engine — INR amount to USDC payable, with network fee.

USDC is treated as pegged 1:1 to USD, and the USD/INR rate is proxied by the
stablecoin's INR spot price. All monetary outputs are rounded to 6 decimal
places, half away from zero. ETH amounts in wei are valued directly
against the ETH/USD spot price.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional

from stableupi.config import get_settings
from stableupi.errors import InvalidAmount, UpstreamUnavailable
from stableupi.services.price_source import PriceSource
from stableupi.utils.validators import MAX_INR_AMOUNT, parse_inr

logger = logging.getLogger(__name__)
settings = get_settings()

USDC_QUANTUM = Decimal("0.000001")
MIN_INR_AMOUNT = Decimal("0.01")

WEI_PATTERN = re.compile(r"^[0-9]{1,30}$")

NETWORK_NAMES: Dict[int, str] = {
    1: "Ethereum",
    42161: "Arbitrum One",
    11155111: "Sepolia",
    421614: "Arbitrum Sepolia",
}
UNKNOWN_NETWORK = "Unknown Network"


def round_usdc(value: Decimal) -> Decimal:
    return value.quantize(USDC_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ConversionQuote:
    inr_amount: Decimal
    usd_amount: Decimal
    usdc_amount: Decimal
    exchange_rate: Decimal          # USD per INR
    network_fee: Decimal
    total_usdc_amount: Decimal
    chain_id: int
    network_name: str
    quoted_at: datetime
    rate_as_of: datetime

    def to_dict(self) -> dict:
        return {
            "inrAmount": float(self.inr_amount),
            "usdAmount": float(self.usd_amount),
            "usdcAmount": float(self.usdc_amount),
            "exchangeRate": float(self.exchange_rate),
            "networkFee": float(self.network_fee),
            "totalUsdcAmount": float(self.total_usdc_amount),
            "chainId": self.chain_id,
            "networkName": self.network_name,
            "quotedAt": self.quoted_at.isoformat(),
            "lastUpdated": self.rate_as_of.isoformat(),
        }


@dataclass(frozen=True)
class EthQuote:
    wei: int
    eth: Decimal
    eth_usd: Decimal
    usdc: Decimal
    rate_as_of: datetime

    def to_dict(self) -> dict:
        return {
            "wei": str(self.wei),
            "eth": float(self.eth),
            "ethUsd": float(self.eth_usd),
            "usdc": float(self.usdc),
            "lastUpdated": self.rate_as_of.isoformat(),
        }


class ConversionEngine:
    """Quotes INR amounts in USDC against a live price source."""

    def __init__(
        self,
        price_source: PriceSource,
        network_fees: Optional[Dict[int, str]] = None,
        default_fee: str = settings.DEFAULT_NETWORK_FEE_USDC,
        base_asset: str = settings.RATE_BASE_ASSET,
        quote_currency: str = settings.RATE_QUOTE_CURRENCY,
    ):
        fees = settings.NETWORK_FEES_USDC if network_fees is None else network_fees
        self._price_source = price_source
        self._fees = {int(chain): round_usdc(Decimal(str(fee))) for chain, fee in fees.items()}
        self._default_fee = round_usdc(Decimal(str(default_fee)))
        self._base_asset = base_asset
        self._quote_currency = quote_currency

    def network_fee(self, chain_id: int) -> Decimal:
        """Static per-chain fee; unsupported chains get the default fee."""
        return self._fees.get(chain_id, self._default_fee)

    def network_name(self, chain_id: int) -> str:
        return NETWORK_NAMES.get(chain_id, UNKNOWN_NETWORK)

    def networks(self) -> List[dict]:
        chain_ids = sorted(set(NETWORK_NAMES) | set(self._fees))
        return [
            {
                "chainId": chain_id,
                "networkName": self.network_name(chain_id),
                "networkFee": float(self.network_fee(chain_id)),
            }
            for chain_id in chain_ids
        ]

    def convert(self, inr_amount, chain_id: int) -> ConversionQuote:
        """Quote `inr_amount` INR in USDC for payment on `chain_id`.

        Raises:
            InvalidAmount: If the amount is not a number between 0.01 INR and
                MAX_INR_AMOUNT.
            UpstreamUnavailable: If the price source fails or returns no usable rate.
        """
        inr = parse_inr(inr_amount)
        if inr is None or inr < MIN_INR_AMOUNT:
            raise InvalidAmount(
                f"Invalid amount. Please provide a positive number between 0.01 and {MAX_INR_AMOUNT} INR."
            )

        quote = self._price_source.price(self._base_asset, self._quote_currency)
        inr_per_usd = quote.rate
        if inr_per_usd is None or inr_per_usd <= 0:
            raise UpstreamUnavailable("Invalid exchange rate data")

        try:
            usd_amount = round_usdc(inr / inr_per_usd)
            exchange_rate = round_usdc(Decimal(1) / inr_per_usd)
        except InvalidOperation:
            raise UpstreamUnavailable("Exchange rate out of range") from None
        usdc_amount = usd_amount
        if exchange_rate <= 0:
            raise UpstreamUnavailable("Exchange rate rounds to zero")

        fee = self.network_fee(chain_id)
        total = round_usdc(usdc_amount + fee)

        logger.debug(
            "Quoted %s INR at %s INR/USD on chain %s: %s USDC + %s fee",
            inr, inr_per_usd, chain_id, usdc_amount, fee,
        )

        return ConversionQuote(
            inr_amount=inr,
            usd_amount=usd_amount,
            usdc_amount=usdc_amount,
            exchange_rate=exchange_rate,
            network_fee=fee,
            total_usdc_amount=total,
            chain_id=chain_id,
            network_name=self.network_name(chain_id),
            quoted_at=datetime.now(timezone.utc),
            rate_as_of=quote.as_of,
        )

    def convert_wei(self, wei) -> EthQuote:
        """Value an amount of wei in USDC at the ETH/USD spot price.

        Raises:
            InvalidAmount: If `wei` is not a string of at most 30 decimal digits.
            UpstreamUnavailable: If the price source fails or returns no usable rate.
        """
        if not isinstance(wei, str) or not WEI_PATTERN.fullmatch(wei.strip()):
            raise InvalidAmount("Missing 'wei' (string of decimal digits)")
        wei_amount = int(wei.strip())

        quote = self._price_source.price(settings.ETH_PRICE_ASSET, settings.ETH_QUOTE_CURRENCY)
        eth_usd = quote.rate
        if eth_usd is None or eth_usd <= 0:
            raise UpstreamUnavailable("Invalid ETH price data")

        eth = Decimal(wei_amount).scaleb(-18)
        try:
            usdc = round_usdc(eth * eth_usd)
        except InvalidOperation:
            raise UpstreamUnavailable("ETH price out of range") from None
        logger.debug("Valued %s wei at %s USD/ETH: %s USDC", wei_amount, eth_usd, usdc)
        return EthQuote(wei=wei_amount, eth=eth, eth_usd=eth_usd, usdc=usdc, rate_as_of=quote.as_of)
