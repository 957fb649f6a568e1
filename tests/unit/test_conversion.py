"""
Unit tests for the INR to USDC conversion engine and the CoinGecko price source.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from stableupi.errors import InvalidAmount, UpstreamUnavailable, ValidationError
from stableupi.services.conversion import ConversionEngine, USDC_QUANTUM
from stableupi.utils.validators import MAX_INR_AMOUNT
from stableupi.services.price_source import CoinGeckoPriceSource, coerce_rate

from conftest import FakePriceSource

pytestmark = pytest.mark.unit


def make_engine(rate="83"):
    return ConversionEngine(
        FakePriceSource(rate),
        network_fees={1: "2.5", 42161: "0.1", 11155111: "0.5", 421614: "0.5"},
        default_fee="0.5",
    )


class TestConvert:
    """Tests for quote arithmetic"""

    def test_reference_quote(self):
        quote = make_engine("83").convert(1000, 421614)

        assert quote.inr_amount == Decimal("1000.00")
        assert quote.usd_amount == Decimal("12.048193")
        assert quote.usdc_amount == quote.usd_amount
        assert quote.exchange_rate == Decimal("0.012048")
        assert quote.network_fee == Decimal("0.500000")
        assert quote.total_usdc_amount == Decimal("12.548193")
        assert quote.network_name == "Arbitrum Sepolia"

    def test_fee_depends_on_chain(self):
        engine = make_engine()
        assert engine.convert(1000, 1).network_fee == Decimal("2.5")
        assert engine.convert(1000, 42161).network_fee == Decimal("0.1")

    def test_unknown_chain_uses_default_fee(self):
        quote = make_engine().convert(1000, 56)
        assert quote.network_name == "Unknown Network"
        assert quote.network_fee == Decimal("0.5")

    def test_rounding_is_half_up(self):
        # 1 / 2,000,000 = 0.0000005 exactly: half-even would give 0
        quote = make_engine("2000000").convert(1, 421614)
        assert quote.usd_amount == Decimal("0.000001")

    def test_string_amount(self):
        assert make_engine().convert("249.99", 421614).inr_amount == Decimal("249.99")

    @pytest.mark.parametrize("amount", [0, -5, "abc", None, "0.004", True, float("nan"), "Infinity"])
    def test_invalid_amounts(self, amount):
        with pytest.raises(InvalidAmount):
            make_engine().convert(amount, 421614)

    def test_invalid_amount_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            make_engine().convert(0, 421614)

    @pytest.mark.parametrize("rate", ["0", "-83"])
    def test_unusable_rate(self, rate):
        with pytest.raises(UpstreamUnavailable):
            make_engine(rate).convert(1000, 421614)

    def test_price_source_failure_propagates(self):
        source = FakePriceSource()
        source.error = UpstreamUnavailable("Price source is unreachable")
        with pytest.raises(UpstreamUnavailable):
            ConversionEngine(source).convert(1000, 421614)

    def test_to_dict_wire_names(self):
        body = make_engine().convert(1000, 421614).to_dict()
        assert body["totalUsdcAmount"] == pytest.approx(12.548193)
        assert body["chainId"] == 421614
        assert set(body) == {
            "inrAmount", "usdAmount", "usdcAmount", "exchangeRate", "networkFee",
            "totalUsdcAmount", "chainId", "networkName", "quotedAt", "lastUpdated",
        }

    def test_networks_listing(self):
        networks = {n["chainId"]: n for n in make_engine().networks()}
        assert networks[1]["networkName"] == "Ethereum"
        assert networks[42161]["networkFee"] == pytest.approx(0.1)
        assert set(networks) == {1, 42161, 11155111, 421614}

    @given(
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2),
        st.decimals(min_value=Decimal("1"), max_value=Decimal("500"), places=4),
        st.sampled_from([1, 42161, 11155111, 421614, 999]),
    )
    def test_property_quote_invariants(self, inr, rate, chain_id):
        quote = make_engine(str(rate)).convert(inr, chain_id)

        assert quote.usdc_amount == quote.usd_amount
        assert quote.total_usdc_amount == (quote.usdc_amount + quote.network_fee).quantize(
            USDC_QUANTUM, rounding=ROUND_HALF_UP
        )
        assert abs(quote.usd_amount - inr / rate) <= Decimal("0.0000005")
        assert quote.exchange_rate > 0

    @pytest.mark.parametrize("amount", ["90000000000000000000000000", "1000000000000", 10 ** 30])
    def test_amount_above_ceiling_is_invalid(self, amount):
        with pytest.raises(InvalidAmount):
            make_engine().convert(amount, 421614)

    def test_amount_at_ceiling_is_quoted(self):
        quote = make_engine("83").convert(MAX_INR_AMOUNT, 421614)
        assert quote.inr_amount == MAX_INR_AMOUNT
        assert quote.total_usdc_amount > 0

    def test_tiny_rate_is_unusable(self):
        with pytest.raises(UpstreamUnavailable):
            make_engine("1e-20").convert(MAX_INR_AMOUNT, 421614)

    @given(
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=2),
        st.decimals(min_value=Decimal("1"), max_value=Decimal("500"), places=4),
        st.sampled_from([1, 42161, 11155111, 421614, 999]),
    )
    def test_property_total_grows_with_amount(self, inr, rate, chain_id):
        engine = make_engine(str(rate))

        smaller = engine.convert(inr, chain_id)
        larger = engine.convert(inr + Decimal("0.01"), chain_id)

        assert smaller.total_usdc_amount < larger.total_usdc_amount


class TestConvertWei:
    """Tests for valuing wei amounts in USDC"""

    def test_reference_valuation(self):
        source = FakePriceSource("2000")
        seen = []
        original = source.price

        def price(base_asset, quote_currency):
            seen.append((base_asset, quote_currency))
            return original(base_asset, quote_currency)

        source.price = price
        quote = ConversionEngine(source).convert_wei("1500000000000000000")

        assert seen == [("ethereum", "usd")]
        assert quote.wei == 1500000000000000000
        assert quote.eth == Decimal("1.5")
        assert quote.eth_usd == Decimal("2000")
        assert quote.usdc == Decimal("3000.000000")

    def test_usdc_rounds_to_six_places_half_up(self):
        # 5e11 wei at 1 USD/ETH is 0.0000005 USDC exactly
        assert make_engine("1").convert_wei("500000000000").usdc == Decimal("0.000001")
        assert make_engine("1").convert_wei("499999999999").usdc == Decimal("0.000000")

    def test_zero_wei(self):
        assert make_engine("2000").convert_wei("0").usdc == Decimal("0")

    def test_to_dict_wire_names(self):
        body = make_engine("2000").convert_wei("1000000000000000000").to_dict()
        assert body["wei"] == "1000000000000000000"
        assert body["eth"] == pytest.approx(1.0)
        assert body["ethUsd"] == pytest.approx(2000.0)
        assert body["usdc"] == pytest.approx(2000.0)
        assert set(body) == {"wei", "eth", "ethUsd", "usdc", "lastUpdated"}

    @pytest.mark.parametrize("wei", [None, 10 ** 18, "", "abc", "-1", "1.5", "1e18", "9" * 31])
    def test_invalid_wei(self, wei):
        with pytest.raises(InvalidAmount):
            make_engine("2000").convert_wei(wei)

    @pytest.mark.parametrize("rate", ["0", "-1"])
    def test_unusable_price(self, rate):
        with pytest.raises(UpstreamUnavailable):
            make_engine(rate).convert_wei("1000000000000000000")

    def test_price_source_failure_propagates(self):
        source = FakePriceSource()
        source.error = UpstreamUnavailable("Price source is unreachable")
        with pytest.raises(UpstreamUnavailable):
            ConversionEngine(source).convert_wei("1")


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def coingecko(handler, clock=lambda: NOW, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="https://api.coingecko.test")
    return CoinGeckoPriceSource(client=client, clock=clock, **kwargs)


def price_body(rate, age_seconds=30):
    return {"tether": {"inr": rate, "last_updated_at": int(NOW.timestamp()) - age_seconds}}


class TestCoinGeckoPriceSource:
    """Tests for the httpx-backed price source"""

    def test_fetches_rate(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=price_body(83.25))

        quote = coingecko(handler).price("tether", "inr")

        assert quote.rate == Decimal("83.25")
        assert quote.as_of == NOW - timedelta(seconds=30)
        assert seen[0].url.path == "/simple/price"
        assert seen[0].url.params["ids"] == "tether"
        assert seen[0].url.params["vs_currencies"] == "inr"

    def test_rate_is_cached(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json=price_body(83))

        source = coingecko(handler)
        source.price("tether", "inr")
        source.price("tether", "inr")
        assert len(calls) == 1

    def test_cache_expires(self):
        calls = []
        now = [NOW]

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json=price_body(83))

        source = coingecko(handler, clock=lambda: now[0], cache_seconds=60)
        source.price("tether", "inr")
        now[0] = NOW + timedelta(seconds=61)
        source.price("tether", "inr")
        assert len(calls) == 2

    def test_stale_rate_rejected(self):
        source = coingecko(lambda r: httpx.Response(200, json=price_body(83, age_seconds=3600)), max_age_seconds=900)
        with pytest.raises(UpstreamUnavailable, match="stale"):
            source.price("tether", "inr")

    @pytest.mark.parametrize("body", [price_body(0), price_body(-1), price_body("abc"), {"tether": {}}, {}, []])
    def test_unusable_payloads(self, body):
        with pytest.raises(UpstreamUnavailable):
            coingecko(lambda r: httpx.Response(200, json=body)).price("tether", "inr")

    def test_http_error_status(self):
        with pytest.raises(UpstreamUnavailable, match="429"):
            coingecko(lambda r: httpx.Response(429, text="slow down")).price("tether", "inr")

    def test_invalid_json(self):
        with pytest.raises(UpstreamUnavailable, match="Invalid JSON"):
            coingecko(lambda r: httpx.Response(200, content=b"<html>")).price("tether", "inr")

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable, match="unreachable"):
            coingecko(handler).price("tether", "inr")

    def test_api_key_header(self):
        source = CoinGeckoPriceSource(api_key="demo-key")
        try:
            assert source._client.headers["x-cg-demo-api-key"] == "demo-key"
        finally:
            source.close()


class TestCoerceRate:
    @pytest.mark.parametrize("value", [None, True, 0, -1, "x", "NaN", "Infinity"])
    def test_rejects(self, value):
        assert coerce_rate(value) is None

    def test_accepts_positive(self):
        assert coerce_rate(83.1) == Decimal("83.1")
