"""
Unit tests for the UPI QR parser.

Includes property-based testing with hypothesis for parse/build symmetry.
"""
import pytest
from hypothesis import given
from hypothesis import strategies as st

from stableupi.services.qr_parser import (
    QR_TYPE_DYNAMIC_MERCHANT,
    QR_TYPE_PERSONAL,
    QR_TYPE_STATIC_MERCHANT,
    UpiQrRecord,
    build_upi_uri,
    format_qr_for_display,
    parse_upi_qr,
)

pytestmark = pytest.mark.unit

PREFIX_ERROR = 'Invalid UPI QR format. Must start with "upi://pay?"'


class TestClassification:
    """Tests for personal / static / dynamic detection"""

    def test_amount_makes_dynamic_merchant(self):
        result = parse_upi_qr("upi://pay?pa=shop@okaxis&pn=Chai%20Point&am=250.50&cu=INR&mc=5411&tr=TR001")

        assert result.qr_type == QR_TYPE_DYNAMIC_MERCHANT
        assert result.is_valid
        assert result.errors == []
        assert result.data.payee_address == "shop@okaxis"
        assert result.data.payee_name == "Chai Point"
        assert result.data.amount == "250.50"
        assert result.data.merchant_category_code == "5411"
        assert result.data.transaction_ref == "TR001"

    def test_amount_without_mcc_is_still_dynamic(self):
        assert parse_upi_qr("upi://pay?pa=a@b&am=10").qr_type == QR_TYPE_DYNAMIC_MERCHANT

    def test_mcc_without_amount_is_static_merchant(self):
        result = parse_upi_qr("upi://pay?pa=shop@ybl&pn=Shop&mc=5812")
        assert result.qr_type == QR_TYPE_STATIC_MERCHANT
        assert result.is_valid

    def test_plain_vpa_is_personal(self):
        result = parse_upi_qr("upi://pay?pa=friend@paytm&pn=Friend")
        assert result.qr_type == QR_TYPE_PERSONAL
        assert result.is_valid

    def test_blank_amount_counts_as_absent(self):
        result = parse_upi_qr("upi://pay?pa=friend@paytm&am=")
        assert result.data.amount is None
        assert result.qr_type == QR_TYPE_PERSONAL


class TestPrefixHandling:
    """Tests for scheme detection and best-effort extraction"""

    def test_prefix_is_case_insensitive(self):
        result = parse_upi_qr("UPI://PAY?pa=friend@paytm")
        assert result.is_valid
        assert result.data.payee_address == "friend@paytm"

    def test_surrounding_whitespace_is_trimmed(self):
        assert parse_upi_qr("  upi://pay?pa=friend@paytm \n").is_valid

    def test_wrong_scheme_still_extracts_fields(self):
        result = parse_upi_qr("https://example.com/pay?pa=shop@okaxis&am=10")

        assert not result.is_valid
        assert result.errors == [PREFIX_ERROR]
        assert result.data.payee_address == "shop@okaxis"
        assert result.qr_type == QR_TYPE_DYNAMIC_MERCHANT

    def test_text_without_query_reports_both_errors(self):
        result = parse_upi_qr("hello world")

        assert not result.is_valid
        assert PREFIX_ERROR in result.errors
        assert "Payee address (pa) is mandatory" in result.errors

    @pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
    def test_empty_input(self, raw):
        result = parse_upi_qr(raw)
        assert not result.is_valid
        assert result.errors == ["QR data cannot be empty"]

    def test_non_string_input_is_a_programming_error(self):
        with pytest.raises(TypeError):
            parse_upi_qr(b"upi://pay?pa=a@b")


class TestFieldRules:
    """Tests for key matching, decoding and per-field validation"""

    def test_first_occurrence_wins(self):
        result = parse_upi_qr("upi://pay?pa=first@upi&pa=second@upi")
        assert result.data.payee_address == "first@upi"

    def test_keys_match_case_insensitively(self):
        result = parse_upi_qr("upi://pay?PA=shop@upi&AM=5")
        assert result.data.payee_address == "shop@upi"
        assert result.data.amount == "5"

    def test_known_values_are_trimmed_and_blank_counts_as_absent(self):
        result = parse_upi_qr("upi://pay?pa=%20shop@upi%20&pn=%20%20&Pn=Chai%20Point&tn=+Lunch+")
        assert result.data.payee_address == "shop@upi"
        assert result.data.payee_name == "Chai Point"
        assert result.data.transaction_note == "Lunch"
        assert result.data.extras == {}

    def test_unknown_keys_are_kept_verbatim(self):
        result = parse_upi_qr("upi://pay?pa=shop@upi&Ver=01&mid=M123&mid=M999")
        assert result.data.extras == {"Ver": "01", "mid": "M123"}
        assert result.to_dict()["data"]["Ver"] == "01"

    def test_percent_and_plus_decoding(self):
        result = parse_upi_qr("upi://pay?pa=shop@upi&pn=Ravi+Kumar&tn=Bill%20%2312")
        assert result.data.payee_name == "Ravi Kumar"
        assert result.data.transaction_note == "Bill #12"

    def test_currency_defaults_to_inr(self):
        assert parse_upi_qr("upi://pay?pa=shop@upi").data.currency_code == "INR"

    @pytest.mark.parametrize("amount", ["10.123", "-5", "abc", "1e3", "10."])
    def test_bad_amounts_are_rejected(self, amount):
        result = parse_upi_qr(f"upi://pay?pa=shop@upi&am={amount}")
        assert not result.is_valid
        assert any("Amount (am)" in error for error in result.errors)

    @pytest.mark.parametrize("amount", ["0", "250", "250.5", "250.00"])
    def test_good_amounts_pass(self, amount):
        assert parse_upi_qr(f"upi://pay?pa=shop@upi&am={amount}").is_valid

    def test_bad_vpa(self):
        result = parse_upi_qr("upi://pay?pa=not-a-vpa")
        assert not result.is_valid
        assert any("valid UPI ID" in error for error in result.errors)

    def test_non_numeric_mcc(self):
        result = parse_upi_qr("upi://pay?pa=shop@upi&mc=54A1")
        assert any("Merchant code (mc)" in error for error in result.errors)

    def test_lowercase_currency(self):
        result = parse_upi_qr("upi://pay?pa=shop@upi&cu=inr")
        assert any("Currency code (cu)" in error for error in result.errors)

    def test_all_errors_are_collected(self):
        result = parse_upi_qr("upi://pay?am=1.234&cu=rupees&mc=x")
        assert len(result.errors) == 4


class TestWireFormat:
    """Tests for the camelCase response shape and display text"""

    def test_to_dict_uses_short_keys(self):
        body = parse_upi_qr("upi://pay?pa=shop@upi&pn=Shop&am=99").to_dict()

        assert body["qrType"] == "dynamic_merchant"
        assert body["isValid"] is True
        assert body["data"] == {"pa": "shop@upi", "pn": "Shop", "am": "99", "cu": "INR"}
        assert "errors" not in body
        assert body["formattedData"].startswith("QR Type: DYNAMIC MERCHANT")

    def test_display_lists_fields_and_extras(self):
        text = format_qr_for_display(parse_upi_qr("upi://pay?pa=shop@upi&pn=Shop&mode=02&foo=bar"))

        assert "Valid: Yes" in text
        assert "- Payee Address (pa): shop@upi" in text
        assert "- Payee Name (pn): Shop" in text
        assert "- Payment Mode: 02" in text
        assert "Additional Parameters:\n- foo: bar" in text

    def test_display_of_invalid_scan(self):
        text = format_qr_for_display(parse_upi_qr("nonsense"))
        assert "Valid: No" in text
        assert "Errors:" in text
        assert "Not provided" in text


class TestBuildUri:
    """Tests for rendering records back to deep links"""

    def test_build_simple_record(self):
        record = UpiQrRecord(payee_address="shop@upi", payee_name="Chai Point", amount="10.00")
        uri = build_upi_uri(record)

        assert uri == "upi://pay?pa=shop@upi&pn=Chai%20Point&am=10.00&cu=INR"
        assert parse_upi_qr(uri).data == record


_text = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc")),
    min_size=1,
    max_size=20,
).map(str.strip).filter(bool)


@st.composite
def upi_records(draw):
    return UpiQrRecord(
        payee_address=draw(st.from_regex(r"[a-z0-9.]{1,12}@[a-z]{2,8}", fullmatch=True)),
        payee_name=draw(st.none() | _text),
        amount=draw(st.none() | st.from_regex(r"[1-9][0-9]{0,5}(\.[0-9]{2})?", fullmatch=True)),
        merchant_category_code=draw(st.none() | st.from_regex(r"[0-9]{4}", fullmatch=True)),
        transaction_ref=draw(st.none() | _text),
        transaction_note=draw(st.none() | _text),
        extras=draw(st.dictionaries(st.from_regex(r"x[a-z]{1,6}", fullmatch=True), _text, max_size=3)),
    )


class TestProperties:
    """Property tests over generated payloads"""

    @given(upi_records())
    def test_property_build_then_parse_is_identity(self, record):
        result = parse_upi_qr(build_upi_uri(record))
        assert result.data == record
        assert result.is_valid

    @given(st.text(max_size=300))
    def test_property_parser_never_raises(self, raw):
        result = parse_upi_qr(raw)
        assert result.is_valid == (not result.errors)
        assert result.qr_type in (QR_TYPE_PERSONAL, QR_TYPE_STATIC_MERCHANT, QR_TYPE_DYNAMIC_MERCHANT)
