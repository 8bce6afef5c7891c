"""Tests for naming, effect and validation helpers."""

from decimal import Decimal

import pytest

from ledger_mcp.exceptions import ValidationError
from ledger_mcp.models import TransactionType
from ledger_mcp.utils import effect, format_amount, format_transaction_name, reformat_for_type
from ledger_mcp.validators import (
    parse_amount,
    parse_id,
    parse_number,
    parse_transaction_type,
    validate_email,
    validate_required_str,
)


class TestTransactionNaming:
    """Test the display-name formatter."""

    def test_out_name(self):
        assert format_transaction_name(0, "rent") == "T0-RENT"

    def test_in_name(self):
        assert format_transaction_name(TransactionType.IN, "Salary March") == "T1-SALARY MARCH"

    def test_invalid_type_propagates(self):
        with pytest.raises(ValidationError):
            format_transaction_name(2, "rent")

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            format_transaction_name(0, "x" * 254)

    def test_reformat_swaps_prefix(self):
        assert reformat_for_type("T0-RENT", 0, 1) == "T1-RENT"

    def test_reformat_without_prefix(self):
        assert reformat_for_type("legacy", 0, 1) == "T1-LEGACY"


class TestEffect:
    """Test signed balance effects."""

    def test_in_is_positive(self):
        assert effect(TransactionType.IN, 2000) == 2000

    def test_out_is_negative(self):
        assert effect(TransactionType.OUT, 500) == -500


class TestFormatAmount:
    def test_integral(self):
        assert format_amount(500.0) == "500"

    def test_fractional(self):
        assert format_amount(12.5) == "12.5"

    def test_zero(self):
        assert format_amount(0) == "0"

    def test_small_and_large_without_exponent(self):
        assert format_amount(1e-05) == "0.00001"
        assert format_amount(1e20) == "100000000000000000000"

    def test_trailing_zeros_dropped(self):
        assert format_amount(Decimal("2.50")) == "2.5"
        assert format_amount(Decimal("1E+2")) == "100"


class TestValidators:
    """Test argument validation."""

    @pytest.mark.parametrize("value", [0, 1, "0", " 1 ", TransactionType.IN])
    def test_valid_types(self, value):
        assert parse_transaction_type(value) in (TransactionType.OUT, TransactionType.IN)

    @pytest.mark.parametrize("value", [2, -1, True, False, None, "in", 1.0, "01"])
    def test_invalid_types(self, value):
        with pytest.raises(ValidationError):
            parse_transaction_type(value)

    def test_parse_amount_accepts_strings_and_decimals(self):
        assert parse_amount("12.50") == 12.5
        assert parse_amount(Decimal("3")) == 3.0
        assert parse_amount(0) == 0.0

    def test_parse_amount_is_exact_decimal(self):
        assert parse_amount(0.1) == Decimal("0.1")
        assert parse_amount(0.1) + parse_amount(0.2) == Decimal("0.3")

    @pytest.mark.parametrize("value", [-1, "abc", None, True, float("nan"), float("inf"), [1]])
    def test_parse_amount_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_amount(value)

    def test_parse_number_allows_negative(self):
        assert parse_number("-20.5", "budget") == -20.5

    def test_parse_id(self):
        assert parse_id("7", "account_id") == 7
        assert parse_id(3, "account_id") == 3

    @pytest.mark.parametrize("value", [0, -3, "x", None, True, 1.5])
    def test_parse_id_rejects(self, value):
        with pytest.raises(ValidationError):
            parse_id(value, "account_id")

    def test_required_str(self):
        assert validate_required_str("  rent ", "name", 10) == "rent"
        with pytest.raises(ValidationError):
            validate_required_str("   ", "name", 10)
        with pytest.raises(ValidationError):
            validate_required_str(None, "name", 10)

    def test_email(self):
        assert validate_email("ann@example.com") == "ann@example.com"
        with pytest.raises(ValidationError):
            validate_email("not-an-email")
