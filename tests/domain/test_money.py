"""Amount normalization and installment splitting."""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fatura_kernel.domain.money import require_positive, split_installments, to_amount
from fatura_kernel.exceptions import InvalidAmountError


class TestToAmount:

    def test_quantizes_half_up(self):
        assert to_amount(Decimal("10.005")) == Decimal("10.01")
        assert to_amount("10.004") == Decimal("10.00")

    def test_float_goes_through_str(self):
        assert to_amount(0.1) == Decimal("0.10")

    @pytest.mark.parametrize("bad", ["abc", "NaN", "Infinity"])
    def test_non_numbers_rejected(self, bad):
        with pytest.raises(InvalidAmountError):
            to_amount(bad)

    @pytest.mark.parametrize("value", ["0", "0.00", "-1.00", "0.004"])
    def test_require_positive_rejects(self, value):
        with pytest.raises(InvalidAmountError) as exc_info:
            require_positive(value)
        assert exc_info.value.code == "INVALID_AMOUNT"


class TestSplitInstallments:

    def test_even_split(self):
        assert split_installments(Decimal("300.00"), 3) == [Decimal("100.00")] * 3

    def test_first_installment_absorbs_remainder(self):
        assert split_installments(Decimal("100.00"), 3) == [
            Decimal("33.34"),
            Decimal("33.33"),
            Decimal("33.33"),
        ]

    def test_single_installment(self):
        assert split_installments(Decimal("42.50"), 1) == [Decimal("42.50")]

    def test_zero_count_rejected(self):
        with pytest.raises(InvalidAmountError):
            split_installments(Decimal("100.00"), 0)

    def test_too_small_to_split(self):
        with pytest.raises(InvalidAmountError):
            split_installments(Decimal("0.02"), 3)

    @settings(max_examples=300, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        cents=st.integers(min_value=100, max_value=10_000_000),
        count=st.integers(min_value=1, max_value=48),
    )
    def test_parts_sum_to_total(self, cents, count):
        total = Decimal(cents) / 100
        parts = split_installments(total, count)
        assert len(parts) == count
        assert sum(parts) == total
        assert all(part > 0 for part in parts)
        assert max(parts) - min(parts) < Decimal("0.01") * count
