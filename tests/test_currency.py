"""
Test suite for currency module

Tests Money arithmetic, rounding to currency precision and formatting.
"""

import pytest
from decimal import Decimal

from wallet_core.currency import Money, Currency, round_amount, to_decimal


class TestMoney:
    """Test Money class operations"""

    def test_money_creation_rounds_half_up(self):
        money = Money(Decimal('100.555'), Currency.KES)
        assert money.amount == Decimal('100.56')

        money = Money(Decimal('100.554'), Currency.KES)
        assert money.amount == Decimal('100.55')

        # UGX has no minor unit
        assert Money(Decimal('100.5'), Currency.UGX).amount == Decimal('101')

    def test_default_currency_is_kes(self):
        assert Money(Decimal('1')).currency == Currency.KES

    def test_money_from_string_and_int(self):
        assert Money('12.345').amount == Decimal('12.35')
        assert Money(7).amount == Decimal('7.00')

    def test_exact_keeps_representable_amounts(self):
        assert Money.exact('12.30').amount == Decimal('12.30')
        assert Money.exact(Decimal('12.300')).amount == Decimal('12.30')
        assert Money.exact('999999999999999.99').amount == Decimal('999999999999999.99')
        assert Money.exact('100', Currency.UGX).amount == Decimal('100')

    @pytest.mark.parametrize("value,currency", [
        ('0.005', Currency.KES),
        ('12.345', Currency.KES),
        ('100.5', Currency.UGX),
        ('1e30', Currency.KES),
        ('1000000000000000', Currency.KES),
        ('Infinity', Currency.KES),
        ('NaN', Currency.KES),
    ])
    def test_exact_rejects_rounding_and_overflow(self, value, currency):
        with pytest.raises(ValueError):
            Money.exact(value, currency)

    def test_float_amounts_rejected(self):
        with pytest.raises(TypeError):
            Money(10.5)

    def test_arithmetic(self):
        a = Money(Decimal('100.50'))
        b = Money(Decimal('50.25'))

        assert (a + b).amount == Decimal('150.75')
        assert (a - b).amount == Decimal('50.25')
        assert (a * Decimal('0.015')).amount == Decimal('1.51')
        assert (-a).amount == Decimal('-100.50')

    def test_currency_mismatch(self):
        with pytest.raises(ValueError, match="Cannot add"):
            Money(Decimal('1'), Currency.KES) + Money(Decimal('1'), Currency.USD)

        with pytest.raises(ValueError, match="Cannot compare"):
            Money(Decimal('1'), Currency.KES) < Money(Decimal('1'), Currency.USD)

    def test_comparisons_and_predicates(self):
        assert Money(Decimal('1.00')) < Money(Decimal('1.01'))
        assert Money(Decimal('1.00')) == Money(Decimal('1'))
        assert Money.zero().is_zero()
        assert Money(Decimal('0.01')).is_positive()
        assert Money(Decimal('-0.01')).is_negative()

    def test_formatting(self):
        money = Money(Decimal('1250.5'))
        assert money.to_plain() == "1250.50"
        assert money.to_string() == "KES 1,250.50"
        assert Money(Decimal('1500'), Currency.UGX).to_string() == "UGX 1,500"


class TestHelpers:

    def test_round_amount(self):
        assert round_amount(Decimal('2.675')) == Decimal('2.68')
        assert round_amount(Decimal('-2.675')) == Decimal('-2.68')

    def test_to_decimal(self):
        assert to_decimal("  3.10 ") == Decimal('3.10')
        with pytest.raises(ValueError):
            to_decimal("abc")
