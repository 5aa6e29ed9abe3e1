"""
Test suite for fee calculation

Covers every fee class, tier boundaries, caps and unknown class handling.
"""

import pytest
from decimal import Decimal

from wallet_core.currency import Money
from wallet_core.errors import ValidationFailed
from wallet_core.fees import FeeClass, compute_fee


def fee(amount, fee_class):
    return compute_fee(Money(Decimal(amount)), fee_class).amount


class TestPeerTransferFees:

    def test_small_transfer(self):
        # 1% of 100 + 2
        assert fee('100', FeeClass.P2P) == Decimal('3.00')

    def test_first_tier_cap_boundary(self):
        # 500 * 1% + 2 = 7, under the cap of 10
        assert fee('500', FeeClass.P2P) == Decimal('7.00')

    def test_second_tier(self):
        # 0.75% of 1000 + 5
        assert fee('1000', FeeClass.P2P) == Decimal('12.50')
        # 0.75% of 5000 + 5 = 42.50, capped at 25
        assert fee('5000', FeeClass.P2P) == Decimal('25.00')

    def test_third_tier(self):
        # 0.5% of 10000 + 10
        assert fee('10000', FeeClass.P2P) == Decimal('60.00')

    def test_third_tier_cap(self):
        # 0.5% of 20000 + 10 = 110, capped at 100
        assert fee('20000', FeeClass.P2P) == Decimal('100.00')
        assert fee('1000000', FeeClass.P2P) == Decimal('100.00')

    def test_rounding_half_up(self):
        # 0.75% of 501 + 5 = 8.7575
        assert fee('501', FeeClass.P2P) == Decimal('8.76')

    def test_monotone_within_tier(self):
        amounts = ['501', '800', '1500', '2500']
        fees = [fee(a, FeeClass.P2P) for a in amounts]
        assert fees == sorted(fees)


class TestOtherFeeClasses:

    def test_withdrawal(self):
        assert fee('1000', FeeClass.WITHDRAWAL) == Decimal('35.00')
        # 1.5% of 100000 + 20 capped at 250
        assert fee('100000', FeeClass.WITHDRAWAL) == Decimal('250.00')

    def test_merchant_qr(self):
        assert fee('1000', FeeClass.MERCHANT_QR) == Decimal('12.50')
        assert fee('100000', FeeClass.MERCHANT_QR) == Decimal('50.00')

    def test_scheduled_has_no_cap(self):
        assert fee('1000000', FeeClass.SCHEDULED) == Decimal('5000.00')

    @pytest.mark.parametrize("fee_class", [FeeClass.DEPOSIT, FeeClass.AIRTIME, FeeClass.SAVINGS_DEPOSIT])
    def test_free_classes(self, fee_class):
        assert fee('12345', fee_class) == Decimal('0.00')

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValidationFailed, match="positive"):
            compute_fee(Money(Decimal('0')), FeeClass.P2P)


class TestFeeClassParsing:

    def test_known_values_and_aliases(self):
        assert FeeClass.parse("p2p") == FeeClass.P2P
        assert FeeClass.parse("transfer") == FeeClass.P2P
        assert FeeClass.parse("Merchant-QR") == FeeClass.MERCHANT_QR
        assert FeeClass.parse("airtime_purchase") == FeeClass.AIRTIME

    def test_unknown_class_rejected(self):
        with pytest.raises(ValidationFailed, match="Unknown transaction type"):
            FeeClass.parse("lottery")
