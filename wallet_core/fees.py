"""
Fee Calculation Module

Maps an amount and a fee class to the fee charged on top of it. Each rule is
a percentage of the amount plus a fixed add-on, optionally capped. Peer
transfers are tiered by amount. Pure functions, no storage access.
"""

from decimal import Decimal
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .currency import Money
from .errors import ValidationFailed


class FeeClass(Enum):
    """Transaction classes the fee table knows about"""
    P2P = "p2p"
    WITHDRAWAL = "withdrawal"
    MERCHANT_QR = "merchant_qr"
    SCHEDULED = "scheduled"
    DEPOSIT = "deposit"
    AIRTIME = "airtime"
    SAVINGS_DEPOSIT = "savings_deposit"

    @classmethod
    def parse(cls, value: str) -> 'FeeClass':
        """Parse a wire value; unknown classes are rejected rather than charged zero"""
        normalized = (value or "").strip().lower().replace("-", "_")
        normalized = _ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValidationFailed(f"Unknown transaction type '{value}' (allowed: {allowed})")


_ALIASES = {
    "transfer": "p2p",
    "peer_transfer": "p2p",
    "airtime_purchase": "airtime",
}


@dataclass(frozen=True)
class FeeRule:
    """Percentage plus fixed add-on, optionally capped"""
    percent: Decimal
    fixed: Decimal
    cap: Optional[Decimal] = None

    def apply(self, amount: Money) -> Money:
        fee = amount * self.percent + Money(self.fixed, amount.currency)
        if self.cap is not None and fee.amount > self.cap:
            fee = Money(self.cap, amount.currency)
        return fee


# Peer transfer tiers: (upper bound inclusive, rule); None bound means unbounded
P2P_TIERS: Tuple[Tuple[Optional[Decimal], FeeRule], ...] = (
    (Decimal('500'), FeeRule(Decimal('0.01'), Decimal('2'), Decimal('10'))),
    (Decimal('5000'), FeeRule(Decimal('0.0075'), Decimal('5'), Decimal('25'))),
    (None, FeeRule(Decimal('0.005'), Decimal('10'), Decimal('100'))),
)

FEE_RULES: Dict[FeeClass, FeeRule] = {
    FeeClass.WITHDRAWAL: FeeRule(Decimal('0.015'), Decimal('20'), Decimal('250')),
    FeeClass.MERCHANT_QR: FeeRule(Decimal('0.0075'), Decimal('5'), Decimal('50')),
    FeeClass.SCHEDULED: FeeRule(Decimal('0.005'), Decimal('0')),
}

# Classes that are never charged
FREE_CLASSES = frozenset({FeeClass.DEPOSIT, FeeClass.AIRTIME, FeeClass.SAVINGS_DEPOSIT})


def rule_for(amount: Money, fee_class: FeeClass) -> Optional[FeeRule]:
    """Select the rule for an amount and class, None for free classes"""
    if fee_class == FeeClass.P2P:
        for upper_bound, rule in P2P_TIERS:
            if upper_bound is None or amount.amount <= upper_bound:
                return rule
    return FEE_RULES.get(fee_class)


def compute_fee(amount: Money, fee_class: FeeClass) -> Money:
    """
    Compute the fee charged on top of ``amount``.

    fee = amount * percent + fixed, clamped to the rule's cap, rounded to the
    currency precision half away from zero.

    Raises:
        ValidationFailed: If amount is not positive
    """
    if not amount.is_positive():
        raise ValidationFailed("Amount must be positive")

    if fee_class in FREE_CLASSES:
        return Money.zero(amount.currency)

    rule = rule_for(amount, fee_class)
    if rule is None:
        return Money.zero(amount.currency)
    return rule.apply(amount)
