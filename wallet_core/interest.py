"""
Savings Interest Module

Fixed-term savings math: the lock-period rate table, monthly compounding
projections, and the early withdrawal penalty. Rates are annual percentages
(12 means 12% a year). All calculations are Decimal and rounded only at the
end, half away from zero.
"""

import calendar
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Tuple

from .currency import Money, AmountLike, to_decimal
from .errors import InvalidLockPeriod, ValidationFailed


DEFAULT_RATES = {
    1: Decimal('6'),
    3: Decimal('8'),
    6: Decimal('10'),
    12: Decimal('12'),
}

EARLY_WITHDRAWAL_PENALTY_RATE = Decimal('0.05')


@dataclass(frozen=True)
class RateTable:
    """Annual interest rate (percent) by lock period in months"""
    rates: Mapping[int, Decimal] = field(default_factory=lambda: dict(DEFAULT_RATES))

    def __post_init__(self):
        frozen = MappingProxyType({int(m): to_decimal(r) for m, r in self.rates.items()})
        object.__setattr__(self, 'rates', frozen)

    @property
    def lock_periods(self) -> Tuple[int, ...]:
        return tuple(sorted(self.rates))

    def rate_for(self, months: int) -> Decimal:
        """
        Rate for a lock period.

        Raises:
            InvalidLockPeriod: If the lock period is not offered
        """
        if isinstance(months, bool) or months not in self.rates:
            raise InvalidLockPeriod(months, self.lock_periods)
        return self.rates[months]


DEFAULT_RATE_TABLE = RateTable()


@dataclass(frozen=True)
class SavingsProjection:
    """Value of a deposit at maturity"""
    maturity_value: Money
    interest_earned: Money


def _compound(principal: Decimal, annual_rate_percent: Decimal, months: int) -> Decimal:
    monthly_rate = annual_rate_percent / Decimal('12') / Decimal('100')
    return principal * (Decimal('1') + monthly_rate) ** months


def project_savings(principal: Money, months: int,
                    annual_rate_percent: AmountLike) -> SavingsProjection:
    """
    Project a fixed-term deposit with monthly compounding.

    maturity_value = principal * (1 + rate/12/100) ** months
    interest_earned = maturity_value - principal

    Args:
        principal: Amount deposited
        months: Number of monthly compounding periods
        annual_rate_percent: Annual rate in percent

    Returns:
        SavingsProjection with both values rounded to the currency precision
    """
    if not principal.is_positive():
        raise ValidationFailed("Principal must be positive")
    if isinstance(months, bool) or not isinstance(months, int) or months < 0:
        raise ValidationFailed(f"Invalid number of months: {months}")

    total = _compound(principal.amount, to_decimal(annual_rate_percent), months)
    return SavingsProjection(
        maturity_value=Money(total, principal.currency),
        interest_earned=Money(total - principal.amount, principal.currency)
    )


def accrued_value(principal: Money, annual_rate_percent: AmountLike,
                  months_elapsed: int, lock_months: int) -> Money:
    """Value after the whole months elapsed so far, never beyond the lock period"""
    periods = max(0, min(months_elapsed, lock_months))
    return Money(
        _compound(principal.amount, to_decimal(annual_rate_percent), periods),
        principal.currency
    )


def early_withdrawal_penalty(principal: Money,
                             rate: Decimal = EARLY_WITHDRAWAL_PENALTY_RATE) -> Money:
    """Penalty for breaking a lock before maturity: a share of the principal"""
    return principal * rate


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of shorter months"""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def whole_months_between(start: datetime, end: datetime) -> int:
    """Number of complete calendar months from start to end"""
    if end <= start:
        return 0
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if add_months(start, months) > end:
        months -= 1
    return max(months, 0)
