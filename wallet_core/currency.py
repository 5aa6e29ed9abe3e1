"""
Currency Module

ISO 4217 currency codes with minor-unit precision and an immutable Money
value type. Amounts are Decimal and rounded ROUND_HALF_UP to the currency
precision. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    KES = ("KES", 2)  # Kenyan Shilling
    UGX = ("UGX", 0)  # Ugandan Shilling, no minor unit in practice
    TZS = ("TZS", 2)  # Tanzanian Shilling
    USD = ("USD", 2)  # US Dollar

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def quantum(self) -> Decimal:
        return Decimal('0.1') ** self.precision


DEFAULT_CURRENCY = Currency.KES

# Largest accepted amount has this many integer digits
MAX_AMOUNT_DIGITS = 15

AmountLike = Union[Decimal, int, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert an int, str or Decimal to Decimal without going through float"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def round_amount(value: Decimal, currency: Currency = DEFAULT_CURRENCY) -> Decimal:
    """Round to currency precision using standard currency rounding (half away from zero)"""
    return value.quantize(currency.quantum, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    All monetary values MUST use this class or raw Decimal.
    """
    amount: Decimal
    currency: Currency = DEFAULT_CURRENCY

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

        # Round to currency precision
        object.__setattr__(self, 'amount', round_amount(self.amount, self.currency))

    @classmethod
    def zero(cls, currency: Currency = DEFAULT_CURRENCY) -> 'Money':
        return cls(Decimal('0'), currency)

    @classmethod
    def exact(cls, value: AmountLike, currency: Currency = DEFAULT_CURRENCY) -> 'Money':
        """
        Build Money from external input without rounding.

        Raises ValueError when the value is not finite, has more integer digits
        than MAX_AMOUNT_DIGITS, or carries more decimal places than the currency.
        """
        amount = to_decimal(value)
        if not amount.is_finite() or (not amount.is_zero() and amount.adjusted() >= MAX_AMOUNT_DIGITS):
            raise ValueError(f"Amount {value} is out of range")
        if amount != round_amount(amount, currency):
            raise ValueError(
                f"Amount {value} has more than {currency.precision} decimal places for {currency.code}"
            )
        return cls(amount, currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: AmountLike) -> 'Money':
        return Money(self.amount * to_decimal(multiplier), self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_plain(self) -> str:
        """Fixed-point string used on the wire and in storage, e.g. '1250.50'"""
        return f"{self.amount:.{self.currency.precision}f}"

    def to_string(self) -> str:
        """Format for display"""
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"
