"""Domain errors raised by the wallet core and mapped to HTTP responses by the API"""

from typing import Optional

from .currency import Money


class WalletError(Exception):
    """Base exception for the wallet core"""

    kind = "Internal"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class Unauthenticated(WalletError):
    """Missing, expired or otherwise invalid credential"""

    kind = "Unauthenticated"
    status_code = 401


class NotFound(WalletError):
    """Referenced account or entity does not exist"""

    kind = "NotFound"
    status_code = 404


class ValidationFailed(WalletError):
    """Malformed or out-of-range input"""

    kind = "ValidationFailed"
    status_code = 400


class BelowMinimum(ValidationFailed):
    """Savings deposit below the minimum amount"""

    kind = "BelowMinimum"

    def __init__(self, amount: Money, minimum: Money):
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Minimum savings deposit is {minimum.to_string()}")


class InvalidLockPeriod(ValidationFailed):
    """Lock period not offered by the rate table"""

    kind = "InvalidLockPeriod"

    def __init__(self, months, allowed=()):
        self.months = months
        self.allowed = tuple(allowed)
        allowed_text = ", ".join(str(m) for m in self.allowed)
        super().__init__(
            f"Unsupported lock period: {months} months"
            + (f" (allowed: {allowed_text})" if allowed_text else "")
        )


class InsufficientFunds(WalletError):
    """Balance precondition failed"""

    kind = "InsufficientFunds"
    status_code = 400

    def __init__(self, account_id: str, requested: Money, available: Money,
                 balance_name: Optional[str] = "wallet"):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {balance_name} balance: available {available.to_string()}, "
            f"required {requested.to_string()}"
        )


class InternalError(WalletError):
    """Persistence or unexpected failure; the unit of work was rolled back"""

    kind = "Internal"
    status_code = 500
