"""
Savings Position Module

Fixed-term, fixed-rate deposits locked for 1, 3, 6 or 12 months. Maturity is
evaluated lazily: an active position past its maturity date reports itself as
matured on read, and interest is credited when it is withdrawn.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .currency import Money, Currency
from .errors import NotFound
from .interest import accrued_value, add_months, project_savings, whole_months_between, SavingsProjection
from .storage import StorageInterface, StorageRecord, parse_datetime


class SavingsStatus(Enum):
    """Savings position lifecycle"""
    ACTIVE = "active"
    MATURED = "matured"
    WITHDRAWN_EARLY = "withdrawn_early"


@dataclass
class SavingsPosition(StorageRecord):
    """
    One locked savings deposit
    """
    account_id: str
    principal: Money
    current_balance: Money
    lock_period_months: int
    annual_interest_rate: Decimal    # Percent, frozen at creation
    start_date: datetime
    maturity_date: datetime
    status: SavingsStatus = SavingsStatus.ACTIVE
    withdrawn_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.principal.is_positive():
            raise ValueError("Savings principal must be positive")
        if self.current_balance.currency != self.principal.currency:
            raise ValueError("Savings balance currency must match principal currency")
        if self.status == SavingsStatus.ACTIVE and self.current_balance < self.principal:
            raise ValueError("Active savings balance cannot fall below principal")

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data['currency'] = self.currency.code
        return data

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn_at is not None

    def is_matured(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.maturity_date

    def effective_status(self, now: Optional[datetime] = None) -> SavingsStatus:
        """Stored status, with active positions past maturity reported as matured"""
        if self.status == SavingsStatus.ACTIVE and self.is_matured(now):
            return SavingsStatus.MATURED
        return self.status

    def projection(self) -> SavingsProjection:
        """Value at maturity"""
        return project_savings(self.principal, self.lock_period_months, self.annual_interest_rate)

    def current_value(self, now: Optional[datetime] = None) -> Money:
        """Principal compounded over the whole months elapsed, capped at maturity"""
        if self.is_withdrawn:
            return Money.zero(self.currency)
        now = now or datetime.now(timezone.utc)
        return accrued_value(
            self.principal,
            self.annual_interest_rate,
            whole_months_between(self.start_date, now),
            self.lock_period_months
        )


class SavingsManager:
    """
    Persistence for savings positions
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "savings_positions"

    def create_position(
        self,
        account_id: str,
        principal: Money,
        lock_period_months: int,
        annual_interest_rate: Decimal,
        start_date: Optional[datetime] = None
    ) -> SavingsPosition:
        """Create and persist an active position starting now"""
        start = start_date or datetime.now(timezone.utc)
        position = SavingsPosition(
            id=str(uuid.uuid4()),
            created_at=start,
            updated_at=start,
            account_id=account_id,
            principal=principal,
            current_balance=principal,
            lock_period_months=lock_period_months,
            annual_interest_rate=annual_interest_rate,
            start_date=start,
            maturity_date=add_months(start, lock_period_months)
        )
        self.save_position(position)
        return position

    def get_position(self, position_id: str) -> Optional[SavingsPosition]:
        data = self.storage.load(self.table_name, position_id)
        return self._position_from_dict(data) if data else None

    def require_position(self, position_id: str, account_id: str) -> SavingsPosition:
        """
        Get a position owned by the account.

        Raises:
            NotFound: If the position does not exist or belongs to another account
        """
        position = self.get_position(position_id)
        if position is None or position.account_id != account_id:
            raise NotFound(f"Savings account {position_id} not found")
        return position

    def list_for_account(self, account_id: str) -> List[SavingsPosition]:
        """Positions for an account, newest first"""
        positions = [
            self._position_from_dict(data)
            for data in self.storage.find(self.table_name, {"account_id": account_id})
        ]
        positions.sort(key=lambda p: p.created_at)
        positions.reverse()
        return positions

    def save_position(self, position: SavingsPosition) -> None:
        self.storage.save(self.table_name, position.id, position.to_dict())

    def _position_from_dict(self, data: Dict) -> SavingsPosition:
        """Convert dictionary to SavingsPosition"""
        currency = Currency[data['currency']]
        return SavingsPosition(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            principal=Money(Decimal(data['principal']), currency),
            current_balance=Money(Decimal(data['current_balance']), currency),
            lock_period_months=data['lock_period_months'],
            annual_interest_rate=Decimal(data['annual_interest_rate']),
            start_date=datetime.fromisoformat(data['start_date']),
            maturity_date=datetime.fromisoformat(data['maturity_date']),
            status=SavingsStatus(data['status']),
            withdrawn_at=parse_datetime(data.get('withdrawn_at'))
        )
