"""
Ledger Entry Module

Immutable records of money movements. Entries are append-only; the one
permitted change is settling a pending entry to success or failed.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .currency import Money, Currency
from .errors import NotFound, ValidationFailed
from .storage import StorageInterface, StorageRecord, parse_datetime


class EntryClass(Enum):
    """Kinds of money movement"""
    TRANSFER = "transfer"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    AIRTIME_PURCHASE = "airtime_purchase"
    SAVINGS_DEPOSIT = "savings_deposit"
    SAVINGS_WITHDRAWAL = "savings_withdrawal"
    INTEREST_ACCRUAL = "interest_accrual"

    @property
    def reference_prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES = {
    EntryClass.TRANSFER: "TRF",
    EntryClass.DEPOSIT: "DEP",
    EntryClass.WITHDRAWAL: "WDR",
    EntryClass.AIRTIME_PURCHASE: "AIR",
    EntryClass.SAVINGS_DEPOSIT: "SAV",
    EntryClass.SAVINGS_WITHDRAWAL: "SWD",
    EntryClass.INTEREST_ACCRUAL: "INT",
}


class EntryStatus(Enum):
    """Settlement status of an entry"""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    def can_transition_to(self, new_status: 'EntryStatus') -> bool:
        return self == EntryStatus.PENDING and new_status in (EntryStatus.SUCCESS, EntryStatus.FAILED)


@dataclass
class LedgerEntry(StorageRecord):
    """
    One money movement between wallet accounts or to/from the outside world
    """
    transaction_id: str              # Externally referenceable identifier
    entry_class: EntryClass
    amount: Money
    fee: Money
    status: EntryStatus
    description: str
    from_account_id: Optional[str] = None  # None for money arriving from outside
    to_account_id: Optional[str] = None    # None for money leaving the system
    metadata: Dict[str, Any] = field(default_factory=dict)
    idempotency_key: Optional[str] = None
    settled_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.from_account_id and not self.to_account_id:
            raise ValueError("Entry must have at least one account (from_account_id or to_account_id)")

        if not self.amount.is_positive():
            raise ValueError("Entry amount must be positive")

        if self.fee.is_negative():
            raise ValueError("Entry fee cannot be negative")

        if self.fee.currency != self.amount.currency:
            raise ValueError("Entry fee currency must match amount currency")

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data['currency'] = self.currency.code
        return data

    @property
    def total_debit(self) -> Money:
        """Amount plus fee, what leaves the source account"""
        return self.amount + self.fee

    def involves(self, account_id: str) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)


def new_transaction_id(entry_class: EntryClass) -> str:
    """Collision-resistant external reference, e.g. TRF-9F1C..."""
    return f"{entry_class.reference_prefix}-{uuid.uuid4().hex.upper()}"


class LedgerEntryStore:
    """
    Append-only persistence for ledger entries
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "ledger_entries"

    def record(
        self,
        entry_class: EntryClass,
        amount: Money,
        description: str,
        from_account_id: Optional[str] = None,
        to_account_id: Optional[str] = None,
        fee: Optional[Money] = None,
        status: EntryStatus = EntryStatus.SUCCESS,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None
    ) -> LedgerEntry:
        """Create and persist a new entry"""
        now = datetime.now(timezone.utc)
        entry = LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            transaction_id=new_transaction_id(entry_class),
            entry_class=entry_class,
            amount=amount,
            fee=fee if fee is not None else Money.zero(amount.currency),
            status=status,
            description=description,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            metadata=metadata or {},
            idempotency_key=idempotency_key,
            settled_at=now if status != EntryStatus.PENDING else None
        )

        inserted = self.storage.save_if_absent(self.table_name, entry.id, entry.to_dict())
        if not inserted:
            raise ValueError(f"Duplicate ledger entry id {entry.id}")
        return entry

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        data = self.storage.load(self.table_name, entry_id)
        return self._entry_from_dict(data) if data else None

    def get_by_transaction_id(self, transaction_id: str) -> Optional[LedgerEntry]:
        found = self.storage.find(self.table_name, {"transaction_id": transaction_id})
        return self._entry_from_dict(found[0]) if found else None

    def require_by_transaction_id(self, transaction_id: str) -> LedgerEntry:
        entry = self.get_by_transaction_id(transaction_id)
        if entry is None:
            raise NotFound(f"Transaction {transaction_id} not found")
        return entry

    def find_by_idempotency_key(self, idempotency_key: str) -> List[LedgerEntry]:
        found = self.storage.find(self.table_name, {"idempotency_key": idempotency_key})
        return [self._entry_from_dict(data) for data in found]

    def list_for_account(self, account_id: str, limit: Optional[int] = None) -> List[LedgerEntry]:
        """
        Entries where the account is source or destination, newest first

        Args:
            account_id: Account ID
            limit: Maximum number of entries to return

        Returns:
            List of LedgerEntry objects
        """
        entries = [
            self._entry_from_dict(data)
            for data in self.storage.load_all(self.table_name)
            if account_id in (data.get('from_account_id'), data.get('to_account_id'))
        ]
        # Stable ascending sort keeps insertion order for equal timestamps
        entries.sort(key=lambda e: e.created_at)
        entries.reverse()

        if limit is not None:
            entries = entries[:limit]
        return entries

    def update_status(self, entry: LedgerEntry, new_status: EntryStatus) -> LedgerEntry:
        """
        Settle a pending entry.

        Raises:
            ValidationFailed: For any transition other than pending -> success/failed
        """
        current = self.get(entry.id)
        if current is None:
            raise NotFound(f"Transaction {entry.transaction_id} not found")

        if not current.status.can_transition_to(new_status):
            raise ValidationFailed(
                f"Transaction {current.transaction_id} cannot move from "
                f"{current.status.value} to {new_status.value}"
            )

        now = datetime.now(timezone.utc)
        current.status = new_status
        current.settled_at = now
        current.updated_at = now
        self.storage.save(self.table_name, current.id, current.to_dict())
        return current

    def _entry_from_dict(self, data: Dict) -> LedgerEntry:
        """Convert dictionary to LedgerEntry"""
        currency = Currency[data['currency']]
        return LedgerEntry(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            transaction_id=data['transaction_id'],
            entry_class=EntryClass(data['entry_class']),
            amount=Money(Decimal(data['amount']), currency),
            fee=Money(Decimal(data['fee']), currency),
            status=EntryStatus(data['status']),
            description=data.get('description') or "",
            from_account_id=data.get('from_account_id'),
            to_account_id=data.get('to_account_id'),
            metadata=data.get('metadata') or {},
            idempotency_key=data.get('idempotency_key'),
            settled_at=parse_datetime(data.get('settled_at'))
        )
