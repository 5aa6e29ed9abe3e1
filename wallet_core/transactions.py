"""
Ledger Engine Module

Orchestrates every balance-changing operation: transfers, deposits and their
settlement, withdrawals, airtime purchases, and opening and withdrawing
savings positions. Each operation validates its input, then re-reads the
affected accounts, records the ledger entry and audit event, and writes the
new balances inside one unit of work. Either all of it is committed or none.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional

from .accounts import Account, AccountManager
from .audit import AuditTrail, AuditEventType
from .currency import Money
from .errors import (
    WalletError, ValidationFailed, NotFound, BelowMinimum, InsufficientFunds, InternalError
)
from .fees import FeeClass, compute_fee
from .interest import (
    DEFAULT_RATE_TABLE, EARLY_WITHDRAWAL_PENALTY_RATE, RateTable, SavingsProjection,
    early_withdrawal_penalty, project_savings
)
from .ledger import EntryClass, EntryStatus, LedgerEntry, LedgerEntryStore
from .logging_config import get_logger, log_action
from .savings import SavingsManager, SavingsPosition, SavingsStatus
from .storage import StorageInterface


DEPOSIT_METHODS = ("mpesa", "bank", "card")
WITHDRAWAL_DESTINATIONS = ("mpesa", "bank")
AIRTIME_PROVIDERS = ("safaricom", "airtel", "telkom")
MIN_PHONE_LENGTH = 10
DEFAULT_MINIMUM_SAVINGS = Money(Decimal('500'))
DEFAULT_HISTORY_LIMIT = 50


@dataclass
class TransferResult:
    entry: LedgerEntry
    new_balance: Money
    replayed: bool = False


@dataclass
class DepositResult:
    entry: LedgerEntry
    new_balance: Money
    replayed: bool = False


@dataclass
class WithdrawalResult:
    entry: LedgerEntry
    new_balance: Money
    net_amount: Money
    replayed: bool = False


@dataclass
class SavingsResult:
    entry: LedgerEntry
    position: SavingsPosition
    projection: SavingsProjection
    new_wallet_balance: Money
    new_savings_balance: Money
    replayed: bool = False


@dataclass
class AirtimeResult:
    entry: LedgerEntry
    new_balance: Money
    replayed: bool = False


@dataclass
class SavingsWithdrawalResult:
    position: SavingsPosition
    credited_amount: Money
    penalty: Money
    interest: Money
    new_wallet_balance: Money
    new_savings_balance: Money
    entries: List[LedgerEntry] = field(default_factory=list)


class LedgerEngine:
    """
    Balance-mutation logic for wallet and savings balances
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        entry_store: LedgerEntryStore,
        savings_manager: SavingsManager,
        audit_trail: AuditTrail,
        rate_table: RateTable = DEFAULT_RATE_TABLE,
        minimum_savings_deposit: Money = DEFAULT_MINIMUM_SAVINGS,
        penalty_rate: Decimal = EARLY_WITHDRAWAL_PENALTY_RATE,
        history_limit: int = DEFAULT_HISTORY_LIMIT
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.entry_store = entry_store
        self.savings_manager = savings_manager
        self.audit_trail = audit_trail
        self.rate_table = rate_table
        self.minimum_savings_deposit = minimum_savings_deposit
        self.penalty_rate = penalty_rate
        self.history_limit = history_limit
        self.logger = get_logger("wallet.engine")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: Money,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TransferResult:
        """
        Move money between two wallets; the sender also pays the peer transfer fee.

        Raises:
            ValidationFailed: Non-positive amount or self-transfer
            NotFound: Either account does not exist
            InsufficientFunds: Sender wallet below amount + fee
        """
        self._require_positive(amount)
        if from_account_id == to_account_id:
            raise ValidationFailed("Cannot transfer to the same account")
        fee = compute_fee(amount, FeeClass.P2P)

        with self._unit_of_work("transfer", from_account_id):
            replay = self._find_replay(idempotency_key, from_account_id, EntryClass.TRANSFER, amount,
                                       to_account_id=to_account_id)
            if replay:
                sender = self.account_manager.require_account(from_account_id)
                return TransferResult(replay, sender.wallet_balance, replayed=True)

            sender = self.account_manager.require_account(from_account_id)
            recipient = self.account_manager.get_account(to_account_id)
            if recipient is None:
                raise NotFound("Recipient not found")
            self._require_currency(sender, amount)
            self._require_currency(recipient, amount)

            total_debit = amount + fee
            self._require_funds(sender, total_debit)

            entry = self._record(
                EntryClass.TRANSFER, amount,
                description or f"Transfer to {recipient.label}",
                from_account_id=sender.id,
                to_account_id=recipient.id,
                fee=fee,
                idempotency_key=idempotency_key
            )

            sender.wallet_balance = sender.wallet_balance - total_debit
            recipient.wallet_balance = recipient.wallet_balance + amount
            self._save_accounts(sender, recipient)

        log_action(
            self.logger, "info", "Transfer completed",
            user_id=from_account_id, action="transfer", resource=f"entry:{entry.transaction_id}",
            extra={"to_account": to_account_id, "amount": amount.to_plain(), "fee": fee.to_plain()}
        )
        return TransferResult(entry, sender.wallet_balance)

    def deposit(
        self,
        account_id: str,
        amount: Money,
        method: str,
        idempotency_key: Optional[str] = None,
        pending: bool = False
    ) -> DepositResult:
        """
        Credit money arriving from outside. Deposits are free.

        With pending=True the entry is recorded without crediting the wallet;
        settle_deposit completes it once the external payment is confirmed.
        """
        self._require_positive(amount)
        method = self._require_choice(method, DEPOSIT_METHODS, "deposit method")

        with self._unit_of_work("deposit", account_id):
            replay = self._find_replay(idempotency_key, account_id, EntryClass.DEPOSIT, amount, method=method)
            if replay:
                account = self.account_manager.require_account(account_id)
                return DepositResult(replay, account.wallet_balance, replayed=True)

            account = self.account_manager.require_account(account_id)
            self._require_currency(account, amount)

            entry = self._record(
                EntryClass.DEPOSIT, amount, f"Deposit via {method.upper()}",
                to_account_id=account.id,
                status=EntryStatus.PENDING if pending else EntryStatus.SUCCESS,
                metadata={"method": method},
                idempotency_key=idempotency_key
            )

            if not pending:
                account.wallet_balance = account.wallet_balance + amount
                self._save_accounts(account)

        log_action(
            self.logger, "info", "Deposit pending" if pending else "Deposit completed",
            user_id=account_id, action="deposit", resource=f"entry:{entry.transaction_id}",
            extra={"amount": amount.to_plain(), "method": method}
        )
        return DepositResult(entry, account.wallet_balance)

    def settle_deposit(self, transaction_id: str, succeeded: bool) -> DepositResult:
        """
        Move a pending deposit to success (crediting the wallet) or failed.

        Raises:
            NotFound: Unknown transaction
            ValidationFailed: Entry is not a pending deposit
        """
        with self._unit_of_work("settle_deposit", None):
            entry = self.entry_store.require_by_transaction_id(transaction_id)
            if entry.entry_class != EntryClass.DEPOSIT:
                raise ValidationFailed(f"Transaction {transaction_id} is not a deposit")

            new_status = EntryStatus.SUCCESS if succeeded else EntryStatus.FAILED
            entry = self.entry_store.update_status(entry, new_status)

            account = self.account_manager.require_account(entry.to_account_id)
            if succeeded:
                account.wallet_balance = account.wallet_balance + entry.amount
                self._save_accounts(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.ENTRY_SETTLED,
                entity_type="ledger_entry",
                entity_id=entry.id,
                metadata={"transaction_id": entry.transaction_id, "status": new_status.value},
                user_id=account.id
            )

        log_action(
            self.logger, "info", f"Deposit settled as {new_status.value}",
            user_id=account.id, action="settle_deposit", resource=f"entry:{entry.transaction_id}"
        )
        return DepositResult(entry, account.wallet_balance)

    def withdraw(
        self,
        account_id: str,
        amount: Money,
        destination: str,
        account_details: str,
        idempotency_key: Optional[str] = None
    ) -> WithdrawalResult:
        """
        Send money out to M-Pesa or a bank account; the withdrawal fee is
        charged on top of the amount.
        """
        self._require_positive(amount)
        destination = self._require_choice(destination, WITHDRAWAL_DESTINATIONS, "withdrawal destination")
        if not account_details or not account_details.strip():
            raise ValidationFailed("Account details are required")
        fee = compute_fee(amount, FeeClass.WITHDRAWAL)

        with self._unit_of_work("withdraw", account_id):
            replay = self._find_replay(idempotency_key, account_id, EntryClass.WITHDRAWAL, amount,
                                       destination=destination, account_details=account_details)
            if replay:
                account = self.account_manager.require_account(account_id)
                return WithdrawalResult(replay, account.wallet_balance, replay.amount, replayed=True)

            account = self.account_manager.require_account(account_id)
            self._require_currency(account, amount)

            total_debit = amount + fee
            self._require_funds(account, total_debit)

            entry = self._record(
                EntryClass.WITHDRAWAL, amount, f"Withdrawal to {destination.upper()}",
                from_account_id=account.id,
                fee=fee,
                metadata={"destination": destination, "account_details": account_details},
                idempotency_key=idempotency_key
            )

            account.wallet_balance = account.wallet_balance - total_debit
            self._save_accounts(account)

        log_action(
            self.logger, "info", "Withdrawal completed",
            user_id=account_id, action="withdraw", resource=f"entry:{entry.transaction_id}",
            extra={"amount": amount.to_plain(), "fee": fee.to_plain(), "destination": destination}
        )
        return WithdrawalResult(entry, account.wallet_balance, amount)

    def create_savings(
        self,
        account_id: str,
        amount: Money,
        lock_period_months: int,
        idempotency_key: Optional[str] = None
    ) -> SavingsResult:
        """
        Move money from the wallet into a new fixed-term savings position.

        Raises:
            BelowMinimum: Amount below the minimum deposit, whatever the balance
            InvalidLockPeriod: Lock period not in the rate table
            InsufficientFunds: Wallet below amount
        """
        self._require_positive(amount)
        if amount.currency != self.minimum_savings_deposit.currency:
            raise ValidationFailed(
                f"Savings must be opened in {self.minimum_savings_deposit.currency.code}, got {amount.currency.code}"
            )
        if amount < self.minimum_savings_deposit:
            raise BelowMinimum(amount, self.minimum_savings_deposit)
        rate = self.rate_table.rate_for(lock_period_months)
        projection = project_savings(amount, lock_period_months, rate)

        with self._unit_of_work("create_savings", account_id):
            replay = self._find_replay(idempotency_key, account_id, EntryClass.SAVINGS_DEPOSIT, amount,
                                       lock_period_months=lock_period_months)
            if replay:
                account = self.account_manager.require_account(account_id)
                position = self.savings_manager.require_position(
                    replay.metadata["savings_position_id"], account_id
                )
                return SavingsResult(
                    replay, position, position.projection(),
                    account.wallet_balance, account.savings_balance, replayed=True
                )

            account = self.account_manager.require_account(account_id)
            self._require_currency(account, amount)
            self._require_funds(account, amount)

            position = self.savings_manager.create_position(
                account.id, amount, lock_period_months, rate
            )
            entry = self._record(
                EntryClass.SAVINGS_DEPOSIT, amount, f"Savings deposit - {lock_period_months} month lock",
                from_account_id=account.id,
                to_account_id=account.id,
                metadata={
                    "savings_position_id": position.id,
                    "lock_period_months": lock_period_months,
                    "interest_rate": str(rate)
                },
                idempotency_key=idempotency_key
            )

            account.wallet_balance = account.wallet_balance - amount
            account.savings_balance = account.savings_balance + amount
            self._save_accounts(account)

            self.audit_trail.log_event(
                event_type=AuditEventType.SAVINGS_OPENED,
                entity_type="savings_position",
                entity_id=position.id,
                metadata={
                    "principal": amount.to_plain(),
                    "lock_period_months": lock_period_months,
                    "annual_interest_rate": str(rate),
                    "maturity_date": position.maturity_date.isoformat()
                },
                user_id=account.id
            )

        log_action(
            self.logger, "info", "Savings position opened",
            user_id=account_id, action="create_savings", resource=f"savings:{position.id}",
            extra={"amount": amount.to_plain(), "lock_period_months": lock_period_months}
        )
        return SavingsResult(entry, position, projection, account.wallet_balance, account.savings_balance)

    def purchase_airtime(
        self,
        account_id: str,
        amount: Money,
        phone_number: str,
        provider: str,
        idempotency_key: Optional[str] = None
    ) -> AirtimeResult:
        """Buy airtime for a phone number from the wallet; no fee"""
        self._require_positive(amount)
        provider = self._require_choice(provider, AIRTIME_PROVIDERS, "airtime provider")
        phone_number = (phone_number or "").strip()
        if len(phone_number) < MIN_PHONE_LENGTH:
            raise ValidationFailed(f"Phone number must be at least {MIN_PHONE_LENGTH} characters")

        with self._unit_of_work("purchase_airtime", account_id):
            replay = self._find_replay(idempotency_key, account_id, EntryClass.AIRTIME_PURCHASE, amount,
                                       phone_number=phone_number, provider=provider)
            if replay:
                account = self.account_manager.require_account(account_id)
                return AirtimeResult(replay, account.wallet_balance, replayed=True)

            account = self.account_manager.require_account(account_id)
            self._require_currency(account, amount)
            self._require_funds(account, amount)

            entry = self._record(
                EntryClass.AIRTIME_PURCHASE, amount, f"Airtime for {phone_number}",
                from_account_id=account.id,
                metadata={"phone_number": phone_number, "provider": provider},
                idempotency_key=idempotency_key
            )

            account.wallet_balance = account.wallet_balance - amount
            self._save_accounts(account)

        log_action(
            self.logger, "info", "Airtime purchased",
            user_id=account_id, action="purchase_airtime", resource=f"entry:{entry.transaction_id}",
            extra={"amount": amount.to_plain(), "provider": provider}
        )
        return AirtimeResult(entry, account.wallet_balance)

    def withdraw_savings(
        self,
        account_id: str,
        position_id: str,
        now: Optional[datetime] = None
    ) -> SavingsWithdrawalResult:
        """
        Close a savings position and return its value to the wallet.

        Before maturity the principal is returned less the early withdrawal
        penalty. At or after maturity the interest is first credited to the
        savings balance, then the full maturity value moves to the wallet.

        Raises:
            NotFound: Position missing or owned by another account
            ValidationFailed: Position already withdrawn
        """
        with self._unit_of_work("withdraw_savings", account_id):
            now = now or datetime.now(timezone.utc)
            account = self.account_manager.require_account(account_id)
            position = self.savings_manager.require_position(position_id, account_id)
            if position.is_withdrawn:
                raise ValidationFailed(f"Savings account {position_id} has already been withdrawn")

            entries = []
            zero = Money.zero(position.currency)
            interest = zero
            penalty = zero

            if position.is_matured(now):
                interest = position.projection().interest_earned
                if interest.is_positive():
                    entries.append(self._record(
                        EntryClass.INTEREST_ACCRUAL, interest,
                        f"Interest on {position.lock_period_months} month savings",
                        to_account_id=account.id,
                        metadata={"savings_position_id": position.id}
                    ))
                    position.current_balance = position.current_balance + interest
                    account.savings_balance = account.savings_balance + interest
                    account.total_earned_interest = account.total_earned_interest + interest
                    self.audit_trail.log_event(
                        event_type=AuditEventType.INTEREST_CREDITED,
                        entity_type="savings_position",
                        entity_id=position.id,
                        metadata={"interest": interest.to_plain()},
                        user_id=account.id
                    )
                final_status = SavingsStatus.MATURED
                credited = position.current_balance
                description = "Matured savings withdrawal"
            else:
                penalty = early_withdrawal_penalty(position.principal, self.penalty_rate)
                final_status = SavingsStatus.WITHDRAWN_EARLY
                credited = position.current_balance - penalty
                description = "Early savings withdrawal"

            closing_balance = position.current_balance
            if account.savings_balance < closing_balance:
                raise InsufficientFunds(account.id, closing_balance, account.savings_balance, "savings")

            entries.append(self._record(
                EntryClass.SAVINGS_WITHDRAWAL, credited, description,
                from_account_id=account.id,
                to_account_id=account.id,
                fee=penalty,
                metadata={"savings_position_id": position.id, "status": final_status.value}
            ))

            account.savings_balance = account.savings_balance - closing_balance
            account.wallet_balance = account.wallet_balance + credited
            self._save_accounts(account)

            position.status = final_status
            position.current_balance = zero
            position.withdrawn_at = now
            position.updated_at = now
            self.savings_manager.save_position(position)

            self.audit_trail.log_event(
                event_type=AuditEventType.SAVINGS_WITHDRAWN,
                entity_type="savings_position",
                entity_id=position.id,
                metadata={
                    "status": final_status.value,
                    "credited": credited.to_plain(),
                    "penalty": penalty.to_plain()
                },
                user_id=account.id
            )

        log_action(
            self.logger, "info", "Savings withdrawn",
            user_id=account_id, action="withdraw_savings", resource=f"savings:{position_id}",
            extra={"credited": credited.to_plain(), "penalty": penalty.to_plain(), "status": final_status.value}
        )
        return SavingsWithdrawalResult(
            position=position,
            credited_amount=credited,
            penalty=penalty,
            interest=interest,
            new_wallet_balance=account.wallet_balance,
            new_savings_balance=account.savings_balance,
            entries=entries
        )

    def get_transactions(self, account_id: str, limit: Optional[int] = None) -> List[LedgerEntry]:
        """Entries involving the account, newest first, at most history_limit"""
        if limit is None:
            limit = self.history_limit
        if limit < 1:
            raise ValidationFailed("Limit must be at least 1")
        return self.entry_store.list_for_account(account_id, min(limit, self.history_limit))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, action: str, account_id: Optional[str]):
        """Run an operation atomically; unexpected failures become InternalError"""
        try:
            with self.storage.atomic():
                yield
        except WalletError as e:
            log_action(
                self.logger, "warning", f"{action} rejected: {e.message}",
                user_id=account_id, action=action, extra={"error": e.kind}
            )
            raise
        except Exception as e:
            self.logger.exception(f"{action} failed for account {account_id}")
            raise InternalError(f"{action} could not be completed") from e

    def _record(self, entry_class: EntryClass, amount: Money, description: str, **kwargs: Any) -> LedgerEntry:
        entry = self.entry_store.record(entry_class, amount, description, **kwargs)
        self.audit_trail.log_event(
            event_type=AuditEventType.ENTRY_RECORDED,
            entity_type="ledger_entry",
            entity_id=entry.id,
            metadata={
                "transaction_id": entry.transaction_id,
                "entry_class": entry_class.value,
                "amount": entry.amount.to_plain(),
                "fee": entry.fee.to_plain(),
                "status": entry.status.value
            },
            user_id=entry.from_account_id or entry.to_account_id
        )
        return entry

    def _find_replay(self, idempotency_key: Optional[str], account_id: str,
                     entry_class: EntryClass, amount: Money, **details: Any) -> Optional[LedgerEntry]:
        """
        Entry previously recorded under this key by this account, if any.

        The stored entry must match the new request: same class, amount and
        every given detail (an entry field such as to_account_id, or a
        metadata key such as destination). Anything else is a key conflict.
        """
        if not idempotency_key:
            return None

        for entry in self.entry_store.find_by_idempotency_key(idempotency_key):
            if _initiator(entry) != account_id:
                continue
            if (entry.entry_class != entry_class or entry.amount != amount
                    or any(_entry_detail(entry, name) != value for name, value in details.items())):
                raise ValidationFailed(
                    f"Idempotency key '{idempotency_key}' was already used for a different request"
                )
            return entry
        return None

    def _save_accounts(self, *accounts: Account) -> None:
        now = datetime.now(timezone.utc)
        for account in accounts:
            account.updated_at = now
            self.account_manager.save_account(account)

    @staticmethod
    def _require_positive(amount: Money) -> None:
        if not amount.is_positive():
            raise ValidationFailed("Amount must be positive")

    @staticmethod
    def _require_currency(account: Account, amount: Money) -> None:
        if account.currency != amount.currency:
            raise ValidationFailed(
                f"Amount currency {amount.currency.code} does not match account currency {account.currency.code}"
            )

    @staticmethod
    def _require_funds(account: Account, required: Money) -> None:
        if account.wallet_balance < required:
            raise InsufficientFunds(account.id, required, account.wallet_balance)

    @staticmethod
    def _require_choice(value: str, allowed: tuple, name: str) -> str:
        normalized = (value or "").strip().lower()
        if normalized not in allowed:
            raise ValidationFailed(f"Invalid {name} '{value}' (allowed: {', '.join(allowed)})")
        return normalized


def _initiator(entry: LedgerEntry) -> Optional[str]:
    """Account that requested the entry: the recipient for deposits, otherwise the payer"""
    if entry.entry_class in (EntryClass.DEPOSIT, EntryClass.INTEREST_ACCRUAL):
        return entry.to_account_id
    return entry.from_account_id


def _entry_detail(entry: LedgerEntry, name: str) -> Any:
    if name in entry.metadata:
        return entry.metadata[name]
    return getattr(entry, name, None)
