"""
Test suite for savings positions: opening, lazy maturity, early and matured withdrawal
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from wallet_core.accounts import AccountManager
from wallet_core.audit import AuditTrail
from wallet_core.auth import VerifiedIdentity
from wallet_core.currency import Currency, Money
from wallet_core.errors import BelowMinimum, InsufficientFunds, InvalidLockPeriod, NotFound, ValidationFailed
from wallet_core.ledger import EntryClass, LedgerEntryStore
from wallet_core.savings import SavingsManager, SavingsStatus
from wallet_core.storage import InMemoryStorage
from wallet_core.transactions import LedgerEngine


def money(value):
    return Money(Decimal(value))


class TestSavingsPosition:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.savings_manager = SavingsManager(self.storage)

    def test_create_and_reload(self):
        start = datetime(2024, 1, 31, 9, 0, tzinfo=timezone.utc)
        position = self.savings_manager.create_position("acc-1", money('1000'), 1, Decimal('6'), start_date=start)

        loaded = self.savings_manager.get_position(position.id)
        assert loaded.principal == money('1000')
        assert loaded.current_balance == money('1000')
        assert loaded.annual_interest_rate == Decimal('6')
        assert loaded.maturity_date == datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc)
        assert loaded.status == SavingsStatus.ACTIVE

    def test_lazy_maturity(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        position = self.savings_manager.create_position("acc-1", money('10000'), 3, Decimal('8'), start_date=start)

        assert position.effective_status(datetime(2024, 3, 31, tzinfo=timezone.utc)) == SavingsStatus.ACTIVE
        assert position.effective_status(datetime(2024, 4, 1, tzinfo=timezone.utc)) == SavingsStatus.MATURED
        # Stored status is untouched by reads
        assert self.savings_manager.get_position(position.id).status == SavingsStatus.ACTIVE

    def test_current_value_grows_by_whole_months(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        position = self.savings_manager.create_position("acc-1", money('10000'), 12, Decimal('12'), start_date=start)

        assert position.current_value(datetime(2024, 1, 20, tzinfo=timezone.utc)) == money('10000')
        assert position.current_value(datetime(2024, 2, 1, tzinfo=timezone.utc)) == money('10100')
        assert position.current_value(datetime(2030, 1, 1, tzinfo=timezone.utc)) == money('11268.25')

    def test_list_newest_first_and_ownership(self):
        older = self.savings_manager.create_position(
            "acc-1", money('500'), 1, Decimal('6'), start_date=datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        newer = self.savings_manager.create_position(
            "acc-1", money('700'), 3, Decimal('8'), start_date=datetime(2024, 6, 1, tzinfo=timezone.utc)
        )
        self.savings_manager.create_position("acc-2", money('900'), 6, Decimal('10'))

        assert [p.id for p in self.savings_manager.list_for_account("acc-1")] == [newer.id, older.id]
        with pytest.raises(NotFound):
            self.savings_manager.require_position(older.id, "acc-2")


class TestSavingsOperations:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit_trail)
        self.savings_manager = SavingsManager(self.storage)
        self.engine = LedgerEngine(
            self.storage, self.account_manager, LedgerEntryStore(self.storage),
            self.savings_manager, self.audit_trail
        )
        self.account = self.account_manager.resolve_account(VerifiedIdentity("saver", "saver@example.com"))
        self.engine.deposit(self.account.id, money('20000'), "bank")

    def reload(self):
        return self.account_manager.require_account(self.account.id)

    def test_create_savings(self):
        result = self.engine.create_savings(self.account.id, money('10000'), 12)

        assert result.entry.entry_class == EntryClass.SAVINGS_DEPOSIT
        assert result.entry.fee.is_zero()
        assert result.entry.from_account_id == result.entry.to_account_id == self.account.id
        assert result.entry.description == "Savings deposit - 12 month lock"
        assert result.position.annual_interest_rate == Decimal('12')
        assert result.projection.maturity_value == money('11268.25')
        assert result.projection.interest_earned == money('1268.25')
        assert result.new_wallet_balance == money('10000')
        assert result.new_savings_balance == money('10000')

        account = self.reload()
        assert account.total_assets == money('20000')

    def test_below_minimum_regardless_of_balance(self):
        with pytest.raises(BelowMinimum):
            self.engine.create_savings(self.account.id, money('499.99'), 3)
        assert self.reload().wallet_balance == money('20000')

    def test_foreign_currency_rejected_before_minimum(self):
        with pytest.raises(ValidationFailed, match="KES") as exc_info:
            self.engine.create_savings(self.account.id, Money(Decimal('100'), Currency.USD), 3)
        assert not isinstance(exc_info.value, BelowMinimum)
        assert self.reload().wallet_balance == money('20000')

    def test_minimum_is_inclusive(self):
        result = self.engine.create_savings(self.account.id, money('500'), 1)
        assert result.position.principal == money('500')

    def test_invalid_lock_period(self):
        with pytest.raises(InvalidLockPeriod):
            self.engine.create_savings(self.account.id, money('1000'), 2)

    def test_insufficient_wallet(self):
        with pytest.raises(InsufficientFunds):
            self.engine.create_savings(self.account.id, money('20000.01'), 6)

    def test_idempotent_savings(self):
        first = self.engine.create_savings(self.account.id, money('1000'), 3, idempotency_key="save-1")
        second = self.engine.create_savings(self.account.id, money('1000'), 3, idempotency_key="save-1")

        assert second.replayed
        assert second.position.id == first.position.id
        assert len(self.savings_manager.list_for_account(self.account.id)) == 1
        assert self.reload().savings_balance == money('1000')

    def test_early_withdrawal_penalty(self):
        opened = self.engine.create_savings(self.account.id, money('10000'), 6)

        result = self.engine.withdraw_savings(self.account.id, opened.position.id)

        assert result.penalty == money('500')
        assert result.credited_amount == money('9500')
        assert result.interest.is_zero()
        assert result.position.status == SavingsStatus.WITHDRAWN_EARLY
        assert len(result.entries) == 1
        assert result.entries[0].entry_class == EntryClass.SAVINGS_WITHDRAWAL
        assert result.entries[0].fee == money('500')

        account = self.reload()
        assert account.savings_balance.is_zero()
        assert account.wallet_balance == money('19500')

    def test_matured_withdrawal_credits_interest(self):
        opened = self.engine.create_savings(self.account.id, money('10000'), 1)
        after_maturity = opened.position.maturity_date + timedelta(days=1)

        result = self.engine.withdraw_savings(self.account.id, opened.position.id, now=after_maturity)

        assert result.interest == money('50')
        assert result.penalty.is_zero()
        assert result.credited_amount == money('10050')
        assert result.position.status == SavingsStatus.MATURED
        assert [e.entry_class for e in result.entries] == [
            EntryClass.INTEREST_ACCRUAL, EntryClass.SAVINGS_WITHDRAWAL
        ]

        account = self.reload()
        assert account.wallet_balance == money('20050')
        assert account.savings_balance.is_zero()
        assert account.total_earned_interest == money('50')

    def test_cannot_withdraw_twice(self):
        opened = self.engine.create_savings(self.account.id, money('1000'), 3)
        self.engine.withdraw_savings(self.account.id, opened.position.id)

        with pytest.raises(ValidationFailed, match="already been withdrawn"):
            self.engine.withdraw_savings(self.account.id, opened.position.id)

    def test_cannot_withdraw_someone_elses_position(self):
        opened = self.engine.create_savings(self.account.id, money('1000'), 3)
        other = self.account_manager.resolve_account(VerifiedIdentity("other", "other@example.com"))

        with pytest.raises(NotFound):
            self.engine.withdraw_savings(other.id, opened.position.id)

    def test_audit_chain_valid_after_operations(self):
        opened = self.engine.create_savings(self.account.id, money('1000'), 3)
        self.engine.withdraw_savings(self.account.id, opened.position.id)

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        events = self.audit_trail.get_events_for_entity("savings_position", opened.position.id)
        assert len(events) == 2
