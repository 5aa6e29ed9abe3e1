"""
Test suite for account resolution and persistence
"""

import json
import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from wallet_core.accounts import AccountManager
from wallet_core.audit import AuditTrail
from wallet_core.auth import VerifiedIdentity
from wallet_core.currency import Money, Currency
from wallet_core.errors import NotFound
from wallet_core.storage import InMemoryStorage, SQLiteStorage


class TestAccountManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit_trail)
        self.identity = VerifiedIdentity(
            subject="auth0|alice", email="alice@example.com", name="Alice", phone="0712345678"
        )

    def test_first_resolution_creates_account(self):
        account = self.account_manager.resolve_account(self.identity)

        assert account.external_id == "auth0|alice"
        assert account.email == "alice@example.com"
        assert account.display_name == "Alice"
        assert account.currency == Currency.KES
        assert account.wallet_balance.is_zero()
        assert account.savings_balance.is_zero()
        assert account.referral_earnings.is_zero()
        assert not account.premium_status
        assert not account.kyc_verified

    def test_resolution_is_idempotent(self):
        first = self.account_manager.resolve_account(self.identity)
        second = self.account_manager.resolve_account(self.identity)

        assert first.id == second.id
        assert len(self.account_manager.list_accounts()) == 1
        events = self.audit_trail.get_events_for_entity("account", first.id)
        assert len(events) == 1

    def test_concurrent_resolution_creates_one_account(self):
        with ThreadPoolExecutor(max_workers=8) as pool:
            accounts = list(pool.map(lambda _: self.account_manager.resolve_account(self.identity), range(16)))

        assert len({a.id for a in accounts}) == 1
        assert len(self.account_manager.list_accounts()) == 1

    def test_concurrent_resolution_sqlite(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "wallet.db")
        manager = AccountManager(storage, AuditTrail(storage))

        with ThreadPoolExecutor(max_workers=8) as pool:
            accounts = list(pool.map(lambda _: manager.resolve_account(self.identity), range(16)))

        assert len({a.id for a in accounts}) == 1
        assert storage.count("accounts") == 1
        storage.close()

    def test_total_assets_is_derived(self):
        account = self.account_manager.resolve_account(self.identity)
        account.wallet_balance = Money(Decimal('1200.00'))
        account.savings_balance = Money(Decimal('800.50'))
        self.account_manager.save_account(account)

        reloaded = self.account_manager.require_account(account.id)
        assert reloaded.total_assets == Money(Decimal('2000.50'))
        assert "total_assets" not in self.storage.load("accounts", account.id)

    def test_require_missing_account(self):
        with pytest.raises(NotFound):
            self.account_manager.require_account("missing")

    def test_payment_request_payload(self):
        account = self.account_manager.resolve_account(self.identity)
        payload = json.loads(self.account_manager.payment_request_payload(account))

        assert payload == {
            "userId": account.id,
            "email": "alice@example.com",
            "displayName": "Alice",
            "type": "payment_request"
        }

    def test_label_falls_back_to_email(self):
        account = self.account_manager.resolve_account(VerifiedIdentity(subject="bob", email="bob@example.com"))
        assert account.label == "bob@example.com"
