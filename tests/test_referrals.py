"""
Test suite for referral links and earnings
"""

import pytest
from decimal import Decimal

from wallet_core.accounts import AccountManager
from wallet_core.audit import AuditTrail
from wallet_core.auth import VerifiedIdentity
from wallet_core.currency import Money
from wallet_core.errors import NotFound, ValidationFailed
from wallet_core.referrals import ReferralManager, ReferralStatus
from wallet_core.storage import InMemoryStorage


class TestReferralManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit_trail)
        self.referral_manager = ReferralManager(self.storage, self.account_manager, self.audit_trail)

        self.referrer = self.account_manager.resolve_account(VerifiedIdentity("ref", "ref@example.com"))
        self.friend = self.account_manager.resolve_account(VerifiedIdentity("friend", "friend@example.com"))

    def test_create_referral_increments_count(self):
        link = self.referral_manager.create_referral(self.referrer.id, self.friend.id)

        assert link.status == ReferralStatus.PENDING
        assert link.earnings_generated.is_zero()
        assert self.account_manager.require_account(self.referrer.id).referral_count == 1
        assert [r.id for r in self.referral_manager.get_referrals(self.referrer.id)] == [link.id]

    def test_account_referred_only_once(self):
        self.referral_manager.create_referral(self.referrer.id, self.friend.id)
        with pytest.raises(ValidationFailed, match="already referred"):
            self.referral_manager.create_referral(self.referrer.id, self.friend.id)
        assert self.account_manager.require_account(self.referrer.id).referral_count == 1

    def test_self_referral_rejected(self):
        with pytest.raises(ValidationFailed):
            self.referral_manager.create_referral(self.referrer.id, self.referrer.id)

    def test_unknown_accounts(self):
        with pytest.raises(NotFound):
            self.referral_manager.create_referral(self.referrer.id, "missing")

    def test_credit_earnings(self):
        link = self.referral_manager.create_referral(self.referrer.id, self.friend.id)

        self.referral_manager.credit_earnings(link.id, Money(Decimal('25')))
        credited = self.referral_manager.credit_earnings(link.id, Money(Decimal('10.50')))

        assert credited.status == ReferralStatus.COMPLETED
        assert credited.earnings_generated == Money(Decimal('35.50'))
        referrer = self.account_manager.require_account(self.referrer.id)
        assert referrer.referral_earnings == Money(Decimal('35.50'))
        # Earnings are counters, not wallet money
        assert referrer.wallet_balance.is_zero()

    def test_credit_unknown_referral(self):
        with pytest.raises(NotFound):
            self.referral_manager.credit_earnings("missing", Money(Decimal('1')))
