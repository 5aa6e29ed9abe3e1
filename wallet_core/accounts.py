"""
Account Management Module

Manages wallet accounts: one per verified external identity, holding the
wallet and savings balances, earned interest and referral counters.
Balances are changed only by the ledger engine; this module owns creation,
lookup and (de)serialization.
"""

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from .audit import AuditTrail, AuditEventType
from .auth import VerifiedIdentity
from .currency import Money, Currency, DEFAULT_CURRENCY
from .errors import NotFound
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


@dataclass
class Account(StorageRecord):
    """
    Wallet account for one user
    """
    external_id: str                   # Stable subject from the identity provider
    email: str
    display_name: Optional[str]
    phone: Optional[str]
    currency: Currency
    wallet_balance: Money
    savings_balance: Money
    total_earned_interest: Money
    referral_count: int = 0
    referral_earnings: Optional[Money] = None
    premium_status: bool = False
    kyc_verified: bool = False

    def __post_init__(self):
        if self.referral_earnings is None:
            self.referral_earnings = Money.zero(self.currency)

        for name in ('wallet_balance', 'savings_balance', 'total_earned_interest', 'referral_earnings'):
            value = getattr(self, name)
            if value.currency != self.currency:
                raise ValueError(f"{name} currency must match account currency")
            if value.is_negative():
                raise ValueError(f"{name} cannot be negative")

    @property
    def total_assets(self) -> Money:
        """Wallet plus savings; derived, never stored"""
        return self.wallet_balance + self.savings_balance

    @property
    def label(self) -> str:
        return self.display_name or self.email or self.id


class AccountManager:
    """
    Resolves identities to accounts and persists account records
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        currency: Currency = DEFAULT_CURRENCY
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.currency = currency
        self.accounts_table = "accounts"
        self.identities_table = "account_identities"
        self.logger = get_logger("wallet.accounts")

    def resolve_account(self, identity: VerifiedIdentity) -> Account:
        """
        Get the account bound to an external identity, creating it on first sight.

        The identity index row is claimed with an insert-if-absent, so
        concurrent first calls for the same subject create exactly one account.
        """
        existing = self.get_account_by_external_id(identity.subject)
        if existing:
            return existing

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                external_id=identity.subject,
                email=identity.email or "",
                display_name=identity.name,
                phone=identity.phone,
                currency=self.currency,
                wallet_balance=Money.zero(self.currency),
                savings_balance=Money.zero(self.currency),
                total_earned_interest=Money.zero(self.currency)
            )

            claimed = self.storage.save_if_absent(
                self.identities_table,
                identity.subject,
                {"id": identity.subject, "account_id": account.id}
            )
            if not claimed:
                # Another request created it first
                winner = self.get_account_by_external_id(identity.subject)
                if winner is None:
                    raise NotFound(f"Account for identity {identity.subject} vanished")
                return winner

            self.save_account(account)
            self.audit_trail.log_event(
                event_type=AuditEventType.ACCOUNT_CREATED,
                entity_type="account",
                entity_id=account.id,
                metadata={"external_id": identity.subject, "email": account.email},
                user_id=account.id
            )

        log_action(
            self.logger, "info", "Account created",
            user_id=account.id, action="create_account", resource=f"account:{account.id}",
            extra={"external_id": identity.subject}
        )
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.accounts_table, account_id)
        if account_dict:
            return self._account_from_dict(account_dict)
        return None

    def require_account(self, account_id: str) -> Account:
        """Get account by ID or raise NotFound"""
        account = self.get_account(account_id)
        if account is None:
            raise NotFound(f"Account {account_id} not found")
        return account

    def get_account_by_external_id(self, external_id: str) -> Optional[Account]:
        """Get account by identity provider subject"""
        index = self.storage.load(self.identities_table, external_id)
        if index:
            return self.get_account(index["account_id"])
        return None

    def list_accounts(self) -> List[Account]:
        return [self._account_from_dict(data) for data in self.storage.load_all(self.accounts_table)]

    def payment_request_payload(self, account: Account) -> str:
        """Opaque payment-request payload for QR codes referencing the account"""
        return json.dumps({
            "userId": account.id,
            "email": account.email,
            "displayName": account.display_name,
            "type": "payment_request"
        })

    def save_account(self, account: Account) -> None:
        """Save account to storage"""
        self.storage.save(self.accounts_table, account.id, account.to_dict())

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        currency = Currency[data['currency']]

        def money(key: str) -> Money:
            return Money(Decimal(data.get(key) or '0'), currency)

        return Account(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            external_id=data['external_id'],
            email=data.get('email', ''),
            display_name=data.get('display_name'),
            phone=data.get('phone'),
            currency=currency,
            wallet_balance=money('wallet_balance'),
            savings_balance=money('savings_balance'),
            total_earned_interest=money('total_earned_interest'),
            referral_count=data.get('referral_count', 0),
            referral_earnings=money('referral_earnings'),
            premium_status=data.get('premium_status', False),
            kyc_verified=data.get('kyc_verified', False)
        )
