"""
Referral Module

Links between a referring account and the accounts it brought in, with the
earnings each link has generated.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .accounts import AccountManager
from .audit import AuditTrail, AuditEventType
from .currency import Money, Currency
from .errors import NotFound, ValidationFailed
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class ReferralStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class ReferralLink(StorageRecord):
    """A referrer and the account it referred"""
    referrer_id: str
    referred_account_id: str
    earnings_generated: Money
    status: ReferralStatus = ReferralStatus.PENDING

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data['currency'] = self.earnings_generated.currency.code
        return data


class ReferralManager:
    """
    Creates referral links and credits referral earnings
    """

    def __init__(self, storage: StorageInterface, account_manager: AccountManager,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_trail = audit_trail
        self.table_name = "referrals"
        self.logger = get_logger("wallet.referrals")

    def create_referral(self, referrer_id: str, referred_account_id: str) -> ReferralLink:
        """
        Record that referrer_id brought in referred_account_id.

        Raises:
            NotFound: If either account does not exist
            ValidationFailed: On self-referral or if the account was already referred
        """
        if referrer_id == referred_account_id:
            raise ValidationFailed("An account cannot refer itself")

        with self.storage.atomic():
            referrer = self.account_manager.require_account(referrer_id)
            self.account_manager.require_account(referred_account_id)

            if self.storage.find(self.table_name, {"referred_account_id": referred_account_id}):
                raise ValidationFailed(f"Account {referred_account_id} was already referred")

            now = datetime.now(timezone.utc)
            link = ReferralLink(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                referrer_id=referrer_id,
                referred_account_id=referred_account_id,
                earnings_generated=Money.zero(referrer.currency)
            )
            self._save_link(link)

            referrer.referral_count += 1
            referrer.updated_at = now
            self.account_manager.save_account(referrer)

            self.audit_trail.log_event(
                event_type=AuditEventType.REFERRAL_CREATED,
                entity_type="referral",
                entity_id=link.id,
                metadata={"referrer_id": referrer_id, "referred_account_id": referred_account_id},
                user_id=referrer_id
            )

        log_action(
            self.logger, "info", "Referral created",
            user_id=referrer_id, action="create_referral", resource=f"referral:{link.id}"
        )
        return link

    def credit_earnings(self, referral_id: str, amount: Money) -> ReferralLink:
        """
        Credit referral earnings to a link and its referrer; the link is completed.

        Earnings are reporting counters; they do not move wallet money.
        """
        if not amount.is_positive():
            raise ValidationFailed("Referral earnings must be positive")

        with self.storage.atomic():
            link = self.get_referral(referral_id)
            if link is None:
                raise NotFound(f"Referral {referral_id} not found")
            referrer = self.account_manager.require_account(link.referrer_id)

            now = datetime.now(timezone.utc)
            link.earnings_generated = link.earnings_generated + amount
            link.status = ReferralStatus.COMPLETED
            link.updated_at = now
            self._save_link(link)

            referrer.referral_earnings = referrer.referral_earnings + amount
            referrer.updated_at = now
            self.account_manager.save_account(referrer)

            self.audit_trail.log_event(
                event_type=AuditEventType.REFERRAL_CREDITED,
                entity_type="referral",
                entity_id=link.id,
                metadata={"amount": amount.to_plain()},
                user_id=link.referrer_id
            )

        log_action(
            self.logger, "info", "Referral earnings credited",
            user_id=link.referrer_id, action="credit_referral", resource=f"referral:{link.id}",
            extra={"amount": amount.to_plain()}
        )
        return link

    def get_referral(self, referral_id: str) -> Optional[ReferralLink]:
        data = self.storage.load(self.table_name, referral_id)
        return self._link_from_dict(data) if data else None

    def get_referrals(self, referrer_id: str) -> List[ReferralLink]:
        """Links created by a referrer, oldest first"""
        return [
            self._link_from_dict(data)
            for data in self.storage.find(self.table_name, {"referrer_id": referrer_id})
        ]

    def _save_link(self, link: ReferralLink) -> None:
        self.storage.save(self.table_name, link.id, link.to_dict())

    def _link_from_dict(self, data: Dict) -> ReferralLink:
        return ReferralLink(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            referrer_id=data['referrer_id'],
            referred_account_id=data['referred_account_id'],
            earnings_generated=Money(Decimal(data['earnings_generated']), Currency[data['currency']]),
            status=ReferralStatus(data['status'])
        )
