"""
Pydantic schemas for API requests and response serialization
"""

from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..accounts import Account
from ..currency import Currency, Money
from ..errors import ValidationFailed
from ..ledger import LedgerEntry
from ..referrals import ReferralLink
from ..savings import SavingsPosition


class WalletRequest(BaseModel):
    """Base for request bodies; accepts camelCase or snake_case keys"""
    model_config = ConfigDict(populate_by_name=True)

    def money(self, currency: Currency) -> Money:
        """Request amount in the wallet currency; never rounded"""
        try:
            return Money.exact(self.amount, currency)
        except ValueError as e:
            raise ValidationFailed(str(e)) from e


class TransferRequest(WalletRequest):
    to_user_id: str = Field(..., alias="toUserId", min_length=1)
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=255)


class DepositRequest(WalletRequest):
    amount: Decimal = Field(..., gt=0)
    method: Literal["mpesa", "bank", "card"]


class WithdrawRequest(WalletRequest):
    amount: Decimal = Field(..., gt=0)
    destination: Literal["mpesa", "bank"]
    account_details: str = Field(..., alias="accountDetails", min_length=1)


class SavingsRequest(WalletRequest):
    amount: Decimal = Field(..., gt=0)
    lock_period_months: int = Field(..., alias="lockPeriodMonths")


class AirtimeRequest(WalletRequest):
    amount: Decimal = Field(..., gt=0)
    phone_number: str = Field(..., alias="phoneNumber", min_length=10)
    provider: Literal["safaricom", "airtel", "telkom"]


class FeeRequest(WalletRequest):
    amount: Decimal = Field(..., gt=0)
    type: str = Field(..., min_length=1)


# Response serialization

def money_str(money: Money) -> str:
    return money.to_plain()


def account_to_dict(account: Account) -> Dict[str, Any]:
    return {
        "id": account.id,
        "email": account.email,
        "displayName": account.display_name,
        "phone": account.phone,
        "currency": account.currency.code,
        "walletBalance": money_str(account.wallet_balance),
        "savingsBalance": money_str(account.savings_balance),
        "totalAssets": money_str(account.total_assets),
        "totalEarnedInterest": money_str(account.total_earned_interest),
        "referralCount": account.referral_count,
        "referralEarnings": money_str(account.referral_earnings),
        "premiumStatus": account.premium_status,
        "kycVerified": account.kyc_verified,
        "createdAt": account.created_at.isoformat()
    }


def entry_to_dict(entry: LedgerEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "transactionId": entry.transaction_id,
        "type": entry.entry_class.value,
        "fromUserId": entry.from_account_id,
        "toUserId": entry.to_account_id,
        "amount": money_str(entry.amount),
        "fee": money_str(entry.fee),
        "currency": entry.currency.code,
        "status": entry.status.value,
        "description": entry.description,
        "metadata": entry.metadata,
        "createdAt": entry.created_at.isoformat(),
        "settledAt": entry.settled_at.isoformat() if entry.settled_at else None
    }


def position_to_dict(position: SavingsPosition) -> Dict[str, Any]:
    projection = position.projection()
    return {
        "id": position.id,
        "amount": money_str(position.principal),
        "currentBalance": money_str(position.current_balance),
        "currentValue": money_str(position.current_value()),
        "lockPeriodMonths": position.lock_period_months,
        "interestRate": str(position.annual_interest_rate),
        "startDate": position.start_date.isoformat(),
        "maturityDate": position.maturity_date.isoformat(),
        "status": position.effective_status().value,
        "withdrawnAt": position.withdrawn_at.isoformat() if position.withdrawn_at else None,
        "expectedReturn": {
            "total": money_str(projection.maturity_value),
            "interest": money_str(projection.interest_earned)
        }
    }


def referral_to_dict(link: ReferralLink) -> Dict[str, Any]:
    return {
        "id": link.id,
        "referredUserId": link.referred_account_id,
        "status": link.status.value,
        "earningsGenerated": money_str(link.earnings_generated),
        "createdAt": link.created_at.isoformat()
    }
