"""
Wallet endpoints: profile, balances, money movement, fees and QR payloads
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from .auth import WalletSystem, get_current_account, get_wallet_system
from .schemas import (
    AirtimeRequest, DepositRequest, FeeRequest, TransferRequest, WithdrawRequest,
    account_to_dict, entry_to_dict, money_str, position_to_dict, referral_to_dict
)
from ..accounts import Account
from ..fees import FeeClass, compute_fee


router = APIRouter()


@router.get("/profile")
def get_profile(
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Account with recent activity, savings positions and referrals"""
    recent = system.engine.get_transactions(account.id, system.config.profile_recent_limit)
    return {
        "user": account_to_dict(account),
        "recentTransactions": [entry_to_dict(e) for e in recent],
        "savingsAccounts": [
            position_to_dict(p) for p in system.savings_manager.list_for_account(account.id)
        ],
        "referrals": [
            referral_to_dict(r) for r in system.referral_manager.get_referrals(account.id)
        ]
    }


@router.get("/balance")
def get_balance(account: Account = Depends(get_current_account)):
    """Get wallet and savings balances"""
    return {
        "walletBalance": money_str(account.wallet_balance),
        "savingsBalance": money_str(account.savings_balance),
        "totalAssets": money_str(account.total_assets)
    }


@router.post("/transfer")
def transfer(
    request: TransferRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Send money to another wallet"""
    result = system.engine.transfer(
        from_account_id=account.id,
        to_account_id=request.to_user_id,
        amount=request.money(system.currency),
        description=request.description,
        idempotency_key=idempotency_key
    )
    return {
        "transaction": entry_to_dict(result.entry),
        "newBalance": money_str(result.new_balance)
    }


@router.post("/deposit")
def deposit(
    request: DepositRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Deposit money into the wallet"""
    result = system.engine.deposit(
        account_id=account.id,
        amount=request.money(system.currency),
        method=request.method,
        idempotency_key=idempotency_key
    )
    return {
        "transaction": entry_to_dict(result.entry),
        "newBalance": money_str(result.new_balance)
    }


@router.post("/withdraw")
def withdraw(
    request: WithdrawRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Withdraw money to M-Pesa or a bank account"""
    result = system.engine.withdraw(
        account_id=account.id,
        amount=request.money(system.currency),
        destination=request.destination,
        account_details=request.account_details,
        idempotency_key=idempotency_key
    )
    return {
        "transaction": entry_to_dict(result.entry),
        "newBalance": money_str(result.new_balance),
        "netAmount": money_str(result.net_amount)
    }


@router.post("/airtime")
def purchase_airtime(
    request: AirtimeRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Buy airtime from the wallet balance"""
    result = system.engine.purchase_airtime(
        account_id=account.id,
        amount=request.money(system.currency),
        phone_number=request.phone_number,
        provider=request.provider,
        idempotency_key=idempotency_key
    )
    return {
        "transaction": entry_to_dict(result.entry),
        "newBalance": money_str(result.new_balance)
    }


@router.get("/transactions")
def get_transactions(
    limit: Optional[int] = Query(None, ge=1),
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Transaction history, newest first"""
    entries = system.engine.get_transactions(account.id, limit)
    return {"transactions": [entry_to_dict(e) for e in entries]}


@router.post("/calculate-fee")
def calculate_fee(
    request: FeeRequest,
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Quote the fee for an amount and transaction type"""
    amount = request.money(system.currency)
    fee = compute_fee(amount, FeeClass.parse(request.type))
    return {
        "amount": money_str(amount),
        "fee": money_str(fee),
        "total": money_str(amount + fee)
    }


@router.get("/qr-code")
def get_qr_code(
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Payment-request payload to render as a QR code"""
    return {"qrData": system.account_manager.payment_request_payload(account)}
