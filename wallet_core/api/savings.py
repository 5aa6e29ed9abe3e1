"""
Savings endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header

from .auth import WalletSystem, get_current_account, get_wallet_system
from .schemas import SavingsRequest, entry_to_dict, money_str, position_to_dict
from ..accounts import Account


router = APIRouter()


@router.post("")
def create_savings(
    request: SavingsRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Lock money from the wallet in a fixed-term savings position"""
    result = system.engine.create_savings(
        account_id=account.id,
        amount=request.money(system.currency),
        lock_period_months=request.lock_period_months,
        idempotency_key=idempotency_key
    )
    return {
        "transaction": entry_to_dict(result.entry),
        "savingsAccount": position_to_dict(result.position),
        "expectedReturn": {
            "total": money_str(result.projection.maturity_value),
            "interest": money_str(result.projection.interest_earned)
        },
        "newWalletBalance": money_str(result.new_wallet_balance),
        "newSavingsBalance": money_str(result.new_savings_balance)
    }


@router.get("")
def list_savings(
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Savings positions, newest first"""
    positions = system.savings_manager.list_for_account(account.id)
    return {"savingsAccounts": [position_to_dict(p) for p in positions]}


@router.post("/{position_id}/withdraw")
def withdraw_savings(
    position_id: str,
    account: Account = Depends(get_current_account),
    system: WalletSystem = Depends(get_wallet_system)
):
    """Close a savings position; early withdrawals pay a penalty"""
    result = system.engine.withdraw_savings(account.id, position_id)
    return {
        "transactions": [entry_to_dict(e) for e in result.entries],
        "savingsAccount": position_to_dict(result.position),
        "creditedAmount": money_str(result.credited_amount),
        "penalty": money_str(result.penalty),
        "interest": money_str(result.interest),
        "newWalletBalance": money_str(result.new_wallet_balance),
        "newSavingsBalance": money_str(result.new_savings_balance)
    }
