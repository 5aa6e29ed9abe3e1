"""
Authentication dependencies and system wiring
"""

import threading
from decimal import Decimal
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..accounts import Account, AccountManager
from ..audit import AuditTrail
from ..auth import IdentityVerifier, create_verifier
from ..config import WalletConfig, get_config
from ..currency import Currency, Money
from ..errors import Unauthenticated
from ..ledger import LedgerEntryStore
from ..referrals import ReferralManager
from ..savings import SavingsManager
from ..storage import StorageInterface, create_storage
from ..transactions import LedgerEngine


class WalletSystem:
    """Wallet core with all components initialized"""

    def __init__(
        self,
        config: Optional[WalletConfig] = None,
        storage: Optional[StorageInterface] = None,
        verifier: Optional[IdentityVerifier] = None
    ):
        self.config = config or get_config()
        currency = Currency[self.config.currency]

        # Initialize storage
        self.storage = storage or create_storage(
            self.config.storage_backend, self.config.database_path
        )

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage)
        self.account_manager = AccountManager(self.storage, self.audit_trail, currency)
        self.entry_store = LedgerEntryStore(self.storage)
        self.savings_manager = SavingsManager(self.storage)
        self.referral_manager = ReferralManager(self.storage, self.account_manager, self.audit_trail)
        self.engine = LedgerEngine(
            self.storage,
            self.account_manager,
            self.entry_store,
            self.savings_manager,
            self.audit_trail,
            minimum_savings_deposit=Money(Decimal(self.config.savings_minimum_deposit), currency),
            penalty_rate=Decimal(self.config.early_withdrawal_penalty_rate),
            history_limit=self.config.transaction_history_limit
        )
        self.verifier = verifier or create_verifier(self.config)

    @property
    def currency(self) -> Currency:
        return self.account_manager.currency

    def close(self) -> None:
        self.storage.close()


# Global wallet system instance, built on first use
_wallet_system: Optional[WalletSystem] = None
_wallet_system_lock = threading.Lock()


# Dependency to get wallet system
def get_wallet_system() -> WalletSystem:
    global _wallet_system
    if _wallet_system is None:
        with _wallet_system_lock:
            if _wallet_system is None:
                _wallet_system = WalletSystem()
    return _wallet_system


security = HTTPBearer(auto_error=False)


def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: WalletSystem = Depends(get_wallet_system)
) -> Account:
    """Verify the bearer token and resolve (or create) the caller's account"""
    if credentials is None:
        raise Unauthenticated("Not authenticated")

    identity = system.verifier.verify(credentials.credentials)
    return system.account_manager.resolve_account(identity)
