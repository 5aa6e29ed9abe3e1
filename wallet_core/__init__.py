"""
Wallet Core

Digital-wallet ledger engine: wallet balances, peer transfers, fees,
and fixed-term savings with compounding interest. All money math uses Decimal.
"""

__version__ = "1.0.0"
