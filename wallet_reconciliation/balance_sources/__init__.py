"""
Balance sources package - Live chain balance queries.
"""

from wallet_reconciliation.balance_sources.base import BaseBalanceSource
from wallet_reconciliation.balance_sources.registry import (
    BalanceSourceRegistry,
    create_default_registry,
)
from wallet_reconciliation.balance_sources.solana import SolanaRpcBalanceSource
from wallet_reconciliation.balance_sources.zcash import ZcashExplorerBalanceSource


__all__ = [
    "BaseBalanceSource",
    "BalanceSourceRegistry",
    "create_default_registry",
    "SolanaRpcBalanceSource",
    "ZcashExplorerBalanceSource",
]
