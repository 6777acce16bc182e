"""
Portfolio Aggregator - Overlay-aware total across canonical wallets.
"""

from decimal import Decimal
from typing import Iterable, Mapping, Optional

from wallet_reconciliation.models import (
    BalanceOverlayEntry,
    PortfolioSummary,
    ProviderType,
    WalletRecord,
)


def effective_balance(
    wallet: WalletRecord,
    overlay: Optional[Mapping[str, BalanceOverlayEntry]] = None,
) -> Decimal:
    """Overlay value for the wallet's key if present, else its stored balance (0 if none)."""
    key = wallet.overlay_key
    if overlay and key is not None:
        entry = overlay.get(key)
        if entry is not None:
            return entry.value
    return wallet.stored_balance


def aggregate(
    canonical_wallets: Iterable[WalletRecord],
    overlay: Optional[Mapping[str, BalanceOverlayEntry]] = None,
) -> PortfolioSummary:
    """
    Sum effective balances across canonical wallets.

    Reads `overlay` once per wallet; pass a snapshot, not a map that is
    being refreshed. An empty wallet set totals zero.
    """
    overlay = overlay or {}
    total = Decimal("0")
    per_wallet: dict[ProviderType, Decimal] = {}
    wallet_count = 0
    overlay_count = 0

    for wallet in canonical_wallets:
        value = effective_balance(wallet, overlay)
        total += value
        per_wallet[wallet.provider_type] = per_wallet.get(wallet.provider_type, Decimal("0")) + value
        wallet_count += 1
        if wallet.overlay_key is not None and wallet.overlay_key in overlay:
            overlay_count += 1

    return PortfolioSummary(
        total_balance=total,
        per_wallet=per_wallet,
        wallet_count=wallet_count,
        overlay_count=overlay_count,
    )
