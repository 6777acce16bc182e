"""
Canonical Wallet Selector - One current wallet per provider.

The backend can hold several historical wallets per provider from repeated
import and generation flows, many with zeroed timestamps. A total order is
defined over records so the chosen wallet never depends on input order.
"""

import logging
from typing import Iterable, Optional, Sequence

from wallet_reconciliation.config import SelectionPolicy
from wallet_reconciliation.models import ProviderType, WalletRecord
from wallet_reconciliation.records import group_by_provider


logger = logging.getLogger(__name__)


# Privacy chains first, then the major L1/L2s
DISPLAY_PRIORITY: tuple[ProviderType, ...] = (
    ProviderType.ZCASH,
    ProviderType.AZTEC,
    ProviderType.MIDEN,
    ProviderType.STARKNET,
    ProviderType.ETHEREUM,
    ProviderType.SOLANA,
    ProviderType.POLYGON,
    ProviderType.ARBITRUM,
)

DEFAULT_POLICY = SelectionPolicy()


def preference_key(record: WalletRecord, policy: SelectionPolicy = DEFAULT_POLICY) -> tuple:
    """
    Sort key where a greater value means a more preferred record.

    The address-based components only participate for undated records,
    so dated records are ordered by date and then walletId alone.
    """
    address = record.wallet_address or ""
    date = record.effective_date
    has_real_date = not policy.is_sentinel(date)

    if has_real_date:
        has_address = False
        plausible = False
    else:
        date = ""
        has_address = bool(address)
        plausible = has_address and address.startswith(policy.plausible_address_prefixes)

    return (
        address in policy.preferred_addresses,
        has_real_date,
        date,
        has_address,
        plausible,
        record.wallet_id or "",
        address,
    )


def select_canonical(
    records: Sequence[WalletRecord],
    policy: SelectionPolicy = DEFAULT_POLICY,
) -> Optional[WalletRecord]:
    """
    Pick the canonical wallet among records of a single provider.

    Returns None for an empty input. ISO-8601 dates compare lexically,
    which matches chronological order.
    """
    if not records:
        return None
    return max(records, key=lambda r: preference_key(r, policy))


def select_canonical_wallets(
    records: Iterable[WalletRecord],
    policy: SelectionPolicy = DEFAULT_POLICY,
) -> dict[ProviderType, WalletRecord]:
    """Run the selector once per provider type present in `records`."""
    canonical: dict[ProviderType, WalletRecord] = {}
    for provider_type, group in group_by_provider(records).items():
        chosen = select_canonical(group, policy)
        if chosen is not None:
            canonical[provider_type] = chosen
            if len(group) > 1:
                logger.debug(
                    f"Selected wallet {chosen.wallet_id} for {provider_type.value} "
                    f"out of {len(group)} candidates"
                )
    return canonical


def order_for_display(wallets: Iterable[WalletRecord]) -> list[WalletRecord]:
    """
    Order canonical wallets for presentation.

    Providers in DISPLAY_PRIORITY come first in that order; the rest follow
    by stored balance, largest first, then by provider name.
    """
    rank = {provider: index for index, provider in enumerate(DISPLAY_PRIORITY)}

    def sort_key(wallet: WalletRecord) -> tuple:
        index = rank.get(wallet.provider_type)
        if index is not None:
            return (0, index, 0, "")
        return (1, 0, -wallet.stored_balance, wallet.provider_type.value)

    return sorted(wallets, key=sort_key)
