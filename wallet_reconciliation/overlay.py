"""
Live Balance Overlay - Cache-preserving on-chain balances.

Features:
- Concurrent per-wallet balance requests, isolated failures
- Previous value kept on failure; stored balance as last resort
- Whole-map swap on commit so readers never see a partial refresh
- Results for wallets that left the eligible set are discarded
- Periodic refresh keyed by the eligible-wallet fingerprint
"""

import asyncio
import logging
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from wallet_reconciliation.balance_sources.registry import BalanceSourceRegistry
from wallet_reconciliation.config import OverlayConfig
from wallet_reconciliation.exceptions import BalanceFetchError
from wallet_reconciliation.models import BalanceOverlayEntry, WalletRecord


logger = logging.getLogger(__name__)


STORED_BALANCE_SOURCE = "stored_balance"


def eligible_wallets(
    wallets: Iterable[WalletRecord],
    providers: Iterable,
) -> list[WalletRecord]:
    """Wallets whose provider has a live source and that have an address."""
    providers = frozenset(providers)
    return [
        w for w in wallets
        if w.provider_type in providers and w.wallet_address and w.overlay_key
    ]


def eligibility_fingerprint(
    wallets: Iterable[WalletRecord],
    providers: Iterable,
) -> str:
    """
    Sorted, deduplicated identity of the eligible wallet set.

    Only ids and addresses contribute, so balance or date changes in the
    wallet objects do not re-trigger a refresh.
    """
    pairs = {
        f"{w.overlay_key}@{w.wallet_address}"
        for w in eligible_wallets(wallets, providers)
    }
    return ",".join(sorted(pairs))


async def _fetch_one(registry: BalanceSourceRegistry, wallet: WalletRecord):
    source = registry.get(wallet.provider_type)
    if source is None:
        raise BalanceFetchError(
            message="No balance source registered",
            provider_type=wallet.provider_type.value,
            address=wallet.wallet_address,
        )
    balance = await source.fetch_balance(wallet.wallet_address)
    return source.name, balance


async def refresh_overlay(
    canonical_wallets: Iterable[WalletRecord],
    current_overlay: Mapping[str, BalanceOverlayEntry],
    registry: BalanceSourceRegistry,
    is_still_eligible: Optional[Callable[[WalletRecord], bool]] = None,
) -> dict[str, BalanceOverlayEntry]:
    """
    Fetch live balances for eligible wallets and merge them into a copy
    of `current_overlay`.

    On success the entry for the wallet's key is replaced. On failure an
    existing live entry is left untouched; a wallet with no entry gets its
    stored balance flagged `from_stored_balance`. Never raises for
    per-wallet failures.
    """
    result = dict(current_overlay)
    targets = eligible_wallets(canonical_wallets, registry.providers())
    if not targets:
        return result

    outcomes = await asyncio.gather(
        *(_fetch_one(registry, w) for w in targets),
        return_exceptions=True,
    )
    as_of = datetime.utcnow()

    for wallet, outcome in zip(targets, outcomes):
        key = wallet.overlay_key

        if is_still_eligible is not None and not is_still_eligible(wallet):
            logger.debug(f"Discarding balance for {wallet.wallet_address}: no longer eligible")
            continue

        if isinstance(outcome, BaseException):
            previous = result.get(key)
            if previous is not None and not previous.from_stored_balance:
                logger.warning(
                    f"Keeping last known balance {previous.value} for {wallet.wallet_address}: {outcome}"
                )
                continue
            logger.warning(
                f"No live balance for {wallet.wallet_address}, using stored balance: {outcome}"
            )
            result[key] = BalanceOverlayEntry(
                key=key,
                value=wallet.stored_balance,
                as_of=as_of,
                source=STORED_BALANCE_SOURCE,
                provider_type=wallet.provider_type,
                wallet_address=wallet.wallet_address,
                from_stored_balance=True,
            )
            continue

        source_name, balance = outcome
        result[key] = BalanceOverlayEntry(
            key=key,
            value=balance,
            as_of=as_of,
            source=source_name,
            provider_type=wallet.provider_type,
            wallet_address=wallet.wallet_address,
        )

    return result


class BalanceOverlay:
    """
    Owner of the overlay map.

    The map is only ever replaced wholesale, so a snapshot taken at any
    time is internally consistent.
    """

    def __init__(self, registry: BalanceSourceRegistry) -> None:
        self._registry = registry
        self._entries: dict[str, BalanceOverlayEntry] = {}
        self._eligible: Optional[frozenset] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> BalanceSourceRegistry:
        return self._registry

    def snapshot(self) -> Mapping[str, BalanceOverlayEntry]:
        """Read-only view of the current committed overlay."""
        return MappingProxyType(self._entries)

    def set_eligible(self, wallets: Iterable[WalletRecord]) -> None:
        """Record the current eligible set; late results outside it are dropped."""
        self._eligible = frozenset(
            (w.overlay_key, w.wallet_address)
            for w in eligible_wallets(wallets, self._registry.providers())
        )

    def _is_still_eligible(self, wallet: WalletRecord) -> bool:
        if self._eligible is None:
            return True
        return (wallet.overlay_key, wallet.wallet_address) in self._eligible

    async def refresh(self, wallets: Iterable[WalletRecord]) -> Mapping[str, BalanceOverlayEntry]:
        """Run one refresh pass and commit it."""
        wallets = list(wallets)
        async with self._lock:
            generation = self._generation
            updated = await refresh_overlay(
                wallets,
                self._entries,
                self._registry,
                is_still_eligible=self._is_still_eligible,
            )
            if generation != self._generation:
                logger.debug("Overlay cleared during refresh, discarding results")
            else:
                self._entries = updated
        return self.snapshot()

    def clear(self) -> None:
        """Drop all entries; results of in-flight refreshes are discarded."""
        self._entries = {}
        self._eligible = frozenset()
        self._generation += 1


class OverlayScheduler:
    """
    Cancellable periodic overlay refresh.

    A new task starts (with an immediate refresh) only when the eligible
    wallet fingerprint changes; an empty fingerprint stops refreshing.
    """

    def __init__(
        self,
        overlay: BalanceOverlay,
        config: Optional[OverlayConfig] = None,
    ) -> None:
        self._overlay = overlay
        self._interval = (config or OverlayConfig()).refresh_interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._fingerprint = ""
        self._wallets: list[WalletRecord] = []

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def update(self, wallets: Iterable[WalletRecord]) -> bool:
        """
        Point the scheduler at a new canonical wallet list.

        Returns True when a new refresh task was started. Must be called
        from within a running event loop.
        """
        self._wallets = list(wallets)
        self._overlay.set_eligible(self._wallets)
        fingerprint = eligibility_fingerprint(self._wallets, self._overlay.registry.providers())

        if fingerprint == self._fingerprint and (self.is_running or not fingerprint):
            return False

        self._cancel_task()
        self._fingerprint = fingerprint

        if not fingerprint:
            logger.debug("No wallets eligible for live balances, refresh stopped")
            return False

        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(
            f"Started live balance refresh for {fingerprint.count(',') + 1} wallet(s) "
            f"(interval={self._interval}s)"
        )
        return True

    async def _refresh_loop(self) -> None:
        """Refresh now, then every interval until cancelled."""
        while True:
            try:
                await self._overlay.refresh(self._wallets)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Live balance refresh error: {e}", exc_info=True)
            await asyncio.sleep(self._interval)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def stop(self) -> None:
        """Cancel the refresh task and wait for it to finish."""
        task = self._task
        self._task = None
        self._fingerprint = ""
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("Live balance refresh stopped")
