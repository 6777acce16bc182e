"""
Wallet Reconciler - Application state for the unified wallet view.

============================================================
RESPONSIBILITY
============================================================
Owns the canonical wallet list and the live balance overlay.

- Loads the avatar's wallet records
- Filters, groups and selects one wallet per provider
- Keeps live balances refreshed for eligible providers
- Answers effective-balance and portfolio queries

============================================================
LIFECYCLE
============================================================
start()  -> session restored, ready to load
load_wallets() -> hydrated once the first load succeeds
close()  -> refresh task cancelled, HTTP sessions closed

Derived-state queries raise ReconcilerNotHydratedError until hydrated.
A failed load keeps the previous wallet set and records a LoadFailure.

============================================================
"""

import asyncio
import logging
from typing import Iterable, Mapping, Optional

from wallet_reconciliation.balance_sources.registry import (
    BalanceSourceRegistry,
    create_default_registry,
)
from wallet_reconciliation.client import WalletApiClient
from wallet_reconciliation.config import ReconcilerConfig
from wallet_reconciliation.exceptions import (
    ReconcilerNotHydratedError,
    WalletApiError,
    WalletApiUnavailableError,
    WalletReconciliationError,
)
from wallet_reconciliation.models import (
    BalanceOverlayEntry,
    LoadFailure,
    LoadFailureKind,
    PortfolioSummary,
    ProviderType,
    WalletRecord,
)
from wallet_reconciliation.overlay import BalanceOverlay, OverlayScheduler
from wallet_reconciliation.portfolio import aggregate, effective_balance
from wallet_reconciliation.providers import HIDDEN_PROVIDER_TYPES
from wallet_reconciliation.records import filter_visible
from wallet_reconciliation.selector import order_for_display, select_canonical_wallets
from wallet_reconciliation.session import SessionStore


logger = logging.getLogger(__name__)


UNAVAILABLE_MESSAGE = (
    "API is currently unavailable. The wallet API may be blocked or unreachable. "
    "Please check your connection or API configuration."
)
NO_AVATAR_MESSAGE = "No avatar selected. Please sign in first."


class WalletReconciler:
    """
    Single owner of reconciliation state.

    Usage:
        async with WalletReconciler(load_config()) as reconciler:
            await reconciler.load_wallets(avatar_id)
            summary = reconciler.portfolio()
    """

    def __init__(
        self,
        config: Optional[ReconcilerConfig] = None,
        client: Optional[WalletApiClient] = None,
        registry: Optional[BalanceSourceRegistry] = None,
        session_store: Optional[SessionStore] = None,
    ) -> None:
        self._config = config or ReconcilerConfig()
        self._client = client or WalletApiClient(self._config.api)
        self._registry = registry or create_default_registry(
            self._config.sources,
            eligible=self._config.overlay.eligible_providers,
        )
        self._overlay = BalanceOverlay(self._registry)
        self._scheduler = OverlayScheduler(self._overlay, self._config.overlay)
        self._session = session_store or SessionStore(self._config.session_path)

        self._records: list[WalletRecord] = []
        self._canonical: list[WalletRecord] = []
        self._avatar_id: Optional[str] = None
        self._hydrated = False
        self._started = False
        self._last_failure: Optional[LoadFailure] = None

        self._load_lock = asyncio.Lock()
        self._pending_reload: Optional[asyncio.Task] = None

    # ─────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────

    @property
    def hydrated(self) -> bool:
        """True once a wallet list has been loaded successfully."""
        return self._hydrated

    @property
    def avatar_id(self) -> Optional[str]:
        return self._avatar_id

    @property
    def last_failure(self) -> Optional[LoadFailure]:
        """Error state of the most recent load, None after a success."""
        return self._last_failure

    @property
    def is_empty(self) -> bool:
        """True when the avatar has no visible wallets (not an error)."""
        self._require_hydrated()
        return not self._canonical

    @property
    def canonical_wallets(self) -> list[WalletRecord]:
        """One wallet per visible provider, in display order."""
        self._require_hydrated()
        return list(self._canonical)

    @property
    def selected_wallet(self) -> Optional[WalletRecord]:
        """The persisted selection, if it is still a canonical wallet."""
        selected_id = self._session.state.selected_wallet_id
        if not selected_id or not self._hydrated:
            return None
        for wallet in self._canonical:
            if wallet.wallet_id == selected_id:
                return wallet
        return None

    def canonical_wallet(self, provider_type: ProviderType) -> Optional[WalletRecord]:
        """Canonical wallet for one provider."""
        self._require_hydrated()
        for wallet in self._canonical:
            if wallet.provider_type == provider_type:
                return wallet
        return None

    def overlay_snapshot(self) -> Mapping[str, BalanceOverlayEntry]:
        """Consistent read-only view of the live balances."""
        return self._overlay.snapshot()

    def effective_balance(self, wallet: WalletRecord):
        """Overlay-aware balance of one wallet."""
        return effective_balance(wallet, self._overlay.snapshot())

    def portfolio(self) -> PortfolioSummary:
        """Aggregate the canonical wallets against one overlay snapshot."""
        self._require_hydrated()
        return aggregate(self._canonical, self._overlay.snapshot())

    def _require_hydrated(self) -> None:
        if not self._hydrated:
            raise ReconcilerNotHydratedError(
                message="Wallet state requested before the first successful load",
            )

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Restore the persisted session."""
        if self._started:
            return
        state = await self._session.hydrate()
        self._avatar_id = state.avatar_id
        self._started = True
        logger.info(f"Wallet reconciler started (avatar={self._avatar_id})")

    async def close(self) -> None:
        """Cancel background work and release HTTP resources."""
        if self._pending_reload is not None and not self._pending_reload.done():
            self._pending_reload.cancel()
            try:
                await self._pending_reload
            except asyncio.CancelledError:
                pass
        self._pending_reload = None

        await self._scheduler.stop()
        await self._registry.close()
        await self._client.close()
        self._started = False
        logger.info("Wallet reconciler closed")

    async def __aenter__(self) -> "WalletReconciler":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # ─────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────

    async def load_wallets(self, avatar_id: Optional[str] = None) -> list[WalletRecord]:
        """
        Load wallet records and recompute the canonical wallets.

        Raises:
            WalletApiUnavailableError: Backend unreachable; previous state kept
            WalletApiError: Backend answered with an error; previous state kept
            WalletReconciliationError: No avatar given or remembered
        """
        target = avatar_id or self._avatar_id
        if not target:
            self._last_failure = LoadFailure(LoadFailureKind.NO_AVATAR, NO_AVATAR_MESSAGE)
            raise WalletReconciliationError(message=NO_AVATAR_MESSAGE)

        async with self._load_lock:
            try:
                records = await self._client.load_wallets(target)
            except WalletApiUnavailableError as e:
                self._last_failure = LoadFailure(LoadFailureKind.BACKEND_UNAVAILABLE, UNAVAILABLE_MESSAGE)
                logger.error(f"Wallet list unavailable for avatar {target}: {e}")
                raise
            except WalletApiError as e:
                self._last_failure = LoadFailure(LoadFailureKind.API_ERROR, e.message or "Failed to load wallets")
                logger.error(f"Wallet list load failed for avatar {target}: {e}")
                raise

            if target != self._avatar_id:
                self._overlay.clear()
                self._avatar_id = target
                await self._session.update(avatar_id=target, selected_wallet_id=None)

            self._apply_records(records)
            self._last_failure = None
            self._hydrated = True

        self._scheduler.update(self._canonical)
        return list(self._canonical)

    def _apply_records(self, records: Iterable[WalletRecord]) -> None:
        self._records = list(records)
        visible = filter_visible(self._records)
        canonical = select_canonical_wallets(visible, self._config.selection)
        self._canonical = order_for_display(canonical.values())
        logger.info(
            f"Reconciled {len(self._records)} record(s) into "
            f"{len(self._canonical)} canonical wallet(s) for avatar {self._avatar_id}"
        )

    async def refresh_balances(self) -> Mapping[str, BalanceOverlayEntry]:
        """Run one live balance pass immediately."""
        self._require_hydrated()
        return await self._overlay.refresh(self._canonical)

    def refresh_after_transaction(self, delay: Optional[float] = None) -> asyncio.Task:
        """
        Reload the wallet list after a short delay so a just-sent
        transaction is reflected. Failures are logged, not raised.
        """
        if delay is None:
            delay = self._config.post_transaction_delay_seconds
        if self._pending_reload is not None and not self._pending_reload.done():
            self._pending_reload.cancel()
        self._pending_reload = asyncio.create_task(self._delayed_reload(delay))
        return self._pending_reload

    async def _delayed_reload(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.load_wallets()
        except WalletReconciliationError as e:
            logger.warning(f"Post-transaction reload failed: {e}")

    # ─────────────────────────────────────────────────────────────
    # Selection and cleanup
    # ─────────────────────────────────────────────────────────────

    async def select_wallet(self, wallet_id: Optional[str]) -> Optional[WalletRecord]:
        """Persist the selected wallet (None clears it)."""
        await self._session.update(selected_wallet_id=wallet_id)
        return self.selected_wallet

    async def remove_internal_wallets(self) -> int:
        """Delete legacy internal-storage wallets on the backend and reload."""
        if not self._avatar_id:
            raise WalletReconciliationError(message=NO_AVATAR_MESSAGE)
        removed = await self._client.remove_wallets_by_provider_type(
            self._avatar_id,
            HIDDEN_PROVIDER_TYPES,
        )
        await self.load_wallets(self._avatar_id)
        return removed

    async def sign_out(self) -> None:
        """Forget the avatar, its wallets and live balances."""
        await self._scheduler.stop()
        self._overlay.clear()
        self._records = []
        self._canonical = []
        self._avatar_id = None
        self._hydrated = False
        self._last_failure = None
        await self._session.clear()
        logger.info("Signed out")
