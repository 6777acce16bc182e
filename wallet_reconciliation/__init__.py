"""
Wallet Reconciliation Package - Unified multi-chain wallet view.

Turns the wallet records stored for an avatar into one canonical wallet
per chain, overlays live on-chain balances where a source exists, and
aggregates a portfolio total.

Features:
- Provider identifiers normalized once at ingestion (names or legacy codes)
- Internal storage wallets filtered out of the user-facing view
- Deterministic one-wallet-per-provider selection
- Cache-preserving live balance overlay (Solana RPC, Zcash explorer)
- Backend-unavailable distinguished from empty wallet sets

Quick Start:
    from wallet_reconciliation import WalletReconciler, load_config

    async def show_portfolio(avatar_id):
        async with WalletReconciler(load_config()) as reconciler:
            await reconciler.load_wallets(avatar_id)
            await reconciler.refresh_balances()

            for wallet in reconciler.canonical_wallets:
                print(wallet.provider_type.value, reconciler.effective_balance(wallet))

            print(f"Total: {reconciler.portfolio().total_balance}")

Adding New Balance Sources:
    class NewSource(BaseBalanceSource):
        @property
        def name(self) -> str:
            return "new_source"

        @property
        def provider_type(self) -> ProviderType:
            return ProviderType.ETHEREUM

        async def fetch_raw(self, address): ...
        def parse_balance(self, raw_data, address): ...
        def metadata(self): ...

    registry.register(NewSource())
"""

from wallet_reconciliation.balance_sources import (
    BalanceSourceRegistry,
    BaseBalanceSource,
    SolanaRpcBalanceSource,
    ZcashExplorerBalanceSource,
    create_default_registry,
)
from wallet_reconciliation.client import ApiEnvelope, WalletApiClient
from wallet_reconciliation.config import (
    ApiConfig,
    BalanceSourceConfig,
    OverlayConfig,
    ReconcilerConfig,
    SelectionPolicy,
    load_config,
)
from wallet_reconciliation.exceptions import (
    BalanceFetchError,
    ConfigurationError,
    MalformedRecordError,
    RateLimitError,
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
    RawProviderKind,
    RawProviderType,
    SourceHealth,
    SourceMetadata,
    SourceStatus,
    WalletRecord,
)
from wallet_reconciliation.overlay import BalanceOverlay, OverlayScheduler, refresh_overlay
from wallet_reconciliation.portfolio import aggregate, effective_balance
from wallet_reconciliation.providers import (
    HIDDEN_PROVIDER_TYPES,
    LEGACY_PROVIDER_CODES,
    ProviderMetadata,
    classify_provider_type,
    get_provider_metadata,
    is_hidden_provider,
    normalize_provider_type,
)
from wallet_reconciliation.reconciler import WalletReconciler
from wallet_reconciliation.records import (
    filter_visible,
    group_by_provider,
    parse_wallet_payload,
    parse_wallet_record,
)
from wallet_reconciliation.selector import (
    DISPLAY_PRIORITY,
    order_for_display,
    select_canonical,
    select_canonical_wallets,
)
from wallet_reconciliation.session import SessionState, SessionStore


__all__ = [
    # Reconciler
    "WalletReconciler",
    # Client
    "WalletApiClient",
    "ApiEnvelope",
    # Balance sources
    "BaseBalanceSource",
    "BalanceSourceRegistry",
    "create_default_registry",
    "SolanaRpcBalanceSource",
    "ZcashExplorerBalanceSource",
    # Pipeline
    "classify_provider_type",
    "normalize_provider_type",
    "get_provider_metadata",
    "is_hidden_provider",
    "parse_wallet_record",
    "parse_wallet_payload",
    "filter_visible",
    "group_by_provider",
    "select_canonical",
    "select_canonical_wallets",
    "order_for_display",
    "refresh_overlay",
    "BalanceOverlay",
    "OverlayScheduler",
    "effective_balance",
    "aggregate",
    # Session
    "SessionState",
    "SessionStore",
    # Constants
    "HIDDEN_PROVIDER_TYPES",
    "LEGACY_PROVIDER_CODES",
    "DISPLAY_PRIORITY",
    # Config
    "ApiConfig",
    "BalanceSourceConfig",
    "OverlayConfig",
    "ReconcilerConfig",
    "SelectionPolicy",
    "load_config",
    # Models
    "ProviderType",
    "RawProviderKind",
    "RawProviderType",
    "ProviderMetadata",
    "WalletRecord",
    "BalanceOverlayEntry",
    "PortfolioSummary",
    "LoadFailure",
    "LoadFailureKind",
    "SourceHealth",
    "SourceMetadata",
    "SourceStatus",
    # Exceptions
    "WalletReconciliationError",
    "WalletApiError",
    "WalletApiUnavailableError",
    "BalanceFetchError",
    "RateLimitError",
    "MalformedRecordError",
    "ReconcilerNotHydratedError",
    "ConfigurationError",
]

__version__ = "1.0.0"
