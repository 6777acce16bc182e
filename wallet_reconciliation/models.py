"""
Wallet Reconciliation Models - Canonical wallet, overlay and portfolio types.

Raw API payloads are converted into these types at ingestion. Nothing
downstream of ingestion branches on the raw provider representation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional


class ProviderType(Enum):
    """Canonical provider identifiers, chain and internal storage backends."""
    NONE = "None"
    ALL = "All"
    DEFAULT = "Default"
    SOLANA = "SolanaOASIS"
    RADIX = "RadixOASIS"
    ARBITRUM = "ArbitrumOASIS"
    AVALANCHE = "AvalancheOASIS"
    BASE = "BaseOASIS"
    MONAD = "MonadOASIS"
    ETHEREUM = "EthereumOASIS"
    POLYGON = "PolygonOASIS"
    EOSIO = "EOSIOOASIS"
    TELOS = "TelosOASIS"
    SEEDS = "SEEDSOASIS"
    LOOM = "LoomOASIS"
    TON = "TONOASIS"
    STELLAR = "StellarOASIS"
    BLOCKSTACK = "BlockStackOASIS"
    HASHGRAPH = "HashgraphOASIS"
    ELROND = "ElrondOASIS"
    TRON = "TRONOASIS"
    COSMOS = "CosmosBlockChainOASIS"
    ROOTSTOCK = "RootstockOASIS"
    CHAINLINK = "ChainLinkOASIS"
    CARDANO = "CardanoOASIS"
    POLKADOT = "PolkadotOASIS"
    BITCOIN = "BitcoinOASIS"
    NEAR = "NEAROASIS"
    SUI = "SuiOASIS"
    STARKNET = "StarknetOASIS"
    APTOS = "AptosOASIS"
    AZTEC = "AztecOASIS"
    ZCASH = "ZcashOASIS"
    MIDEN = "MidenOASIS"
    OPTIMISM = "OptimismOASIS"
    BNB_CHAIN = "BNBChainOASIS"
    FANTOM = "FantomOASIS"
    MORALIS = "MoralisOASIS"
    IPFS = "IPFSOASIS"
    PINATA = "PinataOASIS"
    HOLO = "HoloOASIS"
    MONGODB = "MongoDBOASIS"
    NEO4J = "Neo4jOASIS"
    SQLITE = "SQLLiteDBOASIS"
    SQL_SERVER = "SQLServerDBOASIS"
    ORACLE_DB = "OracleDBOASIS"
    GOOGLE_CLOUD = "GoogleCloudOASIS"
    AZURE_STORAGE = "AzureStorageOASIS"
    AZURE_COSMOS_DB = "AzureCosmosDBOASIS"
    AWS = "AWSOASIS"
    URBIT = "UrbitOASIS"
    THREEFOLD = "ThreeFoldOASIS"
    PLAN = "PLANOASIS"
    HOLO_WEB = "HoloWebOASIS"
    SOLID = "SOLIDOASIS"
    ACTIVITY_PUB = "ActivityPubOASIS"
    SCUTTLEBUTT = "ScuttlebuttOASIS"
    LOCAL_FILE = "LocalFileOASIS"
    KADENA = "KadenaOASIS"


class RawProviderKind(Enum):
    """How a provider identifier was represented in the API payload."""
    CANONICAL = "canonical"
    LEGACY_CODE = "legacy_code"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawProviderType:
    """
    Tagged provider identifier as received at the API boundary.

    `value` holds the canonical string for CANONICAL, the integer code for
    LEGACY_CODE and the untouched input for UNKNOWN.
    """
    kind: RawProviderKind
    value: Any = None


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """Convert an API number or numeric string to a finite Decimal, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


@dataclass(frozen=True)
class WalletRecord:
    """
    One stored wallet as returned by the wallet-list API.

    `provider_type` is the normalized value. `raw_provider_type` and
    `source_key` keep what the payload actually said so the visibility
    filter can re-check both.
    """
    wallet_id: str
    provider_type: ProviderType
    wallet_address: str = ""
    balance: Optional[Decimal] = None
    created_date: str = ""
    modified_date: str = ""
    is_default_wallet: bool = False
    avatar_id: Optional[str] = None
    public_key: Optional[str] = None
    raw_provider_type: Any = None
    source_key: Optional[str] = None

    @property
    def overlay_key(self) -> Optional[str]:
        """Overlay map key: wallet id, or address when the id is missing."""
        return self.wallet_id or self.wallet_address or None

    @property
    def stored_balance(self) -> Decimal:
        """Backend-reported balance, zero when absent or non-numeric."""
        return self.balance if self.balance is not None else Decimal("0")

    @property
    def effective_date(self) -> str:
        """modifiedDate, falling back to createdDate when it is empty."""
        return self.modified_date or self.created_date or ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wallet-list API's camelCase representation."""
        return {
            "walletId": self.wallet_id,
            "avatarId": self.avatar_id,
            "publicKey": self.public_key,
            "walletAddress": self.wallet_address,
            "providerType": self.provider_type.value,
            "balance": float(self.balance) if self.balance is not None else 0,
            "isDefaultWallet": self.is_default_wallet,
            "createdDate": self.created_date,
            "modifiedDate": self.modified_date,
        }


@dataclass(frozen=True)
class BalanceOverlayEntry:
    """Live-fetched balance that supersedes a wallet's stored balance."""
    key: str
    value: Decimal
    as_of: datetime
    source: str
    provider_type: Optional[ProviderType] = None
    wallet_address: str = ""
    # True when no live value was ever fetched and the stored balance stands in
    from_stored_balance: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "value": str(self.value),
            "as_of": self.as_of.isoformat(),
            "source": self.source,
            "provider_type": self.provider_type.value if self.provider_type else None,
            "wallet_address": self.wallet_address,
            "from_stored_balance": self.from_stored_balance,
        }


@dataclass(frozen=True)
class PortfolioSummary:
    """Aggregated portfolio value across canonical wallets."""
    total_balance: Decimal
    per_wallet: dict[ProviderType, Decimal] = field(default_factory=dict)
    wallet_count: int = 0
    overlay_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_balance": str(self.total_balance),
            "per_wallet": {p.value: str(v) for p, v in self.per_wallet.items()},
            "wallet_count": self.wallet_count,
            "overlay_count": self.overlay_count,
        }


class SourceStatus(Enum):
    """Health status of an external balance source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass
class SourceHealth:
    """Health status of an external balance source."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    last_success: Optional[datetime] = None

    def is_usable(self) -> bool:
        """Check if the source can still be used."""
        return self.status in (SourceStatus.HEALTHY, SourceStatus.DEGRADED, SourceStatus.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "last_success": self.last_success.isoformat() if self.last_success else None,
        }


@dataclass
class SourceMetadata:
    """Metadata about an external balance source."""
    name: str
    display_name: str
    provider_type: ProviderType
    network: str
    base_url: str
    display_unit: str
    documentation_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "provider_type": self.provider_type.value,
            "network": self.network,
            "base_url": self.base_url,
            "display_unit": self.display_unit,
            "documentation_url": self.documentation_url,
        }


class LoadFailureKind(Enum):
    """Why a wallet-list load failed."""
    BACKEND_UNAVAILABLE = "backend_unavailable"
    API_ERROR = "api_error"
    NO_AVATAR = "no_avatar"


@dataclass(frozen=True)
class LoadFailure:
    """Aggregate error state reported when the wallet list cannot be loaded."""
    kind: LoadFailureKind
    message: str
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "occurred_at": self.occurred_at.isoformat(),
        }
