"""
Wallet-list API Client - Loads and saves an avatar's stored wallets.

Distinguishes a backend that cannot be reached (WalletApiUnavailableError)
from one that answers with an error (WalletApiError). An avatar that does
not exist yet is an empty wallet set, not an error.
"""

import asyncio
import json
import logging
import time
from typing import Any, Iterable, Optional
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wallet_reconciliation.config import ApiConfig
from wallet_reconciliation.exceptions import WalletApiError, WalletApiUnavailableError
from wallet_reconciliation.models import ProviderType, WalletRecord
from wallet_reconciliation.providers import normalize_provider_type
from wallet_reconciliation.records import parse_wallet_payload


logger = logging.getLogger(__name__)


class ApiEnvelope(BaseModel):
    """Result envelope wrapping every wallet-list API response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    result: Optional[Any] = None
    is_error: bool = Field(default=False, alias="isError")
    message: Optional[str] = None
    detailed_message: Optional[str] = Field(default=None, alias="detailedMessage")


_AVATAR_NOT_FOUND_MARKERS = (
    "avatar not found",
    "avatar does not exist",
    "does not exist",
)


def is_avatar_not_found(message: Optional[str]) -> bool:
    """True for error messages meaning the avatar has no record yet."""
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in _AVATAR_NOT_FOUND_MARKERS)


class WalletApiClient:
    """
    Async client for the wallet-list API.

    Usage:
        async with WalletApiClient(ApiConfig(base_url=...)) as client:
            records = await client.load_wallets(avatar_id)
    """

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config or ApiConfig()
        self._base_url = self._config.base_url.rstrip("/")
        self._auth_token = self._config.auth_token
        self._session = session
        self._owns_session = session is None

    def set_auth_token(self, token: Optional[str]) -> None:
        """Set or clear the bearer token."""
        self._auth_token = token or None

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/api/wallet/{endpoint}"

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
            )
            self._owns_session = True
        return self._session

    async def _send(
        self,
        method: str,
        url: str,
        json_body: Optional[Any] = None,
    ) -> tuple[int, str]:
        """Perform the HTTP exchange, returning status and body text."""
        session = await self._get_session()
        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                json=json_body,
                headers=self._headers(),
            ) as response:
                body = await response.text()
                logger.debug(
                    f"[wallet_api] {method} {url} -> {response.status} "
                    f"in {(time.time() - start_time) * 1000:.0f}ms"
                )
                return response.status, body
        except asyncio.TimeoutError as e:
            raise WalletApiUnavailableError(
                message=f"Request timed out after {self._config.timeout_seconds:.0f}s",
                request_url=url,
                original_error=e,
            )
        except aiohttp.ClientError as e:
            raise WalletApiUnavailableError(
                message=f"Connection error: {e}",
                request_url=url,
                original_error=e,
            )

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[Any] = None,
    ) -> ApiEnvelope:
        """
        Call an endpoint and decode its result envelope.

        Raises:
            WalletApiUnavailableError: Transport failure, 5xx, HTML page or invalid JSON
            WalletApiError: 4xx without an error envelope or unexpected body shape
        """
        url = self._url(endpoint)
        status, body = await self._send(method, url, json_body)
        text = body.strip()

        if text.startswith("<!") or text.lower().startswith("<html"):
            raise WalletApiUnavailableError(
                message="API returned HTML response. This may indicate bot protection or server error.",
                status_code=status,
                response_body=text[:200],
                request_url=url,
            )

        if status >= 500:
            raise WalletApiUnavailableError(
                message=f"HTTP {status}",
                status_code=status,
                response_body=text[:200],
                request_url=url,
            )

        try:
            data = json.loads(text) if text else {}
        except ValueError as e:
            error_cls = WalletApiError if status >= 400 else WalletApiUnavailableError
            raise error_cls(
                message=f"HTTP {status}" if status >= 400 else "Invalid JSON response from API",
                status_code=status,
                response_body=text[:200],
                request_url=url,
                original_error=e,
            )

        if not isinstance(data, dict):
            raise WalletApiError(
                message=f"Unexpected response type {type(data).__name__}",
                status_code=status,
                response_body=text[:200],
                request_url=url,
            )

        try:
            envelope = ApiEnvelope.model_validate(data)
        except ValidationError as e:
            raise WalletApiError(
                message="Malformed result envelope",
                status_code=status,
                response_body=text[:200],
                request_url=url,
                original_error=e,
            )

        if status >= 400 and not envelope.is_error:
            raise WalletApiError(
                message=f"HTTP {status}",
                status_code=status,
                response_body=text[:200],
                request_url=url,
            )

        return envelope

    # ─────────────────────────────────────────────────────────────
    # Wallet operations
    # ─────────────────────────────────────────────────────────────

    async def load_raw_wallets(self, avatar_id: str) -> dict[str, Any]:
        """
        Load the provider-keyed wallet payload for an avatar, untouched.

        Returns an empty dict when the avatar does not exist yet.
        """
        envelope = await self._request("GET", f"avatar/{quote(avatar_id, safe='')}/wallets")

        if envelope.is_error:
            if is_avatar_not_found(envelope.message):
                logger.warning(f"Avatar not found, returning empty wallets: {envelope.message}")
                return {}
            raise WalletApiError(
                message=envelope.message or "Failed to load wallets",
                context={"avatar_id": avatar_id, "detail": envelope.detailed_message},
            )

        if envelope.result is None:
            return {}
        if not isinstance(envelope.result, dict):
            raise WalletApiError(
                message=f"Wallet payload is {type(envelope.result).__name__}, expected an object",
                context={"avatar_id": avatar_id},
            )
        return envelope.result

    async def load_wallets(self, avatar_id: str) -> list[WalletRecord]:
        """Load and parse an avatar's wallets; malformed records are dropped."""
        payload = await self.load_raw_wallets(avatar_id)
        return parse_wallet_payload(payload)

    async def save_wallets_by_id(self, avatar_id: str, payload: dict[str, Any]) -> bool:
        """Replace the avatar's stored wallet payload."""
        envelope = await self._request(
            "POST",
            f"save_wallets_by_id/{quote(avatar_id, safe='')}",
            json_body=payload,
        )
        if envelope.is_error:
            raise WalletApiError(
                message=envelope.message or "Failed to save wallets",
                context={"avatar_id": avatar_id},
            )
        return bool(envelope.result) if envelope.result is not None else True

    async def remove_wallets_by_provider_type(
        self,
        avatar_id: str,
        provider_types: Iterable[ProviderType],
    ) -> int:
        """
        Empty the wallet lists of the given provider types and save.

        Payload keys are matched after normalization, so numeric keys for
        the same provider are cleared too. Returns the number of wallet
        records removed.
        """
        targets = frozenset(provider_types)
        payload = await self.load_raw_wallets(avatar_id)
        updated: dict[str, Any] = dict(payload)
        removed = 0

        for key, wallet_list in payload.items():
            if normalize_provider_type(key) in targets:
                if isinstance(wallet_list, list):
                    removed += len(wallet_list)
                updated[key] = []

        for provider_type in targets:
            updated.setdefault(provider_type.value, [])

        await self.save_wallets_by_id(avatar_id, updated)
        logger.info(
            f"Removed {removed} wallet(s) of {len(targets)} provider type(s) for avatar {avatar_id}"
        )
        return removed

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "WalletApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
