"""
Base Balance Source - Abstract interface for live chain balance queries.

All sources MUST:
- Bound every request with a timeout
- Raise BalanceFetchError (never return a guessed value) on failure
- Track their own health
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from wallet_reconciliation.exceptions import (
    BalanceFetchError,
    MalformedRecordError,
    RateLimitError,
    WalletReconciliationError,
)
from wallet_reconciliation.models import (
    ProviderType,
    SourceHealth,
    SourceMetadata,
    SourceStatus,
)


logger = logging.getLogger(__name__)


class BaseBalanceSource(ABC):
    """
    Abstract base class for external balance sources.

    Each source must:
    1. Implement fetch_raw() - Query the chain endpoint for one address
    2. Implement parse_balance() - Convert the response to display units
    3. Implement metadata() - Return source metadata

    fetch_balance() wraps both with timeout, limited retries and health
    tracking, and raises BalanceFetchError on any failure.
    """

    DEFAULT_TIMEOUT = 10.0
    MAX_RETRIES = 1
    RETRY_BACKOFF_BASE = 1.5
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._session = session
        self._owns_session = session is None

        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.utcnow(),
        )

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this source."""
        pass

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Provider whose wallets this source can price."""
        pass

    @abstractmethod
    async def fetch_raw(self, address: str) -> Any:
        """
        Query the external endpoint for one address.

        Raises:
            BalanceFetchError: If the request fails
        """
        pass

    @abstractmethod
    def parse_balance(self, raw_data: Any, address: str) -> Decimal:
        """
        Convert a raw response into a balance in the chain's display unit.

        Raises:
            MalformedRecordError: If the response has no usable balance
        """
        pass

    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Return source metadata."""
        pass

    async def fetch_balance(self, address: str) -> Decimal:
        """
        Fetch the live balance for `address` (main entry point).

        Raises:
            BalanceFetchError: On timeout, transport error, non-2xx status
                or an unparseable response.
        """
        if not address:
            raise BalanceFetchError(
                message="Empty wallet address",
                source_name=self.name,
                provider_type=self.provider_type.value,
            )

        try:
            raw_data = await asyncio.wait_for(
                self._fetch_with_retry(address),
                timeout=self._timeout,
            )
            balance = self.parse_balance(raw_data, address)
        except asyncio.TimeoutError as e:
            error = BalanceFetchError(
                message=f"Timeout after {self._timeout:.1f}s",
                source_name=self.name,
                provider_type=self.provider_type.value,
                address=address,
                original_error=e,
            )
            self._on_error(error)
            raise error
        except BalanceFetchError as e:
            self._on_error(e)
            raise
        except MalformedRecordError as e:
            error = BalanceFetchError(
                message=f"Malformed balance response: {e.message}",
                source_name=self.name,
                provider_type=self.provider_type.value,
                address=address,
                response_body=str(e.raw_data)[:500] if e.raw_data is not None else None,
                original_error=e,
            )
            self._on_error(error)
            raise error
        except Exception as e:
            error = BalanceFetchError(
                message=f"Unexpected error: {e}",
                source_name=self.name,
                provider_type=self.provider_type.value,
                address=address,
                original_error=e,
            )
            self._on_error(error)
            raise error

        self._on_success()
        logger.debug(f"[{self.name}] Balance for {address}: {balance}")
        return balance

    async def _fetch_with_retry(self, address: str) -> Any:
        """Fetch with limited retries."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                return await self.fetch_raw(address)

            except RateLimitError:
                # Don't retry on rate limit; the next refresh tick will
                self._health.status = SourceStatus.RATE_LIMITED
                raise

            except BalanceFetchError as e:
                if e.status_code and 400 <= e.status_code < 500:
                    raise
                last_error = e

            except aiohttp.ClientError as e:
                last_error = e

            if attempt + 1 < self._max_retries:
                wait_time = self.RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    f"[{self.name}] Retry {attempt + 1}/{self._max_retries} "
                    f"in {wait_time:.1f}s: {last_error}"
                )
                await asyncio.sleep(wait_time)

        if isinstance(last_error, BalanceFetchError):
            raise last_error
        raise BalanceFetchError(
            message=f"Failed after {self._max_retries} attempt(s)",
            source_name=self.name,
            provider_type=self.provider_type.value,
            address=address,
            original_error=last_error,
        )

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Make HTTP request and decode the JSON body."""
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
            ) as response:
                self._health.latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        source_name=self.name,
                        provider_type=self.provider_type.value,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise BalanceFetchError(
                        message=f"HTTP {response.status}",
                        source_name=self.name,
                        provider_type=self.provider_type.value,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise BalanceFetchError(
                        message="Invalid JSON response",
                        source_name=self.name,
                        provider_type=self.provider_type.value,
                        status_code=response.status,
                        request_url=url,
                        original_error=e,
                    )

        except aiohttp.ClientError as e:
            raise BalanceFetchError(
                message=f"Connection error: {e}",
                source_name=self.name,
                provider_type=self.provider_type.value,
                request_url=url,
                original_error=e,
            )

    # ─────────────────────────────────────────────────────────────
    # Health Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self) -> None:
        """Handle successful request."""
        now = datetime.utcnow()
        self._health.last_success = now
        self._health.last_check = now
        self._health.consecutive_failures = 0

        if self._health.status != SourceStatus.HEALTHY:
            if self._health.status != SourceStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = SourceStatus.HEALTHY

    def _on_error(self, error: WalletReconciliationError) -> None:
        """Handle request error."""
        now = datetime.utcnow()
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = now
        self._health.last_check = now

        if isinstance(error, RateLimitError):
            self._health.status = SourceStatus.RATE_LIMITED
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

        logger.warning(f"[{self.name}] Balance fetch failed: {error}")

    def get_health(self) -> SourceHealth:
        """Get current health status."""
        return self._health

    def is_usable(self) -> bool:
        """Check if source can be used."""
        return self._health.is_usable()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseBalanceSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
