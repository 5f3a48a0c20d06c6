"""Sparkscan client performing one balance lookup per address."""

import asyncio
import logging
from typing import Any

import aiohttp

from ..config import ProcessingConfig, SparkscanConfig
from .sparkscan_types import (
    FailureKind,
    FailureReason,
    LookupFailure,
    LookupOutcome,
    LookupSuccess,
)

logger = logging.getLogger(__name__)


class SparkscanClient:
    """Client for the Sparkscan address API.

    ``fetch`` never raises for lookup problems: rate limiting and transport
    errors are retried here, everything else comes back as a ``LookupFailure``.
    """

    def __init__(
        self,
        config: SparkscanConfig,
        processing: ProcessingConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        """Initialize Sparkscan client.

        Args:
            config: Sparkscan API configuration
            processing: Retry and backoff settings (defaults if omitted)
            session: HTTP session (optional, will create if not provided)
        """
        self.config = config
        self.processing = processing or ProcessingConfig()
        self._session = session
        self._own_session = session is None

        self.max_retries = self.processing.max_retries

        self._stats = {
            "lookups": 0,
            "successes": 0,
            "failures": 0,
            "http_requests": 0,
            "rate_limited_responses": 0,
            "network_errors": 0,
            "retries": 0,
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is available."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(
                total=self.config.timeout_seconds,
                connect=self.config.connect_timeout_seconds,
            )
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.config.user_agent,
                },
            )
            self._own_session = True
        return self._session

    def address_url(self, address: str) -> str:
        return f"{self.config.base_url}/address/{address}"

    def backoff_delay(self, failure: FailureReason, attempt: int) -> float:
        """Seconds to wait before retrying after ``attempt`` failed with ``failure``."""
        if failure.kind == FailureKind.RATE_LIMITED:
            base = max(self.processing.rate_limit_floor_seconds, self.processing.rate_limit_backoff_seconds)
            return min(base * attempt, self.processing.max_rate_limit_backoff_seconds)
        return self.processing.network_backoff_seconds * attempt

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def _attempt(self, address: str) -> LookupOutcome | FailureReason:
        """Issue one request.

        Returns a final outcome, or a retriable ``FailureReason``.
        """
        session = await self._ensure_session()
        self._stats["http_requests"] += 1

        try:
            async with session.get(
                self.address_url(address),
                params={"network": self.config.network},
            ) as response:
                status = response.status

                if 200 <= status < 300:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError:
                        return LookupFailure(FailureReason.http_error(status, "Invalid JSON response"))
                    return LookupSuccess(payload)

                if status == 429:
                    self._stats["rate_limited_responses"] += 1
                    return FailureReason.rate_limited(f"HTTP 429: {response.reason or 'Too Many Requests'}")

                return LookupFailure(FailureReason.http_error(status, f"HTTP {status}: {response.reason or 'Error'}"))

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._stats["network_errors"] += 1
            message = str(e) or type(e).__name__
            return FailureReason.network_error(message)

    async def fetch(self, address: str) -> LookupOutcome:
        """Look up one address.

        Args:
            address: Spark address

        Returns:
            ``LookupSuccess`` with the verbatim JSON payload, or ``LookupFailure``
        """
        self._stats["lookups"] += 1
        max_attempts = self.max_retries + 1
        last_failure: FailureReason | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                result = await self._attempt(address)
            except Exception as e:
                logger.error(f"Unexpected error looking up {address}: {e}")
                self._stats["failures"] += 1
                return LookupFailure(FailureReason.network_error(str(e) or type(e).__name__), attempt)

            if isinstance(result, LookupSuccess):
                self._stats["successes"] += 1
                return LookupSuccess(result.payload, attempt)

            if isinstance(result, LookupFailure):
                self._stats["failures"] += 1
                logger.debug(f"Lookup for {address} failed permanently: {result.reason.message}")
                return LookupFailure(result.reason, attempt)

            last_failure = result
            if attempt < max_attempts:
                delay = self.backoff_delay(result, attempt)
                self._stats["retries"] += 1
                logger.warning(
                    f"Lookup for {address} failed ({result.message}), "
                    f"retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)

        self._stats["failures"] += 1
        logger.warning(f"Lookup for {address} gave up after {max_attempts} attempts: {last_failure.message}")
        return LookupFailure(FailureReason.exhausted(last_failure), max_attempts)

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics."""
        return {
            **self._stats,
            "max_retries": self.max_retries,
            "base_url": self.config.base_url,
            "network": self.config.network,
        }

    async def health_check(self) -> bool:
        """Check that the API base URL answers."""
        try:
            session = await self._ensure_session()
            async with session.get(self.config.base_url) as response:
                return response.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Sparkscan health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and self._own_session:
            await self._session.close()
            self._session = None
            logger.info("Sparkscan client session closed")
