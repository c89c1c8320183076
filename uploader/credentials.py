"""Eagerly refreshed bearer credential shared by all in-flight requests."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from common.constants import REFRESH_RETRY_DELAY_SECONDS, REFRESH_SAFETY_MARGIN_SECONDS
from common.logging_config import get_logger
from common.types import Credential

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialLease:
    """
    Keeps one valid bearer credential for the whole run.

    A single background task owns the credential slot. It authenticates once
    on construction, then sleeps until shortly before expiry and
    re-authenticates, publishing each new credential as an already-completed
    future. Readers only ever await the future that is current when they
    arrive: before the first authentication that future is pending, afterwards
    it is always resolved, so requests never wait on a background refresh.
    """

    def __init__(
        self,
        provider,
        safety_margin: float = REFRESH_SAFETY_MARGIN_SECONDS,
        retry_delay: float = REFRESH_RETRY_DELAY_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Start the initial authentication.

        Must be constructed inside a running event loop.

        Args:
            provider: Authentication provider (acquire_silently / acquire_interactively)
            safety_margin: Seconds before expiry at which the refresh fires
            retry_delay: Seconds to wait before retrying a failed refresh
            clock: Source of the current UTC time
        """
        self.provider = provider
        self.safety_margin = timedelta(seconds=safety_margin)
        self.retry_delay = retry_delay
        self.clock = clock

        loop = asyncio.get_running_loop()
        self._current: asyncio.Future = loop.create_future()
        self.initial_authentication: asyncio.Future = self._current
        self._disposed = False
        self._owner = asyncio.create_task(self._run(), name="credential-refresh")

    @property
    def current(self) -> Optional[Credential]:
        """The published credential, or None before initial authentication completes."""
        future = self._current
        if future.done() and not future.cancelled() and future.exception() is None:
            return future.result()
        return None

    async def get_credential(self) -> Credential:
        """Wait for the credential that is current at the time of the call."""
        return await asyncio.shield(self._current)

    async def attach(self, request: httpx.Request) -> None:
        """Set the request's bearer credential. Usable as an httpx request hook."""
        credential = await self.get_credential()
        request.headers['Authorization'] = f"Bearer {credential.access_token}"

    async def _authenticate(self, previous: Optional[Credential]) -> Credential:
        if previous is not None and previous.account is not None:
            credential = await self.provider.acquire_silently(previous.account)
            if credential is not None:
                return credential
            logger.info("Silent token refresh requires interaction, falling back to interactive flow")
        return await self.provider.acquire_interactively()

    def _delay_until_refresh(self, credential: Credential) -> float:
        delay = credential.expires_on - self.clock() - self.safety_margin
        return max(delay.total_seconds(), 0.0)

    async def _run(self) -> None:
        try:
            credential = await self._authenticate(None)
        except Exception as e:
            logger.error(f"Initial authentication failed: {e}")
            self._current.set_exception(e)
            # Mark retrieved so an unused lease does not log "exception never retrieved".
            self._current.exception()
            return
        self._current.set_result(credential)
        logger.info(f"Authenticated [expires_on={credential.expires_on.isoformat()}]")

        while not self._disposed:
            await asyncio.sleep(self._delay_until_refresh(credential))
            try:
                credential = await self._authenticate(credential)
            except Exception as e:
                logger.error(f"Background token refresh failed, retrying in {self.retry_delay}s: {e}")
                await asyncio.sleep(self.retry_delay)
                continue

            published = asyncio.get_running_loop().create_future()
            published.set_result(credential)
            self._current = published
            logger.info(f"Token refreshed [expires_on={credential.expires_on.isoformat()}]")

    async def dispose(self) -> None:
        """Stop the refresh task. No refresh is scheduled afterwards."""
        self._disposed = True
        if not self._current.done():
            self._current.cancel()
        self._owner.cancel()
        try:
            await self._owner
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> 'CredentialLease':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()
