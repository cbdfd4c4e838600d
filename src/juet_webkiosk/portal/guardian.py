from __future__ import annotations

import asyncio
import logging
import posixpath
import time
from typing import Awaitable, Callable, Optional, Protocol

from ..config import PortalConfig
from ..errors import AuthenticationRejected, NoCredentials, TransportError
from ..models import Credentials
from .login import LoginProtocol
from .selectors import PortalSelectors
from .session import SessionClient


logger = logging.getLogger(__name__)


class CredentialSource(Protocol):
    def load(self) -> Optional[Credentials]: ...


class SessionGuardian:
    """
    Keeps one authenticated portal session and serializes everything that touches it.

    Policy: `ensure_session()` always performs a fresh login. The portal's JSESSIONID can look
    valid while the server has already dropped the session, and trusting a time-based cache
    produced intermittent "valid" sessions that returned login pages. The only reuse allowed is
    login coalescing: callers that queued on the lock while a login for the same credentials
    succeeded share that login instead of posting the form again.

    All login/validation sequences run under a single asyncio.Lock; data fetches do not.
    """

    def __init__(
        self,
        *,
        client: SessionClient,
        portal: PortalConfig,
        protocol: Optional[LoginProtocol] = None,
        credential_source: Optional[CredentialSource] = None,
        selectors: Optional[PortalSelectors] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._portal = portal
        self._sel = selectors or PortalSelectors()
        self._protocol = protocol or LoginProtocol(client=client, portal=portal, selectors=self._sel)
        self._credential_source = credential_source
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._login_page_marker = posixpath.basename(portal.login_page_path).lower()

        self.last_verified_at: Optional[float] = None
        self.last_verified_outcome: bool = False
        self._login_generation = 0
        self._last_login_credentials: Optional[Credentials] = None

    def resolve_credentials(self, provided: Optional[Credentials] = None) -> Credentials:
        if provided is not None:
            return provided
        cached = self._credential_source.load() if self._credential_source is not None else None
        if cached is None:
            raise NoCredentials("No credentials supplied and none cached")
        return cached

    async def ensure_session(self, credentials: Optional[Credentials] = None) -> Credentials:
        """
        Log in (fresh) and return the credentials the session belongs to.

        Raises NoCredentials, AuthenticationRejected, or whatever the login handshake raised.
        """
        creds = self.resolve_credentials(credentials)
        observed = self._login_generation
        async with self._lock:
            if self._joined_recent_login(observed, creds):
                logger.debug("Session: reusing login that completed while waiting")
                return creds
            await self._fresh_login(creds)
            return creds

    async def recover(self, credentials: Optional[Credentials] = None) -> Credentials:
        """
        Called after a data page reported a session timeout. Probes first (cheap) and only logs
        in again when the probe fails.
        """
        creds = self.resolve_credentials(credentials)
        observed = self._login_generation
        async with self._lock:
            if self._joined_recent_login(observed, creds):
                return creds
            if await self._probe():
                logger.info("Session: probe says the session is still alive")
                return creds
            logger.info("Session: re-authenticating after session timeout")
            await self._fresh_login(creds)
            return creds

    async def has_valid_session(self) -> bool:
        async with self._lock:
            return await self._probe()

    async def invalidate(self) -> None:
        async with self._lock:
            self._client.cookie_store.clear()
            self._mark(False)
            self._last_login_credentials = None

    async def login(self, credentials: Credentials) -> bool:
        """
        Explicit login for callers that want a yes/no answer instead of an exception.
        """
        async with self._lock:
            try:
                await self._fresh_login(credentials)
            except AuthenticationRejected:
                return False
            return True

    def _joined_recent_login(self, observed_generation: int, creds: Credentials) -> bool:
        return (
            self._login_generation != observed_generation
            and self.last_verified_outcome
            and self._last_login_credentials == creds
        )

    async def _fresh_login(self, creds: Credentials) -> None:
        # Caller holds self._lock.
        self.last_verified_outcome = False
        try:
            ok = await self._protocol.login(creds)
        except BaseException:
            self._mark(False)
            raise

        self._mark(ok)
        if not ok:
            raise AuthenticationRejected(f"Portal rejected credentials for {creds.enrollment_id}")

        delay = self._portal.settle_delay_s
        if delay > 0:
            await self._sleep(delay)

        # Published only once the session is usable; waiters compare against this.
        self._login_generation += 1
        self._last_login_credentials = creds

    async def _probe(self) -> bool:
        # Caller holds self._lock.
        store = self._client.cookie_store
        if not store.has_live_session_cookie():
            logger.debug("Session probe: no live session cookie")
            self._mark(False)
            return False

        try:
            res = await self._client.get(
                self._portal.landing_url,
                headers={"Cache-Control": "no-cache", "Referer": self._portal.login_page_url},
            )
        except TransportError:
            logger.warning("Session probe failed at transport level", exc_info=True)
            self._mark(False)
            return False

        lowered = (res.body or "").lower()
        timed_out = any(p in lowered for p in self._sel.timeout_phrases)
        on_login_page = self._login_page_marker in res.final_url.lower()
        has_frames = any(m in lowered for m in self._sel.session_frame_markers)

        valid = res.status == 200 and not timed_out and not on_login_page and has_frames
        logger.debug(
            "Session probe: status=%d timeout_phrase=%s login_redirect=%s frames=%s -> %s",
            res.status,
            timed_out,
            on_login_page,
            has_frames,
            valid,
        )
        self._mark(valid)
        return valid

    def _mark(self, outcome: bool) -> None:
        self.last_verified_at = self._clock()
        self.last_verified_outcome = bool(outcome)
