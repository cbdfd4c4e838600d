from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from ..config import AppConfig, PortalConfig
from ..credential_cache import CredentialCache, MemoryCredentialCache
from ..errors import NoDataFound, SessionTimeout, TransportError, WebkioskError
from ..models import (
    AttendanceRecord,
    CGPARecord,
    Credentials,
    DisciplinaryAction,
    MarksRecord,
    SeatingPlan,
    SubjectFaculty,
    SubjectInfo,
)
from ..util.debug_bundle import save_html_snapshot
from .cookies import CookieStore
from .extract import (
    ATTENDANCE,
    CGPA,
    DISCIPLINARY,
    FACULTY,
    MARKS,
    SEATING,
    SUBJECTS,
    extract,
    find_table,
)
from .guardian import SessionGuardian
from .selectors import PortalSelectors
from .session import SessionClient


logger = logging.getLogger(__name__)

ACADEMIC_CATEGORIES: tuple[str, ...] = (ATTENDANCE, SUBJECTS, FACULTY, DISCIPLINARY)
EXAM_CATEGORIES: tuple[str, ...] = (MARKS, CGPA, SEATING)


@dataclass(frozen=True)
class CategoryResult:
    """One category's outcome inside an aggregate fetch: records, or the error that stopped it."""

    category: str
    records: tuple[Any, ...] = ()
    error: Optional[WebkioskError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WebkioskClient:
    """
    Public entry point: one getter per record kind, plus aggregate fetches.

    Every getter asks the SessionGuardian for a fresh session, fetches the category page, and hands
    the body to the extractor. A page that reports a session timeout is retried exactly once after
    the guardian recovers the session.
    """

    def __init__(
        self,
        *,
        portal: Optional[PortalConfig] = None,
        cache: Optional[CredentialCache | MemoryCredentialCache] = None,
        selectors: Optional[PortalSelectors] = None,
        debug_dir: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.portal = portal or PortalConfig()
        self.selectors = selectors or PortalSelectors()
        self.cache = cache
        self._debug_dir = debug_dir
        self._login_page_marker = posixpath.basename(self.portal.login_page_path).lower()

        self.cookie_store = CookieStore(session_cookie_name=self.portal.session_cookie_name)
        self.session = SessionClient(
            cookie_store=self.cookie_store,
            timeout_s=self.portal.timeout_s,
            user_agent=self.portal.user_agent,
            transport=transport,
        )
        self.guardian = SessionGuardian(
            client=self.session,
            portal=self.portal,
            credential_source=cache,
            selectors=self.selectors,
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        *,
        cache: Optional[CredentialCache | MemoryCredentialCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "WebkioskClient":
        return cls(
            portal=cfg.portal,
            cache=cache,
            debug_dir=cfg.debug.debug_dir,
            transport=transport,
        )

    async def __aenter__(self) -> "WebkioskClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.session.aclose()

    # ---------- session ----------

    async def login(self, credentials: Credentials) -> bool:
        ok = await self.guardian.login(credentials)
        if ok and self.cache is not None:
            self.cache.save(credentials)
        return ok

    async def logout(self) -> None:
        await self.guardian.invalidate()
        if self.cache is not None:
            self.cache.clear()

    # ---------- per-category getters ----------

    async def get_attendance(self, credentials: Optional[Credentials] = None) -> list[AttendanceRecord]:
        return await self._get(ATTENDANCE, credentials)

    async def get_marks(self, credentials: Optional[Credentials] = None) -> list[MarksRecord]:
        return await self._get(MARKS, credentials)

    async def get_cgpa(self, credentials: Optional[Credentials] = None) -> list[CGPARecord]:
        return await self._get(CGPA, credentials)

    async def get_subjects(self, credentials: Optional[Credentials] = None) -> list[SubjectInfo]:
        return await self._get(SUBJECTS, credentials)

    async def get_subject_faculty(self, credentials: Optional[Credentials] = None) -> list[SubjectFaculty]:
        return await self._get(FACULTY, credentials)

    async def get_disciplinary_actions(
        self, credentials: Optional[Credentials] = None
    ) -> list[DisciplinaryAction]:
        return await self._get(DISCIPLINARY, credentials)

    async def get_seating_plan(self, credentials: Optional[Credentials] = None) -> list[SeatingPlan]:
        return await self._get(SEATING, credentials)

    async def get_category(self, category: str, credentials: Optional[Credentials] = None) -> list:
        return await self._get(category, credentials)

    # ---------- aggregates ----------

    async def get_all_academic_data(
        self, credentials: Optional[Credentials] = None
    ) -> dict[str, CategoryResult]:
        return await self.gather_categories(ACADEMIC_CATEGORIES, credentials)

    async def get_all_exam_data(self, credentials: Optional[Credentials] = None) -> dict[str, CategoryResult]:
        return await self.gather_categories(EXAM_CATEGORIES, credentials)

    async def gather_categories(
        self,
        categories: Sequence[str],
        credentials: Optional[Credentials] = None,
    ) -> dict[str, CategoryResult]:
        """
        Log in once, then fetch every category concurrently. Each category succeeds or fails on
        its own; only a failed login fails them all (with the same error).
        """
        try:
            creds = await self.guardian.ensure_session(credentials)
        except WebkioskError as e:
            return {c: CategoryResult(category=c, error=e) for c in categories}

        results = await asyncio.gather(
            *(self._fetch_with_recovery(c, creds) for c in categories),
            return_exceptions=True,
        )

        out: dict[str, CategoryResult] = {}
        for category, result in zip(categories, results):
            if isinstance(result, WebkioskError):
                logger.warning("Category %s failed: %s", category, result)
                out[category] = CategoryResult(category=category, error=result)
            elif isinstance(result, BaseException):
                raise result
            else:
                out[category] = CategoryResult(category=category, records=tuple(result))
        return out

    # ---------- internals ----------

    async def _get(self, category: str, credentials: Optional[Credentials]) -> list:
        creds = await self.guardian.ensure_session(credentials)
        return await self._fetch_with_recovery(category, creds)

    async def _fetch_with_recovery(self, category: str, creds: Credentials) -> list:
        try:
            return await self._fetch_category(category)
        except SessionTimeout:
            logger.warning("Session timed out while fetching %s; recovering once", category)
            await self.guardian.recover(creds)
            return await self._fetch_category(category)

    async def _fetch_category(self, category: str) -> list:
        url = self.portal.endpoint_url(category)
        res = await self.session.get(
            url,
            headers={"Referer": self.portal.landing_url, "Cache-Control": "no-cache"},
        )

        lowered = (res.body or "").lower()
        if self._login_page_marker in res.final_url.lower() or any(
            p in lowered for p in self.selectors.timeout_phrases
        ):
            raise SessionTimeout(f"Session timeout while fetching {category}")
        if res.status != 200:
            raise TransportError(f"{category} page returned HTTP {res.status}")

        records = extract(category, res.body, self.selectors)
        if not records and find_table(category, res.body, self.selectors) is None:
            snap = save_html_snapshot(debug_dir=self._debug_dir, category=category, html=res.body)
            if snap is not None:
                logger.info("Saved %s page without data table to %s", category, snap)
            raise NoDataFound(category)

        logger.info("Fetched %d %s record(s)", len(records), category)
        return records
