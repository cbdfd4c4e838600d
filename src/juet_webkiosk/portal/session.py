from __future__ import annotations

import logging
from dataclasses import dataclass
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Mapping, Optional
from urllib.parse import urljoin, urlparse

import httpx

from ..config import DEFAULT_USER_AGENT
from ..errors import TransportError
from .cookies import CookieStore, parse_set_cookie


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
}
MAX_REDIRECTS = 10


@dataclass(frozen=True)
class FetchResult:
    status: int
    final_url: str
    body: str


def _reject_all_cookies_jar() -> CookieJar:
    # The CookieStore is the only cookie state; keep httpx's own jar permanently empty.
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


class SessionClient:
    """
    Thin async HTTP layer for the portal.

    Redirects are followed here (not by httpx) so that every hop's `Set-Cookie` is written to the
    CookieStore and every hop's request carries the store's cookies.
    """

    def __init__(
        self,
        *,
        cookie_store: CookieStore,
        timeout_s: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cookie_store = cookie_store
        headers = dict(DEFAULT_HEADERS)
        headers["User-Agent"] = user_agent or DEFAULT_USER_AGENT
        self._http = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(connect=timeout_s, read=timeout_s, write=timeout_s, pool=timeout_s),
            follow_redirects=False,
            cookies=_reject_all_cookies_jar(),
            transport=transport,
        )

    async def __aenter__(self) -> "SessionClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get(self, url: str, *, headers: Optional[Mapping[str, str]] = None) -> FetchResult:
        return await self.fetch("GET", url, headers=headers)

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> FetchResult:
        return await self.fetch("POST", url, data=data, headers=headers)

    async def fetch(
        self,
        method: str,
        url: str,
        *,
        data: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> FetchResult:
        method = method.upper()
        current_url = url

        for _hop in range(MAX_REDIRECTS + 1):
            resp = await self._send_once(method, current_url, data=data, headers=headers)
            self._store_cookies(current_url, resp)

            location = resp.headers.get("location")
            if resp.is_redirect and location:
                next_url = urljoin(current_url, location)
                logger.debug("Redirect %d %s -> %s", resp.status_code, current_url, next_url)
                if resp.status_code in (301, 302, 303) and method != "HEAD":
                    method = "GET"
                    data = None
                current_url = next_url
                continue

            body = resp.text
            logger.debug(
                "%s %s -> %d (%d chars)",
                method,
                current_url,
                resp.status_code,
                len(body),
            )
            return FetchResult(
                status=resp.status_code,
                final_url=current_url,
                body=body,
            )

        raise TransportError(f"Too many redirects starting from {url}")

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        data: Optional[Mapping[str, str]],
        headers: Optional[Mapping[str, str]],
    ) -> httpx.Response:
        req_headers = dict(headers or {})
        host = (urlparse(url).hostname or "").lower()
        cookie_header = self.cookie_store.cookie_header(host, url)
        if cookie_header:
            req_headers["Cookie"] = cookie_header

        try:
            return await self._http.request(
                method,
                url,
                data=dict(data) if data is not None else None,
                headers=req_headers,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out: {method} {url} ({e.__class__.__name__})") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP transport failure: {method} {url} ({e})") from e

    def _store_cookies(self, request_url: str, resp: httpx.Response) -> None:
        raw = resp.headers.get_list("set-cookie")
        if not raw:
            return
        cookies = []
        for header in raw:
            c = parse_set_cookie(header, request_url)
            if c is not None:
                cookies.append(c)
        host = (urlparse(request_url).hostname or "").lower()
        self.cookie_store.save(host, cookies)
