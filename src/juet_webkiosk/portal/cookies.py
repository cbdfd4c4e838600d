from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

from ..util.dates import parse_http_date


logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "JSESSIONID"


@dataclass(frozen=True)
class Cookie:
    name: str
    value: str
    domain: str
    path: str = "/"
    # Epoch seconds; None means a session cookie that lives until the store is cleared.
    expires_at: Optional[float] = None
    persistent: bool = False

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def matches_host(self, host: str) -> bool:
        host = (host or "").lower()
        domain = (self.domain or "").lower()
        if not domain:
            return False
        if domain.startswith("."):
            bare = domain[1:]
            return host == bare or host.endswith(domain)
        return host == domain or host.endswith("." + domain)

    def matches_path(self, path: str) -> bool:
        return (path or "/").startswith(self.path or "/")


def _default_path(request_path: str) -> str:
    # RFC 6265 5.1.4: the "directory" of the request path.
    if not request_path or not request_path.startswith("/"):
        return "/"
    idx = request_path.rfind("/")
    if idx <= 0:
        return "/"
    return request_path[:idx]


def parse_set_cookie(header: str, request_url: str, *, now: Optional[float] = None) -> Optional[Cookie]:
    """
    Parse a single `Set-Cookie` header value.

    Handles Domain, Path, Expires and Max-Age (Max-Age wins over Expires). Returns None for
    headers without a `name=value` pair.
    """
    now = time.time() if now is None else now
    parts = [p.strip() for p in (header or "").split(";")]
    if not parts or "=" not in parts[0]:
        return None

    name, _, value = parts[0].partition("=")
    name = name.strip()
    if not name:
        return None
    value = value.strip().strip('"')

    parsed = urlparse(request_url)
    host = (parsed.hostname or "").lower()
    domain = host
    path = _default_path(parsed.path)
    expires_at: Optional[float] = None
    max_age: Optional[float] = None
    persistent = False

    for attr in parts[1:]:
        if not attr:
            continue
        key, _, val = attr.partition("=")
        key = key.strip().lower()
        val = val.strip()
        if key == "domain" and val:
            domain = val.lower()
            if not domain.startswith("."):
                domain = "." + domain
        elif key == "path" and val.startswith("/"):
            path = val
        elif key == "expires":
            parsed_exp = parse_http_date(val)
            if parsed_exp is not None:
                expires_at = parsed_exp
                persistent = True
        elif key == "max-age":
            try:
                max_age = float(int(val))
            except ValueError:
                continue
            persistent = True

    if max_age is not None:
        expires_at = now + max_age

    return Cookie(
        name=name,
        value=value,
        domain=domain,
        path=path,
        expires_at=expires_at,
        persistent=persistent,
    )


class CookieStore:
    """
    Per-host cookie persistence for the portal session.

    The portal reissues its complete cookie set on every response, so `save()` replaces the
    host's set instead of merging into it. Each host's set is stored as an immutable tuple and
    swapped in with a single assignment, so readers never observe a half-written set.
    """

    def __init__(
        self,
        *,
        session_cookie_name: str = SESSION_COOKIE_NAME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_cookie_name = session_cookie_name
        self._clock = clock
        self._by_host: dict[str, tuple[Cookie, ...]] = {}

    def save(self, host: str, cookies: Iterable[Cookie]) -> None:
        batch = tuple(cookies)
        if not batch:
            return
        key = (host or "").lower()
        self._by_host[key] = batch
        logger.debug(
            "Saved %d cookie(s) for %s: %s",
            len(batch),
            key,
            ", ".join(f"{c.name}={_mask(c.value)}" for c in batch),
        )

    def load(self, host: str, request_url: str) -> list[Cookie]:
        parsed = urlparse(request_url)
        req_host = (parsed.hostname or host or "").lower()
        req_path = parsed.path or "/"
        now = self._clock()

        out: list[Cookie] = []
        for c in self._by_host.get((host or "").lower(), ()):
            if not c.matches_host(req_host):
                continue
            if not c.matches_path(req_path):
                continue
            if c.is_expired(now) and not c.persistent:
                continue
            out.append(c)
        return out

    def cookie_header(self, host: str, request_url: str) -> str:
        return "; ".join(f"{c.name}={c.value}" for c in self.load(host, request_url))

    def has_live_session_cookie(self) -> bool:
        now = self._clock()
        for batch in list(self._by_host.values()):
            for c in batch:
                if c.name == self._session_cookie_name and c.value.strip() and not c.is_expired(now):
                    return True
        return False

    def clear(self) -> None:
        self._by_host = {}
        logger.debug("Cookie store cleared")

    def hosts(self) -> list[str]:
        return sorted(self._by_host.keys())


def _mask(value: str) -> str:
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}...{value[-2:]}"
