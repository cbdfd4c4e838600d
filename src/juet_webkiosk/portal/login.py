from __future__ import annotations

import logging
import posixpath
from typing import Optional

from ..config import PortalConfig
from ..errors import CaptchaNotFound, LoginPageUnavailable, LoginTransportError, TransportError
from ..models import Credentials
from ..util.dates import normalize_dob
from .captcha import locate_captcha
from .selectors import PortalSelectors
from .session import FetchResult, SessionClient


logger = logging.getLogger(__name__)


def build_login_form(credentials: Credentials, captcha: str, *, institute_code: str = "JUET") -> dict[str, str]:
    """
    The exact form Webkiosk's index.jsp posts to UserAction.jsp. Field names are case-sensitive.
    """
    try:
        dob = normalize_dob(credentials.date_of_birth)
    except (ValueError, OverflowError):
        # Let the portal judge whatever the user typed.
        dob = credentials.date_of_birth.strip()

    return {
        "InstCode": institute_code,
        "UserType": credentials.portal_user_type(),
        "MemberCode": credentials.enrollment_id.strip(),
        "DATE1": dob,
        "Password": credentials.password,
        "txtcap": captcha,
        "BTNSubmit": "Submit",
        "x": "",
    }


class LoginProtocol:
    """
    The Webkiosk login handshake:

    1) reset cookies (stale cookies poison the next captcha check)
    2) GET the login page
    3) read the captcha token printed on it
    4) POST credentials + token with Referer/Origin set to the portal root
    5) judge the outcome from several signals

    On success the portal often answers with an empty body (and a frameset on failure, or the
    other way around depending on deployment), so no single signal is trusted. When the primary
    signals look good but the body is empty, a follow-up request to an authenticated-only frame
    decides.
    """

    def __init__(
        self,
        *,
        client: SessionClient,
        portal: PortalConfig,
        selectors: Optional[PortalSelectors] = None,
    ) -> None:
        self._client = client
        self._portal = portal
        self._sel = selectors or PortalSelectors()
        self._landing_marker = posixpath.basename(portal.landing_path).lower()

    @property
    def cookie_store(self):
        return self._client.cookie_store

    async def login(self, credentials: Credentials) -> bool:
        """
        Returns True/False for accepted/rejected credentials.

        Raises LoginPageUnavailable, CaptchaNotFound or LoginTransportError. Any outcome other than
        True (including cancellation) leaves the cookie store empty, i.e. logged out.
        """
        store = self._client.cookie_store
        store.clear()
        ok = False
        try:
            ok = await self._handshake(credentials)
            return ok
        except LoginTransportError:
            raise
        except TransportError as e:
            raise LoginTransportError(str(e)) from e
        finally:
            if not ok:
                store.clear()

    async def _handshake(self, credentials: Credentials) -> bool:
        logger.info("Login: fetching login page for %s", credentials.enrollment_id)
        page = await self._client.get(self._portal.login_page_url)
        if page.status != 200:
            raise LoginPageUnavailable(page.status)

        captcha = locate_captcha(page.body, self._sel)
        if captcha is None:
            raise CaptchaNotFound("Could not find the captcha token on the login page")
        logger.debug("Login: captcha token=%s", captcha)

        form = build_login_form(credentials, captcha, institute_code=self._portal.institute_code)
        root = self._portal.root_url
        result = await self._client.post_form(
            self._portal.login_action_url,
            form,
            headers={
                "Referer": root,
                "Origin": root,
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )

        ok = await self._judge(result)
        if ok:
            logger.info("Login: accepted for %s", credentials.enrollment_id)
        else:
            logger.warning("Login: rejected for %s", credentials.enrollment_id)
        return ok

    async def _judge(self, result: FetchResult) -> bool:
        body = result.body or ""
        lowered = body.lower()

        status_ok = result.status == 200
        has_cookie = self._client.cookie_store.has_live_session_cookie()
        on_landing = self._landing_marker in result.final_url.lower()
        near_empty = not body.strip() or len(body) <= self._sel.empty_body_max_length

        logger.debug(
            "Login judgement: status=%d cookie=%s landing=%s near_empty=%s final_url=%s",
            result.status,
            has_cookie,
            on_landing,
            near_empty,
            result.final_url,
        )

        primary = status_ok and has_cookie and on_landing
        if primary and near_empty:
            # Normal success shape for this portal; let an authenticated page decide.
            return await self.verify()

        no_failure_words = not any(k in lowered for k in self._sel.failure_keywords)
        has_frameset = self._sel.frameset_marker in lowered
        logger.debug("Login judgement: no_failure_words=%s frameset=%s", no_failure_words, has_frameset)
        return primary and no_failure_words and has_frameset

    async def verify(self) -> bool:
        """
        Authenticated-only probe: the left navigation frame renders only for a live session.
        """
        probe = await self._client.get(self._portal.verification_url)
        lowered = (probe.body or "").lower()
        ok = (
            probe.status == 200
            and len(probe.body or "") > self._sel.verification_min_length
            and any(k in lowered for k in self._sel.verification_keywords)
        )
        logger.debug(
            "Login verification: status=%d length=%d ok=%s",
            probe.status,
            len(probe.body or ""),
            ok,
        )
        return ok
