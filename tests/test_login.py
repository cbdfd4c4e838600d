from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import BASE_URL, CAPTCHA, DOB, ENROLLMENT, FRAMESET, FakePortal
from juet_webkiosk.config import PortalConfig
from juet_webkiosk.errors import CaptchaNotFound, LoginPageUnavailable, LoginTransportError
from juet_webkiosk.models import Credentials
from juet_webkiosk.portal.cookies import CookieStore
from juet_webkiosk.portal.login import LoginProtocol, build_login_form
from juet_webkiosk.portal.session import SessionClient


def _protocol(transport: httpx.AsyncBaseTransport) -> LoginProtocol:
    client = SessionClient(cookie_store=CookieStore(), transport=transport)
    return LoginProtocol(client=client, portal=PortalConfig(base_url=BASE_URL))


def _run_login(protocol: LoginProtocol, creds: Credentials) -> bool:
    async def _go() -> bool:
        try:
            return await protocol.login(creds)
        finally:
            await protocol._client.aclose()

    return asyncio.run(_go())


def test_build_login_form_fields() -> None:
    creds = Credentials(enrollment_id=" 211B123 ", date_of_birth="2003-07-15", password="pw", user_type="Student")
    form = build_login_form(creds, "aB3f9")
    assert form == {
        "InstCode": "JUET",
        "UserType": "S",
        "MemberCode": "211B123",
        "DATE1": "15-07-2003",
        "Password": "pw",
        "txtcap": "aB3f9",
        "BTNSubmit": "Submit",
        "x": "",
    }


def test_build_login_form_keeps_unparseable_dob() -> None:
    creds = Credentials(enrollment_id="1", date_of_birth="not a date", password="pw")
    assert build_login_form(creds, "abcd")["DATE1"] == "not a date"


def test_empty_body_login_is_decided_by_verification_probe(fake_portal: FakePortal, credentials: Credentials) -> None:
    protocol = _protocol(fake_portal.transport())

    assert _run_login(protocol, credentials) is True

    assert len(fake_portal.posts) == 1
    post = fake_portal.posts[0]
    assert post["txtcap"] == [CAPTCHA]
    assert post["MemberCode"] == [ENROLLMENT]
    assert post["DATE1"] == [DOB]
    assert post["InstCode"] == ["JUET"]
    assert "/StudentFiles/FrameLeftStudent.jsp" in fake_portal.paths()
    assert protocol.cookie_store.has_live_session_cookie() is True


def test_login_post_carries_referer_and_origin(fake_portal: FakePortal, credentials: Credentials) -> None:
    _run_login(_protocol(fake_portal.transport()), credentials)

    post = next(r for r in fake_portal.requests if r.method == "POST")
    assert post.headers["referer"] == BASE_URL
    assert post.headers["origin"] == BASE_URL
    assert post.headers["content-type"].startswith("application/x-www-form-urlencoded")
    assert post.headers["cookie"].startswith("JSESSIONID=PRE")


def test_failed_verification_probe_means_rejected(fake_portal: FakePortal, credentials: Credentials) -> None:
    fake_portal.verification_body = "<html></html>"
    protocol = _protocol(fake_portal.transport())

    assert _run_login(protocol, credentials) is False
    assert protocol.cookie_store.has_live_session_cookie() is False


def test_frameset_body_succeeds_without_probe(fake_portal: FakePortal, credentials: Credentials) -> None:
    fake_portal.landing_body = FRAMESET
    protocol = _protocol(fake_portal.transport())

    assert _run_login(protocol, credentials) is True
    assert "/StudentFiles/FrameLeftStudent.jsp" not in fake_portal.paths()


def test_failure_keyword_in_body_means_rejected(fake_portal: FakePortal, credentials: Credentials) -> None:
    fake_portal.landing_body = FRAMESET.replace("<html>", "<html><b>Invalid login</b>")
    protocol = _protocol(fake_portal.transport())

    assert _run_login(protocol, credentials) is False


def test_wrong_password_is_rejected_and_cookies_cleared(fake_portal: FakePortal, credentials: Credentials) -> None:
    protocol = _protocol(fake_portal.transport())
    wrong = credentials.model_copy(update={"password": "nope"})

    assert _run_login(protocol, wrong) is False
    assert protocol.cookie_store.hosts() == []


def test_login_page_unavailable(fake_portal: FakePortal, credentials: Credentials) -> None:
    fake_portal.login_page_status = 503
    protocol = _protocol(fake_portal.transport())

    with pytest.raises(LoginPageUnavailable) as exc:
        _run_login(protocol, credentials)
    assert exc.value.status_code == 503
    assert exc.value.retryable is True
    assert fake_portal.posts == []
    assert protocol.cookie_store.hosts() == []


def test_captcha_not_found(fake_portal: FakePortal, credentials: Credentials) -> None:
    fake_portal.login_page_html = "<html><body>Under maintenance</body></html>"
    protocol = _protocol(fake_portal.transport())

    with pytest.raises(CaptchaNotFound):
        _run_login(protocol, credentials)
    assert fake_portal.posts == []
    assert protocol.cookie_store.hosts() == []


def test_transport_failure_becomes_login_transport_error(credentials: Credentials) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    protocol = _protocol(httpx.MockTransport(handler))
    with pytest.raises(LoginTransportError) as exc:
        _run_login(protocol, credentials)
    assert exc.value.retryable is True
    assert protocol.cookie_store.hosts() == []


def test_timed_out_post_is_a_transport_error_not_a_rejection(
    fake_portal: FakePortal, credentials: Credentials
) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            raise httpx.ReadTimeout("read timed out", request=request)
        return await fake_portal.handle(request)

    protocol = _protocol(httpx.MockTransport(handler))
    with pytest.raises(LoginTransportError) as exc:
        _run_login(protocol, credentials)
    assert exc.value.retryable is True
    assert "Timed out" in str(exc.value)
    assert protocol.cookie_store.hosts() == []


def test_repeated_login_leaves_one_session_cookie(fake_portal: FakePortal, credentials: Credentials) -> None:
    protocol = _protocol(fake_portal.transport())

    async def _go() -> list[list[str]]:
        seen = []
        try:
            for _ in range(2):
                assert await protocol.login(credentials) is True
                cookies = protocol.cookie_store.load("webkiosk.juet.ac.in", f"{BASE_URL}/StudentFiles/StudentPage.jsp")
                seen.append([f"{c.name}={c.value}" for c in cookies])
        finally:
            await protocol._client.aclose()
        return seen

    first, second = asyncio.run(_go())
    assert len(first) == 1 and len(second) == 1
    assert first != second
    assert second[0].startswith("JSESSIONID=AUTH")
