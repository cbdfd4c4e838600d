from __future__ import annotations

import asyncio
import sys
from typing import Any, Optional
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "portal: integration smoke tests that require real Webkiosk credentials",
    )


BASE_URL = "https://webkiosk.juet.ac.in"
CAPTCHA = "aB3f9"
ENROLLMENT = "211B123"
DOB = "15-07-2003"
PASSWORD = "s3cret"

LOGIN_PAGE = f"""
<html><body>
<form name="LoginForm" method="post" action="CommonFiles/UserAction.jsp">
<table>
  <tr><td colspan="2"><font>Jaypee University of Engineering and Technology</font></td></tr>
  <tr><td>Enrollment No.</td><td><input name="MemberCode"></td></tr>
  <tr><td>Enter Captcha</td><td><span class="noselect">{CAPTCHA}</span></td></tr>
</table>
</form>
</body></html>
"""

LEFT_FRAME = (
    "<html><body><table><tr><td><b>JUET Webkiosk</b></td></tr>"
    "<tr><td><a href='Academic/StudentAttendanceList.jsp'>Student Attendance</a></td></tr>"
    "<tr><td><a href='Exam/StudentEventMarksView.jsp'>Exam Marks</a></td></tr></table></body></html>"
)

FRAMESET = (
    "<html><frameset cols='20%,80%'><frame src='FrameLeftStudent.jsp'>"
    "<frame src='StudentHome.jsp'></frameset></html>"
)

ATTENDANCE_PAGE = """
<html><body>
<table class="sort-table" id="table-1">
<thead>
<tr><td>SNo</td><td>Subject</td><td>Lecture+Tutorial(%)</td><td>Lecture(%)</td><td>Tutorial(%)</td><td>Practical(%)</td></tr>
</thead>
<tbody>
<tr><td>1</td><td>DATA STRUCTURES - 15B11CI311</td><td>80</td><td>78</td><td>85</td><td>&nbsp;</td></tr>
<tr><td>2</td><td>PHYSICS LAB-1 - 15B17PH171</td><td>&nbsp;</td><td>&nbsp;</td><td>&nbsp;</td><td>92</td></tr>
</tbody>
</table>
</body></html>
"""

SUBJECTS_PAGE = """
<html><body><table id="table-1">
<tr><td>SNo</td><td>Subject Code</td><td>Subject Name</td><td>Credits</td><td>Type</td></tr>
<tr><td>1</td><td>15B11CI311</td><td>DATA STRUCTURES</td><td>4</td><td>Core</td></tr>
</table></body></html>
"""

FACULTY_PAGE = """
<html><body><table id="table-1">
<tr><td>SNo</td><td>Subject</td><td>Lecture Faculty</td><td>Tutorial Faculty</td><td>Practical Faculty</td></tr>
<tr><td>1</td><td>DATA STRUCTURES</td><td>Dr. A. Sharma</td><td>Dr. A. Sharma</td><td>&nbsp;</td></tr>
</table></body></html>
"""

NO_TABLE_PAGE = "<html><body><p>Nothing to show here.</p></body></html>"


class FakePortal:
    """
    In-memory Webkiosk for httpx.MockTransport: captcha login, JSESSIONID sessions, and data pages
    that redirect to index.jsp once the session is gone.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.posts: list[dict[str, list[str]]] = []
        self.valid_sessions: set[str] = set()
        self._next_sid = 0

        self.login_page_status = 200
        self.login_page_html = LOGIN_PAGE
        # Body served at StudentPage.jsp; the real portal usually answers the login redirect with nothing.
        self.landing_body = ""
        self.verification_body = LEFT_FRAME
        self.expire_on_data_fetch = 0
        self.pages: dict[str, tuple[int, str]] = {
            "/StudentFiles/Academic/StudentAttendanceList.jsp": (200, ATTENDANCE_PAGE),
            "/StudentFiles/Academic/StudSubjectTaken.jsp": (200, SUBJECTS_PAGE),
            "/StudentFiles/Academic/StudSubjectFaculty.jsp": (200, FACULTY_PAGE),
            "/StudentFiles/Academic/StudentDisciplinaryAction.jsp": (200, NO_TABLE_PAGE),
        }

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def expire_all(self) -> None:
        self.valid_sessions.clear()

    def _new_sid(self, prefix: str) -> str:
        self._next_sid += 1
        return f"{prefix}{self._next_sid:04d}ABCDEF"

    def _session_of(self, request: httpx.Request) -> Optional[str]:
        for part in (request.headers.get("cookie") or "").split(";"):
            name, _, value = part.strip().partition("=")
            if name == "JSESSIONID":
                return value
        return None

    def _to_login(self) -> httpx.Response:
        return httpx.Response(302, headers={"Location": f"{BASE_URL}/index.jsp"})

    async def handle(self, request: httpx.Request) -> httpx.Response:
        # Yield so concurrent callers really interleave.
        await asyncio.sleep(0)
        self.requests.append(request)
        path = request.url.path

        if path == "/index.jsp":
            sid = self._new_sid("PRE")
            return httpx.Response(
                self.login_page_status,
                headers={"Set-Cookie": f"JSESSIONID={sid}; Path=/; HttpOnly"},
                text=self.login_page_html,
            )

        if path == "/CommonFiles/UserAction.jsp":
            form = parse_qs(request.content.decode(), keep_blank_values=True)
            self.posts.append(form)
            accepted = (
                form.get("MemberCode") == [ENROLLMENT]
                and form.get("DATE1") == [DOB]
                and form.get("Password") == [PASSWORD]
                and form.get("txtcap") == [CAPTCHA]
            )
            if not accepted:
                return httpx.Response(200, text="<html><body>Invalid Password or Captcha</body></html>")
            sid = self._new_sid("AUTH")
            self.valid_sessions.add(sid)
            return httpx.Response(
                302,
                headers={
                    "Location": f"{BASE_URL}/StudentFiles/StudentPage.jsp",
                    "Set-Cookie": f"JSESSIONID={sid}; Path=/; HttpOnly",
                },
            )

        if self._session_of(request) not in self.valid_sessions:
            return self._to_login()

        if path == "/StudentFiles/StudentPage.jsp":
            return httpx.Response(200, text=self.landing_body)
        if path == "/StudentFiles/FrameLeftStudent.jsp":
            return httpx.Response(200, text=self.verification_body)

        if path in self.pages:
            if self.expire_on_data_fetch > 0:
                self.expire_on_data_fetch -= 1
                self.expire_all()
                return self._to_login()
            status, body = self.pages[path]
            return httpx.Response(status, text=body)

        return httpx.Response(404, text="Not Found")


@pytest.fixture
def fake_portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def credentials():
    from juet_webkiosk.models import Credentials

    return Credentials(enrollment_id=ENROLLMENT, date_of_birth=DOB, password=PASSWORD)
