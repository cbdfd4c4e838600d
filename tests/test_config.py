from __future__ import annotations

from pathlib import Path

import pytest

from juet_webkiosk.config import DEFAULT_ENDPOINTS, PortalConfig, load_config


_ENV_KEYS = (
    "WEBKIOSK_ENROLLMENT",
    "WEBKIOSK_DOB",
    "WEBKIOSK_PASSWORD",
    "WEBKIOSK_USER_TYPE",
    "WEBKIOSK_BASE_URL",
    "WEBKIOSK_TIMEOUT_S",
    "WEBKIOSK_SETTLE_DELAY_S",
    "CREDENTIAL_CACHE_PATH",
    "LOG_LEVEL",
    "LOG_FILE",
    "DEBUG_DIR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_without_file() -> None:
    cfg = load_config(None)
    assert cfg.portal.base_url == "https://webkiosk.juet.ac.in"
    assert cfg.portal.login_page_url == "https://webkiosk.juet.ac.in/index.jsp"
    assert cfg.portal.login_action_url == "https://webkiosk.juet.ac.in/CommonFiles/UserAction.jsp"
    assert cfg.portal.endpoint_url("attendance").endswith("/StudentFiles/Academic/StudentAttendanceList.jsp")
    assert cfg.portal.settle_delay_s == 1.0
    assert cfg.credentials.to_credentials() is None
    assert cfg.cache.db_path == "data/credentials.db"


def test_env_supplies_credentials_and_portal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WEBKIOSK_ENROLLMENT", " 211B123 ")
    monkeypatch.setenv("WEBKIOSK_DOB", "15-07-2003")
    monkeypatch.setenv("WEBKIOSK_PASSWORD", "s3cret")
    monkeypatch.setenv("WEBKIOSK_BASE_URL", "https://webkiosk.example.edu/")
    monkeypatch.setenv("WEBKIOSK_TIMEOUT_S", "12.5")

    cfg = load_config(tmp_path / "missing.yaml")
    creds = cfg.credentials.to_credentials()
    assert creds is not None
    assert creds.enrollment_id == "211B123"
    assert creds.user_type == "S"
    assert cfg.portal.base_url == "https://webkiosk.example.edu"
    assert cfg.portal.timeout_s == 12.5


def test_yaml_overrides_merge_with_env_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("WEBKIOSK_PASSWORD", "from-env")
    cfg_path = _write(
        tmp_path,
        "cfg.yaml",
        """
portal:
  settle_delay_s: 0
  endpoints:
    marks: "StudentFiles/Exam/StudentEventMarksViewNew.jsp"
credentials:
  enrollment_id: "211B123"
  date_of_birth: "15-07-2003"
  password: "${WEBKIOSK_PASSWORD}"
""",
    )
    cfg = load_config(cfg_path)
    assert cfg.portal.settle_delay_s == 0
    assert cfg.portal.endpoints["marks"] == "StudentFiles/Exam/StudentEventMarksViewNew.jsp"
    assert cfg.portal.endpoints["attendance"] == DEFAULT_ENDPOINTS["attendance"]
    assert cfg.credentials.password == "from-env"


def test_invalid_timeout_env_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEBKIOSK_TIMEOUT_S", "soon")
    with pytest.raises(ValueError):
        load_config(None)


def test_portal_requires_absolute_base_url() -> None:
    with pytest.raises(ValueError):
        PortalConfig(base_url="webkiosk.juet.ac.in")


def test_portal_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError):
        PortalConfig(timeout_s=0)


def test_unknown_endpoint_category() -> None:
    with pytest.raises(ValueError):
        PortalConfig().endpoint_url("library")
