from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator

from .models import STUDENT_USER_TYPE, Credentials


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_BASE_URL = "https://webkiosk.juet.ac.in"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# One data page per record kind, relative to the portal root.
DEFAULT_ENDPOINTS: dict[str, str] = {
    "attendance": "StudentFiles/Academic/StudentAttendanceList.jsp",
    "marks": "StudentFiles/Exam/StudentEventMarksView.jsp",
    "cgpa": "StudentFiles/Exam/StudCGPAReport.jsp",
    "subjects": "StudentFiles/Academic/StudSubjectTaken.jsp",
    "faculty": "StudentFiles/Academic/StudSubjectFaculty.jsp",
    "disciplinary": "StudentFiles/Academic/StudentDisciplinaryAction.jsp",
    "seating": "StudentFiles/Exam/StudViewSeatPlan.jsp",
}


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None


def _default_config_from_env() -> dict:
    """
    Provide a sensible env-only config so most users only need `.env`.

    YAML remains an optional override (endpoints and timeouts are the usual reasons to use it).
    """
    return {
        "portal": {
            "base_url": os.getenv("WEBKIOSK_BASE_URL", DEFAULT_BASE_URL),
            "timeout_s": _env_float("WEBKIOSK_TIMEOUT_S", 30.0),
            "settle_delay_s": _env_float("WEBKIOSK_SETTLE_DELAY_S", 1.0),
        },
        "credentials": {
            "enrollment_id": os.getenv("WEBKIOSK_ENROLLMENT", ""),
            "date_of_birth": os.getenv("WEBKIOSK_DOB", ""),
            "password": os.getenv("WEBKIOSK_PASSWORD", ""),
            "user_type": os.getenv("WEBKIOSK_USER_TYPE", STUDENT_USER_TYPE),
        },
        "cache": {
            "db_path": os.getenv("CREDENTIAL_CACHE_PATH", "data/credentials.db"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/webkiosk.log"),
        },
        "debug": {
            "debug_dir": os.getenv("DEBUG_DIR", ""),
        },
    }


class PortalConfig(BaseModel):
    """
    Where the portal lives and how to talk to it.

    Paths are relative to `base_url`. Webkiosk deployments at other institutes use the same JSP
    layout, so usually only `base_url` and `institute_code` change.
    """

    base_url: str = DEFAULT_BASE_URL
    institute_code: str = "JUET"
    login_page_path: str = "index.jsp"
    login_action_path: str = "CommonFiles/UserAction.jsp"
    landing_path: str = "StudentFiles/StudentPage.jsp"
    verification_path: str = "StudentFiles/FrameLeftStudent.jsp"
    endpoints: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    session_cookie_name: str = "JSESSIONID"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_s: float = 30.0
    # The portal needs a moment after login before data pages see the new session.
    settle_delay_s: float = 1.0

    @model_validator(mode="after")
    def _normalize_and_validate(self) -> "PortalConfig":
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("portal.base_url must be a full URL like 'https://webkiosk.juet.ac.in'")
        if self.timeout_s <= 0:
            raise ValueError("portal.timeout_s must be positive")
        if self.settle_delay_s < 0:
            raise ValueError("portal.settle_delay_s must not be negative")

        # Partial YAML overrides keep the remaining default endpoints.
        merged = dict(DEFAULT_ENDPOINTS)
        merged.update({k: v for k, v in (self.endpoints or {}).items() if v})

        self.base_url = base_url
        self.endpoints = merged
        return self

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    @property
    def root_url(self) -> str:
        return self.base_url

    @property
    def login_page_url(self) -> str:
        return self.url(self.login_page_path)

    @property
    def login_action_url(self) -> str:
        return self.url(self.login_action_path)

    @property
    def landing_url(self) -> str:
        return self.url(self.landing_path)

    @property
    def verification_url(self) -> str:
        return self.url(self.verification_path)

    def endpoint_url(self, category: str) -> str:
        try:
            return self.url(self.endpoints[category])
        except KeyError:
            raise ValueError(f"Unknown data category: {category!r}") from None


class CredentialsConfig(BaseModel):
    enrollment_id: str = ""
    date_of_birth: str = ""
    password: str = Field(default="", repr=False)
    user_type: str = STUDENT_USER_TYPE

    def to_credentials(self) -> Optional[Credentials]:
        if not (self.enrollment_id and self.date_of_birth and self.password):
            return None
        return Credentials(
            enrollment_id=self.enrollment_id.strip(),
            date_of_birth=self.date_of_birth.strip(),
            password=self.password,
            user_type=(self.user_type or STUDENT_USER_TYPE).strip(),
        )


class CacheConfig(BaseModel):
    db_path: str = "data/credentials.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/webkiosk.log"


class DebugConfig(BaseModel):
    # When set, data pages without a recognizable table are saved here as .html.
    debug_dir: str = ""


class AppConfig(BaseModel):
    portal: PortalConfig = PortalConfig()
    credentials: CredentialsConfig = CredentialsConfig()
    cache: CacheConfig = CacheConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: DebugConfig = DebugConfig()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
