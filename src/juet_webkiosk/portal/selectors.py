from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TableSpec:
    """
    How to find and validate one record kind's data table.

    `selectors` are tried first (CSS, in priority order); if none matches, the first table whose
    header row mentions `header_label` wins.
    """

    selectors: tuple[str, ...]
    header_label: str
    min_columns: int


def _default_tables() -> dict[str, TableSpec]:
    return {
        "attendance": TableSpec(
            selectors=("table.sort-table", "table#table-1"),
            header_label="Subject",
            min_columns=6,
        ),
        "marks": TableSpec(
            selectors=("table#table-1", "table.sort-table"),
            header_label="Marks",
            min_columns=5,
        ),
        "subjects": TableSpec(
            selectors=("table#table-1", "table.sort-table"),
            header_label="Subject",
            min_columns=3,
        ),
        "faculty": TableSpec(
            selectors=("table#table-1", "table.sort-table"),
            header_label="Faculty",
            min_columns=3,
        ),
        "disciplinary": TableSpec(
            selectors=("table#table-1", "table.sort-table"),
            header_label="Action",
            min_columns=3,
        ),
        "seating": TableSpec(
            selectors=("table#table-1", "table.sort-table"),
            header_label="Room",
            min_columns=4,
        ),
        "cgpa": TableSpec(
            selectors=("table#table-1", "table.sort-table"),
            header_label="CGPA",
            min_columns=4,
        ),
    }


@dataclass(frozen=True)
class PortalSelectors:
    """
    Webkiosk is a legacy JSP portal; its markup drifts between deployments.
    Keep all selectors/text hooks here for easy maintenance.
    """

    # Captcha (tried in this order)
    captcha_noselect: str = ".noselect"
    captcha_label_text: str = "Enter Captcha"
    captcha_known_selectors: str = "font[face=Arial][color=blue], .loginCaptcha, #captcha, #cap"
    captcha_image_selector: str = "img[src*=captcha], img[alt*=captcha]"
    # Branding text that happens to look like a captcha token.
    captcha_decoy: str = "Jaypee"
    captcha_min_len: int = 4
    captcha_max_len: int = 6

    # Login judgement
    failure_keywords: tuple[str, ...] = ("invalid", "error", "incorrect", "failed")
    frameset_marker: str = "<frameset"
    verification_keywords: tuple[str, ...] = ("student", "juet")
    verification_min_length: int = 100
    empty_body_max_length: int = 10

    # Session probing
    timeout_phrases: tuple[str, ...] = (
        "session timeout",
        "session expired",
        "please login",
        "login again",
        "invalid session",
    )
    session_frame_markers: tuple[str, ...] = ("<frameset", "frameleftstudent.jsp", "juet")

    # Data pages
    row_ordinal_pattern: str = r"^\d+\.?$"
    tables: dict[str, TableSpec] = field(default_factory=_default_tables)
