from __future__ import annotations

import logging
import re
from typing import Callable, Optional, Sequence, TypeVar

from bs4 import BeautifulSoup, Tag

from ..errors import ParseAnomaly
from ..models import (
    AttendanceRecord,
    CGPARecord,
    DisciplinaryAction,
    MarksRecord,
    SeatingPlan,
    SubjectFaculty,
    SubjectInfo,
)
from ..util.numbers import is_placeholder, parse_number
from .selectors import PortalSelectors, TableSpec


logger = logging.getLogger(__name__)
R = TypeVar("R")

ATTENDANCE = "attendance"
MARKS = "marks"
CGPA = "cgpa"
SUBJECTS = "subjects"
FACULTY = "faculty"
DISCIPLINARY = "disciplinary"
SEATING = "seating"

CATEGORIES: tuple[str, ...] = (ATTENDANCE, MARKS, CGPA, SUBJECTS, FACULTY, DISCIPLINARY, SEATING)

_SUBJECT_CODE_RE = re.compile(r"\b(\d{2}[A-Z]\d{2}[A-Z]{2}\d{3}|[A-Z]{2}\d{3})\b")

Decoder = Callable[[list[str], list[str]], Optional[R]]


# ---------- table location ----------

def _cell_text(cell: Tag) -> str:
    return cell.get_text(" ", strip=True).replace("\xa0", " ").strip()


def _direct_cells(row: Tag, names: Sequence[str] = ("td",)) -> list[Tag]:
    return [c for c in row.find_all(list(names), recursive=False) if isinstance(c, Tag)]


def _header_labels(table: Tag, ordinal_re: re.Pattern[str]) -> list[str]:
    """
    Lower-cased labels of the first non-data row (td or th). Cells that wrap a nested table are
    ignored so an outer layout table never claims its child's header.
    """
    for row in table.find_all("tr"):
        cells = _direct_cells(row, ("td", "th"))
        if len(cells) < 2:
            continue
        texts = [_cell_text(c) for c in cells]
        if ordinal_re.match(texts[0] or ""):
            return []
        if any(c.find("table") is not None for c in cells):
            continue
        return [t.lower() for t in texts]
    return []


def find_table(kind: str, html: str, selectors: Optional[PortalSelectors] = None) -> Optional[Tag]:
    """
    Locate the data table for `kind`: explicit selectors first, then the first table whose header
    row mentions the expected column label.
    """
    sel = selectors or PortalSelectors()
    spec = sel.tables[kind]
    soup = BeautifulSoup(html or "", "html.parser")
    return _locate(soup, spec, re.compile(sel.row_ordinal_pattern))


def _locate(soup: BeautifulSoup, spec: TableSpec, ordinal_re: re.Pattern[str]) -> Optional[Tag]:
    for css in spec.selectors:
        table = soup.select_one(css)
        if table is not None:
            return table

    label = spec.header_label.lower()
    for table in soup.find_all("table"):
        if not isinstance(table, Tag):
            continue
        headers = _header_labels(table, ordinal_re)
        if any(label in h for h in headers):
            return table
    return None


def _column_index(headers: list[str], needles: Sequence[str], default: int) -> int:
    # Exact label, then prefix, then substring; first needle wins within each pass.
    for test in (
        lambda h, n: h == n,
        lambda h, n: h.startswith(n),
        lambda h, n: n in h,
    ):
        for needle in needles:
            for i, h in enumerate(headers):
                if test(h, needle):
                    return i
    return default


def _at(cells: list[str], idx: int) -> Optional[str]:
    if idx < 0 or idx >= len(cells):
        return None
    value = cells[idx]
    return None if is_placeholder(value) else value


def _required(cells: list[str], idx: int, field: str) -> str:
    value = _at(cells, idx)
    if value is None:
        raise ParseAnomaly(f"missing {field} (column {idx})")
    return value


def _number_at(cells: list[str], idx: int) -> Optional[float]:
    return parse_number(_at(cells, idx))


def _decode_table(
    kind: str,
    html: str,
    decoder: Decoder[R],
    selectors: Optional[PortalSelectors] = None,
) -> list[R]:
    sel = selectors or PortalSelectors()
    spec = sel.tables[kind]
    ordinal_re = re.compile(sel.row_ordinal_pattern)

    try:
        soup = BeautifulSoup(html or "", "html.parser")
        table = _locate(soup, spec, ordinal_re)
    except Exception:
        logger.warning("Could not parse %s page", kind, exc_info=True)
        return []

    if table is None:
        logger.info("No %s table found", kind)
        return []

    headers = _header_labels(table, ordinal_re)
    records: list[R] = []
    for row_no, row in enumerate(table.find_all("tr")):
        cells = [_cell_text(td) for td in _direct_cells(row)]
        if len(cells) < spec.min_columns:
            continue
        if not ordinal_re.match(cells[0]):
            continue
        try:
            record = decoder(cells, headers)
        except Exception as e:
            logger.warning("Skipping %s row %d: %s", kind, row_no, e)
            continue
        if record is not None:
            records.append(record)

    logger.debug("Parsed %d %s record(s)", len(records), kind)
    return records


# ---------- attendance ----------

def resolve_overall_percentage(
    *,
    lecture_tutorial: Optional[float],
    lecture: Optional[float],
    tutorial: Optional[float],
    practical: Optional[float],
) -> float:
    """
    Not every Webkiosk rendering fills all four attendance columns. Best figure first:
    combined L+T, then the mean of L and T, then L alone, then P alone, else 0.
    """
    if lecture_tutorial is not None:
        return lecture_tutorial
    if lecture is not None and tutorial is not None:
        return (lecture + tutorial) / 2
    if lecture is not None:
        return lecture
    if practical is not None:
        return practical
    return 0.0


def _decode_attendance(cells: list[str], _headers: list[str]) -> AttendanceRecord:
    # SNo | Subject | Lecture+Tutorial(%) | Lecture(%) | Tutorial(%) | Practical(%)
    subject = _required(cells, 1, "subject")
    lecture_tutorial = _number_at(cells, 2)
    lecture = _number_at(cells, 3)
    tutorial = _number_at(cells, 4)
    practical = _number_at(cells, 5)
    return AttendanceRecord(
        subject=subject,
        percentage=resolve_overall_percentage(
            lecture_tutorial=lecture_tutorial,
            lecture=lecture,
            tutorial=tutorial,
            practical=practical,
        ),
        lecture_percent=lecture,
        tutorial_percent=tutorial,
        practical_percent=practical,
        lecture_tutorial_percent=lecture_tutorial,
    )


def extract_attendance(html: str, selectors: Optional[PortalSelectors] = None) -> list[AttendanceRecord]:
    return _decode_table(ATTENDANCE, html, _decode_attendance, selectors)


# ---------- marks ----------

def _decode_marks(cells: list[str], headers: list[str]) -> MarksRecord:
    # SNo | Subject | Exam | Max Marks | Marks Obtained | Grade
    subject = _required(cells, 1, "subject")
    exam_idx = _column_index(headers, ("exam", "event"), 2)
    max_idx = _column_index(headers, ("max", "full marks", "out of"), 3)
    got_idx = _column_index(headers, ("obtained", "marks obtained", "secured"), 4)
    grade_idx = _column_index(headers, ("grade",), 5)
    return MarksRecord(
        subject=subject,
        exam_type=_required(cells, exam_idx, "exam type"),
        max_marks=_number_at(cells, max_idx),
        obtained_marks=_number_at(cells, got_idx),
        grade=_at(cells, grade_idx),
    )


def extract_marks(html: str, selectors: Optional[PortalSelectors] = None) -> list[MarksRecord]:
    return _decode_table(MARKS, html, _decode_marks, selectors)


# ---------- subjects ----------

def _decode_subject(cells: list[str], headers: list[str]) -> SubjectInfo:
    # SNo | Subject Code | Subject Name | Credits | Type, or SNo | Subject | Credits | Type
    if headers:
        code_idx = _column_index(headers, ("code",), -1)
        name_idx = _column_index(headers, ("name",), -1)
        if code_idx < 0 and name_idx < 0:
            code_idx = _column_index(headers, ("subject",), 1)
    else:
        code_idx, name_idx = 1, 2
    code = _at(cells, code_idx)
    name = _at(cells, name_idx)
    if name is None and code and " - " in code:
        # Some semesters render "NAME - CODE" in one cell.
        name, _, code = code.rpartition(" - ")
    if code is None and name:
        m = _SUBJECT_CODE_RE.search(name)
        code = m.group(1) if m else None
    if not code or not name:
        raise ParseAnomaly("subject row without code/name")
    credits_idx = _column_index(headers, ("credit",), 3)
    type_idx = _column_index(headers, ("type", "component"), 4)
    return SubjectInfo(
        code=code.strip(),
        name=name.strip(),
        credits=_number_at(cells, credits_idx),
        subject_type=_at(cells, type_idx),
    )


def extract_subjects(html: str, selectors: Optional[PortalSelectors] = None) -> list[SubjectInfo]:
    return _decode_table(SUBJECTS, html, _decode_subject, selectors)


# ---------- faculty ----------

def _decode_faculty(cells: list[str], _headers: list[str]) -> SubjectFaculty:
    # SNo | Subject | Lecture Faculty | Tutorial Faculty | Practical Faculty
    return SubjectFaculty(
        subject=_required(cells, 1, "subject"),
        lecture_faculty=_at(cells, 2),
        tutorial_faculty=_at(cells, 3),
        practical_faculty=_at(cells, 4),
    )


def extract_subject_faculty(html: str, selectors: Optional[PortalSelectors] = None) -> list[SubjectFaculty]:
    return _decode_table(FACULTY, html, _decode_faculty, selectors)


# ---------- disciplinary ----------

def _decode_disciplinary(cells: list[str], headers: list[str]) -> DisciplinaryAction:
    # SNo | Date | Offence | Action Taken | Remarks
    date_idx = _column_index(headers, ("date",), 1)
    offence_idx = _column_index(headers, ("offence", "offense", "reason", "description"), 2)
    action_idx = _column_index(headers, ("action",), 3)
    remarks_idx = _column_index(headers, ("remark",), 4)
    return DisciplinaryAction(
        offence=_required(cells, offence_idx, "offence"),
        date=_at(cells, date_idx),
        action=_at(cells, action_idx),
        remarks=_at(cells, remarks_idx),
    )


def extract_disciplinary_actions(
    html: str, selectors: Optional[PortalSelectors] = None
) -> list[DisciplinaryAction]:
    return _decode_table(DISCIPLINARY, html, _decode_disciplinary, selectors)


# ---------- seating ----------

def _decode_seating(cells: list[str], headers: list[str]) -> SeatingPlan:
    # SNo | Exam Date | Time | Subject | Room | Seat No
    return SeatingPlan(
        subject=_required(cells, _column_index(headers, ("subject", "course"), 3), "subject"),
        exam_date=_at(cells, _column_index(headers, ("date", "exam date"), 1)),
        exam_time=_at(cells, _column_index(headers, ("time", "slot"), 2)),
        room=_at(cells, _column_index(headers, ("room", "venue"), 4)),
        seat=_at(cells, _column_index(headers, ("seat",), 5)),
    )


def extract_seating_plan(html: str, selectors: Optional[PortalSelectors] = None) -> list[SeatingPlan]:
    return _decode_table(SEATING, html, _decode_seating, selectors)


# ---------- cgpa ----------

def _decode_cgpa(cells: list[str], headers: list[str]) -> CGPARecord:
    # The report has grown columns over the years; locate by header, fall back to
    # SNo | Semester | SGPA | CGPA | Credits | Earned Credits | Grade Points
    sem_idx = _column_index(headers, ("semester", "sem", "exam code"), 1)
    return CGPARecord(
        semester=_required(cells, sem_idx, "semester"),
        sgpa=_number_at(cells, _column_index(headers, ("sgpa",), 2)),
        cgpa=_number_at(cells, _column_index(headers, ("cgpa",), 3)),
        credits=_number_at(cells, _column_index(headers, ("course credit", "credits"), 4)),
        earned_credits=_number_at(cells, _column_index(headers, ("earned",), 5)),
        grade_points=_number_at(cells, _column_index(headers, ("grade point", "points"), 6)),
    )


def extract_cgpa(html: str, selectors: Optional[PortalSelectors] = None) -> list[CGPARecord]:
    return _decode_table(CGPA, html, _decode_cgpa, selectors)


EXTRACTORS: dict[str, Callable[..., list]] = {
    ATTENDANCE: extract_attendance,
    MARKS: extract_marks,
    CGPA: extract_cgpa,
    SUBJECTS: extract_subjects,
    FACULTY: extract_subject_faculty,
    DISCIPLINARY: extract_disciplinary_actions,
    SEATING: extract_seating_plan,
}


def extract(kind: str, html: str, selectors: Optional[PortalSelectors] = None) -> list:
    try:
        fn = EXTRACTORS[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind: {kind!r}") from None
    return fn(html, selectors)
