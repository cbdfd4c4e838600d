from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


STUDENT_USER_TYPE = "S"

_SUBJECT_CODE_RE = re.compile(r"[A-Z]{2}\d{3}")
_TRAILING_CODE_RE = re.compile(r"\s*[-(]\s*[A-Z0-9]{5,}\)?\s*$")


class Credentials(BaseModel):
    """
    Webkiosk login identity. Immutable: replace it, never mutate it.

    `user_type` is the portal's member type code; students are "S".
    """

    model_config = ConfigDict(frozen=True)

    enrollment_id: str
    date_of_birth: str
    password: str = Field(repr=False)
    user_type: str = STUDENT_USER_TYPE

    def portal_user_type(self) -> str:
        # The portal's select box posts single-letter codes; accept the long spelling too.
        raw = (self.user_type or "").strip()
        if not raw or raw.lower() == "student":
            return STUDENT_USER_TYPE
        return raw


class AttendanceStatus(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    AVERAGE = "Average"
    LOW = "Low"
    CRITICAL = "Critical"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class AttendanceRecord(_Record):
    subject: str
    # Best available overall figure; see extract.resolve_overall_percentage().
    percentage: float
    lecture_percent: Optional[float] = None
    tutorial_percent: Optional[float] = None
    practical_percent: Optional[float] = None
    lecture_tutorial_percent: Optional[float] = None

    @property
    def subject_code(self) -> str:
        m = _SUBJECT_CODE_RE.search(self.subject)
        return m.group(0) if m else ""

    @property
    def clean_subject_name(self) -> str:
        return _TRAILING_CODE_RE.sub("", self.subject).strip()

    @property
    def status(self) -> AttendanceStatus:
        p = self.percentage
        if p >= 85:
            return AttendanceStatus.EXCELLENT
        if p >= 75:
            return AttendanceStatus.GOOD
        if p >= 65:
            return AttendanceStatus.AVERAGE
        if p >= 50:
            return AttendanceStatus.LOW
        return AttendanceStatus.CRITICAL


class MarksRecord(_Record):
    subject: str
    exam_type: str
    max_marks: Optional[float] = None
    obtained_marks: Optional[float] = None
    grade: Optional[str] = None


class SubjectInfo(_Record):
    code: str
    name: str
    credits: Optional[float] = None
    subject_type: Optional[str] = None


class SubjectFaculty(_Record):
    subject: str
    lecture_faculty: Optional[str] = None
    tutorial_faculty: Optional[str] = None
    practical_faculty: Optional[str] = None


class DisciplinaryAction(_Record):
    offence: str
    date: Optional[str] = None
    action: Optional[str] = None
    remarks: Optional[str] = None


class SeatingPlan(_Record):
    subject: str
    exam_date: Optional[str] = None
    exam_time: Optional[str] = None
    room: Optional[str] = None
    seat: Optional[str] = None


class CGPARecord(_Record):
    semester: str
    sgpa: Optional[float] = None
    cgpa: Optional[float] = None
    credits: Optional[float] = None
    earned_credits: Optional[float] = None
    grade_points: Optional[float] = None
