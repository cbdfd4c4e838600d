from .errors import (
    AuthenticationRejected,
    CaptchaNotFound,
    LoginPageUnavailable,
    LoginTransportError,
    NoCredentials,
    NoDataFound,
    ParseAnomaly,
    SessionTimeout,
    TransportError,
    WebkioskError,
)
from .models import (
    AttendanceRecord,
    CGPARecord,
    Credentials,
    DisciplinaryAction,
    MarksRecord,
    SeatingPlan,
    SubjectFaculty,
    SubjectInfo,
)
from .portal.client import CategoryResult, WebkioskClient

__version__ = "0.1.0"

__all__ = [
    "AttendanceRecord",
    "AuthenticationRejected",
    "CGPARecord",
    "CaptchaNotFound",
    "CategoryResult",
    "Credentials",
    "DisciplinaryAction",
    "LoginPageUnavailable",
    "LoginTransportError",
    "MarksRecord",
    "NoCredentials",
    "NoDataFound",
    "ParseAnomaly",
    "SeatingPlan",
    "SessionTimeout",
    "SubjectFaculty",
    "SubjectInfo",
    "TransportError",
    "WebkioskClient",
    "WebkioskError",
]
