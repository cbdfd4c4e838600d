from __future__ import annotations


class WebkioskError(RuntimeError):
    """
    Base class for everything the portal client raises on purpose.

    Two flags let callers (CLI, UI) decide what to tell the user:
    - `retryable`: a transient problem; trying again later may work.
    - `requires_user_input`: retrying is pointless until the user supplies new credentials.
    """

    retryable: bool = False
    requires_user_input: bool = False
    user_message: str = "Something went wrong while talking to Webkiosk."


class TransportError(WebkioskError):
    """Network failure or timeout."""

    retryable = True
    user_message = "Could not reach Webkiosk. Check your connection and try again."


class LoginTransportError(TransportError):
    """A transport failure while the login handshake was in progress."""


class LoginPageUnavailable(WebkioskError):
    retryable = True
    user_message = "The Webkiosk login page is not available right now. Try again later."

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Login page returned HTTP {status_code}")
        self.status_code = status_code


class CaptchaNotFound(WebkioskError):
    retryable = True
    user_message = "Could not read the login captcha. The portal layout may have changed."


class AuthenticationRejected(WebkioskError):
    requires_user_input = True
    user_message = "Login was rejected. Check your enrollment number, date of birth and password."


class SessionTimeout(WebkioskError):
    retryable = True
    user_message = "Your Webkiosk session expired. Please retry."


class NoCredentials(WebkioskError):
    requires_user_input = True
    user_message = "No saved credentials. Please log in first."


class ParseAnomaly(WebkioskError):
    """A single row (or field) could not be decoded. Absorbed by the extractor."""


class NoDataFound(WebkioskError):
    user_message = "Webkiosk returned a page without the expected data table."

    def __init__(self, category: str) -> None:
        super().__init__(f"No data table found for category={category}")
        self.category = category
