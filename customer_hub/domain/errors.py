"""Exceptions raised by the login workflow."""

from __future__ import annotations


class LoginRejected(Exception):
    """The stored function refused to verify the member."""

    def __init__(self, error_code: str, error_message: str) -> None:
        super().__init__(f"{error_code}: {error_message}")
        self.error_code = error_code
        self.error_message = error_message


class OtpDispatchError(Exception):
    """The OTP service could not be reached or returned an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
