"""Wire contracts shared by the API and the OTP client."""

from .envelope import DataEnvelope
from .login import LoginError, PreferredChannel
from .otp import OtpRequest, OtpToken

__all__ = [
    "DataEnvelope",
    "LoginError",
    "OtpRequest",
    "OtpToken",
    "PreferredChannel",
]
