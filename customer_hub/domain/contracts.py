"""Domain-level request and result contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass

from ..schemas.login import PreferredChannel
from .member import Member


@dataclass(slots=True)
class LoginInput:
    """Validated login preference and the contact details supplied with it."""

    preferred: PreferredChannel
    email: str | None = None
    mobile: str | None = None

    @property
    def identifier(self) -> str:
        """Return the contact value selected by the preferred channel."""
        if self.preferred is PreferredChannel.email:
            return (self.email or "").lower()
        return self.mobile or ""


@dataclass(slots=True)
class LoginResult:
    """Outcome reported by the stored function."""

    error_code: str | None
    error_message: str | None
    result: bool
    member: Member | None = None

    @property
    def succeeded(self) -> bool:
        return self.result and self.member is not None
