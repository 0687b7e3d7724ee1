from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class Member:
    """Loyalty member profile returned by the card login function."""

    crn: str
    card_number: str
    email: str | None
    mobile: str | None
    first_name: str | None
    last_name: str | None
