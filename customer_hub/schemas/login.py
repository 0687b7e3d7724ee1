"""Login channel and failure contracts."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PreferredChannel(str, Enum):
    email = "Email"
    mobile = "Mobile"


class LoginError(BaseModel):
    """Body returned when the member cannot be verified."""

    model_config = ConfigDict(populate_by_name=True)

    error_code: str = Field(..., alias="errorCode")
    error_message: str = Field(..., alias="errorMessage")
