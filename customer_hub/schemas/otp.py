"""Contracts of the external OTP-issuing service."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OtpRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    send_to: str = Field(..., alias="sendTo")
    mobile_phone: str | None = Field(default=None, alias="mobilePhone")
    email: str | None = None
    crn: str = Field(..., alias="CRN")
    first_name: str | None = Field(default=None, alias="firstName")


class OtpToken(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    otp_token: str = Field(..., alias="otpToken")
