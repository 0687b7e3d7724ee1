"""HTTP route definitions for the customer hub card login."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

import redis
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from ..config import get_settings
from ..domain.contracts import LoginInput
from ..domain.service import LoginService
from ..schemas.envelope import DataEnvelope
from ..schemas.login import LoginError, PreferredChannel
from ..schemas.otp import OtpToken
from ..security.redis_throttle import RedisLoginThrottle
from ..security.throttle import InMemoryLoginThrottle, LoginThrottle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wx/v1/loyalty/rewards/customer-hub", tags=["cards"])

_CHANNEL_FIELDS = {
    PreferredChannel.email: "email",
    PreferredChannel.mobile: "mobile",
}


class LoginRequest(BaseModel):
    """Login preference and the contact details used to look up the member."""

    preferred: PreferredChannel
    email: EmailStr | None = Field(default=None, validate_default=True)
    mobile: str | None = Field(default=None, pattern=r"^\+?[0-9]{8,15}$", validate_default=True)

    @field_validator("preferred", mode="before")
    @classmethod
    def _match_channel(cls, value: Any) -> Any:
        if isinstance(value, str):
            for channel in PreferredChannel:
                if channel.value.lower() == value.strip().lower():
                    return channel
        return value

    @field_validator("email", "mobile", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("email", "mobile")
    @classmethod
    def _required_by_channel(cls, value: Any, info: ValidationInfo) -> Any:
        # Reported per field so it joins any format errors on the other field.
        required = _CHANNEL_FIELDS.get(info.data.get("preferred"))
        if value is None and required == info.field_name:
            raise PydanticCustomError("missing", "Field required")
        return value

    def to_domain(self) -> LoginInput:
        return LoginInput(preferred=self.preferred, email=self.email, mobile=self.mobile)


settings = get_settings()


def _build_login_throttle() -> LoginThrottle:
    """Instantiate the configured throttle backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("login throttle configured for redis backend")
            return RedisLoginThrottle(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except (redis.RedisError, ValueError) as exc:
            logger.warning("redis login throttle unavailable, falling back to in-memory: %s", exc)

    logger.info("login throttle using in-memory backend")
    return InMemoryLoginThrottle(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


login_throttle = _build_login_throttle()


def get_service(request: Request) -> LoginService:
    """Resolve the `LoginService` stored on the FastAPI application state."""
    service: LoginService = request.app.state.login_service
    return service


def _throttle_key(payload: LoginInput) -> str:
    digest = hashlib.sha256(payload.identifier.encode("utf-8")).hexdigest()[:16]
    return f"login:{payload.preferred.value.lower()}:{digest}"


@router.post(
    "/cards/login",
    response_model=DataEnvelope[OtpToken],
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Validation failure (problem details)"},
        status.HTTP_401_UNAUTHORIZED: {"model": LoginError},
        status.HTTP_429_TOO_MANY_REQUESTS: {"description": "Too many login attempts"},
        status.HTTP_502_BAD_GATEWAY: {"description": "OTP service failure (problem details)"},
    },
)
def card_login(
    payload: LoginRequest,
    service: LoginService = Depends(get_service),
) -> DataEnvelope[OtpToken]:
    """Verify a member by email or mobile and trigger a one-time passcode."""
    login = payload.to_domain()
    decision = login_throttle.check(_throttle_key(login))
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="rate limited",
            headers={"Retry-After": str(decision.retry_after)},
        )

    token = service.login(login)
    return DataEnvelope[OtpToken](data=OtpToken(otp_token=token))
