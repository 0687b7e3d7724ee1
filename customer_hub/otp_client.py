"""HTTP client for the external OTP-issuing service."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from .config import Settings
from .domain.errors import OtpDispatchError
from .schemas.envelope import DataEnvelope
from .schemas.otp import OtpRequest, OtpToken

logger = logging.getLogger(__name__)


class OtpClient:
    """Triggers one-time passcodes through the OTP service."""

    def __init__(self, client: httpx.Client, path: str) -> None:
        self._client = client
        self._path = path

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpClient":
        """Build a client with the configured base URL, timeout and API key."""
        headers = {"Accept": "application/json"}
        if settings.otp_api_key:
            headers["X-Api-Key"] = settings.otp_api_key
        client = httpx.Client(
            base_url=settings.otp_base_url,
            timeout=httpx.Timeout(settings.otp_timeout_seconds),
            headers=headers,
        )
        return cls(client, settings.otp_path)

    def send_otp(self, payload: OtpRequest) -> str:
        """Ask the OTP service to send a passcode and return its token.

        Raises
        ------
        OtpDispatchError
            When the service is unreachable, answers with a non-2xx status or
            returns a body without an ``otpToken``.
        """
        body = payload.model_dump(mode="json", by_alias=True)
        try:
            response = self._client.post(self._path, json=body)
        except httpx.HTTPError as exc:
            logger.warning("otp service request failed: %s", exc)
            raise OtpDispatchError(f"otp service unreachable: {exc}") from exc

        if response.is_error:
            logger.warning("otp service answered %s", response.status_code)
            raise OtpDispatchError(
                f"otp service returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            envelope = DataEnvelope[OtpToken].model_validate_json(response.content)
        except ValidationError as exc:
            raise OtpDispatchError(
                "otp service returned an unexpected body",
                status_code=response.status_code,
            ) from exc
        logger.debug("otp issued via %s", payload.send_to)
        return envelope.data.otp_token

    def close(self) -> None:
        self._client.close()
