"""Login service orchestrating member verification and OTP dispatch."""

from __future__ import annotations

import logging

from .contracts import LoginInput
from .errors import LoginRejected, OtpDispatchError
from ..metrics import LOGIN_OUTCOMES
from ..otp_client import OtpClient
from ..repository import MemberRepository
from ..schemas.otp import OtpRequest

logger = logging.getLogger(__name__)


class LoginService:
    """Card login workflow backed by the Postgres login function and the OTP service."""

    def __init__(self, repository: MemberRepository, otp_client: OtpClient) -> None:
        """Store the collaborators used to verify members and send passcodes."""
        self._repository = repository
        self._otp_client = otp_client

    def login(self, payload: LoginInput) -> str:
        """Verify the member and trigger an OTP on the preferred channel.

        Parameters
        ----------
        payload:
            Validated login preference with the matching contact value.

        Returns
        -------
        str
            Token issued by the OTP service for the pending passcode.

        Raises
        ------
        LoginRejected
            When the login function reports that the member cannot log in.
        OtpDispatchError
            Propagated from the OTP client.
        """
        result = self._repository.verify_member(payload)
        if not result.succeeded:
            LOGIN_OUTCOMES.labels(outcome="rejected").inc()
            logger.info("card login rejected with code %s", result.error_code)
            raise LoginRejected(
                result.error_code or "LOGIN_FAILED",
                result.error_message or "Login failed",
            )

        member = result.member
        request = OtpRequest(
            send_to=payload.preferred.value,
            mobile_phone=member.mobile,
            email=member.email,
            crn=member.crn,
            first_name=member.first_name,
        )
        try:
            token = self._otp_client.send_otp(request)
        except OtpDispatchError:
            LOGIN_OUTCOMES.labels(outcome="otp_failed").inc()
            raise

        LOGIN_OUTCOMES.labels(outcome="issued").inc()
        logger.info("otp issued for member %s via %s", member.crn, payload.preferred.value)
        return token
