from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from customer_hub.api import routes
from customer_hub.api.errors import install_exception_handlers
from customer_hub.domain.contracts import LoginInput, LoginResult
from customer_hub.domain.errors import OtpDispatchError
from customer_hub.domain.member import Member
from customer_hub.domain.service import LoginService
from customer_hub.schemas.login import PreferredChannel
from customer_hub.schemas.otp import OtpRequest

LOGIN_URL = "/wx/v1/loyalty/rewards/customer-hub/cards/login"


class FakeMemberRepository:
    """In-memory stand-in for the card login stored function."""

    def __init__(self) -> None:
        self._members: dict[tuple[PreferredChannel, str], Member] = {}
        self.calls: list[LoginInput] = []
        self.failure: Exception | None = None

    def add(self, member: Member) -> None:
        if member.email:
            self._members[(PreferredChannel.email, member.email.lower())] = member
        if member.mobile:
            self._members[(PreferredChannel.mobile, member.mobile)] = member

    def verify_member(self, payload: LoginInput) -> LoginResult:
        self.calls.append(payload)
        if self.failure is not None:
            raise self.failure
        member = self._members.get((payload.preferred, payload.identifier))
        if member is None:
            return LoginResult(
                error_code="MEMBER_NOT_FOUND",
                error_message="Member not found",
                result=False,
            )
        return LoginResult(error_code=None, error_message=None, result=True, member=member)


class FakeOtpClient:
    def __init__(self) -> None:
        self.sent: list[OtpRequest] = []
        self.failure: OtpDispatchError | None = None

    def send_otp(self, payload: OtpRequest) -> str:
        if self.failure is not None:
            raise self.failure
        self.sent.append(payload)
        return f"otp-token-{len(self.sent)}"


MEMBER = Member(
    crn="3300000000001",
    card_number="9355000000000001",
    email="jane@example.com",
    mobile="0412345678",
    first_name="Jane",
    last_name="Citizen",
)


def _build_app(service: LoginService, *, development: bool = False) -> FastAPI:
    app = FastAPI()
    install_exception_handlers(app, development=development)
    app.include_router(routes.router)
    app.state.login_service = service
    return app


@pytest.fixture
def fakes():
    repository = FakeMemberRepository()
    repository.add(MEMBER)
    return repository, FakeOtpClient()


@pytest.fixture
def api_client(fakes):
    """Provide a FastAPI test client with isolated state."""
    repository, otp_client = fakes
    app = _build_app(LoginService(repository, otp_client))

    original_throttle = routes.login_throttle
    routes.login_throttle = routes.InMemoryLoginThrottle(max_requests=2, window_seconds=60)

    with TestClient(app) as client:
        yield client, repository, otp_client

    routes.login_throttle = original_throttle


def _outcome_count(outcome: str) -> float:
    return REGISTRY.get_sample_value("customer_hub_login_total", {"outcome": outcome}) or 0.0


def test_login_by_email_issues_otp(api_client):
    client, repository, otp_client = api_client
    before = _outcome_count("issued")

    response = client.post(LOGIN_URL, json={"preferred": "Email", "email": "Jane@Example.com"})

    assert response.status_code == 201
    assert response.json() == {"data": {"otpToken": "otp-token-1"}}
    assert repository.calls[0].preferred is PreferredChannel.email

    sent = otp_client.sent[0].model_dump(by_alias=True)
    assert sent == {
        "sendTo": "Email",
        "mobilePhone": "0412345678",
        "email": "jane@example.com",
        "CRN": "3300000000001",
        "firstName": "Jane",
    }
    assert _outcome_count("issued") == before + 1


def test_login_by_mobile_sends_to_mobile(api_client):
    client, _, otp_client = api_client

    response = client.post(LOGIN_URL, json={"preferred": "mobile", "mobile": "0412345678"})

    assert response.status_code == 201
    assert otp_client.sent[0].send_to == "Mobile"


def test_missing_preferred_is_reported_as_required(api_client):
    client, repository, _ = api_client

    response = client.post(LOGIN_URL, json={"email": "jane@example.com"})

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["status"] == 400
    assert body["title"] == "One or more validation errors occurred."
    assert body["errors"]["Preferred"] == ["The Preferred field is required."]
    assert body["traceId"]
    assert repository.calls == []


def test_unknown_preferred_value_is_rejected(api_client):
    client, _, _ = api_client

    response = client.post(LOGIN_URL, json={"preferred": "Fax", "email": "jane@example.com"})

    assert response.status_code == 400
    assert "Preferred" in response.json()["errors"]


def test_preferred_channel_requires_matching_contact(api_client):
    client, repository, _ = api_client

    email_missing = client.post(LOGIN_URL, json={"preferred": "Email", "mobile": "0412345678"})
    mobile_blank = client.post(LOGIN_URL, json={"preferred": "Mobile", "mobile": "  "})

    assert email_missing.status_code == 400
    assert email_missing.json()["errors"] == {"Email": ["The Email field is required."]}
    assert mobile_blank.status_code == 400
    assert mobile_blank.json()["errors"] == {"Mobile": ["The Mobile field is required."]}
    assert repository.calls == []


def test_malformed_contact_details_are_rejected(api_client):
    client, _, _ = api_client

    response = client.post(
        LOGIN_URL,
        json={"preferred": "Mobile", "email": "not-an-email", "mobile": "04-12"},
    )

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert "Email" in errors
    assert "Mobile" in errors


def test_channel_rule_is_reported_with_format_errors(api_client):
    client, repository, _ = api_client

    response = client.post(LOGIN_URL, json={"preferred": "Email", "mobile": "04-12"})

    assert response.status_code == 400
    errors = response.json()["errors"]
    assert errors["Email"] == ["The Email field is required."]
    assert len(errors["Mobile"]) == 1
    assert repository.calls == []


def test_missing_body_is_a_validation_error(api_client):
    client, _, _ = api_client

    response = client.post(LOGIN_URL)

    assert response.status_code == 400
    assert "$" in response.json()["errors"]


def test_rejected_member_returns_401_with_function_error(api_client):
    client, _, otp_client = api_client
    rejected_before = _outcome_count("rejected")
    issued_before = _outcome_count("issued")

    response = client.post(LOGIN_URL, json={"preferred": "Email", "email": "nobody@example.com"})

    assert response.status_code == 401
    assert response.json() == {
        "errorCode": "MEMBER_NOT_FOUND",
        "errorMessage": "Member not found",
    }
    assert otp_client.sent == []
    assert _outcome_count("rejected") == rejected_before + 1
    assert _outcome_count("issued") == issued_before


def test_otp_service_failure_returns_502(api_client):
    client, _, otp_client = api_client
    otp_client.failure = OtpDispatchError("otp service returned 503", status_code=503)
    failed_before = _outcome_count("otp_failed")
    issued_before = _outcome_count("issued")

    response = client.post(LOGIN_URL, json={"preferred": "Email", "email": "jane@example.com"})

    assert response.status_code == 502
    body = response.json()
    assert body["title"] == "OTP service unavailable."
    assert "detail" not in body
    assert _outcome_count("otp_failed") == failed_before + 1
    assert _outcome_count("issued") == issued_before


def test_otp_service_failure_is_detailed_in_development(fakes):
    repository, otp_client = fakes
    otp_client.failure = OtpDispatchError("otp service returned 503", status_code=503)
    app = _build_app(LoginService(repository, otp_client), development=True)

    with TestClient(app) as client:
        response = client.post(LOGIN_URL, json={"preferred": "Email", "email": "jane@example.com"})

    assert response.status_code == 502
    assert response.json()["detail"] == "otp service returned 503"


def test_login_endpoint_respects_throttle(api_client):
    client, _, _ = api_client
    payload = {"preferred": "Email", "email": "jane@example.com"}

    first = client.post(LOGIN_URL, json=payload)
    second = client.post(LOGIN_URL, json=payload)
    third = client.post(LOGIN_URL, json=payload)
    other = client.post(LOGIN_URL, json={"preferred": "Mobile", "mobile": "0412345678"})

    assert first.status_code == 201
    assert second.status_code == 201
    assert third.status_code == 429
    assert third.json()["detail"] == "rate limited"
    assert int(third.headers["Retry-After"]) >= 1
    assert other.status_code == 201


def test_unhandled_error_is_masked_in_production(fakes):
    repository, otp_client = fakes
    repository.failure = RuntimeError("connection refused")
    app = _build_app(LoginService(repository, otp_client))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post(LOGIN_URL, json={"preferred": "Email", "email": "jane@example.com"})

    assert response.status_code == 500
    body = response.json()
    assert body["title"] == "An error occurred while processing your request."
    assert "connection refused" not in response.text
    assert "stackTrace" not in body


def test_unhandled_error_is_detailed_in_development(fakes):
    repository, otp_client = fakes
    repository.failure = RuntimeError("connection refused")
    app = _build_app(LoginService(repository, otp_client), development=True)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post(LOGIN_URL, json={"preferred": "Email", "email": "jane@example.com"})

    assert response.status_code == 500
    body = response.json()
    assert body["detail"] == "connection refused"
    assert body["exception"] == "RuntimeError"
    assert any("RuntimeError" in line for line in body["stackTrace"])
