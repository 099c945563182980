"""
Shared fixtures: a controllable clock, a fake Gmail API behind
httpx.MockTransport, and a server wired to both.
"""

import base64
import email
import json

import httpx
import pytest

from src.gmail_mcp.credentials import OAuthCredentials
from src.gmail_mcp.gmail_client import GMAIL_API_URL, TOKEN_URL, GmailClient
from src.gmail_mcp.rate_limiter import RateLimiter
from src.gmail_mcp.server import create_server


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGmailAPI:
    """Answers the token, send and profile endpoints; records what was sent."""

    def __init__(self) -> None:
        self.sent = []
        self.token_requests = 0
        self.token_status = 200
        self.profile_status = 200
        self.reject_recipients: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url == TOKEN_URL:
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(
                    self.token_status,
                    json={"error": "invalid_grant", "error_description": "Token has been revoked."},
                )
            return httpx.Response(200, json={"access_token": "ya29.test", "expires_in": 3599})

        assert request.headers["Authorization"] == "Bearer ya29.test"

        if url == f"{GMAIL_API_URL}/messages/send":
            raw = json.loads(request.content)["raw"]
            padded = raw + "=" * (-len(raw) % 4)
            msg = email.message_from_bytes(base64.urlsafe_b64decode(padded))
            if msg["To"] in self.reject_recipients:
                return httpx.Response(
                    400, json={"error": {"code": 400, "message": "Invalid To header"}}
                )
            self.sent.append(msg)
            return httpx.Response(200, json={"id": f"msg-{len(self.sent)}", "threadId": "t-1"})

        if url == f"{GMAIL_API_URL}/profile":
            if self.profile_status != 200:
                return httpx.Response(
                    self.profile_status, json={"error": {"code": 401, "message": "Invalid Credentials"}}
                )
            return httpx.Response(200, json={"emailAddress": "me@example.com", "messagesTotal": 42})

        return httpx.Response(404)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oauth_credentials():
    """Valid test credentials."""
    return OAuthCredentials(
        client_id="client-id.apps.googleusercontent.com",
        client_secret="client-secret-123",
        refresh_token="1//refresh-token-xyz",
        user_email="me@example.com",
    )


@pytest.fixture
def gmail_api():
    return FakeGmailAPI()


@pytest.fixture
def gmail_client(gmail_api, oauth_credentials):
    http = httpx.AsyncClient(transport=httpx.MockTransport(gmail_api.handler))
    return GmailClient(oauth_credentials, http=http)


@pytest.fixture
def sleeps():
    """Delays the server asked for, in order."""
    return []


@pytest.fixture
def limiter(clock):
    """2/hour, 5/day limiter with the lowest delay always chosen."""
    return RateLimiter(2, 5, clock=clock, rng=lambda low, high: low)


@pytest.fixture
def connected_server(limiter, sleeps, gmail_client, oauth_credentials):
    """Server with a fake Gmail API and recorded, non-blocking sleeps."""

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    server = create_server(limiter=limiter, sleep=fake_sleep)
    server.connect(oauth_credentials, client=gmail_client)
    return server
