"""
Gmail API Client
================

Send-only Gmail REST client authenticated with an OAuth2 refresh token.

CONSTITUTIONAL INVARIANTS:
- INV-GLOBAL-03: No logging of message bodies or credentials
- INV-STARTUP-01: Access tokens held in memory only
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from contracts import AuthFailedError, SendFailedError

if TYPE_CHECKING:
    from src.gmail_mcp.credentials import OAuthCredentials

TOKEN_URL = "https://oauth2.googleapis.com/token"
GMAIL_API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

# Refresh this many seconds before Google says the token expires.
TOKEN_EXPIRY_MARGIN = 60

logger = logging.getLogger("gmail-mcp")


class GmailClient:
    """
    Gmail API client.

    This class intentionally exposes only sending and a profile lookup; it
    has no read, delete or label operations.
    """

    def __init__(
        self,
        credentials: OAuthCredentials,
        *,
        http: httpx.AsyncClient | None = None,
        timeout: float = 20.0,
    ) -> None:
        self._credentials = credentials
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    @property
    def user_email(self) -> str:
        return self._credentials.user_email

    async def _get_access_token(self) -> str:
        """
        Return a cached access token, refreshing it when close to expiry.

        ERRORS:
        - AuthFailedError: Token endpoint rejected the refresh token
        """
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        try:
            resp = await self._http.post(
                TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "client_id": self._credentials.client_id,
                    "client_secret": self._credentials.client_secret,
                    "refresh_token": self._credentials.refresh_token,
                },
            )
        except httpx.HTTPError as e:
            raise AuthFailedError(f"Token refresh failed: {e}") from e

        if resp.status_code != 200:
            raise AuthFailedError(
                f"Token refresh rejected ({resp.status_code}): {_error_detail(resp)}"
            )

        payload = resp.json()
        self._access_token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN)
        logger.info("Refreshed Gmail access token")  # Token itself never logged
        return self._access_token

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        token = await self._get_access_token()
        headers = {"Authorization": f"Bearer {token}"}
        return await self._http.request(method, f"{GMAIL_API_URL}{path}", headers=headers, **kwargs)

    async def send_raw(self, raw: str) -> str:
        """
        Send a base64url-encoded RFC 5322 message.

        POST: Returns the Gmail message id

        ERRORS:
        - AuthFailedError: Access token could not be obtained
        - SendFailedError: Gmail rejected the message or transport failed
        """
        try:
            resp = await self._request("POST", "/messages/send", json={"raw": raw})
        except httpx.HTTPError as e:
            raise SendFailedError(f"Send request failed: {e}") from e

        if resp.status_code != 200:
            raise SendFailedError(f"Gmail rejected message ({resp.status_code}): {_error_detail(resp)}")

        return resp.json().get("id", "")

    async def get_profile(self) -> dict:
        """
        Fetch the authenticated user's profile.

        ERRORS:
        - AuthFailedError: Access token could not be obtained
        - SendFailedError: Profile request failed
        """
        try:
            resp = await self._request("GET", "/profile")
        except httpx.HTTPError as e:
            raise SendFailedError(f"Profile request failed: {e}") from e

        if resp.status_code != 200:
            raise SendFailedError(f"Profile request rejected ({resp.status_code}): {_error_detail(resp)}")
        return resp.json()

    async def aclose(self) -> None:
        """Close the underlying HTTP client and forget the access token."""
        self._access_token = None
        self._token_expires_at = 0.0
        await self._http.aclose()


def _error_detail(resp: httpx.Response) -> str:
    """Best-effort error text from a Google API error response."""
    try:
        payload = resp.json()
    except ValueError:
        return resp.text[:200]
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message", str(error))
    return payload.get("error_description") or str(error)
