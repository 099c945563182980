"""
Credentials Management
======================

OAuth2 delegated credentials for the Gmail API. Normally read from the
environment by config. Setting GMAIL_BIOSECRET_ACCOUNT switches to the
biosecret keychain CLI instead: the refresh token grants indefinite send
access to the mailbox, and the keychain keeps it off disk and behind a
biometric prompt, which a plaintext .env file cannot.

INV-STARTUP-01: Credentials held in memory only, never written to disk or logs.
"""

import json
import subprocess
from dataclasses import dataclass, field

from contracts import (
    BiosecretDeniedError,
    BiosecretNotFoundError,
)


@dataclass(frozen=True)
class OAuthCredentials:
    """Gmail OAuth2 credentials held in memory only."""

    client_id: str
    client_secret: str = field(repr=False)
    refresh_token: str = field(repr=False)
    user_email: str


def retrieve_credentials(account_id: str) -> OAuthCredentials:
    """
    Retrieve credentials via biosecret CLI.

    PRE: biosecret CLI is available in PATH
    PRE: User has stored a JSON object with client_id, client_secret,
         refresh_token and user_email under key "gmail-mcp/{account_id}"

    POST: Returns OAuthCredentials on success

    ERRORS:
    - BiosecretDeniedError: User cancelled biometric prompt
    - BiosecretNotFoundError: No credentials under expected key
    """
    try:
        result = subprocess.run(
            ["biosecret", "get", f"gmail-mcp/{account_id}"],
            capture_output=True,
            text=True,
            timeout=30,
        )

        if result.returncode != 0:
            stderr = result.stderr.lower() if result.stderr else ""
            if "cancel" in stderr or "denied" in stderr:
                raise BiosecretDeniedError("User cancelled biometric authentication")
            raise BiosecretNotFoundError(f"No credentials found for {account_id}")

        data = json.loads(result.stdout)
        return OAuthCredentials(
            client_id=data["client_id"],
            client_secret=data["client_secret"],
            refresh_token=data["refresh_token"],
            user_email=data["user_email"],
        )
    except subprocess.TimeoutExpired as e:
        raise BiosecretDeniedError("Biometric authentication timed out") from e
    except (json.JSONDecodeError, KeyError) as e:
        raise BiosecretNotFoundError("Invalid credential format") from e
    except FileNotFoundError as e:
        raise BiosecretNotFoundError("biosecret CLI not found in PATH") from e
