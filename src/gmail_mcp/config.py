"""
Configuration
=============

Builds ServerConfig from the process environment once at startup. A .env file
is loaded first; variables already set in the environment win.

ERRORS:
- ConfigurationError: Missing credential, or a limit that is not a positive
  integer
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import load_dotenv

from contracts import ConfigurationError
from src.gmail_mcp.credentials import OAuthCredentials, retrieve_credentials

DEFAULT_MAX_PER_HOUR = 10
DEFAULT_MAX_PER_DAY = 50

_CREDENTIAL_VARS = {
    "client_id": "GMAIL_CLIENT_ID",
    "client_secret": "GMAIL_CLIENT_SECRET",
    "refresh_token": "GMAIL_REFRESH_TOKEN",
    "user_email": "GMAIL_USER_EMAIL",
}


@dataclass(frozen=True)
class RateLimitConfig:
    """Send limits, immutable for the process lifetime."""

    max_per_hour: int = DEFAULT_MAX_PER_HOUR
    max_per_day: int = DEFAULT_MAX_PER_DAY


@dataclass(frozen=True)
class ServerConfig:
    credentials: OAuthCredentials
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


def _parse_limit(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _credentials_from_env(env: Mapping[str, str]) -> OAuthCredentials:
    values = {attr: env.get(var, "").strip() for attr, var in _CREDENTIAL_VARS.items()}
    missing = [_CREDENTIAL_VARS[attr] for attr, value in values.items() if not value]
    if missing:
        raise ConfigurationError(
            "Missing required Gmail credentials: "
            + ", ".join(missing)
            + ". Set them in the environment or a .env file."
        )
    return OAuthCredentials(**values)


def load_config(
    env: Mapping[str, str] | None = None,
    *,
    dotenv_path: str | None = None,
) -> ServerConfig:
    """
    Load configuration.

    When `env` is None the real environment is used, after loading `.env`.
    Passing a mapping skips .env entirely (tests).

    POST-STARTUP-01: All four credential fields present
    POST-STARTUP-02: Limits are positive integers
    """
    if env is None:
        load_dotenv(dotenv_path, override=False)
        env = os.environ

    account = env.get("GMAIL_BIOSECRET_ACCOUNT", "").strip()
    if account:
        credentials = retrieve_credentials(account)
    else:
        credentials = _credentials_from_env(env)

    return ServerConfig(
        credentials=credentials,
        rate_limit=RateLimitConfig(
            max_per_hour=_parse_limit(env, "MAX_EMAILS_PER_HOUR", DEFAULT_MAX_PER_HOUR),
            max_per_day=_parse_limit(env, "MAX_EMAILS_PER_DAY", DEFAULT_MAX_PER_DAY),
        ),
    )
