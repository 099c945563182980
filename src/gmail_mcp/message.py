"""
Message Building
================

Turns tool arguments into the base64url-encoded RFC 5322 message the Gmail
send endpoint expects.
"""

from __future__ import annotations

import base64
from email.message import EmailMessage
from email.policy import SMTP
from email.utils import parseaddr

MAX_SUBJECT_LENGTH = 200
MAX_BODY_LENGTH = 10000


def split_addresses(value: str | None) -> list[str]:
    """Split a comma-separated recipient string, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def has_line_break(value: str) -> bool:
    """True when `value` would split a header line."""
    return "\r" in value or "\n" in value


def is_valid_address(value: str) -> bool:
    """
    One addr-spec or `Name <addr-spec>` with a non-empty local part and domain.

    Header folding characters are rejected outright.
    """
    if has_line_break(value):
        return False
    _, addr = parseaddr(value)
    local, at, domain = addr.rpartition("@")
    return bool(at and local and domain) and " " not in addr


def personalize(body: str, name: str | None) -> str:
    """Replace every {name} placeholder with `name`."""
    if not name:
        return body
    return body.replace("{name}", name)


def build_message(
    *,
    sender: str,
    to: str,
    subject: str,
    body: str,
    cc: list[str] | None = None,
    bcc: list[str] | None = None,
) -> EmailMessage:
    """Plain-text UTF-8 message with From/To/Cc/Bcc/Subject headers."""
    msg = EmailMessage(policy=SMTP)
    msg["From"] = sender
    msg["To"] = to
    if cc:
        msg["Cc"] = ", ".join(cc)
    if bcc:
        msg["Bcc"] = ", ".join(bcc)
    msg["Subject"] = subject
    msg.set_content(body, subtype="plain", charset="utf-8")
    return msg


def encode_raw(msg: EmailMessage) -> str:
    """URL-safe base64 without padding, as Gmail's `raw` field takes it."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
