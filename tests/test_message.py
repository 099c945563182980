"""
Message Building Tests
======================
"""

import base64
import email

import pytest

from src.gmail_mcp.message import (
    build_message,
    encode_raw,
    has_line_break,
    is_valid_address,
    personalize,
    split_addresses,
)


def test_split_addresses():
    assert split_addresses("a@example.com, b@example.com,,  ") == ["a@example.com", "b@example.com"]
    assert split_addresses("") == []
    assert split_addresses(None) == []


@pytest.mark.parametrize(
    "value,expected",
    [
        ("alice@example.com", True),
        ("Alice Smith <alice@example.com>", True),
        ("not-an-address", False),
        ("@example.com", False),
        ("alice@", False),
        ("b@example.com\nBcc: evil@example.com", False),
        ("b@example.com\r", False),
    ],
)
def test_is_valid_address(value, expected):
    assert is_valid_address(value) is expected


def test_has_line_break():
    assert has_line_break("Hi\nthere")
    assert has_line_break("Hi\r")
    assert not has_line_break("Hi there")


def test_personalize_replaces_every_placeholder():
    assert personalize("Hi {name}, bye {name}", "Ann") == "Hi Ann, bye Ann"
    assert personalize("Hi {name}", None) == "Hi {name}"


def test_build_message_headers():
    msg = build_message(
        sender="me@example.com",
        to="alice@example.com",
        subject="Quarterly update",
        body="Numbers attached.",
        cc=["c1@example.com", "c2@example.com"],
        bcc=["b@example.com"],
    )

    assert msg["From"] == "me@example.com"
    assert msg["To"] == "alice@example.com"
    assert msg["Cc"] == "c1@example.com, c2@example.com"
    assert msg["Bcc"] == "b@example.com"
    assert msg["Subject"] == "Quarterly update"
    assert msg["MIME-Version"] == "1.0"
    assert msg.get_content_type() == "text/plain"
    assert msg.get_content_charset() == "utf-8"


def test_build_message_omits_empty_copies():
    msg = build_message(sender="me@example.com", to="a@example.com", subject="s", body="b")
    assert msg["Cc"] is None
    assert msg["Bcc"] is None


def test_encode_raw_is_unpadded_urlsafe():
    msg = build_message(
        sender="me@example.com",
        to="alice@example.com",
        subject="Café ünïcode",
        body="Grüße aus Köln",
    )
    raw = encode_raw(msg)

    assert "=" not in raw
    assert "+" not in raw and "/" not in raw

    decoded = email.message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    assert decoded.get_payload(decode=True).decode("utf-8").strip() == "Grüße aus Köln"
    assert "\r\n" in msg.as_string()
