"""
Gmail MCP Server
================

MCP server implementing rate-limited email sending tools per contract
specification.

CONSTITUTIONAL INVARIANTS ENFORCED:
- INV-GLOBAL-01: Every send preceded by an admission check
- INV-GLOBAL-02: Rate limit state owned by the server instance
- INV-GLOBAL-03: No logging of message bodies or credentials
- INV-GLOBAL-04: Rate limit denials returned as values
- INV-SEND-02: check-send-record serialized per logical send
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from contracts import (
    AuthFailedError,
    GmailMCPError,
    InvalidArgumentError,
    Length,
    NotConnectedError,
    SendFailedError,
    SendResult,
    Tone,
)
from src.gmail_mcp.config import RateLimitConfig
from src.gmail_mcp.credentials import OAuthCredentials
from src.gmail_mcp.gmail_client import GmailClient
from src.gmail_mcp.message import (
    MAX_BODY_LENGTH,
    MAX_SUBJECT_LENGTH,
    build_message,
    encode_raw,
    has_line_break,
    is_valid_address,
    personalize,
    split_addresses,
)
from src.gmail_mcp.rate_limiter import RateLimiter

# Configure logging to NEVER include message content (INV-GLOBAL-03)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("gmail-mcp")

_LENGTH_GUIDE = {
    Length.SHORT: "short (2-3 sentences)",
    Length.MEDIUM: "medium (1-2 paragraphs)",
    Length.LONG: "long (3+ paragraphs)",
}


class GmailMCPServer:
    """
    Gmail MCP Server - rate-limited email sending for AI agents.

    Owns exactly one RateLimiter and at most one GmailClient for the process
    lifetime.
    """

    def __init__(
        self,
        rate_limit: RateLimitConfig | None = None,
        *,
        limiter: RateLimiter | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        rate_limit = rate_limit or RateLimitConfig()
        self._limiter = limiter or RateLimiter(rate_limit.max_per_hour, rate_limit.max_per_day)
        self._client: GmailClient | None = None
        self._sleep = sleep
        self._send_lock = asyncio.Lock()
        self._server = Server("gmail-mcp")
        self._setup_tools()

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def _setup_tools(self) -> None:
        """Register MCP tools."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return [
                Tool(
                    name="send_email",
                    description=(
                        "Send an email via Gmail. Use this for any email - personal, "
                        "professional, follow-ups, newsletters, etc. Rate-limited to "
                        "protect your account."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "to": {
                                "type": "string",
                                "description": "Recipient email address (single or comma-separated for multiple)",
                            },
                            "subject": {
                                "type": "string",
                                "description": "Email subject line",
                                "maxLength": MAX_SUBJECT_LENGTH,
                            },
                            "body": {
                                "type": "string",
                                "description": "Email body content (plain text)",
                                "maxLength": MAX_BODY_LENGTH,
                            },
                            "cc": {
                                "type": "string",
                                "description": "Optional: CC recipients (comma-separated)",
                            },
                            "bcc": {
                                "type": "string",
                                "description": "Optional: BCC recipients (comma-separated)",
                            },
                        },
                        "required": ["to", "subject", "body"],
                    },
                ),
                Tool(
                    name="compose_and_send",
                    description=(
                        "Compose and send an email based on your instructions. Describe "
                        "what you want to say and I will draft and send it."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "to": {"type": "string", "description": "Recipient email address"},
                            "purpose": {
                                "type": "string",
                                "description": "What is this email about? Describe the purpose and key points.",
                            },
                            "tone": {
                                "type": "string",
                                "enum": [t.value for t in Tone],
                                "default": Tone.PROFESSIONAL.value,
                                "description": "Desired tone of the email",
                            },
                            "subject_hint": {
                                "type": "string",
                                "description": "Optional: Suggested subject or leave blank for auto-generation",
                            },
                            "include_points": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Optional: Specific points or information to include",
                            },
                            "max_length": {
                                "type": "string",
                                "enum": [length.value for length in Length],
                                "default": Length.MEDIUM.value,
                                "description": "Email length: short (2-3 sentences), medium (1-2 paragraphs), long (3+ paragraphs)",
                            },
                        },
                        "required": ["to", "purpose"],
                    },
                ),
                Tool(
                    name="send_bulk_emails",
                    description=(
                        "Send the same email to multiple recipients. Each recipient gets an "
                        "individual email (not CC/BCC). Rate-limited with delays between sends."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "recipients": {
                                "type": "array",
                                "items": {"type": "string", "format": "email"},
                                "description": "List of recipient email addresses",
                            },
                            "subject": {
                                "type": "string",
                                "description": "Email subject line",
                                "maxLength": MAX_SUBJECT_LENGTH,
                            },
                            "body": {
                                "type": "string",
                                "description": "Email body content",
                                "maxLength": MAX_BODY_LENGTH,
                            },
                            "personalize_greeting": {
                                "type": "boolean",
                                "default": False,
                                "description": "If true, expects {name} placeholder in body to personalize",
                            },
                            "recipient_names": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Names corresponding to each recipient (for personalization)",
                            },
                        },
                        "required": ["recipients", "subject", "body"],
                    },
                ),
                Tool(
                    name="check_email_status",
                    description="Check your current email sending capacity and rate limit status.",
                    inputSchema={
                        "type": "object",
                        "properties": {},
                    },
                ),
                Tool(
                    name="verify_connection",
                    description=(
                        "Verify that the Gmail connection is working. Use this to test if "
                        "your email is properly configured."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {},
                    },
                ),
                Tool(
                    name="schedule_reminder",
                    description=(
                        "Create a reminder for an email you want to send later. Returns the "
                        "email details for you to send when ready."
                    ),
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "to": {"type": "string", "description": "Recipient email address"},
                            "subject": {"type": "string", "description": "Email subject"},
                            "body": {"type": "string", "description": "Email body"},
                            "reminder_note": {
                                "type": "string",
                                "description": "Note about when/why to send this email",
                            },
                        },
                        "required": ["to", "subject", "body"],
                    },
                ),
            ]

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            return await self.dispatch(name, arguments)

    async def dispatch(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Route one tool call and wrap its result as JSON text."""
        arguments = arguments or {}
        try:
            if name == "send_email":
                result = await self.send_email(**arguments)
            elif name == "compose_and_send":
                result = self.compose_and_send(**arguments)
            elif name == "send_bulk_emails":
                result = await self.send_bulk_emails(**arguments)
            elif name == "check_email_status":
                result = self.check_email_status()
            elif name == "verify_connection":
                result = await self.verify_connection()
            elif name == "schedule_reminder":
                result = self.schedule_reminder(**arguments)
            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

            return [TextContent(type="text", text=self._serialize_result(result))]

        except GmailMCPError as e:
            return [TextContent(type="text", text=f"Error: {e.__class__.__name__}: {e}")]

    def connect(self, credentials: OAuthCredentials, *, client: GmailClient | None = None) -> None:
        """
        Attach Gmail credentials.

        Single client per process; a second call is a programming error.
        """
        if self._client is not None:
            raise RuntimeError("Gmail client already attached")

        self._client = client or GmailClient(credentials)
        logger.info("Gmail client ready for %s", credentials.user_email)

    async def disconnect(self) -> None:
        """Close and forget the Gmail client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Gmail client closed")

    def _require_client(self) -> GmailClient:
        if self._client is None:
            raise NotConnectedError("Gmail credentials are not configured")
        return self._client

    def _denied(self, reason: str | None) -> dict:
        logger.warning("Send refused: %s", reason)
        return {
            "success": False,
            "error": reason,
            "rate_limit": self._limiter.status(),
        }

    @staticmethod
    def _validate_content(subject: str, body: str) -> None:
        if len(subject) > MAX_SUBJECT_LENGTH:
            raise InvalidArgumentError(f"subject exceeds {MAX_SUBJECT_LENGTH} characters")
        if len(body) > MAX_BODY_LENGTH:
            raise InvalidArgumentError(f"body exceeds {MAX_BODY_LENGTH} characters")
        if has_line_break(subject):
            raise InvalidArgumentError("subject must not contain line breaks")

    @staticmethod
    def _validate_addresses(field: str, addresses: list[str]) -> None:
        for address in addresses:
            if not is_valid_address(address):
                raise InvalidArgumentError(f"{field} contains an invalid address: {address!r}")

    async def _send_one(
        self,
        client: GmailClient,
        *,
        recipient: str,
        subject: str,
        body: str,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
    ) -> SendResult:
        """
        Admit, send and record one message as a single critical section.

        INV-SEND-01: record_success only after Gmail returned a message id
        INV-SEND-02: Lock held from admission check to record
        """
        async with self._send_lock:
            admission = self._limiter.check_admission()
            if not admission.allowed:
                return SendResult(email=recipient, success=False, error=admission.reason)

            msg = build_message(
                sender=client.user_email,
                to=recipient,
                subject=subject,
                body=body,
                cc=cc,
                bcc=bcc,
            )
            try:
                message_id = await client.send_raw(encode_raw(msg))
            except (AuthFailedError, SendFailedError) as e:
                logger.warning("Send failed: %s", e)
                return SendResult(email=recipient, success=False, error=str(e))

            self._limiter.record_success()

        logger.info("Sent message %s", message_id)
        return SendResult(email=recipient, success=True, message_id=message_id)

    async def _send_paced(self, client: GmailClient, messages: list[dict]) -> list[SendResult]:
        """
        Send each message in turn, pausing between sends.

        Once capacity runs out the remaining recipients are marked denied
        without waiting or contacting Gmail.
        """
        results = []
        for i, message in enumerate(messages):
            results.append(await self._send_one(client, **message))
            if i == len(messages) - 1:
                break

            admission = self._limiter.check_admission()
            if not admission.allowed:
                logger.warning("Send refused: %s", admission.reason)
                results.extend(
                    SendResult(email=rest["recipient"], success=False, error=admission.reason)
                    for rest in messages[i + 1:]
                )
                break
            await self._sleep(self._limiter.suggested_inter_send_delay())
        return results

    def _summarize(self, results: list[SendResult]) -> dict:
        success_count = sum(1 for r in results if r.success)
        return {
            "success": success_count > 0,
            "message": f"Sent {success_count}/{len(results)} emails successfully",
            "results": results,
            "rate_limit": self._limiter.status(),
        }

    async def send_email(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict:
        """
        Send one message per address in `to`.

        Implements SendEmailContract.
        INV-SEND-03: Admission re-checked for every recipient.
        """
        recipients = split_addresses(to)
        if not recipients:
            raise InvalidArgumentError("to must contain at least one address")
        self._validate_content(subject, body)
        cc_addrs = split_addresses(cc)
        bcc_addrs = split_addresses(bcc)
        self._validate_addresses("to", recipients)
        self._validate_addresses("cc", cc_addrs)
        self._validate_addresses("bcc", bcc_addrs)
        client = self._require_client()

        admission = self._limiter.check_admission()
        if not admission.allowed:
            return self._denied(admission.reason)

        # Log recipient count only, never content (INV-GLOBAL-03)
        logger.info("Sending email to %d recipient(s)", len(recipients))

        results = await self._send_paced(
            client,
            [
                {"recipient": recipient, "subject": subject, "body": body, "cc": cc_addrs, "bcc": bcc_addrs}
                for recipient in recipients
            ],
        )

        return self._summarize(results)

    def compose_and_send(
        self,
        *,
        to: str,
        purpose: str,
        tone: str = "professional",
        subject_hint: str | None = None,
        include_points: list[str] | None = None,
        max_length: str = "medium",
    ) -> dict:
        """
        Build drafting instructions; the agent sends via send_email.

        Implements ComposeAndSendContract.
        INV-COMPOSE-01: Never sends, never records.
        """
        try:
            tone_value = Tone(tone)
            length_value = Length(max_length)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e

        admission = self._limiter.check_admission()
        if not admission.allowed:
            return self._denied(admission.reason)

        lines = [
            "Please generate an email with these specifications and then use the "
            "send_email tool to send it:",
            "",
            f"RECIPIENT: {to}",
            f"PURPOSE: {purpose}",
            f"TONE: {tone_value.value}",
            f"LENGTH: {_LENGTH_GUIDE[length_value]}",
            f"SUBJECT HINT: {subject_hint}" if subject_hint else "SUBJECT: Generate an appropriate subject line",
        ]
        if include_points:
            lines.append("MUST INCLUDE:")
            lines.extend(f"- {point}" for point in include_points)
        lines.extend(["", "After generating the email, call send_email with the to, subject, and body."])

        return {
            "success": True,
            "action_required": "generate_and_send",
            "instructions": "\n".join(lines),
            "rate_limit": self._limiter.status(),
        }

    async def send_bulk_emails(
        self,
        *,
        recipients: list[str],
        subject: str,
        body: str,
        personalize_greeting: bool = False,
        recipient_names: list[str] | None = None,
    ) -> dict:
        """
        Send the same email individually to every recipient.

        Implements SendBulkEmailsContract.
        POST-BULK-01: Whole batch refused when capacity is short.
        INV-BULK-01: Delay between sends, none after the last.
        """
        if not recipients:
            raise InvalidArgumentError("recipients must contain at least one address")
        self._validate_content(subject, body)
        self._validate_addresses("recipients", recipients)
        client = self._require_client()

        admission = self._limiter.check_admission()
        if not admission.allowed:
            return self._denied(admission.reason)

        max_to_send = self._limiter.max_admissible_batch(len(recipients))
        if max_to_send < len(recipients):
            return self._denied(
                f"Can only send {max_to_send} emails due to rate limits. "
                f"Requested: {len(recipients)}"
            )

        names = recipient_names or []
        logger.info("Bulk sending to %d recipients", len(recipients))

        messages = []
        for i, recipient in enumerate(recipients):
            name = names[i] if personalize_greeting and i < len(names) else None
            messages.append({"recipient": recipient, "subject": subject, "body": personalize(body, name)})

        results = await self._send_paced(client, messages)

        return self._summarize(results)

    def check_email_status(self) -> dict:
        """
        Report sending capacity.

        Implements CheckEmailStatusContract.
        INV-STATUS-01: Read-only.
        POST-STATUS-03: One clock reading for every figure.
        """
        admission, status = self._limiter.snapshot()

        if admission.allowed:
            tip = (
                f"You can send up to {min(status.hourly_remaining, status.daily_remaining)} "
                "more emails right now."
            )
        else:
            tip = "Wait for the rate limit to reset before sending more emails."

        return {
            "can_send": admission.allowed,
            "reason": admission.reason,
            "hourly": {
                "sent": status.hourly_count,
                "limit": status.hourly_limit,
                "remaining": status.hourly_remaining,
            },
            "daily": {
                "sent": status.daily_count,
                "limit": status.daily_limit,
                "remaining": status.daily_remaining,
            },
            "tip": tip,
        }

    async def verify_connection(self) -> dict:
        """
        Check that Gmail answers for the configured account.

        Implements VerifyConnectionContract.
        INV-VERIFY-01: Failures reported, never raised.
        """
        if self._client is None:
            return {
                "success": False,
                "message": "Gmail credentials are not configured. Check your .env file.",
            }

        try:
            profile = await self._client.get_profile()
        except GmailMCPError as e:
            logger.warning("Gmail connection verification failed: %s", e)
            return {
                "success": False,
                "message": "Gmail connection failed. Check your credentials in the .env file.",
                "error": str(e),
            }

        return {
            "success": True,
            "message": "Gmail is connected and ready to send emails!",
            "email_address": profile.get("emailAddress"),
        }

    def schedule_reminder(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        reminder_note: str | None = None,
    ) -> dict:
        """
        Echo the email back so the agent can send it later.

        Implements ScheduleReminderContract.
        INV-REMINDER-01: Nothing stored, nothing sent.
        """
        return {
            "success": True,
            "message": "Email saved for later. Ask me to send it when you're ready.",
            "reminder": {
                "to": to,
                "subject": subject,
                "body": body,
                "note": reminder_note or "No reminder note set",
                "created_at": datetime.now(timezone.utc).isoformat(),
            },
            "how_to_send": 'Say "send that email" or "send the email to [recipient]" when ready.',
        }

    def _serialize_result(self, result: Any) -> str:
        """Serialize result to JSON string."""

        def default_serializer(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return asdict(obj)
            if hasattr(obj, "value"):  # Enum
                return obj.value
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(result, default=default_serializer, indent=2)

    async def run(self) -> None:
        """Run the MCP server over stdio."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self._server.run(
                    read_stream, write_stream, self._server.create_initialization_options()
                )
        finally:
            await self.disconnect()


def create_server(rate_limit: RateLimitConfig | None = None, **kwargs: Any) -> GmailMCPServer:
    """Create a new server instance with a fresh RateLimiter."""
    return GmailMCPServer(rate_limit, **kwargs)
