"""
Gmail Send MCP Server Contract
==============================

MCP tool for AI agents to send email through the Gmail API, gated by a
sliding-window rate limiter that protects the account from suspension.

This contract defines the behavioral specification for all public interfaces.
Implementation SHALL perform ONLY declared behaviors.

CONSTITUTIONAL REFERENCE:
- CL12: Design by Contract (PRE/POST/INV/ERRORS mandatory)
- CL10: Mock Derivation (all mocks must derive from this contract)
- CL12-E: Test Traceability (all tests must cite clause IDs)

AUTHORITY: This file is the SINGLE authoritative source for Gmail MCP behavior.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class Tone(Enum):
    """Tones accepted by compose_and_send."""
    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CASUAL = "casual"
    FORMAL = "formal"
    APOLOGETIC = "apologetic"
    URGENT = "urgent"


class Length(Enum):
    """Target lengths accepted by compose_and_send."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


@dataclass(frozen=True)
class Admission:
    """Outcome of an admission check. A denial is a value, never an exception."""
    allowed: bool
    reason: str | None
    hourly_remaining: int
    daily_remaining: int


@dataclass(frozen=True)
class RateLimitStatus:
    """Current consumption and remaining capacity of both windows."""
    hourly_count: int
    hourly_limit: int
    hourly_remaining: int
    daily_count: int
    daily_limit: int
    daily_remaining: int


@dataclass(frozen=True)
class SendResult:
    """Outcome of sending one message to one recipient."""
    email: str
    success: bool
    message_id: str | None = None
    error: str | None = None


# =============================================================================
# ERROR TYPES
# =============================================================================

class GmailMCPError(Exception):
    """Base error for all Gmail MCP operations."""
    code: str
    message: str


class ConfigurationError(GmailMCPError):
    """
    ERRORS-STARTUP-01: Required credentials missing or rate limits malformed.

    RECOVERY: Fatal. User must fix environment or .env file.
    """
    code = "CONFIGURATION_INVALID"


class BiosecretDeniedError(GmailMCPError):
    """
    ERRORS-STARTUP-02: User cancelled biometric prompt.

    RECOVERY: Fatal. Agent restarts MCP to retry.
    """
    code = "BIOSECRET_DENIED"


class BiosecretNotFoundError(GmailMCPError):
    """
    ERRORS-STARTUP-03: No credentials stored under expected keychain key.

    RECOVERY: Fatal. User must store credentials via biosecret before retry.
    """
    code = "BIOSECRET_NOT_FOUND"


class AuthFailedError(GmailMCPError):
    """
    ERRORS-TOOL-01: OAuth token endpoint rejected the refresh token.

    RECOVERY: User must mint a new refresh token.
    """
    code = "AUTH_FAILED"


class SendFailedError(GmailMCPError):
    """
    ERRORS-TOOL-02: Gmail rejected the message or the request never completed.

    RECOVERY: Reported per recipient; agent may retry later.
    """
    code = "SEND_FAILED"


class InvalidArgumentError(GmailMCPError):
    """
    ERRORS-TOOL-03: Tool arguments violate declared bounds.

    RECOVERY: Agent must correct arguments.
    """
    code = "INVALID_ARGUMENT"


class NotConnectedError(GmailMCPError):
    """
    ERRORS-TOOL-04: Server started without Gmail credentials attached.

    RECOVERY: Agent must restart MCP after credentials are configured.
    """
    code = "NOT_CONNECTED"


# =============================================================================
# STARTUP CONTRACT
# =============================================================================

@runtime_checkable
class StartupContract(Protocol):
    """
    MCP Process Startup Behavior

    SEQUENCE:
    1. MCP process starts, logging configured onto stderr
    2. .env loaded (existing environment wins)
    3. Credentials read from environment, or from biosecret when
       GMAIL_BIOSECRET_ACCOUNT is set
    4. Rate limits parsed (defaults 10/hour, 50/day)
    5. RateLimiter constructed with empty windows
    6. MCP ready to accept tool calls over stdio

    POST-STARTUP-01: ServerConfig holds all four OAuth credential fields
    POST-STARTUP-02: Rate limits are positive integers
    POST-STARTUP-03: Both limiter windows start empty

    INV-STARTUP-01 (Credential Isolation): Credentials held in memory only,
                    never written to disk or logs
    INV-STARTUP-02 (No Persistence): Rate limit state resets on every start

    ERRORS:
    - CONFIGURATION_INVALID: Missing credential or non-positive limit
    - BIOSECRET_DENIED: User cancelled biometric prompt
    - BIOSECRET_NOT_FOUND: No credentials under expected key
    """
    pass


# =============================================================================
# RATE LIMITER CONTRACT
# =============================================================================

@runtime_checkable
class RateLimiterContract(Protocol):
    """
    Sliding-window admission control over two independent windows
    (1 hour, 24 hours) of successful-send events.

    POST-LIMIT-01: check_admission denies when hourly_count >= max_per_hour
    POST-LIMIT-02: else denies when daily_count >= max_per_day
    POST-LIMIT-03: remaining = max(0, limit - count) for each window
    POST-LIMIT-04: record_success adds exactly one event to both windows
    POST-LIMIT-05: max_admissible_batch(n) == 0 when denied, else
                   min(n, hourly_remaining, daily_remaining)
    POST-LIMIT-06: suggested_inter_send_delay is within the configured range
    POST-LIMIT-07: snapshot returns an Admission and a RateLimitStatus taken
                   from one clock reading

    INV-LIMIT-01 (Expiry): An event recorded at T is counted strictly before
                 T + window and never at or after it
    INV-LIMIT-02 (Independence): Exhausting one window does not consume the
                 other's remaining capacity beyond the shared events
    INV-LIMIT-03 (Precedence): When both windows are exhausted the hourly
                 reason is reported
    INV-LIMIT-04 (Idempotent Reads): check_admission and status never change
                 counts
    INV-LIMIT-05 (Never Raises): All decisions are returned as values

    ERRORS: None
    """

    def check_admission(self) -> Admission:
        """Decide whether a send may happen now."""
        ...

    def record_success(self) -> None:
        """Record one confirmed successful send."""
        ...

    def status(self) -> RateLimitStatus:
        """Report consumption and remaining capacity."""
        ...

    def snapshot(self) -> tuple[Admission, RateLimitStatus]:
        """Admission decision and status at one instant."""
        ...

    def max_admissible_batch(self, requested: int) -> int:
        """Largest batch current capacity allows."""
        ...

    def suggested_inter_send_delay(self) -> float:
        """Pacing hint in seconds between consecutive sends."""
        ...


# =============================================================================
# TOOL CONTRACTS
# =============================================================================

@runtime_checkable
class SendEmailContract(Protocol):
    """
    Tool: send_email

    Send one email per address in `to`, copying cc/bcc onto each.

    PRE-SEND-01: to contains at least one address (comma-separated)
    PRE-SEND-02: len(subject) <= 200
    PRE-SEND-03: len(body) <= 10000
    PRE-SEND-04: every to/cc/bcc entry is a single well-formed address and
                 subject has no line breaks; checked before any send

    POST-SEND-01: Returns dict with keys: success, message, results, rate_limit
    POST-SEND-02: results has one SendResult per address in to
    POST-SEND-03: success is True iff at least one result succeeded
    POST-SEND-04: When denied before the first send, returns
                  {success: False, error: reason, rate_limit} and sends nothing

    INV-SEND-01 (Record After Success): record_success called once per
                confirmed send, never on failure
    INV-SEND-02 (Serialized): check-send-record is a critical section
    INV-SEND-03 (Re-check): Admission re-checked before every recipient
    INV-SEND-05 (No Idle Pacing): Once capacity is exhausted the remaining
                recipients are reported denied without further delays
    INV-SEND-04 (No Content Logging): Bodies never appear in logs

    ERRORS:
    - INVALID_ARGUMENT: subject/body too long, line break in subject,
      malformed address, or no recipients
    - NOT_CONNECTED: No Gmail credentials attached
    """

    async def send_email(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict:
        """Send an email."""
        ...


@runtime_checkable
class ComposeAndSendContract(Protocol):
    """
    Tool: compose_and_send

    Return drafting instructions for the agent; sends nothing itself.

    POST-COMPOSE-01: Returns dict with keys: success, action_required,
                     instructions, rate_limit
    POST-COMPOSE-02: action_required == "generate_and_send"
    POST-COMPOSE-03: When denied, returns {success: False, error, rate_limit}

    INV-COMPOSE-01 (No Send): Never calls the Gmail API, never records

    ERRORS:
    - INVALID_ARGUMENT: Unknown tone or length
    """

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
        """Build composition instructions."""
        ...


@runtime_checkable
class SendBulkEmailsContract(Protocol):
    """
    Tool: send_bulk_emails

    Send the same email individually to each recipient.

    PRE-BULK-01: recipients is a non-empty list of addresses
    PRE-BULK-02: every recipient is a well-formed address; one bad address
                 refuses the whole batch before any send

    POST-BULK-01: Batch larger than max_admissible_batch is refused whole,
                  before any send
    POST-BULK-02: {name} replaced with recipient_names[i] when
                  personalize_greeting is True
    POST-BULK-03: Returns dict with keys: success, message, results, rate_limit

    INV-BULK-01 (Pacing): Suggested delay awaited between sends, not after
                the last
    INV-BULK-02 (Record After Success): as INV-SEND-01

    ERRORS:
    - INVALID_ARGUMENT: subject/body too long, line break in subject,
      malformed recipient, or no recipients
    - NOT_CONNECTED: No Gmail credentials attached
    """

    async def send_bulk_emails(
        self,
        *,
        recipients: list[str],
        subject: str,
        body: str,
        personalize_greeting: bool = False,
        recipient_names: list[str] | None = None,
    ) -> dict:
        """Send one email per recipient."""
        ...


@runtime_checkable
class CheckEmailStatusContract(Protocol):
    """
    Tool: check_email_status

    POST-STATUS-01: Returns dict with keys: can_send, reason, hourly, daily, tip
    POST-STATUS-02: hourly/daily carry sent, limit, remaining
    POST-STATUS-03: can_send, counts and tip describe the same instant

    INV-STATUS-01 (Read-Only): Never changes limiter counts
    INV-STATUS-02 (Always Succeeds): No external calls

    ERRORS: None
    """

    def check_email_status(self) -> dict:
        """Report sending capacity."""
        ...


@runtime_checkable
class VerifyConnectionContract(Protocol):
    """
    Tool: verify_connection

    POST-VERIFY-01: Returns dict with keys: success, message
    POST-VERIFY-02: success is True iff the Gmail profile endpoint answered

    INV-VERIFY-01 (Never Raises): API failures reported as success=False

    ERRORS: None
    """

    async def verify_connection(self) -> dict:
        """Check Gmail API reachability."""
        ...


@runtime_checkable
class ScheduleReminderContract(Protocol):
    """
    Tool: schedule_reminder

    POST-REMINDER-01: Returns dict with keys: success, message, reminder,
                      how_to_send
    POST-REMINDER-02: reminder.created_at is a UTC ISO8601 timestamp

    INV-REMINDER-01 (Stateless): Nothing stored, nothing sent

    ERRORS: None
    """

    def schedule_reminder(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        reminder_note: str | None = None,
    ) -> dict:
        """Echo an email back for later sending."""
        ...


# =============================================================================
# GLOBAL INVARIANTS (Apply to ALL operations)
# =============================================================================

"""
INV-GLOBAL-01 (Gated Sends): Every Gmail send is preceded by an admission
             check on the same RateLimiter.

INV-GLOBAL-02 (Owned State): Rate limit state lives on the server instance;
             no module-level counters.

INV-GLOBAL-03 (No Content Logging): Email bodies and credentials MUST NOT
             appear in server logs under any circumstance.

INV-GLOBAL-04 (Values Not Exceptions): Rate limit denials are returned to the
             agent as JSON, never raised.
"""


# =============================================================================
# TEST CASE INDEX (CL12-E Traceability)
# =============================================================================

TEST_CASES = {
    # Startup tests
    "test_config_from_environment": {
        "contract": "StartupContract",
        "enforces": ["POST-STARTUP-01", "POST-STARTUP-02"],
    },
    "test_config_missing_credentials": {
        "contract": "StartupContract",
        "enforces": ["ERRORS: CONFIGURATION_INVALID"],
    },
    "test_config_non_positive_limit": {
        "contract": "StartupContract",
        "enforces": ["ERRORS: CONFIGURATION_INVALID"],
    },
    "test_biosecret_denied": {
        "contract": "StartupContract",
        "enforces": ["ERRORS: BIOSECRET_DENIED"],
    },
    "test_biosecret_not_found": {
        "contract": "StartupContract",
        "enforces": ["ERRORS: BIOSECRET_NOT_FOUND"],
    },
    "test_fresh_server_starts_empty": {
        "contract": "StartupContract",
        "enforces": ["POST-STARTUP-03", "INV-STARTUP-02"],
    },

    # Rate limiter tests
    "test_monotonic_exhaustion": {
        "contract": "RateLimiterContract",
        "enforces": ["POST-LIMIT-01", "POST-LIMIT-04"],
    },
    "test_window_independence": {
        "contract": "RateLimiterContract",
        "enforces": ["INV-LIMIT-02", "POST-LIMIT-03"],
    },
    "test_hourly_expiry_boundary": {
        "contract": "RateLimiterContract",
        "enforces": ["INV-LIMIT-01"],
    },
    "test_daily_expiry_boundary": {
        "contract": "RateLimiterContract",
        "enforces": ["INV-LIMIT-01", "POST-LIMIT-02"],
    },
    "test_hourly_reason_takes_precedence": {
        "contract": "RateLimiterContract",
        "enforces": ["INV-LIMIT-03"],
        "adversarial": True,
    },
    "test_batch_truncation": {
        "contract": "RateLimiterContract",
        "enforces": ["POST-LIMIT-05"],
    },
    "test_reads_do_not_change_counts": {
        "contract": "RateLimiterContract",
        "enforces": ["INV-LIMIT-04"],
        "adversarial": True,
    },
    "test_delay_within_range": {
        "contract": "RateLimiterContract",
        "enforces": ["POST-LIMIT-06"],
    },
    "test_snapshot_reads_clock_once": {
        "contract": "RateLimiterContract",
        "enforces": ["POST-LIMIT-07"],
    },

    # Send tests
    "test_send_single_recipient": {
        "contract": "SendEmailContract",
        "enforces": ["POST-SEND-01", "POST-SEND-02", "INV-SEND-01"],
    },
    "test_send_denied_sends_nothing": {
        "contract": "SendEmailContract",
        "enforces": ["POST-SEND-04", "INV-GLOBAL-01", "INV-GLOBAL-04"],
        "adversarial": True,
    },
    "test_send_failure_not_recorded": {
        "contract": "SendEmailContract",
        "enforces": ["INV-SEND-01", "POST-SEND-03"],
        "adversarial": True,
    },
    "test_send_rechecks_per_recipient": {
        "contract": "SendEmailContract",
        "enforces": ["INV-SEND-03", "INV-SEND-05"],
    },
    "test_concurrent_sends_cannot_overshoot": {
        "contract": "SendEmailContract",
        "enforces": ["INV-SEND-02"],
        "adversarial": True,
    },
    "test_send_no_body_logging": {
        "contract": "SendEmailContract",
        "enforces": ["INV-SEND-04", "INV-GLOBAL-03"],
        "adversarial": True,
    },
    "test_send_rejects_header_injection": {
        "contract": "SendEmailContract",
        "enforces": ["PRE-SEND-04", "ERRORS: INVALID_ARGUMENT"],
        "adversarial": True,
    },

    # Bulk tests
    "test_bulk_refused_over_capacity": {
        "contract": "SendBulkEmailsContract",
        "enforces": ["POST-BULK-01"],
    },
    "test_bulk_personalizes_names": {
        "contract": "SendBulkEmailsContract",
        "enforces": ["POST-BULK-02", "POST-BULK-03"],
    },
    "test_bulk_paces_between_sends": {
        "contract": "SendBulkEmailsContract",
        "enforces": ["INV-BULK-01"],
    },
    "test_bulk_rejects_invalid_address": {
        "contract": "SendBulkEmailsContract",
        "enforces": ["PRE-BULK-02"],
        "adversarial": True,
    },

    # Other tools
    "test_compose_returns_instructions": {
        "contract": "ComposeAndSendContract",
        "enforces": ["POST-COMPOSE-01", "POST-COMPOSE-02", "INV-COMPOSE-01"],
    },
    "test_status_reports_capacity": {
        "contract": "CheckEmailStatusContract",
        "enforces": ["POST-STATUS-01", "POST-STATUS-02", "INV-STATUS-01"],
    },
    "test_status_single_instant": {
        "contract": "CheckEmailStatusContract",
        "enforces": ["POST-STATUS-03"],
        "adversarial": True,
    },
    "test_verify_connection_failure": {
        "contract": "VerifyConnectionContract",
        "enforces": ["POST-VERIFY-02", "INV-VERIFY-01"],
    },
    "test_schedule_reminder_echoes": {
        "contract": "ScheduleReminderContract",
        "enforces": ["POST-REMINDER-01", "POST-REMINDER-02", "INV-REMINDER-01"],
    },
}
