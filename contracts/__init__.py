"""
Gmail MCP Contract Index
========================

AUTHORITY: This file is the SINGLE authoritative entrypoint for all
Gmail MCP contracts. Import from here, not from individual contract files.

CONSTITUTIONAL REFERENCE: CL12-C (Single Authoritative Source)
"""

from contracts.gmail_send_contract import (
    # Test Case Index
    TEST_CASES,
    # Domain Types
    Admission,
    AuthFailedError,
    BiosecretDeniedError,
    BiosecretNotFoundError,
    CheckEmailStatusContract,
    ComposeAndSendContract,
    ConfigurationError,
    # Error Types
    GmailMCPError,
    InvalidArgumentError,
    Length,
    NotConnectedError,
    RateLimiterContract,
    RateLimitStatus,
    ScheduleReminderContract,
    SendBulkEmailsContract,
    # Contracts (Protocols)
    SendEmailContract,
    SendFailedError,
    SendResult,
    StartupContract,
    Tone,
    VerifyConnectionContract,
)

__all__ = [
    # Domain Types
    "Tone",
    "Length",
    "Admission",
    "RateLimitStatus",
    "SendResult",
    # Error Types
    "GmailMCPError",
    "ConfigurationError",
    "BiosecretDeniedError",
    "BiosecretNotFoundError",
    "AuthFailedError",
    "SendFailedError",
    "InvalidArgumentError",
    "NotConnectedError",
    # Contracts
    "StartupContract",
    "RateLimiterContract",
    "SendEmailContract",
    "ComposeAndSendContract",
    "SendBulkEmailsContract",
    "CheckEmailStatusContract",
    "VerifyConnectionContract",
    "ScheduleReminderContract",
    # Test Traceability
    "TEST_CASES",
    # Functions
    "audit_contract_coverage",
]


def audit_contract_coverage() -> dict:
    """
    Audit which contract clauses have test coverage.

    Returns dict with:
    - covered: clauses with at least one test
    - uncovered: clauses with no tests
    - test_count: total tests defined

    Used by constitutional-audit skill.
    """
    covered_clauses = set()
    for test_name, test_info in TEST_CASES.items():
        for clause in test_info.get("enforces", []):
            covered_clauses.add(clause)

    # All PRE/POST/INV/ERRORS clauses from contracts
    all_clauses = set()

    # Startup clauses
    all_clauses.update(
        [
            "POST-STARTUP-01",
            "POST-STARTUP-02",
            "POST-STARTUP-03",
            "INV-STARTUP-01",
            "INV-STARTUP-02",
            "ERRORS: CONFIGURATION_INVALID",
            "ERRORS: BIOSECRET_DENIED",
            "ERRORS: BIOSECRET_NOT_FOUND",
        ]
    )

    # Rate limiter clauses
    all_clauses.update(
        [
            "POST-LIMIT-01",
            "POST-LIMIT-02",
            "POST-LIMIT-03",
            "POST-LIMIT-04",
            "POST-LIMIT-05",
            "POST-LIMIT-06",
            "POST-LIMIT-07",
            "INV-LIMIT-01",
            "INV-LIMIT-02",
            "INV-LIMIT-03",
            "INV-LIMIT-04",
            "INV-LIMIT-05",
        ]
    )

    # Send clauses
    all_clauses.update(
        [
            "PRE-SEND-01",
            "PRE-SEND-02",
            "PRE-SEND-03",
            "PRE-SEND-04",
            "POST-SEND-01",
            "POST-SEND-02",
            "POST-SEND-03",
            "POST-SEND-04",
            "INV-SEND-01",
            "INV-SEND-02",
            "INV-SEND-03",
            "INV-SEND-04",
            "INV-SEND-05",
            "ERRORS: INVALID_ARGUMENT",
            "ERRORS: NOT_CONNECTED",
        ]
    )

    # Bulk clauses
    all_clauses.update(
        [
            "PRE-BULK-01",
            "PRE-BULK-02",
            "POST-BULK-01",
            "POST-BULK-02",
            "POST-BULK-03",
            "INV-BULK-01",
            "INV-BULK-02",
        ]
    )

    # Compose, status, verify, reminder clauses
    all_clauses.update(
        [
            "POST-COMPOSE-01",
            "POST-COMPOSE-02",
            "POST-COMPOSE-03",
            "INV-COMPOSE-01",
            "POST-STATUS-01",
            "POST-STATUS-02",
            "POST-STATUS-03",
            "INV-STATUS-01",
            "INV-STATUS-02",
            "POST-VERIFY-01",
            "POST-VERIFY-02",
            "INV-VERIFY-01",
            "POST-REMINDER-01",
            "POST-REMINDER-02",
            "INV-REMINDER-01",
        ]
    )

    # Global invariants
    all_clauses.update(
        [
            "INV-GLOBAL-01",
            "INV-GLOBAL-02",
            "INV-GLOBAL-03",
            "INV-GLOBAL-04",
        ]
    )

    uncovered = all_clauses - covered_clauses

    return {
        "covered": sorted(covered_clauses),
        "uncovered": sorted(uncovered),
        "test_count": len(TEST_CASES),
        "coverage_pct": round(len(covered_clauses) / len(all_clauses) * 100, 1),
    }
