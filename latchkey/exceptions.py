"""Latchkey exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from latchkey.exceptions import ChallengeExpired, PasskeyError

    try:
        await orchestrator.verify_authentication(username, assertion, origin)
    except PasskeyError as e:
        logger.info("Login rejected: %s (status %s)", e, e.status_code)
"""

import uuid
from typing import Any


class LatchkeyError(Exception):
    """Base exception for all Latchkey application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ConfigurationError(LatchkeyError):
    """Errors from application configuration."""

    pass


class StoreError(LatchkeyError):
    """Errors from the key-value backend holding user records.

    Never reported as a protocol failure: a broken store is fatal
    for the request and surfaces as a 500.
    """

    def __init__(self, message: str, *, key: str | None = None, **kwargs):
        self.key = key
        super().__init__(message, **kwargs)


class PasskeyError(LatchkeyError):
    """Structured failure of a registration or authentication step.

    Each subclass maps to one HTTP status; callers decide whether to
    request a fresh challenge and retry.
    """

    status_code: int = 400
    error_type: str = "passkey_error"


class BadRequest(PasskeyError):
    """A required field is missing or empty."""

    status_code = 400
    error_type = "bad_request"


class ChallengeExpired(PasskeyError):
    """No pending challenge for the user (never issued, consumed, or unknown user)."""

    status_code = 410
    error_type = "challenge_expired"


class UnknownAccount(PasskeyError):
    """No record, or no enrolled credentials, for the username."""

    status_code = 404
    error_type = "unknown_account"


class UnknownCredential(PasskeyError):
    """The asserted credential ID is not enrolled for this user."""

    status_code = 404
    error_type = "unknown_credential"


class InvalidAssertion(PasskeyError):
    """The WebAuthn verifier rejected the assertion.

    Carries the verifier's classification so clients can diagnose
    the failure without seeing any key material.
    """

    status_code = 400
    error_type = "invalid_assertion"

    def __init__(
        self,
        message: str,
        kind: str,
        details: dict[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ):
        self.kind = kind
        self.details = details
        super().__init__(message, correlation_id=correlation_id)
