"""WebAuthn verification boundary.

The orchestrator never touches signatures or attestation itself; it hands
an assertion plus an :class:`Expectation` to a ``WebAuthnVerifier``.
:class:`PyWebAuthnVerifier` is the production implementation on top of
py_webauthn.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from latchkey.passkey.records import CredentialRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Expectation:
    """What the verifier must confirm about an assertion."""

    challenge: str
    origin: str
    require_user_verified: bool = False
    counter: int | None = None


@dataclass
class AuthenticationResult:
    """Outcome of a successful authentication assertion."""

    credential_id: str
    new_counter: int
    user_verified: bool
    device_type: str | None = None
    backed_up: bool = False

    def to_dict(self) -> dict[str, Any]:
        """JSON body returned to the client."""
        return {
            "credentialId": self.credential_id,
            "newCounter": self.new_counter,
            "userVerified": self.user_verified,
            "deviceType": self.device_type,
            "backedUp": self.backed_up,
        }


class VerificationFailed(Exception):
    """Structured rejection raised by a verifier.

    ``kind`` classifies the failure (e.g. ``InvalidRegistrationResponse``).
    """

    def __init__(self, kind: str, message: str, details: dict[str, Any] | None = None):
        self.kind = kind
        self.message = message
        self.details = details
        super().__init__(message)


class WebAuthnVerifier(Protocol):
    """Cryptographic verification of registration and authentication assertions."""

    async def verify_registration(
        self, assertion: dict[str, Any], expectation: Expectation
    ) -> CredentialRecord: ...

    async def verify_authentication(
        self,
        assertion: dict[str, Any],
        credential: CredentialRecord,
        expectation: Expectation,
    ) -> AuthenticationResult: ...


class PyWebAuthnVerifier:
    """Verifier backed by py_webauthn.

    Args:
        rp_id: Relying Party ID the authenticator data must be scoped to
    """

    def __init__(self, rp_id: str) -> None:
        self.rp_id = rp_id

    async def verify_registration(
        self, assertion: dict[str, Any], expectation: Expectation
    ) -> CredentialRecord:
        try:
            verification = verify_registration_response(
                credential=assertion,
                expected_challenge=base64url_to_bytes(expectation.challenge),
                expected_rp_id=self.rp_id,
                expected_origin=expectation.origin,
                require_user_verification=expectation.require_user_verified,
            )
        except Exception as e:
            logger.debug("py_webauthn rejected registration: %s", e)
            raise VerificationFailed(type(e).__name__, str(e)) from e

        response = assertion.get("response") or {}
        return CredentialRecord(
            credential_id=bytes_to_base64url(verification.credential_id),
            public_key=bytes_to_base64url(verification.credential_public_key),
            sign_count=verification.sign_count,
            transports=response.get("transports"),
            aaguid=verification.aaguid,
            attestation_format=_enum_value(verification.fmt),
            device_type=_enum_value(verification.credential_device_type),
            backed_up=verification.credential_backed_up,
        )

    async def verify_authentication(
        self,
        assertion: dict[str, Any],
        credential: CredentialRecord,
        expectation: Expectation,
    ) -> AuthenticationResult:
        try:
            verification = verify_authentication_response(
                credential=assertion,
                expected_challenge=base64url_to_bytes(expectation.challenge),
                expected_rp_id=self.rp_id,
                expected_origin=expectation.origin,
                credential_public_key=base64url_to_bytes(credential.public_key),
                # py_webauthn skips the counter check when both sides are zero
                credential_current_sign_count=expectation.counter or 0,
                require_user_verification=expectation.require_user_verified,
            )
        except Exception as e:
            logger.debug("py_webauthn rejected authentication: %s", e)
            raise VerificationFailed(type(e).__name__, str(e)) from e

        return AuthenticationResult(
            credential_id=bytes_to_base64url(verification.credential_id),
            new_counter=verification.new_sign_count,
            user_verified=verification.user_verified,
            device_type=_enum_value(verification.credential_device_type),
            backed_up=verification.credential_backed_up,
        )


def _enum_value(value: Any) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", str(value))
