"""WebAuthn verifier doubles.

Deterministic stand-ins for py_webauthn so orchestrator and API tests
can script accept/reject outcomes without real authenticators.
"""

import asyncio
from typing import Any

from latchkey.passkey.records import CredentialRecord
from latchkey.passkey.verifier import AuthenticationResult, Expectation, VerificationFailed


def make_registration(credential_id: str = "cred-1", challenge: str | None = None) -> dict[str, Any]:
    """Browser-shaped registration payload understood by FakeVerifier."""
    return {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "challenge": challenge,
        "response": {"transports": ["internal", "hybrid"]},
    }


def make_authentication(
    credential_id: str = "cred-1",
    challenge: str | None = None,
    counter: int = 0,
    user_verified: bool = True,
) -> dict[str, Any]:
    """Browser-shaped authentication payload understood by FakeVerifier."""
    return {
        "id": credential_id,
        "rawId": credential_id,
        "type": "public-key",
        "challenge": challenge,
        "counter": counter,
        "userVerified": user_verified,
    }


class FakeVerifier:
    """Verifier that checks the challenge and counter rules py_webauthn applies.

    An assertion carrying ``"challenge": None`` is accepted for any
    expected challenge. ``reject_with`` forces the next call to fail.
    ``delay`` yields to the event loop inside the verify step, which lets
    tests interleave concurrent requests.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.reject_with: VerificationFailed | None = None
        self.registration_calls: list[Expectation] = []
        self.authentication_calls: list[Expectation] = []

    async def verify_registration(
        self, assertion: dict[str, Any], expectation: Expectation
    ) -> CredentialRecord:
        self.registration_calls.append(expectation)
        await asyncio.sleep(self.delay)
        self._check(assertion, expectation)
        return CredentialRecord(
            credential_id=assertion["id"],
            public_key="cHVibGljLWtleQ",
            sign_count=0,
            transports=assertion.get("response", {}).get("transports"),
        )

    async def verify_authentication(
        self,
        assertion: dict[str, Any],
        credential: CredentialRecord,
        expectation: Expectation,
    ) -> AuthenticationResult:
        self.authentication_calls.append(expectation)
        await asyncio.sleep(self.delay)
        self._check(assertion, expectation)

        new_counter = assertion.get("counter", 0)
        if expectation.counter is not None and new_counter <= expectation.counter:
            raise VerificationFailed(
                "InvalidAuthenticationResponse",
                f"Response sign count of {new_counter} was not greater than "
                f"current count of {expectation.counter}",
            )
        user_verified = assertion.get("userVerified", True)
        if expectation.require_user_verified and not user_verified:
            raise VerificationFailed(
                "InvalidAuthenticationResponse",
                "User verification is required but user was not verified during authentication",
            )
        return AuthenticationResult(
            credential_id=credential.credential_id,
            new_counter=new_counter,
            user_verified=user_verified,
            device_type="multi_device",
            backed_up=True,
        )

    def _check(self, assertion: dict[str, Any], expectation: Expectation) -> None:
        if self.reject_with is not None:
            failure, self.reject_with = self.reject_with, None
            raise failure
        signed = assertion.get("challenge")
        if signed is not None and signed != expectation.challenge:
            raise VerificationFailed(
                "InvalidChallenge",
                "Client data challenge was not expected challenge",
                {"expected": expectation.challenge},
            )
