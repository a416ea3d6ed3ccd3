"""Registration and authentication ceremonies.

Both flows are two-step challenge/response sequences whose only state is
the ``UserRecord`` in the key-value store:

    NoChallenge -> ChallengeIssued -> Consumed (success)
                                   -> ChallengeIssued (verifier rejected, retryable)

Issuing a challenge always overwrites the previous one, so only the most
recent challenge is valid. A successful verification clears it. Every
load/modify/save cycle for a username runs under that username's lock.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from latchkey.exceptions import (
    BadRequest,
    ChallengeExpired,
    InvalidAssertion,
    UnknownAccount,
    UnknownCredential,
)
from latchkey.passkey.challenge import DEFAULT_CHALLENGE_BYTES, generate_challenge
from latchkey.passkey.locks import KeyedLock
from latchkey.passkey.records import (
    CredentialRecord,
    UserRecord,
    append_credential,
    credential_ids,
    find_credential,
)
from latchkey.passkey.replay import build_expected_counter, record_counter
from latchkey.passkey.verifier import (
    AuthenticationResult,
    Expectation,
    VerificationFailed,
    WebAuthnVerifier,
)
from latchkey.storage.user_records import UserRecordStore

logger = logging.getLogger(__name__)


@dataclass
class AuthenticationChallenge:
    """Login challenge plus the credentials the browser may use."""

    challenge: str
    credential_ids: list[str] = field(default_factory=list)


class PasskeyOrchestrator:
    """Drives the passkey ceremonies against a record store and a verifier.

    Args:
        store: User record persistence
        verifier: WebAuthn assertion verifier
        challenge_bytes: Entropy per issued challenge
        locks: Per-username lock table (shared if several orchestrators
            front the same store in one process)
    """

    def __init__(
        self,
        store: UserRecordStore,
        verifier: WebAuthnVerifier,
        *,
        challenge_bytes: int = DEFAULT_CHALLENGE_BYTES,
        locks: KeyedLock | None = None,
    ) -> None:
        self.store = store
        self.verifier = verifier
        self.challenge_bytes = challenge_bytes
        self.locks = locks if locks is not None else KeyedLock()

    # =========================================================================
    # Registration
    # =========================================================================

    async def request_registration_challenge(self, username: str) -> str:
        """Issue a registration challenge, creating the record if needed."""
        _require(username, "username")

        async with self.locks.hold(username):
            record = await self.store.load(username) or UserRecord(username=username)
            record.pending_challenge = generate_challenge(self.challenge_bytes)
            await self.store.save(username, record)

        logger.info("Issued registration challenge for %s", username)
        return record.pending_challenge

    async def verify_registration(
        self, username: str, assertion: dict[str, Any] | None, origin: str
    ) -> CredentialRecord:
        """Verify a registration assertion and enroll the new credential.

        Raises:
            BadRequest: Missing username or assertion
            ChallengeExpired: No outstanding challenge for the user
            InvalidAssertion: The verifier rejected the assertion
        """
        _require(username, "username")
        _require(assertion, "registration")

        async with self.locks.hold(username):
            record = await self.store.load(username)
            if record is None or not record.pending_challenge:
                raise ChallengeExpired("No pending challenge. Request a new one.")

            expectation = Expectation(challenge=record.pending_challenge, origin=origin)
            try:
                credential = await self.verifier.verify_registration(assertion, expectation)
            except VerificationFailed as e:
                logger.warning("Passkey registration verification failed for %s: %s", username, e)
                raise InvalidAssertion(e.message, e.kind, e.details) from e

            append_credential(record, credential)
            record.pending_challenge = None
            await self.store.save(username, record)

        logger.info(
            "Registered credential %s for %s (%d enrolled)",
            credential.credential_id,
            username,
            len(record.credentials),
        )
        return credential

    # =========================================================================
    # Authentication
    # =========================================================================

    async def request_authentication_challenge(self, username: str) -> AuthenticationChallenge:
        """Issue a login challenge for an account with enrolled credentials.

        Raises:
            BadRequest: Missing username
            UnknownAccount: No record or no credentials; nothing is written
        """
        _require(username, "username")

        async with self.locks.hold(username):
            record = await self.store.load(username)
            if record is None or not record.credentials:
                raise UnknownAccount("No passkeys registered for this account.")

            record.pending_challenge = generate_challenge(self.challenge_bytes)
            await self.store.save(username, record)

        logger.info("Issued authentication challenge for %s", username)
        return AuthenticationChallenge(
            challenge=record.pending_challenge,
            credential_ids=credential_ids(record),
        )

    async def verify_authentication(
        self, username: str, assertion: dict[str, Any] | None, origin: str
    ) -> AuthenticationResult:
        """Verify a login assertion and advance the credential's counter.

        Raises:
            BadRequest: Missing username, assertion, or credential ID
            ChallengeExpired: No outstanding challenge for the user
            UnknownCredential: The asserted credential is not enrolled
            InvalidAssertion: The verifier rejected the assertion
        """
        _require(username, "username")
        _require(assertion, "authentication")
        asserted_id = assertion.get("id") or assertion.get("rawId")
        _require(asserted_id, "authentication.id")

        async with self.locks.hold(username):
            record = await self.store.load(username)
            if record is None or not record.pending_challenge:
                raise ChallengeExpired("No pending challenge. Request a new one.")

            credential = find_credential(record, asserted_id)
            if credential is None:
                raise UnknownCredential("Credential is not registered for this account.")

            expectation = Expectation(
                challenge=record.pending_challenge,
                origin=origin,
                require_user_verified=True,
                counter=build_expected_counter(credential.sign_count),
            )
            try:
                result = await self.verifier.verify_authentication(assertion, credential, expectation)
            except VerificationFailed as e:
                logger.warning("Passkey authentication failed for %s: %s", username, e)
                raise InvalidAssertion(e.message, e.kind, e.details) from e

            record_counter(credential, result.new_counter)
            credential.last_used_at = datetime.now(UTC)
            record.pending_challenge = None
            await self.store.save(username, record)

        logger.info("Authenticated %s with credential %s", username, credential.credential_id)
        return result


def _require(value: Any, name: str) -> None:
    if not value:
        raise BadRequest(f"{name} is required")
