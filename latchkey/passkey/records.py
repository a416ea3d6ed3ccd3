"""User and credential records.

A ``UserRecord`` is the unit of storage: one per username, holding the
outstanding challenge and every enrolled credential in enrollment order.
Records serialize to JSON for the key-value backend.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class CredentialRecord(BaseModel):
    """One enrolled authenticator.

    ``credential_id`` and ``public_key`` are base64url strings and never
    change after registration. ``sign_count`` tracks the last counter the
    authenticator reported.
    """

    credential_id: str
    public_key: str
    sign_count: int = Field(default=0, ge=0)
    transports: list[str] | None = None
    aaguid: str | None = None
    attestation_format: str | None = None
    device_type: str | None = None
    backed_up: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_used_at: datetime | None = None


class UserRecord(BaseModel):
    """Stored state for one username."""

    username: str
    pending_challenge: str | None = None
    credentials: list[CredentialRecord] = Field(default_factory=list)

    def to_json(self) -> str:
        """Serialize for the key-value backend."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> "UserRecord":
        """Deserialize a stored value."""
        return cls.model_validate_json(raw)


def append_credential(record: UserRecord, credential: CredentialRecord) -> None:
    """Add a credential at the end of the record.

    The caller persists the mutated record. Duplicate IDs are not rejected.
    """
    record.credentials.append(credential)


def find_credential(record: UserRecord, credential_id: str) -> CredentialRecord | None:
    """Return the first credential with a matching ID, or None."""
    for credential in record.credentials:
        if credential.credential_id == credential_id:
            return credential
    return None


def credential_ids(record: UserRecord) -> list[str]:
    """IDs of all enrolled credentials, in enrollment order."""
    return [c.credential_id for c in record.credentials]
