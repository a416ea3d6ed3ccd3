"""User record persistence on top of a key-value backend."""

import logging

from pydantic import ValidationError

from latchkey.exceptions import StoreError
from latchkey.passkey.records import UserRecord
from latchkey.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class UserRecordStore:
    """Loads and saves one ``UserRecord`` per username.

    ``load`` followed by ``save`` is not atomic; callers that need
    read-modify-write consistency serialize on the username themselves.

    Args:
        kv: Backend holding serialized records
        key_prefix: Prepended to the username to form the storage key
    """

    def __init__(self, kv: KeyValueStore, key_prefix: str = "") -> None:
        self.kv = kv
        self.key_prefix = key_prefix

    def key_for(self, username: str) -> str:
        return f"{self.key_prefix}{username}"

    async def load(self, username: str) -> UserRecord | None:
        """Return the stored record, or None if the username is unknown."""
        key = self.key_for(username)
        raw = await self.kv.get(key)
        if raw is None:
            return None
        try:
            return UserRecord.from_json(raw)
        except ValidationError as e:
            logger.error("Corrupt user record at %s", key)
            raise StoreError(f"Corrupt user record at {key!r}", key=key) from e

    async def save(self, username: str, record: UserRecord) -> None:
        """Persist the whole record, replacing whatever was stored."""
        await self.kv.put(self.key_for(username), record.to_json())
