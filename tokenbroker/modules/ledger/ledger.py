"""
Token ledger.

Source of truth for which tokens were issued and whether they are still
considered usable. Records are written once, flipped inactive at most once,
and never deleted.
"""

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List

from ...errors import ConflictError, NotFound, StorageError
from ..storage import KeyValueStorage

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "token/"


def generate_token_id(connection_name: str, issued_at: datetime) -> str:
    """
    Build a ledger id from the connection name and issuance time.

    The random suffix keeps ids unique when one connection issues more
    than once within the same microsecond.
    """
    micros = int(issued_at.timestamp() * 1_000_000)
    return f"token_{connection_name}_{micros}_{secrets.token_hex(4)}"


@dataclass
class TokenRecord:
    """One issued token."""

    token_id: str
    remote_value: str
    connection_name: str
    issued_at: datetime
    expires_at: datetime
    active: bool = True

    @property
    def ttl(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "token_id": self.token_id,
            "remote_value": self.remote_value,
            "connection_name": self.connection_name,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRecord":
        """Create from a stored dictionary."""
        return cls(
            token_id=data["token_id"],
            remote_value=data["remote_value"],
            connection_name=data["connection_name"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            active=bool(data["active"]),
        )

    def summary(self) -> Dict[str, Any]:
        """Listing view. The remote token value is never included."""
        return {
            "token_id": self.token_id,
            "connection_name": self.connection_name,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "active": self.active,
        }


class TokenLedger:
    """Durable mapping from token id to TokenRecord."""

    def __init__(self, storage: KeyValueStorage):
        """
        Initialize token ledger.

        Args:
            storage: Key-value storage shared with the connection store
        """
        self.storage = storage

    def _key(self, token_id: str) -> str:
        return f"{TOKEN_PREFIX}{token_id}"

    async def record(self, token_id: str, record: TokenRecord) -> None:
        """
        Create a ledger entry.

        Raises:
            ConflictError: An entry with this id already exists
            StorageError: The store rejected the write
        """
        written = await self.storage.put(self._key(token_id), json.dumps(record.to_dict()), nx=True)
        if not written:
            raise ConflictError(f"token {token_id} already exists")

    async def get(self, token_id: str) -> TokenRecord:
        """
        Load a ledger entry.

        Raises:
            NotFound: No entry with this id
            StorageError: Entry cannot be decoded
        """
        raw = await self.storage.get(self._key(token_id))
        if raw is None:
            raise NotFound(f"token {token_id} not found")

        try:
            return TokenRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"token {token_id} is malformed") from e

    async def list_ids(self) -> List[str]:
        """List every token id, active or not."""
        return await self.storage.list(TOKEN_PREFIX)

    async def list_active(self) -> List[TokenRecord]:
        """
        List records still marked active.

        Includes records past their expiry that have not been reconciled yet.
        Unreadable entries are logged and skipped.
        """
        records = []
        for token_id in await self.list_ids():
            try:
                record = await self.get(token_id)
            except NotFound:
                # Removed between list and get
                continue
            except StorageError as e:
                logger.error(f"Error retrieving token {token_id}: {e}")
                continue

            if record.active:
                records.append(record)

        return records

    async def deactivate(self, token_id: str) -> None:
        """
        Mark a record inactive. Idempotent.

        Raises:
            NotFound: No entry with this id
        """
        record = await self.get(token_id)
        if not record.active:
            return

        record.active = False
        await self.storage.put(self._key(token_id), json.dumps(record.to_dict()))
