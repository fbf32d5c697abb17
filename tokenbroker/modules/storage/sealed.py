"""
Seal-wrapping for stored entries.

Connection entries hold long-lived credentials and ledger entries hold live
remote tokens, so both are encrypted before they reach the backing store.
"""

import base64
import logging
from typing import List, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ...errors import StorageError
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

# Fixed salt so every replica derives the same key from STORAGE_SEAL_KEY
_SEAL_SALT = b"tokenbroker-seal-v1"


def derive_cipher(seal_key: str) -> Fernet:
    """
    Derive a Fernet cipher from an arbitrary seal key string.

    Args:
        seal_key: Operator-provided secret

    Returns:
        Fernet cipher
    """
    if not seal_key:
        raise ValueError("seal key cannot be empty")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_SEAL_SALT,
        iterations=100000,
    )
    derived_key = base64.urlsafe_b64encode(kdf.derive(seal_key.encode("utf-8")))
    return Fernet(derived_key)


class SealedStorage:
    """KeyValueStorage wrapper that encrypts every value at rest."""

    def __init__(self, inner: KeyValueStorage, seal_key: str):
        self.inner = inner
        self.cipher = derive_cipher(seal_key)

    async def get(self, key: str) -> Optional[str]:
        sealed = await self.inner.get(key)
        if sealed is None:
            return None
        try:
            return self.cipher.decrypt(sealed.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise StorageError(f"failed to unseal {key}") from e

    async def put(self, key: str, value: str, *, nx: bool = False) -> bool:
        sealed = self.cipher.encrypt(value.encode("utf-8")).decode("utf-8")
        return await self.inner.put(key, sealed, nx=nx)

    async def delete(self, key: str) -> None:
        await self.inner.delete(key)

    async def list(self, prefix: str) -> List[str]:
        return await self.inner.list(prefix)
