"""
Error taxonomy for the token broker.

Every failure surfaced by an engine operation is one of these types so the
host can map it to a response without inspecting messages. Messages never
carry credential values.
"""

from typing import Optional


class BrokerError(Exception):
    """Base class for all token broker errors."""

    kind = "error"


class ValidationError(BrokerError):
    """Bad or missing caller input. Never retried."""

    kind = "validation_error"


class NotFound(BrokerError):
    """Referenced connection or token does not exist."""

    kind = "not_found"


class AuthError(BrokerError):
    """The remote system rejected the credentials or the token."""

    kind = "auth_error"


class TimeoutAdjustmentError(AuthError):
    """
    A token was created remotely but its timeout could not be adjusted.

    The remote token still exists with the remote default lifetime, so the
    caller is expected to revoke ``remote_value``.
    """

    def __init__(self, message: str, remote_value: Optional[str] = None):
        super().__init__(message)
        self.remote_value = remote_value


class TransportError(BrokerError):
    """Network, TLS or timeout failure talking to the remote system."""

    kind = "transport_error"


class StorageError(BrokerError):
    """The durable store failed or returned an unreadable entry."""

    kind = "storage_error"


class ConflictError(StorageError):
    """A ledger entry with the same id already exists."""

    kind = "conflict"


__all__ = [
    "BrokerError",
    "ValidationError",
    "NotFound",
    "AuthError",
    "TimeoutAdjustmentError",
    "TransportError",
    "StorageError",
    "ConflictError",
]
