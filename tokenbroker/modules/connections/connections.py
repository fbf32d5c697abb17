import asyncio
import json
import logging
import re
import weakref
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from ...errors import AuthError, NotFound, StorageError, TimeoutAdjustmentError, TransportError, ValidationError
from ..remote import RemoteAuthClient, TLSPolicy, normalize_endpoint
from ..storage import KeyValueStorage

logger = logging.getLogger(__name__)

CONNECTION_PREFIX = "connection/"

NAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9_.-]*[A-Za-z0-9])?$")

# Lifetime of the throwaway token used to prove a connection works
DEFAULT_PROBE_TTL = 60


@dataclass
class Connection:
    """Configuration for one remote target."""

    name: str
    endpoint: str
    username: str
    password: str
    tls_policy: TLSPolicy = TLSPolicy.VERIFY
    login_provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["tls_policy"] = self.tls_policy.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        """Create from a stored dictionary."""
        return cls(
            name=data["name"],
            endpoint=data["endpoint"],
            username=data["username"],
            password=data["password"],
            tls_policy=TLSPolicy(data.get("tls_policy", TLSPolicy.VERIFY.value)),
            login_provider=data.get("login_provider"),
        )

    def redacted(self) -> Dict[str, Any]:
        """Read view of the connection. Credentials are never included."""
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "tls_policy": self.tls_policy.value,
            "login_provider": self.login_provider,
        }


ClientFactory = Callable[[Connection], RemoteAuthClient]


def default_client_factory(request_timeout: float) -> ClientFactory:
    """Build a factory producing RemoteAuthClients with a fixed request timeout."""

    def factory(connection: Connection) -> RemoteAuthClient:
        return RemoteAuthClient(
            endpoint=connection.endpoint,
            username=connection.username,
            password=connection.password,
            tls_policy=connection.tls_policy,
            login_provider=connection.login_provider,
            request_timeout=request_timeout,
        )

    return factory


class ConnectionStore:
    """
    Durable mapping from connection name to remote endpoint and credentials.

    A connection is only persisted after a live round-trip proves the
    endpoint is reachable and the credentials are accepted.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        client_factory: ClientFactory,
        probe_ttl: int = DEFAULT_PROBE_TTL,
    ):
        """
        Initialize connection store.

        Args:
            storage: Key-value storage shared with the ledger
            client_factory: Builds a RemoteAuthClient for a Connection
            probe_ttl: Timeout requested for the connectivity probe token
        """
        self.storage = storage
        self.client_factory = client_factory
        self.probe_ttl = probe_ttl
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _key(self, name: str) -> str:
        return f"{CONNECTION_PREFIX}{name}"

    def _lock(self, name: str) -> asyncio.Lock:
        # Entries vanish once no writer or deleter holds or awaits the lock
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    async def write(
        self,
        name: str,
        endpoint: str,
        username: str,
        password: str,
        tls_policy: TLSPolicy = TLSPolicy.VERIFY,
        login_provider: Optional[str] = None,
    ) -> Connection:
        """
        Create or replace a connection after probing it.

        Args:
            name: Unique connection name
            endpoint: Remote host or URL
            username: Remote account
            password: Remote password
            tls_policy: Certificate validation policy
            login_provider: Optional remote login provider

        Returns:
            The persisted Connection

        Raises:
            ValidationError: Missing input, bad name, or failed probe
            StorageError: The store rejected the write
        """
        if not name or not endpoint or not username or not password:
            raise ValidationError("name, endpoint, username, and password are required")
        if not NAME_PATTERN.match(name):
            raise ValidationError(f"invalid connection name: {name!r}")

        connection = Connection(
            name=name,
            endpoint=normalize_endpoint(endpoint),
            username=username,
            password=password,
            tls_policy=TLSPolicy(tls_policy),
            login_provider=login_provider or None,
        )

        async with self._lock(name):
            logger.info(f"Configuring connection {name} ({connection.endpoint})")
            await self._probe(connection)

            await self.storage.put(self._key(name), json.dumps(connection.to_dict()))

        logger.info(f"Connection {name} configured and tested successfully")
        return connection

    async def _probe(self, connection: Connection) -> None:
        """Acquire and immediately revoke a short-lived token."""
        client = self.client_factory(connection)
        try:
            token = await client.acquire(self.probe_ttl)
        except TimeoutAdjustmentError as e:
            await self._discard_probe_token(client, connection.name, e.remote_value)
            raise ValidationError(f"failed to connect to {connection.endpoint}: {e}") from e
        except (AuthError, TransportError) as e:
            raise ValidationError(f"failed to connect to {connection.endpoint}: {e}") from e

        await self._discard_probe_token(client, connection.name, token.remote_value)

    async def _discard_probe_token(
        self, client: RemoteAuthClient, name: str, remote_value: Optional[str]
    ) -> None:
        if not remote_value:
            return
        try:
            await client.revoke(remote_value)
        except (AuthError, TransportError) as e:
            logger.warning(f"Failed to revoke probe token for connection {name}: {e}")

    async def read(self, name: str) -> Connection:
        """
        Load a connection.

        Raises:
            NotFound: No connection with that name
            StorageError: Entry exists but cannot be decoded
        """
        raw = await self.storage.get(self._key(name))
        if raw is None:
            raise NotFound(f"connection {name} not found")

        try:
            return Connection.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"connection {name} is malformed") from e

    async def exists(self, name: str) -> bool:
        """Check if a connection is configured."""
        return await self.storage.get(self._key(name)) is not None

    async def delete(self, name: str) -> None:
        """Remove a connection. Tokens referencing it are left untouched."""
        async with self._lock(name):
            await self.storage.delete(self._key(name))
        logger.info(f"Connection {name} deleted")

    async def list(self) -> List[str]:
        """List connection names in lexical order."""
        return await self.storage.list(CONNECTION_PREFIX)

    async def resolve(self, name: str) -> RemoteAuthClient:
        """Build a RemoteAuthClient for a stored connection."""
        connection = await self.read(name)
        return self.client_factory(connection)
