import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ...errors import AuthError, NotFound, StorageError, TimeoutAdjustmentError, TransportError, ValidationError
from ..connections import ConnectionStore
from ..ledger import TokenLedger, TokenRecord, generate_token_id
from ..remote import RemoteAuthClient

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ReconcileReport:
    """
    Outcome of one reconciliation pass.

    ``errored`` counts every record that hit a failure, including a failed
    remote revoke. ``revoke_failed`` is the subset whose remote revoke
    failed; those records are still deactivated, and counted as
    ``reconciled``, when the ledger write succeeds.
    """

    started_at: datetime
    finished_at: Optional[datetime] = None
    scanned: int = 0
    reconciled: int = 0
    skipped: int = 0
    errored: int = 0
    revoke_failed: int = 0
    reconciled_ids: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.reconciled == 0 and self.skipped == 0 and self.errored == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "scanned": self.scanned,
            "reconciled": self.reconciled,
            "skipped": self.skipped,
            "errored": self.errored,
            "revoke_failed": self.revoke_failed,
            "reconciled_ids": list(self.reconciled_ids),
        }


class LifecycleEngine:
    """
    Orchestrates token issuance and reconciliation.

    Built once per process with its collaborators injected. Issuance is
    acquire-then-record with a compensating remote revoke when the second
    step fails; reconciliation revokes and deactivates expired records one
    at a time so a bad record never blocks the rest.
    """

    def __init__(
        self,
        connections: ConnectionStore,
        ledger: TokenLedger,
        clock: Clock = utc_now,
    ):
        """
        Initialize lifecycle engine.

        Args:
            connections: Connection store used to resolve remote clients
            ledger: Token ledger
            clock: Returns the current time as an aware UTC datetime
        """
        self.connections = connections
        self.ledger = ledger
        self.clock = clock
        self._reconcile_lock = asyncio.Lock()

    async def issue(self, connection_name: str, ttl: int) -> TokenRecord:
        """
        Issue a token on a connection.

        Args:
            connection_name: Name of a configured connection
            ttl: Token lifetime in seconds

        Returns:
            The new TokenRecord, including the remote token value

        Raises:
            ValidationError: ttl is not a positive integer
            NotFound: Unknown connection
            AuthError: Remote rejected the request
            TransportError: Remote unreachable
            StorageError: Ledger write failed (remote token was revoked)
        """
        if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
            raise ValidationError("ttl must be a positive number of seconds")

        client = await self.connections.resolve(connection_name)

        try:
            acquired = await client.acquire(ttl)
        except TimeoutAdjustmentError as e:
            logger.warning(
                f"Token timeout update failed on connection {connection_name}, revoking orphaned token"
            )
            await self._compensate(client, connection_name, e.remote_value)
            raise

        issued_at = self.clock()
        record = TokenRecord(
            token_id=generate_token_id(connection_name, issued_at),
            remote_value=acquired.remote_value,
            connection_name=connection_name,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=ttl),
            active=True,
        )

        try:
            await self.ledger.record(record.token_id, record)
        except StorageError as e:
            logger.error(f"Failed to record token {record.token_id}, revoking remote token: {e}")
            await self._compensate(client, connection_name, acquired.remote_value)
            raise

        logger.info(
            f"Issued token {record.token_id} on connection {connection_name} "
            f"(ttl={ttl}s, expires {record.expires_at.isoformat()})"
        )
        return record

    async def _compensate(
        self, client: RemoteAuthClient, connection_name: str, remote_value: Optional[str]
    ) -> None:
        """Best-effort revoke of a remote token the ledger will never reference."""
        if not remote_value:
            return
        try:
            await client.revoke(remote_value)
        except (AuthError, TransportError) as e:
            logger.warning(f"Compensating revoke failed on connection {connection_name}: {e}")

    async def revoke(self, token_id: str) -> TokenRecord:
        """
        Revoke a token before it expires.

        Remote failures leave the record active so the caller can retry.

        Raises:
            NotFound: Unknown token, or its connection was deleted
            AuthError: Remote refused the revoke
            TransportError: Remote unreachable
        """
        record = await self.ledger.get(token_id)
        if not record.active:
            return record

        client = await self.connections.resolve(record.connection_name)
        await client.revoke(record.remote_value)
        await self.ledger.deactivate(token_id)
        record.active = False

        logger.info(f"Revoked token {token_id} on connection {record.connection_name}")
        return record

    async def validate(self, token_id: str) -> bool:
        """Check a ledger token against the remote system."""
        record = await self.ledger.get(token_id)
        if not record.active or record.is_expired(self.clock()):
            return False

        client = await self.connections.resolve(record.connection_name)
        return await client.validate(record.remote_value)

    async def get_token(self, token_id: str) -> TokenRecord:
        return await self.ledger.get(token_id)

    async def list_tokens(self) -> List[TokenRecord]:
        """Active tokens that have not expired yet."""
        now = self.clock()
        records = await self.ledger.list_active()
        return [record for record in records if not record.is_expired(now)]

    async def reconcile(self, now: Optional[datetime] = None) -> ReconcileReport:
        """
        Run one reconciliation pass.

        Revokes every active record whose expiry is at or before ``now`` and
        marks it inactive. Never raises; failures are logged and counted.

        Args:
            now: Reference time (defaults to the engine clock)

        Returns:
            ReconcileReport with per-outcome counts
        """
        async with self._reconcile_lock:
            now = now or self.clock()
            report = ReconcileReport(started_at=now)

            try:
                records = await self.ledger.list_active()
            except StorageError as e:
                logger.error(f"Reconciliation could not list tokens: {e}")
                report.finished_at = self.clock()
                return report

            for record in records:
                report.scanned += 1
                if not record.is_expired(now):
                    continue

                try:
                    await self._reconcile_record(record, report)
                except Exception as e:
                    logger.exception(f"Unexpected error reconciling token {record.token_id}: {e}")
                    report.errored += 1

            report.finished_at = self.clock()
            if not report.is_empty:
                logger.info(
                    f"Reconciliation pass: scanned={report.scanned} reconciled={report.reconciled} "
                    f"skipped={report.skipped} errored={report.errored} "
                    f"revoke_failed={report.revoke_failed}"
                )
            return report

    async def _reconcile_record(self, record: TokenRecord, report: ReconcileReport) -> None:
        try:
            client = await self.connections.resolve(record.connection_name)
        except (NotFound, StorageError) as e:
            logger.warning(
                f"Skipping expired token {record.token_id}: cannot resolve connection "
                f"{record.connection_name}: {e}"
            )
            report.skipped += 1
            return

        revoke_ok = True
        try:
            await client.revoke(record.remote_value)
        except (AuthError, TransportError) as e:
            # The remote side enforces its own expiry; local state still moves on
            logger.warning(f"Failed to revoke expired token {record.token_id}: {e}")
            report.revoke_failed += 1
            report.errored += 1
            revoke_ok = False

        try:
            await self.ledger.deactivate(record.token_id)
        except (NotFound, StorageError) as e:
            logger.error(f"Error deactivating token {record.token_id}: {e}")
            if revoke_ok:
                report.errored += 1
            return

        report.reconciled += 1
        report.reconciled_ids.append(record.token_id)
