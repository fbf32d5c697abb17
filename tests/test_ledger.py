"""
Unit tests for the token ledger.

Tests cover:
- TokenRecord serialization and views
- Create-if-absent recording
- Active listing and tolerance of unreadable entries
- Idempotent, monotonic deactivation
"""

import json
from datetime import UTC, datetime, timedelta

import pytest

from tokenbroker.errors import ConflictError, NotFound
from tokenbroker.modules.ledger import TokenLedger, TokenRecord, generate_token_id

ISSUED = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


def make_record(token_id="token_lab1_1", ttl=60, active=True, connection_name="lab1"):
    return TokenRecord(
        token_id=token_id,
        remote_value=f"remote-{token_id}",
        connection_name=connection_name,
        issued_at=ISSUED,
        expires_at=ISSUED + timedelta(seconds=ttl),
        active=active,
    )


# =============================================================================
# TokenRecord
# =============================================================================


class TestTokenRecord:
    def test_round_trip(self):
        record = make_record()

        assert TokenRecord.from_dict(record.to_dict()) == record

    def test_summary_hides_remote_value(self):
        summary = make_record().summary()

        assert "remote_value" not in summary
        assert summary["token_id"] == "token_lab1_1"
        assert summary["expires_at"] == "2025-01-01T12:01:00+00:00"

    def test_ttl_and_expiry(self):
        record = make_record(ttl=5)

        assert record.ttl == 5
        assert not record.is_expired(ISSUED + timedelta(seconds=4))
        assert record.is_expired(ISSUED + timedelta(seconds=5))


def test_generate_token_id_unique_for_same_instant():
    ids = {generate_token_id("lab1", ISSUED) for _ in range(100)}

    assert len(ids) == 100
    assert all(token_id.startswith("token_lab1_1735732800000000_") for token_id in ids)


# =============================================================================
# TokenLedger
# =============================================================================


@pytest.mark.asyncio
async def test_record_and_get(ledger):
    record = make_record()

    await ledger.record(record.token_id, record)

    assert await ledger.get(record.token_id) == record


@pytest.mark.asyncio
async def test_record_conflict(ledger):
    record = make_record()
    await ledger.record(record.token_id, record)

    with pytest.raises(ConflictError):
        await ledger.record(record.token_id, make_record(ttl=999))

    assert (await ledger.get(record.token_id)).ttl == 60


@pytest.mark.asyncio
async def test_get_missing(ledger):
    with pytest.raises(NotFound):
        await ledger.get("token_missing")


@pytest.mark.asyncio
async def test_list_ids_includes_inactive(ledger):
    await ledger.record("token_a", make_record("token_a"))
    await ledger.record("token_b", make_record("token_b", active=False))

    assert await ledger.list_ids() == ["token_a", "token_b"]


@pytest.mark.asyncio
async def test_list_active_includes_expired_unreconciled(ledger):
    await ledger.record("token_a", make_record("token_a", ttl=1))
    await ledger.record("token_b", make_record("token_b", active=False))

    active = await ledger.list_active()

    assert [record.token_id for record in active] == ["token_a"]


@pytest.mark.asyncio
async def test_list_active_skips_malformed_entries(ledger, storage):
    await ledger.record("token_a", make_record("token_a"))
    await storage.put("token/token_bad", json.dumps({"token_id": "token_bad"}))

    active = await ledger.list_active()

    assert [record.token_id for record in active] == ["token_a"]


@pytest.mark.asyncio
async def test_deactivate_is_idempotent(ledger):
    await ledger.record("token_a", make_record("token_a"))

    await ledger.deactivate("token_a")
    await ledger.deactivate("token_a")

    record = await ledger.get("token_a")
    assert record.active is False
    assert record.expires_at == ISSUED + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_deactivate_missing(ledger):
    with pytest.raises(NotFound):
        await ledger.deactivate("token_missing")


@pytest.mark.asyncio
async def test_inactive_record_cannot_be_recreated_active(ledger):
    await ledger.record("token_a", make_record("token_a"))
    await ledger.deactivate("token_a")

    with pytest.raises(ConflictError):
        await ledger.record("token_a", make_record("token_a"))

    assert (await ledger.get("token_a")).active is False
