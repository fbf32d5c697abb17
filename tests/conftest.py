"""
Shared pytest fixtures for token broker tests.

This module provides common fixtures including:
- FakeRemote: In-process BIG-IP style token API served through httpx.MockTransport
- FakeClock: Controllable clock for expiry and reconciliation tests
- Engine fixtures wired over in-memory storage
"""

import json
import os
import sys
from datetime import UTC, datetime, timedelta
from typing import Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tokenbroker.errors import StorageError
from tokenbroker.modules.connections import Connection, ConnectionStore
from tokenbroker.modules.ledger import TokenLedger
from tokenbroker.modules.lifecycle import LifecycleEngine
from tokenbroker.modules.remote import RemoteAuthClient
from tokenbroker.modules.storage import MemoryStorage


# =============================================================================
# Remote API Mocking Infrastructure
# =============================================================================


class FakeRemote:
    """
    Minimal BIG-IP token API.

    Usage:
        def test_something(fake_remote):
            fake_remote.patch_status = 500
            ...
            assert fake_remote.revoke_count("tok-1") == 1
    """

    def __init__(self, username: str = "admin", password: str = "secret", default_timeout: int = 1200):
        self.username = username
        self.password = password
        self.default_timeout = default_timeout
        self.tokens: Dict[str, int] = {}
        self.calls: List[Tuple[str, str]] = []
        self.revoked: List[str] = []
        self.login_payloads: List[dict] = []
        self.login_status = 200
        self.patch_status = 200
        self.delete_status = 200
        self.validate_status: Optional[int] = None
        self.fail_network = False
        self._counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if self.fail_network:
            raise httpx.ConnectError("connection refused", request=request)

        if request.method == "POST" and path == "/mgmt/shared/authn/login":
            payload = json.loads(request.content)
            self.login_payloads.append(payload)
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "login failed"})
            if payload.get("username") != self.username or payload.get("password") != self.password:
                return httpx.Response(401, json={"message": "Authentication failed."})

            self._counter += 1
            token = f"tok-{self._counter}"
            self.tokens[token] = self.default_timeout
            return httpx.Response(
                200, json={"token": {"token": token, "timeout": self.default_timeout}}
            )

        if path.startswith("/mgmt/shared/authz/tokens/"):
            token = path.rsplit("/", 1)[1]
            if request.method == "PATCH":
                if self.patch_status != 200:
                    return httpx.Response(self.patch_status, text="patch refused")
                self.tokens[token] = json.loads(request.content)["timeout"]
                return httpx.Response(200, json={"token": token})
            if request.method == "DELETE":
                self.revoked.append(token)
                if self.delete_status in (200, 204):
                    self.tokens.pop(token, None)
                return httpx.Response(self.delete_status)

        if request.method == "GET" and path == "/mgmt/tm/sys/version":
            if self.validate_status is not None:
                return httpx.Response(self.validate_status)
            token = request.headers.get("X-F5-Auth-Token")
            return httpx.Response(200 if token in self.tokens else 401)

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def revoke_count(self, token: str) -> int:
        return self.revoked.count(token)

    def client(self, **kwargs) -> RemoteAuthClient:
        params = {"endpoint": "bigip.lab", "username": self.username, "password": self.password}
        params.update(kwargs)
        return RemoteAuthClient(transport=self.transport, **params)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FailingTokenStorage(MemoryStorage):
    """MemoryStorage whose ledger writes fail."""

    async def put(self, key: str, value: str, *, nx: bool = False) -> bool:
        if key.startswith("token/"):
            raise StorageError(f"failed to write {key}: disk full")
        return await super().put(key, value, nx=nx)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def client_factory(fake_remote):
    """Client factory that routes every connection to the fake remote."""

    def factory(connection: Connection) -> RemoteAuthClient:
        return RemoteAuthClient(
            endpoint=connection.endpoint,
            username=connection.username,
            password=connection.password,
            tls_policy=connection.tls_policy,
            login_provider=connection.login_provider,
            request_timeout=5,
            transport=fake_remote.transport,
        )

    return factory


@pytest.fixture
def connection_store(storage, client_factory):
    return ConnectionStore(storage, client_factory, probe_ttl=60)


@pytest.fixture
def ledger(storage):
    return TokenLedger(storage)


@pytest.fixture
def engine(connection_store, ledger, clock):
    return LifecycleEngine(connection_store, ledger, clock=clock)


@pytest_asyncio.fixture
async def lab1(connection_store, fake_remote):
    """Connection "lab1" configured with valid credentials."""
    connection = await connection_store.write("lab1", "bigip.lab", "admin", "secret")
    fake_remote.calls.clear()
    fake_remote.revoked.clear()
    return connection
