"""
Unit tests for the remote auth client.

Tests cover:
- Endpoint normalization
- Token acquisition with and without timeout adjustment
- Partial acquisition when the timeout update fails
- Revoke and validate status handling
- Transport failures
"""

import json

import httpx
import pytest

from tokenbroker.errors import AuthError, TimeoutAdjustmentError, TransportError
from tokenbroker.modules.remote import RemoteAuthClient, TLSPolicy, normalize_endpoint


# =============================================================================
# Endpoint normalization
# =============================================================================


@pytest.mark.parametrize(
    "endpoint,expected",
    [
        ("bigip.lab", "https://bigip.lab"),
        ("10.0.0.5:8443", "https://10.0.0.5:8443"),
        ("https://bigip.lab/", "https://bigip.lab"),
        ("http://bigip.lab", "https://bigip.lab"),
        ("  bigip.lab  ", "https://bigip.lab"),
    ],
)
def test_normalize_endpoint(endpoint, expected):
    assert normalize_endpoint(endpoint) == expected


def test_client_normalizes_endpoint_and_hides_password():
    client = RemoteAuthClient("bigip.lab", "admin", "secret")

    assert client.endpoint == "https://bigip.lab"
    assert client.tls_policy == TLSPolicy.VERIFY
    assert "secret" not in repr(client)


# =============================================================================
# Acquire
# =============================================================================


@pytest.mark.asyncio
async def test_acquire_keeps_remote_default_without_ttl(fake_remote):
    client = fake_remote.client()

    token = await client.acquire()

    assert token.remote_value == "tok-1"
    assert token.timeout == 1200
    assert fake_remote.calls == [("POST", "/mgmt/shared/authn/login")]


@pytest.mark.asyncio
async def test_acquire_adjusts_timeout(fake_remote):
    client = fake_remote.client()

    token = await client.acquire(300)

    assert token.timeout == 300
    assert fake_remote.tokens["tok-1"] == 300
    assert ("PATCH", "/mgmt/shared/authz/tokens/tok-1") in fake_remote.calls


@pytest.mark.asyncio
async def test_acquire_skips_adjust_when_ttl_matches_default(fake_remote):
    client = fake_remote.client()

    token = await client.acquire(1200)

    assert token.timeout == 1200
    assert [method for method, _ in fake_remote.calls] == ["POST"]


@pytest.mark.asyncio
async def test_acquire_sends_login_provider(fake_remote):
    client = fake_remote.client(login_provider="tmos")

    await client.acquire()

    assert fake_remote.login_payloads[0]["loginProviderName"] == "tmos"


@pytest.mark.asyncio
async def test_acquire_omits_login_provider_by_default(fake_remote):
    await fake_remote.client().acquire()

    assert "loginProviderName" not in fake_remote.login_payloads[0]


@pytest.mark.asyncio
async def test_acquire_rejected_credentials(fake_remote):
    client = fake_remote.client(password="wrong")

    with pytest.raises(AuthError) as exc_info:
        await client.acquire(300)

    assert "401" in str(exc_info.value)
    assert "wrong" not in str(exc_info.value)
    assert not isinstance(exc_info.value, TimeoutAdjustmentError)


@pytest.mark.asyncio
async def test_acquire_adjust_failure_carries_remote_token(fake_remote):
    fake_remote.patch_status = 400
    client = fake_remote.client()

    with pytest.raises(TimeoutAdjustmentError) as exc_info:
        await client.acquire(3600)

    assert isinstance(exc_info.value, AuthError)
    assert exc_info.value.remote_value == "tok-1"
    # The token still exists remotely with the default timeout
    assert fake_remote.tokens["tok-1"] == 1200


@pytest.mark.asyncio
async def test_acquire_malformed_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    client = RemoteAuthClient("bigip.lab", "admin", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(AuthError):
        await client.acquire()


@pytest.mark.asyncio
async def test_acquire_network_failure(fake_remote):
    fake_remote.fail_network = True

    with pytest.raises(TransportError):
        await fake_remote.client().acquire()


@pytest.mark.asyncio
async def test_acquire_timeout_is_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = RemoteAuthClient(
        "bigip.lab", "admin", "secret", request_timeout=1, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(TransportError):
        await client.acquire()


@pytest.mark.asyncio
async def test_error_body_is_truncated():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="x" * 1000)

    client = RemoteAuthClient("bigip.lab", "admin", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(AuthError) as exc_info:
        await client.acquire()

    assert len(str(exc_info.value)) < 400


# =============================================================================
# Adjust / Revoke / Validate
# =============================================================================


@pytest.mark.asyncio
async def test_adjust_timeout_sends_token_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["header"] = request.headers.get("X-F5-Auth-Token")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200)

    client = RemoteAuthClient("bigip.lab", "admin", "secret", transport=httpx.MockTransport(handler))

    await client.adjust_timeout("tok-9", 900)

    assert seen == {"header": "tok-9", "body": {"timeout": 900}}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 204])
async def test_revoke_success_statuses(fake_remote, status):
    fake_remote.delete_status = status

    await fake_remote.client().revoke("tok-1")

    assert fake_remote.revoke_count("tok-1") == 1


@pytest.mark.asyncio
async def test_revoke_other_status_is_auth_error(fake_remote):
    fake_remote.delete_status = 401

    with pytest.raises(AuthError):
        await fake_remote.client().revoke("tok-1")


@pytest.mark.asyncio
async def test_validate_live_token(fake_remote):
    client = fake_remote.client()
    token = await client.acquire()

    assert await client.validate(token.remote_value) is True


@pytest.mark.asyncio
async def test_validate_revoked_token(fake_remote):
    client = fake_remote.client()
    token = await client.acquire()
    await client.revoke(token.remote_value)

    assert await client.validate(token.remote_value) is False


@pytest.mark.asyncio
async def test_validate_forbidden_is_invalid(fake_remote):
    fake_remote.validate_status = 403

    assert await fake_remote.client().validate("tok-1") is False


@pytest.mark.asyncio
async def test_validate_server_error_raises(fake_remote):
    fake_remote.validate_status = 500

    with pytest.raises(AuthError):
        await fake_remote.client().validate("tok-1")


@pytest.mark.asyncio
async def test_validate_network_failure(fake_remote):
    fake_remote.fail_network = True

    with pytest.raises(TransportError):
        await fake_remote.client().validate("tok-1")


@pytest.mark.asyncio
@pytest.mark.parametrize("operation", ["revoke", "adjust_timeout"])
async def test_transport_error_hides_token_value(fake_remote, operation):
    fake_remote.fail_network = True
    client = fake_remote.client()
    args = ("tok-secret-1", 300) if operation == "adjust_timeout" else ("tok-secret-1",)

    with pytest.raises(TransportError) as exc_info:
        await getattr(client, operation)(*args)

    assert "tok-secret-1" not in str(exc_info.value)
    assert "<redacted>" in str(exc_info.value)


@pytest.mark.asyncio
async def test_revoke_error_body_hides_token_value():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text=f"cannot delete {request.url.path}")

    client = RemoteAuthClient("bigip.lab", "admin", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(AuthError) as exc_info:
        await client.revoke("tok-secret-1")

    assert "tok-secret-1" not in str(exc_info.value)
