import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from ...errors import AuthError, TimeoutAdjustmentError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0

# Remote error bodies are echoed into messages, trimmed to this length
MAX_ERROR_BODY = 200

LOGIN_PATH = "/mgmt/shared/authn/login"
TOKENS_PATH = "/mgmt/shared/authz/tokens"
VERSION_PATH = "/mgmt/tm/sys/version"
TOKEN_HEADER = "X-F5-Auth-Token"


class TLSPolicy(str, Enum):
    """TLS certificate validation policy for a connection."""

    VERIFY = "verify"
    SKIP_VERIFY = "skip_verify"


@dataclass
class AcquiredToken:
    """Token returned by the remote system."""

    remote_value: str
    timeout: int


def normalize_endpoint(endpoint: str) -> str:
    """
    Ensure the endpoint always carries an https:// scheme.

    Args:
        endpoint: Hostname, host:port or URL

    Returns:
        Endpoint URL with https:// and no trailing slash
    """
    endpoint = endpoint.strip()
    if endpoint.startswith("http://"):
        endpoint = "https://" + endpoint[len("http://"):]
    elif not endpoint.startswith("https://"):
        endpoint = "https://" + endpoint
    return endpoint.rstrip("/")


def _describe(response: httpx.Response, secret: Optional[str] = None) -> str:
    body = response.text
    if secret:
        body = body.replace(secret, "<redacted>")
    return f"{response.status_code} {response.reason_phrase} - {body[:MAX_ERROR_BODY]}"


class RemoteAuthClient:
    """
    Client for the remote token API.

    Holds connection parameters only. Every call opens its own HTTP client
    so the request timeout applies to each round-trip individually and no
    state is carried between calls.
    """

    def __init__(
        self,
        endpoint: str,
        username: str,
        password: str,
        tls_policy: TLSPolicy = TLSPolicy.VERIFY,
        login_provider: Optional[str] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize remote client.

        Args:
            endpoint: Remote host or URL (normalized to https)
            username: Account used to acquire tokens
            password: Account password
            tls_policy: Whether to verify the server certificate
            login_provider: Optional remote login provider name
            request_timeout: Ceiling in seconds for every round-trip
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self.endpoint = normalize_endpoint(endpoint)
        self.username = username
        self.password = password
        self.tls_policy = TLSPolicy(tls_policy)
        self.login_provider = login_provider
        self.request_timeout = request_timeout
        self._transport = transport

    def __repr__(self) -> str:
        return f"RemoteAuthClient(endpoint={self.endpoint!r}, username={self.username!r})"

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {}
        if token:
            headers[TOKEN_HEADER] = token

        try:
            async with httpx.AsyncClient(
                base_url=self.endpoint,
                verify=self.tls_policy == TLSPolicy.VERIFY,
                timeout=self.request_timeout,
                transport=self._transport,
            ) as http:
                return await http.request(method, path, json=payload, headers=headers)
        except httpx.HTTPError as e:
            # Covers connect/read timeouts, TLS failures and protocol errors.
            # Token paths carry the remote value, which must not reach messages or logs.
            message = f"{method} {self.endpoint}{path} failed: {e}"
            if token:
                message = message.replace(token, "<redacted>")
            raise TransportError(message) from e

    async def acquire(self, ttl: int = 0) -> AcquiredToken:
        """
        Authenticate and obtain a new token.

        Args:
            ttl: Desired token lifetime in seconds (0 keeps the remote default)

        Returns:
            AcquiredToken with the remote value and its effective timeout

        Raises:
            AuthError: Remote rejected the credentials or returned garbage
            TimeoutAdjustmentError: Token created but its timeout could not be set
            TransportError: Network or TLS failure
        """
        payload = {"username": self.username, "password": self.password}
        if self.login_provider:
            payload["loginProviderName"] = self.login_provider

        response = await self._request("POST", LOGIN_PATH, payload=payload)
        if response.status_code != 200:
            raise AuthError(f"authentication to {self.endpoint} failed: {_describe(response)}")

        try:
            token_data = response.json()["token"]
            remote_value = token_data["token"]
            timeout = int(token_data.get("timeout", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthError(f"unexpected token response from {self.endpoint}") from e

        if not remote_value:
            raise AuthError(f"empty token returned by {self.endpoint}")

        if ttl > 0 and ttl != timeout:
            try:
                await self.adjust_timeout(remote_value, ttl)
            except (AuthError, TransportError) as e:
                raise TimeoutAdjustmentError(
                    f"token created on {self.endpoint} but timeout update failed: {e}",
                    remote_value=remote_value,
                ) from e
            timeout = ttl

        return AcquiredToken(remote_value=remote_value, timeout=timeout)

    async def adjust_timeout(self, remote_value: str, ttl: int) -> None:
        """Set the remote-side timeout of an existing token."""
        response = await self._request(
            "PATCH",
            f"{TOKENS_PATH}/{remote_value}",
            token=remote_value,
            payload={"timeout": ttl},
        )
        if response.status_code != 200:
            raise AuthError(f"error updating token timeout: {_describe(response, remote_value)}")

    async def revoke(self, remote_value: str) -> None:
        """
        Invalidate a token remotely.

        Both 200 and 204 (already gone) are treated as success.
        """
        response = await self._request("DELETE", f"{TOKENS_PATH}/{remote_value}", token=remote_value)
        if response.status_code not in (200, 204):
            raise AuthError(f"error revoking token: {_describe(response, remote_value)}")

    async def validate(self, remote_value: str) -> bool:
        """
        Check whether a token is still accepted by the remote system.

        Returns:
            True on 2xx, False on 401/403

        Raises:
            AuthError: Any other status
            TransportError: Network failure
        """
        response = await self._request("GET", VERSION_PATH, token=remote_value)
        if response.is_success:
            return True
        if response.status_code in (401, 403):
            return False
        raise AuthError(f"unexpected status when validating token: {response.status_code}")
