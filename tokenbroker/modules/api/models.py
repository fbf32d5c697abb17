"""
Token broker API data models.

These models define the request and response bodies of the HTTP surface.
Each request model declares its required, optional and default fields once.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..remote import TLSPolicy

# Request Models (API Input)


class ConnectionWriteRequest(BaseModel):
    """Request to create or replace a connection."""

    endpoint: str = Field(..., description="Remote hostname, host:port or URL", min_length=1)
    username: str = Field(..., description="Remote account username", min_length=1)
    password: str = Field(..., description="Remote account password", min_length=1)
    tls_policy: TLSPolicy = Field(
        default=TLSPolicy.VERIFY, description="Certificate validation policy"
    )
    login_provider: Optional[str] = Field(
        None, description="Remote login provider name", max_length=100
    )

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v):
        """Reject endpoints that contain whitespace."""
        v = v.strip()
        if not v or any(c.isspace() for c in v):
            raise ValueError("endpoint must be a hostname or URL")
        return v


class IssueTokenRequest(BaseModel):
    """Request to issue a token."""

    ttl: Optional[int] = Field(
        None, description="Token lifetime in seconds (server default when omitted)", gt=0
    )


# Response Models (API Output)


class ConnectionResponse(BaseModel):
    """Connection as returned to callers. Credentials are never included."""

    name: str
    endpoint: str
    tls_policy: TLSPolicy
    login_provider: Optional[str] = None


class ConnectionWriteResponse(ConnectionResponse):
    """Result of a successful connection write."""

    status: str = "Connection configured and tested successfully"


class ConnectionListResponse(BaseModel):
    connections: List[str]
    count: int


class IssuedTokenResponse(BaseModel):
    """Newly issued token. The only response that carries the token value."""

    token_id: str
    token: str
    connection_name: str
    issued_at: datetime
    expires_at: datetime
    ttl: int


class TokenSummary(BaseModel):
    """Ledger entry without the token value."""

    token_id: str
    connection_name: str
    issued_at: datetime
    expires_at: datetime
    active: bool


class TokenListResponse(BaseModel):
    tokens: List[TokenSummary]
    count: int


class TokenValidationResponse(BaseModel):
    token_id: str
    valid: bool


class ReconcileResponse(BaseModel):
    """Outcome of a reconciliation pass."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    scanned: int
    reconciled: int
    skipped: int
    errored: int
    revoke_failed: int
    reconciled_ids: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    detail: str
