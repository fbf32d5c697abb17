"""
API Module - Black Box Interface

Purpose: Request and response models for the HTTP surface
Interface: Pydantic models
Hidden: Field constraints and defaults
"""

from .models import (
    ConnectionListResponse,
    ConnectionResponse,
    ConnectionWriteRequest,
    ConnectionWriteResponse,
    ErrorResponse,
    IssuedTokenResponse,
    IssueTokenRequest,
    ReconcileResponse,
    TokenListResponse,
    TokenSummary,
    TokenValidationResponse,
)

__all__ = [
    "ConnectionWriteRequest",
    "ConnectionResponse",
    "ConnectionWriteResponse",
    "ConnectionListResponse",
    "IssueTokenRequest",
    "IssuedTokenResponse",
    "TokenSummary",
    "TokenListResponse",
    "TokenValidationResponse",
    "ReconcileResponse",
    "ErrorResponse",
]
