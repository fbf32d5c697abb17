"""
Remote Auth Module - Black Box Interface

Purpose: Speak the remote system's token protocol
Interface: acquire(), adjust_timeout(), revoke(), validate()
Hidden: URL layout, auth header, JSON payloads, HTTP client lifecycle

Any target exposing equivalent token semantics can replace the BIG-IP
iControl REST implementation without affecting other modules.
"""

from .client import AcquiredToken, RemoteAuthClient, TLSPolicy, normalize_endpoint

__all__ = ["RemoteAuthClient", "AcquiredToken", "TLSPolicy", "normalize_endpoint"]
