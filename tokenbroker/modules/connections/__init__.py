"""
Connection Module - Black Box Interface

Purpose: Store remote targets and their credentials
Interface: write(), read(), delete(), list(), resolve()
Hidden: Key layout, connectivity probe, per-name write serialization

Credentials go in through write() and come out only as a RemoteAuthClient
from resolve(); no read path returns them.
"""

from .connections import Connection, ConnectionStore, default_client_factory

__all__ = ["Connection", "ConnectionStore", "default_client_factory"]
