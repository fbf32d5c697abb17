"""
Authentication Module - Black Box Interface

Purpose: Validate callers of the broker API
Interface: verify_api_key()
Hidden: Key formats, comparison logic

This module can be completely replaced with any other auth implementation
(OAuth, JWT, external service) without affecting other modules.
"""

from .auth import AuthModule

__all__ = ["AuthModule"]
