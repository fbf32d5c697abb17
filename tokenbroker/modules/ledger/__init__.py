"""
Ledger Module - Black Box Interface

Purpose: Track every issued token and whether it is still active
Interface: record(), get(), list_ids(), list_active(), deactivate()
Hidden: Key layout, serialization, create-if-absent semantics

Replaceable with any store offering atomic single-key writes.
"""

from .ledger import TokenLedger, TokenRecord, generate_token_id

__all__ = ["TokenLedger", "TokenRecord", "generate_token_id"]
