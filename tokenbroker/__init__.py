"""
Token Broker - Short-lived credentials for remote administrative APIs

Issues ephemeral tokens against a remote authentication API on behalf of
callers, keeps a ledger of every issued token, and revokes tokens once they
expire. Callers never see the long-lived username and password.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- remote: Remote token protocol client
- connections: Remote targets and their credentials
- ledger: Record of every issued token
- lifecycle: Issuance, revocation and periodic reconciliation
- storage: Data persistence abstraction
- auth: Caller authentication for the API
- api: REST API models
- config: Environment configuration
"""

__version__ = "1.0.0"
