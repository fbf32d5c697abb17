"""
Caller authentication for the token broker API.

Only answers "is this caller allowed to talk to the broker". Remote
credentials live in the connection store and never pass through here.
"""

import logging
import secrets
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class AuthModule:
    """
    Validates API keys presented in the X-API-Key header.

    Keys are configured as ``key`` or ``service:key``; the service part is
    returned as the caller identity for audit logging.
    """

    def __init__(self, api_keys: List[str], require_auth: bool = True):
        """
        Initialize auth module.

        Args:
            api_keys: Entries in ``key`` or ``service:key`` format
            require_auth: When False every request is accepted as ``anonymous``
        """
        self.require_auth = require_auth
        self.api_keys: Dict[str, Optional[str]] = self._parse_api_keys(api_keys)

    @staticmethod
    def _parse_api_keys(entries: List[str]) -> Dict[str, Optional[str]]:
        keys = {}
        for entry in entries:
            entry = entry.strip()
            if not entry:
                continue

            if ":" in entry:
                service, key = entry.split(":", 1)
                keys[key.strip()] = service.strip()
            else:
                keys[entry] = None

        return keys

    def verify_api_key(self, api_key: Optional[str]) -> Tuple[bool, Optional[str]]:
        """
        Verify an API key.

        Args:
            api_key: API key from X-API-Key header

        Returns:
            Tuple of (is_valid, service_identity)
        """
        if not self.require_auth:
            return True, "anonymous"

        if not api_key:
            return False, None

        # Compare against every key so timing does not reveal which prefix matched
        matched = None
        for key in self.api_keys:
            if secrets.compare_digest(api_key.encode("utf-8"), key.encode("utf-8")):
                matched = key

        if matched is None:
            logger.warning("Rejected request with invalid API key")
            return False, None

        return True, self.api_keys[matched]
