"""API key validation for the owner-facing endpoints.

The dashboard backend authenticates owners itself and calls this service with
a shared API key; per-owner authorization happens before the call reaches us.
"""

import hmac


class APIKeyValidator:
    """Validates API keys against a configured set of valid keys."""

    def __init__(self, api_keys: list[str]) -> None:
        """Initialize validator with list of valid API keys.

        Args:
            api_keys: List of valid API key strings

        Raises:
            ValueError: If api_keys list is empty
        """
        if not api_keys:
            raise ValueError("At least one API key must be provided")

        self.api_keys = frozenset(api_keys)

    def validate(self, api_key: str) -> bool:
        """Validate an API key, comparing in constant time.

        Args:
            api_key: The API key to validate

        Returns:
            bool: True if valid, False otherwise
        """
        candidate = api_key.encode()
        return any(hmac.compare_digest(candidate, key.encode()) for key in self.api_keys)
