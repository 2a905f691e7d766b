"""Domain-specific exceptions for tenant-access.

Authentication paths never raise these: unknown, inactive and
mismatched keys all surface as ``None``.
"""


class UnknownKeyEnvironmentError(ValueError):
    """Raised when a key is requested for an environment other than test/live."""

    def __init__(self, environment: str) -> None:
        self.environment = environment
        super().__init__(f"Unknown key environment: {environment!r}")


class ApiKeyNotFoundError(Exception):
    """Administrative operation addressed a key id that does not exist."""

    def __init__(self, key_id: str) -> None:
        self.key_id = key_id
        super().__init__(f"API key {key_id} not found")
