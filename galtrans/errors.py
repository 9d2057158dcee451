from __future__ import annotations


class GaltransError(Exception):
    pass


class ConfigError(GaltransError):
    pass


class MissingCredentialError(ConfigError):
    def __init__(self, message: str = "API key is not configured.") -> None:
        super().__init__(message)


class CompletionError(GaltransError):
    """Network or provider failure while streaming a completion."""


class CacheError(GaltransError):
    pass


class SessionCancelled(Exception):
    """Raised inside a streaming call once its cancel token fires."""
