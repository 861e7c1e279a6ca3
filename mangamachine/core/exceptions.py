"""
Application-level exception types.

Provider failures never surface as exceptions from the orchestrator; they are
returned as ``GenerationFailure`` values. The types here cover configuration
and caller mistakes.
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        self.detail = detail or message
        super().__init__(message)


class GenerationError(AppError):
    """Raised when a generation run cannot be started."""


class ConfigurationError(AppError):
    """Raised when required configuration is missing or invalid."""


class ProviderNotConfiguredError(ConfigurationError):
    """Raised when a provider is requested by name but has no credentials."""

    def __init__(self, provider: str, env_var: str) -> None:
        super().__init__(
            f"{provider} is not configured. Set {env_var}.",
            detail=f"{provider} is not configured",
        )
        self.provider = provider
        self.env_var = env_var


class DuplicateSequenceError(GenerationError, ValueError):
    """Raised when a batch contains the same panel sequence number twice."""

    def __init__(self, sequence_numbers: list[int]) -> None:
        joined = ", ".join(str(n) for n in sequence_numbers)
        super().__init__(
            f"duplicate panel sequence numbers: {joined}",
            detail="panel sequence numbers must be unique",
        )
        self.sequence_numbers = sequence_numbers


class InvalidImageError(AppError, ValueError):
    """Raised when an image payload cannot be decoded."""
