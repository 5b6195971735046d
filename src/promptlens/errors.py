from __future__ import annotations

from typing import Optional

from .constants import ExitCode


class PromptLensError(Exception):
    """Base exception for all promptlens errors."""

    exit_code: ExitCode = ExitCode.ERROR


class ConfigError(PromptLensError):
    """Configuration validation failed."""


class NoPromptsError(PromptLensError):
    """Nothing to analyze."""

    exit_code = ExitCode.NO_DATA


class NoProvidersAvailableError(PromptLensError):
    """No configured provider answered its availability probe."""

    exit_code = ExitCode.PROVIDER_UNAVAILABLE


class ProviderError(PromptLensError):
    """A provider call failed."""

    def __init__(self, message: str, *, provider: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderRequestError(ProviderError):
    """Non-2xx HTTP response from a provider (other than auth failures)."""


class ProviderAuthError(ProviderError):
    """HTTP 401/403: the key is missing, invalid or lacks permissions."""


class ResponseParseError(ProviderError):
    """Provider text could not be turned into JSON, even after repair."""


class SchemaMismatchError(ResponseParseError):
    """Valid JSON that matches none of the supported response schemas."""
