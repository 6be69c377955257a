from __future__ import annotations


class ErgonError(Exception):
    """Base exception for this project."""


class ConfigError(ErgonError):
    """Raised when configuration is invalid or incomplete."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class LLMError(ErgonError):
    """Base exception for LLM client errors."""


class LLMAuthError(LLMError):
    """Authentication error with LLM provider."""


class LLMRateLimitError(LLMError):
    """Rate limit exceeded."""


class LLMResponseError(LLMError):
    """Provider returned a response we could not interpret."""
