"""
Custom exception hierarchy for Switchboard.

Structured error handling with clear categories:
- Configuration errors (caught at startup)
- Request validation errors (unknown provider, bad credentials, templates)
- Retryable vs permanent backend failures
- Tool execution failures, tagged transient or permanent per tool

Usage:
    from switchboard.exceptions import TransientBackendError

    try:
        reply = await client.chat.completions.create(...)
    except openai.APITimeoutError as e:
        raise TransientBackendError("Backend timed out", provider="openrouter") from e
"""

from __future__ import annotations

from typing import Optional


class SwitchboardError(Exception):
    """
    Base exception for all Switchboard errors.

    All custom exceptions inherit from this, so you can catch
    `SwitchboardError` to handle any engine-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(SwitchboardError):
    """
    Raised when the backend configuration is invalid or missing.

    Examples:
    - Missing API key, endpoint or model list for a backend
    - Endpoint that is not an absolute URI
    - Default provider that is not among the configured backends
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        backend: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path
        self.backend = backend


# ── Backend Resolution Errors ─────────────────────────────────────


class UnknownProviderError(SwitchboardError):
    """Raised when a provider name does not match any configured backend."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider


class InvalidCredentialsError(SwitchboardError, ValueError):
    """
    Raised when a backend client is constructed without an API key.

    Fatal for the request: constructing the client again will not help.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider


# ── Backend Call Errors ───────────────────────────────────────────


class BackendError(SwitchboardError):
    """
    A permanent failure returned by a text-generation backend.

    Examples: HTTP 400/401/404 from the vendor API, or a conversation
    that exceeded the tool round limit.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider
        self.status_code = status_code


class TransientBackendError(BackendError):
    """
    A backend failure that is expected to succeed on retry
    (network error, timeout, rate limit, 5xx).

    Retried with backoff on the non-streaming path, terminal on the
    streaming path.
    """


# ── Tool Errors ───────────────────────────────────────────────────


class ToolExecutionError(SwitchboardError):
    """
    Raised when a tool invoked during generation fails.

    `is_transient` is set from the tool's own registration, not from the
    type of the underlying exception.
    """

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        is_transient: bool = False,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.tool_name = tool_name
        self.is_transient = is_transient


# ── Template Errors ───────────────────────────────────────────────


class TemplateNotFoundError(SwitchboardError):
    """Raised when no template source knows the requested name."""

    def __init__(
        self,
        message: str,
        *,
        template_name: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.template_name = template_name


class MissingVariablesError(SwitchboardError, ValueError):
    """
    Raised when rendering a template without all of its variables.

    `names` lists every absent variable, not just the first one found.
    """

    def __init__(
        self,
        message: str,
        *,
        names: list[str],
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.names = names


def is_transient_error(error: BaseException) -> bool:
    """True if an error is worth retrying on the non-streaming path."""
    if isinstance(error, TransientBackendError):
        return True
    if isinstance(error, ToolExecutionError):
        return error.is_transient
    return False
