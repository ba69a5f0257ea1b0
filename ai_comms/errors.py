"""
Error taxonomy for AI communication.

Callers only ever need to catch AICommunicationError; the subclasses tell
configuration problems apart from provider failures.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Unknown error occurred during AI communication"


class AICommunicationError(Exception):
    """Base error with a human-readable message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(AICommunicationError):
    """Missing credential, unresolvable record or unsupported provider."""
    pass


class RecordNotFoundError(ConfigurationError):
    """Agent, model or provider reference does not resolve."""
    pass


class UnsupportedProviderError(ConfigurationError):
    """No adapter exists for the provider code."""

    def __init__(self, code: str):
        super().__init__(f"Unsupported provider: {code}")
        self.code = code


class ProviderError(AICommunicationError):
    """A call to the provider failed (transport, auth or decode)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class TransportError(ProviderError):
    """Network failure, timeout or non-success HTTP status."""
    pass


class AuthenticationError(TransportError):
    """Provider rejected the credential (HTTP 401/403)."""
    pass


class DecodeError(ProviderError):
    """Response body or stream frame could not be decoded."""
    pass


class StreamCancelledError(ProviderError):
    """Stream was aborted by the caller before it finished."""

    cancelled = True

    def __init__(self, message: str = "Stream cancelled", provider: Optional[str] = None):
        super().__init__(message, provider=provider)


def _message_from(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        message = value.get("message")
    else:
        message = getattr(value, "message", None)
    if isinstance(message, str) and message:
        return message
    return None


def normalize_error(
    value: Any,
    default_message: str = GENERIC_ERROR_MESSAGE,
    error_cls: type = AICommunicationError,
) -> AICommunicationError:
    """
    Coerce anything raised or reported into an AICommunicationError.

    - AICommunicationError instances are returned unchanged
    - other exceptions keep their message and are chained as __cause__
    - strings become the message
    - mappings/objects with a "message" use it
    - anything else gets default_message

    Never raises.
    """
    try:
        if isinstance(value, AICommunicationError):
            return value
        if isinstance(value, BaseException):
            message = _message_from(value) or str(value) or type(value).__name__
            error = error_cls(message)
            error.__cause__ = value
            return error
        message = _message_from(value)
        return error_cls(message or default_message)
    except Exception:
        logger.exception("Failed to normalize error %r", value)
        return AICommunicationError(default_message)
