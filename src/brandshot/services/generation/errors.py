"""Provider error taxonomy with error classification.

Generators raise one of the three concrete kinds. Upstream APIs rarely return
structured error codes, so classify_error() maps raw exceptions (SDK errors,
transport errors, HTTP status failures) onto the taxonomy by status code and
message inspection. The orchestrator only branches on the class.
"""

import asyncio
from typing import Optional

import httpx


class ProviderError(Exception):
    """Base class for categorized provider errors."""

    retryable: bool = False

    def __init__(self, message: str, provider: str = ""):
        self.provider = provider
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Timeouts, upstream 5xx/429, "internal error" - worth one simplified retry."""

    retryable = True


class CredentialError(ProviderError):
    """Missing or rejected credentials - retrying with the same key is pointless."""

    retryable = False


class PermanentProviderError(ProviderError):
    """Validation or capability failures - neither retried nor handed to a fallback."""

    retryable = False


_TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "internalerror",
    "internal error",
    "service unavailable",
    "server unavailable",
    "temporarily unavailable",
    "rate limit",
    "throttl",
)

_CREDENTIAL_MARKERS = (
    "unauthorized",
    "forbidden",
    "api key is required",
    "missing api key",
    "invalid api key",
    "invalid api token",
    "authentication",
)


def classify_status(status_code: int, message: str, provider: str = "") -> ProviderError:
    """Classify an HTTP failure status from an upstream API.

    Classification rules:
        - 401/403 → CredentialError
        - 408/429 → TransientProviderError
        - 5xx → TransientProviderError
        - Other 4xx → PermanentProviderError (unless the body reads transient)
    """
    detail = f"status {status_code}: {message}".strip()
    if status_code in (401, 403):
        return CredentialError(f"Authentication failed ({detail})", provider)
    if status_code in (408, 429) or status_code >= 500:
        return TransientProviderError(f"Upstream unavailable ({detail})", provider)
    return classify_message(detail, provider)


def classify_message(message: str, provider: str = "") -> ProviderError:
    """Classify an unstructured upstream error message."""
    lowered = message.lower()

    if any(marker in lowered for marker in _CREDENTIAL_MARKERS) or any(
        code in message for code in ("401", "403")
    ):
        return CredentialError(f"Authentication failed: {message}", provider)

    if any(marker in lowered for marker in _TRANSIENT_MARKERS) or any(
        code in message for code in ("429", "502", "503", "504")
    ):
        return TransientProviderError(f"Transient upstream error: {message}", provider)

    return PermanentProviderError(f"Permanent error: {message}", provider)


def classify_error(exception: BaseException, provider: str = "") -> ProviderError:
    """Classify any exception raised during a generation call.

    Args:
        exception: Original exception from an SDK, httpx or the event loop
        provider: Provider name to attach to the classified error

    Returns:
        The exception itself if it is already a ProviderError, otherwise a new
        classified ProviderError subclass instance
    """
    if isinstance(exception, ProviderError):
        return exception

    message = str(exception) or type(exception).__name__

    if isinstance(exception, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return TransientProviderError(f"Network timeout: {message}", provider)

    if isinstance(exception, httpx.HTTPStatusError):
        return classify_status(
            exception.response.status_code, exception.response.text, provider
        )

    status_code = _status_attribute(exception)
    if status_code is not None:
        return classify_status(status_code, message, provider)

    if isinstance(exception, (httpx.TransportError, ConnectionError)):
        return TransientProviderError(f"Connection error: {message}", provider)

    return classify_message(message, provider)


def _status_attribute(exception: BaseException) -> Optional[int]:
    status = getattr(exception, "status", None) or getattr(exception, "status_code", None)
    if isinstance(status, int) and 100 <= status < 600:
        return status
    return None
