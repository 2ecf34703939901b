"""Error taxonomy for the scoring pipeline.

  - TransientError: network/connection/timeout; retried locally with backoff
  - BackendResponseError: malformed/empty backend output; retried a few times per phase
  - PermanentItemError: required upstream data missing; the item fails immediately
  - ConfigurationError: no usable backend; escapes process_backlog()

Losing a claim to another worker is not an exception at all: claim() returns False.
"""

from __future__ import annotations

import asyncio

import httpx
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

_TIMEOUT_VOCABULARY = ("timeout", "timed out", "time out", "abort")

_TRANSIENT_VOCABULARY = (
    "timeout",
    "timed out",
    "connection refused",
    "econnrefused",
    "connection reset",
    "could not connect",
    "server closed the connection",
    "network",
    "fetch failed",
    "database is locked",
    "temporarily unavailable",
)


class ScoringError(Exception):
    """Base class for scoring pipeline errors."""


class TransientError(ScoringError):
    """Temporary failure talking to a backend or the store."""


class BackendError(ScoringError):
    """Non-retryable failure reported by an analysis backend (auth, bad request...)."""

    def __init__(self, message: str, status_code: int = 0, backend: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.backend = backend


class BackendResponseError(BackendError):
    """Backend answered, but the payload was empty or could not be parsed."""


class BackendChainError(BackendError):
    """Every backend of a fallback chain failed."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        summary = "; ".join(f"{name}: {exc}" for name, exc in failures) or "no backends configured"
        super().__init__(f"All backends failed ({summary})")
        self.failures = failures


class PermanentItemError(ScoringError):
    """The backlog item cannot be processed without external intervention."""


class ConfigurationError(ScoringError):
    """The pipeline is not configured well enough to process anything."""


def is_timeout_message(message: str | None) -> bool:
    """True when an error message speaks about timeouts or aborted calls."""
    if not message:
        return False
    lowered = message.lower()
    return any(word in lowered for word in _TIMEOUT_VOCABULARY)


def _has_transient_vocabulary(message: str) -> bool:
    lowered = message.lower()
    return any(word in lowered for word in _TRANSIENT_VOCABULARY)


def is_transient(exc: BaseException) -> bool:
    """Classify an exception as transient (worth a local retry) or not."""
    if isinstance(exc, TransientError):
        return True
    if isinstance(exc, BackendChainError):
        return bool(exc.failures) and all(is_transient(e) for _, e in exc.failures)
    if isinstance(exc, ScoringError):
        return False
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        if isinstance(exc, (OperationalError, InterfaceError)):
            return _has_transient_vocabulary(str(exc))
    return False


def is_backend_semantic(exc: BaseException) -> bool:
    """True for malformed/empty backend output (worth re-asking the same backend)."""
    if isinstance(exc, BackendChainError):
        return bool(exc.failures) and all(is_backend_semantic(e) for _, e in exc.failures)
    return isinstance(exc, BackendResponseError)
