"""
Structured error types for the spawner.

Every failure that crosses the ``Spawner`` boundary is a ``SpawnerError``
subclass carrying a category, so callers (and the CLI) can tell a malformed
payload from a backend refusal, a failed status query, a caller that gave
up, or missing network metadata without parsing messages.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        SpawnerError                          │
        │             (message, category, spawner, cause)              │
        ├──────────────────────────────────────────────────────────────┤
        │                                                              │
        │  DecodeError          BackendRejectionError                  │
        │  (DECODE)             (BACKEND_REJECTED)                     │
        │                                                              │
        │  TransientQueryError  AttachmentResolutionError              │
        │  (QUERY)              (ATTACHMENT)                           │
        │                                                              │
        │  ConfigurationError                                          │
        │  (CONFIG)                                                    │
        │                                                              │
        │  CancellationError (CANCELLED)                               │
        │       │                                                      │
        │  ContextCancelled     DeadlineExceeded (+ TimeoutError)      │
        └──────────────────────────────────────────────────────────────┘

Propagation:
    - Errors raised after a successful submission are re-raised only after
      the partially started unit has been stopped (see ``runtimes.fargate``).
    - A failing compensation never replaces the original error.

Examples:
    >>> err = DecodeError("decode task definition: missing 'cluster'")
    >>> err.category
    <ErrorCategory.DECODE: 'DECODE'>
    >>> is_cancellation(DeadlineExceeded("deadline exceeded"))
    True

Tags:
    error-handling, exception-hierarchy, spawner
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Categories used to classify spawner failures."""

    DECODE = "DECODE"
    BACKEND_REJECTED = "BACKEND_REJECTED"
    QUERY = "QUERY"
    CANCELLED = "CANCELLED"
    ATTACHMENT = "ATTACHMENT"
    CONFIG = "CONFIG"
    UNKNOWN = "UNKNOWN"


class SpawnerError(Exception):
    """Base class for all spawner errors.

    Args:
        message: Human-readable description.
        category: Overrides the subclass ``default_category``.
        spawner: Name of the spawner that raised the error, when known.
        cause: Underlying exception, chained as ``__cause__``.
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        spawner: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.spawner = spawner
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.spawner:
            result["spawner"] = self.spawner
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class DecodeError(SpawnerError):
    """Malformed request or details payload. Never retried."""

    default_category = ErrorCategory.DECODE


class BackendRejectionError(SpawnerError):
    """The backend refused a request (e.g. invalid network placement)."""

    default_category = ErrorCategory.BACKEND_REJECTED


class TransientQueryError(SpawnerError):
    """A status, listing or stop call against the backend failed."""

    default_category = ErrorCategory.QUERY


class AttachmentResolutionError(SpawnerError):
    """Expected network metadata is absent or cannot be resolved."""

    default_category = ErrorCategory.ATTACHMENT


class ConfigurationError(SpawnerError):
    """Invalid settings or an AWS SDK that cannot be set up."""

    default_category = ErrorCategory.CONFIG


class CancellationError(SpawnerError):
    """The caller's context ended before the operation completed."""

    default_category = ErrorCategory.CANCELLED


class ContextCancelled(CancellationError):
    """The caller cancelled its context explicitly."""


class DeadlineExceeded(CancellationError, TimeoutError):
    """The caller's deadline expired.

    Inherits from built-in TimeoutError for broad exception handling.
    """


def is_cancellation(error: BaseException) -> bool:
    """True when *error* means "the caller gave up" rather than a failure."""
    return isinstance(error, CancellationError)
