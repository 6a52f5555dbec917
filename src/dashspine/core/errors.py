"""
Structured error types for dashboard-spine.

Every failure the provisioning pipeline can hit is a typed error carrying a
category, a retry hint and structured context. The orchestrator decides how far
a failure propagates by looking at the error type, not at message strings.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure domain
    - **Smallest Blast Radius:** Each type maps to the unit it aborts
    - **Rich Context:** Errors carry tenant, category and key for logging
    - **Error Chaining:** The underlying exception is preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      DashSpineError                              │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigurationMissing   ConnectionFailure    ClassificationMiss  │
        │  (CONFIG, category)     (DATABASE, category) (CLASSIFY, ignored) │
        │                                                                  │
        │  RemoteAPIFailure       RenderError          CaptureFailure      │
        │  (REMOTE, key)          (RENDER, key)        (CAPTURE, logged)   │
        │                                                                  │
        │  NotificationFailure    LockError                               │
        │  (NOTIFY, flag unset)   (LOCK, pass skipped)                     │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ConfigurationMissing("DB_NAME_QOR")
    >>> err.key
    'DB_NAME_QOR'
    >>> err.category
    <ErrorCategory.CONFIG: 'CONFIG'>

    >>> try:
    ...     raise OSError("connection refused")
    ... except OSError as e:
    ...     err = ConnectionFailure("cannot reach tenant schema", cause=e)
    >>> err.retryable
    True

Tags:
    error-handling, exception-hierarchy, dashboard-spine, observability

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories used for log routing and propagation decisions.

    Attributes:
        CONFIG: Required credential or setting absent
        DATABASE: Tenant schema or state store unreachable
        CLASSIFY: Table name matched no rule
        RENDER: Template left unresolved tokens behind
        REMOTE: Dashboard or datasource API failure
        CAPTURE: Snapshot capture failure
        NOTIFY: Chat or webhook delivery failure
        LOCK: Tenant lock contention or backend failure
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    CONFIG = "CONFIG"
    DATABASE = "DATABASE"
    CLASSIFY = "CLASSIFY"
    RENDER = "RENDER"
    REMOTE = "REMOTE"
    CAPTURE = "CAPTURE"
    NOTIFY = "NOTIFY"
    LOCK = "LOCK"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()``; anything that is not a
    first-class field goes into ``metadata``. Secrets never belong here.

    Attributes:
        tenant_id: Tenant the pass was running for
        category: Database category (``timing_report``, ``qor``, ...)
        logical_key: Table name or derived group key
        template_type: Template type of the classification
        destination: Notification destination kind
        url: Remote URL being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    tenant_id: str | None = None
    category: str | None = None
    logical_key: str | None = None
    template_type: str | None = None
    destination: str | None = None
    url: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["tenant_id", "category", "logical_key", "template_type",
                    "destination", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DashSpineError(Exception):
    """
    Base exception for all dashboard-spine errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers may
    override either per instance. ``with_context()`` attaches metadata after
    creation so a low-level error can be enriched as it propagates.

    Examples:
        >>> err = DashSpineError("boom").with_context(tenant_id="7", logical_key="foo")
        >>> err.to_dict()["context"]
        {'tenant_id': '7', 'logical_key': 'foo'}
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DashSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise RemoteAPIFailure("create failed").with_context(
                tenant_id=tenant.tenant_id,
                logical_key="foo_grafana_pd",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationMissing(DashSpineError):
    """A credential required by a category is absent. The category is skipped."""

    default_category = ErrorCategory.CONFIG

    def __init__(self, key: str, message: str | None = None, **kwargs: Any):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}", **kwargs)


# =============================================================================
# INFRASTRUCTURE
# =============================================================================


class ConnectionFailure(DashSpineError):
    """Cannot reach a tenant schema. Aborts only the affected category."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class LockError(DashSpineError):
    """Tenant lock backend failed (distinct from ordinary contention)."""

    default_category = ErrorCategory.LOCK
    default_retryable = True


# =============================================================================
# CLASSIFICATION / RENDERING
# =============================================================================


class ClassificationMiss(DashSpineError):
    """A table name matched no rule."""

    default_category = ErrorCategory.CLASSIFY

    def __init__(self, table_name: str, **kwargs: Any):
        self.table_name = table_name
        super().__init__(f"No classification rule matches table {table_name!r}", **kwargs)


class RenderError(DashSpineError):
    """A rendered dashboard still contains unresolved placeholder tokens."""

    default_category = ErrorCategory.RENDER

    def __init__(self, message: str, *, unresolved: list[str] | None = None, **kwargs: Any):
        self.unresolved = unresolved or []
        super().__init__(message, **kwargs)


class TemplateError(DashSpineError):
    """A template file is missing or is not valid JSON."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# REMOTE SERVICES
# =============================================================================


class RemoteAPIFailure(DashSpineError):
    """Dashboard or datasource API rejected a call or returned an unusable body."""

    default_category = ErrorCategory.REMOTE
    default_retryable = True


class CaptureFailure(DashSpineError):
    """Snapshot capture failed. Never fatal to the pipeline."""

    default_category = ErrorCategory.CAPTURE


class NotificationFailure(DashSpineError):
    """A chat or webhook delivery failed. The destination flag stays unset."""

    default_category = ErrorCategory.NOTIFY
    default_retryable = True


# =============================================================================
# UTILITIES
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is worth retrying on a later pass."""
    if isinstance(error, DashSpineError):
        return error.retryable
    return isinstance(error, (ConnectionError, OSError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, DashSpineError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.DATABASE
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DashSpineError",
    "ConfigurationMissing",
    "ConnectionFailure",
    "LockError",
    "ClassificationMiss",
    "RenderError",
    "TemplateError",
    "RemoteAPIFailure",
    "CaptureFailure",
    "NotificationFailure",
    "is_retryable",
    "categorize_error",
]
