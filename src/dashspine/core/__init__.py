"""
Core primitives shared by every dashboard-spine component.

Modules:
    errors    Typed error hierarchy with category and context
    logging   structlog configuration and scoped context
    settings  pydantic-settings process configuration
    hashing   Deterministic dashboard uids
    locks     Per-tenant mutual exclusion
    orm       SQLAlchemy state store
"""

from dashspine.core.errors import (
    CaptureFailure,
    ClassificationMiss,
    ConfigurationMissing,
    ConnectionFailure,
    DashSpineError,
    ErrorCategory,
    ErrorContext,
    LockError,
    NotificationFailure,
    RemoteAPIFailure,
    RenderError,
    TemplateError,
)
from dashspine.core.logging import configure_logging, get_logger, tenant_scope
from dashspine.core.settings import DashSpineSettings, get_settings

__all__ = [
    "CaptureFailure",
    "ClassificationMiss",
    "ConfigurationMissing",
    "ConnectionFailure",
    "DashSpineError",
    "ErrorCategory",
    "ErrorContext",
    "LockError",
    "NotificationFailure",
    "RemoteAPIFailure",
    "RenderError",
    "TemplateError",
    "tenant_scope",
    "configure_logging",
    "get_logger",
    "DashSpineSettings",
    "get_settings",
]
