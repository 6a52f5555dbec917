"""Tenants: credential storage, tenant directory and per-pass context."""

from dashspine.tenants.context import TenantContext
from dashspine.tenants.directory import TenantDirectory
from dashspine.tenants.credentials import (
    CredentialStore,
    InMemoryCredentialStore,
    SqlCredentialStore,
    Tenant,
)

__all__ = [
    "TenantContext",
    "TenantDirectory",
    "CredentialStore",
    "InMemoryCredentialStore",
    "SqlCredentialStore",
    "Tenant",
]
