"""Deterministic hashing and uid helpers for dashboards."""

import hashlib
import secrets
import string
from typing import Any

_UID_ALPHABET = string.ascii_lowercase + string.digits


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute a deterministic SHA-256 hex digest from values.

    Values are stringified and joined with ``|``; the result is order
    dependent and stable across processes.

    Examples:
        >>> len(compute_hash("a", "b", length=10))
        10
        >>> compute_hash("a", "b") != compute_hash("b", "a")
        True
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def dashboard_uid(template_type: str, identifier: str) -> str:
    """Stable dashboard uid: ``<type>-<first 10 hex of sha256(identifier)>``.

    Re-rendering the same classification always targets the same remote
    dashboard, so an overwrite replaces it instead of creating a duplicate.

    >>> dashboard_uid("skew", "skew-clk_skew_analysis").startswith("skew-")
    True
    """
    return f"{template_type}-{compute_hash(identifier, length=10)}"


def random_uid(length: int = 8) -> str:
    """Random lowercase alphanumeric uid for whole-table dashboards."""
    return "".join(secrets.choice(_UID_ALPHABET) for _ in range(length))


__all__ = ["compute_hash", "dashboard_uid", "random_uid"]
