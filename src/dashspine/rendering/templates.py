"""
Template catalogue.

Canonical dashboard templates ship as package data in ``dashspine.templates``.
``TemplateStore`` parses each file once and hands out the parsed tree; the
renderer never mutates what it is given, so the cached tree stays canonical.

``validate_templates`` checks that every required file is present and parses
as a JSON object. It runs at scheduler start and from the CLI.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dashspine.catalog.rules import DEFAULT_RULES, WHOLE_TABLE_TEMPLATES, TemplateType
from dashspine.core.errors import TemplateError
from dashspine.core.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

TEMPLATE_FILES: dict[TemplateType, str] = {
    **{rule.template_type: rule.template_file for rule in DEFAULT_RULES},
    **WHOLE_TABLE_TEMPLATES,
}

REQUIRED_TEMPLATE_FILES: tuple[str, ...] = tuple(sorted(set(TEMPLATE_FILES.values())))


class TemplateStore:
    """Loads and caches canonical templates.

    ``directory`` overrides the packaged templates, e.g. for site-specific
    dashboards mounted into a container.
    """

    def __init__(self, directory: Path | None = None) -> None:
        self._directory = directory
        self._cache: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def _read(self, filename: str) -> str:
        path = (self._directory or TEMPLATE_DIR) / filename
        if not path.is_file():
            raise TemplateError(f"Template file missing: {filename}")
        return path.read_text(encoding="utf-8")

    def load_file(self, filename: str) -> dict[str, Any]:
        with self._lock:
            cached = self._cache.get(filename)
        if cached is not None:
            return cached

        raw = self._read(filename)
        try:
            tree = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TemplateError(f"Invalid JSON in template {filename}: {e}", cause=e) from e
        if not isinstance(tree, dict):
            raise TemplateError(f"Template {filename} is not a JSON object")

        with self._lock:
            self._cache[filename] = tree
        return tree

    def get(self, template_type: TemplateType) -> dict[str, Any]:
        """Canonical template tree for a type. Callers must not mutate it."""
        try:
            filename = TEMPLATE_FILES[template_type]
        except KeyError:
            raise TemplateError(f"No template registered for {template_type.value}") from None
        return self.load_file(filename)


@dataclass(frozen=True)
class TemplateCheck:
    filename: str
    ok: bool
    error: str | None = None


def validate_templates(
    store: TemplateStore | None = None,
    files: tuple[str, ...] = REQUIRED_TEMPLATE_FILES,
    *,
    strict: bool = True,
) -> list[TemplateCheck]:
    """Check every required template exists and parses.

    With ``strict`` the first failure raises ``TemplateError``; otherwise all
    results are returned for reporting.
    """
    store = store or TemplateStore()
    checks: list[TemplateCheck] = []
    for filename in files:
        try:
            store.load_file(filename)
        except TemplateError as e:
            logger.error("template_invalid", file=filename, error=e.message)
            if strict:
                raise
            checks.append(TemplateCheck(filename, False, e.message))
        else:
            logger.debug("template_valid", file=filename)
            checks.append(TemplateCheck(filename, True))
    return checks


__all__ = [
    "TEMPLATE_FILES",
    "REQUIRED_TEMPLATE_FILES",
    "TemplateStore",
    "TemplateCheck",
    "validate_templates",
]
