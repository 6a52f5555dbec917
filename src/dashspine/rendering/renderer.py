"""
Template renderer: canonical template + placeholder map → dashboard definition.

Rendering is a pure tree transform that builds a new tree and never touches
the input. Only string leaves are rewritten; object keys are left alone.

Per string leaf, in order:

1. datasource tokens (``PLACEHOLDER_DATASOURCE_UID``, ``${DATASOURCE_UID}``,
   ``{{DATASOURCE_UID}}``) → datasource uid
2. every placeholder token → its replacement, globally
3. ``FROM <missing table>`` → ``FROM (SELECT 1 WHERE FALSE) AS <missing table>``
   so panels over absent tables render empty instead of erroring

Then the top-level ``uid``, ``title`` and ``id`` are set. A result that still
contains a ``{{…}}`` or ``PLACEHOLDER_…`` token raises ``RenderError``.

Example:
    >>> tree = {"panels": [{"rawSql": "SELECT * FROM {{TABLE_NAME}}"}]}
    >>> render_tree(tree, {"{{TABLE_NAME}}": "clk_skew"})["panels"][0]["rawSql"]
    'SELECT * FROM clk_skew'
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from dashspine.catalog.resolver import Resolution
from dashspine.catalog.rules import TemplateType
from dashspine.core.errors import RenderError
from dashspine.core.hashing import dashboard_uid, random_uid
from dashspine.core.logging import get_logger
from dashspine.rendering.templates import TemplateStore

logger = get_logger(__name__)

DATASOURCE_TOKENS = ("PLACEHOLDER_DATASOURCE_UID", "${DATASOURCE_UID}", "{{DATASOURCE_UID}}")
EMPTY_SUBQUERY = "(SELECT 1 WHERE FALSE)"

_UNRESOLVED = re.compile(r"\{\{[A-Za-z0-9_]+\}\}|PLACEHOLDER_[A-Z0-9_]+|\$\{DATASOURCE_UID\}")

# Whole-table dashboards are titled after their category
_TITLE_LABELS = {
    TemplateType.QOR_TABLE: "QOR",
    TemplateType.TIMING: "TIMING",
    TemplateType.DRC: "DRC",
}


@dataclass(frozen=True)
class RenderedDashboard:
    template_type: TemplateType
    uid: str
    title: str
    definition: dict[str, Any]


def _missing_table_patterns(missing: Iterable[str]) -> list[tuple[re.Pattern[str], str]]:
    return [
        (
            re.compile(rf"FROM\s+{re.escape(name)}\b", re.IGNORECASE),
            f"FROM {EMPTY_SUBQUERY} AS {name}",
        )
        for name in missing
    ]


def render_tree(
    tree: Any,
    replacements: Mapping[str, str],
    *,
    datasource_uid: str | None = None,
    missing_tables: Iterable[str] = (),
) -> Any:
    """Return a new tree with every string leaf substituted."""
    rewrites = _missing_table_patterns(missing_tables)

    def leaf(value: str) -> str:
        if datasource_uid is not None:
            for token in DATASOURCE_TOKENS:
                value = value.replace(token, datasource_uid)
        for token, replacement in replacements.items():
            value = value.replace(token, replacement)
        for pattern, substitute in rewrites:
            value = pattern.sub(substitute, value)
        return value

    def walk(node: Any) -> Any:
        if isinstance(node, str):
            return leaf(node)
        if isinstance(node, dict):
            return {key: walk(value) for key, value in node.items()}
        if isinstance(node, list):
            return [walk(item) for item in node]
        return node

    return walk(tree)


def find_unresolved(tree: Any) -> list[str]:
    """Every leftover placeholder token in string leaves, in document order."""
    found: list[str] = []

    def walk(node: Any) -> None:
        if isinstance(node, str):
            found.extend(_UNRESOLVED.findall(node))
        elif isinstance(node, dict):
            for value in node.values():
                walk(value)
        elif isinstance(node, list):
            for item in node:
                walk(item)

    walk(tree)
    return found


class Renderer:
    """Renders dashboards from the template store.

    ``clock`` returns epoch milliseconds and is injectable for tests.
    """

    def __init__(
        self,
        store: TemplateStore | None = None,
        *,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store or TemplateStore()
        self._clock = clock or (lambda: int(time.time() * 1000))

    def render(
        self,
        template_type: TemplateType,
        resolution: Resolution,
        datasource_uid: str | None = None,
        *,
        dedupe: bool = True,
    ) -> RenderedDashboard:
        """Render one dashboard.

        ``dedupe`` selects the uid: deterministic from the identifier (the same
        classification always targets the same remote dashboard), or a random
        8-character token for whole-table dashboards.
        """
        template = self._store.get(template_type)
        tree = render_tree(
            template,
            resolution.replacements,
            datasource_uid=datasource_uid,
            missing_tables=resolution.missing_tables,
        )

        unresolved = find_unresolved(tree)
        if unresolved:
            raise RenderError(
                f"Unresolved placeholders in {template_type.value} template: "
                f"{', '.join(sorted(set(unresolved)))}",
                unresolved=sorted(set(unresolved)),
            ).with_context(template_type=template_type.value, logical_key=resolution.identifier)

        uid = dashboard_uid(template_type.value, resolution.identifier) if dedupe else random_uid()
        label = _TITLE_LABELS.get(template_type, template_type.value.upper())
        title = f"{label} Dashboard: {resolution.title_suffix} ({self._clock()})"

        tree["uid"] = uid
        tree["title"] = title
        tree["id"] = None

        logger.debug("dashboard_rendered", type=template_type.value, uid=uid)
        return RenderedDashboard(template_type=template_type, uid=uid, title=title, definition=tree)


__all__ = [
    "DATASOURCE_TOKENS",
    "EMPTY_SUBQUERY",
    "RenderedDashboard",
    "Renderer",
    "render_tree",
    "find_unresolved",
]
