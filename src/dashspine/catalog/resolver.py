"""
Placeholder resolver: classification → concrete substitution map.

Each template type has one resolve function, registered with
``@resolver(TemplateType.X)``. A resolve function may probe the schema for
related tables; absent tables map to a reserved ``placeholder_…`` name that
the renderer later rewrites into an empty subquery.

The result carries the dependency state (placeholder token → table exists),
which the publisher compares across passes to decide whether a dashboard
needs re-publishing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from dashspine.catalog.classifier import Classification
from dashspine.catalog.rules import PATH_TYPE_PATTERN, TemplateType
from dashspine.core.logging import get_logger

logger = get_logger(__name__)

MISSING_TABLE_PREFIX = "placeholder_"
IDENTIFIER = "identifier"
TITLE_SUFFIX = "titleSuffix"


@runtime_checkable
class SchemaProbe(Protocol):
    def table_exists(self, name: str) -> bool: ...


class TableSetProbe:
    """Answers existence questions from one schema listing."""

    def __init__(self, tables: Iterable[str]) -> None:
        self._tables = frozenset(tables)

    def table_exists(self, name: str) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)


@dataclass(frozen=True)
class Resolution:
    """Complete placeholder map for one classification."""

    placeholders: dict[str, str]
    dependency_state: dict[str, bool] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        return self.placeholders[IDENTIFIER]

    @property
    def title_suffix(self) -> str:
        return self.placeholders[TITLE_SUFFIX]

    @property
    def replacements(self) -> dict[str, str]:
        """Token → value pairs applied to template strings."""
        return {k: v for k, v in self.placeholders.items() if k not in (IDENTIFIER, TITLE_SUFFIX)}

    @property
    def missing_tables(self) -> tuple[str, ...]:
        return tuple(
            self.placeholders[token]
            for token, exists in self.dependency_state.items()
            if not exists
        )


ResolveFn = Callable[[Classification, SchemaProbe], Resolution | None]

_RESOLVERS: dict[TemplateType, ResolveFn] = {}


def resolver(template_type: TemplateType) -> Callable[[ResolveFn], ResolveFn]:
    """Register the resolve function for a template type."""

    def decorator(fn: ResolveFn) -> ResolveFn:
        _RESOLVERS[template_type] = fn
        return fn

    return decorator


def resolve(classification: Classification, probe: SchemaProbe) -> Resolution | None:
    """Resolve a classification; ``None`` means there is nothing to publish."""
    fn = _RESOLVERS.get(classification.template_type)
    if fn is None:
        raise KeyError(f"No resolver registered for {classification.template_type.value}")
    return fn(classification, probe)


def _slot(
    probe: SchemaProbe,
    table: str | None,
    sentinel: str,
) -> tuple[str, bool]:
    if table and probe.table_exists(table):
        return table, True
    return sentinel, False


def _build(slots: dict[str, tuple[str, bool]], **extra: str) -> Resolution:
    placeholders = {token: value for token, (value, _) in slots.items()}
    placeholders.update(extra)
    state = {token: exists for token, (_, exists) in slots.items()}
    return Resolution(placeholders=placeholders, dependency_state=state)


# ── Single-table rules ──────────────────────────────────────────────────


@resolver(TemplateType.DELAY_STACK)
def _resolve_delay_stack(c: Classification, probe: SchemaProbe) -> Resolution:
    table = c.attrs["table"]
    m = PATH_TYPE_PATTERN.search(table)
    path_type = m.group(0).upper() if m else table.upper()
    return Resolution(
        placeholders={
            "{{TABLE_NAME}}": table,
            IDENTIFIER: table,
            TITLE_SUFFIX: f"{path_type} Paths",
        }
    )


@resolver(TemplateType.ERRORS)
def _resolve_errors(c: Classification, probe: SchemaProbe) -> Resolution:
    table = c.attrs["table"]
    return Resolution(
        placeholders={
            "{{TABLE_NAME}}": table,
            IDENTIFIER: f"errors-{table}",
            TITLE_SUFFIX: f"Error Analysis - {table}",
        }
    )


@resolver(TemplateType.SKEW)
def _resolve_skew(c: Classification, probe: SchemaProbe) -> Resolution:
    table = c.attrs["table"]
    return Resolution(
        placeholders={
            "{{TABLE_NAME}}": table,
            IDENTIFIER: f"skew-{table}",
            TITLE_SUFFIX: f"Clock Skew Analysis - {table}",
        }
    )


# ── Group rules ─────────────────────────────────────────────────────────


@resolver(TemplateType.QOR)
def _resolve_qor(c: Classification, probe: SchemaProbe) -> Resolution:
    block = c.group_key
    suffix = c.attrs.get("suffix", "")

    def table(slot: str) -> str:
        return c.members.get(slot) or f"{block}_{slot}_pd{suffix}"

    slots = {
        "{{RUN_TABLE}}": _slot(probe, table("grafana"), "placeholder_run_table"),
        "{{TIME_TABLE}}": _slot(probe, table("pathgroups"), "placeholder_time_table"),
        "{{DRC_TABLE}}": _slot(probe, table("violations"), "placeholder_drc_table"),
    }
    return _build(slots, **{IDENTIFIER: f"qor-{block}", TITLE_SUFFIX: f"{block} QoR"})


def _resolve_cts_route(c: Classification, probe: SchemaProbe, kind: str) -> Resolution:
    run = c.attrs["run"]
    prefix = c.attrs.get("prefix", "")
    slots = {
        "{{CTS_TABLE}}": _slot(probe, c.members.get("cts"), f"placeholder_cts_table_{run}"),
        "{{ROUTE_TABLE}}": _slot(probe, c.members.get("route"), f"placeholder_route_table_{run}"),
    }
    return _build(
        slots,
        **{
            "{{RUN_NUMBER}}": run,
            IDENTIFIER: f"run{run}-{kind}-compare",
            TITLE_SUFFIX: f"{prefix} Run {run}".strip(),
        },
    )


@resolver(TemplateType.DELAY_COMPARE)
def _resolve_delay_compare(c: Classification, probe: SchemaProbe) -> Resolution:
    return _resolve_cts_route(c, probe, "delay")


@resolver(TemplateType.SLACK_COMPARE)
def _resolve_slack_compare(c: Classification, probe: SchemaProbe) -> Resolution:
    return _resolve_cts_route(c, probe, "slack")


# ── Pair rules ──────────────────────────────────────────────────────────


@resolver(TemplateType.RUN_COMPARE)
def _resolve_run_compare(c: Classification, probe: SchemaProbe) -> Resolution | None:
    r1, r2 = c.attrs["run"], c.attrs["next_run"]
    s1, s2 = c.attrs.get("suffix", ""), c.attrs.get("next_suffix", "")

    wanted = {
        "{{RUN_TABLE}}": (f"run{r1}_g{r1}{s1}", f"placeholder_run_table_{r1}"),
        "{{NEXT_RUN_TABLE}}": (f"run{r2}_g{r2}{s2}", f"placeholder_next_run_table_{r2}"),
        "{{RUN_POWER_TABLE}}": (f"run{r1}_{r1}{s1}", f"placeholder_run_power_table_{r1}"),
        "{{NEXT_RUN_POWER_TABLE}}": (f"run{r2}_{r2}{s2}", f"placeholder_next_run_power_table_{r2}"),
        "{{RUN_COMPARE_TABLE}}": (f"run{r1}_d{s1}", f"placeholder_run_compare_table_{r1}"),
        "{{NEXT_RUN_COMPARE_TABLE}}": (f"run{r2}_d{s2}", f"placeholder_next_run_compare_table_{r2}"),
        "{{DRC_TABLE}}": (f"drc{r1}{s1}", f"placeholder_drc_table_{r1}"),
        "{{NEXT_DRC_TABLE}}": (f"drc{r2}{s2}", f"placeholder_next_drc_table_{r2}"),
    }
    slots = {token: _slot(probe, name, sentinel) for token, (name, sentinel) in wanted.items()}

    if not any(exists for _, exists in slots.values()):
        logger.debug("run_compare_skipped", pair=c.logical_key)
        return None

    return _build(
        slots,
        **{
            "{{RUN_NUMBER}}": r1,
            "{{NEXT_RUN_NUMBER}}": r2,
            IDENTIFIER: f"run{r1}-vs-run{r2}",
            TITLE_SUFFIX: f"Run {r1} vs Run {r2}",
        },
    )


# ── Whole-table templates ───────────────────────────────────────────────


def resolve_whole_table(table: str) -> Resolution:
    """Placeholder map for a template rendered once per table."""
    return Resolution(
        placeholders={
            "PLACEHOLDER_TABLE_NAME": table,
            IDENTIFIER: table,
            TITLE_SUFFIX: table,
        }
    )


__all__ = [
    "MISSING_TABLE_PREFIX",
    "SchemaProbe",
    "TableSetProbe",
    "Resolution",
    "resolver",
    "resolve",
    "resolve_whole_table",
]
