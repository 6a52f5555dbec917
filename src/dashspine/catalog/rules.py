"""
Classification rule set: which table names become which dashboards.

Rules are immutable and ordered by ascending priority (lower wins). A rule
is one of three arities:

    SINGLE  one table → one dashboard (delay-stack, errors, skew)
    GROUP   tables sharing a key captured from their names are merged into
            one dashboard with named slots (QoR blocks, cts/route runs)
    PAIR    matching tables are sorted by run number and every consecutive
            pair becomes one comparison dashboard (run-compare)

Group rules that share a ``SlotSchema`` form a fan-out family: a cts/route
group produces both a delay-compare and a slack-compare dashboard.

Matching here is pure; turning a match into placeholder values (which may
probe the schema) lives in ``dashspine.catalog.resolver``.

Architecture:
    ::

        priority  type            arity   match
        ────────  ──────────────  ──────  ─────────────────────────────────────
        0         qor             GROUP   <block>_{grafana,pathgroups,violations}_pd[_csv]
        1         delay-stack     SINGLE  [early_|late_]…{in2reg,in2out,reg2out,reg2mem}
        2         errors          SINGLE  …error…
        3         skew            SINGLE  …skew…
        4         delay-compare   GROUP   <prefix>_{cts,route}<n>[_csv] | <prefix><n>_{cts,route}
        5         slack-compare   GROUP   (same family as 4)
        6         run-compare     PAIR    run<n>_g<n>[_csv]

Tags:
    classification, rules, regex, dashboard-spine
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum


class TemplateType(str, Enum):
    """Dashboard template types."""

    QOR = "qor"
    DELAY_STACK = "delay-stack"
    ERRORS = "errors"
    SKEW = "skew"
    DELAY_COMPARE = "delay-compare"
    SLACK_COMPARE = "slack-compare"
    RUN_COMPARE = "run-compare"

    # Whole-table templates, one dashboard per table, no deduplicated uid
    TIMING = "timing"
    QOR_TABLE = "qor-table"
    DRC = "drc"


class Arity(str, Enum):
    SINGLE = "single"
    GROUP = "group"
    PAIR = "pair"


@dataclass(frozen=True)
class SlotMatch:
    """A table name matched against one slot of a schema."""

    slot: str
    table: str
    group_key: str
    prefix: str = ""
    suffix: str = ""


@dataclass(frozen=True)
class SlotSchema:
    """Named slots of a multi-table group.

    Each slot has one or more regexes with named groups ``key`` (required),
    ``prefix`` and ``suffix`` (optional). Tables whose captured ``key``
    and ``suffix`` agree belong to the same group.
    """

    name: str
    slots: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]
    group_by_suffix: bool = True

    @property
    def slot_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.slots)

    def match(self, table: str) -> SlotMatch | None:
        for slot, patterns in self.slots:
            for pattern in patterns:
                m = pattern.match(table)
                if m is None:
                    continue
                groups = m.groupdict()
                return SlotMatch(
                    slot=slot,
                    table=table,
                    group_key=groups["key"],
                    prefix=groups.get("prefix") or "",
                    suffix=(groups.get("suffix") or "").lower(),
                )
        return None


@dataclass(frozen=True)
class ClassificationRule:
    """Immutable pattern → template mapping.

    ``key_format`` builds the record key from the match attributes
    (``table``, ``group_key``, ``prefix``, ``suffix``, ``run``, ``next_run``).
    """

    template_type: TemplateType
    priority: int
    template_file: str
    key_format: str
    arity: Arity = Arity.SINGLE
    patterns: tuple[re.Pattern[str], ...] = field(default=())
    slot_schema: SlotSchema | None = None

    def match(self, table: str) -> SlotMatch | None:
        """Pure match of one table name against this rule."""
        if self.slot_schema is not None:
            return self.slot_schema.match(table)
        for pattern in self.patterns:
            m = pattern.search(table) if self.arity is Arity.SINGLE else pattern.match(table)
            if m is None:
                continue
            groups = m.groupdict()
            return SlotMatch(
                slot="table",
                table=table,
                group_key=groups.get("key") or table,
                suffix=(groups.get("suffix") or "").lower(),
            )
        return None

    def logical_key(self, **attrs: str) -> str:
        return self.key_format.format(**attrs)


def _rx(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


QOR_BLOCK_SCHEMA = SlotSchema(
    name="qor-block",
    slots=(
        ("grafana", (_rx(r"^(?P<key>.+)_grafana_pd(?P<suffix>_csv)?$"),)),
        ("pathgroups", (_rx(r"^(?P<key>.+)_pathgroups_pd(?P<suffix>_csv)?$"),)),
        ("violations", (_rx(r"^(?P<key>.+)_violations_pd(?P<suffix>_csv)?$"),)),
    ),
)

# Run number after the slot name (``<prefix>_cts<n>``) or at the end of the
# prefix (``<prefix><n>_cts``).
CTS_ROUTE_SCHEMA = SlotSchema(
    name="cts-route",
    slots=(
        (
            "cts",
            (
                _rx(r"^(?P<prefix>.*)_cts(?P<key>\d+)(?P<suffix>_csv)?$"),
                _rx(r"^(?P<prefix>.*?)(?P<key>\d+)_cts(?P<suffix>_csv)?$"),
            ),
        ),
        (
            "route",
            (
                _rx(r"^(?P<prefix>.*)_route(?P<key>\d+)(?P<suffix>_csv)?$"),
                _rx(r"^(?P<prefix>.*?)(?P<key>\d+)_route(?P<suffix>_csv)?$"),
            ),
        ),
    ),
    group_by_suffix=False,
)

PATH_TYPE_PATTERN = _rx(r"(in2reg|in2out|reg2out|reg2mem)")

DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        template_type=TemplateType.QOR,
        priority=0,
        template_file="QOR_PNR_template.json",
        key_format="{group_key}_grafana_pd{suffix}",
        arity=Arity.GROUP,
        slot_schema=QOR_BLOCK_SCHEMA,
    ),
    ClassificationRule(
        template_type=TemplateType.DELAY_STACK,
        priority=1,
        template_file="delay_stacking_template.json",
        key_format="{table}",
        patterns=(_rx(r"(early_|late_)?(.*(in2reg|in2out|reg2out|reg2mem))"),),
    ),
    ClassificationRule(
        template_type=TemplateType.ERRORS,
        priority=2,
        template_file="errors_template.json",
        key_format="{table}",
        patterns=(_rx(r"error"),),
    ),
    ClassificationRule(
        template_type=TemplateType.SKEW,
        priority=3,
        template_file="skew_template.json",
        key_format="{table}",
        patterns=(_rx(r"skew"),),
    ),
    ClassificationRule(
        template_type=TemplateType.DELAY_COMPARE,
        priority=4,
        template_file="delay_comparison_template.json",
        key_format="run{group_key}-delay-compare",
        arity=Arity.GROUP,
        slot_schema=CTS_ROUTE_SCHEMA,
    ),
    ClassificationRule(
        template_type=TemplateType.SLACK_COMPARE,
        priority=5,
        template_file="slack_comparison_template.json",
        key_format="run{group_key}-slack-compare",
        arity=Arity.GROUP,
        slot_schema=CTS_ROUTE_SCHEMA,
    ),
    ClassificationRule(
        template_type=TemplateType.RUN_COMPARE,
        priority=6,
        template_file="Run_comparison_template.json",
        key_format="run{run}-vs-run{next_run}",
        arity=Arity.PAIR,
        patterns=(_rx(r"^run(?P<key>\d+)_g(?P=key)(?P<suffix>_csv)?$"),),
    ),
)

# Whole-table templates keyed by the type they render as.
WHOLE_TABLE_TEMPLATES: dict[TemplateType, str] = {
    TemplateType.TIMING: "timing_report_template.json",
    TemplateType.QOR_TABLE: "qor_template.json",
    TemplateType.DRC: "drc_template.json",
}


class RuleSet:
    """Priority-ordered, immutable collection of rules."""

    def __init__(self, rules: tuple[ClassificationRule, ...] | list[ClassificationRule]) -> None:
        self._rules = tuple(sorted(rules, key=lambda r: r.priority))

    def __iter__(self):
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> tuple[ClassificationRule, ...]:
        return self._rules

    def only(self, *types: TemplateType) -> RuleSet:
        """Subset restricted to the given template types, order preserved."""
        return RuleSet([r for r in self._rules if r.template_type in types])

    def family(self, schema: SlotSchema) -> tuple[ClassificationRule, ...]:
        """Every rule sharing *schema*, in priority order."""
        return tuple(r for r in self._rules if r.slot_schema is schema)

    def first_match(self, table: str) -> tuple[ClassificationRule, SlotMatch] | None:
        for rule in self._rules:
            m = rule.match(table)
            if m is not None:
                return rule, m
        return None


def default_rule_set() -> RuleSet:
    return RuleSet(DEFAULT_RULES)


__all__ = [
    "TemplateType",
    "Arity",
    "SlotMatch",
    "SlotSchema",
    "ClassificationRule",
    "RuleSet",
    "QOR_BLOCK_SCHEMA",
    "CTS_ROUTE_SCHEMA",
    "PATH_TYPE_PATTERN",
    "DEFAULT_RULES",
    "WHOLE_TABLE_TEMPLATES",
    "default_rule_set",
]
