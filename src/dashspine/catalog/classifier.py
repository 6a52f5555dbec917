"""
Table classifier: scanned table names → dashboard classifications.

``classify`` is pure. For each table the rules are tried in ascending
priority and the first match wins, so a table is claimed by at most one rule
(or one fan-out family). Tables no rule matches are ignored.

Group rules merge tables sharing a captured key into one classification with
named slots. A group with only some slots populated is still emitted; the
resolver decides what the empty slots turn into.

Example:
    >>> from dashspine.catalog.rules import default_rule_set
    >>> [c.logical_key for c in classify(["run1_cts", "run1_route"], default_rule_set())]
    ['run1-delay-compare', 'run1-slack-compare']
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from dashspine.catalog.rules import (
    Arity,
    ClassificationRule,
    RuleSet,
    SlotMatch,
    SlotSchema,
    TemplateType,
)
from dashspine.core.errors import ClassificationMiss
from dashspine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Classification:
    """One dashboard to provision.

    ``members`` maps slot name → table present in the scan. ``attrs`` holds
    the values captured from the names (``table``, ``group_key``, ``prefix``,
    ``suffix``, ``run``, ``next_run``, ``next_suffix``).
    """

    rule: ClassificationRule
    logical_key: str
    group_key: str
    members: Mapping[str, str] = field(default_factory=dict)
    attrs: Mapping[str, str] = field(default_factory=dict)

    @property
    def template_type(self) -> TemplateType:
        return self.rule.template_type

    @property
    def missing_slots(self) -> tuple[str, ...]:
        if self.rule.slot_schema is None:
            return ()
        return tuple(s for s in self.rule.slot_schema.slot_names if s not in self.members)


@dataclass
class _Group:
    schema: SlotSchema
    key: str
    suffix: str
    members: dict[str, str] = field(default_factory=dict)
    prefix: str = ""


def classify_one(table: str, rules: RuleSet) -> tuple[ClassificationRule, SlotMatch]:
    """Strict single-table lookup; raises ``ClassificationMiss`` when nothing matches."""
    hit = rules.first_match(table)
    if hit is None:
        raise ClassificationMiss(table)
    return hit


def classify(tables: Iterable[str], rules: RuleSet) -> list[Classification]:
    """Classify every table in one scan.

    Output is ordered by rule priority, then logical key.
    """
    singles: list[Classification] = []
    groups: dict[tuple[str, str, str], _Group] = {}
    pairs: dict[int, list[tuple[int, SlotMatch]]] = {}
    pair_rules: dict[int, ClassificationRule] = {}

    for table in sorted(set(tables)):
        hit = rules.first_match(table)
        if hit is None:
            logger.debug("table_unclassified", table=table)
            continue
        rule, match = hit

        if rule.arity is Arity.SINGLE:
            singles.append(
                Classification(
                    rule=rule,
                    logical_key=rule.logical_key(table=table),
                    group_key=table,
                    members={"table": table},
                    attrs={"table": table, "group_key": table},
                )
            )
        elif rule.arity is Arity.GROUP:
            schema = rule.slot_schema
            assert schema is not None
            suffix = match.suffix if schema.group_by_suffix else ""
            bucket = (schema.name, match.group_key, suffix)
            group = groups.setdefault(bucket, _Group(schema, match.group_key, match.suffix))
            if match.slot in group.members:
                logger.warning(
                    "group_slot_conflict",
                    group=match.group_key,
                    slot=match.slot,
                    kept=group.members[match.slot],
                    ignored=table,
                )
                continue
            group.members[match.slot] = table
            if not group.prefix and match.prefix:
                group.prefix = match.prefix
        else:
            pairs.setdefault(id(rule), []).append((int(match.group_key), match))
            pair_rules[id(rule)] = rule

    results = list(singles)
    results.extend(_expand_groups(groups.values(), rules))
    for rule_id, runs in pairs.items():
        results.extend(_expand_pairs(pair_rules[rule_id], runs))

    results.sort(key=lambda c: (c.rule.priority, c.logical_key))
    return results


def _expand_groups(groups: Iterable[_Group], rules: RuleSet) -> list[Classification]:
    out: list[Classification] = []
    for group in groups:
        attrs = {
            "group_key": group.key,
            "prefix": group.prefix,
            "suffix": group.suffix,
            "run": group.key,
        }
        for rule in rules.family(group.schema):
            out.append(
                Classification(
                    rule=rule,
                    logical_key=rule.logical_key(**attrs),
                    group_key=group.key,
                    members=dict(group.members),
                    attrs=attrs,
                )
            )
    return out


def _expand_pairs(rule: ClassificationRule, runs: list[tuple[int, SlotMatch]]) -> list[Classification]:
    ordered: list[tuple[int, SlotMatch]] = []
    seen: set[int] = set()
    for number, match in sorted(runs, key=lambda r: (r[0], r[1].table)):
        if number in seen:
            continue
        seen.add(number)
        ordered.append((number, match))

    out: list[Classification] = []
    for (run, first), (next_run, second) in zip(ordered, ordered[1:]):
        attrs = {
            "run": str(run),
            "next_run": str(next_run),
            "suffix": first.suffix,
            "next_suffix": second.suffix,
        }
        key = rule.logical_key(**attrs)
        out.append(
            Classification(
                rule=rule,
                logical_key=key,
                group_key=key,
                members={"run": first.table, "next_run": second.table},
                attrs=attrs,
            )
        )
    return out


__all__ = ["Classification", "classify", "classify_one"]
