"""Database categories a tenant can configure, and how each is provisioned."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dashspine.catalog.rules import RuleSet, TemplateType, default_rule_set


class Category(str, Enum):
    TIMING_REPORT = "timing_report"
    QOR = "qor"
    DRC = "drc"
    REPORTS = "reports"

    @property
    def credential_suffix(self) -> str:
        return self.value.upper()

    @property
    def db_name_key(self) -> str:
        return f"DB_NAME_{self.credential_suffix}"

    @property
    def datasource_uid_key(self) -> str:
        return f"GRAFANA_UID_{self.credential_suffix}"


@dataclass(frozen=True)
class CategorySpec:
    """How one category's tables turn into dashboards.

    Rule-driven categories classify tables against ``rules``. Whole-table
    categories render ``whole_table`` once per table with a random uid.
    """

    category: Category
    rules: RuleSet | None = None
    whole_table: TemplateType | None = None

    @property
    def is_whole_table(self) -> bool:
        return self.whole_table is not None


def default_categories() -> tuple[CategorySpec, ...]:
    rules = default_rule_set()
    return (
        CategorySpec(
            Category.TIMING_REPORT,
            rules=rules.only(
                TemplateType.DELAY_STACK,
                TemplateType.ERRORS,
                TemplateType.SKEW,
                TemplateType.DELAY_COMPARE,
                TemplateType.SLACK_COMPARE,
            ),
        ),
        CategorySpec(Category.QOR, whole_table=TemplateType.QOR_TABLE),
        CategorySpec(Category.DRC, whole_table=TemplateType.DRC),
        CategorySpec(Category.REPORTS, rules=rules),
    )


__all__ = ["Category", "CategorySpec", "default_categories"]
