"""Table classification: rule set, classifier, placeholder resolver, categories."""

from dashspine.catalog.categories import Category, CategorySpec, default_categories
from dashspine.catalog.classifier import Classification, classify, classify_one
from dashspine.catalog.resolver import (
    Resolution,
    SchemaProbe,
    TableSetProbe,
    resolve,
    resolve_whole_table,
)
from dashspine.catalog.rules import (
    Arity,
    ClassificationRule,
    RuleSet,
    SlotSchema,
    TemplateType,
    default_rule_set,
)

__all__ = [
    "Category",
    "CategorySpec",
    "default_categories",
    "Classification",
    "classify",
    "classify_one",
    "Resolution",
    "SchemaProbe",
    "TableSetProbe",
    "resolve",
    "resolve_whole_table",
    "Arity",
    "ClassificationRule",
    "RuleSet",
    "SlotSchema",
    "TemplateType",
    "default_rule_set",
]
