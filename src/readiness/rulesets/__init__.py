"""Readiness rule sets: the document format and the versioned store."""

from readiness.rulesets.document import (
    bundled_rule_sets,
    load_rule_set_file,
    parse_rule_set_document,
)
from readiness.rulesets.store import (
    UNCHECKED,
    InMemoryRuleSetStore,
    PostgresRuleSetStore,
    RuleSetStore,
    get_rule_set_store,
    load_bundled_rule_sets,
)

__all__ = [
    "UNCHECKED",
    "InMemoryRuleSetStore",
    "PostgresRuleSetStore",
    "RuleSetStore",
    "bundled_rule_sets",
    "get_rule_set_store",
    "load_bundled_rule_sets",
    "load_rule_set_file",
    "parse_rule_set_document",
]
