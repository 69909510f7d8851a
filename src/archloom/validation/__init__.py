"""Validation domain: rules, executors, violation store, orchestrator."""

from archloom.validation.engine import ValidationRunError, ValidationSummary, run_validation
from archloom.validation.executors import RuleExecutionError, ViolationFinding, execute_rule
from archloom.validation.rules import (
    RULE_TYPES,
    SEVERITIES,
    Rule,
    RuleConfig,
    RuleConfigError,
    RuleDefinition,
    build_rule_definition,
    config_to_dict,
    load_rules,
    parse_rule_config,
)
from archloom.validation.store import (
    ViolationRecord,
    ViolationStateError,
    create_rule,
    delete_rule,
    get_rule,
    get_violation,
    get_violation_stats,
    list_active_rules,
    list_rules,
    list_violations,
    replace_violations,
    resolve_violation,
    toggle_rule_active,
    update_rule,
)

__all__ = [
    "RULE_TYPES",
    "SEVERITIES",
    "Rule",
    "RuleConfig",
    "RuleConfigError",
    "RuleDefinition",
    "RuleExecutionError",
    "ValidationRunError",
    "ValidationSummary",
    "ViolationFinding",
    "ViolationRecord",
    "ViolationStateError",
    "build_rule_definition",
    "config_to_dict",
    "create_rule",
    "delete_rule",
    "execute_rule",
    "get_rule",
    "get_violation",
    "get_violation_stats",
    "list_active_rules",
    "list_rules",
    "list_violations",
    "load_rules",
    "parse_rule_config",
    "replace_violations",
    "resolve_violation",
    "run_validation",
    "toggle_rule_active",
    "update_rule",
]
