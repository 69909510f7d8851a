"""Rule executors: one pure function per rule config class.

Each executor reads the graph through a :class:`GraphAccessor` and returns
the findings for a single rule.  Executors never write anything; the
orchestrator owns persistence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archloom.graph.cycles import find_cyclic_nodes
from archloom.validation.rules import (
    AttributeCompletenessConfig,
    MaxRelationshipsConfig,
    MinRelationshipsConfig,
    NamingConventionConfig,
    NoCircularDependenciesConfig,
    NoOrphanedEntitiesConfig,
    RequiredRelationshipConfig,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from archloom.graph.accessor import GraphAccessor
    from archloom.validation.rules import Rule, RuleConfig


class RuleExecutionError(Exception):
    """Raised when a single rule cannot be evaluated."""


@dataclass(frozen=True)
class ViolationFinding:
    """One entity that fails one rule, before it is stored."""

    entity_type: str
    entity_id: int
    entity_name: str
    message: str
    expected: str
    actual: str
    suggestions: tuple[str, ...] = field(default_factory=tuple)

    @property
    def key(self) -> tuple[str, int]:
        return (self.entity_type, self.entity_id)

    def details(self) -> dict[str, object]:
        """Return the JSON-serializable details payload."""
        return {
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
            "suggestions": list(self.suggestions),
        }


# ---------------------------------------------------------------------------
# Relationship counts
# ---------------------------------------------------------------------------


def check_min_relationships(
    project_id: int, config: MinRelationshipsConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    findings: list[ViolationFinding] = []
    label = config.relationship_type or "relationship(s)"
    for entity in graph.entities_of_type(project_id, config.entity_type):
        count = graph.relationship_count(
            project_id, entity.entity_type, entity.id, config.relationship_type
        )
        if count >= config.min_count:
            continue
        findings.append(
            ViolationFinding(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                entity_name=entity.name,
                message=(
                    f"{entity.name} has only {count} relationship(s), "
                    f"expected at least {config.min_count}"
                ),
                expected=f"At least {config.min_count} {label}",
                actual=f"{count} relationship(s)",
                suggestions=(
                    f"Add {config.min_count - count} more relationship(s) "
                    "to meet the minimum requirement",
                    "Review similar entities to identify potential relationships",
                ),
            )
        )
    return findings


def check_max_relationships(
    project_id: int, config: MaxRelationshipsConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    findings: list[ViolationFinding] = []
    label = config.relationship_type or "relationship(s)"
    for entity in graph.entities_of_type(project_id, config.entity_type):
        count = graph.relationship_count(
            project_id, entity.entity_type, entity.id, config.relationship_type
        )
        if count <= config.max_count:
            continue
        findings.append(
            ViolationFinding(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                entity_name=entity.name,
                message=(
                    f"{entity.name} has {count} relationship(s), "
                    f"exceeds maximum of {config.max_count}"
                ),
                expected=f"At most {config.max_count} {label}",
                actual=f"{count} relationship(s)",
                suggestions=(
                    f"Remove {count - config.max_count} relationship(s) "
                    "to meet the maximum limit",
                    "Consider splitting this entity into multiple smaller entities",
                ),
            )
        )
    return findings


def check_required_relationship(
    project_id: int, config: RequiredRelationshipConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    rel_type = config.required_relationship_type
    findings: list[ViolationFinding] = []
    for entity in graph.entities_of_type(project_id, config.entity_type):
        if graph.relationship_count(project_id, entity.entity_type, entity.id, rel_type) > 0:
            continue
        findings.append(
            ViolationFinding(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                entity_name=entity.name,
                message=f"{entity.name} is missing required relationship type: {rel_type}",
                expected=f"At least one {rel_type} relationship",
                actual=f"No {rel_type} relationships",
                suggestions=(
                    f"Add a {rel_type} relationship to this entity",
                    "Review TOGAF guidelines for required relationships",
                ),
            )
        )
    return findings


def check_no_orphaned_entities(
    project_id: int, config: NoOrphanedEntitiesConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    findings: list[ViolationFinding] = []
    for entity_type in config.entity_types:
        for entity in graph.entities_of_type(project_id, entity_type):
            if graph.relationship_count(project_id, entity.entity_type, entity.id) > 0:
                continue
            findings.append(
                ViolationFinding(
                    entity_type=entity.entity_type,
                    entity_id=entity.id,
                    entity_name=entity.name,
                    message=f"{entity.name} has no relationships (orphaned entity)",
                    expected="At least one relationship",
                    actual="No relationships",
                    suggestions=(
                        "Add relationships to connect this entity to the architecture",
                        "Consider if this entity is still relevant or should be archived",
                    ),
                )
            )
    return findings


# ---------------------------------------------------------------------------
# Entity content
# ---------------------------------------------------------------------------


def check_naming_convention(
    project_id: int, config: NamingConventionConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    try:
        pattern = re.compile(config.pattern)
    except re.error as exc:
        msg = f"Invalid naming pattern {config.pattern!r}: {exc}"
        raise RuleExecutionError(msg) from exc

    description = config.description or config.pattern
    findings: list[ViolationFinding] = []
    for entity in graph.entities_of_type(project_id, config.entity_type):
        if pattern.search(entity.name):
            continue
        findings.append(
            ViolationFinding(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                entity_name=entity.name,
                message=f"{entity.name} does not match naming convention: {description}",
                expected=f"Name matching pattern: {config.pattern}",
                actual=f"Current name: {entity.name}",
                suggestions=(
                    f"Rename to follow the convention: {description}",
                    "Example: Use PascalCase or add required prefix/suffix",
                ),
            )
        )
    return findings


def _is_missing(value: object) -> bool:
    return value is None or value == ""


def check_attribute_completeness(
    project_id: int, config: AttributeCompletenessConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    required = ", ".join(config.required_fields)
    findings: list[ViolationFinding] = []
    for entity in graph.entities_of_type(project_id, config.entity_type):
        missing = [f for f in config.required_fields if _is_missing(entity.field_value(f))]
        if not missing:
            continue
        missing_text = ", ".join(missing)
        findings.append(
            ViolationFinding(
                entity_type=entity.entity_type,
                entity_id=entity.id,
                entity_name=entity.name,
                message=f"{entity.name} is missing required fields: {missing_text}",
                expected=f"All required fields populated: {required}",
                actual=f"Missing: {missing_text}",
                suggestions=(
                    f"Fill in the missing fields: {missing_text}",
                    "Review entity details and add complete information",
                ),
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


def check_no_circular_dependencies(
    project_id: int, config: NoCircularDependenciesConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    """Flag every entity of a listed type that lies on a directed cycle.

    Edges are outgoing relationships of any type.  Entities of other types
    still carry edges through the search; they are just not reported.
    """
    start_nodes: list[tuple[str, int]] = []
    names: dict[tuple[str, int], str] = {}
    for entity_type in config.entity_types:
        for entity in graph.entities_of_type(project_id, entity_type):
            key = (entity.entity_type, entity.id)
            start_nodes.append(key)
            names[key] = entity.name

    def _successors(node: tuple[str, int]) -> list[tuple[str, int]]:
        return [
            rel.target_key for rel in graph.outgoing_relationships(project_id, node[0], node[1])
        ]

    result = find_cyclic_nodes(start_nodes, _successors, max_depth=config.max_depth)

    findings: list[ViolationFinding] = []
    # start_nodes order keeps the output deterministic.
    for key in start_nodes:
        if key not in result.cyclic:
            continue
        name = names[key]
        findings.append(
            ViolationFinding(
                entity_type=key[0],
                entity_id=key[1],
                entity_name=name,
                message=f"{name} is part of a circular dependency chain",
                expected="No circular dependencies",
                actual="Circular dependency detected",
                suggestions=(
                    "Review the relationship chain and remove circular references",
                    "Consider restructuring the architecture to eliminate cycles",
                ),
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_EXECUTORS: dict[type, Callable[[int, RuleConfig, GraphAccessor], list[ViolationFinding]]] = {
    MinRelationshipsConfig: check_min_relationships,  # type: ignore[dict-item]
    MaxRelationshipsConfig: check_max_relationships,  # type: ignore[dict-item]
    RequiredRelationshipConfig: check_required_relationship,  # type: ignore[dict-item]
    NoCircularDependenciesConfig: check_no_circular_dependencies,  # type: ignore[dict-item]
    NoOrphanedEntitiesConfig: check_no_orphaned_entities,  # type: ignore[dict-item]
    NamingConventionConfig: check_naming_convention,  # type: ignore[dict-item]
    AttributeCompletenessConfig: check_attribute_completeness,  # type: ignore[dict-item]
}


def execute_config(
    project_id: int, config: RuleConfig, graph: GraphAccessor
) -> list[ViolationFinding]:
    """Run the executor registered for *config*'s class."""
    return _EXECUTORS[type(config)](project_id, config, graph)


def execute_rule(project_id: int, rule: Rule, graph: GraphAccessor) -> list[ViolationFinding]:
    """Evaluate a stored rule.

    Raises :class:`RuleExecutionError` when the rule's stored configuration
    no longer parses or its evaluation fails.
    """
    if rule.config is None:
        msg = f"Rule '{rule.name}' has an invalid configuration: {rule.config_error}"
        raise RuleExecutionError(msg)
    return execute_config(project_id, rule.config, graph)
