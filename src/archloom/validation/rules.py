"""Rule model: typed rule configurations, parsing, and ``rules.yml`` loading.

Each rule type has exactly one frozen config dataclass.  Configurations are
parsed and validated once, when a rule is created or updated, so executors
never have to read an untyped blob defensively.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

import yaml

from archloom.graph.cycles import DEFAULT_MAX_DEPTH
from archloom.meta.entity_types import ENTITY_TYPES, VALID_ENTITY_TYPES
from archloom.meta.matrix import RELATIONSHIP_TYPES, VALID_RELATIONSHIP_TYPES

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_RELATIONSHIPS = "min_relationships"
MAX_RELATIONSHIPS = "max_relationships"
REQUIRED_RELATIONSHIP = "required_relationship"
NO_CIRCULAR_DEPENDENCIES = "no_circular_dependencies"
NO_ORPHANED_ENTITIES = "no_orphaned_entities"
NAMING_CONVENTION = "naming_convention"
ATTRIBUTE_COMPLETENESS = "attribute_completeness"

RULE_TYPES: tuple[str, ...] = (
    MIN_RELATIONSHIPS,
    MAX_RELATIONSHIPS,
    REQUIRED_RELATIONSHIP,
    NO_CIRCULAR_DEPENDENCIES,
    NO_ORPHANED_ENTITIES,
    NAMING_CONVENTION,
    ATTRIBUTE_COMPLETENESS,
)
VALID_RULE_TYPES: frozenset[str] = frozenset(RULE_TYPES)

SEVERITIES: tuple[str, ...] = ("info", "warning", "error", "critical")
VALID_SEVERITIES: frozenset[str] = frozenset(SEVERITIES)
DEFAULT_SEVERITY = "warning"

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RuleConfigError(ValueError):
    """Raised when a rule definition or its configuration is invalid."""


# ---------------------------------------------------------------------------
# Config data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MinRelationshipsConfig:
    """Every entity of a type needs at least ``min_count`` relationships."""

    rule_type: ClassVar[str] = MIN_RELATIONSHIPS

    entity_type: str
    min_count: int
    relationship_type: str | None = None


@dataclass(frozen=True)
class MaxRelationshipsConfig:
    """No entity of a type may have more than ``max_count`` relationships."""

    rule_type: ClassVar[str] = MAX_RELATIONSHIPS

    entity_type: str
    max_count: int
    relationship_type: str | None = None


@dataclass(frozen=True)
class RequiredRelationshipConfig:
    """Every entity of a type needs one relationship of a given type."""

    rule_type: ClassVar[str] = REQUIRED_RELATIONSHIP

    entity_type: str
    required_relationship_type: str


@dataclass(frozen=True)
class NoCircularDependenciesConfig:
    """Entities of the listed types must not sit on a directed cycle."""

    rule_type: ClassVar[str] = NO_CIRCULAR_DEPENDENCIES

    entity_types: tuple[str, ...]
    max_depth: int = DEFAULT_MAX_DEPTH


@dataclass(frozen=True)
class NoOrphanedEntitiesConfig:
    """Entities of the listed types must have at least one relationship."""

    rule_type: ClassVar[str] = NO_ORPHANED_ENTITIES

    entity_types: tuple[str, ...]


@dataclass(frozen=True)
class NamingConventionConfig:
    """Entity names of a type must match a regular expression."""

    rule_type: ClassVar[str] = NAMING_CONVENTION

    entity_type: str
    pattern: str
    description: str = ""


@dataclass(frozen=True)
class AttributeCompletenessConfig:
    """Entities of a type must have every listed field populated."""

    rule_type: ClassVar[str] = ATTRIBUTE_COMPLETENESS

    entity_type: str
    required_fields: tuple[str, ...]


RuleConfig = (
    MinRelationshipsConfig
    | MaxRelationshipsConfig
    | RequiredRelationshipConfig
    | NoCircularDependenciesConfig
    | NoOrphanedEntitiesConfig
    | NamingConventionConfig
    | AttributeCompletenessConfig
)


@dataclass(frozen=True)
class RuleDefinition:
    """A rule as authored, before it is stored."""

    name: str
    rule_type: str
    config: RuleConfig
    description: str | None = None
    severity: str = DEFAULT_SEVERITY
    active: bool = True


@dataclass(frozen=True)
class Rule:
    """A stored, project-scoped rule.

    ``config`` is ``None`` only when the stored configuration no longer
    parses; ``config_error`` then says why.
    """

    id: int
    project_id: int
    name: str
    rule_type: str
    config: RuleConfig | None
    severity: str
    active: bool
    description: str | None = None
    created_at: str = ""
    updated_at: str = ""
    config_error: str | None = None


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _require(data: dict[str, object], key: str, context: str) -> object:
    if key not in data or data[key] is None:
        msg = f"{context}: config.{key} is required"
        raise RuleConfigError(msg)
    return data[key]


def _entity_type(data: dict[str, object], key: str, context: str) -> str:
    value = str(_require(data, key, context))
    if value not in VALID_ENTITY_TYPES:
        msg = f"{context}: invalid {key} '{value}', must be one of {list(ENTITY_TYPES)}"
        raise RuleConfigError(msg)
    return value


def _entity_type_list(data: dict[str, object], key: str, context: str) -> tuple[str, ...]:
    raw = _require(data, key, context)
    if not isinstance(raw, list) or not raw:
        msg = f"{context}: config.{key} must be a non-empty list"
        raise RuleConfigError(msg)
    values = tuple(str(v) for v in raw)
    for value in values:
        if value not in VALID_ENTITY_TYPES:
            msg = (
                f"{context}: invalid entity type '{value}' in {key}, "
                f"must be one of {list(ENTITY_TYPES)}"
            )
            raise RuleConfigError(msg)
    return values


def _relationship_type(
    data: dict[str, object], key: str, context: str, *, required: bool
) -> str | None:
    raw = data.get(key)
    if raw is None or raw == "":
        if required:
            msg = f"{context}: config.{key} is required"
            raise RuleConfigError(msg)
        return None
    value = str(raw)
    if value not in VALID_RELATIONSHIP_TYPES:
        msg = f"{context}: invalid {key} '{value}', must be one of {list(RELATIONSHIP_TYPES)}"
        raise RuleConfigError(msg)
    return value


def _int(data: dict[str, object], key: str, context: str, *, minimum: int) -> int:
    raw = _require(data, key, context)
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        msg = f"{context}: config.{key} must be an integer"
        raise RuleConfigError(msg)
    try:
        value = int(raw)  # type: ignore[call-overload]
    except (TypeError, ValueError) as exc:
        msg = f"{context}: config.{key} must be an integer"
        raise RuleConfigError(msg) from exc
    if value < minimum:
        msg = f"{context}: config.{key} must be >= {minimum}"
        raise RuleConfigError(msg)
    return value


# ---------------------------------------------------------------------------
# Per-type config parsers
# ---------------------------------------------------------------------------


def _parse_min_relationships(data: dict[str, object], context: str) -> MinRelationshipsConfig:
    return MinRelationshipsConfig(
        entity_type=_entity_type(data, "entityType", context),
        min_count=_int(data, "minCount", context, minimum=0),
        relationship_type=_relationship_type(data, "relationshipType", context, required=False),
    )


def _parse_max_relationships(data: dict[str, object], context: str) -> MaxRelationshipsConfig:
    return MaxRelationshipsConfig(
        entity_type=_entity_type(data, "entityType", context),
        max_count=_int(data, "maxCount", context, minimum=0),
        relationship_type=_relationship_type(data, "relationshipType", context, required=False),
    )


def _parse_required_relationship(
    data: dict[str, object], context: str
) -> RequiredRelationshipConfig:
    required = _relationship_type(data, "requiredRelationshipType", context, required=True)
    return RequiredRelationshipConfig(
        entity_type=_entity_type(data, "entityType", context),
        required_relationship_type=str(required),
    )


def _parse_no_circular_dependencies(
    data: dict[str, object], context: str
) -> NoCircularDependenciesConfig:
    max_depth = DEFAULT_MAX_DEPTH
    if data.get("maxDepth") is not None:
        max_depth = _int(data, "maxDepth", context, minimum=1)
    return NoCircularDependenciesConfig(
        entity_types=_entity_type_list(data, "entityTypes", context),
        max_depth=max_depth,
    )


def _parse_no_orphaned_entities(
    data: dict[str, object], context: str
) -> NoOrphanedEntitiesConfig:
    return NoOrphanedEntitiesConfig(
        entity_types=_entity_type_list(data, "entityTypes", context),
    )


def _parse_naming_convention(data: dict[str, object], context: str) -> NamingConventionConfig:
    pattern = _require(data, "pattern", context)
    if not isinstance(pattern, str) or not pattern:
        msg = f"{context}: config.pattern must be a non-empty string"
        raise RuleConfigError(msg)
    return NamingConventionConfig(
        entity_type=_entity_type(data, "entityType", context),
        pattern=pattern,
        description=str(data.get("description") or ""),
    )


def _parse_attribute_completeness(
    data: dict[str, object], context: str
) -> AttributeCompletenessConfig:
    raw = _require(data, "requiredFields", context)
    if not isinstance(raw, list) or not raw:
        msg = f"{context}: config.requiredFields must be a non-empty list"
        raise RuleConfigError(msg)
    return AttributeCompletenessConfig(
        entity_type=_entity_type(data, "entityType", context),
        required_fields=tuple(str(f) for f in raw),
    )


_CONFIG_PARSERS = {
    MIN_RELATIONSHIPS: _parse_min_relationships,
    MAX_RELATIONSHIPS: _parse_max_relationships,
    REQUIRED_RELATIONSHIP: _parse_required_relationship,
    NO_CIRCULAR_DEPENDENCIES: _parse_no_circular_dependencies,
    NO_ORPHANED_ENTITIES: _parse_no_orphaned_entities,
    NAMING_CONVENTION: _parse_naming_convention,
    ATTRIBUTE_COMPLETENESS: _parse_attribute_completeness,
}


def validate_rule_type(rule_type: str) -> str:
    if rule_type not in VALID_RULE_TYPES:
        msg = f"Unknown rule type '{rule_type}', must be one of {list(RULE_TYPES)}"
        raise RuleConfigError(msg)
    return rule_type


def validate_severity(severity: str) -> str:
    if severity not in VALID_SEVERITIES:
        msg = f"Invalid severity '{severity}', must be one of {list(SEVERITIES)}"
        raise RuleConfigError(msg)
    return severity


def parse_rule_config(
    rule_type: str,
    data: object,
    *,
    context: str = "Rule",
    check_pattern: bool = True,
) -> RuleConfig:
    """Parse a raw config mapping into the config class for *rule_type*.

    With *check_pattern* (the default, used at creation time) a
    ``naming_convention`` pattern must also compile.  Stored rules are
    re-parsed with ``check_pattern=False`` so a bad pattern surfaces as an
    execution error attributed to that rule instead.
    """
    validate_rule_type(rule_type)
    if not isinstance(data, dict):
        msg = f"{context}: config must be a mapping"
        raise RuleConfigError(msg)

    config = _CONFIG_PARSERS[rule_type](data, context)

    if check_pattern and isinstance(config, NamingConventionConfig):
        try:
            re.compile(config.pattern)
        except re.error as exc:
            msg = f"{context}: config.pattern is not a valid regular expression: {exc}"
            raise RuleConfigError(msg) from exc

    return config


def config_to_dict(config: RuleConfig) -> dict[str, object]:
    """Serialize a config back to its persisted camelCase mapping."""
    if isinstance(config, MinRelationshipsConfig):
        out: dict[str, object] = {"entityType": config.entity_type, "minCount": config.min_count}
        if config.relationship_type is not None:
            out["relationshipType"] = config.relationship_type
        return out
    if isinstance(config, MaxRelationshipsConfig):
        out = {"entityType": config.entity_type, "maxCount": config.max_count}
        if config.relationship_type is not None:
            out["relationshipType"] = config.relationship_type
        return out
    if isinstance(config, RequiredRelationshipConfig):
        return {
            "entityType": config.entity_type,
            "requiredRelationshipType": config.required_relationship_type,
        }
    if isinstance(config, NoCircularDependenciesConfig):
        return {"entityTypes": list(config.entity_types), "maxDepth": config.max_depth}
    if isinstance(config, NoOrphanedEntitiesConfig):
        return {"entityTypes": list(config.entity_types)}
    if isinstance(config, NamingConventionConfig):
        return {
            "entityType": config.entity_type,
            "pattern": config.pattern,
            "description": config.description,
        }
    return {"entityType": config.entity_type, "requiredFields": list(config.required_fields)}


def build_rule_definition(
    name: str,
    rule_type: str,
    config: object,
    *,
    description: str | None = None,
    severity: str = DEFAULT_SEVERITY,
    active: bool = True,
) -> RuleDefinition:
    """Validate every part of a rule and return a :class:`RuleDefinition`."""
    if not name or not name.strip():
        msg = "Rule name must not be empty"
        raise RuleConfigError(msg)
    context = f"Rule '{name}'"
    try:
        validate_severity(severity)
    except RuleConfigError as exc:
        msg = f"{context}: {exc}"
        raise RuleConfigError(msg) from exc
    return RuleDefinition(
        name=name,
        rule_type=validate_rule_type(rule_type),
        config=parse_rule_config(rule_type, config, context=context),
        description=description,
        severity=severity,
        active=active,
    )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


def load_rules(
    rules_path: Path, *, default_severity: str = DEFAULT_SEVERITY
) -> list[RuleDefinition]:
    """Parse a rules.yml file and return validated rule definitions.

    Raises :class:`RuleConfigError` on schema errors (missing version,
    duplicate names, unknown types, invalid configs).
    """
    try:
        with rules_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = f"{rules_path.name}: invalid YAML: {exc}"
        raise RuleConfigError(msg) from exc

    if not isinstance(data, dict):
        msg = f"{rules_path.name} must be a YAML mapping"
        raise RuleConfigError(msg)

    version = data.get("version")
    if version is None:
        msg = f"{rules_path.name}: missing required 'version' field"
        raise RuleConfigError(msg)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        msg = f"{rules_path.name}: unsupported version {version}, expected one of {expected}"
        raise RuleConfigError(msg)

    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        msg = f"{rules_path.name}: 'rules' must be a list"
        raise RuleConfigError(msg)

    seen_names: set[str] = set()
    definitions: list[RuleDefinition] = []

    for idx, rule_data in enumerate(rules_data):
        if not isinstance(rule_data, dict):
            msg = f"{rules_path.name}: rule at index {idx} must be a mapping"
            raise RuleConfigError(msg)

        name = rule_data.get("name")
        if name is None or not isinstance(name, str) or not name.strip():
            msg = f"{rules_path.name}: rule at index {idx} missing required 'name' field"
            raise RuleConfigError(msg)

        if name in seen_names:
            msg = f"{rules_path.name}: Duplicate rule name '{name}'"
            raise RuleConfigError(msg)
        seen_names.add(name)

        rule_type = rule_data.get("type")
        if rule_type is None:
            msg = f"Rule '{name}': missing required 'type' field"
            raise RuleConfigError(msg)

        description_raw = rule_data.get("description")
        definitions.append(
            build_rule_definition(
                name,
                str(rule_type),
                rule_data.get("config", {}),
                description=str(description_raw) if description_raw is not None else None,
                severity=str(rule_data.get("severity", default_severity)),
                active=bool(rule_data.get("active", True)),
            )
        )

    return definitions
