"""Tests for archloom.validation.rules: config parsing and rules.yml loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from archloom.graph.cycles import DEFAULT_MAX_DEPTH
from archloom.validation.rules import (
    AttributeCompletenessConfig,
    MaxRelationshipsConfig,
    MinRelationshipsConfig,
    NamingConventionConfig,
    NoCircularDependenciesConfig,
    NoOrphanedEntitiesConfig,
    RequiredRelationshipConfig,
    RuleConfigError,
    build_rule_definition,
    config_to_dict,
    load_rules,
    parse_rule_config,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestParseRuleConfig:
    def test_min_relationships(self) -> None:
        config = parse_rule_config(
            "min_relationships",
            {"entityType": "businessCapability", "minCount": 1, "relationshipType": "SUPPORTS"},
        )
        assert config == MinRelationshipsConfig("businessCapability", 1, "SUPPORTS")

    def test_max_relationships_without_type(self) -> None:
        config = parse_rule_config(
            "max_relationships", {"entityType": "application", "maxCount": 5}
        )
        assert config == MaxRelationshipsConfig("application", 5, None)

    def test_required_relationship(self) -> None:
        config = parse_rule_config(
            "required_relationship",
            {"entityType": "requirement", "requiredRelationshipType": "IMPLEMENTS"},
        )
        assert isinstance(config, RequiredRelationshipConfig)
        assert config.required_relationship_type == "IMPLEMENTS"

    def test_circular_default_depth(self) -> None:
        config = parse_rule_config(
            "no_circular_dependencies", {"entityTypes": ["application", "businessProcess"]}
        )
        assert config == NoCircularDependenciesConfig(
            ("application", "businessProcess"), DEFAULT_MAX_DEPTH
        )

    def test_orphans(self) -> None:
        config = parse_rule_config("no_orphaned_entities", {"entityTypes": ["dataEntity"]})
        assert config == NoOrphanedEntitiesConfig(("dataEntity",))

    def test_naming_convention(self) -> None:
        config = parse_rule_config(
            "naming_convention",
            {"entityType": "application", "pattern": "^App", "description": "App prefix"},
        )
        assert config == NamingConventionConfig("application", "^App", "App prefix")

    def test_attribute_completeness(self) -> None:
        config = parse_rule_config(
            "attribute_completeness",
            {"entityType": "application", "requiredFields": ["description", "vendor"]},
        )
        assert config == AttributeCompletenessConfig("application", ("description", "vendor"))

    def test_unknown_rule_type(self) -> None:
        with pytest.raises(RuleConfigError, match="Unknown rule type"):
            parse_rule_config("max_depth", {})

    def test_config_must_be_mapping(self) -> None:
        with pytest.raises(RuleConfigError, match="mapping"):
            parse_rule_config("no_orphaned_entities", ["application"])

    def test_missing_key(self) -> None:
        with pytest.raises(RuleConfigError, match="minCount is required"):
            parse_rule_config("min_relationships", {"entityType": "application"})

    def test_negative_count(self) -> None:
        with pytest.raises(RuleConfigError, match=">= 0"):
            parse_rule_config("min_relationships", {"entityType": "application", "minCount": -1})

    def test_non_integer_count(self) -> None:
        with pytest.raises(RuleConfigError, match="integer"):
            parse_rule_config("max_relationships", {"entityType": "application", "maxCount": "x"})

    def test_boolean_is_not_integer(self) -> None:
        with pytest.raises(RuleConfigError, match="integer"):
            parse_rule_config("min_relationships", {"entityType": "application", "minCount": True})

    def test_invalid_entity_type(self) -> None:
        with pytest.raises(RuleConfigError, match="invalid entityType 'server'"):
            parse_rule_config("min_relationships", {"entityType": "server", "minCount": 1})

    def test_invalid_relationship_type(self) -> None:
        with pytest.raises(RuleConfigError, match="relationshipType"):
            parse_rule_config(
                "min_relationships",
                {"entityType": "application", "minCount": 1, "relationshipType": "LIKES"},
            )

    def test_empty_entity_types(self) -> None:
        with pytest.raises(RuleConfigError, match="non-empty list"):
            parse_rule_config("no_orphaned_entities", {"entityTypes": []})

    def test_fractional_count_rejected(self) -> None:
        with pytest.raises(RuleConfigError, match="minCount must be an integer"):
            parse_rule_config("min_relationships", {"entityType": "application", "minCount": 1.9})

    def test_whole_float_count_accepted(self) -> None:
        config = parse_rule_config(
            "max_relationships", {"entityType": "application", "maxCount": 3.0}
        )
        assert config.max_count == 3  # type: ignore[union-attr]

    def test_zero_max_depth(self) -> None:
        with pytest.raises(RuleConfigError, match="maxDepth"):
            parse_rule_config(
                "no_circular_dependencies", {"entityTypes": ["application"], "maxDepth": 0}
            )

    def test_bad_pattern_rejected_at_creation(self) -> None:
        with pytest.raises(RuleConfigError, match="regular expression"):
            parse_rule_config("naming_convention", {"entityType": "application", "pattern": "("})

    def test_bad_pattern_accepted_when_not_checked(self) -> None:
        config = parse_rule_config(
            "naming_convention",
            {"entityType": "application", "pattern": "("},
            check_pattern=False,
        )
        assert isinstance(config, NamingConventionConfig)

    def test_empty_required_fields(self) -> None:
        with pytest.raises(RuleConfigError, match="requiredFields"):
            parse_rule_config(
                "attribute_completeness", {"entityType": "application", "requiredFields": []}
            )


class TestConfigToDict:
    @pytest.mark.parametrize(
        ("rule_type", "raw"),
        [
            ("min_relationships", {"entityType": "application", "minCount": 2}),
            (
                "max_relationships",
                {"entityType": "application", "maxCount": 3, "relationshipType": "USES"},
            ),
            (
                "required_relationship",
                {"entityType": "requirement", "requiredRelationshipType": "IMPLEMENTS"},
            ),
            ("no_circular_dependencies", {"entityTypes": ["application"], "maxDepth": 10}),
            ("no_orphaned_entities", {"entityTypes": ["application", "dataEntity"]}),
            (
                "naming_convention",
                {"entityType": "application", "pattern": "^A", "description": "A prefix"},
            ),
            ("attribute_completeness", {"entityType": "application", "requiredFields": ["x"]}),
        ],
    )
    def test_persisted_form_uses_camel_case(
        self, rule_type: str, raw: dict[str, object]
    ) -> None:
        assert config_to_dict(parse_rule_config(rule_type, raw)) == raw


class TestBuildRuleDefinition:
    def test_defaults(self) -> None:
        definition = build_rule_definition(
            "orphans", "no_orphaned_entities", {"entityTypes": ["application"]}
        )
        assert definition.severity == "warning"
        assert definition.active is True

    def test_invalid_severity(self) -> None:
        with pytest.raises(RuleConfigError, match="Invalid severity 'fatal'"):
            build_rule_definition(
                "orphans",
                "no_orphaned_entities",
                {"entityTypes": ["application"]},
                severity="fatal",
            )

    def test_blank_name(self) -> None:
        with pytest.raises(RuleConfigError, match="name"):
            build_rule_definition(" ", "no_orphaned_entities", {"entityTypes": ["application"]})


class TestLoadRules:
    def test_load_valid_file(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text(
            "version: 1\n"
            "rules:\n"
            "  - name: capabilities-have-support\n"
            "    description: Every capability must be supported\n"
            "    type: min_relationships\n"
            "    config: {entityType: businessCapability, minCount: 1}\n"
            "  - name: no-cycles\n"
            "    type: no_circular_dependencies\n"
            "    severity: error\n"
            "    active: false\n"
            "    config:\n"
            "      entityTypes: [application]\n",
            encoding="utf-8",
        )
        definitions = load_rules(rules_file)
        assert [d.name for d in definitions] == ["capabilities-have-support", "no-cycles"]
        assert definitions[0].severity == "warning"
        assert definitions[0].description == "Every capability must be supported"
        assert definitions[1].severity == "error"
        assert definitions[1].active is False

    def test_default_severity_override(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text(
            "version: 1\nrules:\n  - name: r\n    type: no_orphaned_entities\n"
            "    config: {entityTypes: [application]}\n",
            encoding="utf-8",
        )
        assert load_rules(rules_file, default_severity="info")[0].severity == "info"

    def test_missing_version(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text("rules: []\n", encoding="utf-8")
        with pytest.raises(RuleConfigError, match="version"):
            load_rules(rules_file)

    def test_unsupported_version(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text("version: 9\nrules: []\n", encoding="utf-8")
        with pytest.raises(RuleConfigError, match="unsupported version 9"):
            load_rules(rules_file)

    def test_duplicate_names(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text(
            "version: 1\nrules:\n"
            "  - name: dup\n    type: no_orphaned_entities\n"
            "    config: {entityTypes: [application]}\n"
            "  - name: dup\n    type: no_orphaned_entities\n"
            "    config: {entityTypes: [dataEntity]}\n",
            encoding="utf-8",
        )
        with pytest.raises(RuleConfigError, match="Duplicate rule name 'dup'"):
            load_rules(rules_file)

    def test_error_names_rule(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text(
            "version: 1\nrules:\n"
            "  - name: broken\n    type: min_relationships\n"
            "    config: {entityType: application}\n",
            encoding="utf-8",
        )
        with pytest.raises(RuleConfigError, match="Rule 'broken'"):
            load_rules(rules_file)

    def test_missing_type(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text("version: 1\nrules:\n  - name: x\n", encoding="utf-8")
        with pytest.raises(RuleConfigError, match="'type'"):
            load_rules(rules_file)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text("version: 1\nrules: [\n", encoding="utf-8")
        with pytest.raises(RuleConfigError, match="invalid YAML"):
            load_rules(rules_file)
