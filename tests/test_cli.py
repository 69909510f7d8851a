"""Tests for the archloom CLI."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from click.testing import CliRunner

from archloom.cli import main

if TYPE_CHECKING:
    from pathlib import Path

    from click.testing import Result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(workspace: Path, *args: str) -> Result:
    return CliRunner().invoke(main, [*args, "--root", str(workspace)])


def _billing_workspace(workspace: Path) -> Path:
    """Workspace with one unsupported capability and a min-relationships rule."""
    assert _run(workspace, "entity", "add", "businessCapability", "Billing").exit_code == 0
    result = _run(
        workspace,
        "rules",
        "add",
        "capabilities-have-support",
        "--type",
        "min_relationships",
        "--config",
        '{"entityType": "businessCapability", "minCount": 1}',
    )
    assert result.exit_code == 0, result.output
    return workspace


# ---------------------------------------------------------------------------
# init / version
# ---------------------------------------------------------------------------


class TestInit:
    def test_init_creates_config_and_db(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(main, ["init", "--root", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "config.yml").is_file()
        assert (tmp_path / ".archloom" / "archloom.db").is_file()
        assert "Initialized database at" in result.output

    def test_init_keeps_existing_config(self, workspace: Path) -> None:
        before = (workspace / "config.yml").read_text(encoding="utf-8")
        assert _run(workspace, "init").exit_code == 0
        assert (workspace / "config.yml").read_text(encoding="utf-8") == before

    def test_missing_database(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(main, ["rules", "list", "--root", str(tmp_path)])
        assert result.exit_code == 1
        assert "archloom init" in result.output

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "archloom" in result.output


# ---------------------------------------------------------------------------
# entity / rel / matrix
# ---------------------------------------------------------------------------


class TestEntityAndRel:
    def test_add_and_list(self, workspace: Path) -> None:
        result = _run(
            workspace, "entity", "add", "application", "CRM", "--attr", "vendor=Acme"
        )
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "Created application 1: CRM"

        listed = _run(workspace, "entity", "list", "--json")
        (entity,) = json.loads(listed.output)
        assert entity["attributes"] == {"vendor": "Acme"}

    def test_invalid_entity_type(self, workspace: Path) -> None:
        result = _run(workspace, "entity", "add", "server", "web-01")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_bad_attr(self, workspace: Path) -> None:
        result = _run(workspace, "entity", "add", "application", "CRM", "--attr", "novalue")
        assert result.exit_code == 2

    def test_relationship_checked_against_matrix(self, workspace: Path) -> None:
        _run(workspace, "entity", "add", "application", "CRM")
        _run(workspace, "entity", "add", "businessCapability", "Billing")

        ok = _run(
            workspace, "rel", "add", "application", "1", "SUPPORTS", "businessCapability", "2"
        )
        assert ok.exit_code == 0, ok.output

        listed = _run(workspace, "rel", "list")
        assert "1: application 1 -[SUPPORTS]-> businessCapability 2" in listed.output

        bad = _run(workspace, "rel", "add", "businessCapability", "2", "LIKES", "application", "1")
        assert bad.exit_code == 1

    def test_matrix_pair(self) -> None:
        runner = CliRunner()
        result = runner.invoke(
            main, ["matrix", "--source", "application", "--target", "businessCapability", "--json"]
        )
        assert result.exit_code == 0
        assert "SUPPORTS" in json.loads(result.output)

    def test_matrix_needs_both_types(self) -> None:
        result = CliRunner().invoke(main, ["matrix", "--source", "application"])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# rules
# ---------------------------------------------------------------------------


class TestRules:
    def test_empty_list(self, workspace: Path) -> None:
        assert "No rules defined." in _run(workspace, "rules", "list").output

    def test_add_invalid_config_exits_2(self, workspace: Path) -> None:
        result = _run(
            workspace,
            "rules",
            "add",
            "bad",
            "--type",
            "min_relationships",
            "--config",
            '{"entityType": "businessCapability"}',
        )
        assert result.exit_code == 2
        assert "minCount is required" in result.output

    def test_add_unknown_type_exits_2(self, workspace: Path) -> None:
        result = _run(workspace, "rules", "add", "x", "--type", "max_depth", "--config", "{}")
        assert result.exit_code == 2

    def test_import_file(self, workspace: Path, tmp_path: Path) -> None:
        rules_file = tmp_path / "rules.yml"
        rules_file.write_text(
            "version: 1\nrules:\n"
            "  - name: orphans\n    type: no_orphaned_entities\n"
            "    config: {entityTypes: [application]}\n"
            "  - name: no-cycles\n    type: no_circular_dependencies\n"
            "    severity: error\n"
            "    config: {entityTypes: [application]}\n",
            encoding="utf-8",
        )
        result = _run(workspace, "rules", "import", str(rules_file))
        assert result.exit_code == 0, result.output
        assert "Imported 2 rule(s) from rules.yml" in result.output

        listed = json.loads(_run(workspace, "rules", "list", "--json").output)
        assert {r["name"] for r in listed} == {"orphans", "no-cycles"}

    def test_disable_enable_delete(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        assert "Disabled rule 1" in _run(workspace, "rules", "disable", "1").output
        assert "Enabled rule 1" in _run(workspace, "rules", "enable", "1").output
        assert _run(workspace, "rules", "delete", "1").exit_code == 0
        assert _run(workspace, "rules", "delete", "1").exit_code == 1

    def test_update_severity(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        result = _run(workspace, "rules", "update", "1", "--severity", "critical")
        assert result.exit_code == 0, result.output
        (rule,) = json.loads(_run(workspace, "rules", "list", "--json").output)
        assert rule["severity"] == "critical"
        assert _run(workspace, "rules", "update", "1", "--severity", "fatal").exit_code == 2


# ---------------------------------------------------------------------------
# validate / violations
# ---------------------------------------------------------------------------


class TestValidate:
    def test_porcelain(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        result = _run(workspace, "validate", "--format", "porcelain")
        assert result.exit_code == 0
        assert "1:capabilities-have-support:warning:businessCapability:1:open" in result.output

    def test_rich(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        result = _run(workspace, "validate", "--format", "rich")
        assert result.exit_code == 0
        assert "1 violation found (1 rules evaluated)" in result.output

    def test_json(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        result = _run(workspace, "validate", "--format", "json")
        data = json.loads(result.output)
        assert data["summary"]["total_violations"] == 1
        assert data["violations"][0]["entity_name"] == "Billing"

    def test_strict_exits_1_with_open_violations(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        result = _run(workspace, "validate", "--format", "porcelain", "--strict")
        assert result.exit_code == 1

    def test_strict_clean(self, workspace: Path) -> None:
        result = _run(workspace, "validate", "--format", "rich", "--strict")
        assert result.exit_code == 0
        assert "No violations found" in result.output


class TestViolations:
    def test_resolve_and_stats(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        _run(workspace, "validate", "--format", "porcelain")

        result = _run(
            workspace, "violations", "resolve", "1", "--status", "ignored", "--by", "alice"
        )
        assert result.exit_code == 0, result.output
        assert "Violation 1 ignored by alice" in result.output

        again = _run(workspace, "violations", "resolve", "1", "--by", "bob")
        assert again.exit_code == 1
        assert "already ignored" in again.output

        stats = json.loads(_run(workspace, "violations", "stats", "--json").output)
        assert stats["by_status"] == {"open": 0, "resolved": 0, "ignored": 1}

    def test_list_filters(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        _run(workspace, "validate", "--format", "porcelain")
        listed = _run(workspace, "violations", "list", "--status", "open", "--json")
        open_ = json.loads(listed.output)
        assert len(open_) == 1
        empty = _run(workspace, "violations", "list", "--status", "resolved")
        assert "No violations." in empty.output

    def test_preserve_resolutions_flag(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        _run(workspace, "validate", "--format", "porcelain")
        _run(workspace, "violations", "resolve", "1", "--by", "alice")

        _run(workspace, "validate", "--format", "porcelain", "--preserve-resolutions")

        (violation,) = json.loads(_run(workspace, "violations", "list", "--json").output)
        assert violation["id"] == 1
        assert violation["status"] == "resolved"

    def test_suggest_without_llm(self, workspace: Path) -> None:
        _billing_workspace(workspace)
        _run(workspace, "validate", "--format", "porcelain")
        result = _run(workspace, "violations", "suggest", "1", "--json")
        assert result.exit_code == 0, result.output
        (suggestion,) = json.loads(result.output)
        assert suggestion["rationale"] == "Based on validation rule requirements"

    def test_suggest_unknown(self, workspace: Path) -> None:
        assert _run(workspace, "violations", "suggest", "42").exit_code == 1
