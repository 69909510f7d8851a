"""Tests for archloom.suggestions: fix suggestions with LLM fallback."""

from __future__ import annotations

import json
import logging
import os
import unittest.mock
from typing import TYPE_CHECKING

import pytest

from archloom.graph.store import create_entity
from archloom.llm_client import LLMConfig, LLMError
from archloom.suggestions import (
    build_fix_prompt,
    generate_fix_suggestions,
    parse_suggestions,
)
from archloom.validation.engine import run_validation
from archloom.validation.rules import build_rule_definition
from archloom.validation.store import create_rule, list_violations

if TYPE_CHECKING:
    import sqlite3

    from archloom.validation.store import ViolationRecord

_CONFIG = LLMConfig(provider="anthropic", model="claude-sonnet-4-20250514", api_key_env="TEST_KEY")

_LLM_JSON = json.dumps(
    {
        "suggestions": [
            {
                "title": "Link CRM to Billing",
                "description": "Add a SUPPORTS relationship from CRM.",
                "rationale": "CRM already handles invoicing.",
                "effort": "LOW",
                "impact": "high",
            },
            {"title": "Archive Billing", "description": "Retire it.", "effort": "huge"},
        ]
    }
)


def _billing_violation(conn: sqlite3.Connection) -> ViolationRecord:
    create_entity(conn, 1, "businessCapability", "Billing")
    create_rule(
        conn,
        1,
        build_rule_definition(
            "capabilities-have-support",
            "min_relationships",
            {"entityType": "businessCapability", "minCount": 1},
            description="Every capability needs a supporting application",
        ),
    )
    run_validation(conn, 1)
    return list_violations(conn, 1)[0]


class TestParseSuggestions:
    def test_levels_normalized(self) -> None:
        first, second = parse_suggestions(_LLM_JSON)
        assert first.title == "Link CRM to Billing"
        assert first.effort == "low"
        assert first.impact == "high"
        assert second.effort == "medium"
        assert second.rationale == ""

    def test_fenced_json(self) -> None:
        (only,) = parse_suggestions('```json\n{"suggestions": [{"title": "Fix"}]}\n```')
        assert only.title == "Fix"

    def test_untitled_items_skipped(self) -> None:
        assert parse_suggestions('{"suggestions": [{"description": "no title"}, 3]}') == []

    def test_not_json(self) -> None:
        with pytest.raises(ValueError):
            parse_suggestions("Here are some ideas: ...")

    def test_missing_list(self) -> None:
        with pytest.raises(ValueError, match="suggestions"):
            parse_suggestions('{"ideas": []}')


class TestBuildFixPrompt:
    def test_contains_violation_details(self, db_conn: sqlite3.Connection) -> None:
        violation = _billing_violation(db_conn)
        prompt = build_fix_prompt(violation, "Every capability needs a supporting application")
        assert "- Entity: Billing (businessCapability)" in prompt
        assert "- Rule: capabilities-have-support" in prompt
        assert "- Expected: At least 1 relationship(s)" in prompt
        assert "- Actual: 0 relationship(s)" in prompt
        assert '"suggestions"' in prompt

    def test_missing_description(self, db_conn: sqlite3.Connection) -> None:
        violation = _billing_violation(db_conn)
        assert "- Description: N/A" in build_fix_prompt(violation)


class TestGenerateFixSuggestions:
    def test_no_llm_config_falls_back(self, db_conn: sqlite3.Connection) -> None:
        violation = _billing_violation(db_conn)
        (suggestion,) = generate_fix_suggestions(db_conn, violation.id)
        assert suggestion.title == "Suggestion 1"
        assert suggestion.description == (
            "Add 1 more relationship(s) to meet the minimum requirement"
        )
        assert suggestion.rationale == "Based on validation rule requirements"
        assert (suggestion.effort, suggestion.impact) == ("medium", "medium")

    def test_llm_success(self, db_conn: sqlite3.Connection) -> None:
        violation = _billing_violation(db_conn)
        with unittest.mock.patch(
            "archloom.suggestions.call_llm", return_value=_LLM_JSON
        ) as mock_call:
            suggestions = generate_fix_suggestions(db_conn, violation.id, _CONFIG)

        assert [s.title for s in suggestions] == ["Link CRM to Billing", "Archive Billing"]
        prompt = mock_call.call_args[0][1]
        assert "Every capability needs a supporting application" in prompt

    def test_llm_over_http(self, db_conn: sqlite3.Connection) -> None:
        violation = _billing_violation(db_conn)
        resp = unittest.mock.MagicMock()
        resp.status_code = 200
        resp.json.return_value = {"content": [{"type": "text", "text": _LLM_JSON}]}
        with (
            unittest.mock.patch.dict(os.environ, {"TEST_KEY": "sk-test"}),
            unittest.mock.patch("archloom.llm_client.httpx.post", return_value=resp),
        ):
            suggestions = generate_fix_suggestions(db_conn, violation.id, _CONFIG)
        assert len(suggestions) == 2

    def test_llm_failure_falls_back(
        self, db_conn: sqlite3.Connection, caplog: pytest.LogCaptureFixture
    ) -> None:
        violation = _billing_violation(db_conn)
        with (
            unittest.mock.patch(
                "archloom.suggestions.call_llm", side_effect=LLMError("Anthropic API error 500")
            ),
            caplog.at_level(logging.WARNING, logger="archloom.suggestions"),
        ):
            suggestions = generate_fix_suggestions(db_conn, violation.id, _CONFIG)

        assert [s.title for s in suggestions] == ["Suggestion 1"]
        assert "Anthropic API error 500" in caplog.text

    def test_unparsable_response_falls_back(self, db_conn: sqlite3.Connection) -> None:
        violation = _billing_violation(db_conn)
        with unittest.mock.patch("archloom.suggestions.call_llm", return_value="not json"):
            suggestions = generate_fix_suggestions(db_conn, violation.id, _CONFIG)
        assert [s.title for s in suggestions] == ["Suggestion 1"]

    def test_unknown_violation(self, db_conn: sqlite3.Connection) -> None:
        with pytest.raises(LookupError):
            generate_fix_suggestions(db_conn, 999)
