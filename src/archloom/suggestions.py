"""LLM-backed fix suggestions for a stored violation.

The LLM is optional: without a configured provider, or when the call or its
response is unusable, the violation's own suggestion strings are returned.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from archloom.llm_client import LLMError, call_llm
from archloom.validation.store import get_rule, get_violation

if TYPE_CHECKING:
    import sqlite3

    from archloom.llm_client import LLMConfig
    from archloom.validation.store import ViolationRecord

logger = logging.getLogger(__name__)

_LEVELS: frozenset[str] = frozenset({"low", "medium", "high"})
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass(frozen=True)
class FixSuggestion:
    """One recommended change that would resolve a violation."""

    title: str
    description: str
    rationale: str
    effort: str = "medium"
    impact: str = "medium"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def build_fix_prompt(violation: ViolationRecord, rule_description: str | None = None) -> str:
    """Build the user prompt asking for fixes to *violation*."""
    return (
        "You are an enterprise architecture expert helping to resolve a TOGAF "
        "validation violation.\n\n"
        "**Violation Details:**\n"
        f"- Entity: {violation.entity_name} ({violation.entity_type})\n"
        f"- Rule: {violation.rule_name}\n"
        f"- Description: {rule_description or 'N/A'}\n"
        f"- Issue: {violation.message}\n"
        f"- Expected: {violation.expected}\n"
        f"- Actual: {violation.actual}\n\n"
        "**Task:**\n"
        "Generate 3-5 specific, actionable recommendations to resolve this violation. "
        "Each recommendation should:\n"
        "1. Be concrete and immediately implementable\n"
        "2. Follow TOGAF 10 ADM best practices\n"
        "3. Consider the entity type and context\n"
        "4. Include rationale for why this fix is appropriate\n\n"
        "Respond with a single JSON object of this structure and nothing else:\n"
        "{\n"
        '  "suggestions": [\n'
        "    {\n"
        '      "title": "Short title of the fix",\n'
        '      "description": "Detailed explanation of what to do",\n'
        '      "rationale": "Why this fix is recommended",\n'
        '      "effort": "low|medium|high",\n'
        '      "impact": "low|medium|high"\n'
        "    }\n"
        "  ]\n"
        "}"
    )


def _level(value: object) -> str:
    text = str(value).lower()
    return text if text in _LEVELS else "medium"


def parse_suggestions(text: str) -> list[FixSuggestion]:
    """Parse an LLM response into suggestions.

    Raises ``ValueError`` when the response is not the expected JSON object.
    """
    stripped = text.strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    data = json.loads(stripped)
    if not isinstance(data, dict) or not isinstance(data.get("suggestions"), list):
        msg = "LLM response has no 'suggestions' list"
        raise ValueError(msg)

    suggestions: list[FixSuggestion] = []
    for item in data["suggestions"]:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        suggestions.append(
            FixSuggestion(
                title=str(item["title"]),
                description=str(item.get("description", "")),
                rationale=str(item.get("rationale", "")),
                effort=_level(item.get("effort", "medium")),
                impact=_level(item.get("impact", "medium")),
            )
        )
    return suggestions


def fallback_suggestions(violation: ViolationRecord) -> list[FixSuggestion]:
    return [
        FixSuggestion(
            title=f"Suggestion {i}",
            description=text,
            rationale="Based on validation rule requirements",
        )
        for i, text in enumerate(violation.suggestions, start=1)
    ]


def generate_fix_suggestions(
    conn: sqlite3.Connection,
    violation_id: int,
    llm_config: LLMConfig | None = None,
) -> list[FixSuggestion]:
    """Return fix suggestions for a violation.

    Raises ``LookupError`` for an unknown violation; LLM failures never
    propagate.
    """
    violation = get_violation(conn, violation_id)
    if llm_config is None:
        return fallback_suggestions(violation)

    try:
        rule_description = get_rule(conn, violation.rule_id).description
    except LookupError:
        rule_description = None

    prompt = build_fix_prompt(violation, rule_description)
    try:
        response = call_llm(llm_config, prompt)
        suggestions = parse_suggestions(response)
    except (LLMError, ValueError) as exc:
        logger.warning(
            "LLM fix suggestions failed for violation %d, using stored suggestions: %s",
            violation_id,
            exc,
        )
        return fallback_suggestions(violation)

    if not suggestions:
        logger.warning("LLM returned no usable suggestions for violation %d", violation_id)
        return fallback_suggestions(violation)
    return suggestions
