"""Output formats for a validation run: rich text, JSON, porcelain."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from archloom.validation.engine import ValidationSummary
    from archloom.validation.store import ViolationRecord

_SEVERITY_MARKS = {
    "critical": "✗✗",
    "error": "✗",
    "warning": "!",
    "info": "i",
}


def format_rich(summary: ValidationSummary, violations: Sequence[ViolationRecord]) -> str:
    """Format a run as human-readable text.

    Example output with violations::

        Rules: 2 evaluated
        Project: 1

        ! [warning] capabilities-have-support
          Billing has only 0 relationship(s), expected at least 1
          businessCapability 1 (Billing): expected At least 1 relationship(s), got 0 relationship(s)

        1 violation found (2 rules evaluated)

    Failed rules are listed after the violations.
    """
    lines: list[str] = [
        f"Rules: {summary.total_rules} evaluated",
        f"Project: {summary.project_id}",
        "",
    ]

    for v in violations:
        mark = _SEVERITY_MARKS.get(v.severity, "?")
        lines.append(f"{mark} [{v.severity}] {v.rule_name}")
        lines.append(f"  {v.message}")
        lines.append(
            f"  {v.entity_type} {v.entity_id} ({v.entity_name}): "
            f"expected {v.expected}, got {v.actual}"
        )
        lines.append("")

    for rule_id, error in sorted(summary.failed_rules.items()):
        lines.append(f"✗ rule {rule_id} failed: {error}")
    if summary.failed_rules:
        lines.append("")

    count = summary.total_violations
    noun = "violation" if count == 1 else "violations"
    if count:
        lines.append(f"{count} {noun} found ({summary.total_rules} rules evaluated)")
    else:
        lines.append(f"✓ No violations found ({summary.total_rules} rules evaluated)")
    return "\n".join(lines)


def format_json(summary: ValidationSummary, violations: Sequence[ViolationRecord]) -> str:
    """Return a JSON document with ``violations`` and ``summary``."""
    output: dict[str, object] = {
        "violations": [v.to_dict() for v in violations],
        "summary": summary.to_dict(),
    }
    return json.dumps(output, indent=2)


def format_porcelain(violations: Sequence[ViolationRecord]) -> str:
    """One line per violation: ``id:rule_name:severity:entity_type:entity_id:status``.

    Returns an empty string when there are no violations.
    """
    return "\n".join(
        f"{v.id}:{v.rule_name}:{v.severity}:{v.entity_type}:{v.entity_id}:{v.status}"
        for v in violations
    )
