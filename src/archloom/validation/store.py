"""Rule and violation persistence.

Violations are a derived set: each validation run replaces a project's
violations in one transaction, so readers never observe a partial set.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from archloom.validation.rules import (
    Rule,
    RuleConfigError,
    RuleDefinition,
    config_to_dict,
    parse_rule_config,
    validate_severity,
)

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Mapping, Sequence

    from archloom.validation.executors import ViolationFinding

logger = logging.getLogger(__name__)

VIOLATION_STATUSES: tuple[str, ...] = ("open", "resolved", "ignored")
RESOLUTION_STATUSES: frozenset[str] = frozenset({"resolved", "ignored"})


class ViolationStateError(Exception):
    """Raised when a violation cannot move to the requested status."""


@dataclass(frozen=True)
class ViolationRecord:
    """A stored violation joined with its rule's name and severity."""

    id: int
    rule_id: int
    rule_name: str
    severity: str
    project_id: int
    entity_type: str
    entity_id: int
    entity_name: str
    message: str
    expected: str
    actual: str
    suggestions: list[str] = field(default_factory=list)
    status: str = "open"
    resolved_by: str | None = None
    resolution_notes: str | None = None
    created_at: str = ""
    resolved_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
            "suggestions": list(self.suggestions),
            "status": self.status,
            "resolved_by": self.resolved_by,
            "resolution_notes": self.resolution_notes,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _rule_from_row(row: sqlite3.Row) -> Rule:
    context = f"Rule '{row['name']}'"
    config = None
    config_error = None
    try:
        raw = json.loads(row["config"] or "{}")
        config = parse_rule_config(
            str(row["rule_type"]), raw, context=context, check_pattern=False
        )
    except (json.JSONDecodeError, RuleConfigError) as exc:
        config_error = str(exc)
        logger.warning("Stored rule %d has an unusable config: %s", row["id"], exc)
    return Rule(
        id=int(row["id"]),
        project_id=int(row["project_id"]),
        name=str(row["name"]),
        rule_type=str(row["rule_type"]),
        config=config,
        severity=str(row["severity"]),
        active=bool(row["is_active"]),
        description=row["description"],
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
        config_error=config_error,
    )


def create_rule(conn: sqlite3.Connection, project_id: int, definition: RuleDefinition) -> Rule:
    """Persist a validated rule definition and return the stored rule."""
    now = _now()
    cur = conn.execute(
        "INSERT INTO validation_rules "
        "(project_id, name, description, rule_type, config, severity, is_active, "
        "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            project_id,
            definition.name,
            definition.description,
            definition.rule_type,
            json.dumps(config_to_dict(definition.config)),
            definition.severity,
            1 if definition.active else 0,
            now,
            now,
        ),
    )
    conn.commit()
    return Rule(
        id=int(cur.lastrowid or 0),
        project_id=project_id,
        name=definition.name,
        rule_type=definition.rule_type,
        config=definition.config,
        severity=definition.severity,
        active=definition.active,
        description=definition.description,
        created_at=now,
        updated_at=now,
    )


def get_rule(conn: sqlite3.Connection, rule_id: int) -> Rule:
    row = conn.execute("SELECT * FROM validation_rules WHERE id = ?", (rule_id,)).fetchone()
    if row is None:
        msg = f"Rule {rule_id} not found"
        raise LookupError(msg)
    return _rule_from_row(row)


def list_rules(conn: sqlite3.Connection, project_id: int) -> list[Rule]:
    """All rules of a project, newest first."""
    rows = conn.execute(
        "SELECT * FROM validation_rules WHERE project_id = ? ORDER BY created_at DESC, id DESC",
        (project_id,),
    ).fetchall()
    return [_rule_from_row(r) for r in rows]


def list_active_rules(conn: sqlite3.Connection, project_id: int) -> list[Rule]:
    rows = conn.execute(
        "SELECT * FROM validation_rules WHERE project_id = ? AND is_active = 1 ORDER BY id",
        (project_id,),
    ).fetchall()
    return [_rule_from_row(r) for r in rows]


def update_rule(
    conn: sqlite3.Connection,
    rule_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    config: Mapping[str, object] | None = None,
    severity: str | None = None,
    active: bool | None = None,
) -> Rule:
    """Update the given fields of a rule.

    The rule type is immutable; a new *config* is validated against it.
    Raises ``LookupError`` for an unknown id and :class:`RuleConfigError` for
    invalid values.
    """
    rule = get_rule(conn, rule_id)
    context = f"Rule '{name or rule.name}'"

    if name is not None and not name.strip():
        msg = "Rule name must not be empty"
        raise RuleConfigError(msg)
    if severity is not None:
        validate_severity(severity)

    new_config = rule.config
    config_error = rule.config_error
    if config is not None:
        new_config = parse_rule_config(rule.rule_type, dict(config), context=context)
        config_error = None

    updated = Rule(
        id=rule.id,
        project_id=rule.project_id,
        name=name if name is not None else rule.name,
        rule_type=rule.rule_type,
        config=new_config,
        severity=severity if severity is not None else rule.severity,
        active=active if active is not None else rule.active,
        description=description if description is not None else rule.description,
        created_at=rule.created_at,
        updated_at=_now(),
        config_error=config_error,
    )
    conn.execute(
        "UPDATE validation_rules SET name = ?, description = ?, severity = ?, "
        "is_active = ?, updated_at = ? WHERE id = ?",
        (
            updated.name,
            updated.description,
            updated.severity,
            1 if updated.active else 0,
            updated.updated_at,
            rule_id,
        ),
    )
    if config is not None and new_config is not None:
        conn.execute(
            "UPDATE validation_rules SET config = ? WHERE id = ?",
            (json.dumps(config_to_dict(new_config)), rule_id),
        )
    conn.commit()
    return updated


def toggle_rule_active(conn: sqlite3.Connection, rule_id: int, active: bool) -> Rule:
    return update_rule(conn, rule_id, active=active)


def delete_rule(conn: sqlite3.Connection, rule_id: int) -> None:
    """Delete a rule; its violations go with it (ON DELETE CASCADE)."""
    cur = conn.execute("DELETE FROM validation_rules WHERE id = ?", (rule_id,))
    conn.commit()
    if cur.rowcount == 0:
        msg = f"Rule {rule_id} not found"
        raise LookupError(msg)


# ---------------------------------------------------------------------------
# Violations: write
# ---------------------------------------------------------------------------


def _insert_finding(
    conn: sqlite3.Connection, project_id: int, rule_id: int, finding: ViolationFinding, now: str
) -> None:
    conn.execute(
        "INSERT INTO validation_violations "
        "(rule_id, project_id, entity_type, entity_id, entity_name, details, status, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, 'open', ?)",
        (
            rule_id,
            project_id,
            finding.entity_type,
            finding.entity_id,
            finding.entity_name,
            json.dumps(finding.details()),
            now,
        ),
    )


def replace_violations(
    conn: sqlite3.Connection,
    project_id: int,
    findings_by_rule: Mapping[int, Sequence[ViolationFinding]],
    *,
    preserve_resolutions: bool = False,
) -> int:
    """Swap in a project's new violation set in a single transaction.

    By default every existing violation is deleted and each finding is
    inserted as ``open``.  With *preserve_resolutions* the sets are matched
    on ``(rule_id, entity_type, entity_id)``: matched rows keep their id and
    status with refreshed details, unmatched old rows are deleted and new
    findings are inserted.  Returns the number of violations now stored.
    """
    now = _now()
    total = 0
    with conn:
        if not preserve_resolutions:
            conn.execute("DELETE FROM validation_violations WHERE project_id = ?", (project_id,))
            for rule_id, findings in findings_by_rule.items():
                for finding in findings:
                    _insert_finding(conn, project_id, rule_id, finding, now)
                    total += 1
            return total

        existing: dict[tuple[int, str, int], int] = {}
        stale: list[int] = []
        for row in conn.execute(
            "SELECT id, rule_id, entity_type, entity_id FROM validation_violations "
            "WHERE project_id = ? ORDER BY id",
            (project_id,),
        ).fetchall():
            key = (int(row["rule_id"]), str(row["entity_type"]), int(row["entity_id"]))
            if key in existing:
                stale.append(int(row["id"]))
            else:
                existing[key] = int(row["id"])

        kept: set[int] = set()
        for rule_id, findings in findings_by_rule.items():
            for finding in findings:
                key = (rule_id, finding.entity_type, finding.entity_id)
                violation_id = existing.get(key)
                if violation_id is None or violation_id in kept:
                    _insert_finding(conn, project_id, rule_id, finding, now)
                else:
                    conn.execute(
                        "UPDATE validation_violations SET entity_name = ?, details = ? "
                        "WHERE id = ?",
                        (finding.entity_name, json.dumps(finding.details()), violation_id),
                    )
                    kept.add(violation_id)
                total += 1

        stale.extend(vid for vid in existing.values() if vid not in kept)
        conn.executemany(
            "DELETE FROM validation_violations WHERE id = ?", [(vid,) for vid in stale]
        )
    return total


def resolve_violation(
    conn: sqlite3.Connection,
    violation_id: int,
    status: str,
    resolved_by: str,
    notes: str | None = None,
) -> ViolationRecord:
    """Move an open violation to ``resolved`` or ``ignored``."""
    if status not in RESOLUTION_STATUSES:
        msg = f"Invalid resolution status '{status}', must be one of {sorted(RESOLUTION_STATUSES)}"
        raise ViolationStateError(msg)

    current = get_violation(conn, violation_id)
    if current.status != "open":
        msg = f"Violation {violation_id} is already {current.status}"
        raise ViolationStateError(msg)

    conn.execute(
        "UPDATE validation_violations SET status = ?, resolved_by = ?, resolution_notes = ?, "
        "resolved_at = ? WHERE id = ?",
        (status, resolved_by, notes, _now(), violation_id),
    )
    conn.commit()
    return get_violation(conn, violation_id)


# ---------------------------------------------------------------------------
# Violations: read
# ---------------------------------------------------------------------------

_SELECT_VIOLATIONS = (
    "SELECT v.*, r.name AS rule_name, r.severity AS severity "
    "FROM validation_violations v JOIN validation_rules r ON r.id = v.rule_id"
)


def _violation_from_row(row: sqlite3.Row) -> ViolationRecord:
    try:
        details = json.loads(row["details"] or "{}")
    except json.JSONDecodeError:
        details = {}
    if not isinstance(details, dict):
        details = {}
    suggestions = details.get("suggestions") or []
    return ViolationRecord(
        id=int(row["id"]),
        rule_id=int(row["rule_id"]),
        rule_name=str(row["rule_name"]),
        severity=str(row["severity"]),
        project_id=int(row["project_id"]),
        entity_type=str(row["entity_type"]),
        entity_id=int(row["entity_id"]),
        entity_name=str(row["entity_name"]),
        message=str(details.get("message", "")),
        expected=str(details.get("expected", "")),
        actual=str(details.get("actual", "")),
        suggestions=[str(s) for s in suggestions] if isinstance(suggestions, list) else [],
        status=str(row["status"]),
        resolved_by=row["resolved_by"],
        resolution_notes=row["resolution_notes"],
        created_at=str(row["created_at"]),
        resolved_at=row["resolved_at"],
    )


def get_violation(conn: sqlite3.Connection, violation_id: int) -> ViolationRecord:
    row = conn.execute(f"{_SELECT_VIOLATIONS} WHERE v.id = ?", (violation_id,)).fetchone()
    if row is None:
        msg = f"Violation {violation_id} not found"
        raise LookupError(msg)
    return _violation_from_row(row)


def list_violations(
    conn: sqlite3.Connection,
    project_id: int,
    *,
    status: str | None = None,
    rule_id: int | None = None,
    entity_type: str | None = None,
    severity: str | None = None,
) -> list[ViolationRecord]:
    """List a project's violations, newest first, with optional filters."""
    clauses = ["v.project_id = ?"]
    params: list[object] = [project_id]
    if status is not None:
        clauses.append("v.status = ?")
        params.append(status)
    if rule_id is not None:
        clauses.append("v.rule_id = ?")
        params.append(rule_id)
    if entity_type is not None:
        clauses.append("v.entity_type = ?")
        params.append(entity_type)
    if severity is not None:
        clauses.append("r.severity = ?")
        params.append(severity)

    where = " AND ".join(clauses)
    query = f"{_SELECT_VIOLATIONS} WHERE {where} ORDER BY v.created_at DESC, v.id DESC"
    return [_violation_from_row(r) for r in conn.execute(query, params).fetchall()]


def get_violation_stats(conn: sqlite3.Connection, project_id: int) -> dict[str, dict[str, int]]:
    """Counts by status, and of open violations by severity."""
    by_status = dict.fromkeys(VIOLATION_STATUSES, 0)
    for row in conn.execute(
        "SELECT status, count(*) AS n FROM validation_violations "
        "WHERE project_id = ? GROUP BY status",
        (project_id,),
    ).fetchall():
        by_status[str(row["status"])] = int(row["n"])

    by_severity = dict.fromkeys(("info", "warning", "error", "critical"), 0)
    for row in conn.execute(
        "SELECT r.severity AS severity, count(*) AS n FROM validation_violations v "
        "JOIN validation_rules r ON r.id = v.rule_id "
        "WHERE v.project_id = ? AND v.status = 'open' GROUP BY r.severity",
        (project_id,),
    ).fetchall():
        by_severity[str(row["severity"])] = int(row["n"])

    return {"by_status": by_status, "by_severity": by_severity}


