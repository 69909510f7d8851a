"""Validation orchestrator: run a project's active rules and store the results."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from archloom.graph.accessor import SqliteGraphAccessor
from archloom.validation.executors import RuleExecutionError, execute_rule
from archloom.validation.store import list_active_rules, replace_violations

if TYPE_CHECKING:
    from archloom.graph.accessor import GraphAccessor
    from archloom.validation.executors import ViolationFinding

logger = logging.getLogger(__name__)


class ValidationRunError(Exception):
    """Raised when a run cannot load rules or store its results."""


@dataclass(frozen=True)
class ValidationSummary:
    """Outcome of one validation run."""

    project_id: int
    total_rules: int
    total_violations: int
    violations_by_rule: dict[int, int] = field(default_factory=dict)
    failed_rules: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "project_id": self.project_id,
            "total_rules": self.total_rules,
            "total_violations": self.total_violations,
            "violations_by_rule": {str(k): v for k, v in self.violations_by_rule.items()},
            "failed_rules": {str(k): v for k, v in self.failed_rules.items()},
        }


# ---------------------------------------------------------------------------
# Per-project run lock
# ---------------------------------------------------------------------------

_locks_guard = threading.Lock()
_project_locks: dict[int, threading.Lock] = {}


def _project_lock(project_id: int) -> threading.Lock:
    with _locks_guard:
        lock = _project_locks.get(project_id)
        if lock is None:
            lock = threading.Lock()
            _project_locks[project_id] = lock
        return lock


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def run_validation(
    conn: sqlite3.Connection,
    project_id: int,
    graph: GraphAccessor | None = None,
    *,
    preserve_resolutions: bool = False,
) -> ValidationSummary:
    """Evaluate every active rule of *project_id* and replace its violations.

    A rule that raises :class:`RuleExecutionError` is recorded in
    ``failed_rules`` with zero violations and the run continues.  Database
    errors raise :class:`ValidationRunError` and leave the previously stored
    violations untouched.  Concurrent runs for the same project are
    serialized.
    """
    accessor = graph if graph is not None else SqliteGraphAccessor(conn)

    with _project_lock(project_id):
        started = time.monotonic()
        try:
            rules = list_active_rules(conn, project_id)
        except sqlite3.Error as exc:
            msg = f"Could not load rules for project {project_id}: {exc}"
            raise ValidationRunError(msg) from exc

        findings_by_rule: dict[int, list[ViolationFinding]] = {}
        violations_by_rule: dict[int, int] = {}
        failed_rules: dict[int, str] = {}

        for rule in rules:
            rule_started = time.monotonic()
            try:
                findings = execute_rule(project_id, rule, accessor)
            except RuleExecutionError as exc:
                logger.warning("Rule %d (%s) failed: %s", rule.id, rule.name, exc)
                failed_rules[rule.id] = str(exc)
                findings = []
            except sqlite3.Error as exc:
                msg = f"Could not read graph for rule {rule.id} ({rule.name}): {exc}"
                raise ValidationRunError(msg) from exc
            findings_by_rule[rule.id] = findings
            violations_by_rule[rule.id] = len(findings)
            logger.debug(
                "Rule %d (%s): %d violation(s) in %.3fs",
                rule.id,
                rule.name,
                len(findings),
                time.monotonic() - rule_started,
            )

        try:
            total = replace_violations(
                conn,
                project_id,
                findings_by_rule,
                preserve_resolutions=preserve_resolutions,
            )
        except sqlite3.Error as exc:
            msg = f"Could not store violations for project {project_id}: {exc}"
            raise ValidationRunError(msg) from exc

    logger.info(
        "Validated project %d: %d rule(s), %d violation(s), %d failed rule(s) in %.3fs",
        project_id,
        len(rules),
        total,
        len(failed_rules),
        time.monotonic() - started,
    )
    return ValidationSummary(
        project_id=project_id,
        total_rules=len(rules),
        total_violations=total,
        violations_by_rule=violations_by_rule,
        failed_rules=failed_rules,
    )
