"""MCP server: stdio-based tool server exposing validation to AI agents."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import mcp
from mcp.server import Server
from mcp.types import TextContent

from archloom import __version__
from archloom.infrastructure.db import create_schema, open_db
from archloom.meta.matrix import (
    RELATIONSHIP_MATRIX,
    allowed_relationship_types,
    is_allowed,
)
from archloom.suggestions import generate_fix_suggestions
from archloom.validation.engine import ValidationRunError, run_validation
from archloom.validation.rules import RuleConfigError, build_rule_definition, config_to_dict
from archloom.validation.store import (
    ViolationStateError,
    create_rule,
    delete_rule,
    get_violation_stats,
    list_rules,
    list_violations,
    resolve_violation,
    toggle_rule_active,
    update_rule,
)

if TYPE_CHECKING:
    import sqlite3

    from archloom.infrastructure.config import ArchloomConfig
    from archloom.llm_client import LLMConfig
    from archloom.validation.rules import Rule


# --- Tool handler functions (sync, testable without transport) ---


def _rule_to_dict(rule: Rule) -> dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "rule_type": rule.rule_type,
        "config": config_to_dict(rule.config) if rule.config is not None else None,
        "severity": rule.severity,
        "active": rule.active,
        "config_error": rule.config_error,
    }


def handle_run_validation(
    conn: sqlite3.Connection,
    *,
    project_id: int,
    preserve_resolutions: bool = False,
) -> dict[str, Any]:
    """Run all active rules of a project and return the run summary."""
    summary = run_validation(conn, project_id, preserve_resolutions=preserve_resolutions)
    return summary.to_dict()


def handle_list_rules(conn: sqlite3.Connection, *, project_id: int) -> list[dict[str, Any]]:
    return [_rule_to_dict(r) for r in list_rules(conn, project_id)]


def handle_create_rule(
    conn: sqlite3.Connection,
    *,
    project_id: int,
    name: str,
    rule_type: str,
    config: dict[str, Any],
    description: str | None = None,
    severity: str = "warning",
) -> dict[str, Any]:
    definition = build_rule_definition(
        name, rule_type, config, description=description, severity=severity
    )
    return _rule_to_dict(create_rule(conn, project_id, definition))


def handle_update_rule(
    conn: sqlite3.Connection,
    *,
    rule_id: int,
    name: str | None = None,
    description: str | None = None,
    config: dict[str, Any] | None = None,
    severity: str | None = None,
    active: bool | None = None,
) -> dict[str, Any]:
    """Update the given fields of a rule; its type cannot change."""
    rule = update_rule(
        conn,
        rule_id,
        name=name,
        description=description,
        config=config,
        severity=severity,
        active=active,
    )
    return _rule_to_dict(rule)


def handle_delete_rule(conn: sqlite3.Connection, *, rule_id: int) -> dict[str, Any]:
    delete_rule(conn, rule_id)
    return {"deleted": rule_id}


def handle_toggle_rule(conn: sqlite3.Connection, *, rule_id: int, active: bool) -> dict[str, Any]:
    return _rule_to_dict(toggle_rule_active(conn, rule_id, active))


def handle_list_violations(
    conn: sqlite3.Connection,
    *,
    project_id: int,
    status: str | None = None,
    rule_id: int | None = None,
    entity_type: str | None = None,
    severity: str | None = None,
) -> list[dict[str, Any]]:
    """List violations, newest first, with optional filters."""
    records = list_violations(
        conn,
        project_id,
        status=status,
        rule_id=rule_id,
        entity_type=entity_type,
        severity=severity,
    )
    return [v.to_dict() for v in records]


def handle_get_violation_stats(
    conn: sqlite3.Connection, *, project_id: int
) -> dict[str, dict[str, int]]:
    return get_violation_stats(conn, project_id)


def handle_resolve_violation(
    conn: sqlite3.Connection,
    *,
    violation_id: int,
    status: str,
    resolved_by: str,
    notes: str | None = None,
) -> dict[str, Any]:
    return resolve_violation(conn, violation_id, status, resolved_by, notes).to_dict()


def handle_suggest_fixes(
    conn: sqlite3.Connection,
    *,
    violation_id: int,
    llm_config: LLMConfig | None = None,
) -> list[dict[str, str]]:
    return [s.to_dict() for s in generate_fix_suggestions(conn, violation_id, llm_config)]


def handle_check_relationship(
    *,
    source_type: str,
    target_type: str,
    relationship_type: str | None = None,
) -> dict[str, Any]:
    """Report which relationship types the matrix allows between two entity types."""
    result: dict[str, Any] = {
        "source_type": source_type,
        "target_type": target_type,
        "allowed_relationship_types": allowed_relationship_types(source_type, target_type),
    }
    if relationship_type is not None:
        if relationship_type not in RELATIONSHIP_MATRIX:
            msg = f"Unknown relationship type: {relationship_type}"
            raise LookupError(msg)
        result["relationship_type"] = relationship_type
        result["allowed"] = is_allowed(source_type, target_type, relationship_type)
        result["description"] = RELATIONSHIP_MATRIX[relationship_type].description
    return result


# --- Tool definitions ---

_PROJECT_ID = {"type": "integer", "description": "Project identifier"}

_TOOLS = [
    mcp.Tool(
        name="run_validation",
        description=(
            "Run every active validation rule of a project against its EA graph. "
            "Replaces the stored violations and returns counts per rule plus any "
            "rules that failed to execute."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": _PROJECT_ID,
                "preserve_resolutions": {
                    "type": "boolean",
                    "default": False,
                    "description": "Keep resolved/ignored status for violations still present",
                },
            },
            "required": ["project_id"],
        },
    ),
    mcp.Tool(
        name="list_rules",
        description="List the validation rules of a project, newest first.",
        inputSchema={
            "type": "object",
            "properties": {"project_id": _PROJECT_ID},
            "required": ["project_id"],
        },
    ),
    mcp.Tool(
        name="create_rule",
        description=(
            "Create a validation rule. rule_type is one of min_relationships, "
            "max_relationships, required_relationship, no_circular_dependencies, "
            "no_orphaned_entities, naming_convention, attribute_completeness."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": _PROJECT_ID,
                "name": {"type": "string"},
                "rule_type": {"type": "string"},
                "config": {"type": "object", "description": "camelCase rule config"},
                "description": {"type": "string"},
                "severity": {
                    "type": "string",
                    "enum": ["info", "warning", "error", "critical"],
                    "default": "warning",
                },
            },
            "required": ["project_id", "name", "rule_type", "config"],
        },
    ),
    mcp.Tool(
        name="update_rule",
        description=(
            "Update a validation rule. Only the given fields change; the rule type "
            "is fixed and a new config is validated against it."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "rule_id": {"type": "integer"},
                "name": {"type": "string"},
                "description": {"type": "string"},
                "config": {"type": "object", "description": "camelCase rule config"},
                "severity": {
                    "type": "string",
                    "enum": ["info", "warning", "error", "critical"],
                },
                "active": {"type": "boolean"},
            },
            "required": ["rule_id"],
        },
    ),
    mcp.Tool(
        name="delete_rule",
        description="Delete a validation rule together with its violations.",
        inputSchema={
            "type": "object",
            "properties": {"rule_id": {"type": "integer"}},
            "required": ["rule_id"],
        },
    ),
    mcp.Tool(
        name="toggle_rule",
        description="Enable or disable a validation rule.",
        inputSchema={
            "type": "object",
            "properties": {
                "rule_id": {"type": "integer"},
                "active": {"type": "boolean"},
            },
            "required": ["rule_id", "active"],
        },
    ),
    mcp.Tool(
        name="list_violations",
        description=(
            "List violations of a project, newest first. Optional filters: "
            "status, rule_id, entity_type, severity."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": _PROJECT_ID,
                "status": {"type": "string", "enum": ["open", "resolved", "ignored"]},
                "rule_id": {"type": "integer"},
                "entity_type": {"type": "string"},
                "severity": {
                    "type": "string",
                    "enum": ["info", "warning", "error", "critical"],
                },
            },
            "required": ["project_id"],
        },
    ),
    mcp.Tool(
        name="get_violation_stats",
        description="Count violations by status, and open violations by severity.",
        inputSchema={
            "type": "object",
            "properties": {"project_id": _PROJECT_ID},
            "required": ["project_id"],
        },
    ),
    mcp.Tool(
        name="resolve_violation",
        description="Mark an open violation as resolved or ignored.",
        inputSchema={
            "type": "object",
            "properties": {
                "violation_id": {"type": "integer"},
                "status": {"type": "string", "enum": ["resolved", "ignored"]},
                "resolved_by": {"type": "string"},
                "notes": {"type": "string"},
            },
            "required": ["violation_id", "status", "resolved_by"],
        },
    ),
    mcp.Tool(
        name="suggest_fixes",
        description=(
            "Suggest fixes for a violation. Uses the configured LLM when available, "
            "otherwise the violation's stored suggestions."
        ),
        inputSchema={
            "type": "object",
            "properties": {"violation_id": {"type": "integer"}},
            "required": ["violation_id"],
        },
    ),
    mcp.Tool(
        name="check_relationship",
        description=(
            "Look up the relationship type matrix: which relationship types may "
            "connect a source entity type to a target entity type."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "source_type": {"type": "string"},
                "target_type": {"type": "string"},
                "relationship_type": {"type": "string"},
            },
            "required": ["source_type", "target_type"],
        },
    ),
]


def create_server(config: ArchloomConfig) -> Server:
    """Create and configure the MCP server for a workspace."""
    server = Server(
        name="archloom",
        version=__version__,
        instructions="Archloom: EA consistency validation for TOGAF entity graphs.",
    )

    @server.list_tools()  # type: ignore[no-untyped-call,untyped-decorator]
    async def _list_tools() -> list[mcp.Tool]:
        return _TOOLS

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def _call_tool(
        name: str,
        arguments: dict[str, Any] | None,
    ) -> list[TextContent]:
        return [TextContent(type="text", text=_run_tool(config, name, arguments or {}))]

    return server


def _run_tool(config: ArchloomConfig, name: str, args: dict[str, Any]) -> str:
    """Run one tool call on a fresh connection and render its result as text."""
    conn = open_db(config.db_path)
    try:
        create_schema(conn)
        result = _dispatch_tool(conn, name, args, llm_config=config.llm)
    except (LookupError, ValueError, ViolationStateError, ValidationRunError) as exc:
        return f"Error: {exc}"
    finally:
        conn.close()
    return json.dumps(result, ensure_ascii=False, indent=2)


def _dispatch_tool(
    conn: sqlite3.Connection,
    name: str,
    args: dict[str, Any],
    llm_config: LLMConfig | None = None,
) -> Any:
    """Route tool call to the appropriate handler."""
    if name == "run_validation":
        return handle_run_validation(
            conn,
            project_id=int(args["project_id"]),
            preserve_resolutions=bool(args.get("preserve_resolutions", False)),
        )
    if name == "list_rules":
        return handle_list_rules(conn, project_id=int(args["project_id"]))
    if name == "create_rule":
        try:
            return handle_create_rule(
                conn,
                project_id=int(args["project_id"]),
                name=args["name"],
                rule_type=args["rule_type"],
                config=args["config"],
                description=args.get("description"),
                severity=args.get("severity", "warning"),
            )
        except RuleConfigError as exc:
            return {"error": str(exc)}
    if name == "update_rule":
        active = args.get("active")
        try:
            return handle_update_rule(
                conn,
                rule_id=int(args["rule_id"]),
                name=args.get("name"),
                description=args.get("description"),
                config=args.get("config"),
                severity=args.get("severity"),
                active=bool(active) if active is not None else None,
            )
        except RuleConfigError as exc:
            return {"error": str(exc)}
    if name == "delete_rule":
        return handle_delete_rule(conn, rule_id=int(args["rule_id"]))
    if name == "toggle_rule":
        return handle_toggle_rule(conn, rule_id=int(args["rule_id"]), active=bool(args["active"]))
    if name == "list_violations":
        return handle_list_violations(
            conn,
            project_id=int(args["project_id"]),
            status=args.get("status"),
            rule_id=args.get("rule_id"),
            entity_type=args.get("entity_type"),
            severity=args.get("severity"),
        )
    if name == "get_violation_stats":
        return handle_get_violation_stats(conn, project_id=int(args["project_id"]))

    # --- Write tools ---
    if name == "resolve_violation":
        return handle_resolve_violation(
            conn,
            violation_id=int(args["violation_id"]),
            status=args["status"],
            resolved_by=args["resolved_by"],
            notes=args.get("notes"),
        )
    if name == "suggest_fixes":
        return handle_suggest_fixes(
            conn, violation_id=int(args["violation_id"]), llm_config=llm_config
        )
    if name == "check_relationship":
        return handle_check_relationship(
            source_type=args["source_type"],
            target_type=args["target_type"],
            relationship_type=args.get("relationship_type"),
        )

    msg = f"Unknown tool: {name}"
    raise ValueError(msg)
