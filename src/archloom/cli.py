"""Archloom CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

import click

from archloom import __version__

if TYPE_CHECKING:
    import sqlite3

    from archloom.infrastructure.config import ArchloomConfig

_DEFAULT_CONFIG_YML = """\
database: .archloom/archloom.db
validation:
  preserve_resolutions: false
  default_severity: warning
# llm:
#   provider: anthropic
#   model: claude-sonnet-4-20250514
#   api_key_env: ANTHROPIC_API_KEY
"""


class _ClickEchoHandler(logging.Handler):
    """Logging handler writing through ``click.echo`` to the current stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:  # noqa: BLE001
            self.handleError(record)


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    pkg_logger = logging.getLogger("archloom")
    for handler in list(pkg_logger.handlers):
        if isinstance(handler, _ClickEchoHandler):
            pkg_logger.removeHandler(handler)
    handler = _ClickEchoHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(level)


@click.group()
@click.version_option(version=__version__, prog_name="archloom")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Archloom - EA consistency validation engine."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose=verbose, quiet=quiet)


# ---------------------------------------------------------------------------
# Shared options and helpers
# ---------------------------------------------------------------------------

_root_option = click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Workspace root (default: current directory).",
)

_project_option = click.option(
    "--project",
    "project_id",
    type=int,
    default=1,
    show_default=True,
    help="Project identifier.",
)

_json_option = click.option("--json", "output_json", is_flag=True, help="Output as JSON.")


def _load(root: Path | None) -> ArchloomConfig:
    from archloom.infrastructure.config import load_config

    return load_config(root or Path.cwd())


def _connect(config: ArchloomConfig) -> sqlite3.Connection:
    from archloom.infrastructure.db import open_db

    if not config.db_path.exists():
        click.echo("Error: database not found. Run `archloom init` first.", err=True)
        sys.exit(1)
    return open_db(config.db_path)


def _fail(exc: Exception, code: int = 1) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(code)


def _parse_attrs(pairs: tuple[str, ...]) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            msg = f"Invalid attribute {pair!r}, expected KEY=VALUE"
            raise click.BadParameter(msg, param_hint="--attr")
        attrs[key.strip()] = value
    return attrs


def _parse_json_config(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON: {exc}"
        raise click.BadParameter(msg, param_hint="--config") from exc
    if not isinstance(data, dict):
        msg = "Config must be a JSON object"
        raise click.BadParameter(msg, param_hint="--config")
    return data


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


@main.command()
@_root_option
def init(*, root: Path | None) -> None:
    """Create the workspace database and a default config.yml."""
    from archloom.infrastructure.config import CONFIG_FILENAME, load_config
    from archloom.infrastructure.db import create_schema, open_db

    workspace = root or Path.cwd()
    config_path = workspace / CONFIG_FILENAME
    if not config_path.exists():
        config_path.write_text(_DEFAULT_CONFIG_YML, encoding="utf-8")
        click.echo(f"Created {config_path}")

    config = load_config(workspace)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = open_db(config.db_path)
    try:
        create_schema(conn)
    finally:
        conn.close()
    click.echo(f"Initialized database at {config.db_path}")


# ---------------------------------------------------------------------------
# entity
# ---------------------------------------------------------------------------


@main.group()
def entity() -> None:
    """Manage EA entities."""


@entity.command("add")
@click.argument("entity_type")
@click.argument("name")
@click.option("--description", default=None, help="Entity description.")
@click.option("--attr", "attrs", multiple=True, help="Attribute as KEY=VALUE (repeatable).")
@_project_option
@_root_option
def entity_add(
    *,
    entity_type: str,
    name: str,
    description: str | None,
    attrs: tuple[str, ...],
    project_id: int,
    root: Path | None,
) -> None:
    """Create an entity of ENTITY_TYPE named NAME."""
    from archloom.graph.store import create_entity

    conn = _connect(_load(root))
    try:
        created = create_entity(
            conn,
            project_id,
            entity_type,
            name,
            description=description,
            attributes=_parse_attrs(attrs),
        )
    except ValueError as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(f"Created {created.entity_type} {created.id}: {created.name}")


@entity.command("list")
@click.option("--type", "entity_type", default=None, help="Only entities of this type.")
@_project_option
@_json_option
@_root_option
def entity_list(
    *, entity_type: str | None, project_id: int, output_json: bool, root: Path | None
) -> None:
    """List live entities of a project."""
    from archloom.graph.store import list_entities

    conn = _connect(_load(root))
    try:
        entities = list_entities(conn, project_id, entity_type)
    except ValueError as exc:
        _fail(exc)
    finally:
        conn.close()

    if output_json:
        data = [
            {
                "id": e.id,
                "entity_type": e.entity_type,
                "name": e.name,
                "description": e.description,
                "attributes": e.attributes,
            }
            for e in entities
        ]
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"Entities (project {project_id})")
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Description")
    for e in entities:
        table.add_row(str(e.id), e.entity_type, e.name, e.description or "")
    Console().print(table)


@entity.command("delete")
@click.argument("entity_type")
@click.argument("entity_id", type=int)
@_root_option
def entity_delete(*, entity_type: str, entity_id: int, root: Path | None) -> None:
    """Soft-delete an entity and its relationships."""
    from archloom.graph.store import soft_delete_entity

    conn = _connect(_load(root))
    try:
        soft_delete_entity(conn, entity_type, entity_id)
    except LookupError as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(f"Deleted {entity_type} {entity_id}")


# ---------------------------------------------------------------------------
# rel
# ---------------------------------------------------------------------------


@main.group()
def rel() -> None:
    """Manage relationships between entities."""


@rel.command("add")
@click.argument("source_type")
@click.argument("source_id", type=int)
@click.argument("relationship_type")
@click.argument("target_type")
@click.argument("target_id", type=int)
@_project_option
@_root_option
def rel_add(
    *,
    source_type: str,
    source_id: int,
    relationship_type: str,
    target_type: str,
    target_id: int,
    project_id: int,
    root: Path | None,
) -> None:
    """Create SOURCE --RELATIONSHIP_TYPE--> TARGET (checked against the matrix)."""
    from archloom.graph.store import create_relationship

    conn = _connect(_load(root))
    try:
        created = create_relationship(
            conn,
            project_id,
            source_type,
            source_id,
            relationship_type,
            target_type,
            target_id,
        )
    except ValueError as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(
        f"Created relationship {created.id}: {source_type} {source_id} "
        f"-[{relationship_type}]-> {target_type} {target_id}"
    )


@rel.command("list")
@_project_option
@_json_option
@_root_option
def rel_list(*, project_id: int, output_json: bool, root: Path | None) -> None:
    """List live relationships of a project."""
    from archloom.graph.store import list_relationships

    conn = _connect(_load(root))
    try:
        relationships = list_relationships(conn, project_id)
    finally:
        conn.close()

    if output_json:
        data = [
            {
                "id": r.id,
                "source_type": r.source_type,
                "source_id": r.source_id,
                "relationship_type": r.relationship_type,
                "target_type": r.target_type,
                "target_id": r.target_id,
            }
            for r in relationships
        ]
        click.echo(json.dumps(data, indent=2))
        return

    for r in relationships:
        click.echo(
            f"{r.id}: {r.source_type} {r.source_id} "
            f"-[{r.relationship_type}]-> {r.target_type} {r.target_id}"
        )


@rel.command("delete")
@click.argument("relationship_id", type=int)
@_root_option
def rel_delete(*, relationship_id: int, root: Path | None) -> None:
    """Soft-delete a relationship."""
    from archloom.graph.store import soft_delete_relationship

    conn = _connect(_load(root))
    try:
        soft_delete_relationship(conn, relationship_id)
    except LookupError as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(f"Deleted relationship {relationship_id}")


# ---------------------------------------------------------------------------
# matrix
# ---------------------------------------------------------------------------


@main.command()
@click.option("--source", "source_type", default=None, help="Source entity type.")
@click.option("--target", "target_type", default=None, help="Target entity type.")
@_json_option
def matrix(*, source_type: str | None, target_type: str | None, output_json: bool) -> None:
    """Show the relationship type matrix.

    With --source and --target, list only the relationship types allowed
    between those two entity types.
    """
    from archloom.meta.matrix import RELATIONSHIP_MATRIX, allowed_relationship_types

    if (source_type is None) != (target_type is None):
        click.echo("Error: --source and --target must be given together.", err=True)
        sys.exit(2)

    if source_type is not None and target_type is not None:
        allowed = allowed_relationship_types(source_type, target_type)
        if output_json:
            click.echo(json.dumps(allowed))
        elif allowed:
            for rel_type in allowed:
                click.echo(rel_type)
        else:
            click.echo(f"No relationship types allowed from {source_type} to {target_type}")
        return

    if output_json:
        data = {
            rel_type: {
                "sources": sorted(entry.sources),
                "targets": sorted(entry.targets),
                "description": entry.description,
            }
            for rel_type, entry in RELATIONSHIP_MATRIX.items()
        }
        click.echo(json.dumps(data, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title="Relationship type matrix")
    table.add_column("Type")
    table.add_column("Sources")
    table.add_column("Targets")
    for rel_type, entry in RELATIONSHIP_MATRIX.items():
        table.add_row(rel_type, ", ".join(sorted(entry.sources)), ", ".join(sorted(entry.targets)))
    Console().print(table)


# ---------------------------------------------------------------------------
# rules
# ---------------------------------------------------------------------------


@main.group()
def rules() -> None:
    """Manage validation rules."""


@rules.command("list")
@_project_option
@_json_option
@_root_option
def rules_list(*, project_id: int, output_json: bool, root: Path | None) -> None:
    """List the rules of a project, newest first."""
    from archloom.validation.rules import config_to_dict
    from archloom.validation.store import list_rules

    conn = _connect(_load(root))
    try:
        stored = list_rules(conn, project_id)
    finally:
        conn.close()

    if output_json:
        data = [
            {
                "id": r.id,
                "name": r.name,
                "rule_type": r.rule_type,
                "severity": r.severity,
                "active": r.active,
                "description": r.description,
                "config": config_to_dict(r.config) if r.config is not None else None,
            }
            for r in stored
        ]
        click.echo(json.dumps(data, indent=2))
        return

    if not stored:
        click.echo("No rules defined.")
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"Rules (project {project_id})")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Active")
    for r in stored:
        table.add_row(str(r.id), r.name, r.rule_type, r.severity, "yes" if r.active else "no")
    Console().print(table)


@rules.command("add")
@click.argument("name")
@click.option("--type", "rule_type", required=True, help="Rule type.")
@click.option("--config", "config_json", required=True, help="Rule config as a JSON object.")
@click.option("--severity", default=None, help="info, warning, error or critical.")
@click.option("--description", default=None, help="Rule description.")
@click.option("--inactive", is_flag=True, help="Create the rule disabled.")
@_project_option
@_root_option
def rules_add(
    *,
    name: str,
    rule_type: str,
    config_json: str,
    severity: str | None,
    description: str | None,
    inactive: bool,
    project_id: int,
    root: Path | None,
) -> None:
    """Create a rule named NAME."""
    from archloom.validation.rules import RuleConfigError, build_rule_definition
    from archloom.validation.store import create_rule

    config = _load(root)
    try:
        definition = build_rule_definition(
            name,
            rule_type,
            _parse_json_config(config_json),
            description=description,
            severity=severity or config.validation.default_severity,
            active=not inactive,
        )
    except RuleConfigError as exc:
        _fail(exc, 2)

    conn = _connect(config)
    try:
        created = create_rule(conn, project_id, definition)
    finally:
        conn.close()
    click.echo(f"Created rule {created.id}: {created.name}")


@rules.command("import")
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_project_option
@_root_option
def rules_import(*, rules_file: Path, project_id: int, root: Path | None) -> None:
    """Import rule definitions from a rules.yml file."""
    from archloom.validation.rules import RuleConfigError, load_rules
    from archloom.validation.store import create_rule

    config = _load(root)
    try:
        definitions = load_rules(rules_file, default_severity=config.validation.default_severity)
    except RuleConfigError as exc:
        _fail(exc, 2)

    conn = _connect(config)
    try:
        for definition in definitions:
            create_rule(conn, project_id, definition)
    finally:
        conn.close()
    click.echo(f"Imported {len(definitions)} rule(s) from {rules_file.name}")


@rules.command("update")
@click.argument("rule_id", type=int)
@click.option("--name", default=None, help="New rule name.")
@click.option("--description", default=None, help="New description.")
@click.option("--config", "config_json", default=None, help="New config as a JSON object.")
@click.option("--severity", default=None, help="New severity.")
@_root_option
def rules_update(
    *,
    rule_id: int,
    name: str | None,
    description: str | None,
    config_json: str | None,
    severity: str | None,
    root: Path | None,
) -> None:
    """Update a rule. Its type cannot change."""
    from archloom.validation.rules import RuleConfigError
    from archloom.validation.store import update_rule

    new_config = _parse_json_config(config_json) if config_json is not None else None
    conn = _connect(_load(root))
    try:
        updated = update_rule(
            conn,
            rule_id,
            name=name,
            description=description,
            config=new_config,
            severity=severity,
        )
    except RuleConfigError as exc:
        _fail(exc, 2)
    except LookupError as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(f"Updated rule {updated.id}: {updated.name}")


@rules.command("delete")
@click.argument("rule_id", type=int)
@_root_option
def rules_delete(*, rule_id: int, root: Path | None) -> None:
    """Delete a rule and all of its violations."""
    from archloom.validation.store import delete_rule

    conn = _connect(_load(root))
    try:
        delete_rule(conn, rule_id)
    except LookupError as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(f"Deleted rule {rule_id}")


def _set_rule_active(rule_id: int, root: Path | None, *, active: bool) -> None:
    from archloom.validation.store import toggle_rule_active

    conn = _connect(_load(root))
    try:
        rule = toggle_rule_active(conn, rule_id, active)
    except LookupError as exc:
        _fail(exc)
    finally:
        conn.close()
    state = "Enabled" if rule.active else "Disabled"
    click.echo(f"{state} rule {rule.id}: {rule.name}")


@rules.command("enable")
@click.argument("rule_id", type=int)
@_root_option
def rules_enable(*, rule_id: int, root: Path | None) -> None:
    """Enable a rule."""
    _set_rule_active(rule_id, root, active=True)


@rules.command("disable")
@click.argument("rule_id", type=int)
@_root_option
def rules_disable(*, rule_id: int, root: Path | None) -> None:
    """Disable a rule."""
    _set_rule_active(rule_id, root, active=False)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@main.command()
@_project_option
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Exit 1 if open violations remain.",
)
@click.option(
    "--preserve-resolutions/--no-preserve-resolutions",
    is_flag=True,
    default=None,
    help="Keep resolved/ignored status for violations that persist.",
)
@_root_option
def validate(
    *,
    project_id: int,
    fmt: str | None,
    strict: bool,
    preserve_resolutions: bool | None,
    root: Path | None,
) -> None:
    """Run every active rule of a project and store the violations.

    Exit codes: 0 = clean or violations without --strict,
    1 = open violations with --strict or a run failure.
    """
    from archloom.validation.engine import ValidationRunError, run_validation
    from archloom.validation.report import format_json, format_porcelain, format_rich
    from archloom.validation.store import list_violations

    config = _load(root)
    preserve = (
        preserve_resolutions
        if preserve_resolutions is not None
        else config.validation.preserve_resolutions
    )

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    conn = _connect(config)
    try:
        summary = run_validation(conn, project_id, preserve_resolutions=preserve)
        open_violations = list_violations(conn, project_id, status="open")
    except ValidationRunError as exc:
        _fail(exc)
    finally:
        conn.close()

    if fmt == "json":
        output = format_json(summary, open_violations)
    elif fmt == "porcelain":
        output = format_porcelain(open_violations)
    else:
        output = format_rich(summary, open_violations)
    if output:
        click.echo(output)

    if strict and open_violations:
        sys.exit(1)


# ---------------------------------------------------------------------------
# violations
# ---------------------------------------------------------------------------


@main.group()
def violations() -> None:
    """Inspect and triage violations."""


@violations.command("list")
@_project_option
@click.option(
    "--status", type=click.Choice(["open", "resolved", "ignored"]), default=None
)
@click.option("--rule", "rule_id", type=int, default=None, help="Only violations of this rule.")
@click.option("--entity-type", default=None, help="Only violations on this entity type.")
@click.option(
    "--severity",
    type=click.Choice(["info", "warning", "error", "critical"]),
    default=None,
)
@_json_option
@_root_option
def violations_list(
    *,
    project_id: int,
    status: str | None,
    rule_id: int | None,
    entity_type: str | None,
    severity: str | None,
    output_json: bool,
    root: Path | None,
) -> None:
    """List violations, newest first."""
    from archloom.validation.store import list_violations

    conn = _connect(_load(root))
    try:
        records = list_violations(
            conn,
            project_id,
            status=status,
            rule_id=rule_id,
            entity_type=entity_type,
            severity=severity,
        )
    finally:
        conn.close()

    if output_json:
        click.echo(json.dumps([v.to_dict() for v in records], indent=2, ensure_ascii=False))
        return

    if not records:
        click.echo("No violations.")
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"Violations (project {project_id})")
    table.add_column("ID", justify="right")
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Entity")
    table.add_column("Status")
    table.add_column("Message")
    for v in records:
        table.add_row(
            str(v.id),
            v.severity,
            v.rule_name,
            f"{v.entity_type} {v.entity_id}",
            v.status,
            v.message,
        )
    Console().print(table)


@violations.command("stats")
@_project_option
@_json_option
@_root_option
def violations_stats(*, project_id: int, output_json: bool, root: Path | None) -> None:
    """Show violation counts by status and open counts by severity."""
    from archloom.validation.store import get_violation_stats

    conn = _connect(_load(root))
    try:
        stats = get_violation_stats(conn, project_id)
    finally:
        conn.close()

    if output_json:
        click.echo(json.dumps(stats, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    console = Console()
    status_table = Table(title="By status", show_header=False, box=None, padding=(0, 1))
    for key, count in stats["by_status"].items():
        status_table.add_row(key, str(count))
    severity_table = Table(title="Open by severity", show_header=False, box=None, padding=(0, 1))
    for key, count in stats["by_severity"].items():
        severity_table.add_row(key, str(count))
    console.print(status_table)
    console.print(severity_table)


@violations.command("resolve")
@click.argument("violation_id", type=int)
@click.option(
    "--status",
    type=click.Choice(["resolved", "ignored"]),
    default="resolved",
    show_default=True,
)
@click.option("--by", "resolved_by", required=True, help="Who resolved the violation.")
@click.option("--notes", default=None, help="Resolution notes.")
@_root_option
def violations_resolve(
    *,
    violation_id: int,
    status: str,
    resolved_by: str,
    notes: str | None,
    root: Path | None,
) -> None:
    """Mark an open violation as resolved or ignored."""
    from archloom.validation.store import ViolationStateError, resolve_violation

    conn = _connect(_load(root))
    try:
        record = resolve_violation(conn, violation_id, status, resolved_by, notes)
    except (LookupError, ViolationStateError) as exc:
        _fail(exc)
    finally:
        conn.close()
    click.echo(f"Violation {record.id} {record.status} by {record.resolved_by}")


@violations.command("suggest")
@click.argument("violation_id", type=int)
@_json_option
@_root_option
def violations_suggest(*, violation_id: int, output_json: bool, root: Path | None) -> None:
    """Suggest fixes for a violation (LLM when configured)."""
    from archloom.suggestions import generate_fix_suggestions

    config = _load(root)
    conn = _connect(config)
    try:
        suggestions = generate_fix_suggestions(conn, violation_id, config.llm)
    except LookupError as exc:
        _fail(exc)
    finally:
        conn.close()

    if output_json:
        click.echo(json.dumps([s.to_dict() for s in suggestions], indent=2, ensure_ascii=False))
        return

    if not suggestions:
        click.echo("No suggestions available.")
        return
    for idx, s in enumerate(suggestions, start=1):
        click.echo(f"{idx}. {s.title} (effort: {s.effort}, impact: {s.impact})")
        click.echo(f"   {s.description}")
        if s.rationale:
            click.echo(f"   Why: {s.rationale}")


# ---------------------------------------------------------------------------
# mcp-serve
# ---------------------------------------------------------------------------


@main.command("mcp-serve")
@_root_option
def mcp_serve(*, root: Path | None) -> None:
    """Run the archloom MCP server (stdio transport)."""
    import anyio

    from archloom.services.mcp_server import create_server

    config = _load(root)
    if not config.db_path.exists():
        click.echo("Error: database not found. Run `archloom init` first.", err=True)
        sys.exit(1)

    server = create_server(config)

    async def _run() -> None:
        from mcp import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    anyio.run(_run)
