"""SQLite database layer: connection management, schema, meta helpers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Schema version: increment on breaking changes
SCHEMA_VERSION = "1"

_ENTITY_TYPES_SQL = (
    "'businessCapability','application','businessProcess','dataEntity',"
    "'requirement','stakeholder','organizationUnit'"
)

_SCHEMA_SQL = f"""\
-- EA entities (one table, discriminated by entity_type)
CREATE TABLE IF NOT EXISTS entities (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id      INTEGER NOT NULL,
    entity_type     TEXT NOT NULL CHECK(entity_type IN ({_ENTITY_TYPES_SQL})),
    name            TEXT NOT NULL,
    normalized_name TEXT NOT NULL,
    description     TEXT,
    attributes      TEXT NOT NULL DEFAULT '{{}}',
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    deleted_at      TEXT
);

-- Typed, directed relationships between entities
CREATE TABLE IF NOT EXISTS relationships (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id        INTEGER NOT NULL,
    source_type       TEXT NOT NULL,
    source_id         INTEGER NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
    relationship_type TEXT NOT NULL CHECK(relationship_type IN (
        'SUPPORTS','USES','REALIZES','IMPLEMENTS','DEPENDS_ON','OWNS',
        'MANAGES','TRIGGERS','FLOWS_TO','ORIGINATES_FROM','CONTAINS'
    )),
    target_type       TEXT NOT NULL,
    target_id         INTEGER NOT NULL REFERENCES entities(id) ON DELETE CASCADE,
    metadata          TEXT NOT NULL DEFAULT '{{}}',
    created_at        TEXT NOT NULL,
    deleted_at        TEXT
);

-- Validation rules (project-scoped)
CREATE TABLE IF NOT EXISTS validation_rules (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id  INTEGER NOT NULL,
    name        TEXT NOT NULL,
    description TEXT,
    rule_type   TEXT NOT NULL CHECK(rule_type IN (
        'min_relationships','max_relationships','required_relationship',
        'no_circular_dependencies','no_orphaned_entities',
        'naming_convention','attribute_completeness'
    )),
    config      TEXT NOT NULL DEFAULT '{{}}',
    severity    TEXT NOT NULL DEFAULT 'warning'
                CHECK(severity IN ('info','warning','error','critical')),
    is_active   INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

-- Validation violations (regenerated by each run)
CREATE TABLE IF NOT EXISTS validation_violations (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    rule_id          INTEGER NOT NULL REFERENCES validation_rules(id) ON DELETE CASCADE,
    project_id       INTEGER NOT NULL,
    entity_type      TEXT NOT NULL,
    entity_id        INTEGER NOT NULL,
    entity_name      TEXT NOT NULL,
    details          TEXT NOT NULL DEFAULT '{{}}',
    status           TEXT NOT NULL DEFAULT 'open'
                     CHECK(status IN ('open','resolved','ignored')),
    resolved_by      TEXT,
    resolution_notes TEXT,
    created_at       TEXT NOT NULL,
    resolved_at      TEXT
);

-- Index metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Soft-delete filter, applied once for every reader
CREATE VIEW IF NOT EXISTS active_entities AS
    SELECT * FROM entities WHERE deleted_at IS NULL;

CREATE VIEW IF NOT EXISTS active_relationships AS
    SELECT * FROM relationships WHERE deleted_at IS NULL;

-- Indexes
CREATE INDEX IF NOT EXISTS idx_entities_project_type ON entities(project_id, entity_type);
CREATE INDEX IF NOT EXISTS idx_entities_normalized
    ON entities(project_id, entity_type, normalized_name);
CREATE INDEX IF NOT EXISTS idx_rel_source ON relationships(project_id, source_type, source_id);
CREATE INDEX IF NOT EXISTS idx_rel_target ON relationships(project_id, target_type, target_id);
CREATE INDEX IF NOT EXISTS idx_rules_project ON validation_rules(project_id, is_active);
CREATE INDEX IF NOT EXISTS idx_violations_project ON validation_violations(project_id, status);
CREATE INDEX IF NOT EXISTS idx_violations_rule ON validation_violations(rule_id);
"""


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) a SQLite database with proper PRAGMAs.

    Sets WAL journal mode (persistent per-file) and enables foreign keys
    (per-connection, required on every open).

    Returns a connection with ``sqlite3.Row`` row factory.
    """
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables, views and indexes if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn.executescript(_SCHEMA_SQL)
    set_meta(conn, "schema_version", SCHEMA_VERSION)


def get_meta(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    """Read a value from the ``meta`` table.

    Returns *default* (``None``) if the key doesn't exist.
    """
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    return str(row[0])


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or update a key in the ``meta`` table."""
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    conn.commit()
