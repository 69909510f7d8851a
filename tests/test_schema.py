"""Tests for archloom.infrastructure.db: SQLite schema and meta helpers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from archloom.infrastructure.db import (
    SCHEMA_VERSION,
    create_schema,
    get_meta,
    open_db,
    set_meta,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestOpenDb:
    def test_creates_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "new.db"
        conn = open_db(db_path)
        conn.close()
        assert db_path.exists()

    def test_pragmas(self, tmp_path: Path) -> None:
        conn = open_db(tmp_path / "p.db")
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert conn.row_factory is sqlite3.Row
        conn.close()


class TestCreateSchema:
    def test_tables_and_views(self, db_conn: sqlite3.Connection) -> None:
        names = {
            r["name"]
            for r in db_conn.execute(
                "SELECT name FROM sqlite_master WHERE type IN ('table', 'view')"
            ).fetchall()
        }
        assert {
            "entities",
            "relationships",
            "validation_rules",
            "validation_violations",
            "meta",
            "active_entities",
            "active_relationships",
        } <= names

    def test_idempotent(self, db_conn: sqlite3.Connection) -> None:
        create_schema(db_conn)
        create_schema(db_conn)
        assert get_meta(db_conn, "schema_version") == SCHEMA_VERSION

    def test_rejects_unknown_entity_type(self, db_conn: sqlite3.Connection) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            db_conn.execute(
                "INSERT INTO entities (project_id, entity_type, name, normalized_name, "
                "created_at, updated_at) VALUES (1, 'server', 'x', 'x', 'now', 'now')"
            )

    def test_rejects_unknown_severity(self, db_conn: sqlite3.Connection) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            db_conn.execute(
                "INSERT INTO validation_rules (project_id, name, rule_type, severity, "
                "created_at, updated_at) "
                "VALUES (1, 'r', 'min_relationships', 'fatal', 'now', 'now')"
            )

    def test_active_view_hides_deleted(self, db_conn: sqlite3.Connection) -> None:
        db_conn.execute(
            "INSERT INTO entities (project_id, entity_type, name, normalized_name, "
            "created_at, updated_at, deleted_at) "
            "VALUES (1, 'application', 'Gone', 'gone', 'now', 'now', 'now')"
        )
        assert db_conn.execute("SELECT count(*) FROM entities").fetchone()[0] == 1
        assert db_conn.execute("SELECT count(*) FROM active_entities").fetchone()[0] == 0


class TestMeta:
    def test_get_missing_returns_default(self, db_conn: sqlite3.Connection) -> None:
        assert get_meta(db_conn, "nope") is None
        assert get_meta(db_conn, "nope", "fallback") == "fallback"

    def test_set_and_overwrite(self, db_conn: sqlite3.Connection) -> None:
        set_meta(db_conn, "k", "1")
        set_meta(db_conn, "k", "2")
        assert get_meta(db_conn, "k") == "2"
