"""Shared test fixtures for Archloom."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from archloom.infrastructure.db import create_schema, open_db

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture()
def db_conn(tmp_path: Path) -> Iterator[sqlite3.Connection]:
    """Provide an empty database with full schema."""
    conn = open_db(tmp_path / "test.db")
    create_schema(conn)
    yield conn
    conn.close()


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    """Create an initialized workspace (config.yml plus database)."""
    root = tmp_path / "ws"
    (root / ".archloom").mkdir(parents=True)
    (root / "config.yml").write_text(
        "database: .archloom/archloom.db\nvalidation:\n  default_severity: warning\n",
        encoding="utf-8",
    )
    conn = open_db(root / ".archloom" / "archloom.db")
    create_schema(conn)
    conn.close()
    return root
