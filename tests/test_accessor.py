"""Tests for archloom.graph.accessor: SQLite graph accessor."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from archloom.graph.accessor import SqliteGraphAccessor
from archloom.graph.store import (
    create_entity,
    create_relationship,
    soft_delete_entity,
    soft_delete_relationship,
)
from archloom.meta.entity_types import InvalidEntityTypeError

if TYPE_CHECKING:
    import sqlite3


class TestSqliteGraphAccessor:
    def test_entities_of_type(self, db_conn: sqlite3.Connection) -> None:
        a = create_entity(db_conn, 1, "application", "A")
        create_entity(db_conn, 1, "dataEntity", "D")
        create_entity(db_conn, 2, "application", "Other project")
        graph = SqliteGraphAccessor(db_conn)
        assert [e.id for e in graph.entities_of_type(1, "application")] == [a.id]

    def test_entities_of_unknown_type(self, db_conn: sqlite3.Connection) -> None:
        with pytest.raises(InvalidEntityTypeError):
            SqliteGraphAccessor(db_conn).entities_of_type(1, "server")

    def test_deleted_entities_hidden(self, db_conn: sqlite3.Connection) -> None:
        a = create_entity(db_conn, 1, "application", "A")
        soft_delete_entity(db_conn, "application", a.id)
        graph = SqliteGraphAccessor(db_conn)
        assert graph.entities_of_type(1, "application") == []
        assert graph.get_entity(1, "application", a.id) is None

    def test_relationship_count_counts_both_roles(self, db_conn: sqlite3.Connection) -> None:
        a = create_entity(db_conn, 1, "application", "A")
        b = create_entity(db_conn, 1, "application", "B")
        d = create_entity(db_conn, 1, "dataEntity", "D")
        create_relationship(db_conn, 1, "application", a.id, "USES", "application", b.id)
        create_relationship(db_conn, 1, "application", b.id, "FLOWS_TO", "dataEntity", d.id)
        graph = SqliteGraphAccessor(db_conn)
        assert graph.relationship_count(1, "application", a.id) == 1
        assert graph.relationship_count(1, "application", b.id) == 2
        assert graph.relationship_count(1, "application", b.id, "USES") == 1
        assert graph.relationship_count(1, "application", b.id, "SUPPORTS") == 0

    def test_deleted_relationships_not_counted(self, db_conn: sqlite3.Connection) -> None:
        a = create_entity(db_conn, 1, "application", "A")
        b = create_entity(db_conn, 1, "application", "B")
        rel = create_relationship(db_conn, 1, "application", a.id, "USES", "application", b.id)
        soft_delete_relationship(db_conn, rel.id)
        assert SqliteGraphAccessor(db_conn).relationship_count(1, "application", a.id) == 0

    def test_outgoing_relationships(self, db_conn: sqlite3.Connection) -> None:
        a = create_entity(db_conn, 1, "application", "A")
        b = create_entity(db_conn, 1, "application", "B")
        create_relationship(db_conn, 1, "application", a.id, "USES", "application", b.id)
        graph = SqliteGraphAccessor(db_conn)
        outgoing = graph.outgoing_relationships(1, "application", a.id)
        assert [r.target_key for r in outgoing] == [("application", b.id)]
        assert graph.outgoing_relationships(1, "application", b.id) == []
