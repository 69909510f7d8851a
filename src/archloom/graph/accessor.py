"""Graph accessor: read-only view of a project's live entities and relationships."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from archloom.graph.store import Entity, Relationship, entity_from_row, relationship_from_row
from archloom.meta.entity_types import validate_entity_type

if TYPE_CHECKING:
    import sqlite3


class GraphAccessor(Protocol):
    """What rule executors may read from the entity/relationship graph.

    Implementations must hide soft-deleted entities and relationships.
    """

    def entities_of_type(self, project_id: int, entity_type: str) -> list[Entity]: ...

    def get_entity(self, project_id: int, entity_type: str, entity_id: int) -> Entity | None: ...

    def relationship_count(
        self,
        project_id: int,
        entity_type: str,
        entity_id: int,
        relationship_type: str | None = None,
    ) -> int: ...

    def outgoing_relationships(
        self, project_id: int, entity_type: str, entity_id: int
    ) -> list[Relationship]: ...


class SqliteGraphAccessor:
    """:class:`GraphAccessor` over the ``active_*`` views of the SQLite schema."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def entities_of_type(self, project_id: int, entity_type: str) -> list[Entity]:
        validate_entity_type(entity_type)
        rows = self._conn.execute(
            "SELECT * FROM active_entities WHERE project_id = ? AND entity_type = ? ORDER BY id",
            (project_id, entity_type),
        ).fetchall()
        return [entity_from_row(r) for r in rows]

    def get_entity(self, project_id: int, entity_type: str, entity_id: int) -> Entity | None:
        row = self._conn.execute(
            "SELECT * FROM active_entities WHERE project_id = ? AND entity_type = ? AND id = ?",
            (project_id, entity_type, entity_id),
        ).fetchone()
        return entity_from_row(row) if row is not None else None

    def relationship_count(
        self,
        project_id: int,
        entity_type: str,
        entity_id: int,
        relationship_type: str | None = None,
    ) -> int:
        """Count relationships where the entity is the source OR the target."""
        query = (
            "SELECT COUNT(*) FROM active_relationships "
            "WHERE project_id = ? AND ("
            "(source_type = ? AND source_id = ?) OR (target_type = ? AND target_id = ?))"
        )
        params: list[object] = [project_id, entity_type, entity_id, entity_type, entity_id]
        if relationship_type is not None:
            query += " AND relationship_type = ?"
            params.append(relationship_type)
        row = self._conn.execute(query, params).fetchone()
        return int(row[0]) if row is not None else 0

    def outgoing_relationships(
        self, project_id: int, entity_type: str, entity_id: int
    ) -> list[Relationship]:
        rows = self._conn.execute(
            "SELECT * FROM active_relationships "
            "WHERE project_id = ? AND source_type = ? AND source_id = ? ORDER BY id",
            (project_id, entity_type, entity_id),
        ).fetchall()
        return [relationship_from_row(r) for r in rows]
