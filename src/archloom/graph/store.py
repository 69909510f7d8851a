"""Entity and relationship store: write-time checks for the EA graph.

Every relationship passes through :func:`create_relationship`, which enforces
the relationship matrix, so rows in ``relationships`` are always legal triples.
Soft-deleting an entity also soft-deletes every relationship touching it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from archloom.meta.entity_types import validate_entity_type
from archloom.meta.matrix import validate as validate_matrix
from archloom.meta.naming import normalize_name, suggest_alternative_names

if TYPE_CHECKING:
    import sqlite3

# Columns an entity always has; everything else lives in ``attributes``.
CORE_FIELDS: frozenset[str] = frozenset({"id", "name", "description"})


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Entity:
    """A typed EA entity (capability, application, process, ...)."""

    id: int
    project_id: int
    entity_type: str
    name: str
    description: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def field_value(self, name: str) -> object:
        """Return a core column or attribute by name (``None`` when absent)."""
        if name in CORE_FIELDS:
            return getattr(self, name)
        return self.attributes.get(name)


@dataclass(frozen=True)
class Relationship:
    """A directed, typed edge between two entities."""

    id: int
    project_id: int
    source_type: str
    source_id: int
    relationship_type: str
    target_type: str
    target_id: int

    @property
    def source_key(self) -> tuple[str, int]:
        return (self.source_type, self.source_id)

    @property
    def target_key(self) -> tuple[str, int]:
        return (self.target_type, self.target_id)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DuplicateNameError(ValueError):
    """Raised when an entity name collides after normalization."""

    def __init__(
        self,
        normalized_name: str,
        project_id: int,
        entity_type: str,
        alternatives: list[str] | None = None,
    ) -> None:
        self.normalized_name = normalized_name
        self.project_id = project_id
        self.entity_type = entity_type
        self.alternatives = alternatives or []
        hint = f" Try: {', '.join(self.alternatives)}." if self.alternatives else ""
        super().__init__(
            f"Duplicate {entity_type} name: {normalized_name!r} already exists "
            f"in project {project_id}. Please choose a different name.{hint}"
        )


class RelationshipError(ValueError):
    """Raised when a relationship's endpoints are unusable."""


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def entity_from_row(row: sqlite3.Row) -> Entity:
    try:
        attributes = json.loads(row["attributes"] or "{}")
    except json.JSONDecodeError:
        attributes = {}
    return Entity(
        id=int(row["id"]),
        project_id=int(row["project_id"]),
        entity_type=str(row["entity_type"]),
        name=str(row["name"]),
        description=row["description"],
        attributes=attributes if isinstance(attributes, dict) else {},
    )


def relationship_from_row(row: sqlite3.Row) -> Relationship:
    return Relationship(
        id=int(row["id"]),
        project_id=int(row["project_id"]),
        source_type=str(row["source_type"]),
        source_id=int(row["source_id"]),
        relationship_type=str(row["relationship_type"]),
        target_type=str(row["target_type"]),
        target_id=int(row["target_id"]),
    )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def create_entity(
    conn: sqlite3.Connection,
    project_id: int,
    entity_type: str,
    name: str,
    *,
    description: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Entity:
    """Insert a new entity and return it.

    Raises ``InvalidEntityTypeError`` for an unknown type, ``ValueError`` for a
    blank name and :class:`DuplicateNameError` when the normalized name is
    already taken by a live entity of the same type in the project.
    """
    validate_entity_type(entity_type)
    if not name.strip():
        msg = "Entity name must not be empty"
        raise ValueError(msg)

    normalized = normalize_name(name)
    clash = conn.execute(
        "SELECT 1 FROM active_entities "
        "WHERE project_id = ? AND entity_type = ? AND normalized_name = ?",
        (project_id, entity_type, normalized),
    ).fetchone()
    if clash is not None:
        taken = {
            row[0]
            for row in conn.execute(
                "SELECT normalized_name FROM active_entities "
                "WHERE project_id = ? AND entity_type = ?",
                (project_id, entity_type),
            )
        }
        raise DuplicateNameError(
            normalized, project_id, entity_type, suggest_alternative_names(name, taken)
        )

    now = _now()
    attrs = attributes or {}
    cur = conn.execute(
        "INSERT INTO entities "
        "(project_id, entity_type, name, normalized_name, description, attributes, "
        "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (project_id, entity_type, name, normalized, description, json.dumps(attrs), now, now),
    )
    conn.commit()
    return Entity(
        id=int(cur.lastrowid or 0),
        project_id=project_id,
        entity_type=entity_type,
        name=name,
        description=description,
        attributes=dict(attrs),
    )


def get_entity(conn: sqlite3.Connection, entity_type: str, entity_id: int) -> Entity | None:
    """Return a live entity by type and id, or ``None``."""
    row = conn.execute(
        "SELECT * FROM active_entities WHERE entity_type = ? AND id = ?",
        (entity_type, entity_id),
    ).fetchone()
    return entity_from_row(row) if row is not None else None


def list_entities(
    conn: sqlite3.Connection, project_id: int, entity_type: str | None = None
) -> list[Entity]:
    """List live entities of a project, optionally of one type."""
    if entity_type is not None:
        validate_entity_type(entity_type)
        rows = conn.execute(
            "SELECT * FROM active_entities WHERE project_id = ? AND entity_type = ? ORDER BY id",
            (project_id, entity_type),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM active_entities WHERE project_id = ? ORDER BY entity_type, id",
            (project_id,),
        ).fetchall()
    return [entity_from_row(r) for r in rows]


def update_entity_attributes(
    conn: sqlite3.Connection,
    entity_type: str,
    entity_id: int,
    *,
    description: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Entity:
    """Merge *attributes* into an entity (and replace its description if given)."""
    entity = get_entity(conn, entity_type, entity_id)
    if entity is None:
        msg = f"{entity_type} {entity_id} not found"
        raise LookupError(msg)

    merged = {**entity.attributes, **(attributes or {})}
    new_description = description if description is not None else entity.description
    conn.execute(
        "UPDATE entities SET description = ?, attributes = ?, updated_at = ? WHERE id = ?",
        (new_description, json.dumps(merged), _now(), entity_id),
    )
    conn.commit()
    return Entity(
        id=entity.id,
        project_id=entity.project_id,
        entity_type=entity.entity_type,
        name=entity.name,
        description=new_description,
        attributes=merged,
    )


def soft_delete_entity(conn: sqlite3.Connection, entity_type: str, entity_id: int) -> None:
    """Soft-delete an entity together with every relationship touching it."""
    entity = get_entity(conn, entity_type, entity_id)
    if entity is None:
        msg = f"{entity_type} {entity_id} not found"
        raise LookupError(msg)

    now = _now()
    with conn:
        conn.execute("UPDATE entities SET deleted_at = ? WHERE id = ?", (now, entity_id))
        conn.execute(
            "UPDATE relationships SET deleted_at = ? "
            "WHERE deleted_at IS NULL AND ("
            "(source_type = ? AND source_id = ?) OR (target_type = ? AND target_id = ?))",
            (now, entity_type, entity_id, entity_type, entity_id),
        )


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


def create_relationship(
    conn: sqlite3.Connection,
    project_id: int,
    source_type: str,
    source_id: int,
    relationship_type: str,
    target_type: str,
    target_id: int,
    *,
    metadata: dict[str, Any] | None = None,
) -> Relationship:
    """Insert a relationship after checking the matrix and both endpoints.

    Raises ``MatrixViolation`` for an illegal triple and
    :class:`RelationshipError` for self-links, missing or deleted endpoints,
    or endpoints in another project.
    """
    validate_entity_type(source_type)
    validate_entity_type(target_type)
    validate_matrix(source_type, target_type, relationship_type)

    if source_type == target_type and source_id == target_id:
        msg = f"Cannot create relationship from an entity to itself: {source_type} {source_id}"
        raise RelationshipError(msg)

    endpoints = (("source", source_type, source_id), ("target", target_type, target_id))
    for role, etype, eid in endpoints:
        entity = get_entity(conn, etype, eid)
        if entity is None:
            msg = f"Relationship {role} {etype} {eid} does not exist"
            raise RelationshipError(msg)
        if entity.project_id != project_id:
            msg = (
                f"Cannot create relationship between entities from different projects: "
                f"{role} {etype} {eid} belongs to project {entity.project_id}, not {project_id}"
            )
            raise RelationshipError(msg)

    cur = conn.execute(
        "INSERT INTO relationships "
        "(project_id, source_type, source_id, relationship_type, target_type, target_id, "
        "metadata, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            project_id,
            source_type,
            source_id,
            relationship_type,
            target_type,
            target_id,
            json.dumps(metadata or {}),
            _now(),
        ),
    )
    conn.commit()
    return Relationship(
        id=int(cur.lastrowid or 0),
        project_id=project_id,
        source_type=source_type,
        source_id=source_id,
        relationship_type=relationship_type,
        target_type=target_type,
        target_id=target_id,
    )


def soft_delete_relationship(conn: sqlite3.Connection, relationship_id: int) -> None:
    cur = conn.execute(
        "UPDATE relationships SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
        (_now(), relationship_id),
    )
    conn.commit()
    if cur.rowcount == 0:
        msg = f"Relationship {relationship_id} not found"
        raise LookupError(msg)


def list_relationships(conn: sqlite3.Connection, project_id: int) -> list[Relationship]:
    """List live relationships of a project in insertion order."""
    rows = conn.execute(
        "SELECT * FROM active_relationships WHERE project_id = ? ORDER BY id",
        (project_id,),
    ).fetchall()
    return [relationship_from_row(r) for r in rows]
