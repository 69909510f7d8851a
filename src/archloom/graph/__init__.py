"""Graph domain: entity/relationship store, read accessor, cycle detection."""

from archloom.graph.accessor import GraphAccessor, SqliteGraphAccessor
from archloom.graph.cycles import CycleSearchResult, find_cyclic_nodes
from archloom.graph.store import (
    DuplicateNameError,
    Entity,
    Relationship,
    RelationshipError,
    create_entity,
    create_relationship,
    get_entity,
    list_entities,
    list_relationships,
    soft_delete_entity,
    soft_delete_relationship,
    update_entity_attributes,
)

__all__ = [
    "CycleSearchResult",
    "DuplicateNameError",
    "Entity",
    "GraphAccessor",
    "Relationship",
    "RelationshipError",
    "SqliteGraphAccessor",
    "create_entity",
    "create_relationship",
    "find_cyclic_nodes",
    "get_entity",
    "list_entities",
    "list_relationships",
    "soft_delete_entity",
    "soft_delete_relationship",
    "update_entity_attributes",
]
