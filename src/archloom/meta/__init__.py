"""EA meta-model: entity type tags, relationship matrix, name normalization."""

from archloom.meta.entity_types import (
    ENTITY_TYPES,
    VALID_ENTITY_TYPES,
    InvalidEntityTypeError,
    display_name,
    is_valid_entity_type,
    validate_entity_type,
)
from archloom.meta.matrix import (
    RELATIONSHIP_MATRIX,
    RELATIONSHIP_TYPES,
    VALID_RELATIONSHIP_TYPES,
    MatrixEntry,
    MatrixViolation,
    UnknownRelationshipTypeError,
    allowed_relationship_types,
    allowed_source_types,
    allowed_target_types,
    is_allowed,
    validate,
)
from archloom.meta.naming import names_equivalent, normalize_name, suggest_alternative_names

__all__ = [
    "ENTITY_TYPES",
    "RELATIONSHIP_MATRIX",
    "RELATIONSHIP_TYPES",
    "VALID_ENTITY_TYPES",
    "VALID_RELATIONSHIP_TYPES",
    "InvalidEntityTypeError",
    "MatrixEntry",
    "MatrixViolation",
    "UnknownRelationshipTypeError",
    "allowed_relationship_types",
    "allowed_source_types",
    "allowed_target_types",
    "display_name",
    "is_allowed",
    "is_valid_entity_type",
    "names_equivalent",
    "normalize_name",
    "suggest_alternative_names",
    "validate",
    "validate_entity_type",
]
