"""Relationship type matrix: which (source, relationship, target) triples are legal."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from archloom.meta.entity_types import (
    APPLICATION,
    BUSINESS_CAPABILITY,
    BUSINESS_PROCESS,
    DATA_ENTITY,
    ORGANIZATION_UNIT,
    REQUIREMENT,
    STAKEHOLDER,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

# ---------------------------------------------------------------------------
# Relationship types
# ---------------------------------------------------------------------------

SUPPORTS = "SUPPORTS"
USES = "USES"
REALIZES = "REALIZES"
IMPLEMENTS = "IMPLEMENTS"
DEPENDS_ON = "DEPENDS_ON"
OWNS = "OWNS"
MANAGES = "MANAGES"
TRIGGERS = "TRIGGERS"
FLOWS_TO = "FLOWS_TO"
ORIGINATES_FROM = "ORIGINATES_FROM"
CONTAINS = "CONTAINS"


@dataclass(frozen=True)
class MatrixEntry:
    """Allowed source and target entity types for one relationship type."""

    sources: frozenset[str]
    targets: frozenset[str]
    description: str


_OWNABLE: frozenset[str] = frozenset(
    {APPLICATION, BUSINESS_PROCESS, BUSINESS_CAPABILITY, DATA_ENTITY}
)
_PARTIES: frozenset[str] = frozenset({STAKEHOLDER, ORGANIZATION_UNIT})

RELATIONSHIP_MATRIX: Mapping[str, MatrixEntry] = MappingProxyType(
    {
        SUPPORTS: MatrixEntry(
            sources=frozenset({APPLICATION, BUSINESS_PROCESS}),
            targets=frozenset({BUSINESS_CAPABILITY, REQUIREMENT}),
            description="Source enables or implements target",
        ),
        USES: MatrixEntry(
            sources=frozenset({APPLICATION, BUSINESS_PROCESS, BUSINESS_CAPABILITY}),
            targets=frozenset({APPLICATION, DATA_ENTITY}),
            description="Source uses or consumes target",
        ),
        REALIZES: MatrixEntry(
            sources=frozenset({APPLICATION, BUSINESS_PROCESS}),
            targets=frozenset({BUSINESS_CAPABILITY, REQUIREMENT}),
            description="Source realizes target (logical to physical)",
        ),
        IMPLEMENTS: MatrixEntry(
            sources=frozenset({APPLICATION, BUSINESS_PROCESS}),
            targets=frozenset({REQUIREMENT}),
            description="Source implements requirement",
        ),
        DEPENDS_ON: MatrixEntry(
            sources=frozenset({APPLICATION, BUSINESS_PROCESS, BUSINESS_CAPABILITY}),
            targets=frozenset({APPLICATION, BUSINESS_PROCESS, DATA_ENTITY}),
            description="Source requires target to function",
        ),
        OWNS: MatrixEntry(
            sources=_PARTIES,
            targets=_OWNABLE,
            description="Source owns or is responsible for target",
        ),
        MANAGES: MatrixEntry(
            sources=_PARTIES,
            targets=_OWNABLE,
            description="Source manages target",
        ),
        TRIGGERS: MatrixEntry(
            sources=frozenset({BUSINESS_PROCESS, APPLICATION}),
            targets=frozenset({BUSINESS_PROCESS}),
            description="Source triggers or initiates target",
        ),
        FLOWS_TO: MatrixEntry(
            sources=frozenset({APPLICATION, BUSINESS_PROCESS}),
            targets=frozenset({APPLICATION, BUSINESS_PROCESS, DATA_ENTITY}),
            description="Data or control flows from source to target",
        ),
        ORIGINATES_FROM: MatrixEntry(
            sources=frozenset({DATA_ENTITY}),
            targets=frozenset({APPLICATION, BUSINESS_PROCESS}),
            description="Data entity is created or owned by target",
        ),
        CONTAINS: MatrixEntry(
            sources=frozenset({BUSINESS_CAPABILITY, BUSINESS_PROCESS}),
            targets=frozenset({BUSINESS_CAPABILITY, BUSINESS_PROCESS, APPLICATION}),
            description="Hierarchical containment",
        ),
    }
)

RELATIONSHIP_TYPES: tuple[str, ...] = tuple(RELATIONSHIP_MATRIX)
VALID_RELATIONSHIP_TYPES: frozenset[str] = frozenset(RELATIONSHIP_MATRIX)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class UnknownRelationshipTypeError(ValueError):
    """Raised for a relationship type that is not in the matrix."""

    def __init__(self, relationship_type: str) -> None:
        self.relationship_type = relationship_type
        super().__init__(
            f"Unknown relationship type: {relationship_type!r}. "
            f"Valid types are: {', '.join(RELATIONSHIP_TYPES)}"
        )


class MatrixViolation(ValueError):  # noqa: N818
    """Raised when a (source, relationship, target) triple is not allowed."""

    def __init__(self, source_type: str, target_type: str, relationship_type: str) -> None:
        self.source_type = source_type
        self.target_type = target_type
        self.relationship_type = relationship_type
        super().__init__(
            f"Invalid relationship: {source_type} cannot {relationship_type} {target_type}. "
            "Check the relationship matrix for allowed combinations."
        )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def _entry(relationship_type: str) -> MatrixEntry:
    entry = RELATIONSHIP_MATRIX.get(relationship_type)
    if entry is None:
        raise UnknownRelationshipTypeError(relationship_type)
    return entry


def validate(source_type: str, target_type: str, relationship_type: str) -> None:
    """Raise :class:`MatrixViolation` unless the triple is allowed."""
    entry = _entry(relationship_type)
    if source_type not in entry.sources or target_type not in entry.targets:
        raise MatrixViolation(source_type, target_type, relationship_type)


def is_allowed(source_type: str, target_type: str, relationship_type: str) -> bool:
    """Non-throwing form of :func:`validate`."""
    entry = RELATIONSHIP_MATRIX.get(relationship_type)
    if entry is None:
        return False
    return source_type in entry.sources and target_type in entry.targets


def allowed_relationship_types(source_type: str, target_type: str) -> list[str]:
    """Every relationship type allowed from *source_type* to *target_type*."""
    return [
        rel_type
        for rel_type, entry in RELATIONSHIP_MATRIX.items()
        if source_type in entry.sources and target_type in entry.targets
    ]


def allowed_target_types(source_type: str, relationship_type: str) -> frozenset[str]:
    """Targets reachable from *source_type* via *relationship_type*.

    Empty when *source_type* may not be the source of that relationship type.
    """
    entry = _entry(relationship_type)
    if source_type not in entry.sources:
        return frozenset()
    return entry.targets


def allowed_source_types(target_type: str, relationship_type: str) -> frozenset[str]:
    """Sources that may point at *target_type* via *relationship_type*.

    Empty when *target_type* may not be the target of that relationship type.
    """
    entry = _entry(relationship_type)
    if target_type not in entry.targets:
        return frozenset()
    return entry.sources
