"""Entity type registry: the discriminator tags of the EA meta-model."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BUSINESS_CAPABILITY = "businessCapability"
APPLICATION = "application"
BUSINESS_PROCESS = "businessProcess"
DATA_ENTITY = "dataEntity"
REQUIREMENT = "requirement"
STAKEHOLDER = "stakeholder"
ORGANIZATION_UNIT = "organizationUnit"

# Declaration order is kept for display and deterministic iteration.
ENTITY_TYPES: tuple[str, ...] = (
    BUSINESS_CAPABILITY,
    APPLICATION,
    BUSINESS_PROCESS,
    DATA_ENTITY,
    REQUIREMENT,
    STAKEHOLDER,
    ORGANIZATION_UNIT,
)

VALID_ENTITY_TYPES: frozenset[str] = frozenset(ENTITY_TYPES)

ENTITY_TYPE_DISPLAY_NAMES: dict[str, str] = {
    BUSINESS_CAPABILITY: "Business Capability",
    APPLICATION: "Application",
    BUSINESS_PROCESS: "Business Process",
    DATA_ENTITY: "Data Entity",
    REQUIREMENT: "Requirement",
    STAKEHOLDER: "Stakeholder",
    ORGANIZATION_UNIT: "Organization Unit",
}

ENTITY_TYPE_DESCRIPTIONS: dict[str, str] = {
    BUSINESS_CAPABILITY: (
        "A particular ability or capacity that a business may possess or exchange"
    ),
    APPLICATION: "A deployed and operational IT system that supports business functions",
    BUSINESS_PROCESS: (
        "A collection of related, structured activities that produce "
        "a specific service or product"
    ),
    DATA_ENTITY: "An encapsulation of data that is recognized by a business domain expert",
    REQUIREMENT: (
        "A statement of need that must be met by a particular architecture or work package"
    ),
    STAKEHOLDER: (
        "An individual, team, or organization with interests in the outcome "
        "of the architecture"
    ),
    ORGANIZATION_UNIT: "An organizational unit or department within the enterprise",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class InvalidEntityTypeError(ValueError):
    """Raised when a string is not one of the known entity type tags."""

    def __init__(self, invalid_type: str) -> None:
        self.invalid_type = invalid_type
        super().__init__(
            f"Invalid entity type: {invalid_type!r}. "
            f"Valid types are: {', '.join(ENTITY_TYPES)}"
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_valid_entity_type(entity_type: str) -> bool:
    """Return True if *entity_type* is a known entity type tag."""
    return entity_type in VALID_ENTITY_TYPES


def validate_entity_type(entity_type: str) -> str:
    """Return *entity_type* unchanged, raising :class:`InvalidEntityTypeError` if unknown."""
    if entity_type not in VALID_ENTITY_TYPES:
        raise InvalidEntityTypeError(entity_type)
    return entity_type


def display_name(entity_type: str) -> str:
    """Human-readable name for an entity type tag."""
    return ENTITY_TYPE_DISPLAY_NAMES[validate_entity_type(entity_type)]
