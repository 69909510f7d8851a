"""Infrastructure domain: database layer and workspace configuration."""

from archloom.infrastructure.config import (
    ArchloomConfig,
    ValidationSettings,
    default_db_path,
    load_config,
)
from archloom.infrastructure.db import (
    SCHEMA_VERSION,
    create_schema,
    get_meta,
    open_db,
    set_meta,
)

__all__ = [
    "SCHEMA_VERSION",
    "ArchloomConfig",
    "ValidationSettings",
    "create_schema",
    "default_db_path",
    "get_meta",
    "load_config",
    "open_db",
    "set_meta",
]
