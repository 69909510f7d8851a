"""Workspace configuration: ``config.yml`` loading with safe defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from archloom.llm_client import LLMConfig, parse_llm_config

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yml"
WORKSPACE_DIRNAME = ".archloom"
DEFAULT_DB_NAME = "archloom.db"

_VALID_SEVERITIES: frozenset[str] = frozenset({"info", "warning", "error", "critical"})


@dataclass(frozen=True)
class ValidationSettings:
    """Settings for validation runs."""

    preserve_resolutions: bool = False
    default_severity: str = "warning"


@dataclass(frozen=True)
class ArchloomConfig:
    """Resolved workspace configuration."""

    root: Path
    db_path: Path
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    llm: LLMConfig | None = None


def default_db_path(root: Path) -> Path:
    return root / WORKSPACE_DIRNAME / DEFAULT_DB_NAME


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default configuration", config_path)
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def _parse_validation(raw: object) -> ValidationSettings:
    if not isinstance(raw, dict):
        return ValidationSettings()

    severity = str(raw.get("default_severity", "warning"))
    if severity not in _VALID_SEVERITIES:
        logger.warning("Ignoring invalid default_severity %r in config.yml", severity)
        severity = "warning"

    return ValidationSettings(
        preserve_resolutions=bool(raw.get("preserve_resolutions", False)),
        default_severity=severity,
    )


def load_config(root: Path) -> ArchloomConfig:
    """Load ``config.yml`` from *root*.

    Falls back to defaults for missing keys or a missing file.  An invalid
    ``llm`` section is logged and disables LLM features rather than failing.
    """
    config_path = root / CONFIG_FILENAME
    data = _read_yaml(config_path) if config_path.is_file() else {}

    db_raw = data.get("database")
    db_path = root / str(db_raw) if db_raw else default_db_path(root)

    llm: LLMConfig | None = None
    llm_raw = data.get("llm")
    if isinstance(llm_raw, dict):
        try:
            llm = parse_llm_config(llm_raw)
        except ValueError as exc:
            logger.warning("Ignoring llm section of config.yml: %s", exc)

    return ArchloomConfig(
        root=root,
        db_path=db_path,
        validation=_parse_validation(data.get("validation")),
        llm=llm,
    )
