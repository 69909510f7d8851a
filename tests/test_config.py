"""Tests for archloom.infrastructure.config: config.yml loading."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from archloom.infrastructure.config import default_db_path, load_config

if TYPE_CHECKING:
    from pathlib import Path


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config.root == tmp_path
        assert config.db_path == default_db_path(tmp_path)
        assert config.db_path == tmp_path / ".archloom" / "archloom.db"
        assert config.validation.preserve_resolutions is False
        assert config.validation.default_severity == "warning"
        assert config.llm is None

    def test_full_config(self, tmp_path: Path) -> None:
        (tmp_path / "config.yml").write_text(
            "database: data/ea.db\n"
            "validation:\n"
            "  preserve_resolutions: true\n"
            "  default_severity: error\n"
            "llm:\n"
            "  provider: anthropic\n"
            "  model: claude-sonnet-4-20250514\n"
            "  api_key_env: ANTHROPIC_API_KEY\n"
            "  max_tokens: 2048\n",
            encoding="utf-8",
        )
        config = load_config(tmp_path)
        assert config.db_path == tmp_path / "data" / "ea.db"
        assert config.validation.preserve_resolutions is True
        assert config.validation.default_severity == "error"
        assert config.llm is not None
        assert config.llm.max_tokens == 2048

    def test_invalid_yaml_falls_back(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        (tmp_path / "config.yml").write_text("validation: [\n", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="archloom.infrastructure.config"):
            config = load_config(tmp_path)
        assert config.validation.default_severity == "warning"
        assert "using default configuration" in caplog.text

    def test_invalid_llm_section_disables_llm(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        (tmp_path / "config.yml").write_text(
            "llm:\n  provider: ollama\n  model: x\n  api_key_env: K\n", encoding="utf-8"
        )
        with caplog.at_level(logging.WARNING, logger="archloom.infrastructure.config"):
            config = load_config(tmp_path)
        assert config.llm is None
        assert "Unsupported LLM provider" in caplog.text

    def test_invalid_default_severity(self, tmp_path: Path) -> None:
        (tmp_path / "config.yml").write_text(
            "validation:\n  default_severity: fatal\n", encoding="utf-8"
        )
        assert load_config(tmp_path).validation.default_severity == "warning"

    def test_non_mapping_document(self, tmp_path: Path) -> None:
        (tmp_path / "config.yml").write_text("- just\n- a list\n", encoding="utf-8")
        assert load_config(tmp_path).llm is None
