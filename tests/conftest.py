# tests/conftest.py

"""Shared pytest fixtures for all monitoring tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from rivalwatch.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path) -> Generator[None, None, None]:
    """Point logs, database and competitor registry at a temp dir."""
    data_dir = tmp_path / "data"
    with (
        patch.object(Settings, "LOGS_DIR", tmp_path / "logs"),
        patch.object(Settings, "DATA_DIR", data_dir),
        patch.object(
            Settings, "MONITORING_DB_PATH", data_dir / "monitoring.db",
        ),
        patch.object(
            Settings, "COMPETITORS_PATH", data_dir / "competitors.json",
        ),
        patch.object(Settings, "ANTHROPIC_API_KEY", None),
    ):
        yield
