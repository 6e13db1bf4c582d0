# tests/conftest.py

"""Shared pytest fixtures for all tracker tests."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from src.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path: Path) -> Generator[None, None, None]:
    """Point every on-disk location at a per-test temp directory."""
    with patch.object(Settings, "LOGS_DIR", tmp_path / "logs"), \
            patch.object(Settings, "UPLOADS_DIR", tmp_path / "uploads"), \
            patch.object(Settings, "TRACKER_DB_PATH", tmp_path / "tracker.db"):
        yield
