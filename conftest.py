"""Repository-wide pytest configuration."""
# ruff: noqa: E402, I001

import os
import sys
from pathlib import Path

ROOT = os.path.abspath(os.path.dirname(__file__))
SOURCE_PATHS = [
    ROOT,
    os.path.join(ROOT, "packages", "vaultmind_core", "src"),
    os.path.join(ROOT, "apps", "vaultmind_api", "src"),
]
for path in SOURCE_PATHS:
    if path not in sys.path:
        sys.path.insert(0, path)

import pytest

from vaultmind_core.config import (
    AppConfig,
    reset_config,
    set_app_config_path,
)


@pytest.fixture(autouse=True)
def app_config_file(tmp_path: Path):
    """Write a fresh app config file and point the loader at it."""
    reset_config()
    config_path = tmp_path / "app.json"
    config = AppConfig()
    config.runtime.cache_dir = str(tmp_path / "cache")
    config.security.oracle_enabled = False
    config.write(config_path)
    set_app_config_path(config_path)
    yield config_path
    reset_config()
