"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from helpers import write_files
from sitesmith.core.engine.environment import Environment
from sitesmith.core.models.config import SiteConfig


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """An empty site: ``contents/`` and ``templates/`` in a temp directory."""
    (tmp_path / "contents").mkdir()
    (tmp_path / "templates").mkdir()
    return tmp_path


@pytest.fixture
def make_env(site: Path) -> Callable[..., Environment]:
    """Factory: ``make_env(files={...}, **config)`` → Environment on the site."""

    def _make(files: dict[str, str | bytes] | None = None, **config: Any) -> Environment:
        write_files(site, files or {})
        return Environment(SiteConfig.model_validate(config), site)

    return _make
