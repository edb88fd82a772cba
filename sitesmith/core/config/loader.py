"""
Configuration loader — reads config.yml into a SiteConfig.

This is the primary entry point for loading site configuration.
It reads YAML (JSON is accepted, being a subset of YAML), validates
against the Pydantic schema, and returns a typed config object that
remembers which file it came from.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from sitesmith.core.errors import ConfigError
from sitesmith.core.models.config import SiteConfig

logger = logging.getLogger(__name__)

# Candidate config filenames, in lookup order
CONFIG_FILES = ("config.yml", "config.yaml", "config.json")

__all__ = ["CONFIG_FILES", "ConfigError", "find_config_file", "load_config", "resolve_config"]


def find_config_file(work_dir: Path | None = None) -> Path | None:
    """Return the first known config file inside *work_dir* (default: cwd)."""
    directory = (work_dir or Path.cwd()).resolve()
    for name in CONFIG_FILES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path) -> SiteConfig:
    """Load and validate a site configuration file.

    Args:
        path: Path to the config file.

    Returns:
        Validated SiteConfig, with ``filename`` set to *path*.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise ConfigError(f"Config file at '{path}' does not exist.")

    logger.debug("Loading site config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")

    try:
        config = SiteConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid site configuration in {path}: {e}") from e

    return config.with_filename(path.resolve())


def resolve_config(
    work_dir: Path,
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> SiteConfig:
    """Resolve options with the hierarchy: overrides > config file > defaults.

    A missing *config_path* is not an error: the defaults are used.
    """
    path = config_path if config_path is not None else find_config_file(work_dir)
    if path is not None and not path.is_absolute():
        path = work_dir / path

    if path is not None and path.is_file():
        logger.info("using config file: %s", path)
        config = load_config(path)
    else:
        logger.debug("no config file found")
        config = SiteConfig()

    if overrides:
        try:
            config = config.apply_overrides(overrides)
        except Exception as e:
            raise ConfigError(f"Invalid command-line option: {e}") from e
    return config
