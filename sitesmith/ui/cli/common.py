"""
Shared CLI plumbing — common options and environment loading.

Options resolve with the hierarchy: command line > config file >
defaults.  Command-line values are recorded as ``cli_overrides`` on
the config so the preview server can re-apply them when the config
file changes.
"""

from __future__ import annotations

import logging
import os
import re
from functools import wraps
from pathlib import Path
from typing import Any, Callable

import click

from sitesmith.core.config.loader import resolve_config
from sitesmith.core.engine.environment import Environment
from sitesmith.core.errors import ConfigError, SitesmithError

logger = logging.getLogger(__name__)


def common_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the options shared by ``build``, ``preview`` and ``tree``."""
    options = [
        click.option("--contents", "-i", default=None, help="Contents location (default: ./contents)."),
        click.option("--templates", "-t", default=None, help="Template location (default: ./templates)."),
        click.option("--locals", "-L", "locals_", default=None, help="JSON/YAML file with template context data."),
        click.option("--require", "-R", default=None, help="Comma separated modules to add to the template context (alias:module)."),
        click.option("--plugins", "-P", default=None, help="Comma separated modules to load as plugins."),
        click.option("--ignore", "-I", default=None, help="Comma separated files/glob patterns to ignore."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _split(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_require(value: str) -> dict[str, str]:
    """``"a:mod_a,pkg/helpers.py"`` → ``{"a": "mod_a", "helpers": "pkg/helpers.py"}``."""
    result: dict[str, str] = {}
    for item in _split(value):
        alias, sep, module = item.partition(":")
        if not sep:
            module = alias
            stem = module.rstrip("/").removesuffix(".py")
            alias = re.split(r"[/.]", stem)[-1] or stem
        result[alias] = module
    return result


def collect_overrides(**options: Any) -> dict[str, Any]:
    """Turn raw command-line values into config overrides (unset values skipped)."""
    overrides: dict[str, Any] = {}
    for key, value in options.items():
        if value is None:
            continue
        key = key.rstrip("_")
        if key in ("ignore", "plugins"):
            value = _split(value)
        elif key == "require":
            value = parse_require(value)
        overrides[key] = value
    return overrides


def load_env(ctx: click.Context, **options: Any) -> Environment:
    """Create the Environment for a command.

    Raises:
        ConfigError: Invalid config, or the contents/templates directory
            does not exist.
    """
    work_dir: Path = ctx.obj["work_dir"]
    logger.debug("creating environment - work directory: %s", work_dir)

    config = resolve_config(work_dir, ctx.obj.get("config_path"), collect_overrides(**options))
    env = Environment(config, work_dir)

    for name, resolved in (("contents", env.contents_path), ("templates", env.templates_path)):
        if not resolved.exists():
            raise ConfigError(f"{name} path invalid ({resolved})")
    return env


def get_storage_dir() -> Path:
    """The user's sitesmith directory (``$SITESMITH_PATH`` or ``~/.sitesmith``)."""
    override = os.environ.get("SITESMITH_PATH")
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".sitesmith"


def handle_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Report sitesmith errors as ``❌ message`` and exit 1."""

    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except (SitesmithError, OSError) as e:
            logger.debug("command failed", exc_info=True)
            click.secho(f"❌ {e}", fg="red", err=True)
            raise SystemExit(1) from e

    return wrapper
