"""
Error taxonomy — every failure the engine raises on purpose.

Each error carries the identifier a user needs to find the culprit
(config path, plugin id, relative content path, output filename,
generator key).  The original cause is always chained with
``raise ... from e`` so tracebacks stay complete.
"""

from __future__ import annotations


class SitesmithError(Exception):
    """Base class for all sitesmith errors."""


class ConfigError(SitesmithError):
    """Raised when the site configuration is missing or invalid."""


class PluginError(SitesmithError):
    """Raised when a plugin module fails to load or to set itself up."""

    def __init__(self, plugin_id: str, message: str) -> None:
        super().__init__(f"Error loading plugin '{plugin_id}': {message}")
        self.plugin_id = plugin_id


class ContentError(SitesmithError):
    """Raised when a source file cannot be turned into a content node."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class RenderError(SitesmithError):
    """Raised when a view or template fails, or returns an invalid result."""

    def __init__(self, filename: str | None, message: str) -> None:
        super().__init__(f"{filename}: {message}" if filename else message)
        self.filename = filename


class GeneratorContractError(SitesmithError):
    """Raised when a generator returns something that is not a content tree."""

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Invalid item for '{key}' encountered when resolving generator output"
        )
        self.key = key
