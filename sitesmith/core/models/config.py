"""
Site configuration model — loaded from config.yml (or config.json).

This is the canonical truth about where a site's sources live, where
output goes, and how the preview server binds.  Keys the model does not
know about are kept (``extra="allow"``) so plugins can read their own
settings (``markdown``, ``jinja``, ``default_template`` ...).

Command-line values are layered on top of the file values and remembered
separately in ``cli_overrides`` so a config-file reload can re-apply them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, model_validator


class SiteConfig(BaseModel):
    """Validated site configuration."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    contents: str = "./contents"
    templates: str = "./templates"
    output: str = "./build"
    ignore: list[str] = Field(default_factory=list)
    locals: dict[str, Any] | str = Field(default_factory=dict)
    require: dict[str, str] = Field(default_factory=dict)
    plugins: list[str] = Field(default_factory=list)
    views: str | None = None
    base_url: str = Field(default="/", validation_alias=AliasChoices("base_url", "baseUrl"))
    hostname: str | None = None
    port: int = 8080
    file_limit: int = Field(
        default=40,
        ge=1,
        validation_alias=AliasChoices("file_limit", "fileLimit", "_fileLimit"),
    )
    render_limit: int | None = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("render_limit", "renderLimit"),
    )
    restart_on_conf_change: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "restart_on_conf_change", "restartOnConfChange", "_restartOnConfChange",
        ),
    )

    _filename: Path | None = PrivateAttr(default=None)
    _cli_overrides: dict[str, Any] = PrivateAttr(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        """A ``null`` value in the file means "use the default"."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    # ── Provenance ──────────────────────────────────────────────

    @property
    def filename(self) -> Path | None:
        """Path of the file this config was read from (None if built in memory)."""
        return self._filename

    @property
    def cli_overrides(self) -> dict[str, Any]:
        """Values that came from the command line (a copy)."""
        return dict(self._cli_overrides)

    def with_filename(self, path: Path | None) -> SiteConfig:
        self._filename = path
        return self

    def apply_overrides(self, overrides: dict[str, Any]) -> SiteConfig:
        """Return a new config with *overrides* layered on top.

        The overrides are recorded as ``cli_overrides`` on the result,
        replacing whatever this config carried.
        """
        data = self.model_dump()
        data.update(overrides)
        config = SiteConfig.model_validate(data)
        config._filename = self._filename
        config._cli_overrides = dict(overrides)
        return config

    # ── Accessors ───────────────────────────────────────────────

    @property
    def effective_render_limit(self) -> int:
        return self.render_limit or self.file_limit

    def setting(self, key: str, default: Any = None) -> Any:
        """Look up a declared field or a pass-through key."""
        if key in type(self).model_fields:
            return getattr(self, key)
        extra = self.model_extra or {}
        value = extra.get(key)
        return default if value is None else value
