"""
Jinja plugin — template plugin for ``*.html``, ``*.j2`` and ``*.jinja``.

Templates are loaded through a Jinja2 environment rooted at the site's
templates directory, so ``{% extends %}`` and ``{% include %}`` resolve
against it.  Environment options come from the ``jinja`` config key
(``autoescape``, ``trim_blocks`` ...).
"""

from __future__ import annotations

from typing import Any

import jinja2

from sitesmith.core.engine.content import FilePath
from sitesmith.core.engine.templates import TemplatePlugin
from sitesmith.core.errors import RenderError

TEMPLATE_PATTERN = "**/*.{html,j2,jinja}"


class JinjaTemplate(TemplatePlugin):
    """A compiled Jinja2 template."""

    jinja_env: jinja2.Environment | None = None

    def __init__(self, template: jinja2.Template) -> None:
        self.template = template

    @classmethod
    def from_file(cls, filepath: FilePath) -> JinjaTemplate:
        if cls.jinja_env is None:
            raise RuntimeError("jinja plugin has not been set up")
        try:
            return cls(cls.jinja_env.get_template(filepath.relative))
        except jinja2.TemplateSyntaxError as e:
            raise ValueError(f"line {e.lineno}: {e.message}") from e

    def render(self, data: dict[str, Any]) -> bytes:
        try:
            return self.template.render(data).encode("utf-8")
        except jinja2.TemplateError as e:
            raise RenderError(self.template.name, str(e)) from e


def create_jinja_env(env: Any) -> jinja2.Environment:
    options = dict(env.config.setting("jinja") or {})
    return jinja2.Environment(loader=jinja2.FileSystemLoader(str(env.templates_path)), **options)


def setup(env: Any) -> None:
    # One template class per site, bound to that site's loader
    template_class = type("JinjaTemplate", (JinjaTemplate,), {"jinja_env": create_jinja_env(env)})
    env.register_template_plugin(TEMPLATE_PATTERN, template_class)
