"""
Page plugin — base class for documents with metadata and a template.

A page is content with a metadata mapping (title, date, template ...)
and an HTML body.  Subclasses supply the body by implementing
``get_html(base)``; see the markdown plugin.

Also registers the ``template`` view, which renders
``templates[page.template]`` with ``{"page": page, **locals}``.
"""

from __future__ import annotations

import logging
import posixpath
import re
from datetime import date, datetime
from typing import Any, Callable

from jinja2.sandbox import SandboxedEnvironment

from sitesmith.core.engine.content import ContentNode, FilePath, RenderContext
from sitesmith.core.engine.pool import maybe_await
from sitesmith.core.engine.utils import rfc822, slugify, strip_extension
from sitesmith.core.errors import RenderError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME_TEMPLATE = ":file.html"
DEFAULT_INTRO_CUTOFFS = ('<span class="more', "<h2", "<hr")

_EPOCH = datetime(1970, 1, 1)
_EXPRESSION = re.compile(r"\{\{(.*?)\}\}")
_expressions = SandboxedEnvironment()


def _coerce_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # Milliseconds since the epoch, as JSON dates usually are
        return datetime.fromtimestamp(value / 1000)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            logger.debug("unparseable page date: %r", value)
    return _EPOCH


def template_view(page: Page, context: RenderContext) -> Any:
    """Render the page's template, or nothing for template ``none``."""
    if page.template == "none":
        return None
    template = context.templates.get(posixpath.normpath(page.template))
    if template is None:
        raise RenderError(
            page.filename, f"page '{page.filename}' specifies unknown template '{page.template}'",
        )
    data: dict[str, Any] = {"page": page}
    data.update(context.locals)
    return maybe_await(template.render(data))


class Page(ContentNode):
    """Content that has metadata, html and a template that renders it."""

    def __init__(self, filepath: FilePath, metadata: dict[str, Any] | None = None) -> None:
        self.filepath = filepath
        self.metadata: dict[str, Any] = metadata or {}

    def _setting(self, key: str, default: Any = None) -> Any:
        if self.env is None:
            return default
        return self.env.config.setting(key, default)

    @property
    def filename(self) -> str:
        """Output filename built from ``filename_template``.

        Placeholders:

            :year :month :day   from ``page.date`` (zero padded)
            :title              slugified ``page.title``
            :basename           source file name (``post.md``)
            :file               basename without extension (``post``)
            :ext                extension including the dot (``.md``)
            :dirname            source directory

        ``{{ expression }}`` is evaluated in a sandbox with ``page`` and
        ``env`` available.  A leading ``/`` makes the result relative to
        the output root instead of the source directory:

            :file.html                   → somedir/post.html
            /:year/:month/:day/index.html → 2001/02/03/index.html
            /{{ page.metadata.category }}/:basename → news/post.md
        """
        relative = self.filepath.relative
        dirname = posixpath.dirname(relative)
        basename = posixpath.basename(relative)
        when = self.date
        replacements = {
            ":year": str(when.year),
            ":month": f"{when.month:02d}",
            ":day": f"{when.day:02d}",
            ":title": slugify(self.title),
            ":file": strip_extension(basename),
            ":ext": posixpath.splitext(basename)[1],
            ":basename": basename,
            ":dirname": dirname,
        }
        pattern = re.compile("|".join(re.escape(k) for k in replacements), re.IGNORECASE)
        filename = pattern.sub(lambda m: replacements[m.group(0).lower()], self.filename_template)
        filename = _EXPRESSION.sub(lambda m: str(self._evaluate(m.group(1))), filename)

        if filename.startswith("/"):
            return filename[1:]
        return posixpath.normpath(posixpath.join(dirname, filename))

    def _evaluate(self, code: str) -> Any:
        return _expressions.compile_expression(code.strip())(page=self, env=self.env)

    def get_url(self, base: str | None = None) -> str:
        return re.sub(r"(/|^)index\.html$", r"\1", super().get_url(base))

    @property
    def view(self) -> str | Callable[..., Any]:
        return self.metadata.get("view") or "template"

    # ── Page properties ─────────────────────────────────────────────

    def get_html(self, base: str | None = None) -> str:
        """Return html with all urls resolved using *base*."""
        raise NotImplementedError(f"{type(self).__name__}.get_html")

    @property
    def html(self) -> str:
        return self.get_html()

    def get_intro(self, base: str | None = None) -> str:
        """The html up to the first intro cutoff marker."""
        html = self.get_html(base)
        cutoffs = self._setting("intro_cutoffs") or DEFAULT_INTRO_CUTOFFS
        positions = [i for i in (html.find(c) for c in cutoffs) if i != -1]
        return html[: min(positions)] if positions else html

    @property
    def intro(self) -> str:
        return self.get_intro()

    @property
    def has_more(self) -> bool:
        return len(self.html) > len(self.intro)

    @property
    def filename_template(self) -> str:
        return (
            self.metadata.get("filename")
            or self._setting("filename_template")
            or DEFAULT_FILENAME_TEMPLATE
        )

    @property
    def template(self) -> str:
        """Template name used by the ``template`` view."""
        return self.metadata.get("template") or self._setting("default_template") or "none"

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or "Untitled")

    @property
    def date(self) -> datetime:
        return _coerce_date(self.metadata.get("date"))

    @property
    def rfc822date(self) -> str:
        return rfc822(self.date)


def setup(env: Any) -> None:
    env.plugins["Page"] = Page
    env.register_view("template", template_view)
