"""
Markdown plugin — MarkdownPage and JsonPage.

A markdown page is a source file with an optional metadata header
followed by a Markdown body.  The header is YAML, either between
``---`` fences:

    ---
    title: Hello
    template: article.html
    ---
    # Body

or in a fenced ``metadata`` block (three backticks + ``metadata``).
Links and image sources in the body are resolved against the content
tree, so ``[next](../other/post.md)`` points to that page's output url.

A JSON page is a page described entirely by a JSON object; its
optional ``content`` key is treated as the Markdown body.

Python-Markdown options come from the ``markdown`` config key:

    markdown:
      extensions: [extra, toc]
      extension_configs: {toc: {permalink: true}}
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any
from urllib.parse import urljoin, urlsplit
from xml.etree.ElementTree import Element

import markdown as md
import yaml
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from sitesmith.core.engine.content import ContentNode, ContentTree, FilePath
from sitesmith.plugins.page import Page

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = ("extra",)

_FRONT_MATTER = re.compile(r"^-{3,}\s([\s\S]*?)-{3,}(\s[\s\S]*|\s?)\Z")
_METADATA_FENCE = "```metadata\n"


# ── Link resolution ─────────────────────────────────────────────────


def resolve_link(content: ContentNode, uri: str, base_url: str) -> str:
    """Resolve *uri* relative to *content* by walking the content tree.

    Falls back to resolving against *base_url* when no node matches.
    """
    parts = urlsplit(uri)
    if parts.scheme or uri.startswith("#"):
        return uri

    nav: Any = content.parent
    path_parts = parts.path.split("/") if parts.path else []
    while path_parts and nav is not None:
        part = path_parts.pop(0)
        if part == "":
            while nav.parent is not None:
                nav = nav.parent
        elif part == "..":
            nav = nav.parent
        elif part == ".":
            continue
        else:
            nav = nav.get(part) if isinstance(nav, ContentTree) else None

    if isinstance(nav, ContentNode):
        return nav.get_url() + (f"#{parts.fragment}" if parts.fragment else "")
    return urljoin(base_url, uri)


class _LinkResolver(Treeprocessor):
    def __init__(self, md_instance: md.Markdown, resolve: Any) -> None:
        super().__init__(md_instance)
        self.resolve = resolve

    def run(self, root: Element) -> None:
        for tag, attr in (("a", "href"), ("img", "src")):
            for el in root.iter(tag):
                value = el.get(attr)
                if value:
                    el.set(attr, self.resolve(value))


class LinkResolverExtension(Extension):
    """Rewrite ``a[href]`` and ``img[src]`` through a resolver function."""

    def __init__(self, resolve: Any, **kwargs: Any) -> None:
        self.resolve = resolve
        super().__init__(**kwargs)

    def extendMarkdown(self, md_instance: md.Markdown) -> None:  # noqa: N802
        # After inline patterns (20), before prettify (10)
        md_instance.treeprocessors.register(
            _LinkResolver(md_instance, self.resolve), "sitesmith_links", 15,
        )


def render_markdown(content: ContentNode, text: str, base_url: str, options: dict[str, Any]) -> str:
    """Convert *text* to html, resolving links relative to *content*."""
    extensions = list(options.get("extensions") or DEFAULT_EXTENSIONS)
    extensions.append(LinkResolverExtension(lambda uri: resolve_link(content, uri, base_url)))
    converter = md.Markdown(
        extensions=extensions,
        extension_configs=options.get("extension_configs") or {},
        output_format=options.get("output_format", "html"),
    )
    return converter.convert(text)


# ── Metadata ────────────────────────────────────────────────────────


def _parse_metadata(source: str) -> dict[str, Any]:
    if not source:
        return {}
    try:
        metadata = yaml.safe_load(source) or {}
    except yaml.MarkedYAMLError as e:
        mark = e.problem_mark
        if mark is None:
            raise ValueError(f"YAML Parsing error {e}") from e
        lines = source.split("\n")
        line = lines[mark.line] if mark.line < len(lines) else ""
        raise ValueError(f"YAML: {e.problem}\n\n{line}\n{' ' * mark.column}^\n") from e
    except yaml.YAMLError as e:
        raise ValueError(f"YAML Parsing error {e}") from e
    if not isinstance(metadata, dict):
        raise ValueError(f"YAML: metadata must be a mapping, got {type(metadata).__name__}")
    return metadata


def extract_metadata(content: str) -> tuple[dict[str, Any], str]:
    """Split *content* into ``(metadata, markdown)``."""
    header = ""
    body = content
    if content.startswith("---"):
        match = _FRONT_MATTER.match(content)
        if match:
            header, body = match.group(1), match.group(2)
    elif content.startswith(_METADATA_FENCE):
        end = content.find("\n```\n")
        if end != -1:
            header = content[len(_METADATA_FENCE):end]
            body = content[end + 5:]
    return _parse_metadata(header), body


# ── Content plugins ─────────────────────────────────────────────────


class MarkdownPage(Page):
    """A page whose body is Markdown."""

    def __init__(self, filepath: FilePath, metadata: dict[str, Any], markdown: str) -> None:
        super().__init__(filepath, metadata)
        self.markdown = markdown

    @classmethod
    async def from_file(cls, filepath: FilePath) -> MarkdownPage:
        text = await asyncio.to_thread(filepath.full.read_text, encoding="utf-8")
        metadata, body = extract_metadata(text)
        return cls(filepath, metadata, body)

    def get_location(self, base: str | None = None) -> str:
        uri = self.get_url(base)
        return uri[: uri.rfind("/") + 1]

    def get_html(self, base: str | None = None) -> str:
        """Markdown rendered to html, relative urls resolved."""
        options = self._setting("markdown") or {}
        return render_markdown(self, self.markdown, self.get_location(base), options)


class JsonPage(MarkdownPage):
    """A page created from a JSON object; ``content`` holds the Markdown body."""

    @classmethod
    async def from_file(cls, filepath: FilePath) -> JsonPage:
        text = await asyncio.to_thread(filepath.full.read_text, encoding="utf-8")
        metadata = json.loads(text)
        if not isinstance(metadata, dict):
            raise ValueError("JSON page must contain an object")
        return cls(filepath, metadata, str(metadata.get("content") or ""))


def setup(env: Any) -> None:
    env.register_content_plugin("pages", "**/*.{md,markdown,mkd}", MarkdownPage)
    env.register_content_plugin("pages", "**/*.json", JsonPage)
