"""
Test helpers — site file writers and a minimal content plugin.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

from sitesmith.core.engine.content import ContentNode, FilePath


def write_files(root: Path, files: dict[str, str | bytes]) -> None:
    """Create *files* (relative path → content) below *root*."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


class TextNode(ContentNode):
    """Minimal content plugin: output is the source text, upper-cased."""

    def __init__(self, filepath: FilePath | None = None, text: str = "", name: str | None = None) -> None:
        self.filepath = filepath
        self.text = text
        self.name = name

    @classmethod
    def from_file(cls, filepath: FilePath) -> TextNode:
        return cls(filepath, filepath.full.read_text(encoding="utf-8"))

    @property
    def filename(self) -> str:
        if self.name is not None:
            return self.name
        return self.filepath.relative.rsplit(".", 1)[0] + ".txt"

    @property
    def view(self) -> Callable[..., Any]:
        return lambda node, context: node.text.upper().encode("utf-8")
