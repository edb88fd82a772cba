"""
Engine — build a content tree from a source directory and render it.

Public API:
    from sitesmith.core.engine import Environment, ContentNode, ContentTree
    from sitesmith.core.engine import StaticFile, TemplatePlugin, FilePath
"""

from sitesmith.core.engine.content import (
    ContentNode,
    ContentTree,
    FilePath,
    RenderContext,
    StaticFile,
)
from sitesmith.core.engine.environment import Environment
from sitesmith.core.engine.templates import TemplatePlugin

__all__ = [
    "ContentNode",
    "ContentTree",
    "Environment",
    "FilePath",
    "RenderContext",
    "StaticFile",
    "TemplatePlugin",
]
