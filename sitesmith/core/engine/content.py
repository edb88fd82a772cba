"""
Content model — nodes, trees, and the tree algebra (flatten, merge).

A ContentNode is one renderable unit that becomes one output file.
A ContentTree mirrors a source directory: an ordered mapping of
child name → node or subtree, plus *group* indices
(``tree.groups["files"]``, ``tree.groups["directories"]``, one list
per plugin/generator group).

Ownership is strictly top-down.  The ``parent`` link held by nodes and
subtrees is a weak reference used only for upward lookup (relative
links, ``index`` pages); it never keeps a tree alive.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Iterator, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple
from urllib.parse import urljoin

from sitesmith.core.engine.pool import maybe_await
from sitesmith.core.errors import GeneratorContractError, RenderError

logger = logging.getLogger(__name__)


class FilePath(NamedTuple):
    """Absolute and tree-relative location of a source file."""

    full: Path
    relative: str


@dataclass
class RenderContext:
    """Everything a view gets to see while rendering one node."""

    env: Any
    contents: ContentTree
    templates: dict[str, Any]
    locals: dict[str, Any] = field(default_factory=dict)


class _ParentLink:
    """Mixin holding a non-owning parent reference."""

    _parent_ref: weakref.ReferenceType | None = None

    @property
    def parent(self) -> ContentTree | None:
        return self._parent_ref() if self._parent_ref is not None else None

    @parent.setter
    def parent(self, value: ContentTree | None) -> None:
        self._parent_ref = weakref.ref(value) if value is not None else None


# ── Nodes ───────────────────────────────────────────────────────────


class ContentNode(_ParentLink):
    """Base class for content plugins.

    Subclasses must implement:
      - from_file()  — classmethod factory (sync or async)
      - filename     — output path relative to the build directory
      - view         — a registered view name, or ``view(node, context)``

    They may override ``plugin_color`` / ``plugin_info`` for the tree
    printout.
    """

    env: Any = None
    binding: Any = None
    source_path: Path | str | None = None

    @classmethod
    def from_file(cls, filepath: FilePath) -> ContentNode:
        """Create an instance from *filepath*; may return an awaitable."""
        raise NotImplementedError(f"{cls.__name__}.from_file")

    @property
    def filename(self) -> str:
        raise NotImplementedError(f"{type(self).__name__}.filename")

    @property
    def view(self) -> str | Callable[..., Any]:
        raise NotImplementedError(f"{type(self).__name__}.view")

    def get_url(self, base: str | None = None) -> str:
        """Return the url of this content resolved against *base*."""
        if base is None:
            base = self.env.config.base_url if self.env is not None else "/"
        if not base.endswith("/"):
            base += "/"
        return urljoin(base, self.filename.replace("\\", "/"))

    @property
    def url(self) -> str:
        return self.get_url()

    @property
    def plugin_color(self) -> str:
        return "cyan"

    @property
    def plugin_info(self) -> str:
        return f"url: {self.url}"

    async def render(self, context: RenderContext) -> Any:
        """Resolve this node's view and run it.

        Returns bytes, a binary file-like object, or None for no output.
        """
        view = self.view
        if isinstance(view, str):
            name = view
            view = context.env.registry.views.get(name)
            if view is None:
                raise RenderError(
                    self.filename, f"content '{self.filename}' specifies unknown view '{name}'",
                )
        return await maybe_await(view(self, context))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.source_path}>"


def _static_view(node: StaticFile, context: RenderContext) -> Any:
    return open(node.filepath.full, "rb")


class StaticFile(ContentNode):
    """Pass-through file: served and written as-is.  Last in chain."""

    def __init__(self, filepath: FilePath) -> None:
        self.filepath = filepath

    @classmethod
    def from_file(cls, filepath: FilePath) -> StaticFile:
        return cls(filepath)

    @property
    def filename(self) -> str:
        return self.filepath.relative

    @property
    def view(self) -> Callable[..., Any]:
        return _static_view

    @property
    def plugin_color(self) -> str:
        return "none"


# ── Trees ───────────────────────────────────────────────────────────


class ContentTree(_ParentLink, MutableMapping):
    """Ordered mapping of child name → ContentNode | ContentTree."""

    # Identity semantics: two empty trees are not the same tree
    __eq__ = object.__eq__
    __hash__ = object.__hash__

    def __init__(self, filename: str = "", group_names: list[str] | tuple[str, ...] = ()) -> None:
        self._items: dict[str, ContentNode | ContentTree] = {}
        self.filename = filename
        self.group_names = list(group_names)
        self.groups: dict[str, list[Any]] = {"directories": [], "files": []}
        for name in self.group_names:
            self.groups.setdefault(name, [])

    def __getitem__(self, key: str) -> ContentNode | ContentTree:
        return self._items[key]

    def __setitem__(self, key: str, value: ContentNode | ContentTree) -> None:
        self._items[key] = value

    def __delitem__(self, key: str) -> None:
        del self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"<ContentTree '{self.filename}' ({len(self)} items)>"

    @property
    def index(self) -> ContentNode | ContentTree | None:
        """First child whose name starts with ``index.``."""
        for key, item in self._items.items():
            if key.startswith("index."):
                return item
        return None

    def group(self, name: str) -> list[Any]:
        return self.groups.setdefault(name, [])

    # ── Mutation helpers (keep group indices consistent) ────────────

    def add_node(self, key: str, node: ContentNode, reparent: bool = True) -> None:
        self._detach(key)
        if reparent:
            node.parent = self
        self._items[key] = node
        self.group(node.binding.group).append(node)

    def add_tree(self, key: str, tree: ContentTree) -> None:
        self._detach(key)
        tree.parent = self
        self._items[key] = tree
        self.groups["directories"].append(tree)

    def _detach(self, key: str) -> None:
        existing = self._items.pop(key, None)
        if existing is None:
            return
        for members in self.groups.values():
            for i, member in enumerate(members):
                if member is existing:
                    del members[i]
                    return


# ── Tree algebra ────────────────────────────────────────────────────


def flatten(tree: ContentTree) -> list[ContentNode]:
    """Return all nodes in *tree*, depth first, in sibling order."""
    result: list[ContentNode] = []
    for item in tree.values():
        if isinstance(item, ContentTree):
            result.extend(flatten(item))
        else:
            result.append(item)
    return result


def merge_trees(root: ContentTree, tree: ContentTree, reparent: bool = True) -> None:
    """Merge *tree* into *root*.  On key conflict the item from *tree* wins.

    Subtrees merge recursively; nodes are re-parented into *root* unless
    *reparent* is false, in which case they keep pointing at *tree*.
    A subtree never replaces an existing node of the same name.
    """
    for key, item in tree.items():
        if isinstance(item, ContentNode):
            root.add_node(key, item, reparent)
        elif isinstance(item, ContentTree):
            existing = root.get(key)
            if existing is None:
                existing = ContentTree(_join(root.filename, key), item.group_names)
                root.add_tree(key, existing)
            if isinstance(existing, ContentTree):
                merge_trees(existing, item, reparent)
            else:
                logger.debug("not merging directory '%s' over a file of the same name", key)
        else:
            raise GeneratorContractError(key, f"Invalid item in tree for '{key}'")


def _join(dirname: str, name: str) -> str:
    return f"{dirname}/{name}" if dirname else name


def inspect_tree(
    tree: ContentTree,
    depth: int = 0,
    style: Callable[..., str] | None = None,
) -> str:
    """Return a pretty printout of *tree*: directories first, then by name.

    *style* is an optional ``style(text, color=None, bold=False)`` used to
    colour names (the CLI passes a click.style wrapper).
    """
    paint = style or (lambda text, color=None, bold=False: text)
    pad = "  " * (depth + 1)
    keys = sorted(tree.keys(), key=lambda k: (not isinstance(tree[k], ContentTree), k))

    lines: list[str] = []
    for key in keys:
        item = tree[key]
        if isinstance(item, ContentTree):
            lines.append(f"{pad}{paint(key, bold=True)}/")
            sub = inspect_tree(item, depth + 1, style)
            if sub:
                lines.append(sub)
        else:
            color = item.plugin_color
            name = key if color == "none" else paint(key, color=color)
            lines.append(f"{pad}{name} ({paint(item.plugin_info, color='bright_black')})")
    return "\n".join(lines)
