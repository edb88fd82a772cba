"""
Tests for the content tree builder.
"""

import asyncio
import random

import pytest

from helpers import TextNode
from sitesmith.core.engine.builder import build_tree
from sitesmith.core.engine.content import ContentTree, StaticFile, flatten, inspect_tree
from sitesmith.core.errors import ContentError

SITE = {
    "contents/index.txt": "home",
    "contents/about.txt": "about",
    "contents/logo.png": b"\x89PNG",
    "contents/posts/b.txt": "second",
    "contents/posts/a.txt": "first",
    "contents/posts/img/pic.jpg": b"jpg",
}


class SlowNode(TextNode):
    """Finishes in random order to shake out scheduling dependence."""

    @classmethod
    async def from_file(cls, filepath):
        await asyncio.sleep(random.uniform(0, 0.01))
        return cls(filepath, filepath.full.read_text(encoding="utf-8"))


class TestBuildTree:
    @pytest.mark.asyncio
    async def test_structure_and_groups(self, make_env):
        env = make_env(SITE)
        env.register_content_plugin("texts", "**/*.txt", TextNode)

        tree = await build_tree(env)

        assert list(tree) == ["about.txt", "index.txt", "logo.png", "posts"]
        assert isinstance(tree["posts"], ContentTree)
        assert isinstance(tree["about.txt"], TextNode)
        assert isinstance(tree["logo.png"], StaticFile)
        assert tree.groups["texts"] == [tree["about.txt"], tree["index.txt"]]
        assert tree.groups["files"] == [tree["logo.png"]]
        assert tree.groups["directories"] == [tree["posts"]]
        assert list(tree["posts"]) == ["a.txt", "b.txt", "img"]
        assert tree["posts"].filename == "posts"
        assert tree["posts"]["img"].filename == "posts/img"

    @pytest.mark.asyncio
    async def test_parent_links_and_index(self, make_env):
        env = make_env(SITE)
        env.register_content_plugin("texts", "**/*.txt", TextNode)

        tree = await build_tree(env)

        assert tree.parent is None
        assert tree["posts"].parent is tree
        assert tree["posts"]["a.txt"].parent is tree["posts"]
        assert tree.index is tree["index.txt"]
        assert tree["posts"].index is None

    @pytest.mark.asyncio
    async def test_node_metadata(self, make_env, site):
        env = make_env(SITE)
        env.register_content_plugin("texts", "**/*.txt", TextNode)

        tree = await build_tree(env)
        node = tree["posts"]["a.txt"]

        assert node.env is env
        assert node.binding.group == "texts"
        assert node.source_path == (site / "contents" / "posts" / "a.txt").resolve()
        assert node.filepath.relative == "posts/a.txt"

    @pytest.mark.asyncio
    async def test_ignore_patterns(self, make_env):
        env = make_env(SITE, ignore=["posts/img/**", "*.png"])

        tree = await build_tree(env)

        assert "logo.png" not in tree
        assert list(tree["posts"]) == ["a.txt", "b.txt"]

    @pytest.mark.asyncio
    async def test_later_plugin_wins(self, make_env):
        class Special(TextNode):
            pass

        env = make_env(SITE)
        env.register_content_plugin("texts", "**/*.txt", TextNode)
        env.register_content_plugin("special", "posts/*.txt", Special)

        tree = await build_tree(env)

        assert type(tree["posts"]["a.txt"]) is Special
        assert type(tree["about.txt"]) is TextNode
        assert tree["posts"].groups["special"] == [tree["posts"]["a.txt"], tree["posts"]["b.txt"]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 3, 40])
    async def test_output_independent_of_scheduling(self, make_env, limit):
        files = {f"contents/d{i}/f{j}.txt": f"{i}-{j}" for i in range(4) for j in range(6)}
        env = make_env(files, file_limit=limit)
        env.register_content_plugin("texts", "**/*.txt", SlowNode)

        tree = await build_tree(env)

        assert list(tree) == ["d0", "d1", "d2", "d3"]
        assert [n.filepath.relative for n in flatten(tree)] == sorted(
            f"d{i}/f{j}.txt" for i in range(4) for j in range(6)
        )
        assert inspect_tree(tree) == inspect_tree(await build_tree(env))

    @pytest.mark.asyncio
    async def test_failure_names_the_file(self, make_env):
        class Broken(TextNode):
            @classmethod
            def from_file(cls, filepath):
                if filepath.relative == "posts/b.txt":
                    raise ValueError("cannot parse")
                return super().from_file(filepath)

        env = make_env(SITE)
        env.register_content_plugin("texts", "**/*.txt", Broken)

        with pytest.raises(ContentError) as excinfo:
            await build_tree(env)

        assert str(excinfo.value) == "posts/b.txt: cannot parse"
        assert excinfo.value.path == "posts/b.txt"
        assert isinstance(excinfo.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_plugin_must_return_a_node(self, make_env):
        class Wrong(TextNode):
            @classmethod
            def from_file(cls, filepath):
                return "not a node"

        env = make_env({"contents/a.txt": "x"})
        env.register_content_plugin("texts", "**/*.txt", Wrong)

        with pytest.raises(ContentError, match="expected a ContentNode"):
            await build_tree(env)

    @pytest.mark.asyncio
    async def test_missing_contents_directory(self, make_env):
        env = make_env(contents="./nowhere")
        with pytest.raises(ContentError):
            await build_tree(env)
