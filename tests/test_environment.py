"""
Tests for the Environment — creation, locals, module and plugin loading, views.
"""

import logging
import sys
import textwrap
from pathlib import Path

import pytest

from helpers import write_files
from sitesmith.core.engine.environment import Environment
from sitesmith.core.errors import ConfigError, PluginError


class TestCreate:
    def test_from_config_path_uses_its_directory(self, tmp_path: Path):
        write_files(tmp_path, {"config.yml": "contents: ./src\nbaseUrl: /docs/\n"})

        env = Environment.create(tmp_path / "config.yml")

        assert env.work_dir == tmp_path.resolve()
        assert env.contents_path == (tmp_path / "src").resolve()
        assert env.templates_path == (tmp_path / "templates").resolve()
        assert env.config.base_url == "/docs/"
        assert env.config.filename == (tmp_path / "config.yml").resolve()

    def test_from_mapping(self, tmp_path: Path):
        env = Environment.create({"output": "./out", "_fileLimit": 2}, tmp_path)
        assert env.config.output == "./out"
        assert env.config.file_limit == 2
        assert env.config.filename is None

    def test_invalid_mapping(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid site configuration"):
            Environment.create({"port": "not-a-port"}, tmp_path)

    def test_path_helpers(self, tmp_path: Path):
        env = Environment.create(None, tmp_path)
        assert env.relative_contents_path(env.contents_path) == ""
        assert env.relative_contents_path(env.contents_path / "a" / "b.md") == "a/b.md"
        assert env.resolve_contents_path("a/b.md") == (tmp_path / "contents" / "a" / "b.md").resolve()
        assert env.relative_path(tmp_path / "config.yml") == "config.yml"


class TestLocals:
    def test_inline_locals(self, tmp_path: Path):
        env = Environment.create({"locals": {"name": "Demo"}}, tmp_path)
        assert env.get_locals() == {"name": "Demo"}

    def test_locals_from_file(self, tmp_path: Path):
        write_files(tmp_path, {"locals.yml": "name: From File\nnav: [a, b]\n"})
        env = Environment.create({"locals": "locals.yml"}, tmp_path)
        assert env.locals == {"name": "From File", "nav": ["a", "b"]}

    def test_locals_file_must_be_a_mapping(self, tmp_path: Path):
        write_files(tmp_path, {"locals.json": "[1, 2]"})
        with pytest.raises(ConfigError, match="must contain a mapping"):
            Environment.create({"locals": "locals.json"}, tmp_path)

    def test_missing_locals_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Cannot load locals"):
            Environment.create({"locals": "nope.yml"}, tmp_path)

    def test_require_adds_modules(self, tmp_path: Path):
        write_files(tmp_path, {"helpers_mod.py": "ANSWER = 42\n"})
        env = Environment.create(
            {"require": {"json": "json", "helpers": "./helpers_mod.py"}}, tmp_path,
        )
        assert env.locals["json"] is sys.modules["json"]
        assert env.locals["helpers"].ANSWER == 42

    def test_require_warnings(self, tmp_path: Path, caplog):
        with caplog.at_level(logging.WARNING):
            env = Environment.create(
                {
                    "locals": {"json": "shadowed"},
                    "require": {"json": "json", "missing": "no_such_module_xyz"},
                },
                tmp_path,
            )
        assert env.locals["json"] is sys.modules["json"]
        assert "missing" not in env.locals
        assert "overwrites previous local" in caplog.text
        assert "unable to load 'no_such_module_xyz'" in caplog.text


class TestPlugins:
    @pytest.mark.asyncio
    async def test_bundled_then_configured_plugins(self, tmp_path: Path):
        write_files(tmp_path, {
            "my_plugin.py": textwrap.dedent("""\
                async def setup(env):
                    env.register_view("hello", lambda node, ctx: b"hello")
            """),
        })
        env = Environment.create({"plugins": ["./my_plugin.py"]}, tmp_path)

        await env.load_plugins()

        assert "hello" in env.views
        assert "template" in env.views
        assert {"Page", "MarkdownPage", "JsonPage", "JinjaTemplate"} <= set(env.plugins)

    @pytest.mark.asyncio
    async def test_setup_error_is_wrapped(self, tmp_path: Path):
        write_files(tmp_path, {"bad_plugin.py": "def setup(env):\n    raise RuntimeError('boom')\n"})
        env = Environment.create({"plugins": ["./bad_plugin.py"]}, tmp_path)

        with pytest.raises(PluginError) as excinfo:
            await env.load_plugins()
        assert excinfo.value.plugin_id == "./bad_plugin.py"
        assert "boom" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_plugin_without_setup(self, tmp_path: Path):
        write_files(tmp_path, {"empty_plugin.py": "X = 1\n"})
        env = Environment.create(None, tmp_path)
        with pytest.raises(PluginError, match="no setup"):
            await env.load_plugin_module("./empty_plugin.py")

    @pytest.mark.asyncio
    async def test_missing_plugin_module(self, tmp_path: Path):
        env = Environment.create({"plugins": ["no_such_plugin_xyz"]}, tmp_path)
        with pytest.raises(PluginError, match="no_such_plugin_xyz"):
            await env.load_plugins()

    @pytest.mark.asyncio
    async def test_dotted_name_resolves_in_work_dir(self, tmp_path: Path):
        write_files(tmp_path, {
            "site_plugins/__init__.py": "",
            "site_plugins/feeds.py": "def setup(env):\n    env.register_generator('feeds', lambda c: {})\n",
        })
        env = Environment.create({"plugins": ["site_plugins.feeds"]}, tmp_path)

        await env.load_plugins()

        assert [b.group for b in env.registry.generators] == ["feeds"]

    @pytest.mark.asyncio
    async def test_content_groups(self, tmp_path: Path):
        env = Environment.create(None, tmp_path)
        await env.load_plugins()
        env.register_generator("feeds", lambda contents: {})
        assert env.get_content_groups() == ["pages", "feeds"]

    @pytest.mark.asyncio
    async def test_reset_clears_registrations(self, tmp_path: Path):
        env = Environment.create(None, tmp_path)
        await env.load_plugins()
        env.reset()
        assert env.plugins == {}
        assert list(env.views) == ["none"]


class TestViews:
    def _write_views(self, root: Path) -> None:
        write_files(root, {
            "views/shout.py": "def view(node, ctx):\n    return b'SHOUT'\n",
            "views/_helpers.py": "X = 1\n",
            "views/README.txt": "not a view",
        })

    @pytest.mark.asyncio
    async def test_load_views_registers_by_file_stem(self, tmp_path: Path):
        self._write_views(tmp_path)
        env = Environment.create({"views": "./views"}, tmp_path)

        await env.load_views()

        assert "shout" in env.views
        assert "_helpers" not in env.views
        assert env.views["shout"](None, None) == b"SHOUT"

    @pytest.mark.asyncio
    async def test_views_are_evicted_on_reset(self, tmp_path: Path):
        self._write_views(tmp_path)
        env = Environment.create({"views": "./views"}, tmp_path)
        await env.load_views()
        name = env.module_name_for(tmp_path / "views" / "shout.py")
        assert name in sys.modules

        env.reset()

        assert name not in sys.modules
        assert "shout" not in env.views

    @pytest.mark.asyncio
    async def test_evict_module_picks_up_changes(self, tmp_path: Path):
        self._write_views(tmp_path)
        env = Environment.create({"views": "./views"}, tmp_path)
        path = tmp_path / "views" / "shout.py"
        env.load_view_module(path)

        path.write_text("def view(node, ctx):\n    return b'WHISPER'\n")
        env.evict_module(path)
        env.load_view_module(path)

        assert env.views["shout"](None, None) == b"WHISPER"
        env.reset()

    def test_view_module_without_view(self, tmp_path: Path):
        write_files(tmp_path, {"views/broken.py": "X = 1\n"})
        env = Environment.create({"views": "./views"}, tmp_path)
        with pytest.raises(PluginError, match="callable 'view'"):
            env.load_view_module(tmp_path / "views" / "broken.py")

    @pytest.mark.asyncio
    async def test_no_views_configured(self, tmp_path: Path):
        env = Environment.create(None, tmp_path)
        assert env.views_path is None
        await env.load_views()
        assert list(env.views) == ["none"]


class TestBuild:
    @pytest.mark.asyncio
    async def test_build_into_explicit_output(self, make_env, site):
        env = make_env({
            "contents/a.md": "---\ntemplate: t.html\n---\nA",
            "templates/t.html": "{{ page.html }}",
        })

        count = await env.build(site / "elsewhere")

        assert count == 1
        assert env.mode == "build"
        assert (site / "elsewhere" / "a.html").read_text() == "<p>A</p>"
        assert not (site / "build").exists()

    @pytest.mark.asyncio
    async def test_load_returns_everything_needed_to_render(self, make_env):
        env = make_env(
            {"contents/a.md": "A", "templates/t.html": "x"},
            locals={"k": "v"},
        )
        result = await env.load()
        assert list(result.contents) == ["a.md"]
        assert list(result.templates) == ["t.html"]
        assert result.locals == {"k": "v"}
