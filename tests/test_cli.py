"""
Tests for CLI commands — build, tree, version and global options.
"""

import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from helpers import write_files
from sitesmith import __version__
from sitesmith.main import cli
from sitesmith.ui.cli.build import prepare_output_dir
from sitesmith.ui.cli.common import collect_overrides, get_storage_dir, parse_require


@pytest.fixture
def blog(tmp_path: Path) -> Path:
    write_files(tmp_path, {
        "config.yml": textwrap.dedent("""\
            locals:
              site_name: CLI Blog
            default_template: page.html
        """),
        "contents/index.md": "---\ntitle: Home\n---\nHello",
        "contents/posts/first.md": "---\ntitle: First\n---\nPost",
        "contents/img/logo.png": b"\x89PNG",
        "templates/page.html": "{{ site_name }}: {{ page.title }}",
    })
    return tmp_path


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "build and preview static sites" in result.output
        for command in ("build", "preview", "tree", "version"):
            assert command in result.output

    def test_version_option(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_version_command(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert result.output.strip() == __version__


class TestBuildCommand:
    def test_build(self, blog: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["-C", str(blog), "build"])

        assert result.exit_code == 0, result.output
        assert "Built 3 files" in result.output
        assert (blog / "build" / "index.html").read_text() == "CLI Blog: Home"
        assert (blog / "build" / "posts" / "first.html").read_text() == "CLI Blog: First"
        assert (blog / "build" / "img" / "logo.png").read_bytes() == b"\x89PNG"

    def test_output_and_ignore_options(self, blog: Path):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["-q", "-C", str(blog), "build", "-o", "public", "-I", "posts/**"],
        )

        assert result.exit_code == 0, result.output
        assert (blog / "public" / "index.html").exists()
        assert not (blog / "public" / "posts").exists()
        assert "Built" not in result.output

    def test_clean_removes_stale_files(self, blog: Path):
        write_files(blog, {"build/stale.html": "old"})
        runner = CliRunner()
        result = runner.invoke(cli, ["-C", str(blog), "build", "--clean"])

        assert result.exit_code == 0, result.output
        assert not (blog / "build" / "stale.html").exists()
        assert (blog / "build" / "index.html").exists()

    def test_alternate_config_file(self, blog: Path):
        write_files(blog, {"other.yml": "locals:\n  site_name: Other\ndefault_template: page.html\n"})
        runner = CliRunner()
        result = runner.invoke(cli, ["-C", str(blog), "-c", "other.yml", "build"])

        assert result.exit_code == 0, result.output
        assert (blog / "build" / "index.html").read_text() == "Other: Home"

    def test_missing_contents_directory(self, tmp_path: Path):
        (tmp_path / "templates").mkdir()
        runner = CliRunner()
        result = runner.invoke(cli, ["-C", str(tmp_path), "build"])

        assert result.exit_code == 1
        assert "contents path invalid" in result.output

    def test_render_error_exits_1(self, blog: Path):
        write_files(blog, {"contents/bad.md": "---\ntemplate: nope.html\n---\nx"})
        runner = CliRunner()
        result = runner.invoke(cli, ["-C", str(blog), "build"])

        assert result.exit_code == 1
        assert "unknown template 'nope.html'" in result.output


class TestTreeCommand:
    def test_tree_lists_contents(self, blog: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["-C", str(blog), "tree"])

        assert result.exit_code == 0, result.output
        for name in ("index.md", "posts", "first.md", "logo.png"):
            assert name in result.output


class TestOptionParsing:
    def test_parse_require(self):
        assert parse_require("a:mod_a, pkg/helpers.py,json") == {
            "a": "mod_a",
            "helpers": "pkg/helpers.py",
            "json": "json",
        }

    def test_collect_overrides(self):
        overrides = collect_overrides(
            contents="src", templates=None, locals_="data.yml", ignore="a/**, b.md", plugins="p1,p2",
        )
        assert overrides == {
            "contents": "src",
            "locals": "data.yml",
            "ignore": ["a/**", "b.md"],
            "plugins": ["p1", "p2"],
        }

    def test_prepare_output_dir(self, tmp_path: Path):
        output = tmp_path / "out"
        prepare_output_dir(output, clean=False)
        assert output.is_dir()

        (output / "keep.txt").write_text("x")
        prepare_output_dir(output, clean=False)
        assert (output / "keep.txt").exists()

        prepare_output_dir(output, clean=True)
        assert list(output.iterdir()) == []

    def test_storage_dir_from_environment(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("SITESMITH_PATH", str(tmp_path / "store"))
        assert get_storage_dir() == (tmp_path / "store").resolve()

    def test_storage_dir_default(self, monkeypatch):
        monkeypatch.delenv("SITESMITH_PATH", raising=False)
        assert get_storage_dir() == Path.home() / ".sitesmith"
