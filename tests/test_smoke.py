"""
Smoke tests — verify the bootstrap is healthy.

These tests ensure the basic scaffolding works:
- Package imports successfully
- CLI entrypoint responds
- Bundled plugins import and expose setup()
"""

import importlib

import pytest
from click.testing import CliRunner

from sitesmith import __version__, create_environment
from sitesmith.core.engine import Environment
from sitesmith.main import cli


class TestBootstrap:
    """Verify the project bootstrap is healthy."""

    def test_version_is_set(self):
        """Version string should be defined and non-empty."""
        assert __version__
        assert isinstance(__version__, str)

    def test_cli_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "sitesmith" in result.output

    def test_subcommand_help(self):
        runner = CliRunner()
        for command in ("build", "preview", "tree"):
            result = runner.invoke(cli, [command, "--help"])
            assert result.exit_code == 0, command
            assert "--contents" in result.output

    @pytest.mark.parametrize("module", Environment.default_plugins)
    def test_bundled_plugins_have_setup(self, module):
        assert callable(importlib.import_module(module).setup)

    def test_create_environment(self, tmp_path):
        env = create_environment({"output": "./out"}, tmp_path)
        assert isinstance(env, Environment)
        assert env.config.output == "./out"
