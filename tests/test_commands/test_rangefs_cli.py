"""Integration tests for the main CLI entry point."""

from __future__ import annotations

import json
import re

from click.testing import CliRunner

from rangefs import __version__
from rangefs.__main__ import main


def _clean(output: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", output)


class TestMainCLI:
    """Test main CLI functionality."""

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_main_help(self) -> None:
        """Test main help lists the commands."""
        result = self.runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Pack static sites into one archive" in result.output
        for command in ("build", "examine", "get", "validate", "version"):
            assert command in result.output

    def test_version_option(self) -> None:
        """Test the --version flag."""
        result = self.runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert f"rangefs, version {__version__}" in result.output

    def test_version_command(self) -> None:
        """Test version command."""
        result = self.runner.invoke(main, ["version"])
        assert result.exit_code == 0
        assert f"rangefs {__version__}" in _clean(result.output)

    def test_version_command_verbose(self) -> None:
        """Test version command with verbose flag."""
        result = self.runner.invoke(main, ["--verbose", "version"])
        assert result.exit_code == 0
        clean_output = _clean(result.output)
        assert "Python" in clean_output
        assert "Platform:" in clean_output

    def test_version_command_json_output(self) -> None:
        """Test version command with JSON output."""
        result = self.runner.invoke(main, ["--output", "json", "version"])
        assert result.exit_code == 0

        json_output = json.loads(result.output.strip())
        assert json_output["name"] == "rangefs"
        assert json_output["version"] == __version__
        assert "python_version" in json_output

    def test_config_file(self, tmp_path) -> None:
        """Test a config file sets the default output format."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"output_format": "json"}))

        result = self.runner.invoke(main, ["--config", str(config_file), "version"])
        assert result.exit_code == 0
        assert json.loads(result.output)["name"] == "rangefs"

    def test_invalid_config_file(self, tmp_path) -> None:
        """Test an invalid config file fails cleanly."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"output_format": "xml"}))

        result = self.runner.invoke(main, ["--config", str(config_file), "version"])
        assert result.exit_code != 0
        assert "Failed to load configuration" in result.output

    def test_missing_config_file(self) -> None:
        """Test a nonexistent config path is rejected by click."""
        result = self.runner.invoke(main, ["--config", "/nonexistent/config.json", "version"])
        assert result.exit_code == 2

    def test_invalid_output_format(self) -> None:
        """Test unknown output formats are rejected."""
        result = self.runner.invoke(main, ["--output", "xml", "version"])
        assert result.exit_code == 2
