"""
Tests for CLI option parsing and settings overrides.

Tests that command line options reach Settings and OpsConfig:
- None overrides leave environment settings untouched
- --jobs / --fail-fast populate OpsConfig
- --no-build / --zstd-level override Settings
- --only is repeatable and selects manifest assets
"""
from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from piper_gen.cli import app
from piper_gen.cli_context import CLIContext
from piper_gen.operations import BuildReport, Operations


class TestCLIContext:
    """Test CLIContext construction."""

    def test_from_env_without_overrides(self):
        """Test that environment settings are used as-is."""
        with patch.dict(os.environ, {"PIPER_GEN_ZSTD_LEVEL": "7"}):
            context = CLIContext.from_env("out")
        assert context.settings.root_dir == Path("out")
        assert context.settings.zstd_level == 7
        assert context.downloader is None

    def test_none_overrides_ignored(self):
        """Test that options left unset do not replace settings."""
        with patch.dict(os.environ, {"PIPER_GEN_ZSTD_LEVEL": "7"}):
            context = CLIContext.from_env("out", zstd_level=None, run_build=None)
        assert context.settings.zstd_level == 7
        assert context.settings.run_build is True

    def test_overrides_applied_and_validated(self):
        """Test that given options win over the environment."""
        context = CLIContext.from_env("out", zstd_level=3, run_build=False)
        assert context.settings.zstd_level == 3
        assert context.settings.run_build is False

        with pytest.raises(ValueError, match="zstd_level"):
            CLIContext.from_env("out", zstd_level=30)

    def test_operations_uses_context_settings(self):
        """Test that the facade receives the context's settings."""
        context = CLIContext.from_env("out")
        ops = context.operations()
        assert ops.settings is context.settings
        assert ops.cfg.jobs == 1


class TestBuildOptions:
    """Test build command option wiring."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_options_reach_config_and_settings(self, tmp_path):
        """Test that build options populate OpsConfig and Settings."""
        with patch.object(Operations, "build_all", autospec=True, return_value=BuildReport()) as build_all:
            result = self.runner.invoke(app, [
                "build", str(tmp_path),
                "--only", "kristin", "--only", "linux",
                "--jobs", "3",
                "--fail-fast",
                "--no-build",
                "--zstd-level", "5",
            ])

        assert result.exit_code == 0
        ops, manifest = build_all.call_args.args
        assert ops.cfg.jobs == 3
        assert ops.cfg.fail_fast is True
        assert ops.settings.root_dir == tmp_path
        assert ops.settings.run_build is False
        assert ops.settings.zstd_level == 5
        assert manifest.names() == ["kristin", "linux"]

    def test_defaults_use_bundled_manifest(self, tmp_path):
        """Test that build without options packages every bundled asset."""
        with patch.object(Operations, "build_all", autospec=True, return_value=BuildReport()) as build_all:
            result = self.runner.invoke(app, ["build", str(tmp_path)])

        assert result.exit_code == 0
        ops, manifest = build_all.call_args.args
        assert ops.cfg.jobs == 1
        assert ops.settings.run_build is True
        assert ops.settings.zstd_level == 22
        assert manifest.names() == ["alan", "bryce", "jenny", "kristin", "darwin", "linux", "windows"]

    def test_invalid_jobs_rejected(self, tmp_path):
        """Test that --jobs 0 is invalid input."""
        result = self.runner.invoke(app, ["build", str(tmp_path), "--jobs", "0"])
        assert result.exit_code == 2
