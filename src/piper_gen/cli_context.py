"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
downloader, avoiding global state and enabling proper dependency injection.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .downloader import CachingDownloader
from .operations import Operations, OpsConfig
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, downloader) for one
    CLI command execution. A downloader is only injected when one was
    given; otherwise Operations creates it on first network access.
    """
    settings: Settings
    downloader: Optional[CachingDownloader] = None

    @classmethod
    def from_env(cls, root_dir: str | Path, **overrides) -> CLIContext:
        """
        Create CLI context from environment variables.

        Args:
            root_dir: Output root directory
            **overrides: Settings fields given on the command line (None values ignored)

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env(root_dir)
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            settings = dataclasses.replace(settings, **overrides)
        return cls(settings=settings)

    def operations(self, config: Optional[OpsConfig] = None) -> Operations:
        """Create the Operations facade for this command."""
        return Operations(config=config or OpsConfig(), settings=self.settings, downloader=self.downloader)
