"""
Settings and configuration for piper-gen.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables when the CLI starts.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

__all__ = ["Settings", "create_settings_from_env", "MAX_ZSTD_LEVEL"]

# zstd's "ultra" maximum; the default for package archives
MAX_ZSTD_LEVEL = 22


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for a piper-gen run.

    Output/Cache Settings:
        root_dir: Directory receiving package directories and the download cache
        cache_subdir: Cache directory name under root_dir
        zstd_level: Zstandard level for dist.tzst (1-22)

    Network Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Extra attempts for failed transfers (0=no retry)

    Package Scaffolding Settings:
        module_prefix: Go module path prefix for generated packages
        asset_module: Go module providing the asset.Asset type
        go_version: Go language version written to go.mod
        run_build: Run `go mod tidy` and `go build` after generating a package
    """
    root_dir: Path
    cache_subdir: str = "piper-gen.cache"
    zstd_level: int = MAX_ZSTD_LEVEL

    http_timeout_s: float = 60.0
    http_retry: int = 2

    module_prefix: str = "github.com/piper-tts-go/"
    asset_module: str = "github.com/piper-tts-go/piper-go-asset"
    go_version: str = "1.21"
    run_build: bool = True

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.root_dir or not str(self.root_dir):
            raise ValueError("root_dir is required")
        # Accept str for convenience
        object.__setattr__(self, "root_dir", Path(self.root_dir))

        if not self.cache_subdir or "/" in self.cache_subdir or self.cache_subdir in (".", ".."):
            raise ValueError(f"Invalid cache_subdir: {self.cache_subdir!r}")

        if not 1 <= self.zstd_level <= MAX_ZSTD_LEVEL:
            raise ValueError(f"zstd_level must be between 1 and {MAX_ZSTD_LEVEL}, got {self.zstd_level}")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if not self.module_prefix.endswith("/"):
            raise ValueError(f"module_prefix must end with '/', got {self.module_prefix!r}")

        if not re.match(r"^\d+\.\d+(?:\.\d+)?$", self.go_version):
            raise ValueError(f"Invalid go_version format: {self.go_version}")

    @property
    def cache_dir(self) -> Path:
        return self.root_dir / self.cache_subdir


def create_settings_from_env(root_dir: str | Path) -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - PIPER_GEN_CACHE_SUBDIR (default: piper-gen.cache)
        - PIPER_GEN_ZSTD_LEVEL (default: 22)
        - PIPER_GEN_HTTP_TIMEOUT (default: 60.0)
        - PIPER_GEN_HTTP_RETRY (default: 2)
        - PIPER_GEN_MODULE_PREFIX (default: github.com/piper-tts-go/)
        - PIPER_GEN_ASSET_MODULE (default: github.com/piper-tts-go/piper-go-asset)
        - PIPER_GEN_GO_VERSION (default: 1.21)
        - PIPER_GEN_RUN_BUILD (default: true)

    Args:
        root_dir: Output root directory (comes from the command line)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    defaults = Settings(root_dir=Path(root_dir))

    return Settings(
        root_dir=Path(root_dir),
        cache_subdir=os.getenv("PIPER_GEN_CACHE_SUBDIR") or defaults.cache_subdir,
        zstd_level=get_int("PIPER_GEN_ZSTD_LEVEL", defaults.zstd_level),
        http_timeout_s=get_float("PIPER_GEN_HTTP_TIMEOUT", defaults.http_timeout_s),
        http_retry=get_int("PIPER_GEN_HTTP_RETRY", defaults.http_retry),
        module_prefix=os.getenv("PIPER_GEN_MODULE_PREFIX") or defaults.module_prefix,
        asset_module=os.getenv("PIPER_GEN_ASSET_MODULE") or defaults.asset_module,
        go_version=os.getenv("PIPER_GEN_GO_VERSION") or defaults.go_version,
        run_build=str_to_bool(os.getenv("PIPER_GEN_RUN_BUILD", "true")),
    )
