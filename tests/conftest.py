"""Root pytest configuration for piper-gen tests."""
from __future__ import annotations

import pytest

from piper_gen.settings import Settings


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Keep the developer's PIPER_GEN_* environment out of tests."""
    for key in ("PIPER_GEN_CACHE_SUBDIR", "PIPER_GEN_ZSTD_LEVEL", "PIPER_GEN_HTTP_TIMEOUT",
                "PIPER_GEN_HTTP_RETRY", "PIPER_GEN_MODULE_PREFIX", "PIPER_GEN_ASSET_MODULE",
                "PIPER_GEN_GO_VERSION", "PIPER_GEN_RUN_BUILD"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path):
    """Standard test settings: fast compression, no retries, no Go toolchain."""
    return Settings(
        root_dir=tmp_path / "out",
        zstd_level=3,
        http_retry=0,
        run_build=False,
    )
