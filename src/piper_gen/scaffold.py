"""
Go module scaffolding for generated packages.

Each package directory becomes a Go module that embeds dist.tzst and
dist.json (plus any extra files) and exposes them as an asset.Asset. After
writing the files the module can be verified with `go mod tidy` and
`go build`.
"""
from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from .errors import BuildCommandFailed, IOFailure
from .fingerprint import write_metadata
from .models import ARCHIVE_FILENAME, METADATA_FILENAME, Meta
from .settings import Settings

logger = logging.getLogger(__name__)

__all__ = ["generate_package", "run_command"]

_EMBED_GO = """\
// GENERATED FILE

package {go_package}

import (
\t"embed"
\t"{asset_module}"
)

var (
\t//go:embed {embed_paths}
\tfs embed.FS

\tAsset = asset.Asset{{Name: "{asset_name}", FS: fs}}
)
"""

_GO_MOD = """\
module {module_path}

go {go_version}
"""

_README = """\
Package auto-generated by https://github.com/piper-tts-go/piper-gen

- Package license: See [LICENSE](LICENSE)
- dist.tzst license: See {dist_license}
- See https://github.com/piper-tts-go/piper for docs
"""

_LICENSE = """\
MIT License

Copyright (c) 2023 Amity Bell
Copyright (c) 2025 Dharma Bellamkonda

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.
"""


def run_command(cwd: Path, program: str, *args: str) -> str:
    """
    Run an external command in ``cwd``.

    Returns:
        Combined stdout and stderr

    Raises:
        BuildCommandFailed: If the program is missing or exits non-zero
    """
    command = " ".join((program,) + args)
    logger.info(f"Running `{command}` in {cwd}")
    try:
        result = subprocess.run(
            [program, *args],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
    except OSError as e:
        raise BuildCommandFailed(f"failed to run `{command}`: {e}") from e
    if result.returncode != 0:
        raise BuildCommandFailed(f"failed to run `{command}`: exit status {result.returncode}", result.stdout)
    return result.stdout


def generate_package(settings: Settings, pkg_dir: Path, *, go_package: str, asset_name: str,
                     version: str, voice: bool, extra_embeds: Sequence[str] = ()) -> Meta:
    """
    Write module scaffolding and dist.json into a package directory.

    dist.tzst must already be finalized in ``pkg_dir``.

    Args:
        settings: Provides module paths, Go version and whether to build
        pkg_dir: Package directory (its name is the module's last path element)
        go_package: Go package name
        asset_name: Name reported by the embedded asset
        version: Version recorded in dist.json
        voice: Voice packages point their dist license at MODEL_CARD.txt
        extra_embeds: Additional files in pkg_dir to embed

    Returns:
        The metadata written to dist.json

    Raises:
        IOFailure: If a file cannot be written
        BuildCommandFailed: If the Go toolchain rejects the module
    """
    embed_paths = [ARCHIVE_FILENAME, METADATA_FILENAME, *extra_embeds]
    module_path = settings.module_prefix + pkg_dir.name
    dist_license = ("[MODEL_CARD.txt](MODEL_CARD.txt)" if voice
                    else "https://github.com/piper-tts-go/piper")

    files = {
        "embed.go": _EMBED_GO.format(
            go_package=go_package,
            asset_module=settings.asset_module,
            embed_paths=" ".join(embed_paths),
            asset_name=asset_name,
        ),
        "go.mod": _GO_MOD.format(module_path=module_path, go_version=settings.go_version),
        "README.md": _README.format(dist_license=dist_license),
        "LICENSE": _LICENSE,
    }
    for filename, content in files.items():
        target = pkg_dir / filename
        try:
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise IOFailure(f"failed to write {target}: {e}") from e

    meta = write_metadata(pkg_dir, version, [pkg_dir / ARCHIVE_FILENAME])

    if settings.run_build:
        run_command(pkg_dir, "go", "mod", "tidy")
        run_command(pkg_dir, "go", "build", ".")
    logger.info(f"Generated package {module_path} ({asset_name} {version})")
    return meta
