"""
Data models for package metadata and the asset manifest.

These Pydantic models provide validation for the YAML manifest that lists
which voices and engine binaries to package, and define the dist.json
metadata record written next to each archive.
"""
from __future__ import annotations

from importlib import resources
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ARCHIVE_FILENAME = "dist.tzst"
METADATA_FILENAME = "dist.json"

_UINT64_MASK = (1 << 64) - 1


class Fingerprint(BaseModel):
    """
    128-bit content fingerprint split into 64-bit words.

    Serialized as ``{"Hi": ..., "Lo": ...}`` so Go consumers can decode it
    into an xxh3.Uint128.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    hi: int = Field(..., alias="Hi", ge=0, le=_UINT64_MASK)
    lo: int = Field(..., alias="Lo", ge=0, le=_UINT64_MASK)

    @classmethod
    def from_int(cls, value: int) -> Fingerprint:
        return cls(hi=value >> 64, lo=value & _UINT64_MASK)

    def __int__(self) -> int:
        return (self.hi << 64) | self.lo

    def hexdigest(self) -> str:
        return f"{int(self):032x}"


class Meta(BaseModel):
    """Contents of dist.json."""
    model_config = ConfigDict(populate_by_name=True)

    version: str = Field(..., alias="Version")
    hash: Fingerprint = Field(..., alias="Hash")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def _url_basename(url: str) -> str:
    return PurePosixPath(urlparse(url).path).name


class VoiceAsset(BaseModel):
    """A voice model: onnx weights, its JSON config and a MODEL_CARD."""
    version: str = Field(..., description="Voice release version")
    urls: List[str] = Field(..., min_length=1, description="Files making up the voice")

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v):
        for url in v:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not _url_basename(url):
                raise ValueError(f"Voice URL must be an http(s) URL naming a file: {url}")
        return v


class BinaryAsset(BaseModel):
    """A prebuilt engine distribution archive for one platform."""
    version: str = Field(..., description="Engine release version")
    url: str = Field(..., description="Distribution archive URL (.tar.gz, .zip, ...)")
    strip_prefix: str = Field(default="piper", description="Top-level directory to select and strip")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError(f"Binary URL must be http(s): {v}")
        return v

    @field_validator("strip_prefix")
    @classmethod
    def validate_strip_prefix(cls, v):
        v = v.strip("/")
        if not v or ".." in PurePosixPath(v).parts:
            raise ValueError(f"Invalid strip_prefix: {v!r}")
        return v


class AssetManifest(BaseModel):
    """
    The set of packages to generate.

    Voice and binary names become part of package directory names
    (``piper-voice-<name>``, ``piper-bin-<platform>``) and Go package names.
    """
    voices: Dict[str, VoiceAsset] = Field(default_factory=dict)
    binaries: Dict[str, BinaryAsset] = Field(default_factory=dict)

    @field_validator("voices", "binaries")
    @classmethod
    def validate_names(cls, v):
        for name in v:
            if not name.isidentifier() or not name.isascii() or name.lower() != name:
                raise ValueError(f"Asset name must be a lowercase identifier: {name!r}")
        return v

    @model_validator(mode="after")
    def validate_unique_names(self):
        # Names key build reports and --only selection across both kinds
        shared = set(self.voices) & set(self.binaries)
        if shared:
            raise ValueError(f"Asset name used by both a voice and a binary: {', '.join(sorted(shared))}")
        return self

    def names(self) -> List[str]:
        return sorted(self.voices) + sorted(self.binaries)

    def select(self, only: Optional[List[str]]) -> AssetManifest:
        """Return a manifest restricted to the given asset names."""
        if not only:
            return self
        unknown = set(only) - set(self.voices) - set(self.binaries)
        if unknown:
            raise ValueError(f"Unknown asset(s): {', '.join(sorted(unknown))}")
        return AssetManifest(
            voices={k: v for k, v in self.voices.items() if k in only},
            binaries={k: v for k, v in self.binaries.items() if k in only},
        )

    @classmethod
    def from_yaml_file(cls, path: Path) -> AssetManifest:
        """Load an AssetManifest from a YAML file."""
        import yaml

        if not path.exists():
            raise FileNotFoundError(f"Asset manifest not found: {path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})


def load_default_manifest() -> AssetManifest:
    """Load the manifest bundled with piper-gen."""
    import yaml

    text = resources.files("piper_gen").joinpath("default_assets.yaml").read_text(encoding="utf-8")
    return AssetManifest.model_validate(yaml.safe_load(text))
