"""The ``app.json`` application manifest."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from bcdev.errors import ManifestError


class IdRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_: int = Field(alias="from")
    to: int


class AppDependency(BaseModel):
    """A dependency declared in ``app.json``.

    Older manifests name the dependency id ``appId``; both spellings load.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default="", validation_alias=AliasChoices("id", "appId"))
    name: str = ""
    publisher: str = ""
    version: str = ""


class AppManifest(BaseModel):
    """Represents the ``app.json`` manifest of an application.

    Unknown keys are ignored; only the fields the tool reads are modelled.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = ""
    name: str = ""
    publisher: str = ""
    version: str = ""
    brief: str | None = None
    description: str | None = None
    platform: str | None = None
    application: str | None = None
    runtime: str | None = None
    target: str | None = None
    id_ranges: list[IdRange] | None = Field(default=None, alias="idRanges")
    dependencies: list[AppDependency] | None = None
    features: list[str] | None = None


def load_manifest(path: Path | str) -> AppManifest:
    """Read and validate an ``app.json`` file."""
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"app.json not found: {path}")
    try:
        # utf-8-sig tolerates a leading BOM
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ManifestError(f"Failed to parse app.json {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"app.json must contain a JSON object: {path}")
    try:
        return AppManifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"Invalid app.json {path}: {exc}") from exc


def extract_major_minor(platform_version: str | None) -> str:
    """Reduce a full platform version to its coarse ``major.minor`` form.

    >>> extract_major_minor("27.0.38460.0")
    '27.0'
    """
    if platform_version is None or not platform_version.strip():
        raise ManifestError("Platform version cannot be empty")
    parts = platform_version.strip().split(".")
    if len(parts) < 2:
        raise ManifestError(f"Invalid platform version format: {platform_version}")
    return f"{parts[0]}.{parts[1]}"


def coarse_version_from_manifest(path: Path | str) -> str:
    """Return the coarse platform version declared by an ``app.json``."""
    manifest = load_manifest(path)
    if not manifest.platform:
        raise ManifestError("app.json does not contain a 'platform' field")
    return extract_major_minor(manifest.platform)
