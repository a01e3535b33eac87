"""Read the release version from a TOML package manifest."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import MalformedManifest

_SEMVER_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

# Lookup order for the version declaration.
_VERSION_TABLES = ("package", "project")


@dataclass(frozen=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None
    build: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "SemanticVersion":
        match = _SEMVER_RE.match(text.strip())
        if not match:
            raise ValueError(f"'{text}' is not a semantic version (major.minor.patch[-pre][+build]).")
        return cls(
            major=int(match["major"]),
            minor=int(match["minor"]),
            patch=int(match["patch"]),
            prerelease=match["pre"],
            build=match["build"],
        )

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def _load_manifest(manifest_path: Path) -> Dict[str, Any]:
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MalformedManifest(manifest_path, f"cannot be read ({exc.strerror or exc})") from exc
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise MalformedManifest(manifest_path, f"is not valid TOML ({exc})") from exc


def resolve_version(manifest_path: Path) -> SemanticVersion:
    manifest_path = Path(manifest_path)
    data = _load_manifest(manifest_path)

    declared: object = None
    for table in _VERSION_TABLES:
        section = data.get(table)
        if isinstance(section, dict) and "version" in section:
            declared = section["version"]
            break
    else:
        declared = data.get("version")

    if declared is None:
        raise MalformedManifest(manifest_path, "no version declaration found")
    if not isinstance(declared, str):
        # e.g. `version.workspace = true` in a cargo workspace member
        raise MalformedManifest(manifest_path, f"version is not a string literal ({declared!r})")
    try:
        return SemanticVersion.parse(declared)
    except ValueError as exc:
        raise MalformedManifest(manifest_path, str(exc)) from exc


def resolve_package_name(manifest_path: Path) -> str:
    manifest_path = Path(manifest_path)
    data = _load_manifest(manifest_path)
    for table in _VERSION_TABLES:
        section = data.get(table)
        if isinstance(section, dict) and isinstance(section.get("name"), str):
            return section["name"]
    raise MalformedManifest(manifest_path, "no package name declared")


__all__ = ["SemanticVersion", "resolve_package_name", "resolve_version"]
