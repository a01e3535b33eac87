from __future__ import annotations

from pathlib import Path

import pytest

from gatekeeper_pipeline.errors import MalformedManifest
from gatekeeper_pipeline.versioning import SemanticVersion, resolve_package_name, resolve_version


def _manifest(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "Cargo.toml"
    path.write_text(body, encoding="utf-8")
    return path


def test_resolve_version_from_package_table(tmp_path: Path) -> None:
    manifest = _manifest(tmp_path, '[package]\nname = "widget"\nversion = "1.2.3"\nedition = "2021"\n')

    assert str(resolve_version(manifest)) == "1.2.3"


def test_resolve_version_trims_whitespace(tmp_path: Path) -> None:
    manifest = _manifest(tmp_path, '[package]\nname = "widget"\nversion = " 1.2.3 "\n')

    assert str(resolve_version(manifest)) == "1.2.3"


def test_resolve_version_from_project_table(tmp_path: Path) -> None:
    manifest = _manifest(tmp_path, '[project]\nname = "widget"\nversion = "0.4.0"\n')

    assert str(resolve_version(manifest)) == "0.4.0"


def test_resolve_version_top_level_key(tmp_path: Path) -> None:
    assert str(resolve_version(_manifest(tmp_path, 'version = "1.2.3"\n'))) == "1.2.3"


def test_prerelease_and_build_metadata(tmp_path: Path) -> None:
    version = resolve_version(_manifest(tmp_path, '[package]\nversion = "2.0.0-rc.1+build.5"\n'))

    assert version == SemanticVersion(2, 0, 0, "rc.1", "build.5")
    assert version.is_prerelease
    assert str(version) == "2.0.0-rc.1+build.5"


@pytest.mark.parametrize(
    "body",
    [
        '[package]\nname = "widget"\n',
        '[package]\nversion = "1.2"\n',
        '[package]\nversion = "01.2.3"\n',
        "[package]\nversion = 3\n",
        "[package]\nversion.workspace = true\n",
        "[package\nversion = '1.0.0'\n",
    ],
)
def test_malformed_manifests(tmp_path: Path, body: str) -> None:
    with pytest.raises(MalformedManifest):
        resolve_version(_manifest(tmp_path, body))


def test_missing_manifest_file(tmp_path: Path) -> None:
    with pytest.raises(MalformedManifest):
        resolve_version(tmp_path / "Cargo.toml")


def test_resolve_is_read_only(tmp_path: Path) -> None:
    body = '[package]\nname = "widget"\nversion = "1.2.3"\n'
    manifest = _manifest(tmp_path, body)

    resolve_version(manifest)

    assert manifest.read_text(encoding="utf-8") == body


def test_resolve_package_name(tmp_path: Path) -> None:
    assert resolve_package_name(_manifest(tmp_path, '[package]\nname = "widget"\nversion = "1.0.0"\n')) == "widget"
