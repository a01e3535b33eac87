from __future__ import annotations

from pathlib import Path

import pytest

from gatekeeper import secrets

from gatekeeper_pipeline.config import Settings
from gatekeeper_pipeline.errors import ConfigurationError


def test_defaults_without_environment(tmp_path: Path) -> None:
    settings = Settings.from_env({}, workspace=tmp_path)

    assert settings.workspace == tmp_path
    assert settings.api_url == "https://api.github.com"
    assert settings.registry == "cargo"
    assert settings.trunk_branches == ["master", "main"]
    assert settings.stage_timeout == 1800
    assert settings.tail_lines == 7
    assert settings.manifest_path == tmp_path / "Cargo.toml"


def test_environment_variables_are_parsed(tmp_path: Path) -> None:
    environ = {
        "GATEKEEPER_WORKSPACE": str(tmp_path),
        "GITHUB_REPOSITORY": "acme/widget",
        "GATEKEEPER_REGISTRY": "directory",
        "GATEKEEPER_REGISTRY_OPTIONS": "root=dist/registry, mode=copy",
        "GATEKEEPER_TRUNK_BRANCHES": "trunk, release",
        "GATEKEEPER_STAGE_TIMEOUT": "90",
        "GATEKEEPER_TAIL_LINES": "12",
    }

    settings = Settings.from_env(environ)

    assert settings.workspace == tmp_path
    assert settings.repository == "acme/widget"
    assert settings.registry_options == {"root": "dist/registry", "mode": "copy"}
    assert settings.trunk_branches == ["trunk", "release"]
    assert settings.stage_timeout == 90.0
    assert settings.tail_lines == 12


def test_dotenv_fills_gaps_but_environment_wins(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("GITHUB_REPOSITORY=from/dotenv\nGATEKEEPER_PACKAGE=widget\nDOT_TOKEN=t0k\n")

    settings = Settings.from_env({"GITHUB_REPOSITORY": "from/env"}, dotenv_path=env_file)

    assert settings.repository == "from/env"
    assert settings.package == "widget"
    assert secrets.resolve_secret("DOT_TOKEN") == "t0k"


def test_overrides_win(tmp_path: Path) -> None:
    settings = Settings.from_env({"GATEKEEPER_MANIFEST": "a/Cargo.toml"}, manifest="b/Cargo.toml", workspace=tmp_path)

    assert settings.manifest == "b/Cargo.toml"


@pytest.mark.parametrize(
    "environ",
    [
        {"GATEKEEPER_STAGE_TIMEOUT": "-1"},
        {"GATEKEEPER_TAIL_LINES": "zero"},
        {"GATEKEEPER_REGISTRY_OPTIONS": "no-equals-sign"},
    ],
)
def test_invalid_settings(environ: dict) -> None:
    with pytest.raises(ConfigurationError):
        Settings.from_env(environ)
