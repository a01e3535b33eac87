"""Process settings from ``GATEKEEPER_*`` / ``GITHUB_*`` variables and a local ``.env``."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gatekeeper.coverage.coveralls import DEFAULT_ENDPOINT
from gatekeeper.hosting import DEFAULT_API
from gatekeeper.secrets import use_dotenv

from .errors import ConfigurationError
from .models import DEFAULT_TAIL_LINES, DEFAULT_TIMEOUT
from .pipelines import DEFAULT_TRUNK_BRANCHES
from .reporting import DEFAULT_BACKOFF

logger = logging.getLogger(__name__)

# Settings field -> environment variable.
_ENV_FIELDS: Dict[str, str] = {
    "workspace": "GATEKEEPER_WORKSPACE",
    "api_url": "GITHUB_API_URL",
    "repository": "GITHUB_REPOSITORY",
    "event_name": "GITHUB_EVENT_NAME",
    "event_path": "GITHUB_EVENT_PATH",
    "coverage_endpoint": "GATEKEEPER_COVERAGE_ENDPOINT",
    "registry": "GATEKEEPER_REGISTRY",
    "registry_options": "GATEKEEPER_REGISTRY_OPTIONS",
    "package": "GATEKEEPER_PACKAGE",
    "manifest": "GATEKEEPER_MANIFEST",
    "definitions": "GATEKEEPER_DEFINITIONS",
    "stage_timeout": "GATEKEEPER_STAGE_TIMEOUT",
    "tail_lines": "GATEKEEPER_TAIL_LINES",
    "retry_backoff": "GATEKEEPER_RETRY_BACKOFF",
    "trunk_branches": "GATEKEEPER_TRUNK_BRANCHES",
    "hosting_token_secret": "GATEKEEPER_HOSTING_TOKEN_SECRET",
    "coverage_token_secret": "GATEKEEPER_COVERAGE_TOKEN_SECRET",
}


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_key_value_pairs(value: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for entry in _split_list(value):
        if "=" not in entry:
            raise ConfigurationError(f"Expected key=value format (got '{entry}')")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigurationError("Key cannot be empty in key=value input.")
        pairs[key] = raw_value.strip()
    return pairs


class Settings(BaseModel):
    workspace: Path = Field(default_factory=Path.cwd)
    api_url: str = DEFAULT_API
    repository: Optional[str] = None
    event_name: Optional[str] = None
    event_path: Optional[Path] = None
    coverage_endpoint: str = DEFAULT_ENDPOINT
    registry: str = "cargo"
    registry_options: Dict[str, str] = Field(default_factory=dict)
    package: Optional[str] = Field(default=None, description="Registry package name; read from the manifest when unset.")
    manifest: str = "Cargo.toml"
    definitions: Optional[Path] = None
    stage_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    tail_lines: int = Field(default=DEFAULT_TAIL_LINES, ge=1)
    retry_backoff: float = Field(default=DEFAULT_BACKOFF, ge=0)
    trunk_branches: List[str] = Field(default_factory=lambda: list(DEFAULT_TRUNK_BRANCHES))
    hosting_token_secret: str = "GITHUB_TOKEN"
    coverage_token_secret: str = "COVERALLS_REPO_TOKEN"

    model_config = ConfigDict(extra="forbid")

    @property
    def manifest_path(self) -> Path:
        path = Path(self.manifest)
        return path if path.is_absolute() else self.workspace / path

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        dotenv_path: Optional[Path] = None,
        **overrides: object,
    ) -> "Settings":
        """Process environment wins over ``.env``; explicit overrides win over both."""

        source: Dict[str, str] = {}
        if dotenv_path is not None:
            use_dotenv(dotenv_path)
            if dotenv_path.exists():
                source.update({key: value for key, value in dotenv_values(dotenv_path).items() if value is not None})
        source.update(os.environ if environ is None else environ)

        data: Dict[str, object] = {}
        for field_name, env_name in _ENV_FIELDS.items():
            raw = source.get(env_name)
            if raw is None or raw == "":
                continue
            if field_name == "trunk_branches":
                data[field_name] = _split_list(raw)
            elif field_name == "registry_options":
                data[field_name] = _parse_key_value_pairs(raw)
            else:
                data[field_name] = raw
        data.update({key: value for key, value in overrides.items() if value is not None})

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid settings:\n{exc}") from exc


__all__ = ["Settings"]
