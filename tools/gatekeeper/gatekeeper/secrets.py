"""Secret resolution shared by the stage environment and the HTTP clients.

Resolvers are consulted in priority order (process environment first, then any
repository-local ``.env`` files); the first non-empty value wins. Every lookup
keeps a trail of which resolvers were asked so ``gatekeeper secrets describe``
can explain a missing credential without ever printing its value.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretSpec:
    name: str
    description: str = ""
    scopes: tuple[str, ...] = ()


class SecretResolver(Protocol):
    def resolve(self, spec: SecretSpec) -> Optional[str]:  # pragma: no cover - interface
        ...

    def describe(self) -> dict[str, object]:  # pragma: no cover - optional hook
        return {}


@dataclass(frozen=True)
class SecretAttempt:
    resolver: str
    source: str
    success: bool
    details: dict[str, object] = field(default_factory=dict)

    @property
    def label(self) -> str:
        path = self.details.get("path")
        base = self.source or self.resolver
        return f"{base}@{path}" if path else base

    def to_dict(self) -> dict[str, object]:
        return {"resolver": self.resolver, "source": self.source, "success": self.success, "details": self.details}


@dataclass(frozen=True)
class SecretResolutionInfo:
    name: str
    value: Optional[str]
    attempts: List[SecretAttempt]

    @property
    def winner(self) -> Optional[SecretAttempt]:
        return next((attempt for attempt in self.attempts if attempt.success), None)

    @property
    def resolver(self) -> Optional[str]:
        return self.winner.resolver if self.winner else None

    @property
    def source(self) -> Optional[str]:
        return self.winner.source if self.winner else None

    @property
    def details(self) -> dict[str, object]:
        return dict(self.winner.details) if self.winner else {}


@dataclass
class _ChainEntry:
    priority: int
    resolver: SecretResolver
    name: str
    source: str
    details: dict[str, object]

    def attempt(self, spec: SecretSpec) -> tuple[Optional[str], SecretAttempt]:
        value = self.resolver.resolve(spec) or None
        details = dict(self.details)
        describe = getattr(self.resolver, "describe", None)
        if callable(describe):
            details.update(describe() or {})
        return value, SecretAttempt(self.name, self.source, value is not None, details)


_secret_specs: dict[str, SecretSpec] = {}
_resolvers: List[_ChainEntry] = []


def register_secret(spec: SecretSpec) -> None:
    _secret_specs.setdefault(spec.name, spec)


def list_secrets() -> List[SecretSpec]:
    return list(_secret_specs.values())


def register_resolver(
    resolver: SecretResolver,
    priority: int = 0,
    *,
    name: Optional[str] = None,
    source: Optional[str] = None,
    details: Optional[dict[str, object]] = None,
) -> None:
    label = name or type(resolver).__name__
    _resolvers.append(_ChainEntry(priority, resolver, label, source or label, dict(details or {})))
    # Stable sort: equal priorities keep registration order.
    _resolvers.sort(key=lambda entry: -entry.priority)


class EnvResolver:
    """Process environment; what the hosted runner injects from its secret store."""

    def resolve(self, spec: SecretSpec) -> Optional[str]:
        return os.environ.get(spec.name) or None

    def describe(self) -> dict[str, object]:
        return {"type": "env"}


class DotEnvResolver:
    """Repository-local ``.env`` file, parsed lazily and never exported to ``os.environ``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._values: Optional[Dict[str, str]] = None
        self._warnings: List[str] = []

    def resolve(self, spec: SecretSpec) -> Optional[str]:
        return self._load().get(spec.name) or None

    def describe(self) -> dict[str, object]:
        return {
            "type": "dotenv",
            "path": str(self.path),
            "exists": self.path.exists(),
            "loaded": self._values is not None,
            "warnings": list(self._warnings),
        }

    def _load(self) -> Dict[str, str]:
        if self._values is not None:
            return self._values
        self._values = {}
        if not self.path.exists():
            self._warnings.append("file not found")
            return self._values
        for key, value in dotenv_values(self.path).items():
            if value is None:
                self._warnings.append(f"key '{key}' has no value")
            else:
                self._values[key] = value
        return self._values


def use_dotenv(path: str | Path, *, priority: int = -10) -> None:
    resolver = DotEnvResolver(Path(path))
    register_resolver(
        resolver,
        priority=priority,
        name=f"dotenv:{resolver.path}",
        source="dotenv",
        details={"path": str(resolver.path)},
    )


def resolve_secret_info(name: str) -> SecretResolutionInfo:
    spec = _secret_specs.get(name) or SecretSpec(name=name)
    attempts: List[SecretAttempt] = []
    for entry in _resolvers:
        value, attempt = entry.attempt(spec)
        attempts.append(attempt)
        if value is not None:
            return SecretResolutionInfo(spec.name, value, attempts)
    return SecretResolutionInfo(spec.name, None, attempts)


def resolve_secret(name: str) -> Optional[str]:
    return resolve_secret_info(name).value


def format_attempts(info: SecretResolutionInfo) -> str:
    if not info.attempts:
        return "none"
    return ", ".join(f"{a.label} ({'resolved' if a.success else 'missing'})" for a in info.attempts)


def collect_secrets(names: Iterable[str]) -> Mapping[str, str]:
    """Resolve each named secret; unresolved names are left out of the result."""

    collected: Dict[str, str] = {}
    for name in names:
        info = resolve_secret_info(name)
        if info.value is None:
            logger.debug("Secret %s not resolved; tried %s", name, format_attempts(info))
            continue
        collected[name] = info.value
    return collected


def describe_secret(name: str) -> dict[str, object]:
    spec = _secret_specs.get(name) or SecretSpec(name=name)
    info = resolve_secret_info(name)
    return {
        "name": spec.name,
        "description": spec.description,
        "scopes": list(spec.scopes),
        "present": info.value is not None,
        "resolver": info.resolver,
        "source": info.source,
        "details": info.details,
        "attempts": [attempt.to_dict() for attempt in info.attempts],
    }


register_resolver(EnvResolver(), priority=0, name="env", source="env")

# Credentials the built-in pipelines consume.
PIPELINE_SECRETS = (
    SecretSpec("GITHUB_TOKEN", "Hosting-platform token for review comments and release records", ("comment", "release")),
    SecretSpec("COVERALLS_REPO_TOKEN", "Coverage service repository token", ("coverage",)),
    SecretSpec("CARGO_REGISTRY_TOKEN", "Package registry publish token", ("registry",)),
)

for _spec in PIPELINE_SECRETS:
    register_secret(_spec)
