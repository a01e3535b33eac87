"""Data models used during registry pushes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


class RegistryError(RuntimeError):
    """Raised when the registry refuses or fails a push."""


class DuplicateVersion(RegistryError):
    """Raised when the registry already holds the version being pushed."""

    def __init__(self, package: str, version: str) -> None:
        super().__init__(f"Registry already holds {package} {version}; versions are never overwritten.")
        self.package = package
        self.version = version


@dataclass(slots=True)
class RegistryUpload:
    registry: str
    package: str
    version: str
    status: str
    artifact: Optional[str] = None
    url: Optional[str] = None
    details: Dict[str, object] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, object]:
        return {
            "registry": self.registry,
            "package": self.package,
            "version": self.version,
            "status": self.status,
            "artifact": self.artifact,
            "url": self.url,
            "details": self.details,
            "logs": self.logs,
            "published_at": self.published_at.isoformat(),
        }
