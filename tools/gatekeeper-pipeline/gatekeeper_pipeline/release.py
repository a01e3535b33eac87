"""Release publication: registry push, then the tagged release record."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from gatekeeper.hosting import GitHubClient
from gatekeeper.registry import PackageRegistry, RegistryUpload
from gatekeeper.schemas import ReleaseRecord, ReleaseRequest

from .versioning import SemanticVersion

logger = logging.getLogger(__name__)

VersionLike = Union[SemanticVersion, str]


def _as_version(version: VersionLike) -> SemanticVersion:
    if isinstance(version, SemanticVersion):
        return version
    return SemanticVersion.parse(version)


def release_request(version: VersionLike, *, target: Optional[str] = None) -> ReleaseRequest:
    parsed = _as_version(version)
    text = str(parsed)
    return ReleaseRequest(
        tag=text,
        title=f"release-{text}",
        body=f"Released version: {text}.",
        draft=False,
        prerelease=parsed.is_prerelease,
        target=target,
    )


class ReleasePublisher:
    """Two sub-stages kept separate so a failed tag step can be retried alone."""

    def __init__(
        self,
        registry: PackageRegistry,
        hosting: GitHubClient,
        repository: str,
        *,
        target: Optional[str] = None,
    ) -> None:
        self.registry = registry
        self.hosting = hosting
        self.repository = repository
        self.target = target

    def push(
        self,
        version: VersionLike,
        artifact: Optional[Path] = None,
        *,
        credential: Optional[str] = None,
    ) -> RegistryUpload:
        parsed = _as_version(version)
        upload = self.registry.publish(artifact, str(parsed), credential)
        logger.info("Pushed %s %s to %s", self.registry.package, parsed, self.registry.name)
        return upload

    def create_tag(self, version: VersionLike) -> ReleaseRecord:
        request = release_request(version, target=self.target)
        existing = self.hosting.find_release(self.repository, request.tag)
        if existing is not None:
            logger.info("Release %s already exists on %s; reusing it", request.tag, self.repository)
            return existing
        return self.hosting.create_release(self.repository, request)

    def publish(
        self,
        version: VersionLike,
        artifact: Optional[Path] = None,
        *,
        credential: Optional[str] = None,
    ) -> ReleaseRecord:
        self.push(version, artifact, credential=credential)
        return self.create_tag(version)


__all__ = ["ReleasePublisher", "release_request"]
