"""Package registry adapters used by the release publisher."""

from __future__ import annotations

import json
import logging
import os
import shlex
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import requests
from requests import Session
from requests.exceptions import RequestException

from ..errors import error_from_exception, error_from_response
from .models import DuplicateVersion, RegistryError, RegistryUpload

logger = logging.getLogger(__name__)

_DUPLICATE_MARKERS = ("already uploaded", "already exists")


class PackageRegistry(ABC):
    name: str

    def __init__(self, package: str) -> None:
        self.package = package

    @abstractmethod
    def has_version(self, version: str) -> bool:
        ...

    @abstractmethod
    def _push(self, artifact: Optional[Path], version: str, credential: Optional[str]) -> RegistryUpload:
        ...

    def publish(self, artifact: Optional[Path], version: str, credential: Optional[str] = None) -> RegistryUpload:
        if self.has_version(version):
            raise DuplicateVersion(self.package, version)
        logger.info("Publishing %s %s to %s registry", self.package, version, self.name)
        return self._push(artifact, version, credential)


class DirectoryRegistry(PackageRegistry):
    """File-system registry: one directory per published version."""

    name = "directory"

    def __init__(self, root: Path, package: str) -> None:
        super().__init__(package)
        self.root = root

    def has_version(self, version: str) -> bool:
        return self._version_dir(version).exists()

    def _push(self, artifact: Optional[Path], version: str, credential: Optional[str]) -> RegistryUpload:
        target = self._version_dir(version)
        target.mkdir(parents=True)
        stored: Optional[Path] = None
        if artifact is not None:
            if not artifact.exists():
                shutil.rmtree(target)
                raise RegistryError(f"Artifact not found: {artifact}")
            stored = target / artifact.name
            shutil.copy2(artifact, stored)
        (target / "release.json").write_text(
            json.dumps({"package": self.package, "version": version, "artifact": stored.name if stored else None}, indent=2)
            + "\n",
            encoding="utf-8",
        )
        return RegistryUpload(
            registry=self.name,
            package=self.package,
            version=version,
            status="succeeded",
            artifact=str(stored) if stored else None,
            url=target.as_uri(),
            logs=[f"Stored {self.package} {version} under {target}"],
        )

    def _version_dir(self, version: str) -> Path:
        return self.root / self.package / version


class CargoRegistry(PackageRegistry):
    """crates.io-style registry: HTTP existence check, ``cargo publish`` push."""

    name = "cargo"

    def __init__(
        self,
        package: str,
        *,
        api: str = "https://crates.io/api/v1",
        workdir: Optional[Path] = None,
        extra_args: Sequence[str] = (),
        session: Optional[Session] = None,
        timeout: float = 20,
    ) -> None:
        super().__init__(package)
        self.api = api.rstrip("/")
        self.workdir = workdir
        self.extra_args = list(extra_args)
        self.session = session or requests.Session()
        self.timeout = timeout

    def has_version(self, version: str) -> bool:
        url = f"{self.api}/crates/{self.package}/{version}"
        try:
            response = self.session.get(url, headers={"User-Agent": "gatekeeper"}, timeout=self.timeout)
        except RequestException as exc:
            raise error_from_exception(exc, target="package registry") from exc
        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        raise error_from_response(response, target="package registry")

    def _push(self, artifact: Optional[Path], version: str, credential: Optional[str]) -> RegistryUpload:
        if not credential:
            raise RegistryError("cargo registry push requires a registry token.")
        command: List[str] = ["cargo", "publish", *self.extra_args]
        env = {**os.environ, "CARGO_REGISTRY_TOKEN": credential}
        proc = subprocess.run(
            command,
            cwd=str(self.workdir) if self.workdir else None,
            capture_output=True,
            text=True,
            env=env,
            check=False,
        )
        logs = [line for line in (proc.stdout.strip(), proc.stderr.strip()) if line]
        if proc.returncode != 0:
            combined = f"{proc.stdout}\n{proc.stderr}".lower()
            if any(marker in combined for marker in _DUPLICATE_MARKERS):
                raise DuplicateVersion(self.package, version)
            raise RegistryError(f"cargo publish failed ({proc.returncode}): {proc.stderr.strip() or proc.stdout.strip()}")
        return RegistryUpload(
            registry=self.name,
            package=self.package,
            version=version,
            status="succeeded",
            artifact=str(artifact) if artifact else None,
            url=f"https://crates.io/crates/{self.package}/{version}",
            details={"returncode": proc.returncode},
            logs=logs,
        )


class CommandRegistry(PackageRegistry):
    """Push through an arbitrary command with ``{artifact}``/``{version}`` placeholders."""

    name = "command"

    def __init__(
        self,
        package: str,
        command: str,
        *,
        check_url: Optional[str] = None,
        token_env: str = "REGISTRY_TOKEN",
        session: Optional[Session] = None,
        timeout: float = 20,
    ) -> None:
        super().__init__(package)
        self.command = command
        self.check_url = check_url
        self.token_env = token_env
        self.session = session or requests.Session()
        self.timeout = timeout

    def has_version(self, version: str) -> bool:
        if not self.check_url:
            return False
        url = self.check_url.format(package=self.package, version=version)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except RequestException as exc:
            raise error_from_exception(exc, target="package registry") from exc
        if response.status_code == 404:
            return False
        if response.status_code == 200:
            return True
        raise error_from_response(response, target="package registry")

    def _push(self, artifact: Optional[Path], version: str, credential: Optional[str]) -> RegistryUpload:
        cmd = self._render_command(artifact, version)
        env: Dict[str, str] = {**os.environ}
        if credential:
            env[self.token_env] = credential
        logs = [f"Executing publish command: {cmd}"]
        proc = subprocess.run(
            cmd,
            shell=True,
            check=False,
            capture_output=True,
            text=True,
            env=env,
        )
        if proc.stdout:
            logs.append(proc.stdout.strip())
        if proc.stderr:
            logs.append(proc.stderr.strip())
        if proc.returncode != 0:
            raise RegistryError(f"Publish command failed ({proc.returncode}): {proc.stderr.strip() or proc.stdout.strip()}")
        return RegistryUpload(
            registry=self.name,
            package=self.package,
            version=version,
            status="succeeded",
            artifact=str(artifact) if artifact else None,
            details={"returncode": proc.returncode},
            logs=logs,
        )

    def _render_command(self, artifact: Optional[Path], version: str) -> str:
        replacements = {
            "{artifact}": shlex.quote(str(artifact) if artifact else ""),
            "{version}": shlex.quote(version),
            "{package}": shlex.quote(self.package),
        }
        command = self.command
        for placeholder, value in replacements.items():
            command = command.replace(placeholder, value)
        return command


def build_registry(
    name: str,
    *,
    package: str,
    options: Optional[Dict[str, object]] = None,
    workdir: Optional[Path] = None,
    session: Optional[Session] = None,
) -> PackageRegistry:
    opts = options or {}
    lowered = (name or "cargo").lower()
    if lowered in ("cargo", "crates", "crates.io"):
        extra = opts.get("args")
        return CargoRegistry(
            package,
            api=str(opts.get("api", "https://crates.io/api/v1")),
            workdir=workdir,
            extra_args=shlex.split(str(extra)) if extra else (),
            session=session,
        )
    if lowered in ("dir", "directory"):
        root = opts.get("root")
        if not root:
            raise ValueError("Directory registry requires option root=<path>")
        root_path = Path(str(root))
        if not root_path.is_absolute() and workdir is not None:
            root_path = workdir / root_path
        return DirectoryRegistry(root_path, package)
    if lowered in ("cmd", "command"):
        command = opts.get("command")
        if not command:
            raise ValueError("Command registry requires option command=<template>")
        return CommandRegistry(
            package,
            str(command),
            check_url=str(opts["check-url"]) if opts.get("check-url") else None,
            token_env=str(opts.get("token-env", "REGISTRY_TOKEN")),
            session=session,
        )
    raise ValueError(f"Unknown package registry '{name}'")
