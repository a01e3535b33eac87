"""Built-in executable stages that run in-process instead of as a command."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterable

from .errors import ConfigurationError, ManifestError
from .models import OutcomeReason, PipelineRun, StageDefinition, StageOutcome
from .versioning import resolve_version

logger = logging.getLogger(__name__)

Action = Callable[[StageDefinition, PipelineRun, Path], StageOutcome]

_ACTIONS: Dict[str, Action] = {}


def register_action(name: str, action: Action) -> None:
    if name in _ACTIONS:
        raise ValueError(f"Action '{name}' already registered.")
    _ACTIONS[name] = action


def get_action(name: str) -> Action:
    try:
        return _ACTIONS[name]
    except KeyError as exc:
        available = ", ".join(sorted(list_actions()))
        raise ConfigurationError(f"Unknown stage action '{name}'. Available actions: {available}.") from exc


def list_actions() -> Iterable[str]:
    return _ACTIONS.keys()


def _resolve_version_action(stage: StageDefinition, run: PipelineRun, workspace: Path) -> StageOutcome:
    started = time.monotonic()
    manifest = Path(stage.options.get("manifest", "Cargo.toml"))
    if not manifest.is_absolute():
        manifest = workspace / manifest
    try:
        version = resolve_version(manifest)
    except ManifestError as exc:
        logger.warning("Version resolution failed: %s", exc)
        return StageOutcome.setup_error(stage.name, str(exc), duration=time.monotonic() - started)
    run.version = str(version)
    run.logs.append(f"Resolved version {run.version} from {manifest.name}")
    return StageOutcome(
        stage=stage.name,
        reason=OutcomeReason.SUCCEEDED,
        exit_code=0,
        stdout=(run.version,),
        duration=time.monotonic() - started,
    )


register_action("resolve-version", _resolve_version_action)
