from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_TIMEOUT = 1800.0
DEFAULT_TAIL_LINES = 7


class EventKind(str, Enum):
    REVIEW_UPDATED = "review-updated"
    TRUNK_PUSH = "trunk-push"


class FailurePolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


class ReporterKind(str, Enum):
    NONE = "none"
    COMMENT = "comment"
    COVERAGE_SERVICE = "coverage-service"
    REGISTRY = "registry"


class OutcomeReason(str, Enum):
    SUCCEEDED = "succeeded"
    EXIT_STATUS = "exit-status"
    TIMEOUT = "timeout"
    SETUP_ERROR = "setup-error"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    repository: str
    ref: str
    commit: str
    actor: str = ""
    secrets: Mapping[str, str] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "secrets", MappingProxyType(dict(self.secrets)))

    @property
    def context_key(self) -> str:
        return f"{self.repository}#{self.ref}"

    def to_dict(self) -> Dict[str, object]:
        # Secret values stay out of every serialised form.
        return {
            "kind": self.kind.value,
            "repository": self.repository,
            "ref": self.ref,
            "commit": self.commit,
            "actor": self.actor,
            "secrets": sorted(self.secrets),
        }


@dataclass(frozen=True)
class EnvironmentOptions:
    toolchain: Optional[str] = None
    codegen_flags: Tuple[str, ...] = ()
    abort_on_panic: bool = False
    parallelism: Optional[int] = None
    secrets_required: Tuple[str, ...] = ()
    incremental: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.parallelism is not None and self.parallelism < 1:
            raise ConfigurationError(f"parallelism must be at least 1 (got {self.parallelism})")
        object.__setattr__(self, "codegen_flags", tuple(self.codegen_flags))
        object.__setattr__(self, "secrets_required", tuple(self.secrets_required))

    def to_dict(self) -> Dict[str, object]:
        return {
            "toolchain": self.toolchain,
            "codegen_flags": list(self.codegen_flags),
            "abort_on_panic": self.abort_on_panic,
            "parallelism": self.parallelism,
            "secrets_required": list(self.secrets_required),
            "incremental": self.incremental,
        }


@dataclass(frozen=True)
class StageDefinition:
    """One executable stage: either an argv template or a built-in action."""

    name: str
    command: Tuple[str, ...] = ()
    action: Optional[str] = None
    env: EnvironmentOptions = field(default_factory=EnvironmentOptions)
    condition: str = "success"
    policy: FailurePolicy = FailurePolicy.ABORT
    reporter: ReporterKind = ReporterKind.NONE
    timeout: float = DEFAULT_TIMEOUT
    tail_lines: int = DEFAULT_TAIL_LINES
    options: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Stage name cannot be empty.")
        if bool(self.command) == bool(self.action):
            raise ConfigurationError(f"Stage '{self.name}' needs exactly one of command or action.")
        if self.timeout <= 0:
            raise ConfigurationError(f"Stage '{self.name}' timeout must be positive.")
        if self.tail_lines < 1:
            raise ConfigurationError(f"Stage '{self.name}' tail_lines must be at least 1.")
        object.__setattr__(self, "command", tuple(self.command))
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "name": self.name,
            "condition": self.condition,
            "policy": self.policy.value,
            "reporter": self.reporter.value,
            "timeout": self.timeout,
            "tail_lines": self.tail_lines,
            "env": self.env.to_dict(),
        }
        if self.command:
            payload["command"] = list(self.command)
        if self.action:
            payload["action"] = self.action
        if self.options:
            payload["options"] = dict(self.options)
        return payload


@dataclass(frozen=True)
class PipelineDefinition:
    slug: str
    event: EventKind
    stages: Tuple[StageDefinition, ...]
    description: str = ""
    branches: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "stages", tuple(self.stages))
        object.__setattr__(self, "branches", tuple(self.branches))
        seen: set[str] = set()
        for stage in self.stages:
            if stage.name in seen:
                raise ConfigurationError(f"Pipeline '{self.slug}' declares stage '{stage.name}' twice.")
            seen.add(stage.name)

    def to_dict(self) -> Dict[str, object]:
        return {
            "slug": self.slug,
            "event": self.event.value,
            "description": self.description,
            "branches": list(self.branches),
            "stages": [stage.to_dict() for stage in self.stages],
        }


@dataclass(frozen=True)
class StageOutcome:
    stage: str
    reason: OutcomeReason
    exit_code: Optional[int] = None
    stdout: Tuple[str, ...] = ()
    stderr: Tuple[str, ...] = ()
    duration: float = 0.0
    stdout_dropped: int = 0
    stderr_dropped: int = 0
    detail: str = ""
    policy: FailurePolicy = FailurePolicy.ABORT

    @property
    def succeeded(self) -> bool:
        return self.reason is OutcomeReason.SUCCEEDED

    @property
    def blocking(self) -> bool:
        """A failure that stops later default-condition stages; CONTINUE failures never do."""

        return not self.succeeded and self.policy is FailurePolicy.ABORT

    @classmethod
    def setup_error(cls, stage: str, detail: str, *, duration: float = 0.0) -> "StageOutcome":
        return cls(stage=stage, reason=OutcomeReason.SETUP_ERROR, detail=detail, duration=duration)

    def tail(self, lines: int) -> List[str]:
        """Last ``lines`` captured lines, stdout first then stderr."""

        combined = [*self.stdout, *self.stderr]
        if not combined and self.detail:
            combined = [self.detail]
        return combined[-lines:] if lines > 0 else []

    def describe(self) -> str:
        if self.reason is OutcomeReason.SUCCEEDED:
            return "succeeded"
        if self.reason is OutcomeReason.EXIT_STATUS:
            return f"exited with status {self.exit_code}"
        if self.reason is OutcomeReason.TIMEOUT:
            return f"timed out after {self.duration:.0f}s"
        return f"could not start: {self.detail}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "stage": self.stage,
            "reason": self.reason.value,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "stdout_lines": len(self.stdout),
            "stderr_lines": len(self.stderr),
            "truncated": {"stdout": self.stdout_dropped, "stderr": self.stderr_dropped},
            "detail": self.detail,
            "policy": self.policy.value,
        }


@dataclass(frozen=True)
class AbortInfo:
    stage: str
    reason: str

    def to_dict(self) -> Dict[str, object]:
        return {"stage": self.stage, "reason": self.reason}


@dataclass
class PipelineRun:
    event: Event
    definition: PipelineDefinition
    outcomes: List[StageOutcome] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    abort: Optional[AbortInfo] = None
    reports: List[Dict[str, object]] = field(default_factory=list)
    report_errors: List[Dict[str, object]] = field(default_factory=list)
    version: Optional[str] = None
    release: Optional[Dict[str, object]] = None
    logs: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record(self, outcome: StageOutcome) -> None:
        if any(existing.stage == outcome.stage for existing in self.outcomes):
            raise RuntimeError(f"Stage '{outcome.stage}' already has an outcome in this run.")
        self.outcomes.append(outcome)

    def outcome_for(self, stage: str) -> Optional[StageOutcome]:
        for outcome in self.outcomes:
            if outcome.stage == stage:
                return outcome
        return None

    def halt(self, stage: str, reason: str) -> None:
        if self.abort is None:
            self.abort = AbortInfo(stage=stage, reason=reason)
        self.status = RunStatus.FAILED

    @property
    def exit_code(self) -> int:
        return 0 if self.status is RunStatus.SUCCESS else 1

    def to_dict(self) -> Dict[str, object]:
        return {
            "pipeline": self.definition.slug,
            "event": self.event.to_dict(),
            "status": self.status.value,
            "abort": self.abort.to_dict() if self.abort else None,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "reports": self.reports,
            "report_errors": self.report_errors,
            "version": self.version,
            "release": self.release,
            "logs": self.logs,
            "started_at": self.started_at.isoformat(),
        }
