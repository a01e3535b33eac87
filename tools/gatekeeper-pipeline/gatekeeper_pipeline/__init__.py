"""Stage execution engine for the gatekeeper quality-gate and release pipelines."""

from .concurrency import CancellationToken, RunTracker
from .dispatcher import Dispatcher
from .environment import Environment, build_environment
from .errors import (
    ConfigurationError,
    MalformedManifest,
    ManifestError,
    MissingSecret,
    PipelineError,
    RunCancelled,
    SecretError,
    UnknownEventKind,
)
from .models import (
    EnvironmentOptions,
    Event,
    EventKind,
    FailurePolicy,
    OutcomeReason,
    PipelineDefinition,
    PipelineRun,
    ReporterKind,
    RunStatus,
    StageDefinition,
    StageOutcome,
)
from .pipelines import PipelineTable, builtin_pipelines, load_definitions
from .release import ReleasePublisher
from .reporting import ResultReporter
from .runner import StageRunner
from .versioning import SemanticVersion, resolve_version

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "Dispatcher",
    "Environment",
    "EnvironmentOptions",
    "Event",
    "EventKind",
    "FailurePolicy",
    "MalformedManifest",
    "ManifestError",
    "MissingSecret",
    "OutcomeReason",
    "PipelineDefinition",
    "PipelineError",
    "PipelineRun",
    "PipelineTable",
    "ReleasePublisher",
    "ReporterKind",
    "ResultReporter",
    "RunCancelled",
    "RunStatus",
    "RunTracker",
    "SecretError",
    "SemanticVersion",
    "StageDefinition",
    "StageOutcome",
    "StageRunner",
    "UnknownEventKind",
    "build_environment",
    "builtin_pipelines",
    "load_definitions",
    "resolve_version",
]
