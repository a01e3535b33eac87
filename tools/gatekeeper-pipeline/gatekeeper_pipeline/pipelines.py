from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .actions import get_action
from .conditions import get_condition
from .environment import COVERAGE_FLAGS
from .errors import ConfigurationError, UnknownEventKind
from .models import (
    DEFAULT_TAIL_LINES,
    DEFAULT_TIMEOUT,
    EnvironmentOptions,
    EventKind,
    FailurePolicy,
    PipelineDefinition,
    ReporterKind,
    StageDefinition,
)

logger = logging.getLogger(__name__)

DEFAULT_TRUNK_BRANCHES = ("master", "main")


class PipelineTable:
    """Immutable event-kind -> pipeline mapping, validated once at load time."""

    def __init__(self, definitions: Iterable[PipelineDefinition]) -> None:
        by_event: Dict[EventKind, PipelineDefinition] = {}
        by_slug: Dict[str, PipelineDefinition] = {}
        for definition in definitions:
            if definition.event in by_event:
                raise ConfigurationError(
                    f"Event kind '{definition.event.value}' is bound to both "
                    f"'{by_event[definition.event].slug}' and '{definition.slug}'."
                )
            if definition.slug in by_slug:
                raise ConfigurationError(f"Pipeline '{definition.slug}' defined twice.")
            for stage in definition.stages:
                get_condition(stage.condition)
                if stage.action:
                    get_action(stage.action)
            by_event[definition.event] = definition
            by_slug[definition.slug] = definition
        self._by_event: Mapping[EventKind, PipelineDefinition] = MappingProxyType(by_event)
        self._by_slug: Mapping[str, PipelineDefinition] = MappingProxyType(by_slug)

    def lookup(self, kind: EventKind) -> PipelineDefinition:
        try:
            return self._by_event[kind]
        except KeyError as exc:
            raise UnknownEventKind(kind.value, [bound.value for bound in self._by_event]) from exc

    def get(self, slug: str) -> PipelineDefinition:
        try:
            return self._by_slug[slug]
        except KeyError as exc:
            available = ", ".join(sorted(self._by_slug))
            raise KeyError(f"Unknown pipeline slug '{slug}'. Available pipelines: {available}.") from exc

    def __iter__(self) -> Iterator[PipelineDefinition]:
        return iter(self._by_slug.values())

    def __len__(self) -> int:
        return len(self._by_slug)

    def to_dict(self) -> List[Dict[str, object]]:
        return [definition.to_dict() for definition in self]


def builtin_pipelines(
    *,
    trunk_branches: Sequence[str] = DEFAULT_TRUNK_BRANCHES,
    timeout: float = DEFAULT_TIMEOUT,
    tail_lines: int = DEFAULT_TAIL_LINES,
) -> List[PipelineDefinition]:
    nightly_coverage = EnvironmentOptions(
        toolchain="nightly",
        codegen_flags=COVERAGE_FLAGS,
        abort_on_panic=True,
        incremental=False,
    )
    review = PipelineDefinition(
        slug="review",
        event=EventKind.REVIEW_UPDATED,
        description="Tests with coverage, coverage upload, performance run and lint gate for a change under review.",
        stages=(
            StageDefinition(
                name="test",
                command=("cargo", "test"),
                env=nightly_coverage,
                policy=FailurePolicy.ABORT,
                reporter=ReporterKind.COMMENT,
                timeout=timeout,
                tail_lines=tail_lines,
            ),
            StageDefinition(
                name="coverage",
                command=("grcov", ".", "-s", ".", "--binary-path", "./target/debug/", "-t", "lcov",
                         "--branch", "--ignore-not-existing", "-o", "target/lcov.info"),
                env=EnvironmentOptions(toolchain="nightly", secrets_required=("COVERALLS_REPO_TOKEN",)),
                policy=FailurePolicy.CONTINUE,
                reporter=ReporterKind.COVERAGE_SERVICE,
                timeout=timeout,
                tail_lines=tail_lines,
                options={"report": "target/lcov.info"},
            ),
            StageDefinition(
                name="performance",
                command=("cargo", "run", "--release"),
                env=EnvironmentOptions(toolchain="nightly"),
                policy=FailurePolicy.CONTINUE,
                reporter=ReporterKind.COMMENT,
                timeout=timeout,
                tail_lines=tail_lines,
            ),
            StageDefinition(
                name="analyze",
                command=("cargo", "clippy", "--all-features", "--", "-D", "warnings"),
                env=EnvironmentOptions(toolchain="stable"),
                policy=FailurePolicy.ABORT,
                reporter=ReporterKind.COMMENT,
                timeout=timeout,
                tail_lines=tail_lines,
            ),
        ),
    )
    release = PipelineDefinition(
        slug="release",
        event=EventKind.TRUNK_PUSH,
        description="Test, resolve the manifest version, publish to the registry and tag the release.",
        branches=tuple(trunk_branches),
        stages=(
            StageDefinition(
                name="test",
                command=("cargo", "test"),
                env=EnvironmentOptions(toolchain="stable"),
                timeout=timeout,
                tail_lines=tail_lines,
            ),
            StageDefinition(
                name="resolve-version",
                action="resolve-version",
                options={"manifest": "Cargo.toml"},
                timeout=timeout,
                tail_lines=tail_lines,
            ),
            StageDefinition(
                name="package",
                command=("cargo", "package", "--allow-dirty"),
                env=EnvironmentOptions(toolchain="stable", secrets_required=("CARGO_REGISTRY_TOKEN",)),
                reporter=ReporterKind.REGISTRY,
                timeout=timeout,
                tail_lines=tail_lines,
                options={"credential": "CARGO_REGISTRY_TOKEN"},
            ),
        ),
    )
    return [review, release]


class EnvironmentModel(BaseModel):
    toolchain: Optional[str] = None
    codegen_flags: List[str] = Field(default_factory=list)
    abort_on_panic: bool = False
    parallelism: Optional[int] = Field(default=None, ge=1)
    secrets_required: List[str] = Field(default_factory=list)
    incremental: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class StageModel(BaseModel):
    name: str = Field(..., min_length=1)
    command: Optional[List[str]] = None
    action: Optional[str] = None
    env: EnvironmentModel = Field(default_factory=EnvironmentModel)
    condition: str = "success"
    policy: FailurePolicy = FailurePolicy.ABORT
    reporter: ReporterKind = ReporterKind.NONE
    timeout: Optional[float] = Field(default=None, gt=0)
    tail_lines: Optional[int] = Field(default=None, ge=1)
    options: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _command_or_action(self) -> "StageModel":
        if bool(self.command) == bool(self.action):
            raise ValueError(f"stage '{self.name}' needs exactly one of command or action")
        return self


class PipelineModel(BaseModel):
    slug: str = Field(..., min_length=1)
    event: EventKind
    description: str = ""
    branches: List[str] = Field(default_factory=list)
    stages: List[StageModel] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class PipelineDocument(BaseModel):
    pipelines: List[PipelineModel] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


def _stage_from_model(model: StageModel, *, timeout: float, tail_lines: int) -> StageDefinition:
    env = model.env
    return StageDefinition(
        name=model.name,
        command=tuple(model.command or ()),
        action=model.action,
        env=EnvironmentOptions(
            toolchain=env.toolchain,
            codegen_flags=tuple(env.codegen_flags),
            abort_on_panic=env.abort_on_panic,
            parallelism=env.parallelism,
            secrets_required=tuple(env.secrets_required),
            incremental=env.incremental,
        ),
        condition=model.condition,
        policy=model.policy,
        reporter=model.reporter,
        timeout=model.timeout or timeout,
        tail_lines=model.tail_lines or tail_lines,
        options=model.options,
    )


def parse_definitions(
    text: str,
    *,
    source: str = "<string>",
    timeout: float = DEFAULT_TIMEOUT,
    tail_lines: int = DEFAULT_TAIL_LINES,
) -> PipelineTable:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{source}: invalid YAML ({exc})") from exc
    try:
        document = PipelineDocument.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"{source}: invalid pipeline definitions\n{exc}") from exc
    definitions = [
        PipelineDefinition(
            slug=pipeline.slug,
            event=pipeline.event,
            description=pipeline.description,
            branches=tuple(pipeline.branches),
            stages=tuple(
                _stage_from_model(stage, timeout=timeout, tail_lines=tail_lines) for stage in pipeline.stages
            ),
        )
        for pipeline in document.pipelines
    ]
    return PipelineTable(definitions)


def load_definitions(
    path: Optional[Path] = None,
    *,
    trunk_branches: Sequence[str] = DEFAULT_TRUNK_BRANCHES,
    timeout: float = DEFAULT_TIMEOUT,
    tail_lines: int = DEFAULT_TAIL_LINES,
) -> PipelineTable:
    """YAML definitions replace the built-in table when a path is given."""

    if path is None:
        return PipelineTable(builtin_pipelines(trunk_branches=trunk_branches, timeout=timeout, tail_lines=tail_lines))
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read pipeline definitions {path}: {exc}") from exc
    table = parse_definitions(text, source=str(path), timeout=timeout, tail_lines=tail_lines)
    logger.info("Loaded %d pipeline definition(s) from %s", len(table), path)
    return table


__all__ = [
    "DEFAULT_TRUNK_BRANCHES",
    "PipelineDocument",
    "PipelineTable",
    "builtin_pipelines",
    "load_definitions",
    "parse_definitions",
]
