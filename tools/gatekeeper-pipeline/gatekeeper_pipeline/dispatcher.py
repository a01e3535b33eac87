"""Drive one event through its pipeline: condition, environment, run, report, policy."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

from gatekeeper.errors import ReportError
from gatekeeper.registry import RegistryError

from .actions import get_action
from .concurrency import CancellationToken, RunTracker
from .conditions import get_condition
from .environment import build_environment
from .errors import MissingSecret, RunCancelled
from .models import (
    Event,
    EventKind,
    FailurePolicy,
    PipelineRun,
    ReporterKind,
    RunStatus,
    StageDefinition,
    StageOutcome,
)
from .pipelines import PipelineTable
from .reporting import ResultReporter
from .runner import StageRunner

logger = logging.getLogger(__name__)


def render_command(stage: StageDefinition, run: PipelineRun, workspace: Path) -> list[str]:
    values: Dict[str, str] = {
        "repository": run.event.repository,
        "ref": run.event.ref,
        "commit": run.event.commit,
        "workspace": str(workspace),
    }
    if run.version is not None:
        values["version"] = run.version
    try:
        return [part.format_map(values) for part in stage.command]
    except KeyError as exc:
        raise ValueError(f"placeholder {{{exc.args[0]}}} has no value in this run") from exc


class Dispatcher:
    def __init__(
        self,
        table: PipelineTable,
        runner: StageRunner,
        reporter: ResultReporter,
        *,
        tracker: Optional[RunTracker] = None,
    ) -> None:
        self.table = table
        self.runner = runner
        self.reporter = reporter
        self.tracker = tracker

    @property
    def workspace(self) -> Path:
        return self.runner.workdir

    def dispatch(self, event: Event, cancel_token: Optional[CancellationToken] = None) -> PipelineRun:
        definition = self.table.lookup(event.kind)
        run = PipelineRun(event=event, definition=definition)

        if definition.branches and event.kind is EventKind.TRUNK_PUSH and event.ref not in definition.branches:
            logger.info("Branch %s is not a trunk branch for %s; nothing to run", event.ref, definition.slug)
            run.logs.append(f"Branch '{event.ref}' not in {list(definition.branches)}; no stages run.")
            run.status = RunStatus.SUCCESS
            return run

        tracked_key: Optional[str] = None
        if cancel_token is None and self.tracker is not None and event.kind is EventKind.REVIEW_UPDATED:
            tracked_key = event.context_key
            cancel_token = self.tracker.start(tracked_key)

        run.logs.append(f"Dispatching {event.kind.value} for {event.context_key} to pipeline '{definition.slug}'")
        try:
            self._drive(run, cancel_token)
        except RunCancelled as exc:
            logger.info("Run %s for %s cancelled: %s", definition.slug, event.context_key, exc)
            run.status = RunStatus.CANCELLED
            run.logs.append(f"Run cancelled: {exc}")
        finally:
            if tracked_key is not None and cancel_token is not None:
                self.tracker.finish(tracked_key, cancel_token)

        if run.status is RunStatus.RUNNING:
            run.status = RunStatus.SUCCESS if run.abort is None else RunStatus.FAILED
        logger.info("Pipeline %s finished: %s", definition.slug, run.status.value)
        return run

    def _drive(self, run: PipelineRun, cancel_token: Optional[CancellationToken]) -> None:
        for stage in run.definition.stages:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            condition = get_condition(stage.condition)
            if not condition(tuple(run.outcomes)):
                logger.info("Skipping stage %s: condition '%s' not met", stage.name, stage.condition)
                run.logs.append(f"Skipped {stage.name} (condition '{stage.condition}' not met)")
                continue

            outcome = replace(self._execute(stage, run, cancel_token), policy=stage.policy)
            run.record(outcome)
            run.logs.append(f"Stage {stage.name} {outcome.describe()}")

            # A superseded run keeps what it already reported but sends nothing new.
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            if not self._report(outcome, stage, run):
                return

            if not outcome.succeeded and stage.policy is FailurePolicy.ABORT:
                logger.warning("Stage %s %s; aborting pipeline", stage.name, outcome.describe())
                run.halt(stage.name, outcome.describe())
                return
            if not outcome.succeeded:
                logger.info("Stage %s %s; continuing per policy", stage.name, outcome.describe())

    def _execute(
        self,
        stage: StageDefinition,
        run: PipelineRun,
        cancel_token: Optional[CancellationToken],
    ) -> StageOutcome:
        try:
            environment = build_environment(stage.env, run.event.secrets)
        except MissingSecret as exc:
            logger.warning("Stage %s: %s", stage.name, exc)
            return StageOutcome.setup_error(stage.name, str(exc))

        if stage.action:
            return get_action(stage.action)(stage, run, self.workspace)

        try:
            argv = render_command(stage, run, self.workspace)
        except ValueError as exc:
            return StageOutcome.setup_error(stage.name, str(exc))
        return self.runner.run(stage, environment, argv=argv, cancel_token=cancel_token)

    def _report(self, outcome: StageOutcome, stage: StageDefinition, run: PipelineRun) -> bool:
        """Returns False when a publish failure must stop the run."""

        try:
            receipt = self.reporter.report(outcome, stage, run)
        except (ReportError, RegistryError) as exc:
            if stage.reporter is ReporterKind.REGISTRY:
                logger.error("Publishing from stage %s failed: %s", stage.name, exc)
                run.report_errors.append(_error_entry(stage, exc))
                run.halt(stage.name, f"publish failed: {exc}")
                return False
            logger.warning("Reporting stage %s failed: %s", stage.name, exc)
            run.report_errors.append(_error_entry(stage, exc))
            return True
        if receipt is not None:
            run.reports.append(receipt)
        return True


def _error_entry(stage: StageDefinition, exc: Exception) -> Dict[str, object]:
    entry: Dict[str, object] = {"stage": stage.name, "reporter": stage.reporter.value, "message": str(exc)}
    if isinstance(exc, ReportError):
        entry.update(exc.to_dict())
    else:
        entry["kind"] = type(exc).__name__
    return entry


__all__ = ["Dispatcher", "render_command"]
