"""Route stage outcomes to review comments, the coverage service, or the registry."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from gatekeeper.coverage import CoverallsClient
from gatekeeper.errors import ReportError, ReportErrorKind
from gatekeeper.hosting import GitHubClient
from gatekeeper.registry import RegistryError

from .models import EventKind, OutcomeReason, PipelineRun, ReporterKind, StageDefinition, StageOutcome
from .release import ReleasePublisher

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF = 2.0
DEFAULT_COVERAGE_REPORT = "target/lcov.info"
DEFAULT_REGISTRY_CREDENTIAL = "CARGO_REGISTRY_TOKEN"

T = TypeVar("T")

_HEADERS = {
    OutcomeReason.SUCCEEDED: "passed",
    OutcomeReason.EXIT_STATUS: "failed",
    OutcomeReason.TIMEOUT: "timed out",
    OutcomeReason.SETUP_ERROR: "could not run",
}


def format_comment(outcome: StageOutcome, stage: StageDefinition) -> str:
    status = _HEADERS[outcome.reason]
    header = f"### Stage `{stage.name}` {status}"
    if outcome.reason is OutcomeReason.EXIT_STATUS:
        header += f" (exit code {outcome.exit_code})"
    elif outcome.reason is OutcomeReason.TIMEOUT:
        header += f" after {stage.timeout:.0f}s; the process was killed"
    lines: List[str] = [header, ""]
    tail = outcome.tail(stage.tail_lines)
    if tail:
        lines.append(f"Last {len(tail)} line(s) of output:")
        lines.append("```")
        lines.extend(tail)
        lines.append("```")
    else:
        lines.append("_No output captured._")
    return "\n".join(lines)


class ResultReporter:
    def __init__(
        self,
        hosting: GitHubClient,
        *,
        workspace: Path,
        coverage: Optional[CoverallsClient] = None,
        publisher: Optional[ReleasePublisher] = None,
        backoff: float = DEFAULT_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.hosting = hosting
        self.workspace = Path(workspace)
        self.coverage = coverage
        self.publisher = publisher
        self.backoff = backoff
        self._sleep = sleep

    def report(self, outcome: StageOutcome, stage: StageDefinition, run: PipelineRun) -> Optional[Dict[str, object]]:
        """Deliver one outcome; returns a receipt, or ``None`` when nothing was sent."""

        if stage.reporter is ReporterKind.NONE:
            return None
        if stage.reporter is ReporterKind.COMMENT:
            return self._comment(format_comment(outcome, stage), stage, run)
        if stage.reporter is ReporterKind.COVERAGE_SERVICE:
            if not outcome.succeeded:
                return self._comment(format_comment(outcome, stage), stage, run)
            return self._coverage(stage, run)
        if stage.reporter is ReporterKind.REGISTRY:
            if not outcome.succeeded:
                return None
            return self._registry(stage, run)
        raise ValueError(f"Unhandled reporter kind {stage.reporter!r}")

    def _deliver(self, target: str, send: Callable[[], T]) -> T:
        try:
            return send()
        except ReportError as exc:
            if not exc.retryable:
                raise
            logger.warning("%s delivery failed (%s); retrying once in %.1fs", target, exc, self.backoff)
            self._sleep(self.backoff)
            return send()

    def _comment(self, body: str, stage: StageDefinition, run: PipelineRun) -> Dict[str, object]:
        event = run.event
        if event.kind is not EventKind.REVIEW_UPDATED:
            raise ReportError(ReportErrorKind.REJECTED, f"Stage '{stage.name}' has no review to comment on.")
        receipt = self._deliver(
            "comment",
            lambda: self.hosting.create_comment(event.repository, event.ref, body),
        )
        return {"sink": "comment", "stage": stage.name, "id": receipt.id, "url": receipt.url}

    def _coverage(self, stage: StageDefinition, run: PipelineRun) -> Dict[str, object]:
        if self.coverage is None:
            raise ReportError(ReportErrorKind.REJECTED, "No coverage service configured.")
        report_path = Path(stage.options.get("report", DEFAULT_COVERAGE_REPORT))
        if not report_path.is_absolute():
            report_path = self.workspace / report_path
        event = run.event
        branch = event.ref if event.kind is EventKind.TRUNK_PUSH else None
        summary = self._deliver(
            "coverage upload",
            lambda: self.coverage.upload(report_path, source_root=self.workspace, commit=event.commit, branch=branch),
        )
        run.logs.append(f"Uploaded coverage for {stage.name}: {summary.message or 'ok'}")
        comment = self._comment(summary.render(), stage, run)
        return {
            "sink": "coverage-service",
            "stage": stage.name,
            "line_rate": summary.line_rate,
            "url": summary.url,
            "comment": comment,
        }

    def _registry(self, stage: StageDefinition, run: PipelineRun) -> Dict[str, object]:
        if self.publisher is None:
            raise RegistryError("No release publisher configured.")
        if run.version is None:
            raise RegistryError(f"Stage '{stage.name}' publishes before any version was resolved.")
        version = run.version
        artifact: Optional[Path] = None
        artifact_template = stage.options.get("artifact")
        if artifact_template:
            artifact = Path(artifact_template.format(version=version))
            if not artifact.is_absolute():
                artifact = self.workspace / artifact
        credential = run.event.secrets.get(stage.options.get("credential", DEFAULT_REGISTRY_CREDENTIAL))

        # The push runs exactly once; only the tag step is retried.
        upload = self.publisher.push(version, artifact, credential=credential)
        run.logs.append(f"Published {upload.package} {version} to {upload.registry}")
        record = self._deliver("release tag", lambda: self.publisher.create_tag(version))
        run.release = record.model_dump(mode="json")
        run.logs.append(f"Created release {record.title}")
        return {
            "sink": "registry",
            "stage": stage.name,
            "version": version,
            "upload": upload.to_dict(),
            "release": run.release,
        }


__all__ = ["DEFAULT_BACKOFF", "ResultReporter", "format_comment"]
