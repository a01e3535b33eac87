from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from gatekeeper.schemas import CommentReceipt, CoverageSummary, ReleaseRecord, ReleaseRequest

from gatekeeper_pipeline.models import (
    Event,
    EventKind,
    FailurePolicy,
    OutcomeReason,
    ReporterKind,
    StageDefinition,
    StageOutcome,
)


class FakeHosting:
    def __init__(self, comment_failures: Sequence[Exception] = (), release_failures: Sequence[Exception] = ()) -> None:
        self.comments: List[Tuple[str, str, str]] = []
        self.releases: Dict[Tuple[str, str], ReleaseRecord] = {}
        self.comment_failures = list(comment_failures)
        self.release_failures = list(release_failures)
        self.comment_attempts = 0
        self.release_attempts = 0

    def create_comment(self, repo: str, number: Any, body: str) -> CommentReceipt:
        self.comment_attempts += 1
        if self.comment_failures:
            raise self.comment_failures.pop(0)
        self.comments.append((repo, str(number), body))
        return CommentReceipt(id=len(self.comments), url=f"https://example.test/comments/{len(self.comments)}")

    def find_release(self, repo: str, tag: str) -> Optional[ReleaseRecord]:
        return self.releases.get((repo, tag))

    def create_release(self, repo: str, request: ReleaseRequest) -> ReleaseRecord:
        self.release_attempts += 1
        if self.release_failures:
            raise self.release_failures.pop(0)
        record = ReleaseRecord(
            id=len(self.releases) + 1,
            tag=request.tag,
            title=request.title,
            body=request.body,
            draft=request.draft,
            prerelease=request.prerelease,
        )
        self.releases[(repo, request.tag)] = record
        return record


class FakeCoverage:
    def __init__(self, message: str = "Job #12.1", url: str = "https://coveralls.test/jobs/12") -> None:
        self.message = message
        self.url = url
        self.uploads: List[Dict[str, Any]] = []

    def upload(self, report_path: Path, *, source_root: Path, commit: Optional[str] = None, branch: Optional[str] = None, job_id: Optional[str] = None) -> CoverageSummary:
        self.uploads.append({"report": report_path, "source_root": source_root, "commit": commit, "branch": branch})
        return CoverageSummary(message=self.message, url=self.url, line_rate=0.5, lines_covered=2, lines_total=4)


class ScriptedRunner:
    """Deterministic stand-in for StageRunner: exit codes and output per stage name."""

    def __init__(
        self,
        workdir: Path,
        results: Optional[Dict[str, Tuple[int, Sequence[str]]]] = None,
        hooks: Optional[Dict[str, Callable[[], None]]] = None,
    ) -> None:
        self.workdir = Path(workdir)
        self.results = results or {}
        self.hooks = hooks or {}
        self.calls: List[str] = []
        self.argvs: List[List[str]] = []
        self.environments: List[Any] = []

    def run(self, stage: StageDefinition, environment: Any, *, argv=None, cancel_token=None) -> StageOutcome:
        self.calls.append(stage.name)
        self.argvs.append(list(argv if argv is not None else stage.command))
        self.environments.append(environment)
        hook = self.hooks.get(stage.name)
        if hook is not None:
            hook()
        code, lines = self.results.get(stage.name, (0, ()))
        return StageOutcome(
            stage=stage.name,
            reason=OutcomeReason.SUCCEEDED if code == 0 else OutcomeReason.EXIT_STATUS,
            exit_code=code,
            stdout=tuple(lines),
            duration=0.01,
        )


def stage(
    name: str,
    *,
    policy: FailurePolicy = FailurePolicy.ABORT,
    reporter: ReporterKind = ReporterKind.NONE,
    condition: str = "success",
    **kwargs: Any,
) -> StageDefinition:
    if "action" not in kwargs:
        kwargs.setdefault("command", ("stub", name))
    return StageDefinition(name=name, policy=policy, reporter=reporter, condition=condition, **kwargs)


def review_event(**secrets: str) -> Event:
    return Event(
        kind=EventKind.REVIEW_UPDATED,
        repository="acme/widget",
        ref="17",
        commit="c0ffee",
        actor="octo",
        secrets=secrets,
    )


def push_event(branch: str = "master", **secrets: str) -> Event:
    return Event(
        kind=EventKind.TRUNK_PUSH,
        repository="acme/widget",
        ref=branch,
        commit="f00d",
        actor="octo",
        secrets=secrets,
    )
