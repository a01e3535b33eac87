from __future__ import annotations

from pathlib import Path

import pytest

from gatekeeper.errors import ReportError, ReportErrorKind
from gatekeeper.registry import DirectoryRegistry, DuplicateVersion

from gatekeeper_pipeline.models import PipelineDefinition, PipelineRun, ReporterKind, StageOutcome, OutcomeReason
from gatekeeper_pipeline.release import ReleasePublisher, release_request
from gatekeeper_pipeline.reporting import ResultReporter
from gatekeeper_pipeline.versioning import SemanticVersion

from pipeline_fakes import FakeHosting, push_event, stage


def _publisher(tmp_path: Path, hosting: FakeHosting) -> ReleasePublisher:
    return ReleasePublisher(DirectoryRegistry(tmp_path / "registry", "widget"), hosting, "acme/widget")  # type: ignore[arg-type]


def test_publish_creates_tagged_release(tmp_path: Path) -> None:
    hosting = FakeHosting()

    record = _publisher(tmp_path, hosting).publish("2.0.0")

    assert record.tag == "2.0.0"
    assert record.title == "release-2.0.0"
    assert record.body == "Released version: 2.0.0."
    assert record.draft is False
    assert record.prerelease is False


def test_publishing_same_version_twice_is_rejected(tmp_path: Path) -> None:
    hosting = FakeHosting()
    publisher = _publisher(tmp_path, hosting)
    publisher.publish(SemanticVersion.parse("1.0.0"))

    with pytest.raises(DuplicateVersion):
        publisher.publish("1.0.0")

    assert hosting.release_attempts == 1


def test_prerelease_versions_are_flagged() -> None:
    request = release_request("2.0.0-rc.1")

    assert request.prerelease is True
    assert request.tag == "2.0.0-rc.1"
    assert request.to_payload()["name"] == "release-2.0.0-rc.1"


def test_release_request_rejects_non_semver() -> None:
    with pytest.raises(ValueError):
        release_request("v2")


def test_create_tag_reuses_existing_release(tmp_path: Path) -> None:
    hosting = FakeHosting()
    publisher = _publisher(tmp_path, hosting)
    first = publisher.create_tag("3.1.0")

    second = publisher.create_tag("3.1.0")

    assert second == first
    assert hosting.release_attempts == 1


def test_tag_retry_does_not_republish(tmp_path: Path) -> None:
    hosting = FakeHosting(release_failures=[ReportError(ReportErrorKind.UNREACHABLE, "down")])
    publisher = _publisher(tmp_path, hosting)

    with pytest.raises(ReportError):
        publisher.publish("4.0.0")
    assert publisher.registry.has_version("4.0.0")

    record = publisher.create_tag("4.0.0")

    assert record.tag == "4.0.0"
    assert hosting.release_attempts == 2


def test_reporter_retries_only_the_tag_step(tmp_path: Path) -> None:
    transient = ReportError(ReportErrorKind.TRANSIENT_NETWORK, "503", status_code=503)
    hosting = FakeHosting(release_failures=[transient])
    publisher = _publisher(tmp_path, hosting)
    reporter = ResultReporter(hosting, workspace=tmp_path, publisher=publisher, backoff=0, sleep=lambda _: None)  # type: ignore[arg-type]
    definition = stage("package", reporter=ReporterKind.REGISTRY)
    run = PipelineRun(
        event=push_event(),
        definition=PipelineDefinition(slug="release", event=push_event().kind, stages=(definition,)),
        version="5.0.0",
    )
    ok = StageOutcome(stage="package", reason=OutcomeReason.SUCCEEDED, exit_code=0)

    receipt = reporter.report(ok, definition, run)

    assert receipt is not None and receipt["version"] == "5.0.0"
    assert hosting.release_attempts == 2
    assert run.release is not None and run.release["body"] == "Released version: 5.0.0."
