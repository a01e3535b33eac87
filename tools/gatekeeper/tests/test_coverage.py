from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from gatekeeper.coverage import CoverallsClient, LcovError, build_job_payload, parse_lcov
from gatekeeper.errors import ReportError, ReportErrorKind

from http_fakes import FakeResponse, FakeSession

LCOV = """\
SF:src/lib.rs
DA:1,3
DA:2,0
DA:4,1
end_of_record
SF:src/main.rs
DA:1,1
DA:1,2
end_of_record
"""


def test_parse_lcov_counts_lines() -> None:
    report = parse_lcov(LCOV)

    assert [item.path for item in report.files] == ["src/lib.rs", "src/main.rs"]
    assert report.lines_total == 4
    assert report.lines_covered == 3
    assert report.line_rate == pytest.approx(0.75)
    assert report.files[1].lines == {1: 3}


def test_coverage_array_pads_to_source_length() -> None:
    report = parse_lcov(LCOV)

    assert report.files[0].coverage_array(5) == [3, 0, None, 1, None]


def test_empty_report_has_no_rate() -> None:
    assert parse_lcov("").line_rate is None


@pytest.mark.parametrize(
    "text",
    [
        "DA:1,1\n",
        "SF:a.rs\nDA:x,1\nend_of_record\n",
        "SF:a.rs\nDA:1,1\n",
        "end_of_record\n",
    ],
)
def test_parse_lcov_rejects_malformed(text: str) -> None:
    with pytest.raises(LcovError):
        parse_lcov(text)


def test_build_job_payload_digests_sources(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    source = "fn main() {}\n\n\n\n"
    (tmp_path / "src" / "lib.rs").write_text(source)

    payload = build_job_payload(
        parse_lcov(LCOV),
        source_root=tmp_path,
        repo_token="cov-token",
        service_name="github",
        commit="abc123",
        branch="feature",
        job_id="99",
    )

    first = payload["source_files"][0]
    assert first["name"] == "src/lib.rs"
    assert first["source_digest"] == hashlib.md5(source.encode()).hexdigest()
    assert first["coverage"] == [3, 0, None, 1]
    assert payload["git"] == {"head": {"id": "abc123"}, "branch": "feature"}
    assert payload["service_job_id"] == "99"


def test_upload_posts_json_file_and_returns_summary(tmp_path: Path) -> None:
    report_path = tmp_path / "lcov.info"
    report_path.write_text(LCOV)
    session = FakeSession(FakeResponse(200, {"message": "Job #1.1", "url": "https://coveralls.io/jobs/1"}))
    client = CoverallsClient("cov-token", session=session)  # type: ignore[arg-type]

    summary = client.upload(report_path, source_root=tmp_path, commit="abc123")

    call = session.calls[0]
    assert call["url"] == "https://coveralls.io/api/v1/jobs"
    name, body, content_type = call["files"]["json_file"]
    assert content_type == "application/json"
    assert json.loads(body)["repo_token"] == "cov-token"
    assert summary.url == "https://coveralls.io/jobs/1"
    rendered = summary.render()
    assert "Line coverage: **75.00%** (3/4 lines)" in rendered
    assert "Job #1.1" in rendered


def test_upload_without_token_is_auth_rejected(tmp_path: Path) -> None:
    client = CoverallsClient(None, session=FakeSession())  # type: ignore[arg-type]

    with pytest.raises(ReportError) as excinfo:
        client.upload(tmp_path / "lcov.info", source_root=tmp_path)

    assert excinfo.value.kind is ReportErrorKind.AUTH_REJECTED


def test_upload_missing_report_is_rejected(tmp_path: Path) -> None:
    client = CoverallsClient("cov-token", session=FakeSession())  # type: ignore[arg-type]

    with pytest.raises(ReportError) as excinfo:
        client.upload(tmp_path / "missing.info", source_root=tmp_path)

    assert excinfo.value.kind is ReportErrorKind.REJECTED
