"""Upload lcov coverage to a Coveralls-compatible service."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from requests import Session
from requests.exceptions import RequestException

from ..errors import ReportError, ReportErrorKind, error_from_exception, error_from_response
from ..schemas.release import CoverageSummary
from .lcov import LcovError, LcovReport, load_lcov

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://coveralls.io"


class CoverallsClient:
    def __init__(
        self,
        repo_token: Optional[str],
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        service_name: str = "github",
        session: Optional[Session] = None,
        timeout: float = 60,
    ) -> None:
        self.repo_token = repo_token
        self.endpoint = endpoint.rstrip("/")
        self.service_name = service_name
        self.session = session or requests.Session()
        self.timeout = timeout

    def upload(
        self,
        report_path: Path,
        *,
        source_root: Path,
        commit: Optional[str] = None,
        branch: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> CoverageSummary:
        if not self.repo_token:
            raise ReportError(ReportErrorKind.AUTH_REJECTED, "No coverage service token configured.")
        try:
            report = load_lcov(report_path)
        except LcovError as exc:
            raise ReportError(ReportErrorKind.REJECTED, str(exc)) from exc
        payload = build_job_payload(
            report,
            source_root=source_root,
            repo_token=self.repo_token,
            service_name=self.service_name,
            commit=commit,
            branch=branch,
            job_id=job_id,
        )
        url = f"{self.endpoint}/api/v1/jobs"
        try:
            response = self.session.post(
                url,
                files={"json_file": ("json_file", json.dumps(payload), "application/json")},
                timeout=self.timeout,
            )
        except RequestException as exc:
            raise error_from_exception(exc, target="coverage service") from exc
        if response.status_code not in (200, 201):
            raise error_from_response(response, target="coverage service")

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        logger.info("Uploaded %d source files to %s", len(report.files), self.endpoint)
        return CoverageSummary(
            message=str(body.get("message") or ""),
            url=body.get("url"),
            line_rate=report.line_rate,
            lines_covered=report.lines_covered,
            lines_total=report.lines_total,
        )


def build_job_payload(
    report: LcovReport,
    *,
    source_root: Path,
    repo_token: str,
    service_name: str,
    commit: Optional[str] = None,
    branch: Optional[str] = None,
    job_id: Optional[str] = None,
) -> Dict[str, Any]:
    source_files: List[Dict[str, Any]] = []
    for item in report.files:
        name, digest, line_count = _describe_source(item.path, source_root)
        source_files.append(
            {
                "name": name,
                "source_digest": digest,
                "coverage": item.coverage_array(line_count),
            }
        )

    payload: Dict[str, Any] = {
        "repo_token": repo_token,
        "service_name": service_name,
        "source_files": source_files,
    }
    if job_id:
        payload["service_job_id"] = job_id
    if commit or branch:
        git: Dict[str, Any] = {}
        if commit:
            git["head"] = {"id": commit}
        if branch:
            git["branch"] = branch
        payload["git"] = git
    return payload


def _describe_source(path: str, source_root: Path) -> tuple[str, str, Optional[int]]:
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = source_root / candidate
    try:
        name = str(candidate.resolve().relative_to(source_root.resolve()))
    except ValueError:
        name = path
    try:
        content = candidate.read_bytes()
    except OSError:
        return name, hashlib.md5(path.encode("utf-8")).hexdigest(), None
    return name, hashlib.md5(content).hexdigest(), content.count(b"\n") or None


__all__ = ["CoverallsClient", "DEFAULT_ENDPOINT", "build_job_payload"]
