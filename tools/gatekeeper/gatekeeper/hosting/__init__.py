"""Hosting-platform client: review comments and tagged release records."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests
from requests import Response, Session
from requests.exceptions import RequestException

from ..errors import ReportError, ReportErrorKind, error_from_exception, error_from_response
from ..schemas.release import CommentReceipt, ReleaseRecord, ReleaseRequest

logger = logging.getLogger(__name__)

DEFAULT_API = "https://api.github.com"


class GitHubClient:
    """Thin REST client for the two hosting-platform sinks the pipelines use."""

    def __init__(
        self,
        token: Optional[str],
        *,
        api: str = DEFAULT_API,
        session: Optional[Session] = None,
        timeout: float = 20,
    ) -> None:
        self.token = token
        self.api = api.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def create_comment(self, repo: str, number: int | str, body: str) -> CommentReceipt:
        url = f"{self.api}/repos/{repo}/issues/{number}/comments"
        response = self._request("post", url, target="comment surface", json={"body": body})
        if response.status_code != 201:
            raise error_from_response(response, target="comment surface")
        payload = _json(response)
        logger.info("Posted comment on %s#%s", repo, number)
        return CommentReceipt(id=int(payload.get("id", 0)), url=payload.get("html_url"))

    def create_release(self, repo: str, request: ReleaseRequest) -> ReleaseRecord:
        url = f"{self.api}/repos/{repo}/releases"
        response = self._request("post", url, target="release API", json=request.to_payload())
        if response.status_code != 201:
            raise error_from_response(response, target="release API")
        logger.info("Created release %s on %s", request.tag, repo)
        return ReleaseRecord.from_api(_json(response))

    def find_release(self, repo: str, tag: str) -> Optional[ReleaseRecord]:
        url = f"{self.api}/repos/{repo}/releases/tags/{tag}"
        response = self._request("get", url, target="release API")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise error_from_response(response, target="release API")
        return ReleaseRecord.from_api(_json(response))

    def _request(self, method: str, url: str, *, target: str, json: Optional[Dict[str, Any]] = None) -> Response:
        if not self.token:
            raise ReportError(ReportErrorKind.AUTH_REJECTED, f"No hosting-platform token configured for {target}.")
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }
        try:
            if method == "get":
                return self.session.get(url, headers=headers, timeout=self.timeout)
            return self.session.post(url, headers=headers, json=json, timeout=self.timeout)
        except RequestException as exc:
            raise error_from_exception(exc, target=target) from exc


def _json(response: Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


__all__ = ["DEFAULT_API", "GitHubClient"]
