"""Delivery errors raised by the hosting, coverage, and registry clients."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from requests import Response
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout


class ReportErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    TRANSIENT_NETWORK = "transient-network"
    AUTH_REJECTED = "auth-rejected"
    REJECTED = "rejected"


class ReportError(RuntimeError):
    """Raised when output cannot be delivered to an external sink."""

    def __init__(self, kind: ReportErrorKind, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind is ReportErrorKind.TRANSIENT_NETWORK

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "message": str(self),
            "status_code": self.status_code,
        }


def error_from_exception(exc: RequestException, *, target: str) -> ReportError:
    # Timeout subclasses ConnectionError for connect timeouts, so check it first.
    if isinstance(exc, Timeout):
        return ReportError(ReportErrorKind.TRANSIENT_NETWORK, f"{target} timed out: {exc}")
    if isinstance(exc, RequestsConnectionError):
        return ReportError(ReportErrorKind.UNREACHABLE, f"{target} unreachable: {exc}")
    return ReportError(ReportErrorKind.TRANSIENT_NETWORK, f"{target} request failed: {exc}")


def error_from_response(response: Response, *, target: str) -> ReportError:
    status = response.status_code
    detail = response.text or response.reason
    message = f"{target} returned {status}: {detail}"
    if status in (401, 403):
        kind = ReportErrorKind.AUTH_REJECTED
    elif status == 429 or status >= 500:
        kind = ReportErrorKind.TRANSIENT_NETWORK
    else:
        kind = ReportErrorKind.REJECTED
    return ReportError(kind, message, status_code=status)


__all__ = [
    "ReportError",
    "ReportErrorKind",
    "error_from_exception",
    "error_from_response",
]
