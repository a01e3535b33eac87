"""Pydantic models describing hosting-platform and coverage-service payloads."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReleaseRequest(BaseModel):
    tag: str = Field(..., description="Tag name the release is created from.")
    title: str
    body: str
    draft: bool = False
    prerelease: bool = False
    target: Optional[str] = Field(default=None, description="Commit the tag points at when it does not exist yet.")

    model_config = ConfigDict(extra="forbid")

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "tag_name": self.tag,
            "name": self.title,
            "body": self.body,
            "draft": self.draft,
            "prerelease": self.prerelease,
        }
        if self.target:
            payload["target_commitish"] = self.target
        return payload


class ReleaseRecord(BaseModel):
    """Immutable tagged release as stored by the hosting platform."""

    id: int
    tag: str
    title: str
    body: str
    draft: bool = False
    prerelease: bool = False
    url: Optional[str] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "ReleaseRecord":
        return cls(
            id=int(payload["id"]),
            tag=str(payload["tag_name"]),
            title=str(payload.get("name") or payload["tag_name"]),
            body=str(payload.get("body") or ""),
            draft=bool(payload.get("draft", False)),
            prerelease=bool(payload.get("prerelease", False)),
            url=payload.get("html_url"),
        )


class CommentReceipt(BaseModel):
    """Opaque token returned after a review comment was posted."""

    id: int
    url: Optional[str] = None

    model_config = ConfigDict(extra="ignore", frozen=True)


class CoverageSummary(BaseModel):
    """Coverage service response plus the locally computed line rate."""

    message: str = ""
    url: Optional[str] = None
    line_rate: Optional[float] = Field(default=None, description="Covered lines / instrumented lines, 0..1.")
    lines_covered: int = 0
    lines_total: int = 0

    model_config = ConfigDict(extra="ignore")

    def render(self) -> str:
        lines = ["### Coverage report"]
        if self.line_rate is not None:
            lines.append(
                f"Line coverage: **{self.line_rate * 100:.2f}%** ({self.lines_covered}/{self.lines_total} lines)"
            )
        if self.message:
            lines.append(self.message)
        if self.url:
            lines.append(self.url)
        return "\n\n".join(lines)
