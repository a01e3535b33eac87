"""Translate hosting-platform webhook payloads into pipeline events."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigurationError, UnknownEventKind
from .models import Event, EventKind

REVIEW_EVENTS = ("pull_request", "pull_request_target")
PUSH_EVENTS = ("push",)


class _Repository(BaseModel):
    full_name: str

    model_config = ConfigDict(extra="ignore")


class _Actor(BaseModel):
    login: str = ""

    model_config = ConfigDict(extra="ignore")


class _Head(BaseModel):
    sha: str

    model_config = ConfigDict(extra="ignore")


class _PullRequest(BaseModel):
    number: int
    head: _Head

    model_config = ConfigDict(extra="ignore")


class PullRequestPayload(BaseModel):
    pull_request: _PullRequest
    repository: _Repository
    sender: _Actor = _Actor()

    model_config = ConfigDict(extra="ignore")


class PushPayload(BaseModel):
    ref: str
    after: str
    repository: _Repository
    sender: _Actor = _Actor()

    model_config = ConfigDict(extra="ignore")


def kind_for_event_name(event_name: str) -> EventKind:
    if event_name in REVIEW_EVENTS:
        return EventKind.REVIEW_UPDATED
    if event_name in PUSH_EVENTS:
        return EventKind.TRUNK_PUSH
    raise UnknownEventKind(event_name, [*REVIEW_EVENTS, *PUSH_EVENTS])


def event_from_payload(event_name: str, payload: Dict[str, Any], secrets: Optional[Mapping[str, str]] = None) -> Event:
    secrets = secrets or {}
    try:
        if event_name in REVIEW_EVENTS:
            review = PullRequestPayload.model_validate(payload)
            return Event(
                kind=EventKind.REVIEW_UPDATED,
                repository=review.repository.full_name,
                ref=str(review.pull_request.number),
                commit=review.pull_request.head.sha,
                actor=review.sender.login,
                secrets=secrets,
            )
        if event_name in PUSH_EVENTS:
            push = PushPayload.model_validate(payload)
            return Event(
                kind=EventKind.TRUNK_PUSH,
                repository=push.repository.full_name,
                ref=push.ref.removeprefix("refs/heads/"),
                commit=push.after,
                actor=push.sender.login,
                secrets=secrets,
            )
    except ValidationError as exc:
        raise ConfigurationError(f"Malformed '{event_name}' payload:\n{exc}") from exc
    raise UnknownEventKind(event_name, [*REVIEW_EVENTS, *PUSH_EVENTS])


def load_event(event_name: str, event_path: Path, secrets: Optional[Mapping[str, str]] = None) -> Event:
    try:
        payload = json.loads(Path(event_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read event payload {event_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Event payload {event_path} is not a JSON object.")
    return event_from_payload(event_name, payload, secrets)


__all__ = ["event_from_payload", "kind_for_event_name", "load_event"]
