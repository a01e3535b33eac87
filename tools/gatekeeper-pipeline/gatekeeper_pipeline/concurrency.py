"""Cancellation tokens and the cancel-latest-wins run tracker."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .errors import RunCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self.reason or "cancelled")


class RunTracker:
    """At most one live run per review context; a newer run cancels the older one."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Dict[str, CancellationToken] = {}

    def start(self, key: str) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            previous = self._active.get(key)
            self._active[key] = token
        if previous is not None:
            logger.info("Superseding in-flight run for %s", key)
            previous.cancel(f"superseded by a newer run for {key}")
        return token

    def finish(self, key: str, token: CancellationToken) -> None:
        with self._lock:
            if self._active.get(key) is token:
                del self._active[key]

    def active(self, key: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._active.get(key)


__all__ = ["CancellationToken", "RunTracker"]
