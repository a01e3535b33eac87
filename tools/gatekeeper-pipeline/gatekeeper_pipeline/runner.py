"""Run one external stage command with a timeout and bounded output capture."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import IO, List, Optional, Sequence

from .concurrency import CancellationToken
from .environment import Environment
from .errors import RunCancelled
from .models import OutcomeReason, StageDefinition, StageOutcome

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 2000
_POLL_INTERVAL = 0.1
_READER_JOIN_TIMEOUT = 5.0


class LineBuffer:
    """Keeps the newest ``max_lines`` lines; counts what was dropped."""

    def __init__(self, max_lines: int) -> None:
        self._lines: deque[str] = deque(maxlen=max_lines)
        self.dropped = 0

    def append(self, line: str) -> None:
        if len(self._lines) == self._lines.maxlen:
            self.dropped += 1
        self._lines.append(line)

    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)


def _drain(stream: IO[str], buffer: LineBuffer) -> None:
    try:
        for line in stream:
            buffer.append(line.rstrip("\r\n"))
    finally:
        stream.close()


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            pass
    proc.kill()


class StageRunner:
    def __init__(self, workdir: Path, *, max_lines: int = DEFAULT_MAX_LINES) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self.workdir = Path(workdir)
        self.max_lines = max_lines

    def run(
        self,
        stage: StageDefinition,
        environment: Environment,
        *,
        argv: Optional[Sequence[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> StageOutcome:
        command: List[str] = [str(part) for part in (argv if argv is not None else stage.command)]
        if not command:
            return StageOutcome.setup_error(stage.name, "stage has no command")

        logger.info("Running stage %s: %s", stage.name, " ".join(command))
        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                command,
                cwd=str(self.workdir),
                env=environment.merged(),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                start_new_session=os.name == "posix",
            )
        except OSError as exc:
            logger.warning("Stage %s could not start: %s", stage.name, exc)
            return StageOutcome.setup_error(
                stage.name,
                f"{command[0]}: {exc.strerror or exc}",
                duration=time.monotonic() - started,
            )

        stdout = LineBuffer(self.max_lines)
        stderr = LineBuffer(self.max_lines)
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, stdout), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, stderr), daemon=True),
        ]
        for reader in readers:
            reader.start()

        deadline = started + stage.timeout
        timed_out = False
        cancelled = False
        while True:
            try:
                proc.wait(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                pass
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
                break
            if time.monotonic() >= deadline:
                timed_out = True
                break

        if timed_out or cancelled:
            _kill(proc)
            proc.wait()
        for reader in readers:
            reader.join(_READER_JOIN_TIMEOUT)
        duration = time.monotonic() - started

        if cancelled:
            logger.info("Stage %s terminated by cancellation", stage.name)
            raise RunCancelled(cancel_token.reason if cancel_token and cancel_token.reason else "cancelled")

        if timed_out:
            logger.warning("Stage %s timed out after %.0fs", stage.name, stage.timeout)
            reason = OutcomeReason.TIMEOUT
            exit_code: Optional[int] = None
            detail = f"exceeded {stage.timeout:.0f}s timeout"
        else:
            exit_code = proc.returncode
            reason = OutcomeReason.SUCCEEDED if exit_code == 0 else OutcomeReason.EXIT_STATUS
            detail = ""
            logger.info("Stage %s finished with exit code %s in %.1fs", stage.name, exit_code, duration)

        return StageOutcome(
            stage=stage.name,
            reason=reason,
            exit_code=exit_code,
            stdout=stdout.lines(),
            stderr=stderr.lines(),
            duration=duration,
            stdout_dropped=stdout.dropped,
            stderr_dropped=stderr.dropped,
            detail=detail,
        )


__all__ = ["DEFAULT_MAX_LINES", "LineBuffer", "StageRunner"]
