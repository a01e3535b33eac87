"""Named run conditions evaluated against the outcomes recorded so far."""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Sequence

from .errors import ConfigurationError
from .models import StageOutcome

Condition = Callable[[Sequence[StageOutcome]], bool]

_CONDITIONS: Dict[str, Condition] = {}


def register_condition(name: str, predicate: Condition) -> None:
    if name in _CONDITIONS:
        raise ValueError(f"Condition '{name}' already registered.")
    _CONDITIONS[name] = predicate


def get_condition(name: str) -> Condition:
    try:
        return _CONDITIONS[name]
    except KeyError as exc:
        available = ", ".join(sorted(list_conditions()))
        raise ConfigurationError(f"Unknown run condition '{name}'. Available conditions: {available}.") from exc


def list_conditions() -> Iterable[str]:
    return _CONDITIONS.keys()


# CONTINUE-policy failures are reported but never gate later stages.
register_condition("success", lambda outcomes: not any(outcome.blocking for outcome in outcomes))
register_condition("always", lambda outcomes: True)
register_condition("failure", lambda outcomes: any(not outcome.succeeded for outcome in outcomes))
