from __future__ import annotations


class PipelineError(RuntimeError):
    """Raised when a pipeline execution fails validation or runtime checks."""


class ConfigurationError(PipelineError):
    """Deployment defect: the definition table or settings are unusable."""


class UnknownEventKind(ConfigurationError):
    def __init__(self, kind: object, available: list[str] | None = None) -> None:
        known = ", ".join(sorted(available or [])) or "none"
        super().__init__(f"No pipeline is bound to event kind '{kind}'. Bound kinds: {known}.")
        self.kind = kind


class SecretError(PipelineError):
    pass


class MissingSecret(SecretError):
    def __init__(self, name: str, attempts: str = "") -> None:
        message = f"Required secret '{name}' is not available"
        if attempts:
            message += f" (checked: {attempts})"
        super().__init__(message + ".")
        self.name = name


class ManifestError(PipelineError):
    pass


class MalformedManifest(ManifestError):
    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class RunCancelled(PipelineError):
    """Raised inside a run when a newer run for the same review context supersedes it."""


__all__ = [
    "ConfigurationError",
    "MalformedManifest",
    "ManifestError",
    "MissingSecret",
    "PipelineError",
    "RunCancelled",
    "SecretError",
    "UnknownEventKind",
]
