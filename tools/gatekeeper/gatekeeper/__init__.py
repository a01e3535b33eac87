"""Integration helpers for the gatekeeper pipelines: secrets, hosting, coverage, registries."""

__version__ = "0.1.0"
from .coverage import CoverallsClient, LcovReport, parse_lcov
from .errors import ReportError, ReportErrorKind
from .hosting import GitHubClient
from .registry import DuplicateVersion, PackageRegistry, RegistryError, RegistryUpload, build_registry
from .schemas import CommentReceipt, CoverageSummary, ReleaseRecord, ReleaseRequest
from .secrets import (
    SecretAttempt,
    SecretResolutionInfo,
    SecretSpec,
    collect_secrets,
    describe_secret,
    list_secrets,
    register_resolver,
    register_secret,
    resolve_secret,
    resolve_secret_info,
    use_dotenv,
)

__all__ = [
    "__version__",
    "CommentReceipt",
    "CoverageSummary",
    "CoverallsClient",
    "DuplicateVersion",
    "GitHubClient",
    "LcovReport",
    "PackageRegistry",
    "RegistryError",
    "RegistryUpload",
    "ReleaseRecord",
    "ReleaseRequest",
    "ReportError",
    "ReportErrorKind",
    "SecretAttempt",
    "SecretResolutionInfo",
    "SecretSpec",
    "build_registry",
    "collect_secrets",
    "describe_secret",
    "list_secrets",
    "parse_lcov",
    "register_resolver",
    "register_secret",
    "resolve_secret",
    "resolve_secret_info",
    "use_dotenv",
]
