"""Coverage report parsing and upload."""

from .coveralls import CoverallsClient, build_job_payload
from .lcov import LcovError, LcovFile, LcovReport, load_lcov, parse_lcov

__all__ = [
    "CoverallsClient",
    "LcovError",
    "LcovFile",
    "LcovReport",
    "build_job_payload",
    "load_lcov",
    "parse_lcov",
]
