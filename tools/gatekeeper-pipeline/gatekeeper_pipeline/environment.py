"""Stage environment construction from declarative options."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import MissingSecret
from .models import EnvironmentOptions

PANIC_ABORT_FLAGS = ("-Cpanic=abort", "-Zpanic_abort_tests")
COVERAGE_FLAGS = (
    "-Zprofile",
    "-Ccodegen-units=1",
    "-Cinline-threshold=0",
    "-Clink-dead-code",
    "-Coverflow-checks=off",
)

_REDACTED = "***"


@dataclass(frozen=True)
class Environment:
    """Stage overlay; ``merged`` lays it over the process environment."""

    variables: Mapping[str, str] = field(default_factory=dict)
    secret_names: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    def merged(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        merged_env = dict(os.environ if base is None else base)
        merged_env.update(self.variables)
        return merged_env

    def redacted(self) -> Dict[str, str]:
        return {
            key: (_REDACTED if key in self.secret_names else value)
            for key, value in self.variables.items()
        }


def build_environment(options: EnvironmentOptions, secrets: Mapping[str, str]) -> Environment:
    variables: Dict[str, str] = {}

    if options.toolchain:
        variables["RUSTUP_TOOLCHAIN"] = options.toolchain

    flags: List[str] = list(options.codegen_flags)
    if options.abort_on_panic:
        flags.extend(flag for flag in PANIC_ABORT_FLAGS if flag not in flags)
    if flags:
        joined = " ".join(flags)
        variables["RUSTFLAGS"] = joined
        variables["RUSTDOCFLAGS"] = joined

    if options.incremental is not None:
        variables["CARGO_INCREMENTAL"] = "1" if options.incremental else "0"

    if options.parallelism is not None:
        variables["CARGO_BUILD_JOBS"] = str(options.parallelism)
        variables["RUST_TEST_THREADS"] = str(options.parallelism)

    for name in options.secrets_required:
        value = secrets.get(name)
        if not value:
            raise MissingSecret(name)
        variables[name] = value

    return Environment(variables=variables, secret_names=tuple(options.secrets_required))


__all__ = ["COVERAGE_FLAGS", "Environment", "PANIC_ABORT_FLAGS", "build_environment"]
