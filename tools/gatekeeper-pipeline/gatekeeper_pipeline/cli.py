from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from requests import Session

from gatekeeper.coverage import CoverallsClient
from gatekeeper.errors import ReportError
from gatekeeper.hosting import GitHubClient
from gatekeeper.registry import RegistryError, build_registry
from gatekeeper.secrets import collect_secrets, describe_secret, list_secrets, resolve_secret

from .concurrency import RunTracker
from .config import Settings
from .dispatcher import Dispatcher
from .errors import ConfigurationError, ManifestError, PipelineError
from .events import kind_for_event_name, load_event
from .models import Event, EventKind, PipelineDefinition, PipelineRun, ReporterKind
from .pipelines import PipelineTable, load_definitions
from .release import ReleasePublisher
from .reporting import ResultReporter
from .runner import StageRunner
from .versioning import resolve_package_name, resolve_version

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

_EVENT_CHOICES = {"review": EventKind.REVIEW_UPDATED, "push": EventKind.TRUNK_PUSH}

# Shared by every dispatch in this process so a newer review run supersedes an older one.
_TRACKER = RunTracker()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_settings(args: argparse.Namespace) -> Settings:
    workspace = Path(args.workspace).resolve() if args.workspace else None
    dotenv_root = workspace or Path.cwd()
    return Settings.from_env(
        dotenv_path=dotenv_root / ".env",
        workspace=workspace,
        definitions=Path(args.definitions) if args.definitions else None,
    )


def _load_table(settings: Settings) -> PipelineTable:
    return load_definitions(
        settings.definitions,
        trunk_branches=settings.trunk_branches,
        timeout=settings.stage_timeout,
        tail_lines=settings.tail_lines,
    )


def _hosting_client(settings: Settings, session: Optional[Session]) -> GitHubClient:
    return GitHubClient(resolve_secret(settings.hosting_token_secret), api=settings.api_url, session=session)


def build_publisher(
    settings: Settings,
    *,
    repository: Optional[str] = None,
    session: Optional[Session] = None,
) -> ReleasePublisher:
    repository = repository or settings.repository
    if not repository:
        raise ConfigurationError("No repository configured (set GITHUB_REPOSITORY).")
    package = settings.package or resolve_package_name(settings.manifest_path)
    registry = build_registry(
        settings.registry,
        package=package,
        options=dict(settings.registry_options),
        workdir=settings.workspace,
        session=session,
    )
    return ReleasePublisher(registry, _hosting_client(settings, session), repository)


def build_dispatcher(
    settings: Settings,
    table: PipelineTable,
    event: Event,
    *,
    session: Optional[Session] = None,
    tracker: Optional[RunTracker] = None,
) -> Dispatcher:
    definition = table.lookup(event.kind)
    reporters = {stage.reporter for stage in definition.stages}
    coverage = None
    if ReporterKind.COVERAGE_SERVICE in reporters:
        coverage = CoverallsClient(
            event.secrets.get(settings.coverage_token_secret) or resolve_secret(settings.coverage_token_secret),
            endpoint=settings.coverage_endpoint,
            session=session,
        )
    publisher = None
    if ReporterKind.REGISTRY in reporters:
        publisher = build_publisher(settings, repository=event.repository, session=session)
    reporter = ResultReporter(
        _hosting_client(settings, session),
        workspace=settings.workspace,
        coverage=coverage,
        publisher=publisher,
        backoff=settings.retry_backoff,
    )
    return Dispatcher(table, StageRunner(settings.workspace), reporter, tracker=tracker)


def _required_secrets(definition: PipelineDefinition) -> list[str]:
    names: list[str] = []
    for stage in definition.stages:
        for name in stage.env.secrets_required:
            if name not in names:
                names.append(name)
        credential = stage.options.get("credential")
        if credential and credential not in names:
            names.append(credential)
    return names


def _finish(run: PipelineRun) -> int:
    print(json.dumps(run.to_dict(), indent=2))
    if run.abort is not None:
        print(f"Stage '{run.abort.stage}' aborted the pipeline: {run.abort.reason}", file=sys.stderr)
    elif run.exit_code != EXIT_OK:
        print(f"Pipeline '{run.definition.slug}' ended with status {run.status.value}", file=sys.stderr)
    return run.exit_code


def _dispatch(settings: Settings, table: PipelineTable, event: Event) -> int:
    dispatcher = build_dispatcher(settings, table, event, tracker=_TRACKER)
    return _finish(dispatcher.dispatch(event))


def _with_secrets(table: PipelineTable, kind: EventKind, **fields: str) -> Event:
    names = _required_secrets(table.lookup(kind))
    return Event(kind=kind, secrets=collect_secrets(names), **fields)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="gatekeeper", description="Quality-gate and release pipeline runner")
    parser.add_argument("--workspace", help="Repository checkout the stages run in (default: cwd)")
    parser.add_argument("--definitions", help="YAML pipeline definitions replacing the built-in table")
    parser.add_argument("--verbose", "-v", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Dispatch the event described by GITHUB_EVENT_NAME / GITHUB_EVENT_PATH")

    dispatch = subparsers.add_parser("dispatch", help="Dispatch an explicit event")
    dispatch.add_argument("--event", required=True, choices=sorted(_EVENT_CHOICES))
    dispatch.add_argument("--repo", required=True)
    dispatch.add_argument("--ref", required=True, help="Review number or branch name")
    dispatch.add_argument("--commit", required=True)
    dispatch.add_argument("--actor", default="")

    pipeline_cmd = subparsers.add_parser("pipeline", help="Pipeline definition table")
    pipeline_subparsers = pipeline_cmd.add_subparsers(dest="pipeline_command", required=True)
    pipeline_subparsers.add_parser("list", help="Print the loaded definitions")

    version_cmd = subparsers.add_parser("version", help="Manifest version helpers")
    version_subparsers = version_cmd.add_subparsers(dest="version_command", required=True)
    version_resolve = version_subparsers.add_parser("resolve", help="Print the manifest version")
    version_resolve.add_argument("--manifest")

    release_cmd = subparsers.add_parser("release", help="Release record helpers")
    release_subparsers = release_cmd.add_subparsers(dest="release_command", required=True)
    release_retag = release_subparsers.add_parser("retag", help="Retry tagged release creation alone")
    release_retag.add_argument("--version", required=True)

    secrets_cmd = subparsers.add_parser("secrets", help="Secret resolution diagnostics")
    secrets_subparsers = secrets_cmd.add_subparsers(dest="secrets_command", required=True)
    secrets_describe = secrets_subparsers.add_parser("describe", help="Show which resolvers were tried")
    secrets_describe.add_argument("name")
    secrets_subparsers.add_parser("list", help="List the secrets the pipelines know about")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        settings = _load_settings(args)

        if args.command == "secrets" and args.secrets_command == "describe":
            print(json.dumps(describe_secret(args.name), indent=2))
            return EXIT_OK

        if args.command == "secrets" and args.secrets_command == "list":
            listed = [
                {"name": spec.name, "description": spec.description, "present": resolve_secret(spec.name) is not None}
                for spec in list_secrets()
            ]
            print(json.dumps(listed, indent=2))
            return EXIT_OK

        if args.command == "version" and args.version_command == "resolve":
            manifest = Path(args.manifest) if args.manifest else settings.manifest_path
            version = resolve_version(manifest)
            print(json.dumps({"manifest": str(manifest), "version": str(version), "prerelease": version.is_prerelease}))
            return EXIT_OK

        if args.command == "release" and args.release_command == "retag":
            record = build_publisher(settings).create_tag(args.version)
            print(json.dumps(record.model_dump(mode="json"), indent=2))
            return EXIT_OK

        table = _load_table(settings)

        if args.command == "pipeline" and args.pipeline_command == "list":
            print(json.dumps(table.to_dict(), indent=2))
            return EXIT_OK

        if args.command == "dispatch":
            kind = _EVENT_CHOICES[args.event]
            event = _with_secrets(table, kind, repository=args.repo, ref=args.ref, commit=args.commit, actor=args.actor)
            return _dispatch(settings, table, event)

        if args.command == "run":
            if not settings.event_name or not settings.event_path:
                raise ConfigurationError("GITHUB_EVENT_NAME and GITHUB_EVENT_PATH must both be set.")
            kind = kind_for_event_name(settings.event_name)
            secrets = collect_secrets(_required_secrets(table.lookup(kind)))
            event = load_event(settings.event_name, settings.event_path, secrets)
            return _dispatch(settings, table, event)
    except (ConfigurationError, ManifestError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    except (PipelineError, ReportError, RegistryError) as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_FAILED

    parser.error(f"Unhandled command {args.command}")
    return EXIT_USAGE


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
