from __future__ import annotations

from pathlib import Path

import pytest

from gatekeeper_pipeline.errors import ConfigurationError, UnknownEventKind
from gatekeeper_pipeline.models import EventKind, FailurePolicy, PipelineDefinition, ReporterKind, StageDefinition
from gatekeeper_pipeline.pipelines import PipelineTable, builtin_pipelines, load_definitions, parse_definitions

YAML_DEFINITIONS = """
pipelines:
  - slug: lint-only
    event: review-updated
    description: Lint gate
    stages:
      - name: analyze
        command: [cargo, clippy, "--all-features", "--", "-D", warnings]
        reporter: comment
        tail_lines: 20
  - slug: ship
    event: trunk-push
    branches: [release]
    stages:
      - name: resolve-version
        action: resolve-version
        options:
          manifest: crates/core/Cargo.toml
      - name: publish
        command: [cargo, publish]
        reporter: registry
        env:
          toolchain: stable
          secrets_required: [CARGO_REGISTRY_TOKEN]
"""


def test_builtin_table_binds_each_event_once() -> None:
    table = PipelineTable(builtin_pipelines())

    review = table.lookup(EventKind.REVIEW_UPDATED)
    release = table.lookup(EventKind.TRUNK_PUSH)

    assert [s.name for s in review.stages] == ["test", "coverage", "performance", "analyze"]
    assert [s.policy for s in review.stages] == [
        FailurePolicy.ABORT,
        FailurePolicy.CONTINUE,
        FailurePolicy.CONTINUE,
        FailurePolicy.ABORT,
    ]
    assert review.stages[1].reporter is ReporterKind.COVERAGE_SERVICE
    assert review.stages[1].env.secrets_required == ("COVERALLS_REPO_TOKEN",)
    assert [s.name for s in release.stages] == ["test", "resolve-version", "package"]
    assert release.branches == ("master", "main")
    assert release.stages[-1].reporter is ReporterKind.REGISTRY


def test_builtin_test_stage_uses_coverage_environment() -> None:
    test_stage = PipelineTable(builtin_pipelines()).get("review").stages[0]

    assert test_stage.env.toolchain == "nightly"
    assert test_stage.env.abort_on_panic is True
    assert test_stage.env.incremental is False
    assert "-Zprofile" in test_stage.env.codegen_flags
    assert test_stage.tail_lines == 7


def test_builtin_settings_are_threaded_through() -> None:
    table = PipelineTable(builtin_pipelines(trunk_branches=("trunk",), timeout=60, tail_lines=3))

    release = table.get("release")
    assert release.branches == ("trunk",)
    assert all(s.timeout == 60 and s.tail_lines == 3 for s in release.stages)


def test_duplicate_event_binding_is_rejected() -> None:
    first = PipelineDefinition(slug="a", event=EventKind.REVIEW_UPDATED, stages=(StageDefinition(name="x", command=("true",)),))
    second = PipelineDefinition(slug="b", event=EventKind.REVIEW_UPDATED, stages=(StageDefinition(name="y", command=("true",)),))

    with pytest.raises(ConfigurationError):
        PipelineTable([first, second])


def test_unknown_condition_is_rejected_at_load() -> None:
    definition = PipelineDefinition(
        slug="a",
        event=EventKind.REVIEW_UPDATED,
        stages=(StageDefinition(name="x", command=("true",), condition="sometimes"),),
    )

    with pytest.raises(ConfigurationError, match="sometimes"):
        PipelineTable([definition])


def test_stage_definition_validation() -> None:
    with pytest.raises(ConfigurationError):
        StageDefinition(name="both", command=("true",), action="resolve-version")
    with pytest.raises(ConfigurationError):
        StageDefinition(name="neither")
    with pytest.raises(ConfigurationError):
        PipelineDefinition(
            slug="dup",
            event=EventKind.TRUNK_PUSH,
            stages=(StageDefinition(name="x", command=("a",)), StageDefinition(name="x", command=("b",))),
        )


def test_lookup_of_unbound_kind_raises() -> None:
    table = PipelineTable([builtin_pipelines()[0]])

    with pytest.raises(UnknownEventKind):
        table.lookup(EventKind.TRUNK_PUSH)


def test_get_unknown_slug_lists_available() -> None:
    with pytest.raises(KeyError, match="review"):
        PipelineTable(builtin_pipelines()).get("nightly")


def test_parse_yaml_definitions() -> None:
    table = parse_definitions(YAML_DEFINITIONS, timeout=120)

    lint = table.lookup(EventKind.REVIEW_UPDATED)
    assert lint.slug == "lint-only"
    assert lint.stages[0].command == ("cargo", "clippy", "--all-features", "--", "-D", "warnings")
    assert lint.stages[0].tail_lines == 20
    assert lint.stages[0].timeout == 120
    ship = table.lookup(EventKind.TRUNK_PUSH)
    assert ship.branches == ("release",)
    assert ship.stages[0].options["manifest"] == "crates/core/Cargo.toml"
    assert ship.stages[1].env.secrets_required == ("CARGO_REGISTRY_TOKEN",)


@pytest.mark.parametrize(
    "text",
    [
        "pipelines: [",
        "pipelines: []",
        "pipelines:\n  - slug: x\n    event: nightly\n    stages:\n      - name: a\n        command: [true]\n",
        "pipelines:\n  - slug: x\n    event: review-updated\n    stages:\n      - name: a\n",
        "pipelines:\n  - slug: x\n    event: review-updated\n    stages:\n      - name: a\n        command: [make]\n        colour: red\n",
        "pipelines:\n  - slug: x\n    event: review-updated\n    stages:\n      - name: a\n        action: launch-rockets\n",
    ],
)
def test_invalid_yaml_definitions(text: str) -> None:
    with pytest.raises(ConfigurationError):
        parse_definitions(text)


def test_load_definitions_from_file(tmp_path: Path) -> None:
    path = tmp_path / "pipelines.yaml"
    path.write_text(YAML_DEFINITIONS, encoding="utf-8")

    table = load_definitions(path)

    assert {definition.slug for definition in table} == {"lint-only", "ship"}


def test_load_definitions_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_definitions(tmp_path / "absent.yaml")


def test_table_serialises_for_listing() -> None:
    listed = PipelineTable(builtin_pipelines()).to_dict()

    assert [entry["slug"] for entry in listed] == ["review", "release"]
    assert listed[1]["stages"][1]["action"] == "resolve-version"


def test_unknown_condition_and_action_list_registered_names() -> None:
    bad_condition = PipelineDefinition(
        slug="odd",
        event=EventKind.REVIEW_UPDATED,
        stages=(StageDefinition(name="x", command=("a",), condition="sometimes"),),
    )
    with pytest.raises(ConfigurationError, match="Available conditions: always, failure, success"):
        PipelineTable([bad_condition])

    bad_action = PipelineDefinition(
        slug="odd",
        event=EventKind.TRUNK_PUSH,
        stages=(StageDefinition(name="x", action="bump-version"),),
    )
    with pytest.raises(ConfigurationError, match="resolve-version"):
        PipelineTable([bad_action])
