from __future__ import annotations

from pathlib import Path

import pytest

from vcs_resolution_engine.model.errors import InvalidDescriptor
from vcs_resolution_engine.model.lock import LockFile
from vcs_resolution_engine.model.package import ApplicationPackage, DependencyDeclaration
from vcs_resolution_engine.model.resolution import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_VERSION,
    DependencyState,
    ResolutionParams,
    ResolutionPolicy,
    ResolutionResult,
)
from vcs_resolution_engine.model.source import Selector, SourceDescriptor

# ==============================================================================
# CASE MATRICES
# ==============================================================================

TERMINAL_CASES = [
    {"id": "C001M001B0001_declared", "state": DependencyState.DECLARED, "terminal": False},
    {"id": "C001M001B0001_normalized", "state": DependencyState.NORMALIZED, "terminal": False},
    {"id": "C001M001B0001_resolved", "state": DependencyState.RESOLVED, "terminal": False},
    {"id": "C001M001B0001_materialized", "state": DependencyState.MATERIALIZED, "terminal": False},
    {"id": "C001M001B0002_skipped", "state": DependencyState.SKIPPED, "terminal": True},
    {"id": "C001M001B0002_locked", "state": DependencyState.LOCKED, "terminal": True},
]

POLICY_MAPPING = {
    "update": ["b", "a"],
    "default_version": "1.0.0",
    "version_overrides": {"app1": "2.0.0"},
    "dependency_plan": {
        "app1": [{"name": "app2", "source": {"url": "https://h/o/app2.git", "branch": "dev"}}],
    },
}


# ==============================================================================
# DependencyState
# ==============================================================================


@pytest.mark.parametrize("case", TERMINAL_CASES, ids=lambda c: c["id"])
def test_dependency_state_is_terminal(case):
    assert case["state"].is_terminal is case["terminal"]


# ==============================================================================
# ResolutionPolicy
# ==============================================================================


def test_policy_defaults():
    # C002M001B0001
    policy = ResolutionPolicy()
    assert policy.update_set == frozenset()
    assert policy.default_version == DEFAULT_VERSION
    assert policy.version_for("anything") == DEFAULT_VERSION
    assert policy.planned_dependencies("anything") == ()


def test_policy_tables_are_read_only():
    # C002M001B0002
    overrides = {"app1": "2.0"}
    policy = ResolutionPolicy(version_overrides=overrides)
    overrides["app1"] = "3.0"

    assert policy.version_for("app1") == "2.0"
    with pytest.raises(TypeError):
        policy.version_overrides["app1"] = "4.0"


@pytest.mark.parametrize(
    "case",
    [
        {"id": "C002M001B0003_empty_default", "kwargs": {"default_version": ""}, "match": "default_version"},
        {
            "id": "C002M001B0003_empty_override",
            "kwargs": {"version_overrides": {"app2": "", "app1": "1.0"}},
            "match": r"overrides must not be empty: \['app2'\]",
        },
    ],
    ids=lambda c: c["id"],
)
def test_policy_rejects_empty_versions(case):
    with pytest.raises(InvalidDescriptor, match=case["match"]):
        ResolutionPolicy(**case["kwargs"])


def test_policy_from_mapping():
    # C002M002B0001
    policy = ResolutionPolicy.from_mapping(POLICY_MAPPING)
    assert policy.update_set == frozenset({"a", "b"})
    assert policy.version_for("app1") == "2.0.0"
    assert policy.version_for("app9") == "1.0.0"
    assert policy.planned_dependencies("app1") == (
        DependencyDeclaration(
            "app2", "*", SourceDescriptor(url="https://h/o/app2.git", selector=Selector.branch("dev"))
        ),
    )


def test_policy_mapping_round_trip():
    # C002M002B0002
    policy = ResolutionPolicy.from_mapping(POLICY_MAPPING)
    again = ResolutionPolicy.from_mapping(policy.to_mapping())
    assert again.to_mapping() == policy.to_mapping()
    assert policy.to_mapping()["update"] == ["a", "b"]


# ==============================================================================
# ResolutionParams
# ==============================================================================


def test_params_coerce_paths_and_declarations(tmp_path):
    # C003M001B0001
    params = ResolutionParams(declarations=[DependencyDeclaration("a")], deps_dir=str(tmp_path), lock_path=str(tmp_path / "x.lock"))
    assert params.declarations == (DependencyDeclaration("a"),)
    assert params.deps_dir == tmp_path
    assert params.lock_path == tmp_path / "x.lock"
    assert params.max_workers == DEFAULT_MAX_WORKERS


@pytest.mark.parametrize("workers", [0, -1], ids=["zero", "negative"])
def test_params_reject_bad_worker_count(tmp_path, workers):
    # C003M001B0002
    with pytest.raises(ValueError, match="max_workers"):
        ResolutionParams(declarations=(), deps_dir=tmp_path, max_workers=workers)


def test_params_from_toml_file_resolves_relative_paths(tmp_path):
    # C003M002B0001
    config = tmp_path / "conf" / "resolve.toml"
    config.parent.mkdir()
    config.write_text(
        "\n".join(
            [
                'deps_dir = "deps"',
                'lock_path = "deps.lock"',
                'resource_id = "simulated"',
                "max_workers = 2",
                "",
                "[[deps]]",
                'name = "app1"',
                'source = { url = "https://h/o/app1.git", tag = "1.0" }',
                "",
                "[policy]",
                'default_version = "0.1.0"',
                "",
            ]
        ),
        encoding="utf-8",
    )

    params = ResolutionParams.from_file(config)

    assert params.deps_dir == Path((config.parent / "deps").as_posix())
    assert params.lock_path == Path((config.parent / "deps.lock").as_posix())
    assert params.resource_id == "simulated"
    assert params.max_workers == 2
    assert params.policy.default_version == "0.1.0"
    assert params.declarations[0].source.selector == Selector.tag("1.0")


def test_params_from_json_keeps_absolute_paths(tmp_path):
    # C003M002B0002
    config = tmp_path / "resolve.json"
    abs_deps = (tmp_path / "elsewhere").as_posix()
    config.write_text('{"deps_dir": "%s", "deps": []}' % abs_deps, encoding="utf-8")

    params = ResolutionParams.from_file(config)

    assert params.deps_dir == Path(abs_deps)
    assert params.lock_path is None
    assert params.resource_id is None


def test_params_to_mapping_omits_unset(tmp_path):
    # C003M003B0001
    mapping = ResolutionParams(declarations=(), deps_dir=tmp_path).to_mapping()
    assert "lock_path" not in mapping
    assert "resource_id" not in mapping
    assert "resource_config" not in mapping
    assert mapping["deps_dir"] == tmp_path.as_posix()


# ==============================================================================
# ResolutionResult
# ==============================================================================


def test_result_state_views():
    # C004M001B0001
    result = ResolutionResult(
        lock=LockFile(),
        packages={"a": ApplicationPackage("a", "1"), "b": ApplicationPackage("b", "1")},
        states={"a": DependencyState.SKIPPED, "b": DependencyState.LOCKED},
    )
    assert result.skipped == frozenset({"a"})
    assert result.locked == frozenset({"b"})
