from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypedDict, get_type_hints

from vcs_resolution_engine.model.resolution import ResolutionPolicy
from vcs_resolution_engine.resource import SourceResource


class ResourceFactory(Protocol):
    def __call__(
        self, *, config: Mapping[str, Any] | None = None, policy: ResolutionPolicy
    ) -> SourceResource: ...


class ResourceConfigError(ValueError):
    """
    Raised by a builtin factory when its ``config`` mapping names an option the
    resource does not know, or gives an option a value of the wrong type.
    """

    def __init__(self, resource_id: str, message: str):
        super().__init__(f"resource {resource_id!r}: {message}")
        self.resource_id = resource_id


class SimulatedResourceConfig(TypedDict, total=False):
    """The simulated resource is driven entirely by the policy tables."""


def check_resource_config(
    resource_id: str, config: Mapping[str, Any] | None, options: type
) -> dict[str, Any]:
    """
    Check a factory ``config`` against the option table ``options`` (a
    ``TypedDict``) and return it as a plain dict.

    Every key must be declared by the table and every value must match the
    declared type; ints are accepted where a float is declared.
    """
    cfg = dict(config or {})
    declared = get_type_hints(options)

    unknown = sorted(set(cfg) - set(declared))
    if unknown:
        raise ResourceConfigError(
            resource_id, f"unknown config options {unknown}; allowed={sorted(declared)}"
        )

    for key, value in cfg.items():
        expected = declared[key]
        accepted = (int, float) if expected is float else expected
        if isinstance(value, bool) or not isinstance(value, accepted):
            raise ResourceConfigError(
                resource_id,
                f"config option {key!r} must be {expected.__name__}, got {type(value).__name__}",
            )
    return cfg


def _create_git(
    *, config: Mapping[str, Any] | None = None, policy: ResolutionPolicy
) -> SourceResource:
    from vcs_resolution_engine.internal.git_resource import GitResource, GitResourceConfig

    cfg = check_resource_config("git", config, GitResourceConfig)
    return GitResource(
        git_executable=cfg.get("git_executable", "git"),
        timeout_s=float(cfg.get("timeout_s", 300.0)),
    )


def _create_simulated(
    *, config: Mapping[str, Any] | None = None, policy: ResolutionPolicy
) -> SourceResource:
    from vcs_resolution_engine.internal.simulated_resource import SimulatedGitResource

    check_resource_config("simulated", config, SimulatedResourceConfig)
    return SimulatedGitResource(policy=policy)


DEFAULT_RESOURCE_ID = "git"

BUILTIN_RESOURCE_FACTORIES: dict[str, Callable[..., SourceResource]] = {
    "git": _create_git,
    "simulated": _create_simulated,
}
