from __future__ import annotations

import inspect
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Mapping

from vcs_resolution_engine.internal.resources.builtin import (
    BUILTIN_RESOURCE_FACTORIES,
    ResourceFactory,
)
from vcs_resolution_engine.resource import RESOURCE_ENTRYPOINT_GROUP

_REQUIRED_FACTORY_KWARGS = ("config", "policy")


class ResourceRegistryError(RuntimeError):
    pass


class ResourceEntrypointError(ResourceRegistryError):
    pass


@dataclass(frozen=True, slots=True)
class ResourceRegistry:
    """
    Resource factories that are available to a single run.

    builtins: factories shipped with the library
    externals: factories discovered via entry points
    """

    builtins: Mapping[str, ResourceFactory]
    externals: Mapping[str, ResourceFactory]

    def merged(self) -> dict[str, ResourceFactory]:
        dupes: set[str] = set(self.builtins).intersection(self.externals)
        if dupes:
            raise ResourceRegistryError(
                f"duplicate resource ids found in builtins and entry points: {sorted(dupes)}"
            )
        merged: dict[str, ResourceFactory] = dict(self.builtins)
        merged.update(self.externals)
        return merged


def _validate_resource_factory_callable(resource_id: str, factory_obj: object) -> ResourceFactory:
    """
    Enforce a strict entry point contract.

    Entry points must load a callable that accepts keywordable `config` and `policy`
    parameters:
        def factory(*, config: Mapping[str, Any] | None = None, policy: ResolutionPolicy) -> SourceResource

    We do not accept classes here. If someone wants to expose a class, they can publish a
    small factory function that instantiates it.
    """
    if not callable(factory_obj):
        raise ResourceEntrypointError(
            f"resource entry point '{resource_id}' must load a callable factory; got {type(factory_obj).__name__}"
        )

    if inspect.isclass(factory_obj):
        raise ResourceEntrypointError(
            f"resource entry point '{resource_id}' must load a callable factory; got class {factory_obj.__name__}"
        )

    sig = inspect.signature(factory_obj)
    params = sig.parameters

    for name in _REQUIRED_FACTORY_KWARGS:
        if name not in params:
            raise ResourceEntrypointError(
                f"resource entry point '{resource_id}' factory must accept keyword argument '{name}'. Signature={sig}"
            )

        p = params[name]
        if p.kind not in (
            inspect.Parameter.KEYWORD_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            raise ResourceEntrypointError(
                f"resource entry point '{resource_id}' factory param '{name}' must be keywordable. Signature={sig}"
            )

    return factory_obj


def _load_entrypoint_resource_factories(*, group: str) -> dict[str, ResourceFactory]:
    """
    Discover resource factories from entry points.

    Determinism rules:
      - entry point name is the resource id
      - duplicate ids within the same group are an error
      - loaded object must be a valid ResourceFactory callable
    """
    factories: dict[str, ResourceFactory] = {}
    dupes: set[str] = set()

    for ep in entry_points().select(group=group):
        resource_id = ep.name
        factory_obj = ep.load()
        factory = _validate_resource_factory_callable(resource_id, factory_obj)

        if resource_id in factories:
            dupes.add(resource_id)
            continue

        factories[resource_id] = factory

    if dupes:
        raise ResourceEntrypointError(
            f"duplicate resource ids found in entry points group '{group}': {sorted(dupes)}"
        )

    return factories


def build_resource_registry() -> ResourceRegistry:
    """
    Build the resource registry for a run.

    This is the only place that knows about RESOURCE_ENTRYPOINT_GROUP.
    """
    externals: dict[str, ResourceFactory] = _load_entrypoint_resource_factories(
        group=RESOURCE_ENTRYPOINT_GROUP
    )

    return ResourceRegistry(builtins=BUILTIN_RESOURCE_FACTORIES, externals=externals)
