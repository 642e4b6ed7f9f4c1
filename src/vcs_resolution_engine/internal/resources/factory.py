from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Literal, Mapping

from vcs_resolution_engine.internal.resources.builtin import (
    DEFAULT_RESOURCE_ID,
    ResourceConfigError,
    ResourceFactory,
)
from vcs_resolution_engine.internal.resources.registry import (
    ResourceRegistry,
    ResourceRegistryError,
    build_resource_registry,
)
from vcs_resolution_engine.model.resolution import ResolutionPolicy
from vcs_resolution_engine.resource import SourceResource


class ResourceSelectionError(RuntimeError):
    """
    Raised when the requested source resource cannot be selected from the
    registry or cannot be built from the given config.
    """

    pass


@dataclass(frozen=True, slots=True)
class ResourceSelection:
    """
    Represents a selected resource factory with associated metadata.

    Attributes:
        resource_id: A unique string identifier for the resource.
        origin: The origin of the resource, specified as either "builtin" or "entrypoint".
        factory: The ResourceFactory used to create the resource instance.
    """

    resource_id: str
    origin: Literal["builtin", "entrypoint"]
    factory: ResourceFactory


def _select_resource(
    *, resource_id: str | None, registry: ResourceRegistry
) -> ResourceSelection:
    """
    Determines and selects a resource based on the provided resource ID or a default
    identifier if none is given. Verifies the availability of the resource before selection.

    Raises:
    ResourceSelectionError
        If the provided or default resource ID does not exist in the merged registry.
    """
    rid = resource_id or DEFAULT_RESOURCE_ID

    merged = registry.merged()
    if rid not in merged:
        raise ResourceSelectionError(
            f"unknown resource id {rid!r}. available={sorted(merged)}"
        )

    origin: Literal["builtin", "entrypoint"] = (
        "builtin" if rid in registry.builtins else "entrypoint"
    )
    return ResourceSelection(resource_id=rid, origin=origin, factory=merged[rid])


@contextmanager
def open_resource(
    *,
    resource_id: str | None,
    policy: ResolutionPolicy,
    config: Mapping[str, Any] | None = None,
    registry: ResourceRegistry | None = None,
) -> Iterator[SourceResource]:
    """
    Create exactly one resource instance for the run and manage its lifecycle.

    Parameters:
      - resource_id: None means "use the default"
      - policy: the run's policy tables, passed to the factory
      - config: passed to the selected ResourceFactory (keyword arg `config`)
      - registry: test seam; when provided, entry points are not scanned.
    """
    if registry is None:
        registry = build_resource_registry()

    try:
        selection: ResourceSelection = _select_resource(
            resource_id=resource_id, registry=registry
        )
    except ResourceRegistryError as e:
        raise ResourceSelectionError(str(e)) from e

    logging.debug(f"opening resource id={selection.resource_id} origin={selection.origin}")
    try:
        resource: SourceResource = selection.factory(config=config, policy=policy)
    except ResourceConfigError as e:
        raise ResourceSelectionError(str(e)) from e

    try:
        yield resource
    finally:
        resource.close()
