from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Set
from pathlib import Path

from vcs_resolution_engine.internal.lock_encoder import to_lock
from vcs_resolution_engine.model.package import ApplicationPackage
from vcs_resolution_engine.model.source import LockEntry, ResolvedReference

RESOURCE_ENTRYPOINT_GROUP = "vcs_resolution_engine.resources"


class SourceResource(ABC):
    """
    Capability interface for fetching version-controlled dependencies.

    The engine only talks to this interface. The real implementation consults a
    remote repository, the simulated one synthesizes packages from policy tables;
    both must honour the same contract:

    * ``resolve`` is idempotent and deterministic for a fixed remote state;
    * ``materialize`` writes the package for one dependency (never its children)
      and returns it. ``version_ref``, when given, is the declared reference
      that names the package version while ``ref`` points at a locked reference;
    * ``needs_update`` never has side effects.
    """

    @abstractmethod
    def resolve(self, ref: ResolvedReference) -> ResolvedReference: ...

    @abstractmethod
    def needs_update(self, target_dir: Path, ref: ResolvedReference, update_set: Set[str]) -> bool: ...

    @abstractmethod
    def materialize(
        self,
        target_dir: Path,
        ref: ResolvedReference,
        *,
        version_ref: ResolvedReference | None = None,
    ) -> ApplicationPackage: ...

    @abstractmethod
    def read_package(self, target_dir: Path, ref: ResolvedReference) -> ApplicationPackage: ...

    @abstractmethod
    def make_version(self, target_dir: Path) -> str: ...

    def lock(self, target_dir: Path, ref: ResolvedReference) -> LockEntry:
        return to_lock(ref)

    def close(self) -> None:
        """
        Cleanup hook for resources.

        The default implementation is a no-op. Override in resources that hold
        processes, temp dirs or connections.
        """
        return None

    def __enter__(self) -> SourceResource:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
