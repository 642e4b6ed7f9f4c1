from __future__ import annotations

import logging
from collections.abc import Set
from dataclasses import dataclass
from pathlib import Path

from vcs_resolution_engine.internal import materializer, staleness
from vcs_resolution_engine.model.package import ApplicationPackage, read_manifest_version
from vcs_resolution_engine.model.resolution import ResolutionPolicy
from vcs_resolution_engine.model.source import ResolvedReference, app_name
from vcs_resolution_engine.resource import SourceResource


@dataclass(frozen=True, slots=True)
class SimulatedGitResource(SourceResource):
    """
    Test-double resource that creates applications instead of downloading them.

    Every URL submitted to it yields an application named after the URL, whose
    version and nested dependencies come from the policy tables:

    * ``version_overrides`` / ``default_version`` give the version of any
      dependency not pinned to a tag;
    * ``dependency_plan`` gives the declarations written into each application;
    * ``update_set`` decides which applications are reported as stale.

    Nothing here touches the network, and ``resolve`` is the identity.
    """

    policy: ResolutionPolicy

    def resolve(self, ref: ResolvedReference) -> ResolvedReference:
        return ref

    def needs_update(self, target_dir: Path, ref: ResolvedReference, update_set: Set[str]) -> bool:
        return staleness.needs_update(target_dir, ref, update_set)

    def materialize(
        self,
        target_dir: Path,
        ref: ResolvedReference,
        *,
        version_ref: ResolvedReference | None = None,
    ) -> ApplicationPackage:
        return materializer.materialize(
            target_dir,
            ref,
            self.policy.dependency_plan,
            self.policy.version_overrides,
            self.policy.default_version,
            version_ref=version_ref,
        )

    def read_package(self, target_dir: Path, ref: ResolvedReference) -> ApplicationPackage:
        name = app_name(ref.url)
        return ApplicationPackage(
            name=name,
            version=self.make_version(target_dir),
            dependencies=self.policy.planned_dependencies(name),
        )

    def make_version(self, target_dir: Path) -> str:
        """
        The version recorded in the on-disk manifest, else the override for the
        directory's application name, else the default version.
        """
        version = read_manifest_version(target_dir)
        if version is not None:
            return version
        logging.debug(f"no manifest in {target_dir}; using policy version")
        return self.policy.version_for(target_dir.name)
