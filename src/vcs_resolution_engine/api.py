from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from vcs_resolution_engine.internal.lock_encoder import to_lock
from vcs_resolution_engine.internal.normalizer import normalize
from vcs_resolution_engine.internal.orchestration import (
    DependencyCoordinator,
    LevelOrderScheduler,
    TraversalReport,
)
from vcs_resolution_engine.model.errors import ResolutionRunError
from vcs_resolution_engine.model.lock import LockFile, read_lock_file, write_lock_file
from vcs_resolution_engine.model.resolution import ResolutionParams, ResolutionResult
from vcs_resolution_engine.model.source import LockEntry, SourceDescriptor
from vcs_resolution_engine.resource import SourceResource


def _previous_lock(params: ResolutionParams) -> LockFile:
    """
    Loads the lock file written by a previous run, if locking is enabled.

    Args:
        params (ResolutionParams): The run parameters. When `lock_path` is None or
            `force` is set, the previous lock is not consulted.

    Returns:
        LockFile: The previous lock, or an empty lock.
    """
    if params.lock_path is None or params.force:
        return LockFile()
    lock = read_lock_file(params.lock_path)
    logging.debug(f"previous lock {params.lock_path} pins {list(lock.names())}")
    return lock


def _result_from_report(report: TraversalReport) -> ResolutionResult:
    """
    Converts a successful traversal into the public result.

    Args:
        report (TraversalReport): The traversal report; must not contain failures.

    Returns:
        ResolutionResult: The lock file, the packages and the final state of each
        dependency, keyed by dependency name.
    """
    return ResolutionResult(
        lock=report.lock(),
        packages={name: o.package for name, o in report.outcomes.items()},
        states={name: o.state for name, o in report.outcomes.items()},
    )


def lock_source(
    descriptor: SourceDescriptor, overrides: Mapping[str, str], default: str
) -> LockEntry:
    """
    Normalize a descriptor and encode it for the lock file without fetching it.

    This is the pure normalize -> resolve -> lock pipeline of the simulated
    variant, useful to predict lock entries.
    """
    return to_lock(normalize(descriptor, overrides, default))


def run_resolution(
    params: ResolutionParams, resource: SourceResource
) -> ResolutionResult:
    """
    Resolves and materializes every dependency in `params` with an already opened
    resource, then writes the lock file.

    Args:
        params (ResolutionParams): The run parameters.
        resource (SourceResource): The resource performing resolution and
            materialization; selected by the caller.

    Returns:
        ResolutionResult: The produced lock and packages.

    Raises:
        ResolutionRunError: If any top-level or transitive dependency failed. No
            lock file is written in that case; packages already materialized are
            left in place.
    """
    coordinator = DependencyCoordinator(
        resource=resource,
        policy=params.policy,
        deps_dir=params.deps_dir,
        previous_lock=_previous_lock(params),
        force=params.force,
    )
    scheduler = LevelOrderScheduler(coordinator=coordinator, max_workers=params.max_workers)

    report = scheduler.run(params.declarations)
    if not report.ok:
        raise ResolutionRunError(report.failures)

    result = _result_from_report(report)
    logging.info(
        f"resolved {len(result.lock)} dependencies "
        f"locked={sorted(result.locked)} skipped={sorted(result.skipped)}"
    )
    if params.lock_path is not None:
        write_lock_file(params.lock_path, result.lock)
    return result


@dataclass(kw_only=True, frozen=True, slots=True)
class VcsResolutionEngine:
    """
    Entry point for resolving version-control-hosted dependencies.

    The engine opens the source resource named by the parameters (the real `git`
    resource by default, or the `simulated` one), walks the dependency graph level
    by level, and writes a lock file pinning every dependency it encountered.
    Running it again against that lock file reproduces the same lock without
    contacting any remote.

    Methods:
        resolve(params: ResolutionParams) -> ResolutionResult
            Resolves every declared dependency and its transitive dependencies.
        resolve_file(path) -> ResolutionResult
            Same, reading the parameters from a json, toml or yaml file.
    """

    @staticmethod
    def resolve(params: ResolutionParams) -> ResolutionResult:
        from vcs_resolution_engine.internal.resources.factory import open_resource

        logging.info(
            f"resolving {len(params.declarations)} dependencies into {params.deps_dir} "
            f"resource={params.resource_id or 'default'}"
        )
        with open_resource(
            resource_id=params.resource_id,
            policy=params.policy,
            config=params.resource_config,
        ) as resource:
            return run_resolution(params, resource)

    @staticmethod
    def resolve_file(path: str | Path) -> ResolutionResult:
        return VcsResolutionEngine.resolve(ResolutionParams.from_file(path))