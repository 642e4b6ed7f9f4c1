from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from typing_extensions import Self

from vcs_resolution_engine.internal.util.multiformat import MultiformatModelMixin
from vcs_resolution_engine.model.errors import InvalidDescriptor
from vcs_resolution_engine.model.lock import LockFile
from vcs_resolution_engine.model.package import (
    ApplicationPackage,
    DependencyDeclaration,
    declarations_from_sequence,
)

DEFAULT_VERSION = "0.0.0"
DEFAULT_MAX_WORKERS = 4


class DependencyState(Enum):
    """
    Lifecycle of a single dependency within a run.

    DECLARED -> NORMALIZED -> SKIPPED
    DECLARED -> NORMALIZED -> RESOLVED -> MATERIALIZED -> LOCKED

    SKIPPED and LOCKED are terminal.
    """

    DECLARED = "declared"
    NORMALIZED = "normalized"
    SKIPPED = "skipped"
    RESOLVED = "resolved"
    MATERIALIZED = "materialized"
    LOCKED = "locked"

    @property
    def is_terminal(self) -> bool:
        return self in (DependencyState.SKIPPED, DependencyState.LOCKED)


@dataclass(kw_only=True, frozen=True, slots=True)
class ResolutionPolicy(MultiformatModelMixin):
    """
    Policy tables supplied by the caller for one resolution run.

    The tables are read-only for the whole run and may be shared between worker
    threads.

    Attributes:
        update_set (frozenset[str]): Application names that must be re-fetched even
            when a fresh copy and a lock entry exist.
        default_version (str): Version used for unpinned dependencies that have no
            entry in ``version_overrides``.
        version_overrides (Mapping[str, str]): Per-application version for
            unpinned dependencies.
        dependency_plan (Mapping[str, tuple[DependencyDeclaration, ...]]): Nested
            declarations that the simulator writes into each application it
            creates, keyed by application name.
    """

    update_set: frozenset[str] = field(default_factory=frozenset)
    default_version: str = DEFAULT_VERSION
    version_overrides: Mapping[str, str] = field(default_factory=dict)
    dependency_plan: Mapping[str, tuple[DependencyDeclaration, ...]] = field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        if not self.default_version:
            raise InvalidDescriptor("default_version must not be empty")
        empty = sorted(name for name, version in self.version_overrides.items() if not version)
        if empty:
            raise InvalidDescriptor(f"version overrides must not be empty: {empty}")
        object.__setattr__(self, "update_set", frozenset(self.update_set))
        object.__setattr__(
            self, "version_overrides", MappingProxyType(dict(self.version_overrides))
        )
        object.__setattr__(
            self,
            "dependency_plan",
            MappingProxyType({k: tuple(v) for k, v in self.dependency_plan.items()}),
        )

    def version_for(self, name: str) -> str:
        return self.version_overrides.get(name, self.default_version)

    def planned_dependencies(self, name: str) -> tuple[DependencyDeclaration, ...]:
        return self.dependency_plan.get(name, ())

    def to_mapping(self, *args: Any, **kwargs: Any) -> Mapping[str, Any]:
        return {
            "update": sorted(self.update_set),
            "default_version": self.default_version,
            "version_overrides": dict(self.version_overrides),
            "dependency_plan": {
                name: [d.to_mapping() for d in decls]
                for name, decls in self.dependency_plan.items()
            },
        }

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *args: Any, **kwargs: Any) -> Self:
        plan_map: Mapping[str, Sequence[Mapping[str, Any]]] = mapping.get("dependency_plan", {})
        return cls(
            update_set=frozenset(mapping.get("update", ())),
            default_version=str(mapping.get("default_version", DEFAULT_VERSION)),
            version_overrides={
                str(k): str(v) for k, v in mapping.get("version_overrides", {}).items()
            },
            dependency_plan={
                name: declarations_from_sequence(decls) for name, decls in plan_map.items()
            },
        )


@dataclass(kw_only=True, frozen=True, slots=True)
class ResolutionParams(MultiformatModelMixin):
    """
    Everything a single resolution run needs.

    Attributes:
        declarations (tuple[DependencyDeclaration, ...]): The top-level dependencies,
            in declaration order.
        deps_dir (Path): Directory under which each dependency is materialized as
            ``deps_dir/<name>``.
        lock_path (Path | None): Lock file read at the start of the run and written
            at the end of a successful one. ``None`` disables locking.
        policy (ResolutionPolicy): Policy tables for the run.
        resource_id (str | None): Which source resource to use (``"git"``,
            ``"simulated"`` or an entry point name). ``None`` selects the default.
        resource_config (Mapping[str, Any] | None): Passed to the resource factory.
        max_workers (int): Upper bound on concurrent materializations within a level.
        force (bool): Ignore freshness and previous lock entries altogether.
    """

    declarations: tuple[DependencyDeclaration, ...]
    deps_dir: Path
    lock_path: Path | None = None
    policy: ResolutionPolicy = field(default_factory=ResolutionPolicy)
    resource_id: str | None = None
    resource_config: Mapping[str, Any] | None = None
    max_workers: int = DEFAULT_MAX_WORKERS
    force: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "declarations", tuple(self.declarations))
        object.__setattr__(self, "deps_dir", Path(self.deps_dir))
        if self.lock_path is not None:
            object.__setattr__(self, "lock_path", Path(self.lock_path))
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    def to_mapping(self, *args: Any, **kwargs: Any) -> Mapping[str, Any]:
        mapping: dict[str, Any] = {
            "deps": [d.to_mapping() for d in self.declarations],
            "deps_dir": self.deps_dir.as_posix(),
            "policy": self.policy.to_mapping(),
            "max_workers": self.max_workers,
            "force": self.force,
        }
        if self.lock_path is not None:
            mapping["lock_path"] = self.lock_path.as_posix()
        if self.resource_id is not None:
            mapping["resource_id"] = self.resource_id
        if self.resource_config:
            mapping["resource_config"] = dict(self.resource_config)
        return mapping

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], *args: Any, **kwargs: Any) -> Self:
        lock_path = mapping.get("lock_path")
        return cls(
            declarations=declarations_from_sequence(mapping.get("deps", ())),
            deps_dir=Path(mapping["deps_dir"]),
            lock_path=Path(lock_path) if lock_path is not None else None,
            policy=ResolutionPolicy.from_mapping(mapping.get("policy", {})),
            resource_id=mapping.get("resource_id"),
            resource_config=mapping.get("resource_config"),
            max_workers=int(mapping.get("max_workers", DEFAULT_MAX_WORKERS)),
            force=bool(mapping.get("force", False)),
        )

    @classmethod
    def _preprocess_mapping(
        cls, mapping: Mapping[str, Any], *, fmt: str, path: Path | None
    ) -> Mapping[str, Any]:
        # Relative paths in a configuration file are relative to that file.
        if path is None:
            return mapping
        base = path.parent
        updated = dict(mapping)
        for key in ("deps_dir", "lock_path"):
            value = updated.get(key)
            if value is not None and not Path(value).is_absolute():
                updated[key] = (base / value).as_posix()
        return updated


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    lock: LockFile = field(default_factory=LockFile)
    packages: dict[str, ApplicationPackage] = field(default_factory=dict)
    states: dict[str, DependencyState] = field(default_factory=dict)

    @property
    def skipped(self) -> frozenset[str]:
        return frozenset(n for n, s in self.states.items() if s is DependencyState.SKIPPED)

    @property
    def locked(self) -> frozenset[str]:
        return frozenset(n for n, s in self.states.items() if s is DependencyState.LOCKED)
