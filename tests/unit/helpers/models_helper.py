from __future__ import annotations

from collections.abc import Set
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from vcs_resolution_engine.internal.lock_encoder import to_lock
from vcs_resolution_engine.model.package import ApplicationPackage, DependencyDeclaration
from vcs_resolution_engine.model.resolution import ResolutionPolicy
from vcs_resolution_engine.model.source import (
    LockEntry,
    ResolvedReference,
    Selector,
    SourceDescriptor,
    app_name,
)
from vcs_resolution_engine.resource import SourceResource

BASE_URL = "https://git.example.com/org"


def url_for(name: str) -> str:
    return f"{BASE_URL}/{name}.git"


def source(name: str, selector: Selector | None = None) -> SourceDescriptor:
    return SourceDescriptor(url=url_for(name), selector=selector)


def dep(
    name: str,
    selector: Selector | None = None,
    *,
    constraint: str = "*",
) -> DependencyDeclaration:
    return DependencyDeclaration(
        name=name, version_constraint=constraint, source=source(name, selector)
    )


def policy(
    *,
    update: Sequence[str] = (),
    default_version: str = "0.0.0",
    overrides: Mapping[str, str] | None = None,
    plan: Mapping[str, Sequence[DependencyDeclaration]] | None = None,
) -> ResolutionPolicy:
    return ResolutionPolicy(
        update_set=frozenset(update),
        default_version=default_version,
        version_overrides=dict(overrides or {}),
        dependency_plan={k: tuple(v) for k, v in (plan or {}).items()},
    )


# =============================================================================
# FAKES
# =============================================================================


@dataclass(slots=True)
class RecordingResource(SourceResource):
    """
    In-memory SourceResource double.

    Records every call, never touches the filesystem except to create the target
    directory on materialize (so freshness checks see it), and lets tests inject
    failures per application name.
    """

    plan: Mapping[str, Sequence[DependencyDeclaration]] = field(default_factory=dict)
    stale: Set[str] = field(default_factory=frozenset)
    fail_on: Mapping[str, BaseException] = field(default_factory=dict)
    resolve_hook: Callable[[ResolvedReference], ResolvedReference] | None = None
    calls: list[tuple[str, str]] = field(default_factory=list)
    version_refs: dict[str, ResolvedReference | None] = field(default_factory=dict)
    closed: bool = False

    def resolve(self, ref: ResolvedReference) -> ResolvedReference:
        self.calls.append(("resolve", app_name(ref.url)))
        if self.resolve_hook is not None:
            return self.resolve_hook(ref)
        return ref

    def needs_update(self, target_dir: Path, ref: ResolvedReference, update_set: Set[str]) -> bool:
        name = app_name(ref.url)
        self.calls.append(("needs_update", name))
        return name in update_set or name in self.stale

    def materialize(
        self,
        target_dir: Path,
        ref: ResolvedReference,
        *,
        version_ref: ResolvedReference | None = None,
    ) -> ApplicationPackage:
        name = app_name(ref.url)
        self.calls.append(("materialize", name))
        self.version_refs[name] = version_ref
        if name in self.fail_on:
            raise self.fail_on[name]
        target_dir.mkdir(parents=True, exist_ok=True)
        return ApplicationPackage(
            name=name, version=ref.value, dependencies=tuple(self.plan.get(name, ()))
        )

    def read_package(self, target_dir: Path, ref: ResolvedReference) -> ApplicationPackage:
        name = app_name(ref.url)
        self.calls.append(("read_package", name))
        return ApplicationPackage(
            name=name, version=ref.value, dependencies=tuple(self.plan.get(name, ()))
        )

    def make_version(self, target_dir: Path) -> str:
        return "0.0.0"

    def lock(self, target_dir: Path, ref: ResolvedReference) -> LockEntry:
        self.calls.append(("lock", app_name(ref.url)))
        return to_lock(ref)

    def close(self) -> None:
        self.closed = True

    def called(self, op: str) -> list[str]:
        return [name for o, name in self.calls if o == op]


def as_mapping(obj: Any) -> dict[str, Any]:
    return dict(obj.to_mapping())
