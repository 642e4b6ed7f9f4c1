from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from vcs_resolution_engine.internal.normalizer import normalize
from vcs_resolution_engine.model.errors import (
    InvalidDescriptor,
    ProgrammingInvariantViolation,
    ResolutionError,
)
from vcs_resolution_engine.model.lock import LockedDependency, LockFile
from vcs_resolution_engine.model.package import ANY_VERSION, ApplicationPackage, DependencyDeclaration
from vcs_resolution_engine.model.resolution import DependencyState, ResolutionPolicy
from vcs_resolution_engine.model.source import ResolvedReference, SelectorKind, SourceDescriptor
from vcs_resolution_engine.resource import SourceResource

_TRANSITIONS: Final[dict[DependencyState, frozenset[DependencyState]]] = {
    DependencyState.DECLARED: frozenset({DependencyState.NORMALIZED}),
    DependencyState.NORMALIZED: frozenset({DependencyState.SKIPPED, DependencyState.RESOLVED}),
    DependencyState.RESOLVED: frozenset({DependencyState.MATERIALIZED}),
    DependencyState.MATERIALIZED: frozenset({DependencyState.LOCKED}),
    DependencyState.SKIPPED: frozenset(),
    DependencyState.LOCKED: frozenset(),
}


@dataclass(slots=True)
class DependencyLifecycle:
    """
    Tracks one dependency through DECLARED -> NORMALIZED -> {SKIPPED | RESOLVED ->
    MATERIALIZED -> LOCKED}. Any other move is a defect in the caller.
    """

    name: str
    state: DependencyState = DependencyState.DECLARED
    history: list[DependencyState] = field(default_factory=lambda: [DependencyState.DECLARED])

    def advance(self, new_state: DependencyState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ProgrammingInvariantViolation(
                f"illegal transition for {self.name}: {self.state.value} -> {new_state.value}",
                app_name=self.name,
            )
        self.state = new_state
        self.history.append(new_state)


@dataclass(frozen=True, slots=True)
class DependencyOutcome:
    name: str
    level: int
    state: DependencyState
    reference: ResolvedReference
    package: ApplicationPackage
    locked: LockedDependency


def constraint_satisfied(constraint: str, version: str) -> bool | None:
    """
    Check ``version`` against a PEP 440 ``constraint``.

    Returns ``None`` when the check does not apply: any-version constraints, and
    constraints or versions that are not PEP 440 (other build tools use regular
    expressions here).
    """
    if not constraint or constraint.strip() == ANY_VERSION:
        return None
    try:
        spec = SpecifierSet(constraint)
        parsed = Version(version)
    except (InvalidSpecifier, InvalidVersion):
        return None
    return spec.contains(parsed, prereleases=True)


@dataclass(frozen=True, slots=True)
class DependencyCoordinator:
    """
    Runs a single dependency through its lifecycle.

    The coordinator owns no mutable state: the resource, the policy tables and the
    previous lock are all read-only, so one instance serves every worker thread.
    """

    resource: SourceResource
    policy: ResolutionPolicy
    deps_dir: Path
    previous_lock: LockFile = field(default_factory=LockFile)
    force: bool = False

    def target_dir(self, name: str) -> Path:
        return self.deps_dir / name

    def _effective_source(self, declaration: DependencyDeclaration) -> tuple[SourceDescriptor, LockedDependency | None]:
        """
        The source to resolve: the previous lock entry when it still applies,
        else the declared source.
        """
        if declaration.source is None:
            raise InvalidDescriptor(
                f"no source known for dependency {declaration.name!r}",
                app_name=declaration.name,
            )

        locked = self.previous_lock.get(declaration.name)
        if locked is None or self.force or declaration.name in self.policy.update_set:
            return declaration.source, None
        if locked.url != declaration.source.url:
            logging.info(
                f"lock entry for {declaration.name} points at {locked.url}, "
                f"declaration at {declaration.source.url}; ignoring lock"
            )
            return declaration.source, None
        return locked.entry.as_source(), locked

    def _version_reference(
        self, declaration: DependencyDeclaration, carried: LockedDependency | None
    ) -> ResolvedReference | None:
        """
        The reference that names the version of a package rebuilt from a carried
        lock entry: the declared source normalized as usual, pinned to the locked
        value when it normalizes to a tag.
        """
        if carried is None or declaration.source is None:
            return None
        declared = normalize(
            declaration.source, self.policy.version_overrides, self.policy.default_version
        )
        if declared.kind is SelectorKind.TAG:
            return ResolvedReference(url=declared.url, kind=SelectorKind.TAG, value=carried.ref)
        return declared

    def process(self, declaration: DependencyDeclaration, level: int) -> DependencyOutcome:
        name = declaration.name
        lifecycle = DependencyLifecycle(name=name)

        source, carried = self._effective_source(declaration)
        ref = normalize(source, self.policy.version_overrides, self.policy.default_version)
        lifecycle.advance(DependencyState.NORMALIZED)

        target = self.target_dir(name)
        if (
            carried is not None
            and target.is_dir()
            and not self.resource.needs_update(target, ref, self.policy.update_set)
        ):
            lifecycle.advance(DependencyState.SKIPPED)
            package = self.resource.read_package(target, ref)
            logging.debug(f"{name} is fresh at {carried.ref}; carrying lock entry forward")
            return DependencyOutcome(
                name=name,
                level=level,
                state=lifecycle.state,
                reference=ref,
                package=package,
                locked=LockedDependency(name=name, entry=carried.entry, level=level),
            )

        resolved = self.resource.resolve(ref)
        lifecycle.advance(DependencyState.RESOLVED)

        package = self.resource.materialize(
            target, resolved, version_ref=self._version_reference(declaration, carried)
        )
        lifecycle.advance(DependencyState.MATERIALIZED)

        satisfied = constraint_satisfied(declaration.version_constraint, package.version)
        if satisfied is False:
            logging.warning(
                f"{name} {package.version} does not satisfy constraint "
                f"{declaration.version_constraint!r}"
            )

        entry = self.resource.lock(target, resolved)
        lifecycle.advance(DependencyState.LOCKED)
        logging.info(f"locked {name} level={level} ref={entry.ref}")
        return DependencyOutcome(
            name=name,
            level=level,
            state=lifecycle.state,
            reference=resolved,
            package=package,
            locked=LockedDependency(name=name, entry=entry, level=level),
        )


@dataclass(slots=True)
class TraversalReport:
    outcomes: dict[str, DependencyOutcome] = field(default_factory=dict)
    failures: dict[str, ResolutionError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def lock(self) -> LockFile:
        return LockFile.of(o.locked for o in self.outcomes.values())


@dataclass(frozen=True, slots=True)
class LevelOrderScheduler:
    """
    Visits the dependency graph one level at a time.

    Level 0 is the root declarations. A name is processed where it is first
    declared (shallowest level, then declaration order); later declarations of the
    same name are ignored. Dependencies within a level run concurrently; a level
    starts only after every package of the previous one has been materialized,
    because those packages supply its declarations.
    """

    coordinator: DependencyCoordinator
    max_workers: int = 1

    def run(self, roots: Sequence[DependencyDeclaration]) -> TraversalReport:
        report = TraversalReport()
        seen: set[str] = set()
        level = 0
        current = self._dedupe(roots, seen)

        while current:
            logging.debug(f"level {level}: {[d.name for d in current]}")
            results = self._run_level(current, level)

            next_level: list[DependencyDeclaration] = []
            for declaration, result in zip(current, results):
                if isinstance(result, ResolutionError):
                    report.failures[declaration.name] = result
                    continue
                report.outcomes[declaration.name] = result
                next_level.extend(result.package.dependencies)

            current = self._dedupe(next_level, seen)
            level += 1

        if report.failures:
            logging.error(f"resolution failed for: {sorted(report.failures)}")
        return report

    @staticmethod
    def _dedupe(
        declarations: Iterable[DependencyDeclaration], seen: set[str]
    ) -> list[DependencyDeclaration]:
        unique: list[DependencyDeclaration] = []
        for d in declarations:
            if d.name in seen:
                logging.debug(f"skipping {d.name}: already declared at a shallower level")
                continue
            seen.add(d.name)
            unique.append(d)
        return unique

    def _process(
        self, declaration: DependencyDeclaration, level: int
    ) -> DependencyOutcome | ResolutionError:
        try:
            return self.coordinator.process(declaration, level)
        except ProgrammingInvariantViolation:
            raise
        except ResolutionError as e:
            if e.app_name is None:
                e.app_name = declaration.name
            logging.debug(f"dependency failed: {declaration.name} err={type(e).__name__}: {e}")
            return e

    def _run_level(
        self, declarations: Sequence[DependencyDeclaration], level: int
    ) -> list[DependencyOutcome | ResolutionError]:
        if self.max_workers == 1 or len(declarations) == 1:
            return [self._process(d, level) for d in declarations]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._process, d, level) for d in declarations]
            return [f.result() for f in futures]
