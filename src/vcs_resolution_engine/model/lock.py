from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from typing_extensions import Self

from vcs_resolution_engine.internal.util.fs import atomic_write_text
from vcs_resolution_engine.internal.util.multiformat import MultiformatModelMixin
from vcs_resolution_engine.internal.util.toml import load_toml_text
from vcs_resolution_engine.model.errors import LockFileError
from vcs_resolution_engine.model.source import LockEntry

LOCK_FORMAT_VERSION: Final[int] = 1


@dataclass(frozen=True, slots=True)
class LockedDependency(MultiformatModelMixin):
    """
    One lock file record: the dependency name, its pinned entry and the level at
    which it was first encountered (0 for top-level declarations).
    """

    name: str
    entry: LockEntry
    level: int = 0

    @property
    def url(self) -> str:
        return self.entry.url

    @property
    def ref(self) -> str:
        return self.entry.ref

    def to_mapping(self, *args, **kwargs) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.entry.url,
            "ref": self.entry.ref,
            "level": self.level,
        }

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        return cls(
            name=mapping["name"],
            entry=LockEntry(url=mapping["url"], ref=mapping["ref"]),
            level=int(mapping.get("level", 0)),
        )


@dataclass(frozen=True, slots=True)
class LockFile(MultiformatModelMixin):
    """
    The ordered set of pinned dependencies produced by a run.

    Entries are kept sorted by name so that the serialized form only depends on
    the set of entries, never on the order in which dependencies finished.
    """

    entries: tuple[LockedDependency, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        names = [e.name for e in self.entries]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise LockFileError(f"duplicate lock entries: {dupes}")
        object.__setattr__(self, "entries", tuple(sorted(self.entries, key=lambda e: e.name)))

    @classmethod
    def of(cls, entries: Iterable[LockedDependency]) -> Self:
        return cls(entries=tuple(entries))

    def get(self, name: str) -> LockedDependency | None:
        for e in self.entries:
            if e.name == name:
                return e
        return None

    def __len__(self) -> int:
        return len(self.entries)

    def names(self) -> tuple[str, ...]:
        return tuple(e.name for e in self.entries)

    def to_mapping(self, *args, **kwargs) -> dict[str, Any]:
        return {
            "version": LOCK_FORMAT_VERSION,
            "package": [e.to_mapping() for e in self.entries],
        }

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        version = mapping.get("version")
        if version != LOCK_FORMAT_VERSION:
            raise LockFileError(
                f"unsupported lock file version {version!r}; expected {LOCK_FORMAT_VERSION}"
            )
        packages = mapping.get("package", [])
        if not isinstance(packages, list):
            raise LockFileError("lock file 'package' must be an array of tables")
        try:
            return cls.of(LockedDependency.from_mapping(p) for p in packages)
        except (KeyError, TypeError, ValueError) as e:
            raise LockFileError(f"malformed lock entry: {e}", causes=(e,)) from e


def read_lock_file(path: Path) -> LockFile:
    """
    Read a lock file. A missing file is an empty lock.
    """
    if not path.exists():
        logging.debug(f"no lock file at {path}; starting from an empty lock")
        return LockFile()
    try:
        mapping = load_toml_text(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise LockFileError(f"cannot read lock file {path}: {e}", causes=(e,)) from e
    return LockFile.from_mapping(mapping)


def write_lock_file(path: Path, lock: LockFile) -> None:
    atomic_write_text(path, lock.to_toml())
    logging.info(f"wrote lock file path={path} entries={len(lock)}")
