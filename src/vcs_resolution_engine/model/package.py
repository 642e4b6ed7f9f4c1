from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from typing_extensions import Self

from vcs_resolution_engine.internal.util.multiformat import MultiformatModelMixin
from vcs_resolution_engine.internal.util.toml import load_toml_file
from vcs_resolution_engine.model.errors import InvalidDescriptor
from vcs_resolution_engine.model.source import SourceDescriptor

MANIFEST_FILENAME: Final[str] = "app.toml"
DECLARATIONS_FILENAME: Final[str] = "deps.toml"
ANY_VERSION: Final[str] = "*"


@dataclass(frozen=True, slots=True)
class DependencyDeclaration(MultiformatModelMixin):
    """
    A named dependency with a version constraint and the source it comes from.

    ``source`` is ``None`` only for declarations read back from a declarations
    file written without sources (the simulator omits them).
    """

    name: str
    version_constraint: str = ANY_VERSION
    source: SourceDescriptor | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidDescriptor("dependency declaration requires a non-empty name")

    def to_mapping(self, *args, include_source: bool = True, **kwargs) -> dict[str, Any]:
        mapping: dict[str, Any] = {
            "name": self.name,
            "constraint": self.version_constraint,
        }
        if include_source and self.source is not None:
            mapping["source"] = self.source.to_mapping()
        return mapping

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        if not isinstance(mapping, Mapping):
            raise InvalidDescriptor(
                f"dependency declaration must be a mapping, got {type(mapping).__name__}"
            )
        source_map = mapping.get("source")
        try:
            source = SourceDescriptor.from_mapping(source_map) if source_map is not None else None
        except InvalidDescriptor as e:
            raise InvalidDescriptor(str(e), app_name=mapping.get("name"), causes=(e,)) from e
        return cls(
            name=mapping.get("name", ""),
            version_constraint=str(mapping.get("constraint", ANY_VERSION)),
            source=source,
        )


def declarations_from_sequence(items: Sequence[Mapping[str, Any]]) -> tuple[DependencyDeclaration, ...]:
    return tuple(DependencyDeclaration.from_mapping(item) for item in items)


@dataclass(frozen=True, slots=True)
class ApplicationPackage(MultiformatModelMixin):
    """
    The on-disk application produced for a resolved dependency.

    A package directory holds two files:

    * ``app.toml``, the manifest, with the name, the version and the names of the
      applications it depends on;
    * ``deps.toml``, the declarations, with one ``[[deps]]`` table per nested
      dependency (name and constraint, plus the source when known).
    """

    name: str
    version: str
    dependencies: tuple[DependencyDeclaration, ...] = field(default_factory=tuple)

    @property
    def dependency_names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.dependencies)

    def manifest_mapping(self) -> dict[str, Any]:
        return {
            "application": {
                "name": self.name,
                "version": self.version,
                "applications": list(self.dependency_names),
            }
        }

    def declarations_mapping(self, *, include_sources: bool = False) -> dict[str, Any]:
        return {
            "deps": [d.to_mapping(include_source=include_sources) for d in self.dependencies]
        }

    def to_mapping(self, *args, **kwargs) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "dependencies": [d.to_mapping() for d in self.dependencies],
        }

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        return cls(
            name=mapping["name"],
            version=mapping["version"],
            dependencies=declarations_from_sequence(mapping.get("dependencies", ())),
        )

    @classmethod
    def read(
        cls,
        directory: Path,
        *,
        default_name: str | None = None,
        default_version: str | None = None,
    ) -> Self:
        """
        Read a package back from ``directory``.

        Missing files are tolerated when defaults are supplied: a checkout of a
        repository that does not describe itself still yields a package with no
        dependencies.
        """
        manifest_path = directory / MANIFEST_FILENAME
        declarations_path = directory / DECLARATIONS_FILENAME

        app: Mapping[str, Any] = {}
        if manifest_path.is_file():
            app = load_toml_file(manifest_path).get("application", {})

        name = app.get("name", default_name)
        version = app.get("version", default_version)
        if name is None or version is None:
            raise FileNotFoundError(f"no usable {MANIFEST_FILENAME} in {directory}")

        deps: tuple[DependencyDeclaration, ...] = ()
        if declarations_path.is_file():
            deps = declarations_from_sequence(load_toml_file(declarations_path).get("deps", []))

        return cls(name=str(name), version=str(version), dependencies=deps)


def read_manifest_version(directory: Path) -> str | None:
    manifest_path = directory / MANIFEST_FILENAME
    if not manifest_path.is_file():
        return None
    version = load_toml_file(manifest_path).get("application", {}).get("version")
    return str(version) if version is not None else None
