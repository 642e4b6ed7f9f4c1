from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path

from vcs_resolution_engine.internal.util.toml import dump_toml_to_str
from vcs_resolution_engine.model.errors import MaterializationError
from vcs_resolution_engine.model.package import (
    DECLARATIONS_FILENAME,
    MANIFEST_FILENAME,
    ApplicationPackage,
    DependencyDeclaration,
)
from vcs_resolution_engine.model.source import ResolvedReference, SelectorKind, app_name


def package_version(
    ref: ResolvedReference, overrides: Mapping[str, str], default: str
) -> str:
    """
    The version written into a synthesized manifest.

    A tag names the version itself; branches and refs fall back to the
    override table and then the default.
    """
    if ref.kind is SelectorKind.TAG:
        return ref.value
    return overrides.get(app_name(ref.url), default)


def _ensure_directory(path: Path, *, name: str) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except (FileExistsError, NotADirectoryError) as e:
        raise MaterializationError(
            f"cannot create {path}: a non-directory file is in the way", app_name=name, causes=(e,)
        ) from e
    except OSError as e:
        raise MaterializationError(f"cannot create {path}: {e}", app_name=name, causes=(e,)) from e


def write_package(
    target_dir: Path, package: ApplicationPackage, *, include_sources: bool = False
) -> None:
    """
    Write the manifest and declarations of ``package`` into ``target_dir``.

    Both files are staged in a temporary sibling directory first. A new package
    directory is moved into place in one rename; an existing one has each file
    replaced with ``os.replace``. A failure never leaves half-written files
    behind.
    """
    _ensure_directory(target_dir.parent, name=package.name)
    if target_dir.exists() and not target_dir.is_dir():
        raise MaterializationError(
            f"cannot materialize into {target_dir}: path exists and is not a directory",
            app_name=package.name,
        )

    staging: Path | None = None
    try:
        staging = Path(tempfile.mkdtemp(prefix=f".{target_dir.name}-", dir=str(target_dir.parent)))
        (staging / MANIFEST_FILENAME).write_text(
            dump_toml_to_str(package.manifest_mapping()), encoding="utf-8"
        )
        (staging / DECLARATIONS_FILENAME).write_text(
            dump_toml_to_str(package.declarations_mapping(include_sources=include_sources)),
            encoding="utf-8",
        )

        if target_dir.is_dir():
            for filename in (MANIFEST_FILENAME, DECLARATIONS_FILENAME):
                os.replace(staging / filename, target_dir / filename)
        else:
            os.replace(staging, target_dir)
            staging = None
    except OSError as e:
        raise MaterializationError(
            f"cannot write package {package.name!r} to {target_dir}: {e}",
            app_name=package.name,
            causes=(e,),
        ) from e
    finally:
        if staging is not None:
            shutil.rmtree(staging, ignore_errors=True)


def materialize(
    target_dir: Path,
    ref: ResolvedReference,
    plan: Mapping[str, Sequence[DependencyDeclaration]],
    overrides: Mapping[str, str],
    default: str,
    *,
    version_ref: ResolvedReference | None = None,
) -> ApplicationPackage:
    """
    Synthesize the application for ``ref`` in ``target_dir`` without any network
    access.

    The manifest version is derived from ``version_ref`` when one is given, so a
    package rebuilt from a lock entry keeps the version it was first written
    with.

    The package takes its nested declarations from ``plan``; those dependencies
    are recorded by name and constraint only and are not materialized here.
    Calling this again with the same arguments rewrites identical files.
    """
    name = app_name(ref.url)
    package = ApplicationPackage(
        name=name,
        version=package_version(version_ref or ref, overrides, default),
        dependencies=tuple(plan.get(name, ())),
    )
    write_package(target_dir, package)
    logging.debug(
        f"materialized {name} version={package.version} dir={target_dir} "
        f"deps={list(package.dependency_names)}"
    )
    return package
