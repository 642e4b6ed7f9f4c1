from __future__ import annotations

import logging
import re
import shutil
import subprocess
import tempfile
from collections.abc import Set
from dataclasses import dataclass
from pathlib import Path
from typing import Final, TypedDict

from vcs_resolution_engine.model.errors import MaterializationError, ResolutionFailure
from vcs_resolution_engine.model.package import ApplicationPackage
from vcs_resolution_engine.model.source import ResolvedReference, SelectorKind, app_name
from vcs_resolution_engine.resource import SourceResource

COMMIT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{40}$")


class GitResourceConfig(TypedDict, total=False):
    """
    Configuration accepted by the ``git`` resource factory.

    git_executable: the git binary to invoke (default ``git``)
    timeout_s: per-command timeout in seconds (default 300)
    """

    git_executable: str
    timeout_s: float


@dataclass(frozen=True, slots=True)
class GitResource(SourceResource):
    """
    Resource backed by the ``git`` command line.

    Tags and branches are resolved to commits with ``git ls-remote``; a 40-hex
    ref is already concrete and never contacts the remote. Checkouts are cloned
    into a temporary sibling directory and moved into place, so a failed clone
    leaves no partial target behind.
    """

    git_executable: str = "git"
    timeout_s: float = 300.0

    # -------------------------
    # resolution
    # -------------------------

    def resolve(self, ref: ResolvedReference) -> ResolvedReference:
        if ref.kind is SelectorKind.REF:
            return ref

        match ref.kind:
            case SelectorKind.TAG:
                patterns = [f"refs/tags/{ref.value}", f"refs/tags/{ref.value}^{{}}"]
            case _:
                patterns = [f"refs/heads/{ref.value}"]

        output = self._run_git(["ls-remote", ref.url, *patterns], app=app_name(ref.url))
        by_name: dict[str, str] = {}
        for line in output.splitlines():
            parts = line.split()
            if len(parts) == 2:
                by_name[parts[1]] = parts[0]

        # Annotated tags are peeled to the commit they point to.
        commit = next((by_name[p] for p in reversed(patterns) if p in by_name), None)
        if commit is None:
            raise ResolutionFailure(
                f"{ref.kind.value} {ref.value!r} not found in {ref.url}",
                app_name=app_name(ref.url),
            )
        logging.debug(f"resolved {ref.kind.value} {ref.value} of {ref.url} to {commit}")
        return ResolvedReference(url=ref.url, kind=SelectorKind.REF, value=commit)

    def needs_update(self, target_dir: Path, ref: ResolvedReference, update_set: Set[str]) -> bool:
        if app_name(ref.url) in update_set:
            return True
        if not (target_dir / ".git").exists():
            return True
        if ref.kind is not SelectorKind.REF:
            return True
        head = self._run_git(["rev-parse", "HEAD"], cwd=target_dir, app=app_name(ref.url))
        return not head.startswith(ref.value)

    # -------------------------
    # materialization
    # -------------------------

    def materialize(
        self,
        target_dir: Path,
        ref: ResolvedReference,
        *,
        version_ref: ResolvedReference | None = None,
    ) -> ApplicationPackage:
        # Versions come from the checkout itself; version_ref is not consulted.
        name = app_name(ref.url)
        try:
            target_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MaterializationError(
                f"cannot create {target_dir.parent}: {e}", app_name=name, causes=(e,)
            ) from e

        if (target_dir / ".git").exists():
            self._run_git(["fetch", "--quiet", "--tags", "origin"], cwd=target_dir, app=name)
        else:
            if target_dir.exists():
                raise MaterializationError(
                    f"cannot clone into {target_dir}: path exists and is not a git checkout",
                    app_name=name,
                )
            self._clone(ref.url, target_dir, app=name)

        self._run_git(["checkout", "--quiet", "--force", ref.value], cwd=target_dir, app=name)
        return self.read_package(target_dir, ref)

    def read_package(self, target_dir: Path, ref: ResolvedReference) -> ApplicationPackage:
        return ApplicationPackage.read(
            target_dir,
            default_name=app_name(ref.url),
            default_version=self.make_version(target_dir),
        )

    def make_version(self, target_dir: Path) -> str:
        return self._run_git(
            ["describe", "--tags", "--always"], cwd=target_dir, app=target_dir.name
        )

    # -------------------------
    # internals
    # -------------------------

    def _clone(self, url: str, target_dir: Path, *, app: str) -> None:
        temp_root = Path(tempfile.mkdtemp(prefix=f".{target_dir.name}-clone-", dir=str(target_dir.parent)))
        try:
            self._run_git(["clone", "--quiet", url, str(temp_root / "checkout")], app=app)
            shutil.move(str(temp_root / "checkout"), str(target_dir))
        except OSError as e:
            raise MaterializationError(
                f"cannot move checkout of {url} into {target_dir}: {e}", app_name=app, causes=(e,)
            ) from e
        finally:
            shutil.rmtree(temp_root, ignore_errors=True)

    def _run_git(self, argv: list[str], *, app: str, cwd: Path | None = None) -> str:
        command = [self.git_executable, *argv]
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                check=False,
                text=True,
                capture_output=True,
                timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ResolutionFailure(
                f"git command could not run: {' '.join(command)}: {e}", app_name=app, causes=(e,)
            ) from e
        if completed.returncode != 0:
            raise ResolutionFailure(
                f"git command failed ({completed.returncode}): {' '.join(command)}: "
                f"{completed.stderr.strip()}",
                app_name=app,
            )
        return completed.stdout.strip()
