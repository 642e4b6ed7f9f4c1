from __future__ import annotations

from collections.abc import Set
from pathlib import Path

from vcs_resolution_engine.model.source import ResolvedReference, app_name


def needs_update(target_dir: Path, ref: ResolvedReference, update_set: Set[str]) -> bool:
    """
    Policy-driven staleness: a dependency is stale when its application name is
    in ``update_set``. ``target_dir`` is not inspected.
    """
    return app_name(ref.url) in update_set
