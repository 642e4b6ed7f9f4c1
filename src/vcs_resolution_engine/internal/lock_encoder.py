from __future__ import annotations

from vcs_resolution_engine.model.errors import ProgrammingInvariantViolation
from vcs_resolution_engine.model.source import (
    PLACEHOLDER_REF,
    LockEntry,
    ResolvedReference,
    SelectorKind,
)


def to_lock(ref: ResolvedReference) -> LockEntry:
    """
    Convert a resolved reference into its lock form.

    Tags and refs keep their value; a branch, which may move, is pinned to
    ``PLACEHOLDER_REF`` unless the resource already resolved it to a commit (in
    which case it arrives here as a ref). The result is always ref-kind.
    """
    kind = getattr(ref, "kind", None)
    match kind:
        case SelectorKind.TAG | SelectorKind.REF:
            return LockEntry(url=ref.url, ref=ref.value)
        case SelectorKind.BRANCH:
            return LockEntry(url=ref.url, ref=PLACEHOLDER_REF)
        case _:
            raise ProgrammingInvariantViolation(
                f"cannot lock a reference without a selector kind: {ref!r}"
            )
