from __future__ import annotations

from collections.abc import Mapping

from vcs_resolution_engine.model.errors import InvalidDescriptor
from vcs_resolution_engine.model.source import (
    ResolvedReference,
    SelectorKind,
    SourceDescriptor,
    app_name,
)


def normalize(
    raw: SourceDescriptor, overrides: Mapping[str, str], default: str
) -> ResolvedReference:
    """
    Give a declared source an explicit selector.

    An unpinned source becomes a tag: the override for its application name if
    there is one, else ``default``. Explicit selectors pass through unchanged.
    """
    if raw.selector is None:
        name = app_name(raw.url)
        version = overrides.get(name, default)
        if not version:
            raise InvalidDescriptor(
                f"no version available for unpinned dependency {name!r}", app_name=name
            )
        return ResolvedReference(url=raw.url, kind=SelectorKind.TAG, value=version)
    return ResolvedReference(url=raw.url, kind=raw.selector.kind, value=raw.selector.value)
