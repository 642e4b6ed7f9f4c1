from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final, Mapping
from urllib.parse import urlparse

from typing_extensions import Self

from vcs_resolution_engine.internal.util.multiformat import MultiformatModelMixin
from vcs_resolution_engine.model.errors import InvalidDescriptor

VCS_SUFFIX: Final[str] = ".git"

# Lock value used for branch references when no commit is known (simulated variant).
PLACEHOLDER_REF: Final[str] = "fake-ref"

_SCP_LIKE_RE: Final[re.Pattern[str]] = re.compile(r"^(?:[^@/]+@)?[^:/]+:(?P<path>.+)$")


class SelectorKind(Enum):
    TAG = "tag"
    BRANCH = "branch"
    REF = "ref"


_SELECTOR_KEYS: Final[tuple[str, ...]] = tuple(k.value for k in SelectorKind)


def app_name(url: str) -> str:
    """
    Derive the application name from a repository URL.

    The name is the final path segment with one trailing ``.git`` removed, so that
    ``https://host/org/app1.git``, ``git@host:org/app1.git`` and ``app1`` all
    yield ``app1``. Applying it to its own output is a no-op unless the name
    itself ends in ``.git``.
    """
    raw = url.strip() if url else ""
    if not raw:
        raise InvalidDescriptor("repository url must not be empty")

    parsed = urlparse(raw)
    if parsed.scheme and parsed.netloc:
        path = parsed.path
    else:
        m = _SCP_LIKE_RE.match(raw)
        path = m.group("path") if m and "://" not in raw else raw

    segment = path.rstrip("/").rsplit("/", 1)[-1]
    if segment.endswith(VCS_SUFFIX):
        segment = segment[: -len(VCS_SUFFIX)]
    if not segment:
        raise InvalidDescriptor(f"cannot derive an application name from url {url!r}")
    return segment


@dataclass(frozen=True, slots=True)
class Selector:
    """
    A pointer into a repository history: a tag, a branch or a ref.

    An unpinned dependency has no selector at all (``SourceDescriptor.selector is None``).
    """

    kind: SelectorKind
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.kind, SelectorKind):
            raise InvalidDescriptor(f"unknown selector kind: {self.kind!r}")
        if not isinstance(self.value, str) or not self.value.strip():
            raise InvalidDescriptor(f"{self.kind.value} selector requires a non-empty value")

    @classmethod
    def tag(cls, value: str) -> Self:
        return cls(SelectorKind.TAG, value)

    @classmethod
    def branch(cls, value: str) -> Self:
        return cls(SelectorKind.BRANCH, value)

    @classmethod
    def ref(cls, value: str) -> Self:
        return cls(SelectorKind.REF, value)


@dataclass(frozen=True, slots=True)
class SourceDescriptor(MultiformatModelMixin):
    """
    A dependency's declared source: a repository URL and an optional selector.

    Mapping form::

        {"url": "https://example.com/app1.git"}
        {"url": "https://example.com/app1.git", "tag": "1.0.0"}

    At most one of ``tag``, ``branch`` or ``ref`` may be given.
    """

    url: str
    selector: Selector | None = field(default=None)

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise InvalidDescriptor("source descriptor requires a non-empty url")
        object.__setattr__(self, "url", self.url.strip())

    @property
    def app_name(self) -> str:
        return app_name(self.url)

    def to_mapping(self, *args, **kwargs) -> dict[str, Any]:
        mapping: dict[str, Any] = {"url": self.url}
        if self.selector is not None:
            mapping[self.selector.kind.value] = self.selector.value
        return mapping

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        if not isinstance(mapping, Mapping):
            raise InvalidDescriptor(f"source must be a mapping, got {type(mapping).__name__}")
        unknown = set(mapping) - {"url", *_SELECTOR_KEYS}
        if unknown:
            raise InvalidDescriptor(f"unknown source keys: {sorted(unknown)}")
        present = [k for k in _SELECTOR_KEYS if k in mapping]
        if len(present) > 1:
            raise InvalidDescriptor(f"source may declare only one selector, got {present}")

        selector: Selector | None = None
        if present:
            kind = SelectorKind(present[0])
            selector = Selector(kind, mapping[present[0]])

        return cls(url=mapping.get("url", ""), selector=selector)


@dataclass(frozen=True, slots=True)
class ResolvedReference(MultiformatModelMixin):
    """
    A descriptor after its selector has been made concrete.

    Branch references remain mutable; tags and refs are treated as immutable.
    """

    url: str
    kind: SelectorKind
    value: str

    @property
    def app_name(self) -> str:
        return app_name(self.url)

    @property
    def selector(self) -> Selector:
        return Selector(self.kind, self.value)

    def to_mapping(self, *args, **kwargs) -> dict[str, Any]:
        return {"url": self.url, "kind": self.kind.value, "value": self.value}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        return cls(
            url=mapping["url"],
            kind=SelectorKind(mapping["kind"]),
            value=mapping["value"],
        )


@dataclass(frozen=True, slots=True)
class LockEntry(MultiformatModelMixin):
    """
    The pinned, reproducible form of a reference. Always ref-kind.
    """

    url: str
    ref: str

    def __post_init__(self) -> None:
        if not self.url:
            raise InvalidDescriptor("lock entry requires a url")
        if not self.ref:
            raise InvalidDescriptor(
                f"lock entry for {self.url!r} requires a non-empty ref",
                app_name=app_name(self.url),
            )

    @property
    def kind(self) -> SelectorKind:
        return SelectorKind.REF

    def as_source(self) -> SourceDescriptor:
        return SourceDescriptor(url=self.url, selector=Selector.ref(self.ref))

    def to_mapping(self, *args, **kwargs) -> dict[str, Any]:
        return {"url": self.url, "ref": self.ref}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **_: Any) -> Self:
        return cls(url=mapping["url"], ref=mapping["ref"])
