from __future__ import annotations

import pytest

from vcs_resolution_engine.internal.normalizer import normalize
from vcs_resolution_engine.model.errors import InvalidDescriptor
from vcs_resolution_engine.model.source import (
    ResolvedReference,
    Selector,
    SelectorKind,
    SourceDescriptor,
)

URL = "https://git.example.com/org/app1.git"

# ==============================================================================
# BRANCH LEDGER
# ==============================================================================
# normalize (C001F001)
#   B0001 no selector, override present -> tag(override)
#   B0002 no selector, no override -> tag(default)
#   B0003 explicit selector -> passed through unchanged
#   B0004 no selector, empty override or default -> InvalidDescriptor naming the app
# ==============================================================================

NORMALIZE_CASES = [
    {
        "id": "C001F001B0001_override",
        "selector": None,
        "overrides": {"app1": "2.3.0", "other": "9.9.9"},
        "expected": (SelectorKind.TAG, "2.3.0"),
    },
    {
        "id": "C001F001B0002_default",
        "selector": None,
        "overrides": {"other": "9.9.9"},
        "expected": (SelectorKind.TAG, "0.0.0"),
    },
    {
        "id": "C001F001B0003_tag",
        "selector": Selector.tag("1.0"),
        "overrides": {"app1": "2.3.0"},
        "expected": (SelectorKind.TAG, "1.0"),
    },
    {
        "id": "C001F001B0003_branch",
        "selector": Selector.branch("main"),
        "overrides": {"app1": "2.3.0"},
        "expected": (SelectorKind.BRANCH, "main"),
    },
    {
        "id": "C001F001B0003_ref",
        "selector": Selector.ref("a" * 40),
        "overrides": {},
        "expected": (SelectorKind.REF, "a" * 40),
    },
]


@pytest.mark.parametrize("case", NORMALIZE_CASES, ids=lambda c: c["id"])
def test_normalize(case):
    ref = normalize(SourceDescriptor(url=URL, selector=case["selector"]), case["overrides"], "0.0.0")
    kind, value = case["expected"]
    assert ref == ResolvedReference(url=URL, kind=kind, value=value)


def test_normalize_keys_overrides_by_application_name():
    # C001F001B0001
    ref = normalize(SourceDescriptor(url="git@h:team/app1.git"), {"app1": "5.0"}, "0.0.0")
    assert ref.value == "5.0"


def test_normalize_is_deterministic():
    src = SourceDescriptor(url=URL)
    assert normalize(src, {}, "1.0") == normalize(src, {}, "1.0")


@pytest.mark.parametrize(
    "case",
    [
        {"id": "C001F001B0004_empty_default", "overrides": {}, "default": ""},
        {"id": "C001F001B0004_empty_override", "overrides": {"app1": ""}, "default": "1.0"},
    ],
    ids=lambda c: c["id"],
)
def test_normalize_rejects_empty_version(case):
    with pytest.raises(InvalidDescriptor, match="no version available") as ei:
        normalize(SourceDescriptor(url=URL), case["overrides"], case["default"])
    assert ei.value.app_name == "app1"


def test_normalize_ignores_empty_default_for_pinned_source():
    # C001F001B0003
    ref = normalize(SourceDescriptor(url=URL, selector=Selector.tag("1.0")), {}, "")
    assert ref.value == "1.0"
