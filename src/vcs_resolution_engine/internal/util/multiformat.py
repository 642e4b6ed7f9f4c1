from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from typing_extensions import Self

from vcs_resolution_engine.internal.util.toml import dump_toml_to_str, load_toml_text


def _normalize(value: Any) -> Any:
    """
    Convert a value into plain data that json, toml and yaml writers all accept.
    """
    match value:
        case Path():
            return value.as_posix()
        case Enum():
            return value.value
        case Mapping():
            return {str(k): _normalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
        case set() | frozenset():
            return sorted(_normalize(v) for v in value)
        case list() | tuple():
            return [_normalize(v) for v in value]
        case datetime() | date():
            return value.isoformat()
        case _:
            return value


def sort_dict(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: sort_dict(value[k]) for k in sorted(value)}
    if isinstance(value, list):
        return [sort_dict(v) for v in value]
    return value


class MultiformatSerializableMixin:
    """
    Adds json/yaml/toml output to any object that can describe itself as a mapping.
    """

    def to_mapping(self, *args: Any, **kwargs: Any) -> Mapping[str, Any]:
        raise NotImplementedError

    def mapping_hash(self) -> str:
        normalized = _normalize(self.to_mapping())
        payload = json.dumps(normalized, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return hashlib.new("sha512", payload).hexdigest()

    def to_json(self) -> str:
        return json.dumps(_normalize(self.to_mapping()), indent=2, sort_keys=True)

    def to_yaml(self) -> str:
        try:
            import yaml
        except ImportError as e:
            raise RuntimeError("yaml output requires the optional PyYAML dependency") from e
        return yaml.safe_dump(_normalize(self.to_mapping()), indent=2, sort_keys=True)

    def to_toml(self) -> str:
        return dump_toml_to_str(sort_dict(_normalize(self.to_mapping())))

    def serialize(self, fmt: str) -> str:
        match fmt:
            case "json":
                return self.to_json()
            case "yaml":
                return self.to_yaml()
            case "toml":
                return self.to_toml()
            case _:
                raise ValueError(f"unrecognized format: {fmt!r}")

    def flat_summary(
        self,
        *,
        first_fields: Iterable[str] = ("name",),
        last_fields: Iterable[str] = (),
        exclude: Iterable[str] = (),
        include_empty: bool = False,
        sep: str = " | ",
    ) -> str:
        mapping = self.to_mapping()
        all_keys = set(mapping.keys()) - set(exclude)
        first = [f for f in first_fields if f in all_keys]
        last = [f for f in last_fields if f in all_keys and f not in first]
        middle = sorted(all_keys - set(first) - set(last))

        items: list[str] = []
        for k in [*first, *middle, *last]:
            v = mapping[k]
            if not include_empty and (
                v is None or v == "" or (isinstance(v, (list, tuple, set, dict)) and not v)
            ):
                continue
            if isinstance(v, (datetime, date)):
                rendered = v.isoformat()
            elif isinstance(v, dict):
                rendered = "{" + ", ".join(f"{dk}={dv}" for dk, dv in v.items()) + "}"
            elif isinstance(v, (list, tuple, set)):
                rendered = "[" + ", ".join(str(x) for x in v) + "]"
            else:
                rendered = str(v)
            items.append(f"{k}={rendered}")

        return sep.join(items)

    def __str__(self) -> str:
        return self.flat_summary()


class MultiformatDeserializableMixin:
    """
    Adds json/yaml/toml input to any class that can be built from a mapping.

    Subclasses customize loading through the ``_preprocess_mapping`` and
    ``_postprocess_instance`` hooks, both of which receive the format and the
    originating path (if any).
    """

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], **kwargs: Any) -> Self:
        raise NotImplementedError

    @classmethod
    def deserialize(cls, text: str, *, fmt: str, path: Path | None = None) -> Self:
        raw = cls._parse_text(text, fmt=fmt, path=path)
        mapping = cls._coerce_root_mapping(raw, fmt=fmt, path=path)
        mapping = cls._preprocess_mapping(mapping, fmt=fmt, path=path)
        inst = cls.from_mapping(mapping)
        return cls._postprocess_instance(inst, fmt=fmt, path=path)

    @classmethod
    def from_json(cls, text: str) -> Self:
        return cls.deserialize(text, fmt="json")

    @classmethod
    def from_yaml(cls, text: str) -> Self:
        return cls.deserialize(text, fmt="yaml")

    @classmethod
    def from_toml(cls, text: str) -> Self:
        return cls.deserialize(text, fmt="toml")

    @classmethod
    def from_file(cls, path: str | Path, *, fmt: str | None = None) -> Self:
        p = Path(path)
        text = cls._load_text(p)
        fmt = fmt or cls._infer_format_from_suffix(p)
        return cls.deserialize(text, fmt=fmt, path=p)

    @classmethod
    def _load_text(cls, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    @classmethod
    def _infer_format_from_suffix(cls, path: Path) -> str:
        match path.suffix.lower():
            case ".json":
                return "json"
            case ".yaml" | ".yml":
                return "yaml"
            case ".toml":
                return "toml"
            case _:
                raise ValueError(f"cannot infer format from file suffix: {path}")

    @classmethod
    def _parse_text(cls, text: str, *, fmt: str, path: Path | None) -> Any:
        match fmt:
            case "json":
                return json.loads(text)
            case "yaml":
                try:
                    import yaml
                except ImportError as e:
                    raise RuntimeError("yaml input requires the optional PyYAML dependency") from e
                docs = list(yaml.safe_load_all(text))
                if len(docs) > 1:
                    raise ValueError(f"expected a single yaml document in {path or '<text>'}")
                return docs[0] if docs else {}
            case "toml":
                return load_toml_text(text)
            case _:
                raise ValueError(f"unrecognized format: {fmt!r}")

    @classmethod
    def _coerce_root_mapping(cls, raw: Any, *, fmt: str, path: Path | None) -> Mapping[str, Any]:
        if isinstance(raw, Mapping):
            return raw
        raise TypeError(
            f"{cls.__name__} expects a {fmt} mapping at the document root, got {type(raw).__name__}"
        )

    @classmethod
    def _preprocess_mapping(
        cls, mapping: Mapping[str, Any], *, fmt: str, path: Path | None
    ) -> Mapping[str, Any]:
        return mapping

    @classmethod
    def _postprocess_instance(cls, inst: Self, *, fmt: str, path: Path | None) -> Self:
        return inst


class MultiformatModelMixin(MultiformatSerializableMixin, MultiformatDeserializableMixin):
    pass
