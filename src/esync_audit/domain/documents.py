"""Document value type and ACL normalization."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, NoReturn

from esync_audit.constants import (
    ACE_SEPARATOR,
    DENY_ALL_ACE,
    NEGATIVE_ACE_PREFIX,
    PATH_SEPARATOR,
    UNSUPPORTED_ACL,
)

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


@dataclass(frozen=True, slots=True)
class Document:
    """A document as seen by one of the two stores.

    Equality compares ``id`` and ``acl`` only. ``path`` and the display
    ``fields`` merged in from the index are transient for comparison purposes.
    """

    id: str
    acl: tuple[str, ...] = ()
    path: str | None = field(default=None, compare=False)
    fields: Mapping[str, JSONValue] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            _fail("Document.id", "must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())
        object.__setattr__(self, "acl", _as_acl(self.acl, "Document.acl"))
        if self.path is not None and not isinstance(self.path, str):
            _fail("Document.path", f"expected string or None, got {type(self.path).__name__}")
        object.__setattr__(
            self, "fields", MappingProxyType(_as_fields(self.fields, "Document.fields"))
        )

    def merged_with(self, other: Document) -> Document:
        """Return a copy filled with data only ``other`` carries.

        Own ``id`` and ``acl`` are kept. A missing ``path`` is taken from
        ``other`` and field keys absent here are added.
        """

        merged_fields = dict(other.fields)
        merged_fields.update(self.fields)
        return Document(
            id=self.id,
            acl=self.acl,
            path=self.path if self.path is not None else other.path,
            fields=merged_fields,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "acl": list(self.acl),
            "path": self.path,
            "fields": dict(self.fields),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Document:
        if not isinstance(payload, Mapping):
            _fail("Document", f"expected object, got {type(payload).__name__}")
        unknown = sorted(key for key in payload if key not in {"id", "acl", "path", "fields"})
        if unknown:
            _fail("Document", f"unexpected fields: {unknown}")
        if "id" not in payload:
            _fail("Document", "missing required field 'id'")
        return cls(
            id=payload["id"],
            acl=payload.get("acl") or (),
            path=payload.get("path"),
            fields=payload.get("fields") or {},
        )

    def __str__(self) -> str:
        return f"{self.id} acl={','.join(self.acl)}"


def decode_acl(raw: str | None) -> tuple[str, ...]:
    """Decode the comma-encoded ACL stored by the system-of-record."""

    if not raw:
        return ()
    return normalize_acl(raw.split(ACE_SEPARATOR))


def normalize_acl(entries: Iterable[str]) -> tuple[str, ...]:
    """Normalize ACEs for comparison with the index.

    A trailing deny-all entry is implicit and dropped. Any other negative
    grant cannot be represented in the index and is replaced by a marker.
    """

    aces = [entry.strip() for entry in entries if entry and entry.strip()]
    if aces and aces[-1] == DENY_ALL_ACE:
        aces.pop()
    return tuple(
        UNSUPPORTED_ACL if ace.startswith(NEGATIVE_ACE_PREFIX) else ace for ace in aces
    )


def path_sort_key(document: Document) -> tuple[bool, str]:
    """Sort key ordering documents by path, ``None`` paths last."""

    return (document.path is None, document.path or "")


def sort_by_path(documents: Iterable[Document]) -> list[Document]:
    return sorted(documents, key=path_sort_key)


def is_under(path: str | None, prefix: str) -> bool:
    """True when ``path`` is strictly below ``prefix`` on a segment boundary.

    ``/a/bc`` is not under ``/a/b``. Tree building and index queries share this rule.
    """

    if path is None:
        return False
    base = prefix.rstrip(PATH_SEPARATOR) + PATH_SEPARATOR
    return path != prefix and path.startswith(base)


def is_at_or_under(path: str | None, prefix: str) -> bool:
    return path is not None and (path == prefix or is_under(path, prefix))


def _as_acl(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        _fail(path, f"expected sequence of strings, got {type(value).__name__}")
    aces: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            _fail(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
        aces.append(item)
    return tuple(aces)


def _as_fields(value: object, path: str) -> dict[str, JSONValue]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    out: dict[str, JSONValue] = {}
    for key in sorted(value):
        if not isinstance(key, str):
            _fail(path, f"object key must be string, got {type(key).__name__}")
        out[key] = _as_json_value(value[key], f"{path}.{key}")
    return out


def _as_json_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, (list, tuple)):
        return [_as_json_value(item, f"{path}[{index}]") for index, item in enumerate(value)]
    if isinstance(value, Mapping):
        return _as_fields(value, path)
    _fail(path, f"value is not JSON-serializable ({type(value).__name__})")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "Document",
    "JSONScalar",
    "JSONValue",
    "decode_acl",
    "is_at_or_under",
    "is_under",
    "normalize_acl",
    "path_sort_key",
    "sort_by_path",
]
