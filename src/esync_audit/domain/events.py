"""Finding events posted by checkers, plus informational messages."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from esync_audit.domain.documents import Document, JSONValue


class FindingKind(StrEnum):
    """Kinds of detected inconsistency."""

    DIFF = "diff"
    MISSING = "missing"
    TRAILING = "trailing"


@dataclass(frozen=True, slots=True)
class Finding:
    """Base of the three finding variants. Instances are immutable."""

    kind: ClassVar[FindingKind]

    @property
    def subject(self) -> str:
        """Id of the document the finding is about."""

        raise NotImplementedError

    def to_dict(self) -> dict[str, JSONValue]:
        raise NotImplementedError

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def render(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class DiffEvent(Finding):
    """Two differing representations of the same logical document.

    ``left`` is the expected side (source-of-record or inherited ACL) and
    ``right`` what the index holds.
    """

    kind: ClassVar[FindingKind] = FindingKind.DIFF

    left: Document
    right: Document
    message: str

    def __post_init__(self) -> None:
        for label, value in (("left", self.left), ("right", self.right)):
            if not isinstance(value, Document):
                raise ValueError(
                    f"DiffEvent.{label}: expected Document, got {type(value).__name__}"
                )
        _check_message(self.message, "DiffEvent.message")

    @property
    def subject(self) -> str:
        return self.right.id

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "left": self.left.to_dict(),
            "right": self.right.to_dict(),
        }

    def render(self) -> str:
        return f"DIFF {self.message}: {self.left} != {self.right}"


@dataclass(frozen=True, slots=True)
class MissingEvent(Finding):
    """A source-of-record document absent from the index."""

    kind: ClassVar[FindingKind] = FindingKind.MISSING

    doc_id: str
    message: str

    def __post_init__(self) -> None:
        _check_doc_id(self.doc_id, "MissingEvent.doc_id")
        _check_message(self.message, "MissingEvent.message")

    @property
    def subject(self) -> str:
        return self.doc_id

    def to_dict(self) -> dict[str, JSONValue]:
        return {"kind": self.kind.value, "message": self.message, "doc_id": self.doc_id}

    def render(self) -> str:
        return f"MISSING {self.doc_id}: {self.message}"


@dataclass(frozen=True, slots=True)
class TrailingEvent(Finding):
    """An index document eligible for removal."""

    kind: ClassVar[FindingKind] = FindingKind.TRAILING

    doc_id: str
    message: str

    def __post_init__(self) -> None:
        _check_doc_id(self.doc_id, "TrailingEvent.doc_id")
        _check_message(self.message, "TrailingEvent.message")

    @property
    def subject(self) -> str:
        return self.doc_id

    def to_dict(self) -> dict[str, JSONValue]:
        return {"kind": self.kind.value, "message": self.message, "doc_id": self.doc_id}

    def render(self) -> str:
        return f"REMOVE: {self.doc_id}, {self.message}"


@dataclass(frozen=True, slots=True)
class InfoMessage:
    """Informational line posted by a checker or by the orchestrator."""

    text: str
    checker: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {"text": self.text, "checker": self.checker}

    def render(self) -> str:
        if self.checker is None:
            return self.text
        return f"[{self.checker}] {self.text}"


def _check_doc_id(value: object, path: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{path}: must be a non-empty string")


def _check_message(value: object, path: str) -> None:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string, got {type(value).__name__}")


__all__ = [
    "DiffEvent",
    "Finding",
    "FindingKind",
    "InfoMessage",
    "MissingEvent",
    "TrailingEvent",
]
