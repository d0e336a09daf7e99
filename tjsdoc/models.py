"""Core data models shared across tjsdoc components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

FILE_KINDS = ("file", "testFile")


class OnParseError(str, Enum):
    """Policy applied when the parser fails on a single file."""

    LOG_AND_SKIP = "log"
    PROPAGATE = "throw"


@dataclass(frozen=True)
class FileCandidate:
    """A discovered source file and its path relative to the working directory."""

    path: str
    relative_path: str


@dataclass
class DocumentRecord:
    """One unit of extracted documentation."""

    kind: str
    fields: Dict[str, Any] = field(default_factory=dict)
    content: Optional[str] = None
    builtin_virtual: bool = False

    @property
    def is_file(self) -> bool:
        return self.kind in FILE_KINDS

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.fields[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, **self.fields}
        if self.is_file:
            payload["content"] = self.content or ""
        if self.builtin_virtual:
            payload["builtinVirtual"] = True
        return payload


@dataclass
class AstEntry:
    """Parsed AST retained for a file so plugins and publishers can inspect it."""

    file_path: str
    ast: Any


@dataclass
class ParseResult:
    """Output of the parser collaborator for one file or code fragment."""

    records: List[DocumentRecord]
    ast: Any = None

    def __iter__(self) -> Iterator[DocumentRecord]:
        return iter(self.records)


@dataclass(frozen=True)
class HydratedGlobs:
    """Files and literal glob patterns produced by glob hydration."""

    files: Tuple[str, ...]
    globs: Tuple[str, ...]

    @classmethod
    def build(cls, files: Sequence[str], globs: Sequence[str]) -> "HydratedGlobs":
        return cls(files=tuple(files), globs=tuple(globs))


__all__ = [
    "AstEntry",
    "DocumentRecord",
    "FILE_KINDS",
    "FileCandidate",
    "HydratedGlobs",
    "OnParseError",
    "ParseResult",
]
