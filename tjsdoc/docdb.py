"""In-memory document database for one generation pass."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .models import DocumentRecord


class DocDatabase:
    """Ordered collection of document records plus indices built by the resolver.

    The instance is shared by reference with plugins; `reset()` clears it in
    place so those references stay valid across regeneration passes.
    """

    def __init__(self, records: Optional[Iterable[DocumentRecord]] = None) -> None:
        self._records: List[DocumentRecord] = []
        self.indices: Dict[str, Dict[str, Any]] = {}
        if records is not None:
            self.extend(records)

    def append(self, record: DocumentRecord) -> None:
        self._records.append(record)

    def extend(self, records: Iterable[DocumentRecord]) -> None:
        self._records.extend(records)

    def load(self, records: Iterable[DocumentRecord]) -> None:
        """Replace the contents with `records` while keeping this instance."""
        staged = list(records)
        self.reset()
        self._records.extend(staged)

    def reset(self) -> None:
        self._records.clear()
        self.indices.clear()

    def find(self, predicate: Optional[Callable[[DocumentRecord], bool]] = None, **fields: Any) -> List[DocumentRecord]:
        """Return records matching every keyword (`kind` or record fields) and the predicate."""
        matches: List[DocumentRecord] = []
        for record in self._records:
            if not _matches(record, fields):
                continue
            if predicate is not None and not predicate(record):
                continue
            matches.append(record)
        return matches

    def by_kind(self) -> Dict[str, List[DocumentRecord]]:
        grouped: Dict[str, List[DocumentRecord]] = defaultdict(list)
        for record in self._records:
            grouped[record.kind].append(record)
        return dict(grouped)

    @property
    def records(self) -> List[DocumentRecord]:
        return list(self._records)

    def to_list(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self._records]

    def __iter__(self) -> Iterator[DocumentRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)


def _matches(record: DocumentRecord, fields: Dict[str, Any]) -> bool:
    for key, expected in fields.items():
        if key == "kind":
            actual = record.kind
        elif key == "builtin_virtual":
            actual = record.builtin_virtual
        else:
            actual = record.get(key)
        if actual != expected:
            return False
    return True


__all__ = ["DocDatabase"]
