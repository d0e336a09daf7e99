"""Tests for the document database."""

from __future__ import annotations

from tjsdoc.docdb import DocDatabase
from tjsdoc.models import DocumentRecord


def _database() -> DocDatabase:
    return DocDatabase(
        [
            DocumentRecord(kind="file", fields={"name": "a.py"}, content="pass\n"),
            DocumentRecord(kind="function", fields={"name": "f", "memberof": "a"}),
            DocumentRecord(kind="class", fields={"name": "C", "memberof": "a"}),
            DocumentRecord(kind="external", fields={"name": "str"}, builtin_virtual=True),
        ]
    )


def test_find_filters_by_kind_fields_and_predicate() -> None:
    database = _database()

    assert [record["name"] for record in database.find(memberof="a")] == ["f", "C"]
    assert [record["name"] for record in database.find(kind="class")] == ["C"]
    assert [record["name"] for record in database.find(builtin_virtual=True)] == ["str"]
    assert [record["name"] for record in database.find(lambda record: record.is_file)] == ["a.py"]


def test_by_kind_groups_records() -> None:
    grouped = _database().by_kind()

    assert sorted(grouped) == ["class", "external", "file", "function"]


def test_reset_and_load_keep_the_instance() -> None:
    database = _database()
    database.indices["longname"] = {"a.f": None}
    alias = database

    database.reset()
    assert len(alias) == 0
    assert alias.indices == {}

    database.load([DocumentRecord(kind="function", fields={"name": "g"})])
    assert [record["name"] for record in alias] == ["g"]


def test_load_accepts_its_own_records() -> None:
    database = _database()

    database.load(database.records)

    assert len(database) == 4


def test_to_list_serialises_records() -> None:
    payload = _database().to_list()

    assert payload[0] == {"kind": "file", "name": "a.py", "content": "pass\n"}
    assert payload[3] == {"kind": "external", "name": "str", "builtinVirtual": True}
