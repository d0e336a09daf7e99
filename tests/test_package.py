"""Tests for package manifest loading and formatting."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from tjsdoc.package import PackageMetadata, format_package, load_package, read_manifest


def test_load_package_prefers_pyproject(repo_builder) -> None:
    repo_builder.write(
        {
            "pyproject.toml": """
            [project]
            name = "demo"
            version = "1.2.3"
            description = "Demo project"
            authors = [{ name = "Dev", email = "dev@example.com" }]

            [project.urls]
            Repository = "https://example.com/demo"
            Issues = "https://example.com/demo/issues"

            [tool.tjsdoc]
            main = "src/demo/__init__.py"
            """,
            "package.json": json.dumps({"name": "other"}),
        }
    )

    package = load_package(None, repo_builder.path())

    assert package.name == "demo"
    assert package.version == "1.2.3"
    assert package.main == "src/demo/__init__.py"
    assert package.path == repo_builder.path("pyproject.toml")
    assert package.formatted["author"] == "Dev <dev@example.com>"
    assert package.formatted["repository"] == "https://example.com/demo"
    assert package.formatted["bugs_url"] == "https://example.com/demo/issues"


def test_load_package_reads_explicit_package_json(repo_builder) -> None:
    repo_builder.write({"meta/package.json": json.dumps({"name": "js-demo", "version": "0.1.0", "main": "index.js"})})

    package = load_package("meta/package.json", repo_builder.path())

    assert package.name == "js-demo"
    assert package.main == "index.js"


def test_load_package_missing_manifest_is_empty(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="tjsdoc"):
        package = load_package("nope.json", tmp_path)

    assert package == PackageMetadata()
    assert package.name is None
    assert "not found" in caplog.text


def test_load_package_unreadable_manifest_is_empty(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{broken", encoding="utf-8")

    assert load_package(None, tmp_path).name is None


def test_read_manifest_rejects_non_objects(tmp_path: Path) -> None:
    path = tmp_path / "package.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        read_manifest(path)


def test_format_package_builds_message() -> None:
    formatted = format_package(
        {
            "name": "demo",
            "version": "1.0.0",
            "author": {"name": "Dev"},
            "bugs": {"url": "https://example.com/issues"},
            "license": "",
        }
    )

    assert formatted["license"] is None
    assert formatted["formatted_message"] == (
        "name: demo\nversion: 1.0.0\nauthor: Dev\nbugs: https://example.com/issues"
    )
