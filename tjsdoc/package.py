"""Loading and formatting of the target project's package manifest."""

from __future__ import annotations

import json
import tomllib
from importlib import metadata
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence

from .logging import get_logger

logger = get_logger("package")

DEFAULT_MANIFESTS: Sequence[str] = ("pyproject.toml", "package.json")

_FORMATTED_FIELDS = (
    ("name", "name"),
    ("version", "version"),
    ("description", "description"),
    ("license", "license"),
    ("author", "author"),
    ("homepage", "homepage"),
    ("repository", "repository"),
    ("bugs_url", "bugs"),
    ("location", "location"),
)


@dataclass(frozen=True)
class PackageMetadata:
    """Target project manifest plus a formatted read-only view."""

    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    formatted: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    path: Optional[Path] = None

    @property
    def name(self) -> Optional[str]:
        value = self.raw.get("name")
        return str(value) if value else None

    @property
    def version(self) -> Optional[str]:
        value = self.raw.get("version")
        return str(value) if value else None

    @property
    def main(self) -> Optional[str]:
        value = self.raw.get("main")
        return str(value) if value else None


def load_package(path: str | Path | None, dir_path: Path) -> PackageMetadata:
    """Load the configured manifest, or look up the default manifests when unset.

    A missing or unreadable manifest yields empty metadata.
    """
    candidates = [Path(path)] if path else [Path(name) for name in DEFAULT_MANIFESTS]
    for candidate in candidates:
        resolved = candidate if candidate.is_absolute() else dir_path / candidate
        if not resolved.is_file():
            continue
        try:
            raw = read_manifest(resolved)
        except (OSError, ValueError) as exc:
            logger.warning("Unable to read package manifest %s: %s", resolved, exc)
            return PackageMetadata()
        return PackageMetadata(
            raw=MappingProxyType(raw),
            formatted=MappingProxyType(format_package(raw)),
            path=resolved,
        )
    if path:
        logger.warning("Package manifest not found: %s", path)
    return PackageMetadata()


def tjsdoc_version() -> str:
    """Installed tjsdoc version, or `0.0.0` when running from a source checkout."""
    try:
        return metadata.version("tjsdoc")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def distribution_manifest(distribution: str) -> Dict[str, Any]:
    """Return a package.json-shaped mapping for an installed distribution."""
    meta = metadata.metadata(distribution)
    raw: Dict[str, Any] = {
        "name": meta.get("Name"),
        "version": meta.get("Version"),
        "description": meta.get("Summary"),
        "license": meta.get("License"),
        "author": meta.get("Author") or meta.get("Author-email"),
        "homepage": meta.get("Home-page"),
    }
    for entry in meta.get_all("Project-URL") or []:
        label, _, url = entry.partition(",")
        label = label.strip().lower()
        url = url.strip()
        if label in {"issues", "bug tracker", "bugs"}:
            raw["bugs"] = {"url": url}
        elif label in {"repository", "source"}:
            raw["repository"] = url
        elif label == "homepage" and not raw.get("homepage"):
            raw["homepage"] = url
    return {key: value for key, value in raw.items() if value}


def read_manifest(path: Path) -> Dict[str, Any]:
    """Return a package.json-shaped mapping for a package.json or pyproject.toml file."""
    if path.suffix == ".toml":
        with path.open("rb") as handle:
            data = tomllib.load(handle)
        return _normalise_pyproject(data)
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain an object at the root")
    return data


def read_manifest_config(path: Path) -> Optional[Dict[str, Any]]:
    """Return the embedded tjsdoc config of a manifest (`[tool.tjsdoc]` or `"tjsdoc"`)."""
    if path.suffix == ".toml":
        with path.open("rb") as handle:
            data = tomllib.load(handle)
        section = data.get("tool", {}).get("tjsdoc")
    else:
        data = json.loads(path.read_text(encoding="utf-8"))
        section = data.get("tjsdoc") if isinstance(data, dict) else None
    return dict(section) if isinstance(section, dict) else None


def format_package(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Build the formatted view of a manifest, including a printable summary."""
    formatted: Dict[str, Any] = {}

    formatted["name"] = _as_text(raw.get("name"))
    formatted["version"] = _as_text(raw.get("version"))
    formatted["description"] = _as_text(raw.get("description"))
    formatted["license"] = _as_text(raw.get("license"))
    formatted["author"] = _person(raw.get("author"))
    formatted["homepage"] = _as_text(raw.get("homepage"))
    formatted["repository"] = _url_field(raw.get("repository"))
    formatted["bugs_url"] = _url_field(raw.get("bugs"))
    formatted["location"] = _as_text(raw.get("location"))

    lines = []
    for key, label in _FORMATTED_FIELDS:
        value = formatted.get(key)
        if value:
            lines.append(f"{label}: {value}")
    formatted["formatted_message"] = "\n".join(lines)
    return formatted


def _normalise_pyproject(data: Mapping[str, Any]) -> Dict[str, Any]:
    project = data.get("project") or {}
    if not isinstance(project, Mapping):
        return {}
    urls = project.get("urls") or {}
    lowered = {str(key).lower(): value for key, value in urls.items()} if isinstance(urls, Mapping) else {}

    normalised: Dict[str, Any] = {
        "name": project.get("name"),
        "version": project.get("version"),
        "description": project.get("description"),
    }
    license_value = project.get("license")
    if isinstance(license_value, Mapping):
        license_value = license_value.get("text") or license_value.get("file")
    normalised["license"] = license_value

    authors = project.get("authors")
    if isinstance(authors, list) and authors:
        normalised["author"] = authors[0]

    homepage = lowered.get("homepage") or lowered.get("documentation")
    if homepage:
        normalised["homepage"] = homepage
    repository = lowered.get("repository") or lowered.get("source")
    if repository:
        normalised["repository"] = repository
    bugs = lowered.get("issues") or lowered.get("bug tracker") or lowered.get("bugs")
    if bugs:
        normalised["bugs"] = {"url": bugs}

    tool_section = data.get("tool", {}).get("tjsdoc", {})
    if isinstance(tool_section, Mapping) and tool_section.get("main"):
        normalised["main"] = tool_section["main"]
    return {key: value for key, value in normalised.items() if value is not None}


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _person(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        name = value.get("name")
        email = value.get("email")
        if name and email:
            return f"{name} <{email}>"
        return _as_text(name or email)
    return _as_text(value)


def _url_field(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return _as_text(value.get("url"))
    return _as_text(value)


__all__ = [
    "DEFAULT_MANIFESTS",
    "PackageMetadata",
    "distribution_manifest",
    "format_package",
    "load_package",
    "read_manifest",
    "read_manifest_config",
    "tjsdoc_version",
]
