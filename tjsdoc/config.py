"""Configuration loading, resolution and freezing for tjsdoc runs."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import yaml

from .errors import ConfigTypeError, ConfigValidationError
from .logging import LOG_LEVELS, get_logger
from .plugins import PluginDescriptor

logger = get_logger("config")

DEFAULT_INCLUDES: Tuple[str, ...] = (r"\.py$",)
DEFAULT_TEST_TYPE = "pytest"
DEFAULT_PUBLISHER = "json"

_BOOLEAN_DEFAULTS: Dict[str, bool] = {
    "builtin_virtual": True,
    "doc_coverage": True,
    "empty_destination": False,
    "full_stack_trace": False,
    "include_source": True,
    "output_ast_data": False,
    "output_doc_data": True,
}

_KNOWN_KEYS: Set[str] = {
    "destination",
    "excludes",
    "extends",
    "includes",
    "index",
    "log_level",
    "package",
    "plugins",
    "publisher",
    "publisher_options",
    "runtime",
    "runtime_options",
    "source",
    "source_files",
    "test",
    "title",
    *_BOOLEAN_DEFAULTS,
}


@dataclass(frozen=True)
class TestConfig:
    """Test source settings; same filtering shape as the main sources."""

    type: str
    source: Optional[Tuple[str, ...]]
    includes: Tuple[str, ...]
    excludes: Tuple[str, ...]
    include_patterns: Tuple[re.Pattern[str], ...]
    exclude_patterns: Tuple[re.Pattern[str], ...]

    # Not a pytest test class.
    __test__ = False


@dataclass(frozen=True)
class RunConfig:
    """Resolved configuration for one generation run. Immutable once frozen."""

    dir_path: Path
    source: Optional[Tuple[str, ...]]
    destination: Path
    includes: Tuple[str, ...]
    excludes: Tuple[str, ...]
    include_patterns: Tuple[re.Pattern[str], ...]
    exclude_patterns: Tuple[re.Pattern[str], ...]
    runtime: PluginDescriptor
    publisher: PluginDescriptor
    plugins: Tuple[PluginDescriptor, ...] = ()
    test: Optional[TestConfig] = None
    runtime_options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    publisher_options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    include_source: bool = True
    empty_destination: bool = False
    doc_coverage: bool = True
    full_stack_trace: bool = False
    output_ast_data: bool = False
    output_doc_data: bool = True
    builtin_virtual: bool = True
    log_level: str = "info"
    package: Optional[str] = None
    title: Optional[str] = None
    index: Optional[str] = "./README.md"
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    resolved: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def as_dict(self) -> Dict[str, Any]:
        """Return a mutable deep copy of the resolved configuration mapping."""
        return _thaw(self.resolved)


@dataclass
class RunState:
    """Mutable per-run fields that may change across regeneration passes."""

    source_files: Optional[List[str]] = None
    source_globs: Optional[Tuple[str, ...]] = None
    test_source_files: Optional[List[str]] = None
    test_source_globs: Optional[Tuple[str, ...]] = None
    menu_links: List[Dict[str, Any]] = field(default_factory=list)


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read a JSON or YAML config file and return its root mapping."""
    path = Path(path).expanduser().resolve()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigValidationError(f"Unable to read config file {path}: {exc}") from exc

    try:
        if path.suffix == ".json":
            data = json.loads(text) if text.strip() else {}
        else:
            data = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigValidationError(f"Failed to parse {path.name}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path.name} must contain a mapping at the root")
    return data


class ConfigResolver:
    """Validates raw configuration, applies defaults and freezes the result."""

    def __init__(self, dir_path: Path | str | None = None) -> None:
        self.dir_path = Path(dir_path or ".").resolve()

    def validate_raw(self, raw: Any) -> None:
        """Reject configurations that cannot start a run."""
        if not isinstance(raw, Mapping):
            raise ConfigTypeError("'config' is not a mapping")
        _require_runtime(raw)

    def resolve(self, raw: Mapping[str, Any], *, base_dir: Path | None = None) -> Dict[str, Any]:
        """Resolve `extends` chains and fill every optional field with its default."""
        base = Path(base_dir).resolve() if base_dir is not None else self.dir_path
        merged = _resolve_extends(_thaw(raw), base, frozenset())
        return _apply_defaults(merged)

    def post_validate(self, config: Any) -> None:
        """Check the configuration again after plugins had a chance to mutate it."""
        self.validate_raw(config)
        _require_sources(config)
        for key in ("includes", "excludes"):
            _check_patterns(config.get(key), key)
        for key in _BOOLEAN_DEFAULTS:
            if key in config and not isinstance(config[key], bool):
                raise ConfigTypeError(f"'config.{key}' is not a boolean")
        level = config.get("log_level", "info")
        if not isinstance(level, str) or level.lower() not in LOG_LEVELS:
            raise ConfigTypeError(f"'config.log_level' is not a known level: {level!r}")
        if "publisher" in config and config["publisher"] is not None:
            _check_descriptor(config["publisher"], "publisher")
        plugins = config.get("plugins", [])
        if not isinstance(plugins, list):
            raise ConfigTypeError("'config.plugins' is not a list")
        for index, plugin in enumerate(plugins):
            _check_descriptor(plugin, f"plugins[{index}]", allow_instance=True)
        test = config.get("test")
        if test is not None:
            if not isinstance(test, Mapping):
                raise ConfigTypeError("'config.test' is not a mapping")
            _require_sources(test, prefix="config.test")
            for key in ("includes", "excludes"):
                _check_patterns(test.get(key), f"test.{key}")

    def freeze(self, config: Mapping[str, Any]) -> Tuple[RunConfig, RunState]:
        """Split a validated configuration into an immutable RunConfig and a mutable RunState."""
        includes = tuple(config["includes"])
        excludes = tuple(config["excludes"])

        test_config: Optional[TestConfig] = None
        state = RunState()
        if config.get("source_files") is not None:
            state.source_files = [self._absolute(path) for path in config["source_files"]]

        test = config.get("test")
        if test is not None:
            test_includes = tuple(test["includes"])
            test_excludes = tuple(test["excludes"])
            test_config = TestConfig(
                type=str(test["type"]),
                source=_as_source(test.get("source")),
                includes=test_includes,
                excludes=test_excludes,
                include_patterns=_compile(test_includes),
                exclude_patterns=_compile(test_excludes),
            )
            if test.get("source_files") is not None:
                state.test_source_files = [self._absolute(path) for path in test["source_files"]]

        runtime_options = _freeze(config.get("runtime_options") or {})
        publisher_options = _freeze(config.get("publisher_options") or {})

        run_config = RunConfig(
            dir_path=self.dir_path,
            source=_as_source(config.get("source")),
            destination=Path(self._absolute(config["destination"])),
            includes=includes,
            excludes=excludes,
            include_patterns=_compile(includes),
            exclude_patterns=_compile(excludes),
            runtime=PluginDescriptor.coerce(config["runtime"], default_options=runtime_options),
            publisher=PluginDescriptor.coerce(config["publisher"], default_options=publisher_options),
            plugins=tuple(PluginDescriptor.coerce(plugin) for plugin in config.get("plugins", [])),
            test=test_config,
            runtime_options=runtime_options,
            publisher_options=publisher_options,
            log_level=str(config["log_level"]).lower(),
            package=config.get("package"),
            title=config.get("title"),
            index=config.get("index"),
            extra=_freeze({key: value for key, value in config.items() if key not in _KNOWN_KEYS}),
            resolved=_freeze(dict(config)),
            **{key: bool(config[key]) for key in _BOOLEAN_DEFAULTS},
        )
        return run_config, state

    def _absolute(self, path: str | Path) -> str:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.dir_path / candidate
        return str(candidate.resolve())


def _require_runtime(raw: Mapping[str, Any]) -> None:
    runtime = raw.get("runtime")
    if not isinstance(runtime, (str, Mapping)):
        raise ConfigTypeError("'config.runtime' is not a mapping or string")
    _check_descriptor(runtime, "runtime")


def _require_sources(raw: Mapping[str, Any], *, prefix: str = "config") -> None:
    source_files = raw.get("source_files")
    if source_files is None and raw.get("source") is None:
        raise ConfigTypeError(f"'{prefix}.source' or '{prefix}.source_files' is not defined")
    if source_files is not None and (
        not isinstance(source_files, list) or not all(isinstance(item, str) for item in source_files)
    ):
        raise ConfigTypeError(f"'{prefix}.source_files' is not a list of strings")
    source = raw.get("source")
    if source is not None and not isinstance(source, str):
        if not isinstance(source, list) or not all(isinstance(item, str) for item in source):
            raise ConfigTypeError(f"'{prefix}.source' is not a string or list of strings")


def _check_descriptor(value: Any, label: str, *, allow_instance: bool = False) -> None:
    if isinstance(value, str):
        if not value.strip():
            raise ConfigTypeError(f"'config.{label}' is an empty string")
        return
    if isinstance(value, Mapping):
        name = value.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigTypeError(f"'config.{label}.name' is not a string")
        options = value.get("options")
        if options is not None and not isinstance(options, Mapping):
            raise ConfigTypeError(f"'config.{label}.options' is not a mapping")
        return
    if allow_instance and not isinstance(value, (bool, int, float, list, tuple)) and value is not None:
        return
    raise ConfigTypeError(f"'config.{label}' is not a mapping or string")


def _check_patterns(value: Any, label: str) -> None:
    if value is None:
        return
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigTypeError(f"'config.{label}' is not a list of strings")
    for pattern in value:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ConfigTypeError(f"'config.{label}' has an invalid pattern {pattern!r}: {exc}") from exc


def _resolve_extends(config: Dict[str, Any], base_dir: Path, seen: frozenset) -> Dict[str, Any]:
    extends = config.pop("extends", None)
    if extends is None:
        return config
    if isinstance(extends, str):
        parents = [extends]
    elif isinstance(extends, list) and all(isinstance(item, str) for item in extends):
        parents = list(extends)
    else:
        raise ConfigTypeError("'config.extends' is not a string or list of strings")

    merged: Dict[str, Any] = {}
    for parent in parents:
        parent_path = Path(parent).expanduser()
        if not parent_path.is_absolute():
            parent_path = base_dir / parent_path
        parent_path = parent_path.resolve()
        if parent_path in seen:
            raise ConfigValidationError(f"Circular 'extends' reference to {parent_path}")
        logger.debug("Extending config with %s", parent_path)
        parent_config = _resolve_extends(
            load_config_file(parent_path), parent_path.parent, seen | {parent_path}
        )
        merged.update(parent_config)
    merged.update(config)
    return merged


def _apply_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    if config.get("destination") is None:
        config["destination"] = "./docs"
    if config.get("includes") is None:
        config["includes"] = list(DEFAULT_INCLUDES)
    if config.get("excludes") is None:
        config["excludes"] = []
    if config.get("publisher") is None:
        config["publisher"] = DEFAULT_PUBLISHER
    config.setdefault("runtime_options", {})
    config.setdefault("publisher_options", {})
    if config.get("plugins") is None:
        config["plugins"] = []
    config.setdefault("log_level", "info")
    config.setdefault("package", None)
    config.setdefault("title", None)
    config.setdefault("index", "./README.md")
    for key, default in _BOOLEAN_DEFAULTS.items():
        config.setdefault(key, default)

    test = config.get("test")
    if isinstance(test, Mapping):
        test = dict(test)
        test.setdefault("type", DEFAULT_TEST_TYPE)
        if test.get("includes") is None:
            test["includes"] = list(DEFAULT_INCLUDES)
        if test.get("excludes") is None:
            test["excludes"] = []
        config["test"] = test
    return config


def _as_source(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _compile(patterns: Sequence[str]) -> Tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern) for pattern in patterns)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


__all__ = [
    "ConfigResolver",
    "DEFAULT_INCLUDES",
    "RunConfig",
    "RunState",
    "TestConfig",
    "load_config_file",
]
