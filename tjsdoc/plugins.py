"""Plugin descriptors, loading and the ordered plugin registry."""

from __future__ import annotations

import importlib
import importlib.util
import inspect
import sys
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from types import MappingProxyType, ModuleType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import CollaboratorLoadError, LifecycleError
from .logging import get_logger

_ENTRY_POINT_GROUP = "tjsdoc.plugins"
COMPANION_MODULE = "tjsdoc_virtual"

BUILTIN_PLUGINS: Dict[str, str] = {
    "python": "tjsdoc.runtime.python_ast",
    "json": "tjsdoc.publisher.json_publisher",
    "service": "tjsdoc.service.plugin:ServicePlugin",
}

PluginFactory = Callable[[Mapping[str, Any]], Any]

logger = get_logger("plugins")


@dataclass(frozen=True)
class PluginDescriptor:
    """Names a plugin and the options it is created with."""

    name: str
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    instance: Any = None

    @classmethod
    def coerce(
        cls, value: Any, *, default_options: Optional[Mapping[str, Any]] = None
    ) -> "PluginDescriptor":
        """Build a descriptor from a string, a `{name, options}` mapping or a plugin object."""
        if isinstance(value, PluginDescriptor):
            return value
        defaults = MappingProxyType(dict(default_options or {}))
        if isinstance(value, str):
            return cls(name=value, options=defaults)
        if isinstance(value, Mapping):
            options = value.get("options")
            return cls(
                name=str(value["name"]),
                options=MappingProxyType(dict(options)) if options is not None else defaults,
            )
        name = getattr(value, "name", None)
        if not isinstance(name, str):
            name = type(value).__name__
        return cls(name=name, options=defaults, instance=value)


@dataclass
class PluginEntry:
    """A loaded plugin kept by the registry."""

    name: str
    plugin: Any
    descriptor: PluginDescriptor
    module: Optional[str] = None
    companion: bool = False


class PluginLoader:
    """Resolves descriptors into plugin objects.

    Lookup order: in-process factories, builtin aliases, the `tjsdoc.plugins`
    entry point group, then import paths (`package.module`, `package.module:attr`
    or a path to a `.py` file).
    """

    def __init__(self, factories: Optional[Mapping[str, PluginFactory]] = None) -> None:
        self._factories: Dict[str, PluginFactory] = dict(factories or {})

    def register(self, name: str, factory: PluginFactory) -> None:
        self._factories[name] = factory

    def load(self, descriptor: PluginDescriptor) -> Any:
        return self.load_with_origin(descriptor)[0]

    def load_with_origin(self, descriptor: PluginDescriptor) -> Tuple[Any, Optional[str]]:
        """Load a plugin and report the module it was imported from.

        The origin is `None` for instances, factories and `.py` files, which
        have no importable package to carry companion modules.
        """
        if descriptor.instance is not None:
            return descriptor.instance, None
        name = descriptor.name
        try:
            factory = self._factories.get(name)
            if factory is not None:
                return factory(descriptor.options), None
            target, origin = self._resolve_target(name)
            return _coerce_plugin(target, descriptor.options), origin
        except CollaboratorLoadError:
            raise
        except Exception as exc:
            raise CollaboratorLoadError(name, f"Failed to load plugin '{name}': {exc}") from exc

    def load_companion(self, module_name: str) -> Optional[Any]:
        """Import `module_name` if it exists and return it as a virtual-code plugin.

        Returns `None` when the module is missing or defines no
        `on_handle_virtual`. Errors raised while importing an existing
        companion are reported as CollaboratorLoadError.
        """
        try:
            spec = importlib.util.find_spec(module_name)
        except ModuleNotFoundError:
            return None
        if spec is None:
            return None
        try:
            plugin = _coerce_plugin(importlib.import_module(module_name), {})
        except Exception as exc:
            raise CollaboratorLoadError(
                module_name, f"Failed to load virtual plugin '{module_name}': {exc}"
            ) from exc
        if not callable(getattr(plugin, "on_handle_virtual", None)):
            return None
        return plugin

    def _resolve_target(self, name: str) -> Tuple[Any, Optional[str]]:
        if name in BUILTIN_PLUGINS:
            path = BUILTIN_PLUGINS[name]
            return _import_target(path), path.partition(":")[0]
        for entry in _iter_entry_points():
            if entry.name == name:
                return entry.load(), getattr(entry, "module", None)
        if name.endswith(".py"):
            return _import_file(Path(name)), None
        return _import_target(name), name.partition(":")[0]


class PluginRegistry:
    """Keeps plugins in registration order for the hook dispatcher."""

    def __init__(self, loader: Optional[PluginLoader] = None) -> None:
        self.loader = loader or PluginLoader()
        self._entries: List[PluginEntry] = []
        self._destroyed = False

    def add(self, value: Any, *, default_options: Optional[Mapping[str, Any]] = None) -> PluginEntry:
        """Load and register a plugin; raises CollaboratorLoadError when loading fails."""
        if self._destroyed:
            raise LifecycleError("Plugin registry has been destroyed")
        descriptor = PluginDescriptor.coerce(value, default_options=default_options)
        plugin, origin = self.loader.load_with_origin(descriptor)
        entry = PluginEntry(name=descriptor.name, plugin=plugin, descriptor=descriptor, module=origin)
        self._entries.append(entry)
        logger.debug("Loaded plugin %s", descriptor.name)
        return entry

    def add_all(self, values: Iterable[Any]) -> List[PluginEntry]:
        return [self.add(value) for value in values]

    def add_virtual_companions(self) -> List[PluginEntry]:
        """Register the `tjsdoc_virtual` companion module of every imported plugin.

        Each companion is inserted right after the first plugin whose package
        provides it; a companion shared by several plugins is added once.
        """
        if self._destroyed:
            raise LifecycleError("Plugin registry has been destroyed")
        seen = {entry.name for entry in self._entries if entry.companion}
        ordered: List[PluginEntry] = []
        added: List[PluginEntry] = []
        for entry in self._entries:
            ordered.append(entry)
            if entry.companion or entry.module is None:
                continue
            for module_name in companion_modules(entry.module):
                if module_name in seen:
                    continue
                seen.add(module_name)
                plugin = self.loader.load_companion(module_name)
                if plugin is None:
                    continue
                companion = PluginEntry(
                    name=module_name,
                    plugin=plugin,
                    descriptor=PluginDescriptor(name=module_name),
                    module=module_name,
                    companion=True,
                )
                ordered.append(companion)
                added.append(companion)
                logger.debug("Loaded virtual plugin %s for %s", module_name, entry.name)
        self._entries = ordered
        return added

    @property
    def entries(self) -> Tuple[PluginEntry, ...]:
        return tuple(self._entries)

    @property
    def plugins(self) -> Tuple[Any, ...]:
        return tuple(entry.plugin for entry in self._entries)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        """Drop every plugin; the registry cannot be reused afterwards."""
        self._entries.clear()
        self._destroyed = True

    def __len__(self) -> int:
        return len(self._entries)


def companion_modules(module_name: str) -> List[str]:
    """Candidate companion modules for a plugin imported from `module_name`.

    The plugin's own package is tried first, then its top-level package.
    """
    module = sys.modules.get(module_name)
    package = getattr(module, "__package__", None) or ""
    names: List[str] = []
    for base in (package, module_name.split(".")[0]):
        candidate = f"{base}.{COMPANION_MODULE}"
        if base and candidate != module_name and candidate not in names:
            names.append(candidate)
    return names


def _coerce_plugin(target: Any, options: Mapping[str, Any]) -> Any:
    if isinstance(target, ModuleType):
        factory = getattr(target, "create_plugin", None)
        if callable(factory):
            return _call_with_options(factory, options)
        return target
    if isinstance(target, type) or callable(target):
        return _call_with_options(target, options)
    return target


def _call_with_options(factory: Callable[..., Any], options: Mapping[str, Any]) -> Any:
    try:
        parameters = inspect.signature(factory).parameters
    except (TypeError, ValueError):
        return factory()
    if parameters:
        return factory(options)
    return factory()


def _import_target(path: str) -> Any:
    module_name, _, attribute = path.partition(":")
    module = importlib.import_module(module_name)
    if not attribute:
        return module
    target: Any = module
    for part in attribute.split("."):
        target = getattr(target, part)
    return target


def _import_file(path: Path) -> ModuleType:
    resolved = path.expanduser().resolve()
    spec = importlib.util.spec_from_file_location(f"tjsdoc_plugin_{resolved.stem}", resolved)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import plugin file {resolved}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    entry_points = metadata.entry_points()
    return entry_points.select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "BUILTIN_PLUGINS",
    "COMPANION_MODULE",
    "PluginDescriptor",
    "PluginEntry",
    "PluginLoader",
    "PluginRegistry",
    "companion_modules",
]
