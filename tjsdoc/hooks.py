"""Named lifecycle hook points and the sequential hook dispatcher."""

from __future__ import annotations

import dataclasses
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, TypeVar

from .errors import HookError
from .logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .config import RunConfig, RunState
    from .coordinator import LifecycleControl
    from .docdb import DocDatabase
    from .models import DocumentRecord
    from .package import PackageMetadata
    from .plugins import PluginRegistry

logger = get_logger("hooks")


class HookPoint(str, Enum):
    """Extension points invoked at fixed stages of a run."""

    ON_HANDLE_CONFIG = "on_handle_config"
    ON_START = "on_start"
    ON_HANDLE_VIRTUAL = "on_handle_virtual"
    ON_HANDLE_DOC_DATA = "on_handle_doc_data"
    ON_HANDLE_DOC_DB = "on_handle_doc_db"
    ON_COMPLETE = "on_complete"
    ON_REGENERATE = "on_regenerate"
    ON_SHUTDOWN = "on_shutdown"


@dataclass
class HandleConfigContext:
    """Resolved but not yet validated configuration; plugins may edit it."""

    config: Dict[str, Any]


@dataclass
class StartContext:
    config: "RunConfig"
    state: "RunState"
    package: "PackageMetadata"
    database: "DocDatabase"
    control: "LifecycleControl"


@dataclass
class HandleVirtualContext:
    """Collects in-memory code fragments to be parsed as if they were files."""

    config: "RunConfig"
    code: List[str] = field(default_factory=list)


@dataclass
class HandleDocDataContext:
    config: "RunConfig"
    doc_data: List["DocumentRecord"]


@dataclass
class HandleDocDBContext:
    config: "RunConfig"
    database: "DocDatabase"


@dataclass
class CompleteContext:
    """`keep_alive` set by any plugin keeps the coordinator resident."""

    config: "RunConfig"
    database: "DocDatabase"
    control: "LifecycleControl"
    keep_alive: bool = False


@dataclass
class RegenerateContext:
    config: "RunConfig"
    state: "RunState"
    database: "DocDatabase"
    pass_number: int


@dataclass
class ShutdownContext:
    config: Optional["RunConfig"]


_CONTEXT_TYPES: Dict[HookPoint, type] = {
    HookPoint.ON_HANDLE_CONFIG: HandleConfigContext,
    HookPoint.ON_START: StartContext,
    HookPoint.ON_HANDLE_VIRTUAL: HandleVirtualContext,
    HookPoint.ON_HANDLE_DOC_DATA: HandleDocDataContext,
    HookPoint.ON_HANDLE_DOC_DB: HandleDocDBContext,
    HookPoint.ON_COMPLETE: CompleteContext,
    HookPoint.ON_REGENERATE: RegenerateContext,
    HookPoint.ON_SHUTDOWN: ShutdownContext,
}

ContextT = TypeVar("ContextT")


class HookDispatcher:
    """Invokes hook methods on registered plugins, one at a time, in registration order."""

    def __init__(self, registry: "PluginRegistry") -> None:
        self._registry = registry
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def invoke(self, hook: HookPoint, context: ContextT) -> ContextT:
        """Run `hook` on every plugin that defines it and return the merged context."""
        if self._released:
            raise HookError(f"Hook registrations were released; cannot invoke {hook.value}")
        expected = _CONTEXT_TYPES[hook]
        if not isinstance(context, expected):
            raise HookError(f"{hook.value} expects {expected.__name__}, got {type(context).__name__}")

        for entry in self._registry.entries:
            handler = getattr(entry.plugin, hook.value, None)
            if not callable(handler):
                continue
            logger.debug("Invoking %s on %s", hook.value, entry.name)
            result = handler(context)
            if inspect.isawaitable(result):
                result = await result
            context = _merge(hook, context, result, entry.name)
        return context

    def release(self) -> None:
        """Drop all hook registrations; later invocations raise HookError."""
        self._released = True


def _merge(hook: HookPoint, context: ContextT, result: Any, plugin_name: str) -> ContextT:
    if result is None:
        return context
    if isinstance(result, type(context)):
        return result
    if isinstance(result, Mapping):
        names = {item.name for item in dataclasses.fields(context)}
        unknown = sorted(key for key in result if key not in names)
        if unknown:
            raise HookError(
                f"Plugin '{plugin_name}' returned unknown {hook.value} fields: {', '.join(unknown)}"
            )
        for key, value in result.items():
            setattr(context, key, value)
        return context
    raise HookError(
        f"Plugin '{plugin_name}' returned {type(result).__name__} from {hook.value}; "
        "expected None, a mapping or the context"
    )


__all__ = [
    "CompleteContext",
    "HandleConfigContext",
    "HandleDocDBContext",
    "HandleDocDataContext",
    "HandleVirtualContext",
    "HookDispatcher",
    "HookPoint",
    "RegenerateContext",
    "ShutdownContext",
    "StartContext",
]
