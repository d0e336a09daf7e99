"""Tests for the plugin hook dispatcher."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import List

import pytest

from tjsdoc.errors import HookError
from tjsdoc.hooks import (
    CompleteContext,
    HandleConfigContext,
    HandleVirtualContext,
    HookDispatcher,
    HookPoint,
    ShutdownContext,
)
from tjsdoc.plugins import PluginLoader, PluginRegistry


def _dispatcher(*plugins) -> HookDispatcher:
    registry = PluginRegistry(PluginLoader())
    for plugin in plugins:
        registry.add(plugin)
    return HookDispatcher(registry)


class _Slow:
    def __init__(self, name: str, log: List[str]) -> None:
        self.name = name
        self.log = log

    async def on_handle_virtual(self, context: HandleVirtualContext) -> None:
        self.log.append(f"{self.name}:start")
        await asyncio.sleep(0.01)
        context.code.append(self.name)
        self.log.append(f"{self.name}:end")


def test_hooks_run_sequentially_in_registration_order() -> None:
    log: List[str] = []
    dispatcher = _dispatcher(_Slow("first", log), _Slow("second", log))
    context = HandleVirtualContext(config=SimpleNamespace())

    result = asyncio.run(dispatcher.invoke(HookPoint.ON_HANDLE_VIRTUAL, context))

    assert log == ["first:start", "first:end", "second:start", "second:end"]
    assert result.code == ["first", "second"]


def test_plugins_without_the_hook_are_skipped() -> None:
    dispatcher = _dispatcher(SimpleNamespace(name="empty"))
    context = ShutdownContext(config=None)

    assert asyncio.run(dispatcher.invoke(HookPoint.ON_SHUTDOWN, context)) is context


def test_mapping_results_merge_into_context() -> None:
    class _KeepAlive:
        name = "keep"

        def on_complete(self, context):
            return {"keep_alive": True}

    context = CompleteContext(config=None, database=None, control=None)  # type: ignore[arg-type]
    result = asyncio.run(_dispatcher(_KeepAlive()).invoke(HookPoint.ON_COMPLETE, context))

    assert result.keep_alive is True


def test_returned_context_replaces_previous() -> None:
    class _Replace:
        name = "replace"

        def on_handle_config(self, context):
            return HandleConfigContext(config={"replaced": True})

    class _Observe:
        name = "observe"
        seen = None

        def on_handle_config(self, context):
            _Observe.seen = dict(context.config)

    result = asyncio.run(
        _dispatcher(_Replace(), _Observe()).invoke(
            HookPoint.ON_HANDLE_CONFIG, HandleConfigContext(config={"original": True})
        )
    )

    assert result.config == {"replaced": True}
    assert _Observe.seen == {"replaced": True}


def test_unknown_result_fields_raise() -> None:
    class _Bad:
        name = "bad"

        def on_complete(self, context):
            return {"keepalive": True}

    context = CompleteContext(config=None, database=None, control=None)  # type: ignore[arg-type]
    with pytest.raises(HookError, match="keepalive"):
        asyncio.run(_dispatcher(_Bad()).invoke(HookPoint.ON_COMPLETE, context))


def test_wrong_context_type_raises() -> None:
    with pytest.raises(HookError, match="ShutdownContext"):
        asyncio.run(_dispatcher().invoke(HookPoint.ON_SHUTDOWN, HandleConfigContext(config={})))


def test_release_blocks_later_invocations() -> None:
    dispatcher = _dispatcher()
    dispatcher.release()

    assert dispatcher.released
    with pytest.raises(HookError, match="released"):
        asyncio.run(dispatcher.invoke(HookPoint.ON_SHUTDOWN, ShutdownContext(config=None)))
