"""Lifecycle coordination for configure/generate/publish/regenerate runs."""

from __future__ import annotations

import asyncio
import inspect
import shutil
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Tuple

from .collaborators import Parser, PublishContext, Resolver
from .config import ConfigResolver, RunConfig, RunState
from .coverage import CoverageCalculator, CoverageReport
from .discovery import FileDiscovery, hydrate_globs, relative_path
from .docdb import DocDatabase
from .error_handler import ErrorHandler
from .errors import CollaboratorLoadError, ConfigValidationError, LifecycleError
from .hooks import (
    CompleteContext,
    HandleConfigContext,
    HandleDocDBContext,
    HandleDocDataContext,
    HookDispatcher,
    HookPoint,
    RegenerateContext,
    ShutdownContext,
    StartContext,
)
from .logging import configure_logging, get_logger, set_level
from .models import FileCandidate, HydratedGlobs, OnParseError, ParseResult
from .package import PackageMetadata, load_package
from .pipeline import GenerationPipeline
from .plugins import PluginLoader, PluginRegistry


class LifecycleState(str, Enum):
    INIT = "init"
    CONFIGURING = "configuring"
    DISCOVERING = "discovering"
    GENERATING = "generating"
    RESOLVING = "resolving"
    PUBLISHING = "publishing"
    COMPLETING = "completing"
    IDLE = "idle"
    REGENERATING = "regenerating"
    TERMINATED = "terminated"


class LifecycleSignal(str, Enum):
    REGENERATE = "regenerate"
    SHUTDOWN = "shutdown"


class LifecycleControl:
    """Handle lent to plugins for driving a resident (keep-alive) coordinator."""

    def __init__(self, coordinator: "LifecycleCoordinator") -> None:
        self._coordinator = coordinator

    @property
    def state(self) -> LifecycleState:
        return self._coordinator.state

    @property
    def pass_number(self) -> int:
        return self._coordinator.pass_number

    def request_regenerate(self) -> None:
        """Queue a regeneration pass; safe to call from any thread."""
        self._coordinator.signal(LifecycleSignal.REGENERATE)

    def request_shutdown(self) -> None:
        """Queue shutdown; safe to call from any thread."""
        self._coordinator.signal(LifecycleSignal.SHUTDOWN)

    def parse_file(self, file_path: str | Path) -> Optional[ParseResult]:
        """Re-parse one file, raising FileParseError so the caller can react."""
        return self._coordinator.parse_file(file_path)


class LifecycleCoordinator:
    """Drives a documentation run through its lifecycle states.

    Init -> Configuring -> Discovering -> Generating -> Resolving -> Publishing
    -> Completing, then Idle while a plugin requested keep-alive (Regenerating
    loops back to Generating) and finally Terminated.
    """

    def __init__(
        self,
        *,
        loader: Optional[PluginLoader] = None,
        error_handler: Optional[ErrorHandler] = None,
        dir_path: Path | str | None = None,
        hydrate: Callable[..., HydratedGlobs] = hydrate_globs,
        log_file: Path | None = None,
    ) -> None:
        self.state = LifecycleState.INIT
        self.registry = PluginRegistry(loader)
        self.hooks = HookDispatcher(self.registry)
        self.database = DocDatabase()
        self.control = LifecycleControl(self)
        self.resolver = ConfigResolver(dir_path)
        self.error_handler = error_handler or ErrorHandler()
        self.logger = get_logger("coordinator")
        self.config: Optional[RunConfig] = None
        self.run_state: Optional[RunState] = None
        self.package = PackageMetadata()
        self.parser: Optional[Parser] = None
        self.doc_resolver: Optional[Resolver] = None
        self.publisher: Any = None
        self.pipeline: Optional[GenerationPipeline] = None
        self.coverage: Optional[CoverageReport] = None
        self.pass_number = 0
        self._hydrate = hydrate
        self._log_file = log_file
        self._signals: Optional[asyncio.Queue[LifecycleSignal]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def generate(self, raw_config: Any, *, config_dir: Path | None = None) -> None:
        """Run the full lifecycle; fatal errors end in SystemExit(1) via the error handler."""
        if self.state is not LifecycleState.INIT:
            raise LifecycleError(f"generate() cannot run from state '{self.state.value}'")
        self._loop = asyncio.get_running_loop()
        self._signals = asyncio.Queue()
        try:
            await self._configure(raw_config, config_dir)
            keep_alive = await self._run_pass()
            while keep_alive:
                self._enter(LifecycleState.IDLE)
                signal = await self._signals.get()
                if signal is LifecycleSignal.SHUTDOWN:
                    break
                await self._regenerate()
                keep_alive = await self._run_pass()
            await self._shutdown()
        except Exception as exc:
            self._teardown()
            self.error_handler.handle(exc, self.config)

    def signal(self, signal: LifecycleSignal) -> None:
        if self.state is LifecycleState.TERMINATED or self._loop is None or self._signals is None:
            raise LifecycleError(f"Cannot send '{signal.value}' to a coordinator in state '{self.state.value}'")
        self._loop.call_soon_threadsafe(self._signals.put_nowait, signal)

    def parse_file(self, file_path: str | Path) -> Optional[ParseResult]:
        if self.state is LifecycleState.TERMINATED or self.pipeline is None or self.config is None:
            raise LifecycleError(f"Cannot parse files in state '{self.state.value}'")
        path = str(Path(file_path).resolve())
        candidate = FileCandidate(path=path, relative_path=relative_path(path, self.config.dir_path))
        return self.pipeline.parse_file(candidate, on_error=OnParseError.PROPAGATE)

    async def _configure(self, raw_config: Any, config_dir: Path | None) -> None:
        self._enter(LifecycleState.CONFIGURING)
        configure_logging(level="info", log_file=self._log_file)

        self.resolver.validate_raw(raw_config)
        runtime_entry = self.registry.add(raw_config["runtime"], default_options=raw_config.get("runtime_options"))
        self.parser, self.doc_resolver = _runtime_collaborators(runtime_entry.name, runtime_entry.plugin)
        self.logger.info("runtime: %s", runtime_entry.name)

        resolved = self.resolver.resolve(raw_config, base_dir=config_dir)
        self.registry.add_all(resolved["plugins"])

        context = await self.hooks.invoke(HookPoint.ON_HANDLE_CONFIG, HandleConfigContext(config=resolved))
        resolved = context.config
        self.resolver.post_validate(resolved)
        set_level(resolved["log_level"])

        self.config, self.run_state = self.resolver.freeze(resolved)

        publisher_entry = self.registry.add(self.config.publisher)
        publish = getattr(publisher_entry.plugin, "publish", None)
        if not callable(publish):
            raise CollaboratorLoadError(publisher_entry.name, f"Publisher '{publisher_entry.name}' has no publish()")
        self.publisher = publisher_entry.plugin
        if self.config.builtin_virtual:
            for entry in self.registry.add_virtual_companions():
                self.logger.info("virtual plugin: %s", entry.name)

        self.package = load_package(self.config.package, self.config.dir_path)
        self.pipeline = GenerationPipeline(
            self.parser, self.database, self.hooks, self.config.dir_path, self.package
        )

    def _discover(self) -> Tuple[List[FileCandidate], List[FileCandidate]]:
        config, state = self._require_run()
        self._enter(LifecycleState.DISCOVERING)
        discovery = FileDiscovery(config.dir_path, self._hydrate)

        if state.source_files is None:
            state.source_files, state.source_globs = discovery.discover(config.source, None)
        sources = discovery.candidates(state.source_files, config.include_patterns, config.exclude_patterns)

        tests: List[FileCandidate] = []
        if config.test is not None:
            if state.test_source_files is None:
                state.test_source_files, state.test_source_globs = discovery.discover(config.test.source, None)
            tests = discovery.candidates(
                state.test_source_files, config.test.include_patterns, config.test.exclude_patterns
            )
        self.logger.debug("Discovered %d source and %d test files", len(sources), len(tests))
        return sources, tests

    async def _run_pass(self) -> bool:
        config, state = self._require_run()
        pipeline, doc_resolver = self._require_collaborators()
        self.pass_number += 1
        sources, tests = self._discover()

        self._enter(LifecycleState.GENERATING)
        if self.pass_number == 1:
            await self.hooks.invoke(
                HookPoint.ON_START,
                StartContext(
                    config=config,
                    state=state,
                    package=self.package,
                    database=self.database,
                    control=self.control,
                ),
            )
        await pipeline.run(config, sources, tests)

        data_context = await self.hooks.invoke(
            HookPoint.ON_HANDLE_DOC_DATA,
            HandleDocDataContext(config=config, doc_data=self.database.records),
        )
        doc_data = data_context.doc_data
        if not config.include_source:
            for record in doc_data:
                if record.is_file:
                    record.content = ""
        self.database.load(doc_data)
        await self.hooks.invoke(HookPoint.ON_HANDLE_DOC_DB, HandleDocDBContext(config=config, database=self.database))

        self._enter(LifecycleState.RESOLVING)
        await _maybe_await(doc_resolver.resolve(self.database))

        self._enter(LifecycleState.PUBLISHING)
        if config.empty_destination:
            _empty_directory(config.destination, config.dir_path)
        self.logger.info("publishing with: %s", config.publisher.name)
        await _maybe_await(
            self.publisher.publish(
                PublishContext(
                    config=config,
                    state=state,
                    database=self.database,
                    package=self.package,
                    ast_data=list(pipeline.ast_data),
                    pass_number=self.pass_number,
                )
            )
        )
        if config.doc_coverage:
            calculator = CoverageCalculator()
            self.coverage = calculator.evaluate(self.database)
            calculator.log(self.coverage)
        if pipeline.failures:
            self.logger.warning("%d file(s) failed to parse and were skipped", len(pipeline.failures))

        self._enter(LifecycleState.COMPLETING)
        complete = await self.hooks.invoke(
            HookPoint.ON_COMPLETE,
            CompleteContext(config=config, database=self.database, control=self.control),
        )
        return bool(complete.keep_alive)

    async def _regenerate(self) -> None:
        config, state = self._require_run()
        self._enter(LifecycleState.REGENERATING)
        self.database.reset()
        await self.hooks.invoke(
            HookPoint.ON_REGENERATE,
            RegenerateContext(config=config, state=state, database=self.database, pass_number=self.pass_number + 1),
        )

    async def _shutdown(self) -> None:
        await self.hooks.invoke(HookPoint.ON_SHUTDOWN, ShutdownContext(config=self.config))
        self._teardown()
        self.logger.debug("Shutdown complete after %d pass(es)", self.pass_number)

    def _teardown(self) -> None:
        self.hooks.release()
        self.registry.destroy()
        self.state = LifecycleState.TERMINATED

    def _enter(self, state: LifecycleState) -> None:
        self.logger.debug("%s -> %s", self.state.value, state.value)
        self.state = state

    def _require_run(self) -> Tuple[RunConfig, RunState]:
        if self.config is None or self.run_state is None:
            raise LifecycleError("Configuration has not been resolved")
        return self.config, self.run_state

    def _require_collaborators(self) -> Tuple[GenerationPipeline, Resolver]:
        if self.pipeline is None or self.doc_resolver is None:
            raise LifecycleError("Runtime collaborators have not been loaded")
        return self.pipeline, self.doc_resolver


def _runtime_collaborators(name: str, runtime: Any) -> Tuple[Parser, Resolver]:
    parser = getattr(runtime, "parser", runtime)
    if not isinstance(parser, Parser):
        raise CollaboratorLoadError(name, f"Runtime '{name}' does not provide a parser")
    resolver = getattr(runtime, "resolver", runtime)
    if not isinstance(resolver, Resolver):
        raise CollaboratorLoadError(name, f"Runtime '{name}' does not provide a resolver")
    return parser, resolver


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def _empty_directory(destination: Path, dir_path: Path) -> None:
    destination = destination.resolve()
    if destination == dir_path or destination in dir_path.parents:
        raise ConfigValidationError(f"Refusing to empty {destination}; it contains the working directory")
    if not destination.is_dir():
        return
    for child in destination.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def generate(config: Mapping[str, Any], **kwargs: Any) -> None:
    """Run a coordinator to completion on a fresh event loop."""
    config_dir = kwargs.pop("config_dir", None)
    asyncio.run(LifecycleCoordinator(**kwargs).generate(config, config_dir=config_dir))


__all__ = [
    "LifecycleControl",
    "LifecycleCoordinator",
    "LifecycleSignal",
    "LifecycleState",
    "generate",
]
