"""Interfaces for the collaborators a generation run depends on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, List, Optional, Protocol, Union, runtime_checkable

from .models import AstEntry, ParseResult

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .config import RunConfig, RunState
    from .docdb import DocDatabase
    from .package import PackageMetadata


@runtime_checkable
class Parser(Protocol):
    """Turns source files and code fragments into document records."""

    def parse_file(
        self,
        dir_path: str,
        file_path: str,
        package_name: Optional[str],
        main_file_path: Optional[str],
        throw_on_error: bool,
    ) -> Optional[ParseResult]:
        ...

    def parse_code(self, dir_path: str, code: str) -> Optional[ParseResult]:
        ...

    def parse_test(self, test_type: str, dir_path: str, file_path: str) -> Optional[ParseResult]:
        ...


@runtime_checkable
class Resolver(Protocol):
    """Adds derived relationships to the database in place."""

    def resolve(self, database: "DocDatabase") -> None:
        ...


@runtime_checkable
class Runtime(Protocol):
    """A runtime plugin exposes the parser and resolver for one source language."""

    parser: Parser
    resolver: Resolver


@dataclass
class PublishContext:
    """Everything a publisher needs to produce the final output."""

    config: "RunConfig"
    state: "RunState"
    database: "DocDatabase"
    package: "PackageMetadata"
    ast_data: List[AstEntry] = field(default_factory=list)
    pass_number: int = 1


@runtime_checkable
class Publisher(Protocol):
    def publish(self, context: PublishContext) -> Union[None, Awaitable[Any]]:
        ...


__all__ = ["Parser", "PublishContext", "Publisher", "Resolver", "Runtime"]
