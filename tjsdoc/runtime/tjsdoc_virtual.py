"""Builtin virtual code shipped with the Python runtime: standard library externals."""

from __future__ import annotations

from ..hooks import HandleVirtualContext
from .python_ast import BUILTIN_EXTERNALS


def on_handle_virtual(context: HandleVirtualContext) -> None:
    context.code.append(BUILTIN_EXTERNALS)


__all__ = ["on_handle_virtual"]
