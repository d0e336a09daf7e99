"""Error taxonomy for documentation generation runs."""

from __future__ import annotations

from pathlib import Path


class TJSDocError(RuntimeError):
    """Base class for errors raised by tjsdoc."""


class ConfigValidationError(TJSDocError):
    """Raised when the run configuration is missing or malformed."""


class ConfigTypeError(ConfigValidationError, TypeError):
    """Raised when a configuration value has the wrong type."""


class FileParseError(TJSDocError):
    """Raised when a single source file cannot be parsed."""

    def __init__(self, path: str | Path, message: str | None = None) -> None:
        self.path = str(path)
        super().__init__(message or f"Failed to parse {self.path}")


class CollaboratorLoadError(TJSDocError):
    """Raised when a plugin, runtime or publisher cannot be loaded."""

    def __init__(self, name: str, message: str | None = None) -> None:
        self.name = name
        super().__init__(message or f"Failed to load plugin '{name}'")


class HookError(TJSDocError):
    """Raised when a hook returns data the dispatcher cannot merge."""


class LifecycleError(TJSDocError):
    """Raised when the coordinator is driven from an invalid state."""


class UnknownFatalError(TJSDocError):
    """Wraps an unexpected exception escaping the pipeline."""


__all__ = [
    "CollaboratorLoadError",
    "ConfigTypeError",
    "ConfigValidationError",
    "FileParseError",
    "HookError",
    "LifecycleError",
    "TJSDocError",
    "UnknownFatalError",
]
