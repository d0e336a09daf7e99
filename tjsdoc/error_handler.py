"""Top-level fatal error reporting for generation runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from importlib import metadata
from types import TracebackType
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, NoReturn, Optional

from .errors import CollaboratorLoadError, ConfigValidationError, UnknownFatalError
from .logging import get_logger
from .package import distribution_manifest, format_package, tjsdoc_version

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .config import RunConfig

_SEPARATOR = "-" * 95
_PLUGIN_FILE_PREFIX = "tjsdoc_plugin_"


@dataclass
class ModuleAttribution:
    """Best guess of which module raised an error."""

    module: str
    distribution: Optional[str] = None
    is_tjsdoc: bool = False
    package: Mapping[str, Any] = field(default_factory=dict)

    @property
    def formatted_message(self) -> str:
        message = self.package.get("formatted_message") if self.package else None
        return message or f"module: {self.module}"


def attribute_error(exc: BaseException) -> Optional[ModuleAttribution]:
    """Attribute `exc` to the innermost frame owned by tjsdoc, a distribution or a plugin file."""
    modules = _traceback_modules(exc.__traceback__)
    if not modules:
        return None
    try:
        distributions = metadata.packages_distributions()
    except Exception:  # pragma: no cover - broken environments
        distributions = {}

    for module in reversed(modules):
        top = module.split(".", 1)[0]
        if top == "tjsdoc":
            return ModuleAttribution(
                module=module,
                distribution="tjsdoc",
                is_tjsdoc=True,
                package=_distribution_package("tjsdoc"),
            )
        if top.startswith(_PLUGIN_FILE_PREFIX):
            return ModuleAttribution(module=module)
        names = distributions.get(top)
        if names:
            return ModuleAttribution(
                module=module,
                distribution=names[0],
                package=_distribution_package(names[0]),
            )
    return None


def _traceback_modules(tb: Optional[TracebackType]) -> List[str]:
    modules: List[str] = []
    while tb is not None:
        name = tb.tb_frame.f_globals.get("__name__")
        if isinstance(name, str):
            modules.append(name)
        tb = tb.tb_next
    return modules


def _distribution_package(name: str) -> Dict[str, Any]:
    try:
        return format_package(distribution_manifest(name))
    except metadata.PackageNotFoundError:
        return {}


class ErrorHandler:
    """Logs one diagnostic for a fatal error and terminates with exit status 1."""

    def __init__(self) -> None:
        self.logger = get_logger()

    def handle(self, exc: BaseException, config: Optional["RunConfig"] = None) -> NoReturn:
        full_trace = config.full_stack_trace if config is not None else False
        version = tjsdoc_version()
        exc_info = (type(exc), exc, exc.__traceback__) if full_trace else None

        if isinstance(exc, ConfigValidationError):
            self.logger.critical(
                "The provided config failed validation; tjsdoc (%s): %s", version, exc, exc_info=exc_info
            )
            raise SystemExit(1) from exc

        if isinstance(exc, CollaboratorLoadError):
            self.logger.critical(
                "Unable to load collaborator '%s'; tjsdoc (%s): %s", exc.name, version, exc, exc_info=exc_info
            )
            raise SystemExit(1) from exc

        attribution = attribute_error(exc)
        if attribution is None:
            self.logger.critical(
                "An unknown fatal error has occurred; tjsdoc (%s): %s: %s",
                version,
                type(exc).__name__,
                exc,
                exc_info=exc_info,
            )
            fatal = UnknownFatalError(f"{type(exc).__name__}: {exc}")
            fatal.__cause__ = exc
            raise SystemExit(1) from fatal

        origin = "a tjsdoc module" if attribution.is_tjsdoc else "an external module"
        self.logger.critical(
            "An uncaught fatal error has been detected with %s.\n"
            "Please report this error to the issues forum after checking if a similar report "
            "already exists:\n%s\n%s\ntjsdoc version: %s\n%s\n%s: %s",
            origin,
            _SEPARATOR,
            attribution.formatted_message,
            version,
            _SEPARATOR,
            type(exc).__name__,
            exc,
            exc_info=exc_info,
        )
        raise SystemExit(1) from exc


__all__ = ["ErrorHandler", "ModuleAttribution", "attribute_error"]
