"""CLI entrypoint for tjsdoc."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from .config import load_config_file
from .coordinator import generate
from .errors import ConfigValidationError
from .package import read_manifest_config, tjsdoc_version

CONFIG_FILES: Tuple[str, ...] = (
    ".tjsdocrc",
    ".tjsdocrc.json",
    ".tjsdocrc.yml",
    ".tjsdocrc.yaml",
    ".tjsdoc.json",
    ".tjsdoc.yml",
)
MANIFEST_FILES: Tuple[str, ...] = ("pyproject.toml", "package.json")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tjsdoc",
        description="Generate API documentation for a source project.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to a config file (JSON or YAML). Defaults to probing .tjsdocrc and friends.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {tjsdoc_version()}",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Keep running after generation and expose the HTTP control API.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host for --serve (default: 127.0.0.1).")
    parser.add_argument("--port", type=int, default=8000, help="Port for --serve (default: 8000).")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write log output to this file.")
    return parser


def find_config(cwd: Path, explicit: Optional[Path] = None) -> Optional[Tuple[Dict[str, Any], Path]]:
    """Locate and load the run config; returns `(config, config_dir)` or None."""
    if explicit is not None:
        path = explicit if explicit.is_absolute() else cwd / explicit
        return load_config_file(path), path.resolve().parent

    for name in CONFIG_FILES:
        path = cwd / name
        if path.is_file():
            return load_config_file(path), cwd

    for name in MANIFEST_FILES:
        path = cwd / name
        if not path.is_file():
            continue
        try:
            config = read_manifest_config(path)
        except ValueError as exc:
            raise ConfigValidationError(f"Failed to parse {name}: {exc}") from exc
        if config is not None:
            return config, cwd
    return None


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entrypoint for tjsdoc."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    cwd = Path.cwd()

    try:
        found = find_config(cwd, args.config)
    except ConfigValidationError as exc:
        parser.exit(1, f"tjsdoc: {exc}\n")
    if found is None:
        parser.print_help(sys.stderr)
        parser.exit(1, "\ntjsdoc: no config file found\n")

    config, config_dir = found
    if args.serve:
        plugins = list(config.get("plugins") or [])
        plugins.append({"name": "service", "options": {"host": args.host, "port": args.port}})
        config["plugins"] = plugins

    generate(config, config_dir=config_dir, dir_path=cwd, log_file=args.log_file)


if __name__ == "__main__":
    main(sys.argv[1:])
