"""Publisher writing the document database as JSON files."""

from __future__ import annotations

import ast
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..collaborators import PublishContext
from ..coverage import CoverageCalculator
from ..logging import get_logger
from ..models import AstEntry

logger = get_logger("publisher.json")


class JsonPublisher:
    """Writes `doc_data.json`, `ast_data.json`, `coverage.json` and a `manifest.json` index."""

    name = "json"

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.options = dict(options or {})
        self.indent = int(self.options.get("indent", 2))
        self.write_coverage = bool(self.options.get("coverage", True))

    def publish(self, context: PublishContext) -> List[Path]:
        config = context.config
        destination = config.destination
        destination.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []

        if config.output_doc_data:
            written.append(self._write(destination / "doc_data.json", context.database.to_list()))
        if config.output_ast_data:
            written.append(self._write(destination / "ast_data.json", [_ast_payload(entry) for entry in context.ast_data]))
        if config.doc_coverage and self.write_coverage:
            calculator = CoverageCalculator()
            written.append(calculator.save(destination, calculator.evaluate(context.database)))

        manifest: Dict[str, Any] = {
            "title": config.title or context.package.name or "",
            "package": dict(context.package.formatted),
            "pass": context.pass_number,
            "records": len(context.database),
            "files": [path.name for path in written],
        }
        written.append(self._write(destination / "manifest.json", manifest))

        for path in written:
            link = {"label": path.stem, "href": path.name}
            if link not in context.state.menu_links:
                context.state.menu_links.append(link)
            logger.info("output: %s", path)
        return written

    def _write(self, path: Path, payload: Any) -> Path:
        path.write_text(json.dumps(payload, indent=self.indent, default=str), encoding="utf-8")
        return path


def _ast_payload(entry: AstEntry) -> Dict[str, Any]:
    tree = entry.ast
    return {
        "file_path": entry.file_path,
        "ast": ast.dump(tree, include_attributes=False) if isinstance(tree, ast.AST) else tree,
    }


def create_plugin(options: Optional[Mapping[str, Any]] = None) -> JsonPublisher:
    return JsonPublisher(options)


__all__ = ["JsonPublisher", "create_plugin"]
