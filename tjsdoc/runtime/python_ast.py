"""Python runtime: docstring extraction with the standard library `ast` module."""

from __future__ import annotations

import ast
import re
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..discovery import relative_path
from ..docdb import DocDatabase
from ..errors import FileParseError
from ..logging import get_logger
from ..models import DocumentRecord, ParseResult

logger = get_logger("runtime.python")

_EXTERNAL_LINE = re.compile(r"@external\s+(\S+)\s+(\S+)")
_DOCS_URL = "https://docs.python.org/3/library"

BUILTIN_EXTERNALS = "\n".join(
    [
        f"# @external {name} {_DOCS_URL}/{page}"
        for name, page in (
            ("bool", "functions.html#bool"),
            ("bytes", "stdtypes.html#bytes"),
            ("dict", "stdtypes.html#dict"),
            ("float", "functions.html#float"),
            ("int", "functions.html#int"),
            ("list", "stdtypes.html#list"),
            ("object", "functions.html#object"),
            ("set", "stdtypes.html#set"),
            ("str", "stdtypes.html#str"),
            ("tuple", "stdtypes.html#tuple"),
            ("Exception", "exceptions.html#Exception"),
        )
    ]
)

_FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]


def module_name(relative: str, package_name: Optional[str] = None) -> str:
    """Dotted import name for a path relative to the project root."""
    parts = [part for part in relative.split("/") if part not in ("", ".")]
    if parts and parts[0] in ("src", "lib") and len(parts) > 1:
        parts = parts[1:]
    if parts:
        parts[-1] = parts[-1][:-3] if parts[-1].endswith(".py") else parts[-1]
        if parts[-1] == "__init__":
            parts = parts[:-1]
    return ".".join(parts) or (package_name or "__main__")


def _is_private(name: str) -> bool:
    return name.startswith("_") and not (name.startswith("__") and name.endswith("__"))


class _DocCollector:
    """Walks module level classes and functions and emits one record per definition."""

    def __init__(self, module: str, file_path: str, *, ignore_private: bool = False) -> None:
        self.module = module
        self.file_path = file_path
        self.ignore_private = ignore_private
        self.records: List[DocumentRecord] = []

    def collect(self, tree: ast.Module) -> List[DocumentRecord]:
        self._visit_body(tree.body, self.module, in_class=False)
        return self.records

    def _visit_body(self, body: Sequence[ast.stmt], parent: str, *, in_class: bool) -> None:
        for node in body:
            if isinstance(node, ast.ClassDef):
                record = self._record("class", node, parent)
                record["bases"] = [ast.unparse(base) for base in node.bases]
                self.records.append(record)
                self._visit_body(node.body, record["longname"], in_class=True)
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                if node.name.startswith("__") and node.name.endswith("__"):
                    continue
                record = self._record("method" if in_class else "function", node, parent)
                record["async"] = isinstance(node, ast.AsyncFunctionDef)
                record["params"] = _params(node)
                if node.returns is not None:
                    record["return"] = ast.unparse(node.returns)
                self.records.append(record)

    def _record(self, kind: str, node: Union[ast.ClassDef, _FunctionNode], parent: str) -> DocumentRecord:
        docstring = ast.get_docstring(node)
        private = _is_private(node.name)
        fields: Dict[str, Any] = {
            "name": node.name,
            "longname": f"{parent}.{node.name}",
            "memberof": parent,
            "file_path": self.file_path,
            "lineno": node.lineno,
            "access": "private" if private else "public",
            "description": docstring or "",
            "undocument": docstring is None,
        }
        if private and self.ignore_private:
            fields["ignore"] = True
        return DocumentRecord(kind=kind, fields=fields)


def _params(node: _FunctionNode) -> List[Dict[str, Any]]:
    params: List[Dict[str, Any]] = []
    arguments = node.args
    positional = list(arguments.posonlyargs) + list(arguments.args)
    defaults: List[Optional[ast.expr]] = [None] * (len(positional) - len(arguments.defaults))
    defaults.extend(arguments.defaults)
    for arg, default in zip(positional, defaults):
        if arg.arg in ("self", "cls"):
            continue
        params.append(_param(arg, default))
    if arguments.vararg is not None:
        params.append(_param(arguments.vararg, None, prefix="*"))
    for arg, default in zip(arguments.kwonlyargs, arguments.kw_defaults):
        params.append(_param(arg, default))
    if arguments.kwarg is not None:
        params.append(_param(arguments.kwarg, None, prefix="**"))
    return params


def _param(arg: ast.arg, default: Optional[ast.expr], *, prefix: str = "") -> Dict[str, Any]:
    param: Dict[str, Any] = {"name": f"{prefix}{arg.arg}"}
    if arg.annotation is not None:
        param["type"] = ast.unparse(arg.annotation)
    if default is not None:
        param["default"] = ast.unparse(default)
    return param


class PythonDocParser:
    """Parser collaborator for `.py` sources and pytest modules."""

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.options = dict(options or {})
        self.ignore_private = bool(self.options.get("ignore_private", False))

    def parse_file(
        self,
        dir_path: str,
        file_path: str,
        package_name: Optional[str],
        main_file_path: Optional[str],
        throw_on_error: bool,
    ) -> Optional[ParseResult]:
        relative = relative_path(file_path, dir_path)
        try:
            text, tree = self._load(file_path)
        except FileParseError as exc:
            if throw_on_error:
                raise
            logger.warning("%s", exc)
            return None

        name = module_name(relative, package_name)
        is_main = bool(main_file_path) and Path(dir_path, main_file_path).resolve() == Path(file_path).resolve()
        docstring = ast.get_docstring(tree)
        file_record = DocumentRecord(
            kind="file",
            fields={
                "name": relative,
                "longname": relative,
                "file_path": relative,
                "module": name,
                "import_path": package_name if is_main and package_name else name,
                "description": docstring or "",
            },
            content=text,
        )
        collector = _DocCollector(name, relative, ignore_private=self.ignore_private)
        return ParseResult(records=[file_record, *collector.collect(tree)], ast=tree)

    def parse_code(self, dir_path: str, code: str) -> Optional[ParseResult]:
        """Parse an in-memory fragment; `# @external NAME URL` lines become external records."""
        records: List[DocumentRecord] = []
        for match in _EXTERNAL_LINE.finditer(code):
            name, url = match.groups()
            records.append(
                DocumentRecord(kind="external", fields={"name": name, "longname": name, "external_link": url})
            )
        tree = ast.parse(code)
        records.extend(_DocCollector("__virtual__", "<virtual>").collect(tree))
        return ParseResult(records=records, ast=tree)

    def parse_test(self, test_type: str, dir_path: str, file_path: str) -> Optional[ParseResult]:
        if test_type != "pytest":
            raise FileParseError(file_path, f"Unsupported test type '{test_type}' for {file_path}")
        relative = relative_path(file_path, dir_path)
        text, tree = self._load(file_path)

        records = [
            DocumentRecord(
                kind="testFile",
                fields={"name": relative, "longname": relative, "file_path": relative},
                content=text,
            )
        ]
        for node in tree.body:
            if isinstance(node, ast.ClassDef) and node.name.startswith("Test"):
                describe = f"{relative}~{node.name}"
                records.append(self._test_record("testDescribe", node, describe, relative, relative))
                for child in node.body:
                    if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef)) and child.name.startswith("test"):
                        records.append(
                            self._test_record("test", child, f"{describe}.{child.name}", describe, relative)
                        )
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.name.startswith("test"):
                records.append(self._test_record("test", node, f"{relative}~{node.name}", relative, relative))
        return ParseResult(records=records, ast=tree)

    def _test_record(
        self,
        kind: str,
        node: Union[ast.ClassDef, _FunctionNode],
        longname: str,
        memberof: str,
        relative: str,
    ) -> DocumentRecord:
        return DocumentRecord(
            kind=kind,
            fields={
                "name": node.name,
                "longname": longname,
                "memberof": memberof,
                "file_path": relative,
                "lineno": node.lineno,
                "description": ast.get_docstring(node) or "",
            },
        )

    def _load(self, file_path: str) -> tuple[str, ast.Module]:
        text = Path(file_path).read_text(encoding="utf-8")
        try:
            return text, ast.parse(text, filename=file_path)
        except SyntaxError as exc:
            message = f"Syntax error in {file_path} (line {exc.lineno}): {exc.msg}"
            raise FileParseError(file_path, message) from exc


class PythonDocResolver:
    """Builds `longname` and `memberof` indices and links class bases."""

    def resolve(self, database: DocDatabase) -> None:
        by_longname: Dict[str, DocumentRecord] = {}
        by_name: Dict[str, List[str]] = defaultdict(list)
        members: Dict[str, List[str]] = defaultdict(list)

        for record in database:
            longname = record.get("longname")
            if not longname:
                continue
            by_longname[longname] = record
            if record.kind in ("class", "external"):
                by_name[record["name"]].append(longname)
            memberof = record.get("memberof")
            if memberof:
                members[memberof].append(longname)

        for record in database.find(kind="class"):
            record["extends"] = [
                self._resolve_base(base, record, by_longname, by_name) for base in record.get("bases", [])
            ]

        database.indices["longname"] = by_longname
        database.indices["memberof"] = dict(members)
        logger.debug("Resolved %d named records", len(by_longname))

    @staticmethod
    def _resolve_base(
        base: str,
        record: DocumentRecord,
        by_longname: Mapping[str, DocumentRecord],
        by_name: Mapping[str, List[str]],
    ) -> str:
        local = f"{record['memberof']}.{base}"
        if local in by_longname:
            return local
        if base in by_longname:
            return base
        candidates = by_name.get(base.rsplit(".", 1)[-1], [])
        return candidates[0] if len(candidates) == 1 else base


class PythonRuntime:
    """Runtime plugin bundling the parser and resolver.

    Its builtin externals live in the `tjsdoc_virtual` companion module and
    are registered when `builtin_virtual` is enabled.
    """

    name = "python"

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.parser = PythonDocParser(options)
        self.resolver = PythonDocResolver()


def create_plugin(options: Optional[Mapping[str, Any]] = None) -> PythonRuntime:
    return PythonRuntime(options)


__all__ = [
    "BUILTIN_EXTERNALS",
    "PythonDocParser",
    "PythonDocResolver",
    "PythonRuntime",
    "create_plugin",
    "module_name",
]
