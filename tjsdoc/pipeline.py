"""Per-file parse dispatch feeding the document database."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence

from .collaborators import Parser
from .docdb import DocDatabase
from .errors import FileParseError
from .hooks import HandleVirtualContext, HookDispatcher, HookPoint
from .logging import get_logger
from .models import AstEntry, DocumentRecord, FileCandidate, OnParseError, ParseResult
from .package import PackageMetadata

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .config import RunConfig


class GenerationPipeline:
    """Parses main sources, test sources and virtual code, in that order.

    Records are appended to the database as soon as each file is parsed, so
    insertion order follows the candidate lists.
    """

    def __init__(
        self,
        parser: Parser,
        database: DocDatabase,
        hooks: HookDispatcher,
        dir_path: Path,
        package: Optional[PackageMetadata] = None,
    ) -> None:
        self.parser = parser
        self.database = database
        self.hooks = hooks
        self.dir_path = Path(dir_path)
        self.package = package or PackageMetadata()
        self.ast_data: List[AstEntry] = []
        self.failures: List[FileParseError] = []
        self.logger = get_logger("pipeline")

    async def run(
        self,
        config: "RunConfig",
        sources: Sequence[FileCandidate],
        tests: Sequence[FileCandidate] = (),
        *,
        on_error: OnParseError = OnParseError.LOG_AND_SKIP,
    ) -> List[DocumentRecord]:
        """Run one pass and return the records it added, in insertion order."""
        self.ast_data.clear()
        self.failures.clear()
        added: List[DocumentRecord] = []

        for candidate in sources:
            result = self.parse_file(candidate, on_error=on_error)
            if result is not None:
                added.extend(self._store(result, candidate.relative_path))

        if config.test is not None:
            for candidate in tests:
                result = self.parse_file(candidate, on_error=on_error, test_type=config.test.type)
                if result is not None:
                    added.extend(self._store(result, f"test/{candidate.relative_path}"))

        context = await self.hooks.invoke(HookPoint.ON_HANDLE_VIRTUAL, HandleVirtualContext(config=config))
        for index, code in enumerate(context.code or []):
            result = self.parse_code(code, index=index, on_error=on_error)
            if result is None:
                continue
            for record in result.records:
                record.builtin_virtual = True
            added.extend(self._store(result, None))

        self.logger.debug("Pipeline added %d records (%d failures)", len(added), len(self.failures))
        return added

    def parse_file(
        self,
        candidate: FileCandidate,
        *,
        on_error: OnParseError = OnParseError.LOG_AND_SKIP,
        test_type: Optional[str] = None,
    ) -> Optional[ParseResult]:
        """Parse one file; failures are logged and skipped or raised according to `on_error`.

        The parser is always asked to raise so every failure reaches
        `_handle_failure` and is recorded on `failures` under `LOG_AND_SKIP`.
        """
        self.logger.info("parse: %s", candidate.path)
        try:
            if test_type is not None:
                return self.parser.parse_test(test_type, str(self.dir_path), candidate.path)
            return self.parser.parse_file(
                str(self.dir_path),
                candidate.path,
                self.package.name,
                self.package.main,
                True,
            )
        except FileParseError as exc:
            return self._handle_failure(exc, on_error)
        except Exception as exc:
            error = FileParseError(candidate.path, f"Failed to parse {candidate.path}: {exc}")
            error.__cause__ = exc
            return self._handle_failure(error, on_error)

    def parse_code(
        self,
        code: str,
        *,
        index: int = 0,
        on_error: OnParseError = OnParseError.LOG_AND_SKIP,
    ) -> Optional[ParseResult]:
        try:
            return self.parser.parse_code(str(self.dir_path), code)
        except FileParseError as exc:
            return self._handle_failure(exc, on_error)
        except Exception as exc:
            label = f"<virtual:{index}>"
            error = FileParseError(label, f"Failed to parse {label}: {exc}")
            error.__cause__ = exc
            return self._handle_failure(error, on_error)

    def _store(self, result: ParseResult, ast_path: Optional[str]) -> List[DocumentRecord]:
        records = list(result.records)
        self.database.extend(records)
        if ast_path is not None:
            self.ast_data.append(AstEntry(file_path=ast_path, ast=result.ast))
        return records

    def _handle_failure(self, error: FileParseError, on_error: OnParseError) -> None:
        if on_error is OnParseError.PROPAGATE:
            raise error
        self.failures.append(error)
        self.logger.warning("%s", error)
        return None


__all__ = ["GenerationPipeline"]
