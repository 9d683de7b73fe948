"""dbcparser/pipeline.py – one-call entry point: bytes → (Dbc, diagnostics).

Runs tokenizer → parser → validator → assembler over one shared
``DiagnosticCollector``.  Nothing raises for bad input; the caller inspects
:class:`ParseResult` (or calls :meth:`ParseResult.raise_for_errors`) and
decides whether warnings are acceptable.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from dbcparser.assembler import assemble
from dbcparser.config import ParserConfig
from dbcparser.errors import (
    Diagnostic,
    DiagnosticCollector,
    DbcValidationError,
    Severity,
    render_diagnostics,
)
from dbcparser.lexer import tokenize
from dbcparser.model import Dbc
from dbcparser.parser import parse
from dbcparser.semantic import validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one :func:`parse_dbc` call.

    ``fatal`` is True only for empty input and for a string literal left
    open at end of input; ``dbc`` is then empty.
    """

    dbc: Dbc
    diagnostics: Tuple[Diagnostic, ...]
    fatal: bool = False
    filename: str = "<input>"
    source: Optional[bytes] = None

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    @property
    def ok(self) -> bool:
        """True when no ``Error`` was reported."""
        return not self.errors

    def format_diagnostics(self, *, format: str = "gcc") -> str:
        """
        Format all diagnostics as a string.

        Args:
            format: Output format - "gcc" for GCC-style, "json" for JSON
        """
        return render_diagnostics(
            self.diagnostics, filename=self.filename, source=self.source, format=format
        )

    def raise_for_errors(self) -> None:
        if self.errors:
            raise DbcValidationError(self.diagnostics, self.filename)


def parse_dbc(
    data: Union[bytes, str],
    config: Optional[ParserConfig] = None,
) -> ParseResult:
    """Parse, validate and assemble one DBC file held in memory."""
    config = config or ParserConfig()
    if isinstance(data, str):
        data = data.encode("utf-8")

    collector = DiagnosticCollector(warnings_as_errors=config.warnings_as_errors)

    t0 = time.perf_counter()
    file = parse(tokenize(data, collector), collector)
    t1 = time.perf_counter()
    logger.debug("%s: tokenize+parse %.2f ms", config.filename, (t1 - t0) * 1e3)

    if collector.fatal:
        logger.debug("%s: fatal diagnostic, returning empty model", config.filename)
        return ParseResult(Dbc.empty(), collector.diagnostics, True, config.filename, data)

    verdict = validate(file, collector, config)
    t2 = time.perf_counter()
    dbc = assemble(file, verdict, config)
    t3 = time.perf_counter()
    logger.debug(
        "%s: validate %.2f ms, assemble %.2f ms, %d diagnostic(s)",
        config.filename, (t2 - t1) * 1e3, (t3 - t2) * 1e3, len(collector),
    )
    return ParseResult(dbc, collector.diagnostics, False, config.filename, data)


def parse_dbc_file(
    path: Union[str, Path],
    config: Optional[ParserConfig] = None,
) -> ParseResult:
    """Read *path* and parse it; the filename is used in rendered diagnostics."""
    path = Path(path)
    config = config or ParserConfig(filename=str(path))
    return parse_dbc(path.read_bytes(), config)
