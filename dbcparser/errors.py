# dbcparser/errors.py
"""
DBC Diagnostic Model and Error Types

This module provides the diagnostic infrastructure shared by every stage of
the DBC analysis pipeline (tokenizer, parser, validator, assembler).  All
stages report problems as *values* into a single ``DiagnosticCollector``;
exceptions are only used internally to unwind a single declaration.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Diagnostic Categories                               │
├─────────────────────────────────────────────────────────────────────────────┤
│  LEX_ERROR          - malformed token (bad numeral, stray control byte)      │
│  SYNTAX_ERROR       - grammar violation inside one declaration               │
│  SYNTAX_WARNING     - tolerated irregularity (missing ';', unknown section)  │
│  SEMANTIC_ERROR     - validator rule violation, entity excluded              │
│  SEMANTIC_WARNING   - validator rule violation, entity retained              │
│  FATAL_ERROR        - empty input / unterminated construct at end of input   │
└─────────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each diagnostic carries a code following the pattern DBC-XXXX where XXXX is
a 4-digit number in ranges:
  - 0001-0999: Lexical errors
  - 1000-1999: Syntax errors and warnings
  - 2000-2999: Semantic errors
  - 3000-3999: Semantic warnings
  - 9000-9999: Fatal errors

Example Usage:
──────────────
    from dbcparser.errors import Codes, DiagnosticCollector, Span

    collector = DiagnosticCollector()
    collector.report(
        Codes.DUPLICATE_MESSAGE_ID,
        "message id 256 is already used by 'ENGINE'",
        span=Span(4, 1, 4, 22),
    )
    if collector.has_errors():
        print(collector.format(filename="vehicle.dbc"))
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum, unique
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE SPANS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Span:
    """
    A range of the input, attached to every token, AST node and diagnostic.

    Lines and columns are 1-based.  Columns count bytes of the logical line
    (the CR of a CRLF pair is never counted).  ``start_offset`` and
    ``end_offset`` index the raw input bytes, end exclusive.
    """

    start_line: int = 0
    start_col: int = 0
    end_line: int = 0
    end_col: int = 0
    start_offset: int = 0
    end_offset: int = 0

    @property
    def byte_range(self) -> Tuple[int, int]:
        return (self.start_offset, self.end_offset)

    @classmethod
    def merge(cls, *spans: "Span") -> "Span":
        """Return the smallest span covering all of *spans*."""
        if not spans:
            return cls()
        first = min(spans, key=lambda s: s.start_offset)
        last = max(spans, key=lambda s: s.end_offset)
        return cls(
            start_line=first.start_line,
            start_col=first.start_col,
            end_line=last.end_line,
            end_col=last.end_col,
            start_offset=first.start_offset,
            end_offset=last.end_offset,
        )

    def __str__(self) -> str:
        if self.start_line == 0:
            return "<unknown location>"
        return f"{self.start_line}:{self.start_col}"

    def to_range_string(self) -> str:
        """Get a string representation showing the full range."""
        start = str(self)
        if (self.end_line, self.end_col) > (self.start_line, self.start_col):
            return f"{start}-{self.end_line}:{self.end_col}"
        return start


#: Sentinel for diagnostics that do not point into the input.
NO_SPAN = Span()


# ═══════════════════════════════════════════════════════════════════════════════
# SEVERITY AND CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class Severity(Enum):
    """Severity of a diagnostic.  Only errors make a parse unusable."""

    ERROR = "error"
    WARNING = "warning"

    def is_error(self) -> bool:
        return self is Severity.ERROR


@unique
class Category(Enum):
    """Which stage produced a diagnostic and how it was handled."""

    LEX_ERROR = "lex-error"
    SYNTAX_ERROR = "syntax-error"
    SYNTAX_WARNING = "syntax-warning"
    SEMANTIC_ERROR = "semantic-error"
    SEMANTIC_WARNING = "semantic-warning"
    FATAL_ERROR = "fatal-error"


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorCode:
    """
    Structured diagnostic code.

    ``slug`` is the short kebab-case identifier used in rendered output
    (``[duplicate-message-id]``); ``code`` is the stable numeric form.
    """

    __slots__ = ("number", "slug", "category", "default_severity")

    def __init__(
        self,
        number: int,
        slug: str,
        category: Category,
        default_severity: Severity = Severity.ERROR,
    ) -> None:
        self.number = number
        self.slug = slug
        self.category = category
        self.default_severity = default_severity

    @property
    def code(self) -> str:
        return f"DBC-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.slug!r})"

    def __hash__(self) -> int:
        return hash(self.number)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.number == other.number
        if isinstance(other, str):
            return other in (self.code, self.slug)
        return False


_W = Severity.WARNING


class Codes:
    """Predefined diagnostic codes for DBC input."""

    # ═══════════════════════════════════════════════════════════════════════════
    # LEXICAL ERRORS (0001-0999)
    # ═══════════════════════════════════════════════════════════════════════════

    INVALID_CHARACTER = ErrorCode(1, "invalid-character", Category.LEX_ERROR)
    UNTERMINATED_STRING = ErrorCode(2, "unterminated-string", Category.LEX_ERROR)
    INVALID_NUMBER = ErrorCode(3, "invalid-number", Category.LEX_ERROR)

    # ═══════════════════════════════════════════════════════════════════════════
    # SYNTAX ERRORS AND WARNINGS (1000-1999)
    # ═══════════════════════════════════════════════════════════════════════════

    UNEXPECTED_TOKEN = ErrorCode(1000, "unexpected-token", Category.SYNTAX_ERROR)
    MISSING_TOKEN = ErrorCode(1001, "missing-token", Category.SYNTAX_ERROR)
    ORPHAN_SIGNAL = ErrorCode(1002, "orphan-signal", Category.SYNTAX_ERROR)
    INVALID_VALUE = ErrorCode(1003, "invalid-value", Category.SYNTAX_ERROR)
    UNKNOWN_SECTION = ErrorCode(
        1500, "unknown-section", Category.SYNTAX_WARNING, _W
    )
    MISSING_TERMINATOR = ErrorCode(
        1501, "missing-terminator", Category.SYNTAX_WARNING, _W
    )
    DUPLICATE_DEFINITION = ErrorCode(
        1502, "duplicate-definition", Category.SYNTAX_WARNING, _W
    )
    UNSUPPORTED_FEATURE = ErrorCode(
        1503, "unsupported-feature", Category.SYNTAX_WARNING, _W
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # SEMANTIC ERRORS (2000-2999) - offending entity is excluded
    # ═══════════════════════════════════════════════════════════════════════════

    DUPLICATE_MESSAGE_ID = ErrorCode(
        2000, "duplicate-message-id", Category.SEMANTIC_ERROR
    )
    DUPLICATE_MESSAGE_NAME = ErrorCode(
        2001, "duplicate-message-name", Category.SEMANTIC_ERROR
    )
    DUPLICATE_SIGNAL_NAME = ErrorCode(
        2002, "duplicate-signal-name", Category.SEMANTIC_ERROR
    )
    INVALID_CAN_ID = ErrorCode(2003, "invalid-can-id", Category.SEMANTIC_ERROR)
    INVALID_DLC = ErrorCode(2004, "invalid-dlc", Category.SEMANTIC_ERROR)
    INVALID_BIT_RANGE = ErrorCode(
        2005, "invalid-bit-range", Category.SEMANTIC_ERROR
    )
    INVALID_SIGNAL_LENGTH = ErrorCode(
        2006, "invalid-signal-length", Category.SEMANTIC_ERROR
    )
    OVERLAPPING_SIGNALS = ErrorCode(
        2007, "overlapping-signals", Category.SEMANTIC_ERROR
    )
    MULTIPLE_MULTIPLEXERS = ErrorCode(
        2008, "multiple-multiplexers", Category.SEMANTIC_ERROR
    )
    MISSING_MULTIPLEXER = ErrorCode(
        2009, "missing-multiplexer", Category.SEMANTIC_ERROR
    )
    INVALID_BYTE_ORDER = ErrorCode(
        2010, "invalid-byte-order", Category.SEMANTIC_ERROR
    )
    NON_FINITE_VALUE = ErrorCode(2011, "non-finite-value", Category.SEMANTIC_ERROR)
    EMPTY_ENUM_ATTRIBUTE = ErrorCode(
        2012, "empty-enum-attribute", Category.SEMANTIC_ERROR
    )
    INVALID_VALUE_TYPE = ErrorCode(
        2013, "invalid-value-type", Category.SEMANTIC_ERROR
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # SEMANTIC WARNINGS (3000-3999) - entity is retained
    # ═══════════════════════════════════════════════════════════════════════════

    UNDEFINED_NODE = ErrorCode(3000, "undefined-node", Category.SEMANTIC_WARNING, _W)
    UNDEFINED_ATTRIBUTE = ErrorCode(
        3001, "undefined-attribute", Category.SEMANTIC_WARNING, _W
    )
    ATTRIBUTE_TYPE_MISMATCH = ErrorCode(
        3002, "attribute-type-mismatch", Category.SEMANTIC_WARNING, _W
    )
    ATTRIBUTE_OUT_OF_RANGE = ErrorCode(
        3003, "attribute-out-of-range", Category.SEMANTIC_WARNING, _W
    )
    ATTRIBUTE_OBJECT_MISMATCH = ErrorCode(
        3004, "attribute-object-mismatch", Category.SEMANTIC_WARNING, _W
    )
    INVERTED_RANGE = ErrorCode(3005, "inverted-range", Category.SEMANTIC_WARNING, _W)
    UNKNOWN_MESSAGE = ErrorCode(
        3006, "unknown-message", Category.SEMANTIC_WARNING, _W
    )
    UNKNOWN_SIGNAL = ErrorCode(3007, "unknown-signal", Category.SEMANTIC_WARNING, _W)
    DUPLICATE_NODE = ErrorCode(3008, "duplicate-node", Category.SEMANTIC_WARNING, _W)
    VALUE_TYPE_LENGTH_MISMATCH = ErrorCode(
        3009, "value-type-length-mismatch", Category.SEMANTIC_WARNING, _W
    )
    UNKNOWN_ENV_VAR = ErrorCode(
        3010, "unknown-env-var", Category.SEMANTIC_WARNING, _W
    )

    # ═══════════════════════════════════════════════════════════════════════════
    # FATAL ERRORS (9000-9999)
    # ═══════════════════════════════════════════════════════════════════════════

    EMPTY_INPUT = ErrorCode(9000, "empty-input", Category.FATAL_ERROR)
    UNTERMINATED_AT_EOF = ErrorCode(
        9001, "unterminated-at-eof", Category.FATAL_ERROR
    )


# ═══════════════════════════════════════════════════════════════════════════════
# DIAGNOSTICS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class DiagnosticNote:
    """
    Additional context attached to a diagnostic, such as the location of a
    superseded or conflicting definition.
    """

    message: str
    span: Optional[Span] = None

    def __str__(self) -> str:
        if self.span is not None and self.span.start_line:
            return f"{self.span}: note: {self.message}"
        return f"note: {self.message}"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """
    One reported problem.  Immutable once emitted.

    Attributes:
        code: Structured code (``DBC-2007`` / ``overlapping-signals``)
        message: Human-readable description of the issue
        severity: ``ERROR`` or ``WARNING``
        span: Where in the input the problem is
        notes: Secondary locations providing context
    """

    code: ErrorCode
    message: str
    severity: Severity
    span: Span = NO_SPAN
    notes: Tuple[DiagnosticNote, ...] = ()

    @property
    def category(self) -> Category:
        return self.code.category

    @property
    def error_id(self) -> str:
        return self.code.slug

    def to_gcc_format(self, filename: str = "", source_line: str = "") -> str:
        """Format as a GCC-style diagnostic, optionally with a caret line."""
        loc = str(self.span)
        if filename:
            loc = f"{filename}:{loc}" if self.span.start_line else filename
        lines = [f"{loc}: {self.severity.value}: {self.message} [{self.code.slug}]"]

        if source_line:
            lines.append(f"    {source_line}")
            if self.span.start_col > 0:
                caret_pos = self.span.start_col - 1
                if self.span.end_line == self.span.start_line:
                    caret_len = max(1, self.span.end_col - self.span.start_col)
                else:
                    caret_len = max(1, len(source_line) - caret_pos)
                lines.append(f"    {' ' * caret_pos}{'^' * caret_len}")

        for note in self.notes:
            lines.append(str(note))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code.code,
            "errorId": self.code.slug,
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "location": {
                "line": self.span.start_line,
                "column": self.span.start_col,
                "end_line": self.span.end_line,
                "end_column": self.span.end_col,
                "offset": list(self.span.byte_range),
            },
            "notes": [
                {
                    "message": note.message,
                    "line": note.span.start_line if note.span else None,
                    "column": note.span.start_col if note.span else None,
                }
                for note in self.notes
            ],
        }

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═══════════════════════════════════════════════════════════════════════════════
# DIAGNOSTIC COLLECTOR
# ═══════════════════════════════════════════════════════════════════════════════

class DiagnosticCollector:
    """
    Accumulates diagnostics for one parse call, in emission order.

    The collector is threaded through every stage and never discarded
    mid-pipeline.  With ``warnings_as_errors`` set, warnings are recorded
    with ``ERROR`` severity; the handling of the entity itself is unchanged.
    """

    def __init__(self, *, warnings_as_errors: bool = False) -> None:
        self._diagnostics: List[Diagnostic] = []
        self._warnings_as_errors = warnings_as_errors

    def report(
        self,
        code: ErrorCode,
        message: str,
        span: Span = NO_SPAN,
        *,
        severity: Optional[Severity] = None,
        notes: Sequence[DiagnosticNote] = (),
    ) -> Diagnostic:
        """Record a diagnostic and return it."""
        severity = severity or code.default_severity
        if self._warnings_as_errors and severity is Severity.WARNING:
            severity = Severity.ERROR
        diag = Diagnostic(
            code=code,
            message=message,
            severity=severity,
            span=span,
            notes=tuple(notes),
        )
        self._diagnostics.append(diag)
        return diag

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        self._diagnostics.extend(diagnostics)

    @property
    def diagnostics(self) -> Tuple[Diagnostic, ...]:
        """Get all collected diagnostics."""
        return tuple(self._diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.severity is Severity.WARNING]

    @property
    def fatal(self) -> bool:
        """True once an unrecoverable diagnostic has been reported."""
        return any(d.category is Category.FATAL_ERROR for d in self._diagnostics)

    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self._diagnostics)

    def error_count(self) -> int:
        return sum(1 for d in self._diagnostics if d.severity is Severity.ERROR)

    def format(self, *, filename: str = "", source: Optional[bytes] = None) -> str:
        return render_diagnostics(self._diagnostics, filename=filename, source=source)

    def __len__(self) -> int:
        return len(self._diagnostics)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._diagnostics))


# ═══════════════════════════════════════════════════════════════════════════════
# RENDERING
# ═══════════════════════════════════════════════════════════════════════════════

_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


def source_lines(source: bytes) -> List[str]:
    """Split raw input into logical lines, decoding non-UTF-8 bytes leniently."""
    return [
        line.decode("utf-8", errors="replace").expandtabs(1)
        for line in _LINE_BREAK.split(source)
    ]


def render_diagnostics(
    diagnostics: Iterable[Diagnostic],
    *,
    filename: str = "",
    source: Optional[bytes] = None,
    format: str = "gcc",
) -> str:
    """
    Format diagnostics as text.

    Args:
        diagnostics: Diagnostics in emission order
        filename: Prefix for every location
        source: Raw input; when given, GCC output quotes the offending line
        format: "gcc" for GCC-style, "json" for JSON
    """
    if format == "json":
        return json.dumps([d.to_dict() for d in diagnostics], indent=2)

    lines = source_lines(source) if source is not None else []
    out = []
    for diag in diagnostics:
        line_no = diag.span.start_line
        quoted = lines[line_no - 1] if 0 < line_no <= len(lines) else ""
        out.append(diag.to_gcc_format(filename, quoted))
    return "\n".join(out)


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class DbcError(Exception):
    """Base exception for all dbcparser errors."""


class ParseError(DbcError):
    """
    Raised inside the parser to abandon the current declaration.

    Never escapes :func:`dbcparser.parser.parse`; the parser turns it into a
    diagnostic (unless ``reported`` is set because the tokenizer already
    emitted one for the offending token) and resumes at the next line.
    """

    def __init__(
        self,
        message: str,
        span: Span = NO_SPAN,
        code: ErrorCode = Codes.UNEXPECTED_TOKEN,
        *,
        reported: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.span = span
        self.code = code
        self.reported = reported


class DbcConfigError(DbcError):
    """Raised for an invalid :class:`~dbcparser.config.ParserConfig` mapping."""


class DbcValidationError(DbcError):
    """
    Raised by :meth:`ParseResult.raise_for_errors` when a parse produced
    ``ERROR`` diagnostics.  Carries every diagnostic of the run.
    """

    def __init__(self, diagnostics: Sequence[Diagnostic], filename: str = "") -> None:
        self.diagnostics = tuple(diagnostics)
        errors = [d for d in self.diagnostics if d.severity is Severity.ERROR]
        summary = f"{len(errors)} error(s) in {filename or 'DBC input'}"
        detail = "\n".join(d.to_gcc_format(filename) for d in errors)
        super().__init__(f"{summary}\n{detail}" if detail else summary)

