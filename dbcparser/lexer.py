"""dbcparser/lexer.py – raw DBC bytes → lazy stream of span-tagged tokens.

The tokenizer owns no knowledge of DBC sections beyond the keyword list;
it is deliberately forgiving because real DBC files are produced by many
tools with differing ideas of the format.

Design principles
-----------------
* **Byte level** – scanning happens on ``bytes`` so spans carry exact byte
  offsets and non-ASCII content inside strings and comments passes through
  untouched (string values are decoded with ``surrogateescape`` so the
  original bytes can always be recovered).
* **Logical lines** – CRLF, LF and lone CR all end a line; a ``NEWLINE``
  token is emitted for every line break because the grammar is line
  oriented.  ``//`` comments run to the end of the line and are skipped.
* **Never stop** – malformed numerals, unterminated strings and illegal
  bytes produce a diagnostic plus an ``ERROR`` token and scanning continues
  on the same or the next line.  The only exception is a string that is
  still open when the input ends and has no later line to resume at.
* **Lazy** – :func:`tokenize` is a generator; diagnostics are emitted as
  tokens are pulled, so emission order follows input order.

Numerals are classified with a small PEG grammar (``NUMERAL_GRAMMAR``).
"""

from __future__ import annotations

import enum
import functools
import logging
import re
from dataclasses import dataclass
from typing import Any, Final, FrozenSet, Iterator, Optional, Union

from parsimonious.exceptions import ParseError as GrammarParseError
from parsimonious.grammar import Grammar

from dbcparser.errors import Codes, DiagnosticCollector, Span

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
#  Tokens
# ═══════════════════════════════════════════════════════════════════════

class TokenKind(enum.Enum):
    KEYWORD = "keyword"
    IDENTIFIER = "identifier"
    INT_LITERAL = "int"
    FLOAT_LITERAL = "float"
    STRING_LITERAL = "string"
    PUNCT = "punct"
    NEWLINE = "newline"
    EOF = "eof"
    ERROR = "error"


#: Section keywords the grammar models.
SECTION_KEYWORDS: Final[FrozenSet[str]] = frozenset({
    "VERSION", "NS_", "BS_", "BU_", "BO_", "SG_", "CM_",
    "BA_DEF_", "BA_DEF_DEF_", "BA_", "VAL_", "VAL_TABLE_", "EV_",
    "BO_TX_BU_", "SIG_VALTYPE_", "SIG_GROUP_",
})

#: Keywords DBC tools emit that this package recognises but does not model.
UNMODELLED_KEYWORDS: Final[FrozenSet[str]] = frozenset({
    "NS_DESC_", "CAT_DEF_", "CAT_", "FILTER", "EV_DATA_", "ENVVAR_DATA_",
    "SGTYPE_", "SGTYPE_VAL_", "BA_DEF_SGTYPE_", "BA_SGTYPE_",
    "SIG_TYPE_REF_", "SIG_VALTYPE_REF_", "BA_DEF_REL_", "BA_REL_",
    "BA_DEF_DEF_REL_", "BU_SG_REL_", "BU_EV_REL_", "BU_BO_REL_",
    "SG_MUL_VAL_",
})

KEYWORDS: Final[FrozenSet[str]] = SECTION_KEYWORDS | UNMODELLED_KEYWORDS

PUNCTUATION: Final[bytes] = b":;,|@+-()[]"


@dataclass(frozen=True, slots=True)
class Token:
    """One lexical token.

    ``text`` is the token as written (decoded); ``value`` is the decoded
    payload: ``int`` / ``float`` for numerals, the unescaped string for
    string literals, the keyword or identifier text otherwise.
    """

    kind: TokenKind
    text: str
    span: Span
    value: Any = None

    def is_punct(self, ch: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.text == ch

    def is_keyword(self, name: Optional[str] = None) -> bool:
        return self.kind is TokenKind.KEYWORD and (name is None or self.text == name)

    @property
    def at_line_end(self) -> bool:
        return self.kind in (TokenKind.NEWLINE, TokenKind.EOF)

    def describe(self) -> str:
        """Short human-readable form for diagnostics."""
        if self.kind is TokenKind.NEWLINE:
            return "end of line"
        if self.kind is TokenKind.EOF:
            return "end of input"
        if self.kind is TokenKind.STRING_LITERAL:
            return f"string {self.text}"
        return f"'{self.text}'"


# ═══════════════════════════════════════════════════════════════════════
#  Numeral grammar
# ═══════════════════════════════════════════════════════════════════════

NUMERAL_GRAMMAR = Grammar(r'''
    numeral   = float / integer
    float     = sign? digits (fraction exponent? / exponent)
    integer   = sign? digits
    fraction  = "." digits
    exponent  = ~"[eE]" sign? digits
    sign      = "-" / "+"
    digits    = ~"[0-9]+"
''')


@functools.lru_cache(maxsize=4096)
def classify_numeral(text: str) -> Optional[Union[int, float]]:
    """Return the value of a numeral, or ``None`` if it is malformed.

    Integers may be negative; a float needs a decimal point followed by at
    least one digit, or an exponent.
    """
    try:
        tree = NUMERAL_GRAMMAR.parse(text)
    except GrammarParseError:
        return None
    if tree.children[0].expr_name == "float":
        return float(text)
    return int(text)


# ═══════════════════════════════════════════════════════════════════════
#  Scanner
# ═══════════════════════════════════════════════════════════════════════

_IDENT = re.compile(rb"[A-Za-z_][A-Za-z0-9_]*")
# Everything that could belong to one numeral, so "1.2.3" or "12ab" is a
# single malformed token rather than several valid ones.
_NUMERAL_RUN = re.compile(rb"-?[0-9](?:[0-9A-Za-z_.]|(?<=[eE])[+-])*")
_BLANKS = b" \t\x0b\x0c"
_INVALID_RUN = re.compile(rb"[\x00-\x08\x0e-\x1f\x7f-\xff]+")
_ESCAPE = re.compile(rb'\\(["\\])')
_EOL = re.compile(rb"[\r\n]")


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


class Lexer:
    """Stateful scanner over one input buffer.

    Iterating a ``Lexer`` runs the scan; a second iteration starts again
    from the beginning and re-emits its diagnostics.
    """

    def __init__(self, data: bytes, diagnostics: DiagnosticCollector) -> None:
        self._data = data
        self._diagnostics = diagnostics

    def __iter__(self) -> Iterator[Token]:
        return self._scan()

    # -- position bookkeeping -------------------------------------------

    def _span(self, start: int, end: int, line: int, line_start: int) -> Span:
        return Span(
            start_line=line,
            start_col=start - line_start + 1,
            end_line=line,
            end_col=end - line_start + 1,
            start_offset=start,
            end_offset=end,
        )

    # -- main loop ---------------------------------------------------------

    def _scan(self) -> Iterator[Token]:
        data = self._data
        n = len(data)
        pos = 0
        line = 1
        line_start = 0
        count = 0

        while pos < n:
            b = data[pos]

            if b in _BLANKS:
                pos += 1
                continue

            if b in (0x0A, 0x0D):  # \n, \r
                end = pos + 2 if data[pos:pos + 2] == b"\r\n" else pos + 1
                yield Token(
                    TokenKind.NEWLINE, "\n", self._span(pos, pos, line, line_start)
                )
                count += 1
                pos = end
                line += 1
                line_start = end
                continue

            if data.startswith(b"//", pos):
                eol = self._line_end(pos)
                pos = eol
                continue

            if b == 0x22:  # "
                result = self._scan_string(pos, line, line_start)
                if result is None:
                    # fatal: reported, nothing left to resume at
                    yield Token(TokenKind.EOF, "", self._span(n, n, line, line_start))
                    return
                token, pos, line, line_start = result
                yield token
                count += 1
                continue

            m = _NUMERAL_RUN.match(data, pos)
            if m is not None:
                yield self._numeral(m.group(), pos, m.end(), line, line_start)
                count += 1
                pos = m.end()
                continue

            m = _IDENT.match(data, pos)
            if m is not None:
                text = m.group().decode("ascii")
                kind = TokenKind.KEYWORD if text in KEYWORDS else TokenKind.IDENTIFIER
                yield Token(kind, text, self._span(pos, m.end(), line, line_start), text)
                count += 1
                pos = m.end()
                continue

            m = _INVALID_RUN.match(data, pos)
            if m is not None:
                span = self._span(pos, m.end(), line, line_start)
                self._diagnostics.report(
                    Codes.INVALID_CHARACTER,
                    f"illegal byte(s) {m.group()!r} outside a string literal",
                    span,
                )
                yield Token(TokenKind.ERROR, _decode(m.group()), span)
                count += 1
                pos = m.end()
                continue

            # Any other printable ASCII is punctuation; the parser decides
            # whether it is admissible.
            ch = chr(b)
            yield Token(TokenKind.PUNCT, ch, self._span(pos, pos + 1, line, line_start), ch)
            count += 1
            pos += 1

        yield Token(TokenKind.EOF, "", self._span(n, n, line, line_start))
        logger.debug("tokenized %d bytes into %d tokens over %d lines", n, count, line)

    # -- helpers ------------------------------------------------------------

    def _line_end(self, pos: int) -> int:
        """Offset of the next line break at or after *pos* (or end of input)."""
        m = _EOL.search(self._data, pos)
        return m.start() if m else len(self._data)

    def _numeral(
        self, raw: bytes, start: int, end: int, line: int, line_start: int
    ) -> Token:
        text = raw.decode("ascii", errors="replace")
        span = self._span(start, end, line, line_start)
        value = classify_numeral(text)
        if value is None:
            self._diagnostics.report(
                Codes.INVALID_NUMBER, f"malformed numeric literal '{text}'", span
            )
            return Token(TokenKind.ERROR, text, span)
        kind = TokenKind.FLOAT_LITERAL if isinstance(value, float) else TokenKind.INT_LITERAL
        return Token(kind, text, span, value)

    def _scan_string(self, start: int, line: int, line_start: int):
        """Scan a string literal starting at the opening quote.

        Returns ``(token, new_pos, new_line, new_line_start)``, or ``None``
        when the string is unterminated with no later line to resume at.

        A string may run over several lines, but a line starting with a DBC
        keyword ends it: the string is then unterminated on its first line.
        """
        data = self._data
        n = len(data)
        i = start + 1
        while i < n:
            c = data[i]
            if c == 0x5C and i + 1 < n:  # backslash escape
                i += 2
                continue
            if c == 0x22:
                break
            if c in (0x0A, 0x0D) and self._opens_declaration(i):
                return self._unterminated(start, line, line_start)
            i += 1
        else:
            return self._unterminated(start, line, line_start)

        end = i + 1
        raw = data[start + 1:i]
        value = _decode(_ESCAPE.sub(rb"\1", raw))

        # strings may span lines; keep line/column bookkeeping exact
        breaks = list(re.finditer(rb"\r\n|\r|\n", raw))
        if breaks:
            end_line = line + len(breaks)
            end_line_start = start + 1 + breaks[-1].end()
        else:
            end_line, end_line_start = line, line_start

        span = Span(
            start_line=line,
            start_col=start - line_start + 1,
            end_line=end_line,
            end_col=end - end_line_start + 1,
            start_offset=start,
            end_offset=end,
        )
        token = Token(TokenKind.STRING_LITERAL, _decode(data[start:end]), span, value)
        return token, end, end_line, end_line_start

    def _opens_declaration(self, pos: int) -> bool:
        """True when the line after the break at *pos* starts with a keyword."""
        data = self._data
        pos += 2 if data[pos:pos + 2] == b"\r\n" else 1
        while pos < len(data) and data[pos] in _BLANKS:
            pos += 1
        m = _IDENT.match(data, pos)
        return m is not None and m.group().decode("ascii") in KEYWORDS

    def _unterminated(self, start: int, line: int, line_start: int):
        eol = self._line_end(start)
        if eol >= len(self._data):
            span = self._span(start, eol, line, line_start)
            self._diagnostics.report(
                Codes.UNTERMINATED_AT_EOF,
                "string literal is still open at end of input",
                span,
            )
            return None

        span = self._span(start, eol, line, line_start)
        self._diagnostics.report(
            Codes.UNTERMINATED_STRING,
            "unterminated string literal; skipped to end of line",
            span,
        )
        token = Token(TokenKind.ERROR, _decode(self._data[start:eol]), span)
        return token, eol, line, line_start


def tokenize(data: bytes, diagnostics: DiagnosticCollector) -> Iterator[Token]:
    """Lazily tokenize *data*, reporting lexical problems into *diagnostics*."""
    return iter(Lexer(data, diagnostics))
