"""dbcparser/parser.py – token stream → DBC syntax tree.

Design principles
-----------------
* **Line oriented, recursive descent** – every declaration starts with a
  section keyword at the beginning of a logical line; the keyword is
  dispatched through ``_SECTION_DISPATCH`` (filled by ``@_register``) to a
  dedicated ``_parse_<section>`` method.
* **Syntax only** – anything grammatically admissible is accepted, however
  nonsensical (duplicate IDs, overlapping bits, unknown nodes).  Numeric
  fields keep their raw values so the validator can judge them.
* **Bounded blast radius** – a syntax error abandons the current
  declaration only: an ``Error`` diagnostic spanning the declaration up to
  the offending token is reported, and parsing resumes at the next line
  that begins with a section keyword.  A bad ``SG_`` line drops that
  signal, never its message.
* **Tolerant** – unknown or unmodelled sections are skipped with a
  ``Warning``; a missing ``;`` at end of line is accepted with a
  ``Warning``.
* **Last one wins** – re-defining a keyed entity (a ``BO_`` with the same
  ID, a second ``BU_`` section, ...) replaces the earlier declaration; the
  ``Warning`` points at the superseded span and carries a note at the new
  one.

Public API
----------
``parse(tokens, diagnostics) -> dbcparser.ast.DbcFile``
    Parse a token stream produced by :func:`dbcparser.lexer.tokenize`.

Grammar (informative)
---------------------
::

    VERSION "text"
    NS_ : <indented symbol lines>
    BS_ : [baudrate : btr1 , btr2]
    BU_ : node*
    BO_ id name : dlc transmitter
     SG_ name [M|mN] : start|length@order sign (scale,offset) [min|max] "unit" receivers
    BO_TX_BU_ id : node[,node]* ;
    CM_ [BU_ node | BO_ id | SG_ id signal | EV_ name] "text" ;
    BA_DEF_ [BU_|BO_|SG_|EV_] "name" INT|HEX|FLOAT min max | STRING | ENUM "a","b"* ;
    BA_DEF_DEF_ "name" value ;
    BA_ "name" [BU_ node | BO_ id | SG_ id signal | EV_ name] value ;
    VAL_TABLE_ name (value "label")* ;
    VAL_ id signal (value "label")* ;  |  VAL_ envvar (value "label")* ;
    EV_ name : type [min|max] "unit" initial id access node[,node]* ;
    SIG_VALTYPE_ id signal : type ;
    SIG_GROUP_ id name repetitions : signal* ;
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import (
    Callable,
    Deque,
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
)

from dbcparser import ast as A
from dbcparser.errors import (
    Codes,
    DiagnosticCollector,
    DiagnosticNote,
    ParseError,
    Span,
)
from dbcparser.lexer import Token, TokenKind

logger = logging.getLogger(__name__)

__all__ = ["parse", "Parser"]


# ═══════════════════════════════════════════════════════════════════════
#  Constants
# ═══════════════════════════════════════════════════════════════════════

_MUX_MARKER = re.compile(r"^(?:(M)|m(\d+)(M)?)$")

_NON_FINITE = {"nan": float("nan"), "inf": float("inf"), "infinity": float("inf")}

#: Message ID Vector tools use for the pseudo-message holding signals that
#: are not assigned to any frame.
INDEPENDENT_SIGNALS_ID = 0xC0000000

_OBJECT_KEYWORDS = {"BU_": A.ObjectKind.NODE, "BO_": A.ObjectKind.MESSAGE,
                    "SG_": A.ObjectKind.SIGNAL, "EV_": A.ObjectKind.ENV_VAR}


# ═══════════════════════════════════════════════════════════════════════
#  Dispatch registry
# ═══════════════════════════════════════════════════════════════════════

# Maps a section keyword to a ``Parser`` method.
# Populated by the ``@_register`` decorator below.
_SECTION_DISPATCH: Dict[str, Callable[..., None]] = {}


def _register(table: dict, tag: str):
    """Decorator: register a parser method under *tag* in *table*."""
    def deco(fn):
        table[tag] = fn
        return fn
    return deco


# ═══════════════════════════════════════════════════════════════════════
#  Token buffer
# ═══════════════════════════════════════════════════════════════════════

class _TokenBuffer:
    """Pulls tokens lazily from the tokenizer with arbitrary lookahead."""

    def __init__(self, tokens: Iterable[Token]) -> None:
        self._it: Iterator[Token] = iter(tokens)
        self._buf: Deque[Token] = deque()
        self._eof: Optional[Token] = None

    def peek(self, k: int = 0) -> Token:
        while len(self._buf) <= k:
            if self._eof is not None:
                return self._eof
            tok = next(self._it, None)
            if tok is None or tok.kind is TokenKind.EOF:
                self._eof = tok or Token(TokenKind.EOF, "", Span())
                return self._eof
            self._buf.append(tok)
        return self._buf[k]

    def next(self) -> Token:
        tok = self.peek()
        if self._buf:
            self._buf.popleft()
        return tok


@dataclass
class _PendingMessage:
    """A ``BO_`` header still collecting its ``SG_`` lines."""

    id: int
    name: str
    dlc: int
    transmitter: A.Ident
    span: Span
    signals: List[A.SignalDecl] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════
#  Parser
# ═══════════════════════════════════════════════════════════════════════

class Parser:
    """Recursive-descent parser over one token stream."""

    def __init__(self, tokens: Iterable[Token], diagnostics: DiagnosticCollector) -> None:
        self._ts = _TokenBuffer(tokens)
        self._diag = diagnostics
        self._decls: List[Optional[A.Declaration]] = []
        self._keys: Dict[Hashable, int] = {}
        self._pending: Optional[_PendingMessage] = None
        # why the last BO_ is not collecting signals: None, "discarded", "ignored"
        self._no_message_reason: Optional[str] = None
        self._recovering = False
        self._last: Optional[Token] = None

    # -- entry point ----------------------------------------------------

    def parse_file(self) -> A.DbcFile:
        first: Optional[Token] = None
        while True:
            tok = self._ts.peek()
            if tok.kind is TokenKind.EOF:
                break
            if tok.kind is TokenKind.NEWLINE:
                self._ts.next()
                continue
            if first is None:
                first = tok
            self._statement()
        self._close_message()

        eof = self._ts.peek()
        if first is None:
            if not self._diag.fatal:
                self._diag.report(
                    Codes.EMPTY_INPUT,
                    "input contains no DBC declarations",
                    eof.span,
                )
            return A.DbcFile((), eof.span)

        logger.debug(
            "parsed %d declaration(s)",
            sum(1 for d in self._decls if d is not None),
        )
        return A.DbcFile(tuple(self._decls), Span.merge(first.span, eof.span))

    # -- statement level ------------------------------------------------

    def _statement(self) -> None:
        start = self._ts.peek()

        if start.kind is not TokenKind.KEYWORD:
            if not self._recovering:
                if start.kind is TokenKind.IDENTIFIER:
                    self._diag.report(
                        Codes.UNKNOWN_SECTION,
                        f"unknown section '{start.text}' skipped",
                        start.span,
                    )
                elif start.kind is not TokenKind.ERROR:
                    self._diag.report(
                        Codes.UNEXPECTED_TOKEN,
                        f"expected a section keyword, found {start.describe()}",
                        start.span,
                    )
            self._recovering = True
            self._skip_line()
            return

        self._recovering = False
        if start.text == "SG_":
            self._signal_line(start)
            return

        self._close_message()
        handler = _SECTION_DISPATCH.get(start.text)
        if handler is None:
            self._diag.report(
                Codes.UNKNOWN_SECTION,
                f"section '{start.text}' is not supported and was skipped",
                start.span,
            )
            self._recovering = True
            self._skip_line()
            return

        try:
            self._ts.next()
            self._last = start
            handler(self, start)
        except ParseError as exc:
            self._fail(start, exc)

    def _fail(self, start: Token, exc: ParseError) -> None:
        # after a fatal lexical error the only thing left is EOF
        if not exc.reported and not self._diag.fatal:
            span = Span.merge(start.span, exc.span) if exc.span.start_line else start.span
            self._diag.report(exc.code, exc.message, span)
        logger.debug("discarded %s declaration at %s", start.text, start.span)
        self._recovering = True
        self._skip_line()

    def _skip_line(self) -> None:
        while not self._ts.peek().at_line_end:
            self._ts.next()
        if self._ts.peek().kind is TokenKind.NEWLINE:
            self._ts.next()

    def _emit(
        self,
        key: Optional[Hashable],
        decl: A.Declaration,
        what: str,
        *,
        in_place: bool = False,
    ) -> None:
        """Append *decl*, superseding an earlier declaration with the same key.

        With *in_place* the superseding declaration takes the earlier slot
        instead of being appended.
        """
        if key is not None:
            prev_index = self._keys.get(key)
            if prev_index is not None:
                prev = self._decls[prev_index]
                self._decls[prev_index] = None
                self._diag.report(
                    Codes.DUPLICATE_DEFINITION,
                    f"{what} is defined again at line {decl.span.start_line}; "
                    f"this earlier definition is superseded",
                    prev.span,
                    notes=(DiagnosticNote("superseding definition", decl.span),),
                )
                if in_place:
                    self._decls[prev_index] = decl
                    return
            self._keys[key] = len(self._decls)
        self._decls.append(decl)

    def _span_from(self, start: Token) -> Span:
        return Span.merge(start.span, self._last.span if self._last else start.span)

    # -- token helpers --------------------------------------------------

    def _advance(self) -> Token:
        tok = self._ts.next()
        self._last = tok
        return tok

    def _error(self, what: str, tok: Token) -> ParseError:
        if tok.kind is TokenKind.ERROR:
            return ParseError(f"malformed token '{tok.text}'", tok.span, reported=True)
        if tok.at_line_end:
            return ParseError(
                f"expected {what}, found {tok.describe()}", tok.span, Codes.MISSING_TOKEN
            )
        return ParseError(f"expected {what}, found {tok.describe()}", tok.span)

    def _expect(self, kind: TokenKind, what: str) -> Token:
        tok = self._ts.peek()
        if tok.kind is not kind:
            raise self._error(what, tok)
        return self._advance()

    def _expect_punct(self, ch: str) -> Token:
        tok = self._ts.peek()
        if not tok.is_punct(ch):
            raise self._error(f"'{ch}'", tok)
        return self._advance()

    def _accept_punct(self, ch: str) -> bool:
        if self._ts.peek().is_punct(ch):
            self._advance()
            return True
        return False

    def _expect_int(self, what: str) -> int:
        return self._expect(TokenKind.INT_LITERAL, what).value

    def _expect_ident(self, what: str) -> A.Ident:
        tok = self._expect(TokenKind.IDENTIFIER, what)
        return A.Ident(tok.text, tok.span)

    def _expect_string(self, what: str) -> str:
        return self._expect(TokenKind.STRING_LITERAL, what).value

    def _at_number(self) -> bool:
        tok = self._ts.peek()
        if tok.kind in (TokenKind.INT_LITERAL, TokenKind.FLOAT_LITERAL):
            return True
        if tok.kind is TokenKind.PUNCT and tok.text in "+-":
            tok = self._ts.peek(1)
        return tok.kind in (TokenKind.INT_LITERAL, TokenKind.FLOAT_LITERAL) or (
            tok.kind is TokenKind.IDENTIFIER and tok.text.lower() in _NON_FINITE
        )

    def _expect_number(self, what: str) -> A.Number:
        """An int or float; ``NaN`` / ``inf`` spellings are let through."""
        sign = 1
        tok = self._ts.peek()
        if tok.kind is TokenKind.PUNCT and tok.text in "+-":
            self._advance()
            sign = -1 if tok.text == "-" else 1
            tok = self._ts.peek()
        if tok.kind in (TokenKind.INT_LITERAL, TokenKind.FLOAT_LITERAL):
            return sign * self._advance().value
        if tok.kind is TokenKind.IDENTIFIER and tok.text.lower() in _NON_FINITE:
            self._advance()
            return sign * _NON_FINITE[tok.text.lower()]
        raise self._error(what, tok)

    def _expect_line_end(self, what: str) -> None:
        tok = self._ts.peek()
        if not tok.at_line_end:
            raise ParseError(
                f"unexpected {tok.describe()} after {what}", tok.span
            )
        if tok.kind is TokenKind.NEWLINE:
            self._ts.next()

    def _expect_terminator(self, what: str) -> None:
        """``;`` then end of line; a bare end of line is tolerated."""
        tok = self._ts.peek()
        if tok.is_punct(";"):
            self._advance()
        elif tok.at_line_end:
            self._diag.report(
                Codes.MISSING_TERMINATOR,
                f"missing ';' after {what}",
                tok.span,
            )
        else:
            raise self._error(f"';' to end {what}", tok)
        self._expect_line_end(what)

    def _names(self, what: str, *, stop: str = "") -> Tuple[A.Ident, ...]:
        """Identifiers separated by blanks or commas, up to line end or *stop*."""
        names: List[A.Ident] = []
        while True:
            tok = self._ts.peek()
            if tok.at_line_end or (stop and tok.is_punct(stop)):
                return tuple(names)
            if tok.is_punct(",") and names:
                self._advance()
                continue
            names.append(self._expect_ident(what))

    def _choices(self, what: str) -> A.Choices:
        choices: List[Tuple[A.Number, str]] = []
        while self._at_number():
            value = self._expect_number(f"{what} value")
            choices.append((value, self._expect_string(f"{what} label")))
        return tuple(choices)

    def _object_ref(self, *, allow_network: bool = True) -> A.ObjectRef:
        tok = self._ts.peek()
        kind = _OBJECT_KEYWORDS.get(tok.text) if tok.kind is TokenKind.KEYWORD else None
        if kind is None:
            if not allow_network:
                raise self._error("BU_, BO_, SG_ or EV_", tok)
            return A.ObjectRef(A.ObjectKind.NETWORK, span=tok.span)
        self._advance()
        if kind is A.ObjectKind.MESSAGE:
            mid = self._expect_int("message id")
            return A.ObjectRef(kind, message_id=mid, span=self._span_from(tok))
        if kind is A.ObjectKind.SIGNAL:
            mid = self._expect_int("message id")
            name = self._expect_ident("signal name")
            return A.ObjectRef(kind, message_id=mid, name=name.name, span=self._span_from(tok))
        name = self._expect_ident("node name" if kind is A.ObjectKind.NODE
                                  else "environment variable name")
        return A.ObjectRef(kind, name=name.name, span=self._span_from(tok))

    def _attribute_value(self) -> A.AttributeValue:
        if self._ts.peek().kind is TokenKind.STRING_LITERAL:
            return self._advance().value
        return self._expect_number("attribute value")

    # -- header sections ------------------------------------------------

    @_register(_SECTION_DISPATCH, "VERSION")
    def _parse_version(self, start: Token) -> None:
        text = self._expect_string("version string")
        self._expect_line_end("VERSION")
        self._emit("VERSION", A.VersionDecl(text, self._span_from(start)), "VERSION")

    @_register(_SECTION_DISPATCH, "NS_")
    def _parse_new_symbols(self, start: Token) -> None:
        self._expect_punct(":")
        symbols: List[str] = []
        while True:
            tok = self._ts.peek()
            if tok.kind is TokenKind.NEWLINE:
                self._ts.next()
                # symbol lines are indented deeper than the NS_ keyword
                nxt = self._ts.peek()
                while nxt.kind is TokenKind.NEWLINE:
                    self._ts.next()
                    nxt = self._ts.peek()
                if nxt.kind is TokenKind.EOF or nxt.span.start_col <= start.span.start_col:
                    break
                continue
            if tok.kind is TokenKind.EOF:
                break
            if tok.kind in (TokenKind.KEYWORD, TokenKind.IDENTIFIER):
                symbols.append(tok.text)
                self._advance()
                continue
            raise self._error("a new-symbol name", tok)
        self._emit("NS_", A.NewSymbolsDecl(tuple(symbols), self._span_from(start)), "NS_")

    @_register(_SECTION_DISPATCH, "BS_")
    def _parse_bit_timing(self, start: Token) -> None:
        self._expect_punct(":")
        baudrate = btr1 = btr2 = None
        if not self._ts.peek().at_line_end:
            baudrate = self._expect_int("baudrate")
            self._expect_punct(":")
            btr1 = self._expect_int("BTR1")
            self._expect_punct(",")
            btr2 = self._expect_int("BTR2")
        self._expect_line_end("BS_")
        decl = A.BitTimingDecl(baudrate, btr1, btr2, self._span_from(start))
        self._emit("BS_", decl, "BS_")

    @_register(_SECTION_DISPATCH, "BU_")
    def _parse_nodes(self, start: Token) -> None:
        self._expect_punct(":")
        nodes = self._names("node name")
        self._expect_line_end("BU_")
        self._emit("BU_", A.NodeListDecl(nodes, self._span_from(start)), "node list BU_")

    # -- messages and signals -------------------------------------------

    @_register(_SECTION_DISPATCH, "BO_")
    def _parse_message(self, start: Token) -> None:
        self._no_message_reason = "discarded"
        mid = self._expect_int("message id")
        name = self._expect_ident("message name")
        self._expect_punct(":")
        dlc = self._expect_int("DLC")
        transmitter = self._expect_ident("transmitter node")
        self._expect_line_end("message header")

        if mid == INDEPENDENT_SIGNALS_ID:
            self._diag.report(
                Codes.UNSUPPORTED_FEATURE,
                f"pseudo-message '{name}' for unassigned signals is ignored",
                self._span_from(start),
            )
            self._no_message_reason = "ignored"
            return
        self._no_message_reason = None
        self._pending = _PendingMessage(mid, name.name, dlc, transmitter, self._span_from(start))

    def _close_message(self) -> None:
        pending, self._pending = self._pending, None
        self._no_message_reason = None
        if pending is None:
            return
        span = pending.span
        if pending.signals:
            span = Span.merge(span, pending.signals[-1].span)
        decl = A.MessageDecl(
            id=pending.id,
            name=pending.name,
            dlc=pending.dlc,
            transmitter=pending.transmitter,
            signals=tuple(pending.signals),
            span=span,
        )
        self._emit(("BO_", pending.id), decl, f"message {pending.id}")

    def _signal_line(self, start: Token) -> None:
        if self._pending is None:
            # signals of a discarded or ignored header share its diagnostic
            if self._no_message_reason is None:
                name = self._ts.peek(1)
                label = f" '{name.text}'" if name.kind is TokenKind.IDENTIFIER else ""
                self._diag.report(
                    Codes.ORPHAN_SIGNAL,
                    f"signal{label} appears outside of any message",
                    start.span,
                )
            self._skip_line()
            return

        try:
            self._ts.next()
            self._last = start
            self._pending.signals.append(self._parse_signal(start))
        except ParseError as exc:
            self._fail(start, exc)

    def _parse_signal(self, start: Token) -> A.SignalDecl:
        name = self._expect_ident("signal name")

        mux_role = A.PLAIN
        tok = self._ts.peek()
        if tok.kind is TokenKind.IDENTIFIER:
            m = _MUX_MARKER.match(tok.text)
            if m is None:
                raise self._error("multiplexer marker or ':'", tok)
            self._advance()
            if m.group(1):
                mux_role = A.MUXER
            else:
                mux_role = A.MuxRole.muxed(int(m.group(2)))
                if m.group(3):
                    self._diag.report(
                        Codes.UNSUPPORTED_FEATURE,
                        f"extended multiplexing marker '{tok.text}' treated as "
                        f"'m{m.group(2)}'",
                        tok.span,
                    )

        self._expect_punct(":")
        start_bit = self._expect_int("start bit")
        self._expect_punct("|")
        length = self._expect_int("signal length")
        self._expect_punct("@")
        endianness = self._expect_int("byte order (0 or 1)")
        sign_tok = self._ts.peek()
        if not (sign_tok.is_punct("+") or sign_tok.is_punct("-")):
            raise self._error("'+' or '-'", sign_tok)
        self._advance()

        self._expect_punct("(")
        scale = self._expect_number("scale")
        self._expect_punct(",")
        offset = self._expect_number("offset")
        self._expect_punct(")")
        self._expect_punct("[")
        minimum = self._expect_number("minimum")
        self._expect_punct("|")
        maximum = self._expect_number("maximum")
        self._expect_punct("]")
        unit = self._expect_string("unit string")
        receivers = self._names("receiver node")
        self._expect_line_end(f"signal '{name}'")

        return A.SignalDecl(
            name=name.name,
            start_bit=start_bit,
            length=length,
            endianness=endianness,
            signed=sign_tok.text == "-",
            scale=float(scale),
            offset=float(offset),
            minimum=float(minimum),
            maximum=float(maximum),
            unit=unit,
            receivers=receivers,
            mux_role=mux_role,
            span=self._span_from(start),
        )

    @_register(_SECTION_DISPATCH, "BO_TX_BU_")
    def _parse_message_transmitters(self, start: Token) -> None:
        mid = self._expect_int("message id")
        self._expect_punct(":")
        nodes = self._names("transmitter node", stop=";")
        self._expect_terminator("BO_TX_BU_")
        decl = A.MessageTransmittersDecl(mid, nodes, self._span_from(start))
        self._emit(("BO_TX_BU_", mid), decl, f"transmitter list of message {mid}")

    @_register(_SECTION_DISPATCH, "SIG_VALTYPE_")
    def _parse_signal_value_type(self, start: Token) -> None:
        mid = self._expect_int("message id")
        signal = self._expect_ident("signal name")
        self._accept_punct(":")
        value_type = self._expect_int("value type")
        self._expect_terminator("SIG_VALTYPE_")
        decl = A.SignalValueTypeDecl(mid, signal.name, value_type, self._span_from(start))
        self._emit(("SIG_VALTYPE_", mid, signal.name), decl,
                   f"value type of signal '{signal}'")

    @_register(_SECTION_DISPATCH, "SIG_GROUP_")
    def _parse_signal_group(self, start: Token) -> None:
        mid = self._expect_int("message id")
        name = self._expect_ident("signal group name")
        repetitions = self._expect_int("repetitions")
        self._expect_punct(":")
        signals = self._names("signal name", stop=";")
        self._expect_terminator("SIG_GROUP_")
        decl = A.SignalGroupDecl(mid, name.name, repetitions, signals, self._span_from(start))
        self._emit(("SIG_GROUP_", mid, name.name), decl, f"signal group '{name}'")

    # -- comments -------------------------------------------------------

    @_register(_SECTION_DISPATCH, "CM_")
    def _parse_comment(self, start: Token) -> None:
        target = self._object_ref()
        text = self._expect_string("comment string")
        self._expect_terminator("CM_")
        decl = A.CommentDecl(target, text, self._span_from(start))
        self._emit(("CM_",) + target.key, decl, f"comment for {target.describe()}")

    # -- attributes -----------------------------------------------------

    @_register(_SECTION_DISPATCH, "BA_DEF_")
    def _parse_attribute_def(self, start: Token) -> None:
        tok = self._ts.peek()
        object_kind = A.ObjectKind.NETWORK
        if tok.kind is TokenKind.KEYWORD and tok.text in _OBJECT_KEYWORDS:
            object_kind = _OBJECT_KEYWORDS[self._advance().text]
        name = self._expect_string("attribute name")

        type_tok = self._ts.peek()
        try:
            value_kind = A.AttributeValueKind(type_tok.text)
        except ValueError:
            raise self._error("INT, HEX, FLOAT, STRING or ENUM", type_tok) from None
        self._advance()

        minimum = maximum = None
        enum_values: List[str] = []
        if value_kind is A.AttributeValueKind.ENUM:
            while self._ts.peek().kind is TokenKind.STRING_LITERAL:
                enum_values.append(self._advance().value)
                if not self._accept_punct(","):
                    break
        elif value_kind.is_numeric and self._at_number():
            minimum = self._expect_number("attribute minimum")
            maximum = self._expect_number("attribute maximum")
        self._expect_terminator("BA_DEF_")

        decl = A.AttributeDefDecl(
            object_kind=object_kind,
            name=name,
            value_kind=value_kind,
            minimum=minimum,
            maximum=maximum,
            enum_values=tuple(enum_values),
            span=self._span_from(start),
        )
        # BA_ lines between the two definitions still resolve
        self._emit(("BA_DEF_", name), decl, f"attribute definition '{name}'", in_place=True)

    @_register(_SECTION_DISPATCH, "BA_DEF_DEF_")
    def _parse_attribute_default(self, start: Token) -> None:
        name = self._expect_string("attribute name")
        value = self._attribute_value()
        self._expect_terminator("BA_DEF_DEF_")
        decl = A.AttributeDefaultDecl(name, value, self._span_from(start))
        self._emit(("BA_DEF_DEF_", name), decl, f"default of attribute '{name}'")

    @_register(_SECTION_DISPATCH, "BA_")
    def _parse_attribute_assign(self, start: Token) -> None:
        name = self._expect_string("attribute name")
        target = self._object_ref()
        value = self._attribute_value()
        self._expect_terminator("BA_")
        decl = A.AttributeAssignDecl(name, target, value, self._span_from(start))
        self._emit(("BA_", name) + target.key, decl,
                   f"attribute '{name}' of {target.describe()}")

    # -- value descriptions ---------------------------------------------

    @_register(_SECTION_DISPATCH, "VAL_TABLE_")
    def _parse_value_table(self, start: Token) -> None:
        name = self._expect_ident("value table name")
        choices = self._choices("value table")
        self._expect_terminator("VAL_TABLE_")
        decl = A.ValueTableDecl(name.name, choices, self._span_from(start))
        self._emit(("VAL_TABLE_", name.name), decl, f"value table '{name}'")

    @_register(_SECTION_DISPATCH, "VAL_")
    def _parse_value_description(self, start: Token) -> None:
        tok = self._ts.peek()
        if tok.kind is TokenKind.INT_LITERAL:
            mid = self._advance().value
            signal = self._expect_ident("signal name")
            target = A.ObjectRef(A.ObjectKind.SIGNAL, message_id=mid, name=signal.name,
                                 span=self._span_from(tok))
        else:
            env = self._expect_ident("message id or environment variable name")
            target = A.ObjectRef(A.ObjectKind.ENV_VAR, name=env.name, span=env.span)
        choices = self._choices("value description")
        self._expect_terminator("VAL_")
        decl = A.ValueDescriptionDecl(target, choices, self._span_from(start))
        self._emit(("VAL_",) + target.key, decl,
                   f"value descriptions of {target.describe()}")

    # -- environment variables ------------------------------------------

    @_register(_SECTION_DISPATCH, "EV_")
    def _parse_env_var(self, start: Token) -> None:
        name = self._expect_ident("environment variable name")
        self._expect_punct(":")
        var_type = self._expect_int("environment variable type")
        self._expect_punct("[")
        minimum = self._expect_number("minimum")
        self._expect_punct("|")
        maximum = self._expect_number("maximum")
        self._expect_punct("]")
        unit = self._expect_string("unit string")
        initial = self._expect_number("initial value")
        ev_id = self._expect_int("environment variable id")
        access = self._expect_ident("access type")
        nodes = self._names("access node", stop=";")
        self._expect_terminator("EV_")
        decl = A.EnvVarDecl(
            name=name.name,
            var_type=var_type,
            minimum=minimum,
            maximum=maximum,
            unit=unit,
            initial=initial,
            ev_id=ev_id,
            access_type=access.name,
            access_nodes=nodes,
            span=self._span_from(start),
        )
        self._emit(("EV_", name.name), decl, f"environment variable '{name}'")


def parse(tokens: Iterable[Token], diagnostics: DiagnosticCollector) -> A.DbcFile:
    """Parse a token stream into a :class:`~dbcparser.ast.DbcFile`.

    Never raises for bad input: every problem is reported into
    *diagnostics*.
    """
    return Parser(tokens, diagnostics).parse_file()
