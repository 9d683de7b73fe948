"""dbcparser — CAN database (DBC) front-end.

This package turns the text of a DBC file into a validated, cross-referenced
domain model suitable for code generation, reporting every problem it finds
along the way instead of stopping at the first one.

Submodules
----------
errors
    ``Span``, structured diagnostic codes (``DBC-XXXX``), ``Diagnostic``,
    the shared ``DiagnosticCollector`` and the exception hierarchy.

config
    ``ParserConfig`` (CAN-FD sizes, the "no node" sentinel, warnings as
    errors) and ``configure_logging``.

lexer
    Byte-level tokenizer producing span-tagged tokens lazily.

ast / visitor
    Frozen declaration nodes, one per DBC section line, and the visitor
    base used by later passes.

parser
    Recovering recursive-descent parser (tokens → ``DbcFile``).

semantic
    ``Validator``: uniqueness, bit layout, multiplexing, references and
    attribute rules; decides which entities are excluded.

model / assembler
    The domain model (``Dbc``, ``Message``, ``Signal``, ``Attribute``,
    ``ValueTable``, ``Node``, ...) and the pass that builds it.

pipeline
    ``parse_dbc`` / ``parse_dbc_file``: the four stages in one call.

Usage
-----
::

    from dbcparser import parse_dbc

    result = parse_dbc(open("vehicle.dbc", "rb").read())
    print(result.format_diagnostics())
    if result.ok:
        for message in result.dbc.messages.values():
            print(hex(message.frame_id), message.name)
"""

from __future__ import annotations

__version__: str = "0.1.0"
__all__: list[str] = [
    "__version__",
    "ParserConfig",
    "ParseResult",
    "parse_dbc",
    "parse_dbc_file",
    "configure_logging",
    "Dbc",
    "Message",
    "Signal",
    "Diagnostic",
    "Severity",
    "DbcError",
    "DbcValidationError",
]

from dbcparser.config import ParserConfig, configure_logging
from dbcparser.errors import DbcError, DbcValidationError, Diagnostic, Severity
from dbcparser.model import Dbc, Message, Signal
from dbcparser.pipeline import ParseResult, parse_dbc, parse_dbc_file
