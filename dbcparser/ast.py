"""dbcparser/ast.py – Syntax tree for DBC declarations.

The parser produces one declaration node per DBC section line (a ``BO_``
line together with its ``SG_`` lines forms a single ``MessageDecl``).  The
tree is *purely syntactic*: it holds whatever was grammatically admissible,
including duplicate IDs, overlapping bit ranges or references to nodes
that do not exist.  Deciding what that means is the validator's job.

Design invariants
-----------------
* Every node is a frozen dataclass (immutable after construction).
* Child collections are tuples, never lists.
* Every node records its ``Span`` so any later stage can point back at
  the exact bytes it came from.
* Declarations form a closed union (``Declaration``); the validator and
  assembler route nodes through :func:`dispatch_declaration`, which raises
  on an unknown type, so adding a construct forces every consumer to be
  extended.
* Cross references are names and integer IDs (``ObjectRef``), never
  embedded nodes.

Module layout
-------------
§1  Identifiers, object references, multiplexing roles
§2  Declarations
§3  File root
§4  Visitor dispatch
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Iterator, Optional, Tuple, Union

from dbcparser.errors import NO_SPAN, Span

# ════════════════════════════════════════════════════════════════════════
# §1  Identifiers, object references, multiplexing roles
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Ident:
    """A name as written in the input, with the span it was written at.

    Compares equal to a plain ``str`` so lookups by name stay simple.
    """

    name: str
    span: Span = field(default=NO_SPAN, repr=False, compare=False)

    def __str__(self) -> str:  # noqa: D105
        return self.name

    def __eq__(self, other: object) -> bool:  # noqa: D105
        if isinstance(other, Ident):
            return self.name == other.name
        if isinstance(other, str):
            return self.name == other
        return NotImplemented

    def __hash__(self) -> int:  # noqa: D105
        return hash(self.name)


class ObjectKind(Enum):
    """Object classes that comments and attributes can be attached to.

    The value is the DBC keyword that introduces the object in ``CM_`` /
    ``BA_DEF_`` / ``BA_``; the network (file) scope has no keyword.
    """

    NETWORK = ""
    NODE = "BU_"
    MESSAGE = "BO_"
    SIGNAL = "SG_"
    ENV_VAR = "EV_"


ObjectKey = Tuple[str, Optional[int], Optional[str]]


@dataclass(frozen=True, slots=True)
class ObjectRef:
    """Reference to a DBC object by key.

    * network:      ``ObjectRef(NETWORK)``
    * node / env:   ``ObjectRef(NODE, name="ECU")``
    * message:      ``ObjectRef(MESSAGE, message_id=256)``
    * signal:       ``ObjectRef(SIGNAL, message_id=256, name="Speed")``
    """

    kind: ObjectKind
    message_id: Optional[int] = None
    name: Optional[str] = None
    span: Span = field(default=NO_SPAN, repr=False, compare=False)

    @property
    def key(self) -> ObjectKey:
        return (self.kind.value, self.message_id, self.name)

    def describe(self) -> str:
        if self.kind is ObjectKind.NETWORK:
            return "network"
        if self.kind is ObjectKind.MESSAGE:
            return f"message {self.message_id}"
        if self.kind is ObjectKind.SIGNAL:
            return f"signal '{self.name}' of message {self.message_id}"
        if self.kind is ObjectKind.NODE:
            return f"node '{self.name}'"
        return f"environment variable '{self.name}'"


NETWORK = ObjectRef(ObjectKind.NETWORK)


class MuxKind(Enum):
    NONE = auto()
    MUXER = auto()
    MUXED = auto()


@dataclass(frozen=True, slots=True)
class MuxRole:
    """Multiplexing role of a signal: plain, the muxer (``M``) or muxed (``mN``)."""

    kind: MuxKind = MuxKind.NONE
    value: Optional[int] = None

    @classmethod
    def muxed(cls, value: int) -> "MuxRole":
        return cls(MuxKind.MUXED, value)

    @property
    def is_muxer(self) -> bool:
        return self.kind is MuxKind.MUXER

    @property
    def is_muxed(self) -> bool:
        return self.kind is MuxKind.MUXED

    @property
    def context(self) -> Optional[int]:
        """Overlap context: ``None`` for plain and muxer signals, N for ``mN``."""
        return self.value if self.kind is MuxKind.MUXED else None

    def __str__(self) -> str:
        if self.kind is MuxKind.MUXER:
            return "M"
        if self.kind is MuxKind.MUXED:
            return f"m{self.value}"
        return ""


PLAIN = MuxRole()
MUXER = MuxRole(MuxKind.MUXER)


class AttributeValueKind(Enum):
    INT = "INT"
    HEX = "HEX"
    FLOAT = "FLOAT"
    STRING = "STRING"
    ENUM = "ENUM"

    @property
    def is_numeric(self) -> bool:
        return self in (AttributeValueKind.INT, AttributeValueKind.HEX,
                        AttributeValueKind.FLOAT)


AttributeValue = Union[int, float, str]
Number = Union[int, float]
Choices = Tuple[Tuple[Number, str], ...]


# ════════════════════════════════════════════════════════════════════════
# §2  Declarations
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class VersionDecl:
    text: str
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class NewSymbolsDecl:
    """``NS_ :`` followed by its indented symbol lines."""

    symbols: Tuple[str, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class BitTimingDecl:
    """``BS_ : [baudrate : btr1 , btr2]``; all three are usually absent."""

    baudrate: Optional[int] = None
    btr1: Optional[int] = None
    btr2: Optional[int] = None
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class NodeListDecl:
    nodes: Tuple[Ident, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class SignalDecl:
    """One ``SG_`` line.

    ``endianness`` keeps the raw digit after ``@`` (0 Motorola, 1 Intel)
    so that out-of-range values survive parsing and the validator can
    reject them.
    """

    name: str
    start_bit: int
    length: int
    endianness: int
    signed: bool
    scale: float
    offset: float
    minimum: float
    maximum: float
    unit: str = ""
    receivers: Tuple[Ident, ...] = ()
    mux_role: MuxRole = PLAIN
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class MessageDecl:
    """A ``BO_`` line and the ``SG_`` lines that follow it."""

    id: int
    name: str
    dlc: int
    transmitter: Ident
    signals: Tuple[SignalDecl, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class MessageTransmittersDecl:
    """``BO_TX_BU_ id : node, node ;``"""

    message_id: int
    transmitters: Tuple[Ident, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class CommentDecl:
    target: ObjectRef
    text: str
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class AttributeDefDecl:
    """``BA_DEF_ [object] "name" type [min max | "a","b",...] ;``"""

    object_kind: ObjectKind
    name: str
    value_kind: AttributeValueKind
    minimum: Optional[Number] = None
    maximum: Optional[Number] = None
    enum_values: Tuple[str, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class AttributeDefaultDecl:
    name: str
    value: AttributeValue
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class AttributeAssignDecl:
    name: str
    target: ObjectRef
    value: AttributeValue
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class ValueTableDecl:
    """A named, reusable ``VAL_TABLE_``."""

    name: str
    choices: Choices = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class ValueDescriptionDecl:
    """``VAL_`` for a signal or an environment variable."""

    target: ObjectRef
    choices: Choices = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class EnvVarDecl:
    name: str
    var_type: int
    minimum: Number
    maximum: Number
    unit: str
    initial: Number
    ev_id: int
    access_type: str
    access_nodes: Tuple[Ident, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class SignalValueTypeDecl:
    """``SIG_VALTYPE_ id signal : 0|1|2 ;`` (1 = IEEE float, 2 = IEEE double)."""

    message_id: int
    signal_name: str
    value_type: int
    span: Span = NO_SPAN


@dataclass(frozen=True, slots=True)
class SignalGroupDecl:
    message_id: int
    name: str
    repetitions: int
    signals: Tuple[Ident, ...] = ()
    span: Span = NO_SPAN


Declaration = Union[
    VersionDecl,
    NewSymbolsDecl,
    BitTimingDecl,
    NodeListDecl,
    MessageDecl,
    MessageTransmittersDecl,
    CommentDecl,
    AttributeDefDecl,
    AttributeDefaultDecl,
    AttributeAssignDecl,
    ValueTableDecl,
    ValueDescriptionDecl,
    EnvVarDecl,
    SignalValueTypeDecl,
    SignalGroupDecl,
]


# ════════════════════════════════════════════════════════════════════════
# §3  File root
# ════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DbcFile:
    """All declarations of one input, in source order.

    A slot is ``None`` when a later definition of the same entity
    superseded it; keeping the slot keeps indices (and therefore the
    validator's exclusion paths) stable.
    """

    declarations: Tuple[Optional[Declaration], ...] = ()
    span: Span = NO_SPAN

    def __iter__(self) -> Iterator[Declaration]:
        return (d for d in self.declarations if d is not None)

    def indexed(self) -> Iterator[Tuple[int, Declaration]]:
        """Yield ``(index, declaration)`` for every live declaration."""
        for index, decl in enumerate(self.declarations):
            if decl is not None:
                yield index, decl

    def messages(self) -> Iterator[Tuple[int, MessageDecl]]:
        for index, decl in self.indexed():
            if isinstance(decl, MessageDecl):
                yield index, decl


# ════════════════════════════════════════════════════════════════════════
# §4  Visitor dispatch
# ════════════════════════════════════════════════════════════════════════

_DECL_DISPATCH: dict[type, str] = {
    VersionDecl: "visit_version",
    NewSymbolsDecl: "visit_new_symbols",
    BitTimingDecl: "visit_bit_timing",
    NodeListDecl: "visit_node_list",
    MessageDecl: "visit_message",
    MessageTransmittersDecl: "visit_message_transmitters",
    CommentDecl: "visit_comment",
    AttributeDefDecl: "visit_attribute_def",
    AttributeDefaultDecl: "visit_attribute_default",
    AttributeAssignDecl: "visit_attribute_assign",
    ValueTableDecl: "visit_value_table",
    ValueDescriptionDecl: "visit_value_description",
    EnvVarDecl: "visit_env_var",
    SignalValueTypeDecl: "visit_signal_value_type",
    SignalGroupDecl: "visit_signal_group",
}


def dispatch_declaration(decl: Declaration, visitor: Any) -> Any:
    """Dispatch a ``Declaration`` node to the appropriate visitor method."""
    method_name = _DECL_DISPATCH.get(type(decl))
    if method_name is None:
        raise TypeError(f"Unknown declaration node type: {type(decl).__name__}")
    return getattr(visitor, method_name)(decl)
