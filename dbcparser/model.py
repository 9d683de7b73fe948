"""dbcparser/model.py – the validated DBC domain model (IR).

Everything here is produced by :mod:`dbcparser.assembler` after validation
and is read-only for consumers such as code generators.  Entities refer to
each other by name or CAN ID only (a message names its transmitter, it
does not hold the ``Node``); lookups go through the owning :class:`Dbc`.

Invariants of an assembled ``Dbc``:

* message IDs and node names are unique;
* signal names are unique within their message;
* every signal fits in its message's payload;
* signals sharing a multiplexing context never share a payload bit;
* a message holds at most one multiplexer signal, and muxed signals only
  appear alongside it.
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import (
    Dict,
    Iterable,
    Mapping,
    Optional,
    Tuple,
)

from dbcparser.ast import (
    AttributeValue,
    AttributeValueKind,
    MuxRole,
    Number,
    ObjectKey,
    ObjectKind,
    PLAIN,
)

#: Bit 31 of a raw DBC message ID flags an extended (29-bit) frame.
EXTENDED_ID_FLAG = 0x80000000
STANDARD_ID_MAX = 0x7FF
EXTENDED_ID_MAX = 0x1FFFFFFF

CLASSIC_DLCS = frozenset(range(9))
CAN_FD_DLCS = frozenset({12, 16, 20, 24, 32, 48, 64})


class ByteOrder(enum.IntEnum):
    MOTOROLA = 0
    INTEL = 1


class Sign(enum.Enum):
    UNSIGNED = "+"
    SIGNED = "-"


class SignalValueType(enum.IntEnum):
    """``SIG_VALTYPE_`` codes."""

    INTEGER = 0
    FLOAT32 = 1
    FLOAT64 = 2

    @property
    def bit_length(self) -> Optional[int]:
        return {1: 32, 2: 64}.get(int(self))


# ═══════════════════════════════════════════════════════════════════════
#  Bit layout helpers
# ═══════════════════════════════════════════════════════════════════════

def motorola_linear_start(start_bit: int) -> int:
    """Position of a Motorola signal's MSB when bits are numbered
    left to right (byte 0 bit 7 is 0, byte 0 bit 0 is 7, byte 1 bit 7 is 8)."""
    return (start_bit // 8) * 8 + (7 - start_bit % 8)


def linear_start(start_bit: int, byte_order: int) -> int:
    """Start bit in the numbering where a signal occupies ``[s, s + length)``."""
    if byte_order == ByteOrder.MOTOROLA:
        return motorola_linear_start(start_bit)
    return start_bit


def occupied_bits(start_bit: int, length: int, byte_order: int) -> int:
    """Bit mask of the payload bits a signal occupies.

    Bit ``8*i + j`` of the mask is bit ``j`` of payload byte ``i``.  Intel
    signals run upwards from their LSB; Motorola signals run from their
    MSB downwards within a byte, then on to the MSB of the next byte.
    """
    if byte_order == ByteOrder.INTEL:
        return ((1 << length) - 1) << start_bit
    mask = 0
    bit = start_bit
    for _ in range(length):
        mask |= 1 << bit
        bit = bit + 15 if bit % 8 == 0 else bit - 1
    return mask


def frame_id(raw_id: int) -> int:
    return raw_id & ~EXTENDED_ID_FLAG


def is_extended(raw_id: int) -> bool:
    return bool(raw_id & EXTENDED_ID_FLAG)


# ═══════════════════════════════════════════════════════════════════════
#  Entities
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Node:
    name: str
    comment: Optional[str] = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)


@dataclass(frozen=True)
class ValueTable:
    """Raw value → label mapping.

    Named tables come from ``VAL_TABLE_``; per-signal and per-variable
    tables come from ``VAL_`` and carry the ``target`` key instead.
    """

    name: Optional[str]
    choices: Mapping[Number, str] = field(default_factory=dict)
    target: Optional[ObjectKey] = None

    def label(self, raw: Number) -> Optional[str]:
        return self.choices.get(raw)


@dataclass(frozen=True)
class Signal:
    name: str
    start_bit: int
    length: int
    byte_order: ByteOrder
    sign: Sign
    scale: float = 1.0
    offset: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    unit: str = ""
    receivers: Tuple[str, ...] = ()
    mux_role: MuxRole = PLAIN
    value_type: SignalValueType = SignalValueType.INTEGER
    value_table: Optional[ValueTable] = None
    comment: Optional[str] = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)

    @property
    def is_signed(self) -> bool:
        return self.sign is Sign.SIGNED

    @property
    def is_float(self) -> bool:
        return self.value_type is not SignalValueType.INTEGER

    @property
    def is_multiplexer(self) -> bool:
        return self.mux_role.is_muxer

    @property
    def multiplexer_value(self) -> Optional[int]:
        return self.mux_role.context

    @property
    def linear_start_bit(self) -> int:
        return linear_start(self.start_bit, self.byte_order)

    @property
    def bit_mask(self) -> int:
        return occupied_bits(self.start_bit, self.length, self.byte_order)

    @property
    def range(self) -> Tuple[float, float]:
        return (self.minimum, self.maximum)


@dataclass(frozen=True)
class Message:
    id: int
    name: str
    dlc: int
    transmitter: Optional[str]
    signals: Tuple[Signal, ...] = ()
    extra_transmitters: Tuple[str, ...] = ()
    comment: Optional[str] = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)

    @property
    def frame_id(self) -> int:
        """CAN identifier without the extended-frame flag."""
        return frame_id(self.id)

    @property
    def is_extended(self) -> bool:
        return is_extended(self.id)

    @property
    def size_bits(self) -> int:
        return 8 * self.dlc

    @property
    def transmitters(self) -> Tuple[str, ...]:
        """All senders: the ``BO_`` transmitter followed by ``BO_TX_BU_`` extras."""
        head = (self.transmitter,) if self.transmitter else ()
        return head + tuple(t for t in self.extra_transmitters if t != self.transmitter)

    @property
    def multiplexer(self) -> Optional[Signal]:
        for sig in self.signals:
            if sig.is_multiplexer:
                return sig
        return None

    def signal(self, name: str) -> Optional[Signal]:
        for sig in self.signals:
            if sig.name == name:
                return sig
        return None

    def signals_for(self, mux_value: Optional[int]) -> Tuple[Signal, ...]:
        """Signals present when the multiplexer reads *mux_value*.

        Unmuxed signals (and the multiplexer itself) are always present.
        """
        return tuple(
            s for s in self.signals
            if s.multiplexer_value is None or s.multiplexer_value == mux_value
        )


@dataclass(frozen=True)
class Attribute:
    """An attribute definition with its default and every assignment.

    ``declared`` is False for attributes only ever assigned (``BA_``)
    without a ``BA_DEF_``; their kind is then inferred from the values.
    """

    name: str
    object_kind: ObjectKind
    value_kind: AttributeValueKind
    minimum: Optional[Number] = None
    maximum: Optional[Number] = None
    enum_values: Tuple[str, ...] = ()
    default: Optional[AttributeValue] = None
    assignments: Mapping[ObjectKey, AttributeValue] = field(default_factory=dict)
    declared: bool = True

    def value_for(self, key: ObjectKey) -> Optional[AttributeValue]:
        return self.assignments.get(key, self.default)


@dataclass(frozen=True)
class EnvironmentVariable:
    name: str
    var_type: int
    minimum: Number
    maximum: Number
    unit: str = ""
    initial: Number = 0
    ev_id: int = 0
    access_type: str = ""
    access_nodes: Tuple[str, ...] = ()
    value_table: Optional[ValueTable] = None
    comment: Optional[str] = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)


@dataclass(frozen=True)
class SignalGroup:
    message_id: int
    name: str
    repetitions: int
    signals: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BitTiming:
    baudrate: int
    btr1: int
    btr2: int


@dataclass(frozen=True)
class Dbc:
    """Root of the domain model."""

    version: str = ""
    nodes: Tuple[Node, ...] = ()
    messages: Mapping[int, Message] = field(default_factory=dict)
    value_tables: Mapping[str, ValueTable] = field(default_factory=dict)
    attribute_defs: Mapping[str, Attribute] = field(default_factory=dict)
    environment_variables: Mapping[str, EnvironmentVariable] = field(default_factory=dict)
    signal_groups: Tuple[SignalGroup, ...] = ()
    new_symbols: Tuple[str, ...] = ()
    bit_timing: Optional[BitTiming] = None
    comment: Optional[str] = None
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "Dbc":
        return cls()

    def node(self, name: str) -> Optional[Node]:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def message_by_name(self, name: str) -> Optional[Message]:
        for message in self.messages.values():
            if message.name == name:
                return message
        return None

    def attribute_value(
        self,
        name: str,
        kind: ObjectKind = ObjectKind.NETWORK,
        *,
        message_id: Optional[int] = None,
        object_name: Optional[str] = None,
    ) -> Optional[AttributeValue]:
        """Value of attribute *name* for one object: its assignment, else
        the attribute's default, else ``None``."""
        attribute = self.attribute_defs.get(name)
        if attribute is None:
            return None
        return attribute.value_for((kind.value, message_id, object_name))

    def select(
        self,
        allow: Optional[Iterable[int]] = None,
        deny: Iterable[int] = (),
    ) -> "Dbc":
        """Copy holding only the messages passing an allow/deny ID filter.

        IDs match either the raw DBC ID or the frame ID.  ``allow=None``
        admits every message; *deny* wins over *allow*.
        """
        allowed = None if allow is None else set(allow)
        denied = set(deny)

        def keep(message: Message) -> bool:
            ids = {message.id, message.frame_id}
            if ids & denied:
                return False
            return allowed is None or bool(ids & allowed)

        messages: Dict[int, Message] = {
            mid: m for mid, m in self.messages.items() if keep(m)
        }
        groups = tuple(g for g in self.signal_groups if g.message_id in messages)
        return dataclasses.replace(self, messages=messages, signal_groups=groups)
