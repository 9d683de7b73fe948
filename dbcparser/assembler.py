"""dbcparser/assembler.py – validated syntax tree → ``Dbc`` domain model.

Assembly runs in two passes over the declarations, skipping everything the
validator excluded:

1. **Gather** – comments, value descriptions, attribute definitions,
   defaults and assignments, extra transmitters, value types; all keyed by
   the object they attach to (``ObjectRef.key``).
2. **Build** – nodes, messages with their signals, environment variables
   and attributes, each picking up its attached information by key.

Output is deterministic: every collection follows declaration order and
nothing observable depends on set or hash ordering.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from dbcparser import ast as A
from dbcparser.config import ParserConfig
from dbcparser.model import (
    Attribute,
    BitTiming,
    ByteOrder,
    Dbc,
    EnvironmentVariable,
    Message,
    Node,
    Sign,
    Signal,
    SignalGroup,
    SignalValueType,
    ValueTable,
)
from dbcparser.semantic import ValidationResult
from dbcparser.visitor import DeclarationVisitor, visiting

logger = logging.getLogger(__name__)

_NETWORK_KEY = A.NETWORK.key


def _inferred_kind(value: A.AttributeValue) -> A.AttributeValueKind:
    if isinstance(value, str):
        return A.AttributeValueKind.STRING
    if isinstance(value, int):
        return A.AttributeValueKind.INT
    return A.AttributeValueKind.FLOAT


def _choices(choices: A.Choices) -> Dict[A.Number, str]:
    return {raw: label for raw, label in choices}


class _Gatherer(DeclarationVisitor):
    """Pass 1: collect everything that attaches to another entity."""

    def __init__(self, verdict: ValidationResult) -> None:
        super().__init__()
        self._verdict = verdict
        self.version = ""
        self.new_symbols: Tuple[str, ...] = ()
        self.bit_timing: Optional[BitTiming] = None
        self.node_names: List[str] = []
        self.messages: List[Tuple[int, A.MessageDecl]] = []
        self.env_vars: List[A.EnvVarDecl] = []
        self.signal_groups: List[A.SignalGroupDecl] = []
        self.value_tables: Dict[str, ValueTable] = {}
        self.comments: Dict[A.ObjectKey, str] = {}
        self.descriptions: Dict[A.ObjectKey, ValueTable] = {}
        self.extra_transmitters: Dict[int, Tuple[str, ...]] = {}
        self.value_types: Dict[Tuple[int, str], SignalValueType] = {}
        self.attribute_defs: Dict[str, A.AttributeDefDecl] = {}
        self.defaults: Dict[str, A.AttributeValue] = {}
        # attribute name -> object key -> value, both in first-seen order
        self.assignments: Dict[str, Dict[A.ObjectKey, A.AttributeValue]] = {}
        self.assignment_kinds: Dict[str, A.ObjectKind] = {}

    def visit(self, node: A.Declaration) -> None:
        if self._verdict.is_excluded(self.index):
            return None
        return super().visit(node)

    @visiting(A.VersionDecl, A.NewSymbolsDecl, A.BitTimingDecl)
    def handle_header(self, node: A.Declaration) -> None:
        if isinstance(node, A.VersionDecl):
            self.version = node.text
        elif isinstance(node, A.NewSymbolsDecl):
            self.new_symbols = node.symbols
        elif node.baudrate is not None:
            self.bit_timing = BitTiming(node.baudrate, node.btr1, node.btr2)

    def visit_node_list(self, node: A.NodeListDecl) -> None:
        for ident in node.nodes:
            if ident.name not in self.node_names:
                self.node_names.append(ident.name)

    def visit_message(self, node: A.MessageDecl) -> None:
        self.messages.append((self.index, node))

    def visit_message_transmitters(self, node: A.MessageTransmittersDecl) -> None:
        self.extra_transmitters[node.message_id] = tuple(t.name for t in node.transmitters)

    def visit_signal_value_type(self, node: A.SignalValueTypeDecl) -> None:
        self.value_types[(node.message_id, node.signal_name)] = SignalValueType(node.value_type)

    def visit_signal_group(self, node: A.SignalGroupDecl) -> None:
        self.signal_groups.append(node)

    def visit_comment(self, node: A.CommentDecl) -> None:
        self.comments[node.target.key] = node.text

    def visit_value_table(self, node: A.ValueTableDecl) -> None:
        self.value_tables[node.name] = ValueTable(node.name, _choices(node.choices))

    def visit_value_description(self, node: A.ValueDescriptionDecl) -> None:
        key = node.target.key
        self.descriptions[key] = ValueTable(None, _choices(node.choices), key)

    def visit_env_var(self, node: A.EnvVarDecl) -> None:
        self.env_vars.append(node)

    def visit_attribute_def(self, node: A.AttributeDefDecl) -> None:
        self.attribute_defs[node.name] = node

    def visit_attribute_default(self, node: A.AttributeDefaultDecl) -> None:
        self.defaults[node.name] = node.value

    def visit_attribute_assign(self, node: A.AttributeAssignDecl) -> None:
        self.assignments.setdefault(node.name, {})[node.target.key] = node.value
        self.assignment_kinds.setdefault(node.name, node.target.kind)


class Assembler:
    """Pass 2: fold gathered declarations into the domain model."""

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        self._config = config or ParserConfig()

    def assemble(self, file: A.DbcFile, verdict: ValidationResult) -> Dbc:
        g = _Gatherer(verdict)
        g.walk(file)

        entity_attrs = self._entity_attributes(g)

        def attrs(key: A.ObjectKey) -> Dict[str, A.AttributeValue]:
            return entity_attrs.get(key, {})

        nodes = tuple(
            Node(
                name=name,
                comment=g.comments.get((A.ObjectKind.NODE.value, None, name)),
                attributes=attrs((A.ObjectKind.NODE.value, None, name)),
            )
            for name in g.node_names
        )

        messages: Dict[int, Message] = {}
        for index, decl in g.messages:
            messages[decl.id] = self._message(index, decl, g, verdict, attrs)

        env_vars: Dict[str, EnvironmentVariable] = {}
        for decl in g.env_vars:
            key = (A.ObjectKind.ENV_VAR.value, None, decl.name)
            env_vars[decl.name] = EnvironmentVariable(
                name=decl.name,
                var_type=decl.var_type,
                minimum=decl.minimum,
                maximum=decl.maximum,
                unit=decl.unit,
                initial=decl.initial,
                ev_id=decl.ev_id,
                access_type=decl.access_type,
                access_nodes=self._node_refs(decl.access_nodes),
                value_table=g.descriptions.get(key),
                comment=g.comments.get(key),
                attributes=attrs(key),
            )

        groups = tuple(
            SignalGroup(
                message_id=decl.message_id,
                name=decl.name,
                repetitions=decl.repetitions,
                signals=tuple(s.name for s in decl.signals),
            )
            for decl in g.signal_groups
            if decl.message_id in messages
        )

        dbc = Dbc(
            version=g.version,
            nodes=nodes,
            messages=messages,
            value_tables=dict(g.value_tables),
            attribute_defs=self._attributes(g),
            environment_variables=env_vars,
            signal_groups=groups,
            new_symbols=g.new_symbols,
            bit_timing=g.bit_timing,
            comment=g.comments.get(_NETWORK_KEY),
            attributes=attrs(_NETWORK_KEY),
        )
        logger.debug(
            "assembled %d message(s), %d node(s), %d attribute(s)",
            len(dbc.messages), len(dbc.nodes), len(dbc.attribute_defs),
        )
        return dbc

    # -- helpers ------------------------------------------------------------

    def _node_refs(self, idents: Tuple[A.Ident, ...]) -> Tuple[str, ...]:
        """Node names with the "no node" sentinel and repeats dropped."""
        names: List[str] = []
        for ident in idents:
            if ident.name != self._config.no_node_sentinel and ident.name not in names:
                names.append(ident.name)
        return tuple(names)

    def _message(self, index, decl, g, verdict, attrs) -> Message:
        signals: List[Signal] = []
        for j, sig in enumerate(decl.signals):
            if verdict.is_excluded(index, j):
                continue
            key = (A.ObjectKind.SIGNAL.value, decl.id, sig.name)
            signals.append(Signal(
                name=sig.name,
                start_bit=sig.start_bit,
                length=sig.length,
                byte_order=ByteOrder(sig.endianness),
                sign=Sign.SIGNED if sig.signed else Sign.UNSIGNED,
                scale=sig.scale,
                offset=sig.offset,
                minimum=sig.minimum,
                maximum=sig.maximum,
                unit=sig.unit,
                receivers=self._node_refs(sig.receivers),
                mux_role=sig.mux_role,
                value_type=g.value_types.get((decl.id, sig.name), SignalValueType.INTEGER),
                value_table=g.descriptions.get(key),
                comment=g.comments.get(key),
                attributes=attrs(key),
            ))

        sentinel = self._config.no_node_sentinel
        transmitter = decl.transmitter.name
        extras = tuple(
            t for t in g.extra_transmitters.get(decl.id, ()) if t != sentinel
        )
        key = (A.ObjectKind.MESSAGE.value, decl.id, None)
        return Message(
            id=decl.id,
            name=decl.name,
            dlc=decl.dlc,
            transmitter=None if transmitter == sentinel else transmitter,
            signals=tuple(signals),
            extra_transmitters=extras,
            comment=g.comments.get(key),
            attributes=attrs(key),
        )

    def _entity_attributes(
        self, g: _Gatherer
    ) -> Dict[A.ObjectKey, Dict[str, A.AttributeValue]]:
        """Explicit ``BA_`` values regrouped per object."""
        per_object: Dict[A.ObjectKey, Dict[str, A.AttributeValue]] = {}
        for name, values in g.assignments.items():
            for key, value in values.items():
                per_object.setdefault(key, {})[name] = value
        return per_object

    def _attributes(self, g: _Gatherer) -> Dict[str, Attribute]:
        result: Dict[str, Attribute] = {}
        for name, decl in g.attribute_defs.items():
            result[name] = Attribute(
                name=name,
                object_kind=decl.object_kind,
                value_kind=decl.value_kind,
                minimum=decl.minimum,
                maximum=decl.maximum,
                enum_values=decl.enum_values,
                default=g.defaults.get(name),
                assignments=dict(g.assignments.get(name, {})),
            )

        # values recorded for attributes no BA_DEF_ declares
        undeclared = [n for n in g.defaults if n not in result]
        undeclared += [n for n in g.assignments if n not in result and n not in undeclared]
        for name in undeclared:
            values = g.assignments.get(name, {})
            sample = g.defaults[name] if name in g.defaults else next(iter(values.values()))
            result[name] = Attribute(
                name=name,
                object_kind=g.assignment_kinds.get(name, A.ObjectKind.NETWORK),
                value_kind=_inferred_kind(sample),
                default=g.defaults.get(name),
                assignments=dict(values),
                declared=False,
            )
        return result


def assemble(
    file: A.DbcFile,
    verdict: ValidationResult,
    config: Optional[ParserConfig] = None,
) -> Dbc:
    """Build the domain model from a validated syntax tree."""
    return Assembler(config).assemble(file, verdict)
