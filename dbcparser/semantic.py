"""
DBC Semantic Validator

Applies the DBC rule set to a parsed ``DbcFile``:
1. Identity - unique message IDs and names, unique signal names per message
2. Layout - CAN ID and DLC ranges, signal lengths and bit ranges, byte order
3. Multiplexing - one multiplexer per message, no muxed signal without it,
   no overlapping bits inside one multiplexing context
4. Values - finite scale/offset/limits, ``min <= max``
5. References - transmitters, receivers, comment / attribute / value
   description targets
6. Attributes - ``BA_`` and ``BA_DEF_DEF_`` only for attributes already
   introduced by ``BA_DEF_``, values matching the definition

Severity policy: a violation that leaves an entity unusable (duplicate ID,
bad bit range, bad byte order, ...) is an ``Error`` and excludes the entity
from the domain model; anything else is a ``Warning`` and the entity is
kept.  The validator never mutates the tree; exclusions are returned as
paths (``(decl_index,)`` or ``(decl_index, signal_index)``).

Two-phase validation, as for the CASL semantic analyzer:
1. Phase 1 (resolve): collect nodes, messages, signals and environment
   variables, so references can point forwards
2. Phase 2 (validate): walk the declarations in source order; the attribute
   registry is built during this walk so "declared before use" holds
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import (
    Dict,
    FrozenSet,
    List,
    Optional,
    Set,
    Tuple,
)

from dbcparser import ast as A
from dbcparser.config import ParserConfig
from dbcparser.errors import (
    Codes,
    Diagnostic,
    DiagnosticCollector,
    DiagnosticNote,
    Severity,
    Span,
)
from dbcparser.model import (
    CAN_FD_DLCS,
    CLASSIC_DLCS,
    EXTENDED_ID_FLAG,
    EXTENDED_ID_MAX,
    STANDARD_ID_MAX,
    SignalValueType,
    linear_start,
    occupied_bits,
)
from dbcparser.visitor import DeclarationVisitor

logger = logging.getLogger(__name__)

Path = Tuple[int, ...]


# ============================================================================
# RESULT
# ============================================================================


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation: the validator's own diagnostics (in emission
    order) and the paths of every excluded entity.
    """
    diagnostics: Tuple[Diagnostic, ...] = ()
    excluded: FrozenSet[Path] = frozenset()

    def is_excluded(self, index: int, signal_index: Optional[int] = None) -> bool:
        if (index,) in self.excluded:
            return True
        return signal_index is not None and (index, signal_index) in self.excluded

    @property
    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.diagnostics)


@dataclass
class ValidationContext:
    """
    Lookup tables built in phase 1.
    """
    nodes: Set[str] = field(default_factory=set)
    messages: Dict[int, A.MessageDecl] = field(default_factory=dict)
    signals: Dict[Tuple[int, str], A.SignalDecl] = field(default_factory=dict)
    env_vars: Set[str] = field(default_factory=set)


# ============================================================================
# VALIDATOR
# ============================================================================


class Validator(DeclarationVisitor):
    """
    Semantic validator for one ``DbcFile``.

    Holds per-call state only (registries, exclusions); create one per
    validation run.
    """

    def __init__(
        self,
        diagnostics: DiagnosticCollector,
        config: Optional[ParserConfig] = None,
    ) -> None:
        super().__init__()
        self._diag = diagnostics
        self._config = config or ParserConfig()
        self._ctx = ValidationContext()
        self._excluded: Set[Path] = set()
        self._attributes: Dict[str, A.AttributeDefDecl] = {}
        self._message_ids: Dict[int, A.MessageDecl] = {}
        self._message_names: Dict[str, A.MessageDecl] = {}

    def validate(self, file: A.DbcFile) -> ValidationResult:
        before = len(self._diag)

        # Phase 1: Resolve - collect referable entities
        self._phase1_resolve(file)

        # Phase 2: Validate - declarations in source order
        self.walk(file)

        diagnostics = self._diag.diagnostics[before:]
        logger.debug(
            "validation: %d diagnostic(s), %d exclusion(s)",
            len(diagnostics), len(self._excluded),
        )
        return ValidationResult(diagnostics, frozenset(self._excluded))

    # ========================================================================
    # Phase 1: Resolution
    # ========================================================================

    def _phase1_resolve(self, file: A.DbcFile) -> None:
        ctx = self._ctx
        for decl in file:
            if isinstance(decl, A.NodeListDecl):
                ctx.nodes.update(n.name for n in decl.nodes)
            elif isinstance(decl, A.MessageDecl):
                ctx.messages.setdefault(decl.id, decl)
                for sig in decl.signals:
                    ctx.signals.setdefault((decl.id, sig.name), sig)
            elif isinstance(decl, A.EnvVarDecl):
                ctx.env_vars.add(decl.name)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _exclude(self, *path: int) -> None:
        self._excluded.add(path)

    def _is_sentinel(self, name: str) -> bool:
        return name == self._config.no_node_sentinel

    def _check_node(self, ident: A.Ident, role: str) -> None:
        if self._is_sentinel(ident.name) or ident.name in self._ctx.nodes:
            return
        self._diag.report(
            Codes.UNDEFINED_NODE,
            f"{role} '{ident.name}' is not declared in BU_",
            ident.span,
        )

    def _check_ref(self, target: A.ObjectRef, span: Span, what: str) -> None:
        """Warn when *target* names a message, signal, node or variable
        that does not exist."""
        ctx = self._ctx
        kind = target.kind
        if kind is A.ObjectKind.NODE:
            if not self._is_sentinel(target.name) and target.name not in ctx.nodes:
                self._diag.report(
                    Codes.UNDEFINED_NODE,
                    f"{what} refers to undeclared node '{target.name}'",
                    span,
                )
        elif kind in (A.ObjectKind.MESSAGE, A.ObjectKind.SIGNAL):
            if target.message_id not in ctx.messages:
                self._diag.report(
                    Codes.UNKNOWN_MESSAGE,
                    f"{what} refers to unknown message {target.message_id}",
                    span,
                )
            elif kind is A.ObjectKind.SIGNAL and (
                (target.message_id, target.name) not in ctx.signals
            ):
                self._diag.report(
                    Codes.UNKNOWN_SIGNAL,
                    f"{what} refers to unknown signal '{target.name}' "
                    f"of message {target.message_id}",
                    span,
                )
        elif kind is A.ObjectKind.ENV_VAR:
            if target.name not in ctx.env_vars:
                self._diag.report(
                    Codes.UNKNOWN_ENV_VAR,
                    f"{what} refers to unknown environment variable '{target.name}'",
                    span,
                )

    def _non_finite(self, span: Span, what: str, **values: object) -> bool:
        """Report the non-finite entries of *values*; True if any."""
        bad = [
            name for name, value in values.items()
            if isinstance(value, float) and not math.isfinite(value)
        ]
        if bad:
            self._diag.report(
                Codes.NON_FINITE_VALUE,
                f"{what}: {', '.join(bad)} must be finite",
                span,
            )
        return bool(bad)

    def _choices_finite(self, choices: A.Choices, span: Span, what: str) -> bool:
        values = {f"value #{i}": raw for i, (raw, _) in enumerate(choices)}
        return not self._non_finite(span, what, **values)

    # ========================================================================
    # Nodes
    # ========================================================================

    def visit_node_list(self, node: A.NodeListDecl) -> None:
        seen: Dict[str, A.Ident] = {}
        for ident in node.nodes:
            if ident.name in seen:
                self._diag.report(
                    Codes.DUPLICATE_NODE,
                    f"node '{ident.name}' is listed more than once",
                    ident.span,
                    notes=(DiagnosticNote("first listed here", seen[ident.name].span),),
                )
            else:
                seen[ident.name] = ident

    # ========================================================================
    # Messages and signals
    # ========================================================================

    def _valid_can_id(self, raw_id: int) -> bool:
        if raw_id < 0 or raw_id > 0xFFFFFFFF:
            return False
        if raw_id & EXTENDED_ID_FLAG:
            return raw_id & ~EXTENDED_ID_FLAG <= EXTENDED_ID_MAX
        return raw_id <= STANDARD_ID_MAX

    def _valid_dlc(self, dlc: int) -> bool:
        return dlc in CLASSIC_DLCS or (self._config.allow_can_fd and dlc in CAN_FD_DLCS)

    def visit_message(self, node: A.MessageDecl) -> None:
        index = self.index
        excluded = False
        label = f"message '{node.name}' ({node.id})"

        if not self._valid_can_id(node.id):
            self._diag.report(
                Codes.INVALID_CAN_ID,
                f"{label}: CAN ID is outside the standard (11-bit) and "
                f"extended (29-bit) ranges",
                node.span,
            )
            excluded = True

        earlier = self._message_ids.get(node.id)
        if earlier is not None:
            self._diag.report(
                Codes.DUPLICATE_MESSAGE_ID,
                f"{label}: ID {node.id} is already used by message '{earlier.name}'",
                node.span,
                notes=(DiagnosticNote("first used here", earlier.span),),
            )
            excluded = True
        else:
            self._message_ids[node.id] = node

        earlier = self._message_names.get(node.name)
        if earlier is not None:
            self._diag.report(
                Codes.DUPLICATE_MESSAGE_NAME,
                f"{label}: name is already used by message {earlier.id}",
                node.span,
                notes=(DiagnosticNote("first used here", earlier.span),),
            )
            excluded = True
        else:
            self._message_names[node.name] = node

        dlc_ok = self._valid_dlc(node.dlc)
        if not dlc_ok:
            allowed = "0..8 or a CAN-FD size" if self._config.allow_can_fd else "0..8"
            self._diag.report(
                Codes.INVALID_DLC,
                f"{label}: DLC {node.dlc} is invalid (expected {allowed})",
                node.span,
            )
            excluded = True

        self._check_node(node.transmitter, f"transmitter of {label}")

        if excluded:
            self._exclude(index)
        self._validate_signals(index, node, dlc_ok)

    def _validate_signals(self, index: int, message: A.MessageDecl, dlc_ok: bool) -> None:
        size_bits = 8 * message.dlc
        names: Dict[str, A.SignalDecl] = {}
        bad: Set[int] = set()

        # per-signal rules
        for j, sig in enumerate(message.signals):
            label = f"signal '{sig.name}' of message {message.id}"

            earlier = names.get(sig.name)
            if earlier is not None:
                self._diag.report(
                    Codes.DUPLICATE_SIGNAL_NAME,
                    f"{label} is defined more than once in the message",
                    sig.span,
                    notes=(DiagnosticNote("first defined here", earlier.span),),
                )
                bad.add(j)
            else:
                names[sig.name] = sig

            layout_ok = True
            if sig.endianness not in (0, 1):
                self._diag.report(
                    Codes.INVALID_BYTE_ORDER,
                    f"{label}: byte order must be 0 (Motorola) or 1 (Intel), "
                    f"got {sig.endianness}",
                    sig.span,
                )
                layout_ok = False
            if not 1 <= sig.length <= 64:
                self._diag.report(
                    Codes.INVALID_SIGNAL_LENGTH,
                    f"{label}: length {sig.length} is outside 1..64",
                    sig.span,
                )
                layout_ok = False
            if sig.start_bit < 0:
                self._diag.report(
                    Codes.INVALID_BIT_RANGE,
                    f"{label}: start bit {sig.start_bit} is negative",
                    sig.span,
                )
                layout_ok = False
            elif layout_ok and dlc_ok:
                first = linear_start(sig.start_bit, sig.endianness)
                if first + sig.length > size_bits:
                    self._diag.report(
                        Codes.INVALID_BIT_RANGE,
                        f"{label}: bits {sig.start_bit}|{sig.length} do not fit "
                        f"in the {size_bits}-bit payload (DLC {message.dlc})",
                        sig.span,
                    )
                    layout_ok = False
            if not layout_ok:
                bad.add(j)

            if self._non_finite(
                sig.span, label,
                scale=sig.scale, offset=sig.offset,
                minimum=sig.minimum, maximum=sig.maximum,
            ):
                bad.add(j)
            elif sig.minimum > sig.maximum:
                self._diag.report(
                    Codes.INVERTED_RANGE,
                    f"{label}: minimum {sig.minimum:g} exceeds maximum {sig.maximum:g}",
                    sig.span,
                )

            for receiver in sig.receivers:
                self._check_node(receiver, f"receiver of {label}")

        self._validate_multiplexing(message, bad)
        self._validate_overlap(message, bad, dlc_ok)

        for j in sorted(bad):
            self._exclude(index, j)

    def _validate_multiplexing(self, message: A.MessageDecl, bad: Set[int]) -> None:
        muxer: Optional[A.SignalDecl] = None
        for j, sig in enumerate(message.signals):
            if j in bad or not sig.mux_role.is_muxer:
                continue
            if muxer is None:
                muxer = sig
                continue
            self._diag.report(
                Codes.MULTIPLE_MULTIPLEXERS,
                f"message {message.id} already has multiplexer '{muxer.name}'; "
                f"'{sig.name}' cannot be a second one",
                sig.span,
                notes=(DiagnosticNote("multiplexer defined here", muxer.span),),
            )
            bad.add(j)

        if muxer is not None:
            return
        for j, sig in enumerate(message.signals):
            if j in bad or not sig.mux_role.is_muxed:
                continue
            self._diag.report(
                Codes.MISSING_MULTIPLEXER,
                f"signal '{sig.name}' is multiplexed ({sig.mux_role}) but message "
                f"{message.id} has no multiplexer signal",
                sig.span,
            )
            bad.add(j)

    def _validate_overlap(self, message: A.MessageDecl, bad: Set[int], dlc_ok: bool) -> None:
        """Later signal of an overlapping pair in one mux context is excluded."""
        if not dlc_ok:
            return
        placed: Dict[Optional[int], List[Tuple[int, A.SignalDecl]]] = {}
        for j, sig in enumerate(message.signals):
            if j in bad:
                continue
            mask = occupied_bits(sig.start_bit, sig.length, sig.endianness)
            context = sig.mux_role.context
            clash = next(
                (other for other_mask, other in placed.get(context, ())
                 if other_mask & mask),
                None,
            )
            if clash is None:
                placed.setdefault(context, []).append((mask, sig))
                continue
            where = "" if context is None else f" (multiplexer value {context})"
            self._diag.report(
                Codes.OVERLAPPING_SIGNALS,
                f"signal '{sig.name}' overlaps signal '{clash.name}' in message "
                f"{message.id}{where}",
                sig.span,
                notes=(DiagnosticNote(f"'{clash.name}' defined here", clash.span),),
            )
            bad.add(j)

    def visit_message_transmitters(self, node: A.MessageTransmittersDecl) -> None:
        ref = A.ObjectRef(A.ObjectKind.MESSAGE, message_id=node.message_id)
        self._check_ref(ref, node.span, "BO_TX_BU_")
        for ident in node.transmitters:
            self._check_node(ident, f"transmitter of message {node.message_id}")

    def visit_signal_value_type(self, node: A.SignalValueTypeDecl) -> None:
        ref = A.ObjectRef(A.ObjectKind.SIGNAL, node.message_id, node.signal_name)
        self._check_ref(ref, node.span, "SIG_VALTYPE_")
        try:
            value_type = SignalValueType(node.value_type)
        except ValueError:
            self._diag.report(
                Codes.INVALID_VALUE_TYPE,
                f"value type {node.value_type} of signal '{node.signal_name}' "
                f"must be 0 (integer), 1 (float) or 2 (double)",
                node.span,
            )
            self._exclude(self.index)
            return
        sig = self._ctx.signals.get((node.message_id, node.signal_name))
        bits = value_type.bit_length
        if sig is not None and bits is not None and sig.length != bits:
            self._diag.report(
                Codes.VALUE_TYPE_LENGTH_MISMATCH,
                f"signal '{node.signal_name}' is declared {value_type.name} "
                f"but is {sig.length} bits long (expected {bits})",
                node.span,
                notes=(DiagnosticNote("signal defined here", sig.span),),
            )

    def visit_signal_group(self, node: A.SignalGroupDecl) -> None:
        ref = A.ObjectRef(A.ObjectKind.MESSAGE, message_id=node.message_id)
        self._check_ref(ref, node.span, f"signal group '{node.name}'")
        if node.message_id not in self._ctx.messages:
            return
        for ident in node.signals:
            sig_ref = A.ObjectRef(A.ObjectKind.SIGNAL, node.message_id, ident.name)
            self._check_ref(sig_ref, ident.span, f"signal group '{node.name}'")

    # ========================================================================
    # Comments, value tables, environment variables
    # ========================================================================

    def visit_comment(self, node: A.CommentDecl) -> None:
        self._check_ref(node.target, node.span, "comment")

    def visit_value_table(self, node: A.ValueTableDecl) -> None:
        if not self._choices_finite(node.choices, node.span, f"value table '{node.name}'"):
            self._exclude(self.index)

    def visit_value_description(self, node: A.ValueDescriptionDecl) -> None:
        self._check_ref(node.target, node.span, "value description")
        if not self._choices_finite(node.choices, node.span, "value description"):
            self._exclude(self.index)

    def visit_env_var(self, node: A.EnvVarDecl) -> None:
        label = f"environment variable '{node.name}'"
        if self._non_finite(
            node.span, label,
            minimum=node.minimum, maximum=node.maximum, initial=node.initial,
        ):
            self._exclude(self.index)
        elif node.minimum > node.maximum:
            self._diag.report(
                Codes.INVERTED_RANGE,
                f"{label}: minimum {node.minimum:g} exceeds maximum {node.maximum:g}",
                node.span,
            )
        for ident in node.access_nodes:
            self._check_node(ident, f"access node of {label}")

    # ========================================================================
    # Attributes
    # ========================================================================

    def visit_attribute_def(self, node: A.AttributeDefDecl) -> None:
        label = f"attribute '{node.name}'"
        if node.value_kind is A.AttributeValueKind.ENUM and not node.enum_values:
            self._diag.report(
                Codes.EMPTY_ENUM_ATTRIBUTE,
                f"{label} is an ENUM without any values",
                node.span,
            )
            self._exclude(self.index)
            return
        if self._non_finite(node.span, label, minimum=node.minimum, maximum=node.maximum):
            self._exclude(self.index)
            return
        if (
            node.minimum is not None
            and node.maximum is not None
            and node.minimum > node.maximum
        ):
            self._diag.report(
                Codes.INVERTED_RANGE,
                f"{label}: minimum {node.minimum} exceeds maximum {node.maximum}",
                node.span,
            )
        self._attributes[node.name] = node

    def visit_attribute_default(self, node: A.AttributeDefaultDecl) -> None:
        self._check_attribute_value(node.name, node.value, node.span, "default")

    def visit_attribute_assign(self, node: A.AttributeAssignDecl) -> None:
        definition = self._attributes.get(node.name)
        if definition is not None and definition.object_kind is not node.target.kind:
            expected = definition.object_kind.value or "network"
            actual = node.target.kind.value or "network"
            self._diag.report(
                Codes.ATTRIBUTE_OBJECT_MISMATCH,
                f"attribute '{node.name}' is defined for {expected} objects "
                f"but assigned to {node.target.describe()} ({actual})",
                node.span,
                notes=(DiagnosticNote("defined here", definition.span),),
            )
        self._check_ref(node.target, node.span, f"attribute '{node.name}'")
        self._check_attribute_value(
            node.name, node.value, node.span, f"value for {node.target.describe()}"
        )

    def _check_attribute_value(
        self, name: str, value: A.AttributeValue, span: Span, what: str
    ) -> None:
        if self._non_finite(span, f"attribute '{name}' {what}", value=value):
            self._exclude(self.index)
            return

        definition = self._attributes.get(name)
        if definition is None:
            self._diag.report(
                Codes.UNDEFINED_ATTRIBUTE,
                f"attribute '{name}' is used before any BA_DEF_ declares it; "
                f"the value is kept",
                span,
            )
            return

        kind = definition.value_kind
        note = (DiagnosticNote("defined here", definition.span),)

        def mismatch(expected: str) -> None:
            self._diag.report(
                Codes.ATTRIBUTE_TYPE_MISMATCH,
                f"attribute '{name}' {what} {value!r} is not {expected} "
                f"(attribute is {kind.value})",
                span,
                notes=note,
            )

        def out_of_range(detail: str) -> None:
            self._diag.report(
                Codes.ATTRIBUTE_OUT_OF_RANGE,
                f"attribute '{name}' {what} {value!r} {detail}",
                span,
                notes=note,
            )

        if kind is A.AttributeValueKind.STRING:
            if not isinstance(value, str):
                mismatch("a string")
            return

        if kind is A.AttributeValueKind.ENUM:
            if isinstance(value, str):
                if value not in definition.enum_values:
                    out_of_range("is not one of the enum values")
            elif isinstance(value, int):
                if not 0 <= value < len(definition.enum_values):
                    out_of_range(f"is not a valid index into {len(definition.enum_values)} values")
            else:
                mismatch("an enum value or index")
            return

        if isinstance(value, str):
            mismatch("a number")
            return
        if kind in (A.AttributeValueKind.INT, A.AttributeValueKind.HEX) and not isinstance(value, int):
            mismatch("an integer")
            return

        lo, hi = definition.minimum, definition.maximum
        if lo is None or hi is None or (lo == 0 and hi == 0):
            return  # unbounded
        if not lo <= value <= hi:
            out_of_range(f"is outside [{lo}, {hi}]")


def validate(
    file: A.DbcFile,
    diagnostics: Optional[DiagnosticCollector] = None,
    config: Optional[ParserConfig] = None,
) -> ValidationResult:
    """
    Validate a parsed DBC file.

    This is the main entry point for semantic validation.  Diagnostics are
    appended to *diagnostics* (a fresh collector when omitted) and also
    returned on the result.
    """
    if diagnostics is None:
        diagnostics = DiagnosticCollector(
            warnings_as_errors=bool(config and config.warnings_as_errors)
        )
    return Validator(diagnostics, config).validate(file)
