# tests/test_semantic.py
"""
Tests for the semantic validator: one class per rule family, checking
both the diagnostics and which entities end up excluded.
"""

import pytest

from dbcparser import ast as A
from dbcparser.config import ParserConfig
from dbcparser.errors import Codes, DiagnosticCollector, Severity
from dbcparser.lexer import tokenize
from dbcparser.parser import parse
from dbcparser.semantic import ValidationResult, Validator, validate
from tests.conftest import (
    FULL_DBC,
    MESSAGE_HEADER,
    MULTIPLEXED_DBC,
    parse_text,
    slugs,
    with_signals,
)

# MESSAGE_HEADER puts BU_ at index 0 and the message at index 1.
MSG = 1


def check(text, config=None):
    """Parse *text* (which must be syntactically clean) and validate it."""
    file, collector = parse_text(text)
    assert not collector.diagnostics, collector.format()
    return validate(file, collector, config)


def sig(name, layout, mux="", limits="[0|255]", receivers="ECU", factor="(1,0)"):
    marker = f" {mux}" if mux else ""
    return f'SG_ {name}{marker} : {layout} {factor} {limits} "" {receivers}'


class TestCleanInput:

    def test_full_file_has_no_findings(self):
        result = check(FULL_DBC)
        assert result.diagnostics == ()
        assert result.excluded == frozenset()
        assert not result.has_errors

    def test_multiplexed_file_has_no_findings(self):
        assert check(MULTIPLEXED_DBC).diagnostics == ()


class TestMessageIdentity:

    def test_duplicate_id_in_hand_built_tree(self):
        ecu = A.Ident("ECU")
        file = A.DbcFile((
            A.NodeListDecl((ecu,)),
            A.MessageDecl(10, "First", 8, ecu),
            A.MessageDecl(10, "Second", 8, ecu),
        ))
        result = validate(file)
        assert slugs(result.diagnostics) == ["duplicate-message-id"]
        assert "'First'" in result.diagnostics[0].message
        assert result.excluded == {(2,)}

    def test_duplicate_name(self):
        result = check(
            "BU_: ECU\n"
            "BO_ 10 Same: 8 ECU\n"
            "BO_ 11 Same: 8 ECU\n"
        )
        (diag,) = result.diagnostics
        assert diag.code == Codes.DUPLICATE_MESSAGE_NAME
        assert diag.severity is Severity.ERROR
        assert diag.notes[0].span.start_line == 2
        assert result.is_excluded(2)
        assert not result.is_excluded(1)

    @pytest.mark.parametrize("raw_id", [2048, 0xA0000000, 0x100000000])
    def test_invalid_can_id(self, raw_id):
        result = check(f"BU_: ECU\nBO_ {raw_id} Bad: 8 ECU\n")
        assert slugs(result.diagnostics) == ["invalid-can-id"]
        assert result.is_excluded(1)

    @pytest.mark.parametrize("raw_id", [0, 0x7FF, 0x80000000, 0x9FFFFFFF])
    def test_valid_can_id(self, raw_id):
        assert check(f"BU_: ECU\nBO_ {raw_id} Ok: 8 ECU\n").diagnostics == ()


class TestDlc:

    def test_classic_dlc_out_of_range(self):
        result = check("BU_: ECU\nBO_ 10 F: 9 ECU\n")
        assert slugs(result.diagnostics) == ["invalid-dlc"]
        assert result.is_excluded(1)

    def test_can_fd_sizes_allowed_by_default(self):
        assert check("BU_: ECU\nBO_ 10 F: 64 ECU\n").diagnostics == ()

    def test_can_fd_sizes_rejected_when_disabled(self):
        result = check(
            "BU_: ECU\nBO_ 10 F: 12 ECU\n", ParserConfig(allow_can_fd=False)
        )
        assert slugs(result.diagnostics) == ["invalid-dlc"]
        assert "expected 0..8)" in result.diagnostics[0].message

    def test_bit_range_skipped_when_dlc_invalid(self):
        result = check("BU_: ECU\nBO_ 10 F: 9 ECU\n " + sig("S", "70|8@1+") + "\n")
        assert slugs(result.diagnostics) == ["invalid-dlc"]

    def test_signals_of_excluded_message_still_checked(self):
        result = check("BU_: ECU\nBO_ 2048 F: 8 ECU\n " + sig("S", "0|0@1+") + "\n")
        assert slugs(result.diagnostics) == ["invalid-can-id", "invalid-signal-length"]


class TestSignalLayout:

    @pytest.mark.parametrize("layout", ["60|8@1+", "56|8@0+", "-1|8@1+"])
    def test_invalid_bit_range(self, layout):
        result = check(with_signals(sig("S", layout)))
        assert slugs(result.diagnostics) == ["invalid-bit-range"]
        assert result.is_excluded(MSG, 0)
        assert not result.is_excluded(MSG)

    @pytest.mark.parametrize("layout", ["56|8@1+", "63|8@0+", "7|64@0+", "0|64@1+"])
    def test_signal_filling_payload_end(self, layout):
        assert check(with_signals(sig("S", layout))).diagnostics == ()

    def test_range_uses_message_dlc(self):
        result = check("BU_: ECU\nBO_ 10 F: 2 ECU\n " + sig("S", "0|17@1+") + "\n")
        assert slugs(result.diagnostics) == ["invalid-bit-range"]

    @pytest.mark.parametrize("length", [0, 65])
    def test_invalid_length(self, length):
        result = check(with_signals(sig("S", f"0|{length}@1+")))
        assert slugs(result.diagnostics) == ["invalid-signal-length"]
        assert result.is_excluded(MSG, 0)

    def test_invalid_byte_order(self):
        result = check(with_signals(sig("S", "0|8@2+")))
        assert slugs(result.diagnostics) == ["invalid-byte-order"]
        assert result.is_excluded(MSG, 0)

    def test_duplicate_signal_name_excludes_later(self):
        result = check(with_signals(sig("S", "0|8@1+"), sig("S", "8|8@1+")))
        (diag,) = result.diagnostics
        assert diag.code == Codes.DUPLICATE_SIGNAL_NAME
        assert diag.span.start_line == 4
        assert result.excluded == {(MSG, 1)}


class TestSignalValues:

    def test_non_finite_factor(self):
        result = check(with_signals(sig("S", "0|8@1+", factor="(nan,inf)")))
        (diag,) = result.diagnostics
        assert diag.code == Codes.NON_FINITE_VALUE
        assert "scale, offset" in diag.message
        assert result.is_excluded(MSG, 0)

    def test_inverted_range_is_warning(self):
        result = check(with_signals(sig("S", "0|8@1+", limits="[10|0]")))
        (diag,) = result.diagnostics
        assert diag.code == Codes.INVERTED_RANGE
        assert diag.severity is Severity.WARNING
        assert result.excluded == frozenset()


class TestOverlap:

    def test_later_signal_excluded(self):
        result = check(with_signals(sig("S", "0|8@1+"), sig("T", "4|8@1+")))
        (diag,) = result.diagnostics
        assert diag.code == Codes.OVERLAPPING_SIGNALS
        assert "'T' overlaps signal 'S'" in diag.message
        assert diag.notes[0].span.start_line == 3
        assert result.excluded == {(MSG, 1)}

    def test_mixed_byte_orders(self):
        result = check(with_signals(sig("M", "7|8@0+"), sig("I", "0|4@1+")))
        assert slugs(result.diagnostics) == ["overlapping-signals"]

    def test_adjacent_motorola_signals(self):
        result = check(with_signals(sig("A", "7|8@0+"), sig("B", "15|16@0+")))
        assert result.diagnostics == ()

    def test_excluded_signal_does_not_cause_overlap(self):
        result = check(with_signals(sig("S", "0|8@3+"), sig("T", "0|8@1+")))
        assert slugs(result.diagnostics) == ["invalid-byte-order"]

    def test_same_mux_value_overlaps(self):
        result = check(with_signals(
            sig("Mux", "0|8@1+", "M"),
            sig("A", "8|16@1+", "m1"),
            sig("B", "16|8@1+", "m1"),
        ))
        (diag,) = result.diagnostics
        assert diag.code == Codes.OVERLAPPING_SIGNALS
        assert "multiplexer value 1" in diag.message
        assert result.excluded == {(MSG, 2)}

    def test_different_mux_values_share_bits(self):
        result = check(with_signals(
            sig("Mux", "0|8@1+", "M"),
            sig("A", "8|16@1+", "m1"),
            sig("B", "8|16@1+", "m2"),
        ))
        assert result.diagnostics == ()

    def test_muxed_and_unmuxed_contexts_are_separate(self):
        result = check(with_signals(
            sig("Mux", "0|8@1+", "M"),
            sig("A", "8|8@1+", "m1"),
            sig("Plain", "8|8@1+"),
        ))
        assert result.diagnostics == ()


class TestMultiplexing:

    def test_second_multiplexer_rejected(self):
        result = check(with_signals(
            sig("Mux", "0|8@1+", "M"),
            sig("Mux2", "8|8@1+", "M"),
        ))
        (diag,) = result.diagnostics
        assert diag.code == Codes.MULTIPLE_MULTIPLEXERS
        assert "already has multiplexer 'Mux'" in diag.message
        assert result.excluded == {(MSG, 1)}

    def test_muxed_signal_without_multiplexer(self):
        result = check(with_signals(sig("A", "8|8@1+", "m1"), sig("B", "0|8@1+")))
        (diag,) = result.diagnostics
        assert diag.code == Codes.MISSING_MULTIPLEXER
        assert "(m1)" in diag.message
        assert result.excluded == {(MSG, 0)}

    def test_invalid_multiplexer_leaves_muxed_signals_orphaned(self):
        result = check(with_signals(sig("Mux", "0|0@1+", "M"), sig("A", "8|8@1+", "m1")))
        assert slugs(result.diagnostics) == ["invalid-signal-length", "missing-multiplexer"]
        assert result.excluded == {(MSG, 0), (MSG, 1)}


class TestNodes:

    def test_undeclared_transmitter_and_receiver(self):
        result = check(
            "BU_: ECU\n"
            "BO_ 10 F: 8 Ghost\n"
            " " + sig("S", "0|8@1+", receivers="Phantom,Vector__XXX") + "\n"
        )
        assert slugs(result.diagnostics) == ["undefined-node", "undefined-node"]
        assert all(d.severity is Severity.WARNING for d in result.diagnostics)
        assert "'Ghost'" in result.diagnostics[0].message
        assert result.excluded == frozenset()

    def test_sentinel_transmitter(self):
        assert check("BU_: ECU\nBO_ 10 F: 8 Vector__XXX\n").diagnostics == ()

    def test_custom_sentinel(self):
        config = ParserConfig(no_node_sentinel="NONE")
        result = check("BU_: ECU\nBO_ 10 F: 8 NONE\nBO_ 11 G: 8 Vector__XXX\n", config)
        assert slugs(result.diagnostics) == ["undefined-node"]
        assert "Vector__XXX" in result.diagnostics[0].message

    def test_duplicate_node(self):
        result = check("BU_: A B A\n")
        (diag,) = result.diagnostics
        assert diag.code == Codes.DUPLICATE_NODE
        assert diag.span.start_col == 10
        assert diag.notes[0].span.start_col == 6


class TestReferences:

    def test_forward_references_resolve(self):
        text = 'CM_ BO_ 10 "c";\nCM_ SG_ 10 S "d";\n' + with_signals(sig("S", "0|8@1+"))
        assert check(text).diagnostics == ()

    @pytest.mark.parametrize("line, slug", [
        ('CM_ BO_ 99 "c";', "unknown-message"),
        ('CM_ SG_ 10 Nope "c";', "unknown-signal"),
        ('CM_ SG_ 99 S "c";', "unknown-message"),
        ('CM_ EV_ Nope "c";', "unknown-env-var"),
        ('CM_ BU_ Nope "c";', "undefined-node"),
        ('VAL_ 10 Nope 0 "a";', "unknown-signal"),
        ('VAL_ Nope 0 "a";', "unknown-env-var"),
        ("BO_TX_BU_ 99 : ECU;", "unknown-message"),
        ("BO_TX_BU_ 10 : Ghost;", "undefined-node"),
        ("SIG_GROUP_ 10 G 1 : S Nope;", "unknown-signal"),
        ("SIG_GROUP_ 99 G 1 : S;", "unknown-message"),
        ("SIG_VALTYPE_ 10 Nope : 0;", "unknown-signal"),
    ])
    def test_dangling_reference(self, line, slug):
        result = check(with_signals(sig("S", "0|8@1+")) + line + "\n")
        assert slugs(result.diagnostics) == [slug]
        assert result.diagnostics[0].severity is Severity.WARNING
        assert result.excluded == frozenset()


class TestValueTypes:

    def test_unknown_value_type_excluded(self):
        result = check(with_signals(sig("S", "0|32@1+")) + "SIG_VALTYPE_ 10 S : 3;\n")
        assert slugs(result.diagnostics) == ["invalid-value-type"]
        assert result.is_excluded(2)

    def test_length_mismatch_is_warning(self):
        result = check(with_signals(sig("S", "0|8@1+")) + "SIG_VALTYPE_ 10 S : 1;\n")
        (diag,) = result.diagnostics
        assert diag.code == Codes.VALUE_TYPE_LENGTH_MISMATCH
        assert "expected 32" in diag.message
        assert not result.is_excluded(2)

    def test_double_needs_64_bits(self):
        result = check(with_signals(sig("S", "0|64@1+")) + "SIG_VALTYPE_ 10 S : 2;\n")
        assert result.diagnostics == ()


class TestValueTablesAndEnvVars:

    def test_non_finite_table_value(self):
        result = check('VAL_TABLE_ T 0 "a" nan "b";\n')
        (diag,) = result.diagnostics
        assert diag.code == Codes.NON_FINITE_VALUE
        assert "value #1" in diag.message
        assert result.is_excluded(0)

    def test_env_var_checks(self):
        result = check(
            "BU_: ECU\n"
            'EV_ V: 0 [10|0] "" 0 1 DUMMY_NODE_VECTOR0 Ghost;\n'
        )
        assert slugs(result.diagnostics) == ["inverted-range", "undefined-node"]
        assert result.excluded == frozenset()

    def test_env_var_non_finite_initial(self):
        result = check('EV_ V: 0 [0|10] "" inf 1 DUMMY_NODE_VECTOR0 Vector__XXX;\n')
        assert slugs(result.diagnostics) == ["non-finite-value"]
        assert result.is_excluded(0)


class TestAttributes:

    def test_value_before_definition(self):
        result = check(
            'BA_ "Cycle" BO_ 10 5;\n'
            + with_signals()
            + 'BA_DEF_ BO_ "Cycle" INT 0 100;\n'
        )
        (diag,) = result.diagnostics
        assert diag.code == Codes.UNDEFINED_ATTRIBUTE
        assert diag.severity is Severity.WARNING
        assert "the value is kept" in diag.message
        assert result.excluded == frozenset()

    def test_default_without_definition(self):
        result = check('BA_DEF_DEF_ "Cycle" 5;\n')
        assert slugs(result.diagnostics) == ["undefined-attribute"]

    @pytest.mark.parametrize("definition, value, slug", [
        ('BO_ "A" INT 0 100', "500", "attribute-out-of-range"),
        ('BO_ "A" INT 0 100', "1.5", "attribute-type-mismatch"),
        ('BO_ "A" HEX 0 255', '"x"', "attribute-type-mismatch"),
        ('BO_ "A" FLOAT 0 1', "2.5", "attribute-out-of-range"),
        ('BO_ "A" STRING', "5", "attribute-type-mismatch"),
        ('BO_ "A" ENUM "On","Off"', '"Maybe"', "attribute-out-of-range"),
        ('BO_ "A" ENUM "On","Off"', "2", "attribute-out-of-range"),
        ('BO_ "A" ENUM "On","Off"', "0.5", "attribute-type-mismatch"),
    ])
    def test_value_checked_against_definition(self, definition, value, slug):
        result = check(
            with_signals()
            + f"BA_DEF_ {definition};\n"
            + f'BA_ "A" BO_ 10 {value};\n'
        )
        (diag,) = result.diagnostics
        assert diag.code == slug
        assert diag.notes[0].message == "defined here"
        assert result.excluded == frozenset()

    @pytest.mark.parametrize("definition, value", [
        ('BO_ "A" INT 0 100', "100"),
        ('BO_ "A" FLOAT 0 0', "1e9"),
        ('BO_ "A" FLOAT 0 10', "3"),
        ('BO_ "A" ENUM "On","Off"', '"Off"'),
        ('BO_ "A" ENUM "On","Off"', "1"),
        ('BO_ "A" STRING', '"text"'),
    ])
    def test_accepted_values(self, definition, value):
        result = check(
            with_signals()
            + f"BA_DEF_ {definition};\n"
            + f'BA_ "A" BO_ 10 {value};\n'
        )
        assert result.diagnostics == ()

    def test_object_kind_mismatch(self):
        result = check(
            with_signals()
            + 'BA_DEF_ BO_ "Cycle" INT 0 100;\n'
            + 'BA_ "Cycle" BU_ ECU 5;\n'
        )
        (diag,) = result.diagnostics
        assert diag.code == Codes.ATTRIBUTE_OBJECT_MISMATCH
        assert "defined for BO_ objects" in diag.message

    def test_empty_enum_definition(self):
        result = check('BA_DEF_ "E" ENUM;\nBA_DEF_DEF_ "E" "x";\n')
        assert slugs(result.diagnostics) == ["empty-enum-attribute", "undefined-attribute"]
        assert result.excluded == {(0,)}

    def test_inverted_definition_range(self):
        result = check('BA_DEF_ "R" INT 10 0;\n')
        assert slugs(result.diagnostics) == ["inverted-range"]
        assert result.excluded == frozenset()

    def test_non_finite_definition(self):
        result = check('BA_DEF_ "R" FLOAT 0 inf;\n')
        assert slugs(result.diagnostics) == ["non-finite-value"]
        assert result.is_excluded(0)

    def test_non_finite_value(self):
        result = check('BA_DEF_ "F" FLOAT 0 0;\nBA_ "F" nan;\n')
        assert slugs(result.diagnostics) == ["non-finite-value"]
        assert result.excluded == {(1,)}


class TestValidationResult:

    def test_message_exclusion_covers_its_signals(self):
        result = ValidationResult(excluded=frozenset({(3,)}))
        assert result.is_excluded(3)
        assert result.is_excluded(3, 0)
        assert not result.is_excluded(4, 0)

    def test_signal_exclusion_is_local(self):
        result = ValidationResult(excluded=frozenset({(3, 1)}))
        assert result.is_excluded(3, 1)
        assert not result.is_excluded(3)
        assert not result.is_excluded(3, 0)

    def test_result_holds_only_validator_diagnostics(self):
        collector = DiagnosticCollector()
        file = parse(tokenize(b"BU_: A\nFOO_\nBU_: A A\n", collector), collector)
        assert len(collector) == 2  # unknown section, superseded BU_
        result = Validator(collector).validate(file)
        assert slugs(result.diagnostics) == ["duplicate-node"]
        assert len(collector) == 3

    def test_warnings_as_errors(self):
        collector = DiagnosticCollector(warnings_as_errors=True)
        data = ("BU_: ECU\nBO_ 10 F: 8 Ghost\n").encode()
        file = parse(tokenize(data, collector), collector)
        result = validate(file, collector)
        (diag,) = result.diagnostics
        assert diag.code == Codes.UNDEFINED_NODE
        assert diag.severity is Severity.ERROR
        assert result.has_errors
        assert result.excluded == frozenset()

    def test_validator_walk_leaves_tree_unchanged(self):
        file, _ = parse_text(MESSAGE_HEADER)
        before = file.declarations
        validate(file)
        assert file.declarations == before
