# tests/test_pipeline.py
"""
End-to-end tests through ``parse_dbc``: the model invariants that hold for
every assembled ``Dbc``, fatal input, and diagnostic rendering.
"""

import json
from unittest.mock import patch

import pytest

from dbcparser import (
    DbcValidationError,
    ParserConfig,
    Severity,
    parse_dbc,
    parse_dbc_file,
)
from dbcparser.errors import Codes
from dbcparser.model import ByteOrder, Sign
from tests.conftest import (
    FULL_DBC,
    MINIMAL_DBC,
    MULTIPLEXED_DBC,
    slugs,
    with_signals,
)


# Inputs mixing valid and invalid content, used for the model invariants.
MESSY_INPUTS = [
    MINIMAL_DBC,
    MULTIPLEXED_DBC,
    FULL_DBC,
    with_signals(
        'SG_ A : 0|8@1+ (1,0) [0|255] "" ECU',
        'SG_ B : 4|8@1+ (1,0) [0|255] "" ECU',
        'SG_ A : 16|8@1+ (1,0) [0|255] "" ECU',
        'SG_ C : 60|8@1+ (1,0) [0|255] "" ECU',
        'SG_ D : 56|8@0+ (1,0) [0|255] "" ECU',
        'SG_ E : 40|8@0+ (1,0) [0|255] "" ECU',
    ),
    (
        "BU_: ECU\n"
        "BO_ 1 One: 2 ECU\n"
        ' SG_ X : 0|16@1+ (1,0) [0|1] "" ECU\n'
        "BO_ 1 OneAgain: 1 ECU\n"
        ' SG_ X : 0|16@1+ (1,0) [0|1] "" ECU\n'
        ' SG_ Y : 0|4@1+ (1,0) [0|1] "" ECU\n'
        "BO_ 2 One: 8 ECU\n"
        "BO_ 3 Fd: 64 ECU\n"
        ' SG_ Wide : 500|12@1+ (1,0) [0|1] "" ECU\n'
    ),
    (
        "BU_: ECU\n"
        "BO_ 5 Mux: 8 ECU\n"
        ' SG_ M1 M : 0|8@1+ (1,0) [0|1] "" ECU\n'
        ' SG_ M2 M : 8|8@1+ (1,0) [0|1] "" ECU\n'
        ' SG_ P m1 : 8|8@1+ (1,0) [0|1] "" ECU\n'
        ' SG_ Q m1 : 12|8@1+ (1,0) [0|1] "" ECU\n'
        ' SG_ R m2 : 8|8@1+ (1,0) [0|1] "" ECU\n'
    ),
]


def _assembled_signals(dbc):
    for message in dbc.messages.values():
        for signal in message.signals:
            yield message, signal


class TestIdempotence:

    @pytest.mark.parametrize("text", MESSY_INPUTS + ["", 'CM_ "open', "\x01 BU_"])
    def test_same_input_same_result(self, text):
        first = parse_dbc(text)
        second = parse_dbc(text)
        assert first.dbc == second.dbc
        assert first.diagnostics == second.diagnostics


class TestModelInvariants:

    @pytest.mark.parametrize("text", MESSY_INPUTS)
    def test_unique_ids_and_signal_names(self, text):
        dbc = parse_dbc(text).dbc
        names = [m.name for m in dbc.messages.values()]
        assert len(names) == len(set(names))
        for message in dbc.messages.values():
            signal_names = [s.name for s in message.signals]
            assert len(signal_names) == len(set(signal_names))

    @pytest.mark.parametrize("text", MESSY_INPUTS)
    def test_signals_fit_payload(self, text):
        dbc = parse_dbc(text).dbc
        for message, signal in _assembled_signals(dbc):
            assert 1 <= signal.length <= 64
            assert 0 <= signal.linear_start_bit
            assert signal.linear_start_bit + signal.length <= 8 * message.dlc
            assert signal.bit_mask < (1 << message.size_bits)

    @pytest.mark.parametrize("text", MESSY_INPUTS)
    def test_no_overlap_within_a_context(self, text):
        dbc = parse_dbc(text).dbc
        for message in dbc.messages.values():
            signals = message.signals
            for i, a in enumerate(signals):
                for b in signals[i + 1:]:
                    if a.multiplexer_value == b.multiplexer_value:
                        assert not a.bit_mask & b.bit_mask, (a.name, b.name)

    @pytest.mark.parametrize("text", MESSY_INPUTS)
    def test_at_most_one_multiplexer(self, text):
        dbc = parse_dbc(text).dbc
        for message in dbc.messages.values():
            muxers = [s for s in message.signals if s.is_multiplexer]
            assert len(muxers) <= 1
            if not muxers:
                assert all(s.multiplexer_value is None for s in message.signals)


class TestLastDefinitionWins:

    def test_second_message_kept(self):
        result = parse_dbc(
            "BU_: ECU\n"
            "BO_ 10 First: 8 ECU\n"
            ' SG_ A : 0|8@1+ (1,0) [0|255] "" ECU\n'
            "BO_ 10 Second: 4 ECU\n"
            ' SG_ B : 0|8@1+ (1,0) [0|255] "" ECU\n'
        )
        assert list(result.dbc.messages) == [10]
        msg = result.dbc.messages[10]
        assert (msg.name, msg.dlc) == ("Second", 4)
        assert [s.name for s in msg.signals] == ["B"]
        (diag,) = result.warnings
        assert diag.code == Codes.DUPLICATE_DEFINITION
        assert diag.span.start_line == 2
        assert result.ok

    def test_value_between_attribute_definitions(self):
        result = parse_dbc(
            "BU_: ECU\n"
            "BO_ 1 A: 8 ECU\n"
            'BA_DEF_ BO_ "X" INT 0 10;\n'
            'BA_ "X" BO_ 1 50;\n'
            'BA_DEF_ BO_ "X" INT 0 100;\n'
        )
        assert slugs(result.diagnostics) == ["duplicate-definition"]
        assert result.dbc.attribute_defs["X"].maximum == 100
        assert result.dbc.messages[1].attributes == {"X": 50}


class TestRecoverability:

    def test_one_bad_signal_line(self):
        result = parse_dbc(
            "BU_: ECU\n"
            "BO_ 10 A: 8 ECU\n"
            ' SG_ S1 : 0|8@1+ (1,0) [0|255] "" ECU\n'
            ' SG_ S2 : x|8@1+ (1,0) [0|255] "" ECU\n'
            ' SG_ S3 : 16|8@1+ (1,0) [0|255] "" ECU\n'
            "BO_ 11 B: 8 ECU\n"
            ' SG_ T1 : 0|8@1+ (1,0) [0|255] "" ECU\n'
        )
        (error,) = result.errors
        assert error.span.start_line == 4
        assert [s.name for s in result.dbc.messages[10].signals] == ["S1", "S3"]
        assert [s.name for s in result.dbc.messages[11].signals] == ["T1"]
        assert not result.ok

    def test_missing_quote_stays_on_its_line(self):
        result = parse_dbc(
            "BU_: ECU\n"
            "BO_ 1 A: 8 ECU\n"
            ' SG_ S : 0|8@1+ (1,0) [0|255] "unit ECU\n'
            "BO_ 2 B: 8 ECU\n"
            ' SG_ T : 0|8@1+ (1,0) [0|255] "" ECU\n'
        )
        (diag,) = result.diagnostics
        assert diag.code == Codes.UNTERMINATED_STRING
        assert diag.span.start_line == 3
        assert list(result.dbc.messages) == [1, 2]
        assert result.dbc.messages[1].signals == ()
        assert [s.name for s in result.dbc.messages[2].signals] == ["T"]

    def test_many_errors_reported_in_one_run(self):
        result = parse_dbc(
            "BU_: ECU\n"
            "BO_ 10 A: 9 ECU\n"
            "BO_ x B: 8 ECU\n"
            "BO_ 2048 C: 8 ECU\n"
            "BO_ 12 D: 8 ECU\n"
            ' SG_ S : 0|0@1+ (1,0) [0|255] "" ECU\n'
        )
        assert slugs(result.errors) == [
            "unexpected-token", "invalid-dlc", "invalid-can-id", "invalid-signal-length",
        ]
        assert list(result.dbc.messages) == [12]


class TestMinimalFile:

    def test_minimal_file_model(self):
        result = parse_dbc(MINIMAL_DBC)
        assert result.errors == []
        (msg,) = result.dbc.messages.values()
        assert (msg.id, msg.name, msg.dlc, msg.transmitter) == (1, "MSG", 8, "ECU")
        (sig,) = msg.signals
        assert sig.name == "S"
        assert (sig.start_bit, sig.length) == (0, 8)
        assert sig.byte_order is ByteOrder.INTEL
        assert sig.sign is Sign.UNSIGNED
        assert (sig.scale, sig.offset, sig.minimum, sig.maximum) == (1, 0, 0, 255)

    def test_bytes_and_str_agree(self):
        assert parse_dbc(MINIMAL_DBC).dbc == parse_dbc(MINIMAL_DBC.encode()).dbc

    def test_crlf_input(self):
        result = parse_dbc(MINIMAL_DBC.replace("\n", "\r\n"))
        assert result.diagnostics == ()
        assert result.dbc == parse_dbc(MINIMAL_DBC).dbc


class TestMultiplexing:

    def test_muxer_and_muxed_may_share_bits_across_values(self):
        result = parse_dbc(with_signals(
            'SG_ Mux M : 0|8@1+ (1,0) [0|255] "" ECU',
            'SG_ A m1 : 8|8@1+ (1,0) [0|255] "" ECU',
            'SG_ B m2 : 8|8@1+ (1,0) [0|255] "" ECU',
        ))
        assert result.diagnostics == ()

    def test_two_m1_signals_overlapping(self):
        result = parse_dbc(with_signals(
            'SG_ Mux M : 0|8@1+ (1,0) [0|255] "" ECU',
            'SG_ A m1 : 8|8@1+ (1,0) [0|255] "" ECU',
            'SG_ B m1 : 12|8@1+ (1,0) [0|255] "" ECU',
        ))
        assert slugs(result.diagnostics) == ["overlapping-signals"]
        assert [s.name for s in result.dbc.messages[10].signals] == ["Mux", "A"]


class TestFatalInput:

    @pytest.mark.parametrize("text, slug", [
        ("", "empty-input"),
        ("\n  // nothing here\n", "empty-input"),
        ('BU_: ECU\nCM_ "never closed', "unterminated-at-eof"),
    ])
    def test_fatal_returns_empty_model(self, text, slug):
        result = parse_dbc(text)
        assert result.fatal
        assert slugs(result.diagnostics) == [slug]
        assert result.dbc.messages == {}
        assert result.dbc.nodes == ()

    def test_open_string_at_end_is_the_only_error(self):
        result = parse_dbc('VERSION ""\nBU_: ECU\nCM_ "open comment')
        (diag,) = result.diagnostics
        assert diag.code == Codes.UNTERMINATED_AT_EOF
        assert diag.span.start_line == 3
        assert result.fatal

    def test_validator_not_run_after_fatal(self):
        with patch("dbcparser.pipeline.validate") as validate, \
                patch("dbcparser.pipeline.assemble") as assemble:
            parse_dbc("")
        validate.assert_not_called()
        assemble.assert_not_called()

    def test_non_fatal_input(self):
        assert not parse_dbc(MINIMAL_DBC).fatal


class TestConfiguration:

    def test_warnings_as_errors(self):
        text = "BU_: ECU\nBO_ 10 F: 8 Ghost\n"
        assert parse_dbc(text).ok
        strict = parse_dbc(text, ParserConfig(warnings_as_errors=True))
        assert not strict.ok
        assert strict.errors[0].severity is Severity.ERROR
        assert 10 in strict.dbc.messages

    def test_filename_used_in_output(self):
        result = parse_dbc("BO_ x", ParserConfig(filename="car.dbc"))
        assert result.format_diagnostics().startswith("car.dbc:1:1: error:")

    def test_parse_dbc_file(self, tmp_path):
        path = tmp_path / "vehicle.dbc"
        path.write_bytes(FULL_DBC.encode())
        result = parse_dbc_file(path)
        assert result.filename == str(path)
        assert result.dbc == parse_dbc(FULL_DBC).dbc

    def test_parse_dbc_file_keeps_explicit_config(self, tmp_path):
        path = tmp_path / "vehicle.dbc"
        path.write_bytes(b"BO_ x")
        result = parse_dbc_file(path, ParserConfig(filename="alias.dbc"))
        assert result.filename == "alias.dbc"


class TestOutput:

    def test_gcc_format_quotes_source_line(self):
        result = parse_dbc("BU_: ECU\nBO_ 10 F 8 ECU\n", ParserConfig(filename="x.dbc"))
        text = result.format_diagnostics()
        lines = text.splitlines()
        assert lines[0] == "x.dbc:2:1: error: expected ':', found '8' [unexpected-token]"
        assert lines[1] == "    BO_ 10 F 8 ECU"
        assert lines[2] == "    " + "^" * 10

    def test_json_format(self):
        result = parse_dbc("BU_: ECU\nBO_ 10 F: 8 Ghost\n")
        (entry,) = json.loads(result.format_diagnostics(format="json"))
        assert entry["code"] == "DBC-3000"
        assert entry["errorId"] == "undefined-node"
        assert entry["severity"] == "warning"
        assert entry["category"] == "semantic-warning"
        assert entry["location"]["line"] == 2

    def test_raise_for_errors(self):
        result = parse_dbc("BO_ x\n", ParserConfig(filename="bad.dbc"))
        with pytest.raises(DbcValidationError) as info:
            result.raise_for_errors()
        assert str(info.value).startswith("1 error(s) in bad.dbc")
        assert info.value.diagnostics == result.diagnostics

    def test_raise_for_errors_ignores_warnings(self):
        parse_dbc("BU_: ECU\nBO_ 10 F: 8 Ghost\n").raise_for_errors()

    def test_diagnostics_in_emission_order(self):
        result = parse_dbc(
            "\x01\n"
            "BU_: ECU\n"
            "FOO_\n"
            "BO_ 10 F: 9 ECU\n"
        )
        assert slugs(result.diagnostics) == [
            "invalid-character", "unknown-section", "invalid-dlc",
        ]
