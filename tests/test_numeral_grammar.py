# tests/test_numeral_grammar.py
"""
Tests that the numeral PEG grammar is well-formed and classifies DBC
numeric literals at the grammar level (before token construction).
"""

import pytest
from parsimonious.exceptions import IncompleteParseError, ParseError

from dbcparser.lexer import NUMERAL_GRAMMAR, classify_numeral


@pytest.fixture(scope="module")
def grammar():
    return NUMERAL_GRAMMAR


class TestGrammarWellFormed:

    def test_default_rule_is_numeral(self, grammar):
        assert grammar.default_rule.name == "numeral"

    def test_all_rules_present(self, grammar):
        for rule in ("numeral", "float", "integer", "fraction",
                     "exponent", "sign", "digits"):
            assert rule in grammar, f"Rule {rule!r} missing"


class TestGrammarRules:

    def test_integer_rule(self, grammar):
        for lit in ("0", "42", "-7", "+3", "2147484672"):
            tree = grammar["integer"].parse(lit)
            assert tree.text == lit

    def test_float_rule(self, grammar):
        for lit in ("0.25", "-40.5", "1e3", "2.5E-3", "6.02e+23"):
            tree = grammar["float"].parse(lit)
            assert tree.text == lit

    def test_float_rule_needs_fraction_or_exponent(self, grammar):
        with pytest.raises(ParseError):
            grammar["float"].parse("12")

    def test_trailing_dot_rejected(self, grammar):
        with pytest.raises((ParseError, IncompleteParseError)):
            grammar.parse("1.")

    def test_second_fraction_rejected(self, grammar):
        with pytest.raises(IncompleteParseError):
            grammar.parse("1.2.3")

    def test_letters_rejected(self, grammar):
        for lit in ("12ab", "0x1F", "1e"):
            with pytest.raises((ParseError, IncompleteParseError)):
                grammar.parse(lit)


class TestClassifyNumeral:

    def test_integers(self):
        assert classify_numeral("0") == 0
        assert classify_numeral("-40") == -40
        assert isinstance(classify_numeral("255"), int)

    def test_floats(self):
        assert classify_numeral("0.25") == 0.25
        assert classify_numeral("1e3") == 1000.0
        assert isinstance(classify_numeral("1.0"), float)

    def test_malformed_returns_none(self):
        for lit in ("1.2.3", "12ab", "1.", "0x10", "--1"):
            assert classify_numeral(lit) is None

    def test_results_are_cached(self):
        classify_numeral.cache_clear()
        classify_numeral("123")
        classify_numeral("123")
        assert classify_numeral.cache_info().hits == 1
