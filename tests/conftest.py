# tests/conftest.py
"""
Shared DBC sample texts and helpers for the dbcparser test-suite.
"""

from typing import List, Tuple

import pytest

from dbcparser.errors import DiagnosticCollector
from dbcparser.lexer import Token, TokenKind, tokenize
from dbcparser.parser import parse
from dbcparser.pipeline import ParseResult, parse_dbc


# ═══════════════════════════════════════════════════════════════════════
#  Sample inputs
# ═══════════════════════════════════════════════════════════════════════

MINIMAL_DBC = (
    'VERSION "1.0"\n'
    "NS_ :\n"
    "BU_: ECU\n"
    "BO_ 1 MSG: 8 ECU\n"
    ' SG_ S : 0|8@1+ (1,0) [0|255] "" ECU\n'
)

MULTIPLEXED_DBC = '''\
VERSION ""
BU_: ECU
BO_ 300 Muxed: 8 ECU
 SG_ Mux M : 0|8@1+ (1,0) [0|255] "" ECU
 SG_ A m1 : 8|16@1+ (1,0) [0|65535] "" ECU
 SG_ B m2 : 8|16@1+ (1,0) [0|65535] "" ECU
 SG_ C : 32|8@1+ (1,0) [0|255] "" ECU
'''

FULL_DBC = '''\
VERSION "2.1"

NS_ :
\tNS_DESC_
\tCM_
\tBA_DEF_
\tBA_
\tVAL_
\tSIG_VALTYPE_

BS_:

BU_: Engine Gateway Dash

VAL_TABLE_ GearTable 0 "Park" 1 "Reverse" 2 "Neutral" 3 "Drive" ;

BO_ 100 EngineData: 8 Engine
 SG_ EngineSpeed : 0|16@1+ (0.25,0) [0|16383.75] "rpm" Gateway,Dash
 SG_ CoolantTemp : 16|8@1- (1,-40) [-40|215] "degC" Dash
 SG_ Gear : 24|3@1+ (1,0) [0|7] "" Dash

BO_ 2147484672 ExtendedStatus: 8 Gateway
 SG_ Status : 7|8@0+ (1,0) [0|255] "" Dash
 SG_ Voltage : 15|16@0+ (0.001,0) [0|65.535] "V" Dash

BO_ 200 FloatMsg: 8 Dash
 SG_ Ratio : 0|32@1- (1,0) [-1000|1000] "" Engine

BO_TX_BU_ 100 : Engine,Gateway;

CM_ "Vehicle network";
CM_ BU_ Engine "Engine control unit";
CM_ BO_ 100 "Engine status frame";
CM_ SG_ 100 EngineSpeed "Crankshaft speed";

BA_DEF_ BO_ "GenMsgCycleTime" INT 0 10000;
BA_DEF_ SG_ "GenSigStartValue" FLOAT 0 0;
BA_DEF_ "BusType" STRING ;
BA_DEF_ BU_ "NodeLayer" ENUM "App","Diag";
BA_DEF_DEF_ "GenMsgCycleTime" 100;
BA_DEF_DEF_ "BusType" "CAN";
BA_DEF_DEF_ "NodeLayer" "App";
BA_ "BusType" "CAN FD";
BA_ "GenMsgCycleTime" BO_ 100 20;
BA_ "GenSigStartValue" SG_ 100 CoolantTemp 40;
BA_ "NodeLayer" BU_ Dash 1;

VAL_ 100 Gear 0 "Park" 1 "Reverse" 2 "Neutral" 3 "Drive" ;

SIG_VALTYPE_ 200 Ratio : 1;

SIG_GROUP_ 100 Powertrain 1 : EngineSpeed CoolantTemp;
'''

#: A node list and one message, for tests that append a few signal lines.
MESSAGE_HEADER = (
    "BU_: ECU\n"
    "BO_ 10 Frame: 8 ECU\n"
)


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def lex(text) -> Tuple[List[Token], DiagnosticCollector]:
    """Tokenize *text* (str or bytes) eagerly."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    collector = DiagnosticCollector()
    return list(tokenize(data, collector)), collector


def kinds(tokens: List[Token]) -> List[TokenKind]:
    return [t.kind for t in tokens]


def parse_text(text):
    """Tokenize and parse *text*; returns ``(DbcFile, collector)``."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    collector = DiagnosticCollector()
    return parse(tokenize(data, collector), collector), collector


def slugs(diagnostics) -> List[str]:
    return [d.code.slug for d in diagnostics]


def with_signals(*lines: str) -> str:
    """``MESSAGE_HEADER`` followed by the given ``SG_`` lines."""
    return MESSAGE_HEADER + "".join(f" {line}\n" for line in lines)


@pytest.fixture(scope="module")
def full_result() -> ParseResult:
    """``FULL_DBC`` parsed once per module."""
    return parse_dbc(FULL_DBC)
