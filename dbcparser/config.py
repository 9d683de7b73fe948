"""dbcparser/config.py — tuning knobs for one parse call, plus logging setup.

Configuration is a plain frozen dataclass handed to
:func:`dbcparser.pipeline.parse_dbc`.  It has no global state: two parses
with different configurations never interfere.

A configuration can be built from any structured mapping (a parsed YAML or
JSON document, a ``[tool.dbcparser]`` table, ...)::

    config = ParserConfig.from_mapping({"allow_can_fd": False})
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, fields
from typing import Any, List, Mapping

from dbcparser.errors import DbcConfigError

#: Node name that DBC tools write where no node applies.
DEFAULT_NO_NODE = "Vector__XXX"


@dataclass(frozen=True)
class ParserConfig:
    """Tuning knobs for the DBC pipeline."""
    filename: str = "<input>"
    allow_can_fd: bool = True
    no_node_sentinel: str = DEFAULT_NO_NODE
    warnings_as_errors: bool = False

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if not self.no_node_sentinel:
            problems.append("no_node_sentinel must not be empty")
        if not self.no_node_sentinel.isidentifier():
            problems.append(
                f"no_node_sentinel {self.no_node_sentinel!r} is not a DBC identifier"
            )
        return problems

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ParserConfig":
        """Build a configuration, rejecting unknown keys and wrong types."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise DbcConfigError(f"unknown configuration key(s): {', '.join(unknown)}")

        kwargs = {}
        for name, value in data.items():
            expected = type(getattr(cls, name))
            if not isinstance(value, expected):
                raise DbcConfigError(
                    f"configuration key {name!r} expects {expected.__name__}, "
                    f"got {type(value).__name__}"
                )
            kwargs[name] = value

        config = cls(**kwargs)
        problems = config.validate()
        if problems:
            raise DbcConfigError("; ".join(problems))
        return config


def configure_logging(verbosity: int = 0) -> None:
    """Set up the ``dbcparser`` logger.

    ``verbosity`` 0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("dbcparser")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
