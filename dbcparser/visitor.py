#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
dbcparser/visitor.py
====================

Visitor infrastructure for DBC declaration traversal.

Provides:
- ``DeclarationVisitor`` — base with default implementations for every
  declaration kind, plus ``walk`` over a whole file in source order
- ``visiting`` — decorator to route several declaration kinds to one method
"""

from __future__ import annotations

import abc
from typing import Any, Callable, Dict, Type

from dbcparser import ast as A

__all__ = [
    "DeclarationVisitor",
    "visiting",
]


class DeclarationVisitor(abc.ABC):
    """Abstract base class for passes over a ``DbcFile``.

    Each ``visit_X`` method corresponds to a declaration type.  The default
    implementations call ``generic_visit``, which does nothing.  Subclasses
    override the methods they care about.

    During :meth:`walk` the index of the declaration being visited is
    available as ``self.index``; passes use it to name excluded entities.
    """

    index: int = -1

    def __init__(self) -> None:
        self._routes: Dict[type, Callable[[Any], Any]] = {}
        for klass in reversed(type(self).__mro__):
            for name, attr in vars(klass).items():
                for node_type in getattr(attr, "_visiting_types", ()):
                    self._routes[node_type] = getattr(self, name)

    def walk(self, file: A.DbcFile) -> None:
        """Visit every live declaration of *file* in source order."""
        for index, decl in file.indexed():
            self.index = index
            self.visit(decl)
        self.index = -1

    def visit(self, node: A.Declaration) -> Any:
        """Dispatch to the appropriate visit method."""
        route = self._routes.get(type(node))
        if route is not None:
            return route(node)
        return A.dispatch_declaration(node, self)

    def generic_visit(self, node: A.Declaration) -> Any:
        """Called when no specific visitor method exists.

        Default: return None.  Override for catch-all behavior.
        """
        return None

    # --- Header sections ---

    def visit_version(self, node: A.VersionDecl) -> Any:
        return self.generic_visit(node)

    def visit_new_symbols(self, node: A.NewSymbolsDecl) -> Any:
        return self.generic_visit(node)

    def visit_bit_timing(self, node: A.BitTimingDecl) -> Any:
        return self.generic_visit(node)

    def visit_node_list(self, node: A.NodeListDecl) -> Any:
        return self.generic_visit(node)

    # --- Messages ---

    def visit_message(self, node: A.MessageDecl) -> Any:
        return self.generic_visit(node)

    def visit_message_transmitters(self, node: A.MessageTransmittersDecl) -> Any:
        return self.generic_visit(node)

    def visit_signal_value_type(self, node: A.SignalValueTypeDecl) -> Any:
        return self.generic_visit(node)

    def visit_signal_group(self, node: A.SignalGroupDecl) -> Any:
        return self.generic_visit(node)

    # --- Comments & value descriptions ---

    def visit_comment(self, node: A.CommentDecl) -> Any:
        return self.generic_visit(node)

    def visit_value_table(self, node: A.ValueTableDecl) -> Any:
        return self.generic_visit(node)

    def visit_value_description(self, node: A.ValueDescriptionDecl) -> Any:
        return self.generic_visit(node)

    # --- Attributes ---

    def visit_attribute_def(self, node: A.AttributeDefDecl) -> Any:
        return self.generic_visit(node)

    def visit_attribute_default(self, node: A.AttributeDefaultDecl) -> Any:
        return self.generic_visit(node)

    def visit_attribute_assign(self, node: A.AttributeAssignDecl) -> Any:
        return self.generic_visit(node)

    # --- Environment ---

    def visit_env_var(self, node: A.EnvVarDecl) -> Any:
        return self.generic_visit(node)


# ---------------------------------------------------------------------------
# Decorator for method-based visitor dispatch
# ---------------------------------------------------------------------------

def visiting(*node_types: Type[A.Declaration]) -> Callable:
    """Decorator to register a method as handling specific declaration types.

    Usage:
        class Collector(DeclarationVisitor):
            @visiting(A.ValueTableDecl, A.ValueDescriptionDecl)
            def handle_choices(self, node):
                ...
    """
    def decorator(method: Callable) -> Callable:
        method._visiting_types = node_types
        return method
    return decorator
