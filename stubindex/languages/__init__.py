"""
Stub parsers: Extract declaration events from stub source text.

This module provides the parsing layer that converts stub units into an
ordered stream of declaration events for the symbol table builder.

Components:
    - StubParser: Protocol defining the parser interface
    - RubyStubParser: tree-sitter based parser for Ruby stub files
    - ParseResult: The unit name and its events, in source order

Events:
    - OpenNamespace / CloseNamespace: class and module bodies
    - DefineConstant, DefineMethod, DefineAlias
    - SetVisibility / ChangeVisibility / SetModuleFunction: visibility modes
    - IncludeModule: include, extend and prepend

Adding a new stub language:
    1. Create a parser class implementing the StubParser protocol
    2. Implement parse_unit() and parse_text() to return a ParseResult of the
       same events
"""

from stubindex.languages.base import StubParser
from stubindex.languages.models import (
    ChangeVisibility,
    CloseNamespace,
    DefineAlias,
    DefineConstant,
    DefineMethod,
    Event,
    IncludeModule,
    OpenNamespace,
    ParseResult,
    SetModuleFunction,
    SetVisibility,
)
from stubindex.languages.ruby import RubyStubParser

__all__ = [
    "StubParser",
    "RubyStubParser",
    "ParseResult",
    "Event",
    "OpenNamespace",
    "CloseNamespace",
    "DefineConstant",
    "DefineMethod",
    "DefineAlias",
    "SetVisibility",
    "ChangeVisibility",
    "SetModuleFunction",
    "IncludeModule",
]
