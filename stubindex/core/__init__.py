"""
Core module: data models, exceptions, and the stub index.

Models (models.py):
    - Namespace: A module or class, merged across every unit that opens it
    - Member: A method, accessor or alias owned by one namespace
    - Constant / ConstantValue: Constants, with `_` kept as an unknown value
    - Diagnostic: A recoverable problem recorded during a build

Exceptions (exceptions.py):
    - StubIndexError: Base exception for all stubindex errors
    - ParseError: A stub unit could not be parsed
    - SourceError: Stub sources could not be read at all
    - NamespaceNotFoundError: Requested namespace doesn't exist

Index (index.py):
    - StubIndex: Immutable snapshot answering the read-only queries

Building (builder.py, resolver.py) and snapshot swapping (snapshot.py) are
imported from their modules directly.
"""

from stubindex.core.exceptions import (
    ConfigError,
    NamespaceNotFoundError,
    ParseError,
    SourceError,
    StubIndexError,
)
from stubindex.core.models import (
    AliasLink,
    AliasResolution,
    AliasStatus,
    Ancestor,
    AncestorKind,
    Constant,
    ConstantValue,
    Diagnostic,
    DiagnosticKind,
    Member,
    MemberKind,
    MixinKind,
    Namespace,
    NamespaceKind,
    Parameter,
    ParamKind,
    ReceiverKind,
    Reference,
    SearchHit,
    Severity,
    SourceUnit,
    Visibility,
)

__all__ = [
    # Models
    "Namespace",
    "NamespaceKind",
    "Member",
    "MemberKind",
    "Parameter",
    "ParamKind",
    "ReceiverKind",
    "Visibility",
    "Constant",
    "ConstantValue",
    "AliasLink",
    "AliasResolution",
    "AliasStatus",
    "Ancestor",
    "AncestorKind",
    "MixinKind",
    "Reference",
    "SearchHit",
    "SourceUnit",
    "Diagnostic",
    "DiagnosticKind",
    "Severity",
    # Exceptions
    "StubIndexError",
    "ParseError",
    "SourceError",
    "NamespaceNotFoundError",
    "ConfigError",
]
