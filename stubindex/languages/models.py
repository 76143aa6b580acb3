"""Declaration events produced by stub parsers."""

from __future__ import annotations

from dataclasses import dataclass, field

from stubindex.core.models import (
    ConstantValue,
    MixinKind,
    NamespaceKind,
    Parameter,
    ReceiverKind,
    Reference,
    Visibility,
)


@dataclass(frozen=True)
class Event:
    """A declaration event, in source order."""

    line: int


@dataclass(frozen=True)
class OpenNamespace(Event):
    """A `class`/`module` body starts. `path` is already fully qualified."""

    path: tuple[str, ...]
    kind: NamespaceKind
    superclass: Reference | None = None
    doc: str = ""


@dataclass(frozen=True)
class CloseNamespace(Event):
    """The innermost open namespace body ends."""


@dataclass(frozen=True)
class DefineConstant(Event):
    name: str
    value: ConstantValue
    doc: str = ""


@dataclass(frozen=True)
class DefineMethod(Event):
    """A method or accessor definition.

    `visibility` is only set for inline forms such as `private def x`; otherwise
    the builder applies the visibility mode current at this point.
    """

    name: str
    receiver: ReceiverKind
    params: tuple[Parameter, ...] = ()
    doc: str = ""
    accessor: bool = False
    visibility: Visibility | None = None


@dataclass(frozen=True)
class DefineAlias(Event):
    new_name: str
    target: str
    receiver: ReceiverKind = ReceiverKind.INSTANCE
    doc: str = ""


@dataclass(frozen=True)
class SetVisibility(Event):
    """Bare `private`/`protected`/`public`: applies to later members only.

    The mode is tracked per receiver, so `private` in a class body does not
    touch `def self.x` methods and `class << self` keeps its own mode.
    """

    level: Visibility
    receiver: ReceiverKind = ReceiverKind.INSTANCE


@dataclass(frozen=True)
class ChangeVisibility(Event):
    """`private :a, :b`: changes members already declared."""

    names: tuple[str, ...]
    level: Visibility
    receiver: ReceiverKind = ReceiverKind.INSTANCE


@dataclass(frozen=True)
class SetModuleFunction(Event):
    """`module_function`, bare (`names` empty) or with explicit names."""

    names: tuple[str, ...] = ()


@dataclass(frozen=True)
class IncludeModule(Event):
    reference: Reference
    mode: MixinKind = MixinKind.INCLUDE


@dataclass
class ParseResult:
    """Result of parsing one stub unit."""

    unit: str
    events: list[Event] = field(default_factory=list)
