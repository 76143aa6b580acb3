"""Data models for Stubindex."""

from __future__ import annotations

import weakref
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

SEPARATOR = "::"

# Stub sources write `= _` where the real value is not known.
PLACEHOLDER = "_"


class NamespaceKind(Enum):
    """Kinds of namespaces that can be indexed."""

    MODULE = "module"
    CLASS = "class"


class ReceiverKind(Enum):
    """What a member is called on."""

    INSTANCE = "instance"
    SINGLETON = "singleton"
    MODULE_FUNCTION = "module_function"


class Visibility(Enum):
    """Member visibility."""

    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


class ParamKind(Enum):
    """Shapes a method parameter can take."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    SPLAT = "splat"
    KEYWORD = "keyword"
    KEYWORD_SPLAT = "keyword_splat"
    BLOCK = "block"


class MemberKind(Enum):
    """How a member was declared."""

    METHOD = "method"
    ATTRIBUTE = "attribute"
    ALIAS = "alias"


class MixinKind(Enum):
    """Ways a module can be mixed into a namespace."""

    INCLUDE = "include"
    EXTEND = "extend"
    PREPEND = "prepend"


class AncestorKind(Enum):
    """How an ancestor is reached from the namespace it belongs to."""

    SELF = "self"
    PREPEND = "prepend"
    INCLUDE = "include"
    EXTEND = "extend"
    SUPERCLASS = "superclass"


class DiagnosticKind(Enum):
    """Recoverable problems recorded during a build."""

    PARSE_ERROR = "parse_error"
    UNREADABLE_SOURCE = "unreadable_source"
    NAMESPACE_KIND_CONFLICT = "namespace_kind_conflict"
    SUPERCLASS_MISMATCH = "superclass_mismatch"
    UNRESOLVED_ALIAS = "unresolved_alias"
    ALIAS_CYCLE = "alias_cycle"
    UNRESOLVED_BASE = "unresolved_base"
    INHERITANCE_CYCLE = "inheritance_cycle"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class AliasStatus(Enum):
    """Outcome of resolving an alias."""

    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    CYCLE = "cycle"


def split_name(name: str) -> tuple[str, ...]:
    """Split `A::B::C` (or `::A::B`) into its path segments."""
    return tuple(part for part in name.strip().split(SEPARATOR) if part)


def join_name(path: tuple[str, ...]) -> str:
    """Join path segments back into a fully-qualified name."""
    return SEPARATOR.join(path)


@dataclass(frozen=True)
class SourceUnit:
    """One unit of raw stub text and the name it is known by."""

    name: str
    text: str


@dataclass(frozen=True)
class ConstantValue:
    """Value of a constant as written in the stub.

    `text` is None when the stub only carries the placeholder, so the real
    value is unknown.
    """

    text: str | None = None

    @classmethod
    def from_source(cls, text: str) -> ConstantValue:
        text = text.strip()
        if not text or text == PLACEHOLDER:
            return cls(None)
        return cls(text)

    @property
    def is_unknown(self) -> bool:
        return self.text is None

    def __str__(self) -> str:
        return "<unknown>" if self.text is None else self.text


@dataclass(frozen=True)
class Parameter:
    """A method parameter."""

    name: str
    kind: ParamKind
    default: str | None = None

    def render(self) -> str:
        """Render the parameter as it would appear in a signature."""
        if self.kind == ParamKind.OPTIONAL:
            return f"{self.name} = {self.default}"
        if self.kind == ParamKind.SPLAT:
            return self.name if self.name == "..." else f"*{self.name}"
        if self.kind == ParamKind.KEYWORD:
            return f"{self.name}: {self.default}" if self.default is not None else f"{self.name}:"
        if self.kind == ParamKind.KEYWORD_SPLAT:
            return f"**{self.name}"
        if self.kind == ParamKind.BLOCK:
            return f"&{self.name}"
        return self.name


@dataclass(frozen=True)
class Member:
    """A method, accessor or alias owned by exactly one namespace."""

    name: str
    owner: str
    receiver: ReceiverKind = ReceiverKind.INSTANCE
    visibility: Visibility = Visibility.PUBLIC
    params: tuple[Parameter, ...] = ()
    kind: MemberKind = MemberKind.METHOD
    doc: str = ""
    alias_of: str | None = None
    unit: str | None = None
    line: int | None = None

    @property
    def is_alias(self) -> bool:
        return self.alias_of is not None

    @property
    def key(self) -> tuple[ReceiverKind, str]:
        return (self.receiver, self.name)

    def signature(self) -> str:
        """Render `name(params)`, prefixed with `self.` for singleton members."""
        prefix = "self." if self.receiver == ReceiverKind.SINGLETON else ""
        params = ", ".join(p.render() for p in self.params)
        return f"{prefix}{self.name}({params})"


@dataclass(frozen=True)
class Constant:
    """A constant declared in a namespace."""

    name: str
    owner: str
    value: ConstantValue
    doc: str = ""
    unit: str | None = None
    line: int | None = None


@dataclass(frozen=True)
class AliasLink:
    """Records that `name` is another name for `target` within `owner`."""

    owner: str
    receiver: ReceiverKind
    name: str
    target: str


@dataclass(frozen=True)
class Reference:
    """An unresolved reference to another namespace.

    `scope` is the lexical nesting the reference was written in; it is used to
    resolve relative names innermost first.
    """

    name: str
    scope: tuple[str, ...] = ()

    @property
    def is_absolute(self) -> bool:
        return self.name.startswith(SEPARATOR)

    def candidates(self) -> list[tuple[str, ...]]:
        """Fully-qualified paths this reference may denote, nearest first."""
        path = split_name(self.name)
        if self.is_absolute:
            return [path]
        return [self.scope[:depth] + path for depth in range(len(self.scope), -1, -1)]

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, eq=False)
class Namespace:
    """A module or class in the finished index.

    Identity is the fully-qualified `path`. The parent is held weakly; the
    index owns every namespace.
    """

    path: tuple[str, ...]
    kind: NamespaceKind
    superclass: Reference | None = None
    includes: tuple[Reference, ...] = ()
    extends: tuple[Reference, ...] = ()
    prepends: tuple[Reference, ...] = ()
    constants: Mapping[str, Constant] = field(default_factory=lambda: MappingProxyType({}))
    members: tuple[Member, ...] = ()
    aliases: tuple[AliasLink, ...] = ()
    doc: str = ""
    units: tuple[str, ...] = ()
    _parent_ref: weakref.ReferenceType[Namespace] | None = field(
        default=None, repr=False, compare=False
    )

    @property
    def name(self) -> str:
        return join_name(self.path)

    @property
    def short_name(self) -> str:
        return self.path[-1]

    @property
    def parent(self) -> Namespace | None:
        return self._parent_ref() if self._parent_ref is not None else None

    def get_member(
        self, name: str, receiver: ReceiverKind | None = None
    ) -> Member | None:
        """Get an own member by name, preferring instance members when `receiver` is None."""
        matches = [
            m for m in self.members if m.name == name and receiver in (None, m.receiver)
        ]
        for member in matches:
            if member.receiver == ReceiverKind.INSTANCE:
                return member
        return matches[0] if matches else None


@dataclass(frozen=True)
class Ancestor:
    """One entry of a linearized ancestor chain.

    `inherited` is set when the entry comes from the superclass chain rather
    than from the namespace's own mixins.
    """

    name: str
    kind: AncestorKind
    inherited: bool = False


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem recorded alongside a build."""

    kind: DiagnosticKind
    message: str
    severity: Severity = Severity.ERROR
    unit: str | None = None
    line: int | None = None
    namespace: str | None = None

    def __str__(self) -> str:
        location = ""
        if self.unit:
            location = f"{self.unit}:{self.line}: " if self.line else f"{self.unit}: "
        return f"{location}[{self.kind.value}] {self.message}"


@dataclass(frozen=True)
class AliasResolution:
    """Result of resolving an alias to its canonical member."""

    status: AliasStatus
    member: Member | None = None
    chain: tuple[str, ...] = ()

    @property
    def found(self) -> bool:
        return self.status == AliasStatus.RESOLVED


@dataclass(frozen=True, eq=False)
class SearchHit:
    """A (namespace, member) pair matching a prefix search."""

    namespace: Namespace
    member: Member
