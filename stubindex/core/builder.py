"""Symbol table builder: merges per-unit declaration events into one table."""

from __future__ import annotations

import logging
import weakref
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import partial
from pathlib import Path
from types import MappingProxyType

from stubindex.config import StubIndexConfig
from stubindex.core.exceptions import ParseError
from stubindex.core.index import StubIndex
from stubindex.core.models import (
    AliasLink,
    Constant,
    Diagnostic,
    DiagnosticKind,
    Member,
    MemberKind,
    MixinKind,
    Namespace,
    NamespaceKind,
    ReceiverKind,
    Reference,
    Severity,
    SourceUnit,
    Visibility,
    join_name,
    split_name,
)
from stubindex.core.resolver import DEFAULT_MAX_ALIAS_HOPS, Resolution, Resolver
from stubindex.core.sources import load_units
from stubindex.languages import (
    ChangeVisibility,
    CloseNamespace,
    DefineAlias,
    DefineConstant,
    DefineMethod,
    Event,
    IncludeModule,
    OpenNamespace,
    ParseResult,
    RubyStubParser,
    SetModuleFunction,
    SetVisibility,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

# Top-level methods and constants belong to Object.
_TOP_LEVEL = ("Object",)


@dataclass
class _NamespaceState:
    """Mutable namespace while units are still being merged."""

    path: tuple[str, ...]
    kind: NamespaceKind
    implicit: bool = False
    superclass: Reference | None = None
    includes: list[Reference] = field(default_factory=list)
    extends: list[Reference] = field(default_factory=list)
    prepends: list[Reference] = field(default_factory=list)
    constants: dict[str, Constant] = field(default_factory=dict)
    members: dict[tuple[ReceiverKind, str], Member] = field(default_factory=dict)
    doc: str = ""
    units: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return join_name(self.path)

    def mixins(self, mode: MixinKind) -> list[Reference]:
        if mode == MixinKind.EXTEND:
            return self.extends
        if mode == MixinKind.PREPEND:
            return self.prepends
        return self.includes

    def put(self, member: Member) -> None:
        """Add a member; a redeclaration replaces the earlier one in place."""
        self.members[member.key] = member

    def rekey(self, old: tuple[ReceiverKind, str], member: Member) -> None:
        """Replace the member at `old` with one under a new key, keeping its position."""
        self.members = {
            (member.key if key == old else key): (member if key == old else value)
            for key, value in self.members.items()
        }

    def freeze(self) -> Namespace:
        members = tuple(self.members.values())
        return Namespace(
            path=self.path,
            kind=self.kind,
            superclass=self.superclass,
            includes=tuple(self.includes),
            extends=tuple(self.extends),
            prepends=tuple(self.prepends),
            constants=MappingProxyType(dict(self.constants)),
            members=members,
            aliases=tuple(
                AliasLink(self.name, m.receiver, m.name, m.alias_of)
                for m in members
                if m.alias_of is not None
            ),
            doc=self.doc,
            units=tuple(self.units),
        )


@dataclass
class _BodyFrame:
    """Parse-time modes of one open namespace body."""

    state: _NamespaceState
    modes: dict[ReceiverKind, Visibility] = field(
        default_factory=lambda: {
            ReceiverKind.INSTANCE: Visibility.PUBLIC,
            ReceiverKind.SINGLETON: Visibility.PUBLIC,
        }
    )
    module_function: bool = False

    def receiver_for(self, receiver: ReceiverKind) -> ReceiverKind:
        if receiver == ReceiverKind.INSTANCE and self.module_function:
            return ReceiverKind.MODULE_FUNCTION
        return receiver

    def visibility_for(self, receiver: ReceiverKind) -> Visibility:
        return self.modes.get(receiver, Visibility.PUBLIC)


class SymbolTableBuilder:
    """Applies parse results in order and produces a finished StubIndex.

    Namespaces are identified by fully-qualified path, so reopening a class in
    another unit merges into the same entry. A member redeclared with the same
    name and receiver replaces the earlier declaration.
    """

    def __init__(self, max_alias_hops: int = DEFAULT_MAX_ALIAS_HOPS) -> None:
        self._max_alias_hops = max_alias_hops
        self._states: dict[tuple[str, ...], _NamespaceState] = {}
        self._diagnostics: list[Diagnostic] = []
        self._units: list[str] = []

        self._unit = ""
        self._stack: list[_BodyFrame] = []
        self._top: _BodyFrame | None = None

        self._handlers: dict[type[Event], Callable[[Event], None]] = {
            OpenNamespace: self._open_namespace,
            CloseNamespace: self._close_namespace,
            DefineConstant: self._define_constant,
            DefineMethod: self._define_method,
            DefineAlias: self._define_alias,
            SetVisibility: self._set_visibility,
            ChangeVisibility: self._change_visibility,
            SetModuleFunction: self._set_module_function,
            IncludeModule: self._include_module,
        }

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return list(self._diagnostics)

    def record(self, diagnostic: Diagnostic) -> None:
        """Carry a diagnostic raised outside the builder into the result."""
        self._diagnostics.append(diagnostic)

    def record_parse_error(self, unit: str, error: ParseError) -> None:
        logger.warning("Skipping %s: %s", unit, error)
        self.record(
            Diagnostic(
                kind=DiagnosticKind.PARSE_ERROR,
                message=str(error),
                unit=unit,
                line=error.line,
            )
        )

    def apply(self, result: ParseResult) -> None:
        """Merge one unit's events into the table."""
        self._unit = result.unit
        self._stack = []
        self._top = None
        self._units.append(result.unit)

        for event in result.events:
            self._handlers[type(event)](event)

        logger.debug("Applied %s (%d events)", result.unit, len(result.events))

    def finish(self) -> StubIndex:
        """Resolve aliases and ancestry, then freeze the table into a StubIndex."""
        drafts = {path: state.freeze() for path, state in sorted(self._states.items())}
        resolution = Resolver(drafts, self._max_alias_hops).resolve()

        final: dict[tuple[str, ...], Namespace] = {}
        for path in sorted(drafts, key=lambda p: (len(p), p)):
            parent = final.get(path[:-1]) if len(path) > 1 else None
            final[path] = self._finalize(drafts[path], parent, resolution)

        return StubIndex(
            namespaces=final,
            chains=resolution.chains,
            aliases=resolution.aliases,
            diagnostics=[*self._diagnostics, *resolution.diagnostics],
            units=self._units,
        )

    def _finalize(
        self, draft: Namespace, parent: Namespace | None, resolution: Resolution
    ) -> Namespace:
        members: list[Member] = []
        for member in draft.members:
            if member.alias_of is None:
                members.append(member)
                continue
            result = resolution.aliases.get((draft.path, member.receiver, member.name))
            if result is None or result.member is None:
                continue
            canonical = result.member
            members.append(
                replace(member, params=canonical.params, doc=member.doc or canonical.doc)
            )

        kept = {m.key for m in members}
        return replace(
            draft,
            members=tuple(members),
            aliases=tuple(a for a in draft.aliases if (a.receiver, a.name) in kept),
            _parent_ref=weakref.ref(parent) if parent is not None else None,
        )

    def _ensure(
        self, path: tuple[str, ...], kind: NamespaceKind = NamespaceKind.MODULE
    ) -> _NamespaceState:
        """Get a namespace, creating it (and its parents) as implicit if missing."""
        for depth in range(1, len(path)):
            prefix = path[:depth]
            if prefix not in self._states:
                self._states[prefix] = _NamespaceState(prefix, NamespaceKind.MODULE, implicit=True)
        state = self._states.get(path)
        if state is None:
            state = _NamespaceState(path, kind, implicit=True)
            self._states[path] = state
        return state

    def _frame(self) -> _BodyFrame:
        if self._stack:
            return self._stack[-1]
        if self._top is None:
            state = self._ensure(_TOP_LEVEL, NamespaceKind.CLASS)
            self._top = _BodyFrame(state)
            self._top.modes[ReceiverKind.INSTANCE] = Visibility.PRIVATE
            self._touch(state)
        return self._top

    def _touch(self, state: _NamespaceState) -> None:
        if self._unit not in state.units:
            state.units.append(self._unit)

    def _warn(self, kind: DiagnosticKind, message: str, namespace: str, line: int) -> None:
        logger.warning("%s", message)
        self.record(
            Diagnostic(
                kind=kind,
                message=message,
                severity=Severity.WARNING,
                unit=self._unit,
                line=line,
                namespace=namespace,
            )
        )

    def _open_namespace(self, event: OpenNamespace) -> None:
        state = self._ensure(event.path, event.kind)
        if state.implicit:
            state.kind = event.kind
            state.implicit = False
        elif state.kind != event.kind:
            self._warn(
                DiagnosticKind.NAMESPACE_KIND_CONFLICT,
                f"{state.name} is declared as a {event.kind.value} here but was first "
                f"declared as a {state.kind.value}",
                state.name,
                event.line,
            )

        if event.superclass is not None and state.kind == NamespaceKind.CLASS:
            if state.superclass is None:
                state.superclass = event.superclass
            elif split_name(state.superclass.name) != split_name(event.superclass.name):
                self._warn(
                    DiagnosticKind.SUPERCLASS_MISMATCH,
                    f"Superclass mismatch for {state.name}: {event.superclass} "
                    f"(keeping {state.superclass})",
                    state.name,
                    event.line,
                )

        if not state.doc and event.doc:
            state.doc = event.doc
        self._touch(state)
        self._stack.append(_BodyFrame(state))

    def _close_namespace(self, event: CloseNamespace) -> None:
        self._stack.pop()

    def _define_constant(self, event: DefineConstant) -> None:
        state = self._frame().state
        state.constants[event.name] = Constant(
            name=event.name,
            owner=state.name,
            value=event.value,
            doc=event.doc,
            unit=self._unit,
            line=event.line,
        )

    def _define_method(self, event: DefineMethod) -> None:
        frame = self._frame()
        receiver = frame.receiver_for(event.receiver)
        frame.state.put(
            Member(
                name=event.name,
                owner=frame.state.name,
                receiver=receiver,
                visibility=event.visibility or frame.visibility_for(receiver),
                params=event.params,
                kind=MemberKind.ATTRIBUTE if event.accessor else MemberKind.METHOD,
                doc=event.doc,
                unit=self._unit,
                line=event.line,
            )
        )

    def _define_alias(self, event: DefineAlias) -> None:
        frame = self._frame()
        receiver = frame.receiver_for(event.receiver)
        frame.state.put(
            Member(
                name=event.new_name,
                owner=frame.state.name,
                receiver=receiver,
                visibility=frame.visibility_for(receiver),
                kind=MemberKind.ALIAS,
                doc=event.doc,
                alias_of=event.target,
                unit=self._unit,
                line=event.line,
            )
        )

    def _set_visibility(self, event: SetVisibility) -> None:
        frame = self._frame()
        frame.modes[event.receiver] = event.level
        if event.receiver == ReceiverKind.INSTANCE:
            frame.module_function = False

    def _change_visibility(self, event: ChangeVisibility) -> None:
        state = self._frame().state
        for name in event.names:
            member = state.members.get((event.receiver, name))
            if member is None:
                logger.debug("%s: no member %s to make %s", state.name, name, event.level.value)
                continue
            state.put(replace(member, visibility=event.level))

    def _set_module_function(self, event: SetModuleFunction) -> None:
        frame = self._frame()
        if not event.names:
            frame.module_function = True
            return
        for name in event.names:
            key = (ReceiverKind.INSTANCE, name)
            member = frame.state.members.get(key)
            if member is None:
                logger.debug("%s: no member %s for module_function", frame.state.name, name)
                continue
            frame.state.rekey(key, replace(member, receiver=ReceiverKind.MODULE_FUNCTION))

    def _include_module(self, event: IncludeModule) -> None:
        state = self._frame().state
        mixins = state.mixins(event.mode)
        if event.reference not in mixins:
            mixins.append(event.reference)


def _parse(parser: RubyStubParser, unit: SourceUnit) -> ParseResult | ParseError:
    try:
        return parser.parse_unit(unit)
    except ParseError as e:
        return e


def _run(
    units: Iterable[SourceUnit],
    config: StubIndexConfig,
    on_progress: ProgressCallback | None,
    diagnostics: Iterable[Diagnostic] = (),
) -> StubIndex:
    ordered = sorted(units, key=lambda u: u.name)
    parser = RubyStubParser(strict_aliases=config.strict_aliases)
    builder = SymbolTableBuilder(max_alias_hops=config.max_alias_hops)
    for diagnostic in diagnostics:
        builder.record(diagnostic)

    # Units parse in parallel; results are applied one at a time in name order.
    with ThreadPoolExecutor(
        max_workers=config.workers, thread_name_prefix="stubindex-parse"
    ) as executor:
        outcomes = executor.map(partial(_parse, parser), ordered)
        for i, (unit, outcome) in enumerate(zip(ordered, outcomes), start=1):
            if isinstance(outcome, ParseError):
                builder.record_parse_error(unit.name, outcome)
            else:
                builder.apply(outcome)
            if on_progress:
                on_progress(unit.name, i, len(ordered))

    index = builder.finish()
    stats = index.stats()
    logger.info(
        "Indexed %d units: %d namespaces, %d members, %d diagnostics",
        stats["units"],
        stats["namespaces"],
        stats["members"],
        stats["diagnostics"],
    )
    return index


def build(
    units: Iterable[SourceUnit],
    config: StubIndexConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> tuple[StubIndex, list[Diagnostic]]:
    """Build an index from stub units.

    Units are applied in name order, so the same inputs always give the same
    index. A unit that fails to parse contributes nothing and is reported in
    the diagnostics; the rest of the build continues.

    Args:
        units: Stub source units
        config: Build settings (hop bound, worker count, alias strictness)
        on_progress: Optional callback for progress updates (unit, current, total)

    Returns:
        The finished index and the diagnostics collected while building it
    """
    index = _run(units, config or StubIndexConfig(), on_progress)
    return index, list(index.diagnostics)


def build_from_directory(
    directory: Path,
    config: StubIndexConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> tuple[StubIndex, list[Diagnostic]]:
    """Load every stub file under a directory and build an index from them.

    Raises:
        SourceError: The directory is missing or none of its stub files are readable
    """
    config = config or StubIndexConfig()
    units, unreadable = load_units(directory, config.source_pattern, config.exclude_patterns)
    index = _run(units, config, on_progress, unreadable)
    return index, list(index.diagnostics)
