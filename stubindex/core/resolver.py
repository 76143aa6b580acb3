"""Alias and inheritance resolution over a merged namespace table."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace

from stubindex.core.models import (
    AliasResolution,
    AliasStatus,
    Ancestor,
    AncestorKind,
    Diagnostic,
    DiagnosticKind,
    Member,
    Namespace,
    NamespaceKind,
    ReceiverKind,
    Reference,
    Severity,
    Visibility,
    split_name,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ALIAS_HOPS = 64

_ROOT_CLASSES = frozenset({("Object",), ("BasicObject",)})
_OBJECT = Reference("::Object")

_INSTANCE = ReceiverKind.INSTANCE
_SINGLETON = ReceiverKind.SINGLETON
_MODULE_FUNCTION = ReceiverKind.MODULE_FUNCTION

# Receiver a member takes on when its owner is reached through each kind of ancestor.
_RECEIVER_MAP: dict[AncestorKind, dict[ReceiverKind, ReceiverKind]] = {
    AncestorKind.SELF: {r: r for r in ReceiverKind},
    AncestorKind.SUPERCLASS: {_INSTANCE: _INSTANCE, _SINGLETON: _SINGLETON},
    AncestorKind.PREPEND: {_INSTANCE: _INSTANCE, _MODULE_FUNCTION: _INSTANCE},
    AncestorKind.INCLUDE: {_INSTANCE: _INSTANCE, _MODULE_FUNCTION: _INSTANCE},
    AncestorKind.EXTEND: {_INSTANCE: _SINGLETON, _MODULE_FUNCTION: _SINGLETON},
}

# Receivers that name the same method body inside a module.
_SHARED_SLOTS = {_INSTANCE: _MODULE_FUNCTION, _MODULE_FUNCTION: _INSTANCE}

AliasKey = tuple[tuple[str, ...], ReceiverKind, str]


def project_member(member: Member, kind: AncestorKind) -> Member | None:
    """How `member` appears in a namespace that reaches its owner through `kind`.

    Returns None when the member is not visible that way, e.g. singleton
    methods of an included module.
    """
    receiver = _RECEIVER_MAP[kind].get(member.receiver)
    if receiver is None:
        return None
    if receiver == member.receiver:
        return member
    # Module functions are copied into includers as private methods.
    visibility = Visibility.PRIVATE if member.receiver == _MODULE_FUNCTION else member.visibility
    return replace(member, receiver=receiver, visibility=visibility)


def source_receivers(kind: AncestorKind, receiver: ReceiverKind) -> list[ReceiverKind]:
    """Receivers in an ancestor that surface as `receiver` through `kind`."""
    return [src for src, dst in _RECEIVER_MAP[kind].items() if dst == receiver]


def member_label(namespace: str, receiver: ReceiverKind, name: str) -> str:
    """`Foo#bar` for instance members, `Foo.bar` otherwise."""
    sep = "#" if receiver == _INSTANCE else "."
    return f"{namespace}{sep}{name}"


@dataclass
class Resolution:
    """Everything the resolver computed for one table."""

    chains: dict[tuple[str, ...], tuple[Ancestor, ...]]
    aliases: dict[AliasKey, AliasResolution]
    diagnostics: list[Diagnostic]


class Resolver:
    """Resolves ancestor chains and alias chains for a merged table.

    Two passes run over namespaces in name order:
    1. Linearize each namespace's ancestors (prepends, self, includes,
       extends, then the superclass chain), recording unresolved bases.
    2. Follow each alias to its canonical member, bounded by
       `max_alias_hops`, recording dangling and cyclic aliases.
    """

    def __init__(
        self,
        namespaces: Mapping[tuple[str, ...], Namespace],
        max_alias_hops: int = DEFAULT_MAX_ALIAS_HOPS,
    ) -> None:
        self._namespaces = namespaces
        self._max_alias_hops = max_alias_hops

        self._members: dict[tuple[str, ...], dict[tuple[ReceiverKind, str], Member]] = {
            path: {m.key: m for m in ns.members} for path, ns in namespaces.items()
        }

        self._instance_chains: dict[tuple[str, ...], list[Ancestor]] = {}
        self._chains: dict[tuple[str, ...], tuple[Ancestor, ...]] = {}
        self._visiting_mixins: set[tuple[str, ...]] = set()
        self._visiting_bases: set[tuple[str, ...]] = set()

        self._aliases: dict[AliasKey, AliasResolution] = {}
        self._resolving: set[AliasKey] = set()

        self.diagnostics: list[Diagnostic] = []
        self._reported: set[tuple[DiagnosticKind, str]] = set()

    def resolve(self) -> Resolution:
        """Run both passes and return the results."""
        paths = sorted(self._namespaces)

        for path in paths:
            self.linearize(self._namespaces[path])

        for path in paths:
            namespace = self._namespaces[path]
            for member in namespace.members:
                if member.alias_of is None:
                    continue
                result = self.resolve_alias(namespace, member.name, member.receiver)
                label = member_label(namespace.name, member.receiver, member.name)
                if result.status == AliasStatus.NOT_FOUND:
                    self._report(
                        DiagnosticKind.UNRESOLVED_ALIAS,
                        f"Alias {label} refers to undefined method '{result.chain[-1]}'",
                        namespace=namespace.name,
                        unit=member.unit,
                        line=member.line,
                    )
                elif result.status == AliasStatus.CYCLE:
                    self._report(
                        DiagnosticKind.ALIAS_CYCLE,
                        f"Alias chain for {label} does not terminate: {' -> '.join(result.chain)}",
                        namespace=namespace.name,
                        unit=member.unit,
                        line=member.line,
                    )

        logger.debug(
            "Resolved %d namespaces, %d aliases, %d diagnostics",
            len(paths),
            len(self._aliases),
            len(self.diagnostics),
        )
        return Resolution(
            chains=dict(self._chains),
            aliases=dict(self._aliases),
            diagnostics=list(self.diagnostics),
        )

    def resolve_reference(
        self, reference: Reference, exclude: tuple[str, ...] | None = None
    ) -> Namespace | None:
        """Resolve a written name lexically, innermost scope first."""
        for candidate in reference.candidates():
            if candidate == exclude:
                continue
            namespace = self._namespaces.get(candidate)
            if namespace is not None:
                return namespace
        return None

    def linearize(self, namespace: Namespace) -> tuple[Ancestor, ...]:
        """Ancestor chain of a namespace, nearest first, self included."""
        cached = self._chains.get(namespace.path)
        if cached is not None:
            return cached
        if namespace.path in self._visiting_bases:
            self._report(
                DiagnosticKind.INHERITANCE_CYCLE,
                f"Superclass chain of {namespace.name} loops back to itself",
                namespace=namespace.name,
            )
            return ()

        self._visiting_bases.add(namespace.path)
        chain = list(self._instance_chain(namespace))

        for ref in reversed(namespace.extends):
            chain.extend(self._mixin(namespace, ref, AncestorKind.EXTEND))

        base_ref = self._superclass_ref(namespace)
        if base_ref is not None:
            base = self.resolve_reference(base_ref, exclude=namespace.path)
            if base is None:
                if namespace.superclass is not None:
                    self._report(
                        DiagnosticKind.UNRESOLVED_BASE,
                        f"Superclass {base_ref} of {namespace.name} is not in the index",
                        severity=Severity.WARNING,
                        namespace=namespace.name,
                    )
            else:
                for ancestor in self.linearize(base):
                    kind = AncestorKind.SUPERCLASS if ancestor.kind == AncestorKind.SELF else ancestor.kind
                    chain.append(Ancestor(ancestor.name, kind, inherited=True))

        self._visiting_bases.discard(namespace.path)
        result = _dedupe(chain)
        self._chains[namespace.path] = result
        return result

    def resolve_alias(
        self, namespace: Namespace, name: str, receiver: ReceiverKind
    ) -> AliasResolution:
        """Follow `name` in `namespace` to its canonical member."""
        key = (namespace.path, receiver, name)
        cached = self._aliases.get(key)
        if cached is not None:
            return cached
        result = self._follow(namespace, name, receiver, self._max_alias_hops)
        self._aliases[key] = result
        return result

    def _follow(
        self, namespace: Namespace, name: str, receiver: ReceiverKind, budget: int
    ) -> AliasResolution:
        """Follow `name` with at most `budget` alias hops left."""
        key = (namespace.path, receiver, name)
        if key in self._resolving:
            return AliasResolution(AliasStatus.CYCLE, chain=(name,))

        self._resolving.add(key)
        try:
            return self._walk(namespace, name, receiver, budget)
        finally:
            self._resolving.discard(key)

    def _walk(
        self, namespace: Namespace, name: str, receiver: ReceiverKind, budget: int
    ) -> AliasResolution:
        members = self._members[namespace.path]
        chain = [name]
        member = members.get((receiver, name))
        if member is None:
            return self._inherited(namespace, name, receiver, chain, budget)

        hops = 0
        while member.alias_of is not None:
            target = member.alias_of
            if hops >= budget or target in chain:
                return AliasResolution(AliasStatus.CYCLE, chain=(*chain, target))
            hops += 1
            chain.append(target)
            next_member = _lookup(members, receiver, target)
            if next_member is None:
                return self._inherited(namespace, target, receiver, chain, budget - hops)
            member = next_member

        return AliasResolution(AliasStatus.RESOLVED, member, tuple(chain))

    def _inherited(
        self,
        namespace: Namespace,
        name: str,
        receiver: ReceiverKind,
        chain: list[str],
        budget: int,
    ) -> AliasResolution:
        """Look `name` up in the ancestors of `namespace`."""
        for ancestor in self.linearize(namespace):
            if ancestor.kind == AncestorKind.SELF:
                continue
            owner = self._namespaces.get(split_name(ancestor.name))
            if owner is None:
                continue
            for source in source_receivers(ancestor.kind, receiver):
                if (source, name) not in self._members[owner.path]:
                    continue
                result = self._follow(owner, name, source, budget)
                full_chain = (*chain, *result.chain[1:])
                if result.member is None:
                    return AliasResolution(result.status, chain=full_chain)
                projected = project_member(result.member, ancestor.kind)
                return AliasResolution(AliasStatus.RESOLVED, projected, full_chain)
        return AliasResolution(AliasStatus.NOT_FOUND, chain=tuple(chain))

    def _instance_chain(self, namespace: Namespace) -> list[Ancestor]:
        """Prepends, self and includes, each expanded with its own mixins."""
        cached = self._instance_chains.get(namespace.path)
        if cached is not None:
            return cached
        if namespace.path in self._visiting_mixins:
            self._report(
                DiagnosticKind.INHERITANCE_CYCLE,
                f"{namespace.name} is mixed into itself",
                namespace=namespace.name,
            )
            return []

        self._visiting_mixins.add(namespace.path)
        chain: list[Ancestor] = []
        for ref in reversed(namespace.prepends):
            chain.extend(self._mixin(namespace, ref, AncestorKind.PREPEND))
        chain.append(Ancestor(namespace.name, AncestorKind.SELF))
        for ref in reversed(namespace.includes):
            chain.extend(self._mixin(namespace, ref, AncestorKind.INCLUDE))
        self._visiting_mixins.discard(namespace.path)

        self._instance_chains[namespace.path] = chain
        return chain

    def _mixin(self, owner: Namespace, ref: Reference, kind: AncestorKind) -> list[Ancestor]:
        module = self.resolve_reference(ref)
        if module is None:
            self._report(
                DiagnosticKind.UNRESOLVED_BASE,
                f"Module {ref} ({kind.value}d by {owner.name}) is not in the index",
                severity=Severity.WARNING,
                namespace=owner.name,
            )
            return []
        return [Ancestor(a.name, kind) for a in self._instance_chain(module)]

    def _superclass_ref(self, namespace: Namespace) -> Reference | None:
        """Declared superclass, or an implicit `Object` when the index has one."""
        if namespace.kind != NamespaceKind.CLASS:
            return None
        if namespace.superclass is not None:
            return namespace.superclass
        if namespace.path in _ROOT_CLASSES or ("Object",) not in self._namespaces:
            return None
        return _OBJECT

    def _report(
        self,
        kind: DiagnosticKind,
        message: str,
        severity: Severity = Severity.ERROR,
        namespace: str | None = None,
        unit: str | None = None,
        line: int | None = None,
    ) -> None:
        if (kind, message) in self._reported:
            return
        self._reported.add((kind, message))
        logger.debug("%s: %s", kind.value, message)
        self.diagnostics.append(
            Diagnostic(
                kind=kind,
                message=message,
                severity=severity,
                unit=unit,
                line=line,
                namespace=namespace,
            )
        )


def _dedupe(chain: list[Ancestor]) -> tuple[Ancestor, ...]:
    """Keep the nearest occurrence of each ancestor on each side (instance/singleton)."""
    seen: set[tuple[str, bool]] = set()
    result: list[Ancestor] = []
    for ancestor in chain:
        key = (ancestor.name, ancestor.kind == AncestorKind.EXTEND)
        if key in seen:
            continue
        seen.add(key)
        result.append(ancestor)
    return tuple(result)


def _lookup(
    members: Mapping[tuple[ReceiverKind, str], Member], receiver: ReceiverKind, name: str
) -> Member | None:
    """Find an alias target, following it into `module_function`.

    `module_function :bar` moves `bar` to the module-function slot, but an
    alias written against the instance method still means the same method.
    """
    member = members.get((receiver, name))
    if member is None and receiver in _SHARED_SLOTS:
        member = members.get((_SHARED_SLOTS[receiver], name))
    return member
