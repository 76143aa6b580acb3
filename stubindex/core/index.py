"""Immutable stub index and its query operations."""

from __future__ import annotations

import bisect
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType

from stubindex.core.exceptions import NamespaceNotFoundError
from stubindex.core.models import (
    AliasResolution,
    AliasStatus,
    Ancestor,
    AncestorKind,
    Constant,
    Diagnostic,
    Member,
    Namespace,
    ReceiverKind,
    SearchHit,
    split_name,
)
from stubindex.core.resolver import AliasKey, project_member, source_receivers

_MIXIN_KINDS = frozenset({AncestorKind.INCLUDE, AncestorKind.PREPEND, AncestorKind.EXTEND})


class StubIndex:
    """A finished, read-only snapshot of the merged stub table.

    Every query is side-effect free, so one instance can be shared by any
    number of reader threads. Missing names give empty or NOT_FOUND results
    rather than exceptions; use `get_namespace` for a raising lookup.
    """

    def __init__(
        self,
        namespaces: Mapping[tuple[str, ...], Namespace],
        chains: Mapping[tuple[str, ...], tuple[Ancestor, ...]] | None = None,
        aliases: Mapping[AliasKey, AliasResolution] | None = None,
        diagnostics: Iterable[Diagnostic] = (),
        units: Iterable[str] = (),
    ) -> None:
        self._namespaces = MappingProxyType(dict(namespaces))
        self._chains = MappingProxyType(dict(chains or {}))
        self._aliases = MappingProxyType(dict(aliases or {}))
        self._diagnostics = tuple(diagnostics)
        self._units = tuple(units)

        # Sorted by (member name, namespace name, receiver) so prefix matches
        # are a contiguous run and ties break lexicographically.
        entries = sorted(
            ((m.name, ns.name, m.receiver.value), ns, m)
            for ns in self._namespaces.values()
            for m in ns.members
        )
        self._member_names = [key[0] for key, _, _ in entries]
        self._member_entries = [(ns, m) for _, ns, m in entries]
        self._namespace_names = sorted(ns.name for ns in self._namespaces.values())

    def __len__(self) -> int:
        return len(self._namespaces)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find_namespace(name) is not None

    @property
    def namespaces(self) -> Mapping[tuple[str, ...], Namespace]:
        return self._namespaces

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._diagnostics

    @property
    def units(self) -> tuple[str, ...]:
        return self._units

    def find_namespace(self, name: str) -> Namespace | None:
        """Look up a namespace by fully-qualified name (`A::B` or `::A::B`)."""
        return self._namespaces.get(split_name(name))

    def get_namespace(self, name: str) -> Namespace:
        """Like `find_namespace`, but raises when the name is unknown.

        Raises:
            NamespaceNotFoundError: No namespace has this name
        """
        namespace = self.find_namespace(name)
        if namespace is None:
            raise NamespaceNotFoundError(f"Namespace not found: {name}")
        return namespace

    def list_members(self, name: str, include_inherited: bool = False) -> list[Member]:
        """List members of a namespace in declaration order.

        With `include_inherited`, members reached through the ancestor chain
        follow the namespace's own, nearest ancestor first. A name already
        listed for the same receiver shadows the same name further up.
        """
        namespace = self.find_namespace(name)
        if namespace is None:
            return []

        members = list(namespace.members)
        if not include_inherited:
            return members

        seen = {m.key for m in members}
        for ancestor, owner in self._ancestor_namespaces(namespace):
            for member in owner.members:
                projected = project_member(member, ancestor.kind)
                if projected is None or projected.key in seen:
                    continue
                seen.add(projected.key)
                members.append(projected)
        return members

    def list_constants(self, name: str) -> list[Constant]:
        namespace = self.find_namespace(name)
        if namespace is None:
            return []
        return list(namespace.constants.values())

    def resolve_alias(
        self, name: str, alias_name: str, receiver: ReceiverKind | None = None
    ) -> AliasResolution:
        """Resolve a member name in a namespace to its canonical member.

        A plain method resolves to itself. Names the namespace does not define
        are looked up through its ancestors. Without `receiver`, instance
        members are tried first, then singleton, then module functions.
        """
        namespace = self.find_namespace(name)
        if namespace is None:
            return AliasResolution(AliasStatus.NOT_FOUND, chain=(alias_name,))

        receivers = [receiver] if receiver is not None else list(ReceiverKind)
        for r in receivers:
            result = self._own_resolution(namespace, alias_name, r)
            if result is not None:
                return result

        for ancestor, owner in self._ancestor_namespaces(namespace):
            for r in receivers:
                for source in source_receivers(ancestor.kind, r):
                    result = self._own_resolution(owner, alias_name, source)
                    if result is None:
                        continue
                    if result.member is None:
                        return result
                    projected = project_member(result.member, ancestor.kind)
                    return AliasResolution(AliasStatus.RESOLVED, projected, result.chain)

        return AliasResolution(AliasStatus.NOT_FOUND, chain=(alias_name,))

    def ancestors(self, name: str, include_extended: bool = False) -> list[str]:
        """Linearized ancestor names, the namespace itself included.

        Extended modules only affect the singleton side and are left out unless
        `include_extended` is set.
        """
        namespace = self.find_namespace(name)
        if namespace is None:
            return []
        return [
            a.name
            for a in self._chains.get(namespace.path, ())
            if include_extended or a.kind != AncestorKind.EXTEND
        ]

    def includers(self, module_name: str) -> list[Namespace]:
        """Namespaces that mix in a module, directly or through another module."""
        module = self.find_namespace(module_name)
        if module is None:
            return []
        result = []
        for path in sorted(self._chains):
            if path == module.path:
                continue
            for ancestor in self._chains[path]:
                if (
                    ancestor.name == module.name
                    and ancestor.kind in _MIXIN_KINDS
                    and not ancestor.inherited
                ):
                    result.append(self._namespaces[path])
                    break
        return result

    def search_by_prefix(self, prefix: str) -> Iterator[SearchHit]:
        """Lazily yield (namespace, member) pairs whose member name starts with `prefix`.

        Results come in (member name, namespace name) order. Calling again with
        the same prefix yields the same sequence.
        """
        start = bisect.bisect_left(self._member_names, prefix)
        for i in range(start, len(self._member_names)):
            if not self._member_names[i].startswith(prefix):
                break
            namespace, member = self._member_entries[i]
            yield SearchHit(namespace, member)

    def search_namespaces(self, prefix: str) -> Iterator[Namespace]:
        """Lazily yield namespaces whose full or short name starts with `prefix`."""
        for name in self._namespace_names:
            namespace = self._namespaces[split_name(name)]
            if name.startswith(prefix) or namespace.short_name.startswith(prefix):
                yield namespace

    def stats(self) -> dict[str, int]:
        """Counts of what the index holds."""
        namespaces = list(self._namespaces.values())
        return {
            "units": len(self._units),
            "namespaces": len(namespaces),
            "members": sum(len(ns.members) for ns in namespaces),
            "aliases": sum(len(ns.aliases) for ns in namespaces),
            "constants": sum(len(ns.constants) for ns in namespaces),
            "diagnostics": len(self._diagnostics),
        }

    def _own_resolution(
        self, namespace: Namespace, name: str, receiver: ReceiverKind
    ) -> AliasResolution | None:
        """Resolution recorded for a name the namespace declares itself, if any."""
        recorded = self._aliases.get((namespace.path, receiver, name))
        if recorded is not None:
            return recorded
        member = namespace.get_member(name, receiver)
        if member is not None:
            return AliasResolution(AliasStatus.RESOLVED, member, (name,))
        return None

    def _ancestor_namespaces(self, namespace: Namespace) -> Iterator[tuple[Ancestor, Namespace]]:
        for ancestor in self._chains.get(namespace.path, ()):
            if ancestor.kind == AncestorKind.SELF:
                continue
            owner = self._namespaces.get(split_name(ancestor.name))
            if owner is not None:
                yield ancestor, owner
