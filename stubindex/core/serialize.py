"""JSON-serializable views of index records, shared by the CLI and MCP server."""

from __future__ import annotations

from typing import Any

from stubindex.core.models import (
    AliasResolution,
    Constant,
    Diagnostic,
    Member,
    Namespace,
    SearchHit,
)


def namespace_to_dict(namespace: Namespace) -> dict[str, Any]:
    """Convert a Namespace to a JSON-serializable dict."""
    parent = namespace.parent
    return {
        "name": namespace.name,
        "kind": namespace.kind.value,
        "parent": parent.name if parent is not None else None,
        "superclass": str(namespace.superclass) if namespace.superclass else None,
        "includes": [str(r) for r in namespace.includes],
        "extends": [str(r) for r in namespace.extends],
        "prepends": [str(r) for r in namespace.prepends],
        "constants": [c.name for c in namespace.constants.values()],
        "members": len(namespace.members),
        "doc": namespace.doc,
        "units": list(namespace.units),
    }


def member_to_dict(member: Member) -> dict[str, Any]:
    """Convert a Member to a JSON-serializable dict."""
    return {
        "name": member.name,
        "owner": member.owner,
        "receiver": member.receiver.value,
        "visibility": member.visibility.value,
        "kind": member.kind.value,
        "signature": member.signature(),
        "params": [
            {"name": p.name, "kind": p.kind.value, "default": p.default} for p in member.params
        ],
        "alias_of": member.alias_of,
        "doc": member.doc,
        "unit": member.unit,
        "line": member.line,
    }


def constant_to_dict(constant: Constant) -> dict[str, Any]:
    return {
        "name": constant.name,
        "owner": constant.owner,
        "value": constant.value.text,
        "unknown": constant.value.is_unknown,
        "doc": constant.doc,
        "unit": constant.unit,
        "line": constant.line,
    }


def resolution_to_dict(resolution: AliasResolution) -> dict[str, Any]:
    return {
        "status": resolution.status.value,
        "chain": list(resolution.chain),
        "member": member_to_dict(resolution.member) if resolution.member else None,
    }


def hit_to_dict(hit: SearchHit) -> dict[str, Any]:
    return {"namespace": hit.namespace.name, **member_to_dict(hit.member)}


def diagnostic_to_dict(diagnostic: Diagnostic) -> dict[str, Any]:
    return {
        "kind": diagnostic.kind.value,
        "severity": diagnostic.severity.value,
        "message": diagnostic.message,
        "unit": diagnostic.unit,
        "line": diagnostic.line,
        "namespace": diagnostic.namespace,
    }
