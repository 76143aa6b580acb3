"""MCP server implementation for Stubindex."""

from __future__ import annotations

import json
import logging
from itertools import islice
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from stubindex.config import load_config
from stubindex.core.exceptions import StubIndexError
from stubindex.core.models import ReceiverKind
from stubindex.core.serialize import (
    diagnostic_to_dict,
    hit_to_dict,
    member_to_dict,
    namespace_to_dict,
    resolution_to_dict,
)
from stubindex.core.snapshot import IndexHolder
from stubindex.log import setup_logging

logger = logging.getLogger(__name__)

server = Server("stubindex")

_DEFAULT_SEARCH_LIMIT = 50

_holder: IndexHolder | None = None


def _get_holder() -> IndexHolder:
    """Get the index holder for the current directory, building it on first use."""
    global _holder
    if _holder is None:
        config = load_config(Path.cwd())
        holder = IndexHolder(config)
        holder.rebuild_from_directory()
        _holder = holder
    return _holder


def set_holder(holder: IndexHolder | None) -> None:
    """Serve queries from an existing holder (or reset to lazy loading)."""
    global _holder
    _holder = holder


@server.list_tools()  # type: ignore[no-untyped-call, untyped-decorator]
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="stubindex_find_namespace",
            description=(
                "Look up a Ruby class or module by fully-qualified name (e.g. 'OpenSSL::Cipher'). "
                "Returns its kind, superclass, mixins, constants and documentation."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Fully-qualified namespace name",
                    },
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="stubindex_list_members",
            description=(
                "List the methods, accessors and aliases of a class or module in "
                "declaration order, with signatures and docs. Optionally append "
                "inherited and mixed-in members, nearest ancestor first."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Fully-qualified namespace name",
                    },
                    "include_inherited": {
                        "type": "boolean",
                        "description": "Include members from ancestors (default: false)",
                        "default": False,
                    },
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="stubindex_resolve_alias",
            description=(
                "Resolve an alias in a class or module to the method it ultimately names. "
                "Returns status resolved, not_found or cycle, plus the alias chain."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Fully-qualified namespace name",
                    },
                    "alias": {
                        "type": "string",
                        "description": "Alias (or method) name",
                    },
                    "receiver": {
                        "type": "string",
                        "enum": [r.value for r in ReceiverKind],
                        "description": "Restrict to one receiver kind (optional)",
                    },
                },
                "required": ["name", "alias"],
            },
        ),
        Tool(
            name="stubindex_search",
            description=(
                "Search member names (or namespace names) by prefix. "
                "Results are ordered by name, then namespace."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "prefix": {
                        "type": "string",
                        "description": "Name prefix",
                    },
                    "namespaces": {
                        "type": "boolean",
                        "description": "Search namespace names instead of members",
                        "default": False,
                    },
                    "limit": {
                        "type": "integer",
                        "description": f"Maximum results (default: {_DEFAULT_SEARCH_LIMIT})",
                        "default": _DEFAULT_SEARCH_LIMIT,
                    },
                },
                "required": ["prefix"],
            },
        ),
        Tool(
            name="stubindex_diagnostics",
            description="List problems found while building the index, with index statistics.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
        Tool(
            name="stubindex_reload",
            description="Rebuild the index from the stub files on disk.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
    ]


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    try:
        result = handle_tool(name, arguments)
        return [TextContent(type="text", text=json.dumps(result, indent=2))]
    except StubIndexError as e:
        return [TextContent(type="text", text=json.dumps({"error": str(e)}))]
    except Exception as e:
        logger.exception("Tool %s failed", name)
        return [TextContent(type="text", text=json.dumps({"error": str(e)}))]


def handle_tool(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a tool call to its handler."""
    if name == "stubindex_find_namespace":
        return _handle_find_namespace(arguments["name"])
    if name == "stubindex_list_members":
        return _handle_list_members(arguments["name"], arguments.get("include_inherited", False))
    if name == "stubindex_resolve_alias":
        return _handle_resolve_alias(
            arguments["name"], arguments["alias"], arguments.get("receiver")
        )
    if name == "stubindex_search":
        return _handle_search(
            arguments["prefix"],
            arguments.get("namespaces", False),
            arguments.get("limit", _DEFAULT_SEARCH_LIMIT),
        )
    if name == "stubindex_diagnostics":
        return _handle_diagnostics()
    if name == "stubindex_reload":
        return _handle_reload()
    return {"error": f"Unknown tool: {name}"}


def _handle_find_namespace(name: str) -> dict[str, Any]:
    """Handle stubindex_find_namespace tool."""
    namespace = _get_holder().snapshot().find_namespace(name)
    if namespace is None:
        return {"error": f"No namespace named '{name}'", "result": None}
    return {"result": namespace_to_dict(namespace)}


def _handle_list_members(name: str, include_inherited: bool) -> dict[str, Any]:
    """Handle stubindex_list_members tool."""
    index = _get_holder().snapshot()
    if index.find_namespace(name) is None:
        return {"error": f"No namespace named '{name}'", "results": []}
    members = index.list_members(name, include_inherited=include_inherited)
    return {"results": [member_to_dict(m) for m in members]}


def _handle_resolve_alias(name: str, alias: str, receiver: str | None) -> dict[str, Any]:
    """Handle stubindex_resolve_alias tool."""
    receiver_kind = ReceiverKind(receiver) if receiver else None
    resolution = _get_holder().snapshot().resolve_alias(name, alias, receiver_kind)
    return resolution_to_dict(resolution)


def _handle_search(prefix: str, namespaces: bool, limit: int) -> dict[str, Any]:
    """Handle stubindex_search tool."""
    index = _get_holder().snapshot()
    if namespaces:
        found = islice(index.search_namespaces(prefix), limit)
        return {"results": [namespace_to_dict(ns) for ns in found]}
    hits = islice(index.search_by_prefix(prefix), limit)
    return {"results": [hit_to_dict(h) for h in hits]}


def _handle_diagnostics() -> dict[str, Any]:
    """Handle stubindex_diagnostics tool."""
    index = _get_holder().snapshot()
    return {
        "stats": index.stats(),
        "diagnostics": [diagnostic_to_dict(d) for d in index.diagnostics],
    }


def _handle_reload() -> dict[str, Any]:
    """Handle stubindex_reload tool."""
    holder = _get_holder()
    index = holder.rebuild_from_directory()
    return {"generation": holder.generation, "stats": index.stats()}


async def serve() -> None:
    """Run the MCP server."""
    setup_logging(load_config(Path.cwd()).log_level)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
