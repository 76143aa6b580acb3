"""
MCP server for Stubindex.

Exposes stub index queries to LLMs via the Model Context Protocol.

Tools:
    - stubindex_find_namespace: Look up a class or module
    - stubindex_list_members: List members, optionally with inherited ones
    - stubindex_resolve_alias: Resolve an alias to its method
    - stubindex_search: Prefix search over members or namespaces
    - stubindex_diagnostics: Build problems and index statistics
    - stubindex_reload: Rebuild the index from disk

Usage:
    Run: stubindex-mcp (from the directory holding the stubs)
"""

import asyncio

from stubindex.mcp.server import serve as _serve


def serve() -> None:
    """Entry point for the MCP server."""
    asyncio.run(_serve())


__all__ = ["serve"]
