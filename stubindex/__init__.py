"""
Stubindex: Index and query Ruby stub files.

Stubindex parses Ruby stub sources (class and method signatures with
documentation comments) into one merged table, enabling you to:
- Look up classes and modules by fully-qualified name
- List members, including inherited and mixed-in ones
- Resolve aliases to the methods they name
- Search members by name prefix

Usage:
    from stubindex.core.builder import build_from_directory

    index, diagnostics = build_from_directory(Path("stubs"))
    index.list_members("Date", include_inherited=True)
"""

__version__ = "0.1.0"
