"""CLI entry point for Stubindex."""

import json
from itertools import islice
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from stubindex.config import StubIndexConfig, load_config
from stubindex.core.builder import build_from_directory
from stubindex.core.exceptions import StubIndexError
from stubindex.core.index import StubIndex
from stubindex.core.models import AliasStatus, Diagnostic, Member, Severity, Visibility
from stubindex.core.serialize import (
    constant_to_dict,
    diagnostic_to_dict,
    hit_to_dict,
    member_to_dict,
    namespace_to_dict,
    resolution_to_dict,
)
from stubindex.log import setup_logging

app = typer.Typer(
    name="stubindex",
    help="Index Ruby stub files and query classes, members and aliases.",
    no_args_is_help=True,
)
console = Console()

PathOption = Annotated[
    Path, typer.Option("--path", "-p", help="Project directory holding the stubs")
]
JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")]

_MAX_DOC_DISPLAY = 60


def get_config(path: Path) -> StubIndexConfig:
    """Load configuration for a project directory and set up logging."""
    try:
        config = load_config(path.resolve())
    except StubIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    setup_logging(config.log_level)
    return config


def get_index(path: Path) -> StubIndex:
    """Build an index over the stub files of a project."""
    config = get_config(path)
    try:
        index, _ = build_from_directory(config.source_root, config)
    except StubIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    return index


def format_member(member: Member) -> str:
    """Format a member as a one-line listing entry."""
    line = f"[cyan]{member.signature()}[/]"
    if member.visibility != Visibility.PUBLIC:
        line += f" [yellow]{member.visibility.value}[/]"
    if member.alias_of:
        line += f" [dim]alias of {member.alias_of}[/]"
    if member.owner:
        line += f" [dim]({member.owner})[/]"
    return line


def format_diagnostic(diagnostic: Diagnostic) -> str:
    color = "red" if diagnostic.severity == Severity.ERROR else "yellow"
    return f"[{color}]{diagnostic}[/]"


@app.command()
def index(
    path: Annotated[Path, typer.Argument(help="Directory to index")] = Path("."),
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-e", help="Patterns to exclude")
    ] = None,
    output_json: JsonOption = False,
) -> None:
    """Index a stub directory and report what was found."""
    config = get_config(path)
    if exclude:
        config.exclude_patterns.extend(exclude)

    try:
        if output_json:
            result, diagnostics = build_from_directory(config.source_root, config)
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=console,
            ) as progress:
                task = progress.add_task(f"Indexing [cyan]{config.source_root.name}[/]", total=None)

                def on_progress(unit: str, current: int, total: int) -> None:
                    progress.update(task, total=total, completed=current)
                    progress.update(task, description=f"[cyan]{unit}[/]")

                result, diagnostics = build_from_directory(
                    config.source_root, config, on_progress=on_progress
                )
    except StubIndexError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    stats = result.stats()
    if output_json:
        print(json.dumps({**stats, "diagnostics": [diagnostic_to_dict(d) for d in diagnostics]}))
        return

    console.print("[green]Done![/green]")
    console.print(f"  Units indexed: {stats['units']}")
    console.print(f"  Namespaces: {stats['namespaces']}")
    console.print(f"  Members: {stats['members']}")
    console.print(f"  Constants: {stats['constants']}")
    if diagnostics:
        console.print(f"  [red]Diagnostics: {len(diagnostics)}[/red]")
        for diagnostic in diagnostics:
            console.print(f"    {format_diagnostic(diagnostic)}")


@app.command()
def find(
    name: Annotated[str, typer.Argument(help="Fully-qualified namespace name")],
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """Show a class or module."""
    namespace = get_index(path).find_namespace(name)

    if output_json:
        print(json.dumps(namespace_to_dict(namespace) if namespace else None))
        return

    if namespace is None:
        console.print(f"No namespace named '[cyan]{name}[/cyan]'")
        raise typer.Exit(1)

    header = f"[bold cyan]{namespace.name}[/] ({namespace.kind.value})"
    if namespace.superclass:
        header += f" < {namespace.superclass}"
    console.print(header)
    for label, refs in (
        ("include", namespace.includes),
        ("extend", namespace.extends),
        ("prepend", namespace.prepends),
    ):
        if refs:
            console.print(f"  [dim]{label}:[/] {', '.join(str(r) for r in refs)}")
    if namespace.doc:
        doc = namespace.doc.splitlines()[0]
        if len(doc) > _MAX_DOC_DISPLAY:
            doc = doc[: _MAX_DOC_DISPLAY - 3] + "..."
        console.print(f"  [dim]{doc}[/]")
    console.print(f"  Members: {len(namespace.members)}, constants: {len(namespace.constants)}")
    console.print(f"  [dim]{', '.join(namespace.units)}[/]")


@app.command()
def members(
    name: Annotated[str, typer.Argument(help="Fully-qualified namespace name")],
    inherited: Annotated[
        bool, typer.Option("--inherited", "-i", help="Include members from ancestors")
    ] = False,
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """List the members of a class or module."""
    result = get_index(path).list_members(name, include_inherited=inherited)

    if output_json:
        print(json.dumps([member_to_dict(m) for m in result]))
        return

    if not result:
        console.print(f"No members for '[cyan]{name}[/cyan]'")
        return
    for member in result:
        console.print(format_member(member))


@app.command()
def constants(
    name: Annotated[str, typer.Argument(help="Fully-qualified namespace name")],
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """List the constants of a class or module."""
    result = get_index(path).list_constants(name)

    if output_json:
        print(json.dumps([constant_to_dict(c) for c in result]))
        return

    if not result:
        console.print(f"No constants for '[cyan]{name}[/cyan]'")
        return
    for constant in result:
        console.print(f"[cyan]{constant.name}[/] = {constant.value}")


@app.command("alias")
def resolve_alias(
    name: Annotated[str, typer.Argument(help="Fully-qualified namespace name")],
    alias_name: Annotated[str, typer.Argument(help="Alias (or method) name")],
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """Resolve an alias to the method it names."""
    result = get_index(path).resolve_alias(name, alias_name)

    if output_json:
        print(json.dumps(resolution_to_dict(result)))
        return

    if result.status == AliasStatus.CYCLE:
        console.print(f"[red]Alias cycle:[/red] {' -> '.join(result.chain)}")
        raise typer.Exit(1)
    if result.member is None:
        console.print(f"'[cyan]{alias_name}[/cyan]' not found in {name}")
        raise typer.Exit(1)
    console.print(f"{' -> '.join(result.chain)}")
    console.print(format_member(result.member))


@app.command()
def search(
    prefix: Annotated[str, typer.Argument(help="Member name prefix")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum results")] = 50,
    namespaces: Annotated[
        bool, typer.Option("--namespaces", help="Search namespace names instead")
    ] = False,
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """Search members (or namespaces) by name prefix."""
    index = get_index(path)

    if namespaces:
        found = list(islice(index.search_namespaces(prefix), limit))
        if output_json:
            print(json.dumps([namespace_to_dict(ns) for ns in found]))
            return
        if not found:
            console.print(f"No matches for '[cyan]{prefix}[/cyan]'")
            return
        for namespace in found:
            console.print(f"[cyan]{namespace.name}[/] ({namespace.kind.value})")
        return

    hits = list(islice(index.search_by_prefix(prefix), limit))
    if output_json:
        print(json.dumps([hit_to_dict(h) for h in hits]))
        return
    if not hits:
        console.print(f"No matches for '[cyan]{prefix}[/cyan]'")
        return
    for hit in hits:
        console.print(format_member(hit.member))


@app.command()
def ancestors(
    name: Annotated[str, typer.Argument(help="Fully-qualified namespace name")],
    extended: Annotated[
        bool, typer.Option("--extended", help="Include extended modules")
    ] = False,
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """Show the ancestor chain of a class or module."""
    result = get_index(path).ancestors(name, include_extended=extended)

    if output_json:
        print(json.dumps(result))
        return

    if not result:
        console.print(f"No namespace named '[cyan]{name}[/cyan]'")
        raise typer.Exit(1)
    console.print(" > ".join(f"[cyan]{a}[/]" for a in result))


@app.command()
def includers(
    name: Annotated[str, typer.Argument(help="Fully-qualified module name")],
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """Show the namespaces that mix a module in."""
    result = get_index(path).includers(name)

    if output_json:
        print(json.dumps([ns.name for ns in result]))
        return

    if not result:
        console.print(f"Nothing mixes in '[cyan]{name}[/cyan]'")
        return
    for namespace in result:
        console.print(f"[cyan]{namespace.name}[/] ({namespace.kind.value})")


@app.command()
def stats(
    path: PathOption = Path("."),
    output_json: JsonOption = False,
) -> None:
    """Show index statistics."""
    result = get_index(path).stats()

    if output_json:
        print(json.dumps(result))
    else:
        console.print(f"Units indexed: {result['units']}")
        console.print(f"Namespaces: {result['namespaces']}")
        console.print(f"Members: {result['members']}")
        console.print(f"Aliases: {result['aliases']}")
        console.print(f"Constants: {result['constants']}")
        console.print(f"Diagnostics: {result['diagnostics']}")


if __name__ == "__main__":
    app()
