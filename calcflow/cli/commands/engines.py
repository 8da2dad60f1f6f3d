"""calcflow engines — List registered expression engines."""

from rich import box
from rich.console import Console
from rich.table import Table

console = Console()


def engines_list():
    """List the built-in expression engines.

    Example:
        calcflow engines
    """
    from calcflow.expressions.engines import default_registry

    registry = default_registry()

    table = Table(
        box=box.ROUNDED,
        header_style="bold dim",
        title=f"[bold]{len(registry.list_engines())} Expression Engines[/bold]",
    )
    table.add_column("Engine", style="cyan", width=14)
    table.add_column("Description")
    table.add_column("Quote-aware", width=12)

    for engine in sorted(registry.list_engines(), key=lambda e: e.name):
        table.add_row(
            engine.name,
            engine.description,
            "[green]yes[/green]" if engine.quote_aware else "[dim]no[/dim]",
        )

    console.print()
    console.print(table)
