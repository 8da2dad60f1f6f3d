"""calcflow config — Show resolved calcflow configuration."""

from rich import box
from rich.console import Console
from rich.table import Table

console = Console()


def config_show():
    """Show the resolved calcflow configuration.

    Reads from environment variables and .env file.

    Example:
        calcflow config
    """
    from calcflow.config import CalcflowConfig
    cfg = CalcflowConfig()

    table = Table(
        box=box.ROUNDED,
        header_style="bold dim",
        show_lines=False,
        title="[bold]calcflow Configuration[/bold]",
    )
    table.add_column("Key", style="cyan", width=24)
    table.add_column("Value", width=45)
    table.add_column("Env Var", style="dim", width=32)

    sections = [
        ("App", ["app_name", "debug", "log_level"]),
        ("Database", ["database_url"]),
        ("Expressions", ["default_engine", "system_variables"]),
        ("Workflows", ["max_workflow_nodes", "halt_on_error"]),
    ]

    first = True
    for section_name, fields in sections:
        if not first:
            table.add_row("", "", "")
        first = False
        table.add_row(f"[bold dim]── {section_name} ──[/bold dim]", "", "")
        for attr in fields:
            val = getattr(cfg, attr, None)
            display = "[dim](not set)[/dim]" if val is None else str(val)
            table.add_row(f"  {attr}", display, f"CALCFLOW_{attr.upper()}")

    console.print()
    console.print(table)
    console.print()
    console.print("[dim]Source: environment variables + .env file (prefix: CALCFLOW_)[/dim]")
