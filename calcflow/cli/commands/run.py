"""calcflow run — Run a workflow file against one record."""

import asyncio
import json
from pathlib import Path

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

_STATUS_COLOR = {
    "resolved": "green",
    "started": "yellow",
    "pending": "yellow",
    "error": "red",
    "failed": "red",
    "aborted": "magenta",
}


def _print_execution(execution) -> None:
    status = execution.status.value
    color = _STATUS_COLOR.get(status, "white")

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold dim", padding=(0, 1))
    table.add_column("#", style="dim", width=4, justify="right")
    table.add_column("Node", style="cyan", width=14)
    table.add_column("Status", width=10)
    table.add_column("Result")

    for job in execution.jobs:
        job_color = _STATUS_COLOR.get(job.status.value, "white")
        table.add_row(
            str(job.id),
            job.node_key,
            f"[{job_color}]{job.status.value}[/{job_color}]",
            json.dumps(job.result, default=str)[:200],
        )

    title = f"[bold]Execution[/bold] [dim]{execution.id[:12]}…[/dim]  [{color}]{status.upper()}[/{color}]"
    console.print(Panel(table, title=title, border_style=color))


async def _execute(path: Path, record: dict, database_url: str, audit: bool) -> int:
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from calcflow.callbacks import LoggingCallback
    from calcflow.config import CalcflowConfig, load_workflow_yaml
    from calcflow.db.database import init_db
    from calcflow.runtime import build_runtime

    definition = load_workflow_yaml(path)
    cfg = CalcflowConfig()

    engine = create_async_engine(database_url, echo=cfg.debug)
    try:
        await init_db(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        async with session_factory() as session:
            rt = build_runtime(session, cfg, callbacks=[LoggingCallback()] if audit else None)
            workflow = await rt.load(definition)
            collection = definition.trigger.collection
            if collection not in rt.collections.list_collections():
                rt.collections.define(collection)

            created = await rt.collections.create(collection, record)
            console.print(
                f"[bold]Workflow:[/bold] {workflow.title}  [dim]{len(workflow.nodes)} node(s)[/dim]\n"
                f"[bold]Record:[/bold] {collection}#{created.id} "
                f"[dim]{json.dumps(created.as_data(), default=str)}[/dim]"
            )

            executions = await rt.workflows.get_executions(workflow.id)
    finally:
        await engine.dispose()

    if not executions:
        console.print("[yellow]No execution was triggered.[/yellow]")
        return 0
    for execution in executions:
        _print_execution(execution)
    return 0 if all(e.status.value == "resolved" for e in executions) else 1


def run_workflow(
    path: Path = typer.Argument(..., help="Workflow definition (YAML or JSON)"),
    record: str = typer.Option("{}", "--record", "-r", help="JSON field values of the record to create"),
    database_url: str = typer.Option(
        "sqlite+aiosqlite:///:memory:", "--database-url", help="SQLAlchemy async URL"
    ),
    audit: bool = typer.Option(False, "--audit", help="Emit JSON audit lines on calcflow.audit"),
):
    """Load a workflow file, create one record in its trigger collection and
    print the resulting execution(s) and jobs.

    Runs in an in-memory SQLite database unless --database-url is given.
    Exits with status 1 when an execution does not resolve.

    Example:
        calcflow run examples/post_read.yaml --record '{"title": "t1", "category": {"expression": "{{read}} * 2"}}'
    """
    try:
        values = json.loads(record)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Error:[/red] --record is not valid JSON: {exc}")
        raise typer.Exit(2)
    if not isinstance(values, dict):
        console.print("[red]Error:[/red] --record must be a JSON object")
        raise typer.Exit(2)

    try:
        code = asyncio.run(_execute(path, values, database_url, audit))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise typer.Exit(1)
    except Exception as exc:
        console.print(f"\n[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    raise typer.Exit(code)
