"""calcflow CLI — Typer application."""

import logging

import typer
from rich.console import Console

from calcflow.version import __version__

app = typer.Typer(
    name="calcflow",
    help="calcflow — workflow execution with expression-driven calculation nodes.",
    no_args_is_help=True,
    invoke_without_command=True,
)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", is_eager=True, help="Show version"),
):
    """calcflow CLI."""
    if version:
        console.print(f"calcflow v{__version__}")
        raise typer.Exit()

    from calcflow.config import CalcflowConfig
    logging.basicConfig(
        level=CalcflowConfig().log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


# ── Commands ───────────────────────────────────────────────────────────────────
from calcflow.cli.commands import config, engines, evaluate, run  # noqa: E402

app.command(name="eval", help="Evaluate one expression with a registered engine")(evaluate.eval_expression)
app.command(name="engines", help="List registered expression engines")(engines.engines_list)
app.command(name="config", help="Show resolved configuration")(config.config_show)
app.command(name="run", help="Run a workflow file against one record")(run.run_workflow)


if __name__ == "__main__":
    app()
