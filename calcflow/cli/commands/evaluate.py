"""calcflow eval — Evaluate one expression the way a calculation node would."""

import json
from typing import Optional

import typer
from rich.console import Console

console = Console()


def _parse_json(raw: Optional[str], option: str) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Error:[/red] {option} is not valid JSON: {exc}")
        raise typer.Exit(2)
    if not isinstance(value, dict):
        console.print(f"[red]Error:[/red] {option} must be a JSON object")
        raise typer.Exit(2)
    return value


def eval_expression(
    expression: str = typer.Argument(..., help="Expression, may contain {{ placeholders }}"),
    engine: str = typer.Option(None, "--engine", "-e", help="Engine id (default: CALCFLOW_DEFAULT_ENGINE)"),
    context: str = typer.Option(None, "--context", "-c", help="JSON object exposed as $context"),
    jobs: str = typer.Option(None, "--jobs", "-j", help="JSON object exposed as $jobsMapByNodeKey"),
):
    """Evaluate EXPRESSION and print the result as JSON.

    Exits with status 1 when evaluation fails.

    Example:
        calcflow eval "{{$context.data.read}} + 1" -c '{"data": {"read": 1}}'
        calcflow eval "CONCATENATE('a', UPPER('b'))" -e formula.js
    """
    from calcflow.config import CalcflowConfig
    from calcflow.expressions.engines import default_registry
    from calcflow.expressions.namespace import SystemVariables, build_namespace
    from calcflow.instructions.calculation import calculate
    from calcflow.types import JobStatus

    cfg = CalcflowConfig()
    namespace = build_namespace(
        _parse_json(context, "--context"),
        _parse_json(jobs, "--jobs"),
        SystemVariables(cfg.system_variables),
    )
    node_config = {"engine": engine or cfg.default_engine, "expression": expression}
    outcome = calculate(node_config, namespace, default_registry(), cfg.default_engine)

    if outcome.status != JobStatus.RESOLVED:
        console.print(f"[red]{outcome.status.value}:[/red] {outcome.result}")
        raise typer.Exit(1)
    console.print_json(json.dumps(outcome.result, default=str))
