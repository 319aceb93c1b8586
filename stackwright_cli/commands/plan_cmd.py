from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from stackwright_cli.utils import build_reconciler, handle_error, is_json, load_stack

console = Console()

_ACTION_STYLE = {
    "create": "[green]+ create[/green]",
    "update": "[yellow]~ update[/yellow]",
    "destroy": "[red]- destroy[/red]",
}


def render_plan(plan) -> None:
    if plan.is_empty:
        console.print(f"[green]{plan.summary()}[/green]")
        return

    table = Table(title=f"Plan ({plan.region})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Action")
    table.add_column("Resource", style="cyan")
    table.add_column("Kind")
    table.add_column("After", style="dim")
    table.add_column("Changes", style="dim")
    for op in plan.operations:
        changes = ", ".join(ch.field for ch in op.changes)
        table.add_row(
            str(op.position), _ACTION_STYLE[op.action.value], op.resource_id, op.kind, ", ".join(op.depends_on), changes
        )
    console.print(table)
    console.print(plan.summary())


def plan(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    state_file: Annotated[Path | None, typer.Option("--state", help="State file for the local provider")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show the operations needed to bring remote state in line with the stack."""
    try:
        from stackwright.graph import DependencyGraph

        spec, model = load_stack(stack_file)
        graph = DependencyGraph.build(model)
        reconciler = build_reconciler(ctx, spec, state_file=state_file)
        reconciler.validate(model)
        result = reconciler.plan(graph)

        if is_json(ctx, json_output):
            print(json.dumps(result.to_dict(), default=str))
            return
        render_plan(result)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
