from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from stackwright_cli.utils import build_reconciler, handle_error, is_json, load_stack

console = Console()


def outputs(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    state_file: Annotated[Path | None, typer.Option("--state", help="State file for the local provider")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Print the public DNS name of the deployed load balancer."""
    try:
        spec, _ = load_stack(stack_file)
        values = build_reconciler(ctx, spec, state_file=state_file).outputs()

        if is_json(ctx, json_output):
            print(json.dumps(values))
            return

        if not values:
            console.print("[yellow]No load balancer deployed yet. Run 'stackwright apply' first.[/yellow]")
            raise typer.Exit(1)
        console.print(f"dns_name = [bold]{values['dns_name']}[/bold]")

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
