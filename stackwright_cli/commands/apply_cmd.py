"""Apply and destroy — the two commands that mutate remote state."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from stackwright_cli.commands.plan_cmd import render_plan
from stackwright_cli.utils import build_reconciler, handle_error, is_json, load_stack

console = Console()


def _report(ctx: typer.Context, result, reconciler, json_output: bool, title: str = "apply") -> None:
    outputs = reconciler.outputs() if result.succeeded else {}

    if is_json(ctx, json_output):
        print(json.dumps({**result.to_dict(), "outputs": outputs}, default=str))
    elif result.succeeded:
        body = result.summary()
        if outputs:
            body += f"\n[bold]dns_name[/bold] = {outputs['dns_name']}"
        console.print(Panel(f"[green]{body}[/green]", title=f"[dim]{title}[/dim]"))
    else:
        err = result.failed
        lines = [result.summary(), f"[red]{err.cause}[/red]"]
        if result.unknown:
            lines.append(f"State unknown (re-read on next run): {', '.join(result.unknown)}")
        if result.pending:
            lines.append(f"Not attempted: {', '.join(result.pending)}")
        lines.append("[dim]Re-run to resume; applied operations are kept.[/dim]")
        console.print(Panel("\n".join(lines), title=f"[red]{title} halted[/red]"))

    if not result.succeeded:
        raise typer.Exit(1)


def apply(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    state_file: Annotated[Path | None, typer.Option("--state", help="State file for the local provider")] = None,
    concurrent: Annotated[bool, typer.Option("--concurrent", help="Apply independent resources in parallel")] = False,
    max_workers: Annotated[int | None, typer.Option("--max-workers", help="Worker pool size")] = None,
    timeout: Annotated[float | None, typer.Option(help="Per-call timeout in seconds")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Create or update resources in dependency order."""
    try:
        from stackwright.graph import DependencyGraph

        spec, model = load_stack(stack_file)
        graph = DependencyGraph.build(model)
        reconciler = build_reconciler(ctx, spec, state_file=state_file, timeout=timeout)
        reconciler.validate(model)
        plan = reconciler.plan(graph)

        if not is_json(ctx, json_output):
            render_plan(plan)

        if concurrent:
            workers = max_workers or ctx.obj.get("max_workers", 4)
            result = reconciler.apply_concurrent(plan, max_workers=workers)
        else:
            result = reconciler.apply(plan)

        _report(ctx, result, reconciler, json_output)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)


def destroy(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    target: Annotated[list[str] | None, typer.Option("--target", "-t", help="Destroy only these resource IDs")] = None,
    state_file: Annotated[Path | None, typer.Option("--state", help="State file for the local provider")] = None,
    timeout: Annotated[float | None, typer.Option(help="Per-call timeout in seconds")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Tear resources down in reverse dependency order."""
    try:
        from stackwright.graph import DependencyGraph

        spec, model = load_stack(stack_file)
        graph = DependencyGraph.build(model)
        reconciler = build_reconciler(ctx, spec, state_file=state_file, timeout=timeout)
        plan = reconciler.plan_destroy(graph, target or None)

        if not is_json(ctx, json_output):
            render_plan(plan)

        result = reconciler.apply(plan)
        _report(ctx, result, reconciler, json_output, title="destroy")

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
