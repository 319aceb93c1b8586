"""Compare the declared stack against what the provider holds."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stackwright_cli.utils import build_reconciler, handle_error, is_json, load_stack

console = Console()


def _score_style(score: float) -> str:
    if score == 0:
        return "green"
    return "yellow" if score < 0.3 else "red"


def _render_report(report, title: str) -> None:
    style = _score_style(report.drift_score)
    console.print(
        Panel(
            f"[{style}]Drift score: {report.drift_score:.0%}[/{style}]\n[dim]{report.summary}[/dim]",
            title=title,
        )
    )
    if not report.has_drift:
        return

    resources = Table(title="Resources")
    resources.add_column("Resource", style="cyan")
    resources.add_column("State")
    for rid in report.missing_resources:
        resources.add_row(rid, "[red]not deployed[/red]")
    for rid in report.extra_resources:
        resources.add_row(rid, "[yellow]not declared[/yellow]")
    for rid in report.drifted_resources:
        resources.add_row(rid, "[yellow]drifted[/yellow]")
    console.print(resources)

    if report.changes:
        changes = Table(title="Attribute drift")
        changes.add_column("Resource", style="cyan")
        changes.add_column("Field")
        changes.add_column("Deployed", style="red")
        changes.add_column("Declared", style="green")
        for ch in report.changes:
            changes.add_row(ch.resource_id, ch.field, ch.old_value, ch.new_value)
        console.print(changes)


def drift(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    state_file: Annotated[Path | None, typer.Option("--state", help="State file for the local provider")] = None,
    exit_code: Annotated[bool, typer.Option("--exit-code", help="Exit with status 2 when drift is found")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Report resources that are missing, undeclared or changed on the provider."""
    try:
        from stackwright.drift import detect_drift

        spec, model = load_stack(stack_file)
        reconciler = build_reconciler(ctx, spec, state_file=state_file)
        report = detect_drift(model, reconciler.provider, timeout=reconciler.timeout)

        if is_json(ctx, json_output):
            payload = {
                "has_drift": report.has_drift,
                "drift_score": report.drift_score,
                "missing_resources": report.missing_resources,
                "extra_resources": report.extra_resources,
                "drifted_resources": report.drifted_resources,
                "changes": [ch.model_dump() for ch in report.changes],
            }
            print(json.dumps(payload))
        else:
            _render_report(report, title=f"[dim]{spec.name}[/dim] ({spec.region})")

        if exit_code and report.has_drift:
            raise typer.Exit(2)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
