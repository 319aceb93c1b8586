"""Simulate health-check probes against the service wiring."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from stackwright_cli.utils import handle_error, is_json, load_stack

console = Console()


def probe(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    response: Annotated[
        list[int] | None, typer.Option("--response", "-r", help="Simulated HTTP status of one probe (repeatable)")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Evaluate simulated container responses against the target group health check."""
    try:
        from stackwright.wiring import ServiceWiringValidator, probe_service

        _, model = load_stack(stack_file)
        wirings = ServiceWiringValidator().validate_model(model)
        responses = response or [200]

        reports = [probe_service(w, responses) for w in wirings]

        if is_json(ctx, json_output):
            payload = [
                {
                    "service": r.service_id,
                    "responses": responses,
                    "states": [s.value for s in r.states],
                    "has_traffic_path": r.has_traffic_path,
                }
                for r in reports
            ]
            print(json.dumps(payload))
        else:
            for wiring, report in zip(wirings, reports):
                table = Table(title=f"{wiring.service_id} via {wiring.listener_id}:{wiring.listener_port}")
                table.add_column("Probe", justify="right", style="dim")
                table.add_column("Status")
                table.add_column("Health")
                for i, (code, state) in enumerate(zip(responses, report.states)):
                    style = "green" if state.value == "healthy" else "red"
                    table.add_row(str(i), str(code), f"[{style}]{state.value}[/{style}]")
                console.print(table)
                if not report.has_traffic_path:
                    console.print(f"[red]No successful traffic path to {wiring.service_id}.[/red]")

        if not all(r.has_traffic_path for r in reports):
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
