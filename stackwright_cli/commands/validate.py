from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.rule import Rule
from rich.text import Text

from stackwright_cli.utils import handle_error, load_stack, resolve_policies

console = Console()


def validate(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
) -> None:
    """Check the dependency graph, network policy and service wiring of a stack."""
    try:
        from stackwright.errors import StackwrightError
        from stackwright.graph import DependencyGraph
        from stackwright.network import NetworkPolicyValidator
        from stackwright.wiring import ServiceWiringValidator

        spec, model = load_stack(stack_file)
        checks: list[tuple[str, bool, str]] = []

        graph = None
        try:
            graph = DependencyGraph.build(model)
            checks.append(("Dependency graph", True, f"{len(graph.nodes)} resources, {len(graph.edges)} edges"))
        except StackwrightError as e:
            checks.append(("Dependency graph", False, str(e)))

        policies = resolve_policies(spec)
        try:
            NetworkPolicyValidator(policies).validate_model(model)
            checks.append(("Network policy", True, f"{len(policies)} tier polic(ies) hold"))
        except StackwrightError as e:
            checks.append(("Network policy", False, str(e)))

        try:
            wirings = ServiceWiringValidator().validate_model(model)
            checks.append(("Service wiring", True, f"{len(wirings)} service(s) routed"))
        except StackwrightError as e:
            checks.append(("Service wiring", False, str(e)))

        any_failed = not all(passed for _, passed, _ in checks)

        if ctx.obj and ctx.obj.get("json"):
            payload = {
                "passed": not any_failed,
                "checks": [{"name": n, "passed": p, "detail": d} for n, p, d in checks],
            }
            print(json.dumps(payload))
        else:
            console.print(Rule(f"[bold]{spec.name}[/bold] ({spec.region})"))
            for check_name, passed, detail in checks:
                line = Text()
                line.append_text(Text("[PASS]", style="green") if passed else Text("[FAIL]", style="red"))
                line.append(f" {check_name}")
                if detail:
                    line.append(f" - {detail}", style="dim")
                console.print(line)

        if any_failed:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
