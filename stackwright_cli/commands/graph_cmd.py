from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from stackwright_cli.utils import handle_error, load_stack

console = Console()


def graph(
    ctx: typer.Context,
    stack_file: Annotated[str | None, typer.Argument(help="Path to stack YAML (default: project stack)")] = None,
    fmt: Annotated[str, typer.Option("--format", "-f", help="table, mermaid or json")] = "table",
) -> None:
    """Show the resource dependency graph and its creation order."""
    try:
        from stackwright.exporter import export_graph
        from stackwright.graph import DependencyGraph

        _, model = load_stack(stack_file)
        dag = DependencyGraph.build(model)

        if fmt != "table":
            print(export_graph(dag, fmt))
            return

        table = Table(title="Creation Order")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Resource", style="cyan")
        table.add_column("Kind")
        table.add_column("Depends on", style="dim")
        for i, rid in enumerate(dag.topological_order()):
            resource = model.get_resource(rid)
            table.add_row(str(i), rid, resource.kind.value, ", ".join(dag.dependencies(rid)))
        console.print(table)

        levels = dag.levels()
        widest = max(map(len, levels), default=0)
        console.print(f"[dim]{len(levels)} level(s); widest level has {widest} resource(s)[/dim]")

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
