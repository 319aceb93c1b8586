"""Initialize a new stack file for the load-balanced container service."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console

from stackwright_cli.project import PROJECT_DIR
from stackwright_cli.utils import handle_error

console = Console()


def init(
    ctx: typer.Context,
    name: Annotated[str, typer.Option(help="Stack name, used as prefix for remote names")] = "webapp",
    region: Annotated[str | None, typer.Option(help="Region (default: $STACKWRIGHT_REGION or us-east-1)")] = None,
    image: Annotated[str, typer.Option(help="Container image reference")] = "webapp:latest",
    desired_count: Annotated[int, typer.Option("--desired-count", help="Static replica count")] = 1,
    cpu: Annotated[int, typer.Option(help="CPU units reserved per task")] = 256,
    memory: Annotated[int, typer.Option(help="Memory (MiB) reserved per task")] = 512,
    listener_port: Annotated[int, typer.Option("--listener-port", help="Public listener port")] = 80,
    container_port: Annotated[int, typer.Option("--container-port", help="Port the container listens on")] = 3000,
    health_check_path: Annotated[str, typer.Option("--health-check-path", help="Health check path")] = "/",
    matcher: Annotated[str, typer.Option(help="Healthy status codes, e.g. 200,301,302")] = "200,301,302",
    output: Annotated[str, typer.Option("--output", "-o", help="Output file path")] = "stack.yaml",
    project: Annotated[bool, typer.Option("--project", "-p", help="Create a .stackwright/ project directory")] = False,
) -> None:
    """Write a stack file declaring registry, cluster, load balancer and service."""
    try:
        from stackwright.spec import StackConfig
        from stackwright.templates import build_stack

        config = StackConfig(
            name=name,
            region=region or os.environ.get("STACKWRIGHT_REGION", "us-east-1"),
            image=image,
            desired_count=desired_count,
            cpu=cpu,
            memory=memory,
            listener_port=listener_port,
            container_port=container_port,
            health_check_path=health_check_path,
            health_check_matcher=matcher,
        )
        spec = build_stack(config)

        if project:
            project_dir = Path(PROJECT_DIR)
            project_dir.mkdir(exist_ok=True)
            out_path = project_dir / "stack.yaml"
            config_path = project_dir / "config.yaml"
            if not config_path.exists():
                config_path.write_text(
                    yaml.dump(
                        {"provider": "local", "state_file": "state.json", "timeout": 30, "max_workers": 4},
                        default_flow_style=False,
                        sort_keys=False,
                    )
                )
        else:
            out_path = Path(output)

        out_path.write_text(spec.to_yaml())
        console.print(f"[green]Wrote {len(spec.resources)} resources to {out_path}[/green]")
        console.print(f"[dim]Region: {spec.region}  Service: {config.desired_count} x {config.image}[/dim]")

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
