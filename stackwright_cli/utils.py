from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console

from stackwright.errors import StackwrightError
from stackwright_cli.project import find_project_root, load_project_config, resolve_stack_path

_err_console = Console(stderr=True)


def handle_error(ctx: typer.Context, e: Exception) -> None:
    """Print a clean error message and exit 1."""
    import yaml

    verbose = ctx.obj.get("verbose", False) if ctx.obj else False
    json_mode = ctx.obj.get("json", False) if ctx.obj else False

    if isinstance(e, FileNotFoundError):
        msg = f"File not found: {e}"
    elif isinstance(e, yaml.YAMLError):
        msg = f"Invalid YAML: {e}"
    elif isinstance(e, StackwrightError):
        msg = f"{type(e).__name__}: {e}"
    elif "validation" in type(e).__name__.lower():
        msg = f"Invalid stack: {e}"
    elif isinstance(e, ValueError):
        msg = str(e)
    else:
        msg = f"Error: {e}"

    if json_mode:
        print(json.dumps({"error": msg}))
    else:
        _err_console.print(f"[red]Error:[/red] {msg}")

    if verbose:
        _err_console.print_exception()

    raise typer.Exit(1)


def is_json(ctx: typer.Context, local_flag: bool = False) -> bool:
    return local_flag or bool(ctx.obj and ctx.obj.get("json"))


def load_stack(stack_file: str | None):
    """Load the stack and build its resource model."""
    from stackwright.model import ResourceModel
    from stackwright.spec import StackSpec

    spec = StackSpec.from_file(resolve_stack_path(stack_file))
    return spec, ResourceModel.from_spec(spec)


def resolve_policies(spec, settings: dict | None = None) -> list:
    """Network policies for a stack: the configured plugin, the stack's own, or the derived default."""
    from stackwright.model import ResourceModel
    from stackwright.network import default_policies
    from stackwright.plugins import discover_policies

    if settings is None:
        settings = load_project_config(find_project_root())
    model = ResourceModel.from_spec(spec)

    policy_name = settings.get("policy")
    if policy_name:
        factories = discover_policies()
        if policy_name not in factories:
            raise ValueError(f"Unknown network policy plugin: {policy_name!r}")
        return list(factories[policy_name](model))
    if spec.policies:
        return list(spec.policies)
    return default_policies(model)


def build_reconciler(
    ctx: typer.Context,
    spec,
    state_file: Path | None = None,
    timeout: float | None = None,
):
    """Reconciler for the stack's region against the configured provider."""
    from stackwright.providers import get_provider
    from stackwright.reconciler import Reconciler

    settings = load_project_config(find_project_root())
    if state_file is not None:
        settings["state_file"] = str(state_file)

    provider_name = settings["provider"]
    if provider_name == "local":
        provider = get_provider("local", state_file=settings["state_file"])
    else:
        provider = get_provider(provider_name)

    ctx.ensure_object(dict)
    ctx.obj["max_workers"] = int(settings.get("max_workers", 4))
    return Reconciler(
        provider,
        region=spec.region,
        timeout=float(timeout if timeout is not None else settings["timeout"]),
        policies=resolve_policies(spec, settings),
    )
