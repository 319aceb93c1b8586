import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from stackwright_cli import __version__
from stackwright_cli.commands.apply_cmd import apply, destroy
from stackwright_cli.commands.drift_cmd import drift
from stackwright_cli.commands.graph_cmd import graph
from stackwright_cli.commands.init_cmd import init
from stackwright_cli.commands.outputs_cmd import outputs
from stackwright_cli.commands.plan_cmd import plan
from stackwright_cli.commands.probe_cmd import probe
from stackwright_cli.commands.validate import validate


def _version_callback(value: bool) -> None:
    if value:
        print(f"stackwright {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


app = typer.Typer(
    name="stackwright",
    help="Dependency-ordered provisioning for a load-balanced container service",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version", callback=_version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["json"] = json_output
    _configure_logging(verbose)


app.command()(init)
app.command()(validate)
app.command()(graph)
app.command()(plan)
app.command()(apply)
app.command()(destroy)
app.command()(drift)
app.command()(outputs)
app.command()(probe)
