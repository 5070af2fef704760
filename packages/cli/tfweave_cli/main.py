import typer

from tfweave_cli import __version__
from tfweave_cli.commands.analyze_cmd import analyze
from tfweave_cli.commands.compile_cmd import compile_templates
from tfweave_cli.commands.kinds_cmd import kinds
from tfweave_cli.commands.validate_cmd import validate
from tfweave_cli.utils import configure_logging


def _version_callback(value: bool) -> None:
    if value:
        print(f"tfweave {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="tfweave",
    help="Typed resource templates: validate, synthesize and analyze",
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
    configure_logging(verbose)


app.command(name="compile")(compile_templates)
app.command()(analyze)
app.command()(validate)
app.command()(kinds)
