from __future__ import annotations

import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from tfweave.config import Settings
from tfweave.errors import TfweaveError

_err_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=_err_console, show_path=False)],
        force=True,
    )


def ctx_flag(ctx: typer.Context, name: str) -> bool:
    obj = ctx.obj or (ctx.parent.obj if ctx.parent else None) or {}
    return bool(obj.get(name, False))


def load_settings(ctx: typer.Context) -> Settings:
    obj = ctx.obj or {}
    settings = obj.get("settings")
    if settings is None:
        settings = Settings.load()
        if ctx.obj is not None:
            ctx.obj["settings"] = settings
    return settings


def handle_error(ctx: typer.Context, e: Exception) -> None:
    """Print a clean error message and exit 1."""
    import yaml

    verbose = ctx_flag(ctx, "verbose")
    json_mode = ctx_flag(ctx, "json")

    if isinstance(e, FileNotFoundError):
        msg = f"File not found: {e}"
    elif isinstance(e, yaml.YAMLError):
        msg = f"Invalid YAML: {e}"
    elif isinstance(e, TfweaveError):
        msg = str(e)
    elif isinstance(e, ValueError):
        msg = str(e)
    else:
        msg = f"Error: {e}"

    if json_mode:
        payload = e.to_dict() if isinstance(e, TfweaveError) else {"message": msg}
        print(json.dumps({"error": payload}))
    else:
        _err_console.print(f"[red]Error:[/red] {escape(msg)}")

    if verbose:
        _err_console.print_exception()

    raise typer.Exit(1)
