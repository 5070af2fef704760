"""Validate an attribute map against a resource kind."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax

from tfweave_cli.utils import ctx_flag, handle_error, load_settings

console = Console()


def validate(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="Resource kind, e.g. aws_s3_bucket")],
    attrs_file: Annotated[Path, typer.Argument(help="YAML file holding the attribute map")],
) -> None:
    """Check attributes against a kind's schema and show the synthesized body."""
    try:
        from tfweave.compiler import resolve_references
        from tfweave.registry import SchemaRegistry
        from tfweave.synthesizer import synthesize
        from tfweave.validator import validate as validate_attrs

        settings = load_settings(ctx)
        registry = SchemaRegistry(settings.schema_dirs)
        resource_kind = registry.resolve(kind, strict=settings.strict_kinds)
        raw = yaml.safe_load(attrs_file.read_text()) or {}

        attrs = validate_attrs(resource_kind.schema, resolve_references(raw))
        document = synthesize(resource_kind.schema, attrs).to_dict()
        computed = {}
        for name, fn in resource_kind.computed.items():
            computed[name] = fn(attrs)

        if ctx_flag(ctx, "json"):
            print(json.dumps({"kind": kind, "valid": True, "document": document, "computed": computed}, indent=2))
            return

        console.print(f"[green]Valid[/green] {kind}")
        if kind not in registry:
            console.print(f"[yellow]No schema registered for {kind}; attributes were not checked[/yellow]")
        console.print(Syntax(json.dumps(document, indent=2), "json"))
        for name, value in computed.items():
            console.print(f"  [cyan]{name}[/cyan]: {value}")

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
