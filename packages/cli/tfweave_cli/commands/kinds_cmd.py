"""List registered resource kinds."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from tfweave_cli.utils import ctx_flag, handle_error, load_settings

console = Console()


def kinds(
    ctx: typer.Context,
    kind: Annotated[str | None, typer.Argument(help="Show the attributes of one kind")] = None,
    category: Annotated[str | None, typer.Option("--category", "-c", help="Filter by category")] = None,
) -> None:
    """List resource kinds, or describe one."""
    try:
        from tfweave.registry import SchemaRegistry

        registry = SchemaRegistry(load_settings(ctx).schema_dirs)

        if kind is not None:
            _describe(ctx, registry.require(kind))
            return

        names = registry.list_kinds(category)
        if ctx_flag(ctx, "json"):
            print(json.dumps({"kinds": [registry.require(n).to_dict() for n in names]}, indent=2))
            return

        table = Table(title="Resource Kinds")
        table.add_column("Kind", style="cyan")
        table.add_column("Category")
        table.add_column("Attributes", justify="right")
        table.add_column("Outputs", justify="right")
        table.add_column("Computed", style="dim")
        for name in names:
            k = registry.require(name)
            table.add_row(
                name, k.category, str(len(k.schema.attributes)), str(len(k.schema.outputs)), ", ".join(sorted(k.computed))
            )
        console.print(table)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)


def _describe(ctx: typer.Context, resource_kind) -> None:
    schema = resource_kind.schema
    if ctx_flag(ctx, "json"):
        print(json.dumps(schema.model_dump(mode="json", by_alias=True, exclude_defaults=True), indent=2))
        return

    table = Table(title=f"{schema.kind} ({resource_kind.category})")
    table.add_column("Attribute", style="cyan")
    table.add_column("Kind")
    table.add_column("Type")
    table.add_column("Required")
    table.add_column("Default", style="dim")
    for attr in schema.attributes:
        table.add_row(
            attr.name,
            attr.kind.value,
            attr.type,
            "[red]yes[/red]" if attr.required else "",
            "" if attr.default is None else str(attr.default),
        )
    console.print(table)
    if schema.invariants:
        console.print("[bold]Invariants[/bold]")
        for inv in schema.invariants:
            console.print(f"  {inv.type}: {', '.join(inv.names())}")
    if schema.outputs:
        console.print(f"[bold]Outputs[/bold]: {', '.join(schema.outputs)}")
