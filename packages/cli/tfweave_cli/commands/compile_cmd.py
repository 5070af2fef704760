"""Compile templates into provisioning documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tfweave_cli.utils import ctx_flag, handle_error, load_settings

console = Console()


def compile_templates(
    ctx: typer.Context,
    source_file: Annotated[str, typer.Argument(help="Path to a template source file")],
    template: Annotated[str | None, typer.Option("--template", "-t", help="Compile only this template")] = None,
    output_dir: Annotated[
        Path | None, typer.Option("--output-dir", "-o", help="Write one <template>.tf.json per template here")
    ] = None,
) -> None:
    """Validate and synthesize every template in a source file."""
    try:
        from tfweave.compiler import TemplateCompiler

        compiler = TemplateCompiler(settings=load_settings(ctx))
        results = compiler.compile_file(source_file, template=template)

        if template and not results:
            raise ValueError(f"Template '{template}' not found in {source_file}")

        if output_dir is not None:
            output_dir.mkdir(parents=True, exist_ok=True)
            for r in results:
                if r.document is not None:
                    (output_dir / f"{r.template}.tf.json").write_text(json.dumps(r.document.to_dict(), indent=2))

        failed = [r for r in results if not r.success]

        if ctx_flag(ctx, "json"):
            print(json.dumps({"results": [r.to_dict() for r in results]}, indent=2))
            if failed:
                raise typer.Exit(1)
            return

        if not results:
            console.print("[yellow]No templates found.[/yellow]")
            return

        table = Table(title=f"Compilation: {source_file}")
        table.add_column("Template", style="cyan")
        table.add_column("Status")
        table.add_column("Resources", justify="right")
        table.add_column("Warnings", justify="right")

        for r in results:
            status = "[green]OK[/green]" if r.success else "[red]FAILED[/red]"
            table.add_row(r.template, status, str(len(r.resources)), str(len(r.warnings)))
        console.print(table)

        for r in results:
            for err in r.errors:
                field = f" [dim]({escape(err['field'])})[/dim]" if err.get("field") else ""
                console.print(f"[red]{r.template}:[/red] {err['type']}: {escape(err['message'])}{field}")
            for warning in r.warnings:
                console.print(f"[yellow]{r.template}:[/yellow] {escape(warning)}")

        if output_dir is not None:
            written = sum(1 for r in results if r.document is not None)
            console.print(Panel(f"Wrote {written} document(s) to {output_dir}", border_style="green"))

        if failed:
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
