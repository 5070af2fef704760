"""Static analysis of template sources."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from tfweave_cli.utils import ctx_flag, handle_error, load_settings

console = Console()

_SEVERITY_STYLE = {"high": "red", "medium": "yellow", "low": "dim"}


def analyze(
    ctx: typer.Context,
    source_file: Annotated[str, typer.Argument(help="Path to a template source file")],
    template: Annotated[str | None, typer.Option("--template", "-t", help="Analyze only this template")] = None,
    use_documents: Annotated[
        bool, typer.Option("--documents/--text-only", help="Compile first and check synthesized documents")
    ] = False,
) -> None:
    """Report inventory, dependencies, complexity and likely issues."""
    try:
        from tfweave.analyzer import StructuralAnalyzer
        from tfweave.compiler import TemplateCompiler
        from tfweave.extractor import TemplateExtractor

        settings = load_settings(ctx)
        templates = TemplateExtractor().extract_file(source_file)
        if template is not None:
            templates = [t for t in templates if t.name == template]
            if not templates:
                raise ValueError(f"Template '{template}' not found in {source_file}")

        documents = {}
        if use_documents:
            compiler = TemplateCompiler(settings=settings)
            for t in templates:
                result = compiler.compile_template(t)
                if result.document is not None:
                    documents[t.name] = result.document

        analyzer = StructuralAnalyzer(parallel=settings.parallel, max_workers=settings.max_workers)
        report = analyzer.analyze(templates, documents)
        data = report.to_dict()

        if ctx_flag(ctx, "json"):
            print(json.dumps(data, indent=2))
            return

        stats = data["statistics"]
        complexity = data["complexity"]
        console.print(
            Panel(
                f"Templates: {stats['template_count']}  |  "
                f"Resources: {stats['total_resources']}  |  "
                f"Dependencies: {data['dependency_graph']['edge_count']}  |  "
                f"Complexity: {complexity['total_score']} ({complexity['rating']})",
                title=f"Analysis: {source_file}",
                border_style="red" if report.issues else "green",
            )
        )

        table = Table(title="\nTemplates")
        table.add_column("Template", style="cyan")
        table.add_column("Lines", justify="right")
        table.add_column("Resources", justify="right")
        table.add_column("Dependencies", justify="right")
        table.add_column("Score", justify="right")
        for t in data["templates"]:
            table.add_row(
                t["name"], str(t["line_count"]), str(t["resource_count"]), str(t["dependency_count"]), str(t["complexity_score"])
            )
        console.print(table)

        if report.edges:
            tree = Tree("[bold]Dependency Graph[/bold]")
            branches: dict[str, Tree] = {}
            for edge in report.edges:
                if edge.source not in branches:
                    branches[edge.source] = tree.add(f"[cyan]{edge.source}[/cyan]")
                attr = f".{edge.attribute}" if edge.attribute else ""
                branches[edge.source].add(f"{edge.target}{attr} [dim]({edge.kind})[/dim]")
            console.print(tree)

        if report.issues:
            issues = Table(title="\nIssues")
            issues.add_column("Severity")
            issues.add_column("Template", style="cyan")
            issues.add_column("Detector")
            issues.add_column("Message")
            issues.add_column("Remediation", style="dim")
            for issue in report.issues:
                style = _SEVERITY_STYLE.get(issue.severity, "white")
                issues.add_row(
                    f"[{style}]{issue.severity}[/{style}]",
                    issue.template,
                    issue.detector,
                    escape(issue.message),
                    escape(issue.remediation),
                )
            console.print(issues)

        for rec in complexity["recommendations"]:
            console.print(f"[yellow]*[/yellow] {escape(rec)}")
        for note in data["best_practices"]["violations"]:
            console.print(f"[red]x[/red] {escape(note)}")
        for note in data["best_practices"]["followed"]:
            console.print(f"[green]+[/green] {escape(note)}")

    except typer.Exit:
        raise
    except Exception as e:
        handle_error(ctx, e)
