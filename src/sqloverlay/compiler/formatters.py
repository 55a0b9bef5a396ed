"""Output formatters for compile results."""

import json
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from sqloverlay.compiler.models import CompiledStatement
from sqloverlay.templating.models import SkippedTemplate, Template


class TextFormatter:
    """Format a compiled statement for terminal display."""

    @staticmethod
    def format(statement: CompiledStatement, console: Console) -> None:
        """
        Print the SQL with syntax highlighting, followed by bind slots.

        Args:
            statement: The compiled statement
            console: Rich Console instance for output
        """
        console.print(
            f"[bold]{statement.template_name}[/bold] "
            f"[dim]({statement.context.value}, {statement.dialect})[/dim]"
        )
        console.print(Syntax(statement.sql, "sql", word_wrap=True))

        if statement.parameter_order:
            table = Table(title="Bind Parameters", title_style="bold")
            table.add_column("Position", style="cyan", justify="right")
            table.add_column("Name", style="green")
            table.add_column("Value", style="yellow")
            for slot in statement.parameter_order:
                table.add_row(str(slot.position), slot.name, repr(slot.value))
            console.print(table)

        if statement.overlaid_tables:
            console.print(
                f"[dim]Overlaid: {', '.join(statement.overlaid_tables)}[/dim]"
            )


class JsonFormatter:
    """Format a compiled statement as JSON."""

    @staticmethod
    def format(statement: CompiledStatement) -> str:
        """
        Format a compiled statement as JSON.

        Output format:
        {
          "template": "T1",
          "base_table": "CATENTRY",
          "context": "runtime",
          "dialect": "db2",
          "sql": "SELECT ...",
          "parameters": [{"position": 0, "name": "Id", "value": 10683}],
          "overlaid_tables": [],
          "pushed_predicates": [...],
          "warnings": []
        }

        Args:
            statement: The compiled statement

        Returns:
            JSON-formatted string
        """
        data = {
            "template": statement.template_name,
            "base_table": statement.base_table,
            "context": statement.context.value,
            "dialect": statement.dialect,
            "sql": statement.sql,
            "parameters": [
                {"position": slot.position, "name": slot.name, "value": slot.value}
                for slot in statement.parameter_order
            ],
            "overlaid_tables": statement.overlaid_tables,
            "pushed_predicates": [
                placement.model_dump(mode="json")
                for placement in statement.pushed_predicates
            ],
            "warnings": statement.warnings,
        }
        return json.dumps(data, indent=2, default=str)


class PlanTextFormatter:
    """Format pushdown decisions as a Rich table."""

    @staticmethod
    def format(statement: CompiledStatement, console: Console) -> None:
        """
        Print one row per predicate with its kind and final placement.

        Args:
            statement: The compiled statement
            console: Rich Console instance for output
        """
        if not statement.pushed_predicates:
            console.print("[yellow]No predicates found.[/yellow]")
            return

        table = Table(
            title=f"Pushdown plan: {statement.template_name} ({statement.context.value})",
            title_style="bold",
        )
        table.add_column("Scope", style="dim", justify="right")
        table.add_column("Predicate", style="cyan")
        table.add_column("Kind", style="green")
        table.add_column("Destination", style="yellow")
        table.add_column("Target")

        for placement in statement.pushed_predicates:
            if placement.overlay:
                target = f"overlay {placement.overlay}"
            elif placement.join_index is not None:
                target = f"join #{placement.join_index}"
            else:
                target = ""
            predicate = Text(placement.predicate)
            if placement.duplicated:
                predicate.append(" (derived)", style="dim")
            table.add_row(
                str(placement.scope),
                predicate,
                placement.kind.value,
                placement.destination.value,
                target,
            )

        console.print(table)
        console.print(f"[dim]Total: {len(statement.pushed_predicates)} predicate(s)[/dim]")
        for warning in statement.warnings:
            console.print(f"[yellow]Warning:[/yellow] {warning}")


class TemplateListFormatter:
    """Format the loaded templates for terminal display."""

    @staticmethod
    def format(
        templates: List[Template], skipped: List[SkippedTemplate], console: Console
    ) -> None:
        """
        Print loaded templates and any blocks that failed to parse.

        Args:
            templates: Templates in the registry
            skipped: Blocks that were rejected at load time
            console: Rich Console instance for output
        """
        if not templates:
            console.print("[yellow]No templates loaded.[/yellow]")
        else:
            table = Table(title="Templates", title_style="bold")
            table.add_column("Name", style="cyan")
            table.add_column("Base Table", style="green")
            table.add_column("Workspace Variant", style="yellow")
            for template in templates:
                table.add_row(
                    template.name,
                    template.base_table,
                    "yes" if template.has_workspace_variant else "runtime fallback",
                )
            console.print(table)
            console.print(f"[dim]Total: {len(templates)} template(s)[/dim]")

        for entry in skipped:
            name = entry.name or "<unnamed>"
            console.print(
                f"[yellow]Warning:[/yellow] Skipped {name} at line {entry.line}: {entry.reason}"
            )


class OutputWriter:
    """Write formatted output to file or stdout."""

    @staticmethod
    def write(content: str, output_file: Optional[Path] = None) -> None:
        """
        Write content to file or stdout.

        Args:
            content: The content to write
            output_file: Optional file path. If None, writes to stdout.
        """
        if output_file:
            output_file.write_text(content, encoding="utf-8")
        else:
            print(content)
