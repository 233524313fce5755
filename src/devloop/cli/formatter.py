import json
import typer
from typing import Any, List
from pydantic import BaseModel
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from devloop.utils.diagnostics import DevloopDiagnostic

# Create a stderr console for logging
error_console = Console(stderr=True)

SEVERITY_STYLES = {
    "info": "white",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "critical": "bold red",
    "output": "dim",
}

class OutputFormatter:
    """
    Handles console output for the CLI.
    System messages and build output go to stderr; data goes to stdout.
    """

    @staticmethod
    def log(message: str, severity: str = "info") -> None:
        """
        Print system messages to stderr with color coding.
        """
        style = SEVERITY_STYLES.get(severity, "white")

        if severity == "output":
            # Raw build tool output, indented and without a prefix.
            for line in message.splitlines():
                error_console.print(f"[{style}]    {escape(line)}[/{style}]")
            return

        error_console.print(f"[{style}]\\[devloop] {escape(message)}[/{style}]")

    @staticmethod
    def print_diagnostics(diagnostics: List[DevloopDiagnostic]) -> None:
        """
        Prints a summary table of failed session steps.
        """
        if not diagnostics:
            return

        table = Table(title="Session Diagnostics", border_style="red", header_style="bold red")
        table.add_column("Severity", style="bold")
        table.add_column("Step")
        table.add_column("Message")

        for diag in diagnostics:
            color = "red"
            if diag.severity == "warning":
                color = "yellow"
            elif diag.severity == "critical":
                color = "bold red"

            table.add_row(
                f"[{color}]{diag.severity.upper()}[/{color}]",
                diag.step,
                escape(diag.message),
            )

        error_console.print(table)
        error_console.print() # spacing

    @staticmethod
    def print_data(data: Any) -> None:
        """
        Print a result to stdout as JSON. Handles Pydantic models and paths.
        """
        if isinstance(data, str):
            typer.echo(data)
            return

        def json_serializer(obj):
            if isinstance(obj, BaseModel):
                return obj.model_dump(mode='json')
            return str(obj)

        typer.echo(json.dumps(data, indent=2, default=json_serializer))
