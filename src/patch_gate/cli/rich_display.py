import json
from collections import Counter
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from patch_gate.models import ValidationResult

console = Console()


def count_operations(patches: list) -> Counter:
    """Count patch operations by kind (malformed entries count as "?")."""
    ops: Counter = Counter()
    for op in patches:
        name = op.get("op") if isinstance(op, dict) else None
        ops[name if isinstance(name, str) else "?"] += 1
    return ops


def create_operations_table(ops: Counter) -> Table:
    """Build the table listing operation kinds and their counts."""
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Operation")
    table.add_column("Count", justify="right")
    for name, count in ops.most_common():
        table.add_row(name, str(count))
    return table


def print_start_panel(document_name: str, num_ops: int, has_schema: bool) -> None:
    """Print the start panel of the validation."""
    console.print()
    console.print(
        Panel(
            f"[bold]Document:[/bold] {document_name}\n"
            f"[bold]Operations:[/bold] {num_ops}\n"
            f"[bold]Schema:[/bold] {'Provided' if has_schema else 'None (patch only)'}",
            title="[bold cyan]Validating Patch[/bold cyan]",
            border_style="cyan",
        )
    )


def print_result_panel(result: ValidationResult, ops: Counter) -> None:
    """Print the success panel, or the warning panel when a test op failed."""
    if result.test is False:
        headline = "[bold yellow]Patch is valid but a test operation failed.[/bold yellow]\n"
        style = "yellow"
    else:
        headline = "[bold green]Patch accepted![/bold green]\n"
        style = "green"

    test_text = {None: "no test operations", True: "all passed", False: "failed"}[result.test]
    console.print(
        Panel(
            f"{headline}\n[bold]Tests:[/bold] {test_text}",
            title=f"[bold {style}]Result[/bold {style}]",
            border_style=style,
        )
    )
    if ops:
        console.print(create_operations_table(ops))


def print_error_panel(message: str, error_type: Any = None) -> None:
    """Print the error panel."""
    body = f"[red]{message}[/red]"
    if error_type is not None:
        body += f"\n\n[dim]{getattr(error_type, 'value', error_type)}[/dim]"
    console.print(
        Panel(
            body,
            title="[bold red]Rejected[/bold red]",
            border_style="red",
        )
    )
    console.print()


def print_json_panel(document: Any) -> None:
    """Print the patched JSON in a panel with syntax highlighting."""
    syntax = Syntax(
        json.dumps(document, indent=2, ensure_ascii=False),
        "json",
        theme="monokai",
        line_numbers=True,
    )
    console.print(
        Panel(syntax, title="[bold]Patched document[/bold]", border_style="blue")
    )
