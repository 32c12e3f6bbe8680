"""Shared console output helpers for flowstate.

Every user-facing message goes through the module-level Rich ``console`` so
tests can capture it and the core stays silent.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from flowstate.modules.models import Issue, ModuleDescriptor, Suggestion

console = Console()


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_summary_table(data: Mapping[str, object], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(escape(key), escape(str(value)))

    console.print(table)
    console.print()


def print_issue_table(issues: Iterable[Issue], title: str = "Issues") -> None:
    """Print resolution issues, blocking ones in red and warnings in yellow."""
    rows = list(issues)
    if not rows:
        return
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Kind", no_wrap=True)
    table.add_column("Module", style="dim")
    table.add_column("Message")

    for issue in rows:
        style = "red" if issue.blocking else "yellow"
        module = issue.module or ", ".join(issue.modules) or "-"
        table.add_row(f"[{style}]{issue.kind.value}[/{style}]", escape(module), escape(issue.message))

    console.print(table)


def print_module_table(modules: Iterable[ModuleDescriptor], title: str = "Modules") -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Id", no_wrap=True)
    table.add_column("Category", style="dim")
    table.add_column("Provides")
    table.add_column("Description")

    for module in modules:
        table.add_row(
            escape(module.id),
            module.category.value,
            escape(", ".join(module.provides)),
            escape(module.description),
        )

    console.print(table)


def print_suggestions(suggestions: Iterable[Suggestion]) -> None:
    for suggestion in suggestions:
        if suggestion.action == "replace":
            console.print(
                f"  [cyan]-[/cyan] replace [bold]{escape(suggestion.module)}[/bold] with "
                f"[bold]{escape(suggestion.replacement or '')}[/bold] ({escape(suggestion.reason)})"
            )
        else:
            console.print(
                f"  [cyan]-[/cyan] add [bold]{escape(suggestion.module)}[/bold] ({escape(suggestion.reason)})"
            )


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")
