"""Shared console output formatters."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from mcpchat.mcp.models import ToolDescriptor, ToolResult

console = Console()
err_console = Console(stderr=True)


def print_tools_table(tools: list[ToolDescriptor]) -> None:
    """Pretty-print a tool catalog as a table."""
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")

    for tool in tools:
        table.add_row(tool.name, _truncate(tool.description))

    console.print(table)


def print_tool_result(result: ToolResult) -> None:
    """Print each content item, pretty-printing text that holds JSON."""
    for item in result.content:
        if item.text is None:
            console.print(item.model_dump(exclude_none=True))
            continue
        try:
            parsed = json.loads(item.text)
        except json.JSONDecodeError:
            console.print(item.text, markup=False, highlight=False)
        else:
            console.print_json(data=parsed)


def print_models(models: list[str], *, selected: str | None = None) -> None:
    """List model ids, marking the selected one."""
    if not models:
        console.print("[yellow]No models listed by the backend.[/yellow]")
        return
    for model in sorted(models):
        marker = " [green](latest)[/green]" if model == selected else ""
        console.print(f"  {model}{marker}")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
