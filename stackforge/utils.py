"""Shared utility functions for stackforge.

Provides JSON I/O, name helpers, duration formatting and the Rich-based
console output used by the pipeline and CLI.  Library modules never print;
everything user-facing goes through the helpers below.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.rule import Rule
from rich.table import Table
from rich.tree import Tree

console = Console()


# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def sanitize_name(name: str) -> str:
    """Convert an arbitrary project name to a safe directory name.

    * Lowercases the input.
    * Replaces spaces and non-alphanumeric characters (except hyphens and
      underscores) with hyphens.
    * Collapses consecutive hyphens and strips leading/trailing hyphens.

    Examples::

        sanitize_name("My Todo App") -> "my-todo-app"
        sanitize_name("  Shop (v2)  ") -> "shop-v2"
    """
    result = re.sub(r"[^a-zA-Z0-9_-]", "-", name.strip().lower())
    result = re.sub(r"-+", "-", result)
    return result.strip("-")


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> dict[str, Any]:
    """Load and parse a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        return {"_root": data}
    return data


def dump_json(data: dict[str, Any] | list[Any]) -> str:
    """Serialise *data* deterministically (sorted keys, trailing newline)."""
    return json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True, default=str) + "\n"


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(0.42)   -> "0.4s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STEP_COLORS: dict[str, str] = {
    "RESOLVE": "bright_cyan",
    "COMPOSE": "bright_green",
    "SYNC": "bright_magenta",
    "WRITE": "bright_blue",
}


def print_step_header(index: int, name: str) -> None:
    """Print a full-width rule announcing a generation step."""
    color = STEP_COLORS.get(name.upper(), "white")
    console.print()
    console.print(
        Rule(
            f"[bold {color}] Step {index}: {name.upper()} [/bold {color}]",
            style=color,
        )
    )


def print_summary_table(data: dict[str, Any], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def build_plan_tree(root: str, paths: Iterable[str]) -> Tree:
    """Build a Rich ``Tree`` of *paths* (POSIX, relative) under *root*."""
    tree = Tree(f"[bold]{root}/[/bold]")
    nodes: dict[str, Tree] = {"": tree}
    for path in sorted(paths):
        parts = path.split("/")
        for depth in range(1, len(parts) + 1):
            key = "/".join(parts[:depth])
            if key in nodes:
                continue
            parent = nodes["/".join(parts[: depth - 1])]
            is_file = depth == len(parts)
            label = parts[depth - 1] if is_file else f"[bold blue]{parts[depth - 1]}/[/bold blue]"
            nodes[key] = parent.add(label)
    return tree


def print_plan_tree(root: str, paths: Iterable[str]) -> None:
    """Print the file tree a plan would produce."""
    console.print(build_plan_tree(root, paths))
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
