import json
import os
from typing import Any, Dict, List, Sequence, Tuple

from rich.console import Console
from rich.table import Table

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

BOOK_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("title", "Title"), ("author", "Author"), ("category", "Category"),
    ("available_quantity", "Available"), ("total_quantity", "Total"),
)
READER_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("card_number", "Card"), ("name", "Name"), ("phone", "Phone"), ("email", "Email"),
)
LOAN_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("book_title", "Book"), ("reader_name", "Reader"), ("borrow_date", "Borrowed"),
    ("due_date", "Due"), ("return_date", "Returned"), ("status", "Status"),
)


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def print_records(items: List[Any], columns: Sequence[Tuple[str, str]], title: str, empty_message: str) -> None:
    """Print objects exposing ``to_dict()`` in the current output mode.
    - plain: one ' | '-separated line per item, or the empty message
    - json: JSON array of the selected columns
    - rich: Rich table
    """
    mode = get_output_mode()

    if not items:
        print(empty_message)
        return

    rows: List[Dict[str, Any]] = [{key: item.to_dict().get(key) for key, _ in columns} for item in items]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for _, header in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*(_cell(row[key]) for key, _ in columns))
        _console.print(table)
    else:
        for row in rows:
            print(" | ".join(_cell(row[key]) for key, _ in columns))


def print_message(message: str, style: str = "green") -> None:
    """Print a one-line result; coloured only in rich mode."""
    if get_output_mode() == "rich":
        _console.print(f"[{style}]{message}[/]")
    else:
        print(message)
