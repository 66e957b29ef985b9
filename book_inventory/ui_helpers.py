import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from book_inventory.book import BookRecord

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "INVENTORY_CLI_OUTPUT"
OUTPUT_MODES = {"plain", "json", "rich"}

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in OUTPUT_MODES:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_list_result(books: List[BookRecord]) -> None:
    """Print books in the current output mode.
    - plain: 'ID  ISBN - Title by Author [Category, Year] copies: N' lines, or 'No books in inventory.'
    - json: JSON array of wire-form records
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
        return

    if not books:
        print("No books in inventory.")
        return

    if mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Category")
        table.add_column("Year", justify="right")
        table.add_column("Copies", justify="right")
        for b in books:
            copies = str(b.available_copies) if b.available_copies else "[red]0[/]"
            table.add_row(b.id, b.isbn, b.title, b.author, b.category.value, str(b.publication_year), copies)
        _console.print(table)
    else:
        for b in books:
            print(
                f"{b.id}  {b.isbn} - {b.title} by {b.author} "
                f"[{b.category.value}, {b.publication_year}] copies: {b.available_copies}"
            )


def print_book_result(book: BookRecord) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Title:[/] {book.title}\n"
            f"[bold]Author:[/] {book.author}\n"
            f"[bold]ISBN:[/] {book.isbn}\n"
            f"[bold]Category:[/] {book.category.value}\n"
            f"[bold]Publication Year:[/] {book.publication_year}\n"
            f"[bold]Available Copies:[/] {book.available_copies}"
        )
        _console.print(Panel.fit(content, title=f"📖 {book.id}", border_style="green"))
    else:
        print(f"ID: {book.id}")
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")
        print(f"ISBN: {book.isbn}")
        print(f"Category: {book.category.value}")
        print(f"Publication Year: {book.publication_year}")
        print(f"Available Copies: {book.available_copies}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Total Books:[/] {stats['total_books']}\n"
            f"[bold]Unique Authors:[/] {stats['unique_authors']}\n"
            f"[bold]Available Copies:[/] {stats['total_available_copies']}\n"
            f"[bold]Out of Stock:[/] {stats['out_of_stock']}"
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        print(f"Total Books: {stats['total_books']}")
        print(f"Unique Authors: {stats['unique_authors']}")
        print(f"Available Copies: {stats['total_available_copies']}")
        print(f"Out of Stock: {stats['out_of_stock']}")
        for category, count in stats.get("by_category", {}).items():
            if count:
                print(f"  {category}: {count}")
