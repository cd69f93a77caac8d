import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# İzin verilen değerler: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode
    else:
        # Geçersiz değerleri yoksay; mevcut varsayılanı koru
        pass

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def print_book_page(page: Dict[str, Any]) -> None:
    """Sayfalanmış kitap listesini mevcut çıktı moduna göre yazdır.
    - plain: 'CODE - Title by Author [available/total]' satırları, veya 'No books in library.'
    - json: sayfa bilgisiyle birlikte JSON nesnesi
    - rich: Rich tablosu
    """
    mode = get_output_mode()
    books: List[Any] = page.get("items", [])

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        payload = {
            "items": [b.to_lookup() for b in books],
            "total": page.get("total", len(books)),
            "page": page.get("page", 1),
            "total_pages": page.get("total_pages", 1),
        }
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("Code", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Shelf", style="dim")
        table.add_column("Available", justify="right")
        for b in books:
            style = "green" if b.can_issue else "red"
            table.add_row(b.code, b.title, b.author, b.shelf_no or b.shelf,
                          f"[{style}]{b.available_copies}/{b.total_copies}[/]")
        _console.print(table)
        _console.print(f"[dim]Page {page.get('page', 1)} of {page.get('total_pages', 1)} "
                       f"({page.get('total', len(books))} books)[/]")
    else:
        for b in books:
            print(f"{b.code} - {b.title} by {b.author} [{b.available_copies}/{b.total_copies}]")
        print(f"Page {page.get('page', 1)} of {page.get('total_pages', 1)}")

def print_member_list(members: List[Any]) -> None:
    mode = get_output_mode()

    if not members:
        print("No members found.")
        return

    if mode == "json":
        print(json.dumps([m.to_dict() for m in members], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="👥 Members", header_style="bold cyan")
        table.add_column("Code", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Type")
        table.add_column("Contact", style="dim")
        for m in members:
            table.add_row(m.code, m.name, m.member_type, m.email or m.phone or "")
        _console.print(table)
    else:
        for m in members:
            print(f"{m.code} - {m.name} ({m.member_type})")

def print_lookup_result(projection: Dict[str, Any]) -> None:
    """Tek bir kitabın özetini yazdır."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(projection, ensure_ascii=False))
    elif mode == "rich":
        status = "[green]can issue[/]" if projection["can_issue"] else "[red]no copies available[/]"
        content = (
            f"[bold]{projection['title']}[/] by {projection['author']}\n"
            f"Shelf: {projection['shelf_no'] or '-'} {projection['shelf']}\n"
            f"Copies: {projection['available']}/{projection['total']} ({status})"
        )
        _console.print(Panel.fit(content, title=f"📖 {projection['code']}", border_style="blue"))
    else:
        print(f"Code: {projection['code']}")
        print(f"Title: {projection['title']}")
        print(f"Author: {projection['author']}")
        print(f"Available: {projection['available']}/{projection['total']}")
        print(f"Can issue: {'yes' if projection['can_issue'] else 'no'}")

def print_stats_result(stats: Dict[str, Any]) -> None:
    """Statistikleri mevcut çıktı moduna göre yazdır."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{k.replace('_', ' ').title()}:[/] {v}" for k, v in stats.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for k, v in stats.items():
            print(f"{k.replace('_', ' ').title()}: {v}")
