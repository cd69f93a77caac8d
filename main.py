import logging
import subprocess
import sys
from typing import Optional

import typer
from rich.console import Console

import database
from book import Book
from config import settings
from library import DuplicateCodeError, Library, MemberValidationError
from member import GENDERS, MEMBER_TYPES
from utils.ui_helpers import (
    set_output_mode,
    print_book_page,
    print_lookup_result,
    print_member_list,
    print_stats_result,
)

APP_NAME = "Kütüphane CLI"

console = Console(stderr=True)
logger = logging.getLogger(__name__)


class LibraryManager:
    """Library örneğini veritabanı dosyası başına önbelleğe alır."""

    _instance: Optional[Library] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Library:
        current_db = database.resolve_database_file()
        # Veritabanı dosyası değişirse (ör. test başına veritabanı), örneği yeniden oluştur
        if cls._instance is None or current_db != cls._db_file_snapshot:
            cls._instance = Library(db_file=current_db)
            cls._db_file_snapshot = current_db
        return cls._instance


# --- Typer CLI Uygulaması ---
app = typer.Typer(help=APP_NAME)

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Çıktı formatı: plain | json | rich (varsayılan: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Ayrıntılı günlük kaydı"),
):
    """CLI için genel seçenekler (ör. çıktı modu)."""
    logging.basicConfig(level=logging.DEBUG if verbose else settings.log_level)
    if output:
        set_output_mode(output)

@app.command("list")
def cli_list(
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Başlığa göre filtrele"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Yazara göre filtrele"),
    page: int = typer.Option(1, "--page", "-p", help="Sayfa numarası"),
):
    """Kitapları sayfa sayfa listele."""
    lib = LibraryManager.get_instance()
    print_book_page(lib.list_books(title=title, author=author, page=page))

@app.command("lookup")
def cli_lookup(token: str = typer.Argument(..., help="Kitap kodu, numarası veya kimliği")):
    """Bir kitabı bul ve stok durumunu göster."""
    projection = LibraryManager.get_instance().lookup_book(token)
    if projection is None:
        print(f"Book {token} not found.")
        raise typer.Exit(code=1)
    print_lookup_result(projection)

@app.command("add-book")
def cli_add_book(
    title: str = typer.Option(..., "--title", help="Başlık"),
    author: str = typer.Option("", "--author", help="Yazar"),
    code: Optional[str] = typer.Option(None, "--code", help="Boşsa otomatik üretilir"),
    category: Optional[str] = typer.Option(None, "--category"),
    year: Optional[int] = typer.Option(None, "--year"),
    total: int = typer.Option(1, "--total", min=0, help="Toplam kopya"),
    available: Optional[int] = typer.Option(None, "--available", min=0, help="Boşsa toplam kullanılır"),
    shelf_no: Optional[str] = typer.Option(None, "--shelf-no"),
    shelf: Optional[str] = typer.Option(None, "--shelf"),
):
    """Kataloğa bir kitap ekle."""
    book = Book(title=title, author=author, code=code, category=category, year=year,
                total_copies=total, available_copies=available, shelf_no=shelf_no, shelf=shelf)
    try:
        book = LibraryManager.get_instance().add_book(book)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Successfully added: {book.title} ({book.code})")

@app.command("add-member")
def cli_add_member(
    name: str = typer.Option(..., "--name", help="Ad soyad"),
    member_type: str = typer.Option(..., "--type", help=" | ".join(MEMBER_TYPES)),
    gender: str = typer.Option(..., "--gender", help=" | ".join(GENDERS)),
    phone: Optional[str] = typer.Option(None, "--phone"),
    email: Optional[str] = typer.Option(None, "--email"),
):
    """Yeni üye kaydet."""
    try:
        member = LibraryManager.get_instance().add_member(
            name=name, member_type=member_type, gender=gender, phone=phone, email=email
        )
    except MemberValidationError as e:
        print(f"Invalid member: {e}")
        raise typer.Exit(code=1)
    except DuplicateCodeError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Member added: {member.name} ({member.code})")

@app.command("members")
def cli_members(
    query: Optional[str] = typer.Argument(None, help="Arama sorgusu"),
    member_type: Optional[str] = typer.Option(None, "--type", help="Üye türüne göre filtrele"),
    gender: Optional[str] = typer.Option(None, "--gender", help="Cinsiyete göre filtrele"),
):
    """Üyeleri ara ve listele."""
    lib = LibraryManager.get_instance()
    print_member_list(lib.list_members(q=query, member_type=member_type, gender=gender))

@app.command("issue")
def cli_issue(
    token: str = typer.Argument(..., help="Kitap kodu, numarası veya kimliği"),
    member: Optional[str] = typer.Option(None, "--member", "-m", help="Üye kodu"),
):
    """Bir kopya ödünç ver."""
    outcome = LibraryManager.get_instance().issue_book(token, member)
    print(outcome.message)
    if not outcome.ok:
        raise typer.Exit(code=1)

@app.command("return")
def cli_return(
    token: str = typer.Argument(..., help="Kitap kodu, numarası veya kimliği"),
    member: Optional[str] = typer.Option(None, "--member", "-m", help="Üye kodu"),
):
    """Bir kopyayı iade al."""
    outcome = LibraryManager.get_instance().return_book(token, member)
    print(outcome.message)
    if not outcome.ok:
        raise typer.Exit(code=1)

@app.command("stats")
def cli_stats():
    """Kütüphane istatistiklerini göster."""
    print_stats_result(LibraryManager.get_instance().get_statistics())

@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload", help="Kod değişikliklerinde yeniden yükle"),
):
    """Uvicorn kullanarak API'yi başlat."""
    host = host or settings.api_host
    port = port or int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [sys.executable, "-m", "uvicorn", "api:app", "--host", host, "--port", str(port)]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] could not start uvicorn. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
