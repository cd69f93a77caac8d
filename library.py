import logging
import math
import sqlite3
from enum import Enum
from typing import Any, Dict, List, Optional

from book import Book
from config import settings
from database import (
    StoreUnavailableError,
    get_db_connection,
    initialize_database,
    is_object_id,
    new_object_id,
    resolve_database_file,
    translate_store_errors,
)
from member import GENDERS, MEMBER_TYPES, Member
from sequence import format_code, generate_book_code, generate_member_code
from utils.validators import MemberValidator, TextValidator

logger = logging.getLogger(__name__)

_BOOK_COLUMNS = (
    "id, code, title, author, category, year, total_copies, available_copies, "
    "shelf_no, shelf, created_at, updated_at"
)
_MEMBER_COLUMNS = "id, code, name, phone, email, member_type, gender, active, created_at"
_BOOK_TEXT_FIELDS = ("title", "author", "category", "shelf_no", "shelf")


class LedgerOutcome(Enum):
    """Result of an issue or return request."""

    ISSUED = "issued"
    RETURNED = "returned"
    NO_COPIES_AVAILABLE = "no_copies_available"
    ALL_COPIES_RETURNED = "all_copies_returned"
    NOT_FOUND = "not_found"

    @property
    def ok(self) -> bool:
        return self in (LedgerOutcome.ISSUED, LedgerOutcome.RETURNED)

    @property
    def message(self) -> str:
        return _OUTCOME_MESSAGES[self]


_OUTCOME_MESSAGES = {
    LedgerOutcome.ISSUED: "Book issued successfully.",
    LedgerOutcome.RETURNED: "Book returned successfully.",
    LedgerOutcome.NO_COPIES_AVAILABLE: "No copies available to issue.",
    LedgerOutcome.ALL_COPIES_RETURNED: "All copies already returned.",
    LedgerOutcome.NOT_FOUND: "Book not found.",
}


class Library:
    """Manages books, members and the copy ledger on top of the SQLite store.

    No state is cached in memory: every call reads or writes the database, so
    several Library instances (threads, processes) can share one file.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or resolve_database_file()
        initialize_database(self.db_file)

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file)

    # ------------------------- Books ------------------------- #
    def add_book(self, book: Book) -> Book:
        """Persist a new book, minting a code when none was supplied."""
        if book.total_copies < 0 or book.available_copies < 0:
            raise ValueError("Copy counts cannot be negative.")
        if book.total_copies > 0 and book.available_copies > book.total_copies:
            raise ValueError("Available copies cannot exceed total copies.")

        if not book.code:
            book.code = generate_book_code(self.db_file)
        book.id = new_object_id()

        conn = self._connect()
        try:
            with translate_store_errors("add book"):
                conn.execute(
                    "INSERT INTO books (id, code, title, author, category, year, total_copies, "
                    "available_copies, shelf_no, shelf) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (book.id, book.code, book.title, book.author, book.category, book.year,
                     book.total_copies, book.available_copies, book.shelf_no, book.shelf),
                )
                conn.commit()
                row = conn.execute(
                    "SELECT created_at, updated_at FROM books WHERE id = ?", (book.id,)
                ).fetchone()
        except sqlite3.IntegrityError as e:
            raise DuplicateCodeError(f"Book with code {book.code} already exists.") from e
        finally:
            conn.close()

        if row:
            book.created_at = row["created_at"]
            book.updated_at = row["updated_at"]
        logger.info("Added book %s (%s)", book.code, book.title)
        return book

    def find_book(self, book_id: str) -> Optional[Book]:
        """Direct lookup by store-native id."""
        conn = self._connect()
        try:
            with translate_store_errors("find book"):
                row = conn.execute(
                    f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)
                ).fetchone()
                return self._row_to_book(conn, row) if row else None
        finally:
            conn.close()

    def resolve_book(self, token: Optional[str]) -> Optional[Book]:
        """Resolve whatever an operator typed into a book.

        Tried in order, first hit wins:
        1. store-native id
        2. exact code
        3. digits only: the zero-padded code, then any code whose numeric
           tail equals the digits whatever its padding
        4. case-insensitive code
        """
        raw = (token or "").strip()
        if not raw:
            return None

        prefix = settings.book_code_prefix
        conn = self._connect()
        try:
            with translate_store_errors("resolve book"):
                row = None
                if is_object_id(raw):
                    row = self._fetch_book_row(conn, "id = ?", (raw,))
                if row is None:
                    row = self._fetch_book_row(conn, "code = ?", (raw,))
                if row is None and TextValidator.is_digits(raw):
                    padded = format_code(prefix, int(raw), settings.book_code_width)
                    row = self._fetch_book_row(conn, "code = ?", (padded,))
                    if row is None:
                        tail_start = len(prefix) + 1
                        row = self._fetch_book_row(
                            conn,
                            "upper(substr(code, 1, ?)) = upper(?) AND length(code) >= ? "
                            "AND substr(code, ?) NOT GLOB '*[^0-9]*' "
                            "AND ltrim(substr(code, ?), '0') = ltrim(?, '0')",
                            (len(prefix), prefix, tail_start, tail_start, tail_start, raw),
                        )
                if row is None:
                    row = self._fetch_book_row(conn, "code = ? COLLATE NOCASE", (raw,))
                return self._row_to_book(conn, row) if row else None
        finally:
            conn.close()

    def lookup_book(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Normalized projection of a book, or None when the token does not resolve."""
        book = self.resolve_book(token)
        return book.to_lookup() if book else None

    def list_books(self, title: Optional[str] = None, author: Optional[str] = None,
                   page: int = 1, per_page: Optional[int] = None) -> Dict[str, Any]:
        """Page through books in creation order, optionally filtered by title/author substrings."""
        per_page = per_page or settings.books_page_size
        conditions: List[str] = []
        params: List[Any] = []
        if title and title.strip():
            conditions.append("title LIKE ? ESCAPE '\\'")
            params.append(_like_pattern(title.strip()))
        if author and author.strip():
            conditions.append("author LIKE ? ESCAPE '\\'")
            params.append(_like_pattern(author.strip()))
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        conn = self._connect()
        try:
            with translate_store_errors("list books"):
                total = conn.execute(f"SELECT COUNT(*) FROM books {where}", params).fetchone()[0]
                total_pages = math.ceil(total / per_page)
                current_page = min(max(page, 1), max(total_pages, 1))
                rows = conn.execute(
                    f"SELECT {_BOOK_COLUMNS} FROM books {where} "
                    "ORDER BY created_at, rowid LIMIT ? OFFSET ?",
                    [*params, per_page, (current_page - 1) * per_page],
                ).fetchall()
                borrowers = self._load_borrowers(conn, [r["id"] for r in rows])
                items = [
                    Book.from_dict({**dict(r), "borrowers": borrowers.get(r["id"], [])})
                    for r in rows
                ]
        finally:
            conn.close()

        return {
            "items": items,
            "total": total,
            "page": current_page,
            "per_page": per_page,
            "total_pages": total_pages,
        }

    def update_book(self, token: str, *, title: Optional[str] = None, author: Optional[str] = None,
                    category: Optional[str] = None, year: Optional[int] = None,
                    total_copies: Optional[int] = None, available_copies: Optional[int] = None,
                    shelf_no: Optional[str] = None, shelf: Optional[str] = None) -> Optional[Book]:
        """Partially update a book. Returns the updated book or None if not found.

        Blank strings and None leave a field unchanged. Whenever copy counts are
        touched, available copies are clamped into [0, total] in the same
        statement that writes them.
        """
        if (total_copies is not None and total_copies < 0) or (
                available_copies is not None and available_copies < 0):
            raise ValueError("Copy counts cannot be negative.")

        text_values = {"title": title, "author": author, "category": category,
                       "shelf_no": shelf_no, "shelf": shelf}
        assignments: List[str] = []
        params: Dict[str, Any] = {}
        for field in _BOOK_TEXT_FIELDS:
            value = text_values[field]
            if value is not None and value.strip():
                assignments.append(f"{field} = :{field}")
                params[field] = value.strip()
        if year is not None:
            assignments.append("year = :year")
            params["year"] = year
        if total_copies is not None or available_copies is not None:
            assignments.append("total_copies = COALESCE(:total, total_copies)")
            # total_copies = 0 without a new total means no recorded total: only floor at 0
            assignments.append(
                "available_copies = CASE "
                "WHEN :total IS NOT NULL OR total_copies > 0 "
                "THEN MAX(0, MIN(COALESCE(:avail, available_copies), COALESCE(:total, total_copies))) "
                "ELSE MAX(0, COALESCE(:avail, available_copies)) END"
            )
            params["total"] = total_copies
            params["avail"] = available_copies
        if not assignments:
            raise ValueError("Nothing to update.")

        book = self.resolve_book(token)
        if not book:
            return None
        params["id"] = book.id

        conn = self._connect()
        try:
            with translate_store_errors("update book"):
                conn.execute(
                    f"UPDATE books SET {', '.join(assignments)}, updated_at = CURRENT_TIMESTAMP "
                    "WHERE id = :id",
                    params,
                )
                conn.commit()
        finally:
            conn.close()
        logger.info("Updated book %s", book.code)
        return self.find_book(book.id)

    def remove_book(self, token: str) -> bool:
        book = self.resolve_book(token)
        if not book:
            return False

        conn = self._connect()
        try:
            with translate_store_errors("remove book"):
                cursor = conn.execute("DELETE FROM books WHERE id = ?", (book.id,))
                conn.commit()
                removed = cursor.rowcount > 0
        finally:
            conn.close()
        if removed:
            logger.info("Removed book %s", book.code)
        return removed

    # ------------------------- Copy ledger ------------------------- #
    def issue_book(self, token: str, member_ref: Optional[str] = None) -> LedgerOutcome:
        """Hand out one copy of a book.

        The decrement is a single conditional UPDATE, so two requests racing for
        the last copy cannot both succeed and the count never goes below zero.
        Recording the borrower happens afterwards and is best-effort.
        """
        book = self.resolve_book(token)
        if not book:
            return LedgerOutcome.NOT_FOUND
        member = self.find_member(member_ref) if member_ref else None

        conn = self._connect()
        try:
            with translate_store_errors("issue"):
                cursor = conn.execute(
                    "UPDATE books SET available_copies = available_copies - 1, "
                    "updated_at = CURRENT_TIMESTAMP WHERE id = ? AND available_copies > 0",
                    (book.id,),
                )
                conn.commit()
                if cursor.rowcount == 0:
                    outcome = (LedgerOutcome.NO_COPIES_AVAILABLE
                               if self._book_exists(conn, book.id) else LedgerOutcome.NOT_FOUND)
                    logger.info("Issue of %s refused: %s", book.code, outcome.value)
                    return outcome
        finally:
            conn.close()

        if member:
            self._append_borrower(book.id, member.id)
        logger.info("Issued %s%s", book.code, f" to {member.code}" if member else "")
        return LedgerOutcome.ISSUED

    def return_book(self, token: str, member_ref: Optional[str] = None) -> LedgerOutcome:
        """Take one copy back.

        Refused when every recorded copy is already on the shelf. Books with
        total_copies == 0 carry no recorded total and are never capped.
        """
        book = self.resolve_book(token)
        if not book:
            return LedgerOutcome.NOT_FOUND
        member = self.find_member(member_ref) if member_ref else None

        conn = self._connect()
        try:
            with translate_store_errors("return"):
                cursor = conn.execute(
                    "UPDATE books SET available_copies = available_copies + 1, "
                    "updated_at = CURRENT_TIMESTAMP "
                    "WHERE id = ? AND (total_copies <= 0 OR available_copies < total_copies)",
                    (book.id,),
                )
                conn.commit()
                if cursor.rowcount == 0:
                    outcome = (LedgerOutcome.ALL_COPIES_RETURNED
                               if self._book_exists(conn, book.id) else LedgerOutcome.NOT_FOUND)
                    logger.info("Return of %s refused: %s", book.code, outcome.value)
                    return outcome
        finally:
            conn.close()

        self._remove_borrower(book.id, member.id if member else None)
        logger.info("Returned %s%s", book.code, f" by {member.code}" if member else "")
        return LedgerOutcome.RETURNED

    def get_borrowers(self, book_id: str) -> List[str]:
        """Member ids currently recorded against a book, oldest issue first."""
        conn = self._connect()
        try:
            with translate_store_errors("load borrowers"):
                return self._load_borrowers(conn, [book_id]).get(book_id, [])
        finally:
            conn.close()

    def _append_borrower(self, book_id: str, member_id: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT INTO book_borrowers (book_id, member_id) VALUES (?, ?)",
                    (book_id, member_id),
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, StoreUnavailableError) as exc:
            # The copy count is already committed; the borrower list may drift
            logger.warning("Could not record borrower %s for book %s: %s", member_id, book_id, exc)

    def _remove_borrower(self, book_id: str, member_id: Optional[str]) -> None:
        """Drop one borrower entry.

        With a member: that member's oldest entry, or nothing if they are not
        listed. Without one: the oldest entry overall. This is a heuristic and
        can pick the wrong borrower when several members hold the same title.
        """
        if member_id:
            sql = ("DELETE FROM book_borrowers WHERE id = (SELECT MIN(id) FROM book_borrowers "
                   "WHERE book_id = ? AND member_id = ?)")
            params: tuple = (book_id, member_id)
        else:
            sql = ("DELETE FROM book_borrowers WHERE id = (SELECT MIN(id) FROM book_borrowers "
                   "WHERE book_id = ?)")
            params = (book_id,)
        try:
            conn = self._connect()
            try:
                conn.execute(sql, params)
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, StoreUnavailableError) as exc:
            logger.warning("Could not remove borrower from book %s: %s", book_id, exc)

    # ------------------------- Members ------------------------- #
    def add_member(self, name: str, member_type: str, gender: str,
                   phone: Optional[str] = None, email: Optional[str] = None) -> Member:
        """Validate and register a member. Nothing is allocated or written if validation fails."""
        reason = MemberValidator.validate(name, phone, email, member_type, gender)
        if reason:
            raise MemberValidationError(reason)

        member = Member(name=name, member_type=member_type, gender=gender,
                        phone=phone or None, email=email or None)
        member.code = generate_member_code(self.db_file)
        member.id = new_object_id()

        conn = self._connect()
        try:
            with translate_store_errors("add member"):
                conn.execute(
                    "INSERT INTO members (id, code, name, phone, email, member_type, gender, active) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (member.id, member.code, member.name, member.phone, member.email,
                     member.member_type, member.gender, int(member.active)),
                )
                conn.commit()
                row = conn.execute(
                    "SELECT created_at FROM members WHERE id = ?", (member.id,)
                ).fetchone()
        except sqlite3.IntegrityError as e:
            raise DuplicateCodeError(f"Duplicate member code {member.code}.") from e
        finally:
            conn.close()

        if row:
            member.created_at = row["created_at"]
        logger.info("Added member %s (%s)", member.code, member.name)
        return member

    def find_member(self, ref: Optional[str]) -> Optional[Member]:
        """Resolve a member by native id, exact code or case-insensitive code."""
        raw = (ref or "").strip()
        if not raw:
            return None

        conn = self._connect()
        try:
            with translate_store_errors("find member"):
                row = None
                if is_object_id(raw):
                    row = conn.execute(
                        f"SELECT {_MEMBER_COLUMNS} FROM members WHERE id = ?", (raw,)
                    ).fetchone()
                if row is None:
                    row = conn.execute(
                        f"SELECT {_MEMBER_COLUMNS} FROM members WHERE code = ?", (raw,)
                    ).fetchone()
                if row is None:
                    row = conn.execute(
                        f"SELECT {_MEMBER_COLUMNS} FROM members WHERE code = ? COLLATE NOCASE "
                        "ORDER BY rowid LIMIT 1",
                        (raw,),
                    ).fetchone()
        finally:
            conn.close()
        return Member.from_dict(dict(row)) if row else None

    def list_members(self, q: Optional[str] = None, member_type: Optional[str] = None,
                     gender: Optional[str] = None, limit: Optional[int] = None) -> List[Member]:
        """Search members by name/code/email/phone; unknown type/gender filters are ignored."""
        conditions: List[str] = []
        params: List[Any] = []
        q = (q or "").strip()
        if q:
            pattern = _like_pattern(q)
            conditions.append(
                "(name LIKE ? ESCAPE '\\' OR code LIKE ? ESCAPE '\\' "
                "OR email LIKE ? ESCAPE '\\' OR phone LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern] * 4)
        member_type = (member_type or "").strip().lower()
        if member_type in MEMBER_TYPES:
            conditions.append("member_type = ?")
            params.append(member_type)
        gender = (gender or "").strip().lower()
        if gender in GENDERS:
            conditions.append("gender = ?")
            params.append(gender)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        conn = self._connect()
        try:
            with translate_store_errors("list members"):
                rows = conn.execute(
                    f"SELECT {_MEMBER_COLUMNS} FROM members {where} ORDER BY name, rowid LIMIT ?",
                    [*params, limit or settings.member_search_limit],
                ).fetchall()
        finally:
            conn.close()
        return [Member.from_dict(dict(r)) for r in rows]

    # ------------------------- Statistics ------------------------- #
    def get_statistics(self) -> Dict[str, Any]:
        conn = self._connect()
        try:
            with translate_store_errors("statistics"):
                books = conn.execute(
                    "SELECT COUNT(*), COALESCE(SUM(total_copies), 0), "
                    "COALESCE(SUM(available_copies), 0) FROM books"
                ).fetchone()
                members = conn.execute("SELECT COUNT(*) FROM members").fetchone()[0]
        finally:
            conn.close()
        return {
            "total_books": books[0],
            "total_copies": books[1],
            "available_copies": books[2],
            "total_members": members,
        }

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _fetch_book_row(conn: sqlite3.Connection, where: str, params: tuple) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT {_BOOK_COLUMNS} FROM books WHERE {where} ORDER BY created_at, rowid LIMIT 1",
            params,
        ).fetchone()

    @staticmethod
    def _book_exists(conn: sqlite3.Connection, book_id: str) -> bool:
        return conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone() is not None

    @staticmethod
    def _load_borrowers(conn: sqlite3.Connection, book_ids: List[str]) -> Dict[str, List[str]]:
        if not book_ids:
            return {}
        placeholders = ", ".join("?" for _ in book_ids)
        rows = conn.execute(
            f"SELECT book_id, member_id FROM book_borrowers WHERE book_id IN ({placeholders}) "
            "ORDER BY id",
            book_ids,
        ).fetchall()
        result: Dict[str, List[str]] = {}
        for row in rows:
            result.setdefault(row["book_id"], []).append(row["member_id"])
        return result

    def _row_to_book(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Book:
        borrowers = self._load_borrowers(conn, [row["id"]]).get(row["id"], [])
        return Book.from_dict({**dict(row), "borrowers": borrowers})

    def close(self) -> None:
        """Compatibility helper: connections are opened per operation, so nothing is held open."""
        return None


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class MemberValidationError(ValueError):
    """Member fields were rejected before anything was written."""


class DuplicateCodeError(ValueError):
    """A unique code is already taken; allocate a new one and retry."""
