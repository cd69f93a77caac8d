from __future__ import annotations


class Book:
    """Represents a single catalog title and its copy inventory."""

    def __init__(self, title: str, author: str, code: str | None = None, id: str | None = None,
                 category: str | None = None, year: int | None = None,
                 total_copies: int = 0, available_copies: int | None = None,
                 shelf_no: str | None = None, shelf: str | None = None,
                 borrowers: list | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.code = code.strip() if code else None
        self.title = (title or "").strip()
        self.author = (author or "").strip()
        self.category = (category or "").strip()
        self.year = year
        self.total_copies = total_copies
        # All copies start on the shelf unless told otherwise
        self.available_copies = total_copies if available_copies is None else available_copies
        self.shelf_no = (shelf_no or "").strip()
        self.shelf = (shelf or "").strip()
        # Member ids in issue order; advisory only, the counters are authoritative
        self.borrowers = list(borrowers or [])
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.code})"

    @property
    def can_issue(self) -> bool:
        return self.available_copies > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "year": self.year,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "shelf_no": self.shelf_no,
            "shelf": self.shelf,
            "borrowers": list(self.borrowers),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_lookup(self) -> dict:
        """Normalized projection used by the lookup endpoint and CLI."""
        return {
            "id": self.id,
            "code": self.code or "",
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "year": self.year,
            "shelf_no": self.shelf_no,
            "shelf": self.shelf,
            "total": self.total_copies,
            "available": self.available_copies,
            "can_issue": self.can_issue,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            code=data.get("code"),
            title=data.get("title") or "",
            author=data.get("author") or "",
            category=data.get("category"),
            year=data.get("year"),
            total_copies=int(data.get("total_copies") or 0),
            available_copies=data.get("available_copies"),
            shelf_no=data.get("shelf_no"),
            shelf=data.get("shelf"),
            borrowers=data.get("borrowers"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
