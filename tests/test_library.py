import pytest

from book import Book
from library import DuplicateCodeError, Library


def test_add_and_find(lib):
    book = lib.add_book(Book("Ulysses", "James Joyce", total_copies=2, shelf_no="A1"))

    found = lib.find_book(book.id)
    assert found is not None
    assert found.title == "Ulysses"
    assert found.code == "AIPSLIB000001"
    assert found.shelf_no == "A1"
    assert found.created_at is not None


def test_available_defaults_to_total(lib):
    book = lib.add_book(Book("Sapiens", "Yuval Noah Harari", total_copies=4))
    assert book.available_copies == 4
    assert lib.find_book(book.id).available_copies == 4


def test_explicit_available_is_kept(lib):
    book = lib.add_book(Book("Dune", "Frank Herbert", total_copies=4, available_copies=1))
    assert lib.find_book(book.id).available_copies == 1


def test_supplied_code_is_used_and_counter_untouched(lib):
    book = lib.add_book(Book("Clean Code", "Robert C. Martin", code="  CUSTOM-1 "))
    assert book.code == "CUSTOM-1"
    # the next generated code still starts the series
    assert lib.add_book(Book("Other", "Someone")).code == "AIPSLIB000001"


def test_add_duplicate_code(lib):
    lib.add_book(Book("Test Book", "Test Author", code="AIPSLIB000777"))

    with pytest.raises(DuplicateCodeError, match="AIPSLIB000777 already exists"):
        lib.add_book(Book("Another", "Author", code="AIPSLIB000777"))

    assert lib.list_books()["total"] == 1


def test_negative_counts_are_rejected(lib):
    with pytest.raises(ValueError):
        lib.add_book(Book("Bad", "Author", total_copies=-1))
    with pytest.raises(ValueError):
        lib.add_book(Book("Bad", "Author", total_copies=2, available_copies=3))
    assert lib.list_books()["total"] == 0


def test_persistence(db_file):
    lib = Library(db_file=db_file)
    lib.add_book(Book("Sapiens", "Yuval Noah Harari", total_copies=1))

    lib2 = Library(db_file=db_file)
    assert lib2.list_books()["total"] == 1
    assert lib2.resolve_book("1").title == "Sapiens"


def test_remove(lib):
    book = lib.add_book(Book("Test", "Author"))
    assert lib.remove_book(book.code) is True
    assert lib.remove_book(book.code) is False
    assert lib.find_book(book.id) is None


def test_update_book_partial(lib):
    book = lib.add_book(Book("Original Title", "Original Author", category="Novel"))

    updated = lib.update_book(book.code, title="Only Title Changed")
    assert updated.title == "Only Title Changed"
    assert updated.author == "Original Author"

    # blank strings leave fields unchanged
    updated = lib.update_book(book.code, author="Only Author Changed", category="   ")
    assert updated.title == "Only Title Changed"
    assert updated.author == "Only Author Changed"
    assert updated.category == "Novel"


def test_update_book_not_found(lib):
    assert lib.update_book("nonexistent", title="New Title") is None


def test_update_without_fields_is_rejected(lib):
    book = lib.add_book(Book("T", "A"))
    with pytest.raises(ValueError, match="Nothing to update"):
        lib.update_book(book.code, title="  ")


def test_lowering_total_clamps_available(lib):
    book = lib.add_book(Book("T", "A", total_copies=5))
    updated = lib.update_book(book.code, total_copies=3)
    assert updated.total_copies == 3
    assert updated.available_copies == 3


def test_raising_total_preserves_available(lib):
    book = lib.add_book(Book("T", "A", total_copies=5, available_copies=2))
    updated = lib.update_book(book.code, total_copies=8)
    assert updated.total_copies == 8
    assert updated.available_copies == 2


def test_available_above_total_is_clamped(lib):
    book = lib.add_book(Book("T", "A", total_copies=3, available_copies=1))
    updated = lib.update_book(book.code, available_copies=10)
    assert updated.available_copies == 3


def test_total_zero_given_forces_available_to_zero(lib):
    book = lib.add_book(Book("T", "A", total_copies=3))
    updated = lib.update_book(book.code, total_copies=0)
    assert updated.total_copies == 0
    assert updated.available_copies == 0


def test_negative_update_counts_are_rejected(lib):
    book = lib.add_book(Book("T", "A", total_copies=3))
    with pytest.raises(ValueError):
        lib.update_book(book.code, available_copies=-1)


def test_list_books_filters_case_insensitively(lib):
    lib.add_book(Book("Test Book 1", "Author One"))
    lib.add_book(Book("Another Book", "Author Two"))
    lib.add_book(Book("test book 3", "Author One"))

    assert lib.list_books(title="TEST")["total"] == 2
    assert lib.list_books(author="two")["total"] == 1
    assert lib.list_books(title="book", author="one")["total"] == 2
    # LIKE wildcards are matched literally
    assert lib.list_books(title="%")["total"] == 0


def test_list_books_pagination(lib):
    for i in range(12):
        lib.add_book(Book(f"Book {i}", "Author"))

    first = lib.list_books(page=1)
    assert first["total"] == 12
    assert first["total_pages"] == 2
    assert [b.title for b in first["items"]][:2] == ["Book 0", "Book 1"]
    assert len(first["items"]) == 10

    second = lib.list_books(page=2)
    assert [b.title for b in second["items"]] == ["Book 10", "Book 11"]

    # out-of-range pages are clamped
    assert lib.list_books(page=99)["page"] == 2
    assert lib.list_books(page=0)["page"] == 1


def test_list_books_empty(lib):
    result = lib.list_books()
    assert result["items"] == []
    assert result["total_pages"] == 0
    assert result["page"] == 1


def test_statistics(lib):
    lib.add_book(Book("A", "X", total_copies=3))
    lib.add_book(Book("B", "Y", total_copies=2, available_copies=1))
    lib.add_member("Ada", "student", "female")

    assert lib.get_statistics() == {
        "total_books": 2,
        "total_copies": 5,
        "available_copies": 4,
        "total_members": 1,
    }
