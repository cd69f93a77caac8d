"""Prefixed sequential codes backed by the ``counters`` table.

Each namespace (e.g. ``AIPSMEM``, ``AIPSLIB``) owns one counter row. The
increment and the read happen in a single upsert statement, so concurrent
callers never see the same value and the issued values form a gap-free run.
"""

import logging
from typing import Optional

from config import settings
from database import get_db_connection, translate_store_errors

logger = logging.getLogger(__name__)

_NEXT_SEQUENCE_SQL = """
    INSERT INTO counters (namespace, sequence) VALUES (?, 1)
    ON CONFLICT(namespace) DO UPDATE SET sequence = sequence + 1
    RETURNING sequence
"""


def format_code(namespace: str, sequence: int, width: int) -> str:
    """``format_code("AIPSMEM", 7, 4) -> "AIPSMEM0007"``; longer numbers are not truncated."""
    return f"{namespace}{sequence:0{width}d}"


def next_sequence(namespace: str, db_file: Optional[str] = None) -> int:
    """Atomically increment the namespace counter and return the new value.

    A missing counter starts at 0, so the first call returns 1.
    """
    conn = get_db_connection(db_file)
    try:
        with translate_store_errors(f"sequence allocation for {namespace}"):
            # drain the cursor so the statement is finished before COMMIT
            row = conn.execute(_NEXT_SEQUENCE_SQL, (namespace,)).fetchall()[0]
            conn.commit()
    finally:
        conn.close()
    return int(row[0])


def allocate(namespace: str, width: int, db_file: Optional[str] = None) -> str:
    """Mint the next code for ``namespace``, zero-padded to ``width`` digits."""
    namespace = (namespace or "").strip()
    if not namespace:
        raise ValueError("Namespace cannot be empty.")
    if width < 1:
        raise ValueError("Width must be at least 1.")

    sequence = next_sequence(namespace, db_file)
    code = format_code(namespace, sequence, width)
    logger.debug("Allocated %s", code)
    return code


def current_sequence(namespace: str, db_file: Optional[str] = None) -> int:
    """Last issued value for ``namespace`` (0 if nothing was allocated yet)."""
    conn = get_db_connection(db_file)
    try:
        with translate_store_errors(f"sequence read for {namespace}"):
            row = conn.execute(
                "SELECT sequence FROM counters WHERE namespace = ?", (namespace,)
            ).fetchone()
    finally:
        conn.close()
    return int(row["sequence"]) if row else 0


def generate_member_code(db_file: Optional[str] = None) -> str:
    return allocate(settings.member_code_prefix, settings.member_code_width, db_file)


def generate_book_code(db_file: Optional[str] = None) -> str:
    return allocate(settings.book_code_prefix, settings.book_code_width, db_file)
