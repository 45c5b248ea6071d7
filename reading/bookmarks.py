"""
LitBook - Bookmark Store
Bookmarks on single verses, addressed by (user, book, chapter, paragraph).

add() keeps the first bookmark at a coordinate: a second add returns the
stored row untouched, text included. The check-then-insert has a race
window between two concurrent adds; the unique index on the coordinate
rejects the loser and that rejection is read as "already exists".
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import config
from core.database import (
    format_timestamp,
    get_database,
    is_foreign_key_violation,
    now_iso,
    parse_timestamp,
)
from concurrency.db_retry import db_retry
from core.logger import log_info
from reading.books import BookService, get_book_service
from reading.errors import BookNotFoundError, ValidationError

_COORDINATE_WHERE = "user_id = ? AND book_id = ? AND chapter_id = ? AND paragraph_index = ?"


@dataclass
class Bookmark:
    id: int
    user_id: int
    book_id: int
    chapter_id: int
    paragraph_index: int
    text: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "chapter_id": self.chapter_id,
            "paragraph_index": self.paragraph_index,
            "text": self.text,
            "created_at": format_timestamp(self.created_at),
        }


class BookmarkStore:
    """Adds, removes and looks up bookmarks."""

    def __init__(
        self,
        book_service: Optional[BookService] = None,
        validate_coordinates: Optional[bool] = None
    ):
        self._book_service = book_service
        self.validate_coordinates = (
            config.VALIDATE_READING_COORDINATES if validate_coordinates is None
            else validate_coordinates
        )

    @property
    def book_service(self) -> BookService:
        if self._book_service is None:
            self._book_service = get_book_service()
        return self._book_service

    def add(
        self,
        user_id: int,
        book_id: int,
        chapter_id: int,
        paragraph_index: int,
        text: Optional[str] = None
    ) -> Bookmark:
        """
        Bookmark a verse, or return the bookmark already at that coordinate.

        Args:
            text: Verse text to store. When omitted it is copied from the
                  chapter (requires coordinate validation to be on).

        Raises:
            InvalidCoordinateError: Coordinate isn't in the book (when validating)
            ValidationError: No text given and none could be looked up
            BookNotFoundError: No such book
        """
        if self.validate_coordinates:
            chapter = self.book_service.validate_coordinate(book_id, chapter_id, paragraph_index)
            if not text:
                text = chapter.verse(paragraph_index)

        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Bookmark text is required")

        bookmark, created = self._insert_if_absent(user_id, book_id, chapter_id, paragraph_index, text)
        if created:
            log_info(
                f"User {user_id} bookmarked book {book_id}, chapter {chapter_id}, "
                f"paragraph {paragraph_index}",
                prefix="🔖"
            )
        return bookmark

    @db_retry()
    def _insert_if_absent(
        self,
        user_id: int,
        book_id: int,
        chapter_id: int,
        paragraph_index: int,
        text: str
    ) -> tuple:
        coordinate = (user_id, book_id, chapter_id, paragraph_index)

        existing = self._find(*coordinate)
        if existing is not None:
            return existing, False

        db = get_database()
        try:
            with db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO bookmarks
                    (user_id, book_id, chapter_id, paragraph_index, text, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (*coordinate, text.strip(), now_iso())
                )
                row = conn.execute(
                    "SELECT * FROM bookmarks WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
            return self._row_to_bookmark(row), True

        except sqlite3.IntegrityError as e:
            if is_foreign_key_violation(e):
                raise BookNotFoundError(book_id) from e
            # Lost the race to a concurrent add at the same coordinate
            winner = self._find(*coordinate)
            if winner is None:
                raise
            log_info(f"Bookmark already existed at {coordinate}: {e}", prefix="🔖")
            return winner, False

    @db_retry()
    def remove(
        self,
        user_id: int,
        book_id: int,
        chapter_id: int,
        paragraph_index: int
    ) -> Optional[Bookmark]:
        """
        Remove the bookmark at a coordinate.

        Returns:
            The removed bookmark, or None if there was none. Removing twice is fine.
        """
        coordinate = (user_id, book_id, chapter_id, paragraph_index)
        db = get_database()
        with db.get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM bookmarks WHERE {_COORDINATE_WHERE}", coordinate
            ).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM bookmarks WHERE id = ?", (row["id"],))

        log_info(
            f"User {user_id} removed bookmark in book {book_id}, chapter {chapter_id}, "
            f"paragraph {paragraph_index}",
            prefix="🗑️"
        )
        return self._row_to_bookmark(row)

    @db_retry()
    def exists(self, user_id: int, book_id: int, chapter_id: int, paragraph_index: int) -> bool:
        db = get_database()
        result = db.execute(
            f"SELECT 1 FROM bookmarks WHERE {_COORDINATE_WHERE} LIMIT 1",
            (user_id, book_id, chapter_id, paragraph_index),
            fetch=True
        )
        return bool(result)

    @db_retry()
    def list_for_user(self, user_id: int) -> List[Bookmark]:
        """All of a user's bookmarks, newest first."""
        db = get_database()
        result = db.execute(
            "SELECT * FROM bookmarks WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
            fetch=True
        )
        return [self._row_to_bookmark(row) for row in result or []]

    def _find(self, user_id: int, book_id: int, chapter_id: int, paragraph_index: int) -> Optional[Bookmark]:
        db = get_database()
        result = db.execute(
            f"SELECT * FROM bookmarks WHERE {_COORDINATE_WHERE}",
            (user_id, book_id, chapter_id, paragraph_index),
            fetch=True
        )
        return self._row_to_bookmark(result[0]) if result else None

    def _row_to_bookmark(self, row) -> Bookmark:
        return Bookmark(
            id=row["id"],
            user_id=row["user_id"],
            book_id=row["book_id"],
            chapter_id=row["chapter_id"],
            paragraph_index=row["paragraph_index"],
            text=row["text"],
            created_at=parse_timestamp(row["created_at"])
        )


# Global store instance
_store: Optional[BookmarkStore] = None


def get_bookmark_store() -> BookmarkStore:
    """Get the global bookmark store."""
    global _store
    if _store is None:
        _store = BookmarkStore()
    return _store
