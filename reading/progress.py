"""
LitBook - Reading Position Tracker
One saved (chapter, paragraph) coordinate per user per book
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
from reading.errors import BookNotFoundError


@dataclass
class ReadingPosition:
    user_id: int
    book_id: int
    chapter_id: int
    paragraph_index: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "book_id": self.book_id,
            "chapter_id": self.chapter_id,
            "paragraph_index": self.paragraph_index,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }


class ReadingProgressTracker:
    """
    Saves and reads reading positions.

    save() is a single INSERT ... ON CONFLICT statement against the
    UNIQUE(user_id, book_id) constraint, so two concurrent saves for the
    same pair can never leave two rows.
    """

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

    def save(self, user_id: int, book_id: int, chapter_id: int, paragraph_index: int) -> ReadingPosition:
        """
        Record where a user is in a book, replacing any earlier position.

        Raises:
            InvalidCoordinateError: Coordinate isn't in the book (when validating)
            BookNotFoundError: No such book
        """
        if self.validate_coordinates:
            self.book_service.validate_coordinate(book_id, chapter_id, paragraph_index)

        position = self._upsert(user_id, book_id, chapter_id, paragraph_index)
        log_info(
            f"User {user_id} at book {book_id}, chapter {chapter_id}, paragraph {paragraph_index}",
            prefix="📖"
        )
        return position

    @db_retry()
    def _upsert(self, user_id: int, book_id: int, chapter_id: int, paragraph_index: int) -> ReadingPosition:
        db = get_database()
        now = now_iso()
        try:
            with db.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO reading_progress
                    (user_id, book_id, chapter_id, paragraph_index, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, book_id) DO UPDATE SET
                        chapter_id = excluded.chapter_id,
                        paragraph_index = excluded.paragraph_index,
                        updated_at = excluded.updated_at
                    """,
                    (user_id, book_id, chapter_id, paragraph_index, now, now)
                )
                row = conn.execute(
                    "SELECT * FROM reading_progress WHERE user_id = ? AND book_id = ?",
                    (user_id, book_id)
                ).fetchone()
        except sqlite3.IntegrityError as e:
            if is_foreign_key_violation(e):
                raise BookNotFoundError(book_id) from e
            raise
        return self._row_to_position(row)

    @db_retry()
    def get(self, user_id: int, book_id: int) -> Optional[ReadingPosition]:
        """Saved position for (user, book), or None if the user hasn't started it."""
        db = get_database()
        result = db.execute(
            "SELECT * FROM reading_progress WHERE user_id = ? AND book_id = ?",
            (user_id, book_id),
            fetch=True
        )
        if not result:
            return None
        return self._row_to_position(result[0])

    @db_retry()
    def list_for_user(self, user_id: int) -> List[ReadingPosition]:
        """Every saved position for a user, most recently updated first."""
        db = get_database()
        result = db.execute(
            """
            SELECT * FROM reading_progress
            WHERE user_id = ?
            ORDER BY updated_at DESC, id DESC
            """,
            (user_id,),
            fetch=True
        )
        return [self._row_to_position(row) for row in result or []]

    def _row_to_position(self, row) -> ReadingPosition:
        return ReadingPosition(
            user_id=row["user_id"],
            book_id=row["book_id"],
            chapter_id=row["chapter_id"],
            paragraph_index=row["paragraph_index"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"])
        )


# Global tracker instance
_tracker: Optional[ReadingProgressTracker] = None


def get_progress_tracker() -> ReadingProgressTracker:
    """Get the global reading progress tracker."""
    global _tracker
    if _tracker is None:
        _tracker = ReadingProgressTracker()
    return _tracker
