"""
LitBook - Activity Recorder
Append-only log of what users did, read back newest first
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
from reading.errors import BookNotFoundError, ValidationError


class ActivityType:
    """Activity types the app records. Other strings are stored as given."""
    ADDED_BOOKMARK = "ADDED_BOOKMARK"
    STARTED_READING = "STARTED_READING"
    PUBLISHED_BOOK = "PUBLISHED_BOOK"
    UPDATED_BOOK = "UPDATED_BOOK"


@dataclass
class Activity:
    id: int
    user_id: int
    type: str
    book_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "book_id": self.book_id,
            "comment": self.comment,
            "created_at": format_timestamp(self.created_at),
        }


class ActivityRecorder:
    """Records activities. No updates, no deletes, no deduplication."""

    @db_retry()
    def record(
        self,
        user_id: int,
        activity_type: str,
        book_id: Optional[int] = None,
        comment: Optional[str] = None
    ) -> Activity:
        """
        Append one activity.

        Raises:
            ValidationError: Empty activity type
            BookNotFoundError: book_id given but no such book
        """
        if not isinstance(activity_type, str) or not activity_type.strip():
            raise ValidationError("Activity type is required")

        db = get_database()
        try:
            with db.get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO activities (user_id, type, book_id, comment, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user_id, activity_type.strip(), book_id, comment, now_iso())
                )
                row = conn.execute(
                    "SELECT * FROM activities WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
        except sqlite3.IntegrityError as e:
            if is_foreign_key_violation(e):
                raise BookNotFoundError(book_id) from e
            raise

        log_info(f"Activity {activity_type} recorded for user {user_id}", prefix="📝")
        return self._row_to_activity(row)

    @db_retry()
    def list_for_user(self, user_id: int, limit: Optional[int] = None) -> List[Activity]:
        """
        A user's most recent activities, newest first.

        Args:
            limit: Max rows (defaults to ACTIVITY_DEFAULT_LIMIT, capped at
                   ACTIVITY_MAX_LIMIT)
        """
        if limit is None:
            limit = config.ACTIVITY_DEFAULT_LIMIT
        limit = max(0, min(int(limit), config.ACTIVITY_MAX_LIMIT))

        db = get_database()
        result = db.execute(
            """
            SELECT * FROM activities
            WHERE user_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (user_id, limit),
            fetch=True
        )
        return [self._row_to_activity(row) for row in result or []]

    def _row_to_activity(self, row) -> Activity:
        return Activity(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            book_id=row["book_id"],
            comment=row["comment"],
            created_at=parse_timestamp(row["created_at"])
        )


# Global recorder instance
_recorder: Optional[ActivityRecorder] = None


def get_activity_recorder() -> ActivityRecorder:
    """Get the global activity recorder."""
    global _recorder
    if _recorder is None:
        _recorder = ActivityRecorder()
    return _recorder
