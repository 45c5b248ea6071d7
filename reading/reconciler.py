"""
LitBook - Chapter Reconciler
Diffs a book's stored chapters against an edited chapter list.

The submitted list is the complete new chapter sequence for the book:
    - entries without an id are created
    - entries with an id are updated in place (identity survives the edit)
    - stored chapters missing from the list are deleted
Every surviving or new chapter gets position = its index in the list, so
reordering is just resubmitting in a different order.

Planning is pure (reconcile). Writing happens in apply_plan on a connection
the caller owns, so the whole edit commits or rolls back as one transaction.
"""

import json
import sqlite3
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from core.database import now_iso
from reading.errors import CrossBookChapterError, ValidationError


@dataclass
class ChapterSubmission:
    """One chapter as sent by the editor."""
    title: str
    raw_text: str
    subtitle: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ChapterSubmission":
        """
        Build from a request payload.

        The editor sends the chapter body as "content"; "raw_text" is
        accepted too.
        """
        if not isinstance(data, dict):
            raise ValidationError("Each chapter must be an object")

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Chapter title is required")

        raw_text = data.get("raw_text", data.get("content", ""))
        if raw_text is None:
            raw_text = ""
        if not isinstance(raw_text, str):
            raise ValidationError(f"Chapter '{title}' content must be a string")

        chapter_id = data.get("id")
        if chapter_id is not None:
            if isinstance(chapter_id, bool) or not isinstance(chapter_id, int):
                raise ValidationError(f"Chapter '{title}' has a non-integer id")

        subtitle = data.get("subtitle")
        return cls(
            title=title.strip(),
            raw_text=raw_text,
            subtitle=subtitle.strip() if isinstance(subtitle, str) and subtitle.strip() else None,
            id=chapter_id
        )


@dataclass
class PlannedChapter:
    """A submission with its resolved position in the book."""
    submission: ChapterSubmission
    position: int

    @property
    def chapter_id(self) -> Optional[int]:
        return self.submission.id


@dataclass
class ReconciliationPlan:
    book_id: int
    to_create: List[PlannedChapter] = field(default_factory=list)
    to_update: List[PlannedChapter] = field(default_factory=list)
    to_delete: List[int] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"{len(self.to_create)} created, {len(self.to_update)} updated, "
            f"{len(self.to_delete)} deleted"
        )


def reconcile(
    book_id: int,
    existing_ids: Iterable[int],
    submitted: List[ChapterSubmission],
    owner_lookup: Optional[Callable[[int], Optional[int]]] = None
) -> ReconciliationPlan:
    """
    Compute the create/update/delete plan for one book edit.

    Args:
        book_id: Book being edited
        existing_ids: Ids of the chapters the book has right now
        submitted: Complete new chapter sequence, in reading order
        owner_lookup: Optional id -> owning book id resolver, used only to
                      make the cross-book error message precise

    Returns:
        ReconciliationPlan

    Raises:
        ValidationError: The same id appears twice in the submission
        CrossBookChapterError: A submitted id is not one of this book's chapters
    """
    existing = set(existing_ids)
    plan = ReconciliationPlan(book_id=book_id)
    seen_ids = set()

    for position, submission in enumerate(submitted):
        planned = PlannedChapter(submission=submission, position=position)

        if submission.id is None:
            plan.to_create.append(planned)
            continue

        if submission.id in seen_ids:
            raise ValidationError(
                f"Chapter {submission.id} appears more than once",
                {"book_id": book_id, "chapter_id": submission.id}
            )
        seen_ids.add(submission.id)

        if submission.id not in existing:
            owner = owner_lookup(submission.id) if owner_lookup else None
            raise CrossBookChapterError(book_id, submission.id, owner)

        plan.to_update.append(planned)

    plan.to_delete = sorted(existing - seen_ids)
    return plan


def fetch_chapter_ids(conn: sqlite3.Connection, book_id: int) -> List[int]:
    cursor = conn.execute(
        "SELECT id FROM chapters WHERE book_id = ? ORDER BY position",
        (book_id,)
    )
    return [row["id"] for row in cursor.fetchall()]


def chapter_owner(conn: sqlite3.Connection, chapter_id: int) -> Optional[int]:
    cursor = conn.execute("SELECT book_id FROM chapters WHERE id = ?", (chapter_id,))
    row = cursor.fetchone()
    return row["book_id"] if row else None


def insert_chapter(
    conn: sqlite3.Connection,
    book_id: int,
    planned: PlannedChapter,
    verses: List[str],
    timestamp: str
) -> int:
    """Insert a new chapter row and return its id."""
    submission = planned.submission
    cursor = conn.execute(
        """
        INSERT INTO chapters
        (book_id, title, subtitle, raw_content, content, position, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            book_id,
            submission.title,
            submission.subtitle,
            submission.raw_text,
            json.dumps(verses, ensure_ascii=False),
            planned.position,
            timestamp,
            timestamp
        )
    )
    return cursor.lastrowid


def update_chapter(
    conn: sqlite3.Connection,
    book_id: int,
    planned: PlannedChapter,
    verses: List[str],
    timestamp: str
) -> None:
    """Overwrite every editable field of an existing chapter."""
    submission = planned.submission
    conn.execute(
        """
        UPDATE chapters
        SET title = ?, subtitle = ?, raw_content = ?, content = ?, position = ?, updated_at = ?
        WHERE id = ? AND book_id = ?
        """,
        (
            submission.title,
            submission.subtitle,
            submission.raw_text,
            json.dumps(verses, ensure_ascii=False),
            planned.position,
            timestamp,
            submission.id,
            book_id
        )
    )


def apply_plan(
    conn: sqlite3.Connection,
    plan: ReconciliationPlan,
    verses_by_position: Dict[int, List[str]]
) -> List[int]:
    """
    Write a plan on the caller's connection.

    Does not commit. The caller's connection context decides whether the
    whole edit lands or is rolled back.

    Args:
        conn: Open connection inside the edit's transaction
        plan: Output of reconcile()
        verses_by_position: Segmented content for each submitted position

    Returns:
        Chapter ids in their new reading order
    """
    timestamp = now_iso()
    ordered: Dict[int, int] = {}

    if plan.to_delete:
        placeholders = ",".join("?" for _ in plan.to_delete)
        conn.execute(
            f"DELETE FROM chapters WHERE book_id = ? AND id IN ({placeholders})",
            (plan.book_id, *plan.to_delete)
        )

    for planned in plan.to_update:
        update_chapter(conn, plan.book_id, planned, verses_by_position[planned.position], timestamp)
        ordered[planned.position] = planned.chapter_id

    for planned in plan.to_create:
        ordered[planned.position] = insert_chapter(
            conn, plan.book_id, planned, verses_by_position[planned.position], timestamp
        )

    return [ordered[position] for position in sorted(ordered)]
