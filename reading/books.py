"""
LitBook - Book Service
Books and their chapters: read, publish, edit, delete.

A book owns its chapters (ON DELETE CASCADE). Chapter edits go through the
reconciler so chapter ids survive edits and every write for one edit lands
in a single transaction. Segmentation, which may call the LLM, runs before
that transaction opens.
"""

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from core.database import format_timestamp, get_database, now_iso, parse_timestamp
from concurrency.db_retry import db_retry
from core.logger import log_info
from reading.errors import BookNotFoundError, InvalidCoordinateError, ValidationError
from reading.reconciler import (
    ChapterSubmission,
    apply_plan,
    chapter_owner,
    fetch_chapter_ids,
    reconcile,
)
from reading.segmenter import VerseSegmenter, get_verse_segmenter


@dataclass
class Chapter:
    """A chapter with its segmented verses. order is 0-based."""
    id: int
    book_id: int
    title: str
    subtitle: Optional[str]
    raw_content: str
    content: List[str]
    order: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def verse(self, paragraph_index: int) -> Optional[str]:
        """Verse at a 1-based paragraph index, or None if out of range."""
        if 1 <= paragraph_index <= len(self.content):
            return self.content[paragraph_index - 1]
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "raw_content": self.raw_content,
            "content": self.content,
            "order": self.order,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass
class Book:
    id: int
    title: str
    description: str
    preface: Optional[str]
    cover_url: str
    author_id: int
    author_name: str
    chapters: List[Chapter] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_chapter(self, chapter_id: int) -> Optional[Chapter]:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def to_dict(self, include_chapters: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "preface": self.preface,
            "cover_url": self.cover_url,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }
        if include_chapters:
            data["chapters"] = [c.to_dict() for c in self.chapters]
        return data


@dataclass
class BookDraft:
    """
    Book fields plus the chapter list, as submitted by the editor.

    chapters is None when the payload left the list out. On update that means
    "keep the stored chapters"; an empty list means "remove them all".
    """
    title: str
    description: str = ""
    preface: Optional[str] = None
    cover_url: str = ""
    author_name: str = ""
    author_id: Optional[int] = None
    chapters: Optional[List[ChapterSubmission]] = None

    @classmethod
    def from_dict(cls, data: dict, require_author: bool = False) -> "BookDraft":
        """
        Validate and convert a request payload.

        Raises:
            ValidationError: On missing title/author or malformed chapters
        """
        if not isinstance(data, dict):
            raise ValidationError("Book payload must be an object")

        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Book title is required")

        author_id = data.get("author_id")
        if require_author and (isinstance(author_id, bool) or not isinstance(author_id, int)):
            raise ValidationError("author_id is required")

        chapters = data.get("chapters")
        if chapters is not None and not isinstance(chapters, list):
            raise ValidationError("chapters must be a list")

        return cls(
            title=title.strip(),
            description=data.get("description") or "",
            preface=data.get("preface"),
            cover_url=data.get("cover_url") or "",
            author_name=data.get("author_name") or "",
            author_id=author_id,
            chapters=None if chapters is None else [ChapterSubmission.from_dict(c) for c in chapters]
        )


class BookService:
    """Reads and writes books and chapters."""

    def __init__(self, segmenter: Optional[VerseSegmenter] = None):
        self._segmenter = segmenter

    @property
    def segmenter(self) -> VerseSegmenter:
        if self._segmenter is None:
            self._segmenter = get_verse_segmenter()
        return self._segmenter

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @db_retry()
    def get_book_by_id(self, book_id: int) -> Optional[Book]:
        """Get a book with its chapters in reading order, or None."""
        db = get_database()
        with db.get_connection() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return None
            chapters = self._load_chapters(conn, [book_id]).get(book_id, [])
        return self._row_to_book(row, chapters)

    @db_retry()
    def list_books(self) -> List[Book]:
        """All books, newest first, each with its chapters."""
        db = get_database()
        with db.get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM books ORDER BY created_at DESC, id DESC"
            ).fetchall()
            chapters = self._load_chapters(conn, [r["id"] for r in rows])
        return [self._row_to_book(r, chapters.get(r["id"], [])) for r in rows]

    @db_retry()
    def get_chapter(self, chapter_id: int) -> Optional[Chapter]:
        db = get_database()
        result = db.execute("SELECT * FROM chapters WHERE id = ?", (chapter_id,), fetch=True)
        if not result:
            return None
        return self._row_to_chapter(result[0])

    def validate_coordinate(self, book_id: int, chapter_id: int, paragraph_index: int) -> Chapter:
        """
        Check that (chapter, paragraph) exists in the book right now.

        Returns:
            The chapter

        Raises:
            InvalidCoordinateError: Chapter not in this book, or index out of range
        """
        if isinstance(paragraph_index, bool) or not isinstance(paragraph_index, int) or paragraph_index < 1:
            raise InvalidCoordinateError(
                "paragraph_index must be a positive integer",
                book_id, chapter_id, paragraph_index
            )

        chapter = self.get_chapter(chapter_id)
        if chapter is None or chapter.book_id != book_id:
            raise InvalidCoordinateError(
                f"Chapter {chapter_id} is not part of book {book_id}",
                book_id, chapter_id, paragraph_index
            )

        if paragraph_index > len(chapter.content):
            raise InvalidCoordinateError(
                f"Paragraph {paragraph_index} is out of range "
                f"(chapter {chapter_id} has {len(chapter.content)})",
                book_id, chapter_id, paragraph_index
            )

        return chapter

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_book(self, draft: BookDraft) -> Book:
        """
        Publish a new book with its chapters.

        Raises:
            ValidationError: Missing author
            CrossBookChapterError: A chapter carries an id (new books have none)
        """
        if draft.author_id is None:
            raise ValidationError("author_id is required")

        chapters = draft.chapters or []
        verses = self._segment_all(chapters)
        book_id = self._write_new_book(draft, chapters, verses)

        log_info(f"Book {book_id} '{draft.title}' published with {len(chapters)} chapters", prefix="📚")
        return self.get_book_by_id(book_id)

    def update_book(self, book_id: int, draft: BookDraft) -> Book:
        """
        Update a book's fields and reconcile its chapter list.

        When draft.chapters is None only the book fields change.

        The book row and every chapter create/update/delete commit together;
        any failure leaves the book exactly as it was.

        Raises:
            BookNotFoundError: No such book
            CrossBookChapterError: A chapter id doesn't belong to this book
        """
        verses = self._segment_all(draft.chapters or [])
        summary = self._write_book_update(book_id, draft, verses)

        log_info(f"Book {book_id} updated: {summary}", prefix="📚")
        return self.get_book_by_id(book_id)

    @db_retry()
    def delete_book(self, book_id: int) -> bool:
        """
        Delete a book. Chapters, reading progress and bookmarks for the
        book go with it; activities keep their row with book_id cleared.

        Returns:
            True if a book was deleted, False if it didn't exist
        """
        db = get_database()
        with db.get_connection() as conn:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            log_info(f"Book {book_id} deleted", prefix="🗑️")
        return deleted

    def _segment_all(self, chapters: List[ChapterSubmission]) -> Dict[int, List[str]]:
        return {
            position: self.segmenter.segment(submission.raw_text)
            for position, submission in enumerate(chapters)
        }

    @db_retry()
    def _write_new_book(
        self,
        draft: BookDraft,
        chapters: List[ChapterSubmission],
        verses: Dict[int, List[str]]
    ) -> int:
        db = get_database()
        now = now_iso()
        with db.get_connection(immediate=True) as conn:
            cursor = conn.execute(
                """
                INSERT INTO books
                (title, description, preface, cover_url, author_id, author_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    draft.title, draft.description, draft.preface, draft.cover_url,
                    draft.author_id, draft.author_name, now, now
                )
            )
            book_id = cursor.lastrowid

            plan = reconcile(
                book_id, [], chapters,
                owner_lookup=lambda cid: chapter_owner(conn, cid)
            )
            apply_plan(conn, plan, verses)
        return book_id

    @db_retry()
    def _write_book_update(self, book_id: int, draft: BookDraft, verses: Dict[int, List[str]]) -> str:
        db = get_database()
        with db.get_connection(immediate=True) as conn:
            cursor = conn.execute(
                """
                UPDATE books
                SET title = ?, description = ?, preface = ?, cover_url = ?, author_name = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    draft.title, draft.description, draft.preface, draft.cover_url,
                    draft.author_name, now_iso(), book_id
                )
            )
            if cursor.rowcount == 0:
                raise BookNotFoundError(book_id)

            if draft.chapters is None:
                return "chapters unchanged"

            plan = reconcile(
                book_id,
                fetch_chapter_ids(conn, book_id),
                draft.chapters,
                owner_lookup=lambda cid: chapter_owner(conn, cid)
            )
            apply_plan(conn, plan, verses)
        return plan.summary()

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _load_chapters(self, conn: sqlite3.Connection, book_ids: List[int]) -> Dict[int, List[Chapter]]:
        if not book_ids:
            return {}
        placeholders = ",".join("?" for _ in book_ids)
        rows = conn.execute(
            f"SELECT * FROM chapters WHERE book_id IN ({placeholders}) ORDER BY book_id, position, id",
            tuple(book_ids)
        ).fetchall()

        grouped: Dict[int, List[Chapter]] = {}
        for row in rows:
            grouped.setdefault(row["book_id"], []).append(self._row_to_chapter(row))
        return grouped

    def _row_to_chapter(self, row) -> Chapter:
        content = row["content"]
        if isinstance(content, str):
            content = json.loads(content or "[]")
        return Chapter(
            id=row["id"],
            book_id=row["book_id"],
            title=row["title"],
            subtitle=row["subtitle"],
            raw_content=row["raw_content"] or "",
            content=list(content or []),
            order=row["position"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"])
        )

    def _row_to_book(self, row, chapters: List[Chapter]) -> Book:
        return Book(
            id=row["id"],
            title=row["title"],
            description=row["description"] or "",
            preface=row["preface"],
            cover_url=row["cover_url"] or "",
            author_id=row["author_id"],
            author_name=row["author_name"] or "",
            chapters=chapters,
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"])
        )


# Global service instance
_book_service: Optional[BookService] = None


def get_book_service() -> BookService:
    """Get the global book service instance."""
    global _book_service
    if _book_service is None:
        _book_service = BookService()
    return _book_service


def init_book_service(segmenter: Optional[VerseSegmenter] = None) -> BookService:
    """Initialize the global book service."""
    global _book_service
    _book_service = BookService(segmenter=segmenter)
    return _book_service
