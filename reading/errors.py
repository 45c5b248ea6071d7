"""
LitBook - Reading Error Types
Structured errors for book, chapter and reading-position operations
"""

from enum import Enum
from typing import Optional


class ErrorType(Enum):
    """
    Categories of domain errors.

    The HTTP layer maps each category to a status code; callers inside the
    process branch on the exception class.
    """
    VALIDATION = "validation"        # Missing or malformed input
    NOT_FOUND = "not_found"          # Book doesn't exist
    CONFLICT = "conflict"            # Chapter id belongs to another book
    INVALID_COORDINATE = "coordinate"  # Chapter/paragraph not in the book


class LitBookError(Exception):
    """Base class for errors raised by the reading services."""

    error_type: ErrorType = ErrorType.VALIDATION

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "type": self.error_type.value}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class ValidationError(LitBookError):
    """Input failed validation before touching storage."""
    error_type = ErrorType.VALIDATION


class BookNotFoundError(LitBookError):
    error_type = ErrorType.NOT_FOUND

    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} not found", {"book_id": book_id})
        self.book_id = book_id


class CrossBookChapterError(LitBookError):
    """
    A submitted chapter id is not one of the book's chapters.

    Raised before any write, so the book is left exactly as it was.
    owner_book_id is set when the id exists under a different book and None
    when the id doesn't exist at all.
    """
    error_type = ErrorType.CONFLICT

    def __init__(self, book_id: int, chapter_id: int, owner_book_id: Optional[int] = None):
        if owner_book_id is not None:
            message = (
                f"Chapter {chapter_id} belongs to book {owner_book_id}, "
                f"not book {book_id}"
            )
        else:
            message = f"Chapter {chapter_id} is not a chapter of book {book_id}"
        super().__init__(message, {
            "book_id": book_id,
            "chapter_id": chapter_id,
            "owner_book_id": owner_book_id,
        })
        self.book_id = book_id
        self.chapter_id = chapter_id
        self.owner_book_id = owner_book_id


class InvalidCoordinateError(LitBookError):
    """A (chapter, paragraph) write target doesn't exist in the book right now."""
    error_type = ErrorType.INVALID_COORDINATE

    def __init__(self, message: str, book_id: int, chapter_id: int, paragraph_index: int):
        super().__init__(message, {
            "book_id": book_id,
            "chapter_id": chapter_id,
            "paragraph_index": paragraph_index,
        })
