"""
LitBook reading core: verse segmentation, books and chapters, reading
positions, bookmarks and the activity log.
"""

from reading.errors import (
    LitBookError,
    ValidationError,
    BookNotFoundError,
    CrossBookChapterError,
    InvalidCoordinateError,
)
from reading.segmenter import VerseSegmenter, SegmentationResult, get_verse_segmenter
from reading.books import Book, BookDraft, BookService, Chapter, get_book_service
from reading.progress import ReadingPosition, ReadingProgressTracker, get_progress_tracker
from reading.bookmarks import Bookmark, BookmarkStore, get_bookmark_store
from reading.activity import Activity, ActivityRecorder, ActivityType, get_activity_recorder
from reading.reader import ReaderService, ToggleResult

__all__ = [
    "LitBookError",
    "ValidationError",
    "BookNotFoundError",
    "CrossBookChapterError",
    "InvalidCoordinateError",
    "VerseSegmenter",
    "SegmentationResult",
    "get_verse_segmenter",
    "Book",
    "BookDraft",
    "BookService",
    "Chapter",
    "get_book_service",
    "ReadingPosition",
    "ReadingProgressTracker",
    "get_progress_tracker",
    "Bookmark",
    "BookmarkStore",
    "get_bookmark_store",
    "Activity",
    "ActivityRecorder",
    "ActivityType",
    "get_activity_recorder",
    "ReaderService",
    "ToggleResult",
]
