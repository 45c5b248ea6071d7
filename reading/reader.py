"""
LitBook - Reader Service
What the reading screen does when a reader taps the bookmark button.
"""

from dataclasses import dataclass
from typing import Optional

from reading.activity import ActivityRecorder, ActivityType, get_activity_recorder
from reading.bookmarks import Bookmark, BookmarkStore, get_bookmark_store
from reading.books import BookService, get_book_service
from reading.errors import BookNotFoundError


@dataclass
class ToggleResult:
    bookmarked: bool
    bookmark: Optional[Bookmark]

    def to_dict(self) -> dict:
        return {
            "bookmarked": self.bookmarked,
            "bookmark": self.bookmark.to_dict() if self.bookmark else None,
        }


class ReaderService:
    def __init__(
        self,
        books: Optional[BookService] = None,
        bookmarks: Optional[BookmarkStore] = None,
        activities: Optional[ActivityRecorder] = None
    ):
        self.books = books or get_book_service()
        self.bookmarks = bookmarks or get_bookmark_store()
        self.activities = activities or get_activity_recorder()

    def toggle_bookmark(
        self,
        user_id: int,
        book_id: int,
        chapter_id: int,
        paragraph_index: int
    ) -> ToggleResult:
        """
        Remove the bookmark at the coordinate if there is one; otherwise add
        it with the verse's current text and log an ADDED_BOOKMARK activity.

        Raises:
            BookNotFoundError: No such book
            InvalidCoordinateError: Coordinate isn't in the book (when adding)
        """
        if self.bookmarks.exists(user_id, book_id, chapter_id, paragraph_index):
            removed = self.bookmarks.remove(user_id, book_id, chapter_id, paragraph_index)
            return ToggleResult(bookmarked=False, bookmark=removed)

        book = self.books.get_book_by_id(book_id)
        if book is None:
            raise BookNotFoundError(book_id)

        chapter = self.books.validate_coordinate(book_id, chapter_id, paragraph_index)
        bookmark = self.bookmarks.add(
            user_id, book_id, chapter_id, paragraph_index,
            chapter.verse(paragraph_index)
        )
        self.activities.record(
            user_id,
            ActivityType.ADDED_BOOKMARK,
            book_id=book_id,
            comment=f"Bookmarked a passage in '{book.title}'"
        )
        return ToggleResult(bookmarked=True, bookmark=bookmark)
