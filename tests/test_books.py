"""
Tests for the book service: publish, read, edit, delete and coordinate checks.
"""

import unittest

from reading.activity import ActivityRecorder, ActivityType
from reading.bookmarks import BookmarkStore
from reading.books import BookDraft
from reading.errors import (
    BookNotFoundError,
    CrossBookChapterError,
    InvalidCoordinateError,
    ValidationError,
)
from reading.progress import ReadingProgressTracker
from reading.reconciler import ChapterSubmission

from db_case import DatabaseTestCase


class TestBookService(DatabaseTestCase):

    def test_create_and_read_back(self):
        book = self.make_book()

        self.assertIsNotNone(book.id)
        self.assertEqual(book.title, "The Book")
        self.assertEqual(book.author_name, "Ana")
        self.assertEqual([c.title for c in book.chapters], ["One", "Two"])
        self.assertEqual([c.order for c in book.chapters], [0, 1])
        self.assertEqual(book.chapters[0].content, ["First verse.", "Second verse.", "Third verse."])
        self.assertEqual(book.chapters[0].raw_content, "First verse.\nSecond verse.\nThird verse.")

    def test_missing_book_is_none(self):
        self.assertIsNone(self.books.get_book_by_id(404))

    def test_create_requires_author(self):
        with self.assertRaises(ValidationError):
            self.books.create_book(BookDraft(title="No author"))

    def test_list_books_newest_first(self):
        first = self.make_book(title="First")
        second = self.make_book(title="Second")

        books = self.books.list_books()
        self.assertEqual([b.id for b in books], [second.id, first.id])
        self.assertEqual(len(books[0].chapters), 2)

    def test_update_book_fields(self):
        book = self.make_book()
        draft = BookDraft(
            title="New Title",
            description="About",
            cover_url="https://img/cover.png",
            author_name="Ana M.",
            chapters=[
                ChapterSubmission(title=c.title, raw_text=c.raw_content, id=c.id)
                for c in book.chapters
            ]
        )

        updated = self.books.update_book(book.id, draft)

        self.assertEqual(updated.title, "New Title")
        self.assertEqual(updated.description, "About")
        self.assertEqual(updated.author_id, 1)
        self.assertEqual([c.id for c in updated.chapters], [c.id for c in book.chapters])

    def test_update_without_chapter_list_keeps_chapters(self):
        book = self.make_book()

        updated = self.books.update_book(book.id, BookDraft(title="Renamed", author_name="Ana"))

        self.assertEqual(updated.title, "Renamed")
        self.assertEqual([c.id for c in updated.chapters], [c.id for c in book.chapters])
        self.assertEqual(updated.chapters[0].content, book.chapters[0].content)

    def test_update_missing_book(self):
        with self.assertRaises(BookNotFoundError):
            self.books.update_book(404, BookDraft(title="Ghost"))

    def test_delete_cascades_reading_data(self):
        book = self.make_book()
        chapter = book.chapters[0]

        ReadingProgressTracker().save(7, book.id, chapter.id, 2)
        BookmarkStore().add(7, book.id, chapter.id, 1)
        ActivityRecorder().record(7, ActivityType.STARTED_READING, book_id=book.id)

        self.assertTrue(self.books.delete_book(book.id))

        self.assertIsNone(self.books.get_book_by_id(book.id))
        self.assertEqual(self.count("chapters"), 0)
        self.assertEqual(self.count("reading_progress"), 0)
        self.assertEqual(self.count("bookmarks"), 0)
        # The activity log is kept, detached from the book
        activities = ActivityRecorder().list_for_user(7)
        self.assertEqual(len(activities), 1)
        self.assertIsNone(activities[0].book_id)

    def test_delete_missing_book(self):
        self.assertFalse(self.books.delete_book(404))

    def test_new_book_cannot_claim_existing_chapter(self):
        existing = self.make_book()
        draft = BookDraft(
            title="Copycat",
            author_id=2,
            chapters=[ChapterSubmission(title="One", raw_text="x", id=existing.chapters[0].id)]
        )
        with self.assertRaises(CrossBookChapterError):
            self.books.create_book(draft)
        self.assertEqual(len(self.books.list_books()), 1)


class TestBookDraft(unittest.TestCase):

    def test_from_dict(self):
        draft = BookDraft.from_dict({
            "title": "  T  ",
            "author_id": 3,
            "chapters": [{"title": "C", "content": "text"}],
        }, require_author=True)

        self.assertEqual(draft.title, "T")
        self.assertEqual(draft.author_id, 3)
        self.assertEqual(draft.chapters[0].raw_text, "text")

    def test_title_required(self):
        with self.assertRaises(ValidationError):
            BookDraft.from_dict({"title": " "})

    def test_author_required_on_create(self):
        with self.assertRaises(ValidationError):
            BookDraft.from_dict({"title": "T"}, require_author=True)

    def test_absent_chapters_stay_none(self):
        self.assertIsNone(BookDraft.from_dict({"title": "T"}).chapters)
        self.assertEqual(BookDraft.from_dict({"title": "T", "chapters": []}).chapters, [])

    def test_chapters_must_be_a_list(self):
        with self.assertRaises(ValidationError):
            BookDraft.from_dict({"title": "T", "chapters": "nope"})


class TestCoordinateValidation(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.book = self.make_book()
        self.chapter = self.book.chapters[0]

    def test_valid_coordinate_returns_chapter(self):
        chapter = self.books.validate_coordinate(self.book.id, self.chapter.id, 3)
        self.assertEqual(chapter.id, self.chapter.id)

    def test_paragraph_out_of_range(self):
        with self.assertRaises(InvalidCoordinateError):
            self.books.validate_coordinate(self.book.id, self.chapter.id, 4)
        with self.assertRaises(InvalidCoordinateError):
            self.books.validate_coordinate(self.book.id, self.chapter.id, 0)

    def test_chapter_of_another_book(self):
        other = self.make_book(title="Other")
        with self.assertRaises(InvalidCoordinateError) as ctx:
            self.books.validate_coordinate(self.book.id, other.chapters[0].id, 1)
        self.assertEqual(ctx.exception.detail["book_id"], self.book.id)


if __name__ == '__main__':
    unittest.main()
