"""
Tests for the HTTP API using Flask's test client.
"""

import unittest
from unittest.mock import MagicMock, patch

from interface.http_api import create_app
from reading.annotations import AnnotationResult

from db_case import DatabaseTestCase


class TestHTTPAPI(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.client = create_app().test_client()

    def _create_book(self, title="Book", chapters=None):
        payload = {
            "title": title,
            "author_id": 1,
            "author_name": "Ana",
            "chapters": chapters if chapters is not None else [
                {"title": "One", "content": "Line one.\n\nLine two.\n"},
                {"title": "Two", "content": "x\ny"},
            ],
        }
        response = self.client.post("/books", json=payload)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["book"]

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["status"], "healthy")

    def test_split_verses(self):
        response = self.client.post("/verses/split", json={"text": "Line one.\n\nLine two.\n"})
        self.assertEqual(response.get_json(), {"verses": ["Line one.", "Line two."]})

    def test_split_requires_text(self):
        response = self.client.post("/verses/split", json={})
        self.assertEqual(response.status_code, 400)

    def test_create_and_get_book(self):
        book = self._create_book()
        self.assertEqual(book["chapters"][0]["content"], ["Line one.", "Line two."])

        response = self.client.get(f"/books/{book['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["book"]["title"], "Book")

        activities = self.client.get("/users/1/activities").get_json()["activities"]
        self.assertEqual(activities[0]["type"], "PUBLISHED_BOOK")

    def test_create_without_title(self):
        response = self.client.post("/books", json={"author_id": 1})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.get_json())

    def test_non_json_body(self):
        response = self.client.post("/books", data="not json", content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    def test_get_missing_book(self):
        response = self.client.get("/books/404")
        self.assertEqual(response.status_code, 404)

    def test_list_books_without_chapters(self):
        self._create_book()
        books = self.client.get("/books").get_json()["books"]
        self.assertEqual(len(books), 1)
        self.assertNotIn("chapters", books[0])

    def test_update_with_foreign_chapter_is_conflict(self):
        book = self._create_book()
        other = self._create_book(title="Other")

        response = self.client.put(f"/books/{book['id']}", json={
            "title": "Book",
            "chapters": [{"id": other["chapters"][0]["id"], "title": "Stolen", "content": "x"}],
        })

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["type"], "conflict")

    def test_update_reconciles_chapters(self):
        book = self._create_book()
        first_id = book["chapters"][0]["id"]

        response = self.client.put(f"/books/{book['id']}", json={
            "title": "Book v2",
            "chapters": [
                {"title": "New", "content": "n"},
                {"id": first_id, "title": "One", "content": "a\nb"},
            ],
        })

        self.assertEqual(response.status_code, 200)
        chapters = response.get_json()["book"]["chapters"]
        self.assertEqual([c["order"] for c in chapters], [0, 1])
        self.assertEqual(chapters[1]["id"], first_id)
        self.assertEqual(chapters[1]["content"], ["a", "b"])

    def test_delete_book(self):
        book = self._create_book()
        self.assertEqual(self.client.delete(f"/books/{book['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/books/{book['id']}").status_code, 404)

    def test_progress_round_trip(self):
        book = self._create_book()
        chapter_id = book["chapters"][0]["id"]
        url = f"/users/5/progress/{book['id']}"

        self.assertIsNone(self.client.get(url).get_json()["progress"])

        self.client.put(url, json={"chapter_id": chapter_id, "paragraph_index": 1})
        response = self.client.put(url, json={"chapter_id": chapter_id, "paragraph_index": 2})
        self.assertEqual(response.status_code, 200)

        progress = self.client.get(url).get_json()["progress"]
        self.assertEqual(progress["paragraph_index"], 2)
        self.assertEqual(len(self.client.get("/users/5/progress").get_json()["progress"]), 1)

    def test_progress_invalid_coordinate(self):
        book = self._create_book()
        response = self.client.put(
            f"/users/5/progress/{book['id']}",
            json={"chapter_id": book["chapters"][0]["id"], "paragraph_index": 9}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["type"], "coordinate")

    def test_bookmark_endpoints(self):
        book = self._create_book()
        coordinate = {"book_id": book["id"], "chapter_id": book["chapters"][0]["id"], "paragraph_index": 2}
        query = "&".join(f"{k}={v}" for k, v in coordinate.items())

        added = self.client.post("/users/3/bookmarks", json=coordinate).get_json()["bookmark"]
        self.assertEqual(added["text"], "Line two.")

        exists = self.client.get(f"/users/3/bookmarks/exists?{query}").get_json()
        self.assertTrue(exists["bookmarked"])
        self.assertEqual(len(self.client.get("/users/3/bookmarks").get_json()["bookmarks"]), 1)

        removed = self.client.delete(f"/users/3/bookmarks?{query}")
        self.assertEqual(removed.get_json()["removed"]["id"], added["id"])

        again = self.client.delete("/users/3/bookmarks", json=coordinate)
        self.assertEqual(again.status_code, 200)
        self.assertIsNone(again.get_json()["removed"])

    def test_bookmark_exists_requires_coordinate(self):
        response = self.client.get("/users/3/bookmarks/exists?book_id=1")
        self.assertEqual(response.status_code, 400)

    def test_toggle_bookmark(self):
        book = self._create_book()
        coordinate = {"book_id": book["id"], "chapter_id": book["chapters"][0]["id"], "paragraph_index": 1}

        on = self.client.post("/users/3/bookmarks/toggle", json=coordinate).get_json()
        off = self.client.post("/users/3/bookmarks/toggle", json=coordinate).get_json()

        self.assertTrue(on["bookmarked"])
        self.assertFalse(off["bookmarked"])

    def test_record_activity(self):
        response = self.client.post("/users/8/activities", json={"type": "STARTED_READING"})
        self.assertEqual(response.status_code, 201)

        bad = self.client.post("/users/8/activities", json={"comment": "no type"})
        self.assertEqual(bad.status_code, 400)

        limited = self.client.get("/users/8/activities?limit=1").get_json()["activities"]
        self.assertEqual(len(limited), 1)

    def test_update_without_chapters_keeps_them(self):
        book = self._create_book()

        response = self.client.put(f"/books/{book['id']}", json={"title": "Renamed"})

        self.assertEqual(response.status_code, 200)
        updated = response.get_json()["book"]
        self.assertEqual(updated["title"], "Renamed")
        self.assertEqual(
            [c["id"] for c in updated["chapters"]],
            [c["id"] for c in book["chapters"]]
        )

    def test_update_with_empty_chapter_list_removes_them(self):
        book = self._create_book()
        response = self.client.put(f"/books/{book['id']}", json={"title": "Book", "chapters": []})
        self.assertEqual(response.get_json()["book"]["chapters"], [])

    def test_activity_for_missing_book_is_not_found(self):
        response = self.client.post("/users/1/activities", json={"type": "STARTED_READING", "book_id": 9999})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["type"], "not_found")

    def test_annotation(self):
        book = self._create_book()
        generator = MagicMock()
        generator.annotate.return_value = AnnotationResult(success=True, annotation="Meaning.")

        with patch("interface.http_api.get_annotation_generator", return_value=generator):
            response = self.client.post(
                f"/books/{book['id']}/annotations",
                json={"chapter_id": book["chapters"][0]["id"], "paragraph_index": 2}
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["annotation"], "Meaning.")
        _, chapter_id, paragraph_index = generator.annotate.call_args.args
        self.assertEqual(chapter_id, book["chapters"][0]["id"])
        self.assertEqual(paragraph_index, 2)

    def test_unexpected_error_is_500(self):
        with patch("interface.http_api.get_book_service", side_effect=RuntimeError("boom")):
            response = self.client.get("/books")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "boom"})

    def test_stats(self):
        self._create_book()
        stats = self.client.get("/stats").get_json()["database"]
        self.assertEqual(stats["total_books"], 1)
        self.assertEqual(stats["total_chapters"], 2)


if __name__ == '__main__':
    unittest.main()
