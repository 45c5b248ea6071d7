"""
LitBook - HTTP API
Flask-based JSON API used by the reading UI
"""

import threading
from typing import Optional
from flask import Flask, request, jsonify

import config
from core.logger import log_info, log_error
from core.database import get_database
from reading.errors import ErrorType, LitBookError, ValidationError, BookNotFoundError
from reading.segmenter import get_verse_segmenter
from reading.books import BookDraft, get_book_service
from reading.progress import get_progress_tracker
from reading.bookmarks import get_bookmark_store
from reading.activity import ActivityType, get_activity_recorder
from reading.annotations import get_annotation_generator
from reading.reader import ReaderService

STATUS_BY_ERROR_TYPE = {
    ErrorType.VALIDATION: 400,
    ErrorType.INVALID_COORDINATE: 400,
    ErrorType.NOT_FOUND: 404,
    ErrorType.CONFLICT: 409,
}


def _error_response(error: Exception, context: str):
    """Domain errors map to their status; anything else is a 500."""
    if isinstance(error, LitBookError):
        return jsonify(error.to_dict()), STATUS_BY_ERROR_TYPE.get(error.error_type, 400)
    log_error(f"{context} API error: {error}")
    return jsonify({"error": str(error)}), 500


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _require_int(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Missing or non-integer '{key}' field")
    return value


def _coordinate_from_args() -> tuple:
    """(book_id, chapter_id, paragraph_index) from the query string."""
    values = []
    for key in ("book_id", "chapter_id", "paragraph_index"):
        value = request.args.get(key, type=int)
        if value is None:
            raise ValidationError(f"Missing or non-integer '{key}' query parameter")
        values.append(value)
    return tuple(values)


def _coordinate_from_body(data: dict) -> tuple:
    return (
        _require_int(data, "book_id"),
        _require_int(data, "chapter_id"),
        _require_int(data, "paragraph_index"),
    )


def create_app() -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({"status": "healthy", "service": "litbook", "version": config.VERSION})

    # ------------------------------------------------------------------
    # Segmentation
    # ------------------------------------------------------------------

    @app.route("/verses/split", methods=["POST"])
    def split_verses():
        """
        Segment chapter text into verses without saving anything.

        Request body:
        {
            "text": "Raw chapter text"
        }
        """
        try:
            data = _json_body()
            text = data.get("text")
            if not isinstance(text, str):
                return jsonify({"error": "Missing 'text' field"}), 400

            verses = get_verse_segmenter().segment(text)
            return jsonify({"verses": verses})

        except Exception as e:
            return _error_response(e, "Split verses")

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    @app.route("/books", methods=["GET"])
    def list_books():
        try:
            books = get_book_service().list_books()
            return jsonify({"books": [b.to_dict(include_chapters=False) for b in books]})

        except Exception as e:
            return _error_response(e, "List books")

    @app.route("/books", methods=["POST"])
    def create_book():
        """
        Publish a book.

        Request body:
        {
            "title": "Book title",
            "description": "...",
            "preface": "...",
            "cover_url": "https://...",
            "author_id": 1,
            "author_name": "Author",
            "chapters": [{"title": "...", "subtitle": "...", "content": "Raw text"}]
        }
        """
        try:
            draft = BookDraft.from_dict(_json_body(), require_author=True)
            book = get_book_service().create_book(draft)

            get_activity_recorder().record(
                book.author_id,
                ActivityType.PUBLISHED_BOOK,
                book_id=book.id,
                comment=f"Published '{book.title}'"
            )
            return jsonify({"book": book.to_dict()}), 201

        except Exception as e:
            return _error_response(e, "Create book")

    @app.route("/books/<int:book_id>", methods=["GET"])
    def get_book(book_id: int):
        try:
            book = get_book_service().get_book_by_id(book_id)
            if book is None:
                raise BookNotFoundError(book_id)
            return jsonify({"book": book.to_dict()})

        except Exception as e:
            return _error_response(e, "Get book")

    @app.route("/books/<int:book_id>", methods=["PUT"])
    def update_book(book_id: int):
        """
        Update a book and replace its chapter list.

        Same body as POST /books. Chapters carrying an "id" are updated in
        place, chapters without one are created, and stored chapters left out
        of the list are deleted. Leaving "chapters" out of the body keeps the
        stored chapters.
        """
        try:
            draft = BookDraft.from_dict(_json_body())
            book = get_book_service().update_book(book_id, draft)

            get_activity_recorder().record(
                book.author_id,
                ActivityType.UPDATED_BOOK,
                book_id=book.id,
                comment=f"Updated '{book.title}'"
            )
            return jsonify({"book": book.to_dict()})

        except Exception as e:
            return _error_response(e, "Update book")

    @app.route("/books/<int:book_id>", methods=["DELETE"])
    def delete_book(book_id: int):
        try:
            if not get_book_service().delete_book(book_id):
                raise BookNotFoundError(book_id)
            return jsonify({"deleted": book_id})

        except Exception as e:
            return _error_response(e, "Delete book")

    @app.route("/books/<int:book_id>/annotations", methods=["POST"])
    def annotate(book_id: int):
        """
        Explain a verse.

        Request body:
        {
            "chapter_id": 3,
            "paragraph_index": 7
        }
        """
        try:
            data = _json_body()
            chapter_id = _require_int(data, "chapter_id")
            paragraph_index = _require_int(data, "paragraph_index")

            books = get_book_service()
            book = books.get_book_by_id(book_id)
            if book is None:
                raise BookNotFoundError(book_id)
            books.validate_coordinate(book_id, chapter_id, paragraph_index)

            result = get_annotation_generator().annotate(book, chapter_id, paragraph_index)
            return jsonify(result.to_dict())

        except Exception as e:
            return _error_response(e, "Annotation")

    # ------------------------------------------------------------------
    # Reading progress
    # ------------------------------------------------------------------

    @app.route("/users/<int:user_id>/progress/<int:book_id>", methods=["GET"])
    def get_progress(user_id: int, book_id: int):
        try:
            position = get_progress_tracker().get(user_id, book_id)
            return jsonify({"progress": position.to_dict() if position else None})

        except Exception as e:
            return _error_response(e, "Get progress")

    @app.route("/users/<int:user_id>/progress/<int:book_id>", methods=["PUT"])
    def save_progress(user_id: int, book_id: int):
        """
        Save where the user is in a book.

        Request body:
        {
            "chapter_id": 3,
            "paragraph_index": 7
        }
        """
        try:
            data = _json_body()
            position = get_progress_tracker().save(
                user_id,
                book_id,
                _require_int(data, "chapter_id"),
                _require_int(data, "paragraph_index")
            )
            return jsonify({"progress": position.to_dict()})

        except Exception as e:
            return _error_response(e, "Save progress")

    @app.route("/users/<int:user_id>/progress", methods=["GET"])
    def list_progress(user_id: int):
        try:
            positions = get_progress_tracker().list_for_user(user_id)
            return jsonify({"progress": [p.to_dict() for p in positions]})

        except Exception as e:
            return _error_response(e, "List progress")

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    @app.route("/users/<int:user_id>/bookmarks", methods=["GET"])
    def list_bookmarks(user_id: int):
        try:
            bookmarks = get_bookmark_store().list_for_user(user_id)
            return jsonify({"bookmarks": [b.to_dict() for b in bookmarks]})

        except Exception as e:
            return _error_response(e, "List bookmarks")

    @app.route("/users/<int:user_id>/bookmarks", methods=["POST"])
    def add_bookmark(user_id: int):
        """
        Bookmark a verse. Adding an existing bookmark returns it unchanged.

        Request body:
        {
            "book_id": 1,
            "chapter_id": 3,
            "paragraph_index": 7,
            "text": "Optional verse text"
        }
        """
        try:
            data = _json_body()
            bookmark = get_bookmark_store().add(
                user_id, *_coordinate_from_body(data), data.get("text")
            )
            return jsonify({"bookmark": bookmark.to_dict()})

        except Exception as e:
            return _error_response(e, "Add bookmark")

    @app.route("/users/<int:user_id>/bookmarks", methods=["DELETE"])
    def remove_bookmark(user_id: int):
        """Remove a bookmark. Coordinate comes from the query string or body."""
        try:
            if request.args:
                coordinate = _coordinate_from_args()
            else:
                coordinate = _coordinate_from_body(_json_body())

            removed = get_bookmark_store().remove(user_id, *coordinate)
            return jsonify({"removed": removed.to_dict() if removed else None})

        except Exception as e:
            return _error_response(e, "Remove bookmark")

    @app.route("/users/<int:user_id>/bookmarks/exists", methods=["GET"])
    def bookmark_exists(user_id: int):
        try:
            bookmarked = get_bookmark_store().exists(user_id, *_coordinate_from_args())
            return jsonify({"bookmarked": bookmarked})

        except Exception as e:
            return _error_response(e, "Bookmark exists")

    @app.route("/users/<int:user_id>/bookmarks/toggle", methods=["POST"])
    def toggle_bookmark(user_id: int):
        try:
            result = ReaderService().toggle_bookmark(user_id, *_coordinate_from_body(_json_body()))
            return jsonify(result.to_dict())

        except Exception as e:
            return _error_response(e, "Toggle bookmark")

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    @app.route("/users/<int:user_id>/activities", methods=["GET"])
    def list_activities(user_id: int):
        try:
            limit = request.args.get("limit", default=config.ACTIVITY_DEFAULT_LIMIT, type=int)
            activities = get_activity_recorder().list_for_user(user_id, limit=limit)
            return jsonify({"activities": [a.to_dict() for a in activities]})

        except Exception as e:
            return _error_response(e, "List activities")

    @app.route("/users/<int:user_id>/activities", methods=["POST"])
    def record_activity(user_id: int):
        """
        Record an activity.

        Request body:
        {
            "type": "STARTED_READING",
            "book_id": 1,
            "comment": "Optional text"
        }
        """
        try:
            data = _json_body()
            book_id = data.get("book_id")
            if book_id is not None:
                book_id = _require_int(data, "book_id")

            activity = get_activity_recorder().record(
                user_id,
                data.get("type"),
                book_id=book_id,
                comment=data.get("comment")
            )
            return jsonify({"activity": activity.to_dict()}), 201

        except Exception as e:
            return _error_response(e, "Record activity")

    @app.route("/stats", methods=["GET"])
    def stats():
        """Get database statistics."""
        try:
            return jsonify({"database": get_database().get_stats()})

        except Exception as e:
            return _error_response(e, "Stats")

    return app


class HTTPServer:
    """
    HTTP server manager.

    Runs Flask in a background thread.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 5000):
        self.host = host
        self.port = port
        self._app: Optional[Flask] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        self._app = create_app()

        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True,
            name="HTTPServer"
        )
        self._thread.start()

        log_info(f"HTTP API started on http://{self.host}:{self.port}", prefix="🌐")

    def _run_server(self) -> None:
        """Run the Flask server."""
        # Suppress Flask's default request logging
        import logging
        log = logging.getLogger('werkzeug')
        log.setLevel(logging.ERROR)

        self._app.run(
            host=self.host,
            port=self.port,
            debug=False,
            use_reloader=False,
            threaded=True
        )

    def stop(self) -> None:
        """Stop the HTTP server."""
        # The dev server has no clean shutdown; the daemon thread ends with the process
        pass


# Global HTTP server instance
_http_server: Optional[HTTPServer] = None


def get_http_server() -> HTTPServer:
    """Get the global HTTP server instance."""
    global _http_server
    if _http_server is None:
        _http_server = HTTPServer(host=config.HTTP_HOST, port=config.HTTP_PORT)
    return _http_server


def init_http_server(host: str = "127.0.0.1", port: int = 5000) -> HTTPServer:
    """Initialize the global HTTP server."""
    global _http_server
    _http_server = HTTPServer(host=host, port=port)
    return _http_server
