import logging
from typing import Any, Callable, Dict, List, Optional

from library_tracker.book import Book, utcnow
from library_tracker.database import get_db_connection
from library_tracker.uploads import PUBLIC_PREFIX, delete_uploaded_file
from library_tracker.validators import BookSubmission

logger = logging.getLogger(__name__)

PostCommitCallback = Callable[[str], Any]

SEARCHABLE_FIELDS = ("title", "author", "genre", "description", "notes")

BOOK_COLUMNS = (
    "id", "user_id", "title", "author", "genre", "status", "description", "isbn",
    "published_date", "page_count", "rating", "notes", "cover_image", "tags",
    "series_name", "series_number", "language", "format", "purchase_price",
    "purchase_date", "location", "date_started", "date_finished", "reading_duration",
    "created_at", "updated_at",
)

# Fields a client update may touch; user_id, id and the reading timeline are not among them
UPDATABLE_FIELDS = {
    "title", "author", "genre", "status", "description", "isbn", "published_date",
    "page_count", "rating", "notes", "tags", "series", "language", "format",
    "purchase_price", "purchase_date", "location",
}


class BookNotFound(LookupError):
    """No such book for this user. Also raised for books owned by someone else."""

    def __init__(self, book_id: str) -> None:
        super().__init__("Book not found")
        self.book_id = book_id


class Library:
    """Per-user book collections.

    Every operation is scoped by the owning user id. After each successful
    create, update or delete the registered post-commit callbacks are invoked
    with the owner's id; their failures are logged and never undo the write.
    """

    def __init__(self) -> None:
        self._post_commit_callbacks: List[PostCommitCallback] = []

    def add_post_commit_callback(self, callback: PostCommitCallback) -> None:
        self._post_commit_callbacks.append(callback)

    def _after_commit(self, user_id: str) -> None:
        for callback in self._post_commit_callbacks:
            try:
                callback(user_id)
            except Exception:
                logger.exception(f"Post-commit callback {getattr(callback, '__name__', callback)!r} "
                                 f"failed for user {user_id}")

    # ------------------------- Core operations ------------------------- #
    def add_book(self, user_id: str, submission: BookSubmission, cover_image: Optional[str] = None) -> Book:
        book = Book(user_id=user_id, cover_image=cover_image, **submission.to_book_fields())
        book.apply_status_transition(book.created_at)

        row = book.to_row()
        placeholders = ", ".join("?" for _ in BOOK_COLUMNS)
        conn = get_db_connection()
        try:
            conn.execute(
                f"INSERT INTO books ({', '.join(BOOK_COLUMNS)}) VALUES ({placeholders})",
                tuple(row[column] for column in BOOK_COLUMNS),
            )
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Book {book.id} added for user {user_id}")
        self._after_commit(user_id)
        return book

    def find_book(self, user_id: str, book_id: str) -> Optional[Book]:
        conn = get_db_connection()
        try:
            row = conn.execute(
                "SELECT * FROM books WHERE id = ? AND user_id = ?", (book_id, user_id)
            ).fetchone()
            return Book.from_row(dict(row)) if row else None
        finally:
            conn.close()

    def get_book(self, user_id: str, book_id: str) -> Book:
        book = self.find_book(user_id, book_id)
        if book is None:
            raise BookNotFound(book_id)
        return book

    def update_book(self, user_id: str, book_id: str, changes: Dict[str, Any],
                    cover_image: Optional[str] = None) -> Book:
        """Apply a partial update. A new cover replaces and deletes the old one."""
        book = self.get_book(user_id, book_id)
        previous_cover = book.cover_image

        for field, value in changes.items():
            if field in UPDATABLE_FIELDS:
                setattr(book, field, value)
        if cover_image:
            book.cover_image = cover_image
        now = utcnow()
        book.apply_status_transition(now)
        book.updated_at = now

        row = book.to_row()
        assignments = ", ".join(f"{column} = ?" for column in BOOK_COLUMNS if column not in ("id", "user_id"))
        values = [row[column] for column in BOOK_COLUMNS if column not in ("id", "user_id")]
        conn = get_db_connection()
        try:
            conn.execute(
                f"UPDATE books SET {assignments} WHERE id = ? AND user_id = ?",
                (*values, book_id, user_id),
            )
            conn.commit()
        finally:
            conn.close()

        if cover_image and previous_cover and previous_cover != cover_image:
            self._discard_cover(previous_cover)
        self._after_commit(user_id)
        return book

    def remove_book(self, user_id: str, book_id: str) -> Book:
        book = self.get_book(user_id, book_id)
        conn = get_db_connection()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ? AND user_id = ?", (book_id, user_id))
            conn.commit()
            if cursor.rowcount == 0:
                raise BookNotFound(book_id)
        finally:
            conn.close()

        if book.cover_image:
            self._discard_cover(book.cover_image)
        logger.info(f"Book {book_id} removed for user {user_id}")
        self._after_commit(user_id)
        return book

    def list_books(self, user_id: str) -> List[Book]:
        """All of a user's books, newest first."""
        conn = get_db_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM books WHERE user_id = ? ORDER BY created_at DESC, rowid DESC", (user_id,)
            ).fetchall()
            return [Book.from_row(dict(row)) for row in rows]
        finally:
            conn.close()

    def search_books(self, user_id: str, query: str) -> List[Book]:
        """Case-insensitive substring search over text fields and tags."""
        needle = (query or "").strip().casefold()
        if not needle:
            raise ValueError("Query is required")

        matches = []
        for book in self.list_books(user_id):
            haystack = [getattr(book, field) or "" for field in SEARCHABLE_FIELDS] + list(book.tags)
            if any(needle in value.casefold() for value in haystack):
                matches.append(book)
        return matches

    def find_similar_books(self, user_id: str, book_id: str, limit: int = 5) -> List[Book]:
        """Other books of the same user sharing the author or the genre."""
        book = self.get_book(user_id, book_id)
        conn = get_db_connection()
        try:
            rows = conn.execute(
                """
                SELECT * FROM books
                WHERE user_id = ? AND id != ?
                  AND (author = ? OR (genre IS NOT NULL AND genre != '' AND genre = ?))
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, book_id, book.author, book.genre, limit),
            ).fetchall()
            return [Book.from_row(dict(row)) for row in rows]
        finally:
            conn.close()

    # ------------------------- Aggregates ------------------------- #
    def get_statistics(self, user_id: str) -> Dict[str, Any]:
        """Live reading statistics, independent of the user's stats snapshot."""
        conn = get_db_connection()
        try:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total_books,
                       AVG(rating) AS average_rating,
                       COALESCE(SUM(page_count), 0) AS total_pages,
                       COALESCE(SUM(CASE WHEN status = 'Read' THEN 1 ELSE 0 END), 0) AS books_read,
                       COALESCE(SUM(CASE WHEN status = 'Reading' THEN 1 ELSE 0 END), 0) AS books_reading,
                       COALESCE(SUM(CASE WHEN status = 'To Read' THEN 1 ELSE 0 END), 0) AS books_to_read
                FROM books WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        finally:
            conn.close()

        average_rating = row["average_rating"]
        return {
            "totalBooks": row["total_books"],
            "averageRating": round(float(average_rating), 2) if average_rating is not None else 0,
            "totalPages": row["total_pages"],
            "booksRead": row["books_read"],
            "booksReading": row["books_reading"],
            "booksToRead": row["books_to_read"],
        }

    def distinct_genres(self, user_id: str) -> List[str]:
        return self._distinct(user_id, "genre")

    def distinct_authors(self, user_id: str) -> List[str]:
        return self._distinct(user_id, "author")

    def _distinct(self, user_id: str, column: str) -> List[str]:
        conn = get_db_connection()
        try:
            rows = conn.execute(
                f"SELECT DISTINCT {column} AS value FROM books "
                f"WHERE user_id = ? AND {column} IS NOT NULL AND {column} != ''",
                (user_id,),
            ).fetchall()
            return sorted(row["value"] for row in rows)
        finally:
            conn.close()

    # ------------------------- Utilities ------------------------- #
    @staticmethod
    def _discard_cover(cover_image: str) -> None:
        if cover_image.startswith(PUBLIC_PREFIX):
            delete_uploaded_file(cover_image)
