from __future__ import annotations

import uuid

from library_tracker.book import DEFAULT_STATUS, utcnow

STATUS_COUNTER_FIELDS = {
    "Read": "books_read",
    "Reading": "currently_reading",
    "To Read": "to_read",
}


class UserStats:
    """Denormalised book counters kept on the user record."""

    def __init__(self, total_books: int = 0, books_read: int = 0,
                 currently_reading: int = 0, to_read: int = 0) -> None:
        self.total_books = total_books
        self.books_read = books_read
        self.currently_reading = currently_reading
        self.to_read = to_read

    @classmethod
    def from_status_counts(cls, counts: dict[str, int]) -> "UserStats":
        stats = cls()
        for status, count in counts.items():
            stats.total_books += count
            field = STATUS_COUNTER_FIELDS.get(status)
            if field:
                setattr(stats, field, count)
        return stats

    def to_dict(self) -> dict:
        return {
            "totalBooks": self.total_books,
            "booksRead": self.books_read,
            "currentlyReading": self.currently_reading,
            "toRead": self.to_read,
        }


class User:
    """A registered account. The password hash never leaves the credential store."""

    def __init__(self, username: str, email: str, password_hash: str, first_name: str, last_name: str,
                 id: str | None = None, avatar: str | None = None, theme: str = "light",
                 default_book_status: str = DEFAULT_STATUS, is_admin: bool = False,
                 stats: UserStats | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id or uuid.uuid4().hex
        self.username = username
        self.email = email
        self.password_hash = password_hash
        self.first_name = first_name
        self.last_name = last_name
        self.avatar = avatar
        self.theme = theme
        self.default_book_status = default_book_status
        self.is_admin = bool(is_admin)
        self.stats = stats or UserStats()
        now = utcnow().isoformat()
        self.created_at = created_at or now
        self.updated_at = updated_at or self.created_at

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fullName": self.full_name,
            "avatar": self.avatar,
            "preferences": {
                "theme": self.theme,
                "defaultBookStatus": self.default_book_status,
            },
            "isAdmin": self.is_admin,
            "stats": self.stats.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_row(data: dict) -> "User":
        return User(
            id=data["id"],
            username=data["username"],
            email=data["email"],
            password_hash=data["password_hash"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            avatar=data.get("avatar"),
            theme=data.get("theme") or "light",
            default_book_status=data.get("default_book_status") or DEFAULT_STATUS,
            is_admin=bool(data.get("is_admin")),
            stats=UserStats(
                total_books=data.get("stats_total_books") or 0,
                books_read=data.get("stats_books_read") or 0,
                currently_reading=data.get("stats_currently_reading") or 0,
                to_read=data.get("stats_to_read") or 0,
            ),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
