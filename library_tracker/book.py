from __future__ import annotations

import json
import math
import uuid
from datetime import datetime, timezone

BOOK_STATUSES = ("To Read", "Reading", "Read")
BOOK_FORMATS = ("Physical", "Ebook", "Audiobook")
DEFAULT_STATUS = "To Read"
DEFAULT_LANGUAGE = "English"
DEFAULT_FORMAT = "Physical"

SECONDS_PER_DAY = 24 * 3600
# Partial dates as Google Books reports them
PARTIAL_DATE_FORMATS = ("%Y-%m", "%Y")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: datetime | str | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up."""
    return math.ceil((end - start).total_seconds() / SECONDS_PER_DAY)


class Book:
    """A single book in one user's collection."""

    def __init__(self, title: str, author: str, user_id: str, id: str | None = None,
                 status: str | None = None, genre: str | None = None, description: str | None = None,
                 isbn: str | None = None, published_date: str | None = None, page_count: int | None = None,
                 rating: int | None = None, notes: str | None = None, cover_image: str | None = None,
                 tags: list | None = None, series: dict | None = None, language: str | None = None,
                 format: str | None = None, purchase_price: float | None = None,
                 purchase_date: str | None = None, location: str | None = None,
                 # Reading timeline
                 date_started: datetime | str | None = None, date_finished: datetime | str | None = None,
                 reading_duration: int | None = None,
                 created_at: datetime | str | None = None, updated_at: datetime | str | None = None) -> None:
        self.id = id or uuid.uuid4().hex
        self.user_id = user_id
        self.title = title.strip()
        self.author = author.strip()
        self.status = status or DEFAULT_STATUS
        self.genre = genre
        self.description = description
        self.isbn = isbn
        self.published_date = published_date
        self.page_count = page_count
        self.rating = rating
        self.notes = notes
        self.cover_image = cover_image
        self.tags = list(tags or [])
        self.series = series
        self.language = language or DEFAULT_LANGUAGE
        self.format = format or DEFAULT_FORMAT
        self.purchase_price = purchase_price
        self.purchase_date = purchase_date
        self.location = location

        self.date_started = _parse_timestamp(date_started)
        self.date_finished = _parse_timestamp(date_finished)
        self.reading_duration = reading_duration

        now = utcnow()
        self.created_at = _parse_timestamp(created_at) or now
        self.updated_at = _parse_timestamp(updated_at) or self.created_at

    def apply_status_transition(self, now: datetime | None = None) -> None:
        """Stamp the reading timeline for the current status.

        The first time a book is marked "Reading" its start date is recorded;
        the first time it is marked "Read" its finish date is recorded and, when
        a start date exists, the reading duration in whole days. Dates that are
        already set are left alone.
        """
        now = now or utcnow()
        if self.status == "Reading" and self.date_started is None:
            self.date_started = now
        if self.status == "Read" and self.date_finished is None:
            self.date_finished = now
            if self.date_started is not None:
                self.reading_duration = days_between(self.date_started, self.date_finished)

    def reading_progress(self, now: datetime | None = None) -> dict | None:
        if self.status != "Reading" or self.date_started is None:
            return None
        now = now or utcnow()
        return {
            "daysReading": days_between(self.date_started, now),
            "startDate": _format_timestamp(self.date_started),
        }

    def formatted_published_date(self) -> str | None:
        """Publication date as month/day/year; free text that is not a date comes back unchanged."""
        if not self.published_date:
            return None
        text = self.published_date.strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
            for fmt in PARTIAL_DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return self.published_date
        return f"{parsed.month}/{parsed.day}/{parsed.year}"

    def to_dict(self) -> dict:
        """Client-facing representation."""
        return {
            "id": self.id,
            "user": self.user_id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "status": self.status,
            "description": self.description,
            "isbn": self.isbn,
            "publishedDate": self.published_date,
            "pageCount": self.page_count,
            "rating": self.rating,
            "notes": self.notes,
            "coverImage": self.cover_image,
            "tags": list(self.tags),
            "series": self.series,
            "language": self.language,
            "format": self.format,
            "purchasePrice": self.purchase_price,
            "purchaseDate": self.purchase_date,
            "location": self.location,
            "dateStarted": _format_timestamp(self.date_started),
            "dateFinished": _format_timestamp(self.date_finished),
            "readingDuration": self.reading_duration,
            "readingProgress": self.reading_progress(),
            "formattedPublishedDate": self.formatted_published_date(),
            "createdAt": _format_timestamp(self.created_at),
            "updatedAt": _format_timestamp(self.updated_at),
        }

    def to_row(self) -> dict:
        """Column values for the books table."""
        series = self.series or {}
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "status": self.status,
            "description": self.description,
            "isbn": self.isbn,
            "published_date": self.published_date,
            "page_count": self.page_count,
            "rating": self.rating,
            "notes": self.notes,
            "cover_image": self.cover_image,
            "tags": json.dumps(self.tags, ensure_ascii=False),
            "series_name": series.get("name"),
            "series_number": series.get("number"),
            "language": self.language,
            "format": self.format,
            "purchase_price": self.purchase_price,
            "purchase_date": self.purchase_date,
            "location": self.location,
            "date_started": _format_timestamp(self.date_started),
            "date_finished": _format_timestamp(self.date_finished),
            "reading_duration": self.reading_duration,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @staticmethod
    def from_row(data: dict) -> "Book":
        tags = data.get("tags")
        if isinstance(tags, str):
            try:
                tags = json.loads(tags)
            except ValueError:
                tags = [tags] if tags else []

        series = None
        if data.get("series_name") is not None or data.get("series_number") is not None:
            series = {"name": data.get("series_name"), "number": data.get("series_number")}

        return Book(
            id=data["id"],
            user_id=data["user_id"],
            title=data["title"],
            author=data["author"],
            status=data.get("status"),
            genre=data.get("genre"),
            description=data.get("description"),
            isbn=data.get("isbn"),
            published_date=data.get("published_date"),
            page_count=data.get("page_count"),
            rating=data.get("rating"),
            notes=data.get("notes"),
            cover_image=data.get("cover_image"),
            tags=tags,
            series=series,
            language=data.get("language"),
            format=data.get("format"),
            purchase_price=data.get("purchase_price"),
            purchase_date=data.get("purchase_date"),
            location=data.get("location"),
            date_started=data.get("date_started"),
            date_finished=data.get("date_finished"),
            reading_duration=data.get("reading_duration"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
