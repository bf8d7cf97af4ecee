import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from library_tracker.config import settings
from library_tracker.services.http_client import HTTPClient, get_http_client

logger = logging.getLogger(__name__)


@dataclass
class ExternalBook:
    """A Google Books volume mapped onto the book submission shape."""
    title: str
    author: str
    genre: str = ""
    description: str = ""
    isbn: str = ""
    published_date: str = ""
    page_count: Optional[int] = None
    cover_image: Optional[str] = None
    language: str = "en"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "description": self.description,
            "isbn": self.isbn,
            "publishedDate": self.published_date,
            "pageCount": self.page_count,
            "coverImage": self.cover_image,
            "language": self.language,
        }


class GoogleBooksAPIError(Exception):
    """Custom exception for Google Books API errors"""
    pass


class ServiceNotConfigured(GoogleBooksAPIError):
    """Raised when no API key is configured"""
    pass


class ExternalServiceError(GoogleBooksAPIError):
    """Raised when Google Books is unreachable or answers with an error"""
    pass


class RateLimitExceeded(ExternalServiceError):
    """Raised when Google Books rejects the call with 429"""
    pass


class GoogleBooksService:
    """Service for searching the Google Books catalog"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[HTTPClient] = None):
        self.api_key = api_key if api_key is not None else settings.google_books_api_key
        self.base_url = settings.google_books_base_url
        self.max_results = settings.google_books_max_results
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _make_api_request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Make a single API request to Google Books"""
        url = f"{self.base_url}/{endpoint}"
        client = self._client or await get_http_client()
        start_time = time.time()

        try:
            response = await client.get(url, params={**params, "key": self.api_key})
        except httpx.TimeoutException as e:
            logger.error(f"Google Books request timed out: {e}")
            raise ExternalServiceError("Google Books request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Google Books request failed: {e.__class__.__name__}")
            raise ExternalServiceError("Google Books is unreachable") from e

        response_time_ms = int((time.time() - start_time) * 1000)
        if response.status_code == 429:
            logger.warning("Rate limit exceeded for Google Books API")
            raise RateLimitExceeded("Rate limit exceeded")
        if response.status_code != 200:
            logger.error(f"Google Books API request failed: {response.status_code} - {response.text[:200]}")
            raise ExternalServiceError(f"Google Books answered with status {response.status_code}")

        logger.info(f"Google Books {endpoint} answered in {response_time_ms}ms")
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError("Google Books returned malformed JSON") from e

    @staticmethod
    def _pick_isbn(identifiers: List[Dict[str, Any]]) -> str:
        for identifier in identifiers:
            if identifier.get("type") == "ISBN_13" and identifier.get("identifier"):
                return identifier["identifier"]
        if identifiers:
            return identifiers[0].get("identifier") or ""
        return ""

    def _parse_volume_info(self, volume_data: Dict[str, Any]) -> ExternalBook:
        """Parse volume info from Google Books API response"""
        volume_info = volume_data.get("volumeInfo") or {}
        authors = volume_info.get("authors") or []
        categories = volume_info.get("categories") or []
        image_links = volume_info.get("imageLinks") or {}

        return ExternalBook(
            title=volume_info.get("title") or "Unknown Title",
            author=", ".join(authors) if authors else "Unknown Author",
            genre=categories[0] if categories else "",
            description=volume_info.get("description") or "",
            isbn=self._pick_isbn(volume_info.get("industryIdentifiers") or []),
            published_date=volume_info.get("publishedDate") or "",
            page_count=volume_info.get("pageCount") or None,
            cover_image=image_links.get("thumbnail") or image_links.get("smallThumbnail"),
            language=volume_info.get("language") or "en",
        )

    async def search_books(self, query: str, max_results: Optional[int] = None) -> List[ExternalBook]:
        """
        Search Google Books using a free-text query

        Args:
            query: Search query (title, author, etc.)
            max_results: Maximum number of results to return

        Returns:
            List of ExternalBook objects, in the order Google returned them
        """
        if not query or not query.strip():
            raise ValueError("Query is required")
        if not self.is_configured():
            raise ServiceNotConfigured("Google Books API not configured")

        params = {
            "q": query.strip(),
            "maxResults": min(max_results or self.max_results, 40)  # Google Books API limit
        }
        data = await self._make_api_request("volumes", params)

        books = [self._parse_volume_info(item) for item in data.get("items") or []]
        logger.info(f"Found {len(books)} external books for query: {query.strip()}")
        return books
