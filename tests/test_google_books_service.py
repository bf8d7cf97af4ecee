import asyncio

import httpx
import pytest

from library_tracker.services.google_books_service import (
    ExternalBook,
    ExternalServiceError,
    GoogleBooksService,
    RateLimitExceeded,
    ServiceNotConfigured,
)
from library_tracker.services.http_client import HTTPClient

DUNE_VOLUME = {
    "volumeInfo": {
        "title": "Dune",
        "authors": ["Frank Herbert", "Brian Herbert"],
        "categories": ["Fiction", "Science Fiction"],
        "description": "A desert planet.",
        "industryIdentifiers": [
            {"type": "ISBN_10", "identifier": "0441172717"},
            {"type": "ISBN_13", "identifier": "9780441172719"},
        ],
        "publishedDate": "1990-09-01",
        "pageCount": 535,
        "imageLinks": {"smallThumbnail": "http://books.google.com/small.jpg"},
        "language": "en",
    }
}


def run_search(handler, query="dune", api_key="test-key", **kwargs):
    async def _run():
        async with HTTPClient(transport=httpx.MockTransport(handler)) as client:
            service = GoogleBooksService(api_key=api_key, client=client)
            return await service.search_books(query, **kwargs)
    return asyncio.run(_run())


def test_search_maps_volumes():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"totalItems": 1, "items": [DUNE_VOLUME]})

    books = run_search(handler)

    assert books == [ExternalBook(
        title="Dune",
        author="Frank Herbert, Brian Herbert",
        genre="Fiction",
        description="A desert planet.",
        isbn="9780441172719",
        published_date="1990-09-01",
        page_count=535,
        cover_image="http://books.google.com/small.jpg",
        language="en",
    )]
    params = requests[0].url.params
    assert requests[0].url.path.endswith("/volumes")
    assert params["q"] == "dune"
    assert params["maxResults"] == "10"
    assert params["key"] == "test-key"


def test_search_applies_defaults():
    volume = {"volumeInfo": {"industryIdentifiers": [{"type": "OTHER", "identifier": "UOM:39015"}]}}
    books = run_search(lambda request: httpx.Response(200, json={"items": [volume, {}]}))

    first = books[0].to_dict()
    assert first["title"] == "Unknown Title"
    assert first["author"] == "Unknown Author"
    assert first["genre"] == ""
    assert first["isbn"] == "UOM:39015"
    assert first["coverImage"] is None
    assert first["language"] == "en"
    assert books[1].isbn == ""


def test_search_without_items():
    assert run_search(lambda request: httpx.Response(200, json={"totalItems": 0})) == []


def test_max_results_capped():
    seen = []

    def handler(request):
        seen.append(request.url.params["maxResults"])
        return httpx.Response(200, json={})

    run_search(handler, max_results=100)
    assert seen == ["40"]


def test_rate_limited():
    with pytest.raises(RateLimitExceeded):
        run_search(lambda request: httpx.Response(429, json={}))


def test_upstream_error():
    with pytest.raises(ExternalServiceError):
        run_search(lambda request: httpx.Response(500, text="backend error"))


def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExternalServiceError):
        run_search(handler)


def test_not_configured():
    service = GoogleBooksService(api_key="")
    assert not service.is_configured()
    with pytest.raises(ServiceNotConfigured):
        asyncio.run(service.search_books("dune"))


def test_empty_query():
    with pytest.raises(ValueError):
        run_search(lambda request: httpx.Response(200, json={}), query="  ")
