import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from library_tracker.auth import get_user_store, optional_user, require_admin, require_user
from library_tracker.config import settings
from library_tracker.database import check_connection, initialize_database
from library_tracker.library import BookNotFound, Library
from library_tracker.services.google_books_service import (
    ExternalServiceError,
    GoogleBooksService,
    ServiceNotConfigured,
)
from library_tracker.services.http_client import cleanup_http_client, get_http_client
from library_tracker.uploads import (
    UploadError,
    delete_uploaded_file,
    extract_cover_upload,
    get_upload_dir,
    public_path,
    save_cover_upload,
)
from library_tracker.user import User
from library_tracker.users import DuplicateUserError, InvalidCredentials, UserNotFound
from library_tracker.validators import (
    ValidationFailed,
    validate_book_submission,
    validate_book_update,
    validate_login,
    validate_profile_update,
    validate_registration,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

library = Library()
user_store = get_user_store()
# Keep each user's stats snapshot in step with their books
library.add_post_commit_callback(user_store.recompute_stats)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Prepare process-wide resources on startup
    initialize_database()
    get_upload_dir()
    await get_http_client()
    logger.info(f"{settings.app_name} {settings.app_version} started")
    try:
        yield
    finally:
        await cleanup_http_client()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- Middleware ---
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---
def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, **extra})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = _error(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'Invalid value')}"
        for error in exc.errors()
    ]
    return _error(400, "Validation error", details=details)


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return _error(400, exc.message, details=exc.details)


@app.exception_handler(DuplicateUserError)
async def duplicate_user_handler(request: Request, exc: DuplicateUserError):
    return _error(400, str(exc))


@app.exception_handler(InvalidCredentials)
async def invalid_credentials_handler(request: Request, exc: InvalidCredentials):
    return _error(401, str(exc))


@app.exception_handler(BookNotFound)
async def book_not_found_handler(request: Request, exc: BookNotFound):
    return _error(404, str(exc))


@app.exception_handler(UserNotFound)
async def user_not_found_handler(request: Request, exc: UserNotFound):
    return _error(404, "User not found")


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError):
    return _error(exc.status_code, str(exc))


@app.exception_handler(ServiceNotConfigured)
async def service_not_configured_handler(request: Request, exc: ServiceNotConfigured):
    return _error(503, str(exc))


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError):
    return _error(502, "Failed to search external books")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return _error(500, "Server error")


# --- Helpers ---
def _form_fields(form: FormData) -> Dict[str, Any]:
    """Plain fields of a multipart form; tags may repeat."""
    raw: Dict[str, Any] = {}
    for key in form.keys():
        if key == "tags":
            tags = [value for value in form.getlist("tags") if isinstance(value, str)]
            # A single field may carry the whole list as JSON or comma-separated text
            raw["tags"] = tags[0] if len(tags) == 1 else tags
            continue
        value = form.get(key)
        if not isinstance(value, UploadFile):
            raw[key] = value
    return raw


async def _receive_book(request: Request) -> Tuple[Dict[str, Any], Optional[str]]:
    """Read a JSON or multipart book body.

    Returns the raw fields and the filename of the stored cover, if one was
    uploaded. The caller owns the stored file from here on.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        async with request.form() as form:
            upload = extract_cover_upload(form)
            raw = _form_fields(form)
            filename = await save_cover_upload(upload) if upload else None
        return raw, filename

    try:
        raw = await request.json()
    except ValueError:
        raise ValidationFailed(["Request body must be valid JSON"])
    return raw, None


def _discard_upload(filename: Optional[str]) -> None:
    if filename:
        delete_uploaded_file(filename)


def get_google_books_service() -> GoogleBooksService:
    return GoogleBooksService()


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint with a quick database check."""
    db_ok = check_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
    }


# --- Auth ---
@app.post("/auth/register", status_code=201)
def register(payload: Dict[str, Any] = Body(...)):
    registration = validate_registration(payload)
    user = user_store.register(registration)
    return {
        "message": "User registered successfully",
        "token": user_store.issue_token(user),
        "user": user.to_dict(),
    }


@app.post("/auth/login")
def login(payload: Dict[str, Any] = Body(...)):
    credentials = validate_login(payload)
    user = user_store.authenticate(credentials.email, credentials.password)
    logger.info(f"User {user.id} logged in")
    return {
        "message": "Login successful",
        "token": user_store.issue_token(user),
        "user": user.to_dict(),
    }


@app.get("/auth/me")
def me(user: User = Depends(require_user)):
    return {"user": user.to_dict()}


@app.put("/auth/profile")
def update_profile(payload: Dict[str, Any] = Body(...), user: User = Depends(require_user)):
    changes = validate_profile_update(payload)
    updated = user_store.update_profile(user.id, changes)
    return {"message": "Profile updated successfully", "user": updated.to_dict()}


# --- Books ---
@app.post("/books", status_code=201)
async def create_book(request: Request, user: User = Depends(require_user)):
    """Create a book from JSON or from a multipart form with an optional cover."""
    raw, cover = await _receive_book(request)
    try:
        submission = validate_book_submission(raw)
        book = library.add_book(user.id, submission, cover_image=public_path(cover) if cover else None)
    except Exception:
        _discard_upload(cover)
        raise
    return {"message": "Book created successfully", "book": book.to_dict()}


@app.get("/books")
def list_books(user: User = Depends(require_user)):
    return [book.to_dict() for book in library.list_books(user.id)]


@app.get("/books/search")
def search_books(query: str = Query(""), user: User = Depends(require_user)):
    try:
        books = library.search_books(user.id, query)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [book.to_dict() for book in books]


@app.get("/books/search-external")
async def search_external_books(
    query: str = Query(""),
    user: Optional[User] = Depends(optional_user),
    service: GoogleBooksService = Depends(get_google_books_service),
):
    """Search Google Books. Public; a valid token only adds the user to the log line."""
    try:
        books = await service.search_books(query)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info(f"External search by {user.id if user else 'anonymous'} returned {len(books)} books")
    return {"books": [book.to_dict() for book in books]}


@app.get("/books/stats")
def book_stats(user: User = Depends(require_user)):
    return {"message": "Statistics retrieved successfully", "stats": library.get_statistics(user.id)}


@app.get("/books/genres")
def book_genres(user: User = Depends(require_user)):
    return {"message": "Genres retrieved successfully", "genres": library.distinct_genres(user.id)}


@app.get("/books/authors")
def book_authors(user: User = Depends(require_user)):
    return {"message": "Authors retrieved successfully", "authors": library.distinct_authors(user.id)}


@app.get("/books/{book_id}")
def get_book(book_id: str, user: User = Depends(require_user)):
    return library.get_book(user.id, book_id).to_dict()


@app.get("/books/{book_id}/similar")
def similar_books(book_id: str, limit: int = Query(5, ge=1, le=20), user: User = Depends(require_user)):
    return [book.to_dict() for book in library.find_similar_books(user.id, book_id, limit=limit)]


@app.put("/books/{book_id}")
async def update_book(book_id: str, request: Request, user: User = Depends(require_user)):
    raw, cover = await _receive_book(request)
    try:
        changes = validate_book_update(raw)
        book = library.update_book(user.id, book_id, changes, cover_image=public_path(cover) if cover else None)
    except Exception:
        _discard_upload(cover)
        raise
    return {"message": "Book updated successfully", "book": book.to_dict()}


@app.delete("/books/{book_id}")
def delete_book(book_id: str, user: User = Depends(require_user)):
    book = library.remove_book(user.id, book_id)
    return {
        "message": "Book deleted successfully",
        "deletedBook": {"id": book.id, "title": book.title, "author": book.author},
    }


# --- Admin ---
@app.get("/admin/users")
def list_users(admin: User = Depends(require_admin)):
    return [user.to_dict() for user in user_store.list_users()]


# Uploaded covers
app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")
