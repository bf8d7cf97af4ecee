"""Validation of client submissions.

Every mutating request body passes through one of the models below before any
domain logic runs. Multipart forms deliver everything as strings, so the
models coerce numbers, parse tag lists and treat the placeholder strings a
browser form sends for blank inputs as missing values. Unknown fields are
dropped. Failures are collected into a ``ValidationFailed`` carrying one
human-readable message per problem.
"""
import json
import re
from datetime import date
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

BookStatus = Literal["To Read", "Reading", "Read"]
BookFormat = Literal["Physical", "Ebook", "Audiobook"]
Theme = Literal["light", "dark"]

MAX_TAGS = 10
MAX_TAG_LENGTH = 30
# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72

ISBN_PATTERN = re.compile(r"^[0-9-]{10,17}$")
EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$")

_BLANK_MARKERS = {"", "null", "undefined"}


class ValidationFailed(Exception):
    """Raised when a submission does not pass validation."""

    def __init__(self, details: List[str], message: str = "Validation error") -> None:
        super().__init__(message)
        self.message = message
        self.details = details


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in _BLANK_MARKERS)


def normalize_isbn(raw: str) -> str:
    return raw.replace("-", "").strip()


def _check_isbn(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    digits = normalize_isbn(value)
    if not ISBN_PATTERN.match(value) or len(digits) not in (10, 13) or not digits.isdigit():
        raise ValueError("Please enter a valid ISBN-10 or ISBN-13")
    return digits


def _parse_tags(value: Any) -> Any:
    if _is_blank(value):
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except ValueError:
                raise ValueError("tags must be a list of strings")
        else:
            value = text.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError("tags must be a list of strings")
    tags = []
    for tag in value:
        if not isinstance(tag, str):
            raise ValueError("tags must be a list of strings")
        tag = tag.strip()
        if tag:
            tags.append(tag)
    return tags


class SeriesModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=100)
    number: Optional[int] = Field(default=None, ge=1)

    @field_validator("name", "number", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        return None if _is_blank(v) else v


class BookUpdate(BaseModel):
    """Fields a client may change on an existing book. All optional."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    author: Optional[str] = Field(default=None, min_length=1, max_length=100)
    genre: Optional[str] = Field(default=None, max_length=50)
    status: Optional[BookStatus] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    isbn: Optional[str] = None
    published_date: Optional[str] = Field(default=None, alias="publishedDate")
    page_count: Optional[int] = Field(default=None, ge=1, le=50000, alias="pageCount")
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = Field(default=None, max_length=MAX_TAGS)
    series: Optional[SeriesModel] = None
    language: Optional[str] = Field(default=None, max_length=50)
    format: Optional[BookFormat] = None
    purchase_price: Optional[float] = Field(default=None, ge=0, alias="purchasePrice")
    purchase_date: Optional[date] = Field(default=None, alias="purchaseDate")
    location: Optional[str] = Field(default=None, max_length=100)

    @field_validator("title", "author")
    @classmethod
    def _required_text(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("cannot be empty")
        return v

    @field_validator("genre", "description", "published_date", "notes", "language", "location")
    @classmethod
    def _empty_text_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("status", "page_count", "rating", "format", "purchase_price", "purchase_date",
                     mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        return None if _is_blank(v) else v

    @field_validator("series", mode="before")
    @classmethod
    def _parse_series(cls, v: Any) -> Any:
        if _is_blank(v):
            return None
        if isinstance(v, str):
            try:
                return json.loads(v)
            except ValueError:
                raise ValueError("series must be an object with name and number")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> Any:
        return _parse_tags(v)

    @field_validator("tags")
    @classmethod
    def _check_tag_length(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        for tag in v or []:
            if len(tag) > MAX_TAG_LENGTH:
                raise ValueError(f"Tag cannot exceed {MAX_TAG_LENGTH} characters")
        return v

    @field_validator("isbn")
    @classmethod
    def _validate_isbn(cls, v: Optional[str]) -> Optional[str]:
        return _check_isbn(v)


class BookSubmission(BookUpdate):
    """A complete new book. Title and author are required; status defaults to "To Read"."""

    title: str = Field(min_length=1, max_length=200)
    author: str = Field(min_length=1, max_length=100)
    status: BookStatus = "To Read"
    tags: List[str] = Field(default_factory=list, max_length=MAX_TAGS)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: Any) -> Any:
        return "To Read" if _is_blank(v) else v

    def to_book_fields(self) -> Dict[str, Any]:
        """Keyword arguments for ``Book``."""
        return self.model_dump(mode="json")


class RegistrationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    username: str = Field(min_length=3, max_length=50)
    email: str
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1, max_length=50, alias="firstName")
    last_name: str = Field(min_length=1, max_length=50, alias="lastName")

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def _password_fits_hash(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
        return v


class LoginPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    theme: Optional[Theme] = None
    default_book_status: Optional[BookStatus] = Field(default=None, alias="defaultBookStatus")


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, populate_by_name=True)

    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50, alias="firstName")
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50, alias="lastName")
    avatar: Optional[str] = None
    preferences: Optional[PreferencesUpdate] = None
    password: Optional[str] = Field(default=None, min_length=6)

    @field_validator("password")
    @classmethod
    def _password_fits_hash(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
        return v


def _format_errors(exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return messages


def _validate(model: Type[BaseModel], raw: Any) -> BaseModel:
    if not isinstance(raw, dict):
        raise ValidationFailed(["Request body must be an object"])
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ValidationFailed(_format_errors(e)) from e


def validate_book_submission(raw: Dict[str, Any], partial: bool = False) -> BookUpdate:
    """Validate a book body.

    A complete book is required for creation. With ``partial`` every field is
    optional, as for an update.
    """
    return _validate(BookUpdate if partial else BookSubmission, raw)


def validate_book_update(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a partial update; returns only the fields the client sent."""
    update = validate_book_submission(raw, partial=True)
    changes = update.model_dump(mode="json", exclude_unset=True)
    # A blank status or format means "leave as is", never "clear"
    for key in ("status", "format"):
        if key in changes and changes[key] is None:
            del changes[key]
    return changes


def validate_registration(raw: Dict[str, Any]) -> RegistrationPayload:
    return _validate(RegistrationPayload, raw)


def validate_login(raw: Dict[str, Any]) -> LoginPayload:
    return _validate(LoginPayload, raw)


def validate_profile_update(raw: Dict[str, Any]) -> Dict[str, Any]:
    update = _validate(ProfileUpdate, raw)
    return update.model_dump(exclude_unset=True)
