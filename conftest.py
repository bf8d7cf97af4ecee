import importlib

import pytest
from fastapi.testclient import TestClient

from library_tracker import database
from library_tracker.config import settings
from library_tracker.library import Library
from library_tracker.users import UserStore
from library_tracker.validators import validate_registration


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    # Cheap hashing and no real Google Books key for every test
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "google_books_api_key", None)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))


@pytest.fixture(autouse=True)
def db_file(tmp_path, monkeypatch):
    # Each test gets its own database file
    db_file = str(tmp_path / "library_tracker.db")
    monkeypatch.setattr(database, "DATABASE_FILE", db_file)
    database.initialize_database()
    return db_file


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir(exist_ok=True)
    return path


@pytest.fixture
def user_store():
    return UserStore()


@pytest.fixture
def lib(user_store):
    library = Library()
    library.add_post_commit_callback(user_store.recompute_stats)
    return library


@pytest.fixture
def make_user(user_store):
    def _make(username="alice", email=None, password="secret123", first_name="Alice", last_name="Reader"):
        payload = validate_registration({
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
            "firstName": first_name,
            "lastName": last_name,
        })
        return user_store.register(payload)
    return _make


@pytest.fixture
def client():
    from library_tracker import api as api_module
    # Reload so the uploads mount points at this test's directory
    importlib.reload(api_module)
    with TestClient(api_module.app) as test_client:
        yield test_client
