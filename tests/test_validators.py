import pytest

from library_tracker.validators import (
    ValidationFailed,
    validate_book_submission,
    validate_book_update,
    validate_login,
    validate_profile_update,
    validate_registration,
)


def test_submission_defaults_status():
    submission = validate_book_submission({"title": "Dune", "author": "Frank Herbert"})
    assert submission.status == "To Read"
    assert submission.tags == []


def test_submission_requires_title_and_author():
    with pytest.raises(ValidationFailed) as exc_info:
        validate_book_submission({"genre": "Science Fiction"})
    details = " ".join(exc_info.value.details)
    assert "title" in details
    assert "author" in details


def test_submission_rejects_unknown_status():
    with pytest.raises(ValidationFailed):
        validate_book_submission({"title": "Dune", "author": "Frank Herbert", "status": "Abandoned"})


def test_submission_coerces_form_strings():
    submission = validate_book_submission({
        "title": "Dune",
        "author": "Frank Herbert",
        "status": "",
        "pageCount": "412",
        "rating": "undefined",
        "purchasePrice": "9.99",
        "tags": '["classic", "sf"]',
        "series": '{"name": "Dune Chronicles", "number": "1"}',
    })
    assert submission.status == "To Read"
    assert submission.page_count == 412
    assert submission.rating is None
    assert submission.purchase_price == 9.99
    assert submission.tags == ["classic", "sf"]
    assert submission.series.number == 1


def test_comma_separated_tags():
    submission = validate_book_submission({"title": "Dune", "author": "Frank Herbert", "tags": "sf, classic ,"})
    assert submission.tags == ["sf", "classic"]


def test_tag_limits():
    with pytest.raises(ValidationFailed):
        validate_book_submission({"title": "T", "author": "A", "tags": [f"t{i}" for i in range(11)]})
    with pytest.raises(ValidationFailed) as exc_info:
        validate_book_submission({"title": "T", "author": "A", "tags": ["x" * 31]})
    assert any("Tag cannot exceed 30 characters" in detail for detail in exc_info.value.details)


@pytest.mark.parametrize("isbn", ["978-0-441-17271-9", "0441172717", "9780441172719"])
def test_valid_isbn(isbn):
    assert validate_book_submission({"title": "T", "author": "A", "isbn": isbn}).isbn == isbn.replace("-", "")


@pytest.mark.parametrize("isbn", ["12345", "97804411727190", "abcdefghij"])
def test_invalid_isbn(isbn):
    with pytest.raises(ValidationFailed) as exc_info:
        validate_book_submission({"title": "T", "author": "A", "isbn": isbn})
    assert any("ISBN" in detail for detail in exc_info.value.details)


def test_rating_bounds():
    with pytest.raises(ValidationFailed):
        validate_book_submission({"title": "T", "author": "A", "rating": 6})
    with pytest.raises(ValidationFailed):
        validate_book_submission({"title": "T", "author": "A", "rating": 0})


def test_unknown_fields_are_dropped():
    submission = validate_book_submission({"title": "T", "author": "A", "user": "someone-else", "id": "x"})
    assert "user" not in submission.to_book_fields()
    assert "id" not in submission.to_book_fields()


def test_body_must_be_an_object():
    with pytest.raises(ValidationFailed):
        validate_book_submission(["Dune"])


def test_partial_submission_needs_no_title():
    update = validate_book_submission({"rating": "4"}, partial=True)
    assert update.title is None
    assert update.rating == 4


def test_update_returns_only_sent_fields():
    changes = validate_book_update({"status": "Read", "rating": "5"})
    assert changes == {"status": "Read", "rating": 5}


def test_update_ignores_blank_status():
    assert validate_book_update({"status": "", "notes": "great"}) == {"notes": "great"}


def test_update_rejects_empty_title():
    with pytest.raises(ValidationFailed):
        validate_book_update({"title": ""})


def test_registration_normalizes_email():
    payload = validate_registration({
        "username": "alice",
        "email": "  Alice@Example.COM ",
        "password": "secret123",
        "firstName": "Alice",
        "lastName": "Reader",
    })
    assert payload.email == "alice@example.com"
    assert payload.first_name == "Alice"


@pytest.mark.parametrize("overrides", [
    {"username": "al"},
    {"email": "not-an-email"},
    {"password": "short"},
    {"password": "x" * 73},
    {"firstName": ""},
])
def test_registration_rejects_bad_fields(overrides):
    raw = {
        "username": "alice",
        "email": "alice@example.com",
        "password": "secret123",
        "firstName": "Alice",
        "lastName": "Reader",
    }
    raw.update(overrides)
    with pytest.raises(ValidationFailed):
        validate_registration(raw)


def test_login_requires_both_fields():
    with pytest.raises(ValidationFailed):
        validate_login({"email": "alice@example.com"})


def test_profile_update_keeps_only_sent_preferences():
    changes = validate_profile_update({"preferences": {"theme": "dark"}})
    assert changes == {"preferences": {"theme": "dark"}}


def test_json_tag_list_is_kept_as_sent():
    submission = validate_book_submission({"title": "T", "author": "A", "tags": ["science, fiction"]})
    assert submission.tags == ["science, fiction"]
    submission = validate_book_submission({"title": "T", "author": "A", "tags": ["[draft]"]})
    assert submission.tags == ["[draft]"]
