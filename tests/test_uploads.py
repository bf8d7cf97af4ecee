import asyncio
import io
import re

import pytest
from PIL import Image
from starlette.datastructures import FormData, Headers, UploadFile

from library_tracker.config import settings
from library_tracker.uploads import (
    PayloadTooLarge,
    UnsupportedMediaType,
    UploadError,
    delete_uploaded_file,
    extract_cover_upload,
    generate_filename,
    get_upload_dir,
    normalize_cover,
    public_path,
    save_cover_upload,
)


def _png_bytes(size=(800, 1200), color=(200, 30, 30)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def _upload(data, filename="cover.png", content_type="image/png"):
    return UploadFile(io.BytesIO(data), filename=filename, headers=Headers({"content-type": content_type}))


def test_generate_filename():
    name = generate_filename("My Cover.PNG")
    assert re.fullmatch(r"book-cover-\d+-\d+\.png", name)
    assert public_path(name) == f"/uploads/{name}"


def test_upload_dir_created_on_demand(tmp_path, monkeypatch):
    target = tmp_path / "nested" / "covers"
    monkeypatch.setattr(settings, "upload_dir", str(target))
    assert get_upload_dir() == target
    assert target.is_dir()
    # Idempotent
    assert get_upload_dir() == target


def test_normalize_shrinks_to_cover_box(upload_dir):
    path = upload_dir / "big.png"
    path.write_bytes(_png_bytes((1600, 1200)))

    assert normalize_cover(path)
    with Image.open(path) as image:
        assert image.format == "JPEG"
        assert image.width <= 400
        assert image.height <= 600
        assert image.size == (400, 300)
    assert not (upload_dir / "optimized-big.png").exists()


def test_normalize_never_enlarges(upload_dir):
    path = upload_dir / "small.png"
    path.write_bytes(_png_bytes((100, 150)))
    assert normalize_cover(path)
    with Image.open(path) as image:
        assert image.size == (100, 150)


def test_normalize_failure_keeps_original(upload_dir):
    path = upload_dir / "broken.jpg"
    path.write_bytes(b"definitely not an image")
    assert normalize_cover(path) is False
    assert path.read_bytes() == b"definitely not an image"
    assert not (upload_dir / "optimized-broken.jpg").exists()


def test_save_cover_upload(upload_dir):
    filename = asyncio.run(save_cover_upload(_upload(_png_bytes())))
    path = upload_dir / filename
    assert path.exists()
    with Image.open(path) as image:
        assert image.size == (400, 600)


def test_save_rejects_non_image(upload_dir):
    with pytest.raises(UnsupportedMediaType):
        asyncio.run(save_cover_upload(_upload(b"hello", filename="notes.txt", content_type="text/plain")))
    assert list(upload_dir.iterdir()) == []


def test_save_rejects_oversized_stream(upload_dir, monkeypatch):
    monkeypatch.setattr(settings, "max_file_size", 1024)
    with pytest.raises(PayloadTooLarge) as exc_info:
        asyncio.run(save_cover_upload(_upload(b"\0" * 4096)))
    assert exc_info.value.status_code == 413
    assert list(upload_dir.iterdir()) == []


def test_extract_cover_upload():
    cover = _upload(b"x")
    assert extract_cover_upload(FormData([("title", "Dune"), ("coverImage", cover)])) is cover
    assert extract_cover_upload(FormData([("title", "Dune")])) is None


def test_extract_rejects_other_file_fields():
    with pytest.raises(UploadError, match="Unexpected file field"):
        extract_cover_upload(FormData([("avatar", _upload(b"x"))]))
    with pytest.raises(UploadError, match="Too many files"):
        extract_cover_upload(FormData([("coverImage", _upload(b"x")), ("coverImage", _upload(b"y"))]))


def test_delete_uploaded_file(upload_dir):
    (upload_dir / "a.jpg").write_bytes(b"a")
    (upload_dir / "b.jpg").write_bytes(b"b")

    assert delete_uploaded_file("a.jpg")
    assert delete_uploaded_file("/uploads/b.jpg")
    assert not delete_uploaded_file("/uploads/b.jpg")
    assert not delete_uploaded_file(None)
    assert list(upload_dir.iterdir()) == []


def test_delete_stays_inside_upload_dir(upload_dir, tmp_path):
    outside = tmp_path / "secret.txt"
    outside.write_text("keep me")
    assert not delete_uploaded_file("../secret.txt")
    assert outside.exists()
