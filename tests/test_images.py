"""Uploaded image storage tests."""

from __future__ import annotations

import pytest

from app.services.images import ImageStore


def test_save_uses_slug_and_extension(tmp_path) -> None:
    store = ImageStore(tmp_path / "images", max_bytes=1024)

    url = store.save("one-piece", "Cover.PNG", "image/png", b"\x89PNG data")

    assert url == "/images/one-piece.png"
    assert (tmp_path / "images" / "one-piece.png").read_bytes() == b"\x89PNG data"
    assert store.resolve("one-piece.png") == tmp_path / "images" / "one-piece.png"


def test_save_falls_back_to_content_type_extension(tmp_path) -> None:
    store = ImageStore(tmp_path)
    assert store.save("frieren", "cover", "image/webp", b"data") == "/images/frieren.webp"


@pytest.mark.parametrize(
    ("content_type", "data", "message"),
    [
        ("image/gif", b"GIF89a", "Only"),
        ("image/jpeg", b"", "empty"),
        ("image/jpeg", b"x" * 2048, "exceeds"),
    ],
)
def test_save_rejects_invalid_uploads(tmp_path, content_type, data, message) -> None:
    store = ImageStore(tmp_path, max_bytes=1024)
    with pytest.raises(ValueError, match=message):
        store.save("slug", "file.jpg", content_type, data)


def test_resolve_blocks_traversal(tmp_path) -> None:
    store = ImageStore(tmp_path / "images")
    store.ensure_directory()
    (tmp_path / "secret.txt").write_text("nope")

    assert store.resolve("../secret.txt") is None
    assert store.resolve(".hidden") is None
    assert store.resolve("missing.jpg") is None


def test_delete_for_url_keeps_default_images(tmp_path) -> None:
    store = ImageStore(tmp_path)
    (tmp_path / "default.jpg").write_bytes(b"default")
    store.save("naruto", "n.jpg", "image/jpeg", b"data")

    assert store.delete_for_url("/images/default.jpg") is False
    assert (tmp_path / "default.jpg").exists()
    assert store.delete_for_url("https://cdn.test/naruto.jpg") is False
    assert store.delete_for_url("/images/naruto.jpg") is True
    assert not (tmp_path / "naruto.jpg").exists()
    assert store.delete_for_url("/images/naruto.jpg") is False
