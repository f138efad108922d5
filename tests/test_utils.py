import pytest

from app.utils import (
    absolute_url,
    build_episode_slug,
    decode_link_url,
    decode_outbound_link,
    encode_image_url,
    encode_link_url,
    extract_years,
    format_compact_number,
    hash_password,
    is_valid_episode_slug,
    normalize_page_path,
    parse_page,
    slugify,
    total_pages,
    verify_password,
)


def test_slugify_basic():
    assert slugify("Late Night Thrills!") == "late-night-thrills"


def test_slugify_folds_accents_and_is_idempotent():
    assert slugify("Shōnen") == "shonen"
    assert slugify("  Slice of   Life ") == "slice-of-life"
    assert slugify(slugify("Sci-Fi & Fantasy")) == slugify("Sci-Fi & Fantasy")


def test_parse_page_falls_back_to_first_page():
    assert parse_page(None) == 1
    assert parse_page("abc") == 1
    assert parse_page("-3") == 1
    assert parse_page("0") == 1
    assert parse_page("4") == 4


def test_total_pages_rounds_up():
    assert total_pages(0, 20) == 0
    assert total_pages(21, 20) == 2


def test_encode_image_url_does_not_double_encode():
    assert encode_image_url("/images/one piece.jpg") == "/images/one%20piece.jpg"
    assert encode_image_url("/images/one%20piece.jpg") == "/images/one%20piece.jpg"
    assert encode_image_url(None) == "/images/default.jpg"
    assert (
        encode_image_url("https://cdn.test/a b.png?x=1") == "https://cdn.test/a%20b.png?x=1"
    )


def test_absolute_url_keeps_absolute_urls():
    assert absolute_url("https://site.test", "/home") == "https://site.test/home"
    assert absolute_url("https://site.test/", "home") == "https://site.test/home"
    assert absolute_url("https://site.test", "https://cdn.test/x.jpg") == "https://cdn.test/x.jpg"


def test_link_encoding_round_trip():
    url = "https://video.test/embed/ñ?id=1"
    encoded = encode_link_url(url)
    assert encoded != url
    assert decode_link_url(encoded) == url
    assert encode_link_url("") is None
    with pytest.raises(ValueError):
        decode_link_url("not base64!!")


@pytest.mark.parametrize(
    "target",
    ["javascript:alert(1)", "JavaScript:alert(1)", "data:text/html,hi", "//evil.test/x", "https://"],
)
def test_outbound_links_must_be_absolute_http(target):
    with pytest.raises(ValueError):
        decode_outbound_link(encode_link_url(target))


def test_outbound_link_accepts_http_and_https():
    assert decode_outbound_link(encode_link_url("https://dl.test/1")) == "https://dl.test/1"
    assert decode_outbound_link(encode_link_url("HTTP://dl.test")) == "HTTP://dl.test"
    with pytest.raises(ValueError):
        decode_outbound_link("")


def test_extract_years_unique_newest_first():
    assert extract_years(["Oct 20, 1999", "2023", "Spring 2023", "unknown", ""]) == [
        "2023",
        "1999",
    ]


def test_episode_slug_helpers():
    slug = build_episode_slug("one-piece", 3)
    assert slug == "/one-piece/3"
    assert is_valid_episode_slug(slug)
    assert not is_valid_episode_slug("one-piece/3")
    assert not is_valid_episode_slug("/one-piece/3/extra")


def test_normalize_page_path_strips_host_and_trailing_slash():
    assert normalize_page_path("https://site.test/anime/one%20piece/") == "/anime/one piece"
    assert normalize_page_path("https://site.test") == "/"


def test_format_compact_number():
    assert format_compact_number(999) == "999"
    assert format_compact_number(1200) == "1.2K"
    assert format_compact_number(3_000_000) == "3M"
    assert format_compact_number(None) == "0"


def test_password_hash_round_trip():
    encoded = hash_password("hunter22")
    assert encoded.startswith("pbkdf2_sha256$")
    assert verify_password("hunter22", encoded)
    assert not verify_password("wrong", encoded)
    assert not verify_password("hunter22", "garbage")
