import pytest

from community_app.importer.normalize import (
    clean_key,
    fix_url,
    letters_only,
    merge_descriptions,
    normalize_header,
    normalize_key,
    normalize_text,
    region_key,
    split_emails,
    to_iso_date,
)


def test_normalize_text_and_key():
    assert normalize_text(None) == ""
    assert normalize_text("  Test University  ") == "Test University"
    assert normalize_key("  KENYA ") == "kenya"


def test_clean_key_strips_diacritics_and_qualifiers():
    assert clean_key("Côte d'Ivoire") == "cotedivoire"
    assert clean_key("Cote dIvoire") == "cotedivoire"
    assert clean_key("Korea (Republic of)") == "korea"
    assert clean_key("Trinidad & Tobago") == "trinidadandtobago"


def test_normalize_header_drops_bom_and_collapses_whitespace():
    assert normalize_header("\ufeffTitle") == "title"
    assert normalize_header("  Date    Joined ") == "date joined"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("", ""),
        ("testu.edu", "https://testu.edu"),
        ("http://testu.edu", "http://testu.edu"),
        ("HTTPS://TestU.edu", "HTTPS://TestU.edu"),
    ],
)
def test_fix_url(raw, expected):
    assert fix_url(raw) == expected


def test_split_emails_handles_mixed_separators():
    assert split_emails("a@x.org; b@x.org, c@x.org  a@x.org") == ["a@x.org", "b@x.org", "c@x.org"]


def test_split_emails_drops_tokens_without_at_sign():
    assert split_emails("n/a, contact@x.org") == ["contact@x.org"]
    assert split_emails(None) == []
    assert split_emails(["one@x.org", " two@x.org "]) == ["one@x.org", "two@x.org"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-05", "2024-03-05"),
        ("3/5/2024", "2024-03-05"),
        ("25/12/2023", "2023-12-25"),
        ("12-25-2023", "2023-12-25"),
        ("1/2/24", "2024-01-02"),
        ("2024-03-05T10:00:00Z", "2024-03-05"),
        ("5 March 2024", "2024-03-05"),
        ("March 5, 2024", "2024-03-05"),
    ],
)
def test_to_iso_date_accepts_common_formats(raw, expected):
    assert to_iso_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "soon", "13/13/2024", "2/30/2024"])
def test_to_iso_date_returns_none_for_unparseable(raw):
    assert to_iso_date(raw) is None


def test_merge_descriptions_dedupes_case_insensitively():
    assert merge_descriptions("Open science", "open science", "Teaching", None) == "Open science\n\nTeaching"
    assert merge_descriptions("", None) == ""


def test_region_key_and_letters_only():
    assert region_key("Latin America & the Caribbean") == "latin america and the caribbean"
    assert region_key("Asia–Pacific") == "asia-pacific"
    assert letters_only("Asia-Pacific") == "asiapacific"
