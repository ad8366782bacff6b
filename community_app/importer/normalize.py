"""Pure normalization helpers shared by the member importer and the web forms.

Every function here is total: bad input produces an empty value or ``None``
rather than an exception, so a single malformed cell can never abort a run.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from typing import Iterable

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")
_URL_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_EMAIL_SPLIT_RE = re.compile(r"[,\s;]+")
_PARENTHETICAL_RE = re.compile(r"\(.*?\)")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_WHITESPACE_RE = re.compile(r"\s+")

# Formats tried after the numeric forms, in order.
_FALLBACK_DATE_FORMATS = (
    "%Y/%m/%d",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d.%m.%Y",
)


def normalize_text(value: object | None) -> str:
    """Trim a value to a string; ``None`` becomes the empty string."""

    if value is None:
        return ""
    return str(value).strip()


def normalize_key(value: object | None) -> str:
    """Case-insensitive comparison key."""

    return normalize_text(value).lower()


def strip_diacritics(value: object | None) -> str:
    decomposed = unicodedata.normalize("NFD", normalize_text(value))
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def clean_key(value: object | None) -> str:
    """
    Aggressive matching key used for fuzzy country lookups.

    ``"Côte d'Ivoire"`` and ``"Cote dIvoire"`` both become ``"cotedivoire"``;
    parenthetical qualifiers are dropped and ``&`` reads as ``and``.
    """

    token = strip_diacritics(value).lower()
    token = _PARENTHETICAL_RE.sub("", token)
    token = token.replace("&", "and")
    return _NON_ALNUM_RE.sub("", token)


def normalize_header(header: object | None) -> str:
    """Normalize a CSV header for comparison (trim, lower-case, collapse whitespace)."""

    token = normalize_text(normalize_text(header).lstrip("\ufeff"))
    return _WHITESPACE_RE.sub(" ", token).lower()


def fix_url(value: object | None) -> str:
    url = normalize_text(value)
    if not url:
        return ""
    if _URL_SCHEME_RE.match(url):
        return url
    return f"https://{url}"


def split_emails(value: str | Iterable[str] | None) -> list[str]:
    """
    Split one or more email cells into a de-duplicated list.

    Separators are commas, semicolons and whitespace. Tokens without ``@`` are
    dropped and the first occurrence of each address wins.
    """

    if value is None:
        return []
    if isinstance(value, str):
        joined = value
    else:
        joined = ",".join(normalize_text(item) for item in value)

    emails: list[str] = []
    seen: set[str] = set()
    for token in _EMAIL_SPLIT_RE.split(joined):
        token = token.strip()
        if "@" not in token or token in seen:
            continue
        seen.add(token)
        emails.append(token)
    return emails


def to_iso_date(value: object | None) -> str | None:
    """
    Parse a heterogeneous date string to ``YYYY-MM-DD``.

    ``YYYY-MM-DD`` passes through untouched. ``A/B/Y`` and ``A-B-Y`` read as
    month/day unless the first component is above 12, in which case the two
    are swapped. Two-digit years land in the 2000s. Returns ``None`` when
    nothing matches.
    """

    text = normalize_text(value)
    if not text:
        return None

    if _ISO_DATE_RE.match(text):
        return text

    match = _NUMERIC_DATE_RE.match(text)
    if match:
        first, second, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
        month, day = (second, first) if first > 12 else (first, second)
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    return _parse_generic_date(text)


def _parse_generic_date(text: str) -> str | None:
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate).date().isoformat()
    except ValueError:
        pass

    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def merge_descriptions(*values: object | None) -> str:
    """
    Combine description columns, treating case-insensitive repeats as one.

    Distinct values are separated by a blank line.
    """

    parts: list[str] = []
    seen: set[str] = set()
    for value in values:
        text = normalize_text(value)
        if not text:
            continue
        key = text.lower()
        if key in seen:
            continue
        seen.add(key)
        parts.append(text)
    return "\n\n".join(parts)


_DASHES_RE = re.compile(r"[\u2010-\u2015]")
_AMPERSAND_RE = re.compile(r"\s*&\s*")
_NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")


def region_key(value: object | None) -> str:
    """Lower-case region key with ``&`` spelled out and unicode dashes folded to ``-``."""

    token = normalize_key(value)
    token = _AMPERSAND_RE.sub(" and ", token)
    token = _DASHES_RE.sub("-", token)
    return _WHITESPACE_RE.sub(" ", token).strip()


def letters_only(value: object | None) -> str:
    return _NON_ALNUM_RUN_RE.sub("", strip_diacritics(region_key(value)))
