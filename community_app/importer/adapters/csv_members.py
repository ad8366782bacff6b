"""CSV adapter for member imports.

Reads a spreadsheet export into tagged rows (``HeaderedRow`` when the file has
a header line, ``PositionalRow`` when it does not) and resolves each row into a
single :class:`NormalizedRecord` shape using the member contract. Parsing is
tolerant first. When the tolerant pass stops on a malformed line or yields
suspiciously few records, the file is re-read with a sniffed dialect and a
strict parser whose errors are fatal.
"""

from __future__ import annotations

import csv
import io
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence, Union

from community_app.importer.contracts import (
    POSITIONAL_WIDTH,
    FieldSpec,
    get_member_field_specs,
    get_member_positional_layout,
)
from community_app.importer.normalize import normalize_header, normalize_text, split_emails

logger = logging.getLogger(__name__)

TOLERANT_PARSER = "tolerant"
STRICT_PARSER = "strict"
_SNIFF_DELIMITERS = ",;\t|"


def _widen_field_size_limit() -> None:
    # Long description cells exceed the default 128 KiB field limit.
    limit = sys.maxsize
    while True:
        try:
            csv.field_size_limit(limit)
            return
        except OverflowError:
            limit //= 10


_widen_field_size_limit()


class CSVAdapterError(Exception):
    """Base exception for CSV adapter failures."""


class SourceFileError(CSVAdapterError):
    """Raised when the input file cannot be read or parsed at all."""

    def __init__(self, path: str | Path | None, message: str) -> None:
        prefix = f"{path}: " if path else ""
        super().__init__(f"{prefix}{message}")
        self.path = str(path) if path else None


@dataclass(frozen=True)
class HeaderedRow:
    """A data row keyed by normalized header name."""

    line_number: int
    values: Mapping[str, str]


@dataclass(frozen=True)
class PositionalRow:
    """A data row from a header-less file, padded to the positional layout width."""

    line_number: int
    values: tuple[str, ...]


SourceRow = Union[HeaderedRow, PositionalRow]


@dataclass(frozen=True)
class NormalizedRecord:
    line_number: int
    title: str = ""
    country: str = ""
    region: str = ""
    website: str = ""
    emails: tuple[str, ...] = ()
    date_joined: str = ""
    focalpoint: str = ""
    description: str = ""
    description2: str = ""


@dataclass(frozen=True)
class ParsedSource:
    header: tuple[str, ...]
    rows: tuple[SourceRow, ...]
    parser: str
    approx_lines: int
    rows_skipped_blank: int = 0

    @property
    def has_headers(self) -> bool:
        return bool(self.header)


@dataclass
class _ParseAttempt:
    records: list[tuple[int, list[str]]] = field(default_factory=list)
    skipped_blank: int = 0
    error: str | None = None


def _is_blank(cells: Sequence[str]) -> bool:
    return all(not (cell or "").strip() for cell in cells)


def _tolerant_records(text: str, delimiter: str) -> _ParseAttempt:
    attempt = _ParseAttempt()
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=False)
    try:
        for cells in reader:
            if _is_blank(cells):
                attempt.skipped_blank += 1
                continue
            attempt.records.append((reader.line_num, cells))
    except csv.Error as exc:
        logger.warning("Tolerant CSV parse stopped at line %s: %s", reader.line_num, exc)
        attempt.error = f"line {reader.line_num}: {exc}"
    return attempt


def _strict_records(text: str, delimiter: str, path: str | Path | None) -> _ParseAttempt:
    sample = text[:8192]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=_SNIFF_DELIMITERS)
    except csv.Error:
        dialect = None

    attempt = _ParseAttempt()
    if dialect is not None:
        reader = csv.reader(io.StringIO(text, newline=""), dialect=dialect, strict=True)
    else:
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    try:
        for cells in reader:
            trimmed = [cell.strip() for cell in cells]
            if _is_blank(trimmed):
                attempt.skipped_blank += 1
                continue
            attempt.records.append((reader.line_num, trimmed))
    except csv.Error as exc:
        raise SourceFileError(path, f"could not parse CSV near line {reader.line_num}: {exc}") from exc
    return attempt


def _approx_line_count(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip())


def _build_rows(
    attempt: _ParseAttempt, *, has_headers: bool
) -> tuple[tuple[str, ...], tuple[SourceRow, ...]]:
    records = attempt.records
    if not has_headers:
        rows = tuple(_positional_row(line, cells) for line, cells in records)
        return (), rows

    if not records:
        return (), ()

    _, header_cells = records[0]
    header = tuple(normalize_header(cell) for cell in header_cells)
    rows = tuple(_headered_row(line, header, cells) for line, cells in records[1:])
    return header, rows


def _positional_row(line_number: int, cells: Sequence[str]) -> PositionalRow:
    padded = [normalize_text(cell) for cell in cells]
    if len(padded) < POSITIONAL_WIDTH:
        padded.extend([""] * (POSITIONAL_WIDTH - len(padded)))
    return PositionalRow(line_number=line_number, values=tuple(padded))


def _headered_row(line_number: int, header: Sequence[str], cells: Sequence[str]) -> HeaderedRow:
    values: dict[str, str] = {}
    for index, name in enumerate(header):
        if not name:
            continue
        value = cells[index] if index < len(cells) else ""
        # Duplicate headers keep the first non-empty cell.
        if values.get(name):
            continue
        values[name] = value or ""
    return HeaderedRow(line_number=line_number, values=values)


def parse_source_text(
    text: str,
    *,
    delimiter: str = ",",
    has_headers: bool = True,
    path: str | Path | None = None,
) -> ParsedSource:
    """Parse CSV text, retrying with a strict sniffed parser when the tolerant pass looks wrong."""

    text = text.lstrip("\ufeff")
    approx_lines = _approx_line_count(text)
    attempt = _tolerant_records(text, delimiter)
    parser = TOLERANT_PARSER

    data_records = len(attempt.records) - (1 if has_headers and attempt.records else 0)
    threshold = min(approx_lines * 0.5, 10)
    if attempt.error is not None:
        logger.info("Tolerant parse failed at %s; retrying with strict parser", attempt.error)
        attempt = _strict_records(text, delimiter, path)
        parser = STRICT_PARSER
    elif data_records < threshold:
        logger.info(
            "Tolerant parse produced %s record(s) for ~%s line(s); retrying with strict parser",
            data_records,
            approx_lines,
        )
        attempt = _strict_records(text, delimiter, path)
        parser = STRICT_PARSER

    header, rows = _build_rows(attempt, has_headers=has_headers)
    return ParsedSource(
        header=header,
        rows=rows,
        parser=parser,
        approx_lines=approx_lines,
        rows_skipped_blank=attempt.skipped_blank,
    )


def read_source_rows(path: str | Path, *, delimiter: str = ",", has_headers: bool = True) -> ParsedSource:
    """Read and parse a CSV file from disk."""

    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise SourceFileError(path, f"cannot read file: {exc.strerror or exc}") from exc

    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("%s is not valid UTF-8; decoding as latin-1", path)
        text = raw.decode("latin-1")

    return parse_source_text(text, delimiter=delimiter, has_headers=has_headers, path=path)


def _split_headers(spec: str) -> tuple[str, ...]:
    return tuple(normalize_header(part) for part in spec.split("|") if part.strip())


def _pick(values: Mapping[str, str], headers: Iterable[str]) -> str:
    for header in headers:
        value = normalize_text(values.get(header))
        if value:
            return value
    return ""


def _pick_merged(values: Mapping[str, str], headers: Iterable[str]) -> str:
    parts: list[str] = []
    for header in headers:
        value = normalize_text(values.get(header))
        if value and value not in parts:
            parts.append(value)
    return "\n".join(parts)


def _resolve_field(values: Mapping[str, str], spec: FieldSpec, header_map: Mapping[str, str]) -> str:
    user_spec = header_map.get(spec.name)
    if user_spec:
        headers = _split_headers(user_spec)
        value = _pick_merged(values, headers) if len(headers) > 1 else _pick(values, headers)
        if value:
            return value
    if spec.merge:
        return _pick_merged(values, spec.headers())
    return _pick(values, spec.headers())


def _resolve_values(row: SourceRow, header_map: Mapping[str, str]) -> dict[str, str]:
    if isinstance(row, PositionalRow):
        layout = get_member_positional_layout()
        return {name: normalize_text(row.values[index]) for name, index in layout.items()}

    return {spec.name: _resolve_field(row.values, spec, header_map) for spec in get_member_field_specs()}


def resolve_record(row: SourceRow, header_map: Mapping[str, str] | None = None) -> NormalizedRecord:
    """
    Resolve a tagged source row into a :class:`NormalizedRecord`.

    Never raises for missing optional fields; absent values are empty strings.
    """

    fields = _resolve_values(row, header_map or {})
    return NormalizedRecord(
        line_number=row.line_number,
        title=fields.get("title", ""),
        country=fields.get("country", ""),
        region=fields.get("region", ""),
        website=fields.get("website", ""),
        emails=tuple(split_emails(fields.get("emails", ""))),
        date_joined=fields.get("dateJoined", ""),
        focalpoint=fields.get("focalpoint", ""),
        description=fields.get("description", ""),
        description2=fields.get("description2", ""),
    )
