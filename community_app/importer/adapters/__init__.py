"""Source adapters that turn raw input files into normalized member records."""

from .csv_members import (
    STRICT_PARSER,
    TOLERANT_PARSER,
    CSVAdapterError,
    HeaderedRow,
    NormalizedRecord,
    ParsedSource,
    PositionalRow,
    SourceFileError,
    SourceRow,
    parse_source_text,
    read_source_rows,
    resolve_record,
)

__all__ = [
    "CSVAdapterError",
    "SourceFileError",
    "HeaderedRow",
    "PositionalRow",
    "SourceRow",
    "NormalizedRecord",
    "ParsedSource",
    "TOLERANT_PARSER",
    "STRICT_PARSER",
    "parse_source_text",
    "read_source_rows",
    "resolve_record",
]
