"""
Turn normalized source records into member documents.

Row problems never abort the loop. A row without a title is skipped; every
other problem is recorded and the row is kept with a fallback value.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable

from community_app.importer.adapters import NormalizedRecord
from community_app.importer.normalize import (
    fix_url,
    merge_descriptions,
    normalize_key,
    normalize_text,
    to_iso_date,
)
from community_app.store.documents import (
    COUNTRY_FALLBACK_FIELD,
    DATE_JOINED_FIELD,
    MEMBER_TYPE,
    MemberStatus,
    reference,
)

from .countries import CountryResolver

IMPORT_STATUSES = (MemberStatus.PUBLISHED.value, MemberStatus.SUBMITTED.value)


@dataclass(frozen=True)
class ReconcileOptions:
    status: str = MemberStatus.PUBLISHED.value
    today: Callable[[], date] = date.today

    def __post_init__(self) -> None:
        if self.status not in IMPORT_STATUSES:
            raise ValueError(f"Import status must be one of {', '.join(IMPORT_STATUSES)}, got {self.status!r}")


@dataclass
class ProblemReport:
    """Per-run problem lists; each entry carries the source line number."""

    missing_title: list[dict[str, Any]] = field(default_factory=list)
    missing_country: list[dict[str, Any]] = field(default_factory=list)
    bad_date: list[dict[str, Any]] = field(default_factory=list)
    region_mismatch: list[dict[str, Any]] = field(default_factory=list)
    ambiguous_country: list[dict[str, Any]] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "missing_title": len(self.missing_title),
            "missing_country": len(self.missing_country),
            "bad_date": len(self.bad_date),
            "region_mismatch": len(self.region_mismatch),
            "ambiguous_country": len(self.ambiguous_country),
        }

    @property
    def total(self) -> int:
        return sum(self.counts().values())

    def as_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "missing_title": list(self.missing_title),
            "missing_country": list(self.missing_country),
            "bad_date": list(self.bad_date),
            "region_mismatch": list(self.region_mismatch),
            "ambiguous_country": list(self.ambiguous_country),
        }


@dataclass
class ReconciliationResult:
    documents: list[dict[str, Any]] = field(default_factory=list)
    problems: ProblemReport = field(default_factory=ProblemReport)
    unmatched_countries: Counter = field(default_factory=Counter)
    rows_seen: int = 0

    def top_unmatched(self, limit: int = 20) -> list[tuple[str, int]]:
        return self.unmatched_countries.most_common(limit)

    @property
    def fallback_count(self) -> int:
        return sum(1 for document in self.documents if COUNTRY_FALLBACK_FIELD in document)


def build_member_document(
    record: NormalizedRecord,
    resolver: CountryResolver,
    options: ReconcileOptions,
    result: ReconciliationResult,
) -> dict[str, Any] | None:
    """Build one document, recording problems on ``result``; ``None`` skips the row."""

    row = record.line_number
    problems = result.problems
    title = normalize_text(record.title)
    if not title:
        problems.missing_title.append({"row": row})
        return None

    country_name = normalize_text(record.country)
    region_name = normalize_text(record.region)

    match = resolver.resolve(country_name)
    if match is None and country_name:
        problems.missing_country.append({"row": row, "country": country_name, "title": title})
        result.unmatched_countries[normalize_key(country_name)] += 1
    if match is not None and match.is_ambiguous:
        problems.ambiguous_country.append(
            {
                "row": row,
                "country": country_name,
                "matched": match.record.title,
                "candidates": list(match.ambiguous_with),
            }
        )
    if match is not None and region_name and normalize_key(region_name) != normalize_key(match.record.region_title):
        problems.region_mismatch.append(
            {
                "row": row,
                "source_region": region_name,
                "country": match.record.title,
                "country_region": match.record.region_title or "(none)",
            }
        )

    raw_date = normalize_text(record.date_joined)
    iso_date = to_iso_date(raw_date)
    if iso_date is None and raw_date:
        problems.bad_date.append({"row": row, "raw": raw_date})

    document: dict[str, Any] = {
        "_type": MEMBER_TYPE,
        "title": title,
        DATE_JOINED_FIELD: iso_date or options.today().isoformat(),
        "status": options.status,
    }
    description = merge_descriptions(record.description, record.description2)
    if description:
        document["description"] = description
    website = fix_url(record.website)
    if website:
        document["website"] = website
    if record.emails:
        document["emails"] = list(record.emails)
    focalpoint = normalize_text(record.focalpoint)
    if focalpoint:
        document["focalpoint"] = focalpoint
    if match is not None:
        document["country"] = reference(match.record.id)
    elif country_name:
        document[COUNTRY_FALLBACK_FIELD] = country_name
    return document


def reconcile_records(
    records: Iterable[NormalizedRecord],
    resolver: CountryResolver,
    options: ReconcileOptions | None = None,
) -> ReconciliationResult:
    """Build documents for ``records`` in source order."""

    options = options or ReconcileOptions()
    result = ReconciliationResult()
    for record in records:
        result.rows_seen += 1
        document = build_member_document(record, resolver, options, result)
        if document is not None:
            result.documents.append(document)
    return result
