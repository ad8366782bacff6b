"""Resolve free-text country names to canonical country records.

Strategies, first hit wins:

1. exact case-insensitive title match
2. synonym table (``mapping/country_synonyms.yaml``), then exact match on the
   candidate titles in order
3. clean-key match (diacritics, punctuation and parentheticals removed)
4. loose containment of clean keys in either direction

Containment can hit several countries ("Niger" / "Nigeria" style overlaps).
Candidates are ranked by rapidfuzz similarity of the clean keys, then by
title, and the match carries the other candidates so callers can report it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from rapidfuzz import fuzz

from community_app.importer.mapping import SynonymTable, get_country_synonyms
from community_app.importer.normalize import clean_key, normalize_key
from community_app.store import ContentStore
from community_app.store.documents import CountryRecord

STRATEGY_EXACT = "exact"
STRATEGY_SYNONYM = "synonym"
STRATEGY_CLEAN = "clean"
STRATEGY_CONTAINMENT = "containment"

# Shorter keys would containment-match large parts of the country list.
MIN_CONTAINMENT_KEY_LENGTH = 3


@dataclass(frozen=True)
class CountryMatch:
    record: CountryRecord
    strategy: str
    ambiguous_with: tuple[str, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.ambiguous_with)


class CountryResolver:
    """Index over the country reference set; pure lookups, no side effects."""

    def __init__(self, countries: Iterable[CountryRecord], synonyms: SynonymTable | None = None) -> None:
        self.countries: tuple[CountryRecord, ...] = tuple(countries)
        self._synonyms = synonyms if synonyms is not None else get_country_synonyms()
        self._by_title: dict[str, CountryRecord] = {}
        self._by_clean: dict[str, CountryRecord] = {}
        for record in self.countries:
            self._by_title.setdefault(normalize_key(record.title), record)
            key = clean_key(record.title)
            if key:
                self._by_clean.setdefault(key, record)

    @classmethod
    def from_store(cls, store: ContentStore, synonyms: SynonymTable | None = None) -> "CountryResolver":
        return cls(store.list_countries(), synonyms=synonyms)

    def __len__(self) -> int:
        return len(self.countries)

    def resolve(self, name: str | None) -> CountryMatch | None:
        key = normalize_key(name)
        if not key:
            return None

        record = self._by_title.get(key)
        if record is not None:
            return CountryMatch(record, STRATEGY_EXACT)

        for candidate in self._synonyms.candidates(key):
            record = self._by_title.get(normalize_key(candidate))
            if record is not None:
                return CountryMatch(record, STRATEGY_SYNONYM)

        cleaned = clean_key(name)
        if not cleaned:
            return None

        record = self._by_clean.get(cleaned)
        if record is not None:
            return CountryMatch(record, STRATEGY_CLEAN)

        return self._resolve_containment(cleaned)

    def _resolve_containment(self, cleaned: str) -> CountryMatch | None:
        if len(cleaned) < MIN_CONTAINMENT_KEY_LENGTH:
            return None

        candidates: list[tuple[str, CountryRecord]] = [
            (key, record) for key, record in self._by_clean.items() if cleaned in key or key in cleaned
        ]
        if not candidates:
            return None

        ranked = _rank(cleaned, candidates)
        best = ranked[0]
        others = tuple(record.title for record in ranked[1:])
        return CountryMatch(best, STRATEGY_CONTAINMENT, ambiguous_with=others)


def _rank(cleaned: str, candidates: Sequence[tuple[str, CountryRecord]]) -> list[CountryRecord]:
    scored = sorted(
        candidates,
        key=lambda item: (-fuzz.ratio(cleaned, item[0]), item[1].title),
    )
    return [record for _, record in scored]
