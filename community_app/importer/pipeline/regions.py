"""Collapse the region reference data onto the canonical region set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from community_app.importer.mapping import SynonymTable, get_region_synonyms
from community_app.importer.normalize import letters_only, region_key
from community_app.store import ContentStore
from community_app.store.documents import CANONICAL_REGIONS, REGION_TYPE, reference

from .batch import BatchWriter, PatchSpec

logger = logging.getLogger(__name__)

REMAP_SAMPLE_SIZE = 10

_CANONICAL_BY_KEY = {region_key(region.title): region.id for region in CANONICAL_REGIONS}
_CANONICAL_IDS = frozenset(region.id for region in CANONICAL_REGIONS)


def canonical_region_id(title: str | None, synonyms: SynonymTable | None = None) -> str | None:
    """Canonical region id for a region title: exact, then synonym, then letters-only containment."""

    key = region_key(title)
    if not key:
        return None
    direct = _CANONICAL_BY_KEY.get(key)
    if direct:
        return direct

    synonyms = synonyms if synonyms is not None else get_region_synonyms()
    for candidate in synonyms.candidates(key):
        via_synonym = _CANONICAL_BY_KEY.get(region_key(candidate))
        if via_synonym:
            return via_synonym

    letters = letters_only(title)
    if not letters:
        return None
    for region in CANONICAL_REGIONS:
        canonical_letters = letters_only(region.title)
        if letters in canonical_letters or canonical_letters in letters:
            return region.id
    return None


@dataclass(frozen=True)
class RegionRemap:
    country_id: str
    country: str
    from_title: str
    to_id: str


@dataclass
class RegionPlan:
    remaps: list[RegionRemap] = field(default_factory=list)
    already_canonical: int = 0
    missing_region: int = 0
    unknown_title: int = 0
    existing_regions: int = 0
    countries: int = 0

    def counts(self) -> dict[str, int]:
        return {
            "already_canonical": self.already_canonical,
            "need_remap": len(self.remaps),
            "missing_region": self.missing_region,
            "unknown_title": self.unknown_title,
        }

    @property
    def sample(self) -> list[RegionRemap]:
        return self.remaps[:REMAP_SAMPLE_SIZE]


@dataclass
class RegionSummary:
    plan: RegionPlan
    upserted: int = 0
    patched: int = 0
    deleted_extras: list[dict[str, Any]] = field(default_factory=list)
    dry_run: bool = True


def plan_region_remap(store: ContentStore, synonyms: SynonymTable | None = None) -> RegionPlan:
    plan = RegionPlan(existing_regions=len(store.list_regions()))
    countries = store.list_countries()
    plan.countries = len(countries)
    for country in countries:
        if not country.region_id or country.region_title is None:
            plan.missing_region += 1
            continue
        target = canonical_region_id(country.region_title, synonyms)
        if target is None:
            plan.unknown_title += 1
            continue
        if country.region_id == target:
            plan.already_canonical += 1
            continue
        plan.remaps.append(
            RegionRemap(
                country_id=country.id,
                country=country.title,
                from_title=country.region_title,
                to_id=target,
            )
        )
    return plan


def unused_extra_regions(store: ContentStore) -> list[dict[str, Any]]:
    """Non-canonical regions that no country references."""

    referenced = {country.region_id for country in store.list_countries() if country.region_id}
    return [
        region
        for region in store.list_regions()
        if region["_id"] not in _CANONICAL_IDS and region["_id"] not in referenced
    ]


def normalize_regions(
    store: ContentStore,
    writer: BatchWriter,
    *,
    delete_extras: bool = False,
    synonyms: SynonymTable | None = None,
) -> RegionSummary:
    """
    Upsert the canonical regions, repoint countries at them and optionally
    drop the regions left unused. With a dry-run writer only the plan is built.
    """

    canonical_documents = [{"_id": region.id, "_type": REGION_TYPE, "title": region.title} for region in CANONICAL_REGIONS]
    upserted = writer.create_or_replace_documents(canonical_documents)

    plan = plan_region_remap(store, synonyms)
    summary = RegionSummary(plan=plan, dry_run=writer.dry_run, upserted=upserted.written)
    logger.info("Region plan: %s", plan.counts())

    patches = [PatchSpec(doc_id=remap.country_id, set_values={"region": reference(remap.to_id)}) for remap in plan.remaps]
    summary.patched = writer.apply_patches(patches).written

    if delete_extras and not writer.dry_run:
        extras = unused_extra_regions(store)
        writer.delete_ids(region["_id"] for region in extras)
        summary.deleted_extras = extras
    return summary
