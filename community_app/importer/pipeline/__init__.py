"""Import, reconciliation and maintenance steps run against the content store."""

from .batch import BatchSummary, BatchWriter, PatchSpec, chunked, preview_documents
from .countries import CountryMatch, CountryResolver
from .keys import fix_missing_keys, plan_key_repairs
from .reconcile import ProblemReport, ReconcileOptions, ReconciliationResult, reconcile_records
from .regions import RegionPlan, RegionSummary, canonical_region_id, normalize_regions, plan_region_remap
from .tagging import CategoryNotFound, TagOutcome, TagSummary, load_names, resolve_category, tag_members
from .wipe import (
    MEMBERS,
    MEMBERSHIPS,
    SUBMITTED_MEMBERS,
    WipePlan,
    WipeSummary,
    WipeTarget,
    execute_wipe,
    plan_wipe,
    reference_cleanup_patch,
)

__all__ = [
    "BatchSummary",
    "BatchWriter",
    "PatchSpec",
    "chunked",
    "preview_documents",
    "CountryMatch",
    "CountryResolver",
    "fix_missing_keys",
    "plan_key_repairs",
    "ProblemReport",
    "ReconcileOptions",
    "ReconciliationResult",
    "reconcile_records",
    "RegionPlan",
    "RegionSummary",
    "canonical_region_id",
    "normalize_regions",
    "plan_region_remap",
    "CategoryNotFound",
    "TagOutcome",
    "TagSummary",
    "load_names",
    "resolve_category",
    "tag_members",
    "MEMBERS",
    "MEMBERSHIPS",
    "SUBMITTED_MEMBERS",
    "WipePlan",
    "WipeSummary",
    "WipeTarget",
    "execute_wipe",
    "plan_wipe",
    "reference_cleanup_patch",
]
