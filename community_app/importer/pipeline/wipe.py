"""
Bulk deletion of member and membership documents.

The store refuses to delete a document that is still referenced, so every
wipe first patches the documents pointing at the targets: scalar references
are unset, reference arrays are filtered, and arrays left empty are unset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from community_app.store import ContentStore
from community_app.store.documents import MEMBER_TYPE, MEMBERSHIP_TYPE, MemberStatus, reference_id

from .batch import BatchWriter, PatchSpec

logger = logging.getLogger(__name__)

REFERENCE_CLEAN_CHUNK_SIZE = 50
SAMPLE_SIZE = 5


@dataclass(frozen=True)
class WipeTarget:
    label: str
    doc_type: str
    status: str | None = None


MEMBERSHIPS = WipeTarget(label="membership", doc_type=MEMBERSHIP_TYPE)
MEMBERS = WipeTarget(label="member", doc_type=MEMBER_TYPE)
SUBMITTED_MEMBERS = WipeTarget(label="submitted member", doc_type=MEMBER_TYPE, status=MemberStatus.SUBMITTED.value)


@dataclass
class WipePlan:
    target: WipeTarget
    ids: list[str] = field(default_factory=list)
    sample: list[dict[str, Any]] = field(default_factory=list)
    patches: list[PatchSpec] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.ids


@dataclass
class WipeSummary:
    label: str
    found: int = 0
    references_cleaned: int = 0
    deleted: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "found": self.found,
            "references_cleaned": self.references_cleaned,
            "deleted": self.deleted,
            "dry_run": self.dry_run,
        }


def reference_cleanup_patch(document: Mapping[str, Any], target_ids: set[str]) -> PatchSpec | None:
    """Patch removing every top-level reference to ``target_ids``; ``None`` when clean."""

    set_values: dict[str, Any] = {}
    unset: list[str] = []
    for key, value in document.items():
        if key.startswith("_"):
            continue
        if reference_id(value) in target_ids:
            unset.append(key)
        elif isinstance(value, list) and any(reference_id(item) in target_ids for item in value):
            kept = [item for item in value if reference_id(item) not in target_ids]
            if kept:
                set_values[key] = kept
            else:
                unset.append(key)
    if not set_values and not unset:
        return None
    return PatchSpec(doc_id=document["_id"], set_values=set_values or None, unset=unset or None)


def plan_wipe(store: ContentStore, target: WipeTarget) -> WipePlan:
    ids = store.ids_of_type(target.doc_type, status=target.status)
    plan = WipePlan(target=target, ids=ids)
    if not ids:
        return plan

    plan.sample = store.get_documents(ids[:SAMPLE_SIZE])
    target_ids = set(ids)
    for document in store.find_referencing(ids):
        patch = reference_cleanup_patch(document, target_ids)
        if patch is not None:
            plan.patches.append(patch)
    logger.info(
        "Wipe plan for %s: %s target(s), %s referencing document(s)",
        target.label,
        len(ids),
        len(plan.patches),
    )
    return plan


def execute_wipe(plan: WipePlan, writer: BatchWriter) -> WipeSummary:
    summary = WipeSummary(label=plan.target.label, found=len(plan.ids), dry_run=writer.dry_run)
    if plan.is_empty:
        return summary
    cleaned = writer.apply_patches(plan.patches, chunk_size=REFERENCE_CLEAN_CHUNK_SIZE)
    summary.references_cleaned = len(plan.patches) if writer.dry_run else cleaned.written
    deleted = writer.delete_ids(plan.ids)
    summary.deleted = len(plan.ids) if writer.dry_run else deleted.written
    return summary
