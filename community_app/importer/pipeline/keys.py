"""Repair array items that were written without a ``_key``."""

from __future__ import annotations

from typing import Any, Mapping

from community_app.store import ContentStore
from community_app.store.documents import new_key

from .batch import BatchWriter, BatchSummary, PatchSpec


def with_keys(items: list[Any]) -> list[Any]:
    fixed = []
    for item in items:
        if isinstance(item, Mapping) and not item.get("_key"):
            item = {**item, "_key": new_key()}
        fixed.append(item)
    return fixed


def plan_key_repairs(store: ContentStore, field_name: str) -> list[PatchSpec]:
    return [
        PatchSpec(doc_id=document["_id"], set_values={field_name: with_keys(document.get(field_name) or [])})
        for document in store.documents_missing_keys(field_name)
    ]


def fix_missing_keys(store: ContentStore, field_name: str, writer: BatchWriter) -> tuple[list[PatchSpec], BatchSummary]:
    patches = plan_key_repairs(store, field_name)
    return patches, writer.apply_patches(patches)
