"""Link a list of members, named by title, to one category document."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from community_app.store import ContentStore
from community_app.store.documents import CategoryKind, reference, reference_id

from .batch import BatchWriter, PatchSpec

logger = logging.getLogger(__name__)

NOTE_UPDATED = "Updated"
NOTE_DRY_RUN = "DryRun"
NOTE_ALREADY = "Already"
NOTE_NOT_FOUND = "NotFound"


class CategoryNotFound(LookupError):
    pass


@dataclass(frozen=True)
class TagOutcome:
    name: str
    found_title: str = ""
    strategy: str = ""
    note: str = NOTE_NOT_FOUND


@dataclass
class TagSummary:
    group_id: str
    group_title: str
    group_created: bool = False
    outcomes: list[TagOutcome] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        counts = {NOTE_UPDATED: 0, NOTE_DRY_RUN: 0, NOTE_ALREADY: 0, NOTE_NOT_FOUND: 0}
        for outcome in self.outcomes:
            counts[outcome.note] += 1
        return counts


def load_names(path: str | Path) -> list[str]:
    """Non-empty, de-duplicated lines of a names file, in file order."""

    lines = Path(path).read_text(encoding="utf-8").splitlines()
    return list(dict.fromkeys(line.strip() for line in lines if line.strip()))


def resolve_category(
    store: ContentStore,
    kind: CategoryKind,
    title: str,
    *,
    create: bool = False,
    dry_run: bool = True,
) -> tuple[str, bool]:
    """Return ``(category_id, created)``; dry runs get a placeholder id instead of a write."""

    existing = store.find_category_by_title(kind.doc_type, title)
    if existing is not None:
        return existing["_id"], False
    if not create:
        raise CategoryNotFound(f'{kind.label} "{title}" not found')
    if dry_run:
        return f"dry-run.{uuid.uuid4().hex}", True

    result = store.transaction().create({"_type": kind.doc_type, "title": title}).commit()
    logger.info('Created %s "%s"', kind.doc_type, title)
    return result.document_ids[0], True


def tag_members(
    store: ContentStore,
    names: Iterable[str],
    kind: CategoryKind,
    category_id: str,
    writer: BatchWriter,
) -> list[TagOutcome]:
    outcomes: list[TagOutcome] = []
    patches: list[PatchSpec] = []
    linked: set[str] = set()

    for name in names:
        member, strategy = store.find_member_by_title(name)
        if member is None:
            outcomes.append(TagOutcome(name=name))
            continue

        title = member.get("title") or ""
        refs = member.get(kind.member_field) or []
        if member["_id"] in linked or any(reference_id(ref) == category_id for ref in refs):
            outcomes.append(TagOutcome(name=name, found_title=title, strategy=strategy, note=NOTE_ALREADY))
            continue

        linked.add(member["_id"])
        patches.append(PatchSpec(doc_id=member["_id"], append={kind.member_field: [reference(category_id, keyed=True)]}))
        note = NOTE_DRY_RUN if writer.dry_run else NOTE_UPDATED
        outcomes.append(TagOutcome(name=name, found_title=title, strategy=strategy, note=note))

    writer.apply_patches(patches)
    return outcomes
