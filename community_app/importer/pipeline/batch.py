"""Chunked transactional writes against the content store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence, TypeVar

from community_app.store import ContentStore

logger = logging.getLogger(__name__)

CREATE_CHUNK_SIZE = 100
DELETE_CHUNK_SIZE = 200
PATCH_CHUNK_SIZE = 200
PREVIEW_LIMIT = 5

T = TypeVar("T")


@dataclass(frozen=True)
class PatchSpec:
    """One queued patch; fields mirror :meth:`Transaction.patch`."""

    doc_id: str
    set_values: Mapping[str, Any] | None = None
    unset: Sequence[str] | None = None
    set_if_missing: Mapping[str, Any] | None = None
    append: Mapping[str, Sequence[Any]] | None = None


@dataclass
class BatchSummary:
    operation: str
    requested: int = 0
    written: int = 0
    transactions: int = 0
    dry_run: bool = False
    document_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "requested": self.requested,
            "written": self.written,
            "transactions": self.transactions,
            "dry_run": self.dry_run,
        }


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


def preview_documents(documents: Sequence[Mapping[str, Any]], limit: int = PREVIEW_LIMIT) -> str:
    return json.dumps(list(documents[:limit]), indent=2, ensure_ascii=False)


class BatchWriter:
    """
    Commit creates, patches and deletes in fixed-size transactions.

    Each chunk is one atomic transaction. A rejected chunk raises
    :class:`~community_app.store.TransactionCommitError` straight to the
    caller; earlier chunks stay committed and nothing is retried. In dry-run
    mode every method only counts what it would have written.
    """

    def __init__(
        self,
        store: ContentStore,
        *,
        dry_run: bool = False,
        progress: Callable[[str], None] | None = None,
        create_chunk_size: int = CREATE_CHUNK_SIZE,
        delete_chunk_size: int = DELETE_CHUNK_SIZE,
        patch_chunk_size: int = PATCH_CHUNK_SIZE,
    ) -> None:
        self.store = store
        self.dry_run = dry_run
        self._progress = progress
        self.create_chunk_size = create_chunk_size
        self.delete_chunk_size = delete_chunk_size
        self.patch_chunk_size = patch_chunk_size

    def _report(self, message: str) -> None:
        logger.info(message)
        if self._progress is not None:
            self._progress(message)

    def create_documents(self, documents: Sequence[Mapping[str, Any]]) -> BatchSummary:
        summary = BatchSummary(operation="create", requested=len(documents), dry_run=self.dry_run)
        if self.dry_run:
            return summary
        for chunk in chunked(documents, self.create_chunk_size):
            tx = self.store.transaction()
            for document in chunk:
                tx.create(document)
            result = tx.commit()
            summary.transactions += 1
            summary.written += len(chunk)
            summary.document_ids.extend(result.document_ids)
            self._report(f"committed {summary.written}/{summary.requested}")
        return summary

    def create_or_replace_documents(self, documents: Sequence[Mapping[str, Any]]) -> BatchSummary:
        summary = BatchSummary(operation="createOrReplace", requested=len(documents), dry_run=self.dry_run)
        if self.dry_run:
            return summary
        for chunk in chunked(documents, self.create_chunk_size):
            tx = self.store.transaction()
            for document in chunk:
                tx.create_or_replace(document)
            tx.commit()
            summary.transactions += 1
            summary.written += len(chunk)
        return summary

    def apply_patches(self, patches: Sequence[PatchSpec], *, chunk_size: int | None = None) -> BatchSummary:
        summary = BatchSummary(operation="patch", requested=len(patches), dry_run=self.dry_run)
        if self.dry_run:
            return summary
        for chunk in chunked(patches, chunk_size or self.patch_chunk_size):
            tx = self.store.transaction()
            for spec in chunk:
                tx.patch(
                    spec.doc_id,
                    set_values=spec.set_values,
                    unset=spec.unset,
                    set_if_missing=spec.set_if_missing,
                    append=spec.append,
                )
            tx.commit()
            summary.transactions += 1
            summary.written += len(chunk)
            self._report(f"patched {summary.written}/{summary.requested}")
        return summary

    def delete_ids(self, doc_ids: Iterable[str]) -> BatchSummary:
        ids = list(dict.fromkeys(doc_ids))
        summary = BatchSummary(operation="delete", requested=len(ids), dry_run=self.dry_run)
        if self.dry_run:
            return summary
        for chunk in chunked(ids, self.delete_chunk_size):
            tx = self.store.transaction()
            for doc_id in chunk:
                tx.delete(doc_id)
            tx.commit()
            summary.transactions += 1
            summary.written += len(chunk)
            self._report(f"deleted {summary.written}/{summary.requested}")
        return summary
