"""
Content store abstraction.

The directory data lives in a hosted document store. Reads go through named
query methods on :class:`ContentStore`; writes are accumulated on a
:class:`Transaction` as mutation dictionaries (``create``,
``createOrReplace``, ``patch`` and ``delete``) and committed atomically.
Backends only have to translate those two surfaces.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from .documents import CountryRecord

DEFAULT_API_VERSION = "v2024-10-01"
SORT_JOINED = "joined"
SORT_TITLE = "title"


class StoreError(Exception):
    """Base exception for content store failures."""


class StoreConfigurationError(StoreError):
    """Raised when required store settings are missing."""


class StoreRequestError(StoreError):
    """Raised when a read or probe request fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransactionCommitError(StoreError):
    """Raised when a transaction is rejected; none of its mutations were applied."""


def normalize_api_version(value: str | None) -> str:
    version = (value or "").strip()
    if not version:
        return DEFAULT_API_VERSION
    return version if version.startswith("v") else f"v{version}"


@dataclass(frozen=True)
class StoreSettings:
    """Connection settings, built once per process from the Flask config."""

    project_id: str | None = None
    dataset: str | None = None
    api_version: str = DEFAULT_API_VERSION
    read_token: str | None = None
    write_token: str | None = None
    use_cdn: bool = False
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "StoreSettings":
        return cls(
            project_id=config.get("SANITY_PROJECT_ID") or None,
            dataset=config.get("SANITY_DATASET") or None,
            api_version=normalize_api_version(config.get("SANITY_API_VERSION")),
            read_token=config.get("SANITY_API_TOKEN") or None,
            write_token=config.get("SANITY_WRITE_TOKEN") or None,
            use_cdn=bool(config.get("SANITY_USE_CDN", False)),
            timeout=float(config.get("STORE_REQUEST_TIMEOUT", 30.0)),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.project_id and self.dataset)

    @property
    def token(self) -> str | None:
        """Token for server-side requests; the write token wins."""

        return self.write_token or self.read_token

    def missing_settings(self, *, require_token: bool = False) -> list[str]:
        missing = []
        if not self.project_id:
            missing.append("SANITY_PROJECT_ID")
        if not self.dataset:
            missing.append("SANITY_DATASET")
        if require_token and not self.token:
            missing.append("SANITY_WRITE_TOKEN (or SANITY_API_TOKEN)")
        return missing


@dataclass(frozen=True)
class CommitResult:
    transaction_id: str | None
    results: tuple[dict, ...] = ()

    @property
    def document_ids(self) -> list[str]:
        return [entry["id"] for entry in self.results if entry.get("id")]


class Transaction:
    """Accumulates mutations and commits them as one atomic unit."""

    def __init__(self, store: "ContentStore") -> None:
        self._store = store
        self.mutations: list[dict] = []

    def __len__(self) -> int:
        return len(self.mutations)

    def create(self, document: Mapping[str, Any]) -> "Transaction":
        self.mutations.append({"create": dict(document)})
        return self

    def create_or_replace(self, document: Mapping[str, Any]) -> "Transaction":
        if not document.get("_id"):
            raise ValueError("createOrReplace requires an _id")
        self.mutations.append({"createOrReplace": dict(document)})
        return self

    def patch(
        self,
        doc_id: str,
        *,
        set_values: Mapping[str, Any] | None = None,
        unset: Sequence[str] | None = None,
        set_if_missing: Mapping[str, Any] | None = None,
        append: Mapping[str, Sequence[Any]] | None = None,
    ) -> "Transaction":
        """
        Queue a patch. ``append`` adds items to the end of array fields,
        creating the array when it does not exist yet.
        """

        operations: dict[str, Any] = {}
        missing = dict(set_if_missing or {})
        if set_values:
            operations["set"] = dict(set_values)
        if unset:
            operations["unset"] = list(unset)
        if append:
            for field_name in append:
                missing.setdefault(field_name, [])
        if missing:
            operations["setIfMissing"] = missing
        if not operations and not append:
            return self

        self.mutations.append({"patch": {"id": doc_id, **operations}})
        for field_name, items in (append or {}).items():
            self.mutations.append(
                {"patch": {"id": doc_id, "insert": {"after": f"{field_name}[-1]", "items": list(items)}}}
            )
        return self

    def delete(self, doc_id: str) -> "Transaction":
        self.mutations.append({"delete": {"id": doc_id}})
        return self

    def commit(self) -> CommitResult:
        if not self.mutations:
            return CommitResult(transaction_id=None)
        result = self._store.commit(self.mutations)
        self.mutations = []
        return result


@dataclass(frozen=True)
class MemberListQuery:
    """Filter, sort and page parameters of the public directory listing."""

    q: str = ""
    region_ids: tuple[str, ...] = ()
    sort: str = SORT_JOINED
    page: int = 1
    per_page: int = 12

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


@dataclass(frozen=True)
class MemberPage:
    items: list[dict] = field(default_factory=list)
    total: int = 0
    published_total: int = 0
    page: int = 1
    per_page: int = 12

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total // self.per_page))

    @property
    def shown_from(self) -> int:
        return (self.page - 1) * self.per_page + 1 if self.items else 0

    @property
    def shown_to(self) -> int:
        return (self.page - 1) * self.per_page + len(self.items)


class ContentStore(abc.ABC):
    """Named read operations plus transactional writes against the document store."""

    name = "abstract"

    def transaction(self) -> Transaction:
        return Transaction(self)

    @abc.abstractmethod
    def commit(self, mutations: Sequence[dict]) -> CommitResult:
        """Apply all mutations atomically or raise :class:`TransactionCommitError`."""

    @abc.abstractmethod
    def ping(self) -> int:
        """Return the number of visible documents; raises on auth or network failure."""

    # -- generic reads -------------------------------------------------

    @abc.abstractmethod
    def get_document(self, doc_id: str) -> dict | None: ...

    @abc.abstractmethod
    def get_documents(self, doc_ids: Iterable[str]) -> list[dict]: ...

    @abc.abstractmethod
    def ids_of_type(self, doc_type: str, *, status: str | None = None) -> list[str]: ...

    @abc.abstractmethod
    def count_of_type(self, doc_type: str, *, status: str | None = None) -> int: ...

    @abc.abstractmethod
    def find_referencing(self, doc_ids: Iterable[str]) -> list[dict]:
        """Full documents (outside ``doc_ids``) holding a reference to any of ``doc_ids``."""

    @abc.abstractmethod
    def documents_missing_keys(self, field_name: str) -> list[dict]:
        """Documents whose ``field_name`` array has items without a ``_key``."""

    # -- reference data ------------------------------------------------

    @abc.abstractmethod
    def list_countries(self) -> list[CountryRecord]: ...

    @abc.abstractmethod
    def list_regions(self) -> list[dict]: ...

    @abc.abstractmethod
    def list_categories(self, doc_type: str) -> list[dict]: ...

    @abc.abstractmethod
    def find_category_by_title(self, doc_type: str, title: str) -> dict | None: ...

    # -- members -------------------------------------------------------

    @abc.abstractmethod
    def get_member(self, member_id: str) -> dict | None:
        """Member projection with ``countryTitle`` and ``regionTitle``; any status."""

    @abc.abstractmethod
    def search_members(self, term: str, *, limit: int = 20) -> list[dict]:
        """Published members whose title words start with the terms in ``term``."""

    @abc.abstractmethod
    def find_members_by_email(self, email: str) -> list[dict]: ...

    @abc.abstractmethod
    def find_member_by_title(self, title: str) -> tuple[dict | None, str]:
        """Resolve a member by exact (case-insensitive) title, then by title prefix."""

    @abc.abstractmethod
    def list_members(self, query: MemberListQuery) -> MemberPage: ...

    # -- memberships ---------------------------------------------------

    @abc.abstractmethod
    def memberships_for(self, member_id: str) -> list[dict]:
        """Membership links of a member as ``{_id, areaId, contribution, since, website, status}``."""
