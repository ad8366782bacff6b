"""Dictionary-backed content store used by the test-suite and local development.

It applies the same mutation dictionaries the Sanity backend sends over HTTP,
so pipeline code cannot tell the two apart.
"""

from __future__ import annotations

import copy
import itertools
import json
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

from .base import (
    SORT_TITLE,
    CommitResult,
    ContentStore,
    MemberListQuery,
    MemberPage,
    StoreConfigurationError,
    TransactionCommitError,
)
from .documents import (
    CATEGORY_KINDS,
    COUNTRY_TYPE,
    DATE_JOINED_FIELD,
    MEMBER_TYPE,
    MEMBERSHIP_AREA_FIELD,
    MEMBERSHIP_MEMBER_FIELD,
    MEMBERSHIP_TYPE,
    REGION_TYPE,
    CountryRecord,
    reference_id,
)

_WORD_RE = re.compile(r"[a-z0-9]+")
_INSERT_AFTER_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\[-1\]$")
_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _status(doc: Mapping[str, Any]) -> str:
    return str(doc.get("status") or "").lower()


def _iter_refs(value: Any) -> Iterator[str]:
    if isinstance(value, dict):
        ref = reference_id(value)
        if ref:
            yield ref
        for key, nested in value.items():
            if key != "_ref":
                yield from _iter_refs(nested)
    elif isinstance(value, list):
        for item in value:
            yield from _iter_refs(item)


class InMemoryContentStore(ContentStore):
    """Content store keeping every document in a dictionary."""

    name = "memory"

    def __init__(self, documents: Iterable[Mapping[str, Any]] | None = None) -> None:
        self._docs: dict[str, dict] = {}
        self._sequence = itertools.count(1)
        self.commits: list[list[dict]] = []
        for document in documents or ():
            self.add(document)

    @classmethod
    def from_ndjson(cls, path: str | Path) -> "InMemoryContentStore":
        """Seed from a dataset export (one JSON document per line)."""

        path = Path(path)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise StoreConfigurationError(f"Cannot read content store seed {path}: {exc}") from exc
        documents = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                documents.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise StoreConfigurationError(f"{path}:{number}: invalid JSON ({exc.msg})") from exc
        return cls(documents)

    def add(self, document: Mapping[str, Any]) -> dict:
        """Insert a document directly, bypassing transactions (seeding only)."""

        doc = self._stamp(copy.deepcopy(dict(document)))
        self._docs[doc["_id"]] = doc
        return self._public(doc)

    def documents(self, doc_type: str | None = None) -> list[dict]:
        return [self._public(doc) for doc in self._docs.values() if doc_type is None or doc.get("_type") == doc_type]

    def _stamp(self, doc: dict, *, previous: Mapping[str, Any] | None = None) -> dict:
        doc.setdefault("_id", uuid.uuid4().hex)
        now = _now()
        doc["_createdAt"] = (previous or {}).get("_createdAt") or doc.get("_createdAt") or now
        doc["_updatedAt"] = now
        doc["_seq"] = (previous or {}).get("_seq") or next(self._sequence)
        return doc

    # -- writes --------------------------------------------------------

    def commit(self, mutations: Sequence[dict]) -> CommitResult:
        staged = copy.deepcopy(self._docs)
        results: list[dict] = []
        for mutation in mutations:
            try:
                results.append(self._apply(staged, mutation))
            except (KeyError, TypeError, AttributeError) as exc:
                raise TransactionCommitError(f"Malformed mutation {mutation!r}: {exc}") from exc
        self._check_references(staged, mutations)
        self._docs = staged
        self.commits.append(copy.deepcopy(list(mutations)))
        return CommitResult(transaction_id=uuid.uuid4().hex, results=tuple(results))

    @staticmethod
    def _check_references(docs: Mapping[str, dict], mutations: Sequence[dict]) -> None:
        deleted = {body["id"] for mutation in mutations for op, body in mutation.items() if op == "delete"}
        deleted -= set(docs)
        if not deleted:
            return
        for doc in docs.values():
            dangling = deleted.intersection(_iter_refs(doc))
            if dangling:
                raise TransactionCommitError(
                    f"Cannot delete {sorted(dangling)!r}: still referenced by {doc['_id']!r}"
                )

    def _apply(self, docs: dict[str, dict], mutation: Mapping[str, Any]) -> dict:
        if len(mutation) != 1:
            raise TransactionCommitError(f"Malformed mutation: {mutation!r}")
        (operation, body), = mutation.items()

        if operation == "create":
            doc_id = body.get("_id")
            if doc_id and doc_id in docs:
                raise TransactionCommitError(f"Document {doc_id!r} already exists")
            doc = self._stamp(copy.deepcopy(dict(body)))
            docs[doc["_id"]] = doc
            return {"id": doc["_id"], "operation": "create"}

        if operation == "createOrReplace":
            doc_id = body["_id"]
            previous = docs.get(doc_id)
            docs[doc_id] = self._stamp(copy.deepcopy(dict(body)), previous=previous)
            return {"id": doc_id, "operation": "update" if previous else "create"}

        if operation == "createIfNotExists":
            doc_id = body["_id"]
            if doc_id not in docs:
                docs[doc_id] = self._stamp(copy.deepcopy(dict(body)))
                return {"id": doc_id, "operation": "create"}
            return {"id": doc_id, "operation": "none"}

        if operation == "delete":
            doc_id = body["id"]
            docs.pop(doc_id, None)
            return {"id": doc_id, "operation": "delete"}

        if operation == "patch":
            return self._apply_patch(docs, body)

        raise TransactionCommitError(f"Unsupported mutation {operation!r}")

    def _apply_patch(self, docs: dict[str, dict], body: Mapping[str, Any]) -> dict:
        doc_id = body.get("id")
        doc = docs.get(doc_id)
        if doc is None:
            raise TransactionCommitError(f"Cannot patch missing document {doc_id!r}")

        for path, value in (body.get("set") or {}).items():
            doc[self._field(path)] = copy.deepcopy(value)
        for path, value in (body.get("setIfMissing") or {}).items():
            doc.setdefault(self._field(path), copy.deepcopy(value))
        for path in body.get("unset") or ():
            doc.pop(self._field(path), None)
        insert = body.get("insert")
        if insert:
            match = _INSERT_AFTER_RE.match(insert.get("after", ""))
            if not match:
                raise TransactionCommitError(f"Unsupported insert position {insert!r}")
            target = doc.get(match.group(1))
            if not isinstance(target, list):
                raise TransactionCommitError(f"Cannot insert into non-array field {match.group(1)!r}")
            target.extend(copy.deepcopy(insert.get("items") or []))

        doc["_updatedAt"] = _now()
        return {"id": doc_id, "operation": "update"}

    @staticmethod
    def _field(path: str) -> str:
        if not _FIELD_NAME_RE.match(path):
            raise TransactionCommitError(f"Unsupported patch path {path!r}")
        return path

    def ping(self) -> int:
        return len(self._docs)

    # -- generic reads -------------------------------------------------

    def _public(self, doc: Mapping[str, Any] | None) -> dict | None:
        if doc is None:
            return None
        return {key: copy.deepcopy(value) for key, value in doc.items() if key != "_seq"}

    def _title_of(self, doc_id: str | None) -> str | None:
        doc = self._docs.get(doc_id) if doc_id else None
        return doc.get("title") if doc else None

    def get_document(self, doc_id: str) -> dict | None:
        return self._public(self._docs.get(doc_id))

    def get_documents(self, doc_ids: Iterable[str]) -> list[dict]:
        return [self._public(self._docs[doc_id]) for doc_id in doc_ids if doc_id in self._docs]

    def _of_type(self, doc_type: str, status: str | None = None) -> list[dict]:
        return [
            doc
            for doc in self._docs.values()
            if doc.get("_type") == doc_type and (status is None or _status(doc) == status)
        ]

    def ids_of_type(self, doc_type: str, *, status: str | None = None) -> list[str]:
        return [doc["_id"] for doc in self._of_type(doc_type, status)]

    def count_of_type(self, doc_type: str, *, status: str | None = None) -> int:
        return len(self._of_type(doc_type, status))

    def find_referencing(self, doc_ids: Iterable[str]) -> list[dict]:
        targets = set(doc_ids)
        return [
            self._public(doc)
            for doc in self._docs.values()
            if doc["_id"] not in targets and any(ref in targets for ref in _iter_refs(doc))
        ]

    def documents_missing_keys(self, field_name: str) -> list[dict]:
        found = []
        for doc in self._docs.values():
            items = doc.get(field_name)
            if isinstance(items, list) and any(isinstance(item, dict) and not item.get("_key") for item in items):
                found.append({"_id": doc["_id"], field_name: copy.deepcopy(items)})
        return found

    # -- reference data ------------------------------------------------

    def list_countries(self) -> list[CountryRecord]:
        records = []
        for doc in sorted(self._of_type(COUNTRY_TYPE), key=lambda d: d.get("title") or ""):
            region_id = reference_id(doc.get("region"))
            records.append(
                CountryRecord(
                    id=doc["_id"],
                    title=doc.get("title") or "",
                    region_id=region_id,
                    region_title=self._title_of(region_id),
                )
            )
        return records

    def list_regions(self) -> list[dict]:
        return [
            {"_id": doc["_id"], "title": doc.get("title")}
            for doc in sorted(self._of_type(REGION_TYPE), key=lambda d: d.get("title") or "")
        ]

    def list_categories(self, doc_type: str) -> list[dict]:
        return [
            {"_id": doc["_id"], "title": doc.get("title")}
            for doc in sorted(self._of_type(doc_type), key=lambda d: d.get("title") or "")
        ]

    def find_category_by_title(self, doc_type: str, title: str) -> dict | None:
        needle = title.strip().lower()
        for doc in self._of_type(doc_type):
            if (doc.get("title") or "").lower() == needle:
                return {"_id": doc["_id"], "title": doc.get("title")}
        return None

    # -- members -------------------------------------------------------

    def _country_titles(self, doc: Mapping[str, Any]) -> tuple[str | None, str | None]:
        country = self._docs.get(reference_id(doc.get("country")) or "")
        if country is None:
            return None, None
        return country.get("title"), self._title_of(reference_id(country.get("region")))

    def _links(self, doc: Mapping[str, Any]) -> dict:
        payload = {"_id": doc["_id"], "title": doc.get("title")}
        for kind in CATEGORY_KINDS:
            if kind.member_field in doc:
                payload[kind.member_field] = copy.deepcopy(doc[kind.member_field])
        return payload

    def get_member(self, member_id: str) -> dict | None:
        doc = self._docs.get(member_id)
        if doc is None or doc.get("_type") != MEMBER_TYPE:
            return None
        country_title, region_title = self._country_titles(doc)
        payload = self._links(doc)
        for key in ("description", "website", DATE_JOINED_FIELD, "status", "emails", "focalpoint"):
            payload[key] = copy.deepcopy(doc.get(key))
        payload["countryId"] = reference_id(doc.get("country"))
        payload["countryTitle"] = country_title
        payload["regionTitle"] = region_title
        return payload

    def _summary(self, doc: Mapping[str, Any]) -> dict:
        country_title, region_title = self._country_titles(doc)
        activities = []
        flags = {}
        for kind in CATEGORY_KINDS:
            refs = doc.get(kind.member_field) or []
            flags[kind.badge] = bool(refs)
            for ref in refs:
                target = self._docs.get(reference_id(ref) or "")
                if target is not None:
                    activities.append({"_id": target["_id"], "type": kind.badge, "title": target.get("title")})
        return {
            "_id": doc["_id"],
            "title": doc.get("title"),
            DATE_JOINED_FIELD: doc.get(DATE_JOINED_FIELD),
            "website": doc.get("website"),
            "countryTitle": country_title,
            "regionTitle": region_title,
            "hasForum": flags["forum"],
            "hasNetwork": flags["network"],
            "hasCop": flags["cop"],
            "hasAction": flags["action"],
            "activities": activities,
        }

    def search_members(self, term: str, *, limit: int = 20) -> list[dict]:
        terms = _WORD_RE.findall(term.lower())
        if not terms:
            return []
        matches = []
        for doc in self._of_type(MEMBER_TYPE, "published"):
            words = _WORD_RE.findall((doc.get("title") or "").lower())
            if all(any(word.startswith(t) for word in words) for t in terms):
                matches.append(doc)
        matches.sort(key=lambda d: d.get("title") or "")
        return [
            {"_id": doc["_id"], "title": doc.get("title"), "countryTitle": self._country_titles(doc)[0]}
            for doc in matches[:limit]
        ]

    def find_members_by_email(self, email: str) -> list[dict]:
        needle = email.strip().lower()
        return [
            {"_id": doc["_id"], "title": doc.get("title"), "countryTitle": self._country_titles(doc)[0]}
            for doc in self._of_type(MEMBER_TYPE, "published")
            if any(str(value).lower() == needle for value in doc.get("emails") or ())
        ]

    def find_member_by_title(self, title: str) -> tuple[dict | None, str]:
        needle = title.strip().lower()
        if not needle:
            return None, "none"
        members = sorted(self._of_type(MEMBER_TYPE), key=lambda d: d.get("title") or "")
        for doc in members:
            if (doc.get("title") or "").lower() == needle:
                return self._links(doc), "exact"
        for doc in members:
            if (doc.get("title") or "").lower().startswith(needle):
                return self._links(doc), "prefix"
        return None, "none"

    def list_members(self, query: MemberListQuery) -> MemberPage:
        published = self._of_type(MEMBER_TYPE, "published")
        matches = published

        if query.region_ids:
            region_ids = set(query.region_ids)
            country_ids = {
                doc["_id"]
                for doc in self._of_type(COUNTRY_TYPE)
                if reference_id(doc.get("region")) in region_ids
            }
            matches = [doc for doc in matches if reference_id(doc.get("country")) in country_ids]

        if query.q:
            needle = query.q.lower()
            matches = [
                doc
                for doc in matches
                if needle in (doc.get("title") or "").lower()
                or needle in (self._country_titles(doc)[0] or "").lower()
            ]

        if query.sort == SORT_TITLE:
            matches = sorted(matches, key=lambda d: d.get("title") or "")
        else:
            matches = sorted(
                matches,
                key=lambda d: (d.get(DATE_JOINED_FIELD) or "", d.get("_createdAt") or "", d["_seq"]),
                reverse=True,
            )

        window = matches[query.offset : query.offset + query.per_page]
        return MemberPage(
            items=[self._summary(doc) for doc in window],
            total=len(matches),
            published_total=len(published),
            page=query.page,
            per_page=query.per_page,
        )

    # -- memberships ---------------------------------------------------

    def memberships_for(self, member_id: str) -> list[dict]:
        return [
            {
                "_id": doc["_id"],
                "areaId": reference_id(doc.get(MEMBERSHIP_AREA_FIELD)),
                "contribution": doc.get("contribution"),
                "since": doc.get("since"),
                "website": doc.get("website"),
                "status": doc.get("status"),
            }
            for doc in sorted(self._of_type(MEMBERSHIP_TYPE), key=lambda d: d["_seq"])
            if reference_id(doc.get(MEMBERSHIP_MEMBER_FIELD)) == member_id
        ]
