"""Sanity-backed content store speaking the HTTP query and mutate APIs via ``requests``."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import requests

from .base import (
    SORT_TITLE,
    CommitResult,
    ContentStore,
    MemberListQuery,
    MemberPage,
    StoreConfigurationError,
    StoreRequestError,
    StoreSettings,
    TransactionCommitError,
)
from .documents import MEMBER_TYPE, MEMBERSHIP_AREA_FIELD, MEMBERSHIP_MEMBER_FIELD, MEMBERSHIP_TYPE, CountryRecord

logger = logging.getLogger(__name__)

_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_MEMBER_FILTER = """
  _type == $memberType &&
  lower(status) == "published" &&
  (
    $filterRegionIds == null ||
    country._ref in *[
      _type == "country" &&
      defined(region._ref) &&
      region._ref in $filterRegionIds
    ]._id
  ) &&
  (
    $qPattern == null ||
    lower(title) match $qPattern ||
    lower(country->title) match $qPattern
  )
"""

_MEMBER_SUMMARY = """{
  _id, title, datejoined, website,
  "countryTitle": country->title,
  "regionTitle": country->region->title,
  "hasForum": count(coalesce(forums[], [])) > 0,
  "hasNetwork": count(coalesce(networks[], [])) > 0,
  "hasCop": count(coalesce(priorityAreas[], [])) > 0,
  "hasAction": count(coalesce(actionGroups[], [])) > 0,
  "activities": [
    ...select(defined(forums) => forums[]->{_id, "type": "forum", title}),
    ...select(defined(networks) => networks[]->{_id, "type": "network", title}),
    ...select(defined(priorityAreas) => priorityAreas[]->{_id, "type": "cop", title}),
    ...select(defined(actionGroups) => actionGroups[]->{_id, "type": "action", title})
  ]
}"""

_MEMBER_LIST_QUERY = (
    "{"
    '"items": select('
    f'$sort == "title" => *[{_MEMBER_FILTER}] | order(title asc)[$start...$end]{_MEMBER_SUMMARY},'
    f"*[{_MEMBER_FILTER}] | order(datejoined desc, _createdAt desc)[$start...$end]{_MEMBER_SUMMARY}"
    "),"
    f'"total": count(*[{_MEMBER_FILTER}]),'
    '"publishedTotal": count(*[_type == $memberType && lower(status) == "published"])'
    "}"
)

_MEMBER_DETAIL = """{
  _id, title, description, website, datejoined, status, emails, focalpoint,
  forums, networks, priorityAreas, actionGroups,
  "countryId": country._ref,
  "countryTitle": country->title,
  "regionTitle": country->region->title
}"""

_MEMBER_LINKS = "{_id, title, forums, networks, priorityAreas, actionGroups}"


class SanityContentStore(ContentStore):
    """Content store backed by a Sanity project/dataset."""

    name = "sanity"

    def __init__(self, settings: StoreSettings, *, session: requests.Session | None = None) -> None:
        missing = settings.missing_settings()
        if missing:
            raise StoreConfigurationError(f"Content store is not configured; missing {', '.join(missing)}")
        self.settings = settings
        self.session = session or requests.Session()

    # -- transport -----------------------------------------------------

    def _base_url(self, *, cdn: bool = False) -> str:
        host = "apicdn" if cdn else "api"
        return f"https://{self.settings.project_id}.{host}.sanity.io/{self.settings.api_version}"

    def _headers(self, *, authenticated: bool = True) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if authenticated and self.settings.token:
            headers["Authorization"] = f"Bearer {self.settings.token}"
        return headers

    def query(self, groq: str, params: Mapping[str, Any] | None = None, *, cdn: bool | None = None) -> Any:
        """Run a GROQ query and return its ``result``."""

        use_cdn = self.settings.use_cdn if cdn is None else cdn
        request_params = {"query": groq}
        for key, value in (params or {}).items():
            request_params[f"${key}"] = json.dumps(value)
        url = f"{self._base_url(cdn=use_cdn)}/data/query/{self.settings.dataset}"

        try:
            response = self.session.get(
                url,
                params=request_params,
                headers=self._headers(authenticated=not use_cdn),
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            raise StoreRequestError(f"Content store query failed: {exc}") from exc

        if not response.ok:
            raise StoreRequestError(
                f"Content store query failed ({response.status_code}): {_error_description(response)}",
                status_code=response.status_code,
            )
        return response.json().get("result")

    def commit(self, mutations: Sequence[dict]) -> CommitResult:
        if not self.settings.token:
            raise StoreConfigurationError("Writes require SANITY_WRITE_TOKEN or SANITY_API_TOKEN")

        url = f"{self._base_url()}/data/mutate/{self.settings.dataset}"
        try:
            response = self.session.post(
                url,
                params={"returnIds": "true", "visibility": "sync"},
                json={"mutations": list(mutations)},
                headers=self._headers(),
                timeout=self.settings.timeout,
            )
        except requests.RequestException as exc:
            raise TransactionCommitError(f"Transaction failed: {exc}") from exc

        if not response.ok:
            raise TransactionCommitError(
                f"Transaction rejected ({response.status_code}): {_error_description(response)}"
            )

        payload = response.json()
        logger.debug("Committed %s mutation(s) in transaction %s", len(mutations), payload.get("transactionId"))
        return CommitResult(
            transaction_id=payload.get("transactionId"),
            results=tuple(payload.get("results") or ()),
        )

    def ping(self) -> int:
        return int(self.query("count(*)", cdn=False) or 0)

    # -- generic reads -------------------------------------------------

    def get_document(self, doc_id: str) -> dict | None:
        return self.query("*[_id == $id][0]", {"id": doc_id}, cdn=False)

    def get_documents(self, doc_ids: Iterable[str]) -> list[dict]:
        ids = list(doc_ids)
        if not ids:
            return []
        return self.query("*[_id in $ids]", {"ids": ids}, cdn=False) or []

    def ids_of_type(self, doc_type: str, *, status: str | None = None) -> list[str]:
        groq = "*[_type == $type && ($status == null || lower(status) == $status)]._id"
        return self.query(groq, {"type": doc_type, "status": status}, cdn=False) or []

    def count_of_type(self, doc_type: str, *, status: str | None = None) -> int:
        groq = "count(*[_type == $type && ($status == null || lower(status) == $status)])"
        return int(self.query(groq, {"type": doc_type, "status": status}, cdn=False) or 0)

    def find_referencing(self, doc_ids: Iterable[str]) -> list[dict]:
        ids = list(doc_ids)
        if not ids:
            return []
        return self.query("*[references($ids) && !(_id in $ids)]", {"ids": ids}, cdn=False) or []

    def documents_missing_keys(self, field_name: str) -> list[dict]:
        if not _FIELD_NAME_RE.match(field_name):
            raise ValueError(f"Invalid field name {field_name!r}")
        groq = (
            f"*[defined({field_name}) && count({field_name}[!defined(_key)]) > 0]"
            f'{{_id, "{field_name}": {field_name}}}'
        )
        return self.query(groq, cdn=False) or []

    # -- reference data ------------------------------------------------

    def list_countries(self) -> list[CountryRecord]:
        rows = self.query(
            '*[_type == "country"] | order(title asc)'
            '{_id, title, "regionId": region._ref, "regionTitle": region->title}',
            cdn=False,
        )
        return [
            CountryRecord(
                id=row["_id"],
                title=row.get("title") or "",
                region_id=row.get("regionId"),
                region_title=row.get("regionTitle"),
            )
            for row in rows or []
        ]

    def list_regions(self) -> list[dict]:
        return self.query('*[_type == "region"] | order(title asc){_id, title}', cdn=False) or []

    def list_categories(self, doc_type: str) -> list[dict]:
        return self.query("*[_type == $type] | order(title asc){_id, title}", {"type": doc_type}) or []

    def find_category_by_title(self, doc_type: str, title: str) -> dict | None:
        return self.query(
            "*[_type == $type && lower(title) == $title][0]{_id, title}",
            {"type": doc_type, "title": title.strip().lower()},
            cdn=False,
        )

    # -- members -------------------------------------------------------

    def get_member(self, member_id: str) -> dict | None:
        return self.query(
            f"*[_type == $memberType && _id == $id][0]{_MEMBER_DETAIL}",
            {"memberType": MEMBER_TYPE, "id": member_id},
            cdn=False,
        )

    def search_members(self, term: str, *, limit: int = 20) -> list[dict]:
        term = term.strip()
        if not term:
            return []
        groq = (
            '*[_type == $memberType && lower(status) == "published" && title match $t]'
            '| order(title asc)[0...$limit]{_id, title, "countryTitle": country->title}'
        )
        return self.query(groq, {"memberType": MEMBER_TYPE, "t": f"{term}*", "limit": limit}) or []

    def find_members_by_email(self, email: str) -> list[dict]:
        groq = (
            '*[_type == $memberType && lower(status) == "published" && count(emails[lower(@) == $em]) > 0]'
            '{_id, title, "countryTitle": country->title}'
        )
        return self.query(groq, {"memberType": MEMBER_TYPE, "em": email.strip().lower()}, cdn=False) or []

    def find_member_by_title(self, title: str) -> tuple[dict | None, str]:
        needle = title.strip().lower()
        if not needle:
            return None, "none"
        params = {"memberType": MEMBER_TYPE, "t": needle}
        exact = self.query(f"*[_type == $memberType && lower(title) == $t][0]{_MEMBER_LINKS}", params, cdn=False)
        if exact:
            return exact, "exact"
        prefix = self.query(
            f"*[_type == $memberType && string::startsWith(lower(title), $t)] | order(title asc)[0]{_MEMBER_LINKS}",
            params,
            cdn=False,
        )
        if prefix:
            return prefix, "prefix"
        return None, "none"

    def list_members(self, query: MemberListQuery) -> MemberPage:
        params = {
            "memberType": MEMBER_TYPE,
            "filterRegionIds": list(query.region_ids) or None,
            "qPattern": f"*{query.q.lower()}*" if query.q else None,
            "sort": SORT_TITLE if query.sort == SORT_TITLE else "joined",
            "start": query.offset,
            "end": query.offset + query.per_page,
        }
        result = self.query(_MEMBER_LIST_QUERY, params) or {}
        return MemberPage(
            items=result.get("items") or [],
            total=int(result.get("total") or 0),
            published_total=int(result.get("publishedTotal") or 0),
            page=query.page,
            per_page=query.per_page,
        )

    # -- memberships ---------------------------------------------------

    def memberships_for(self, member_id: str) -> list[dict]:
        groq = (
            f"*[_type == $membershipType && {MEMBERSHIP_MEMBER_FIELD}._ref == $id]"
            f'{{_id, "areaId": {MEMBERSHIP_AREA_FIELD}._ref, contribution, since, website, status}}'
        )
        return self.query(groq, {"membershipType": MEMBERSHIP_TYPE, "id": member_id}, cdn=False) or []


def _error_description(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return (response.text or "").strip()[:200] or response.reason or "unknown error"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return error.get("description") or error.get("type") or json.dumps(error)[:200]
    if isinstance(error, str):
        return payload.get("message") or error
    return json.dumps(payload)[:200]


@dataclass(frozen=True)
class TokenProbe:
    """Outcome of authenticating one configured token; never carries the token itself."""

    name: str
    present: bool
    ok: bool = False
    status_code: int | None = None
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "present": self.present,
            "ok": self.ok,
            "statusCode": self.status_code,
            "error": self.error,
        }


def probe_tokens(settings: StoreSettings, *, session: requests.Session | None = None) -> list[TokenProbe]:
    """Try the write token, then the API token, with a ``count(*)`` query."""

    probes: list[TokenProbe] = []
    candidates = (("SANITY_WRITE_TOKEN", settings.write_token), ("SANITY_API_TOKEN", settings.read_token))
    for name, token in candidates:
        if not token:
            probes.append(TokenProbe(name=name, present=False))
            continue
        store = SanityContentStore(
            StoreSettings(
                project_id=settings.project_id,
                dataset=settings.dataset,
                api_version=settings.api_version,
                write_token=token,
                timeout=settings.timeout,
            ),
            session=session,
        )
        try:
            store.ping()
        except StoreRequestError as exc:
            probes.append(TokenProbe(name=name, present=True, ok=False, status_code=exc.status_code, error=str(exc)))
        else:
            probes.append(TokenProbe(name=name, present=True, ok=True, status_code=200))
    return probes


def pick_working_token(settings: StoreSettings, *, session: requests.Session | None = None) -> str | None:
    """Return the first configured token that authenticates, write token first."""

    tokens = {"SANITY_WRITE_TOKEN": settings.write_token, "SANITY_API_TOKEN": settings.read_token}
    for probe in probe_tokens(settings, session=session):
        if probe.ok:
            logger.info("Using %s for content store writes", probe.name)
            return tokens[probe.name]
        if probe.present:
            logger.warning("%s rejected: %s", probe.name, probe.error)
    return None
