"""
Directory listing helpers.

Translates the query string of the public listing into a
:class:`~community_app.store.MemberListQuery` and builds the hrefs the
template needs for region chips, sort links and the pager, so that every
link preserves the rest of the current filter state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping
from urllib.parse import urlencode

from werkzeug.datastructures import MultiDict

from community_app.store import SORT_JOINED, SORT_TITLE, ContentStore, MemberListQuery, MemberPage

SORT_OPTIONS = (SORT_JOINED, SORT_TITLE)
SORT_LABELS = {SORT_JOINED: "Newest", SORT_TITLE: "A to Z"}


def parse_listing_args(args: MultiDict | Mapping, *, per_page: int = 12) -> MemberListQuery:
    """Read ``q``, repeated ``region``, ``sort`` and ``page`` from request args."""

    q = (args.get("q") or "").strip()

    if hasattr(args, "getlist"):
        raw_regions = args.getlist("region")
    else:
        raw_regions = args.get("region") or []
        if isinstance(raw_regions, str):
            raw_regions = [raw_regions]
    regions: list[str] = []
    for value in raw_regions:
        value = (value or "").strip()
        if value and value not in regions:
            regions.append(value)

    sort = (args.get("sort") or SORT_JOINED).strip().lower()
    if sort not in SORT_OPTIONS:
        sort = SORT_JOINED

    try:
        page = int(args.get("page") or 1)
    except (TypeError, ValueError):
        page = 1

    return MemberListQuery(q=q, region_ids=tuple(regions), sort=sort, page=max(page, 1), per_page=per_page)


def listing_href(query: MemberListQuery, **overrides) -> str:
    """Relative href for the listing with ``overrides`` applied to ``query``."""

    query = replace(query, **overrides)
    params: list[tuple[str, str]] = []
    if query.q:
        params.append(("q", query.q))
    params.extend(("region", region_id) for region_id in query.region_ids)
    if query.sort != SORT_JOINED:
        params.append(("sort", query.sort))
    if query.page > 1:
        params.append(("page", str(query.page)))
    return "/?" + urlencode(params) if params else "/"


def toggle_region(query: MemberListQuery, region_id: str) -> tuple[str, ...]:
    if region_id in query.region_ids:
        return tuple(r for r in query.region_ids if r != region_id)
    return query.region_ids + (region_id,)


@dataclass(frozen=True)
class RegionChip:
    id: str
    title: str
    active: bool
    href: str


@dataclass(frozen=True)
class DirectoryView:
    query: MemberListQuery
    page: MemberPage
    chips: list[RegionChip]
    sort_links: list[tuple[str, str, bool]]
    prev_href: str | None
    next_href: str | None


def build_directory_view(store: ContentStore, query: MemberListQuery) -> DirectoryView:
    page = store.list_members(query)

    # Filtering or sorting always returns to the first page
    chips = [
        RegionChip(
            id=region["_id"],
            title=region.get("title") or region["_id"],
            active=region["_id"] in query.region_ids,
            href=listing_href(query, region_ids=toggle_region(query, region["_id"]), page=1),
        )
        for region in store.list_regions()
    ]
    sort_links = [
        (SORT_LABELS[option], listing_href(query, sort=option, page=1), option == query.sort)
        for option in SORT_OPTIONS
    ]
    prev_href = listing_href(query, page=query.page - 1) if query.page > 1 else None
    next_href = listing_href(query, page=query.page + 1) if query.page < page.total_pages else None
    return DirectoryView(
        query=query,
        page=page,
        chips=chips,
        sort_links=sort_links,
        prev_href=prev_href,
        next_href=next_href,
    )
