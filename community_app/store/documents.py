"""Document type names and field conventions of the hosted content dataset.

The dataset predates this application, so member entries keep their historic
``post`` type name and ``datejoined`` field; everything else in the package
goes through these constants rather than spelling the names inline.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Tuple

MEMBER_TYPE = "post"
MEMBERSHIP_TYPE = "priorityMembership"
COUNTRY_TYPE = "country"
REGION_TYPE = "region"

# Member fields
DATE_JOINED_FIELD = "datejoined"
COUNTRY_FALLBACK_FIELD = "importCountryRaw"

# Membership fields
MEMBERSHIP_MEMBER_FIELD = "post"
MEMBERSHIP_AREA_FIELD = "priorityArea"


class MemberStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    PUBLISHED = "published"
    DECLINED = "declined"


@dataclass(frozen=True)
class CategoryKind:
    """A membership grouping and where member documents reference it."""

    name: str
    doc_type: str
    member_field: str
    badge: str
    label: str


CATEGORY_KINDS: Tuple[CategoryKind, ...] = (
    CategoryKind(name="forum", doc_type="forum", member_field="forums", badge="forum", label="Forum"),
    CategoryKind(name="network", doc_type="network", member_field="networks", badge="network", label="Network"),
    CategoryKind(
        name="priorityArea",
        doc_type="priorityArea",
        member_field="priorityAreas",
        badge="cop",
        label="Priority Area",
    ),
    CategoryKind(
        name="actionGroup",
        doc_type="actionGroup",
        member_field="actionGroups",
        badge="action",
        label="Action Group",
    ),
)

_KINDS_BY_NAME = {kind.name: kind for kind in CATEGORY_KINDS}


def get_category_kind(name: str) -> CategoryKind:
    try:
        return _KINDS_BY_NAME[name]
    except KeyError:
        supported = ", ".join(sorted(_KINDS_BY_NAME))
        raise ValueError(f"Unknown category kind {name!r}; expected one of {supported}") from None


@dataclass(frozen=True)
class CanonicalRegion:
    id: str
    title: str


CANONICAL_REGIONS: Tuple[CanonicalRegion, ...] = (
    CanonicalRegion("region.africa", "Africa"),
    CanonicalRegion("region.asia-pacific", "Asia-Pacific"),
    CanonicalRegion("region.europe", "Europe"),
    CanonicalRegion("region.lac", "Latin America and the Caribbean"),
    CanonicalRegion("region.north-america", "North America"),
    CanonicalRegion("region.western-asia", "Western Asia"),
)


@dataclass(frozen=True)
class CountryRecord:
    """Read-only country reference data used by the importer."""

    id: str
    title: str
    region_id: str | None = None
    region_title: str | None = None


def new_key() -> str:
    """Random ``_key`` for array members."""

    return uuid.uuid4().hex[:12]


def reference(doc_id: str, *, keyed: bool = False) -> dict:
    ref = {"_type": "reference", "_ref": doc_id}
    if keyed:
        ref["_key"] = new_key()
    return ref


def reference_id(value: object) -> str | None:
    if isinstance(value, dict):
        ref = value.get("_ref")
        return ref if isinstance(ref, str) else None
    return None
