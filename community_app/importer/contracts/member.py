"""Canonical member import contract.

Defines the fixed set of fields the CSV importer resolves every source row
into, the header synonyms each field accepts, and the column layout used for
header-less files. Adapters consult this module instead of hard-coding header
names so that a new spreadsheet variant only needs an alias here (or a
``--map`` option at the command line).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Tuple

from community_app.importer.normalize import normalize_header


class HeaderMapError(ValueError):
    """Raised when a ``--map`` specification cannot be parsed."""


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical import field."""

    name: str
    description: str
    required: bool = False
    aliases: Tuple[str, ...] = ()
    merge: bool = False
    position: int | None = None

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical header plus aliases, normalized for lookup."""

        return tuple(dict.fromkeys(normalize_header(header) for header in (self.name, *self.aliases)))


MEMBER_CANONICAL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="title",
        description="Institution or organization name.",
        required=True,
        aliases=(
            "name",
            "institution",
            "organization",
            "organisation",
            "org",
            "org name",
            "entry title",
        ),
        position=0,
    ),
    FieldSpec(
        name="country",
        description="Free-text country name, resolved against the country reference set.",
        aliases=("country name", "nation"),
        position=5,
    ),
    FieldSpec(
        name="region",
        description="Free-text region, only used to flag mismatches.",
        aliases=("subregion", "area"),
    ),
    FieldSpec(
        name="website",
        description="Website; a missing scheme is completed to https.",
        aliases=("url", "link"),
        position=1,
    ),
    FieldSpec(
        name="emails",
        description="One or more contact emails separated by commas, semicolons or spaces.",
        aliases=("email", "e-mail", "contact email", "contacts"),
        position=4,
    ),
    FieldSpec(
        name="dateJoined",
        description="Join date in any supported date format.",
        aliases=("date joined", "joined", "join date", "date", "date_joined"),
    ),
    FieldSpec(
        name="focalpoint",
        description="Name of the main contact person.",
        aliases=("focal point", "contact name", "main contact", "focal"),
        position=2,
    ),
    FieldSpec(
        name="description",
        description="Free-text description; both spellings seen in exports are merged.",
        aliases=("desacription",),
        merge=True,
        position=7,
    ),
    FieldSpec(
        name="description2",
        description="Secondary description column.",
        aliases=("description 2", "additional description"),
        position=9,
    ),
)

# Header-less exports carry a job title at 3, an org type at 6 and an unused column at 8.
POSITIONAL_WIDTH = 10


def get_member_field_specs() -> Tuple[FieldSpec, ...]:
    """Return the canonical member field specifications."""

    return MEMBER_CANONICAL_FIELDS


def get_member_field_names() -> Tuple[str, ...]:
    return tuple(field.name for field in MEMBER_CANONICAL_FIELDS)


def get_member_positional_layout() -> Mapping[str, int]:
    """Map field names to column indexes for files without a header row."""

    return {field.name: field.position for field in MEMBER_CANONICAL_FIELDS if field.position is not None}


def _target_lookup() -> Mapping[str, str]:
    lookup: dict[str, str] = {}
    for field in MEMBER_CANONICAL_FIELDS:
        lookup[normalize_header(field.name)] = field.name
    lookup["email"] = "emails"
    lookup["date joined"] = "dateJoined"
    return lookup


def parse_header_map(spec: str | None) -> dict[str, str]:
    """
    Parse ``'title=Institution,country=Nation'`` into ``{field: header}``.

    Target names are matched case-insensitively against the canonical fields.
    A header may list several source columns separated by ``|``; their values
    are merged.
    """

    if not spec:
        return {}

    lookup = _target_lookup()
    mapping: dict[str, str] = {}
    for pair in spec.split(","):
        if not pair.strip():
            continue
        target, sep, header = pair.partition("=")
        if not sep or not target.strip() or not header.strip():
            raise HeaderMapError(f"Invalid --map entry {pair.strip()!r}; expected field=Header.")
        field_name = lookup.get(normalize_header(target))
        if field_name is None:
            supported = ", ".join(get_member_field_names())
            raise HeaderMapError(f"Unknown field {target.strip()!r} in --map. Supported fields: {supported}.")
        mapping[field_name] = header.strip()
    return mapping
