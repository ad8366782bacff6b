"""Canonical import contract helpers for importer adapters."""

from __future__ import annotations

from .member import (
    MEMBER_CANONICAL_FIELDS,
    POSITIONAL_WIDTH,
    FieldSpec,
    HeaderMapError,
    get_member_field_names,
    get_member_field_specs,
    get_member_positional_layout,
    parse_header_map,
)

__all__ = [
    "FieldSpec",
    "HeaderMapError",
    "MEMBER_CANONICAL_FIELDS",
    "POSITIONAL_WIDTH",
    "get_member_field_specs",
    "get_member_field_names",
    "get_member_positional_layout",
    "parse_header_map",
]
