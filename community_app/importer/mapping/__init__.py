"""Loading of the synonym tables that back country and region resolution."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Mapping

import yaml

from community_app.importer.normalize import normalize_key, region_key

MAPPING_DIR = Path(__file__).resolve().parent
COUNTRY_SYNONYMS_PATH = MAPPING_DIR / "country_synonyms.yaml"
REGION_SYNONYMS_PATH = MAPPING_DIR / "region_synonyms.yaml"


class MappingLoadError(RuntimeError):
    """Raised when a synonym table cannot be loaded or validated."""


@dataclass(frozen=True)
class SynonymTable:
    version: int
    kind: str
    entries: Mapping[str, tuple[str, ...]]
    checksum: str

    def candidates(self, key: str) -> tuple[str, ...]:
        return self.entries.get(key, ())

    def __len__(self) -> int:
        return len(self.entries)

    def describe(self) -> dict:
        return {"kind": self.kind, "version": self.version, "checksum": self.checksum, "entries": len(self)}


def _compute_checksum(raw: object) -> str:
    payload = json.dumps(raw, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def load_synonyms(
    path: str | Path,
    *,
    kind: str | None = None,
    key_normalizer: Callable[[str], str] = normalize_key,
) -> SynonymTable:
    """
    Load and validate a YAML synonym table.

    Each entry maps an alternate name to one canonical title or an ordered
    list of candidate titles. Keys are normalized with ``key_normalizer``.
    """

    path = Path(path)
    if not path.exists():
        raise MappingLoadError(f"Synonym file not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - YAML parser errors
        raise MappingLoadError(f"Failed to parse synonym YAML at {path}: {exc}") from exc

    try:
        version = int(raw["version"])
        table_kind = str(raw["kind"]).strip()
        synonyms_payload = raw["synonyms"]
    except KeyError as exc:
        raise MappingLoadError(f"Missing required synonym attribute: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise MappingLoadError(f"Invalid synonym attribute: {exc}") from exc

    if kind is not None and table_kind != kind:
        raise MappingLoadError(f"{path} holds {table_kind!r} synonyms, expected {kind!r}")
    if not isinstance(synonyms_payload, Mapping):
        raise MappingLoadError(f"'synonyms' in {path} must be a mapping")

    entries: dict[str, tuple[str, ...]] = {}
    for alias, targets in synonyms_payload.items():
        key = key_normalizer(str(alias))
        if not key:
            raise MappingLoadError(f"Empty synonym key in {path}")
        if isinstance(targets, str):
            targets = [targets]
        if not isinstance(targets, list) or not targets:
            raise MappingLoadError(f"Synonym {alias!r} must map to a title or a list of titles")
        if key in entries:
            raise MappingLoadError(f"Duplicate synonym {alias!r} in {path}")
        entries[key] = tuple(str(target).strip() for target in targets if str(target).strip())

    return SynonymTable(
        version=version,
        kind=table_kind,
        entries=entries,
        checksum=_compute_checksum(raw),
    )


@lru_cache(maxsize=None)
def get_country_synonyms() -> SynonymTable:
    return load_synonyms(COUNTRY_SYNONYMS_PATH, kind="country")


@lru_cache(maxsize=None)
def get_region_synonyms() -> SynonymTable:
    return load_synonyms(REGION_SYNONYMS_PATH, kind="region", key_normalizer=region_key)
