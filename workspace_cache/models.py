"""Typed schema for the persisted workspace cache.

The JSON document uses camelCase keys (``titleNormalized``, ``lastSync``,
``syncErrors``) while Python code uses snake_case attributes. Always dump
with ``by_alias=True``.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .aliases import generate_aliases, normalize_title
from .clock import age_ms
from .errors import ValidationError
from .identifiers import normalize_id

CACHE_VERSION = "2.0.0"
LEGACY_CACHE_VERSIONS: tuple[str, ...] = ("1.0.0",)
DEFAULT_MAX_SYNC_ERRORS = 20

ObjectKind = Literal["database", "page"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CacheEntry(_CamelModel):
    """Summary of one remote object, as last observed by a sync.

    Attributes:
        id: Canonical 32-hex identifier, normalized (no dashes, lowercase)
        title: Display title as last seen remotely
        title_normalized: ``title`` lowercased and trimmed
        aliases: Ordered lookup variants of the title; always contains title_normalized
        kind: Object kind, used to filter resolution
        archived: Archived entries are skipped unless explicitly requested
        url, last_edited_time, property_summary: Descriptive metadata only
    """

    id: str
    title: str
    title_normalized: str = ""
    aliases: list[str] = Field(default_factory=list)
    kind: ObjectKind = "database"
    archived: bool = False
    url: Optional[str] = None
    last_edited_time: Optional[str] = None
    property_summary: dict[str, str] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def id_must_be_canonical(cls, value: str) -> str:
        try:
            return normalize_id(value)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc

    @model_validator(mode="after")
    def fill_derived_fields(self) -> "CacheEntry":
        if not self.title_normalized:
            self.title_normalized = normalize_title(self.title)
        if not self.aliases:
            self.aliases = generate_aliases(self.title)
        if self.title_normalized not in self.aliases:
            self.aliases.insert(0, self.title_normalized)
        return self

    def lookup_keys(self) -> list[str]:
        """Normalized title followed by every alias (no duplicates)."""
        return list(dict.fromkeys([self.title_normalized, *self.aliases]))


class SyncErrorRecord(_CamelModel):
    timestamp: datetime
    message: str
    item_id: Optional[str] = None


class WorkspaceCache(_CamelModel):
    """Root document of the cache file.

    ``last_sync`` is None until the first successful full sync. ``last_attempt``
    records when any sync last finished, even a partial one, so a sync that
    keeps failing on one object is not retried on every lookup.
    """

    version: str = CACHE_VERSION
    last_sync: Optional[datetime] = None
    last_attempt: Optional[datetime] = None
    entries: list[CacheEntry] = Field(default_factory=list)
    sync_errors: list[SyncErrorRecord] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def version_must_be_current(cls, value: str) -> str:
        if value != CACHE_VERSION:
            raise ValueError(f"unsupported cache version {value!r} (expected {CACHE_VERSION!r})")
        return value

    @field_validator("entries")
    @classmethod
    def ids_must_be_unique(cls, value: list[CacheEntry]) -> list[CacheEntry]:
        seen: set[str] = set()
        for entry in value:
            if entry.id in seen:
                raise ValueError(f"duplicate entry id {entry.id}")
            seen.add(entry.id)
        return value

    @classmethod
    def empty(cls) -> "WorkspaceCache":
        return cls()

    def get(self, entry_id: str) -> Optional[CacheEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def upsert(self, entry: CacheEntry) -> bool:
        """Replace the entry with the same id, or append it.

        Returns:
            True if an existing entry was replaced, False if appended
        """
        for index, existing in enumerate(self.entries):
            if existing.id == entry.id:
                self.entries[index] = entry
                return True
        self.entries.append(entry)
        return False

    def record_sync_error(
        self,
        message: str,
        now: datetime,
        item_id: Optional[str] = None,
        limit: int = DEFAULT_MAX_SYNC_ERRORS,
    ) -> None:
        """Append a diagnostic record, keeping only the newest ``limit`` records."""
        self.sync_errors.append(SyncErrorRecord(timestamp=now, message=message, item_id=item_id))
        if len(self.sync_errors) > limit:
            del self.sync_errors[: len(self.sync_errors) - limit]

    def age_ms(self, now: datetime) -> Optional[int]:
        if self.last_sync is None:
            return None
        return age_ms(self.last_sync, now)

    def is_stale(self, ttl_ms: int, now: datetime) -> bool:
        age = self.age_ms(now)
        return age is None or age > ttl_ms

    def attempted_within(self, window_ms: int, now: datetime) -> bool:
        """True if a sync finished less than ``window_ms`` ago."""
        return self.last_attempt is not None and age_ms(self.last_attempt, now) < window_ms

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def migrate_legacy_document(data: dict[str, Any]) -> dict[str, Any]:
    """Convert a version 1.0.0 document to the current layout.

    Version 1.0.0 kept every entry under ``databases``, had no ``archived``
    flag or ``syncErrors`` list, and stored the full property schema.
    """
    entries = []
    for item in data.get("databases") or []:
        properties = item.get("properties") or {}
        entries.append(
            {
                "id": item["id"],
                "title": item.get("title", "Untitled"),
                "titleNormalized": item.get("titleNormalized", ""),
                "aliases": item.get("aliases") or [],
                "kind": "database",
                "url": item.get("url"),
                "lastEditedTime": item.get("lastEditedTime"),
                "propertySummary": {
                    name: prop.get("type", "unknown") if isinstance(prop, dict) else str(prop)
                    for name, prop in properties.items()
                },
            }
        )
    return {
        "version": CACHE_VERSION,
        "lastSync": data.get("lastSync"),
        "entries": entries,
        "syncErrors": [],
    }


class CacheFilter(BaseModel):
    """Selection criteria for listing cached entries."""

    model_config = {"frozen": True}

    kind: Optional[ObjectKind] = None
    query: Optional[str] = Field(None, description="Case-insensitive substring of the title or any alias")
    include_archived: bool = False

    def matches(self, entry: CacheEntry) -> bool:
        if self.kind is not None and entry.kind != self.kind:
            return False
        if entry.archived and not self.include_archived:
            return False
        if self.query:
            needle = self.query.lower().strip()
            return any(needle in key for key in entry.lookup_keys())
        return True


class CacheStats(BaseModel):
    count: int
    age_ms: Optional[int]
    size_bytes: int
    last_sync: Optional[datetime]
    last_attempt: Optional[datetime] = None
    is_stale: bool
    version: str
    path: str
    sync_error_count: int
