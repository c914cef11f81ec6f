"""Domain entities for sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the tracked SharePoint lists, their items, the Graph change
subscriptions that keep them fresh, and the results of reconciliation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

T = TypeVar("T")

RESOURCE_SIGNATURE = "sites/{site_id}/lists/{list_id}"

# Columns every items table carries in front of the configured ones
ITEM_METADATA_COLUMNS = ("id", "list_id", "site_id", "etag")


@dataclass(frozen=True)
class ResourceRef:
    """Immutable identity of a tracked list, sourced from configuration."""

    site_id: str
    list_id: str

    @property
    def descriptor(self) -> str:
        """Canonical resource string used by Graph subscriptions."""
        return RESOURCE_SIGNATURE.format(site_id=self.site_id, list_id=self.list_id)

    @classmethod
    def from_descriptor(cls, resource: str) -> "ResourceRef":
        """Parse a ``sites/{site}/lists/{list}`` resource string.

        Raises:
            ValueError: If the string does not follow the signature
        """
        parts = resource.strip("/").split("/")
        if len(parts) < 4 or parts[0] != "sites" or parts[2] != "lists" or not parts[1] or not parts[3]:
            raise ValueError(
                f"expected resource format '{RESOURCE_SIGNATURE}', got '{resource}'"
            )
        return cls(site_id=parts[1], list_id=parts[3])

    def __str__(self) -> str:
        return self.descriptor


@dataclass(frozen=True)
class ColumnMapping:
    """One configured column: local database column <- remote field name."""

    column: str
    field: str


@dataclass(frozen=True)
class ListSchema:
    """Typed per-resource schema: target table plus ordered field list."""

    table_name: str
    columns: tuple[ColumnMapping, ...]

    @property
    def field_selector(self) -> list[str]:
        """Remote field names to request, in column order."""
        return [c.field for c in self.columns]

    @property
    def column_names(self) -> list[str]:
        return [c.column for c in self.columns]


@dataclass(frozen=True)
class TrackedList:
    """A configured resource together with the schema it is stored under."""

    ref: ResourceRef
    schema: ListSchema

    @property
    def descriptor(self) -> str:
        return self.ref.descriptor


@dataclass
class ListRecord:
    """Metadata of one tracked SharePoint list.

    Maps to the sharepoint_lists table. The continuation token lives on the
    same row (delta_link column) but is only written through the token
    operations of the list repository.
    """

    id: str
    site_id: str
    revision_tag: str
    name: str | None = None
    display_name: str | None = None
    continuation_token: str | None = None


@dataclass
class ItemRecord:
    """One SharePoint list item.

    ``fields`` maps remote field names to values. An empty revision tag in
    an incremental change-set is the source's deletion signal.
    """

    id: str
    list_id: str
    site_id: str
    revision_tag: str = ""
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def is_deleted(self) -> bool:
        return not self.revision_tag


@dataclass
class SubscriptionRecord:
    """A remote change-notification subscription."""

    id: str
    resource: str
    notification_url: str
    lifecycle_url: str | None = None
    expiry: datetime | None = None
    change_type: str = "updated"

    @property
    def is_expired(self) -> bool:
        if self.expiry is None:
            return False
        return self.expiry < datetime.now(timezone.utc)


@dataclass
class DiffResult(Generic[T]):
    """Insert/update/delete sets computed for one reconciliation pass."""

    to_insert: list[T] = field(default_factory=list)
    to_update: list[T] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_delete)

    def counts(self) -> dict[str, int]:
        return {
            "to_insert": len(self.to_insert),
            "to_update": len(self.to_update),
            "to_delete": len(self.to_delete),
        }


@dataclass
class ItemsPage:
    """One page of a (delta) item listing.

    Exactly one of ``next_link`` / ``delta_link`` is set on a well-formed
    page; neither means pagination is exhausted without a token.
    """

    items: list[ItemRecord] = field(default_factory=list)
    next_link: str | None = None
    delta_link: str | None = None


@dataclass
class SyncResult:
    """Result of one reconciliation pass for a single resource."""

    resource: str
    mode: str
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    token_saved: bool = False
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.synced_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses and logging."""
        return {
            "resource": self.resource,
            "mode": self.mode,
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "token_saved": self.token_saved,
            "synced_at": self.synced_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }
