"""Port interfaces for sync operations.

Ports define the contracts between the domain/use cases and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .entities import (
    ItemRecord,
    ItemsPage,
    ListRecord,
    ListSchema,
    ResourceRef,
    SubscriptionRecord,
    SyncResult,
    TrackedList,
)


# ============================================
# Remote Source Ports
# ============================================


class IListSourceAPI(ABC):
    """Port for reading lists and list items from the remote source."""

    @abstractmethod
    async def get_list_metadata(self, ref: ResourceRef) -> ListRecord:
        """Fetch the metadata record of a single list.

        Args:
            ref: Site and list identity

        Returns:
            ListRecord (continuation_token is always None)
        """
        ...

    @abstractmethod
    async def fetch_items_page(
        self,
        ref: ResourceRef,
        link: str | None,
        field_selector: list[str],
    ) -> ItemsPage:
        """Fetch one page of a delta item listing.

        Args:
            ref: Site and list identity
            link: None to start a full listing, otherwise a next-page link
                or a stored delta token to continue from
            field_selector: Remote field names to include

        Returns:
            ItemsPage carrying the items and either a next link, a delta
            link, or neither

        Raises:
            TokenInvalidError: If the source rejects a stored delta token
        """
        ...


class ISubscriptionAPI(ABC):
    """Port for managing change-notification subscriptions."""

    @abstractmethod
    async def list_subscriptions(self) -> list[SubscriptionRecord]:
        """List every subscription owned by this application."""
        ...

    @abstractmethod
    async def create_subscription(
        self,
        resource: str,
        notification_url: str,
        lifecycle_url: str,
        expiry: datetime,
    ) -> SubscriptionRecord:
        """Create a subscription for a resource descriptor."""
        ...

    @abstractmethod
    async def renew_subscription(
        self,
        subscription_id: str,
        new_expiry: datetime,
    ) -> SubscriptionRecord:
        """Extend the expiry of an existing subscription."""
        ...

    @abstractmethod
    async def delete_subscription(self, subscription_id: str) -> None:
        """Delete a subscription by id."""
        ...


# ============================================
# Local Store Ports
# ============================================


class IListRepository(ABC):
    """Port for list metadata and continuation token persistence."""

    @abstractmethod
    async def get_list(self, list_id: str) -> list[ListRecord]:
        """Return the stored metadata record (zero or one element)."""
        ...

    @abstractmethod
    async def insert_lists(self, lists: list[ListRecord]) -> int:
        """Insert list metadata records. Returns the number inserted."""
        ...

    @abstractmethod
    async def update_list(self, record: ListRecord) -> None:
        """Update list metadata without touching the continuation token."""
        ...

    @abstractmethod
    async def delete_list(self, list_id: str) -> None:
        """Delete a list metadata record."""
        ...

    @abstractmethod
    async def get_continuation_token(self, list_id: str) -> str | None:
        """Return the stored continuation token, or None."""
        ...

    @abstractmethod
    async def set_continuation_token(self, list_id: str, token: str) -> None:
        """Persist a continuation token for the list."""
        ...

    @abstractmethod
    async def clear_continuation_token(self, list_id: str) -> None:
        """Remove the continuation token for the list."""
        ...


class IItemRepository(ABC):
    """Port for list item persistence.

    Every method takes the resource's schema so one repository can serve
    any number of per-list tables.
    """

    @abstractmethod
    async def get_items(self, schema: ListSchema, ref: ResourceRef) -> list[ItemRecord]:
        """Return all stored items of a list."""
        ...

    @abstractmethod
    async def upsert_items(self, schema: ListSchema, items: list[ItemRecord]) -> int:
        """Insert items (in one transaction). Returns the number written."""
        ...

    @abstractmethod
    async def update_item(self, schema: ListSchema, item: ItemRecord) -> None:
        """Update one item (in its own transaction)."""
        ...

    @abstractmethod
    async def delete_item(self, schema: ListSchema, ref: ResourceRef, item_id: str) -> None:
        """Delete one item of the list (in its own transaction)."""
        ...


# ============================================
# Scheduling Ports
# ============================================


class IPassRunner(ABC):
    """Port for running one reconciliation pass under per-resource exclusion."""

    @abstractmethod
    async def run_now(self, tracked: TrackedList) -> SyncResult:
        """Run a pass for the list and return its result.

        Raises:
            SyncError: If the pass fails
        """
        ...
