"""Sync module - Clean Architecture implementation of SharePoint list sync.

Architecture:
    domain/     - Pure domain entities, the diff engine and port interfaces
    use_cases/  - Reconciliation orchestration
    adapters/   - Infrastructure implementations (PostgreSQL, Microsoft Graph)
"""

from .domain.entities import (
    ItemRecord,
    ListRecord,
    ListSchema,
    ResourceRef,
    SubscriptionRecord,
    SyncResult,
    TrackedList,
)
from .domain.ports import (
    IItemRepository,
    IListRepository,
    IListSourceAPI,
    ISubscriptionAPI,
)

__all__ = [
    # Entities
    "ItemRecord",
    "ListRecord",
    "ListSchema",
    "ResourceRef",
    "SubscriptionRecord",
    "SyncResult",
    "TrackedList",
    # Ports
    "IItemRepository",
    "IListRepository",
    "IListSourceAPI",
    "ISubscriptionAPI",
]
