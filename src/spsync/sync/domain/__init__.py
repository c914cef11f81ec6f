"""Domain layer - Pure domain entities, the diff engine and port interfaces.

This layer contains:
- Entities: Pure data structures representing tracked lists, items and subscriptions
- Diff: Full and incremental record comparison
- Ports: Abstract interfaces defining contracts for adapters

No infrastructure dependencies allowed in this layer.
"""

from .diff import diff_delta, diff_full
from .entities import (
    ColumnMapping,
    DiffResult,
    ItemRecord,
    ItemsPage,
    ListRecord,
    ListSchema,
    ResourceRef,
    SubscriptionRecord,
    SyncResult,
    TrackedList,
)
from .ports import (
    IItemRepository,
    IListRepository,
    IListSourceAPI,
    IPassRunner,
    ISubscriptionAPI,
)

__all__ = [
    # Entities
    "ColumnMapping",
    "DiffResult",
    "ItemRecord",
    "ItemsPage",
    "ListRecord",
    "ListSchema",
    "ResourceRef",
    "SubscriptionRecord",
    "SyncResult",
    "TrackedList",
    # Diff
    "diff_delta",
    "diff_full",
    # Ports
    "IItemRepository",
    "IListRepository",
    "IListSourceAPI",
    "IPassRunner",
    "ISubscriptionAPI",
]
