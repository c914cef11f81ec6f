"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- GraphListAPI: Microsoft Graph implementation of IListSourceAPI
- GraphSubscriptionAPI: Microsoft Graph implementation of ISubscriptionAPI
- PostgresListRepository: PostgreSQL implementation of IListRepository
- PostgresItemRepository: PostgreSQL implementation of IItemRepository
- ListItemMapper / SubscriptionMapper: Graph payload mapping
"""

from .field_mapper import ListItemMapper, SubscriptionMapper
from .graph_api_adapter import GraphListAPI, GraphSubscriptionAPI
from .postgres_item_repo import PostgresItemRepository
from .postgres_list_repo import PostgresListRepository

__all__ = [
    # Graph adapters
    "GraphListAPI",
    "GraphSubscriptionAPI",
    "ListItemMapper",
    "SubscriptionMapper",
    # PostgreSQL adapters
    "PostgresItemRepository",
    "PostgresListRepository",
]
