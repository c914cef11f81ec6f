"""Use cases layer - Business logic orchestration for sync operations.

This layer contains use case classes that orchestrate the sync workflow:
- Reconcile one list (metadata, then items in full or delta mode)
- Reconcile every configured list at startup
- Keep Graph change subscriptions in 1:1 correspondence with the config

Use cases depend only on ports, not concrete implementations.
"""

from .delta_state import DeltaStateManager, SyncMode
from .ensure_subscriptions import (
    MAX_SUBSCRIPTION_EXPIRY,
    EnsureSubscriptionsUseCase,
    SubscriptionSettings,
)
from .reconcile_list import ReconcileListUseCase
from .sync_resources import SyncResourcesUseCase

__all__ = [
    "DeltaStateManager",
    "EnsureSubscriptionsUseCase",
    "MAX_SUBSCRIPTION_EXPIRY",
    "ReconcileListUseCase",
    "SubscriptionSettings",
    "SyncMode",
    "SyncResourcesUseCase",
]
