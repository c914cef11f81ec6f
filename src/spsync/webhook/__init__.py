"""Webhook module - inbound Graph notifications.

Components:
    ReconcileDispatcher: Per-resource single-flight background reconciliation
    ChangeTrigger: Change notification -> reconciliation of the named lists
    LifecycleTrigger: Lifecycle notification -> subscription renewal
    create_app: FastAPI application wiring the triggers to HTTP endpoints
"""

from .app import create_app
from .dispatcher import ReconcileDispatcher
from .triggers import ChangeTrigger, LifecycleTrigger, TriggerState

__all__ = [
    "ChangeTrigger",
    "LifecycleTrigger",
    "ReconcileDispatcher",
    "TriggerState",
    "create_app",
]
