"""FastAPI application receiving Graph notifications.

The app does not own its collaborators: main.py builds the triggers and
the dispatcher and passes them in, so the same objects are shared with the
startup sync.
"""

from typing import Any, Optional

from fastapi import FastAPI

from .dispatcher import ReconcileDispatcher
from .router import health_router, router
from .triggers import ChangeTrigger, LifecycleTrigger


def create_app(
    change_trigger: ChangeTrigger,
    lifecycle_trigger: LifecycleTrigger,
    dispatcher: ReconcileDispatcher,
    pool: Optional[Any] = None,
) -> FastAPI:
    """Build the webhook application.

    Args:
        change_trigger: Handles change notification batches
        lifecycle_trigger: Handles lifecycle notification batches
        dispatcher: Background reconciliation (reported on /health)
        pool: Optional asyncpg pool (reported on /health)
    """
    app = FastAPI(
        title="SharePoint List Sync",
        description="Receives Microsoft Graph change notifications for tracked SharePoint lists.",
        version="1.0.0",
    )
    app.state.change_trigger = change_trigger
    app.state.lifecycle_trigger = lifecycle_trigger
    app.state.dispatcher = dispatcher
    app.state.pool = pool

    app.include_router(router)
    app.include_router(health_router)
    return app
