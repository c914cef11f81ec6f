"""FastAPI router for Graph webhook notifications.

Graph validates a notification URL by POSTing with a ``validationToken``
query parameter that has to be echoed back as text/plain within seconds.
Every other POST carries a JSON notification batch.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from ..api.database import check_database_health
from ..api.exceptions import MalformedNotificationError, SourceError
from .dispatcher import ReconcileDispatcher
from .triggers import ChangeTrigger, LifecycleTrigger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhook"])
health_router = APIRouter(tags=["Health"])


# ========== Dependencies ==========


def get_change_trigger(request: Request) -> ChangeTrigger:
    return request.app.state.change_trigger


def get_lifecycle_trigger(request: Request) -> LifecycleTrigger:
    return request.app.state.lifecycle_trigger


def get_dispatcher(request: Request) -> ReconcileDispatcher:
    return request.app.state.dispatcher


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedNotificationError(f"Request body is not valid JSON: {e}")


def _bad_request(error: MalformedNotificationError) -> JSONResponse:
    logger.warning(f"Rejected notification: {error.message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": error.code, "detail": error.message},
    )


# ========== Endpoints ==========


@router.post("/sharepoint-notification")
async def sharepoint_notification(
    request: Request,
    validation_token: Optional[str] = Query(default=None, alias="validationToken"),
    trigger: ChangeTrigger = Depends(get_change_trigger),
):
    """Receive change notifications for tracked SharePoint lists."""
    if validation_token is not None:
        logger.info("Answering subscription validation request (change notifications)")
        return PlainTextResponse(validation_token)

    logger.info("Received SharePoint change notification")
    try:
        payload = await _read_json(request)
        resources = trigger.handle(payload)
    except MalformedNotificationError as e:
        return _bad_request(e)

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"dispatched": resources},
    )


@router.post("/subscription-notification")
async def subscription_notification(
    request: Request,
    validation_token: Optional[str] = Query(default=None, alias="validationToken"),
    trigger: LifecycleTrigger = Depends(get_lifecycle_trigger),
):
    """Receive lifecycle notifications and renew the named subscriptions."""
    if validation_token is not None:
        logger.info("Answering subscription validation request (lifecycle notifications)")
        return PlainTextResponse(validation_token)

    logger.info("Received subscription lifecycle notification")
    try:
        payload = await _read_json(request)
        renewed = await trigger.handle(payload)
    except MalformedNotificationError as e:
        return _bad_request(e)
    except SourceError as e:
        logger.error(f"Failed to renew subscription: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": e.code, "detail": "failed to renew subscription"},
        )

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"renewed": [r.id for r in renewed]},
    )


@router.get("/ping")
async def ping():
    """Reachability check used at startup."""
    return {"status": "ok"}


@health_router.get("/health")
async def health(
    request: Request,
    dispatcher: ReconcileDispatcher = Depends(get_dispatcher),
):
    """Process status: reconciliation activity and database health."""
    pool = getattr(request.app.state, "pool", None)
    database = await check_database_health(pool) if pool is not None else None
    healthy = not dispatcher.last_errors and (database is None or database["healthy"])
    return {
        "status": "healthy" if healthy else "degraded",
        "database": database,
        **dispatcher.status(),
    }
