"""Change and lifecycle triggers.

ChangeTrigger turns a validated change notification into background
reconciliation of exactly the resources it names. LifecycleTrigger renews
the subscription a lifecycle notice refers to. Neither performs any diff
logic or local retry; redelivery by Graph is what makes delivery reliable.
"""

import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..api.exceptions import MalformedNotificationError, UnknownResourceError
from ..sync.domain.entities import ResourceRef, SubscriptionRecord, TrackedList
from ..sync.domain.ports import ISubscriptionAPI
from ..sync.use_cases.ensure_subscriptions import SubscriptionSettings
from .dispatcher import ReconcileDispatcher
from .schemas import (
    LIST_ITEM_ODATA_TYPE,
    ChangeNotificationBatch,
    LifecycleNotificationBatch,
)

logger = logging.getLogger(__name__)


class TriggerState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


class ChangeTrigger:
    """Validates change notifications and dispatches reconciliation.

    Idle -> Validating -> Dispatching -> Idle. A notification that fails
    validation goes straight back to Idle without dispatching anything.
    """

    def __init__(self, tracked: list[TrackedList], dispatcher: ReconcileDispatcher):
        self.tracked = {t.ref: t for t in tracked}
        self.dispatcher = dispatcher
        self.state = TriggerState.IDLE

    def _validate(self, payload: Any) -> list[TrackedList]:
        try:
            batch = ChangeNotificationBatch.model_validate(payload)
        except ValidationError as e:
            raise MalformedNotificationError(
                f"Invalid change notification: {_validation_message(e)}"
            )

        matched: list[TrackedList] = []
        unknown: list[str] = []
        for notification in batch.value:
            data = notification.resource_data
            if data is not None and data.odata_type and data.odata_type != LIST_ITEM_ODATA_TYPE:
                raise MalformedNotificationError(
                    f"Invalid data type '{data.odata_type}', expected '{LIST_ITEM_ODATA_TYPE}'"
                )
            try:
                ref = ResourceRef.from_descriptor(notification.resource)
            except ValueError as e:
                raise MalformedNotificationError(str(e))

            tracked = self.tracked.get(ref)
            if tracked is None:
                unknown.append(notification.resource)
            elif tracked not in matched:
                matched.append(tracked)

        for resource in unknown:
            logger.warning(f"Ignoring notification for untracked resource {resource}")
        if not matched:
            raise UnknownResourceError(unknown[0])
        return matched

    def handle(self, payload: Any) -> list[str]:
        """Validate a notification batch and dispatch its resources.

        Returns immediately; reconciliation runs in the background.

        Returns:
            Descriptors of the resources a pass was requested for

        Raises:
            MalformedNotificationError: If the payload is invalid or names
                no tracked resource (nothing is dispatched)
        """
        self.state = TriggerState.VALIDATING
        try:
            matched = self._validate(payload)
            self.state = TriggerState.DISPATCHING
            for tracked in matched:
                started = self.dispatcher.trigger(tracked)
                logger.info(
                    f"Change notification for {tracked.descriptor} "
                    f"({'dispatched' if started else 'coalesced'})"
                )
            return [t.descriptor for t in matched]
        finally:
            self.state = TriggerState.IDLE


class LifecycleTrigger:
    """Renews subscriptions named by lifecycle notifications."""

    def __init__(self, subscription_api: ISubscriptionAPI, settings: SubscriptionSettings):
        self.api = subscription_api
        self.settings = settings

    def parse(self, payload: Any) -> list[str]:
        try:
            batch = LifecycleNotificationBatch.model_validate(payload)
        except ValidationError as e:
            raise MalformedNotificationError(
                f"Invalid lifecycle notification: {_validation_message(e)}"
            )
        ids: list[str] = []
        for notification in batch.value:
            if notification.subscription_id not in ids:
                ids.append(notification.subscription_id)
        return ids

    async def handle(self, payload: Any) -> list[SubscriptionRecord]:
        """Renew every subscription in the batch.

        Raises:
            MalformedNotificationError: If no subscription id can be read
            SourceError: If a renewal call fails
        """
        renewed = []
        for subscription_id in self.parse(payload):
            record = await self.api.renew_subscription(
                subscription_id, self.settings.renewal_expiry()
            )
            logger.info(f"Renewed subscription {subscription_id} until {record.expiry}")
            renewed.append(record)
        return renewed
