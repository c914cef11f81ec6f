"""Ensure Subscriptions Use Case - keeps Graph subscriptions 1:1 with config.

State is re-derived from a live listing of remote subscriptions every run;
nothing about subscription identity is persisted locally.

Workflow:
1. List every remote subscription once
2. For each configured resource:
   - keep the first subscription whose URLs match the external base URL
   - delete subscriptions with stale URLs and any duplicates
   - create a subscription if none was kept
3. Delete orphans (remote subscriptions for resources no longer configured)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ...api.exceptions import ConfigurationError, SubscriptionConflictError
from ..domain.entities import SubscriptionRecord, TrackedList
from ..domain.ports import ISubscriptionAPI

logger = logging.getLogger(__name__)

# Graph's maximum subscription lifetime for list resources, in minutes
MAX_SUBSCRIPTION_EXPIRY = 42300

NOTIFICATION_PATH = "/webhook/sharepoint-notification"
LIFECYCLE_PATH = "/webhook/subscription-notification"


@dataclass(frozen=True)
class SubscriptionSettings:
    """Where notifications are delivered and how long subscriptions live.

    Attributes:
        external_base_url: Publicly reachable base URL of the webhook server
        expiry_minutes: Lifetime requested when creating a subscription
        renewal_minutes: Lifetime requested when renewing a subscription
    """

    external_base_url: str
    expiry_minutes: int = 2880
    renewal_minutes: int = 4320

    def __post_init__(self):
        for name in ("expiry_minutes", "renewal_minutes"):
            value = getattr(self, name)
            if value <= 0 or value > MAX_SUBSCRIPTION_EXPIRY:
                raise ConfigurationError(
                    f"{name} must be between 1 and {MAX_SUBSCRIPTION_EXPIRY}, got {value}"
                )

    @property
    def notification_url(self) -> str:
        return self.external_base_url.rstrip("/") + NOTIFICATION_PATH

    @property
    def lifecycle_url(self) -> str:
        return self.external_base_url.rstrip("/") + LIFECYCLE_PATH

    def creation_expiry(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(timezone.utc)) + timedelta(minutes=self.expiry_minutes)

    def renewal_expiry(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(timezone.utc)) + timedelta(minutes=self.renewal_minutes)


class EnsureSubscriptionsUseCase:
    """Reconcile remote subscriptions against the tracked lists.

    Example:
        use_case = EnsureSubscriptionsUseCase(
            subscription_api=GraphSubscriptionAPI(client, mapper),
            settings=SubscriptionSettings("https://sync.example.com"),
        )
        subscriptions = await use_case.execute(tracked_lists)
    """

    def __init__(self, subscription_api: ISubscriptionAPI, settings: SubscriptionSettings):
        self.api = subscription_api
        self.settings = settings

    def _is_current(self, sub: SubscriptionRecord) -> bool:
        return (
            sub.notification_url == self.settings.notification_url
            and sub.lifecycle_url == self.settings.lifecycle_url
        )

    async def execute(self, tracked: list[TrackedList]) -> list[SubscriptionRecord]:
        """Ensure exactly one correctly addressed subscription per resource.

        Args:
            tracked: Configured lists

        Returns:
            The kept and newly created subscriptions, in configuration order

        Raises:
            SourceError: If any remote call fails (the run is aborted)
        """
        remote = await self.api.list_subscriptions()
        logger.info(
            f"Reconciling subscriptions: {len(remote)} remote, {len(tracked)} configured"
        )

        by_resource: dict[str, list[SubscriptionRecord]] = {}
        for sub in remote:
            by_resource.setdefault(sub.resource, []).append(sub)

        ensured: list[SubscriptionRecord] = []
        configured: set[str] = set()

        for item in tracked:
            descriptor = item.descriptor
            if descriptor in configured:
                continue
            configured.add(descriptor)

            kept = None
            for sub in by_resource.get(descriptor, []):
                if kept is None and self._is_current(sub):
                    kept = sub
                    continue
                if kept is None:
                    conflict = SubscriptionConflictError(
                        resource=descriptor,
                        subscription_id=sub.id,
                        expected_url=self.settings.notification_url,
                        actual_url=sub.notification_url,
                    )
                    logger.warning(f"Recreating subscription: {conflict}")
                else:
                    logger.info(f"Deleting duplicate subscription {sub.id} for {descriptor}")
                await self.api.delete_subscription(sub.id)

            if kept is None:
                kept = await self.api.create_subscription(
                    descriptor,
                    self.settings.notification_url,
                    self.settings.lifecycle_url,
                    self.settings.creation_expiry(),
                )
                logger.info(f"Created subscription {kept.id} for {descriptor}")
            else:
                logger.info(f"Subscription {kept.id} for {descriptor} is up to date")
            ensured.append(kept)

        for resource, subs in by_resource.items():
            if resource in configured:
                continue
            for sub in subs:
                logger.info(f"Deleting orphaned subscription {sub.id} for {resource}")
                await self.api.delete_subscription(sub.id)

        return ensured
