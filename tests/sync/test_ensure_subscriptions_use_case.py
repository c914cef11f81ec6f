"""Tests for EnsureSubscriptionsUseCase and SubscriptionSettings."""

from datetime import datetime, timedelta, timezone

import pytest

from spsync.api.exceptions import ConfigurationError, ServerError
from spsync.sync.domain.entities import (
    ColumnMapping,
    ListSchema,
    ResourceRef,
    SubscriptionRecord,
    TrackedList,
)
from spsync.sync.domain.ports import ISubscriptionAPI
from spsync.sync.use_cases.ensure_subscriptions import (
    MAX_SUBSCRIPTION_EXPIRY,
    EnsureSubscriptionsUseCase,
    SubscriptionSettings,
)

BASE_URL = "https://sync.example.com"
SETTINGS = SubscriptionSettings(BASE_URL)
NOTIFY = f"{BASE_URL}/webhook/sharepoint-notification"
LIFECYCLE = f"{BASE_URL}/webhook/subscription-notification"


def tracked(list_id: str) -> TrackedList:
    return TrackedList(
        ref=ResourceRef(site_id="site-1", list_id=list_id),
        schema=ListSchema(f"sp_{list_id}", (ColumnMapping("title", "Title"),)),
    )


def sub(sub_id: str, list_id: str, notification_url: str = NOTIFY, lifecycle_url: str = LIFECYCLE):
    return SubscriptionRecord(
        id=sub_id,
        resource=f"sites/site-1/lists/{list_id}",
        notification_url=notification_url,
        lifecycle_url=lifecycle_url,
    )


class MockSubscriptionAPI(ISubscriptionAPI):
    """Mock implementation of ISubscriptionAPI backed by a dict."""

    def __init__(self, existing: list[SubscriptionRecord] | None = None, fail_create: bool = False):
        self.subscriptions = {s.id: s for s in (existing or [])}
        self.fail_create = fail_create
        self.created: list[SubscriptionRecord] = []
        self.deleted: list[str] = []
        self.renewed: list[tuple[str, datetime]] = []
        self.list_calls = 0
        self._next_id = 1

    async def list_subscriptions(self) -> list[SubscriptionRecord]:
        self.list_calls += 1
        return list(self.subscriptions.values())

    async def create_subscription(self, resource, notification_url, lifecycle_url, expiry):
        if self.fail_create:
            raise ServerError("Graph unavailable", status_code=503)
        record = SubscriptionRecord(
            id=f"new-{self._next_id}",
            resource=resource,
            notification_url=notification_url,
            lifecycle_url=lifecycle_url,
            expiry=expiry,
        )
        self._next_id += 1
        self.subscriptions[record.id] = record
        self.created.append(record)
        return record

    async def renew_subscription(self, subscription_id, new_expiry):
        self.renewed.append((subscription_id, new_expiry))
        record = self.subscriptions[subscription_id]
        record.expiry = new_expiry
        return record

    async def delete_subscription(self, subscription_id: str) -> None:
        self.deleted.append(subscription_id)
        self.subscriptions.pop(subscription_id, None)


class TestSubscriptionSettings:
    def test_urls_from_base(self):
        settings = SubscriptionSettings("https://sync.example.com/")

        assert settings.notification_url == NOTIFY
        assert settings.lifecycle_url == LIFECYCLE

    def test_expiry_windows(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        settings = SubscriptionSettings(BASE_URL, expiry_minutes=60, renewal_minutes=120)

        assert settings.creation_expiry(now) == now + timedelta(minutes=60)
        assert settings.renewal_expiry(now) == now + timedelta(minutes=120)

    @pytest.mark.parametrize("minutes", [0, -5, MAX_SUBSCRIPTION_EXPIRY + 1])
    def test_rejects_out_of_range_windows(self, minutes):
        with pytest.raises(ConfigurationError):
            SubscriptionSettings(BASE_URL, expiry_minutes=minutes)
        with pytest.raises(ConfigurationError):
            SubscriptionSettings(BASE_URL, renewal_minutes=minutes)

    def test_accepts_maximum(self):
        settings = SubscriptionSettings(BASE_URL, expiry_minutes=MAX_SUBSCRIPTION_EXPIRY)

        assert settings.expiry_minutes == MAX_SUBSCRIPTION_EXPIRY


class TestEnsureSubscriptionsUseCase:
    """Tests for EnsureSubscriptionsUseCase."""

    async def test_creates_missing_subscriptions(self):
        api = MockSubscriptionAPI()
        before = datetime.now(timezone.utc)

        result = await EnsureSubscriptionsUseCase(api, SETTINGS).execute(
            [tracked("a"), tracked("b")]
        )

        assert [s.resource for s in result] == [
            "sites/site-1/lists/a",
            "sites/site-1/lists/b",
        ]
        assert len(api.created) == 2
        created = api.created[0]
        assert created.notification_url == NOTIFY
        assert created.lifecycle_url == LIFECYCLE
        assert created.expiry >= before + timedelta(minutes=SETTINGS.expiry_minutes)
        assert api.deleted == []

    async def test_keeps_current_subscription(self):
        api = MockSubscriptionAPI([sub("s1", "a")])

        result = await EnsureSubscriptionsUseCase(api, SETTINGS).execute([tracked("a")])

        assert [s.id for s in result] == ["s1"]
        assert api.created == []
        assert api.deleted == []

    async def test_stale_url_is_deleted_and_recreated_once(self):
        """Changed base URL: the old subscription goes, one new one is made."""
        api = MockSubscriptionAPI(
            [sub("old", "a", notification_url="https://old.example.com/webhook/sharepoint-notification")]
        )
        use_case = EnsureSubscriptionsUseCase(api, SETTINGS)

        result = await use_case.execute([tracked("a")])

        assert api.deleted == ["old"]
        assert len(api.created) == 1
        assert result[0].notification_url == NOTIFY

        # A second run is a no-op
        await use_case.execute([tracked("a")])
        assert len(api.created) == 1
        assert api.deleted == ["old"]

    async def test_stale_lifecycle_url_counts_as_mismatch(self):
        api = MockSubscriptionAPI([sub("s1", "a", lifecycle_url=None)])

        await EnsureSubscriptionsUseCase(api, SETTINGS).execute([tracked("a")])

        assert api.deleted == ["s1"]
        assert len(api.created) == 1

    async def test_duplicates_are_deleted(self):
        api = MockSubscriptionAPI([sub("s1", "a"), sub("s2", "a"), sub("s3", "a")])

        result = await EnsureSubscriptionsUseCase(api, SETTINGS).execute([tracked("a")])

        assert [s.id for s in result] == ["s1"]
        assert sorted(api.deleted) == ["s2", "s3"]
        assert api.created == []

    async def test_orphans_are_deleted(self):
        api = MockSubscriptionAPI([sub("s1", "a"), sub("s2", "removed")])

        result = await EnsureSubscriptionsUseCase(api, SETTINGS).execute([tracked("a")])

        assert [s.id for s in result] == ["s1"]
        assert api.deleted == ["s2"]

    async def test_empty_config_deletes_everything(self):
        api = MockSubscriptionAPI([sub("s1", "a"), sub("s2", "b")])

        result = await EnsureSubscriptionsUseCase(api, SETTINGS).execute([])

        assert result == []
        assert sorted(api.deleted) == ["s1", "s2"]

    async def test_exactly_one_subscription_per_resource(self):
        api = MockSubscriptionAPI(
            [
                sub("stale", "a", notification_url="https://old/webhook/sharepoint-notification"),
                sub("dup-1", "b"),
                sub("dup-2", "b"),
                sub("orphan", "z"),
            ]
        )

        await EnsureSubscriptionsUseCase(api, SETTINGS).execute(
            [tracked("a"), tracked("b"), tracked("c")]
        )

        by_resource: dict[str, int] = {}
        for record in api.subscriptions.values():
            by_resource[record.resource] = by_resource.get(record.resource, 0) + 1
        assert by_resource == {
            "sites/site-1/lists/a": 1,
            "sites/site-1/lists/b": 1,
            "sites/site-1/lists/c": 1,
        }
        assert api.list_calls == 1

    async def test_duplicate_config_entries_create_once(self):
        api = MockSubscriptionAPI()

        result = await EnsureSubscriptionsUseCase(api, SETTINGS).execute(
            [tracked("a"), tracked("a")]
        )

        assert len(result) == 1
        assert len(api.created) == 1

    async def test_remote_failure_propagates(self):
        api = MockSubscriptionAPI(fail_create=True)

        with pytest.raises(ServerError):
            await EnsureSubscriptionsUseCase(api, SETTINGS).execute([tracked("a")])
