"""Tests for the ReconcileListUseCase.

These tests use mock ports to test the use case in isolation: an in-memory
list source keyed by page link, and in-memory list/item repositories.
"""

import pytest

from spsync.api.exceptions import StoreWriteError, SyncError, TokenInvalidError
from spsync.sync.domain.entities import (
    ColumnMapping,
    ItemRecord,
    ItemsPage,
    ListRecord,
    ListSchema,
    ResourceRef,
    TrackedList,
)
from spsync.sync.domain.ports import IItemRepository, IListRepository, IListSourceAPI
from spsync.sync.use_cases.reconcile_list import ReconcileListUseCase

REF = ResourceRef(site_id="site-1", list_id="list-1")
SCHEMA = ListSchema(
    table_name="sp_tasks",
    columns=(ColumnMapping(column="title", field="Title"),),
)
TRACKED = TrackedList(ref=REF, schema=SCHEMA)


def item(item_id: str, revision: str = "v1") -> ItemRecord:
    return ItemRecord(
        id=item_id,
        list_id=REF.list_id,
        site_id=REF.site_id,
        revision_tag=revision,
        fields={"Title": f"Item {item_id}"},
    )


class MockListSourceAPI(IListSourceAPI):
    """Mock implementation of IListSourceAPI.

    ``pages`` maps the link a page is requested with (None for the start of
    a full listing) to the page returned.
    """

    def __init__(
        self,
        pages: dict[str | None, ItemsPage],
        list_revision: str = "list-v1",
        invalid_links: set[str] | None = None,
        metadata_error: Exception | None = None,
    ):
        self.pages = pages
        self.list_revision = list_revision
        self.invalid_links = invalid_links or set()
        self.metadata_error = metadata_error
        self.requested_links: list[str | None] = []
        self.selectors: list[list[str]] = []

    async def get_list_metadata(self, ref: ResourceRef) -> ListRecord:
        if self.metadata_error:
            raise self.metadata_error
        return ListRecord(
            id=ref.list_id,
            site_id=ref.site_id,
            revision_tag=self.list_revision,
            name="tasks",
            display_name="Tasks",
        )

    async def fetch_items_page(
        self,
        ref: ResourceRef,
        link: str | None,
        field_selector: list[str],
    ) -> ItemsPage:
        self.requested_links.append(link)
        self.selectors.append(field_selector)
        if link in self.invalid_links:
            raise TokenInvalidError()
        return self.pages[link]


class MockListRepository(IListRepository):
    """Mock implementation of IListRepository."""

    def __init__(self, lists: list[ListRecord] | None = None, token: str | None = None):
        self.lists = {r.id: r for r in (lists or [])}
        self.tokens: dict[str, str] = {}
        if token:
            self.tokens[REF.list_id] = token
        self.inserted: list[ListRecord] = []
        self.updated: list[ListRecord] = []
        self.deleted: list[str] = []
        self.token_history: list[str | None] = []

    async def get_list(self, list_id: str) -> list[ListRecord]:
        record = self.lists.get(list_id)
        return [record] if record else []

    async def insert_lists(self, lists: list[ListRecord]) -> int:
        self.inserted.extend(lists)
        for record in lists:
            self.lists[record.id] = record
        return len(lists)

    async def update_list(self, record: ListRecord) -> None:
        self.updated.append(record)
        self.lists[record.id] = record

    async def delete_list(self, list_id: str) -> None:
        self.deleted.append(list_id)
        self.lists.pop(list_id, None)

    async def get_continuation_token(self, list_id: str) -> str | None:
        return self.tokens.get(list_id)

    async def set_continuation_token(self, list_id: str, token: str) -> None:
        self.token_history.append(token)
        self.tokens[list_id] = token

    async def clear_continuation_token(self, list_id: str) -> None:
        self.token_history.append(None)
        self.tokens.pop(list_id, None)


class MockItemRepository(IItemRepository):
    """In-memory item table that records every write in order."""

    def __init__(self, items: list[ItemRecord] | None = None, fail_on: str | None = None):
        self.items = {i.id: i for i in (items or [])}
        self.fail_on = fail_on
        self.log: list[tuple[str, str]] = []

    def _check(self, item_id: str):
        if item_id == self.fail_on:
            raise StoreWriteError(f"write of {item_id} failed", table=SCHEMA.table_name)

    async def get_items(self, schema: ListSchema, ref: ResourceRef) -> list[ItemRecord]:
        return list(self.items.values())

    async def upsert_items(self, schema: ListSchema, items: list[ItemRecord]) -> int:
        for i in items:
            self._check(i.id)
        for i in items:
            self.log.append(("insert", i.id))
            self.items[i.id] = i
        return len(items)

    async def update_item(self, schema: ListSchema, item: ItemRecord) -> None:
        self._check(item.id)
        self.log.append(("update", item.id))
        self.items[item.id] = item

    async def delete_item(self, schema: ListSchema, ref: ResourceRef, item_id: str) -> None:
        self._check(item_id)
        self.log.append(("delete", item_id))
        self.items.pop(item_id, None)


def revisions(repo: MockItemRepository) -> dict[str, str]:
    return {i.id: i.revision_tag for i in repo.items.values()}


class TestReconcileListUseCase:
    """Tests for ReconcileListUseCase."""

    @pytest.fixture
    def stored_items(self):
        return [item("A"), item("B"), item("C")]

    async def test_full_sync_without_token(self, stored_items):
        """No token: full listing, diff_full, token saved after apply."""
        api = MockListSourceAPI(
            {None: ItemsPage([item("A"), item("B", "v2"), item("D")], delta_link="T1")}
        )
        lists = MockListRepository()
        items = MockItemRepository(stored_items)

        result = await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert result.mode == "full"
        assert (result.inserted, result.updated, result.deleted) == (1, 1, 1)
        assert result.token_saved is True
        assert revisions(items) == {"A": "v1", "B": "v2", "D": "v1"}
        assert lists.tokens[REF.list_id] == "T1"
        assert api.requested_links == [None]
        assert api.selectors == [["Title"]]
        assert result.completed_at is not None

    async def test_delta_sync_with_token(self):
        """Token present: incremental fetch, absence is not deletion."""
        api = MockListSourceAPI(
            {"T0": ItemsPage([item("B", "v2"), item("E"), item("A", "")], delta_link="T1")}
        )
        lists = MockListRepository(
            lists=[ListRecord(id=REF.list_id, site_id=REF.site_id, revision_tag="list-v1")],
            token="T0",
        )
        items = MockItemRepository([item("A"), item("B"), item("C")])

        result = await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert result.mode == "delta"
        assert revisions(items) == {"B": "v2", "C": "v1", "E": "v1"}
        assert lists.tokens[REF.list_id] == "T1"
        assert api.requested_links == ["T0"]

    async def test_token_saved_only_after_all_writes(self, stored_items):
        api = MockListSourceAPI(
            {None: ItemsPage([item("A", "v2"), item("D")], delta_link="T1")}
        )
        items = MockItemRepository(stored_items)

        class OrderCheckingRepo(MockListRepository):
            async def set_continuation_token(self, list_id, token):
                assert items.log, "token written before item changes were applied"
                assert revisions(items) == {"A": "v2", "D": "v1"}
                await super().set_continuation_token(list_id, token)

        lists = OrderCheckingRepo()

        await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert lists.tokens[REF.list_id] == "T1"

    async def test_write_failure_clears_token(self):
        """A failing update aborts the pass and clears the stored token."""
        api = MockListSourceAPI(
            {"T0": ItemsPage([item("B", "v2"), item("C", "v2")], delta_link="T1")}
        )
        lists = MockListRepository(
            lists=[ListRecord(id=REF.list_id, site_id=REF.site_id, revision_tag="list-v1")],
            token="T0",
        )
        items = MockItemRepository([item("A"), item("B"), item("C")], fail_on="C")

        with pytest.raises(SyncError) as exc_info:
            await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert exc_info.value.resource == REF.descriptor
        assert isinstance(exc_info.value.__cause__, StoreWriteError)
        assert REF.list_id not in lists.tokens
        assert "T1" not in lists.token_history
        # B was committed before C failed; nothing is rolled back
        assert revisions(items)["B"] == "v2"

    async def test_next_pass_after_failure_is_full(self):
        api = MockListSourceAPI(
            {
                "T0": ItemsPage([item("C", "v2")], delta_link="T1"),
                None: ItemsPage([item("A"), item("C", "v2")], delta_link="T2"),
            }
        )
        lists = MockListRepository(token="T0")
        items = MockItemRepository([item("A"), item("B"), item("C")], fail_on="C")
        use_case = ReconcileListUseCase(api, lists, items)

        with pytest.raises(SyncError):
            await use_case.execute(TRACKED)

        items.fail_on = None
        result = await use_case.execute(TRACKED)

        assert result.mode == "full"
        assert revisions(items) == {"A": "v1", "C": "v2"}
        assert lists.tokens[REF.list_id] == "T2"

    async def test_fetch_failure_clears_token(self):
        class FailingAPI(MockListSourceAPI):
            async def fetch_items_page(self, ref, link, field_selector):
                raise ConnectionResetError("network down")

        lists = MockListRepository(token="T0")

        with pytest.raises(SyncError):
            await ReconcileListUseCase(FailingAPI({}), lists, MockItemRepository()).execute(TRACKED)

        assert REF.list_id not in lists.tokens

    async def test_rejected_token_falls_back_to_full(self):
        api = MockListSourceAPI(
            {None: ItemsPage([item("A")], delta_link="T2")},
            invalid_links={"T0"},
        )
        lists = MockListRepository(token="T0")
        items = MockItemRepository([item("A"), item("Z")])

        result = await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert result.mode == "full"
        assert api.requested_links == ["T0", None]
        assert revisions(items) == {"A": "v1"}
        assert lists.tokens[REF.list_id] == "T2"

    async def test_pagination_follows_next_links(self):
        api = MockListSourceAPI(
            {
                None: ItemsPage([item("A")], next_link="page-2"),
                "page-2": ItemsPage([item("B")], next_link="page-3"),
                "page-3": ItemsPage([item("C")], delta_link="T1"),
            }
        )
        lists = MockListRepository()
        items = MockItemRepository()

        result = await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert api.requested_links == [None, "page-2", "page-3"]
        assert result.inserted == 3
        assert lists.tokens[REF.list_id] == "T1"

    async def test_exhausted_listing_without_token(self):
        api = MockListSourceAPI({None: ItemsPage([item("A")])})
        lists = MockListRepository()

        result = await ReconcileListUseCase(api, lists, MockItemRepository()).execute(TRACKED)

        assert result.token_saved is False
        assert REF.list_id not in lists.tokens

    async def test_exhausted_delta_listing_clears_old_token(self):
        api = MockListSourceAPI({"T0": ItemsPage([item("B", "v2")])})
        lists = MockListRepository(token="T0")
        items = MockItemRepository([item("A"), item("B")])

        result = await ReconcileListUseCase(api, lists, items).execute(TRACKED)

        assert result.mode == "delta"
        assert result.token_saved is False
        assert revisions(items) == {"A": "v1", "B": "v2"}
        assert REF.list_id not in lists.tokens
        assert lists.token_history == [None]

    async def test_page_cap_is_token_less_and_suppresses_deletes(self):
        api = MockListSourceAPI(
            {
                None: ItemsPage([item("A"), item("B")], next_link="page-2"),
                "page-2": ItemsPage([item("C")], delta_link="T1"),
            }
        )
        lists = MockListRepository()
        items = MockItemRepository([item("A"), item("Z")])

        result = await ReconcileListUseCase(api, lists, items, page_cap=2).execute(TRACKED)

        assert api.requested_links == [None]
        assert result.token_saved is False
        assert result.deleted == 0
        assert "Z" in items.items
        assert REF.list_id not in lists.tokens

    async def test_page_cap_in_delta_mode_clears_token(self):
        api = MockListSourceAPI(
            {"T0": ItemsPage([item("A", "v2")], next_link="page-2")}
        )
        lists = MockListRepository(token="T0")
        items = MockItemRepository([item("A")])

        result = await ReconcileListUseCase(api, lists, items, page_cap=1).execute(TRACKED)

        assert result.mode == "delta"
        assert revisions(items) == {"A": "v2"}
        assert REF.list_id not in lists.tokens

    async def test_metadata_insert_then_update(self):
        api = MockListSourceAPI({None: ItemsPage([], delta_link="T1")})
        lists = MockListRepository()
        use_case = ReconcileListUseCase(api, lists, MockItemRepository())

        await use_case.execute(TRACKED)
        assert [r.id for r in lists.inserted] == [REF.list_id]

        api.list_revision = "list-v2"
        api.pages["T1"] = ItemsPage([], delta_link="T2")
        await use_case.execute(TRACKED)

        assert [r.revision_tag for r in lists.updated] == ["list-v2"]
        assert lists.tokens[REF.list_id] == "T2"

    async def test_metadata_update_does_not_touch_token(self):
        api = MockListSourceAPI(
            {"T0": ItemsPage([], delta_link="T1")},
            list_revision="list-v2",
        )
        lists = MockListRepository(
            lists=[ListRecord(id=REF.list_id, site_id=REF.site_id, revision_tag="list-v1")],
            token="T0",
        )

        result = await ReconcileListUseCase(api, lists, MockItemRepository()).execute(TRACKED)

        assert result.mode == "delta"
        assert lists.token_history == ["T1"]

    async def test_metadata_failure_raises_sync_error(self):
        api = MockListSourceAPI({}, metadata_error=StoreWriteError("db down"))

        with pytest.raises(SyncError, match="metadata"):
            await ReconcileListUseCase(api, MockListRepository(), MockItemRepository()).execute(
                TRACKED
            )
