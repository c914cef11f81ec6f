"""Tests for SyncResourcesUseCase."""

import pytest

from spsync.api.exceptions import PartialSyncError, SyncError
from spsync.sync.domain.entities import (
    ColumnMapping,
    ListSchema,
    ResourceRef,
    SyncResult,
    TrackedList,
)
from spsync.sync.domain.ports import IPassRunner
from spsync.sync.use_cases.sync_resources import SyncResourcesUseCase


def tracked(list_id: str) -> TrackedList:
    return TrackedList(
        ref=ResourceRef(site_id="site-1", list_id=list_id),
        schema=ListSchema(f"sp_{list_id}", (ColumnMapping("title", "Title"),)),
    )


class MockPassRunner(IPassRunner):
    """Stands in for the dispatcher, failing for selected list ids."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.calls: list[str] = []

    async def run_now(self, item: TrackedList) -> SyncResult:
        self.calls.append(item.ref.list_id)
        if item.ref.list_id in self.failing:
            raise SyncError("boom", resource=item.descriptor)
        return SyncResult(resource=item.descriptor, mode="full", inserted=1)


class TestSyncResourcesUseCase:
    async def test_syncs_every_list_in_order(self):
        runner = MockPassRunner()

        results = await SyncResourcesUseCase(
            runner, [tracked("a"), tracked("b"), tracked("c")]
        ).execute()

        assert runner.calls == ["a", "b", "c"]
        assert [r.resource for r in results] == [
            "sites/site-1/lists/a",
            "sites/site-1/lists/b",
            "sites/site-1/lists/c",
        ]

    async def test_one_failure_does_not_stop_the_others(self):
        runner = MockPassRunner(failing={"b"})

        with pytest.raises(PartialSyncError) as exc_info:
            await SyncResourcesUseCase(
                runner, [tracked("a"), tracked("b"), tracked("c")]
            ).execute()

        assert runner.calls == ["a", "b", "c"]
        error = exc_info.value
        assert error.succeeded == 2
        assert error.failed == 1
        assert error.errors[0].resource == "sites/site-1/lists/b"

    async def test_no_lists(self):
        assert await SyncResourcesUseCase(MockPassRunner(), []).execute() == []
