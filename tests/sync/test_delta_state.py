"""Tests for DeltaStateManager."""

import pytest

from spsync.api.exceptions import StoreWriteError
from spsync.sync.domain.entities import ListRecord, ResourceRef
from spsync.sync.domain.ports import IListRepository
from spsync.sync.use_cases.delta_state import DeltaStateManager, SyncMode

REF = ResourceRef(site_id="site-1", list_id="list-1")


class MockListRepository(IListRepository):
    """Token-only mock of IListRepository."""

    def __init__(self, token: str | None = None, fail_clear: bool = False):
        self.tokens: dict[str, str] = {}
        if token:
            self.tokens[REF.list_id] = token
        self.fail_clear = fail_clear
        self.clear_calls = 0

    async def get_list(self, list_id: str) -> list[ListRecord]:
        return []

    async def insert_lists(self, lists: list[ListRecord]) -> int:
        return len(lists)

    async def update_list(self, record: ListRecord) -> None:
        pass

    async def delete_list(self, list_id: str) -> None:
        pass

    async def get_continuation_token(self, list_id: str) -> str | None:
        return self.tokens.get(list_id)

    async def set_continuation_token(self, list_id: str, token: str) -> None:
        self.tokens[list_id] = token

    async def clear_continuation_token(self, list_id: str) -> None:
        self.clear_calls += 1
        if self.fail_clear:
            raise StoreWriteError("clear failed")
        self.tokens.pop(list_id, None)


class TestDeltaStateManager:
    async def test_get_set_clear(self):
        repo = MockListRepository()
        state = DeltaStateManager(repo)

        assert await state.get_token(REF) is None
        await state.set_token(REF, "delta-1")
        assert await state.get_token(REF) == "delta-1"
        await state.clear_token(REF)
        assert await state.get_token(REF) is None

    def test_mode_for(self):
        assert DeltaStateManager.mode_for(None) is SyncMode.FULL
        assert DeltaStateManager.mode_for("") is SyncMode.FULL
        assert DeltaStateManager.mode_for("delta-1") is SyncMode.DELTA

    async def test_guard_clears_token_and_reraises(self):
        repo = MockListRepository(token="delta-1")
        state = DeltaStateManager(repo)

        with pytest.raises(RuntimeError, match="boom"):
            async with state.guard(REF):
                raise RuntimeError("boom")

        assert await state.get_token(REF) is None

    async def test_guard_keeps_token_on_success(self):
        repo = MockListRepository(token="delta-1")
        state = DeltaStateManager(repo)

        async with state.guard(REF):
            pass

        assert await state.get_token(REF) == "delta-1"
        assert repo.clear_calls == 0

    async def test_guard_propagates_original_error_when_clear_fails(self):
        repo = MockListRepository(token="delta-1", fail_clear=True)
        state = DeltaStateManager(repo)

        with pytest.raises(ValueError, match="original"):
            async with state.guard(REF):
                raise ValueError("original")

        assert repo.clear_calls == 1
