"""Reconcile List Use Case - syncs one SharePoint list into the store.

This use case implements a single reconciliation pass for one tracked list.
It depends on ports (interfaces) for all external operations, making it
fully testable without infrastructure.

Workflow:
1. Metadata sync: diff_full the stored list record against the remote one
2. Item sync:
   a. Read the continuation token (DeltaStateManager decides full vs delta)
   b. Page through the remote item listing until a new token is returned,
      the listing is exhausted, or the page cap is reached
   c. Diff (diff_delta with a token, diff_full without) and apply
   d. Persist the new token only after every write has succeeded
3. Any error during item sync clears the token, then propagates
"""

import logging
from datetime import datetime, timezone

from ...api.exceptions import SyncError, TokenInvalidError
from ..domain.diff import diff_delta, diff_full
from ..domain.entities import (
    DiffResult,
    ItemRecord,
    ListRecord,
    SyncResult,
    TrackedList,
)
from ..domain.ports import IItemRepository, IListRepository, IListSourceAPI
from .delta_state import DeltaStateManager, SyncMode

logger = logging.getLogger(__name__)


def _item_id(item: ItemRecord) -> str:
    return item.id


def _item_revision(item: ItemRecord) -> str:
    return item.revision_tag


class ReconcileListUseCase:
    """Orchestrates metadata and item sync for a single tracked list.

    Failure isolation is per resource: one failing record aborts the whole
    pass for that list, but other lists are unaffected.

    Example:
        use_case = ReconcileListUseCase(
            list_api=GraphListAPI(client, mapper),
            list_repo=PostgresListRepository(pool),
            item_repo=PostgresItemRepository(pool),
        )
        result = await use_case.execute(tracked)
    """

    def __init__(
        self,
        list_api: IListSourceAPI,
        list_repo: IListRepository,
        item_repo: IItemRepository,
        delta_state: DeltaStateManager | None = None,
        page_cap: int | None = None,
    ):
        """Initialize the use case with its dependencies.

        Args:
            list_api: Port for reading lists and items from the source
            list_repo: Port for list metadata and token persistence
            item_repo: Port for item persistence
            delta_state: Token manager (built on list_repo when omitted)
            page_cap: Optional maximum number of items to fetch per pass
        """
        self.api = list_api
        self.lists = list_repo
        self.items = item_repo
        self.delta_state = delta_state or DeltaStateManager(list_repo)
        self.page_cap = page_cap

    async def execute(self, tracked: TrackedList) -> SyncResult:
        """Run one reconciliation pass.

        Returns:
            SyncResult describing what was applied

        Raises:
            SyncError: If metadata or item sync fails (the cause is chained)
        """
        ref = tracked.ref
        logger.info(
            f"Syncing SharePoint list {ref.descriptor} into {tracked.schema.table_name}"
        )

        try:
            await self._sync_metadata(tracked)
        except Exception as e:
            raise SyncError(
                f"Failed to sync list metadata: {e}",
                resource=ref.descriptor,
                cause=e,
            )

        try:
            async with self.delta_state.guard(ref):
                result = await self._sync_items(tracked)
        except Exception as e:
            raise SyncError(
                f"Failed to sync list items: {e}",
                resource=ref.descriptor,
                cause=e,
            )

        result.completed_at = datetime.now(timezone.utc)
        logger.info(
            f"Reconciled {ref.descriptor} ({result.mode}) in {result.duration_seconds:.2f}s: "
            f"{result.inserted} inserted, {result.updated} updated, {result.deleted} deleted"
        )
        return result

    # ----------------------------------------
    # Metadata
    # ----------------------------------------

    async def _sync_metadata(self, tracked: TrackedList) -> DiffResult[ListRecord]:
        ref = tracked.ref
        stored = await self.lists.get_list(ref.list_id)
        remote = await self.api.get_list_metadata(ref)

        diff = diff_full(
            stored,
            [remote],
            lambda r: r.id,
            lambda r: r.revision_tag,
        )
        logger.info(f"Syncing list metadata for {ref.descriptor}: {diff.counts()}")

        if diff.to_insert:
            await self.lists.insert_lists(diff.to_insert)
        for record in diff.to_update:
            await self.lists.update_list(record)
        for list_id in diff.to_delete:
            await self.lists.delete_list(list_id)
        return diff

    # ----------------------------------------
    # Items
    # ----------------------------------------

    async def _sync_items(self, tracked: TrackedList) -> SyncResult:
        ref, schema = tracked.ref, tracked.schema

        token = await self.delta_state.get_token(ref)
        mode = self.delta_state.mode_for(token)

        stored = await self.items.get_items(schema, ref)

        try:
            new_token, remote, capped = await self.fetch_items(tracked, token)
        except TokenInvalidError:
            if mode is SyncMode.FULL:
                raise
            logger.warning(
                f"Continuation token for {ref.descriptor} rejected, falling back to full sync"
            )
            await self.delta_state.clear_token(ref)
            mode = SyncMode.FULL
            new_token, remote, capped = await self.fetch_items(tracked, None)

        if mode is SyncMode.DELTA:
            diff = diff_delta(stored, remote, _item_id, _item_revision)
        else:
            diff = diff_full(stored, remote, _item_id, _item_revision)
            if capped and diff.to_delete:
                # A capped listing is not a complete snapshot
                logger.warning(
                    f"Page cap reached for {ref.descriptor}, "
                    f"skipping {len(diff.to_delete)} deletions this pass"
                )
                diff.to_delete = []

        logger.info(
            f"Syncing list items for {ref.descriptor} (with_delta={mode is SyncMode.DELTA}): "
            f"{diff.counts()}"
        )

        result = SyncResult(resource=ref.descriptor, mode=mode.value)

        if diff.to_insert:
            result.inserted = await self.items.upsert_items(schema, diff.to_insert)
        for item in diff.to_update:
            await self.items.update_item(schema, item)
            result.updated += 1
        for item_id in diff.to_delete:
            await self.items.delete_item(schema, ref, item_id)
            result.deleted += 1

        # Only now is it safe to move the cursor forward
        if new_token:
            await self.delta_state.set_token(ref, new_token)
            result.token_saved = True
        elif token:
            # Capped or exhausted without a delta link: next pass is full
            await self.delta_state.clear_token(ref)

        return result

    async def fetch_items(
        self,
        tracked: TrackedList,
        token: str | None,
    ) -> tuple[str | None, list[ItemRecord], bool]:
        """Follow next-page links until a delta link or the end of the listing.

        Returns:
            (new_token, items, capped) where capped means the page cap ended
            pagination early and new_token is therefore None
        """
        ref = tracked.ref
        selector = tracked.schema.field_selector
        items: list[ItemRecord] = []
        link = token
        pages = 0

        while True:
            page = await self.api.fetch_items_page(ref, link, selector)
            pages += 1
            items.extend(page.items)

            if page.delta_link:
                logger.debug(f"Fetched {len(items)} items in {pages} pages for {ref.descriptor}")
                return page.delta_link, items, False

            if not page.next_link:
                logger.debug(f"Listing exhausted without a delta link for {ref.descriptor}")
                return None, items, False

            if self.page_cap and len(items) >= self.page_cap:
                logger.info(f"Reached page cap ({self.page_cap}) for {ref.descriptor}")
                return None, items, True

            link = page.next_link
