"""Delta State Manager - owns the per-resource continuation token.

A token present means the next item fetch is incremental and diffed with
diff_delta; no token means a full fetch diffed with diff_full. Any failure
inside a tracked attempt clears the token before the error propagates, so
the following attempt is always a full resync.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

from ..domain.entities import ResourceRef
from ..domain.ports import IListRepository

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """How a reconciliation pass fetches and diffs items."""

    FULL = "full"
    DELTA = "delta"


class DeltaStateManager:
    """Reads, writes and self-heals continuation tokens.

    Example:
        state = DeltaStateManager(PostgresListRepository(pool))
        async with state.guard(ref):
            token = await state.get_token(ref)
            ...
    """

    def __init__(self, list_repo: IListRepository):
        self.repo = list_repo

    async def get_token(self, ref: ResourceRef) -> str | None:
        return await self.repo.get_continuation_token(ref.list_id)

    async def set_token(self, ref: ResourceRef, token: str) -> None:
        await self.repo.set_continuation_token(ref.list_id, token)
        logger.debug(f"Continuation token saved for {ref.descriptor}")

    async def clear_token(self, ref: ResourceRef) -> None:
        await self.repo.clear_continuation_token(ref.list_id)
        logger.info(f"Continuation token cleared for {ref.descriptor}")

    @staticmethod
    def mode_for(token: str | None) -> SyncMode:
        """Decision rule: token present -> delta, absent -> full."""
        return SyncMode.DELTA if token else SyncMode.FULL

    @asynccontextmanager
    async def guard(self, ref: ResourceRef) -> AsyncIterator[None]:
        """Clear the resource's token if the wrapped block raises.

        The original error is always the one that propagates. A failure to
        clear is logged; the stale token then stays until the next failure
        or a successful pass overwrites it.
        """
        try:
            yield
        except BaseException as e:
            try:
                await self.clear_token(ref)
            except Exception as cleanup_error:
                logger.error(
                    f"Failed to clear continuation token for {ref.descriptor} "
                    f"after error {type(e).__name__}: {cleanup_error}"
                )
            raise
