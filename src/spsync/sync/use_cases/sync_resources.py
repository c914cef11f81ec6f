"""Sync Resources Use Case - reconciles every configured list.

Used for the initial pass at startup. Each tracked list gets its own
reconciliation pass; one list failing never stops the others.

Passes go through the dispatcher's per-resource slot, so a notification
that arrives while the startup pass is running queues a follow-up pass
instead of reconciling the same list concurrently.
"""

import logging

from ...api.exceptions import ErrorCollector, SyncError
from ..domain.entities import SyncResult, TrackedList
from ..domain.ports import IPassRunner

logger = logging.getLogger(__name__)


class SyncResourcesUseCase:
    """Run a reconciliation pass for each tracked list, sequentially.

    Example:
        use_case = SyncResourcesUseCase(dispatcher, tracked_lists)
        results = await use_case.execute()
    """

    def __init__(self, runner: IPassRunner, tracked: list[TrackedList]):
        self.runner = runner
        self.tracked = tracked

    async def execute(self) -> list[SyncResult]:
        """Reconcile all tracked lists.

        Returns:
            One SyncResult per successfully reconciled list

        Raises:
            PartialSyncError: If at least one list failed
        """
        logger.info(f"Starting full sync of {len(self.tracked)} SharePoint list(s)")
        collector = ErrorCollector()
        results: list[SyncResult] = []

        for tracked in self.tracked:
            try:
                results.append(await self.runner.run_now(tracked))
            except SyncError as e:
                logger.error(f"Sync failed for {tracked.descriptor}: {e}")
                collector.add(e, context={"resource": tracked.descriptor})

        if collector.has_errors():
            raise collector.to_exception(succeeded=len(results))

        logger.info(f"Full sync complete: {len(results)} list(s) reconciled")
        return results
