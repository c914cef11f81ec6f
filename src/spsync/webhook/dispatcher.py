"""Per-resource single-flight dispatch of reconciliation passes.

A trigger for a resource that is already being reconciled is absorbed into
a pending flag; when the running pass finishes exactly one follow-up pass
runs, covering every trigger absorbed in the meantime. Different resources
reconcile concurrently.
"""

import asyncio
import logging
from typing import Any

from ..sync.domain.entities import SyncResult, TrackedList
from ..sync.domain.ports import IPassRunner
from ..sync.use_cases.reconcile_list import ReconcileListUseCase

logger = logging.getLogger(__name__)


class ReconcileDispatcher(IPassRunner):
    """Runs reconciliation passes in the background, one per resource at a time.

    Example:
        dispatcher = ReconcileDispatcher(reconcile)
        await dispatcher.run_now(tracked)   # startup, in the caller's task
        dispatcher.trigger(tracked)         # returns immediately
        await dispatcher.drain()            # shutdown / tests
    """

    def __init__(self, reconcile: ReconcileListUseCase):
        self.reconcile = reconcile
        self._running: dict[str, asyncio.Task] = {}
        self._pending: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self.last_results: dict[str, SyncResult] = {}
        self.last_errors: dict[str, str] = {}

    def trigger(self, tracked: TrackedList) -> bool:
        """Request a reconciliation pass for one resource.

        Must be called from within the running event loop.

        Returns:
            True if a new pass was started, False if the request was
            folded into the pass already running
        """
        descriptor = tracked.descriptor
        if descriptor in self._running:
            if descriptor not in self._pending:
                logger.info(f"Reconcile of {descriptor} in progress, queueing one follow-up pass")
            self._pending.add(descriptor)
            return False

        task = asyncio.create_task(self._run(tracked), name=f"reconcile:{descriptor}")
        self._running[descriptor] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, tracked: TrackedList) -> None:
        descriptor = tracked.descriptor
        try:
            while True:
                self._pending.discard(descriptor)
                try:
                    result = await self.reconcile.execute(tracked)
                except Exception as e:
                    logger.error(f"Reconcile of {descriptor} failed: {e}", exc_info=True)
                    self.last_errors[descriptor] = str(e)
                else:
                    self.last_results[descriptor] = result
                    self.last_errors.pop(descriptor, None)

                if descriptor not in self._pending:
                    break
                logger.info(f"Running queued follow-up reconcile of {descriptor}")
        finally:
            self._running.pop(descriptor, None)

    async def run_now(self, tracked: TrackedList) -> SyncResult:
        """Run one pass in the caller's task, holding the resource's slot.

        Waits for a background pass already running for the resource first.
        Triggers that arrive meanwhile are absorbed and start one follow-up
        pass in the background once this pass finishes.

        Raises:
            SyncError: If the pass fails
        """
        descriptor = tracked.descriptor
        while descriptor in self._running:
            await asyncio.wait({self._running[descriptor]})

        self._running[descriptor] = asyncio.current_task()
        self._pending.discard(descriptor)
        try:
            result = await self.reconcile.execute(tracked)
        except Exception as e:
            self.last_errors[descriptor] = str(e)
            raise
        else:
            self.last_results[descriptor] = result
            self.last_errors.pop(descriptor, None)
            return result
        finally:
            self._running.pop(descriptor, None)
            if descriptor in self._pending:
                logger.info(f"Running queued follow-up reconcile of {descriptor}")
                self.trigger(tracked)

    @property
    def in_flight(self) -> list[str]:
        return sorted(self._running)

    def is_running(self, descriptor: str) -> bool:
        return descriptor in self._running

    async def drain(self) -> None:
        """Wait until every running and queued pass has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def status(self) -> dict[str, Any]:
        return {
            "in_flight": self.in_flight,
            "pending": sorted(self._pending),
            "last_errors": dict(self.last_errors),
            "last_results": {k: v.to_dict() for k, v in self.last_results.items()},
        }
