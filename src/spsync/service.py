"""Service wiring: builds every component and runs the startup sequence.

Startup is strictly sequential and every step is fatal on failure:

1. Create the asyncpg pool
2. Open the Graph client
3. Start the webhook server and wait until it is reachable from outside
4. Ensure subscriptions
5. Full sync of every tracked list

After that the process serves notifications until uvicorn receives
SIGINT/SIGTERM, then shuts everything down in reverse order.
"""

import asyncio
import logging
from typing import Optional

import aiohttp
import uvicorn

from .api.auth import TokenManager
from .api.client import GraphClient
from .api.database import close_pool, create_pool
from .api.exceptions import ConfigurationError
from .config import Settings
from .sync.adapters import (
    GraphListAPI,
    GraphSubscriptionAPI,
    PostgresItemRepository,
    PostgresListRepository,
)
from .sync.domain.entities import SubscriptionRecord, SyncResult, TrackedList
from .sync.use_cases import (
    EnsureSubscriptionsUseCase,
    ReconcileListUseCase,
    SyncResourcesUseCase,
)
from .webhook import ChangeTrigger, LifecycleTrigger, ReconcileDispatcher, create_app

logger = logging.getLogger(__name__)

PING_PATH = "/webhook/ping"
PING_INTERVAL = 0.5
PING_TIMEOUT = 10.0


async def wait_until_reachable(
    url: str,
    interval: float = PING_INTERVAL,
    timeout: float = PING_TIMEOUT,
) -> None:
    """Poll ``url`` until it answers 200 or the timeout elapses.

    Raises:
        ConfigurationError: If the endpoint never became reachable
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last_problem = "no response"

    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=interval * 4)) as session:
        while True:
            try:
                async with session.get(url) as response:
                    if response.status == 200:
                        logger.info(f"Webhook endpoint {url} is reachable")
                        return
                    last_problem = f"HTTP {response.status}"
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_problem = str(e) or type(e).__name__

            if loop.time() >= deadline:
                raise ConfigurationError(
                    f"Webhook endpoint {url} not reachable within {timeout}s ({last_problem})"
                )
            await asyncio.sleep(interval)


class SyncService:
    """Owns the long-lived resources of one process.

    Example:
        service = SyncService(settings, resources.tracked_lists())
        await service.run()
    """

    def __init__(self, settings: Settings, tracked: list[TrackedList]):
        self.settings = settings
        self.tracked = tracked

        self.pool = None
        self.client: Optional[GraphClient] = None
        self.dispatcher: Optional[ReconcileDispatcher] = None
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

    async def start(self) -> tuple[list[SubscriptionRecord], list[SyncResult]]:
        """Run the startup sequence.

        Raises:
            SyncServiceError: On any fatal startup failure
        """
        settings = self.settings
        subscription_settings = settings.subscription_settings()

        self.pool = await create_pool(settings.database_url)

        token_manager = TokenManager(
            tenant_id=settings.tenant_id,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            scope=settings.app_scopes,
        )
        self.client = await GraphClient(token_manager, base_url=settings.graph_base_url).open()

        list_api = GraphListAPI(self.client)
        subscription_api = GraphSubscriptionAPI(self.client)
        reconcile = ReconcileListUseCase(
            list_api=list_api,
            list_repo=PostgresListRepository(self.pool),
            item_repo=PostgresItemRepository(self.pool),
            page_cap=settings.items_page_cap,
        )
        self.dispatcher = ReconcileDispatcher(reconcile)

        app = create_app(
            change_trigger=ChangeTrigger(self.tracked, self.dispatcher),
            lifecycle_trigger=LifecycleTrigger(subscription_api, subscription_settings),
            dispatcher=self.dispatcher,
            pool=self.pool,
        )
        self.server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=settings.listen_ip,
                port=settings.listen_port,
                log_level=logging.getLevelName(settings.log_level).lower(),
            )
        )
        self._server_task = asyncio.create_task(self.server.serve(), name="webhook-server")
        logger.info(f"Webhook server starting on {settings.listen_ip}:{settings.listen_port}")

        await wait_until_reachable(settings.external_base_url + PING_PATH)

        subscriptions = await EnsureSubscriptionsUseCase(
            subscription_api, subscription_settings
        ).execute(self.tracked)
        logger.info(f"{len(subscriptions)} subscription(s) in place")

        results = await SyncResourcesUseCase(self.dispatcher, self.tracked).execute()
        logger.info("Startup complete, waiting for notifications")
        return subscriptions, results

    async def wait_closed(self) -> None:
        """Wait until the webhook server stops (on SIGINT/SIGTERM)."""
        if self._server_task is not None:
            await self._server_task

    async def stop(self) -> None:
        """Release everything started by start(), in reverse order."""
        if self.server is not None:
            self.server.should_exit = True
        if self._server_task is not None:
            await asyncio.gather(self._server_task, return_exceptions=True)
            self._server_task = None
        if self.dispatcher is not None:
            await self.dispatcher.drain()
        if self.client is not None:
            await self.client.close()
            self.client = None
        await close_pool(self.pool)
        self.pool = None
        logger.info("Shutdown complete")

    async def run(self) -> None:
        try:
            await self.start()
            await self.wait_closed()
        finally:
            await self.stop()
