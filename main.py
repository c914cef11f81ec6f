#!/usr/bin/env python3
"""SharePoint List Sync service entry point.

Keeps PostgreSQL tables in sync with SharePoint lists through Microsoft
Graph: a full sync at startup, then incremental (delta) syncs driven by
Graph change notifications delivered to the built-in webhook server.

Environment Variables Required:
    - GRAPH_TENANT_ID, GRAPH_CLIENT_ID, GRAPH_CLIENT_SECRET: app registration
    - WEBHOOK_EXTERNAL_BASE_URL: public URL Graph delivers notifications to
    - DATABASE_URL, or DB_HOST/DB_PORT/DB_USER/DB_PASSWORD/DB_NAME

Example Usage:
    $ python main.py                          # uses ./config.yaml
    $ python main.py --config lists.yaml
    $ LOG_LEVEL=DEBUG python main.py
"""
import argparse
import asyncio
import logging
import sys

from spsync.api.exceptions import SyncServiceError
from spsync.config import ResourcesConfig, Settings
from spsync.service import SyncService

logger = logging.getLogger("spsync")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Sync SharePoint lists to PostgreSQL via Microsoft Graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=str,
        metavar="FILE",
        help="Tracked lists YAML file (default: RESOURCES_CONFIG or config.yaml)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    try:
        settings = Settings.from_env()
        logging.getLogger().setLevel(settings.log_level)
        resources = ResourcesConfig.load_yaml(args.config or settings.resources_config)
    except SyncServiceError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    tracked = resources.tracked_lists()
    logger.info(f"Tracking {len(tracked)} SharePoint list(s)")

    try:
        asyncio.run(SyncService(settings, tracked).run())
    except SyncServiceError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    except KeyboardInterrupt:
        # uvicorn re-raises SIGINT after its own graceful shutdown
        pass

    return 0


if __name__ == "__main__":
    sys.exit(main())
