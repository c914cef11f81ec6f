#!/usr/bin/env python3
"""Database Utilities for the SharePoint List Sync service.

This module provides database utilities including:
    - Transaction context managers with automatic commit/rollback
    - Connection pool management
    - Conversion of driver errors into StoreError subtypes

Example:
    async with database_transaction(pool) as conn:
        await conn.execute("INSERT INTO ...")
        # Automatic commit on success, rollback on exception
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .exceptions import ConnectionPoolError, StoreError, StoreWriteError

logger = logging.getLogger(__name__)

ACQUIRE_TIMEOUT = 30.0


# ============================================
# Transaction Context Managers
# ============================================

@asynccontextmanager
async def database_transaction(
    pool,
    isolation: str = "read_committed",
    operation: str | None = None,
    table: str | None = None,
) -> AsyncIterator[Any]:
    """Context manager for database transactions with automatic commit/rollback.

    Acquires a connection from the pool, starts a transaction, and ensures
    commit on success or rollback on exception.

    Args:
        pool: asyncpg connection pool
        isolation: Transaction isolation level
        operation: Name of the logical write, attached to errors
        table: Target table, attached to errors

    Yields:
        Database connection within transaction

    Raises:
        ConnectionPoolError: If a connection cannot be acquired
        StoreWriteError: If any statement in the transaction fails

    Example:
        async with database_transaction(pool, operation="delete_item") as conn:
            await conn.execute('DELETE FROM "sp_tasks" WHERE id = $1', item_id)
    """
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")

    conn = None
    try:
        try:
            conn = await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT)
        except asyncio.TimeoutError:
            raise ConnectionPoolError(
                "Timeout acquiring database connection",
                details={"timeout_seconds": ACQUIRE_TIMEOUT},
            )
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise ConnectionPoolError(
                f"Failed to acquire database connection: {e}",
                cause=e,
            )

        transaction = conn.transaction(isolation=isolation)

        try:
            await transaction.start()
        except Exception as e:
            raise _convert_db_exception(e, operation="begin", table=table)

        try:
            yield conn
            await transaction.commit()
            logger.debug("Transaction committed successfully")

        except Exception as e:
            try:
                await transaction.rollback()
                logger.debug("Transaction rolled back due to exception")
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")

            raise _convert_db_exception(e, operation=operation, table=table)

    finally:
        if conn:
            await pool.release(conn)


@asynccontextmanager
async def database_connection(pool) -> AsyncIterator[Any]:
    """Simple context manager for a connection without a transaction.

    Use this for read-only operations.

    Example:
        async with database_connection(pool) as conn:
            rows = await conn.fetch("SELECT * FROM sharepoint_lists")
    """
    if pool is None:
        raise ConnectionPoolError("Database connection pool is not initialized")

    conn = None
    try:
        conn = await asyncio.wait_for(pool.acquire(), timeout=ACQUIRE_TIMEOUT)
        yield conn
    except asyncio.TimeoutError:
        raise ConnectionPoolError(
            "Timeout acquiring database connection",
            details={"timeout_seconds": ACQUIRE_TIMEOUT},
        )
    finally:
        if conn:
            await pool.release(conn)


# ============================================
# Error Conversion
# ============================================

def _convert_db_exception(
    e: Exception,
    operation: str | None = None,
    table: str | None = None,
) -> StoreError:
    """Convert a driver exception to a StoreError subtype."""
    if isinstance(e, StoreError):
        return e

    error_str = str(e).lower()

    if isinstance(e, asyncpg.IntegrityConstraintViolationError):
        return StoreWriteError(
            f"Constraint violation: {e}",
            operation=operation,
            table=table,
            code="STORE_INTEGRITY_ERROR",
            recoverable=False,
            cause=e,
        )

    if isinstance(e, (asyncpg.UndefinedTableError, asyncpg.UndefinedColumnError)):
        return StoreWriteError(
            f"Schema mismatch: {e}",
            operation=operation,
            table=table,
            code="STORE_SCHEMA_ERROR",
            recoverable=False,
            cause=e,
        )

    if "deadlock" in error_str or "timeout" in error_str or "timed out" in error_str:
        return StoreWriteError(
            f"Transient database failure: {e}",
            operation=operation,
            table=table,
            recoverable=True,
            cause=e,
        )

    return StoreWriteError(
        f"Database operation failed: {e}",
        operation=operation,
        table=table,
        cause=e,
    )


# ============================================
# Connection Pool Helpers
# ============================================

async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
):
    """Create a database connection pool with error handling.

    Raises:
        ConnectionPoolError: If pool creation fails
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        raise ConnectionPoolError(
            f"Failed to create database pool: {e}",
            cause=e,
        )

    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def close_pool(pool, timeout: float = 10.0):
    """Close database pool gracefully, terminating it if that takes too long."""
    if pool is None:
        return

    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
        logger.info("Database pool closed")
    except asyncio.TimeoutError:
        logger.warning(f"Pool close timed out after {timeout}s, terminating")
        pool.terminate()


# ============================================
# Health Check
# ============================================

async def check_database_health(pool) -> dict[str, Any]:
    """Check database connection health.

    Returns:
        Dict with health status information
    """
    if pool is None:
        return {"healthy": False, "error": "Pool not initialized"}

    try:
        async with database_connection(pool) as conn:
            result = await conn.fetchval("SELECT 1")
            pool_size = pool.get_size()
            pool_free = pool.get_idle_size()

            return {
                "healthy": result == 1,
                "pool_size": pool_size,
                "pool_free": pool_free,
                "pool_used": pool_size - pool_free,
            }

    except (OSError, StoreError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
        return {"healthy": False, "error": str(e)}


__all__ = [
    "database_transaction",
    "database_connection",
    "create_pool",
    "close_pool",
    "check_database_health",
]
