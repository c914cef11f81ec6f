"""PostgreSQL repository adapter for list metadata and continuation tokens.

Both live in the ``sharepoint_lists`` table; the token is the ``delta_link``
column and is only written through the dedicated token methods.
"""

import logging
from typing import TYPE_CHECKING

from ...api.database import database_connection, database_transaction
from ..domain.entities import ListRecord
from ..domain.ports import IListRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

LISTS_TABLE = "sharepoint_lists"


class PostgresListRepository(IListRepository):
    """PostgreSQL implementation of IListRepository."""

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the repository.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    async def get_list(self, list_id: str) -> list[ListRecord]:
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                """
                SELECT id, site_id, etag, name, display_name, delta_link
                FROM sharepoint_lists
                WHERE id = $1
                """,
                list_id,
            )
        return [
            ListRecord(
                id=row["id"],
                site_id=row["site_id"],
                revision_tag=row["etag"] or "",
                name=row["name"],
                display_name=row["display_name"],
                continuation_token=row["delta_link"],
            )
            for row in rows
        ]

    async def insert_lists(self, lists: list[ListRecord]) -> int:
        """Insert list metadata in one transaction.

        A pre-existing row (left behind by an earlier failed pass) is
        overwritten, except for its token.
        """
        if not lists:
            return 0

        records = [(r.id, r.site_id, r.revision_tag, r.name, r.display_name) for r in lists]
        async with database_transaction(self.pool, operation="insert_lists", table=LISTS_TABLE) as conn:
            await conn.executemany(
                """
                INSERT INTO sharepoint_lists (id, site_id, etag, name, display_name)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (id) DO UPDATE SET
                    site_id = EXCLUDED.site_id,
                    etag = EXCLUDED.etag,
                    name = EXCLUDED.name,
                    display_name = EXCLUDED.display_name
                """,
                records,
            )
        return len(records)

    async def update_list(self, record: ListRecord) -> None:
        async with database_transaction(self.pool, operation="update_list", table=LISTS_TABLE) as conn:
            await conn.execute(
                """
                UPDATE sharepoint_lists
                SET site_id = $2, etag = $3, name = $4, display_name = $5
                WHERE id = $1
                """,
                record.id,
                record.site_id,
                record.revision_tag,
                record.name,
                record.display_name,
            )

    async def delete_list(self, list_id: str) -> None:
        async with database_transaction(self.pool, operation="delete_list", table=LISTS_TABLE) as conn:
            await conn.execute("DELETE FROM sharepoint_lists WHERE id = $1", list_id)

    # ----------------------------------------
    # Continuation token
    # ----------------------------------------

    async def get_continuation_token(self, list_id: str) -> str | None:
        async with database_connection(self.pool) as conn:
            return await conn.fetchval(
                "SELECT delta_link FROM sharepoint_lists WHERE id = $1",
                list_id,
            )

    async def set_continuation_token(self, list_id: str, token: str) -> None:
        async with database_transaction(self.pool, operation="set_token", table=LISTS_TABLE) as conn:
            result = await conn.execute(
                "UPDATE sharepoint_lists SET delta_link = $2 WHERE id = $1",
                list_id,
                token,
            )
        if result == "UPDATE 0":
            logger.warning(f"No sharepoint_lists row for {list_id}; continuation token not stored")

    async def clear_continuation_token(self, list_id: str) -> None:
        async with database_transaction(self.pool, operation="clear_token", table=LISTS_TABLE) as conn:
            await conn.execute(
                "UPDATE sharepoint_lists SET delta_link = NULL WHERE id = $1",
                list_id,
            )
