"""PostgreSQL repository adapter for list items.

Every tracked list has its own table: the metadata columns
``id, list_id, site_id, etag`` followed by the configured columns in
order. Configured columns hold text; structured field values (lookups,
multi-choice, person fields) are stored as JSON text.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

from ...api.database import database_connection, database_transaction
from ..domain.entities import ITEM_METADATA_COLUMNS, ItemRecord, ListSchema, ResourceRef
from ..domain.ports import IItemRepository

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


def quote_ident(name: str) -> str:
    """Double-quote an identifier; ``schema.table`` is quoted per part."""
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


def to_column_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, bool)):
        return json.dumps(value)
    return str(value)


class PostgresItemRepository(IItemRepository):
    """PostgreSQL implementation of IItemRepository.

    - Bulk UPSERT (INSERT ON CONFLICT) for the insert set, one transaction
    - One transaction per update and per delete
    """

    def __init__(self, pool: "asyncpg.Pool"):
        """Initialize the repository.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool

    @staticmethod
    def _columns(schema: ListSchema) -> list[str]:
        return list(ITEM_METADATA_COLUMNS) + schema.column_names

    @staticmethod
    def _to_record(schema: ListSchema, item: ItemRecord) -> tuple[Any, ...]:
        values = [to_column_value(item.fields.get(c.field)) for c in schema.columns]
        return (item.id, item.list_id, item.site_id, item.revision_tag, *values)

    async def get_items(self, schema: ListSchema, ref: ResourceRef) -> list[ItemRecord]:
        columns = ", ".join(quote_ident(c) for c in self._columns(schema))
        async with database_connection(self.pool) as conn:
            rows = await conn.fetch(
                f"SELECT {columns} FROM {quote_ident(schema.table_name)} "
                f"WHERE list_id = $1 AND site_id = $2",
                ref.list_id,
                ref.site_id,
            )
        return [
            ItemRecord(
                id=row["id"],
                list_id=row["list_id"],
                site_id=row["site_id"],
                revision_tag=row["etag"] or "",
                fields={c.field: row[c.column] for c in schema.columns},
            )
            for row in rows
        ]

    async def upsert_items(self, schema: ListSchema, items: list[ItemRecord]) -> int:
        if not items:
            return 0

        columns = self._columns(schema)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        assignments = ", ".join(
            f"{quote_ident(c)} = EXCLUDED.{quote_ident(c)}" for c in columns if c != "id"
        )
        query = (
            f"INSERT INTO {quote_ident(schema.table_name)} "
            f"({', '.join(quote_ident(c) for c in columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT (id) DO UPDATE SET {assignments}"
        )

        records = [self._to_record(schema, item) for item in items]
        async with database_transaction(
            self.pool, operation="upsert_items", table=schema.table_name
        ) as conn:
            await conn.executemany(query, records)

        logger.debug(f"Upserted {len(records)} items into {schema.table_name}")
        return len(records)

    async def update_item(self, schema: ListSchema, item: ItemRecord) -> None:
        columns = self._columns(schema)
        assignments = ", ".join(
            f"{quote_ident(c)} = ${i}" for i, c in enumerate(columns[1:], start=2)
        )
        query = (
            f"UPDATE {quote_ident(schema.table_name)} SET {assignments} "
            f"WHERE id = $1 AND list_id = $2 AND site_id = $3"
        )

        async with database_transaction(
            self.pool, operation="update_item", table=schema.table_name
        ) as conn:
            await conn.execute(query, *self._to_record(schema, item))

    async def delete_item(self, schema: ListSchema, ref: ResourceRef, item_id: str) -> None:
        async with database_transaction(
            self.pool, operation="delete_item", table=schema.table_name
        ) as conn:
            await conn.execute(
                f"DELETE FROM {quote_ident(schema.table_name)} "
                f"WHERE id = $1 AND list_id = $2 AND site_id = $3",
                item_id,
                ref.list_id,
                ref.site_id,
            )
