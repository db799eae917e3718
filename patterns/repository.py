"""Async record store pattern for database access.

Provides a generic table-level store: callers name a table and a field,
and get plain dict rows back. Equality, membership and ordered fetches,
single-row lookup, insert, update, delete, and a transactional
reconcile by key. Verticals register their tables and wrap the store in a
domain service.

Every SQLAlchemy failure is re-raised as DataStoreError with the driver's
message kept verbatim.
"""

from typing import Any, Iterable

from sqlalchemy import delete as sa_delete, select, update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DataStoreError, RecordNotFound
from core.logging import get_logger
from core.models.base import Base

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

class RecordStore:
    """Generic async record store over a set of SQLAlchemy models.

    Usage::

        store = RecordStore(session, {"tasks": Task, "projects": Project})
        rows = await store.fetch_by_equality("tasks", "project_id", pid)
        await store.update("projects", "id", pid, {"status": "DONE"})
    """

    def __init__(self, session: AsyncSession, tables: dict[str, type[Base]]):
        self.session = session
        self.tables = tables

    # -- Helpers --

    def _model(self, table: str) -> type[Base]:
        try:
            return self.tables[table]
        except KeyError:
            raise DataStoreError(f"Unknown table: {table}") from None

    def _column(self, table: str, field: str):
        model = self._model(table)
        if not hasattr(model, field):
            raise DataStoreError(f"Unknown column {table}.{field}")
        return getattr(model, field)

    async def _rows(self, stmt) -> list[dict]:
        # Bulk update/delete bypass the identity map; always reload.
        stmt = stmt.execution_options(populate_existing=True)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("store_query_failed", error=str(exc))
            raise DataStoreError(str(exc)) from exc
        return [row.to_dict() for row in result.scalars().all()]

    # -- Fetch --

    async def fetch_by_equality(self, table: str, field: str, value: Any) -> list[dict]:
        """All rows where ``field == value``."""
        stmt = select(self._model(table)).where(self._column(table, field) == value)
        return await self._rows(stmt)

    async def fetch_by_membership(
        self, table: str, field: str, values: Iterable[Any]
    ) -> list[dict]:
        """All rows where ``field`` is one of ``values``. Empty input -> []."""
        values = list(values)
        if not values:
            return []
        stmt = select(self._model(table)).where(self._column(table, field).in_(values))
        return await self._rows(stmt)

    async def fetch_ordered(
        self, table: str, field: str, descending: bool = False
    ) -> list[dict]:
        """All rows of ``table`` ordered by ``field``."""
        column = self._column(table, field)
        stmt = select(self._model(table)).order_by(column.desc() if descending else column.asc())
        return await self._rows(stmt)

    async def get(self, table: str, key_field: str, value: Any) -> dict:
        """Single row by key. Raises RecordNotFound when absent."""
        stmt = select(self._model(table)).where(self._column(table, key_field) == value)
        rows = await self._rows(stmt)
        if not rows:
            raise RecordNotFound(table, str(value))
        return rows[0]

    # -- Write --

    async def insert(self, table: str, record: dict[str, Any]) -> dict:
        """Insert one record and return it as stored."""
        inserted = await self.insert_many(table, [record])
        return inserted[0]

    async def insert_many(self, table: str, records: list[dict[str, Any]]) -> list[dict]:
        """Insert several records in one flush."""
        model = self._model(table)
        items = [model(**record) for record in records]
        try:
            self.session.add_all(items)
            await self.session.flush()
            for item in items:
                await self.session.refresh(item)
        except SQLAlchemyError as exc:
            logger.error("store_insert_failed", table=table, error=str(exc))
            raise DataStoreError(str(exc)) from exc
        return [item.to_dict() for item in items]

    async def update(
        self, table: str, key_field: str, key_value: Any, patch: dict[str, Any]
    ) -> bool:
        """Apply ``patch`` to rows matching the key. Returns False if none matched."""
        for key in patch:
            self._column(table, key)
        stmt = (
            sa_update(self._model(table))
            .where(self._column(table, key_field) == key_value)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("store_update_failed", table=table, error=str(exc))
            raise DataStoreError(str(exc)) from exc
        return (result.rowcount or 0) > 0

    async def delete(self, table: str, key_field: str, key_value: Any) -> int:
        """Delete rows matching the key. Returns the number removed."""
        stmt = (
            sa_delete(self._model(table))
            .where(self._column(table, key_field) == key_value)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("store_delete_failed", table=table, error=str(exc))
            raise DataStoreError(str(exc)) from exc
        return result.rowcount or 0

    async def reconcile_where(
        self,
        table: str,
        field: str,
        value: Any,
        records: list[dict[str, Any]],
        key_field: str = "id",
    ) -> list[dict]:
        """Make the rows where ``field == value`` match ``records``.

        A record whose ``key_field`` names a row already in scope updates that
        row in place; any other record is inserted with a fresh key; rows in
        scope that no record names are deleted. Everything runs in the
        session's transaction, so a failure leaves the caller to roll back.
        Returns the rows in ``records`` order.
        """
        model = self._model(table)
        column = self._column(table, field)
        key_column = self._column(table, key_field)

        existing = {row[key_field] for row in await self.fetch_by_equality(table, field, value)}
        kept = {r.get(key_field) for r in records if r.get(key_field) in existing}
        removed = existing - kept

        keys: list[Any] = []
        try:
            if removed:
                await self.session.execute(
                    sa_delete(model)
                    .where(column == value, key_column.in_(removed))
                    .execution_options(synchronize_session=False)
                )
            for record in records:
                values = {k: v for k, v in record.items() if k != key_field}
                values[field] = value
                key = record.get(key_field)
                if key in kept:
                    await self.session.execute(
                        sa_update(model)
                        .where(key_column == key)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                else:
                    item = model(**values)
                    self.session.add(item)
                    await self.session.flush()
                    key = getattr(item, key_field)
                keys.append(key)
        except SQLAlchemyError as exc:
            logger.error("store_reconcile_failed", table=table, error=str(exc))
            raise DataStoreError(str(exc)) from exc

        if removed:
            logger.debug("store_reconcile_removed", table=table, removed=len(removed))
        rows = {row[key_field]: row for row in await self.fetch_by_membership(table, key_field, keys)}
        return [rows[key] for key in keys]
