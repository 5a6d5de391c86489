"""
SQLAlchemy implementation of the ledger store
Project: Supply Ledger (healthcare supplies ERP)

Translates the table-oriented LedgerStore operations into SQLAlchemy Core
statements against the declared metadata, one short transaction per
operation, and turns driver failures into structured StoreErrors.
"""

import logging
import re
import uuid
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import MetaData, Table, Uuid, delete, insert, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supply_ledger.core.exceptions import StoreError, StoreErrorCode
from supply_ledger.models import Base
from supply_ledger.store.base import Filters, Row, is_multi_value
from supply_ledger.store.procedures import PROCEDURES, Procedure

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE → structured code
_SQLSTATE_CODES = {
    "23503": StoreErrorCode.FOREIGN_KEY_VIOLATION,
    "23505": StoreErrorCode.UNIQUE_VIOLATION,
    "23514": StoreErrorCode.CHECK_VIOLATION,
    "23502": StoreErrorCode.NOT_NULL_VIOLATION,
    "42703": StoreErrorCode.UNKNOWN_COLUMN,
    "42P01": StoreErrorCode.UNDEFINED_TABLE,
    "42883": StoreErrorCode.PROCEDURE_NOT_FOUND,
}

# "Key (created_by)=(...) is not present in table "users"."
_KEY_COLUMN = re.compile(r"Key \(([^)]+)\)")
# 'null value in column "customer_id" ...' / 'column "foo" of relation ...'
_QUOTED_COLUMN = re.compile(r'column "([^"]+)"')


def translate_db_error(exc: DBAPIError) -> StoreError:
    """
    Build a StoreError from a SQLAlchemy DBAPIError.

    The asyncpg adapter exposes the SQLSTATE as `pgcode`/`sqlstate` and keeps the
    original asyncpg exception, with its `detail`, `hint` and `column_name`
    attributes, as `__cause__`.
    """
    orig = exc.orig
    cause = getattr(orig, "__cause__", None)

    sqlstate = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(cause, "sqlstate", None)
    )
    code = _SQLSTATE_CODES.get(sqlstate, StoreErrorCode.UNKNOWN)

    message = str(orig).strip().splitlines()[0] if orig is not None else str(exc)
    details = getattr(cause, "detail", None) or getattr(orig, "detail", None)
    hint = getattr(cause, "hint", None) or getattr(orig, "hint", None)

    column = getattr(cause, "column_name", None)
    if column is None and details:
        match = _KEY_COLUMN.search(details)
        if match:
            column = match.group(1)
    if column is None:
        match = _QUOTED_COLUMN.search(message)
        if match:
            column = match.group(1)

    # Drivers without SQLSTATEs (e.g. SQLite) only report a message
    if code == StoreErrorCode.UNKNOWN and "foreign key" in message.lower():
        code = StoreErrorCode.FOREIGN_KEY_VIOLATION

    return StoreError(message, code=code, column=column, hint=hint, details=details)


class SqlAlchemyLedgerStore:
    """
    LedgerStore backed by an async SQLAlchemy session factory.

    Table and column names are checked against the metadata before any
    statement is issued, so schema drift surfaces as UNKNOWN_COLUMN /
    UNDEFINED_TABLE with the offending name instead of a driver message.

    Procedures are async callables `(session, **args)` registered by name; each
    call runs inside a single transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        metadata: MetaData = Base.metadata,
        procedures: Optional[Mapping[str, Procedure]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._metadata = metadata
        self._procedures = dict(PROCEDURES if procedures is None else procedures)

    # ------------------------------------------------------------
    # Metadata helpers
    # ------------------------------------------------------------

    def _table(self, name: str) -> Table:
        table = self._metadata.tables.get(name)
        if table is None:
            raise StoreError(
                f'relation "{name}" does not exist',
                code=StoreErrorCode.UNDEFINED_TABLE,
            )
        return table

    def _values(self, table: Table, row: Mapping[str, Any]) -> dict[str, Any]:
        values = {}
        for key, value in row.items():
            if key not in table.c:
                raise StoreError(
                    f"Could not find the '{key}' column of '{table.name}'",
                    code=StoreErrorCode.UNKNOWN_COLUMN,
                    column=key,
                )
            values[key] = self._coerce(table, key, value)
        return values

    @staticmethod
    def _coerce(table: Table, key: str, value: Any) -> Any:
        if isinstance(value, str) and isinstance(table.c[key].type, Uuid):
            try:
                return uuid.UUID(value)
            except ValueError:
                raise StoreError(
                    f"invalid input syntax for type uuid: \"{value}\"",
                    code=StoreErrorCode.UNKNOWN,
                    column=key,
                )
        return value

    def _where(self, table: Table, filters: Optional[Filters]) -> list:
        clauses = []
        for key, value in (filters or {}).items():
            if key not in table.c:
                raise StoreError(
                    f"column {table.name}.{key} does not exist",
                    code=StoreErrorCode.UNKNOWN_COLUMN,
                    column=key,
                )
            column = table.c[key]
            if is_multi_value(value):
                clauses.append(column.in_([self._coerce(table, key, v) for v in value]))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == self._coerce(table, key, value))
        return clauses

    def _require_filters(self, table: Table, filters: Optional[Filters], operation: str) -> list:
        clauses = self._where(table, filters)
        if not clauses:
            raise StoreError(
                f"Refusing unfiltered {operation} on '{table.name}'",
                code=StoreErrorCode.UNKNOWN,
            )
        return clauses

    # ------------------------------------------------------------
    # LedgerStore operations
    # ------------------------------------------------------------

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        target = self._table(table)
        prepared = [self._values(target, row) for row in rows]
        if not prepared:
            return []

        inserted: list[Row] = []
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    for values in prepared:
                        result = await session.execute(
                            insert(target).values(**values).returning(*target.c)
                        )
                        inserted.append(dict(result.mappings().one()))
            except DBAPIError as exc:
                error = translate_db_error(exc)
                logger.debug("Insert into %s failed: %s", table, error.describe())
                raise error from exc
        return inserted

    async def update(self, table: str, patch: Mapping[str, Any], filters: Filters) -> list[Row]:
        target = self._table(table)
        values = self._values(target, patch)
        clauses = self._require_filters(target, filters, "update")

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    result = await session.execute(
                        update(target).where(*clauses).values(**values).returning(*target.c)
                    )
                    return [dict(row) for row in result.mappings().all()]
            except DBAPIError as exc:
                error = translate_db_error(exc)
                logger.debug("Update of %s failed: %s", table, error.describe())
                raise error from exc

    async def delete(self, table: str, filters: Filters) -> None:
        target = self._table(table)
        clauses = self._require_filters(target, filters, "delete")

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    await session.execute(delete(target).where(*clauses))
            except DBAPIError as exc:
                error = translate_db_error(exc)
                logger.debug("Delete from %s failed: %s", table, error.describe())
                raise error from exc

    async def select(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        filters: Optional[Filters] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        target = self._table(table)
        selected = [target.c[name] for name in self._known(target, columns)] if columns else [target]
        query = select(*selected).where(*self._where(target, filters))

        for entry in order_by or ():
            descending = entry.startswith("-")
            name = entry.lstrip("-")
            (column,) = [target.c[n] for n in self._known(target, [name])]
            query = query.order_by(column.desc() if descending else column.asc())

        if limit is not None:
            query = query.limit(limit)

        async with self._session_factory() as session:
            try:
                result = await session.execute(query)
                return [dict(row) for row in result.mappings().all()]
            except DBAPIError as exc:
                error = translate_db_error(exc)
                logger.debug("Select from %s failed: %s", table, error.describe())
                raise error from exc

    async def call_procedure(self, name: str, args: Mapping[str, Any]) -> Any:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise StoreError(
                f"Could not find the function public.{name} in the schema cache",
                code=StoreErrorCode.PROCEDURE_NOT_FOUND,
                hint="Deploy the procedure or rely on the client-side fallback",
            )

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    return await procedure(session, **args)
            except DBAPIError as exc:
                error = translate_db_error(exc)
                logger.debug("Procedure %s failed: %s", name, error.describe())
                raise error from exc

    @staticmethod
    def _known(table: Table, names: Sequence[str]) -> Sequence[str]:
        for name in names:
            if name not in table.c:
                raise StoreError(
                    f"column {table.name}.{name} does not exist",
                    code=StoreErrorCode.UNKNOWN_COLUMN,
                    column=name,
                )
        return names
