"""
Shared write steps for document services
Project: Supply Ledger (healthcare supplies ERP)

Header insert with the creator fallback, item insert with the optional
column downgrade, item replacement, product checks and the audited delete.
Document, delivery note and credit note services build on these.
"""

import logging
import uuid
from typing import Any, Optional

from supply_ledger.core.exceptions import (
    ConflictError,
    NotFoundError,
    SchemaDriftError,
    StoreError,
    StoreErrorCode,
    ValidationError,
    raise_classified,
)
from supply_ledger.core.permissions import Actor, require
from supply_ledger.schemas.common import OperationWarning, Outcome, WarningSeverity, make_warning
from supply_ledger.services.audit_service import audit_service
from supply_ledger.services.document_kinds import DocumentKind
from supply_ledger.services.line_items import OPTIONAL_ITEM_COLUMNS
from supply_ledger.store.base import LedgerStore, Row

logger = logging.getLogger(__name__)

CREATOR_COLUMN = "created_by"


def _is_creator_violation(exc: StoreError) -> bool:
    if exc.code != StoreErrorCode.FOREIGN_KEY_VIOLATION:
        return False
    if exc.column is not None:
        return exc.column == CREATOR_COLUMN
    return CREATOR_COLUMN in f"{exc.detail} {exc.details or ''}"


class DocumentWriter:
    """Base class with the write steps every document type shares."""

    async def fetch_document(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        company_id: uuid.UUID,
        document_id: uuid.UUID,
    ) -> Row:
        """
        Read one header of the company.

        Raises:
            NotFoundError: no such document in the company
        """
        rows = await store.select(
            kind.table,
            filters={"id": document_id, "company_id": company_id},
            limit=1,
        )
        if not rows:
            raise NotFoundError(f"{kind.label.capitalize()} {document_id} not found")
        return rows[0]

    async def fetch_items(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        document_id: uuid.UUID,
    ) -> list[Row]:
        return await store.select(
            kind.items_table,
            filters={kind.parent_key: document_id},
            order_by=["sort_order"],
        )

    async def require_counterparty(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        company_id: uuid.UUID,
        counterparty_id: Optional[uuid.UUID],
    ) -> Row:
        """
        Check the customer (or supplier) exists in the company.

        Raises:
            ValidationError: missing or unknown counterparty
        """
        role = "Supplier" if kind.counterparty_field == "supplier_id" else "Customer"
        if counterparty_id is None:
            raise ValidationError(f"{role} is required")
        rows = await store.select(
            "customers",
            filters={"id": counterparty_id, "company_id": company_id},
            limit=1,
        )
        if not rows:
            raise ValidationError(
                f"{role} {counterparty_id} not found",
                extra={kind.counterparty_field: str(counterparty_id)},
            )
        return rows[0]

    async def validate_products(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        product_ids: list[Optional[uuid.UUID]],
    ) -> None:
        """
        Every referenced product must belong to the company catalogue.

        Args:
            product_ids: Product id per item, None for free-text lines

        Raises:
            ValidationError: names the first offending item
        """
        wanted = {pid for pid in product_ids if pid is not None}
        if not wanted:
            return
        rows = await store.select(
            "products",
            columns=["id"],
            filters={"id": sorted(wanted, key=str), "company_id": company_id},
        )
        known = {row["id"] for row in rows}
        for index, product_id in enumerate(product_ids, start=1):
            if product_id is not None and product_id not in known:
                raise ValidationError(
                    f"Item {index}: product {product_id} is not in the company catalogue",
                    extra={"item": index, "product_id": str(product_id)},
                )

    async def insert_header(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        row: Row,
        actor: Actor,
        warnings: list[OperationWarning],
    ) -> Row:
        """
        Insert a header stamped with the actor as creator.

        A foreign key violation on the creator column (user not provisioned
        in this store) is retried once with no creator and reported as a
        warning.

        Raises:
            ConflictError: the header was rejected
        """
        row = {**row, CREATOR_COLUMN: actor.id}
        try:
            inserted = await store.insert(kind.table, [row])
        except StoreError as e:
            if row[CREATOR_COLUMN] is None or not _is_creator_violation(e):
                logger.error("%s header rejected: %s", kind.label, e.describe())
                raise_classified(e, f"Failed to create {kind.label}")

            logger.warning(
                "Creator %s not accepted for %s %s, retrying without creator",
                actor.id,
                kind.label,
                row.get(kind.number_field),
            )
            warnings.append(make_warning(
                "CREATOR_NOT_RECORDED",
                f"The creator of {kind.label} {row.get(kind.number_field)} could not be recorded",
                WarningSeverity.MINOR,
                user_id=str(actor.id),
            ))
            try:
                inserted = await store.insert(kind.table, [{**row, CREATOR_COLUMN: None}])
            except StoreError as retry_error:
                logger.error("%s header rejected on retry: %s", kind.label, retry_error.describe())
                raise_classified(retry_error, f"Failed to create {kind.label}")

        header = inserted[0]
        logger.info("Created %s %s (%s)", kind.label, header.get(kind.number_field), header.get("id"))
        return header

    async def insert_items(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        rows: list[Row],
        number: str,
        warnings: list[OperationWarning],
    ) -> list[Row]:
        """
        Insert item rows.

        When the store lacks an optional extended column, the column is
        stripped from every row and the insert retried once.

        Raises:
            SchemaDriftError: a non optional column is unknown, or the retry hits drift again
            ConflictError / StoreError: any other failure (the header already exists)
        """
        if not rows:
            return []

        try:
            return await store.insert(kind.items_table, rows)
        except StoreError as e:
            if e.code != StoreErrorCode.UNKNOWN_COLUMN or e.column not in OPTIONAL_ITEM_COLUMNS:
                logger.error("Items of %s %s rejected: %s", kind.label, number, e.describe())
                raise_classified(e, f"{kind.label.capitalize()} {number} was saved but its items were not")
            missing = e.column

        logger.warning(
            "Store has no %s.%s column, saving items of %s without it",
            kind.items_table,
            missing,
            number,
        )
        warnings.append(make_warning(
            "OPTIONAL_COLUMN_DROPPED",
            f"{missing} is not supported by this deployment and was not saved",
            WarningSeverity.MINOR,
            table=kind.items_table,
            column=missing,
        ))
        stripped = [{k: v for k, v in row.items() if k != missing} for row in rows]
        try:
            return await store.insert(kind.items_table, stripped)
        except StoreError as e:
            logger.error("Items of %s %s rejected on retry: %s", kind.label, number, e.describe())
            if e.code == StoreErrorCode.UNKNOWN_COLUMN:
                raise SchemaDriftError(
                    f"Items of {kind.label} {number} do not match the store schema: {e.detail}",
                    extra={"table": kind.items_table, "column": e.column},
                ) from e
            raise_classified(e, f"{kind.label.capitalize()} {number} was saved but its items were not")

    async def replace_items(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        document_id: uuid.UUID,
        rows: list[Row],
        number: str,
        warnings: list[OperationWarning],
    ) -> list[Row]:
        """Delete every item of a document and insert the new set."""
        try:
            await store.delete(kind.items_table, {kind.parent_key: document_id})
        except StoreError as e:
            logger.error("Could not clear items of %s %s: %s", kind.label, number, e.describe())
            raise_classified(e, f"Failed to replace the items of {kind.label} {number}")
        return await self.insert_items(store, kind, rows, number, warnings)

    async def ensure_deletable(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        document_id: uuid.UUID,
        number: Any,
    ) -> None:
        """Raise ConflictError while rows that block the delete still point at the document."""
        for table, key in kind.restricted_by:
            try:
                blocking = await store.select(table, columns=["id"], filters={key: document_id}, limit=1)
            except StoreError as e:
                logger.error("Could not check %s of %s %s: %s", table, kind.label, number, e.describe())
                raise_classified(e, f"Failed to delete {kind.label} {number}")
            if blocking:
                logger.warning("Delete of %s %s refused: referenced by %s", kind.label, number, table)
                raise ConflictError(
                    f"Cannot delete {kind.label} {number}: it is still referenced by {table}",
                    extra={"table": table},
                )

    async def delete_with_audit(
        self,
        store: LedgerStore,
        kind: DocumentKind,
        company_id: uuid.UUID,
        actor: Actor,
        document_id: uuid.UUID,
    ) -> Outcome[dict[str, Any]]:
        """
        Permission check, blocking references, audit snapshot, child cleanup, then the delete.

        Documents still referenced by payments or deliveries are refused before
        anything is written. Snapshot and child cleanup are best-effort.
        Children that could not be removed are left to the store's cascade rules.

        Raises:
            AuthorizationError: the actor may not delete this document type
            NotFoundError: no such document
            ConflictError: the document is still referenced, or the store refused the delete
        """
        if kind.delete_permission is not None:
            require(actor, kind.delete_permission)

        header = await self.fetch_document(store, kind, company_id, document_id)
        number = header.get(kind.number_field)
        await self.ensure_deletable(store, kind, document_id, number)
        warnings: list[OperationWarning] = []

        items, item_warnings = await audit_service.fetch_snapshot_items(
            store, kind.items_table, kind.parent_key, document_id,
        )
        warnings.extend(item_warnings)
        warnings.extend(
            await audit_service.record_deletion(store, company_id, actor, kind.table, header, items)
        )

        try:
            await store.delete(kind.items_table, {kind.parent_key: document_id})
        except StoreError as e:
            logger.warning("Could not delete items of %s %s: %s", kind.label, number, e.describe())
            warnings.append(make_warning(
                "CHILD_DELETE_FAILED",
                f"Rows in {kind.items_table} were not removed before deleting {kind.label} {number}",
                WarningSeverity.MINOR,
                table=kind.items_table,
            ))

        try:
            await store.delete(kind.table, {"id": document_id, "company_id": company_id})
        except StoreError as e:
            logger.error("Delete of %s %s rejected: %s", kind.label, number, e.describe())
            raise_classified(e, f"Failed to delete {kind.label} {number}")

        logger.info("Deleted %s %s by %s", kind.label, number, actor.id)
        return Outcome(primary={"id": document_id, "number": number, "deleted": True}).extend(warnings)
