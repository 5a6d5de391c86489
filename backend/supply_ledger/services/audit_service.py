"""
Service Layer for deletion auditing
Project: Supply Ledger (healthcare supplies ERP)

Before a document is deleted, a snapshot of its header and items is written
to audit_logs. Auditing is best-effort: a failed snapshot is logged and
reported as a warning, it never blocks the delete.
"""

import logging
import uuid
from typing import Optional

from pydantic_core import to_jsonable_python

from supply_ledger.core.exceptions import StoreError
from supply_ledger.core.permissions import Actor
from supply_ledger.schemas.common import OperationWarning, WarningSeverity, make_warning
from supply_ledger.store.base import LedgerStore, Row

logger = logging.getLogger(__name__)


class AuditService:
    """Writes audit trail entries."""

    async def record_deletion(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        actor: Actor,
        entity_type: str,
        record: Row,
        items: Optional[list[Row]] = None,
    ) -> list[OperationWarning]:
        """
        Snapshot a record about to be deleted.

        Args:
            store: Ledger store
            company_id: Company of the record
            actor: Who deletes it
            entity_type: Table name of the record
            record: Header row as read before the delete
            items: Child rows deleted with it

        Returns:
            Empty list, or one AUDIT_LOG_FAILED warning
        """
        details = to_jsonable_python({"record": record, "items": items or []})
        row = {
            "company_id": company_id,
            "user_id": actor.id,
            "action": "DELETE",
            "entity_type": entity_type,
            "entity_id": record.get("id"),
            "details": details,
        }
        try:
            await store.insert("audit_logs", [row])
        except StoreError as e:
            logger.warning(
                "Audit snapshot of %s %s failed: %s",
                entity_type,
                record.get("id"),
                e.describe(),
            )
            return [make_warning(
                "AUDIT_LOG_FAILED",
                f"The deletion of {entity_type} {record.get('id')} was not written to the audit log",
                WarningSeverity.MINOR,
                entity_type=entity_type,
                entity_id=str(record.get("id")),
            )]

        logger.info("Audited deletion of %s %s", entity_type, record.get("id"))
        return []

    async def fetch_snapshot_items(
        self,
        store: LedgerStore,
        items_table: str,
        parent_key: str,
        parent_id: uuid.UUID,
    ) -> tuple[list[Row], list[OperationWarning]]:
        """Read the child rows for a snapshot. A failed read leaves them out with a warning."""
        try:
            rows = await store.select(items_table, filters={parent_key: parent_id})
        except StoreError as e:
            logger.warning("Could not read %s for audit snapshot: %s", items_table, e.describe())
            return [], [make_warning(
                "AUDIT_ITEMS_UNAVAILABLE",
                "Items of the deleted record could not be captured in the audit log",
                WarningSeverity.INFO,
                items_table=items_table,
            )]
        return rows, []


# Global service instance
audit_service = AuditService()
