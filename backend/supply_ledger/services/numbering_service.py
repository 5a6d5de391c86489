"""
Service Layer for document numbering
Project: Supply Ledger (healthcare supplies ERP)

Numbers come from the generate_<type>_number procedures (PREFIX-YYYY-NNNN).
When the procedure cannot be reached the service issues a timestamp based
number instead, so document creation is never blocked by numbering.
"""

import datetime
import logging
import uuid
from typing import Optional

from supply_ledger.core.exceptions import StoreError
from supply_ledger.schemas.common import Outcome, WarningSeverity
from supply_ledger.schemas.document import DocumentType
from supply_ledger.services.document_kinds import DocumentKind, get_kind
from supply_ledger.store.base import LedgerStore

logger = logging.getLogger(__name__)


class NumberingService:
    """Issues document numbers per company and type."""

    async def generate_number(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        document_type: DocumentType | str,
    ) -> Outcome[str]:
        """
        Return the next number for a document type.

        Args:
            store: Ledger store
            company_id: Company the document belongs to
            document_type: DocumentType or its value

        Returns:
            Outcome with the number; degraded when the fallback was used
        """
        kind = get_kind(document_type)
        try:
            number = await store.call_procedure(
                kind.number_procedure,
                {"company_uuid": str(company_id)},
            )
        except StoreError as e:
            logger.warning(
                "Numbering procedure %s failed for company %s: %s",
                kind.number_procedure,
                company_id,
                e.describe(),
            )
            reason = e.describe()
        else:
            if number:
                return Outcome(primary=str(number))
            logger.warning("Numbering procedure %s returned no number", kind.number_procedure)
            reason = "empty result"

        fallback = self.fallback_number(kind)
        return Outcome(primary=fallback).warn(
            "NUMBER_FALLBACK_USED",
            f"The {kind.label} number generator is unavailable; issued {fallback} instead",
            WarningSeverity.MODERATE,
            document_type=kind.type.value,
            reason=reason,
        )

    @staticmethod
    def fallback_number(kind: DocumentKind, now: Optional[datetime.datetime] = None) -> str:
        """PREFIX-<year>-<epoch milliseconds>."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        return f"{kind.prefix}-{now.year}-{int(now.timestamp() * 1000)}"


# Global service instance
numbering_service = NumberingService()
