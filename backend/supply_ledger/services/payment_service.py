"""
Service Layer for payments and invoice balances
Project: Supply Ledger (healthcare supplies ERP)

Payments are recorded through the record_payment_with_allocation
procedure, which writes payment, allocation and invoice balance in one
transaction. Deployments without the procedure use a non-atomic fallback;
the invoice balance is the sum of its allocations either way, and the
reconciliation sweep repairs invoices that drifted from it.
"""

import datetime
import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any, Mapping, Optional

from supply_ledger.core.config import settings
from supply_ledger.core.exceptions import (
    NotFoundError,
    ReversalInconsistencyError,
    StoreError,
    StoreErrorCode,
    raise_classified,
)
from supply_ledger.schemas.common import OperationWarning, Outcome, WarningSeverity, make_warning
from supply_ledger.schemas.payment import (
    BalanceDiscrepancy,
    PaymentCreate,
    PaymentDeletion,
    PaymentPath,
    PaymentResult,
    ReconciliationReport,
)
from supply_ledger.services.balance_rules import (
    ZERO,
    apply_payment_delta,
    derive_invoice_status,
    to_money,
)
from supply_ledger.services.validation_service import require_uuid
from supply_ledger.store.base import LedgerStore, Row

logger = logging.getLogger(__name__)

RECORD_PAYMENT_PROCEDURE = "record_payment_with_allocation"

# Statuses set by payments; other stored statuses (sent, overdue) are left alone by the sweep
_PAYMENT_STATUSES = frozenset({"partial", "paid"})


def has_balance_discrepancy(invoice: Mapping[str, Any], tolerance: Optional[Decimal] = None) -> bool:
    """True when total - paid differs from the stored balance by more than the tolerance."""
    tolerance = settings.balance_tolerance if tolerance is None else tolerance
    expected = to_money(invoice.get("total_amount")) - to_money(invoice.get("paid_amount"))
    return abs(expected - to_money(invoice.get("balance_due"))) > tolerance


def _payment_number(payment_date: datetime.date) -> str:
    return f"PAY-{payment_date:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class PaymentService:
    """
    Payment recording, reversal and balance reconciliation.

    Implements:
    - atomic recording through the server procedure, fallback without it
    - payment deletion reversing every allocation
    - reconciliation of invoice balances against allocations
    """

    async def record_payment(self, store: LedgerStore, data: PaymentCreate) -> Outcome[PaymentResult]:
        """
        Record a payment against one invoice.

        Ids are checked before any store call. When the procedure is missing
        the payment is written step by step: the payment row is critical,
        the allocation and the invoice update degrade to warnings.

        Raises:
            ValidationError: "Invalid company ID", "Invalid customer ID" or "Invalid invoice ID"
            ConflictError / StoreError: the payment itself could not be written
        """
        company_id = require_uuid(data.company_id, "company ID")
        customer_id = require_uuid(data.customer_id, "customer ID")
        invoice_id = require_uuid(data.invoice_id, "invoice ID")
        amount = to_money(data.amount)
        payment_number = data.payment_number or _payment_number(data.payment_date)

        args = {
            "p_company_id": str(company_id),
            "p_customer_id": str(customer_id),
            "p_invoice_id": str(invoice_id),
            "p_payment_number": payment_number,
            "p_payment_date": data.payment_date.isoformat(),
            "p_amount": amount,
            "p_payment_method": data.payment_method.value,
            "p_reference_number": data.reference_number,
            "p_notes": data.notes,
        }
        try:
            result = await store.call_procedure(RECORD_PAYMENT_PROCEDURE, args)
        except StoreError as e:
            if e.code != StoreErrorCode.PROCEDURE_NOT_FOUND:
                logger.error("Payment %s rejected: %s", payment_number, e.describe())
                raise_classified(e, f"Failed to record payment {payment_number}")
            logger.warning("%s unavailable, recording payment %s without it", RECORD_PAYMENT_PROCEDURE, payment_number)
        else:
            logger.info("Recorded payment %s of %s on invoice %s", payment_number, amount, invoice_id)
            return Outcome(primary=PaymentResult(
                payment_id=result["payment_id"],
                invoice_id=result.get("invoice_id") or invoice_id,
                amount_allocated=to_money(result.get("amount_allocated", amount)),
                path=PaymentPath.ATOMIC,
                paid_amount=result.get("paid_amount"),
                balance_due=result.get("balance_due"),
                status=result.get("status"),
            ))

        return await self._record_without_procedure(
            store, data, company_id, customer_id, invoice_id, amount, payment_number,
        )

    async def _record_without_procedure(
        self,
        store: LedgerStore,
        data: PaymentCreate,
        company_id: uuid.UUID,
        customer_id: uuid.UUID,
        invoice_id: uuid.UUID,
        amount: Decimal,
        payment_number: str,
    ) -> Outcome[PaymentResult]:
        warnings: list[OperationWarning] = [make_warning(
            "PAYMENT_FALLBACK_USED",
            "Payment recorded without the atomic procedure",
            WarningSeverity.INFO,
        )]

        try:
            payments = await store.insert("payments", [{
                "company_id": company_id,
                "customer_id": customer_id,
                "payment_number": payment_number,
                "payment_date": data.payment_date,
                "amount": amount,
                "payment_method": data.payment_method.value,
                "reference_number": data.reference_number or payment_number,
                "notes": data.notes,
            }])
        except StoreError as e:
            logger.error("Payment %s rejected: %s", payment_number, e.describe())
            raise_classified(e, f"Failed to record payment {payment_number}")
        payment = payments[0]

        allocation_failed = False
        try:
            await store.insert("payment_allocations", [{
                "payment_id": payment["id"],
                "invoice_id": invoice_id,
                "amount_allocated": amount,
            }])
        except StoreError as e:
            allocation_failed = True
            logger.error(
                "Allocation of payment %s to invoice %s failed: %s",
                payment_number,
                invoice_id,
                e.describe(),
            )
            warnings.append(make_warning(
                "ALLOCATION_FAILED",
                f"Payment {payment_number} was saved but not allocated to the invoice",
                WarningSeverity.MODERATE,
                payment_id=str(payment["id"]),
                invoice_id=str(invoice_id),
                store_code=e.code.value,
            ))

        patch: Optional[Row] = None
        try:
            invoices = await store.select(
                "invoices",
                columns=["id", "total_amount", "paid_amount"],
                filters={"id": invoice_id, "company_id": company_id},
                limit=1,
            )
            if invoices:
                invoice = invoices[0]
                patch = apply_payment_delta(invoice["total_amount"], invoice.get("paid_amount"), amount)
                await store.update("invoices", patch, {"id": invoice_id})
        except StoreError as e:
            logger.error("Invoice %s not updated for payment %s: %s", invoice_id, payment_number, e.describe())
            patch = None

        if patch is None:
            warnings.append(make_warning(
                "INVOICE_NOT_UPDATED",
                f"The balance of invoice {invoice_id} was not updated; run balance reconciliation",
                WarningSeverity.MODERATE,
                invoice_id=str(invoice_id),
            ))

        result = PaymentResult(
            payment_id=payment["id"],
            invoice_id=invoice_id,
            amount_allocated=amount,
            path=PaymentPath.FALLBACK,
            fallback_used=True,
            allocation_failed=allocation_failed,
            invoice_updated=patch is not None,
            paid_amount=patch["paid_amount"] if patch else None,
            balance_due=patch["balance_due"] if patch else None,
            status=patch["status"] if patch else None,
        )
        return Outcome(primary=result).extend(warnings)

    async def delete_payment(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        payment_id: Any,
    ) -> Outcome[PaymentDeletion]:
        """
        Delete a payment after reversing each of its allocations.

        Every invoice is moved back by the allocated amount (paid amount
        floored at zero, status re-derived) before its allocation is
        removed. Any failure while reversing aborts the delete.

        Raises:
            ValidationError: "Invalid payment ID"
            NotFoundError: no such payment
            ReversalInconsistencyError: an allocation could not be reversed
        """
        payment_id = require_uuid(payment_id, "payment ID")
        payments = await store.select(
            "payments",
            filters={"id": payment_id, "company_id": company_id},
            limit=1,
        )
        if not payments:
            raise NotFoundError(f"Payment {payment_id} not found")
        payment_number = payments[0].get("payment_number")

        warnings: list[OperationWarning] = []
        try:
            allocations = await store.select("payment_allocations", filters={"payment_id": payment_id})
        except StoreError as e:
            if e.code != StoreErrorCode.UNDEFINED_TABLE:
                raise ReversalInconsistencyError(
                    f"Could not read the allocations of payment {payment_number}: {e.detail}"
                ) from e
            logger.warning("No payment_allocations table, deleting payment %s without reversal", payment_number)
            allocations = []
            warnings.append(make_warning(
                "ALLOCATIONS_UNAVAILABLE",
                "This deployment has no allocations; invoice balances were not changed",
                WarningSeverity.MODERATE,
            ))

        patches = []
        for allocation in allocations:
            patches.append(await self._reverse_allocation(store, allocation, payment_number))

        try:
            await store.delete("payments", {"id": payment_id, "company_id": company_id})
        except StoreError as e:
            logger.error("Delete of payment %s rejected: %s", payment_number, e.describe())
            raise_classified(e, f"Failed to delete payment {payment_number}")

        logger.info("Deleted payment %s, %d allocation(s) reversed", payment_number, len(allocations))
        deletion = PaymentDeletion(payment_id=payment_id, allocations_reversed=len(allocations), invoices=patches)
        return Outcome(primary=deletion).extend(warnings)

    async def _reverse_allocation(self, store: LedgerStore, allocation: Row, payment_number: str) -> dict:
        invoice_id = allocation["invoice_id"]
        try:
            invoices = await store.select(
                "invoices",
                columns=["id", "invoice_number", "total_amount", "paid_amount"],
                filters={"id": invoice_id},
                limit=1,
            )
            if not invoices:
                raise ReversalInconsistencyError(
                    f"Invoice {invoice_id} of payment {payment_number} no longer exists"
                )
            invoice = invoices[0]
            patch = apply_payment_delta(
                invoice["total_amount"],
                invoice.get("paid_amount"),
                -to_money(allocation["amount_allocated"]),
                floor_at_zero=True,
            )
            await store.update("invoices", patch, {"id": invoice_id})
            await store.delete("payment_allocations", {"id": allocation["id"]})
        except StoreError as e:
            logger.error(
                "Reversal of payment %s on invoice %s failed: %s",
                payment_number,
                invoice_id,
                e.describe(),
            )
            raise ReversalInconsistencyError(
                f"Payment {payment_number} could not be reversed on invoice {invoice_id}: {e.detail}",
                extra={"invoice_id": str(invoice_id), "store_code": e.code.value},
            ) from e

        logger.info(
            "Reversed %s of payment %s on invoice %s (status=%s)",
            allocation["amount_allocated"],
            payment_number,
            invoice.get("invoice_number"),
            patch["status"],
        )
        return {"invoice_id": invoice_id, **patch}

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------

    async def reconcile_all_balances(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        auto_fix: bool = False,
    ) -> ReconciliationReport:
        """
        Recompute every invoice of the company from its allocations.

        Args:
            auto_fix: Write the recomputed figures to mismatched invoices

        Returns:
            Counts; per-invoice fix failures are listed in `errors`

        Raises:
            StoreError / SchemaDriftError: invoices or allocations could not be read
        """
        invoices = await store.select(
            "invoices",
            columns=["id", "invoice_number", "total_amount", "paid_amount", "balance_due", "status"],
            filters={"company_id": company_id},
        )
        return await self._reconcile(store, invoices, auto_fix)

    async def reconcile_invoice_balance(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        invoice_id: uuid.UUID,
        auto_fix: bool = False,
    ) -> ReconciliationReport:
        """
        Reconcile a single invoice.

        Raises:
            NotFoundError: no such invoice
        """
        invoices = await store.select(
            "invoices",
            columns=["id", "invoice_number", "total_amount", "paid_amount", "balance_due", "status"],
            filters={"id": invoice_id, "company_id": company_id},
            limit=1,
        )
        if not invoices:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return await self._reconcile(store, invoices, auto_fix)

    async def _reconcile(self, store: LedgerStore, invoices: list[Row], auto_fix: bool) -> ReconciliationReport:
        report = ReconciliationReport()
        if not invoices:
            return report

        try:
            allocations = await store.select(
                "payment_allocations",
                columns=["invoice_id", "amount_allocated"],
                filters={"invoice_id": [invoice["id"] for invoice in invoices]},
            )
        except StoreError as e:
            logger.error("Could not read payment allocations: %s", e.describe())
            raise_classified(e, "Balance reconciliation could not read payment allocations")

        allocated: dict[Any, Decimal] = defaultdict(lambda: to_money(ZERO))
        for allocation in allocations:
            allocated[allocation["invoice_id"]] += to_money(allocation["amount_allocated"])

        tolerance = settings.balance_tolerance
        for invoice in invoices:
            report.checked += 1
            stored_paid = to_money(invoice.get("paid_amount"))
            stored_balance = to_money(invoice.get("balance_due"))
            stored_status = invoice.get("status")

            ledger_paid = allocated.get(invoice["id"], to_money(ZERO))
            expected_balance = to_money(invoice.get("total_amount")) - ledger_paid
            status = derive_invoice_status(ledger_paid, expected_balance)

            status_drift = (stored_status in _PAYMENT_STATUSES or status in _PAYMENT_STATUSES) and stored_status != status
            if (
                abs(stored_paid - ledger_paid) <= tolerance
                and abs(stored_balance - expected_balance) <= tolerance
                and not status_drift
            ):
                continue

            report.mismatched += 1
            report.discrepancies.append(BalanceDiscrepancy(
                invoice_id=invoice["id"],
                invoice_number=invoice.get("invoice_number"),
                stored_paid_amount=stored_paid,
                stored_balance_due=stored_balance,
                stored_status=stored_status,
                ledger_paid_amount=ledger_paid,
                expected_balance_due=expected_balance,
                expected_status=status,
            ))
            if not auto_fix:
                continue

            patch = {"paid_amount": ledger_paid, "balance_due": expected_balance, "status": status}
            try:
                await store.update("invoices", patch, {"id": invoice["id"]})
            except StoreError as e:
                logger.error("Could not fix invoice %s: %s", invoice.get("invoice_number"), e.describe())
                report.errors.append(f"{invoice.get('invoice_number') or invoice['id']}: {e.detail}")
            else:
                report.fixed += 1

        logger.info(
            "Balance reconciliation: checked=%d mismatched=%d fixed=%d",
            report.checked,
            report.mismatched,
            report.fixed,
        )
        return report


# Global service instance
payment_service = PaymentService()
