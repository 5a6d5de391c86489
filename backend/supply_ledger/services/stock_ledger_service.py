"""
Service Layer for the stock ledger
Project: Supply Ledger (healthcare supplies ERP)

Every change to a product's stock is an append-only movement row. The
product's stock_quantity counter is a cache of the ledger, moved by the
update_product_stock procedure after each movement is written.

Rules:
- movement quantities are stored signed: OUT negative, IN positive
- writing the movement is critical, moving the counter is not: a counter
  failure becomes a warning and is repaired by reconcile_stock_levels
- reversals never delete or edit history, they append compensating rows
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable, Optional

from supply_ledger.core.exceptions import NotFoundError, StoreError, raise_classified
from supply_ledger.schemas.common import Outcome, OperationWarning, WarningSeverity, make_warning
from supply_ledger.schemas.inventory import (
    MovementType,
    ReferenceType,
    StockDiscrepancy,
    StockReconciliationReport,
)
from supply_ledger.store.base import LedgerStore, Row

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def signed_quantity(movement_type: MovementType | str, quantity: Any) -> Decimal:
    """Quantity as stored for a movement type: OUT negative, IN positive, ADJUSTMENT as given."""
    quantity = Decimal(str(quantity))
    movement_type = MovementType(movement_type)
    if movement_type == MovementType.OUT:
        return -abs(quantity)
    if movement_type == MovementType.IN:
        return abs(quantity)
    return quantity


def counter_direction(movement_type: MovementType | str, quantity: Any) -> MovementType:
    """Direction sent to update_product_stock. ADJUSTMENT follows the sign of its quantity."""
    movement_type = MovementType(movement_type)
    if movement_type == MovementType.ADJUSTMENT:
        return MovementType.IN if Decimal(str(quantity)) >= 0 else MovementType.OUT
    return movement_type


def build_reversal(movements: Iterable[Row], document_number: str) -> list[Row]:
    """
    One compensating movement per original: direction flipped, quantity
    negated, reference_type ADJUSTMENT, same reference_id.
    """
    flipped = {
        MovementType.IN.value: MovementType.OUT.value,
        MovementType.OUT.value: MovementType.IN.value,
        MovementType.ADJUSTMENT.value: MovementType.ADJUSTMENT.value,
    }
    reversals = []
    for movement in movements:
        original_type = str(movement["movement_type"])
        reversals.append({
            "company_id": movement.get("company_id"),
            "product_id": movement["product_id"],
            "movement_type": flipped[original_type],
            "reference_type": ReferenceType.ADJUSTMENT.value,
            "reference_id": movement.get("reference_id"),
            "quantity": -Decimal(str(movement["quantity"])),
            "cost_per_unit": movement.get("cost_per_unit"),
            "notes": f"Reversal of {movement.get('reference_type')} movement for {document_number}",
        })
    return reversals


def document_movements(
    company_id: uuid.UUID,
    movement_type: MovementType,
    reference_type: ReferenceType,
    reference_id: uuid.UUID,
    items: Iterable[Row],
    notes: str,
    quantity_field: str = "quantity",
) -> list[Row]:
    """Movement rows for the catalogue lines of a document; free-text lines move nothing."""
    rows = []
    for item in items:
        quantity = item.get(quantity_field)
        if item.get("product_id") is None or quantity is None or Decimal(str(quantity)) <= 0:
            continue
        rows.append({
            "company_id": company_id,
            "product_id": item["product_id"],
            "movement_type": movement_type.value,
            "reference_type": reference_type.value,
            "reference_id": reference_id,
            "quantity": signed_quantity(movement_type, quantity),
            "cost_per_unit": item.get("unit_price"),
            "notes": notes,
        })
    return rows


def outstanding_positions(movements: Iterable[Row]) -> list[Row]:
    """
    Net the movements of one reference per product.

    A document edited several times carries its original movements and the
    compensating ones of every edit; only the net position is still
    outstanding. Products that net to zero are dropped.
    """
    net: dict[Any, Decimal] = defaultdict(lambda: ZERO)
    last: dict[Any, Row] = {}
    for movement in movements:
        net[movement["product_id"]] += Decimal(str(movement["quantity"]))
        if movement.get("reference_type") != ReferenceType.ADJUSTMENT.value or movement["product_id"] not in last:
            last[movement["product_id"]] = movement

    positions = []
    for product_id, quantity in net.items():
        if quantity == 0:
            continue
        template = last[product_id]
        positions.append({
            **template,
            "movement_type": (MovementType.OUT if quantity < 0 else MovementType.IN).value,
            "quantity": quantity,
        })
    return positions


class StockLedgerService:
    """
    Appends stock movements and keeps product counters in step.

    Implements:
    - single and batch movements
    - compensating reversals for edited or deleted documents
    - manual restock
    - reconciliation of counters against the ledger
    """

    async def apply_movement(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        product_id: uuid.UUID,
        movement_type: MovementType | str,
        reference_type: ReferenceType | str,
        reference_id: Optional[uuid.UUID],
        quantity: Any,
        cost_per_unit: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Outcome[Row]:
        """
        Append one movement and move the product counter.

        The product must belong to the company whose ledger receives the row.

        Raises:
            NotFoundError: the product is not in the company catalogue
            ConflictError: the movement row was rejected by the store
            StoreError: the movement row could not be written
        """
        products = await store.select(
            "products",
            columns=["id"],
            filters={"id": product_id, "company_id": company_id},
            limit=1,
        )
        if not products:
            raise NotFoundError(f"Product {product_id} not found")

        row = {
            "company_id": company_id,
            "product_id": product_id,
            "movement_type": MovementType(movement_type).value,
            "reference_type": ReferenceType(reference_type).value,
            "reference_id": reference_id,
            "quantity": signed_quantity(movement_type, quantity),
            "cost_per_unit": cost_per_unit,
            "notes": notes,
        }
        try:
            inserted = await store.insert("stock_movements", [row])
        except StoreError as e:
            logger.error("Stock movement for product %s rejected: %s", product_id, e.describe())
            raise_classified(e, "Failed to record stock movement")

        outcome: Outcome[Row] = Outcome(primary=inserted[0])
        warning = await self._update_counter(store, inserted[0])
        if warning is not None:
            outcome.warnings.append(warning)
        return outcome

    async def apply_movements(
        self,
        store: LedgerStore,
        rows: list[Row],
        concurrent: bool = True,
    ) -> Outcome[list[Row]]:
        """
        Append a batch of movement rows in one insert, then move every counter.

        Counter updates run concurrently (or one at a time with
        concurrent=False); their failures are folded into a single warning.

        Raises:
            ConflictError: the batch insert was rejected
            StoreError: the batch insert failed
        """
        if not rows:
            return Outcome(primary=[])

        try:
            inserted = await store.insert("stock_movements", rows)
        except StoreError as e:
            logger.error("Batch of %d stock movements rejected: %s", len(rows), e.describe())
            raise_classified(e, "Failed to record stock movements")

        outcome: Outcome[list[Row]] = Outcome(primary=inserted)
        outcome.extend(await self.update_counters(store, inserted, concurrent=concurrent))
        return outcome

    async def update_counters(
        self,
        store: LedgerStore,
        movements: list[Row],
        concurrent: bool = True,
    ) -> list[OperationWarning]:
        """
        Move the counters for already written movements.

        Each update ends in success, a returned failure (store error) or a
        raised one; the failures are aggregated into one warning.
        """
        if concurrent:
            settled = await asyncio.gather(
                *(self._update_counter(store, movement) for movement in movements),
                return_exceptions=True,
            )
        else:
            settled = []
            for movement in movements:
                try:
                    settled.append(await self._update_counter(store, movement))
                except Exception as e:
                    settled.append(e)

        failed_products = []
        for movement, result in zip(movements, settled):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "Stock update for product %s raised %s: %s",
                    movement["product_id"],
                    result.__class__.__name__,
                    result,
                )
                failed_products.append(str(movement["product_id"]))
            elif result is not None:
                failed_products.append(str(movement["product_id"]))

        if not failed_products:
            return []

        logger.warning("%d of %d stock updates failed", len(failed_products), len(movements))
        return [make_warning(
            "STOCK_UPDATES_FAILED",
            f"{len(failed_products)} of {len(movements)} stock updates failed; "
            "run stock reconciliation to repair the product levels",
            WarningSeverity.MODERATE,
            product_ids=failed_products,
        )]

    async def _update_counter(self, store: LedgerStore, movement: Row) -> Optional[OperationWarning]:
        quantity = Decimal(str(movement["quantity"]))
        direction = counter_direction(movement["movement_type"], quantity)
        try:
            await store.call_procedure(
                "update_product_stock",
                {
                    "product_uuid": str(movement["product_id"]),
                    "movement_type": direction.value,
                    "quantity": abs(quantity),
                },
            )
        except StoreError as e:
            logger.warning(
                "Stock counter update failed for product %s: %s",
                movement["product_id"],
                e.describe(),
            )
            return make_warning(
                "STOCK_UPDATE_FAILED",
                f"Stock level of product {movement['product_id']} was not updated",
                WarningSeverity.MODERATE,
                product_id=str(movement["product_id"]),
                movement_id=str(movement.get("id")),
            )
        return None

    # -------------------------------------------------------------------
    # Reversals
    # -------------------------------------------------------------------

    async def reverse_reference(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        reference_type: ReferenceType | str,
        reference_id: uuid.UUID,
        document_number: str,
        concurrent: bool = True,
    ) -> Outcome[list[Row]]:
        """
        Compensate everything still outstanding for a document.

        Reads the document's own movements and the compensations already
        written for it, and appends one reversal per product whose net
        position is not zero.

        Raises:
            StoreError: the existing movements could not be read
            ConflictError: the reversal rows were rejected
        """
        movements = await store.select(
            "stock_movements",
            filters={
                "company_id": company_id,
                "reference_id": reference_id,
                "reference_type": [ReferenceType(reference_type).value, ReferenceType.ADJUSTMENT.value],
            },
            order_by=["created_at"],
        )
        reversals = build_reversal(outstanding_positions(movements), document_number)
        for reversal in reversals:
            reversal["company_id"] = company_id

        if reversals:
            logger.info(
                "Reversing %d stock position(s) of %s %s",
                len(reversals),
                ReferenceType(reference_type).value,
                document_number,
            )
        return await self.apply_movements(store, reversals, concurrent=concurrent)

    # -------------------------------------------------------------------
    # Restock, reconciliation, history
    # -------------------------------------------------------------------

    async def restock_product(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: Decimal,
        cost_per_unit: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Outcome[Row]:
        """
        Record goods received outside any document.

        Raises:
            NotFoundError: the product is not in the company catalogue
        """
        return await self.apply_movement(
            store,
            company_id,
            product_id,
            MovementType.IN,
            ReferenceType.RESTOCK,
            None,
            quantity,
            cost_per_unit=cost_per_unit,
            notes=notes or "Manual restock",
        )

    async def reconcile_stock_levels(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        auto_fix: bool = False,
    ) -> StockReconciliationReport:
        """
        Compare each product counter with the sum of its signed movements.

        Args:
            auto_fix: Overwrite mismatched counters with the ledger value

        Returns:
            Counts of checked, mismatched and fixed products; per product
            fix failures are reported in `errors`
        """
        products = await store.select(
            "products",
            columns=["id", "stock_quantity"],
            filters={"company_id": company_id},
        )
        movements = await store.select(
            "stock_movements",
            columns=["product_id", "quantity"],
            filters={"company_id": company_id},
        )

        ledger: dict[Any, Decimal] = defaultdict(lambda: ZERO)
        for movement in movements:
            ledger[movement["product_id"]] += Decimal(str(movement["quantity"]))

        report = StockReconciliationReport()
        for product in products:
            report.checked += 1
            recorded = Decimal(str(product.get("stock_quantity") or 0))
            expected = ledger.get(product["id"], ZERO)
            if recorded == expected:
                continue

            report.mismatched += 1
            report.discrepancies.append(StockDiscrepancy(
                product_id=product["id"],
                recorded_quantity=recorded,
                ledger_quantity=expected,
            ))
            if not auto_fix:
                continue

            try:
                await store.update("products", {"stock_quantity": expected}, {"id": product["id"]})
            except StoreError as e:
                logger.error("Could not fix stock of product %s: %s", product["id"], e.describe())
                report.errors.append(f"{product['id']}: {e.detail}")
            else:
                report.fixed += 1

        logger.info(
            "Stock reconciliation for company %s: checked=%d mismatched=%d fixed=%d",
            company_id,
            report.checked,
            report.mismatched,
            report.fixed,
        )
        return report

    async def get_movements(
        self,
        store: LedgerStore,
        company_id: uuid.UUID,
        product_id: Optional[uuid.UUID] = None,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> list[Row]:
        """Movement history, newest first."""
        filters: dict[str, Any] = {"company_id": company_id}
        if product_id is not None:
            filters["product_id"] = product_id
        if reference_type is not None:
            filters["reference_type"] = ReferenceType(reference_type).value
        if reference_id is not None:
            filters["reference_id"] = reference_id
        return await store.select(
            "stock_movements",
            filters=filters,
            order_by=["-created_at"],
            limit=limit,
        )


# Global service instance
stock_ledger_service = StockLedgerService()
