"""
Tests for credit notes.
"""

import uuid
from decimal import Decimal

import pytest

from supply_ledger.core.exceptions import (
    AuthorizationError,
    ConflictError,
    StoreError,
    StoreErrorCode,
    ValidationError,
)
from supply_ledger.schemas.document import CreditNoteCreate
from supply_ledger.services.credit_note_service import credit_note_service


@pytest.fixture
def credit(customer, product, make_item):
    def build(quantity="3", **kwargs) -> CreditNoteCreate:
        values = {
            "customer_id": customer["id"],
            "reason": "Damaged in transit",
            "items": [make_item(product["id"], quantity=quantity)],
        }
        values.update(kwargs)
        return CreditNoteCreate(**values)
    return build


class TestCreditNotes:

    async def test_returned_goods_back_in_stock(self, store, company_id, admin, invoice, product, credit):
        outcome = await credit_note_service.create_credit_note(
            store, company_id, admin, credit(invoice_id=invoice["id"], affects_inventory=True),
        )

        note = outcome.primary
        assert note["credit_note_number"].startswith("CN-")
        assert note["total_amount"] == Decimal("348.00")
        (movement,) = store.rows("stock_movements", reference_id=note["id"])
        assert movement["quantity"] == Decimal("3")
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("43")

    async def test_no_stock_without_affects_inventory(self, store, company_id, admin, product, credit):
        outcome = await credit_note_service.create_credit_note(store, company_id, admin, credit())

        assert store.rows("stock_movements", reference_id=outcome.primary["id"]) == []
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("50")

    async def test_invoice_of_another_customer(self, store, company_id, admin, other_customer, invoice, credit):
        with pytest.raises(ValidationError, match="belongs to another customer"):
            await credit_note_service.create_credit_note(
                store, company_id, admin, credit(customer_id=other_customer["id"], invoice_id=invoice["id"]),
            )

        assert store.rows("credit_notes") == []

    async def test_unknown_invoice(self, store, company_id, admin, credit):
        with pytest.raises(ValidationError, match="not found in this company"):
            await credit_note_service.create_credit_note(
                store, company_id, admin, credit(invoice_id=uuid.uuid4()),
            )

    async def test_delete_takes_goods_out_again(self, store, company_id, admin, product, credit):
        note = (await credit_note_service.create_credit_note(
            store, company_id, admin, credit(affects_inventory=True),
        )).primary

        outcome = await credit_note_service.delete_credit_note(store, company_id, admin, note["id"])

        assert not outcome.degraded
        assert store.get("credit_notes", note["id"]) is None
        movements = store.rows("stock_movements", reference_id=note["id"])
        assert sum(m["quantity"] for m in movements) == 0
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("50")

    async def test_refused_delete_leaves_stock(self, store, company_id, admin, product, credit):
        note = (await credit_note_service.create_credit_note(
            store, company_id, admin, credit(affects_inventory=True),
        )).primary
        store.fail_next("delete", "credit_notes", StoreError(
            "update or delete on table \"credit_notes\" violates foreign key constraint",
            code=StoreErrorCode.FOREIGN_KEY_VIOLATION,
        ))

        with pytest.raises(ConflictError):
            await credit_note_service.delete_credit_note(store, company_id, admin, note["id"])

        assert store.get("credit_notes", note["id"]) is not None
        assert len(store.rows("stock_movements", reference_id=note["id"])) == 1
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("53")

    async def test_reversal_failure_after_delete_is_a_warning(self, store, company_id, admin, product, credit):
        note = (await credit_note_service.create_credit_note(
            store, company_id, admin, credit(affects_inventory=True),
        )).primary
        store.fail_next("select", "stock_movements", StoreError("connection reset"))

        outcome = await credit_note_service.delete_credit_note(store, company_id, admin, note["id"])

        assert store.get("credit_notes", note["id"]) is None
        assert [w.code for w in outcome.warnings] == ["STOCK_REVERSAL_FAILED"]
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("53")

    async def test_viewer_cannot_delete(self, store, company_id, admin, viewer, credit):
        note = (await credit_note_service.create_credit_note(store, company_id, admin, credit())).primary

        with pytest.raises(AuthorizationError, match="delete credit notes"):
            await credit_note_service.delete_credit_note(store, company_id, viewer, note["id"])

        assert store.get("credit_notes", note["id"]) is not None
