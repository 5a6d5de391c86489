"""
Tests for delivery notes.

Delivery notes are backed by an invoice of the same customer and can only
ship what the invoice bills.
"""

import uuid
from decimal import Decimal

import pytest

from supply_ledger.core.exceptions import ConflictError, ValidationError
from supply_ledger.schemas.document import DeliveryItemCreate, DeliveryNoteCreate
from supply_ledger.services.delivery_note_service import delivery_note_service
from supply_ledger.services.document_service import document_service


def _note(customer, invoice, *items, **kwargs) -> DeliveryNoteCreate:
    return DeliveryNoteCreate(
        customer_id=customer["id"],
        invoice_id=invoice["id"],
        items=list(items),
        **kwargs,
    )


def _item(product, delivered, ordered=None) -> DeliveryItemCreate:
    return DeliveryItemCreate(
        product_id=product["id"],
        description="Nitrile gloves",
        quantity_delivered=Decimal(str(delivered)),
        quantity_ordered=None if ordered is None else Decimal(str(ordered)),
        unit_price=Decimal("100"),
    )


# ============================================================
# Tests for successful deliveries
# ============================================================


class TestCreateDeliveryNote:

    async def test_partial_delivery(self, store, company_id, admin, customer, invoice, product):
        outcome = await delivery_note_service.create_delivery_note(
            store,
            company_id,
            admin,
            _note(customer, invoice, _item(product, 4), delivery_address="Ward 3, Nairobi West"),
        )

        note = outcome.primary
        assert note["status"] == "pending"
        assert note["delivery_number"].startswith("DN-")
        assert not outcome.degraded

        (item,) = note["items"]
        assert item["quantity_delivered"] == Decimal("4")
        assert item["line_total"] == Decimal("400.00")

        (movement,) = store.rows("stock_movements", reference_id=note["id"])
        assert movement["reference_type"] == "DELIVERY_NOTE"
        assert movement["quantity"] == Decimal("-4")
        # the invoice already moved 10 out
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("36")

    async def test_missing_address_is_advisory(self, store, company_id, admin, customer, invoice, product):
        outcome = await delivery_note_service.create_delivery_note(
            store, company_id, admin, _note(customer, invoice, _item(product, 1)),
        )

        assert [w.code for w in outcome.warnings] == ["DELIVERY_ADDRESS_MISSING"]

    async def test_delivering_more_than_ordered_warns(self, store, company_id, admin, customer, invoice, product):
        outcome = await delivery_note_service.create_delivery_note(
            store,
            company_id,
            admin,
            _note(customer, invoice, _item(product, 8, ordered=6), delivery_address="Main store"),
        )

        assert store.get("delivery_notes", outcome.primary["id"]) is not None
        assert [w.code for w in outcome.warnings] == ["DELIVERED_EXCEEDS_ORDERED"]

    async def test_split_lines_within_invoiced(self, store, company_id, admin, customer, invoice, product):
        outcome = await delivery_note_service.create_delivery_note(
            store,
            company_id,
            admin,
            _note(customer, invoice, _item(product, 6), _item(product, 4), delivery_address="Main store"),
        )

        assert len(outcome.primary["items"]) == 2
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("30")


# ============================================================
# Tests for rejected deliveries
# ============================================================


class TestDeliveryNoteRejections:
    """Every rejection happens before anything is written."""

    async def test_more_than_invoiced(self, store, company_id, admin, customer, invoice, product):
        with pytest.raises(ValidationError, match=r"delivered quantity \(11\) exceeds invoiced quantity"):
            await delivery_note_service.create_delivery_note(
                store, company_id, admin, _note(customer, invoice, _item(product, 11)),
            )

        assert store.rows("delivery_notes") == []

    async def test_split_lines_cannot_exceed_invoiced(self, store, company_id, admin, customer, invoice, product):
        with pytest.raises(ValidationError, match=r"Item 2: delivered quantity \(20\) exceeds invoiced quantity"):
            await delivery_note_service.create_delivery_note(
                store, company_id, admin, _note(customer, invoice, _item(product, 10), _item(product, 10)),
            )

        assert store.rows("delivery_notes") == []
        assert store.get("products", product["id"])["stock_quantity"] == Decimal("40")

    async def test_product_not_on_invoice(self, store, company_id, admin, customer, invoice, second_product):
        with pytest.raises(ValidationError, match="is not on invoice"):
            await delivery_note_service.create_delivery_note(
                store, company_id, admin, _note(customer, invoice, _item(second_product, 1)),
            )

    async def test_customer_mismatch(self, store, company_id, admin, other_customer, invoice, product):
        with pytest.raises(ValidationError, match="customer mismatch"):
            await delivery_note_service.create_delivery_note(
                store, company_id, admin, _note(other_customer, invoice, _item(product, 1)),
            )

    async def test_invoice_required(self, store, company_id, admin, customer, product):
        data = DeliveryNoteCreate(customer_id=customer["id"], items=[_item(product, 1)])

        with pytest.raises(ValidationError, match="Invoice ID is required"):
            await delivery_note_service.create_delivery_note(store, company_id, admin, data)

        assert store.calls == []

    async def test_unknown_invoice(self, store, company_id, admin, customer, product):
        data = DeliveryNoteCreate(customer_id=customer["id"], invoice_id=uuid.uuid4(), items=[_item(product, 1)])

        with pytest.raises(ValidationError, match="not found in this company"):
            await delivery_note_service.create_delivery_note(store, company_id, admin, data)

    async def test_zero_quantity(self, store, company_id, admin, customer, invoice, product):
        with pytest.raises(ValidationError, match="Item 1: Delivered quantity must be greater than 0"):
            await delivery_note_service.create_delivery_note(
                store, company_id, admin, _note(customer, invoice, _item(product, 0)),
            )


# ============================================================
# Tests for the backing invoice
# ============================================================


class TestDeliveredInvoice:

    async def test_delivered_invoice_cannot_be_deleted(self, store, company_id, admin, customer, invoice, product):
        await delivery_note_service.create_delivery_note(
            store, company_id, admin, _note(customer, invoice, _item(product, 4), delivery_address="Main store"),
        )

        with pytest.raises(ConflictError, match="still referenced by delivery_notes"):
            await document_service.delete_invoice(store, company_id, admin, invoice["id"])

        assert store.get("invoices", invoice["id"]) is not None
        assert len(store.rows("invoice_items", invoice_id=invoice["id"])) == 1
