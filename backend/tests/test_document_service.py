"""
Tests for the document lifecycle service.

Covers creation with stock effects, edits with compensating movements,
conversions, status changes and audited deletes.
"""

import datetime
import uuid
from decimal import Decimal

import pytest

from supply_ledger.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    SchemaDriftError,
    StoreError,
    StoreErrorCode,
    ValidationError,
)
from supply_ledger.schemas.document import (
    InvoiceCreate,
    LineItemExtended,
    LPOCreate,
    QuotationCreate,
    StatusUpdate,
)
from supply_ledger.schemas.payment import PaymentCreate
from supply_ledger.services.document_service import document_service
from supply_ledger.services.payment_service import payment_service


def _stock(store, product) -> Decimal:
    return Decimal(str(store.get("products", product["id"])["stock_quantity"]))


def _movements(store, reference_id):
    return sorted(store.rows("stock_movements", reference_id=reference_id), key=lambda m: m["created_at"])


@pytest.fixture
async def quotation(store, company_id, admin, customer, product, make_item):
    """Quotation worth 2000 (twenty units at 100, no VAT)."""
    outcome = await document_service.create_quotation(
        store,
        company_id,
        admin,
        QuotationCreate(
            customer_id=customer["id"],
            valid_until=datetime.date(2025, 12, 31),
            items=[make_item(product["id"], quantity=20, unit_price=100, tax_percentage=Decimal("0"))],
        ),
    )
    return outcome.primary


# ============================================================
# Tests for invoice creation
# ============================================================


class TestCreateInvoice:
    """Header, items and stock effects of a new invoice."""

    async def test_invoice_moves_stock_out(self, store, invoice, product):
        assert invoice["total_amount"] == Decimal("1160.00")
        assert invoice["balance_due"] == Decimal("1160.00")
        assert invoice["status"] == "draft"
        assert invoice["invoice_number"] == f"INV-{datetime.date.today().year}-0001"

        (movement,) = _movements(store, invoice["id"])
        assert movement["movement_type"] == "OUT"
        assert movement["reference_type"] == "INVOICE"
        assert movement["quantity"] == Decimal("-10")
        assert _stock(store, product) == Decimal("40")

    async def test_items_are_stored_in_order(self, store, company_id, admin, customer, product, make_item):
        outcome = await document_service.create_invoice(
            store,
            company_id,
            admin,
            InvoiceCreate(
                customer_id=customer["id"],
                items=[
                    make_item(product["id"], description="Gloves"),
                    make_item(None, description="Delivery fee", unit_price=500),
                ],
            ),
        )

        items = store.rows("invoice_items", invoice_id=outcome.primary["id"])
        assert sorted((i["sort_order"], i["description"]) for i in items) == [(1, "Gloves"), (2, "Delivery fee")]
        # the free-text line moves no stock
        assert len(_movements(store, outcome.primary["id"])) == 1

    async def test_no_stock_movement_when_inventory_unaffected(
        self, store, company_id, admin, customer, product, make_item,
    ):
        outcome = await document_service.create_invoice(
            store,
            company_id,
            admin,
            InvoiceCreate(
                customer_id=customer["id"],
                affects_inventory=False,
                items=[make_item(product["id"], quantity=10)],
            ),
        )

        assert outcome.primary["affects_inventory"] is False
        assert _movements(store, outcome.primary["id"]) == []
        assert _stock(store, product) == Decimal("50")

    async def test_unknown_product_rejected_before_any_write(self, store, company_id, admin, customer, make_item):
        stray = uuid.uuid4()

        with pytest.raises(ValidationError, match="Item 1: product .* is not in the company catalogue"):
            await document_service.create_invoice(
                store,
                company_id,
                admin,
                InvoiceCreate(customer_id=customer["id"], items=[make_item(stray)]),
            )

        assert store.count_calls("insert") == 0

    async def test_customer_required(self, store, company_id, admin, make_item):
        with pytest.raises(ValidationError, match="Customer is required"):
            await document_service.create_invoice(
                store, company_id, admin, InvoiceCreate(items=[make_item()]),
            )

    async def test_inconsistent_totals_rejected(self, store, company_id, admin, customer, make_item):
        with pytest.raises(ValidationError, match="does not equal"):
            await document_service.create_invoice(
                store,
                company_id,
                admin,
                InvoiceCreate(
                    customer_id=customer["id"],
                    subtotal=Decimal("100"),
                    tax_amount=Decimal("16"),
                    total_amount=Decimal("150"),
                    items=[make_item()],
                ),
            )

    async def test_numbering_fallback_is_a_warning(self, store, company_id, admin, customer, make_item):
        store.missing_procedures.add("generate_invoice_number")

        outcome = await document_service.create_invoice(
            store, company_id, admin, InvoiceCreate(customer_id=customer["id"], items=[make_item()]),
        )

        assert outcome.primary["invoice_number"].startswith(f"INV-{datetime.date.today().year}-")
        assert [w.code for w in outcome.warnings] == ["NUMBER_FALLBACK_USED"]

    async def test_stock_counter_failure_keeps_invoice(
        self, store, company_id, admin, customer, product, make_item,
    ):
        store.fail_next("call", "update_product_stock")

        outcome = await document_service.create_invoice(
            store,
            company_id,
            admin,
            InvoiceCreate(customer_id=customer["id"], items=[make_item(product["id"], quantity=10)]),
        )

        assert store.get("invoices", outcome.primary["id"]) is not None
        assert [w.code for w in outcome.warnings] == ["STOCK_UPDATES_FAILED"]
        assert len(_movements(store, outcome.primary["id"])) == 1


# ============================================================
# Tests for store negotiation on create
# ============================================================


class TestCreateNegotiation:
    """Creator fallback and optional column downgrade."""

    async def test_unprovisioned_creator_is_dropped_once(
        self, store, company_id, unprovisioned_admin, customer, make_item,
    ):
        outcome = await document_service.create_quotation(
            store,
            company_id,
            unprovisioned_admin,
            QuotationCreate(customer_id=customer["id"], items=[make_item()]),
        )

        assert outcome.primary["created_by"] is None
        assert [w.code for w in outcome.warnings] == ["CREATOR_NOT_RECORDED"]
        assert store.count_calls("insert", "quotations") == 2

    async def test_creator_recorded(self, store, company_id, admin, customer, make_item):
        outcome = await document_service.create_quotation(
            store, company_id, admin, QuotationCreate(customer_id=customer["id"], items=[make_item()]),
        )

        assert outcome.primary["created_by"] == admin.id
        assert not outcome.degraded

    async def test_missing_optional_column_is_stripped(self, store, company_id, admin, customer, make_item):
        store.missing_columns["quotation_items"].add("discount_before_vat")
        item = make_item(extended=LineItemExtended(discount_before_vat=Decimal("10")))

        outcome = await document_service.create_quotation(
            store, company_id, admin, QuotationCreate(customer_id=customer["id"], items=[item]),
        )

        (stored,) = outcome.primary["items"]
        assert stored["line_total"] == Decimal("104.40")
        assert [w.code for w in outcome.warnings] == ["OPTIONAL_COLUMN_DROPPED"]
        assert outcome.warnings[0].context["column"] == "discount_before_vat"

    async def test_missing_required_column_is_schema_drift(self, store, company_id, admin, customer, make_item):
        store.missing_columns["quotation_items"].add("tax_inclusive")

        with pytest.raises(SchemaDriftError):
            await document_service.create_quotation(
                store, company_id, admin, QuotationCreate(customer_id=customer["id"], items=[make_item()]),
            )


# ============================================================
# Tests for invoice edits
# ============================================================


class TestUpdateInvoice:
    """Edits compensate the stock already moved."""

    async def test_reducing_quantity(self, store, company_id, admin, customer, invoice, product, make_item):
        outcome = await document_service.update_invoice(
            store,
            company_id,
            admin,
            invoice["id"],
            InvoiceCreate(customer_id=customer["id"], items=[make_item(product["id"], quantity=5)]),
        )

        original, reversal, replacement = _movements(store, invoice["id"])
        assert original["quantity"] == Decimal("-10")
        assert reversal["reference_type"] == "ADJUSTMENT"
        assert reversal["quantity"] == Decimal("10")
        assert replacement["movement_type"] == "OUT"
        assert replacement["quantity"] == Decimal("-5")
        assert _stock(store, product) == Decimal("45")
        assert outcome.primary["total_amount"] == Decimal("580.00")
        assert outcome.primary["invoice_number"] == invoice["invoice_number"]

    async def test_identical_items_leave_stock_unchanged(
        self, store, company_id, admin, customer, invoice, product, make_item,
    ):
        await document_service.update_invoice(
            store,
            company_id,
            admin,
            invoice["id"],
            InvoiceCreate(customer_id=customer["id"], items=[make_item(product["id"], quantity=10)]),
        )

        assert _stock(store, product) == Decimal("40")
        assert len(store.rows("invoice_items", invoice_id=invoice["id"])) == 1

    async def test_repeated_edits_do_not_double_reverse(
        self, store, company_id, admin, customer, invoice, product, make_item,
    ):
        for _ in range(3):
            await document_service.update_invoice(
                store,
                company_id,
                admin,
                invoice["id"],
                InvoiceCreate(customer_id=customer["id"], items=[make_item(product["id"], quantity=5)]),
            )

        assert _stock(store, product) == Decimal("45")

    async def test_paid_amount_is_kept(self, store, company_id, admin, customer, invoice, product, make_item):
        await payment_service.record_payment(store, PaymentCreate(
            company_id=str(company_id),
            customer_id=str(customer["id"]),
            invoice_id=str(invoice["id"]),
            amount=Decimal("500"),
        ))

        outcome = await document_service.update_invoice(
            store,
            company_id,
            admin,
            invoice["id"],
            InvoiceCreate(customer_id=customer["id"], items=[make_item(product["id"], quantity=5)]),
        )

        assert outcome.primary["paid_amount"] == Decimal("500.00")
        assert outcome.primary["balance_due"] == Decimal("80.00")
        assert outcome.primary["status"] == "partial"

    async def test_unknown_invoice(self, store, company_id, admin, customer, make_item):
        with pytest.raises(NotFoundError):
            await document_service.update_invoice(
                store, company_id, admin, uuid.uuid4(), InvoiceCreate(customer_id=customer["id"]),
            )


# ============================================================
# Tests for conversions
# ============================================================


class TestConversion:
    """Quotation and proforma conversion."""

    async def test_quotation_to_proforma(self, store, company_id, admin, quotation, product):
        outcome = await document_service.convert_quotation_to_proforma(store, company_id, admin, quotation["id"])

        proforma = outcome.primary
        assert proforma["total_amount"] == Decimal("2000.00")
        assert proforma["proforma_number"].startswith("PF-")
        assert proforma["valid_until"] == datetime.date(2025, 12, 31)
        assert proforma["source_number"] == quotation["quotation_number"]
        assert store.get("quotations", quotation["id"])["status"] == "converted"
        assert _movements(store, proforma["id"]) == []
        assert _stock(store, product) == Decimal("50")

    async def test_quotation_to_invoice_moves_stock(self, store, company_id, admin, quotation, product):
        outcome = await document_service.convert_quotation_to_invoice(store, company_id, admin, quotation["id"])

        invoice = outcome.primary
        assert invoice["total_amount"] == Decimal("2000.00")
        assert invoice["balance_due"] == Decimal("2000.00")
        assert len(invoice["items"]) == 1
        assert _stock(store, product) == Decimal("30")

    async def test_second_conversion_is_refused(self, store, company_id, admin, quotation, product):
        await document_service.convert_quotation_to_invoice(store, company_id, admin, quotation["id"])

        with pytest.raises(ConflictError, match="already been converted"):
            await document_service.convert_quotation_to_invoice(store, company_id, admin, quotation["id"])

        assert len(store.rows("invoices")) == 1
        assert _stock(store, product) == Decimal("30")

    async def test_proforma_to_invoice(self, store, company_id, admin, quotation, product):
        proforma = (await document_service.convert_quotation_to_proforma(
            store, company_id, admin, quotation["id"],
        )).primary

        outcome = await document_service.convert_proforma_to_invoice(store, company_id, admin, proforma["id"])

        assert outcome.primary["total_amount"] == Decimal("2000.00")
        assert store.get("proforma_invoices", proforma["id"])["status"] == "converted"
        assert _stock(store, product) == Decimal("30")

    async def test_source_status_failure_is_a_warning(self, store, company_id, admin, quotation):
        store.fail_next("update", "quotations")

        outcome = await document_service.convert_quotation_to_proforma(store, company_id, admin, quotation["id"])

        assert store.get("proforma_invoices", outcome.primary["id"]) is not None
        assert [w.code for w in outcome.warnings] == ["SOURCE_STATUS_NOT_UPDATED"]

    async def test_one_failed_stock_update_keeps_the_others(
        self, store, company_id, admin, customer, product, second_product, make_item,
    ):
        quotation = (await document_service.create_quotation(
            store,
            company_id,
            admin,
            QuotationCreate(
                customer_id=customer["id"],
                items=[make_item(product["id"], quantity=5), make_item(second_product["id"], quantity=3)],
            ),
        )).primary
        failing = str(second_product["id"])
        store.fail_next("call", "update_product_stock", when=lambda args: args["product_uuid"] == failing)

        outcome = await document_service.convert_quotation_to_invoice(store, company_id, admin, quotation["id"])

        invoice = outcome.primary
        assert store.get("invoices", invoice["id"]) is not None
        assert len(invoice["items"]) == 2
        assert len(_movements(store, invoice["id"])) == 2
        assert _stock(store, product) == Decimal("45")
        assert _stock(store, second_product) == Decimal("20")
        (warning,) = outcome.warnings
        assert warning.code == "STOCK_UPDATES_FAILED"
        assert warning.context["product_ids"] == [failing]
        assert store.get("quotations", quotation["id"])["status"] == "converted"

    async def test_unprovisioned_converter_is_dropped_once(
        self, store, company_id, unprovisioned_admin, quotation, product,
    ):
        outcome = await document_service.convert_quotation_to_invoice(
            store, company_id, unprovisioned_admin, quotation["id"],
        )

        assert outcome.primary["created_by"] is None
        assert [w.code for w in outcome.warnings] == ["CREATOR_NOT_RECORDED"]
        assert store.count_calls("insert", "invoices") == 2
        assert len(store.rows("invoices")) == 1
        assert _stock(store, product) == Decimal("30")


# ============================================================
# Tests for status changes
# ============================================================


class TestStatusUpdate:

    async def test_note_is_appended(self, store, company_id, quotation):
        outcome = await document_service.update_document_status(
            store, company_id, "quotation", quotation["id"], StatusUpdate(status="Sent", note="Emailed to buyer"),
        )

        assert outcome.primary["status"] == "sent"
        assert outcome.primary["notes"].endswith("Status changed to sent: Emailed to buyer")

    async def test_converted_cannot_be_set_directly(self, store, company_id, quotation):
        with pytest.raises(ValidationError):
            await document_service.update_document_status(
                store, company_id, "quotation", quotation["id"], StatusUpdate(status="converted"),
            )

    async def test_unknown_status(self, store, company_id, quotation):
        with pytest.raises(ValidationError, match="Invalid quotation status"):
            await document_service.update_document_status(
                store, company_id, "quotation", quotation["id"], StatusUpdate(status="archived"),
            )

    async def test_invoices_not_supported(self, store, company_id, invoice):
        with pytest.raises(ValidationError):
            await document_service.update_document_status(
                store, company_id, "invoice", invoice["id"], StatusUpdate(status="sent"),
            )

    async def test_converted_document_is_frozen(self, store, company_id, admin, quotation):
        await document_service.convert_quotation_to_proforma(store, company_id, admin, quotation["id"])

        with pytest.raises(ConflictError):
            await document_service.update_document_status(
                store, company_id, "quotation", quotation["id"], StatusUpdate(status="rejected"),
            )


# ============================================================
# Tests for LPOs
# ============================================================


class TestLPO:

    async def test_create_lpo(self, store, company_id, admin, customer, product, make_item):
        outcome = await document_service.create_lpo(
            store,
            company_id,
            admin,
            LPOCreate(supplier_id=customer["id"], items=[make_item(product["id"], quantity=100, unit_price=40)]),
        )

        assert outcome.primary["lpo_number"].startswith("LPO-")
        assert outcome.primary["supplier_id"] == customer["id"]
        assert _stock(store, product) == Decimal("50")

    async def test_invalid_lpo_rejected(self, store, company_id, admin, customer):
        with pytest.raises(ValidationError, match="At least one item is required"):
            await document_service.create_lpo(store, company_id, admin, LPOCreate(supplier_id=customer["id"]))

        assert store.count_calls("insert") == 0

    async def test_blocking_supplier_conflict(self, store, company_id, admin, customer, product, make_item, seed_invoice):
        for _ in range(25):
            seed_invoice()

        with pytest.raises(ValidationError, match="Critical conflict") as exc_info:
            await document_service.create_lpo(
                store,
                company_id,
                admin,
                LPOCreate(supplier_id=customer["id"], items=[make_item(product["id"])]),
            )

        assert exc_info.value.extra["conflict_data"]["customer_invoice_count"] == 25

    async def test_received_lpo_is_locked(self, store, company_id, admin, customer, product, make_item):
        lpo = (await document_service.create_lpo(
            store,
            company_id,
            admin,
            LPOCreate(supplier_id=customer["id"], status="received", items=[make_item(product["id"])]),
        )).primary

        with pytest.raises(ValidationError, match="Cannot edit a received LPO"):
            await document_service.update_lpo(
                store,
                company_id,
                admin,
                lpo["id"],
                LPOCreate(supplier_id=customer["id"], items=[make_item(product["id"], quantity=2)]),
            )


# ============================================================
# Tests for deletes
# ============================================================


class TestDelete:
    """Permission, audit snapshot and store refusal."""

    async def test_viewer_cannot_delete_invoices(self, store, company_id, viewer, invoice):
        with pytest.raises(AuthorizationError, match="You do not have permission to delete invoices"):
            await document_service.delete_invoice(store, company_id, viewer, invoice["id"])

        assert store.get("invoices", invoice["id"]) is not None

    async def test_delete_quotation_is_audited(self, store, company_id, admin, quotation):
        outcome = await document_service.delete_quotation(store, company_id, admin, quotation["id"])

        assert outcome.primary["deleted"] is True
        assert not outcome.degraded
        assert store.get("quotations", quotation["id"]) is None
        assert store.rows("quotation_items", quotation_id=quotation["id"]) == []

        (entry,) = store.rows("audit_logs")
        assert entry["action"] == "DELETE"
        assert entry["entity_type"] == "quotations"
        assert entry["user_id"] == admin.id
        assert entry["details"]["record"]["quotation_number"] == quotation["quotation_number"]
        assert len(entry["details"]["items"]) == 1

    async def test_audit_failure_does_not_block_delete(self, store, company_id, admin, quotation):
        store.fail_next("insert", "audit_logs")

        outcome = await document_service.delete_quotation(store, company_id, admin, quotation["id"])

        assert store.get("quotations", quotation["id"]) is None
        assert [w.code for w in outcome.warnings] == ["AUDIT_LOG_FAILED"]

    async def test_delete_invoice_keeps_stock_history(self, store, company_id, admin, invoice, product):
        await document_service.delete_invoice(store, company_id, admin, invoice["id"])

        assert store.get("invoices", invoice["id"]) is None
        assert len(_movements(store, invoice["id"])) == 1
        assert _stock(store, product) == Decimal("40")

    async def test_invoice_with_payments_cannot_be_deleted(self, store, company_id, admin, customer, invoice):
        await payment_service.record_payment(store, PaymentCreate(
            company_id=str(company_id),
            customer_id=str(customer["id"]),
            invoice_id=str(invoice["id"]),
            amount=Decimal("100"),
        ))

        with pytest.raises(ConflictError, match="still referenced by payment_allocations"):
            await document_service.delete_invoice(store, company_id, admin, invoice["id"])

        assert store.get("invoices", invoice["id"]) is not None
        assert len(store.rows("invoice_items", invoice_id=invoice["id"])) == 1
        assert store.rows("audit_logs") == []

    async def test_store_refusal_is_a_conflict(self, store, company_id, admin, invoice):
        store.fail_next("delete", "invoices", StoreError(
            "update or delete on table \"invoices\" violates foreign key constraint",
            code=StoreErrorCode.FOREIGN_KEY_VIOLATION,
        ))

        with pytest.raises(ConflictError):
            await document_service.delete_invoice(store, company_id, admin, invoice["id"])

        assert store.get("invoices", invoice["id"]) is not None

    async def test_deleted_number_is_not_reissued(self, store, company_id, admin, customer, make_item):
        async def create():
            outcome = await document_service.create_quotation(
                store, company_id, admin, QuotationCreate(customer_id=customer["id"], items=[make_item()]),
            )
            return outcome.primary

        first = await create()
        second = await create()
        await document_service.delete_quotation(store, company_id, admin, first["id"])
        third = await create()

        assert third["quotation_number"] not in (first["quotation_number"], second["quotation_number"])
        assert third["quotation_number"] == f"QT-{datetime.date.today().year}-0003"

    async def test_delete_missing_document(self, store, company_id, admin):
        with pytest.raises(NotFoundError):
            await document_service.delete_proforma(store, company_id, admin, uuid.uuid4())
