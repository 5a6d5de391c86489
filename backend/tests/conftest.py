"""
Pytest configuration and fixtures for the ledger services.

The services only talk to a LedgerStore, so tests run them against
InMemoryLedgerStore: a dict-of-lists store built from the SQLAlchemy
metadata that enforces NOT NULL and foreign keys (with the declared
ondelete rules), reports unknown columns and tables, runs the server
procedures in Python and can be told to fail on demand.
"""

import copy
import datetime
import itertools
import re
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Sequence

import pytest
from sqlalchemy import Uuid

from supply_ledger.core.exceptions import StoreError, StoreErrorCode
from supply_ledger.core.permissions import Actor
from supply_ledger.models import Base
from supply_ledger.schemas.document import InvoiceCreate, LineItemCreate
from supply_ledger.services.balance_rules import apply_payment_delta, to_money
from supply_ledger.services.document_kinds import DOCUMENT_KINDS
from supply_ledger.services.document_service import document_service
from supply_ledger.store.base import is_multi_value


# ============================================================
# In-memory LedgerStore
# ============================================================


@dataclass
class _Failure:
    operation: str
    target: str
    error: StoreError
    times: int = 1
    when: Optional[Callable[[Any], bool]] = None


@dataclass
class InMemoryLedgerStore:
    """LedgerStore test double backed by Base.metadata."""

    metadata: Any = Base.metadata
    tables: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    missing_columns: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))
    missing_tables: set[str] = field(default_factory=set)
    missing_procedures: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        for name in self.metadata.tables:
            self.tables.setdefault(name, [])
        self._failures: list[_Failure] = []
        self._clock = itertools.count()
        self._epoch = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)
        self.procedures: dict[str, Callable[..., Any]] = {
            "update_product_stock": self._update_product_stock,
            "record_payment_with_allocation": self._record_payment_with_allocation,
        }
        for kind in DOCUMENT_KINDS.values():
            self.procedures[kind.number_procedure] = self._numbering(kind)

    # ------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------

    def fail_next(
        self,
        operation: str,
        target: str,
        error: Optional[StoreError] = None,
        times: int = 1,
        when: Optional[Callable[[Any], bool]] = None,
    ) -> None:
        """
        Make the next `times` matching operations fail.

        Args:
            operation: insert, update, delete, select or call
            target: table or procedure name
            error: StoreError to raise (default: an UNKNOWN failure)
            when: Predicate on the payload (rows, patch, filters or args)
        """
        error = error or StoreError("injected failure", code=StoreErrorCode.UNKNOWN)
        self._failures.append(_Failure(operation, target, error, times, when))

    def rows(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        """Copies of the stored rows matching `filters`."""
        return [dict(row) for row in self.tables[table] if self._matches(row, filters)]

    def get(self, table: str, row_id: Any) -> Optional[dict[str, Any]]:
        found = self.rows(table, id=row_id)
        return found[0] if found else None

    def seed(self, table: str, **values: Any) -> dict[str, Any]:
        """Insert one row directly, bypassing call tracking and failure injection."""
        with self._transaction():
            return dict(self._insert_row(self._table(table), values))

    def count_calls(self, operation: Optional[str] = None, target: Optional[str] = None) -> int:
        return sum(
            1 for op, name in self.calls
            if (operation is None or op == operation) and (target is None or name == target)
        )

    # ------------------------------------------------------------
    # LedgerStore operations
    # ------------------------------------------------------------

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        self._enter("insert", table, rows)
        target = self._table(table)
        with self._transaction():
            return [dict(self._insert_row(target, row)) for row in rows]

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        filters: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        self._enter("update", table, patch)
        target = self._table(table)
        with self._transaction():
            return [dict(row) for row in self._update_rows(target, patch, filters)]

    async def delete(self, table: str, filters: Mapping[str, Any]) -> None:
        self._enter("delete", table, filters)
        target = self._table(table)
        self._check_columns(target, filters)
        if not filters:
            raise StoreError(f"Refusing unfiltered delete on '{table}'")
        with self._transaction():
            victims = [row for row in self.tables[table] if self._matches(row, self._coerce_map(target, filters))]
            self._delete_rows(table, victims)

    async def select(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self._enter("select", table, filters)
        target = self._table(table)
        self._check_columns(target, columns or ())
        self._check_columns(target, filters or {})
        self._check_columns(target, [entry.lstrip("-") for entry in order_by or ()])

        found = [row for row in self.tables[table] if self._matches(row, self._coerce_map(target, filters or {}))]
        for entry in reversed(list(order_by or ())):
            name = entry.lstrip("-")
            found.sort(
                key=lambda row: (row.get(name) is None, row.get(name)),
                reverse=entry.startswith("-"),
            )
        if limit is not None:
            found = found[:limit]
        if columns:
            return [{name: row.get(name) for name in columns} for row in found]
        return [dict(row) for row in found]

    async def call_procedure(self, name: str, args: Mapping[str, Any]) -> Any:
        self._enter("call", name, args)
        procedure = self.procedures.get(name)
        if procedure is None or name in self.missing_procedures:
            raise StoreError(
                f"Could not find the function public.{name} in the schema cache",
                code=StoreErrorCode.PROCEDURE_NOT_FOUND,
            )
        with self._transaction():
            return procedure(**args)

    # ------------------------------------------------------------
    # Row mechanics
    # ------------------------------------------------------------

    def _enter(self, operation: str, target: str, payload: Any) -> None:
        self.calls.append((operation, target))
        for failure in self._failures:
            if failure.times <= 0 or failure.operation != operation or failure.target != target:
                continue
            if failure.when is not None and not failure.when(payload):
                continue
            failure.times -= 1
            raise failure.error

    @contextmanager
    def _transaction(self):
        snapshot = copy.deepcopy(self.tables)
        try:
            yield
        except Exception:
            self.tables = snapshot
            raise

    def _table(self, name: str):
        table = self.metadata.tables.get(name)
        if table is None or name in self.missing_tables:
            raise StoreError(f'relation "{name}" does not exist', code=StoreErrorCode.UNDEFINED_TABLE)
        return table

    def _check_columns(self, table, names) -> None:
        for name in names:
            if name not in table.c or name in self.missing_columns[table.name]:
                raise StoreError(
                    f"Could not find the '{name}' column of '{table.name}'",
                    code=StoreErrorCode.UNKNOWN_COLUMN,
                    column=name,
                )

    @staticmethod
    def _coerce(table, name: str, value: Any) -> Any:
        if isinstance(value, str) and isinstance(table.c[name].type, Uuid):
            return uuid.UUID(value)
        return value

    def _coerce_map(self, table, values: Mapping[str, Any]) -> dict[str, Any]:
        coerced = {}
        for name, value in values.items():
            if is_multi_value(value):
                coerced[name] = [self._coerce(table, name, v) for v in value]
            else:
                coerced[name] = self._coerce(table, name, value)
        return coerced

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        for name, value in filters.items():
            if is_multi_value(value):
                if row.get(name) not in value:
                    return False
            elif value is None:
                if row.get(name) is not None:
                    return False
            elif row.get(name) != value:
                return False
        return True

    def _now(self) -> datetime.datetime:
        return self._epoch + datetime.timedelta(milliseconds=next(self._clock))

    def _insert_row(self, table, values: Mapping[str, Any]) -> dict[str, Any]:
        self._check_columns(table, values)
        row: dict[str, Any] = {}
        for column in table.c:
            if column.name in values:
                row[column.name] = self._coerce(table, column.name, values[column.name])
            elif column.name == "id":
                row["id"] = uuid.uuid4()
            elif column.name in ("created_at", "updated_at"):
                row[column.name] = self._now()
            elif column.default is not None and column.default.is_scalar:
                row[column.name] = column.default.arg
            else:
                row[column.name] = None
        self._check_row(table, row)
        self.tables[table.name].append(row)
        return row

    def _update_rows(self, table, patch: Mapping[str, Any], filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._check_columns(table, patch)
        self._check_columns(table, filters)
        if not filters:
            raise StoreError(f"Refusing unfiltered update on '{table.name}'")
        values = self._coerce_map(table, patch)
        updated = []
        for row in self.tables[table.name]:
            if self._matches(row, self._coerce_map(table, filters)):
                row.update(values)
                if "updated_at" in table.c:
                    row["updated_at"] = self._now()
                self._check_row(table, row)
                updated.append(row)
        return updated

    def _check_row(self, table, row: Mapping[str, Any]) -> None:
        for column in table.c:
            value = row.get(column.name)
            if value is None:
                if not column.nullable:
                    raise StoreError(
                        f'null value in column "{column.name}" of relation "{table.name}" '
                        "violates not-null constraint",
                        code=StoreErrorCode.NOT_NULL_VIOLATION,
                        column=column.name,
                    )
                continue
            for fk in column.foreign_keys:
                parent = fk.column.table.name
                if not any(r.get(fk.column.name) == value for r in self.tables[parent]):
                    raise StoreError(
                        f'insert or update on table "{table.name}" violates foreign key constraint',
                        code=StoreErrorCode.FOREIGN_KEY_VIOLATION,
                        column=column.name,
                        details=f'Key ({column.name})=({value}) is not present in table "{parent}".',
                    )

    def _delete_rows(self, table_name: str, victims: list[dict[str, Any]]) -> None:
        if not victims:
            return
        doomed = {id(row) for row in victims}
        self.tables[table_name] = [row for row in self.tables[table_name] if id(row) not in doomed]

        for child in self.metadata.tables.values():
            for fk in child.foreign_keys:
                if fk.column.table.name != table_name:
                    continue
                keys = [row[fk.column.name] for row in victims]
                children = [row for row in self.tables[child.name] if row.get(fk.parent.name) in keys]
                if not children:
                    continue
                if fk.ondelete == "CASCADE":
                    self._delete_rows(child.name, children)
                elif fk.ondelete == "SET NULL":
                    for row in children:
                        row[fk.parent.name] = None
                else:
                    raise StoreError(
                        f'update or delete on table "{table_name}" violates foreign key '
                        f'constraint on table "{child.name}"',
                        code=StoreErrorCode.FOREIGN_KEY_VIOLATION,
                        column=fk.parent.name,
                        details=f'Key is still referenced from table "{child.name}".',
                    )

    # ------------------------------------------------------------
    # Procedures
    # ------------------------------------------------------------

    def _failed(self, message: str) -> StoreError:
        return StoreError(message, code=StoreErrorCode.PROCEDURE_FAILED)

    def _update_product_stock(self, product_uuid: Any, movement_type: str, quantity: Any) -> dict[str, Any]:
        magnitude = Decimal(str(quantity))
        if magnitude < 0 or movement_type not in ("IN", "OUT"):
            raise self._failed(f"bad stock update {movement_type} {magnitude}")
        delta = magnitude if movement_type == "IN" else -magnitude
        products = self._update_rows(
            self._table("products"),
            {},
            {"id": uuid.UUID(str(product_uuid))},
        )
        if not products:
            raise self._failed(f"Product {product_uuid} not found")
        product = products[0]
        product["stock_quantity"] = Decimal(str(product["stock_quantity"])) + delta
        return {"product_id": str(product["id"]), "stock_quantity": product["stock_quantity"]}

    def _numbering(self, kind):
        def generate(company_uuid: Any) -> str:
            prefix = f"{kind.prefix}-{datetime.date.today().year}-"
            sequences = [
                int(number[len(prefix):])
                for row in self.tables[kind.table]
                if row["company_id"] == uuid.UUID(str(company_uuid))
                for number in [str(row.get(kind.number_field) or "")]
                if re.fullmatch(rf"{prefix}\d{{4}}", number)
            ]
            return f"{prefix}{max(sequences, default=0) + 1:04d}"
        return generate

    def _record_payment_with_allocation(self, **args: Any) -> dict[str, Any]:
        invoice_id = uuid.UUID(args["p_invoice_id"])
        invoices = self.rows("invoices", id=invoice_id, company_id=uuid.UUID(args["p_company_id"]))
        if not invoices:
            raise self._failed(f"Invoice {invoice_id} not found")
        invoice = invoices[0]
        if invoice["customer_id"] != uuid.UUID(args["p_customer_id"]):
            raise self._failed(f"Invoice {invoice['invoice_number']} belongs to another customer")

        amount = to_money(args["p_amount"])
        payment = self._insert_row(self._table("payments"), {
            "company_id": args["p_company_id"],
            "customer_id": args["p_customer_id"],
            "payment_number": args["p_payment_number"],
            "payment_date": datetime.date.fromisoformat(args["p_payment_date"]),
            "amount": amount,
            "payment_method": args["p_payment_method"],
            "reference_number": args.get("p_reference_number") or args["p_payment_number"],
            "notes": args.get("p_notes"),
        })
        self._insert_row(self._table("payment_allocations"), {
            "payment_id": payment["id"],
            "invoice_id": invoice_id,
            "amount_allocated": amount,
        })
        patch = apply_payment_delta(invoice["total_amount"], invoice["paid_amount"], amount)
        self._update_rows(self._table("invoices"), patch, {"id": invoice_id})
        return {
            "success": True,
            "payment_id": str(payment["id"]),
            "invoice_id": str(invoice_id),
            "amount_allocated": amount,
            **patch,
        }


# ============================================================
# Store and tenant fixtures
# ============================================================


@pytest.fixture
def store():
    """Empty in-memory ledger store."""
    return InMemoryLedgerStore()


@pytest.fixture
def company(store):
    return store.seed("companies", name="Afya Medical Supplies Ltd")


@pytest.fixture
def company_id(company):
    return company["id"]


@pytest.fixture
def admin(store, company_id):
    """Actor backed by a provisioned admin user."""
    user = store.seed(
        "users",
        company_id=company_id,
        email="admin@afya.example",
        full_name="Grace Wanjiru",
        role="admin",
    )
    return Actor(id=user["id"], role="admin")


@pytest.fixture
def viewer(store, company_id):
    """Actor backed by a provisioned read-only user."""
    user = store.seed(
        "users",
        company_id=company_id,
        email="viewer@afya.example",
        full_name="Peter Otieno",
        role="viewer",
    )
    return Actor(id=user["id"], role="viewer")


@pytest.fixture
def unprovisioned_admin():
    """Admin whose user row does not exist in this store."""
    return Actor(id=uuid.uuid4(), role="admin")


# ============================================================
# Catalogue and counterparty fixtures
# ============================================================


@pytest.fixture
def customer(store, company_id):
    return store.seed("customers", company_id=company_id, name="Nairobi West Hospital")


@pytest.fixture
def other_customer(store, company_id):
    return store.seed("customers", company_id=company_id, name="Mombasa Road Clinic")


def _stocked_product(store, company_id, code: str, name: str, opening: Decimal) -> dict[str, Any]:
    product = store.seed(
        "products",
        company_id=company_id,
        product_code=code,
        name=name,
        selling_price=Decimal("100"),
        stock_quantity=opening,
    )
    store.seed(
        "stock_movements",
        company_id=company_id,
        product_id=product["id"],
        movement_type="IN",
        reference_type="RESTOCK",
        quantity=opening,
        notes="Opening stock",
    )
    return product


@pytest.fixture
def product(store, company_id):
    """Product with an opening stock of 50 recorded in the ledger."""
    return _stocked_product(store, company_id, "GLV-100", "Nitrile gloves, box of 100", Decimal("50"))


@pytest.fixture
def second_product(store, company_id):
    return _stocked_product(store, company_id, "SYR-5ML", "Syringe 5 ml, box of 100", Decimal("20"))


# ============================================================
# Builders
# ============================================================


@pytest.fixture
def make_item():
    """Build a LineItemCreate with 16% VAT unless told otherwise."""
    def build(product_id=None, quantity="1", unit_price="100", **kwargs) -> LineItemCreate:
        kwargs.setdefault("tax_percentage", Decimal("16"))
        kwargs.setdefault("description", "Line item")
        return LineItemCreate(
            product_id=product_id,
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(unit_price)),
            **kwargs,
        )
    return build


@pytest.fixture
async def invoice(store, company_id, admin, customer, product, make_item):
    """INV-1: ten units of `product` at 100 with 16% VAT, created through the service."""
    outcome = await document_service.create_invoice(
        store,
        company_id,
        admin,
        InvoiceCreate(
            customer_id=customer["id"],
            items=[make_item(product["id"], quantity=10, unit_price=100)],
        ),
    )
    return outcome.primary


@pytest.fixture
def seed_invoice(store, company_id, customer):
    """Insert an invoice header directly, with derived balance."""
    counter = itertools.count(1)

    def build(total="1160", paid="0", status="draft", **kwargs) -> dict[str, Any]:
        total, paid = Decimal(total), Decimal(paid)
        values = {
            "company_id": company_id,
            "customer_id": customer["id"],
            "invoice_number": f"INV-TEST-{next(counter):04d}",
            "invoice_date": datetime.date(2025, 3, 1),
            "subtotal": total,
            "total_amount": total,
            "paid_amount": paid,
            "balance_due": total - paid,
            "status": status,
        }
        values.update(kwargs)
        return store.seed("invoices", **values)
    return build
