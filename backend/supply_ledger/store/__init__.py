"""
Ledger store
Project: Supply Ledger (healthcare supplies ERP)

Table-oriented persistence interface consumed by the services, and its
SQLAlchemy implementation.
"""

from supply_ledger.store.base import Filters, LedgerStore, Row
from supply_ledger.store.sqlalchemy_store import SqlAlchemyLedgerStore, translate_db_error

__all__ = [
    "Filters",
    "LedgerStore",
    "Row",
    "SqlAlchemyLedgerStore",
    "translate_db_error",
]
