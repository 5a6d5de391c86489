"""
Ledger store contract
Project: Supply Ledger (healthcare supplies ERP)

The services never talk to SQLAlchemy directly: every read and write goes
through a LedgerStore, a table-oriented interface with structured failures.

Conventions:
- rows are plain dicts keyed by column name
- filters are equality maps; a list/tuple/set/frozenset value means IN
- order_by entries are column names, "-name" for descending
- every failure is a StoreError carrying a StoreErrorCode
"""

from typing import Any, Mapping, Optional, Protocol, Sequence

Row = dict[str, Any]
Filters = Mapping[str, Any]


class LedgerStore(Protocol):
    """Operations the consistency engine consumes from the store."""

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """Insert rows and return them as stored (generated ids included)."""
        ...

    async def update(self, table: str, patch: Mapping[str, Any], filters: Filters) -> list[Row]:
        """Apply `patch` to every row matching `filters` and return the updated rows."""
        ...

    async def delete(self, table: str, filters: Filters) -> None:
        """Delete every row matching `filters`."""
        ...

    async def select(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        filters: Optional[Filters] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        """Read rows matching `filters`."""
        ...

    async def call_procedure(self, name: str, args: Mapping[str, Any]) -> Any:
        """Run a named server-side procedure atomically."""
        ...


def is_multi_value(value: Any) -> bool:
    """True when a filter value selects with IN rather than equality."""
    return isinstance(value, (list, tuple, set, frozenset))
