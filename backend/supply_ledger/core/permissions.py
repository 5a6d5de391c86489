"""
Actor context and capability checks
Project: Supply Ledger (healthcare supplies ERP)

Every service operation receives the acting user explicitly as an Actor,
never through ambient state. Capabilities are granted per role.
"""

import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from supply_ledger.core.exceptions import AuthorizationError
from supply_ledger.models.user import UserRole

# Capability codes
DELETE_QUOTATION = "delete_quotation"
DELETE_INVOICE = "delete_invoice"
DELETE_PROFORMA = "delete_proforma"
DELETE_LPO = "delete_lpo"
DELETE_CREDIT_NOTE = "delete_credit_note"
DELETE_PAYMENT = "delete_payment"
RECONCILE_BALANCES = "reconcile_balances"
ADJUST_STOCK = "adjust_stock"

ROLE_PERMISSIONS: dict[str, FrozenSet[str]] = {
    UserRole.ACCOUNTANT.value: frozenset({
        DELETE_QUOTATION,
        DELETE_INVOICE,
        DELETE_PROFORMA,
        DELETE_CREDIT_NOTE,
        DELETE_PAYMENT,
        RECONCILE_BALANCES,
    }),
    UserRole.SALES.value: frozenset({DELETE_QUOTATION, DELETE_PROFORMA}),
    UserRole.STOCK_CONTROLLER.value: frozenset({DELETE_LPO, ADJUST_STOCK}),
    UserRole.VIEWER.value: frozenset(),
}

# Human readable nouns used in denial messages
_CAPABILITY_NOUNS = {
    DELETE_QUOTATION: "delete quotations",
    DELETE_INVOICE: "delete invoices",
    DELETE_PROFORMA: "delete proforma invoices",
    DELETE_LPO: "delete LPOs",
    DELETE_CREDIT_NOTE: "delete credit notes",
    DELETE_PAYMENT: "delete payments",
    RECONCILE_BALANCES: "reconcile balances",
    ADJUST_STOCK: "adjust stock",
}


@dataclass(frozen=True)
class Actor:
    """
    Immutable description of who performs an operation.

    Attributes:
        id: User id, None for system jobs and unauthenticated imports.
            Documents created by an actor without id carry created_by = NULL.
        role: UserRole value
        permissions: Explicit capability codes on top of the role defaults
    """
    id: Optional[uuid.UUID] = None
    role: str = UserRole.VIEWER.value
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has(self, code: str) -> bool:
        """Admins hold every capability; everyone else needs the role default or an explicit grant."""
        if self.role == UserRole.ADMIN.value:
            return True
        return code in self.permissions or code in ROLE_PERMISSIONS.get(self.role, frozenset())

    @classmethod
    def system(cls) -> "Actor":
        """Actor used by scheduled jobs: full capabilities, no user id."""
        return cls(id=None, role=UserRole.ADMIN.value)


def require(actor: Actor, code: str) -> None:
    """
    Raise AuthorizationError unless the actor holds `code`.

    Raises:
        AuthorizationError: e.g. "You do not have permission to delete invoices"
    """
    if not actor.has(code):
        noun = _CAPABILITY_NOUNS.get(code, code)
        raise AuthorizationError(
            f"You do not have permission to {noun}",
            extra={"permission": code, "role": actor.role},
        )
