"""
Shared result schemas
Project: Supply Ledger (healthcare supplies ERP)

Multi-step operations return an Outcome: the primary result plus the warnings
collected from side effects that degraded without failing the operation
(stock counter updates, audit logging, allocations on legacy deployments).
"""

from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, computed_field

T = TypeVar("T")


class WarningSeverity(str, Enum):
    """Severity tiers for advisory messages. None of them blocks an operation."""
    INFO = "info"
    MINOR = "minor"
    MODERATE = "moderate"


class OperationWarning(BaseModel):
    """A side effect that needs follow-up."""

    code: str = Field(..., description="Machine readable code, e.g. STOCK_UPDATE_FAILED")
    message: str = Field(..., description="Message for the user")
    severity: WarningSeverity = Field(WarningSeverity.MINOR)
    context: dict[str, Any] = Field(default_factory=dict, description="Diagnostic data")


class Outcome(BaseModel, Generic[T]):
    """
    Result of a multi-step operation.

    - no warnings: fully succeeded
    - warnings: succeeded with degraded side effects
    Failures are raised, never returned.
    """

    primary: T
    warnings: list[OperationWarning] = Field(default_factory=list)

    @computed_field
    @property
    def degraded(self) -> bool:
        return bool(self.warnings)

    def warn(
        self,
        code: str,
        message: str,
        severity: WarningSeverity = WarningSeverity.MINOR,
        **context: Any,
    ) -> "Outcome[T]":
        self.warnings.append(
            OperationWarning(code=code, message=message, severity=severity, context=context)
        )
        return self

    def extend(self, warnings: list[OperationWarning]) -> "Outcome[T]":
        self.warnings.extend(warnings)
        return self


def make_warning(
    code: str,
    message: str,
    severity: WarningSeverity = WarningSeverity.MINOR,
    **context: Any,
) -> OperationWarning:
    """Build a warning outside of an Outcome (collected before the primary result exists)."""
    return OperationWarning(code=code, message=message, severity=severity, context=context)


class ValidationResult(BaseModel):
    """Result of a non-raising validation: errors block, warnings are advisory."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[OperationWarning] = Field(default_factory=list)
    conflict_data: Optional[dict[str, Any]] = None
