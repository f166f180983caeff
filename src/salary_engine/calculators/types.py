"""Type definitions for calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


def to_decimal(value: Any) -> Decimal | None:
    """Convert a numeric input to Decimal (None passes through)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class ComponentType(str, Enum):
    """Salary component types."""

    FIXED = "fixed"
    VARIABLE = "variable"
    DEDUCTION = "deduction"


@dataclass(frozen=True)
class SalaryComponent:
    """One line item definition of a salary structure.

    ``amount`` is authoritative for FIXED components, ``formula`` for
    VARIABLE and DEDUCTION components. The other field is ignored.
    """

    id: int
    name: str
    type: ComponentType
    amount: Decimal | None = None
    formula: str | None = None
    taxable: bool = True
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ComponentType(self.type))
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class ComponentOverride:
    """Employee-specific replacement of a component's amount or formula."""

    component_id: int
    amount: Decimal | None = None
    formula: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))


@dataclass(frozen=True)
class TaxRate:
    """Tax bracket: rate applied to the band [threshold_lower, threshold_upper]."""

    rate: Decimal
    threshold_lower: Decimal | None = None  # None = 0
    threshold_upper: Decimal | None = None  # None = derived from next bracket
    id: int | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate", to_decimal(self.rate))
        object.__setattr__(self, "threshold_lower", to_decimal(self.threshold_lower))
        object.__setattr__(self, "threshold_upper", to_decimal(self.threshold_upper))

    @property
    def lower(self) -> Decimal:
        return self.threshold_lower if self.threshold_lower is not None else Decimal("0")


@dataclass
class ComponentLine:
    """An earning line (fixed or variable) in a calculation result."""

    id: int
    name: str
    type: ComponentType
    taxable: bool
    amount: Decimal | None = None  # Set for fixed components
    calculated_amount: Decimal | None = None  # Set for variable components
    formula: str | None = None
    error: str | None = None

    @property
    def value(self) -> Decimal:
        """Amount contributing to gross."""
        if self.type == ComponentType.FIXED:
            return self.amount or Decimal("0")
        return self.calculated_amount or Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
        }
        if self.type == ComponentType.FIXED:
            data["amount"] = self.amount
        else:
            data["calculatedAmount"] = self.calculated_amount
            data["formula"] = self.formula
        data["taxable"] = self.taxable
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class DeductionLine:
    """A deduction line in a calculation result."""

    id: int | None
    name: str
    calculated_amount: Decimal
    formula: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "calculatedAmount": self.calculated_amount,
            "formula": self.formula,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class CalculationResult:
    """Result of calculating salary for one employee.

    Invariants:
    - net_amount == gross_amount - total_deductions
    - gross_amount == sum of component line values
    - total_deductions == sum of deduction line amounts
    """

    components: list[ComponentLine] = field(default_factory=list)
    deductions: list[DeductionLine] = field(default_factory=list)
    gross_amount: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    taxable_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    errors: list[str] = field(default_factory=list)
    inputs_fingerprint: str = ""

    @property
    def needs_review(self) -> bool:
        """True when at least one formula failed and was zeroed."""
        return len(self.errors) > 0

    def to_dict(self) -> dict[str, Any]:
        """Return the calculation-detail blob persisted by callers."""
        return {
            "components": [line.to_dict() for line in self.components],
            "deductions": [line.to_dict() for line in self.deductions],
            "grossAmount": self.gross_amount,
            "netAmount": self.net_amount,
            "totalDeductions": self.total_deductions,
            "taxableAmount": self.taxable_amount,
            "taxAmount": self.tax_amount,
            "errors": list(self.errors),
            "inputsFingerprint": self.inputs_fingerprint,
        }
