"""Read-only salary data sources for payroll runs.

A payroll run needs employees, their structure assignments, structure
components, overrides, tax brackets and externally sourced variables.
Storage is owned by the caller; the run service only depends on the
SalaryDataSource protocol. InMemoryDataSource serves a validated
PayrollDocument (JSON file, API payload, tests).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from salary_engine.calculators.types import (
    ComponentOverride,
    ComponentType,
    SalaryComponent,
    TaxRate,
)


class DocumentModel(BaseModel):
    """Base for document records; accepts snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ComponentRecord(DocumentModel):
    id: int
    name: str = Field(min_length=1)
    type: ComponentType
    amount: Decimal | None = None
    formula: str | None = None
    taxable: bool = True
    description: str | None = None

    def to_component(self) -> SalaryComponent:
        return SalaryComponent(
            id=self.id,
            name=self.name,
            type=self.type,
            amount=self.amount,
            formula=self.formula,
            taxable=self.taxable,
            description=self.description,
        )


class OverrideRecord(DocumentModel):
    employee_id: int | None = None
    component_id: int
    amount: Decimal | None = None
    formula: str | None = None

    def to_override(self) -> ComponentOverride:
        return ComponentOverride(
            component_id=self.component_id,
            amount=self.amount,
            formula=self.formula,
        )


class TaxRateRecord(DocumentModel):
    id: int | None = None
    name: str | None = None
    rate: Decimal = Field(ge=0, le=1)
    threshold_lower: Decimal | None = None
    threshold_upper: Decimal | None = None
    effective_date: date | None = None
    end_date: date | None = None

    def to_tax_rate(self) -> TaxRate:
        return TaxRate(
            rate=self.rate,
            threshold_lower=self.threshold_lower,
            threshold_upper=self.threshold_upper,
            id=self.id,
            name=self.name,
        )

    def is_effective(self, as_of_date: date) -> bool:
        if self.effective_date is not None and self.effective_date > as_of_date:
            return False
        return self.end_date is None or self.end_date >= as_of_date


class StructureRecord(DocumentModel):
    id: int
    name: str
    description: str | None = None
    effective_date: date | None = None
    status: str = "active"
    components: list[ComponentRecord] = Field(default_factory=list)


class AssignmentRecord(DocumentModel):
    employee_id: int
    structure_id: int
    effective_date: date
    end_date: date | None = None


class EmployeeRecord(DocumentModel):
    id: int
    name: str | None = None
    variables: dict[str, Decimal] = Field(default_factory=dict)


class PayrollDocument(DocumentModel):
    """Everything needed to run payroll for one period."""

    employees: list[EmployeeRecord] = Field(default_factory=list)
    structures: list[StructureRecord] = Field(default_factory=list)
    assignments: list[AssignmentRecord] = Field(default_factory=list)
    overrides: list[OverrideRecord] = Field(default_factory=list)
    tax_rates: list[TaxRateRecord] = Field(default_factory=list)


class SalaryDataSource(Protocol):
    """Records a payroll run reads. All lists are in a stable order."""

    def list_employees(self) -> list[EmployeeRecord]: ...

    def list_assignments(self, employee_id: int) -> list[AssignmentRecord]: ...

    def get_structure(self, structure_id: int) -> StructureRecord | None: ...

    def list_components(self, structure_id: int) -> list[SalaryComponent]: ...

    def list_overrides(self, employee_id: int) -> list[ComponentOverride]: ...

    def list_tax_rates(self, as_of_date: date) -> list[TaxRate]: ...

    def get_variables(self, employee_id: int) -> dict[str, Decimal]: ...


class InMemoryDataSource:
    """SalaryDataSource over a PayrollDocument."""

    def __init__(self, document: PayrollDocument):
        self.document = document
        self._structures = {s.id: s for s in document.structures}
        self._employees = {e.id: e for e in document.employees}

    @classmethod
    def from_json(cls, raw: str | bytes) -> InMemoryDataSource:
        return cls(PayrollDocument.model_validate_json(raw))

    def list_employees(self) -> list[EmployeeRecord]:
        return list(self.document.employees)

    def list_assignments(self, employee_id: int) -> list[AssignmentRecord]:
        return [a for a in self.document.assignments if a.employee_id == employee_id]

    def get_structure(self, structure_id: int) -> StructureRecord | None:
        return self._structures.get(structure_id)

    def list_components(self, structure_id: int) -> list[SalaryComponent]:
        structure = self._structures.get(structure_id)
        if structure is None:
            return []
        return [c.to_component() for c in structure.components]

    def list_overrides(self, employee_id: int) -> list[ComponentOverride]:
        return [
            o.to_override()
            for o in self.document.overrides
            if o.employee_id == employee_id
        ]

    def list_tax_rates(self, as_of_date: date) -> list[TaxRate]:
        return [
            t.to_tax_rate()
            for t in self.document.tax_rates
            if t.is_effective(as_of_date)
        ]

    def get_variables(self, employee_id: int) -> dict[str, Decimal]:
        employee = self._employees.get(employee_id)
        return dict(employee.variables) if employee else {}
