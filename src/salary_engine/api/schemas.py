"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from salary_engine.calculators.types import CalculationResult, ComponentType
from salary_engine.services.data_source import (
    ComponentRecord,
    OverrideRecord,
    PayrollDocument,
    TaxRateRecord,
)
from salary_engine.services.payroll_run import PayrollRunResult


class CamelModel(BaseModel):
    """Base schema using camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Salary calculation schemas
# ============================================================================


class CalculateSalaryRequest(CamelModel):
    """Schema for a single salary calculation."""

    components: list[ComponentRecord]
    overrides: list[OverrideRecord] = Field(default_factory=list)
    variables: dict[str, Decimal] = Field(default_factory=dict)
    tax_rates: list[TaxRateRecord] | None = None
    strict: bool | None = None  # None = configured default


class ComponentLineSchema(CamelModel):
    id: int
    name: str
    type: ComponentType
    amount: Decimal | None = None
    calculated_amount: Decimal | None = None
    formula: str | None = None
    taxable: bool
    error: str | None = None


class DeductionLineSchema(CamelModel):
    id: int | None = None
    name: str
    calculated_amount: Decimal
    formula: str | None = None
    error: str | None = None


class CalculationResultSchema(CamelModel):
    """Schema for a calculation result (calculation-detail blob)."""

    components: list[ComponentLineSchema]
    deductions: list[DeductionLineSchema]
    gross_amount: Decimal
    net_amount: Decimal
    total_deductions: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    errors: list[str]
    inputs_fingerprint: str


# ============================================================================
# Validation schemas
# ============================================================================


class FormulaValidationRequest(CamelModel):
    formula: str
    variables: dict[str, Decimal] = Field(default_factory=dict)


class FormulaValidationResponse(CamelModel):
    valid: bool
    error: str | None = None


class StructureValidationRequest(CamelModel):
    components: list[ComponentRecord]


class StructureValidationResponse(CamelModel):
    valid: bool
    problems: list[str]


# ============================================================================
# Tax schemas
# ============================================================================


class TaxCalculationRequest(CamelModel):
    gross_amount: Decimal
    brackets: list[TaxRateRecord]


class TaxCalculationResponse(CamelModel):
    gross_amount: Decimal
    tax_amount: Decimal


# ============================================================================
# Payroll run schemas
# ============================================================================


class PayrollRunRequest(CamelModel):
    """Schema for running payroll over a document."""

    as_of_date: date
    period_id: int | None = None
    strict: bool | None = None
    document: PayrollDocument


class EmployeeRunEntrySchema(CamelModel):
    employee_id: int
    status: str
    structure_id: int | None = None
    result: CalculationResultSchema | None = None
    error_message: str | None = None


class PayrollRunResponse(CamelModel):
    as_of_date: date
    period_id: int | None = None
    entries: list[EmployeeRunEntrySchema]
    skipped: list[int]
    total_gross: Decimal
    total_net: Decimal
    total_deductions: Decimal
    error_count: int
    review_count: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str


def result_to_schema(result: CalculationResult) -> CalculationResultSchema:
    """Convert an engine result to its wire schema."""
    return CalculationResultSchema.model_validate(result.to_dict())


def run_to_schema(run: PayrollRunResult) -> PayrollRunResponse:
    """Convert a payroll run result to its wire schema."""
    return PayrollRunResponse(
        as_of_date=run.as_of_date,
        period_id=run.period_id,
        entries=[
            EmployeeRunEntrySchema(
                employee_id=entry.employee_id,
                status=entry.status,
                structure_id=entry.structure_id,
                result=result_to_schema(entry.result) if entry.result else None,
                error_message=entry.error_message,
            )
            for entry in run.entries
        ],
        skipped=run.skipped,
        total_gross=run.total_gross,
        total_net=run.total_net,
        total_deductions=run.total_deductions,
        error_count=run.error_count,
        review_count=run.review_count,
    )
