"""Salary calculation API endpoints.

All endpoints are stateless: every request carries the records it needs
and nothing is stored.
"""

from fastapi import APIRouter, status

from salary_engine.api.dependencies import AppSettings, build_engine
from salary_engine.api.schemas import (
    CalculateSalaryRequest,
    CalculationResultSchema,
    ErrorResponse,
    FormulaValidationRequest,
    FormulaValidationResponse,
    PayrollRunRequest,
    PayrollRunResponse,
    StructureValidationRequest,
    StructureValidationResponse,
    TaxCalculationRequest,
    TaxCalculationResponse,
    result_to_schema,
    run_to_schema,
)
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.validation import validate_formula, validate_structure
from salary_engine.services.data_source import InMemoryDataSource
from salary_engine.services.payroll_run import PayrollRunService

router = APIRouter(tags=["calculations"])


@router.post(
    "/salary/calculate",
    response_model=CalculationResultSchema,
    status_code=status.HTTP_200_OK,
    responses={422: {"model": ErrorResponse}},
)
async def calculate_salary(
    settings: AppSettings,
    payload: CalculateSalaryRequest,
) -> CalculationResultSchema:
    """Calculate gross, deductions and net for one employee."""
    tax_rates = None
    if payload.tax_rates:
        tax_rates = [t.to_tax_rate() for t in payload.tax_rates]
        TaxCalculator.validate_brackets(tax_rates)

    engine = build_engine(settings, payload.strict)
    result = engine.calculate_salary(
        [c.to_component() for c in payload.components],
        [o.to_override() for o in payload.overrides],
        payload.variables,
        tax_rates,
    )
    return result_to_schema(result)


@router.post(
    "/formulas/validate",
    response_model=FormulaValidationResponse,
    status_code=status.HTTP_200_OK,
)
async def validate_formula_endpoint(
    payload: FormulaValidationRequest,
) -> FormulaValidationResponse:
    """Check a formula against the sample scope (plus any given variables)."""
    outcome = validate_formula(payload.formula, payload.variables)
    return FormulaValidationResponse(valid=outcome.valid, error=outcome.error)


@router.post(
    "/structures/validate",
    response_model=StructureValidationResponse,
    status_code=status.HTTP_200_OK,
)
async def validate_structure_endpoint(
    payload: StructureValidationRequest,
) -> StructureValidationResponse:
    """Check a structure's components before it is saved."""
    problems = validate_structure([c.to_component() for c in payload.components])
    return StructureValidationResponse(valid=not problems, problems=problems)


@router.post(
    "/tax/calculate",
    response_model=TaxCalculationResponse,
    status_code=status.HTTP_200_OK,
    responses={422: {"model": ErrorResponse}},
)
async def calculate_tax(payload: TaxCalculationRequest) -> TaxCalculationResponse:
    """Calculate bracket tax for a gross amount."""
    brackets = [b.to_tax_rate() for b in payload.brackets]
    TaxCalculator.validate_brackets(brackets)
    return TaxCalculationResponse(
        gross_amount=payload.gross_amount,
        tax_amount=TaxCalculator.calculate_tax(payload.gross_amount, brackets),
    )


@router.post(
    "/payroll-runs",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_200_OK,
    responses={422: {"model": ErrorResponse}},
)
async def run_payroll(
    settings: AppSettings,
    payload: PayrollRunRequest,
) -> PayrollRunResponse:
    """Run payroll for every employee in the document."""
    service = PayrollRunService(
        InMemoryDataSource(payload.document),
        engine=build_engine(settings, payload.strict),
    )
    run = service.process_period(payload.as_of_date, payload.period_id)
    return run_to_schema(run)
