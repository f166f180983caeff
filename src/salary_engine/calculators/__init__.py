"""Salary calculation engine."""

from salary_engine.calculators.engine import MissingAmountError, SalaryEngine
from salary_engine.calculators.expression import FormulaError, evaluate
from salary_engine.calculators.tax_calculator import (
    BracketConfigurationError,
    TaxCalculator,
)
from salary_engine.calculators.types import (
    CalculationResult,
    ComponentOverride,
    ComponentType,
    SalaryComponent,
    TaxRate,
)
from salary_engine.calculators.validation import validate_formula, validate_structure

__all__ = [
    "SalaryEngine",
    "CalculationResult",
    "ComponentOverride",
    "ComponentType",
    "SalaryComponent",
    "TaxRate",
    "TaxCalculator",
    "BracketConfigurationError",
    "MissingAmountError",
    "FormulaError",
    "evaluate",
    "validate_formula",
    "validate_structure",
]
