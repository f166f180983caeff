"""Pytest fixtures for salary engine tests."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from salary_engine.calculators.engine import SalaryEngine
from salary_engine.calculators.types import ComponentType, SalaryComponent, TaxRate
from salary_engine.config import Settings


@pytest.fixture
def settings() -> Settings:
    """Explicit settings so tests do not depend on the environment."""
    return Settings(
        engine_version="test",
        strict_missing_amount=True,
        bracket_tax_label="Income Tax",
        log_level="INFO",
        host="127.0.0.1",
        port=8000,
        debug=False,
    )


@pytest.fixture
def engine(settings: Settings) -> SalaryEngine:
    """Strict engine."""
    return SalaryEngine(settings=settings)


@pytest.fixture
def lenient_engine(settings: Settings) -> SalaryEngine:
    """Engine that skips fixed components without amount."""
    return SalaryEngine(strict=False, settings=settings)


@pytest.fixture
def standard_components() -> list[SalaryComponent]:
    """Base salary, performance bonus and a flat income tax deduction."""
    return [
        SalaryComponent(
            id=1,
            name="Base Salary",
            type=ComponentType.FIXED,
            amount=Decimal("5000"),
        ),
        SalaryComponent(
            id=2,
            name="Performance Bonus",
            type=ComponentType.VARIABLE,
            formula="baseSalary * (performanceScore/100) * 0.15",
        ),
        SalaryComponent(
            id=3,
            name="Income Tax",
            type=ComponentType.DEDUCTION,
            formula="grossSalary * 0.15",
            taxable=False,
        ),
    ]


@pytest.fixture
def brackets() -> list[TaxRate]:
    """Contiguous bands: 0-2000 @10%, 2000-5000 @15%, 5000+ @20%."""
    return [
        TaxRate(rate=Decimal("0.10"), threshold_lower=Decimal("0"), threshold_upper=Decimal("2000")),
        TaxRate(rate=Decimal("0.15"), threshold_lower=Decimal("2000"), threshold_upper=Decimal("5000")),
        TaxRate(rate=Decimal("0.20"), threshold_lower=Decimal("5000")),
    ]


@pytest.fixture
def payroll_document() -> dict[str, Any]:
    """Payroll document in the camelCase wire format."""
    return {
        "employees": [
            {"id": 1, "name": "Alice", "variables": {"performanceScore": 80}},
            {"id": 2, "name": "Bob", "variables": {"performanceScore": 100}},
            {"id": 3, "name": "Carol"},
        ],
        "structures": [
            {
                "id": 10,
                "name": "Standard",
                "effectiveDate": "2024-01-01",
                "components": [
                    {"id": 1, "name": "Base Salary", "type": "fixed", "amount": 5000},
                    {
                        "id": 2,
                        "name": "Performance Bonus",
                        "type": "variable",
                        "formula": "baseSalary * (performanceScore/100) * 0.15",
                    },
                    {
                        "id": 3,
                        "name": "Pension",
                        "type": "deduction",
                        "formula": "baseSalary * 0.05",
                    },
                ],
            },
            {
                "id": 20,
                "name": "Senior",
                "effectiveDate": "2024-01-01",
                "components": [
                    {"id": 4, "name": "Base Salary", "type": "fixed", "amount": 8000},
                    {
                        "id": 5,
                        "name": "Performance Bonus",
                        "type": "variable",
                        "formula": "baseSalary * (performanceScore/100) * 0.2",
                    },
                ],
            },
        ],
        "assignments": [
            {"employeeId": 1, "structureId": 10, "effectiveDate": "2024-01-01"},
            {"employeeId": 2, "structureId": 10, "effectiveDate": "2023-01-01"},
            {"employeeId": 2, "structureId": 20, "effectiveDate": "2024-03-01"},
        ],
        "overrides": [
            {"employeeId": 2, "componentId": 4, "amount": 9000},
        ],
        "taxRates": [
            {"rate": 0.10, "thresholdLower": 0, "thresholdUpper": 2000},
            {"rate": 0.15, "thresholdLower": 2000, "thresholdUpper": 5000},
            {"rate": 0.20, "thresholdLower": 5000},
        ],
    }
