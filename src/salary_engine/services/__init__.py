"""Payroll run services."""

from salary_engine.services.data_source import (
    InMemoryDataSource,
    PayrollDocument,
    SalaryDataSource,
)
from salary_engine.services.payroll_run import (
    PayrollRunResult,
    PayrollRunService,
    StructureNotFoundError,
)

__all__ = [
    "InMemoryDataSource",
    "PayrollDocument",
    "SalaryDataSource",
    "PayrollRunResult",
    "PayrollRunService",
    "StructureNotFoundError",
]
