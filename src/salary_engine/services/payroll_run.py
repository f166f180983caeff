"""Payroll run orchestration over all employees for one period."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from salary_engine.calculators.engine import SalaryEngine
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.types import CalculationResult, SalaryComponent, TaxRate
from salary_engine.services.data_source import AssignmentRecord, SalaryDataSource

logger = logging.getLogger(__name__)


class StructureNotFoundError(Exception):
    """Raised when an assignment points to a structure that does not exist."""

    def __init__(self, employee_id: int, structure_id: int):
        self.employee_id = employee_id
        self.structure_id = structure_id
        super().__init__(
            f"Salary structure {structure_id} assigned to employee "
            f"{employee_id} not found"
        )


@dataclass
class EmployeeRunEntry:
    """Outcome of calculating one employee."""

    employee_id: int
    status: str  # "included" | "error"
    structure_id: int | None = None
    result: CalculationResult | None = None
    error_message: str | None = None


@dataclass
class PayrollRunResult:
    """Result of running payroll for a period."""

    as_of_date: date
    period_id: int | None = None
    entries: list[EmployeeRunEntry] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)  # employees without structure
    total_gross: Decimal = Decimal("0")
    total_net: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    error_count: int = 0

    @property
    def review_count(self) -> int:
        """Entries containing at least one zeroed formula line."""
        return sum(1 for e in self.entries if e.result is not None and e.result.needs_review)


@dataclass(frozen=True)
class _EmployeePlan:
    employee_id: int
    structure_id: int
    components: list[SalaryComponent]


class PayrollRunService:
    """Runs the salary engine for every employee in a period.

    Run order:
    1) Validate the tax bracket table effective on the as-of date
    2) Resolve each employee's effective structure; unassigned employees
       are skipped, dangling assignments abort the run
    3) Calculate each employee; a failure is recorded on that employee's
       entry and the run continues
    """

    def __init__(
        self,
        source: SalaryDataSource,
        engine: SalaryEngine | None = None,
        apply_tax: bool = True,
    ):
        self.source = source
        self.engine = engine or SalaryEngine()
        self.apply_tax = apply_tax

    @staticmethod
    def resolve_assignment(
        assignments: Sequence[AssignmentRecord], as_of_date: date
    ) -> AssignmentRecord | None:
        """Pick the assignment with the latest effective date not after as_of_date.

        Assignments that ended before as_of_date are ignored. On equal
        effective dates the one supplied last wins.
        """
        best: AssignmentRecord | None = None
        for assignment in assignments:
            if assignment.effective_date > as_of_date:
                continue
            if assignment.end_date is not None and assignment.end_date < as_of_date:
                continue
            if best is None or assignment.effective_date >= best.effective_date:
                best = assignment
        return best

    def process_period(
        self, as_of_date: date, period_id: int | None = None
    ) -> PayrollRunResult:
        """Calculate payroll for all employees as of a date.

        Raises:
            BracketConfigurationError: If the effective tax table is malformed
            StructureNotFoundError: If an assignment references a missing structure
        """
        tax_rates = self.source.list_tax_rates(as_of_date) if self.apply_tax else []
        if tax_rates:
            TaxCalculator.validate_brackets(tax_rates)

        run = PayrollRunResult(as_of_date=as_of_date, period_id=period_id)
        plans = self._build_plans(as_of_date, run)

        for plan in plans:
            entry = self._calculate_employee(plan, tax_rates)
            run.entries.append(entry)

            if entry.result is not None:
                run.total_gross += entry.result.gross_amount
                run.total_net += entry.result.net_amount
                run.total_deductions += entry.result.total_deductions
            else:
                run.error_count += 1

        logger.info(
            "Payroll run as of %s: %d calculated, %d errors, %d skipped",
            as_of_date,
            len(run.entries) - run.error_count,
            run.error_count,
            len(run.skipped),
        )
        return run

    def _build_plans(
        self, as_of_date: date, run: PayrollRunResult
    ) -> list[_EmployeePlan]:
        """Resolve structures for every employee before calculating anything."""
        plans: list[_EmployeePlan] = []

        for employee in self.source.list_employees():
            assignment = self.resolve_assignment(
                self.source.list_assignments(employee.id), as_of_date
            )
            if assignment is None:
                logger.info(
                    "Employee %s has no salary structure effective %s; skipping",
                    employee.id,
                    as_of_date,
                )
                run.skipped.append(employee.id)
                continue

            structure = self.source.get_structure(assignment.structure_id)
            if structure is None:
                raise StructureNotFoundError(employee.id, assignment.structure_id)

            plans.append(
                _EmployeePlan(
                    employee_id=employee.id,
                    structure_id=structure.id,
                    components=self.source.list_components(structure.id),
                )
            )

        return plans

    def _calculate_employee(
        self, plan: _EmployeePlan, tax_rates: list[TaxRate]
    ) -> EmployeeRunEntry:
        try:
            result = self.engine.calculate_salary(
                plan.components,
                self.source.list_overrides(plan.employee_id),
                self.source.get_variables(plan.employee_id),
                tax_rates or None,
            )
        except Exception as e:
            # Failure stays on this employee's entry
            logger.exception("Salary calculation failed for employee %s", plan.employee_id)
            return EmployeeRunEntry(
                employee_id=plan.employee_id,
                status="error",
                structure_id=plan.structure_id,
                error_message=str(e),
            )

        return EmployeeRunEntry(
            employee_id=plan.employee_id,
            status="included",
            structure_id=plan.structure_id,
            result=result,
        )
