"""Salary calculation engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Any

from salary_engine.calculators.expression import (
    FORMULA_CONTEXT,
    FormulaError,
    evaluate,
)
from salary_engine.calculators.tax_calculator import TaxCalculator
from salary_engine.calculators.types import (
    CalculationResult,
    ComponentLine,
    ComponentOverride,
    ComponentType,
    DeductionLine,
    SalaryComponent,
    TaxRate,
)
from salary_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)

BASE_SALARY_MARKER = "base salary"

_WHITESPACE_RE = re.compile(r"\s+")


class MissingAmountError(Exception):
    """Raised in strict mode when a fixed component has no amount."""

    def __init__(self, component_id: int, component_name: str):
        self.component_id = component_id
        self.component_name = component_name
        super().__init__(
            f"Fixed component '{component_name}' (id={component_id}) has no amount"
        )


def normalize_component_key(name: str) -> str:
    """Scope key under which a component's calculated value is published.

    "Performance Bonus" -> "performance_bonus"
    """
    return _WHITESPACE_RE.sub("_", name.lower())


@dataclass(frozen=True)
class EffectiveComponent:
    """A component with its override (if any) applied."""

    component: SalaryComponent
    amount: Decimal | None
    formula: str | None


def merge_overrides(
    components: Sequence[SalaryComponent],
    overrides: Sequence[ComponentOverride],
) -> list[EffectiveComponent]:
    """Apply employee overrides to components, preserving component order.

    An override's amount wins when not None; its formula wins when not
    None or empty. The component type is never changed. When several
    overrides target one component, the first one supplied is used.
    """
    by_component: dict[int, ComponentOverride] = {}
    for override in overrides:
        by_component.setdefault(override.component_id, override)

    merged: list[EffectiveComponent] = []
    for component in components:
        override = by_component.get(component.id)
        amount = component.amount
        formula = component.formula
        if override is not None:
            if override.amount is not None:
                amount = override.amount
            if override.formula:
                formula = override.formula
        merged.append(EffectiveComponent(component, amount, formula))
    return merged


class SalaryEngine:
    """Salary calculation engine.

    Calculation pipeline (stable order per employee):
    1) Merge employee overrides into components
    2) Pass 1: fixed components, in supplied order
    3) Build scope: external variables + baseSalary + grossSalary
    4) Pass 2: variable and deduction formulas, in supplied order.
       Each result is published to the scope under its normalized name,
       so a formula may only reference components listed before it.
    5) Optional bracket tax on taxable gross
    6) net = gross - deductions

    A formula that fails to evaluate produces a zero line flagged with the
    error; it never aborts the calculation.
    """

    def __init__(self, strict: bool | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.strict = (
            self.settings.strict_missing_amount if strict is None else strict
        )
        self.tax_calculator = TaxCalculator()

    def calculate_salary(
        self,
        components: Sequence[SalaryComponent],
        overrides: Sequence[ComponentOverride] = (),
        external_variables: Mapping[str, Any] | None = None,
        tax_rates: Sequence[TaxRate] | None = None,
    ) -> CalculationResult:
        """Calculate gross, deductions and net for one employee.

        Bracket tax is charged on taxable gross: lines with taxable=False
        count toward gross but not toward the tax base.

        Raises:
            MissingAmountError: In strict mode, for a fixed component
                without an effective amount
        """
        external_variables = external_variables or {}
        result = CalculationResult()

        with localcontext(FORMULA_CONTEXT):
            effective = merge_overrides(components, overrides)

            # 1) Fixed components
            for item in effective:
                if item.component.type != ComponentType.FIXED:
                    continue
                if item.amount is None:
                    if self.strict:
                        raise MissingAmountError(item.component.id, item.component.name)
                    logger.warning(
                        "Fixed component %s (id=%s) has no amount; skipped",
                        item.component.name,
                        item.component.id,
                    )
                    continue

                result.gross_amount += item.amount
                result.components.append(
                    ComponentLine(
                        id=item.component.id,
                        name=item.component.name,
                        type=ComponentType.FIXED,
                        taxable=item.component.taxable,
                        amount=item.amount,
                    )
                )

            # 2) Scope for formula evaluation
            scope: dict[str, Any] = dict(external_variables)
            scope["baseSalary"] = self._base_salary(result.components)
            scope["grossSalary"] = result.gross_amount

            # 3) Variable and deduction components
            for item in effective:
                component = item.component
                if component.type == ComponentType.FIXED:
                    continue
                if not item.formula:
                    logger.warning(
                        "Component %s (id=%s) has no formula; skipped",
                        component.name,
                        component.id,
                    )
                    continue

                calculated, error = self._evaluate_component(component, item.formula, scope)
                if error is not None:
                    result.errors.append(f"{component.name}: {error}")

                if component.type == ComponentType.VARIABLE:
                    result.gross_amount += calculated
                    result.components.append(
                        ComponentLine(
                            id=component.id,
                            name=component.name,
                            type=ComponentType.VARIABLE,
                            taxable=component.taxable,
                            calculated_amount=calculated,
                            formula=item.formula,
                            error=error,
                        )
                    )
                else:
                    result.total_deductions += calculated
                    result.deductions.append(
                        DeductionLine(
                            id=component.id,
                            name=component.name,
                            calculated_amount=calculated,
                            formula=item.formula,
                            error=error,
                        )
                    )

                scope["grossSalary"] = result.gross_amount
                scope[normalize_component_key(component.name)] = calculated

            # 4) Bracket tax
            result.taxable_amount = sum(
                (line.value for line in result.components if line.taxable),
                Decimal("0"),
            )
            if tax_rates:
                result.tax_amount = self.tax_calculator.calculate_tax(
                    result.taxable_amount, tax_rates
                )
                result.total_deductions += result.tax_amount
                result.deductions.append(
                    DeductionLine(
                        id=None,
                        name=self.settings.bracket_tax_label,
                        calculated_amount=result.tax_amount,
                    )
                )

            # 5) Net
            result.net_amount = result.gross_amount - result.total_deductions

        result.inputs_fingerprint = self._compute_inputs_fingerprint(
            components, overrides, external_variables, tax_rates
        )
        return result

    def _evaluate_component(
        self,
        component: SalaryComponent,
        formula: str,
        scope: Mapping[str, Any],
    ) -> tuple[Decimal, str | None]:
        """Evaluate one formula; failures become (0, message)."""
        try:
            return evaluate(formula, scope), None
        except FormulaError as e:
            logger.warning(
                "Error calculating formula for component %s (id=%s): %s",
                component.name,
                component.id,
                e,
            )
            return Decimal("0"), str(e)

    @staticmethod
    def _base_salary(lines: Sequence[ComponentLine]) -> Decimal:
        """Amount of the first fixed line named like "Base Salary"."""
        for line in lines:
            if BASE_SALARY_MARKER in line.name.lower():
                return line.value
        return Decimal("0")

    def _compute_inputs_fingerprint(
        self,
        components: Sequence[SalaryComponent],
        overrides: Sequence[ComponentOverride],
        external_variables: Mapping[str, Any],
        tax_rates: Sequence[TaxRate] | None,
    ) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        data = {
            "engine_version": self.settings.engine_version,
            "strict": self.strict,
            "components": [
                {
                    "id": c.id,
                    "name": c.name,
                    "type": c.type.value,
                    "amount": str(c.amount) if c.amount is not None else None,
                    "formula": c.formula,
                    "taxable": c.taxable,
                }
                for c in components
            ],
            "overrides": [
                {
                    "component_id": o.component_id,
                    "amount": str(o.amount) if o.amount is not None else None,
                    "formula": o.formula,
                }
                for o in overrides
            ],
            "variables": {k: str(v) for k, v in external_variables.items()},
            "tax_rates": [
                {
                    "rate": str(t.rate),
                    "lower": str(t.threshold_lower) if t.threshold_lower is not None else None,
                    "upper": str(t.threshold_upper) if t.threshold_upper is not None else None,
                }
                for t in (tax_rates or ())
            ],
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
