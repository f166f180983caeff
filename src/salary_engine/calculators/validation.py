"""Pre-flight checks for formulas and salary structures.

These checks run when a formula or structure is saved. They are advisory:
a formula that passes here can still fail against a real employee scope,
in which case the engine zeroes that line and flags it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from salary_engine.calculators.engine import normalize_component_key
from salary_engine.calculators.expression import (
    FormulaError,
    evaluate,
    referenced_variables,
)
from salary_engine.calculators.types import ComponentType, SalaryComponent

# Representative scope used to test formulas
SAMPLE_SCOPE: dict[str, Decimal] = {
    "baseSalary": Decimal("5000"),
    "performanceScore": Decimal("80"),
    "grossSalary": Decimal("6000"),
}


@dataclass(frozen=True)
class FormulaValidationResult:
    valid: bool
    error: str | None = None


class StructureValidationError(Exception):
    """Raised when a salary structure fails save-time checks."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid salary structure: " + "; ".join(problems))


def validate_formula(
    formula: str, extra_scope: Mapping[str, Any] | None = None
) -> FormulaValidationResult:
    """Check that a formula parses and evaluates against the sample scope."""
    if not formula or not formula.strip():
        return FormulaValidationResult(valid=False, error="Formula cannot be empty")

    scope: dict[str, Any] = dict(SAMPLE_SCOPE)
    if extra_scope:
        scope.update(extra_scope)

    try:
        evaluate(formula, scope)
    except FormulaError as e:
        return FormulaValidationResult(valid=False, error=e.message)
    return FormulaValidationResult(valid=True)


def validate_structure(components: Sequence[SalaryComponent]) -> list[str]:
    """Return problems with a structure's component list (empty if valid).

    Checks:
    - fixed components carry an amount
    - variable/deduction components carry a formula that parses
    - no two components share a normalized scope key
    - a formula only references sibling components listed before it
    """
    problems: list[str] = []
    keys_seen: dict[str, SalaryComponent] = {}
    # Only formula components publish their value to the scope
    formula_keys = {
        normalize_component_key(c.name)
        for c in components
        if c.type != ComponentType.FIXED
    }
    published: set[str] = set()

    for component in components:
        key = normalize_component_key(component.name)
        label = f"'{component.name}'"

        if key in keys_seen:
            problems.append(
                f"{label} and '{keys_seen[key].name}' both map to variable '{key}'"
            )

        if component.type == ComponentType.FIXED:
            if component.amount is None:
                problems.append(f"{label} is fixed but has no amount")
        elif not component.formula or not component.formula.strip():
            problems.append(f"{label} is {component.type.value} but has no formula")
        else:
            try:
                names = referenced_variables(component.formula)
            except FormulaError as e:
                problems.append(f"{label}: {e.message}")
                names = frozenset()

            for name in sorted(names):
                if name == key:
                    problems.append(f"{label} references itself")
                elif name in formula_keys and name not in published:
                    problems.append(
                        f"{label} references '{name}' which is calculated later"
                    )
            published.add(key)

        keys_seen.setdefault(key, component)

    return problems


def check_structure(components: Sequence[SalaryComponent]) -> None:
    """Raise StructureValidationError if validate_structure finds problems."""
    problems = validate_structure(components)
    if problems:
        raise StructureValidationError(problems)
