"""Progressive tax calculation over rate brackets."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from salary_engine.calculators.types import TaxRate, to_decimal

CENT = Decimal("0.01")


class BracketConfigurationError(Exception):
    """Raised when a tax bracket table is malformed."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid tax bracket configuration: " + "; ".join(problems))


@dataclass(frozen=True)
class ResolvedBracket:
    """A bracket with defaults applied. ``upper`` None = no upper limit."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal


class TaxCalculator:
    """Calculates marginal tax over an ordered bracket table.

    Bracket defaults:
    - threshold_lower: 0
    - threshold_upper: next bracket's lower bound minus one cent,
      or unbounded for the topmost bracket

    Tables are validated when they are loaded (validate_brackets), not
    on every calculation.
    """

    @staticmethod
    def resolve_brackets(brackets: Sequence[TaxRate]) -> list[ResolvedBracket]:
        """Sort brackets ascending and apply threshold defaults."""
        ordered = sorted(brackets, key=lambda b: b.lower)
        resolved: list[ResolvedBracket] = []

        for i, bracket in enumerate(ordered):
            if bracket.threshold_upper is not None:
                upper: Decimal | None = bracket.threshold_upper
            elif i + 1 < len(ordered):
                upper = ordered[i + 1].lower - CENT
            else:
                upper = None
            resolved.append(ResolvedBracket(bracket.lower, upper, bracket.rate))

        return resolved

    @classmethod
    def calculate_tax(
        cls, gross_amount: Decimal | int | float, brackets: Sequence[TaxRate]
    ) -> Decimal:
        """Calculate tax on a gross amount.

        Each bracket taxes the portion of the remaining amount that falls
        within its band. Returns 0 for an empty table.
        """
        if not brackets:
            return Decimal("0")

        gross = to_decimal(gross_amount)
        tax = Decimal("0")
        remaining = gross

        for bracket in cls.resolve_brackets(brackets):
            if gross <= bracket.lower:
                break

            if bracket.upper is None:
                taxable_in_bracket = remaining
            else:
                taxable_in_bracket = min(remaining, bracket.upper - bracket.lower)

            tax += taxable_in_bracket * bracket.rate
            remaining -= taxable_in_bracket

            if remaining <= 0:
                break

        return tax

    @classmethod
    def validate_brackets(cls, brackets: Sequence[TaxRate]) -> None:
        """Check that a bracket table tiles [0, infinity) without gaps.

        Adjacent bands may meet exactly (upper == next lower) or be one
        cent apart (upper == next lower - 0.01).

        Raises:
            BracketConfigurationError: Listing every problem found
        """
        problems: list[str] = []

        if not brackets:
            raise BracketConfigurationError(["bracket table is empty"])

        for bracket in brackets:
            label = bracket.name or f"bracket starting at {bracket.lower}"
            if bracket.rate < 0 or bracket.rate > 1:
                problems.append(f"{label}: rate {bracket.rate} is outside [0, 1]")
            if bracket.lower < 0:
                problems.append(f"{label}: negative lower threshold")

        resolved = cls.resolve_brackets(brackets)

        if resolved[0].lower != 0:
            problems.append(
                f"lowest bracket starts at {resolved[0].lower}, expected 0"
            )

        if resolved[-1].upper is not None:
            problems.append(
                f"highest bracket ends at {resolved[-1].upper}, expected no upper limit"
            )

        for i, current in enumerate(resolved):
            if current.upper is not None and current.upper < current.lower:
                problems.append(
                    f"bracket starting at {current.lower}: upper threshold "
                    f"{current.upper} is below lower threshold"
                )
            if i + 1 == len(resolved):
                break

            following = resolved[i + 1]
            if current.upper is None:
                problems.append(
                    f"bracket starting at {current.lower} is unbounded "
                    "but is not the last bracket"
                )
                continue
            if following.lower == current.lower:
                problems.append(f"duplicate brackets starting at {current.lower}")
                continue

            step = following.lower - current.upper
            if step < 0:
                problems.append(
                    f"brackets starting at {current.lower} and "
                    f"{following.lower} overlap"
                )
            elif step > CENT:
                problems.append(
                    f"gap between {current.upper} and {following.lower}"
                )

        if problems:
            raise BracketConfigurationError(problems)
