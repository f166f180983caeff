"""Unit tests for the salary calculation engine."""

from dataclasses import replace
from decimal import Decimal

import pytest

from salary_engine.calculators.engine import (
    MissingAmountError,
    SalaryEngine,
    merge_overrides,
    normalize_component_key,
)
from salary_engine.calculators.types import (
    ComponentOverride,
    ComponentType,
    SalaryComponent,
)

SCORE = {"performanceScore": Decimal("80")}


def fixed(id, name, amount, taxable=True):
    return SalaryComponent(id=id, name=name, type=ComponentType.FIXED, amount=amount, taxable=taxable)


def variable(id, name, formula, taxable=True):
    return SalaryComponent(id=id, name=name, type=ComponentType.VARIABLE, formula=formula, taxable=taxable)


def deduction(id, name, formula):
    return SalaryComponent(id=id, name=name, type=ComponentType.DEDUCTION, formula=formula)


class TestEndToEnd:
    """Base salary, bonus and a gross-based deduction."""

    def test_amounts(self, engine, standard_components):
        result = engine.calculate_salary(standard_components, external_variables=SCORE)

        assert result.gross_amount == Decimal("5600")
        assert result.total_deductions == Decimal("840")
        assert result.net_amount == Decimal("4760")
        assert result.errors == []
        assert not result.needs_review

    def test_lines(self, engine, standard_components):
        result = engine.calculate_salary(standard_components, external_variables=SCORE)

        base, bonus = result.components
        assert base.type == ComponentType.FIXED
        assert base.amount == Decimal("5000")
        assert bonus.type == ComponentType.VARIABLE
        assert bonus.calculated_amount == Decimal("600")
        assert bonus.formula == "baseSalary * (performanceScore/100) * 0.15"

        (tax,) = result.deductions
        assert tax.id == 3
        assert tax.calculated_amount == Decimal("840")

    def test_detail_blob_shape(self, engine, standard_components):
        data = engine.calculate_salary(standard_components, external_variables=SCORE).to_dict()

        assert set(data) == {
            "components",
            "deductions",
            "grossAmount",
            "netAmount",
            "totalDeductions",
            "taxableAmount",
            "taxAmount",
            "errors",
            "inputsFingerprint",
        }
        base, bonus = data["components"]
        assert "amount" in base and "calculatedAmount" not in base
        assert "calculatedAmount" in bonus and "amount" not in bonus
        assert "error" not in bonus

    def test_empty_structure(self, engine):
        result = engine.calculate_salary([])
        assert result.gross_amount == Decimal("0")
        assert result.net_amount == Decimal("0")
        assert result.components == []


class TestOverrides:
    """Employee overrides take precedence over structure defaults."""

    def test_amount_override(self, engine, standard_components):
        result = engine.calculate_salary(
            standard_components,
            [ComponentOverride(component_id=1, amount=Decimal("6000"))],
            SCORE,
        )
        assert result.components[0].amount == Decimal("6000")
        # baseSalary follows the override
        assert result.components[1].calculated_amount == Decimal("720")

    def test_formula_override(self, engine, standard_components):
        result = engine.calculate_salary(
            standard_components,
            [ComponentOverride(component_id=2, formula="250")],
            SCORE,
        )
        assert result.components[1].calculated_amount == Decimal("250")
        assert result.components[1].formula == "250"

    def test_empty_override_formula_falls_back(self, engine, standard_components):
        result = engine.calculate_salary(
            standard_components,
            [ComponentOverride(component_id=2, formula="")],
            SCORE,
        )
        assert result.components[1].calculated_amount == Decimal("600")

    def test_override_never_changes_type(self, engine, standard_components):
        """An amount on a variable component is ignored; its formula still runs."""
        result = engine.calculate_salary(
            standard_components,
            [ComponentOverride(component_id=2, amount=Decimal("1"))],
            SCORE,
        )
        assert result.components[1].type == ComponentType.VARIABLE
        assert result.components[1].calculated_amount == Decimal("600")

    def test_first_override_wins(self, engine, standard_components):
        result = engine.calculate_salary(
            standard_components,
            [
                ComponentOverride(component_id=1, amount=Decimal("7000")),
                ComponentOverride(component_id=1, amount=Decimal("9000")),
            ],
            SCORE,
        )
        assert result.components[0].amount == Decimal("7000")

    def test_override_for_unknown_component_ignored(self, engine, standard_components):
        result = engine.calculate_salary(
            standard_components,
            [ComponentOverride(component_id=99, amount=Decimal("1"))],
            SCORE,
        )
        assert result.gross_amount == Decimal("5600")

    def test_merge_preserves_order(self, standard_components):
        merged = merge_overrides(standard_components, [ComponentOverride(component_id=3, formula="1")])
        assert [m.component.id for m in merged] == [1, 2, 3]
        assert merged[2].formula == "1"


class TestMissingAmount:
    """Fixed components without an amount."""

    components = [
        fixed(1, "Base Salary", Decimal("5000")),
        fixed(2, "Allowance", None),
    ]

    def test_strict_mode_raises(self, engine):
        with pytest.raises(MissingAmountError) as exc_info:
            engine.calculate_salary(self.components)
        assert exc_info.value.component_id == 2
        assert exc_info.value.component_name == "Allowance"

    def test_lenient_mode_skips(self, lenient_engine):
        result = lenient_engine.calculate_salary(self.components)
        assert result.gross_amount == Decimal("5000")
        assert [line.id for line in result.components] == [1]
        assert result.errors == []

    def test_override_supplies_amount(self, engine):
        result = engine.calculate_salary(
            self.components, [ComponentOverride(component_id=2, amount=Decimal("300"))]
        )
        assert result.gross_amount == Decimal("5300")

    def test_strict_argument_overrides_settings(self, settings):
        engine = SalaryEngine(strict=False, settings=settings)
        assert engine.strict is False


class TestFormulaFailures:
    """A failing formula zeroes its line and never aborts the calculation."""

    def test_failed_formula_becomes_zero_line(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            variable(2, "Bad Bonus", "unknownVar * 2"),
            variable(3, "Good Bonus", "baseSalary * 0.1"),
        ]
        result = engine.calculate_salary(components)

        bad = result.components[1]
        assert bad.calculated_amount == Decimal("0")
        assert "unknownVar" in bad.error
        assert result.components[2].calculated_amount == Decimal("500")
        assert result.gross_amount == Decimal("5500")
        assert result.errors == [f"Bad Bonus: {bad.error}"]
        assert result.needs_review

    def test_failed_line_publishes_zero(self, engine):
        components = [
            variable(1, "Bad Bonus", "1 / 0"),
            variable(2, "Follow Up", "bad_bonus + 10"),
        ]
        result = engine.calculate_salary(components)
        assert result.components[1].calculated_amount == Decimal("10")
        assert len(result.errors) == 1

    @pytest.mark.parametrize(
        "formula",
        ["(" * 2000 + "1" + ")" * 2000, "-" * 3000 + "1", "(" * 100 + "1" + ")" * 100],
    )
    def test_oversized_formula_becomes_zero_line(self, engine, formula):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            variable(2, "Nested", formula),
            variable(3, "Bonus", "baseSalary * 0.1"),
        ]
        result = engine.calculate_salary(components)

        assert result.components[1].calculated_amount == Decimal("0")
        assert result.components[1].error is not None
        assert result.components[2].calculated_amount == Decimal("500")
        assert result.gross_amount == Decimal("5500")

    def test_out_of_range_literal_becomes_zero_line(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            variable(2, "Huge", "9e999999999"),
        ]
        result = engine.calculate_salary(components)

        assert result.components[1].calculated_amount == Decimal("0")
        assert "not a finite number" in result.components[1].error
        assert result.gross_amount == Decimal("5000")

    def test_failed_deduction(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            deduction(2, "Broken", "baseSalary +"),
        ]
        result = engine.calculate_salary(components)
        assert result.deductions[0].calculated_amount == Decimal("0")
        assert result.deductions[0].error is not None
        assert result.net_amount == Decimal("5000")

    def test_error_in_detail_blob(self, engine):
        result = engine.calculate_salary([variable(1, "Bad", "nope")])
        assert "error" in result.to_dict()["components"][0]

    def test_component_without_formula_skipped(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            variable(2, "Empty", None),
        ]
        result = engine.calculate_salary(components)
        assert len(result.components) == 1
        assert result.errors == []


class TestScope:
    """Formula scope construction and chaining."""

    def test_normalized_key_chaining(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            variable(2, "Performance Bonus", "baseSalary * 0.12"),
            deduction(3, "Bonus Levy", "performance_bonus * 0.1"),
        ]
        result = engine.calculate_salary(components)
        assert result.deductions[0].calculated_amount == Decimal("60")

    def test_forward_reference_fails(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            deduction(2, "Levy", "late_bonus * 0.1"),
            variable(3, "Late Bonus", "100"),
        ]
        result = engine.calculate_salary(components)
        assert result.deductions[0].calculated_amount == Decimal("0")
        assert "late_bonus" in result.deductions[0].error

    def test_gross_salary_is_progressive(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("1000")),
            variable(2, "First", "grossSalary * 0.1"),
            variable(3, "Second", "grossSalary * 0.1"),
        ]
        result = engine.calculate_salary(components)
        assert result.components[1].calculated_amount == Decimal("100")
        assert result.components[2].calculated_amount == Decimal("110")

    def test_deductions_do_not_change_gross(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("1000")),
            deduction(2, "Levy", "100"),
            variable(3, "Bonus", "grossSalary * 0.1"),
        ]
        result = engine.calculate_salary(components)
        assert result.components[1].calculated_amount == Decimal("100")

    def test_base_salary_zero_without_base_component(self, engine):
        result = engine.calculate_salary([variable(1, "Bonus", "baseSalary + 1")])
        assert result.components[0].calculated_amount == Decimal("1")

    def test_base_salary_match_is_case_insensitive(self, engine):
        components = [
            fixed(1, "Housing", Decimal("700")),
            fixed(2, "Monthly BASE SALARY", Decimal("4000")),
            variable(3, "Bonus", "baseSalary * 0.1"),
        ]
        result = engine.calculate_salary(components)
        assert result.components[2].calculated_amount == Decimal("400")

    def test_engine_names_shadow_external_variables(self, engine):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            variable(2, "Bonus", "baseSalary"),
        ]
        result = engine.calculate_salary(components, external_variables={"baseSalary": 1})
        assert result.components[1].calculated_amount == Decimal("5000")

    def test_external_variables_not_mutated(self, engine, standard_components):
        variables = dict(SCORE)
        engine.calculate_salary(standard_components, external_variables=variables)
        assert variables == SCORE

    def test_fixed_components_ignore_supplied_order(self, engine):
        """Fixed lines are summed before any formula runs."""
        components = [
            variable(1, "Bonus", "grossSalary * 0.1"),
            fixed(2, "Base Salary", Decimal("1000")),
        ]
        result = engine.calculate_salary(components)
        assert result.components[1].calculated_amount == Decimal("100")

    @pytest.mark.parametrize(
        "name,key",
        [
            ("Performance Bonus", "performance_bonus"),
            ("Income  Tax", "income_tax"),
            ("HRA", "hra"),
            ("Meal\tAllowance", "meal_allowance"),
        ],
    )
    def test_normalize_component_key(self, name, key):
        assert normalize_component_key(name) == key


class TestBracketTax:
    """Optional bracket tax on taxable gross."""

    def test_tax_line_appended(self, engine, brackets):
        components = [fixed(1, "Base Salary", Decimal("6000"))]
        result = engine.calculate_salary(components, tax_rates=brackets)

        assert result.taxable_amount == Decimal("6000")
        assert result.tax_amount == Decimal("850")
        tax_line = result.deductions[-1]
        assert tax_line.id is None
        assert tax_line.name == "Income Tax"
        assert tax_line.calculated_amount == Decimal("850")
        assert result.net_amount == Decimal("5150")

    def test_non_taxable_lines_excluded(self, engine, brackets):
        components = [
            fixed(1, "Base Salary", Decimal("5000")),
            fixed(2, "Travel Refund", Decimal("1000"), taxable=False),
        ]
        result = engine.calculate_salary(components, tax_rates=brackets)

        assert result.gross_amount == Decimal("6000")
        assert result.taxable_amount == Decimal("5000")
        assert result.tax_amount == Decimal("650")

    def test_no_tax_line_without_brackets(self, engine, standard_components):
        result = engine.calculate_salary(standard_components, external_variables=SCORE)
        assert result.tax_amount == Decimal("0")
        assert all(line.id is not None for line in result.deductions)

    def test_custom_label(self, settings, brackets):
        engine = SalaryEngine(settings=replace(settings, bracket_tax_label="PAYE"))
        result = engine.calculate_salary([fixed(1, "Base Salary", 1000)], tax_rates=brackets)
        assert result.deductions[-1].name == "PAYE"


class TestDeterminism:
    """Identical inputs give identical results and fingerprints."""

    def test_idempotent(self, engine, standard_components):
        first = engine.calculate_salary(standard_components, external_variables=SCORE)
        second = engine.calculate_salary(standard_components, external_variables=SCORE)
        assert first.to_dict() == second.to_dict()

    def test_fingerprint_changes_with_inputs(self, engine, standard_components):
        first = engine.calculate_salary(standard_components, external_variables=SCORE)
        second = engine.calculate_salary(
            standard_components, external_variables={"performanceScore": Decimal("90")}
        )
        assert len(first.inputs_fingerprint) == 32
        assert first.inputs_fingerprint != second.inputs_fingerprint

    def test_fingerprint_includes_mode(self, settings, standard_components):
        strict = SalaryEngine(strict=True, settings=settings)
        lenient = SalaryEngine(strict=False, settings=settings)
        assert (
            strict.calculate_salary(standard_components, external_variables=SCORE).inputs_fingerprint
            != lenient.calculate_salary(standard_components, external_variables=SCORE).inputs_fingerprint
        )

    def test_float_inputs_are_exact(self, engine):
        result = engine.calculate_salary(
            [fixed(1, "A", 0.1), fixed(2, "B", 0.2)]
        )
        assert result.gross_amount == Decimal("0.3")
