"""Salary engine command line interface.

Provides tools for:
- Formula validation
- Structure validation
- Payroll runs over a JSON document
- Bracket tax calculation
- Serving the HTTP API

Usage:
    salary-engine validate-formula "baseSalary * 0.15"
    salary-engine validate-structures payroll.json
    salary-engine calculate payroll.json --as-of 2024-01-31
    salary-engine tax 6000 --brackets brackets.json
    salary-engine serve --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable

import uvicorn
from pydantic import TypeAdapter, ValidationError

from salary_engine.api.schemas import run_to_schema
from salary_engine.calculators.engine import SalaryEngine
from salary_engine.calculators.tax_calculator import (
    BracketConfigurationError,
    TaxCalculator,
)
from salary_engine.calculators.types import TaxRate
from salary_engine.calculators.validation import validate_formula, validate_structure
from salary_engine.config import get_settings
from salary_engine.services.data_source import InMemoryDataSource, TaxRateRecord
from salary_engine.services.payroll_run import PayrollRunService, StructureNotFoundError


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_decimal(s: str) -> Decimal:
    """Parse a decimal amount."""
    try:
        return Decimal(s)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {s}")


def parse_variable(s: str) -> tuple[str, Decimal]:
    """Parse NAME=VALUE."""
    name, sep, value = s.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {s}")
    return name.strip(), parse_decimal(value.strip())


class SalaryCli:
    """Salary engine command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="salary-engine",
            description="Formula-driven salary calculation tools",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            default=None,
            help="Logging level (default: $LOG_LEVEL or INFO)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # validate-formula command
        formula = subparsers.add_parser(
            "validate-formula",
            help="Check a formula against the sample scope",
        )
        formula.add_argument("formula", type=str, help="Formula text")
        formula.add_argument(
            "--var",
            type=parse_variable,
            action="append",
            default=[],
            metavar="NAME=VALUE",
            help="Extra variable for the sample scope (repeatable)",
        )

        # validate-structures command
        structures = subparsers.add_parser(
            "validate-structures",
            help="Check every structure and the tax table in a payroll document",
        )
        structures.add_argument("document", type=Path, help="Payroll document (JSON)")

        # calculate command
        calculate = subparsers.add_parser(
            "calculate",
            help="Run payroll for all employees in a payroll document",
        )
        calculate.add_argument("document", type=Path, help="Payroll document (JSON)")
        calculate.add_argument(
            "--as-of",
            type=parse_date,
            default=None,
            help="As-of date (ISO format, default: today)",
        )
        calculate.add_argument(
            "--period-id",
            type=int,
            default=None,
            help="Payroll period ID to stamp on the result",
        )
        calculate.add_argument(
            "--lenient",
            action="store_true",
            help="Skip fixed components without amount instead of failing",
        )
        calculate.add_argument(
            "--no-tax",
            action="store_true",
            help="Do not apply the bracket tax table",
        )

        # tax command
        tax = subparsers.add_parser("tax", help="Calculate bracket tax for an amount")
        tax.add_argument("amount", type=parse_decimal, help="Gross amount")
        tax.add_argument(
            "--brackets",
            type=Path,
            required=True,
            help="JSON file with a list of tax brackets",
        )

        # serve command
        serve = subparsers.add_parser("serve", help="Run the HTTP API")
        serve.add_argument("--host", type=str, default=None, help="Bind host")
        serve.add_argument("--port", type=int, default=None, help="Bind port")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        level = parsed.log_level or get_settings().log_level
        logging.basicConfig(
            level=level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "validate-formula": self._cmd_validate_formula,
            "validate-structures": self._cmd_validate_structures,
            "calculate": self._cmd_calculate,
            "tax": self._cmd_tax,
            "serve": self._cmd_serve,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_validate_formula(self, args: argparse.Namespace) -> int:
        """Validate a formula."""
        outcome = validate_formula(args.formula, dict(args.var))
        if outcome.valid:
            print("Formula is valid.")
            return 0
        print(f"Invalid formula: {outcome.error}", file=sys.stderr)
        return 1

    def _cmd_validate_structures(self, args: argparse.Namespace) -> int:
        """Validate all structures and the tax table in a document."""
        source = self._load_document(args.document)
        if source is None:
            return 1

        issues: list[str] = []
        for structure in source.document.structures:
            for problem in validate_structure(source.list_components(structure.id)):
                issues.append(f"{structure.name}: {problem}")

        # One bracket table per effective window
        tables: dict[tuple[date | None, date | None], list[TaxRate]] = {}
        for record in source.document.tax_rates:
            window = (record.effective_date, record.end_date)
            tables.setdefault(window, []).append(record.to_tax_rate())

        for (start, _end), rates in tables.items():
            try:
                TaxCalculator.validate_brackets(rates)
            except BracketConfigurationError as e:
                label = f"tax brackets from {start}" if start else "tax brackets"
                issues.extend(f"{label}: {p}" for p in e.problems)

        if not issues:
            print("All structures are valid.")
            return 0

        print(f"{len(issues)} issue(s) found:")
        for issue in issues:
            print(f"  - {issue}")
        return 1

    def _cmd_calculate(self, args: argparse.Namespace) -> int:
        """Run payroll over a document and print the result as JSON."""
        source = self._load_document(args.document)
        if source is None:
            return 1

        engine = SalaryEngine(strict=False) if args.lenient else SalaryEngine()
        service = PayrollRunService(source, engine=engine, apply_tax=not args.no_tax)

        try:
            run = service.process_period(args.as_of or date.today(), args.period_id)
        except (BracketConfigurationError, StructureNotFoundError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        print(run_to_schema(run).model_dump_json(by_alias=True, indent=2))
        return 0 if run.error_count == 0 else 2

    def _cmd_tax(self, args: argparse.Namespace) -> int:
        """Calculate bracket tax."""
        try:
            records = TypeAdapter(list[TaxRateRecord]).validate_json(
                args.brackets.read_bytes()
            )
        except (OSError, ValidationError) as e:
            print(f"ERROR: cannot load brackets: {e}", file=sys.stderr)
            return 1

        brackets = [r.to_tax_rate() for r in records]
        try:
            TaxCalculator.validate_brackets(brackets)
        except BracketConfigurationError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

        tax = TaxCalculator.calculate_tax(args.amount, brackets)
        print(json.dumps({"grossAmount": str(args.amount), "taxAmount": str(tax)}))
        return 0

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        """Run the HTTP API with uvicorn."""
        settings = get_settings()
        uvicorn.run(
            "salary_engine.api.app:app",
            host=args.host or settings.host,
            port=args.port or settings.port,
            reload=settings.debug,
        )
        return 0

    @staticmethod
    def _load_document(path: Path) -> InMemoryDataSource | None:
        try:
            return InMemoryDataSource.from_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            print(f"ERROR: cannot load document {path}: {e}", file=sys.stderr)
            return None


def main() -> int:
    """CLI entry point."""
    cli = SalaryCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
