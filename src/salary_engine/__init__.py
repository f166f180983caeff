"""Salary engine: formula-driven salary calculation."""

__version__ = "1.0.0"
