"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends

from salary_engine.calculators.engine import SalaryEngine
from salary_engine.config import Settings, get_settings


def get_app_settings() -> Settings:
    """Get settings dependency."""
    return get_settings()


# Type aliases for cleaner dependency injection
AppSettings = Annotated[Settings, Depends(get_app_settings)]


def build_engine(settings: Settings, strict: bool | None) -> SalaryEngine:
    """Engine for one request; ``strict`` None keeps the configured mode."""
    return SalaryEngine(strict=strict, settings=settings)
