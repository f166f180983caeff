"""FastAPI application factory."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from salary_engine import __version__
from salary_engine.api.routes import calculations_router, health_router
from salary_engine.calculators.engine import MissingAmountError
from salary_engine.calculators.tax_calculator import BracketConfigurationError
from salary_engine.services.payroll_run import StructureNotFoundError

logger = logging.getLogger(__name__)

# Configuration errors -> error code
CONFIGURATION_ERRORS: dict[type[Exception], str] = {
    MissingAmountError: "MISSING_AMOUNT",
    BracketConfigurationError: "INVALID_BRACKETS",
    StructureNotFoundError: "STRUCTURE_NOT_FOUND",
}


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Salary Engine API",
        description="Formula-driven salary calculation",
        version=__version__,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    async def configuration_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Reject requests whose records are misconfigured."""
        return JSONResponse(
            status_code=422,
            content={
                "detail": str(exc),
                "code": CONFIGURATION_ERRORS[type(exc)],
            },
        )

    for exc_class in CONFIGURATION_ERRORS:
        app.add_exception_handler(exc_class, configuration_error_handler)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(calculations_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
