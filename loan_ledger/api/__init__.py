"""
Loan Ledger API Application Factory
"""

from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import LedgerConfig, get_config
from ..logging_config import setup_logging
from .dependencies import LedgerSystem, get_ledger_system
from .customers import router as customers_router
from .loans import router as loans_router


def create_app(system: Optional[LedgerSystem] = None, config: Optional[LedgerConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if system is None:
        config = config or get_config()
        setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
        system = LedgerSystem(config)

    app = FastAPI(
        title="Loan Ledger API",
        description="Simple-interest lending ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "loan_ledger_api",
            "version": __version__
        }

    return app


__all__ = ["create_app", "LedgerSystem", "get_ledger_system"]
