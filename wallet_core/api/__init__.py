"""
Wallet API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config import get_config
from ..errors import WalletError, ValidationFailed
from ..logging_config import get_logger, setup_logging
from .savings import router as savings_router
from .wallet import router as wallet_router


logger = get_logger("wallet.api")


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Wallet API",
        description="Digital wallet with peer transfers and fixed-term savings",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WalletError)
    async def wallet_error_handler(request: Request, exc: WalletError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = ValidationFailed(_validation_message(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    # Include routers
    app.include_router(wallet_router, prefix="/api", tags=["Wallet"])
    app.include_router(savings_router, prefix="/api/savings", tags=["Savings"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "wallet_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Wallet API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "profile": "/api/profile",
                "balance": "/api/balance",
                "transfer": "/api/transfer",
                "deposit": "/api/deposit",
                "withdraw": "/api/withdraw",
                "savings": "/api/savings",
                "airtime": "/api/airtime",
                "transactions": "/api/transactions",
                "calculate-fee": "/api/calculate-fee",
                "qr-code": "/api/qr-code",
            }
        }

    return app


# Create the app instance for uvicorn
app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, config.log_format)
    uvicorn.run(
        "wallet_core.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
