"""
FastAPI server for Chainpulse.

Routers are mounted under /api: portfolio (+ history), wallets, alerts, cron.
Errors are returned as {"error": "<message>"} with the HTTP status chosen by
the route (400 invalid input, 401 unauthenticated, 500 internal, 503 missing
configuration).
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chainpulse import __version__
from chainpulse.api_server.alerts import router as alerts_router
from chainpulse.api_server.cron import router as cron_router
from chainpulse.api_server.portfolio import router as portfolio_router
from chainpulse.api_server.wallets import router as wallets_router
from chainpulse.core.exceptions import AuthenticationError, ConfigurationError
from chainpulse.database import init_db
from chainpulse.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    try:
        init_db()
    except Exception as e:
        logger.warning("database_init_skip", error=str(e))
    logger.info("api_started", version=__version__)
    yield
    logger.info("api_stopped")


app = FastAPI(
    title="Chainpulse API",
    description="Multi-chain portfolio aggregation, wallet tracking and price alerts.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(portfolio_router, prefix="/api")
app.include_router(wallets_router, prefix="/api")
app.include_router(alerts_router, prefix="/api")
app.include_router(cron_router, prefix="/api")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    message = f"Invalid {field}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("configuration_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness check: API is up."""
    return {"status": "ok"}
