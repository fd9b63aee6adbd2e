from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from posledger.database.database import sync_engine, create_tables
from posledger.database.immutability import register_immutability_listeners

# Import exceptions
from posledger.common.exceptions import (
    PosLedgerError, ValidationError, ConflictError, NotFoundError, InsufficientFundsError
)

# Import routers
from posledger.modules.shifts.router import shifts_router
from posledger.modules.sales.router import sales_router
from posledger.modules.credits.router import credits_router
from posledger.modules.inventory.router import inventory_router
from posledger.modules.reports.router import reports_router

from posledger.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="PosLedger API",
    description="Cash register shifts, ledger reconciliation and inventory Kardex",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===== ERRORES DEL LEDGER =====

ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InsufficientFundsError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: PosLedgerError) -> int:
    for exc_type, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(PosLedgerError)
async def ledger_error_handler(request: Request, exc: PosLedgerError):
    status_code = status_for(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


# Include routers
app.include_router(shifts_router, prefix="/api/v1")
app.include_router(sales_router, prefix="/api/v1")
app.include_router(credits_router, prefix="/api/v1")
app.include_router(inventory_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")

register_immutability_listeners()

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    create_tables(sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "PosLedger API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("PosLedger API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Currency: {settings.CURRENCY_CODE} (epsilon {settings.CURRENCY_EPSILON})")
