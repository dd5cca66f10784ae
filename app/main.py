from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware
from app.common.exceptions import DomainError

# Import routers
from app.modules.company.router import company_router
from app.modules.accounting.router import accounts_router, transactions_router
from app.modules.products.router import product_router
from app.modules.inventory.router import inventory_router
from app.modules.contacts.router import customers_router, suppliers_router
from app.modules.purchases.router import purchases_router
from app.modules.payments.router import payments_router
from app.modules.orders.router import orders_router
from app.modules.returns.router import returns_router
from app.modules.shipping.router import shipping_router
from app.modules.balances.router import balances_router

# Import models for table creation
import app.common.sequences
import app.modules.company.models
import app.modules.accounting.models
import app.modules.products.models
import app.modules.contacts.models
import app.modules.purchases.models
import app.modules.payments.models
import app.modules.orders.models
import app.modules.returns.models
import app.modules.shipping.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL or (logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Ledger360 API",
    description="Multi-tenant double-entry accounting and balance reconciliation for order management",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": {
            "code": "DATABASE_ERROR",
            "message": "Error interno de base de datos",
            "category": "server"
        }}
    )


# Include routers
app.include_router(company_router)
app.include_router(accounts_router)
app.include_router(transactions_router)
app.include_router(product_router)
app.include_router(inventory_router)
app.include_router(customers_router)
app.include_router(suppliers_router)
app.include_router(purchases_router)
app.include_router(payments_router)
app.include_router(orders_router)
app.include_router(returns_router)
app.include_router(shipping_router)
app.include_router(balances_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Ledger360 API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Ledger360 API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Ledger360 API shutting down...")
