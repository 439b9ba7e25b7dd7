"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager: logging, table creation, house ATM account
  2. CORS middleware: allows frontend origins to make cross-origin requests
  3. Exception handlers: maps domain errors to HTTP responses
  4. Router registration: mounts all API endpoint groups

Running locally:
    uvicorn app.main:app --reload

The --reload flag watches for file changes and restarts automatically,
which is ideal for development but should not be used in production.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import AsyncSessionLocal, engine, Base
from app.exceptions import register_exception_handlers
from app.logging_config import setup_logging
from app.routers import accounts, auth, transactions, users
from app.services import user_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      - Configures logging from LOG_LEVEL / LOG_FORMAT.
      - Creates all database tables if they don't exist. In production
        you'd use Alembic migrations instead.
      - Provisions the house ATM account (idempotent) and stores its IBAN
        on app.state for the ATM endpoint.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    # SQLite file databases need their directory to exist
    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.house_account_iban = None
    if settings.PROVISION_HOUSE_ACCOUNT:
        async with AsyncSessionLocal() as session:
            app.state.house_account_iban = await user_service.provision_house_account(session)
            await session.commit()

    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    # --- Shutdown ---
    await engine.dispose()


# Create the FastAPI application instance
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Retail banking API: user approval, accounts, transfers and ATM operations",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

# CORS: Allow specified frontend origins to make requests.
# In production, lock this down to your actual frontend domain(s).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for deployment probes (Kubernetes, Docker, etc.).

    Returns a simple JSON response indicating the service is running.
    """
    return {"status": "ok", "version": settings.APP_VERSION}
