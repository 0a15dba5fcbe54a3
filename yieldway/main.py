from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configure root logger so all yieldway.* module loggers emit to console
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

from yieldway.config import (
    configuration_problems,
    database_dsn_safe,
    running_in_hosted_env,
    settings,
)
from yieldway.errors import YieldWayError
from yieldway.execution.scheduler import get_reconciliation_scheduler
from yieldway.routes import dev, health, pools, transfers, users, wallets
from yieldway.services.database import create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Database DSN: %s", database_dsn_safe())
    if running_in_hosted_env() and settings.database_url.startswith("sqlite"):
        logger.warning(
            "DATABASE_PRIVATE_URL/DATABASE_URL not set to Postgres in hosted env. "
            "Falling back to SQLite; ledger data will NOT persist across deploys."
        )

    problems = configuration_problems()
    for problem in problems:
        logger.warning("Configuration problem: %s", problem)

    # --- database (non-fatal) ---
    if settings.database_url.startswith("sqlite"):
        try:
            await create_tables()
        except Exception as exc:
            logger.error("Table creation failed on startup (non-fatal): %s", exc)

    scheduler = None
    if settings.reconcile_enabled and not problems:
        scheduler = get_reconciliation_scheduler()
        await scheduler.start()
    elif settings.reconcile_enabled:
        logger.warning("Reconciliation scheduler not started: configuration incomplete")

    yield

    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(
    title="YieldWay API",
    description="Custodial wallets, yield accounts and transfers for YieldWay",
    version=settings.api_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(YieldWayError)
async def yieldway_error_handler(request: Request, exc: YieldWayError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed at %s: %s", request.method, request.url.path, exc.stage, exc)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "invalid_request", "message": str(exc), "stage": None, "context": {}},
    )


app.include_router(health.router, tags=["Health"])
app.include_router(pools.router, prefix="/api", tags=["Pools"])
app.include_router(users.router, prefix="/api", tags=["Users"])
app.include_router(wallets.router, prefix="/api", tags=["Wallets"])
app.include_router(transfers.router, prefix="/api", tags=["Transfers"])
app.include_router(dev.router, prefix="/api", tags=["Dev"])


@app.get("/")
async def root() -> dict:
    return {"message": "YieldWay API", "docs": "/docs"}
