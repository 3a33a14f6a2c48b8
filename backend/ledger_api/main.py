import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ledger_api.core.config import Settings, load_settings
from ledger_api.core.errors import LedgerError
from ledger_api.core.rate_limit import RateLimiter, install_rate_limit
from ledger_api.db.pool import LedgerStore
from ledger_api.models.ledger import describe_errors
from ledger_api.routers.budgets import router as budgets_router
from ledger_api.routers.reports import router as reports_router
from ledger_api.routers.savings_goals import router as savings_goals_router
from ledger_api.routers.sync import router as sync_router
from ledger_api.routers.transactions import router as transactions_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = LedgerStore.from_settings(settings)
        store.open()
        app.state.store = store
        logger.info("Connection pool opened (min=%d, max=%d)", settings.db_pool_min, settings.db_pool_max)
        try:
            yield
        finally:
            store.close()
            logger.info("Connection pool closed")

    app = FastAPI(title="pocket-ledger", lifespan=lifespan)
    install_rate_limit(
        app,
        RateLimiter(redis_url=settings.redis_url, key_prefix=settings.redis_prefix),
        settings.rate_limit,
        settings.rate_limit_window,
    )

    app.include_router(transactions_router)
    app.include_router(budgets_router)
    app.include_router(savings_goals_router)
    app.include_router(reports_router)
    app.include_router(sync_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.exception_handler(LedgerError)
    def ledger_error_handler(_: Request, exc: LedgerError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    def validation_error_handler(_: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": describe_errors(exc.errors())})

    @app.exception_handler(StarletteHTTPException)
    def http_exc_handler(_: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"message": message})

    @app.exception_handler(Exception)
    def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    return app


app = create_app()
