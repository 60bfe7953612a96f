"""
Table Service — FastAPI entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from tableservice.api import health, telegram
from tableservice.core.config import get_settings
from tableservice.core.container import get_services
from tableservice.core.errors import DependencyFailure, NotFound, ValidationError
from tableservice.core.redis_client import close_redis
from tableservice.messaging.telegram import TelegramMessenger
from tableservice.middleware.update_dedup import UpdateDedupMiddleware

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.STORE_BACKEND == "sql":
        from tableservice.db.database import create_tables

        await create_tables()
    logger.info("%s %s started (store=%s)", settings.SERVICE_NAME, settings.SERVICE_VERSION, settings.STORE_BACKEND)
    yield
    services = get_services()
    await services.store.close()
    if isinstance(services.messenger, TelegramMessenger):
        await services.messenger.aclose()
    await close_redis()
    if settings.STORE_BACKEND == "sql":
        from tableservice.db.database import dispose_engine

        await dispose_engine()


app = FastAPI(
    title="Table Service",
    description="Table ordering, running bills and payment settlement driven by Telegram staff buttons.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True,
                   allow_methods=["*"], allow_headers=["*"])
app.add_middleware(UpdateDedupMiddleware)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(DependencyFailure)
async def dependency_handler(request: Request, exc: DependencyFailure):
    logger.error("Dependency failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


app.include_router(telegram.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
