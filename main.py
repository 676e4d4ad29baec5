"""WeatherHist API application entry point."""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AUTO_INIT_ON_STARTUP, CORS_ORIGINS, DEBUG, configure_logging
from exceptions import WeatherHistError, register_exception_handlers
from ingestion import IngestionDeduplicator
from middleware import log_requests_middleware, request_id_middleware
from reconciler import FreshnessReconciler
from routers.health import router as health_router
from routers.init import router as init_router
from routers.locations import router as locations_router
from routers.root import router as root_router
from routers.weather import router as weather_router
from temporal_query import TemporalQueryEngine
from utils.record_store import RecordStore
from utils.weather_provider import WeatherProvider
from version import __version__

configure_logging()
logger = logging.getLogger(__name__)


def wire_engines(app: FastAPI) -> None:
    """Build the engines over the store and provider already attached to ``app.state``."""
    store = app.state.store
    provider = app.state.provider
    clock = getattr(app.state, "clock", None)
    clock_kwargs = {"clock": clock} if clock else {}
    app.state.deduplicator = IngestionDeduplicator(store, provider, **clock_kwargs)
    app.state.reconciler = FreshnessReconciler(store, provider, deduplicator=app.state.deduplicator, **clock_kwargs)
    app.state.query_engine = TemporalQueryEngine(store, **clock_kwargs)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events."""
    # Startup
    owns_store = getattr(app.state, "store", None) is None
    owns_provider = getattr(app.state, "provider", None) is None
    if owns_store:
        app.state.store = RecordStore()
    if owns_provider:
        app.state.provider = WeatherProvider()
    wire_engines(app)
    if DEBUG:
        logger.info("✅ ROUTER DEPENDENCIES: Initialized successfully")

    if AUTO_INIT_ON_STARTUP:
        try:
            already_done = await app.state.deduplicator.initialize()
            logger.info("✅ STARTUP INIT: %s", "already initialized" if already_done else "completed")
        except WeatherHistError as e:
            logger.error(f"❌ STARTUP INIT: Failed - {e}")

    yield  # Application runs here

    # Shutdown
    if DEBUG:
        logger.info("🛑 APPLICATION SHUTDOWN: Cleaning up resources")
    if owns_provider:
        await app.state.provider.close()
    if owns_store:
        await app.state.store.close()


def create_app() -> FastAPI:
    app = FastAPI(title="WeatherHist API", version=__version__, lifespan=lifespan)

    register_exception_handlers(app)

    app.include_router(root_router)
    app.include_router(health_router)
    app.include_router(locations_router)
    app.include_router(weather_router)
    app.include_router(init_router)

    # The last registered middleware runs outermost
    app.middleware("http")(log_requests_middleware)
    app.middleware("http")(request_id_middleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "content-type",
            "accept",
            "x-requested-with",
            "x-request-id",
        ],
        expose_headers=["X-Request-ID"],
        max_age=600,  # Cache preflight requests for 10 minutes
    )
    return app


app = create_app()


# For local testing
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("main:app", host="0.0.0.0", port=port)
