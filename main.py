import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.step_engine.access import AccessGate
from services.step_engine.catalog import get_catalog
from workbook.cache.connection import close_redis
from workbook.config import app_settings, database_settings, gate_settings, progress_store_settings
from workbook.db.session import create_tables, get_async_engine, get_session_factory
from workbook.logging_config import setup_logging
from workbook.middleware.auth import AuthenticationMiddleware
from workbook.routers import account as account_router
from workbook.routers import progress as progress_router
from workbook.routers import steps as steps_router
from workbook.services.identity import InMemoryIdentityProvider, SqlIdentityProvider
from workbook.services.progress_store import InMemoryProgressRepository, SqlProgressRepository
from workbook.services.unlock_attempts import UnlockAttemptCounter

# Configure logging early
setup_logging(app_settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail at startup rather than on the first request if the catalog is inconsistent
    catalog = get_catalog()
    logger.info(f"Loaded {len(catalog.steps())} workbook steps.")

    engine = None
    if progress_store_settings.backend == "memory":
        logger.warning("Using in-memory progress store; data is lost on restart.")
        app.state.progress_repository = InMemoryProgressRepository()
        app.state.identity_provider = InMemoryIdentityProvider()
    else:
        engine = get_async_engine(database_settings)
        await create_tables(engine)
        session_factory = get_session_factory(engine)
        app.state.progress_repository = SqlProgressRepository(session_factory)
        app.state.identity_provider = SqlIdentityProvider(session_factory)
        logger.info("SQL progress store ready.")

    app.state.access_gate = AccessGate(
        elevation_phrase=gate_settings.elevation_phrase,
        hint_after_attempts=gate_settings.hint_after_attempts,
    )
    app.state.unlock_counter = UnlockAttemptCounter()

    yield

    await close_redis()
    if engine is not None:
        await engine.dispose()
    logger.info("Shutdown complete.")


app = FastAPI(title=app_settings.title, lifespan=lifespan)

app.add_middleware(AuthenticationMiddleware, excluded_paths={"/", "/health"})
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include Routers ---
app.include_router(steps_router.router, prefix="/api/v1", tags=["steps"])
app.include_router(progress_router.router, prefix="/api/v1", tags=["progress"])
app.include_router(account_router.router, prefix="/api/v1", tags=["account"])


@app.get("/", tags=["Health Check"])
async def read_root():
    return {"status": "ok", "message": "Recovery Workbook API is running."}


@app.get("/health", tags=["Health Check"])
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
