"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from backend.config import settings
from backend.database import create_db_and_tables, engine
from backend.utils.logging import setup_logging
from backend.api import auth, accounts, dashboard, actions, trade_history, system, v1
from backend.api.deps import ApiError
from backend.services.account_registry import AccountRegistry
from backend.store import RedisStore, Stores

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    # One shared key-value client for every store, closed on shutdown
    client = RedisStore.from_url(settings.redis_url)
    if not await client.ping():
        logger.warning(f"Key-value store at {settings.redis_url} is not reachable; reads will be empty")
    app.state.stores = Stores.build(client, settings.key_prefix)
    app.state.registry = AccountRegistry(engine)

    from backend.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler(app.state.stores, app.state.registry, settings.collection_interval_minutes)

    yield

    stop_scheduler()
    await client.close()


app = FastAPI(
    title="Account Monitor",
    description="Multi-exchange trading account monitor with snapshot history and grid-level overlay",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ApiError, v1.api_error_handler)

# Mount routers
app.include_router(auth.router)
app.include_router(accounts.router)
app.include_router(dashboard.router)
app.include_router(actions.router)
app.include_router(trade_history.router)
app.include_router(system.router)
app.include_router(system.cron_router)
app.include_router(v1.router)

# Serve frontend static files in production (must be after all API routers).
# Skip when CORS origins include localhost dev server (i.e. Vite is running separately).
_frontend_dist = Path(__file__).resolve().parent.parent / "frontend" / "dist"
_is_dev = any("localhost" in o or "127.0.0.1" in o for o in settings.cors_origins)
if _frontend_dist.exists() and not _is_dev:
    from fastapi.responses import FileResponse

    app.mount("/assets", StaticFiles(directory=str(_frontend_dist / "assets")), name="static-assets")

    @app.get("/{path:path}")
    async def serve_spa(path: str):
        file = _frontend_dist / path
        if file.is_file():
            return FileResponse(str(file))
        return FileResponse(str(_frontend_dist / "index.html"))
