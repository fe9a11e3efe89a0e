import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from veilstat import __version__
from veilstat.adapters.sqlite.migrator import DEFAULT_MIGRATIONS_DIR, SQLiteMigrator
from veilstat.api.deps import get_settings
from veilstat.api.errors import register_error_handlers
from veilstat.rules.loader import load_rules

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        load_rules(settings.rules_path)
        logger.info("Rules loaded from %s", settings.rules_path)
    except Exception as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    SQLiteMigrator(settings.db_path, settings.migrations_dir or DEFAULT_MIGRATIONS_DIR).run_migrations()

    yield


app = FastAPI(
    title="veilstat API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

register_error_handlers(app)

# --- Routers ---
from veilstat.api.routes import alerts, collect, funnels, query, realtime  # noqa: E402

app.include_router(collect.router, prefix="/api", tags=["Collect"])
app.include_router(query.router, prefix="/api/query", tags=["Query"])
app.include_router(funnels.router, prefix="/api/funnels", tags=["Funnels"])
app.include_router(alerts.router, prefix="/api/alerts", tags=["Alerts"])
app.include_router(realtime.router, prefix="/api/realtime", tags=["Realtime"])


# The tracking script is embedded on arbitrary third-party sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "veilstat"}
