import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conduit.cache import cache
from conduit.config import settings
from conduit.database import dispose_engine
from conduit.exceptions import install_exception_handlers
from conduit.middleware import TimingMiddleware, TokenAuthMiddleware
from conduit.routers import articles, comments, profiles, tags, users

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        # Already configured by the host (uvicorn --log-config, pytest, ...).
        root.setLevel(settings.LOG_LEVEL.upper())
        return
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    try:
        await cache.connect()
    except Exception as exc:
        logger.warning("Cache unavailable, continuing without it: %s", exc)
    logger.info("Conduit API started (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await cache.disconnect()
    await dispose_engine()


app = FastAPI(
    title="Conduit API",
    description="RealWorld social blogging backend",
    version="1.0.0",
    lifespan=lifespan,
)

install_exception_handlers(app)

# Middleware (last added runs first)
app.add_middleware(TokenAuthMiddleware)
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(articles.router)
app.include_router(comments.router)
app.include_router(tags.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
