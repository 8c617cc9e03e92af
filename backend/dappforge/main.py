import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import get_run_store
from .api.routes import api_router
from .config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan: startup and shutdown events.
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting DApp Forge (max concurrency %d)", settings.generation_max_concurrency)

    yield

    removed = get_run_store().cleanup(timedelta(hours=settings.run_retention_hours))
    logger.info("Shutting down DApp Forge (%d expired runs dropped)", removed)


app = FastAPI(
    title="DApp Forge",
    description="Compiles visual blueprints of Web3 components into a generated repository.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[],  # Empty list - use regex instead
    allow_origin_regex=get_settings().cors_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.include_router(api_router)
