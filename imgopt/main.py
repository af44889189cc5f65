from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imgopt.api.router import router
from imgopt.config import settings
from imgopt.core.exceptions import register_exception_handlers
from imgopt.core.logging import setup_logging
from imgopt.services.optimizer import build_optimizer

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.optimizer = build_optimizer(settings)
    logger.info("app_started", storage=settings.storage_backend, cache=settings.cache_enabled)
    yield
    await app.state.optimizer.aclose()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    setup_logging(settings.log_level, settings.debug)
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    uvicorn.run("imgopt.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
