"""
Social Connector Service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from config.settings import config
from connectors.encryption import is_encryption_enabled
from connectors.registry import AdapterRegistry
from connectors.routes import router as social_router
from database.session import create_tables

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "sqlalchemy.engine", "aiosqlite"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Social Connector Service",
        version="1.0.0",
        description="Team OAuth connections and normalized feeds for YouTube, Facebook, Instagram and LinkedIn.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(social_router, prefix="/api/v1/social")

    @app.on_event("startup")
    async def on_startup():
        if config.auto_create_tables:
            logger.info("Creating missing tables…")
            await create_tables()

        logger.info("Secret encryption %s", "enabled" if is_encryption_enabled() else "disabled")

        providers = AdapterRegistry().list_providers()
        logger.info("Adapters loaded: %s", ", ".join(p["provider"] for p in providers))
        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
