from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from melodia.app import build_extraction_chain
from melodia.core.config import Config
from melodia.domain.playback.resolver import Extractor

from .relay import SyncRelay
from .routers import sync, youtube_audio


def create_app(config: Optional[Config] = None, extractor: Optional[Extractor] = None) -> FastAPI:
    """Build the extraction + sync relay service."""
    config = config or Config()
    owned_chain = None
    if extractor is None:
        owned_chain = build_extraction_chain(config.extraction)
        extractor = owned_chain

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Melodia web service starting")
        yield
        if owned_chain is not None:
            await owned_chain.aclose()
        logger.info("Melodia web service stopped")

    app = FastAPI(title="Melodia Web API", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.extractor = extractor
    app.state.relay = SyncRelay()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.allowed_origins,
        allow_credentials="*" not in config.web.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(youtube_audio.router, prefix="/api", tags=["extraction"])
    app.include_router(sync.router, tags=["sync"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app
