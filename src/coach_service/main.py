"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from coach_service import __version__
from coach_service.api import ai, health, speech
from coach_service.config import get_settings
from coach_service.core.key_pool import KeyPool
from coach_service.core.local_store import LocalCredentialStore
from coach_service.core.providers.registry import init_provider
from coach_service.dependencies import (
    clear_http_client,
    clear_key_pool,
    set_http_client,
    set_key_pool,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - build shared clients, provider and key pool."""
    config = get_settings()
    configure_logging(config.log_level)

    timeout = max(config.provider_timeout_seconds, config.proxy_timeout_ms / 1000)
    client = httpx.AsyncClient(timeout=timeout)
    set_http_client(client)

    # Settings (explicit, then environment) take priority over persisted keys
    store = LocalCredentialStore(config.credentials_path)
    set_key_pool(KeyPool.load(config.gemini_api_keys(), store.get_api_keys()))

    provider = init_provider(config, client)
    logger.info(f"Coach service {__version__} ready")

    yield

    # Shutdown: provider first, it may share the client
    await provider.aclose()
    await client.aclose()
    clear_key_pool()
    clear_http_client()


app = FastAPI(
    title="Explanation Coach Service",
    description="Speech transcription and resilient AI feedback backend",
    version=__version__,
    lifespan=lifespan,
)

# Register routers
app.include_router(health.router)
app.include_router(speech.router)
app.include_router(ai.router)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "coach_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
