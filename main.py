"""
OAuth Connect — application entry point.

``create_app`` is the composition root: it builds the provider registry,
the credential store and the OAuth services once, before any route is
reachable, and hands them to the routes through ``app.state``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_middleware
from config.settings import config
from credentials.store import CredentialStore, SqlCredentialStore
from oauth.callback import CallbackHandler
from oauth.initiator import AuthorizationInitiator
from oauth.registry import ProviderRegistry, build_default_registry
from oauth.routes import credentials_router, router as oauth_router
from oauth.token_manager import TokenManager

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    registry: Optional[ProviderRegistry] = None,
    store: Optional[CredentialStore] = None,
) -> FastAPI:
    app = FastAPI(
        title=config.app_name,
        version="1.0.0",
        description="OAuth 2.0 authorization-code flow coordinator.",
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

    # Providers are registered before any route is attached.
    registry = registry or build_default_registry()
    engine = None
    if store is None:
        from database.session import build_engine, build_session_factory

        engine = build_engine()
        store = SqlCredentialStore(build_session_factory(engine))

    app.state.oauth_registry = registry
    app.state.oauth_initiator = AuthorizationInitiator(registry, store)
    app.state.oauth_callback_handler = CallbackHandler(registry, store)
    app.state.oauth_token_manager = TokenManager(registry, store)

    # Routes
    app.include_router(oauth_router, prefix="/api/v1/oauth")
    app.include_router(credentials_router, prefix="/api/v1/credentials")

    @app.on_event("startup")
    async def on_startup():
        if engine is not None:
            from database.session import create_tables

            await create_tables(engine)
        logger.info(
            "OAuth providers available: %s",
            ", ".join(p.provider_key for p in registry.all()),
        )
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        if engine is not None:
            await engine.dispose()

    return app


if __name__ == "__main__":
    uvicorn.run(
        create_app(),
        host=config.host,
        port=config.port,
        log_level="debug" if config.debug else "info",
    )
