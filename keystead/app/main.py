# keystead/app/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from keystead.app.api.middleware import AuthGateMiddleware
from keystead.app.api.v1.router import api_router
from keystead.app.core.config import Settings, get_settings
from keystead.app.core.exceptions import KeysteadError
from keystead.app.db import init_models
from keystead.app.db.base import (
    AsyncSessionLocal,
    create_engine_for,
    create_session_factory,
    engine,
)
from keystead.app.security.jwt import TokenCodec

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# --- Create tables on startup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models(app.state.engine)
    yield
    await app.state.engine.dispose()


async def handle_keystead_error(request: Request, exc: KeysteadError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.detail)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    # Built once; the gate and every endpoint share the same keys
    codec = TokenCodec.from_settings(settings)
    app.state.settings = settings
    app.state.token_codec = codec

    # The environment settings share the module engine; any other Settings
    # object gets an engine and session factory of its own
    if settings is get_settings():
        app.state.engine = engine
        app.state.session_factory = AsyncSessionLocal
    else:
        app.state.engine = create_engine_for(settings)
        app.state.session_factory = create_session_factory(app.state.engine, settings)

    app.add_exception_handler(KeysteadError, handle_keystead_error)

    app.add_middleware(
        AuthGateMiddleware,
        codec=codec,
        public_endpoints=settings.public_endpoints,
    )

    # Added last so it wraps the gate: preflight requests never need a token
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.BACKEND_CORS_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/")
    def root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()
