"""FastAPI application wiring for the customer hub service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import install_exception_handlers
from .api.routes import router as cards_router
from .config import get_settings
from .domain.service import LoginService
from .otp_client import OtpClient
from .repository import MemberRepository

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, OTP client, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    otp_client = OtpClient.from_settings(settings)
    app.state.pool = pool
    app.state.login_service = LoginService(
        MemberRepository(pool, settings.login_function),
        otp_client,
    )
    logger.info("%s started in %s profile", settings.app_name, settings.environment)
    try:
        yield
    finally:
        otp_client.close()
        pool.close()
        pool.wait_close()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/swagger" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.resolved_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_exception_handlers(app, development=settings.is_development)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(cards_router)


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    uvicorn.run(app, host=settings.http_host, port=settings.http_port)
