"""FastAPI entry point for the GearFlow HTTP API."""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError as BodyValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gearflow import __version__
from gearflow.api.routers.checkins import router as checkins_router
from gearflow.api.routers.gears import router as gears_router
from gearflow.api.routers.health import router as health_router
from gearflow.api.routers.notifications import router as notifications_router
from gearflow.api.routers.reports import router as reports_router
from gearflow.api.routers.requests import router as requests_router
from gearflow.api.schemas import envelope
from gearflow.exceptions import (
    AuthenticationError,
    BackendError,
    ConfigurationError,
    ConflictError,
    GearFlowError,
    NotFoundError,
    PermissionDeniedError,
    RequestValidationError,
)
from gearflow.integrations.backend_client import BackendClient

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    RequestValidationError: 400,
    ConflictError: 409,
    AuthenticationError: 401,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    ConfigurationError: 500,
    BackendError: 502,
}


def status_for(exc: GearFlowError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope(error=message))


async def _gearflow_error_handler(request: Request, exc: GearFlowError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return _error_response(status_code, str(exc))


async def _validation_error_handler(request: Request, exc: BodyValidationError) -> JSONResponse:
    details = "; ".join(
        ".".join(str(p) for p in err.get("loc", ())) + ": " + err.get("msg", "")
        for err in exc.errors()
    )
    return _error_response(400, "Invalid request: " + details)


async def _transport_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.error("Backend unreachable during %s %s: %s", request.method, request.url.path, exc)
    return _error_response(502, "Backend unavailable")


def create_app(
    backend_factory: Optional[Callable[[], BackendClient]] = None,
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        backend_factory: Zero-argument callable returning a BackendClient;
            defaults to ``BackendClient.from_env``.
        cors_origins: Allowed browser origins.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.backend = None
        try:
            yield
        finally:
            backend = getattr(app.state, "backend", None)
            if backend is not None:
                await backend.aclose()

    app = FastAPI(title="GearFlow API", version=__version__, lifespan=lifespan)
    app.state.backend_factory = backend_factory or BackendClient.from_env
    app.state.backend = None

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(GearFlowError, _gearflow_error_handler)
    app.add_exception_handler(BodyValidationError, _validation_error_handler)
    app.add_exception_handler(httpx.HTTPError, _transport_error_handler)

    # All routers mounted here
    app.include_router(health_router, prefix="/api")
    app.include_router(requests_router, prefix="/api")
    app.include_router(gears_router, prefix="/api")
    app.include_router(notifications_router, prefix="/api")
    app.include_router(checkins_router, prefix="/api")
    app.include_router(reports_router, prefix="/api")
    return app
