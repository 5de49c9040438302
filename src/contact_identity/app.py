"""FastAPI application for Contact Identity."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from contact_identity import __version__
from contact_identity.config import settings
from contact_identity.db import create_engine, init_db
from contact_identity.errors import IdentityError
from contact_identity.resolution import IdentityResolver
from contact_identity.schemas import ErrorResponse, IdentifyRequest, IdentifyResponse
from contact_identity.store import ContactStore, SqlContactStore

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, status_code=status_code)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


def get_resolver(request: Request) -> IdentityResolver:
    """Dependency returning a resolver bound to the application's store."""
    return IdentityResolver(request.app.state.store)


def create_app(store: ContactStore | None = None) -> FastAPI:
    """Build the HTTP app.

    Args:
        store: Store to serve from. When omitted, the lifespan handler builds a
            SQL store from settings at start-up and closes it at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan handler."""
        app.state.started_at = time.monotonic()
        if store is not None:
            yield
            return

        engine = create_engine(settings)
        if settings.create_tables_on_startup:
            await init_db(engine)
        app.state.store = SqlContactStore(engine)
        logger.info("Contact store connected")
        try:
            yield
        finally:
            await app.state.store.close()
            logger.info("Contact store closed")

    app = FastAPI(
        title="Contact Identity",
        description="Identity reconciliation across email and phone number submissions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.started_at = time.monotonic()
    if store is not None:
        app.state.store = store

    @app.exception_handler(IdentityError)
    async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        expose = exc.status_code < 500 or settings.debug
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_public_dict(expose_message=expose),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        if any(error.get("type") == "json_invalid" for error in errors):
            return _error_response(400, "Invalid JSON", "Request body contains invalid JSON")
        message = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in errors
        )
        return _error_response(400, "Validation Error", message or "Invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error_response(404, "Error", f"Route {request.url.path} not found")
        return _error_response(exc.status_code, "Error", str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        message = str(exc) if settings.debug else "Something went wrong"
        return _error_response(500, "Internal Server Error", message)

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "message": "Contact Identity Reconciliation API",
            "version": __version__,
            "endpoints": {"health": "/api/health", "identify": "/api/identify"},
        }

    @app.get("/api/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "OK",
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "version": __version__,
        }

    @app.post("/api/identify", response_model=IdentifyResponse)
    async def identify(
        resolver: Annotated[IdentityResolver, Depends(get_resolver)],
        body: Annotated[IdentifyRequest | None, Body()] = None,
    ) -> IdentifyResponse:
        """Reconcile one (email, phoneNumber) submission."""
        body = body or IdentifyRequest()
        consolidated = await resolver.identify(email=body.email, phone_number=body.phone_number)
        return IdentifyResponse.from_consolidated(consolidated)

    return app


app = create_app()
