"""FastAPI proxy endpoint for SQL Proxy.

POST /api/database          run one query description, reply with an envelope
POST /api/database/config   replace the connection pool
GET  /api/health            pool status

Every failure is reported as ``{data: null, error: message}``; stack
traces never leave the process.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import sentry_sdk
import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sql_proxy.__about__ import __version__
from sql_proxy.core.builder import IdentifierPolicy, build_statement
from sql_proxy.core.config import ServerSettings
from sql_proxy.core.exceptions import ProxyError, TransportError
from sql_proxy.core.executor import QueryExecutor
from sql_proxy.core.models import ConfigRequest, Envelope, ProxyRequest
from sql_proxy.server.auth import make_token_guard

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sql_proxy.core.models import ConnectionConfig


def envelope_response(envelope: Envelope, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        content=jsonable_encoder(envelope.to_payload()), status_code=status_code
    )


def error_response(message: str, status_code: int = 500) -> JSONResponse:
    return envelope_response(Envelope(error=message), status_code)


def _policy_from_settings(settings: ServerSettings) -> IdentifierPolicy:
    allowed = frozenset(settings.allowed_tables) if settings.allowed_tables else None
    return IdentifierPolicy(mode=settings.identifier_policy, allowed_tables=allowed)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = first.get("msg", "invalid value")
    return f"Invalid request body: {location}: {detail}" if location else f"Invalid request body: {detail}"


def create_app(
    settings: ServerSettings | None = None,
    executor: QueryExecutor | None = None,
    default_connection: ConnectionConfig | None = None,
) -> FastAPI:
    """Build the proxy application.

    ``default_connection`` is used when a request carries no ``config``
    (or when client-supplied configs are disabled).
    """
    settings = settings or ServerSettings()
    executor = executor or QueryExecutor()
    policy = _policy_from_settings(settings)
    guard = make_token_guard(settings.jwt_secret)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log = structlog.get_logger()
        if settings.jwt_secret is None:
            log.warning("no JWT secret configured, proxy accepts unauthenticated calls")
        if settings.allow_client_config:
            log.info("client-supplied connection configs are accepted")
        yield
        await executor.close()

    app = FastAPI(
        title="SQL Proxy",
        version=__version__,
        description="Declarative query proxy for PostgreSQL",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.executor = executor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:8])
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
        response = error_response(message, exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        error = TransportError(_first_validation_message(exc))
        structlog.get_logger().warning(
            "rejected request body", path=request.url.path, error=error.message
        )
        return error_response(error.message, error.status_code)

    async def _connection_for(body: ProxyRequest) -> None:
        config = body.config if settings.allow_client_config else None
        config = config or default_connection
        if config is not None:
            await executor.configure(config)

    @app.post("/api/database", dependencies=[Depends(guard)])
    async def database_query(body: ProxyRequest) -> JSONResponse:
        log = structlog.get_logger()
        try:
            await _connection_for(body)
            statement = build_statement(body.table, body.query, policy)
        except ProxyError as e:
            log.warning("rejected query", table=body.table, error=e.message)
            return error_response(e.message, e.status_code)
        except Exception as e:
            sentry_sdk.capture_exception(e)
            log.error("proxy error", table=body.table, error=str(e))
            return error_response(str(e) or type(e).__name__)

        envelope = await executor.run_statement(
            statement, single=body.query.single, timeout=settings.request_timeout
        )
        if not envelope.ok:
            log.error(
                "database query error",
                table=body.table,
                action=body.query.action,
                error=envelope.error,
                code=envelope.code,
            )
            return envelope_response(envelope, 500)
        return envelope_response(envelope)

    @app.post("/api/database/config", dependencies=[Depends(guard)])
    async def database_config(body: ConfigRequest) -> JSONResponse:
        log = structlog.get_logger()
        if not settings.allow_client_config:
            return JSONResponse(
                content={"error": "Client-supplied connection configs are disabled"},
                status_code=403,
            )
        try:
            await executor.reconfigure(body.config)
        except Exception as e:
            sentry_sdk.capture_exception(e)
            log.error("pool reconfiguration failed", error=str(e))
            return JSONResponse(content={"error": str(e)}, status_code=500)
        return JSONResponse(content={"success": True})

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "pool_configured": executor.configured,
        }

    return app
