import logging
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .exceptions import SchemaGatewayError
from .gateway import ApiGateway, DispatchMode, FastAPIStrategy, WebSocketProxy
from .gateway.exceptions import (
    SchemaFetchError,
    ProxyCallError,
    BackendTimeoutError,
)
from .gateway.router import router as gateway_router, websocket_router
from .gateway.websocket import BackendConnector
from .registry import load_service_registry, load_schema_file


logger = structlog.get_logger("main")


def configure_logging(level: str) -> None:
    """Filter structlog output below the configured level."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        )
    )


def build_gateway(
    app: FastAPI,
    client: httpx.AsyncClient,
    settings: Settings,
    websocket_connect: BackendConnector | None = None,
) -> ApiGateway:
    """Build the gateway from the static service registry.

    Services sharing a group are served by one ProxyApi.
    """
    gateway = ApiGateway(
        FastAPIStrategy(app),
        client=client,
        websocket_proxy=WebSocketProxy(connect=websocket_connect),
        version=settings.API_VERSION,
        timeout=settings.PROXY_TIMEOUT_SECONDS,
        schema_timeout=settings.SCHEMA_FETCH_TIMEOUT_SECONDS,
        dispatch_mode=DispatchMode(settings.DISPATCH_MODE),
    )

    registry_config = load_service_registry(settings.SERVICES_CONFIG_PATH)
    for group, services in registry_config.grouped().items():
        proxy_api = gateway.create_proxy_api()
        for service in services:
            schema = load_schema_file(service.schema_path) if service.schema_path else None
            proxy_api.add_proxy(
                gateway.create_proxy(service.name, service.url, service.route_prefix, schema=schema)
            )
        logger.info("service_group_configured", group=group, services=len(services))

    return gateway


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    websocket_connect: BackendConnector | None = None,
) -> FastAPI:
    """Create the gateway application.

    Args:
        settings: Application settings, defaults to the environment.
        transport: Optional transport for the outbound HTTP client.
        websocket_connect: Optional backend WebSocket connector.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Initialize global HTTP client for connection pooling
        # timeouts=None removes global default timeout, allowing per-request timeouts
        app.state.http_client = httpx.AsyncClient(timeout=None, transport=transport)
        try:
            app.state.gateway = build_gateway(app, app.state.http_client, settings, websocket_connect)
            await app.state.gateway.run()
            yield
        finally:
            await app.state.http_client.aclose()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.API_VERSION,
        lifespan=lifespan,
        debug=settings.DEBUG
    )

    # Global exception handlers
    @app.exception_handler(BackendTimeoutError)
    async def backend_timeout_handler(request: Request, exc: BackendTimeoutError):
        return JSONResponse(
            status_code=504,
            content={"error": exc.code, "message": exc.message}
        )

    @app.exception_handler(ProxyCallError)
    async def proxy_call_error_handler(request: Request, exc: ProxyCallError):
        return JSONResponse(
            status_code=502,
            content={"error": exc.code, "message": exc.message}
        )

    @app.exception_handler(SchemaFetchError)
    async def schema_fetch_error_handler(request: Request, exc: SchemaFetchError):
        return JSONResponse(
            status_code=502,
            content={"error": exc.code, "message": exc.message}
        )

    @app.exception_handler(NotImplementedError)
    async def not_implemented_handler(request: Request, exc: NotImplementedError):
        return JSONResponse(
            status_code=501,
            content={"error": "NOT_IMPLEMENTED", "message": str(exc)}
        )

    @app.exception_handler(SchemaGatewayError)
    async def gateway_exception_handler(request: Request, exc: SchemaGatewayError):
        return JSONResponse(
            status_code=500,
            content={"error": exc.code, "message": exc.message}
        )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "app": settings.APP_NAME}

    # Include routers
    app.include_router(gateway_router)
    app.include_router(websocket_router)

    return app


app = create_app()
