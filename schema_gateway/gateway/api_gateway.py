"""ApiGateway - composite of ProxyApi instances sharing one serving strategy."""

import asyncio
from typing import Mapping

import httpx
import structlog

from schema_gateway.registry.schemas import Schema
from .dispatch import DEFAULT_SCHEMA_TIMEOUT_SECONDS, DEFAULT_TIMEOUT_SECONDS, fetch_schema
from .proxy import Proxy
from .proxy_api import ProxyApi
from .schemas import DispatchMode, Method, ProxyHandler
from .strategy import MethodsCollection, Strategy
from .websocket import WebSocketProxy


logger = structlog.get_logger("api_gateway")


class ApiGateway:
    """Creates and runs ProxyApis.

    All ProxyApis share the gateway's strategy, which is configured once with
    the merged methods of every proxy.

    Example:
        gateway = ApiGateway(FastAPIStrategy(app))

        gateway.create_proxy_api(schema1)
        users_api = gateway.create_proxy_api()
        users_api.add_proxy(gateway.create_proxy("users", "http://localhost:3001"))

        await gateway.run()
    """

    def __init__(
        self,
        strategy: Strategy,
        client: httpx.AsyncClient | None = None,
        websocket_proxy: WebSocketProxy | None = None,
        version: str = "1.0.0",
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        schema_timeout: float | None = DEFAULT_SCHEMA_TIMEOUT_SECONDS,
        dispatch_mode: DispatchMode = DispatchMode.protocol,
    ) -> None:
        self._strategy = strategy
        self._client = client
        self._websocket_proxy = websocket_proxy or WebSocketProxy()
        self._version = version
        self._timeout = timeout
        self._schema_timeout = schema_timeout
        self._dispatch_mode = dispatch_mode
        self._proxy_apis: list[ProxyApi] = []
        self._methods: MethodsCollection | None = None

    @property
    def websocket_proxy(self) -> WebSocketProxy:
        return self._websocket_proxy

    def _proxy_options(self) -> dict:
        return {
            "client": self._client,
            "timeout": self._timeout,
            "schema_timeout": self._schema_timeout,
            "dispatch_mode": self._dispatch_mode,
        }

    def create_proxy(
        self,
        service_name: str,
        service_url: str,
        route_prefix: str | None = None,
        schema: Schema | None = None,
    ) -> Proxy:
        """Create a Proxy sharing this gateway's HTTP client and call settings.

        With a schema the proxy is built immediately against ``service_url``,
        under ``route_prefix`` or else ``service_name``.
        """
        if schema is not None:
            return Proxy.from_schema(
                schema.with_base_url(service_url),
                route_prefix or service_name,
                **self._proxy_options(),
            )
        return Proxy(service_name, service_url, route_prefix, **self._proxy_options())

    def create_proxy_api(
        self,
        schema: Schema | None = None,
        route_prefix: str | None = None,
        overrides: Mapping[str, ProxyHandler] | None = None,
    ) -> ProxyApi:
        """Create a new ProxyApi, optionally holding a proxy built from a schema.

        Args:
            schema: Optional schema of a remote service.
            route_prefix: Optional route prefix for that proxy.
            overrides: Custom handlers keyed by operation id.

        Returns:
            The new ProxyApi.
        """
        proxy_api = ProxyApi(self._strategy, self._version)

        if schema is not None:
            proxy = Proxy.from_schema(schema, route_prefix, overrides=overrides, **self._proxy_options())
            proxy_api.add_proxy(proxy)
            logger.debug("proxy_api_created_from_schema", service=schema.service.name)

        self._proxy_apis.append(proxy_api)
        logger.debug("proxy_api_created", total=len(self._proxy_apis))

        return proxy_api

    async def fetch_schema(
        self,
        service_url: str,
        route_prefix: str | None = None,
        overrides: Mapping[str, ProxyHandler] | None = None,
    ) -> ProxyApi:
        """Fetch a schema from a service and create a ProxyApi from it.

        The schema's base URL is replaced by the URL it was fetched from.

        Raises:
            SchemaFetchError: If the schema cannot be fetched or parsed.
        """
        service_url = service_url.rstrip("/")
        logger.info("fetching_schema", service_url=service_url)

        if self._client is not None:
            schema = await fetch_schema(self._client, service_url, timeout=self._schema_timeout)
        else:
            async with httpx.AsyncClient() as client:
                schema = await fetch_schema(client, service_url, timeout=self._schema_timeout)

        logger.info("schema_fetched", service=schema.service.name)
        return self.create_proxy_api(schema.with_base_url(service_url), route_prefix, overrides)

    def get_apis(self) -> list[ProxyApi]:
        return list(self._proxy_apis)

    async def initialize(self) -> None:
        """Initialize all ProxyApis concurrently.

        The first failure propagates; already initialized ProxyApis are kept.
        """
        logger.info("initializing_api_gateway", proxy_apis=len(self._proxy_apis))

        await asyncio.gather(*(self._initialize_proxy_api(api) for api in self._proxy_apis))

        logger.info("api_gateway_initialized")

    async def _initialize_proxy_api(self, proxy_api: ProxyApi) -> None:
        try:
            await proxy_api.initialize()
        except Exception as e:
            logger.error("proxy_api_initialization_failed", error=str(e))
            raise

    async def run(self) -> None:
        """Initialize, merge every proxy's methods and start the strategy once.

        Raises:
            SchemaFetchError: If a proxy cannot fetch its schema.
            RouteCollisionError: If methods of different services collide.
        """
        await self.initialize()

        merged = MethodsCollection()
        for proxy_api in self._proxy_apis:
            for proxy in proxy_api.get_proxies():
                for method in proxy.get_methods():
                    merged.add(method)
                schema = proxy.get_schema()
                if schema is not None:
                    # Same prefix and backend as the proxy's HTTP routes
                    self._websocket_proxy.register_schema(
                        schema.with_base_url(proxy.get_service_url()),
                        proxy.get_route_prefix() or proxy.get_service_name(),
                    )

        self._methods = merged
        self._strategy.configure(merged, self._version)
        self._strategy.on_api_run()

        logger.info("api_gateway_started", methods=len(merged))

    def get_methods(self) -> list[Method]:
        """Get the merged methods handed to the strategy by run()."""
        return list(self._methods) if self._methods is not None else []

    def get_strategy(self) -> Strategy:
        return self._strategy
