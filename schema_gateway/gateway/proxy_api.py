"""ProxyApi - one address space built from many Proxy instances."""

import asyncio

import structlog

from .proxy import Proxy
from .schemas import Method
from .strategy import MethodsCollection, Strategy


logger = structlog.get_logger("proxy_api")


class ProxyApi:
    """Manages a collection of Proxy instances and serves their methods.

    Example:
        api = ProxyApi(FastAPIStrategy(app))
        api.add_proxy(Proxy("content-analyzer", "http://localhost:3001"))
        api.add_proxy(Proxy("llm-service", "http://localhost:3003"))

        await api.initialize()
        api.run()
    """

    def __init__(self, strategy: Strategy, version: str = "1.0.0") -> None:
        self._strategy = strategy
        self._version = version
        self._proxies: list[Proxy] = []
        self._methods = MethodsCollection()
        self._registered_proxies: list[Proxy] = []
        self._initialized = False

    def add_proxy(self, proxy: Proxy) -> "ProxyApi":
        """Add a Proxy to the collection."""
        self._proxies.append(proxy)
        logger.debug("proxy_added", service=proxy.get_service_name())
        return self

    def add_proxies(self, proxies: list[Proxy]) -> "ProxyApi":
        """Add multiple Proxies at once."""
        self._proxies.extend(proxies)
        logger.debug("proxies_added", count=len(proxies))
        return self

    async def initialize(self) -> None:
        """Initialize all proxies concurrently, then register their methods.

        The first proxy failure propagates; proxies already initialized stay
        initialized and the remaining ones keep running.

        Raises:
            SchemaFetchError: If a proxy cannot fetch its schema.
            RouteCollisionError: If two methods resolve to the same route.
        """
        logger.info("initializing_proxy_api", services=len(self._proxies))

        await asyncio.gather(*(self._initialize_proxy(proxy) for proxy in self._proxies))

        self._register_proxy_methods()
        self._initialized = True

        logger.info("proxy_api_initialized", methods=len(self._methods))

    async def _initialize_proxy(self, proxy: Proxy) -> None:
        try:
            await proxy.initialize()
        except Exception as e:
            logger.error("proxy_initialization_failed", service=proxy.get_service_name(), error=str(e))
            raise

    def _register_proxy_methods(self) -> None:
        total_methods = 0

        for proxy in self._proxies:
            # A proxy's methods are registered once, even across repeated initialize() calls
            if any(proxy is registered for registered in self._registered_proxies):
                continue
            self._registered_proxies.append(proxy)

            methods = proxy.get_methods()
            for method in methods:
                self.register_method(method)
            total_methods += len(methods)

            logger.info("proxy_methods_registered", service=proxy.get_service_name(), methods=len(methods))

        logger.info("total_methods_registered", services=len(self._proxies), methods=total_methods)

    def register_method(self, method: Method) -> None:
        """Register one method in this API's routing table.

        Raises:
            RouteCollisionError: If the verb and route are already registered.
        """
        self._methods.add(method)

    def get_methods(self) -> list[Method]:
        """Get the registered methods in registration order."""
        return list(self._methods)

    def get_proxies(self) -> list[Proxy]:
        return list(self._proxies)

    def get_proxy(self, service_name: str) -> Proxy | None:
        """Find proxy by service name."""
        return next((p for p in self._proxies if p.get_service_name() == service_name), None)

    def has_proxy(self, service_name: str) -> bool:
        return self.get_proxy(service_name) is not None

    def remove_proxy(self, service_name: str) -> bool:
        """Remove the proxy for a service.

        Methods already registered by initialize() stay registered.

        Returns:
            True if a proxy was removed.
        """
        proxy = self.get_proxy(service_name)
        if proxy is None:
            logger.warning("proxy_not_found", service=service_name)
            return False

        self._proxies.remove(proxy)
        if self._initialized:
            logger.warning(
                "proxy_removed_after_initialize",
                service=service_name,
                detail="registered methods are not retracted",
            )
        else:
            logger.debug("proxy_removed", service=service_name)
        return True

    def is_initialized(self) -> bool:
        return self._initialized

    def run(self) -> None:
        """Hand the registered methods to the strategy and start serving."""
        if not self._proxies:
            logger.warning("no_proxies_registered", detail="add proxies via add_proxy() before run()")

        self._strategy.configure(self._methods, self._version)
        self._strategy.on_api_run()

    def get_strategy(self) -> Strategy:
        return self._strategy
