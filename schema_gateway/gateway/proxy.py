"""Proxy for a single backend service.

A Proxy obtains the schema of one service (fetched from ``{url}/schema`` or
injected) and turns every operation into a Method: a routing table entry
whose handler forwards the call to the backend, or runs an override.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

import httpx
import structlog

from schema_gateway.registry.schemas import Operation, Schema
from .dispatch import (
    DEFAULT_SCHEMA_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    call_graphql,
    call_invoke,
    call_rest,
    fetch_schema,
)
from .exceptions import (
    NotInitializedError,
    OperationNotFoundError,
    ProxyAlreadyBuiltError,
    ProxyCallError,
    UnknownProtocolError,
)
from .schemas import DispatchMode, Method, ProxyHandler, method_type_for


logger = structlog.get_logger("proxy")


class Proxy:
    """Represents a single backend service.

    Overrides must be registered before the proxy is built, i.e. before
    ``initialize()``; ``from_schema()`` takes them as an argument.

    Example:
        proxy = Proxy("users", "http://localhost:3001")
        proxy.override("users.delete", reject_delete)
        await proxy.initialize()
    """

    def __init__(
        self,
        service_name: str,
        service_url: str,
        route_prefix: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
        schema_timeout: float | None = DEFAULT_SCHEMA_TIMEOUT_SECONDS,
        dispatch_mode: DispatchMode = DispatchMode.protocol,
    ) -> None:
        """Initialize the proxy. Performs no I/O.

        Args:
            service_name: Name of the backend service.
            service_url: Base URL of the backend service.
            route_prefix: Optional route prefix, overrides the service name.
            client: Shared HTTP client. A short-lived client is opened per
                call when omitted.
            timeout: Deadline for outbound calls in seconds, None for none.
            schema_timeout: Deadline for the schema fetch in seconds.
            dispatch_mode: How default handlers reach the backend.
        """
        self._service_name = service_name
        self._service_url = service_url.rstrip("/")
        self._route_prefix = route_prefix
        self._client = client
        self._timeout = timeout
        self._schema_timeout = schema_timeout
        self._dispatch_mode = DispatchMode(dispatch_mode)
        self._schema: Schema | None = None
        self._custom_handlers: dict[str, ProxyHandler] = {}
        self._methods: list[Method] = []
        self._handlers: dict[str, ProxyHandler] = {}
        self._built = False
        self._logger = logger.bind(service=service_name)

    @classmethod
    def from_schema(
        cls,
        schema: Schema | Mapping[str, Any],
        route_prefix: str | None = None,
        overrides: Mapping[str, ProxyHandler] | None = None,
        **options: Any,
    ) -> "Proxy":
        """Create an already built Proxy from a schema obtained out-of-band.

        Args:
            schema: Schema of the remote service.
            route_prefix: Optional route prefix, overrides the service name.
            overrides: Custom handlers keyed by operation id.
            **options: Forwarded to the constructor (client, timeout, ...).

        Returns:
            A ready Proxy.
        """
        if not isinstance(schema, Schema):
            schema = Schema.model_validate(schema)

        proxy = cls(
            schema.service.name,
            schema.service.base_url,
            route_prefix,
            **options,
        )
        for operation_id, handler in (overrides or {}).items():
            proxy.override(operation_id, handler)

        proxy._schema = schema
        proxy.generate_proxy_methods()
        proxy._logger.info("proxy_created_from_schema", methods=len(proxy._methods))
        return proxy

    async def initialize(self) -> None:
        """Fetch the schema and generate proxy methods.

        Calling it on a proxy that is already built does nothing.

        Raises:
            SchemaFetchError: If the schema cannot be fetched or parsed.
        """
        if self._built:
            self._logger.debug("proxy_already_built")
            return

        self._logger.info("initializing_proxy", service_url=self._service_url)
        async with self._http_client() as client:
            self._schema = await fetch_schema(
                client,
                self._service_url,
                service_name=self._service_name,
                timeout=self._schema_timeout,
            )
        self.generate_proxy_methods()
        self._logger.info("proxy_initialized", methods=len(self._methods))

    def generate_proxy_methods(self) -> list[Method]:
        """Generate one Method per operation, in schema order.

        Replaces any previously generated list.

        Raises:
            NotInitializedError: If no schema is loaded.
        """
        if self._schema is None:
            self._logger.error("schema_not_loaded")
            raise NotInitializedError(self._service_name)

        if self._dispatch_mode is DispatchMode.invoke:
            self._logger.warning(
                "invoke_dispatch_deprecated",
                detail="forwarding every operation to /internal/invoke",
            )

        methods: list[Method] = []
        handlers: dict[str, ProxyHandler] = {}
        for operation in self._schema.operations:
            custom_handler = self._custom_handlers.get(operation.id)
            handler = custom_handler or self._create_default_handler(operation)

            method = Method(
                method_type=method_type_for(operation.operation_type),
                route_name=self.build_route_name(operation),
                handler=handler,
                description=operation.description
                or f"Proxy to {self._service_name}: {operation.id}",
            )
            methods.append(method)
            handlers[operation.id] = handler

            self._logger.debug(
                "proxy_method_generated",
                route=method.route_name,
                operation_type=operation.operation_type,
                handler="custom" if custom_handler else "default",
            )

        self._methods = methods
        self._handlers = handlers
        self._built = True
        return methods

    def build_route_name(self, operation: Operation) -> str:
        """Build the route name of an operation.

        REST operations use their path; others use the operation id with its
        first dot turned into a slash.
        """
        prefix = self._route_prefix or self._service_name

        if operation.rest is not None and operation.rest.path:
            path = operation.rest.path.removeprefix("/")
            return f"{prefix}/{path}"

        route_path = operation.id.replace(".", "/", 1)
        return f"{prefix}/{route_path}"

    def _create_default_handler(self, operation: Operation) -> ProxyHandler:
        async def handler(payload: Any = None) -> Any:
            self._logger.debug("proxying_request", operation_id=operation.id)
            try:
                return await self._dispatch(operation, payload)
            except ProxyCallError as e:
                self._logger.error("proxy_call_failed", operation_id=operation.id, error=e.message)
                raise

        return handler

    async def _dispatch(self, operation: Operation, payload: Any) -> Any:
        if self._dispatch_mode is DispatchMode.invoke:
            async with self._http_client() as client:
                return await call_invoke(
                    client, self._service_url, operation.id, payload, timeout=self._timeout
                )

        if operation.rest is not None:
            async with self._http_client() as client:
                return await call_rest(
                    client, self._service_url, operation.id, operation.rest, payload, timeout=self._timeout
                )
        if operation.graphql is not None:
            async with self._http_client() as client:
                return await call_graphql(
                    client, self._service_url, operation.id, operation.graphql, payload, timeout=self._timeout
                )
        if operation.grpc is not None:
            raise NotImplementedError("gRPC not yet implemented")
        raise UnknownProtocolError(operation.id)

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient() as client:
            yield client

    def override(self, operation_id: str, handler: ProxyHandler) -> "Proxy":
        """Replace the default handler of an operation.

        Must be called before the proxy is built.

        Args:
            operation_id: Id of the operation to override, e.g. "detect-tasks".
            handler: Custom async handler.

        Returns:
            This proxy, for chaining.

        Raises:
            ProxyAlreadyBuiltError: If methods were already generated.
        """
        if self._built:
            raise ProxyAlreadyBuiltError(self._service_name, operation_id)

        self._custom_handlers[operation_id] = handler
        self._logger.debug("custom_handler_registered", operation_id=operation_id)
        return self

    def get_methods(self) -> list[Method]:
        """Get all generated methods.

        Raises:
            NotInitializedError: If no schema is loaded.
        """
        if self._schema is None:
            raise NotInitializedError(self._service_name)
        return list(self._methods)

    def get_handler(self, operation_id: str) -> ProxyHandler | None:
        """Get the handler generated for an operation, None if unknown."""
        return self._handlers.get(operation_id)

    def get_operation_ids(self) -> list[str]:
        """Get the ids of all built operations, in schema order."""
        return list(self._handlers)

    async def call(self, operation_id: str, payload: Any = None) -> Any:
        """Call an operation directly, bypassing the routing table.

        Args:
            operation_id: Id of the operation, e.g. "users.get".
            payload: Input handed to the handler.

        Returns:
            The handler result.

        Raises:
            OperationNotFoundError: If no handler exists for the operation.
        """
        handler = self._handlers.get(operation_id)
        if handler is None:
            raise OperationNotFoundError(self._service_name, operation_id)
        return await handler(payload)

    def get_operations_by_type(self, operation_type: str) -> list[Operation]:
        """Get the schema operations of one type. Empty before a schema is loaded."""
        if self._schema is None:
            return []
        return [op for op in self._schema.operations if op.operation_type == operation_type]

    def get_schema(self) -> Schema | None:
        return self._schema

    def get_service_name(self) -> str:
        return self._service_name

    def get_service_url(self) -> str:
        return self._service_url

    def get_route_prefix(self) -> str | None:
        return self._route_prefix

    def is_initialized(self) -> bool:
        """Check if the proxy has a schema and at least one method.

        A schema without operations reports False.
        """
        return self._schema is not None and len(self._methods) > 0

    def __repr__(self) -> str:
        return f"<Proxy(service={self._service_name!r}, url={self._service_url!r}, methods={len(self._methods)})>"
