"""Custom exceptions for the proxy engine."""

from schema_gateway.exceptions import SchemaGatewayError


class GatewayError(SchemaGatewayError):
    """Base exception for gateway-specific errors."""
    pass


class SchemaFetchError(GatewayError):
    """Raised when a service schema cannot be fetched or parsed.

    Attributes:
        schema_url: URL the schema was fetched from.
        service_name: Name of the service, when known.
        reason: Description of the underlying failure.
    """

    def __init__(self, schema_url: str, reason: str, service_name: str | None = None):
        service = f" for service '{service_name}'" if service_name else ""
        super().__init__(
            message=f"Failed to fetch schema{service} from '{schema_url}': {reason}",
            code="SCHEMA_FETCH_FAILED"
        )
        self.schema_url = schema_url
        self.service_name = service_name
        self.reason = reason


class NotInitializedError(GatewayError):
    """Raised when methods are requested before a schema is loaded.

    Attributes:
        service_name: Name of the uninitialized service.
    """

    def __init__(self, service_name: str):
        super().__init__(
            message=f"Schema for service '{service_name}' not loaded. Call initialize() first.",
            code="NOT_INITIALIZED"
        )
        self.service_name = service_name


class UnknownProtocolError(GatewayError):
    """Raised when an operation carries no recognized protocol binding.

    Attributes:
        operation_id: Id of the operation.
    """

    def __init__(self, operation_id: str):
        super().__init__(
            message=f"Unknown protocol for operation {operation_id}",
            code="UNKNOWN_PROTOCOL"
        )
        self.operation_id = operation_id


class ProxyCallError(GatewayError):
    """Raised when an outbound call to a backend fails.

    Attributes:
        operation_id: Id of the proxied operation.
        reason: Upstream failure message.
    """

    def __init__(self, operation_id: str, reason: str, code: str = "PROXY_CALL_FAILED"):
        super().__init__(
            message=f"Proxy call failed for {operation_id}: {reason}",
            code=code
        )
        self.operation_id = operation_id
        self.reason = reason


class BackendTimeoutError(ProxyCallError):
    """Raised when a backend doesn't respond in time.

    Attributes:
        backend_url: URL of the backend that timed out.
        timeout_seconds: Timeout duration that was exceeded.
    """

    def __init__(self, operation_id: str, backend_url: str, timeout_seconds: float | None):
        super().__init__(
            operation_id,
            reason=f"backend at '{backend_url}' timed out after {timeout_seconds}s",
            code="BACKEND_TIMEOUT"
        )
        self.backend_url = backend_url
        self.timeout_seconds = timeout_seconds


class BackendUnavailableError(ProxyCallError):
    """Raised when a backend is unreachable.

    Attributes:
        backend_url: URL of the unreachable backend.
    """

    def __init__(self, operation_id: str, backend_url: str, reason: str = "Connection failed"):
        super().__init__(
            operation_id,
            reason=f"backend at '{backend_url}' is unavailable: {reason}",
            code="BACKEND_UNAVAILABLE"
        )
        self.backend_url = backend_url


class BackendResponseError(ProxyCallError):
    """Raised when a backend answers with an error status.

    Attributes:
        backend_url: URL of the backend that returned an error.
        status_code: HTTP status code from backend.
        detail: Error detail from backend response.
    """

    def __init__(self, operation_id: str, backend_url: str, status_code: int, detail: str = ""):
        super().__init__(
            operation_id,
            reason=f"backend at '{backend_url}' returned error {status_code}: {detail}",
            code="BACKEND_ERROR"
        )
        self.backend_url = backend_url
        self.status_code = status_code
        self.detail = detail


class ProxyAlreadyBuiltError(GatewayError):
    """Raised when an override is registered after methods were generated."""

    def __init__(self, service_name: str, operation_id: str):
        super().__init__(
            message=(
                f"Cannot override '{operation_id}': proxy for '{service_name}' is already built. "
                "Register overrides before initialize() or pass them to from_schema()."
            ),
            code="PROXY_ALREADY_BUILT"
        )
        self.service_name = service_name
        self.operation_id = operation_id


class RouteCollisionError(GatewayError):
    """Raised when two methods resolve to the same verb and route.

    Attributes:
        route: The contested route name.
        http_method: HTTP verb both methods map to.
    """

    def __init__(self, route: str, http_method: str):
        super().__init__(
            message=f"Route collision: {http_method} /{route} is already registered",
            code="ROUTE_COLLISION"
        )
        self.route = route
        self.http_method = http_method


class RouteNotFoundError(GatewayError):
    """Raised when no WebSocket route matches a path.

    Attributes:
        path: The unmatched request path.
    """

    def __init__(self, path: str):
        super().__init__(
            message=f"No WebSocket route found for path '{path}'",
            code="ROUTE_NOT_FOUND"
        )
        self.path = path


class StrategyAlreadyConfiguredError(GatewayError):
    """Raised when a serving strategy is configured a second time."""

    def __init__(self):
        super().__init__(
            message="Serving strategy is already configured",
            code="STRATEGY_ALREADY_CONFIGURED"
        )


class OperationNotFoundError(GatewayError):
    """Raised when a proxy is asked to call an operation it does not know.

    Attributes:
        service_name: Name of the service.
        operation_id: The unknown operation id.
    """

    def __init__(self, service_name: str, operation_id: str):
        super().__init__(
            message=f"Operation {operation_id} not found",
            code="OPERATION_NOT_FOUND"
        )
        self.service_name = service_name
        self.operation_id = operation_id
