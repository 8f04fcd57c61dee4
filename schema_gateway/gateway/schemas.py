"""Routing table types produced by the proxy engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from schema_gateway.registry.schemas import OperationType


# Handler function that processes input and returns the result
ProxyHandler = Callable[[Any], Awaitable[Any]]


class MethodType(str, Enum):
    """Verb of a routing table entry."""

    GET = "GET"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @property
    def http_method(self) -> str:
        """HTTP verb the entry is served under."""
        return _HTTP_METHODS[self]


_HTTP_METHODS = {
    MethodType.GET: "GET",
    MethodType.CREATE: "POST",
    MethodType.UPDATE: "PUT",
    MethodType.DELETE: "DELETE",
}

# Subscriptions have no upgrade path through the routing table and are
# served as plain GET.
OPERATION_METHOD_TYPES = {
    OperationType.query.value: MethodType.GET,
    OperationType.mutation.value: MethodType.CREATE,
    OperationType.subscription.value: MethodType.GET,
}


def method_type_for(operation_type: str) -> MethodType:
    """Map an operation type to a method type. Unknown types map to GET."""
    return OPERATION_METHOD_TYPES.get(operation_type, MethodType.GET)


class DispatchMode(str, Enum):
    """How default handlers reach the backend.

    Attributes:
        protocol: Call the native REST or GraphQL endpoint the schema declares.
        invoke: Deprecated. POST every call to ``/internal/invoke``.
    """

    protocol = "protocol"
    invoke = "invoke"


@dataclass(frozen=True)
class Method:
    """Routing table entry synthesized from one operation.

    Attributes:
        method_type: Verb the entry is served under.
        route_name: Route without leading slash, e.g. ``users/users``.
        handler: Async callable receiving the request input.
        description: Human-readable description.
    """

    method_type: MethodType
    route_name: str
    handler: ProxyHandler
    description: str

    @property
    def http_method(self) -> str:
        return self.method_type.http_method


class RouteInfo(BaseModel):
    """API response schema for one routing table entry.

    Attributes:
        method: HTTP verb.
        route: Route path.
        description: Human-readable description.
    """

    method: str = Field(..., description="HTTP verb")
    route: str = Field(..., description="Route path")
    description: str = Field(..., description="Human-readable description")


class RouteListResponse(BaseModel):
    """API response schema for the gateway routing table.

    Attributes:
        routes: HTTP routes served by the gateway.
        websocket_routes: WebSocket route patterns and their backends.
        count: Number of HTTP routes.
    """

    routes: list[RouteInfo] = Field(default_factory=list, description="HTTP routes")
    websocket_routes: dict[str, str] = Field(default_factory=dict, description="WebSocket routes")
    count: int = Field(..., description="Number of HTTP routes")
