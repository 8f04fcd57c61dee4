"""Gateway module - proxy construction, dispatch and aggregation."""

from .schemas import (
    ProxyHandler,
    MethodType,
    DispatchMode,
    Method,
    method_type_for,
)
from .exceptions import (
    GatewayError,
    SchemaFetchError,
    NotInitializedError,
    OperationNotFoundError,
    UnknownProtocolError,
    ProxyCallError,
    BackendTimeoutError,
    BackendUnavailableError,
    BackendResponseError,
    ProxyAlreadyBuiltError,
    RouteCollisionError,
    RouteNotFoundError,
    StrategyAlreadyConfiguredError,
)
from .proxy import Proxy
from .strategy import MethodsCollection, Strategy, FastAPIStrategy
from .proxy_api import ProxyApi
from .api_gateway import ApiGateway
from .websocket import WebSocketProxy, WebSocketRelay, RelayState


__all__ = [
    # Schemas
    "ProxyHandler",
    "MethodType",
    "DispatchMode",
    "Method",
    "method_type_for",
    # Exceptions
    "GatewayError",
    "SchemaFetchError",
    "NotInitializedError",
    "OperationNotFoundError",
    "UnknownProtocolError",
    "ProxyCallError",
    "BackendTimeoutError",
    "BackendUnavailableError",
    "BackendResponseError",
    "ProxyAlreadyBuiltError",
    "RouteCollisionError",
    "RouteNotFoundError",
    "StrategyAlreadyConfiguredError",
    # Proxies
    "Proxy",
    "ProxyApi",
    "ApiGateway",
    "WebSocketProxy",
    "WebSocketRelay",
    "RelayState",
    # Serving layer
    "MethodsCollection",
    "Strategy",
    "FastAPIStrategy",
]
