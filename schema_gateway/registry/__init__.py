"""Registry module - Service schemas and static service config."""

from .schemas import (
    ServiceProtocol,
    OperationType,
    ServiceDescriptor,
    RestDetail,
    GraphQLDetail,
    GrpcDetail,
    Operation,
    WebSocketEndpoint,
    Schema,
)
from .config import ServiceConfig, ServiceRegistryConfig, load_service_registry, load_schema_file


__all__ = [
    # Schemas
    "ServiceProtocol",
    "OperationType",
    "ServiceDescriptor",
    "RestDetail",
    "GraphQLDetail",
    "GrpcDetail",
    "Operation",
    "WebSocketEndpoint",
    "Schema",
    # Config
    "ServiceConfig",
    "ServiceRegistryConfig",
    "load_service_registry",
    "load_schema_file",
]
