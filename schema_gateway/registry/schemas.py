"""Pydantic schemas describing a backend service and its operations."""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class ServiceProtocol(str, Enum):
    """Transport a backend service declares for its operations."""

    rest = "REST"
    graphql = "GraphQL"
    grpc = "gRPC"
    mixed = "mixed"


class OperationType(str, Enum):
    """Kind of operation, GraphQL style."""

    query = "query"
    mutation = "mutation"
    subscription = "subscription"


class ServiceDescriptor(BaseModel):
    """Identifies one backend service.

    Attributes:
        name: Service name, used as the default route prefix.
        version: Service version.
        base_url: Base URL outbound calls are made against.
        protocol: Declared transport.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., description="Service name")
    version: str = Field(default="1.0.0", description="Service version")
    base_url: str = Field(..., alias="baseUrl", description="Base URL of the service")
    protocol: ServiceProtocol = Field(default=ServiceProtocol.rest, description="Declared protocol")


class RestDetail(BaseModel):
    """REST binding of an operation."""

    method: str = Field(..., description="HTTP verb")
    path: str = Field(..., description="Path relative to the service base URL")


class GraphQLDetail(BaseModel):
    """GraphQL binding of an operation."""

    query: str = Field(..., description="GraphQL document forwarded verbatim")


class GrpcDetail(BaseModel):
    """gRPC binding of an operation. Carried but never dispatched."""

    model_config = ConfigDict(extra="allow")

    service: str | None = None
    method: str | None = None


class Operation(BaseModel):
    """One named unit of backend functionality.

    At most one of ``rest``, ``graphql`` and ``grpc`` is expected to be
    populated. When several are, dispatch picks them in that order.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Dot-segmented operation id, e.g. books.list")
    # Kept as a plain string: unknown operation types are tolerated.
    operation_type: str = Field(
        default=OperationType.query.value,
        alias="operationType",
        description="query, mutation or subscription",
    )
    description: str | None = Field(default=None)
    input_schema: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("inputSchema", "input", "input_schema"),
        serialization_alias="inputSchema",
    )
    output_schema: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("outputSchema", "output", "output_schema"),
        serialization_alias="outputSchema",
    )
    rest: RestDetail | None = None
    graphql: GraphQLDetail | None = None
    grpc: GrpcDetail | None = None


class WebSocketEndpoint(BaseModel):
    """WebSocket endpoint exposed by a service."""

    model_config = ConfigDict(extra="allow")

    description: str | None = None


class Schema(BaseModel):
    """Declarative description of a backend service (aka manifest).

    Attributes:
        service: The service descriptor.
        operations: Operations in declaration order.
        websocket: Optional mapping of path pattern to WebSocket endpoint.
    """

    service: ServiceDescriptor
    operations: list[Operation] = Field(default_factory=list)
    websocket: dict[str, WebSocketEndpoint] | None = None

    @model_validator(mode="after")
    def _check_unique_operation_ids(self) -> "Schema":
        seen_ids: set[str] = set()
        for operation in self.operations:
            if operation.id in seen_ids:
                raise ValueError(f"duplicate operation id in schema: {operation.id}")
            seen_ids.add(operation.id)
        return self

    def with_base_url(self, base_url: str) -> "Schema":
        """Return a copy of this schema pointing at another base URL."""
        service = self.service.model_copy(update={"base_url": base_url})
        return self.model_copy(update={"service": service})
