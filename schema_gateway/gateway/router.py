"""FastAPI routers for gateway introspection and WebSocket proxying."""

from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket

from schema_gateway.dependencies import get_gateway

from .api_gateway import ApiGateway
from .schemas import RouteInfo, RouteListResponse
from .strategy import to_route_path


router = APIRouter(prefix="/gateway", tags=["gateway"])
websocket_router = APIRouter(tags=["websocket"])


@router.get("/routes", response_model=RouteListResponse)
async def list_routes(
    gateway: Annotated[ApiGateway, Depends(get_gateway)],
) -> RouteListResponse:
    """List the routes the gateway serves.

    Returns:
        RouteListResponse with HTTP routes in registration order and the
        WebSocket route table.
    """
    routes = [
        RouteInfo(
            method=method.http_method,
            route=to_route_path(method.route_name),
            description=method.description,
        )
        for method in gateway.get_methods()
    ]
    return RouteListResponse(
        routes=routes,
        websocket_routes=gateway.websocket_proxy.get_routes(),
        count=len(routes),
    )


@websocket_router.websocket("/{path:path}")
async def websocket_proxy_endpoint(
    websocket: WebSocket,
    gateway: Annotated[ApiGateway, Depends(get_gateway)],
) -> None:
    """Proxy a WebSocket connection to the backend declaring its path."""
    await gateway.websocket_proxy.handle_connection(websocket)
