"""Global dependencies for the application."""

from starlette.requests import HTTPConnection

from schema_gateway.gateway.api_gateway import ApiGateway


async def get_gateway(connection: HTTPConnection) -> ApiGateway:
    """Dependency to get the running ApiGateway.

    The gateway is built in main.py lifespan, sharing the global HTTP
    client across proxies to enable connection pooling (keep-alive). Works
    for both HTTP requests and WebSocket connections.

    Args:
        connection: The request or WebSocket connection.

    Returns:
        The ApiGateway instance.
    """
    return connection.app.state.gateway
