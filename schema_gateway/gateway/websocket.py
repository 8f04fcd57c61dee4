"""WebSocket connection proxying.

Routes inbound WebSocket connections to backend services by matching the
request path against the endpoints declared in service schemas, then relays
frames in both directions until either side closes.
"""

import asyncio
import re
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog
import websockets
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed, WebSocketException

from schema_gateway.registry.schemas import Schema
from .exceptions import RouteNotFoundError


logger = structlog.get_logger("websocket_proxy")

# Close codes sent to the client
CLOSE_ROUTE_NOT_FOUND = 1008
CLOSE_BACKEND_ERROR = 1011
CLOSE_NORMAL = 1000

# Codes that are reported locally but never sent on the wire
_NO_STATUS_RECEIVED = 1005
_ABNORMAL_CLOSURE = 1006

# Codes a peer may put in a close frame (RFC 6455 section 7.4)
_SENDABLE_CLOSE_CODES = frozenset({1000, 1001, 1002, 1003, 1007, 1008, 1009, 1010, 1011, 1012, 1013, 1014})

BackendConnector = Callable[[str], Awaitable[Any]]


class RelayState(str, Enum):
    """States of one proxied connection."""

    matching = "matching"
    connecting = "connecting"
    relaying = "relaying"
    closed = "closed"


def is_sendable_close_code(code: int | None) -> bool:
    """Check if a close code may be sent on the wire."""
    if code is None:
        return False
    return code in _SENDABLE_CLOSE_CODES or 3000 <= code <= 4999


def matches_pattern(path: str, pattern: str) -> bool:
    """Check if a path matches a route pattern.

    Pattern segments starting with ``:`` match any value, e.g.
    ``/api/jobs/:id/logs`` matches ``/api/jobs/123/logs``.
    """
    path_parts = [part for part in path.split("/") if part]
    pattern_parts = [part for part in pattern.split("/") if part]

    if len(path_parts) != len(pattern_parts):
        return False

    for pattern_part, path_part in zip(pattern_parts, path_parts):
        if pattern_part.startswith(":"):
            continue
        if pattern_part != path_part:
            return False

    return True


def build_backend_url(backend_url: str, request_path: str, query: str = "") -> str:
    """Build the backend WebSocket URL for an inbound path.

    Converts http:// to ws:// and https:// to wss://, and strips the gateway
    prefix segment: ``/content/api/jobs/1/logs`` becomes ``/api/jobs/1/logs``.
    """
    scheme = "wss" if backend_url.startswith("https") else "ws"
    base_url = re.sub(r"^https?", scheme, backend_url).rstrip("/")

    path_parts = [part for part in request_path.split("/") if part]
    backend_path = "/" + "/".join(path_parts[1:])

    url = f"{base_url}{backend_path}"
    if query:
        url = f"{url}?{query}"
    return url


class WebSocketRelay:
    """Relays frames between one client socket and one backend socket.

    Attributes:
        state: Current state of the connection.
        backend_url: Backend WebSocket URL.
    """

    def __init__(self, client: WebSocket, connect: BackendConnector) -> None:
        self.client = client
        self.backend_url: str | None = None
        self.state = RelayState.matching
        self._connect = connect

    async def reject(self, code: int, reason: str) -> RelayState:
        """Close the client without ever reaching the backend."""
        await self.close_client(code, reason)
        self.state = RelayState.closed
        return self.state

    async def run(self, backend_url: str) -> RelayState:
        """Connect to the backend and relay until either side closes."""
        self.backend_url = backend_url
        self.state = RelayState.connecting
        try:
            backend = await self._connect(self.backend_url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.error("backend_connect_failed", backend_url=backend_url, error=str(e))
            return await self.reject(CLOSE_BACKEND_ERROR, "Backend error")

        logger.debug("backend_connected", backend_url=self.backend_url)
        self.state = RelayState.relaying

        client_task = asyncio.create_task(self._client_to_backend(backend))
        backend_task = asyncio.create_task(self._backend_to_client(backend))
        try:
            done, pending = await asyncio.wait(
                {client_task, backend_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending)
            for task in done:
                task.result()
        finally:
            await backend.close()
            self.state = RelayState.closed

        return self.state

    async def _client_to_backend(self, backend: Any) -> None:
        while True:
            try:
                message = await self.client.receive()
            except RuntimeError as e:
                logger.error("client_websocket_error", error=str(e))
                await backend.close(code=CLOSE_BACKEND_ERROR, reason="Client error")
                return

            if message["type"] == "websocket.disconnect":
                logger.debug(
                    "client_websocket_closed",
                    code=message.get("code"),
                    reason=message.get("reason"),
                )
                code = message.get("code")
                if is_sendable_close_code(code):
                    await backend.close(code=code, reason=message.get("reason") or "")
                else:
                    await backend.close()
                return

            data = message.get("bytes")
            if data is None:
                data = message.get("text")
            if data is None:
                continue

            try:
                await backend.send(data)
            except ConnectionClosed:
                # The backend reader reports the close
                return

    async def _backend_to_client(self, backend: Any) -> None:
        try:
            async for data in backend:
                if isinstance(data, bytes):
                    await self.client.send_bytes(data)
                else:
                    await self.client.send_text(data)
        except ConnectionClosed:
            pass
        except (WebSocketDisconnect, RuntimeError):
            # Client went away; its reader reports the close
            return

        code = backend.close_code
        reason = backend.close_reason or ""
        logger.debug("backend_websocket_closed", code=code, reason=reason)

        if code is None or code == _ABNORMAL_CLOSURE:
            logger.error("backend_websocket_error", backend_url=self.backend_url, code=code)
            await self.close_client(CLOSE_BACKEND_ERROR, "Backend error")
        elif code == _NO_STATUS_RECEIVED:
            await self.close_client(CLOSE_NORMAL, "")
        else:
            await self.close_client(code, reason)

    async def close_client(self, code: int, reason: str) -> None:
        """Close the client socket unless either side already closed it."""
        if (
            self.client.client_state != WebSocketState.CONNECTED
            or self.client.application_state != WebSocketState.CONNECTED
        ):
            return
        try:
            await self.client.close(code=code, reason=reason)
        except RuntimeError as e:
            logger.debug("client_close_failed", error=str(e))


class WebSocketProxy:
    """Routes WebSocket connections from clients to backend services.

    Routes map ``/{prefix}{pattern}`` to the backend base URL of the service
    declaring the pattern.
    """

    def __init__(self, connect: BackendConnector | None = None) -> None:
        """Initialize the proxy.

        Args:
            connect: Opens a backend connection for a URL. Defaults to
                ``websockets.connect``.
        """
        self._routes: dict[str, str] = {}
        self._connect = connect or websockets.connect

    def register_schema(self, schema: Schema, route_prefix: str | None = None) -> None:
        """Register the WebSocket routes declared by a service schema.

        Args:
            schema: Service schema.
            route_prefix: Optional route prefix, overrides the service name.
        """
        if not schema.websocket:
            logger.debug("no_websocket_endpoints", service=schema.service.name)
            return

        prefix = route_prefix or schema.service.name
        for path in schema.websocket:
            full_path = f"/{prefix}{path}"
            self._routes[full_path] = schema.service.base_url
            logger.info("websocket_route_registered", route=full_path, backend_url=schema.service.base_url)

    def find_route(self, path: str) -> str:
        """Find the backend base URL for a request path.

        Exact matches win, then patterns are tried in registration order.

        Raises:
            RouteNotFoundError: If no route matches.
        """
        if path in self._routes:
            return self._routes[path]

        for route_path, backend_url in self._routes.items():
            if matches_pattern(path, route_path):
                return backend_url

        raise RouteNotFoundError(path)

    async def handle_connection(self, websocket: WebSocket) -> RelayState:
        """Proxy one inbound WebSocket connection.

        Args:
            websocket: The client connection, not yet accepted.

        Returns:
            The final state of the connection.
        """
        path = websocket.url.path
        logger.debug("websocket_connection_attempt", path=path)
        await websocket.accept()

        relay = WebSocketRelay(websocket, self._connect)
        try:
            backend_base_url = self.find_route(path)
        except RouteNotFoundError:
            logger.warning("websocket_route_not_found", path=path)
            return await relay.reject(CLOSE_ROUTE_NOT_FOUND, "Route not found")

        backend_url = build_backend_url(backend_base_url, path, websocket.url.query)
        logger.info("proxying_websocket", path=path, backend_url=backend_url)

        return await relay.run(backend_url)

    def get_routes(self) -> dict[str, str]:
        """Get all registered routes."""
        return dict(self._routes)
