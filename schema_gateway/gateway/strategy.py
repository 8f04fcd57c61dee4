"""Serving layer: the routing table and the strategies that expose it over HTTP."""

import json
import re
from typing import Any, Iterator, Protocol

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .exceptions import RouteCollisionError, StrategyAlreadyConfiguredError
from .schemas import Method, MethodType


logger = structlog.get_logger("strategy")

# Verbs whose input travels in the query string
_QUERY_INPUT_TYPES = {MethodType.GET, MethodType.DELETE}

_COLON_PARAM_RE = re.compile(r"(?<=/):(\w+)")


class MethodsCollection:
    """Ordered routing table keyed by HTTP verb and route name.

    Two methods resolving to the same verb and route are rejected.
    """

    def __init__(self, methods: list[Method] | None = None) -> None:
        self._methods: dict[tuple[str, str], Method] = {}
        for method in methods or []:
            self.add(method)

    def add(self, method: Method) -> None:
        """Add a method.

        Raises:
            RouteCollisionError: If the verb and route are already taken.
        """
        key = (method.http_method, method.route_name)
        if key in self._methods:
            raise RouteCollisionError(route=method.route_name, http_method=method.http_method)
        self._methods[key] = method

    def __iter__(self) -> Iterator[Method]:
        return iter(list(self._methods.values()))

    def __len__(self) -> int:
        return len(self._methods)


class Strategy(Protocol):
    """Contract the gateway needs from a serving layer."""

    def configure(self, methods: MethodsCollection, version: str) -> None:
        """Mount every method of the collection."""
        ...

    def on_api_run(self) -> None:
        """Start serving the configured methods."""
        ...


def to_route_path(route_name: str) -> str:
    """Turn a route name into a FastAPI path, ``:id`` segments become ``{id}``."""
    return "/" + _COLON_PARAM_RE.sub(r"{\1}", route_name)


async def read_method_input(request: Request, method_type: MethodType) -> Any:
    """Build the handler input from an inbound request.

    GET and DELETE read query parameters, other verbs read the JSON body.
    Path parameters are merged into mapping inputs.
    """
    if method_type in _QUERY_INPUT_TYPES:
        payload: Any = dict(request.query_params)
    else:
        body = await request.body()
        if not body:
            payload = {}
        else:
            try:
                payload = json.loads(body)
            except ValueError:
                raise HTTPException(status_code=400, detail="Malformed JSON body")

    if request.path_params and isinstance(payload, dict):
        payload = {**payload, **request.path_params}
    return payload


def build_endpoint(method: Method):
    """Wrap a method handler into a FastAPI endpoint."""

    async def endpoint(request: Request) -> JSONResponse:
        payload = await read_method_input(request, method.method_type)
        result = await method.handler(payload)
        return JSONResponse(content=jsonable_encoder(result))

    return endpoint


class FastAPIStrategy:
    """Mounts methods as routes of a FastAPI application.

    The application itself is served by the ASGI server running it, so
    ``on_api_run`` only marks the routes as live.
    """

    def __init__(self, app: FastAPI | None = None, prefix: str = "") -> None:
        self.app = app or FastAPI()
        self.prefix = prefix
        self.version: str | None = None
        self.methods: MethodsCollection | None = None
        self.running = False

    @property
    def configured(self) -> bool:
        return self.methods is not None

    def configure(self, methods: MethodsCollection, version: str) -> None:
        """Mount every method on the application.

        Raises:
            StrategyAlreadyConfiguredError: If called a second time.
        """
        if self.configured:
            raise StrategyAlreadyConfiguredError()

        router = APIRouter(prefix=self.prefix, tags=["proxy"])
        for method in methods:
            router.add_api_route(
                to_route_path(method.route_name),
                build_endpoint(method),
                methods=[method.http_method],
                name=f"{method.http_method} {method.route_name}",
                description=method.description,
            )
        self.app.include_router(router)

        self.methods = methods
        self.version = version
        logger.info("strategy_configured", methods=len(methods), version=version)

    def on_api_run(self) -> None:
        if not self.configured:
            raise RuntimeError("Strategy must be configured before it runs")
        self.running = True
        logger.info("api_running", methods=len(self.methods), version=self.version)
