"""HTTP client helpers for forwarding operation calls to backend services."""

import re
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from schema_gateway.registry.schemas import GraphQLDetail, RestDetail, Schema
from .exceptions import (
    SchemaFetchError,
    BackendTimeoutError,
    BackendUnavailableError,
    BackendResponseError,
)


# Default timeout for backend requests
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_SCHEMA_TIMEOUT_SECONDS = 10.0

JSON_HEADERS = {"Content-Type": "application/json"}

# Matches "{id}" anywhere and ":id" right after a slash
_PATH_PARAM_RE = re.compile(r"\{(\w+)\}|(?<=/):(\w+)")

logger = structlog.get_logger("dispatch")


def expand_path(path: str, payload: Any) -> tuple[str, Any]:
    """Fill path parameters of a REST path from the call input.

    Placeholders without a matching input key are left untouched. Keys used
    for substitution are removed from the returned input.

    Args:
        path: REST path, e.g. ``/users/{id}`` or ``/users/:id``.
        payload: Call input.

    Returns:
        Tuple of the expanded path and the remaining input.
    """
    if not isinstance(payload, dict) or not _PATH_PARAM_RE.search(path):
        return path, payload

    remaining = dict(payload)

    def _substitute(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        if name not in remaining:
            return match.group(0)
        return quote(str(remaining.pop(name)), safe="")

    return _PATH_PARAM_RE.sub(_substitute, path), remaining


def decode_body(response: httpx.Response) -> Any:
    """Decode a backend response body: JSON if possible, text otherwise."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


async def send_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    operation_id: str,
    params: Any = None,
    json: Any = None,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Send one outbound request and return the decoded response body.

    Args:
        client: HTTP client.
        method: HTTP verb.
        url: Absolute backend URL.
        operation_id: Operation the call belongs to, for error context.
        params: Query parameters.
        json: JSON body.
        timeout: Request timeout in seconds, None for no deadline.

    Returns:
        Decoded response body.

    Raises:
        BackendTimeoutError: If backend doesn't respond in time.
        BackendUnavailableError: If backend connection fails.
        BackendResponseError: If backend returns HTTP error status.
    """
    try:
        response = await client.request(
            method,
            url,
            params=params,
            json=json,
            headers=JSON_HEADERS,
            timeout=timeout,
        )
    except httpx.TimeoutException:
        raise BackendTimeoutError(
            operation_id=operation_id,
            backend_url=url,
            timeout_seconds=timeout
        )
    except httpx.ConnectError as e:
        raise BackendUnavailableError(
            operation_id=operation_id,
            backend_url=url,
            reason=str(e)
        )
    except httpx.RequestError as e:
        raise BackendUnavailableError(
            operation_id=operation_id,
            backend_url=url,
            reason=f"Request failed: {e}"
        )

    if response.status_code >= 400:
        raise BackendResponseError(
            operation_id=operation_id,
            backend_url=url,
            status_code=response.status_code,
            detail=response.text[:200]  # Truncate for safety
        )

    return decode_body(response)


async def call_rest(
    client: httpx.AsyncClient,
    service_url: str,
    operation_id: str,
    rest: RestDetail,
    payload: Any,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Call a native REST endpoint.

    GET sends the input as query parameters, every other verb as JSON body.
    """
    path, payload = expand_path(rest.path, payload)
    url = f"{service_url}{path}"
    method = rest.method.upper()

    logger.debug("calling_rest", operation_id=operation_id, method=method, url=url)

    if method == "GET":
        return await send_request(
            client, method, url, operation_id, params=payload or None, timeout=timeout
        )
    return await send_request(client, method, url, operation_id, json=payload, timeout=timeout)


async def call_graphql(
    client: httpx.AsyncClient,
    service_url: str,
    operation_id: str,
    graphql: GraphQLDetail,
    payload: Any,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Forward a GraphQL document with the input as variables.

    The full ``{data, errors}`` body is returned as-is.
    """
    url = f"{service_url}/graphql"

    logger.debug("calling_graphql", operation_id=operation_id, url=url)

    return await send_request(
        client,
        "POST",
        url,
        operation_id,
        json={"query": graphql.query, "variables": payload},
        timeout=timeout,
    )


async def call_invoke(
    client: httpx.AsyncClient,
    service_url: str,
    operation_id: str,
    payload: Any,
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Forward a call through the backend's generic invoke endpoint."""
    url = f"{service_url}/internal/invoke"

    logger.debug("calling_invoke", operation_id=operation_id, url=url)

    return await send_request(
        client,
        "POST",
        url,
        operation_id,
        json={"operationId": operation_id, "input": payload},
        timeout=timeout,
    )


async def fetch_schema(
    client: httpx.AsyncClient,
    service_url: str,
    service_name: str | None = None,
    timeout: float | None = DEFAULT_SCHEMA_TIMEOUT_SECONDS,
) -> Schema:
    """Fetch and parse ``GET {service_url}/schema``.

    Args:
        client: HTTP client.
        service_url: Base URL of the service.
        service_name: Service name for error context.
        timeout: Request timeout in seconds.

    Returns:
        The parsed Schema.

    Raises:
        SchemaFetchError: On transport failure, non-2xx status or a body
            that is not a valid schema.
    """
    schema_url = f"{service_url}/schema"

    try:
        response = await client.get(schema_url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.error("schema_fetch_failed", schema_url=schema_url, service=service_name, error=str(e))
        raise SchemaFetchError(schema_url, str(e) or e.__class__.__name__, service_name) from e

    if not response.is_success:
        logger.error("schema_fetch_failed", schema_url=schema_url, service=service_name, status_code=response.status_code)
        raise SchemaFetchError(schema_url, f"status {response.status_code}", service_name)

    try:
        return Schema.model_validate(response.json())
    except ValueError as e:
        logger.error("schema_fetch_failed", schema_url=schema_url, service=service_name, error=str(e))
        raise SchemaFetchError(schema_url, f"malformed schema body: {e}", service_name) from e
