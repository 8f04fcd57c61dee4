"""Unit tests for outbound call helpers."""

import json

import httpx
import pytest

from schema_gateway.gateway.dispatch import (
    call_graphql,
    call_rest,
    decode_body,
    expand_path,
    fetch_schema,
    send_request,
)
from schema_gateway.gateway.exceptions import (
    BackendResponseError,
    BackendTimeoutError,
    BackendUnavailableError,
    ProxyCallError,
    SchemaFetchError,
)
from schema_gateway.registry.schemas import GraphQLDetail, RestDetail


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"ok": True})


class TestExpandPath:
    """Tests for path parameter substitution."""

    def test_braces_placeholder(self):
        path, remaining = expand_path("/users/{id}", {"id": 7, "verbose": "1"})

        assert path == "/users/7"
        assert remaining == {"verbose": "1"}

    def test_colon_placeholder(self):
        path, remaining = expand_path("/jobs/:job_id/logs", {"job_id": "abc"})

        assert path == "/jobs/abc/logs"
        assert remaining == {}

    def test_missing_key_left_untouched(self):
        path, remaining = expand_path("/users/{id}", {"name": "x"})

        assert path == "/users/{id}"
        assert remaining == {"name": "x"}

    def test_value_is_url_quoted(self):
        path, _ = expand_path("/files/{name}", {"name": "a b/c"})

        assert path == "/files/a%20b%2Fc"

    def test_input_not_mutated(self):
        payload = {"id": 1}

        expand_path("/users/{id}", payload)

        assert payload == {"id": 1}

    def test_plain_path_passes_through(self):
        payload = [1, 2]

        assert expand_path("/users", payload) == ("/users", payload)


class TestDecodeBody:
    """Tests for response body decoding."""

    def test_json(self):
        assert decode_body(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_text_fallback(self):
        assert decode_body(httpx.Response(200, text="plain")) == "plain"

    def test_empty(self):
        assert decode_body(httpx.Response(204)) is None


class TestCallRest:
    """Tests for native REST dispatch."""

    @pytest.mark.asyncio
    async def test_get_sends_query_params_without_body(self, make_client):
        client, transport = make_client(_ok)

        result = await call_rest(
            client, "http://svc", "users.get", RestDetail(method="GET", path="/users"), {"id": "5"}
        )

        request = transport.requests[0]
        assert result == {"ok": True}
        assert request.method == "GET"
        assert str(request.url) == "http://svc/users?id=5"
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_get_without_input(self, make_client):
        client, transport = make_client(_ok)

        await call_rest(client, "http://svc", "users.get", RestDetail(method="get", path="/users"), None)

        assert str(transport.requests[0].url) == "http://svc/users"
        assert transport.requests[0].method == "GET"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("verb", ["POST", "PUT", "PATCH", "DELETE"])
    async def test_other_verbs_send_json_body(self, make_client, verb):
        client, transport = make_client(_ok)

        await call_rest(
            client, "http://svc", "users.write", RestDetail(method=verb, path="/users"), {"name": "Ada"}
        )

        request = transport.requests[0]
        assert request.method == verb
        assert request.url.query == b""
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_path_params_filled_from_input(self, make_client):
        client, transport = make_client(_ok)

        await call_rest(
            client, "http://svc", "users.update", RestDetail(method="PUT", path="/users/{id}"),
            {"id": 3, "name": "Ada"},
        )

        request = transport.requests[0]
        assert request.url.path == "/users/3"
        assert json.loads(request.content) == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_response_returned_verbatim(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(200, json=[{"id": 1}, {"id": 2}]))

        result = await call_rest(client, "http://svc", "users.get", RestDetail(method="GET", path="/users"), {})

        assert result == [{"id": 1}, {"id": 2}]


class TestCallGraphQL:
    """Tests for GraphQL dispatch."""

    @pytest.mark.asyncio
    async def test_posts_query_and_variables(self, make_client):
        client, transport = make_client(lambda request: httpx.Response(200, json={"data": {"books": []}}))

        result = await call_graphql(
            client, "http://svc", "books.list", GraphQLDetail(query="{ books { id } }"), {"first": 1}
        )

        request = transport.requests[0]
        assert result == {"data": {"books": []}}
        assert request.method == "POST"
        assert str(request.url) == "http://svc/graphql"
        assert json.loads(request.content) == {"query": "{ books { id } }", "variables": {"first": 1}}


class TestSendRequestErrors:
    """Tests for mapping transport failures to gateway errors."""

    @pytest.mark.asyncio
    async def test_timeout(self, make_client):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        client, _ = make_client(handler)

        with pytest.raises(BackendTimeoutError) as exc_info:
            await send_request(client, "GET", "http://svc/users", "users.get", timeout=1.5)

        assert exc_info.value.code == "BACKEND_TIMEOUT"
        assert exc_info.value.timeout_seconds == 1.5

    @pytest.mark.asyncio
    async def test_connect_error(self, make_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(handler)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await send_request(client, "GET", "http://svc/users", "users.get")

        assert exc_info.value.backend_url == "http://svc/users"
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_other_request_error(self, make_client):
        def handler(request):
            raise httpx.RemoteProtocolError("bad frame", request=request)

        client, _ = make_client(handler)

        with pytest.raises(BackendUnavailableError, match="Request failed"):
            await send_request(client, "GET", "http://svc/users", "users.get")

    @pytest.mark.asyncio
    async def test_error_status(self, make_client):
        client, _ = make_client(lambda request: httpx.Response(404, text="x" * 500))

        with pytest.raises(BackendResponseError) as exc_info:
            await send_request(client, "GET", "http://svc/users", "users.get")

        error = exc_info.value
        assert isinstance(error, ProxyCallError)
        assert error.status_code == 404
        assert len(error.detail) == 200
        assert error.message.startswith("Proxy call failed for users.get")


class TestFetchSchema:
    """Tests for schema retrieval."""

    @pytest.mark.asyncio
    async def test_fetches_schema_endpoint(self, make_client, users_schema_data):
        client, transport = make_client(lambda request: httpx.Response(200, json=users_schema_data))

        schema = await fetch_schema(client, "http://svc", service_name="users")

        assert str(transport.requests[0].url) == "http://svc/schema"
        assert schema.service.name == "users"

    @pytest.mark.asyncio
    async def test_invalid_schema_rejected(self, make_client, users_schema_data):
        users_schema_data["operations"].append({"id": "users.get"})
        client, _ = make_client(lambda request: httpx.Response(200, json=users_schema_data))

        with pytest.raises(SchemaFetchError) as exc_info:
            await fetch_schema(client, "http://svc")

        assert exc_info.value.code == "SCHEMA_FETCH_FAILED"
