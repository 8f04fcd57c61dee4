"""Unit tests for ApiGateway."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from schema_gateway.gateway.api_gateway import ApiGateway
from schema_gateway.gateway.exceptions import RouteCollisionError, SchemaFetchError
from schema_gateway.gateway.proxy_api import ProxyApi
from schema_gateway.registry.schemas import Schema


def _schema(name: str, *operation_ids: str, base_url: str = "http://localhost:3001") -> Schema:
    return Schema.model_validate({
        "service": {"name": name, "baseUrl": base_url},
        "operations": [{"id": op_id} for op_id in operation_ids],
    })


@pytest.fixture
def strategy():
    return MagicMock()


class TestCreateProxyApi:
    """Tests for ProxyApi creation."""

    def test_without_schema_is_empty(self, strategy):
        gateway = ApiGateway(strategy)

        proxy_api = gateway.create_proxy_api()

        assert isinstance(proxy_api, ProxyApi)
        assert proxy_api.get_proxies() == []
        assert proxy_api.get_strategy() is strategy
        assert gateway.get_apis() == [proxy_api]

    def test_with_schema_holds_built_proxy(self, strategy):
        gateway = ApiGateway(strategy)

        proxy_api = gateway.create_proxy_api(_schema("users", "users.get"), route_prefix="people")

        proxy = proxy_api.get_proxy("users")
        assert proxy.is_initialized()
        assert proxy.get_methods()[0].route_name == "people/users/get"

    def test_overrides_applied(self, strategy):
        custom = AsyncMock()
        gateway = ApiGateway(strategy)

        proxy_api = gateway.create_proxy_api(_schema("svc", "detect-tasks"), overrides={"detect-tasks": custom})

        assert proxy_api.get_proxy("svc").get_methods()[0].handler is custom

    def test_create_proxy_with_schema_uses_given_url(self, strategy):
        gateway = ApiGateway(strategy)

        proxy = gateway.create_proxy("llm", "http://llm:9000", schema=_schema("llm-service", "llm.chat"))

        assert proxy.get_service_url() == "http://llm:9000"
        assert proxy.get_methods()[0].route_name == "llm/llm/chat"


class TestFetchSchema:
    """Tests for ApiGateway.fetch_schema."""

    @pytest.mark.asyncio
    async def test_base_url_replaced_by_fetch_url(self, strategy, make_client):
        client, transport = make_client(lambda request: httpx.Response(
            200, json=_schema("users", "users.get", base_url="http://internal:1").model_dump(mode="json", by_alias=True)
        ))
        gateway = ApiGateway(strategy, client=client)

        proxy_api = await gateway.fetch_schema("http://public:3001/")

        assert str(transport.requests[0].url) == "http://public:3001/schema"
        proxy = proxy_api.get_proxy("users")
        assert proxy.get_service_url() == "http://public:3001"
        assert proxy.get_schema().service.base_url == "http://public:3001"
        assert gateway.get_apis() == [proxy_api]

    @pytest.mark.asyncio
    async def test_failure_raises(self, strategy, make_client):
        client, _ = make_client(lambda request: httpx.Response(404))
        gateway = ApiGateway(strategy, client=client)

        with pytest.raises(SchemaFetchError):
            await gateway.fetch_schema("http://public:3001")

        assert gateway.get_apis() == []


class TestInitialize:
    """Tests for ApiGateway.initialize."""

    @pytest.mark.asyncio
    async def test_initializes_every_proxy_api(self, strategy, make_client, users_schema_data):
        client, transport = make_client(lambda request: httpx.Response(200, json=users_schema_data))
        gateway = ApiGateway(strategy, client=client)
        first = gateway.create_proxy_api(_schema("a", "x.one"))
        second = gateway.create_proxy_api().add_proxy(gateway.create_proxy("users", "http://localhost:3001"))

        await gateway.initialize()

        assert first.is_initialized() and second.is_initialized()
        assert len(transport.requests) == 1
        strategy.configure.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_failing_proxy_api_rejects(self, strategy, make_client):
        client, _ = make_client(lambda request: httpx.Response(503))
        gateway = ApiGateway(strategy, client=client)
        healthy = gateway.create_proxy_api(_schema("a", "x.one"))
        broken = gateway.create_proxy_api().add_proxy(gateway.create_proxy("b", "http://b"))

        with pytest.raises(SchemaFetchError) as exc_info:
            await gateway.initialize()

        assert exc_info.value.service_name == "b"
        assert broken.is_initialized() is False
        assert healthy.get_proxy("a").is_initialized()


class TestRun:
    """Tests for ApiGateway.run."""

    @pytest.mark.asyncio
    async def test_configures_strategy_once_with_merged_methods(self, strategy):
        gateway = ApiGateway(strategy, version="3.0.0")
        gateway.create_proxy_api(_schema("a", "x.one"))
        gateway.create_proxy_api(_schema("b", "y.one", "y.two"))

        await gateway.run()

        strategy.configure.assert_called_once()
        methods, version = strategy.configure.call_args.args
        assert [m.route_name for m in methods] == ["a/x/one", "b/y/one", "b/y/two"]
        assert version == "3.0.0"
        strategy.on_api_run.assert_called_once_with()
        assert [m.route_name for m in gateway.get_methods()] == ["a/x/one", "b/y/one", "b/y/two"]

    @pytest.mark.asyncio
    async def test_any_failure_stops_startup(self, strategy, make_client):
        client, _ = make_client(lambda request: httpx.Response(500))
        gateway = ApiGateway(strategy, client=client)
        gateway.create_proxy_api(_schema("a", "x.one"))
        gateway.create_proxy_api().add_proxy(gateway.create_proxy("b", "http://b"))

        with pytest.raises(SchemaFetchError):
            await gateway.run()

        strategy.configure.assert_not_called()

    @pytest.mark.asyncio
    async def test_cross_service_collision_rejected(self, strategy):
        gateway = ApiGateway(strategy)
        gateway.create_proxy_api(_schema("svc", "a.b"))
        gateway.create_proxy_api(_schema("svc", "a.b", base_url="http://other"))

        with pytest.raises(RouteCollisionError):
            await gateway.run()

        strategy.configure.assert_not_called()

    @pytest.mark.asyncio
    async def test_websocket_routes_registered(self, strategy, users_schema):
        gateway = ApiGateway(strategy)
        gateway.create_proxy_api(users_schema, route_prefix="people")

        await gateway.run()

        assert gateway.websocket_proxy.get_routes() == {
            "/people/api/jobs/:id/logs": "http://localhost:3001",
        }

    def test_methods_empty_before_run(self, strategy):
        assert ApiGateway(strategy).get_methods() == []
