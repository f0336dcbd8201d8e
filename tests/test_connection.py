"""
Tests for sap_b1sl.core.connection (the ServiceLayer client).
"""

import asyncio
from datetime import timedelta

import pytest
import requests

from sap_b1sl import (
    AuthenticationError,
    ErrorKind,
    NotAuthenticatedError,
    Ok,
    RequestOptions,
    ServiceLayer,
    ServiceLayerUpstreamError,
)

from conftest import T0, login_response, make_response


def logged_in(config, clock):
    sl = ServiceLayer(clock=clock)
    asyncio.run(sl.create_session(config))
    return sl


def request_urls(transport):
    return [c.kwargs["url"] for c in transport.request.call_args_list]


class TestSessionLifecycle:
    """Tests for create_session / ensure_valid_session through the client."""

    def test_create_session(self, transport, config, clock):
        sl = logged_in(config, clock)
        assert sl.is_authenticated
        assert sl.session.token == "sess-1"
        assert sl.session.expires_at == T0 + timedelta(minutes=29)
        assert sl.config.base_url == "https://b1.test:50000/b1s/v2/"

    def test_create_session_merges_over_stored_config(self, transport, config, clock):
        sl = logged_in(config, clock)
        asyncio.run(sl.create_session({"company": "OTHERDB"}))
        assert sl.config.company == "OTHERDB"
        assert sl.config.username == "manager"
        assert transport.headers["Cookie"] == "B1SESSION=sess-1;CompanyDB=OTHERDB"

    def test_create_session_failure_raises(self, transport, config, clock):
        transport.post.return_value = make_response(401, {"error": {"code": "-1", "message": "Login failed"}})
        sl = ServiceLayer(clock=clock)
        with pytest.raises(AuthenticationError):
            asyncio.run(sl.create_session(config))
        assert not sl.is_authenticated

    def test_operation_before_login_raises(self, transport, clock):
        sl = ServiceLayer(clock=clock)
        with pytest.raises(NotAuthenticatedError):
            asyncio.run(sl.get("Orders(1)"))
        transport.request.assert_not_called()

    def test_expiry_scenario(self, transport, config, clock):
        transport.request.return_value = make_response(200, {"DocEntry": 1})
        sl = logged_in(config, clock)
        assert sl.session.expires_at == T0 + timedelta(minutes=29)

        clock.advance(28)
        asyncio.run(sl.get("Orders(1)"))
        assert transport.post.call_count == 1

        clock.advance(2)
        transport.post.return_value = login_response("sess-2")
        asyncio.run(sl.get("Orders(1)"))
        assert transport.post.call_count == 2
        assert sl.session.token == "sess-2"
        assert sl.session.created_at == T0 + timedelta(minutes=30)
        assert sl.session.expires_at == T0 + timedelta(minutes=59)

    def test_relogin_failure_is_raised_not_normalized(self, transport, config, clock):
        sl = logged_in(config, clock)
        clock.advance(30)
        transport.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(AuthenticationError):
            asyncio.run(sl.get("Orders(1)"))

    def test_constructor_config_host_normalized(self, transport, clock):
        sl = ServiceLayer({"host": "https://b1.test/", "port": 50000}, clock=clock)
        asyncio.run(sl.create_session())
        assert sl.config.base_url == "https://b1.test:50000/b1s/v2/"
        assert transport.post.call_args.args[0] == "https://b1.test:50000/b1s/v2/Login"

    def test_instances_are_independent(self, transport, config, clock):
        first = logged_in(config, clock)
        second = ServiceLayer(clock=clock)
        assert first.is_authenticated
        assert not second.is_authenticated
        assert second.config.host == "http://localhost"

    def test_async_context_manager_logs_out(self, transport, config, clock):
        async def scenario():
            async with ServiceLayer(config, clock=clock) as sl:
                await sl.create_session()
            return sl

        sl = asyncio.run(scenario())
        assert transport.post.call_args.args[0] == "https://b1.test:50000/b1s/v2/Logout"
        assert not sl.is_authenticated


class TestNormalizedVerbs:
    """Tests for get / put / patch / post."""

    def test_get_returns_ok(self, transport, config, clock):
        transport.request.return_value = make_response(200, {"DocEntry": 10})
        sl = logged_in(config, clock)
        res = asyncio.run(sl.get("Orders(10)"))
        assert res == Ok({"DocEntry": 10})
        assert res.error is False
        assert request_urls(transport) == ["https://b1.test:50000/b1s/v2/Orders(10)"]

    def test_405_is_success(self, transport, config, clock):
        transport.request.return_value = make_response(405, {"detail": "ok"})
        sl = logged_in(config, clock)
        res = asyncio.run(sl.get("Orders(10)"))
        assert res.error is False
        assert res.value == {"detail": "ok"}

    def test_server_error(self, transport, config, clock):
        body = {"error": {"code": "-2028", "message": "No matching records found (ODBC -2028)"}}
        transport.request.return_value = make_response(404, body)
        sl = logged_in(config, clock)
        res = asyncio.run(sl.get("Orders(999)"))
        assert res.kind is ErrorKind.SERVER
        assert res.status == 404
        assert res.to_dict() == {"error": True, "message": body}

    def test_network_error(self, transport, config, clock):
        transport.request.side_effect = requests.ConnectTimeout("timed out")
        sl = logged_in(config, clock)
        res = asyncio.run(sl.post("Orders", {"CardCode": "C1"}))
        assert res.kind is ErrorKind.NETWORK
        assert res.to_dict() == {"error": True, "message": "ERROR REQUEST"}

    def test_request_setup_error(self, transport, config, clock):
        transport.request.side_effect = requests.exceptions.InvalidHeader("bad header")
        sl = logged_in(config, clock)
        res = asyncio.run(sl.put("Items('A1')", {"ItemName": "X"}))
        assert res.kind is ErrorKind.REQUEST_SETUP
        assert res.to_dict() == {"error": True, "message": "bad header"}

    def test_unserializable_payload_is_setup_error(self, transport, config, clock):
        sl = logged_in(config, clock)
        res = asyncio.run(sl.patch("Items('A1')", {"when": object()}))
        assert res.kind is ErrorKind.REQUEST_SETUP
        transport.request.assert_not_called()

    @pytest.mark.parametrize("verb, method", [("put", "PUT"), ("patch", "PATCH"), ("post", "POST")])
    def test_mutating_verbs_send_payload(self, transport, config, clock, verb, method):
        transport.request.return_value = make_response(204)
        sl = logged_in(config, clock)
        res = asyncio.run(getattr(sl, verb)("Items('A1')", {"ItemName": "X"}))
        assert res == Ok(None)
        kwargs = transport.request.call_args.kwargs
        assert kwargs["method"] == method
        assert kwargs["data"] == '{"ItemName": "X"}'

    def test_options_applied(self, transport, config, clock):
        transport.request.return_value = make_response(200, {})
        sl = logged_in(config, clock)
        asyncio.run(sl.get("Orders", {"headers": {"B1S-CaseInsensitive": "true"}, "timeout": 7}))
        kwargs = transport.request.call_args.kwargs
        assert kwargs["headers"] == {"B1S-CaseInsensitive": "true"}
        assert kwargs["timeout"] == 7

    def test_unknown_option_rejected_before_network(self, transport, config, clock):
        sl = logged_in(config, clock)
        with pytest.raises(ValueError):
            asyncio.run(sl.get("Orders", {"withCredentials": True}))
        transport.request.assert_not_called()

    def test_concurrent_calls(self, transport, config, clock):
        transport.request.return_value = make_response(200, {"ok": True})
        sl = logged_in(config, clock)

        async def scenario():
            return await asyncio.gather(*(sl.get(f"Orders({i})") for i in range(5)))

        results = asyncio.run(scenario())
        assert all(r == Ok({"ok": True}) for r in results)
        assert transport.request.call_count == 5


class TestQueryAndFind:
    """Tests for query / find."""

    def test_query_returns_raw_body(self, transport, config, clock, sample_page):
        transport.request.return_value = make_response(200, sample_page)
        sl = logged_in(config, clock)
        assert asyncio.run(sl.query("Items")) == sample_page

    def test_query_raises_on_error(self, transport, config, clock):
        transport.request.return_value = make_response(500, text="Internal error")
        sl = logged_in(config, clock)
        with pytest.raises(ServiceLayerUpstreamError):
            asyncio.run(sl.query("Items"))

    def test_find_single_page(self, transport, config, clock, sample_page):
        transport.request.return_value = make_response(200, sample_page)
        sl = logged_in(config, clock)
        assert asyncio.run(sl.find("Items")) == sample_page["value"]
        assert transport.request.call_count == 1

    def test_find_follows_next_links(self, transport, config, clock):
        transport.request.side_effect = [
            make_response(200, {"value": [{"id": 1}], "@odata.nextLink": "Items?$skip=1"}),
            make_response(200, {"value": [{"id": 2}], "@odata.nextLink": "/b1s/v2/Items?$skip=2"}),
            make_response(200, {"value": [{"id": 3}]}),
        ]
        sl = logged_in(config, clock)
        result = asyncio.run(sl.find("Items", RequestOptions(params={"$select": "id"})))

        assert result == [{"id": 1}, {"id": 2}, {"id": 3}]
        assert request_urls(transport) == [
            "https://b1.test:50000/b1s/v2/Items",
            "https://b1.test:50000/b1s/v2/Items?$skip=1",
            "https://b1.test:50000/b1s/v2/Items?$skip=2",
        ]
        params = [c.kwargs["params"] for c in transport.request.call_args_list]
        assert params == [{"$select": "id"}, None, None]

    def test_find_relogs_midway(self, transport, config, clock):
        def serve(**kwargs):
            if kwargs["url"].endswith("Items"):
                clock.advance(30)
                return make_response(200, {"value": [{"id": 1}], "@odata.nextLink": "Items?$skip=1"})
            return make_response(200, {"value": [{"id": 2}]})

        transport.request.side_effect = serve
        sl = logged_in(config, clock)
        transport.post.return_value = login_response("sess-2")

        result = asyncio.run(sl.find("Items"))
        assert result == [{"id": 1}, {"id": 2}]
        assert transport.post.call_count == 2
        assert sl.session.token == "sess-2"

    def test_iterate_yields_pages(self, transport, config, clock):
        transport.request.side_effect = [
            make_response(200, {"value": [{"id": 1}], "@odata.nextLink": "Items?$skip=1"}),
            make_response(200, {"value": [{"id": 2}]}),
        ]
        sl = logged_in(config, clock)

        async def scenario():
            return [page async for page in sl.iterate("Items")]

        assert asyncio.run(scenario()) == [[{"id": 1}], [{"id": 2}]]
