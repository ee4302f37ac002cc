"""Tests for the history API client, place search and live stream."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from socketio.exceptions import ConnectionError as StreamConnectionError

from dronewatch.capture.api import ApiError, DetectionApiClient
from dronewatch.capture.search import PlaceSearch, SearchError
from dronewatch.capture.stream import LiveStream
from tests.conftest import event_dict


def run(coro):
    return asyncio.run(coro)


class TestDetectionApiClient:
    def test_fetch_history(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True, "data": [
                event_dict(2, "2025-01-01T10:05:00Z",
                           [{"obj_id": "obj_001", "type": "drone", "lat": "14.3", "lng": 101.2}]),
                event_dict(1, "2025-01-01T10:00:00Z", []),
            ]})

        client = DetectionApiClient("http://api.test/", transport=httpx.MockTransport(handler))
        events = run(client.fetch_history("cam-1", "tok"))

        assert [e.id for e in events] == [2, 1]
        assert events[0].objects[0].lat == "14.3"
        assert events[0].camera.name == "Team Alpha"
        assert requests[0].url.path == "/api/object-detection/cam-1"
        assert requests[0].headers["x-camera-token"] == "tok"

    def test_fetch_skips_malformed_events(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": [
                event_dict(1, "2025-01-01T10:00:00Z", [{"type": "drone"}]),
                event_dict(2, "2025-01-01T10:01:00Z", [{"obj_id": "a"}]),
            ]})

        client = DetectionApiClient("http://api.test", transport=httpx.MockTransport(handler))
        assert [e.id for e in run(client.fetch_history("cam-1", "tok"))] == [2]

    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"success": False, "data": []}),
        httpx.Response(200, text="<html>"),
    ])
    def test_fetch_failures(self, response):
        client = DetectionApiClient("http://api.test",
                                    transport=httpx.MockTransport(lambda r: response))
        with pytest.raises(ApiError):
            run(client.fetch_history("cam-1", "tok"))

    def test_clear_history(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        client = DetectionApiClient("http://api.test", transport=httpx.MockTransport(handler))
        run(client.clear_history("cam-1", "tok"))

        assert requests[0].method == "DELETE"
        assert requests[0].url.path == "/api/object-detection/clear/cam-1"
        assert requests[0].headers["x-camera-token"] == "tok"

    def test_clear_failure_carries_body(self):
        client = DetectionApiClient("http://api.test", transport=httpx.MockTransport(
            lambda r: httpx.Response(403, text="invalid camera token")))
        with pytest.raises(ApiError, match="invalid camera token"):
            run(client.clear_history("cam-1", "bad"))

    def test_clear_failure_default_message(self):
        client = DetectionApiClient("http://api.test", transport=httpx.MockTransport(
            lambda r: httpx.Response(500)))
        with pytest.raises(ApiError, match="Failed to clear history"):
            run(client.clear_history("cam-1", "tok"))


def geocoding_handler(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        limit = int(request.url.params["limit"])
        features = [
            {"id": f"place.{i}", "place_name": f"Place {i}", "center": [101.0 + i, 14.0]}
            for i in range(limit)
        ]
        return httpx.Response(200, json={"features": features})
    return handler


class TestPlaceSearch:
    def test_direct_search_returns_top_hit(self, search_config):
        calls = []
        search = PlaceSearch(search_config, transport=httpx.MockTransport(geocoding_handler(calls)))
        hit = run(search.search("Pak Chong"))

        assert hit.label == "Place 0"
        assert hit.center == (101.0, 14.0)
        assert calls[0].url.params["limit"] == "1"
        assert calls[0].url.params["access_token"] == "pk.test"
        assert calls[0].url.raw_path.endswith(b"/Pak%20Chong.json")

    def test_not_found(self, search_config):
        search = PlaceSearch(search_config, transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"features": []})))
        assert run(search.search("atlantis")) is None

    def test_empty_query_rejected(self, search_config):
        search = PlaceSearch(search_config)
        with pytest.raises(SearchError, match="Please enter a location."):
            run(search.search("   "))

    def test_missing_token(self, search_config):
        search_config.access_token = ""
        search = PlaceSearch(search_config)
        with pytest.raises(SearchError, match="Missing Mapbox access token"):
            run(search.search("Bangkok"))

    def test_http_error(self, search_config):
        search = PlaceSearch(search_config, transport=httpx.MockTransport(
            lambda r: httpx.Response(502)))
        with pytest.raises(SearchError, match="Unable to search location"):
            run(search.search("Bangkok"))

    def test_non_json_body(self, search_config):
        search = PlaceSearch(search_config, transport=httpx.MockTransport(
            lambda r: httpx.Response(200, text="<html>oops</html>")))
        with pytest.raises(SearchError, match="Unable to search location"):
            run(search.search("Bangkok"))

    def test_malformed_features_skipped(self, search_config):
        body = {"features": [
            "junk",
            {"id": "place.bad", "place_name": "No center"},
            {"id": "place.odd", "place_name": "Odd", "center": ["x", 14.0]},
            {"id": "place.ok", "place_name": "Korat", "center": [102.1, 14.97]},
        ]}
        search = PlaceSearch(search_config, transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json=body)))
        hit = run(search.search("Korat"))
        assert (hit.id, hit.center) == ("place.ok", (102.1, 14.97))

    def test_suggest_short_query(self, search_config):
        calls = []
        search = PlaceSearch(search_config, transport=httpx.MockTransport(geocoding_handler(calls)))
        assert run(search.suggest("ab")) == []
        assert calls == []

    def test_suggest_limit(self, search_config):
        calls = []
        search = PlaceSearch(search_config, transport=httpx.MockTransport(geocoding_handler(calls)))
        options = run(search.suggest("Bangkok"))
        assert len(options) == 5
        assert options[0].to_dict() == {"id": "place.0", "label": "Place 0",
                                        "center": [101.0, 14.0]}

    def test_suggest_superseded_by_newer_query(self, search_config):
        """Only the latest keystroke's lookup reaches the network."""
        calls = []
        search = PlaceSearch(search_config, transport=httpx.MockTransport(geocoding_handler(calls)))

        async def type_quickly():
            return await asyncio.gather(search.suggest("Bang"), search.suggest("Bangkok"))

        first, second = run(type_quickly())

        assert first is None
        assert len(second) == 5
        assert len(calls) == 1
        assert calls[0].url.path.endswith("/Bangkok.json")

    def test_suggest_failure_gives_no_options(self, search_config):
        search_config.access_token = ""
        search = PlaceSearch(search_config)
        assert run(search.suggest("Bangkok")) == []


class FakeSocketClient:
    """Stands in for socketio.AsyncClient."""

    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.handlers = {}
        self.connected = False
        self.url = None
        self._closed = asyncio.Event()

    def on(self, event, handler):
        self.handlers[event] = handler

    async def connect(self, url, transports=None):
        if self.fail_connect:
            raise StreamConnectionError("refused")
        self.url = url
        self.connected = True

    async def wait(self):
        await self._closed.wait()

    async def disconnect(self):
        self.connected = False
        self._closed.set()


class TestLiveStream:
    def test_reconnects_and_delivers_events(self):
        received = []
        clients = []

        async def scenario():
            connected = asyncio.Event()

            def factory(reconnection):
                assert reconnection is False
                client = FakeSocketClient(fail_connect=not clients)
                clients.append(client)
                return client

            stream = LiveStream(
                "http://api.test", "cam-1",
                on_event=received.append,
                on_connect=connected.set,
                event_template="detection:{cam_id}",
                reconnect_delay=0.001,
                client_factory=factory,
            )
            stream.start()
            await asyncio.wait_for(connected.wait(), timeout=2)
            assert stream.is_connected

            handler = clients[-1].handlers["detection:cam-1"]
            await handler(event_dict(7, "2025-01-01T10:00:00Z",
                                     [{"obj_id": "obj_001", "lat": 14.0, "lng": 101.0}]))
            await handler({"objects": [{"lat": 1}]})
            await handler("garbage")

            await stream.stop()
            return stream

        stream = run(scenario())

        assert len(clients) == 2
        assert clients[1].url == "http://api.test"
        assert not stream.is_connected
        assert not clients[1].connected
        assert [e.id for e in received] == [7]
