"""
test_clients.py — REST adapters against httpx.MockTransport.

No real upstream is contacted: each test installs a handler that inspects
the outgoing request and returns a canned response.
"""

import httpx
import pytest

from regionwatch.clients.activity_service import ActivityServiceClient
from regionwatch.clients.base import ServiceError
from regionwatch.clients.region_service import RegionServiceClient
from regionwatch.clients.strike_service import StrikeServiceClient
from regionwatch.clients.user_service import UserServiceClient
from regionwatch.models.activity import TimeWindow
from regionwatch.models.region import GeoLocation, RegionType
from regionwatch.services.region_navigator import RegionNavigator

BASE = "http://upstream.test/api"

COUNTRY = {
    "id": "c1",
    "name": "Eurasia",
    "type": "COUNTRY",
    "boundaries": {"type": "Polygon", "coordinates": [[[0, 0], [0, 1], [1, 1], [0, 0]]]},
    "populationCount": 10,
}


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _raise_connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class TestRegionService:
    async def test_fetch_by_type_normalizes_boundaries(self, diagnostics):
        recorder = Recorder(httpx.Response(200, json=[COUNTRY]))
        client = RegionServiceClient(BASE, transport=recorder.transport, diagnostics=diagnostics)
        (region,) = await client.fetch_by_type(RegionType.COUNTRY)
        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/api/regions/type/COUNTRY"
        assert len(region.boundaries) == 4
        assert region.population_count == 10

    async def test_one_bad_region_does_not_fail_batch(self, diagnostics):
        payload = [COUNTRY, {"id": "x", "name": "broken"}, {**COUNTRY, "id": "c2", "boundaries": {"type": "Point"}}]
        client = RegionServiceClient(BASE, transport=Recorder(httpx.Response(200, json=payload)).transport, diagnostics=diagnostics)
        regions = await client.fetch_by_type(RegionType.COUNTRY)
        assert [r.id for r in regions] == ["c1", "c2"]
        assert regions[1].boundaries == []
        assert diagnostics.by_code("region.invalid_payload")
        assert diagnostics.by_code("geometry.unsupported_shape")

    async def test_endpoints(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        client = RegionServiceClient(BASE, transport=recorder.transport)
        await client.fetch_subregions("c1")
        assert recorder.last.url.path == "/api/regions/parent/c1"
        await client.fetch_under_threat(RegionType.CITY)
        assert recorder.last.url.path == "/api/regions/under-threat/CITY"
        await client.refresh_all_statistics()
        assert (recorder.last.method, recorder.last.url.path) == ("PUT", "/api/regions/statistics/all")

    async def test_fetch_by_id(self):
        recorder = Recorder(httpx.Response(200, json=COUNTRY))
        region = await RegionServiceClient(BASE, transport=recorder.transport).fetch_by_id("c1")
        assert recorder.last.url.path == "/api/regions/c1"
        assert region.name == "Eurasia"

    async def test_fetch_by_id_invalid_payload(self):
        client = RegionServiceClient(BASE, transport=Recorder(httpx.Response(200, json={"id": "c1"})).transport)
        with pytest.raises(ServiceError):
            await client.fetch_by_id("c1")

    async def test_http_error_becomes_service_error(self):
        client = RegionServiceClient(BASE, transport=Recorder(httpx.Response(503, text="down")).transport)
        with pytest.raises(ServiceError) as excinfo:
            await client.fetch_by_type(RegionType.COUNTRY)
        assert excinfo.value.status_code == 503

    async def test_network_error_becomes_service_error(self):
        client = RegionServiceClient(BASE, transport=httpx.MockTransport(_raise_connect_error))
        with pytest.raises(ServiceError) as excinfo:
            await client.fetch_subregions("c1")
        assert excinfo.value.status_code is None

    async def test_non_list_collection_becomes_service_error(self):
        for payload in (5, {"regions": [COUNTRY]}, "COUNTRY"):
            client = RegionServiceClient(BASE, transport=Recorder(httpx.Response(200, json=payload)).transport)
            with pytest.raises(ServiceError):
                await client.fetch_by_type(RegionType.COUNTRY)
            with pytest.raises(ServiceError):
                await client.fetch_eliminated_users("c1")

    async def test_empty_body_is_an_empty_collection(self):
        client = RegionServiceClient(BASE, transport=Recorder(httpx.Response(200)).transport)
        assert await client.fetch_subregions("c1") == []

    async def test_non_list_payload_surfaces_as_navigator_error(self, diagnostics):
        client = RegionServiceClient(BASE, transport=Recorder(httpx.Response(200, json=5)).transport)
        navigator = RegionNavigator(client, diagnostics=diagnostics)
        await navigator.select_top_level(RegionType.COUNTRY)
        assert navigator.error == "Failed to fetch regions"

    async def test_eliminated_users(self, diagnostics):
        payload = [{"id": "u1", "username": "smith", "active": False}, {"id": "u2"}]
        recorder = Recorder(httpx.Response(200, json=payload))
        client = RegionServiceClient(BASE, transport=recorder.transport, diagnostics=diagnostics)
        users = await client.fetch_eliminated_users("c1")
        assert recorder.last.url.path == "/api/regions/c1/eliminated-users"
        assert [u.id for u in users] == ["u1"]
        assert diagnostics.by_code("user.invalid_payload")


class TestActivityService:
    async def test_window_and_cache_buster_in_query(self):
        recorder = Recorder(httpx.Response(200, json={"data": [{"dx": 1, "dy": 2}]}))
        client = ActivityServiceClient("http://activity.test", transport=recorder.transport)
        records = await client.fetch_deltas("u1", TimeWindow(min=0.25, max=0.75))
        assert records == [{"dx": 1, "dy": 2}]
        request = recorder.last
        assert request.url.path == "/user/u1"
        assert request.url.params["min"] == "0.25"
        assert request.url.params["max"] == "0.75"
        assert "_cb" in request.url.params

    async def test_no_data_404_is_not_an_error(self):
        response = httpx.Response(404, text="No data found for user u1 in range")
        client = ActivityServiceClient("http://activity.test", transport=Recorder(response).transport)
        assert await client.fetch_deltas("u1", TimeWindow()) is None

    async def test_other_404_is_an_error(self):
        response = httpx.Response(404, text="Not Found")
        client = ActivityServiceClient("http://activity.test", transport=Recorder(response).transport)
        with pytest.raises(ServiceError) as excinfo:
            await client.fetch_deltas("u1", TimeWindow())
        assert excinfo.value.message == "Failed to fetch user activity (HTTP 404)."

    async def test_server_error(self):
        client = ActivityServiceClient("http://activity.test", transport=Recorder(httpx.Response(500)).transport)
        with pytest.raises(ServiceError) as excinfo:
            await client.fetch_deltas("u1", TimeWindow())
        assert excinfo.value.status_code == 500

    async def test_network_and_parse_failures_share_a_message(self):
        expected = "Failed to fetch user activity due to a network or data parsing issue."
        for transport in (
            httpx.MockTransport(_raise_connect_error),
            Recorder(httpx.Response(200, text="<html>")).transport,
        ):
            client = ActivityServiceClient("http://activity.test", transport=transport)
            with pytest.raises(ServiceError) as excinfo:
                await client.fetch_deltas("u1", TimeWindow())
            assert excinfo.value.message == expected

    async def test_missing_data_field(self):
        client = ActivityServiceClient("http://activity.test", transport=Recorder(httpx.Response(200, json={})).transport)
        assert await client.fetch_deltas("u1", TimeWindow()) is None


class TestUserService:
    async def test_fetch_near(self):
        recorder = Recorder(httpx.Response(200, json=[{"id": "u1", "username": "a", "socialRating": 70}]))
        client = UserServiceClient(BASE, transport=recorder.transport)
        users = await client.fetch_near(GeoLocation(latitude=51.5, longitude=-0.1), 2.5)
        assert users[0].social_rating == 70
        assert recorder.last.url.path == "/api/users/near"
        assert recorder.last.url.params["maxDistanceKm"] == "2.5"

    async def test_unexpected_payload(self):
        client = UserServiceClient(BASE, transport=Recorder(httpx.Response(200, json=[{"id": 1}])).transport)
        with pytest.raises(ServiceError):
            await client.fetch_near(GeoLocation(latitude=0, longitude=0), 1.0)


class TestStrikeService:
    async def test_launch(self):
        recorder = Recorder(httpx.Response(200, text="Missile launched"))
        await StrikeServiceClient(BASE, transport=recorder.transport).launch_at_region("c1")
        assert (recorder.last.method, recorder.last.url.path) == ("POST", "/api/government/deploy-oreshnik/c1")

    async def test_rejected(self):
        client = StrikeServiceClient(BASE, transport=Recorder(httpx.Response(403)).transport)
        with pytest.raises(ServiceError):
            await client.launch_at_region("c1")
