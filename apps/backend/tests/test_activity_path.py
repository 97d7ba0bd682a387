"""
test_activity_path.py — Delta folding and latest-request-wins ordering.
"""

import asyncio

import pytest

from fakes import FakeDeltaSource, ScriptedDeltaSource, eventually

from regionwatch.clients.base import ServiceError
from regionwatch.models.activity import TimeWindow
from regionwatch.models.region import GeoLocation
from regionwatch.services.activity_path import ActivityPathReconstructor

ANCHOR = GeoLocation(latitude=10.0, longitude=20.0)
FULL = TimeWindow()


def _pairs(path):
    return [(p.latitude, p.longitude) for p in path]


class TestFold:
    async def test_dy_moves_latitude_dx_moves_longitude(self, diagnostics):
        source = FakeDeltaSource([{"dx": 1, "dy": 1}, {"dx": -1, "dy": 2}])
        path = await ActivityPathReconstructor(source, diagnostics=diagnostics).reconstruct("u1", ANCHOR, FULL)
        assert _pairs(path) == [(10.0, 20.0), (11.0, 21.0), (13.0, 20.0)]

    async def test_empty_log_means_no_path(self):
        for records in ([], None):
            reconstructor = ActivityPathReconstructor(FakeDeltaSource(records))
            assert await reconstructor.reconstruct("u1", ANCHOR, FULL) is None
            assert reconstructor.error_for("u1") is None

    async def test_malformed_deltas_are_skipped(self, diagnostics):
        source = FakeDeltaSource([{"dx": 1, "dy": 1}, {"dx": "1", "dy": 2}, {"dx": True, "dy": 0}, "junk", {"dx": 0.5, "dy": 0}])
        path = await ActivityPathReconstructor(source, diagnostics=diagnostics).reconstruct("u1", ANCHOR, FULL)
        assert _pairs(path) == [(10.0, 20.0), (11.0, 21.0), (11.0, 21.5)]
        warnings = diagnostics.by_code("activity.malformed_delta")
        assert len(warnings) == 3
        assert warnings[0].context["subject"] == "u1"

    async def test_only_malformed_deltas_leave_the_anchor(self, diagnostics):
        source = FakeDeltaSource([{"x": 1}])
        path = await ActivityPathReconstructor(source, diagnostics=diagnostics).reconstruct("u1", ANCHOR, FULL)
        assert _pairs(path) == [(10.0, 20.0)]

    async def test_missing_anchor_is_not_fetched(self):
        source = FakeDeltaSource([{"dx": 1, "dy": 1}])
        assert await ActivityPathReconstructor(source).reconstruct("u1", None, FULL) is None
        assert source.calls == []


class TestErrors:
    async def test_failure_sets_error_and_keeps_previous_path(self):
        source = FakeDeltaSource([{"dx": 1, "dy": 1}])
        reconstructor = ActivityPathReconstructor(source)
        first = await reconstructor.reconstruct("u1", ANCHOR, FULL)

        source.error = ServiceError("Failed to fetch user activity (HTTP 500).", status_code=500)
        assert await reconstructor.reconstruct("u1", ANCHOR, TimeWindow(min=0.5)) is None
        assert reconstructor.error_for("u1") == "Failed to fetch user activity (HTTP 500)."
        assert reconstructor.current_path("u1") == first

    async def test_success_clears_error(self):
        source = FakeDeltaSource([{"dx": 1, "dy": 1}])
        source.error = ServiceError("boom")
        reconstructor = ActivityPathReconstructor(source)
        await reconstructor.reconstruct("u1", ANCHOR, FULL)
        source.error = None
        await reconstructor.reconstruct("u1", ANCHOR, FULL)
        assert reconstructor.error_for("u1") is None

    async def test_errors_are_kept_per_subject(self):
        source = ScriptedDeltaSource()
        reconstructor = ActivityPathReconstructor(source)
        failing = asyncio.create_task(reconstructor.request("a", ANCHOR, FULL))
        healthy = asyncio.create_task(reconstructor.request("b", ANCHOR, FULL))
        await eventually(lambda: len(source.pending) == 2)

        source.pending[0].set_exception(ServiceError("Failed to fetch user activity (HTTP 500)."))
        source.pending[1].set_result([{"dx": 1, "dy": 1}])
        a, b = await asyncio.gather(failing, healthy)

        assert a.error == "Failed to fetch user activity (HTTP 500)."
        assert b.error is None
        assert reconstructor.error_for("a") == "Failed to fetch user activity (HTTP 500)."
        assert reconstructor.error_for("b") is None

    async def test_clear_drops_the_error(self):
        source = FakeDeltaSource()
        source.error = ServiceError("boom")
        reconstructor = ActivityPathReconstructor(source)
        await reconstructor.reconstruct("u1", ANCHOR, FULL)
        reconstructor.clear("u1")
        assert reconstructor.error_for("u1") is None


class TestOrdering:
    async def test_latest_request_wins_regardless_of_arrival(self):
        source = ScriptedDeltaSource()
        rendered = []
        reconstructor = ActivityPathReconstructor(source, on_path=lambda s, p: rendered.append(p))

        older = asyncio.create_task(reconstructor.reconstruct("u1", ANCHOR, TimeWindow(max=0.5)))
        newer = asyncio.create_task(reconstructor.reconstruct("u1", ANCHOR, TimeWindow(max=0.9)))
        await eventually(lambda: len(source.pending) == 2)

        source.pending[1].set_result([{"dx": 0, "dy": 5}])
        latest = await newer
        source.pending[0].set_result([{"dx": 0, "dy": 1}])
        assert await older is None

        assert _pairs(latest) == [(10.0, 20.0), (15.0, 20.0)]
        assert reconstructor.current_path("u1") == latest
        assert rendered == [latest]

    async def test_superseded_request_is_flagged_stale(self):
        source = ScriptedDeltaSource()
        reconstructor = ActivityPathReconstructor(source)
        older = asyncio.create_task(reconstructor.request("u1", ANCHOR, TimeWindow(max=0.5)))
        newer = asyncio.create_task(reconstructor.request("u1", ANCHOR, TimeWindow(max=0.9)))
        await eventually(lambda: len(source.pending) == 2)

        source.pending[1].set_result([{"dx": 0, "dy": 5}])
        latest = await newer
        source.pending[0].set_result([{"dx": 0, "dy": 1}])
        superseded = await older

        assert latest.stale is False
        assert superseded.stale is True
        assert superseded.sequence < latest.sequence
        assert superseded.path == latest.path

    async def test_no_data_is_not_stale(self):
        outcome = await ActivityPathReconstructor(FakeDeltaSource([])).request("u1", ANCHOR, FULL)
        assert outcome.stale is False
        assert outcome.path is None
        assert outcome.error is None

    async def test_stale_failure_does_not_set_error(self):
        source = ScriptedDeltaSource()
        reconstructor = ActivityPathReconstructor(source)
        older = asyncio.create_task(reconstructor.reconstruct("u1", ANCHOR, FULL))
        newer = asyncio.create_task(reconstructor.reconstruct("u1", ANCHOR, FULL))
        await eventually(lambda: len(source.pending) == 2)

        source.pending[0].set_exception(ServiceError("late failure"))
        source.pending[1].set_result([{"dx": 1, "dy": 0}])
        await asyncio.gather(older, newer)
        assert reconstructor.error_for("u1") is None

    async def test_subjects_are_independent(self):
        source = ScriptedDeltaSource()
        reconstructor = ActivityPathReconstructor(source)
        a = asyncio.create_task(reconstructor.reconstruct("a", ANCHOR, FULL))
        b = asyncio.create_task(reconstructor.reconstruct("b", ANCHOR, FULL))
        await eventually(lambda: len(source.pending) == 2)
        for future in source.pending:
            future.set_result([{"dx": 1, "dy": 1}])
        assert await a is not None
        assert await b is not None

    async def test_clear_orphans_inflight_request(self):
        source = ScriptedDeltaSource()
        reconstructor = ActivityPathReconstructor(source)
        pending = asyncio.create_task(reconstructor.reconstruct("u1", ANCHOR, FULL))
        await eventually(lambda: source.pending)
        reconstructor.clear("u1")
        source.pending[0].set_result([{"dx": 1, "dy": 1}])
        assert await pending is None
        assert reconstructor.current_path("u1") is None


class TestTimeWindow:
    def test_bounds_validated(self):
        with pytest.raises(ValueError):
            TimeWindow(min=0.8, max=0.2)
        with pytest.raises(ValueError):
            TimeWindow(min=-0.1)

    def test_drag_min_past_max_pushes_max(self):
        window = TimeWindow(min=0.2, max=0.4).drag("min", 0.7)
        assert (window.min, window.max) == (0.7, 0.7)

    def test_drag_max_below_min_pushes_min(self):
        window = TimeWindow(min=0.5, max=0.9).drag("max", 0.1)
        assert (window.min, window.max) == (0.1, 0.1)

    def test_drag_clamps(self):
        window = TimeWindow().drag("max", 3.0)
        assert window.max == 1.0
