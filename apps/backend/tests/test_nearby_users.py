"""
test_nearby_users.py — Nearby-users list: push replacement, patching, polling.
"""

from fakes import FakeNearbySource, eventually, make_user

from regionwatch.models.region import GeoLocation
from regionwatch.services.nearby_users import NearbyUsersTracker

HERE = GeoLocation(latitude=51.5, longitude=-0.12)


class TestNearbyUsers:
    async def test_refresh_excludes_subject(self):
        tracker = NearbyUsersTracker(FakeNearbySource([make_user("me"), make_user("u1")]))
        tracker.subject_id = "me"
        await tracker.refresh(HERE)
        assert [u.id for u in tracker.users] == ["u1"]
        assert tracker.error is None

    async def test_refresh_failure_keeps_list(self):
        source = FakeNearbySource([make_user("u1")])
        tracker = NearbyUsersTracker(source)
        await tracker.refresh(HERE)
        source.fail = True
        await tracker.refresh(HERE)
        assert tracker.error == "Failed to fetch nearby users"
        assert [u.id for u in tracker.users] == ["u1"]

    def test_push_replaces_whole_list(self):
        tracker = NearbyUsersTracker(FakeNearbySource())
        tracker.subject_id = "me"
        tracker.apply_nearby_update([make_user("u1"), make_user("me")])
        tracker.apply_nearby_update([make_user("u2")])
        assert [u.id for u in tracker.users] == ["u2"]

    def test_location_update_patches_known_user_only(self):
        tracker = NearbyUsersTracker(FakeNearbySource())
        tracker.apply_nearby_update([make_user("u1")])
        moved = make_user("u1", current_location=GeoLocation(latitude=1, longitude=2))
        tracker.apply_location_update(moved)
        tracker.apply_location_update(make_user("stranger"))
        assert tracker.users == [moved]

    async def test_polling_until_stopped(self):
        source = FakeNearbySource([make_user("u1")])
        tracker = NearbyUsersTracker(source, poll_interval=0.01)
        tracker.start("me", HERE)
        await eventually(lambda: source.calls >= 3)
        tracker.stop()
        tracker.stop()
        assert tracker.subject_id == "me"
        assert [u.id for u in tracker.users] == ["u1"]
