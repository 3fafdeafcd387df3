"""Tests for the tracker engine: loading, refresh, location, flags, selection."""

import asyncio
import json

import httpx
import pytest

from constellation_tracker import config
from constellation_tracker.cache_store import MemoryCacheStore
from constellation_tracker.models import GroundLocation
from constellation_tracker.render_state import NO_COVERAGE_MESSAGE
from constellation_tracker.scheduler import PropagationScheduler
from constellation_tracker.session import TrackerSession
from constellation_tracker.tle_fetcher import TLEFetcher
from constellation_tracker.tle_parser import parse_tle_text
from constellation_tracker.tracker import ConstellationTracker
from tests.tle_samples import NEAR_EPOCH, NEAR_EPOCH_MS, tle_block


def unreachable(request):
    raise httpx.ConnectError("connection refused", request=request)


def serving(text):
    def handler(request):
        return httpx.Response(200, text=text)
    return handler


def make_tracker(handler, cached_text=None, store=None, sleep=None):
    store = store if store is not None else MemoryCacheStore()
    if cached_text is not None:
        store.set(config.TLE_CACHE_KEY, cached_text)
        store.set(config.TLE_CACHE_TIME_KEY, str(NEAR_EPOCH_MS))
    fetcher = TLEFetcher(store, url="https://example.test/tle", clock=lambda: NEAR_EPOCH_MS,
                         transport=httpx.MockTransport(handler))
    scheduler = PropagationScheduler(TrackerSession(), clock=lambda: NEAR_EPOCH)
    if sleep is not None:
        scheduler.sleep = sleep
    return ConstellationTracker(store=store, fetcher=fetcher, scheduler=scheduler)


def loaded_tracker(*names):
    tracker = make_tracker(serving(tle_block(*names)))
    assert asyncio.run(tracker.load())
    return tracker


class ReadOnlyStore(MemoryCacheStore):
    def set(self, key, value):
        raise OSError("read-only file system")


def make_objects(*names):
    return parse_tle_text(tle_block(*names))


class TestLoad:
    def test_load_propagates_immediately(self):
        tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 107")
        session = tracker.session
        assert [s.number for s in session.objects] == ["106", "107"]
        assert all(s.current_position is not None for s in session.objects)
        assert session.load_error is None

    def test_acquisition_failure_loads_nothing(self):
        tracker = make_tracker(unreachable)
        assert asyncio.run(tracker.load()) is False
        assert tracker.session.objects == []
        assert "no cache available" in tracker.session.load_error
        assert tracker.snapshot()["load_error"] == tracker.session.load_error

    def test_stale_cache_still_loads(self):
        store = MemoryCacheStore()
        store.set(config.TLE_CACHE_KEY, tle_block("IRIDIUM 130"))
        store.set(config.TLE_CACHE_TIME_KEY, str(NEAR_EPOCH_MS - 9 * 3600 * 1000))
        tracker = make_tracker(unreachable, store=store)
        assert asyncio.run(tracker.load())
        assert [s.number for s in tracker.session.objects] == ["130"]

    def test_empty_parse_is_not_a_failure(self, caplog):
        tracker = make_tracker(serving("nothing useful here\n"))
        assert asyncio.run(tracker.load()) is True
        assert tracker.session.objects == []
        assert tracker.session.load_error is None
        assert "No satellites were parsed" in caplog.text

    def test_run_stops_after_failed_load(self):
        tracker = make_tracker(unreachable)
        asyncio.run(tracker.run())
        assert tracker.scheduler.tick_count == 0

    def test_run_ticks_once_before_first_sleep(self):
        ticks_at_sleep = []

        async def sleep(seconds):
            ticks_at_sleep.append(tracker.scheduler.tick_count)
            tracker.stop()

        tracker = make_tracker(serving(tle_block("IRIDIUM 106")), sleep=sleep)
        asyncio.run(tracker.run())
        assert ticks_at_sleep == [1]
        assert tracker.session.objects[0].current_position is not None

    def test_run_installs_periodic_refresh(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text=tle_block("IRIDIUM 106" if len(requests) == 1 else "IRIDIUM 108"))

        seen = []

        async def sleep(seconds):
            seen.append([s.number for s in tracker.session.objects])
            if seen[-1] == ["108"] or len(seen) > 500:
                tracker.stop()
            await asyncio.sleep(0.001)

        tracker = make_tracker(handler, sleep=sleep)
        tracker.fetcher.max_age_ms = 0
        tracker.refresh_interval = 0.001
        asyncio.run(tracker.run())

        assert seen[0] == ["106"]
        assert seen[-1] == ["108"]
        assert len(requests) >= 2

    def test_cache_write_failure_still_loads(self):
        tracker = make_tracker(serving(tle_block("IRIDIUM 106")), store=ReadOnlyStore())
        assert asyncio.run(tracker.load())
        assert [s.number for s in tracker.session.objects] == ["106"]

    def test_degraded_flag_follows_source(self):
        store = MemoryCacheStore()
        store.set(config.TLE_CACHE_KEY, tle_block("IRIDIUM 130"))
        store.set(config.TLE_CACHE_TIME_KEY, str(NEAR_EPOCH_MS - 9 * 3600 * 1000))
        tracker = make_tracker(unreachable, store=store)
        assert asyncio.run(tracker.load())
        assert tracker.snapshot()["degraded"] is True

        tracker.fetcher.transport = httpx.MockTransport(serving(tle_block("IRIDIUM 131")))
        assert asyncio.run(tracker.refresh())
        assert tracker.snapshot()["degraded"] is False


class TestRefresh:
    def test_refresh_is_staged_until_next_tick(self):
        tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 107")
        tracker.fetcher.clear()
        tracker.fetcher.transport = httpx.MockTransport(serving(tle_block("IRIDIUM 108")))

        assert asyncio.run(tracker.refresh())
        assert [s.number for s in tracker.session.objects] == ["106", "107"]

        tracker.scheduler.tick()
        assert [s.number for s in tracker.session.objects] == ["108"]

    def test_selection_kept_when_still_present(self):
        tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 107")
        tracker.select("107")
        tracker.session.stage_refresh(make_objects("IRIDIUM 107", "IRIDIUM 109"))
        tracker.scheduler.tick()
        assert tracker.session.selected is tracker.session.objects[0]
        assert tracker.session.selected.number == "107"

    def test_selection_cleared_when_gone(self):
        tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 107")
        tracker.select("106")
        tracker.session.stage_refresh(make_objects("IRIDIUM 107"))
        tracker.scheduler.tick()
        assert tracker.session.selected is None

    def test_selection_cleared_when_number_becomes_shared(self):
        tracker = loaded_tracker("DUMMY A", "IRIDIUM 107")
        tracker.select_at(0)
        tracker.session.stage_refresh(make_objects("DUMMY A", "DUMMY B"))
        tracker.scheduler.tick()
        assert tracker.session.selected is None
        assert not any(s["highlighted"] for s in tracker.snapshot()["satellites"])

    def test_failed_refresh_keeps_collection(self):
        tracker = loaded_tracker("IRIDIUM 106")
        tracker.fetcher.clear()
        tracker.fetcher.transport = httpx.MockTransport(unreachable)
        assert asyncio.run(tracker.refresh()) is False
        assert tracker.session.pending_objects is None

    def test_empty_refresh_keeps_collection(self):
        tracker = loaded_tracker("IRIDIUM 106")
        tracker.fetcher.clear()
        tracker.fetcher.transport = httpx.MockTransport(serving(""))
        assert asyncio.run(tracker.refresh()) is False
        tracker.scheduler.tick()
        assert [s.number for s in tracker.session.objects] == ["106"]


class TestGroundLocation:
    def test_set_persists_deselects_and_covers(self):
        tracker = loaded_tracker("IRIDIUM 106")
        sat = tracker.session.objects[0]
        tracker.select("106")

        tracker.set_ground_location(sat.current_position.lat, sat.current_position.lng)

        saved = json.loads(tracker.store.get(config.USER_LOCATION_KEY))
        assert saved == {"latitude": sat.current_position.lat, "longitude": sat.current_position.lng}
        assert tracker.session.selected is None
        assert list(tracker.session.coverage) == ["106"]

    def test_restore_centers_view(self):
        store = MemoryCacheStore()
        store.set(config.USER_LOCATION_KEY, json.dumps({"latitude": 10.0, "longitude": 200.0}))
        tracker = make_tracker(unreachable, store=store)

        location = tracker.restore_ground_location()
        assert location == GroundLocation(10.0, 200.0)
        assert tracker.session.reference_longitude == 200.0

    def test_restore_ignores_garbage(self):
        store = MemoryCacheStore()
        store.set(config.USER_LOCATION_KEY, "not json")
        tracker = make_tracker(unreachable, store=store)
        assert tracker.restore_ground_location() is None
        assert tracker.session.ground_location is None

    @pytest.mark.parametrize("saved", [
        '{"latitude": 10.0, "longitude": NaN}',
        '{"latitude": 91.0, "longitude": 0.0}',
        '{"latitude": 10.0}',
    ])
    def test_restore_ignores_invalid_values(self, saved):
        store = MemoryCacheStore()
        store.set(config.USER_LOCATION_KEY, saved)
        tracker = make_tracker(unreachable, store=store)
        assert tracker.restore_ground_location() is None
        assert tracker.session.ground_location is None
        assert tracker.session.reference_longitude == 0.0

    def test_run_survives_invalid_saved_location(self):
        store = MemoryCacheStore()
        store.set(config.USER_LOCATION_KEY, '{"latitude": 10.0, "longitude": NaN}')

        async def sleep(seconds):
            tracker.stop()

        tracker = make_tracker(serving(tle_block("IRIDIUM 106")), store=store, sleep=sleep)
        asyncio.run(tracker.run())
        assert tracker.scheduler.tick_count == 1
        assert tracker.session.ground_location is None

    def test_location_kept_when_it_cannot_be_saved(self, caplog):
        tracker = make_tracker(serving(tle_block("IRIDIUM 106")), store=ReadOnlyStore())
        assert asyncio.run(tracker.load())
        tracker.set_ground_location(10.0, 20.0)
        assert tracker.session.ground_location == GroundLocation(10.0, 20.0)
        assert tracker.session.coverage is not None
        assert "Could not save location" in caplog.text

    def test_rejects_bad_latitude(self):
        tracker = loaded_tracker("IRIDIUM 106")
        with pytest.raises(ValueError):
            tracker.set_ground_location(95.0, 0.0)

    def test_no_coverage_message(self):
        tracker = loaded_tracker("IRIDIUM 106")
        sat = tracker.session.objects[0]
        tracker.set_ground_location(-sat.current_position.lat, sat.current_position.lng + 180.0)
        state = tracker.snapshot()
        assert state["covering"] == []
        assert state["coverage_lines"] == []
        assert state["covering_message"] == NO_COVERAGE_MESSAGE


class TestViewAndFlags:
    def test_pan_rewraps_positions(self):
        tracker = loaded_tracker("IRIDIUM 106")
        sat = tracker.session.objects[0]
        original = sat.current_position.lng

        tracker.set_view_center(720.0)
        assert abs(sat.current_position.lng - 720.0) <= 180
        assert sat.current_position.lng == pytest.approx(original + 720.0)

    def test_spares_hidden_and_excluded_by_default(self):
        tracker = loaded_tracker("IRIDIUM 162", "IRIDIUM 106")
        spare = tracker.session.objects[0]
        tracker.set_ground_location(spare.current_position.lat, spare.current_position.lng)

        state = tracker.snapshot()
        assert [s["visible"] for s in state["satellites"]] == [False, True]
        assert state["covering"] == ["Iridium 106"]

        tracker.set_flag("show_spares", True)
        state = tracker.snapshot()
        assert [s["visible"] for s in state["satellites"]] == [True, True]
        assert state["covering"] == ["Iridium 162", "Iridium 106"]
        assert len(state["coverage_lines"]) == 2

    def test_coverage_circles_follow_visibility(self):
        tracker = loaded_tracker("IRIDIUM 162", "IRIDIUM 106")
        tracker.set_flag("show_coverage_circles", True)
        assert [s["show_circle"] for s in tracker.snapshot()["satellites"]] == [False, True]

    def test_coverage_display_off_hides_lines(self):
        tracker = loaded_tracker("IRIDIUM 106")
        sat = tracker.session.objects[0]
        tracker.set_ground_location(sat.current_position.lat, sat.current_position.lng)
        tracker.set_flag("show_coverage", False)
        state = tracker.snapshot()
        assert state["coverage_lines"] == []
        assert state["covering"] == []
        assert state["user"] is not None

    def test_unknown_flag(self):
        tracker = loaded_tracker("IRIDIUM 106")
        with pytest.raises(KeyError):
            tracker.set_flag("show_everything", True)


class TestSelection:
    def test_toggle(self):
        tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 107")
        assert tracker.toggle_selection("106").number == "106"
        assert tracker.toggle_selection("107").number == "107"
        assert tracker.toggle_selection("107") is None

    def test_single_highlight(self):
        tracker = loaded_tracker("IRIDIUM 106", "IRIDIUM 107")
        tracker.select("106")
        tracker.select("107")
        state = tracker.snapshot()
        assert [s["highlighted"] for s in state["satellites"]] == [False, True]
        assert state["selected"]["number"] == "107"
        assert state["selected"]["velocity_km_h"] == pytest.approx(7.66 * 3600, rel=0.01)

    def test_unknown_satellite(self):
        tracker = loaded_tracker("IRIDIUM 106")
        with pytest.raises(KeyError):
            tracker.select("999")

    def test_shared_number_needs_an_index(self):
        tracker = loaded_tracker("DUMMY A", "DUMMY B")
        with pytest.raises(ValueError):
            tracker.toggle_selection("Unknown")
        assert tracker.session.selected is None

    def test_select_by_index_highlights_one(self):
        tracker = loaded_tracker("DUMMY A", "DUMMY B")
        selected = tracker.toggle_selection_at(1)
        assert selected.name == "DUMMY B"
        state = tracker.snapshot()
        highlighted = [s for s in state["satellites"] if s["highlighted"]]
        assert [s["index"] for s in highlighted] == [1]
        assert state["selected"]["name"] == "DUMMY B"
        assert tracker.toggle_selection_at(1) is None

    def test_index_out_of_range(self):
        tracker = loaded_tracker("IRIDIUM 106")
        with pytest.raises(KeyError):
            tracker.toggle_selection_at(5)
