"""Tests for the aircraft rectangle cache."""

from unittest.mock import MagicMock

import pytest

from onlinedata.cache import AircraftQueryCache, RectCache
from onlinedata.config import OnlineFormat
from onlinedata.geo import Pos, Rect, distances_meter
from onlinedata.simulator import RegistrationSnapshot, SimAircraft, SimulatorState

from conftest import client_line, make_whazzup

EUROPE = Rect(-10, 35, 20, 60)


@pytest.fixture
def store(manager):
    clients = [
        client_line('DLH123', 50.03, 8.57),
        client_line('BAW1', 51.47, -0.45),
        client_line('AFR22', 49.0, 2.55),
        client_line('QFA1', -33.9, 151.2),
        client_line('ANZ7', -36.9, 174.8),
        client_line('HAL5', 21.3, -157.9),
    ]
    manager.write_data_feed(make_whazzup(clients), OnlineFormat.VATSIM, None)
    return MagicMock(wraps=manager)


@pytest.fixture
def cache(store):
    return AircraftQueryCache(store, inflation_factor=0.2, inflation_increment=0.1, max_rows=5000)


def callsigns(aircraft):
    return sorted(a.callsign for a in aircraft)


class TestLoading:

    def test_first_query_loads(self, cache, store):
        assert callsigns(cache.get_aircraft(EUROPE)) == ['AFR22', 'BAW1', 'DLH123']
        assert store.query_by_rect.call_count == 1
        assert cache.stats['misses'] == 1

    def test_pan_inside_inflated_rect_uses_cache(self, cache, store):
        cache.get_aircraft(EUROPE)
        cache.get_aircraft(Rect(-8, 36, 22, 61))

        assert store.query_by_rect.call_count == 1
        assert cache.stats['hits'] == 1

    def test_growing_beyond_inflated_rect_reloads(self, cache, store):
        cache.get_aircraft(EUROPE)
        cache.get_aircraft(Rect(-30, 20, 40, 70))

        assert store.query_by_rect.call_count == 2

    def test_detail_level_change_reloads(self, cache, store):
        cache.get_aircraft(EUROPE, detail_level=3)
        cache.get_aircraft(EUROPE, detail_level=3)
        cache.get_aircraft(EUROPE, detail_level=4)

        assert store.query_by_rect.call_count == 2

    def test_lazy_returns_cached_only(self, cache, store):
        assert cache.get_aircraft(EUROPE, lazy=True) == []
        assert store.query_by_rect.call_count == 0

        cache.get_aircraft(EUROPE)
        # Lazy never reloads, even for a different region
        assert callsigns(cache.get_aircraft(Rect(100, -50, 179, 0), lazy=True)) == ['AFR22', 'BAW1', 'DLH123']
        assert store.query_by_rect.call_count == 1

    def test_anti_meridian_queries_both_sides(self, cache, store):
        result = cache.get_aircraft(Rect(170, -40, -150, 25))

        assert store.query_by_rect.call_count == 2
        assert callsigns(result) == ['ANZ7', 'HAL5']

    def test_inflated_rect_is_queried(self, cache, store):
        cache.get_aircraft(Rect(0, 40, 10, 50))

        part = store.query_by_rect.call_args[0][0]
        assert part.west == pytest.approx(-1.1)
        assert part.north == pytest.approx(51.1)

    def test_invalidate_reloads(self, cache, store):
        cache.get_aircraft(EUROPE)
        cache.invalidate()
        assert cache.get_cached() == []

        cache.get_aircraft(EUROPE)
        assert store.query_by_rect.call_count == 2

    def test_returns_copy(self, cache):
        result = cache.get_aircraft(EUROPE)
        result.clear()
        assert len(cache.get_cached()) == 3


class TestMaxRows:

    def test_trimmed_and_reloaded(self, store):
        cache = AircraftQueryCache(store, inflation_factor=0.2, inflation_increment=0.1, max_rows=2)

        assert len(cache.get_aircraft(EUROPE)) == 2
        assert cache.stats['max_rows_reached']
        assert cache.stats['rect'] is None

        # Region forgotten - next non-lazy query loads again
        cache.get_aircraft(EUROPE)
        assert store.query_by_rect.call_count == 2

    def test_trimmed_across_anti_meridian(self, store):
        cache = AircraftQueryCache(store, inflation_factor=0.2, inflation_increment=0.1, max_rows=1)
        assert len(cache.get_aircraft(Rect(170, -40, -150, 25))) == 1


class TestDuplicates:

    def test_nearby_simulator_aircraft_dropped(self, cache):
        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.2, 8.7)))
        assert callsigns(cache.get_aircraft(EUROPE, registrations=registrations)) == ['AFR22', 'BAW1']

    def test_far_simulator_aircraft_kept(self, cache):
        # About 40 NM away
        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.7, 8.57)))
        assert 'DLH123' in callsigns(cache.get_aircraft(EUROPE, registrations=registrations))

    def test_just_inside_threshold_dropped(self, cache):
        # 30 NM is about 0.4997 degrees of latitude
        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.529, 8.57)))
        assert 'DLH123' not in callsigns(cache.get_aircraft(EUROPE, registrations=registrations))

    def test_just_outside_threshold_kept(self, cache):
        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.5305, 8.57)))
        assert 'DLH123' in callsigns(cache.get_aircraft(EUROPE, registrations=registrations))

    def test_exact_threshold_dropped(self, store):
        distance = float(distances_meter([50.03], [8.57], [50.3], [8.57])[0])
        cache = AircraftQueryCache(store, 0.2, 0.1, 5000, min_duplicate_distance_meter=distance)

        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.3, 8.57)))
        assert 'DLH123' not in callsigns(cache.get_aircraft(EUROPE, registrations=registrations))

    def test_other_registration_kept(self, cache):
        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('D-EABC', Pos(50.03, 8.57)))
        assert len(cache.get_aircraft(EUROPE, registrations=registrations)) == 3

    def test_registration_change_reloads(self, cache, store):
        first = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.03, 8.57)))
        cache.get_aircraft(EUROPE, registrations=first)
        assert cache.registrations.keys == frozenset({'DLH123'})

        cache.get_aircraft(EUROPE, registrations=RegistrationSnapshot())
        assert store.query_by_rect.call_count == 2

    def test_moved_positions_same_keys_use_cache(self, cache, store):
        cache.get_aircraft(
            EUROPE, registrations=RegistrationSnapshot.from_aircraft(SimAircraft('BAW1', Pos(51.47, -0.45)))
        )
        result = cache.get_aircraft(
            EUROPE, registrations=RegistrationSnapshot.from_aircraft(SimAircraft('BAW1', Pos(45.0, 5.0)))
        )

        assert store.query_by_rect.call_count == 1
        assert 'BAW1' not in callsigns(result)

    def test_registrations_recorded_only_on_load(self, cache):
        cache.get_aircraft(EUROPE)
        registrations = RegistrationSnapshot.from_aircraft(SimAircraft('DLH123', Pos(50.03, 8.57)))

        assert cache.get_aircraft(EUROPE, lazy=True, registrations=registrations) == []
        assert len(cache.registrations) == 0

    def test_ai_excluded_when_not_connected(self, cache):
        state = SimulatorState()
        state.update(ai=[SimAircraft('DLH123', Pos(50.03, 8.57))], connected=False)
        assert len(cache.get_aircraft(EUROPE, registrations=RegistrationSnapshot.from_simulator(state))) == 3

        state.update(ai=[SimAircraft('DLH123', Pos(50.03, 8.57))], connected=True)
        assert len(cache.get_aircraft(EUROPE, registrations=RegistrationSnapshot.from_simulator(state))) == 2

        state.update(ai=[SimAircraft('DLH123', Pos(50.03, 8.57))], debug=True)
        assert len(cache.get_aircraft(EUROPE, registrations=RegistrationSnapshot.from_simulator(state))) == 2

    def test_user_aircraft_always_included(self):
        state = SimulatorState()
        state.update(user=SimAircraft('N12345', Pos(47.4, -122.3)), connected=False)
        assert 'N12345' in RegistrationSnapshot.from_simulator(state)

    def test_empty_registration_ignored(self):
        snapshot = RegistrationSnapshot.from_aircraft(SimAircraft('', Pos(0, 0)), [SimAircraft('X', Pos(1, 1))])
        assert snapshot.keys == frozenset({'X'})


class TestRectCache:

    def test_update_clears_on_growth(self):
        rect_cache = RectCache(0.2, 0.1)
        assert rect_cache.update(EUROPE, None, lazy=False)

        rect_cache.items.append('x')
        rect_cache.mark_loaded(EUROPE, None)
        assert not rect_cache.update(Rect(-9, 36, 19, 59), None, lazy=False)
        assert rect_cache.items == ['x']

        assert rect_cache.update(Rect(-50, 36, 19, 59), None, lazy=False)
        assert rect_cache.items == []

    def test_lazy_update_never_clears(self):
        rect_cache = RectCache(0.2, 0.1)
        rect_cache.items.append('x')
        assert not rect_cache.update(EUROPE, None, lazy=True)
        assert rect_cache.items == ['x']
