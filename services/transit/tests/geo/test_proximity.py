"""Tests for the haversine proximity matcher."""

import logging
from types import SimpleNamespace

import pytest

from services.transit.geo.coordinates import encode
from services.transit.geo.proximity import haversine_km, match_nearby

# Kilometres per degree of latitude at R = 6371 km
KM_PER_DEGREE = 111.19492664

ORIGIN = (-0.2, -78.5)


def _north_of_origin(km: float) -> str:
    return encode(ORIGIN[0] + km / KM_PER_DEGREE, ORIGIN[1])


def _station(id_: int, coordinates: str | None) -> SimpleNamespace:
    return SimpleNamespace(id=id_, name=f"station-{id_}", coordinates=coordinates)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0.0

    def test_one_degree_of_latitude(self):
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(KM_PER_DEGREE, rel=1e-6)

    def test_symmetric(self):
        a = haversine_km(-0.18, -78.47, -2.17, -79.92)
        b = haversine_km(-2.17, -79.92, -0.18, -78.47)
        assert a == pytest.approx(b)

    def test_quito_to_guayaquil(self):
        # Roughly 270 km apart
        assert 260 < haversine_km(-0.1807, -78.4678, -2.1709, -79.9224) < 280

    def test_antipodal(self):
        assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(6371.0 * 3.141592653589793)


class TestMatchNearby:
    def test_filters_and_sorts_by_distance(self):
        far = _station(1, _north_of_origin(8))
        near = _station(2, _north_of_origin(0))
        mid = _station(3, _north_of_origin(3))

        matches = match_nearby([far, near, mid], *ORIGIN, radius_km=5)

        assert [m.record.id for m in matches] == [2, 3]
        assert matches[0].distance_km == pytest.approx(0.0, abs=1e-9)
        assert matches[1].distance_km == pytest.approx(3.0, rel=1e-6)

    def test_match_carries_decoded_point(self):
        record = _station(1, "-0.19,-78.5")
        [match] = match_nearby([record], *ORIGIN, radius_km=5)
        assert (match.latitude, match.longitude) == (-0.19, -78.5)

    def test_radius_is_inclusive(self):
        record = _station(1, _north_of_origin(3))
        distance = match_nearby([record], *ORIGIN, radius_km=10)[0].distance_km

        assert len(match_nearby([record], *ORIGIN, radius_km=distance)) == 1
        assert match_nearby([record], *ORIGIN, radius_km=distance * 0.999999) == []

    def test_equal_distances_keep_input_order(self):
        coords = _north_of_origin(1)
        records = [_station(i, coords) for i in (5, 3, 9)]

        matches = match_nearby(records, *ORIGIN, radius_km=2)

        assert [m.record.id for m in matches] == [5, 3, 9]

    def test_invalid_coordinates_are_skipped_and_logged(self, caplog):
        records = [
            _station(1, "not-a-point"),
            _station(2, "95,0"),
            _station(3, None),
            _station(4, ""),
            _station(5, _north_of_origin(1)),
        ]

        with caplog.at_level(logging.WARNING, logger="services.transit.geo.proximity"):
            matches = match_nearby(records, *ORIGIN, radius_km=5)

        assert [m.record.id for m in matches] == [5]
        assert "id=1" in caplog.text
        assert "id=2" in caplog.text

    def test_dict_records(self):
        records = [
            {"id": 1, "coordinates": _north_of_origin(4)},
            {"id": 2, "coordinates": _north_of_origin(1)},
        ]
        matches = match_nearby(records, *ORIGIN, radius_km=5)
        assert [m.record["id"] for m in matches] == [2, 1]

    def test_custom_coordinate_field(self):
        route = SimpleNamespace(id=7, start_coordinates=_north_of_origin(0.5))
        matches = match_nearby([route], *ORIGIN, radius_km=1, coordinate_field="start_coordinates")
        assert matches[0].record is route

    def test_custom_accessor(self):
        records = [("a", _north_of_origin(0.2)), ("b", _north_of_origin(9))]
        matches = match_nearby(records, *ORIGIN, radius_km=1, coordinates_of=lambda r: r[1])
        assert [m.record[0] for m in matches] == ["a"]

    def test_empty_input(self):
        assert match_nearby([], *ORIGIN) == []

    def test_accepts_generator(self):
        matches = match_nearby((_station(i, _north_of_origin(i)) for i in range(3)), *ORIGIN, radius_km=1.5)
        assert [m.record.id for m in matches] == [0, 1]
