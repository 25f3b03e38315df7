"""Tests for axial hex geometry."""

import pytest

from sphere.hexmath import (
    AXIAL_DIRECTIONS, axial_to_pixel, field_of_view, hex_direction,
    hex_distance, hex_id, hex_line, hex_neighbors, hex_ring, hex_spiral,
    parse_hex_id, pixel_to_axial,
)

SAMPLE = [(0, 0), (3, -3), (-2, 1), (1, 2), (-3, 0), (2, -1)]


class TestDistance:
    def test_symmetric(self):
        for a in SAMPLE:
            for b in SAMPLE:
                assert hex_distance(a, b) == hex_distance(b, a)

    def test_zero_to_self(self):
        for a in SAMPLE:
            assert hex_distance(a, a) == 0

    def test_known_values(self):
        assert hex_distance((0, 0), (3, -3)) == 3
        assert hex_distance((0, 0), (2, 1)) == 3
        assert hex_distance((-3, 0), (3, 0)) == 6


class TestNeighbors:
    def test_six_neighbors_at_distance_one(self):
        for q, r in SAMPLE:
            neighbors = hex_neighbors(q, r)
            assert len(neighbors) == 6
            assert len(set(neighbors)) == 6
            assert all(hex_distance((q, r), n) == 1 for n in neighbors)

    def test_directions_cover_all_neighbors(self):
        assert set(hex_neighbors(0, 0)) == set(AXIAL_DIRECTIONS)


class TestIds:
    def test_round_trip(self):
        for q, r in SAMPLE:
            assert parse_hex_id(hex_id(q, r)) == (q, r)

    def test_format(self):
        assert hex_id(2, -1) == "2,-1"

    @pytest.mark.parametrize("bad", ["", "1", "1,2,3", "a,b"])
    def test_malformed_ids_raise(self, bad):
        with pytest.raises(ValueError):
            parse_hex_id(bad)


class TestShapes:
    def test_ring_sizes(self):
        assert hex_ring((0, 0), 0) == [(0, 0)]
        for radius in (1, 2, 3):
            ring = hex_ring((0, 0), radius)
            assert len(ring) == 6 * radius
            assert all(hex_distance((0, 0), h) == radius for h in ring)

    def test_spiral_counts(self):
        assert len(hex_spiral((0, 0), 3)) == 37
        assert hex_spiral((0, 0), 3)[0] == (0, 0)

    def test_line_endpoints_and_length(self):
        line = hex_line((0, 0), (3, -1))
        assert line[0] == (0, 0)
        assert line[-1] == (3, -1)
        assert len(line) == hex_distance((0, 0), (3, -1)) + 1
        for a, b in zip(line, line[1:]):
            assert hex_distance(a, b) == 1

    def test_pixel_round_trip(self):
        for q, r in SAMPLE:
            x, y = axial_to_pixel(q, r, 50)
            assert pixel_to_axial(x, y, 50) == (q, r)


class TestFieldOfView:
    def test_open_ground_sees_full_radius(self):
        seen = field_of_view((0, 0), 2, [])
        assert seen == set(hex_spiral((0, 0), 2))

    def test_blocker_hides_hex_behind_it(self):
        seen = field_of_view((0, 0), 2, [(1, 0)])
        assert (1, 0) in seen
        assert (2, 0) not in seen
        assert (-2, 0) in seen


def test_hex_direction_names():
    assert hex_direction((0, 0), (1, 0)) == "E"
    assert hex_direction((0, 0), (-1, 0)) == "W"
    assert hex_direction((0, 0), (0, 0)) is None
