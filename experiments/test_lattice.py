"""
Tests for the lattice: coordinate arithmetic, periodic boundaries and occupancy.
"""

from __future__ import annotations

import numpy as np
import pytest

from oscsim.kmc.errors import DestinationOccupiedError, InvalidCoordinatesError
from oscsim.kmc.lattice import Coords, Lattice, SiteType


def test_site_index_round_trip():
    """Flat indices follow x, y, z order and convert back to the same coordinates."""
    lattice = Lattice(4, 3, 5)
    assert lattice.num_sites == 60
    assert lattice.get_site_index(Coords(0, 0, 1)) == 1
    assert lattice.get_site_index(Coords(0, 1, 0)) == 5
    assert lattice.get_site_index(Coords(1, 0, 0)) == 15
    for index in (0, 7, 33, 59):
        assert lattice.get_site_index(lattice.get_site_coords(index)) == index


def test_out_of_range_coordinates_raise():
    lattice = Lattice(4, 4, 4)
    with pytest.raises(InvalidCoordinatesError):
        lattice.get_site(Coords(4, 0, 0))
    with pytest.raises(InvalidCoordinatesError):
        lattice.get_site(Coords(0, -1, 0))


def test_invalid_dimensions_rejected():
    with pytest.raises(ValueError):
        Lattice(0, 5, 5)
    with pytest.raises(ValueError):
        Lattice(5, 5, 5, unit_size=0.0)


def test_move_validity_respects_boundaries():
    """Offsets leaving a non-periodic axis are invalid; periodic axes wrap."""
    lattice = Lattice(5, 5, 5, periodic_x=True, periodic_y=True, periodic_z=False)
    corner = Coords(0, 0, 0)
    assert not lattice.check_move_validity(corner, 0, 0, 0)
    assert not lattice.check_move_validity(corner, 0, 0, -1)
    assert lattice.check_move_validity(corner, -1, 0, 0)
    assert lattice.calculate_destination_coords(corner, -1, 0, 0) == Coords(4, 0, 0)
    assert lattice.calculate_destination_coords(Coords(4, 4, 2), 1, 1, 1) == Coords(0, 0, 3)


def test_minimum_image_distance():
    lattice = Lattice(10, 10, 10, periodic_x=True, periodic_y=True, periodic_z=False)
    # Periodic x: 9 and 0 are neighbors
    assert lattice.calculate_lattice_distance_squared(Coords(0, 0, 0), Coords(9, 0, 0)) == 1
    # Non-periodic z: no wrapping
    assert lattice.calculate_lattice_distance_squared(Coords(0, 0, 0), Coords(0, 0, 9)) == 81
    assert lattice.calculate_lattice_distance_squared(Coords(1, 2, 3), Coords(2, 4, 5)) == 9


def test_periodic_correction_sign():
    lattice = Lattice(10, 10, 10, periodic_x=True, periodic_y=True, periodic_z=True)
    assert lattice.calculate_periodic_correction(Coords(9, 0, 0), Coords(0, 0, 0), 0) == 10
    assert lattice.calculate_periodic_correction(Coords(0, 0, 0), Coords(9, 0, 0), 0) == -10
    assert lattice.calculate_periodic_correction(Coords(3, 0, 0), Coords(4, 0, 0), 0) == 0


def test_occupancy_bookkeeping():
    lattice = Lattice(3, 3, 3)
    a, b = Coords(0, 0, 0), Coords(1, 0, 0)
    lattice.set_occupant(a, 7)
    assert lattice.is_occupied(a)
    with pytest.raises(DestinationOccupiedError):
        lattice.set_occupant(a, 8)

    lattice.move_occupant(a, b)
    assert not lattice.is_occupied(a)
    assert lattice.get_site(b).object_id == 7

    lattice.set_occupant(a, 9)
    with pytest.raises(DestinationOccupiedError):
        lattice.move_occupant(a, b)
    # A failed move leaves both sites untouched
    assert lattice.get_site(a).object_id == 9
    assert lattice.get_site(b).object_id == 7

    lattice.clear_occupant(b)
    assert not lattice.is_occupied(b)


def test_random_coords_in_bounds():
    lattice = Lattice(3, 4, 5)
    rng = np.random.default_rng(1)
    for _ in range(200):
        assert lattice.in_bounds(lattice.generate_random_coords(rng))


def test_count_site_types_and_volume():
    lattice = Lattice(2, 2, 2, unit_size=2.0)
    counts = lattice.count_site_types()
    assert counts[SiteType.UNASSIGNED] == 8
    assert lattice.volume == pytest.approx(8 * (2e-7) ** 3)
