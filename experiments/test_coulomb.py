"""
Tests for the Coulomb interaction table and image charge terms.
"""

from __future__ import annotations

import math

import pytest

from oscsim.data.constants import COULOMB_CONSTANT, ELEMENTARY_CHARGE
from oscsim.kmc.coulomb import CoulombEngine
from oscsim.kmc.lattice import Coords, Lattice
from oscsim.kmc.objects import Charge, Polaron


def make_polaron(object_id: int, coords: Coords, charge: Charge) -> Polaron:
    return Polaron(object_id=object_id, coords=coords, charge=charge)


def test_table_matches_pair_formula():
    lattice = Lattice(10, 10, 10, unit_size=1.0, periodic_z=True)
    engine = CoulombEngine(lattice, 3.0, 4.0, cutoff=5.0)
    assert engine.coulomb_range == 25
    expected = COULOMB_CONSTANT * ELEMENTARY_CHARGE / (3.5 * 1e-9 * math.sqrt(2.0))
    assert engine.pair_energy(2) == pytest.approx(expected)
    assert engine.pair_energy(0) == 0.0
    assert engine.pair_energy(26) == 0.0


def test_signs_of_pair_interactions():
    lattice = Lattice(10, 10, 10, periodic_z=True)
    engine = CoulombEngine(lattice, 3.5, 3.5, cutoff=5.0)
    hole = make_polaron(1, Coords(5, 5, 5), Charge.HOLE)
    site = Coords(5, 5, 6)
    assert engine.calculate_coulomb(Charge.HOLE, site, [hole]) > 0
    assert engine.calculate_coulomb(Charge.ELECTRON, site, [hole]) < 0
    # Beyond the cutoff nothing is felt
    assert engine.calculate_coulomb(Charge.ELECTRON, Coords(0, 5, 0), [hole]) == 0.0


def test_interaction_is_symmetric():
    """The energy of A due to B equals the energy of B due to A."""
    lattice = Lattice(8, 8, 8, periodic_z=False)
    engine = CoulombEngine(lattice, 3.5, 3.5, cutoff=4.0, gaussian_delocalization=True)
    a = make_polaron(1, Coords(1, 2, 3), Charge.ELECTRON)
    b = make_polaron(2, Coords(2, 3, 4), Charge.HOLE)
    e_a = engine.calculate_coulomb(a.charge, a.coords, [a, b], exclude_id=a.object_id,
                                   include_image=False)
    e_b = engine.calculate_coulomb(b.charge, b.coords, [a, b], exclude_id=b.object_id,
                                   include_image=False)
    assert e_a == pytest.approx(e_b)
    assert e_a < 0


def test_image_terms_only_without_periodic_z():
    periodic = CoulombEngine(Lattice(4, 4, 4, periodic_z=True), 3.5, 3.5, cutoff=3.0)
    assert periodic.image_energy(0) == 0.0

    lattice = Lattice(4, 4, 4, periodic_z=False)
    engine = CoulombEngine(lattice, 3.5, 3.5, cutoff=3.0)
    # Image attraction lowers the energy and is symmetric about the film center
    assert engine.image_energy(0) < 0
    assert engine.image_energy(0) == pytest.approx(engine.image_energy(3))
    assert engine.image_energy(0) < engine.image_energy(1)
    alone = engine.calculate_coulomb(Charge.HOLE, Coords(1, 1, 0), [])
    assert alone == pytest.approx(engine.image_energy(0))
    assert engine.calculate_coulomb(Charge.HOLE, Coords(1, 1, 0), [], include_image=False) == 0.0


def test_gaussian_delocalization_screens_short_range():
    lattice = Lattice(6, 6, 6, periodic_z=True)
    point = CoulombEngine(lattice, 3.5, 3.5, cutoff=3.0)
    smeared = CoulombEngine(lattice, 3.5, 3.5, cutoff=3.0, gaussian_delocalization=True,
                            delocalization_length=1.0)
    assert smeared.pair_energy(1) < point.pair_energy(1)
    assert smeared.pair_energy(9) == pytest.approx(point.pair_energy(9), rel=1e-2)
