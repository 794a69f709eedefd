"""
Tests for site energies: disorder models, correlated disorder, interfacial
shifts, file import/export and the energy correlation function.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from oscsim.data.osc_parameters import (
    CorrelationKernel,
    DOSModel,
    MorphologyType,
    SimulationParameters,
)
from oscsim.kmc.energies import (
    apply_correlated_disorder,
    apply_interfacial_shift,
    assign_site_energies,
    calculate_dos_correlation,
    create_disorder,
    export_energies,
    get_energy_array,
    import_energies,
)
from oscsim.kmc.errors import ConfigurationError, EnergyImportError
from oscsim.kmc.lattice import Coords, Lattice
from oscsim.kmc.morphology import create_bilayer, create_neat
from oscsim.kmc.objects import Charge
from oscsim.kmc.simulator import OSCSimulator


def neat_lattice(size: int, periodic_z: bool = True) -> Lattice:
    lattice = Lattice(size, size, size, periodic_z=periodic_z)
    create_neat(lattice)
    return lattice


def test_no_disorder_gives_zero_energies():
    lattice = neat_lattice(4)
    params = SimulationParameters(dos_model=DOSModel.NONE)
    assert not create_disorder(lattice, params, np.random.default_rng(0)).any()


def test_gaussian_disorder_width():
    lattice = neat_lattice(20)
    params = SimulationParameters(dos_model=DOSModel.GAUSSIAN, energy_stdev_donor=0.08)
    energies = create_disorder(lattice, params, np.random.default_rng(0))
    assert energies.std() == pytest.approx(0.08, rel=0.05)
    assert abs(energies.mean()) < 0.005


def test_exponential_disorder_tail():
    lattice = neat_lattice(20)
    params = SimulationParameters(dos_model=DOSModel.EXPONENTIAL, energy_urbach_donor=0.03)
    energies = create_disorder(lattice, params, np.random.default_rng(0))
    assert (energies <= 0).all()
    assert energies.mean() == pytest.approx(-0.03, rel=0.05)


def test_unassigned_site_rejected():
    lattice = Lattice(3, 3, 3)
    with pytest.raises(ConfigurationError):
        create_disorder(lattice, SimulationParameters(), np.random.default_rng(0))


@pytest.mark.parametrize("kernel", [CorrelationKernel.GAUSSIAN, CorrelationKernel.POWER])
def test_correlated_disorder(kernel):
    lattice = neat_lattice(12)
    params = SimulationParameters(
        dos_model=DOSModel.GAUSSIAN,
        energy_stdev_donor=0.05,
        enable_correlated_disorder=True,
        correlation_kernel=kernel,
        power_kernel_exponent=-2,
        disorder_correlation_length=1.5,
    )
    rng = np.random.default_rng(4)
    random_energies = create_disorder(lattice, params, rng)
    energies = apply_correlated_disorder(lattice, random_energies, params)
    # Renormalized to the target width
    assert energies.std() == pytest.approx(0.05, rel=1e-9)
    assert abs(energies.mean()) < 1e-12

    for site, energy in zip(lattice.sites, energies.ravel(), strict=True):
        site.energy = float(energy)
    correlated = dict(calculate_dos_correlation(lattice, cutoff_radius=2.0))
    for site, energy in zip(lattice.sites, random_energies.ravel(), strict=True):
        site.energy = float(energy)
    uncorrelated = dict(calculate_dos_correlation(lattice, cutoff_radius=2.0))

    assert correlated[0.0] == 1.0
    assert correlated[1.0] > 0.3
    assert abs(uncorrelated[1.0]) < 0.1


def test_interfacial_shift_weights():
    lattice = Lattice(4, 4, 4, periodic_z=False)
    create_bilayer(lattice, 2)
    params = SimulationParameters(energy_shift_donor=0.1, energy_shift_acceptor=-0.2)
    shifted = apply_interfacial_shift(lattice, np.zeros(lattice.dims), params)
    weight = 1 + 4 / math.sqrt(2.0) + 4 / math.sqrt(3.0)
    assert shifted[1, 1, 2] == pytest.approx(0.1 * weight)
    assert shifted[1, 1, 1] == pytest.approx(-0.2 * weight)
    # Away from the interface and at the film surfaces nothing changes
    assert shifted[1, 1, 3] == 0.0
    assert shifted[1, 1, 0] == 0.0


def test_export_import_round_trip(tmp_path):
    lattice = neat_lattice(4)
    params = SimulationParameters(dos_model=DOSModel.GAUSSIAN)
    assign_site_energies(lattice, params, np.random.default_rng(9))
    path = tmp_path / "energies.txt"
    export_energies(lattice, path)

    other = neat_lattice(4)
    import_energies(other, path)
    assert np.array_equal(get_energy_array(other), get_energy_array(lattice))


@pytest.mark.parametrize(
    "content",
    [
        "",
        "4\n4\n",
        "4\n4\n5\n" + "0.0\n" * 80,
        "4\n4\n4\n" + "0.0\n" * 63,
        "4\n4\n4\n" + "x\n" * 64,
    ],
    ids=["empty", "no-height", "dimensions", "count", "malformed"],
)
def test_invalid_energy_files_leave_energies_unchanged(tmp_path, content):
    path = tmp_path / "energies.txt"
    path.write_text(content)
    lattice = neat_lattice(4)
    lattice.get_site(Coords(1, 2, 3)).energy = 0.25
    with pytest.raises(EnergyImportError):
        import_energies(lattice, path)
    assert lattice.get_site(Coords(1, 2, 3)).energy == 0.25
    assert sum(site.energy for site in lattice.sites) == 0.25


def test_simulator_imports_and_exports_energies(tmp_path):
    path = tmp_path / "energies.txt"
    lattice = neat_lattice(3, periodic_z=False)
    for i, site in enumerate(lattice.sites):
        site.energy = 0.01 * i
    export_energies(lattice, path)

    params = SimulationParameters(
        length=3,
        width=3,
        height=3,
        enable_import_energies=True,
        energies_import_filename=str(path),
    )
    sim = OSCSimulator(params, seed=0)
    assert sim.get_site_energy(Coords(0, 0, 2)) == pytest.approx(0.02)
    assert sim.get_site_energy(Coords(2, 2, 2)) == pytest.approx(0.26)

    out = tmp_path / "exported.txt"
    sim.export_energies(out)
    assert out.read_text() == path.read_text()

    bad = SimulationParameters(
        length=4,
        width=3,
        height=3,
        enable_import_energies=True,
        energies_import_filename=str(path),
    )
    with pytest.raises(EnergyImportError):
        OSCSimulator(bad, seed=0)


def test_invalid_site_queries_latch_error():
    sim = OSCSimulator(SimulationParameters(length=3, width=3, height=3), seed=0)
    assert math.isnan(sim.get_site_energy(Coords(3, 0, 0)))
    assert sim.error_found
    sim = OSCSimulator(SimulationParameters(length=3, width=3, height=3), seed=0)
    assert sim.get_site_type(Coords(0, 0, -1)) is None
    assert sim.error_found


@pytest.mark.parametrize("coords", [Coords(2, 2, 5), Coords(2, 2, 50), Coords(-1, 0, 0)])
def test_coulomb_queries_outside_lattice_latch_error(coords):
    params = SimulationParameters(length=5, width=5, height=5, enable_periodic_z=False)
    sim = OSCSimulator(params, seed=0)
    sim.switch_light_off()
    sim.create_hole(Coords(2, 2, 4))
    assert not math.isnan(sim.calculate_coulomb(Charge.HOLE, Coords(2, 2, 3)))
    assert not sim.error_found

    assert math.isnan(sim.calculate_coulomb(Charge.HOLE, coords))
    assert sim.error_found
    assert "Coulomb energy" in sim.error_message

    sim = OSCSimulator(params, seed=0)
    sim.switch_light_off()
    hole = sim.create_hole(Coords(2, 2, 4))
    assert math.isnan(sim.calculate_object_coulomb(hole, coords))
    assert sim.error_found


def test_dos_correlation_without_disorder():
    assert calculate_dos_correlation(neat_lattice(4)) == [(0.0, 1.0)]


def test_simulator_dos_correlation_is_stored():
    params = SimulationParameters(
        length=6, width=6, height=6, enable_periodic_z=True, dos_model=DOSModel.GAUSSIAN,
        morphology=MorphologyType.NEAT,
    )
    sim = OSCSimulator(params, seed=3)
    data = sim.calculate_dos_correlation()
    assert data is sim.dos_correlation_data
    assert data[0] == (0.0, 1.0)
    assert len(data) > 1
