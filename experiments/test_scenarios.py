"""
Reference scenarios: exciton lifetime statistics, interfacial dissociation,
error latching on invalid placement and rejection of mismatched morphologies.
"""

from __future__ import annotations

import numpy as np
import pytest
from scipy import stats

from oscsim.data.osc_parameters import MorphologyType, SimulationParameters
from oscsim.kmc.errors import MorphologyImportError
from oscsim.kmc.lattice import Coords, Lattice, SiteType
from oscsim.kmc.morphology import create_bilayer, import_morphology
from oscsim.kmc.simulator import OSCSimulator


def test_isolated_exciton_lifetimes_are_exponential():
    """Without hopping or crossing, lifetimes follow exp(-t/tau)."""
    tau = 1e-9
    params = SimulationParameters(
        length=10,
        width=10,
        height=10,
        enable_periodic_z=True,
        n_tests=100000,
        r_singlet_hopping_donor=0.0,
        r_exciton_isc_donor=0.0,
        singlet_lifetime_donor=tau,
    )
    sim = OSCSimulator(params, seed=2024)
    sim.switch_light_off()

    for _ in range(10000):
        assert sim.create_exciton(Coords(5, 5, 5)) is not None
        assert sim.execute_next_event()

    lifetimes = np.asarray(sim.exciton_lifetimes)
    assert len(lifetimes) == 10000
    assert sim.counters.n_singlets_recombined == 10000
    assert np.mean(lifetimes) == pytest.approx(tau, rel=0.04)
    assert stats.kstest(lifetimes, "expon", args=(0, tau)).pvalue > 0.001


def test_exciton_dissociates_at_interface():
    """A donor exciton next to the acceptor splits into a tagged charge pair."""
    params = SimulationParameters(
        length=1,
        width=1,
        height=2,
        enable_periodic_x=False,
        enable_periodic_y=False,
        enable_periodic_z=False,
        morphology=MorphologyType.BILAYER,
        thickness_acceptor=1,
        thickness_donor=1,
        e_exciton_binding_donor=0.0,
        r_singlet_hopping_donor=0.0,
        r_exciton_isc_donor=0.0,
        singlet_lifetime_donor=1.0,
    )
    sim = OSCSimulator(params, seed=11)
    sim.switch_light_off()
    assert sim.get_site_type(Coords(0, 0, 0)) == SiteType.ACCEPTOR
    assert sim.get_site_type(Coords(0, 0, 1)) == SiteType.DONOR

    sim.create_exciton(Coords(0, 0, 1))
    assert sim.execute_next_event()

    c = sim.counters
    assert c.n_excitons_dissociated == 1
    assert c.n_singlets_dissociated == 1
    assert c.n_excitons == 0
    assert c.n_electrons == 1
    assert c.n_holes == 1
    (electron,) = sim.objects.electrons
    (hole,) = sim.objects.holes
    assert electron.coords == Coords(0, 0, 0)
    assert hole.coords == Coords(0, 0, 1)
    assert electron.tag == hole.tag
    assert not sim.error_found


def test_invalid_placement_latches_error():
    params = SimulationParameters(length=5, width=5, height=5)
    sim = OSCSimulator(params, seed=1)
    sim.switch_light_off()
    before = sim.counters.as_dict()

    assert sim.create_electron(Coords(99, 0, 0)) is None

    assert sim.counters.as_dict() == before
    assert len(sim.objects) == 0
    assert sim.error_found
    assert sim.error_message
    # Once latched, no more events are executed
    assert not sim.execute_next_event()


def test_mismatched_morphology_rejected(tmp_path):
    path = tmp_path / "morphology.txt"
    path.write_text("Ising_OPV v4.0 - compressed format\n5\n5\n6\n1\n1\n0\n2\n0\n0\n0\n0\n1150\n")

    lattice = Lattice(5, 5, 5)
    create_bilayer(lattice, 2)
    before = [site.site_type for site in lattice.sites]
    with pytest.raises(MorphologyImportError):
        import_morphology(lattice, path)
    assert [site.site_type for site in lattice.sites] == before


def test_simulator_rejects_mismatched_morphology(tmp_path):
    path = tmp_path / "morphology.txt"
    path.write_text("Ising_OPV v4.0 - compressed format\n5\n5\n6\n1\n1\n0\n2\n0\n0\n0\n0\n1150\n")
    params = SimulationParameters(
        length=5,
        width=5,
        height=5,
        morphology=MorphologyType.IMPORT,
        morphology_filename=str(path),
    )
    with pytest.raises(MorphologyImportError):
        OSCSimulator(params, seed=1)
