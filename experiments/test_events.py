"""
Tests for the event catalog, candidate enumeration and local event updates.
"""

from __future__ import annotations

import numpy as np
import pytest

from oscsim.data.osc_parameters import MorphologyType, SimulationParameters
from oscsim.kmc.efficient_updates import find_recalc_objects
from oscsim.kmc.errors import ConsistencyError, ObjectLookupError
from oscsim.kmc.events import (
    EXCITON_EVENT_TYPES,
    POLARON_EVENT_TYPES,
    Event,
    EventCatalog,
    EventType,
)
from oscsim.kmc.lattice import Coords
from oscsim.kmc.simulator import OSCSimulator


def make_sim(**overrides) -> OSCSimulator:
    """Small neat film with generation switched off."""
    values = {
        "length": 5,
        "width": 5,
        "height": 5,
        "enable_periodic_z": False,
        "n_tests": 1000,
    }
    values.update(overrides)
    sim = OSCSimulator(SimulationParameters(**values), seed=7)
    sim.switch_light_off()
    return sim


def test_execution_time_sampling():
    rng = np.random.default_rng(3)
    times = []
    for _ in range(20000):
        event = Event(EventType.EXCITON_RECOMBINATION, object_id=1, rate=1e9)
        times.append(event.calculate_execution_time(2.0, rng) - 2.0)
    assert min(times) >= 0.0
    assert np.mean(times) == pytest.approx(1e-9, rel=0.03)


def test_catalog_chooses_earliest_event():
    catalog = EventCatalog()
    catalog.allocate_slots(1, EXCITON_EVENT_TYPES)
    catalog.allocate_slots(2, POLARON_EVENT_TYPES)
    assert len(catalog) == 0
    assert catalog.choose_next_event() is None

    late = Event(EventType.EXCITON_HOP, object_id=1, execution_time=3.0)
    early = Event(EventType.POLARON_HOP, object_id=2, execution_time=1.0)
    catalog.schedule(1, late)
    catalog.schedule(2, early)
    assert len(catalog) == 2
    assert catalog.choose_next_event() is early

    generation = Event(EventType.EXCITON_CREATION, execution_time=0.5)
    catalog.set_generation_event(generation)
    assert len(catalog) == 3
    assert catalog.choose_next_event() is generation
    catalog.remove_generation_event()

    catalog.release_slots(2)
    assert catalog.choose_next_event() is late
    assert catalog.get_slot(1, EventType.EXCITON_HOP) is late


def test_catalog_rejects_bad_slots():
    catalog = EventCatalog()
    catalog.allocate_slots(1, POLARON_EVENT_TYPES)
    with pytest.raises(ConsistencyError):
        catalog.allocate_slots(1, POLARON_EVENT_TYPES)
    with pytest.raises(ConsistencyError):
        catalog.schedule(1, Event(EventType.EXCITON_HOP, object_id=1))
    with pytest.raises(ObjectLookupError):
        catalog.schedule(5, Event(EventType.POLARON_HOP, object_id=5))


def test_every_object_gets_an_active_event():
    sim = make_sim()
    exciton = sim.create_exciton(Coords(2, 2, 2))
    hole = sim.create_hole(Coords(0, 0, 2))
    for obj in (exciton, hole):
        event = sim.catalog.get_active(obj.object_id)
        assert event is not None
        assert event.object_id == obj.object_id
        assert event.execution_time >= sim.time
        assert event.rate > 0


def test_hole_extraction_only_near_collecting_electrode():
    # A column of three holes: none can hop, only the top one can be extracted
    sim = make_sim(
        length=1, width=1, height=3, enable_periodic_x=False, enable_periodic_y=False
    )
    bottom = sim.create_hole(Coords(0, 0, 0))
    middle = sim.create_hole(Coords(0, 0, 1))
    top = sim.create_hole(Coords(0, 0, 2))
    event = sim.catalog.get_active(top.object_id)
    assert event is not None
    assert event.event_type == EventType.POLARON_EXTRACTION
    # No hop and no extraction: the hole waits without an event
    assert sim.catalog.get_active(middle.object_id) is None
    assert sim.catalog.get_active(bottom.object_id) is None
    assert not sim.error_found

    assert sim.execute_next_event()
    assert sim.counters.n_holes_collected == 1
    # The freed site gives the middle hole a hop
    assert sim.catalog.get_active(middle.object_id) is not None


def test_exciton_polaron_annihilation():
    sim = make_sim(
        r_singlet_hopping_donor=0.0,
        r_exciton_isc_donor=0.0,
        singlet_lifetime_donor=1.0,
        r_polaron_hopping_donor=0.0,
        r_exciton_polaron_annihilation_donor=1e12,
    )
    hole = sim.create_hole(Coords(2, 2, 2))
    exciton = sim.create_exciton(Coords(2, 2, 3))
    event = sim.catalog.get_active(exciton.object_id)
    assert event.event_type == EventType.EXCITON_POLARON_ANNIHILATION
    assert event.target_id == hole.object_id

    assert sim.execute_next_event()
    assert sim.counters.n_excitons == 0
    assert sim.counters.n_holes == 1
    assert sim.counters.n_singlet_polaron_annihilations == 1
    # Annihilated excitons are not counted as recombined
    assert sim.counters.n_excitons_recombined == 0
    sim.objects.verify_consistency()


def test_singlet_singlet_annihilation():
    sim = make_sim(
        r_singlet_hopping_donor=0.0,
        r_exciton_isc_donor=0.0,
        singlet_lifetime_donor=1.0,
        r_exciton_exciton_annihilation_donor=1e12,
    )
    sim.create_exciton(Coords(2, 2, 2))
    sim.create_exciton(Coords(2, 2, 3))
    assert sim.execute_next_event()
    assert sim.counters.n_excitons == 1
    assert sim.counters.n_singlet_singlet_annihilations == 1
    assert len(sim.exciton_lifetimes) == 1


def test_polaron_recombination_geminate_and_bimolecular():
    params = {
        "enable_phase_restriction": False,
        "r_polaron_hopping_donor": 0.0,
        "r_polaron_recombination": 1e12,
    }
    # A pair sharing one tag: geminate
    sim = make_sim(**params)
    tag = sim.objects.next_polaron_tag()
    sim.objects.create_electron(Coords(2, 2, 2), sim.time, tag)
    sim.objects.create_hole(Coords(2, 2, 3), sim.time, tag)
    sim.calculate_all_events()
    assert sim.execute_next_event()
    assert sim.counters.n_polarons == 0
    assert sim.counters.n_electrons_recombined == 1
    assert sim.counters.n_holes_recombined == 1
    assert sim.counters.n_geminate_recombinations == 1

    # Independently created carriers: bimolecular
    sim = make_sim(**params)
    sim.create_hole(Coords(0, 0, 2))
    sim.create_electron(Coords(3, 3, 2))
    sim.create_hole(Coords(3, 3, 3))
    assert sim.execute_next_event()
    assert sim.counters.n_bimolecular_recombinations == 1
    assert sim.counters.n_geminate_recombinations == 0
    assert sim.counters.n_holes == 1


def test_carrier_created_after_dissociation_is_not_geminate():
    sim = make_sim(
        length=3,
        width=3,
        height=2,
        morphology=MorphologyType.BILAYER,
        thickness_acceptor=1,
        thickness_donor=1,
        r_singlet_hopping_donor=0.0,
        r_exciton_isc_donor=0.0,
        r_exciton_dissociation_donor=1e15,
        r_polaron_hopping_donor=0.0,
        r_polaron_hopping_acceptor=0.0,
        r_polaron_recombination=0.0,
    )
    sim.create_exciton(Coords(1, 1, 1))
    assert sim.execute_next_event()
    assert sim.counters.n_singlets_dissociated == 1
    pair_tag = sim.objects.electrons[0].tag
    assert sim.objects.holes[0].tag == pair_tag

    extra_electron = sim.create_electron(Coords(0, 0, 0))
    extra_hole = sim.create_hole(Coords(0, 0, 1))
    assert extra_electron.tag != pair_tag
    assert extra_hole.tag != pair_tag


def test_intersystem_crossing_flips_spin():
    sim = make_sim(
        r_singlet_hopping_donor=0.0,
        singlet_lifetime_donor=1.0,
        r_exciton_isc_donor=1e12,
    )
    exciton = sim.create_exciton(Coords(2, 2, 2))
    assert sim.execute_next_event()
    assert sim.counters.n_intersystem_crossings == 1
    assert sim.counters.n_triplets == 1
    assert sim.objects.get(exciton.object_id).species.value == "triplet"


def test_local_recalculation_radius():
    sim = make_sim(recalc_cutoff=1.5)
    near = sim.create_hole(Coords(1, 1, 1))
    far = sim.create_hole(Coords(4, 4, 4))
    affected = find_recalc_objects(sim, Coords(1, 1, 2), Coords(1, 2, 2))
    assert near in affected
    assert far not in affected

    full = make_sim(recalc_cutoff=1.5, enable_full_recalc=True)
    a = full.create_hole(Coords(1, 1, 1))
    b = full.create_hole(Coords(4, 4, 4))
    assert set(find_recalc_objects(full, Coords(1, 1, 2), Coords(1, 1, 2))) == {a, b}


def test_empty_catalog_latches_error():
    sim = make_sim()
    assert not sim.execute_next_event()
    assert sim.error_found
    assert sim.error_message
    assert sim.check_finished()
