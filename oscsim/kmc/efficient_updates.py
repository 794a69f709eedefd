"""
Candidate event calculation and local event updates for the simulator.

After an event executes only the objects within the recalculation cutoff of
the changed coordinates get their candidate events recomputed, rather than
rebuilding the events of every object. For each recomputed object every
candidate gets a sampled execution time and the earliest one becomes the
object's active event (first-reaction method).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import ConsistencyError
from .events import Event, EventType
from .lattice import SiteType
from .neighborhood import Neighborhoods
from .objects import Charge, Exciton, Polaron, Spin

if TYPE_CHECKING:
    from .lattice import Coords
    from .objects import SimObject
    from .simulator import OSCSimulator

logger = logging.getLogger(__name__)


def _select_pathway(simulator: OSCSimulator, obj: SimObject, candidates: list[Event]) -> None:
    """
    Sample execution times and schedule the earliest candidate.

    Ties keep the candidate enumerated first.

    Raises:
        ConsistencyError: If the earliest execution time precedes the clock.
    """
    best: Event | None = None
    for event in candidates:
        event.calculate_execution_time(simulator.time, simulator.rng)
        if best is None or event.execution_time < best.execution_time:
            best = event
    assert best is not None
    if best.execution_time < simulator.time:
        simulator.catalog.clear_active(obj.object_id)
        raise ConsistencyError(
            f"Fastest event of object {obj.object_id} executes at {best.execution_time:.6e} s, "
            f"before the current time {simulator.time:.6e} s"
        )
    simulator.catalog.schedule(obj.object_id, best)


def calculate_exciton_events(simulator: OSCSimulator, exciton: Exciton) -> None:
    """
    Enumerate and schedule the candidate events of one exciton.

    Candidates are annihilation with an occupied neighbor within the FRET
    range, dissociation onto an unoccupied site of the other material within
    the dissociation range, hopping within the FRET range, recombination, and
    intersystem crossing.

    Args:
        simulator: Simulator instance.
        exciton: Exciton whose events are recalculated.

    Raises:
        ConsistencyError: If no candidate has a positive rate or the selected
            execution time precedes the clock.
    """
    p = simulator.params
    lattice = simulator.lattice
    rates = simulator.rate_calculator
    neighborhoods = simulator.neighborhoods
    origin = exciton.coords
    origin_site = lattice.get_site(origin)
    on_acceptor = origin_site.site_type == SiteType.ACCEPTOR
    is_singlet = exciton.spin == Spin.SINGLET
    use_fret = is_singlet or p.enable_fret_triplet_annihilation

    if on_acceptor:
        triplet_localization = p.triplet_localization_acceptor
    else:
        triplet_localization = p.triplet_localization_donor

    candidates: list[Event] = []
    for offset in neighborhoods.exciton_offsets:
        if not lattice.check_move_validity(origin, offset.i, offset.j, offset.k):
            continue
        dest = lattice.calculate_destination_coords(origin, offset.i, offset.j, offset.k)
        if dest == origin:
            continue
        d2 = lattice.calculate_lattice_distance_squared(origin, dest)
        distance = neighborhoods.distance(d2)
        in_fret_range = Neighborhoods.within(distance, p.fret_cutoff)
        in_diss_range = Neighborhoods.within(distance, p.exciton_dissociation_cutoff)
        if not in_fret_range and not in_diss_range:
            continue
        dest_site = lattice.get_site(dest)

        if dest_site.is_occupied():
            if not in_fret_range:
                continue
            target = simulator.objects.get(dest_site.object_id)
            if isinstance(target, Exciton):
                # Triplets cannot annihilate singlets
                if not is_singlet and target.spin == Spin.SINGLET:
                    continue
                event_type = EventType.EXCITON_EXCITON_ANNIHILATION
                if on_acceptor:
                    prefactor = p.r_exciton_exciton_annihilation_acceptor
                else:
                    prefactor = p.r_exciton_exciton_annihilation_donor
            else:
                event_type = EventType.EXCITON_POLARON_ANNIHILATION
                if on_acceptor:
                    prefactor = p.r_exciton_polaron_annihilation_acceptor
                else:
                    prefactor = p.r_exciton_polaron_annihilation_donor
            if use_fret:
                rate = rates.calculate_fret_rate(prefactor, distance, 0.0)
            else:
                rate = rates.calculate_dexter_rate(prefactor, triplet_localization, distance, 0.0)
            candidates.append(
                Event(
                    event_type=event_type,
                    object_id=exciton.object_id,
                    dest_coords=dest,
                    target_id=target.object_id,
                    rate=rate,
                )
            )
            continue

        delta_site = dest_site.energy - origin_site.energy

        if dest_site.site_type != origin_site.site_type and in_diss_range:
            delta_energy = _dissociation_energy(simulator, exciton, dest, d2, delta_site)
            if on_acceptor:
                prefactor = p.r_exciton_dissociation_acceptor
                if is_singlet:
                    localization = p.singlet_localization_acceptor
                else:
                    localization = p.triplet_localization_acceptor
                reorganization = p.reorganization_acceptor
            else:
                prefactor = p.r_exciton_dissociation_donor
                localization = (
                    p.singlet_localization_donor if is_singlet else p.triplet_localization_donor
                )
                reorganization = p.reorganization_donor
            candidates.append(
                Event(
                    event_type=EventType.EXCITON_DISSOCIATION,
                    object_id=exciton.object_id,
                    dest_coords=dest,
                    rate=rates.calculate_charge_transfer_rate(
                        prefactor, localization, distance, delta_energy, reorganization
                    ),
                    delta_energy=delta_energy,
                )
            )

        if in_fret_range:
            delta_energy = delta_site
            if is_singlet:
                if dest_site.site_type != origin_site.site_type:
                    gap_donor = p.homo_donor - p.lumo_donor - p.e_exciton_binding_donor
                    gap_acceptor = p.homo_acceptor - p.lumo_acceptor - p.e_exciton_binding_acceptor
                    if on_acceptor:
                        delta_energy += gap_donor - gap_acceptor
                    else:
                        delta_energy += gap_acceptor - gap_donor
                prefactor = (
                    p.r_singlet_hopping_acceptor if on_acceptor else p.r_singlet_hopping_donor
                )
                rate = rates.calculate_fret_rate(prefactor, distance, delta_energy)
            else:
                prefactor = (
                    p.r_triplet_hopping_acceptor if on_acceptor else p.r_triplet_hopping_donor
                )
                rate = rates.calculate_dexter_rate(
                    prefactor, triplet_localization, distance, delta_energy
                )
            candidates.append(
                Event(
                    event_type=EventType.EXCITON_HOP,
                    object_id=exciton.object_id,
                    dest_coords=dest,
                    rate=rate,
                    delta_energy=delta_energy,
                )
            )

    # Unimolecular events
    if is_singlet:
        lifetime = p.singlet_lifetime_acceptor if on_acceptor else p.singlet_lifetime_donor
        crossing_rate = p.r_exciton_isc_acceptor if on_acceptor else p.r_exciton_isc_donor
    else:
        lifetime = p.triplet_lifetime_acceptor if on_acceptor else p.triplet_lifetime_donor
        if on_acceptor:
            crossing_rate = rates.calculate_risc_rate(
                p.r_exciton_risc_acceptor, p.e_exciton_st_acceptor
            )
        else:
            crossing_rate = rates.calculate_risc_rate(p.r_exciton_risc_donor, p.e_exciton_st_donor)
    candidates.append(
        Event(
            event_type=EventType.EXCITON_RECOMBINATION,
            object_id=exciton.object_id,
            rate=rates.calculate_recombination_rate(lifetime),
        )
    )
    candidates.append(
        Event(
            event_type=EventType.EXCITON_INTERSYSTEM_CROSSING,
            object_id=exciton.object_id,
            rate=crossing_rate,
        )
    )

    candidates = [event for event in candidates if event.rate > 0]
    if not candidates:
        simulator.catalog.clear_active(exciton.object_id)
        raise ConsistencyError(f"No valid events could be calculated for {exciton}")

    _select_pathway(simulator, exciton, candidates)


def _dissociation_energy(
    simulator: OSCSimulator, exciton: Exciton, dest: Coords, d2: int, delta_site: float
) -> float:
    """Energy change of splitting an exciton into a charge pair across the interface."""
    p = simulator.params
    origin = exciton.coords
    potential = simulator.e_potential
    polarons = simulator.objects.polarons
    coulomb = simulator.coulomb
    pair = coulomb.pair_energy(d2)

    if simulator.lattice.get_site(origin).site_type == SiteType.ACCEPTOR:
        coulomb_final = (
            coulomb.calculate_coulomb(Charge.ELECTRON, origin, polarons)
            + coulomb.calculate_coulomb(Charge.HOLE, dest, polarons)
            - pair
        )
        delta_energy = (
            delta_site
            + (p.homo_donor - p.homo_acceptor)
            + (coulomb_final + p.e_exciton_binding_donor)
            - (potential[dest.z] - potential[origin.z])
        )
        if exciton.spin == Spin.TRIPLET:
            delta_energy += p.e_exciton_st_acceptor
    else:
        coulomb_final = (
            coulomb.calculate_coulomb(Charge.HOLE, origin, polarons)
            + coulomb.calculate_coulomb(Charge.ELECTRON, dest, polarons)
            - pair
        )
        delta_energy = (
            delta_site
            - (p.lumo_acceptor - p.lumo_donor)
            + (coulomb_final + p.e_exciton_binding_donor)
            + (potential[dest.z] - potential[origin.z])
        )
        if exciton.spin == Spin.TRIPLET:
            delta_energy += p.e_exciton_st_donor
    return delta_energy


def calculate_polaron_events(simulator: OSCSimulator, polaron: Polaron) -> None:
    """
    Enumerate and schedule the candidate events of one polaron.

    Candidates are recombination with a neighboring hole (electrons only),
    hopping onto unoccupied sites within the hopping cutoff, and extraction
    at the collecting electrode. A polaron without candidates is left
    without an active event.

    Raises:
        PhaseRestrictionError: If the polaron sits on a forbidden site type.
        ConsistencyError: If the selected execution time precedes the clock.
    """
    p = simulator.params
    lattice = simulator.lattice
    rates = simulator.rate_calculator
    neighborhoods = simulator.neighborhoods
    origin = polaron.coords
    origin_site = lattice.get_site(origin)
    simulator.objects.check_phase_restriction(polaron.charge, origin_site.site_type, origin)

    on_acceptor = origin_site.site_type == SiteType.ACCEPTOR
    if on_acceptor:
        hop_prefactor = p.r_polaron_hopping_acceptor
        localization = p.polaron_localization_acceptor
        reorganization = p.reorganization_acceptor
    else:
        hop_prefactor = p.r_polaron_hopping_donor
        localization = p.polaron_localization_donor
        reorganization = p.reorganization_donor

    coulomb_initial = simulator.calculate_object_coulomb(polaron, origin)
    potential = simulator.e_potential

    candidates: list[Event] = []
    for offset in neighborhoods.polaron_offsets:
        if not lattice.check_move_validity(origin, offset.i, offset.j, offset.k):
            continue
        dest = lattice.calculate_destination_coords(origin, offset.i, offset.j, offset.k)
        if dest == origin:
            continue
        d2 = lattice.calculate_lattice_distance_squared(origin, dest)
        distance = neighborhoods.distance(d2)
        if not Neighborhoods.within(distance, p.polaron_hopping_cutoff):
            continue
        dest_site = lattice.get_site(dest)

        if dest_site.is_occupied():
            if not polaron.is_electron:
                continue
            target = simulator.objects.get(dest_site.object_id)
            if isinstance(target, Polaron) and target.charge == Charge.HOLE:
                candidates.append(
                    Event(
                        event_type=EventType.POLARON_RECOMBINATION,
                        object_id=polaron.object_id,
                        dest_coords=dest,
                        target_id=target.object_id,
                        rate=rates.calculate_miller_abrahams_rate(
                            p.r_polaron_recombination, localization, distance, 0.0
                        ),
                    )
                )
            continue

        if p.enable_phase_restriction and dest_site.site_type != origin_site.site_type:
            continue

        delta_energy = dest_site.energy - origin_site.energy
        delta_energy += simulator.calculate_object_coulomb(polaron, dest) - coulomb_initial
        potential_change = potential[dest.z] - potential[origin.z]
        dz = lattice.calculate_periodic_correction(origin, dest, 2)
        if dz < 0:
            potential_change -= p.internal_potential
        elif dz > 0:
            potential_change += p.internal_potential
        if polaron.is_electron:
            delta_energy += potential_change
        else:
            delta_energy -= potential_change
        if dest_site.site_type != origin_site.site_type:
            if polaron.is_electron:
                offset_energy = p.lumo_acceptor - p.lumo_donor
            else:
                offset_energy = p.homo_acceptor - p.homo_donor
            if on_acceptor:
                offset_energy = -offset_energy
            delta_energy -= offset_energy

        candidates.append(
            Event(
                event_type=EventType.POLARON_HOP,
                object_id=polaron.object_id,
                dest_coords=dest,
                rate=rates.calculate_charge_transfer_rate(
                    hop_prefactor, localization, distance, delta_energy, reorganization
                ),
                delta_energy=delta_energy,
            )
        )

    if simulator.extraction_enabled:
        a = lattice.unit_size
        if polaron.is_electron:
            distance = a * (origin.z + 0.5)
        else:
            distance = a * (lattice.height - origin.z - 0.5)
        if Neighborhoods.within(distance, p.polaron_hopping_cutoff):
            candidates.append(
                Event(
                    event_type=EventType.POLARON_EXTRACTION,
                    object_id=polaron.object_id,
                    rate=rates.calculate_miller_abrahams_rate(
                        hop_prefactor, localization, distance, 0.0
                    ),
                )
            )

    candidates = [event for event in candidates if event.rate > 0]
    if not candidates:
        simulator.catalog.clear_active(polaron.object_id)
        return

    _select_pathway(simulator, polaron, candidates)


def calculate_object_events(simulator: OSCSimulator, obj: SimObject) -> None:
    """Recalculate the events of one object."""
    if isinstance(obj, Exciton):
        calculate_exciton_events(simulator, obj)
    elif isinstance(obj, Polaron):
        calculate_polaron_events(simulator, obj)


def find_recalc_objects(
    simulator: OSCSimulator, coords_initial: Coords, coords_final: Coords
) -> list[SimObject]:
    """
    Objects whose events may have changed after a mutation.

    Args:
        simulator: Simulator instance.
        coords_initial: Coordinates before the mutation.
        coords_final: Coordinates after the mutation.

    Returns:
        Every object within the recalculation cutoff of either coordinate,
        or every live object when full recalculation is enabled.
    """
    objects = simulator.objects.all_objects()
    if simulator.params.enable_full_recalc:
        return objects

    lattice = simulator.lattice
    cutoff = simulator.params.recalc_cutoff
    neighborhoods = simulator.neighborhoods
    affected = []
    for obj in objects:
        d2_initial = lattice.calculate_lattice_distance_squared(coords_initial, obj.coords)
        d2_final = lattice.calculate_lattice_distance_squared(coords_final, obj.coords)
        if Neighborhoods.within(neighborhoods.distance(min(d2_initial, d2_final)), cutoff):
            affected.append(obj)
    return affected


def update_events_after_execution(
    simulator: OSCSimulator, coords_initial: Coords, coords_final: Coords
) -> None:
    """
    Update all events affected by an executed event.

    Args:
        simulator: Simulator instance.
        coords_initial: Coordinates of the initiating object before execution.
        coords_final: Destination or final coordinates of the event.
    """
    affected = find_recalc_objects(simulator, coords_initial, coords_final)
    for obj in affected:
        calculate_object_events(simulator, obj)

    logger.debug(
        f"Event update: recalculated {len(affected)} objects, "
        f"{len(simulator.catalog)} events pending"
    )


def initialize_all_events(simulator: OSCSimulator) -> None:
    """
    Calculate the events of every live object.

    Called after bulk object creation and at the start of a run.
    """
    for obj in simulator.objects.all_objects():
        calculate_object_events(simulator, obj)
