"""
Main KMC simulator engine.

This module implements the event loop for excitons and polarons in an
organic semiconductor film: every live object holds one pending event chosen
by the first-reaction method, the earliest pending event is executed, and only
the objects near the changed sites get their events recalculated.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np

from ..analysis.steady import SteadyStateSampler
from ..analysis.transients import TransientSampler
from ..data.osc_parameters import DOSModel, RunMode, get_default_parameters
from .coulomb import CoulombEngine
from .efficient_updates import initialize_all_events, update_events_after_execution
from .energies import assign_site_energies, calculate_dos_correlation, export_energies
from .errors import (
    ConfigurationError,
    ConsistencyError,
    DestinationOccupiedError,
    OSCSimError,
    ResourceExhaustedError,
)
from .events import Event, EventCatalog, EventType
from .lattice import Coords, Lattice, SiteType
from .lifecycle import ObjectManager, SimulationCounters
from .morphology import initialize_architecture
from .neighborhood import Neighborhoods
from .objects import Charge, Exciton, Polaron, Spin
from .rates import RateCalculator

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from ..data.osc_parameters import SimulationParameters
    from .objects import SimObject

logger = logging.getLogger(__name__)


class OSCSimulator:
    """
    Kinetic Monte Carlo simulator for excitons and polarons.

    Errors raised while executing events are latched into ``error_found`` and
    ``error_message``; the simulation then stops at the next finish check.

    Attributes:
        params: Simulation parameters.
        sim_id: Identifier used in log messages.
        lattice: Lattice of donor and acceptor sites.
        counters: Live populations and event tallies.
        catalog: Pending events.
        objects: Registry of live excitons and polarons.
        time: Current simulation time (s).
        rng: Random number generator owned by this simulation.
    """

    def __init__(
        self,
        params: SimulationParameters | None = None,
        seed: int | None = None,
        sim_id: int = 0,
    ) -> None:
        """
        Initialize the simulator and set up the selected run mode.

        Args:
            params: Simulation parameters. If None, uses default parameters.
            seed: Random seed for reproducibility.
            sim_id: Identifier of this simulation.

        Raises:
            ConfigurationError: If the parameters are inconsistent or the
                morphology or energy input files are invalid.
        """
        self.params = params if params is not None else get_default_parameters()
        problems = self.params.check_parameters()
        if problems:
            raise ConfigurationError("Invalid parameters: " + "; ".join(problems))

        p = self.params
        self.sim_id = sim_id
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.time = 0.0
        self.error_found = False
        self.error_message = ""

        self.lattice = Lattice(
            p.length,
            p.width,
            p.height,
            unit_size=p.unit_size,
            periodic_x=p.enable_periodic_x,
            periodic_y=p.enable_periodic_y,
            periodic_z=p.enable_periodic_z,
        )
        self.counters = SimulationCounters()
        self.catalog = EventCatalog()
        self.objects = ObjectManager(
            self.lattice, self.catalog, self.counters, p.enable_phase_restriction
        )
        self.rate_calculator = RateCalculator(p)
        self.neighborhoods = Neighborhoods(
            p.unit_size, p.fret_cutoff, p.exciton_dissociation_cutoff, p.polaron_hopping_cutoff
        )

        self.site_counts = initialize_architecture(self.lattice, p, self.rng)
        assign_site_energies(self.lattice, p, self.rng)

        self.coulomb = CoulombEngine(
            self.lattice,
            p.dielectric_donor,
            p.dielectric_acceptor,
            p.coulomb_cutoff,
            gaussian_delocalization=p.enable_gaussian_polaron_delocalization,
            delocalization_length=p.polaron_delocalization_length,
        )
        height = self.lattice.height
        self.e_potential = (
            p.internal_potential * height / (height + 1)
            - p.internal_potential / (height + 1) * np.arange(height)
        )

        cell_volume = (1e-7 * p.unit_size) ** 3
        self.r_generation_donor = (
            p.exciton_generation_rate_donor * self.site_counts[SiteType.DONOR] * cell_volume
        )
        self.r_generation_acceptor = (
            p.exciton_generation_rate_acceptor * self.site_counts[SiteType.ACCEPTOR] * cell_volume
        )

        self.extraction_enabled = not (
            p.run_mode == RunMode.STEADY_TRANSPORT
            or (p.run_mode == RunMode.DYNAMICS and not p.enable_dynamics_extraction)
        )
        self.is_light_on = False

        # Collected data
        self.exciton_lifetimes: list[float] = []
        self.exciton_diffusion_distances: list[float] = []
        self.exciton_hop_distances: list[int] = []
        self.transit_times: list[float] = []
        n_columns = self.lattice.length * self.lattice.width
        self.electron_extraction_map = [0] * n_columns
        self.hole_extraction_map = [0] * n_columns
        self.dos_correlation_data: list[tuple[float, float]] = []
        self.transients: TransientSampler | None = None
        self.steady: SteadyStateSampler | None = None

        try:
            self._setup_run_mode()
        except OSCSimError as e:
            self.set_error(str(e))

        logger.info(
            f"Initialized simulation {sim_id}: {self.lattice}, mode={p.run_mode.value}, "
            f"T={p.temperature}K, V={p.internal_potential}V, objects={len(self.objects)}"
        )

    # ------------------------------------------------------------------
    # Run mode setup
    # ------------------------------------------------------------------

    def _setup_run_mode(self) -> None:
        p = self.params
        if p.run_mode in (RunMode.EXCITON_DIFFUSION, RunMode.IQE):
            if self.r_generation_donor + self.r_generation_acceptor > 0:
                self.is_light_on = True
                self._arm_generation_event()
        elif p.run_mode == RunMode.DYNAMICS:
            self.transients = TransientSampler(
                p.dynamics_transient_start, p.dynamics_transient_end, p.dynamics_pnts_per_decade
            )
            self._generate_dynamics_excitons()
        elif p.run_mode == RunMode.TOF:
            self.transients = TransientSampler(
                p.tof_transient_start, p.tof_transient_end, p.tof_pnts_per_decade
            )
            self._generate_tof_polarons()
        elif p.run_mode == RunMode.STEADY_TRANSPORT:
            self.steady = SteadyStateSampler(p.n_equilibration_events)
            self._generate_steady_polarons()

    def _arm_generation_event(self) -> None:
        """Sample the next exciton generation time."""
        event = Event(
            event_type=EventType.EXCITON_CREATION,
            rate=self.r_generation_donor + self.r_generation_acceptor,
        )
        event.calculate_execution_time(self.time, self.rng)
        self.catalog.set_generation_event(event)

    def switch_light_off(self) -> None:
        """Stop exciton generation."""
        self.catalog.remove_generation_event()
        self.is_light_on = False
        logger.info(f"Simulation {self.sim_id}: light switched off at t={self.time:.4e}s")

    def _generate_dynamics_excitons(self) -> None:
        """Start a dynamics transient cycle with a fresh exciton population."""
        p = self.params
        assert self.transients is not None
        if self.counters.n_excitons_created > 0:
            assign_site_energies(self.lattice, p, self.rng)

        self.transients.start_cycle(self.time)
        n_cycles = self.transients.n_cycles
        if n_cycles == 1 or n_cycles % 10 == 0:
            logger.info(
                f"Simulation {self.sim_id}: dynamics transient cycle {n_cycles}, "
                f"generating {p.n_initial_excitons} initial excitons"
            )
        for _ in range(p.n_initial_excitons):
            coords = self._calculate_exciton_creation_coords()
            exciton = self.objects.create_exciton(coords, Spin.SINGLET, self.time)
            self.transients.remember_energy(exciton.object_id, self.lattice.get_site(coords).energy)
        self.transients.remember_count("singlet", self.counters.n_singlets)
        self.transients.remember_count("triplet", self.counters.n_triplets)
        self.transients.remember_count("electron", self.counters.n_electrons)
        self.transients.remember_count("hole", self.counters.n_holes)
        initialize_all_events(self)

    def _generate_tof_polarons(self) -> None:
        """
        Start a time-of-flight cycle with carriers on the injecting plane.

        Electrons start at the top plane and holes at the bottom plane.

        Raises:
            ResourceExhaustedError: If the plane has too few allowed sites.
        """
        p = self.params
        assert self.transients is not None
        if self.counters.n_electrons_collected > 0 or self.counters.n_holes_collected > 0:
            assign_site_energies(self.lattice, p, self.rng)

        is_electron = p.tof_polaron_type == "electron"
        z = self.lattice.height - 1 if is_electron else 0
        forbidden = SiteType.DONOR if is_electron else SiteType.ACCEPTOR
        candidates = []
        for x in range(self.lattice.length):
            for y in range(self.lattice.width):
                coords = Coords(x, y, z)
                site_type = self.lattice.get_site(coords).site_type
                if p.enable_phase_restriction and site_type == forbidden:
                    continue
                candidates.append(coords)
        n = p.tof_initial_polarons
        if len(candidates) < n:
            raise ResourceExhaustedError(
                f"{n} sites were not available to place the initial time-of-flight polarons"
            )

        if p.enable_tof_random_placement:
            order = self.rng.permutation(len(candidates))
            chosen = [candidates[i] for i in order[:n]]
        else:
            chosen = sorted(
                candidates,
                key=lambda c: abs(self.lattice.get_site(c).energy - p.tof_placement_energy),
            )[:n]

        self.transients.start_cycle(self.time)
        n_cycles = self.transients.n_cycles
        if n_cycles % 10 == 0:
            logger.info(
                f"Simulation {self.sim_id}: time-of-flight cycle {n_cycles}, "
                f"generating {n} initial polarons"
            )
        name = "electron" if is_electron else "hole"
        self.transients.remember_count(name, n)
        for coords in chosen:
            if is_electron:
                polaron = self.objects.create_electron(coords, self.time)
            else:
                polaron = self.objects.create_hole(coords, self.time)
            self.transients.remember_energy(polaron.object_id, self.lattice.get_site(coords).energy)
            self.transients.prev_positions[polaron.object_id] = coords.z
        initialize_all_events(self)

    def _generate_steady_polarons(self) -> None:
        """
        Place the holes of the steady transport test.

        Without disorder the holes are placed randomly, otherwise on the
        lowest-energy hole states.

        Raises:
            ResourceExhaustedError: If there are fewer allowed sites than holes.
        """
        p = self.params
        n = p.n_steady_polarons
        logger.info(f"Simulation {self.sim_id}: creating {n} holes for steady transport")
        candidates = [
            coords
            for coords in self.lattice.iter_coords()
            if not (
                p.enable_phase_restriction
                and self.lattice.get_site(coords).site_type == SiteType.ACCEPTOR
            )
        ]
        if len(candidates) < n:
            raise ResourceExhaustedError(
                f"{n} sites were not available to place the steady transport holes"
            )

        if p.dos_model == DOSModel.NONE:
            order = self.rng.permutation(len(candidates))
            chosen = [candidates[i] for i in order[:n]]
        else:
            chosen = sorted(candidates, key=self.get_hole_state_energy)[:n]
        for coords in chosen:
            self.objects.create_hole(coords, self.time)
        initialize_all_events(self)

    def _calculate_exciton_creation_coords(self) -> Coords:
        """
        Choose an unoccupied site for a new exciton.

        The site type is drawn in proportion to the donor and acceptor
        generation rates. Random probing is tried first while the lattice is
        less than half full, then all free sites of the type are scanned.

        Raises:
            ResourceExhaustedError: If no unoccupied site of the type exists.
        """
        total_rate = self.r_generation_donor + self.r_generation_acceptor
        site_type: SiteType | None = None
        if total_rate > 0:
            if self.rng.random() * total_rate < self.r_generation_donor:
                site_type = SiteType.DONOR
            else:
                site_type = SiteType.ACCEPTOR

        def is_free(coords: Coords) -> bool:
            site = self.lattice.get_site(coords)
            return not site.is_occupied() and (site_type is None or site.site_type == site_type)

        if len(self.objects) < 0.5 * self.lattice.num_sites:
            for _ in range(10):
                coords = self.lattice.generate_random_coords(self.rng)
                if is_free(coords):
                    return coords

        candidates = [coords for coords in self.lattice.iter_coords() if is_free(coords)]
        if not candidates:
            raise ResourceExhaustedError("No unoccupied site is available for a new exciton")
        return candidates[int(self.rng.integers(len(candidates)))]

    # ------------------------------------------------------------------
    # Object creation
    # ------------------------------------------------------------------

    def create_exciton(
        self, coords: Coords | None = None, spin: Spin = Spin.SINGLET
    ) -> Exciton | None:
        """
        Create an exciton and update the events around it.

        Args:
            coords: Target site; a random free site when None.
            spin: Initial spin state.

        Returns:
            The new exciton, or None when the creation failed and an error
            was latched.
        """
        try:
            if coords is None:
                coords = self._calculate_exciton_creation_coords()
            exciton = self.objects.create_exciton(Coords(*coords), spin, self.time)
            update_events_after_execution(self, exciton.coords, exciton.coords)
        except OSCSimError as e:
            self.set_error(f"Exciton could not be created: {e}")
            return None
        return exciton

    def create_electron(self, coords: Coords) -> Polaron | None:
        """Create an electron; returns None and latches an error on failure."""
        return self._create_polaron(coords, Charge.ELECTRON)

    def create_hole(self, coords: Coords) -> Polaron | None:
        """Create a hole; returns None and latches an error on failure."""
        return self._create_polaron(coords, Charge.HOLE)

    def _create_polaron(self, coords: Coords, charge: Charge) -> Polaron | None:
        try:
            coords = Coords(*coords)
            if charge == Charge.ELECTRON:
                polaron = self.objects.create_electron(coords, self.time)
            else:
                polaron = self.objects.create_hole(coords, self.time)
            update_events_after_execution(self, coords, coords)
        except OSCSimError as e:
            name = "Electron" if charge == Charge.ELECTRON else "Hole"
            self.set_error(f"{name} could not be created: {e}")
            return None
        return polaron

    def calculate_all_events(self) -> None:
        """Recalculate the events of every live object."""
        try:
            initialize_all_events(self)
        except OSCSimError as e:
            self.set_error(str(e))

    # ------------------------------------------------------------------
    # Energy queries
    # ------------------------------------------------------------------

    def calculate_coulomb(self, charge: Charge, coords: Coords) -> float:
        """
        Coulomb energy (eV) of a test charge at the coordinates, images included.

        Returns NaN with a latched error for invalid coordinates.
        """
        if not self._check_query_coords(coords, "Coulomb energy"):
            return math.nan
        return self.coulomb.calculate_coulomb(charge, Coords(*coords), self.objects.polarons)

    def calculate_object_coulomb(self, polaron: Polaron, coords: Coords) -> float:
        """
        Coulomb energy (eV) of a placed polaron if it were at the coordinates.

        The polaron's own charge is excluded. Image charges are left out in
        the time-of-flight test. Returns NaN with a latched error for invalid
        coordinates.
        """
        if not self._check_query_coords(coords, "Coulomb energy"):
            return math.nan
        return self.coulomb.calculate_coulomb(
            polaron.charge,
            coords,
            self.objects.polarons,
            exclude_id=polaron.object_id,
            include_image=self.params.run_mode != RunMode.TOF,
        )

    def get_hole_state_energy(
        self, coords: Coords, occupant: SimObject | None = None, include_coulomb: bool = False
    ) -> float:
        """
        HOMO level plus site energy (eV), optionally with the Coulomb energy.

        Args:
            coords: Site coordinates.
            occupant: Polaron on the site; a test hole is used when None.
            include_coulomb: Add the Coulomb energy at the site.
        """
        p = self.params
        site = self.lattice.get_site(coords)
        homo = p.homo_acceptor if site.site_type == SiteType.ACCEPTOR else p.homo_donor
        energy = homo + site.energy
        if include_coulomb:
            if isinstance(occupant, Polaron):
                energy += self.calculate_object_coulomb(occupant, coords)
            else:
                energy += self.calculate_coulomb(Charge.HOLE, coords)
        return energy

    def get_site_energy(self, coords: Coords) -> float:
        """Site energy (eV); NaN with a latched error for invalid coordinates."""
        try:
            return self.lattice.get_site(Coords(*coords)).energy
        except OSCSimError as e:
            self.set_error(f"Site energy lookup failed: {e}")
            return math.nan

    def get_site_type(self, coords: Coords) -> SiteType | None:
        """Site type; None with a latched error for invalid coordinates."""
        try:
            return self.lattice.get_site(Coords(*coords)).site_type
        except OSCSimError as e:
            self.set_error(f"Site type lookup failed: {e}")
            return None

    def _check_query_coords(self, coords: Coords, quantity: str) -> bool:
        """Validate query coordinates; latches an error and returns False when invalid."""
        try:
            self.lattice.get_site_index(Coords(*coords))
        except OSCSimError as e:
            self.set_error(f"{quantity} lookup failed: {e}")
            return False
        return True

    def get_internal_field(self) -> float:
        """Internal electric field (V/cm)."""
        return self.params.internal_potential / (
            1e-7 * self.lattice.height * self.lattice.unit_size
        )

    def calculate_dos_correlation(
        self, cutoff_radius: float | None = None
    ) -> list[tuple[float, float]]:
        """Calculate and store the spatial correlation of the site energies."""
        self.dos_correlation_data = calculate_dos_correlation(self.lattice, cutoff_radius)
        return self.dos_correlation_data

    def export_energies(self, path: str | Path) -> None:
        """Write the site energies to a file."""
        export_energies(self.lattice, path)

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def set_error(self, message: str) -> None:
        """Latch an error; the simulation stops at the next finish check."""
        self.error_found = True
        self.error_message = message
        logger.error(f"Simulation {self.sim_id}: {message}")

    def check_finished(self) -> bool:
        """Check the termination condition of the run mode."""
        if self.error_found:
            return True
        p = self.params
        c = self.counters
        if p.run_mode == RunMode.EXCITON_DIFFUSION:
            return c.n_excitons_recombined >= p.n_tests
        if p.run_mode == RunMode.DYNAMICS:
            return len(self.objects) == 0 and c.n_excitons_created >= p.n_tests
        if p.run_mode == RunMode.TOF:
            if p.tof_polaron_type == "electron":
                return c.n_electrons == 0 and c.n_electrons_created >= p.n_tests
            return c.n_holes == 0 and c.n_holes_created >= p.n_tests
        if p.run_mode == RunMode.IQE:
            if c.n_excitons_created < p.n_tests:
                return False
            return len(self.objects) == 0 or self.time > p.iqe_time_cutoff
        if p.run_mode == RunMode.STEADY_TRANSPORT:
            return c.n_events_executed >= p.n_equilibration_events + p.n_tests
        return True

    def execute_next_event(self) -> bool:
        """
        Execute the earliest pending event.

        Returns:
            False when an error was latched, True otherwise.
        """
        if self.error_found:
            return False
        try:
            self._execute_next_event()
        except OSCSimError as e:
            self.set_error(str(e))
            return False
        return True

    def _execute_next_event(self) -> None:
        p = self.params
        if p.run_mode == RunMode.IQE and self.is_light_on:
            if self.counters.n_excitons_created >= p.n_tests:
                self.switch_light_off()

        if self.transients is not None:
            self._update_transient_data()
            elapsed = self.time - self.transients.creation_time
            if len(self.catalog) == 0 or elapsed > self.transients.end:
                self.objects.clear_all()
            if len(self.objects) == 0 and not self.check_finished():
                if p.run_mode == RunMode.TOF:
                    self._generate_tof_polarons()
                else:
                    self._generate_dynamics_excitons()
            if self.check_finished():
                return

        if self.steady is not None:
            self.steady.update(self)

        event = self.catalog.choose_next_event()
        if event is None:
            raise ConsistencyError("The simulation has no events to execute")
        if event.execution_time < self.time:
            raise ConsistencyError(
                f"Chosen event executes at {event.execution_time:.6e}s, "
                f"before the current time {self.time:.6e}s"
            )

        self.counters.n_events_executed += 1
        self.time = event.execution_time
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Event {self.counters.n_events_executed}: executing {event}")
        self.execute_event(event)

    def execute_event(self, event: Event) -> None:
        """
        Execute a selected event.

        Args:
            event: Event to execute.
        """
        if event.event_type == EventType.EXCITON_CREATION:
            self._execute_exciton_creation()
        elif event.event_type == EventType.EXCITON_HOP:
            self._execute_exciton_hop(event)
        elif event.event_type == EventType.EXCITON_RECOMBINATION:
            self._execute_exciton_recombination(event)
        elif event.event_type == EventType.EXCITON_DISSOCIATION:
            self._execute_exciton_dissociation(event)
        elif event.event_type == EventType.EXCITON_EXCITON_ANNIHILATION:
            self._execute_exciton_exciton_annihilation(event)
        elif event.event_type == EventType.EXCITON_POLARON_ANNIHILATION:
            self._execute_exciton_polaron_annihilation(event)
        elif event.event_type == EventType.EXCITON_INTERSYSTEM_CROSSING:
            self._execute_exciton_intersystem_crossing(event)
        elif event.event_type == EventType.POLARON_HOP:
            self._execute_polaron_hop(event)
        elif event.event_type == EventType.POLARON_RECOMBINATION:
            self._execute_polaron_recombination(event)
        elif event.event_type == EventType.POLARON_EXTRACTION:
            self._execute_polaron_extraction(event)
        else:
            raise ConsistencyError(f"No handler for {event.event_type.value} events")

    def _get_exciton(self, object_id: int | None) -> Exciton:
        obj = self.objects.get(object_id) if object_id is not None else None
        if not isinstance(obj, Exciton):
            raise ConsistencyError(f"Object {object_id} is not an exciton")
        return obj

    def _get_polaron(self, object_id: int | None) -> Polaron:
        obj = self.objects.get(object_id) if object_id is not None else None
        if not isinstance(obj, Polaron):
            raise ConsistencyError(f"Object {object_id} is not a polaron")
        return obj

    def _check_destination(self, event: Event) -> Coords:
        dest = event.dest_coords
        if dest is None:
            raise ConsistencyError(f"{event} has no destination")
        if self.lattice.is_occupied(dest):
            raise DestinationOccupiedError(
                f"{event.event_type.value} cannot be executed: destination site "
                f"{tuple(dest)} is already occupied"
            )
        return dest

    def _remove_exciton(self, exciton: Exciton) -> None:
        if self.params.run_mode == RunMode.EXCITON_DIFFUSION:
            self.exciton_diffusion_distances.append(exciton.calculate_displacement(self.lattice))
            self.exciton_lifetimes.append(self.time - exciton.creation_time)
        self.objects.destroy(exciton)

    def _execute_exciton_creation(self) -> None:
        coords = self._calculate_exciton_creation_coords()
        self.objects.create_exciton(coords, Spin.SINGLET, self.time)
        update_events_after_execution(self, coords, coords)
        self._arm_generation_event()

    def _execute_exciton_hop(self, event: Event) -> None:
        exciton = self._get_exciton(event.object_id)
        dest = self._check_destination(event)
        origin = exciton.coords
        if self.params.run_mode == RunMode.EXCITON_DIFFUSION:
            self.exciton_hop_distances.append(
                self.lattice.calculate_lattice_distance_squared(origin, dest)
            )
        self.objects.move(exciton, dest)
        update_events_after_execution(self, origin, dest)

    def _execute_exciton_recombination(self, event: Event) -> None:
        exciton = self._get_exciton(event.object_id)
        origin = exciton.coords
        is_singlet = exciton.spin == Spin.SINGLET
        self._remove_exciton(exciton)
        if is_singlet:
            self.counters.n_singlets_recombined += 1
        else:
            self.counters.n_triplets_recombined += 1
        update_events_after_execution(self, origin, origin)

    def _execute_exciton_dissociation(self, event: Event) -> None:
        exciton = self._get_exciton(event.object_id)
        dest = self._check_destination(event)
        origin = exciton.coords
        is_singlet = exciton.spin == Spin.SINGLET
        self.objects.destroy(exciton)

        # The pair shares one tag so that geminate recombination is recognized
        c = self.counters
        tag = self.objects.next_polaron_tag()
        if self.lattice.get_site(dest).site_type == SiteType.ACCEPTOR:
            self.objects.create_hole(origin, self.time, tag)
            self.objects.create_electron(dest, self.time, tag)
        else:
            self.objects.create_electron(origin, self.time, tag)
            self.objects.create_hole(dest, self.time, tag)
        if is_singlet:
            c.n_singlets_dissociated += 1
        else:
            c.n_triplets_dissociated += 1
        update_events_after_execution(self, origin, dest)

    def _execute_exciton_exciton_annihilation(self, event: Event) -> None:
        exciton = self._get_exciton(event.object_id)
        target = self._get_exciton(event.target_id)
        origin = exciton.coords
        c = self.counters
        if exciton.spin == Spin.TRIPLET and target.spin == Spin.TRIPLET:
            # Spin statistics: the remaining triplet becomes a singlet in a quarter of cases
            if self.rng.random() > 0.75:
                self.objects.flip_spin(target)
            c.n_triplet_triplet_annihilations += 1
        elif exciton.spin == Spin.SINGLET and target.spin == Spin.SINGLET:
            c.n_singlet_singlet_annihilations += 1
        elif exciton.spin == Spin.SINGLET:
            c.n_singlet_triplet_annihilations += 1
        self._remove_exciton(exciton)
        update_events_after_execution(self, origin, target.coords)

    def _execute_exciton_polaron_annihilation(self, event: Event) -> None:
        exciton = self._get_exciton(event.object_id)
        target = self._get_polaron(event.target_id)
        origin = exciton.coords
        if exciton.spin == Spin.SINGLET:
            self.counters.n_singlet_polaron_annihilations += 1
        else:
            self.counters.n_triplet_polaron_annihilations += 1
        self.objects.destroy(exciton)
        update_events_after_execution(self, origin, target.coords)

    def _execute_exciton_intersystem_crossing(self, event: Event) -> None:
        exciton = self._get_exciton(event.object_id)
        if exciton.spin == Spin.SINGLET:
            self.counters.n_intersystem_crossings += 1
        else:
            self.counters.n_reverse_intersystem_crossings += 1
        self.objects.flip_spin(exciton)
        update_events_after_execution(self, exciton.coords, exciton.coords)

    def _execute_polaron_hop(self, event: Event) -> None:
        polaron = self._get_polaron(event.object_id)
        dest = self._check_destination(event)
        origin = polaron.coords
        if (
            self.steady is not None
            and not polaron.is_electron
            and self.steady.is_equilibrated(self.counters.n_events_executed)
        ):
            self.steady.record_hop(self, polaron, dest)
        self.objects.move(polaron, dest)
        update_events_after_execution(self, origin, dest)

    def _execute_polaron_recombination(self, event: Event) -> None:
        electron = self._get_polaron(event.object_id)
        hole = self._get_polaron(event.target_id)
        origin = electron.coords
        dest = hole.coords
        self.objects.destroy(hole)
        self.objects.destroy(electron)
        c = self.counters
        c.n_electrons_recombined += 1
        c.n_holes_recombined += 1
        if electron.tag == hole.tag:
            c.n_geminate_recombinations += 1
        else:
            c.n_bimolecular_recombinations += 1
        update_events_after_execution(self, origin, dest)

    def _execute_polaron_extraction(self, event: Event) -> None:
        polaron = self._get_polaron(event.object_id)
        origin = polaron.coords
        p = self.params
        if p.run_mode == RunMode.TOF:
            self.transit_times.append(self.time - polaron.creation_time)
        if p.run_mode in (RunMode.TOF, RunMode.IQE):
            column = self.lattice.width * origin.x + origin.y
            if polaron.is_electron:
                self.electron_extraction_map[column] += 1
            else:
                self.hole_extraction_map[column] += 1
        self.objects.destroy(polaron)
        if polaron.is_electron:
            self.counters.n_electrons_collected += 1
        else:
            self.counters.n_holes_collected += 1
        update_events_after_execution(self, origin, origin)

    def _update_transient_data(self) -> None:
        """Record the current state into the transient bin for the elapsed time."""
        sampler = self.transients
        assert sampler is not None
        index = sampler.next_index(self.time)
        if index is None:
            return

        if self.params.run_mode == RunMode.TOF:
            name = "electron" if self.params.tof_polaron_type == "electron" else "hole"
            groups = {name: self.objects.electrons if name == "electron" else self.objects.holes}
        else:
            groups = {
                "exciton": self.objects.excitons,
                "electron": self.objects.electrons,
                "hole": self.objects.holes,
            }
        live_ids = {name: [obj.object_id for obj in objs] for name, objs in groups.items()}
        sampler.backfill(index, live_ids)
        interval = sampler.interval(self.time)

        if self.params.run_mode == RunMode.TOF:
            a = self.lattice.unit_size
            for name, polarons in groups.items():
                sampler.record_count(index, name, len(polarons))
                for polaron in polarons:
                    z_prev = sampler.prev_positions.get(polaron.object_id, polaron.coords.z)
                    velocity = abs(1e-7 * a * (polaron.coords.z - z_prev)) / interval
                    sampler.add(index, "velocities", velocity)
                    sampler.record_energy(
                        index, name, polaron.object_id, self.lattice.get_site(polaron.coords).energy
                    )
                    sampler.prev_positions[polaron.object_id] = polaron.coords.z
        else:
            c = self.counters
            sampler.record_count(index, "singlet", c.n_singlets)
            sampler.record_count(index, "triplet", c.n_triplets)
            sampler.record_count(index, "electron", c.n_electrons)
            sampler.record_count(index, "hole", c.n_holes)
            for name, objs in groups.items():
                for obj in objs:
                    displacement = obj.calculate_displacement(self.lattice)
                    sampler.add(index, f"{name}_msdv", (1e-7 * displacement) ** 2 / interval)
                    obj.reset_initial_coords()
                    sampler.record_energy(
                        index, name, obj.object_id, self.lattice.get_site(obj.coords).energy
                    )
        sampler.complete(index)

    def run(
        self,
        max_events: int | None = None,
        max_time: float | None = None,
        callback: Callable[[OSCSimulator], None] | None = None,
        snapshot_interval: int = 100,
    ) -> None:
        """
        Run the simulation until the run mode finishes.

        Args:
            max_events: Maximum number of executed events; defaults to the parameters.
            max_time: Maximum simulation time (s); defaults to the parameters.
            callback: Optional callback function called at snapshot intervals.
            snapshot_interval: Events between callback calls.
        """
        if max_events is None:
            max_events = self.params.max_events
        if max_time is None:
            max_time = self.params.max_time
        logger.info(
            f"Starting simulation {self.sim_id}: mode={self.params.run_mode.value}, "
            f"max_events={max_events}, max_time={max_time}"
        )

        while not self.check_finished():
            if max_events is not None and self.counters.n_events_executed >= max_events:
                logger.info(f"Simulation {self.sim_id}: reached event limit {max_events}")
                break
            if max_time is not None and self.time >= max_time:
                logger.info(f"Simulation {self.sim_id}: reached time limit {self.time:.2e}s")
                break

            if not self.execute_next_event():
                break

            if callback is not None and self.counters.n_events_executed % snapshot_interval == 0:
                callback(self)

        if self.error_found:
            logger.error(f"Simulation {self.sim_id} ended with an error: {self.error_message}")
        else:
            logger.info(
                f"Simulation {self.sim_id} completed: {self.counters.n_events_executed} events, "
                f"t={self.time:.4e}s"
            )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def get_statistics(self) -> dict[str, int | float | str | bool]:
        """
        Get simulation statistics.

        Returns:
            Dictionary of counters, populations and error state.
        """
        return {
            "sim_id": self.sim_id,
            "time": self.time,
            **self.counters.as_dict(),
            "n_excitons": self.counters.n_excitons,
            "n_polarons": self.counters.n_polarons,
            "error_found": self.error_found,
            "error_message": self.error_message,
        }

    def get_transient_data(self) -> dict:
        """Accumulated transient series; empty outside the transient run modes."""
        if self.transients is None:
            return {}
        return self.transients.get_data()

    def get_steady_data(self) -> dict:
        """Steady transport results; empty outside the steady transport mode."""
        if self.steady is None:
            return {}
        return self.steady.get_data(self)

    def get_mobility_data(self) -> list[float]:
        """Carrier mobility (cm^2/(V s)) from every recorded transit time."""
        potential = abs(self.params.internal_potential)
        if potential == 0:
            return []
        thickness = 1e-7 * self.lattice.unit_size * self.lattice.height
        return [thickness**2 / (potential * t) for t in self.transit_times if t > 0]

    def get_transit_time_histogram(self) -> list[tuple[float, int]]:
        """Transit times counted in the transient time bins."""
        if self.transients is None:
            return []
        counts = [0] * len(self.transients)
        for t in self.transit_times:
            if t <= 0:
                continue
            index = self.transients.bin_index(t)
            if 0 <= index < len(counts):
                counts[index] += 1
        return list(zip(self.transients.times.tolist(), counts, strict=True))

    def output_status(self) -> None:
        """Log a status summary of the simulation."""
        c = self.counters
        logger.info(
            f"Simulation {self.sim_id} status: t={self.time:.4e}s, "
            f"events={c.n_events_executed}, pending={len(self.catalog)}"
        )
        logger.info(
            f"  excitons: {c.n_excitons} live ({c.n_singlets} singlets, {c.n_triplets} triplets), "
            f"{c.n_excitons_created} created, {c.n_excitons_recombined} recombined, "
            f"{c.n_excitons_dissociated} dissociated"
        )
        logger.info(
            f"  polarons: {c.n_electrons} electrons, {c.n_holes} holes live, "
            f"{c.n_electrons_collected}/{c.n_holes_collected} collected, "
            f"{c.n_geminate_recombinations} geminate, "
            f"{c.n_bimolecular_recombinations} bimolecular recombinations"
        )
        if self.error_found:
            logger.info(f"  error: {self.error_message}")
