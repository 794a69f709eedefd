"""
Steady-state transport sampling.

After an equilibration phase the hole population is sampled at fixed event
intervals into energy histograms (density of occupied states with and
without Coulomb interactions, and the density of states including Coulomb
interactions), and hops along z are accumulated into the transport energy.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from ..data.constants import ELEMENTARY_CHARGE

if TYPE_CHECKING:
    from ..kmc.lattice import Coords
    from ..kmc.objects import Polaron
    from ..kmc.simulator import OSCSimulator

logger = logging.getLogger(__name__)

DOS_BIN_SIZE = 0.005  # eV


class EnergyHistogram:
    """
    Histogram with fixed-width energy bins centered on multiples of the bin size.

    The bin range grows on demand in either direction.
    """

    def __init__(self, bin_size: float = DOS_BIN_SIZE) -> None:
        self.bin_size = bin_size
        self.first_bin = 0
        self.counts: list[float] = []

    def __len__(self) -> int:
        return len(self.counts)

    def _bin_number(self, energy: float) -> int:
        return math.floor(energy / self.bin_size + 0.5)

    def update(self, energy: float) -> None:
        """Add one state at the given energy (eV)."""
        b = self._bin_number(energy)
        if not self.counts:
            self.first_bin = b
            self.counts.append(1.0)
            return
        if b < self.first_bin:
            self.counts[:0] = [0.0] * (self.first_bin - b)
            self.first_bin = b
        elif b >= self.first_bin + len(self.counts):
            self.counts.extend([0.0] * (b - self.first_bin - len(self.counts) + 1))
        self.counts[b - self.first_bin] += 1.0

    @property
    def energies(self) -> list[float]:
        """Bin centers (eV)."""
        return [(self.first_bin + i) * self.bin_size for i in range(len(self.counts))]

    @property
    def total(self) -> float:
        return sum(self.counts)

    def normalized(self, n_samples: int, volume: float) -> list[tuple[float, float]]:
        """
        Density per unit energy and volume.

        Args:
            n_samples: Number of sampling passes accumulated.
            volume: Sampled volume (cm^3).

        Returns:
            (energy, density in 1/(eV cm^3)) pairs.
        """
        if n_samples <= 0:
            return []
        norm = n_samples * volume * self.bin_size
        return [(e, c / norm) for e, c in zip(self.energies, self.counts, strict=True)]


class SteadyStateSampler:
    """
    Data collection for the steady transport test.

    Attributes:
        n_equilibration_events: Events executed before sampling starts.
        hops_per_doos_sample: Events between occupied-state samples.
        hops_per_dos_sample: Events between full density-of-states samples.
        equilibration_time: Simulation time at the end of equilibration (s).
    """

    def __init__(
        self,
        n_equilibration_events: int,
        hops_per_doos_sample: int = 1000,
        hops_per_dos_sample: int = 100000,
        bin_size: float = DOS_BIN_SIZE,
    ) -> None:
        self.n_equilibration_events = n_equilibration_events
        self.hops_per_doos_sample = hops_per_doos_sample
        self.hops_per_dos_sample = hops_per_dos_sample

        self.doos = EnergyHistogram(bin_size)
        self.doos_coulomb = EnergyHistogram(bin_size)
        self.dos_coulomb = EnergyHistogram(bin_size)
        self.n_doos_samples = 0
        self.n_dos_samples = 0

        self.equilibration_time = 0.0
        self.equilibration_energy_sum = 0.0
        self.equilibration_energy_sum_coulomb = 0.0
        self.n_equilibration_energy_samples = 0

        self.transport_energy_weighted_sum = 0.0
        self.transport_energy_weighted_sum_coulomb = 0.0
        self.transport_energy_sum_of_weights = 0.0

    def is_equilibrated(self, n_events: int) -> bool:
        return n_events > self.n_equilibration_events

    def update(self, simulator: OSCSimulator) -> None:
        """Sample the system before the next event is executed."""
        n_events = simulator.counters.n_events_executed
        if n_events == self.n_equilibration_events:
            self.equilibration_time = simulator.time
            for hole in simulator.objects.holes:
                hole.reset_initial_coords()
            self.transport_energy_weighted_sum = 0.0
            self.transport_energy_weighted_sum_coulomb = 0.0
            self.transport_energy_sum_of_weights = 0.0
            logger.info(f"Simulation {simulator.sim_id}: equilibration phase complete")

        if n_events < self.n_equilibration_events:
            return
        sampled_events = n_events - self.n_equilibration_events

        if sampled_events % self.hops_per_doos_sample == 0:
            for hole in simulator.objects.holes:
                energy = simulator.get_hole_state_energy(hole.coords)
                energy_coulomb = simulator.get_hole_state_energy(
                    hole.coords, hole, include_coulomb=True
                )
                self.doos.update(energy)
                self.doos_coulomb.update(energy_coulomb)
                self.equilibration_energy_sum += energy
                self.equilibration_energy_sum_coulomb += energy_coulomb
                self.n_equilibration_energy_samples += 1
            self.n_doos_samples += 1

        if sampled_events % self.hops_per_dos_sample == 0:
            for coords in simulator.lattice.iter_coords():
                occupant = simulator.objects.object_at(coords)
                self.dos_coulomb.update(
                    simulator.get_hole_state_energy(coords, occupant, include_coulomb=True)
                )
            self.n_dos_samples += 1

    def record_hop(self, simulator: OSCSimulator, hole: Polaron, dest: Coords) -> None:
        """Add a hop along z to the transport energy sums."""
        origin = hole.coords
        height = simulator.lattice.height
        displacement = origin.z - dest.z
        if displacement == 0:
            return
        if 2 * displacement > height:
            displacement -= height
        elif 2 * displacement < -height:
            displacement += height

        energy_i = simulator.get_hole_state_energy(origin)
        energy_f = simulator.get_hole_state_energy(dest)
        self.transport_energy_weighted_sum += 0.5 * (energy_i + energy_f) * displacement
        energy_i += simulator.calculate_object_coulomb(hole, origin)
        energy_f += simulator.calculate_object_coulomb(hole, dest)
        self.transport_energy_weighted_sum_coulomb += 0.5 * (energy_i + energy_f) * displacement
        self.transport_energy_sum_of_weights += displacement

    def get_transport_energy(self, coulomb: bool = False) -> float:
        """Displacement-weighted mean hop energy (eV); NaN before any z hop."""
        if self.transport_energy_sum_of_weights == 0:
            return math.nan
        if coulomb:
            total = self.transport_energy_weighted_sum_coulomb
        else:
            total = self.transport_energy_weighted_sum
        return total / self.transport_energy_sum_of_weights

    def get_equilibration_energy(self, coulomb: bool = False) -> float:
        """Mean occupied-state energy over all samples (eV); NaN without samples."""
        if self.n_equilibration_energy_samples == 0:
            return math.nan
        if coulomb:
            total = self.equilibration_energy_sum_coulomb
        else:
            total = self.equilibration_energy_sum
        return total / self.n_equilibration_energy_samples

    def _average_displacement(self, simulator: OSCSimulator) -> float:
        # Mean z displacement of the holes (cm)
        holes = simulator.objects.holes
        if not holes:
            return math.nan
        total = sum(hole.calculate_displacement(simulator.lattice, axis=2) for hole in holes)
        return 1e-7 * total / len(holes)

    def get_mobility(self, simulator: OSCSimulator) -> float:
        """Hole mobility from the mean z displacement (cm^2/(V s))."""
        elapsed = simulator.time - self.equilibration_time
        field = simulator.get_internal_field()
        if elapsed <= 0 or field == 0:
            return math.nan
        return abs(self._average_displacement(simulator)) / (elapsed * abs(field))

    def get_current_density(self, simulator: OSCSimulator) -> float:
        """Steady current density (mA/cm^2)."""
        elapsed = simulator.time - self.equilibration_time
        if elapsed <= 0:
            return math.nan
        n_holes = simulator.counters.n_holes
        return (
            1000.0
            * ELEMENTARY_CHARGE
            * (abs(self._average_displacement(simulator)) / elapsed)
            * (n_holes / simulator.lattice.volume)
        )

    def get_dos(self, simulator: OSCSimulator) -> list[tuple[float, float]]:
        """Density of hole states of the lattice without Coulomb interactions."""
        histogram = EnergyHistogram(self.doos.bin_size)
        for coords in simulator.lattice.iter_coords():
            histogram.update(simulator.get_hole_state_energy(coords))
        return histogram.normalized(1, simulator.lattice.volume)

    def get_data(self, simulator: OSCSimulator) -> dict[str, object]:
        """All steady-state results."""
        volume = simulator.lattice.volume
        return {
            "equilibration_time": self.equilibration_time,
            "mobility": self.get_mobility(simulator),
            "current_density": self.get_current_density(simulator),
            "transport_energy": self.get_transport_energy(),
            "transport_energy_coulomb": self.get_transport_energy(coulomb=True),
            "equilibration_energy": self.get_equilibration_energy(),
            "equilibration_energy_coulomb": self.get_equilibration_energy(coulomb=True),
            "dos": self.get_dos(simulator),
            "doos": self.doos.normalized(self.n_doos_samples, volume),
            "doos_coulomb": self.doos_coulomb.normalized(self.n_doos_samples, volume),
            "dos_coulomb": self.dos_coulomb.normalized(self.n_dos_samples, volume),
        }
