"""
Log-spaced transient sampling.

Transients are accumulated over repeated cycles: every cycle starts with a
fresh population, and the state of the system is summed into the time bin
containing the elapsed time since the cycle began. Bins that elapse between
two samples are back-filled with the previous state.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class TransientSampler:
    """
    Accumulator of log-spaced transient series.

    Series are created on first use and named ``<species>_counts``,
    ``<species>_energies``, ``<species>_msdv`` or ``velocities``.

    Attributes:
        times: Bin start times ``10^(log10(start) + i/ppd)`` (s).
        data: Accumulated series keyed by name.
        n_cycles: Number of transient cycles started.
        creation_time: Simulation time at which the current cycle began (s).
        index_prev: Last bin recorded in the current cycle, -1 before the first.
        prev_positions: Last sampled z-coordinate by object id.
    """

    def __init__(self, start: float, end: float, points_per_decade: int) -> None:
        """
        Build the time bins.

        Args:
            start: Start of the first bin (s).
            end: End of the sampled window (s).
            points_per_decade: Bins per decade of time.

        Raises:
            ValueError: If the window is empty or not positive.
        """
        if start <= 0 or end <= start:
            raise ValueError(f"Invalid transient window: start={start}, end={end}")
        if points_per_decade <= 0:
            raise ValueError("points_per_decade must be positive")
        self.start = start
        self.end = end
        self.points_per_decade = points_per_decade

        n_bins = math.floor((math.log10(end) - math.log10(start)) * points_per_decade) + 1
        self.times: npt.NDArray[np.float64] = 10.0 ** (
            math.log10(start) + np.arange(n_bins) / points_per_decade
        )
        self.data: dict[str, npt.NDArray[np.float64]] = {}
        self.n_cycles = 0
        self.creation_time = 0.0
        self.index_prev = -1
        self.prev_positions: dict[int, int] = {}
        self._prev_counts: dict[str, int] = {}
        self._prev_energies: dict[int, float] = {}

    def __len__(self) -> int:
        return len(self.times)

    def start_cycle(self, creation_time: float) -> None:
        """Begin a new transient at the given simulation time."""
        self.creation_time = creation_time
        self.index_prev = -1
        self.prev_positions.clear()
        self._prev_counts.clear()
        self._prev_energies.clear()
        self.n_cycles += 1

    def series(self, name: str) -> npt.NDArray[np.float64]:
        """Accumulated series, created empty on first access."""
        if name not in self.data:
            self.data[name] = np.zeros(len(self))
        return self.data[name]

    def bin_index(self, elapsed: float) -> int:
        """Bin containing an elapsed time since the cycle start."""
        return math.floor(
            (math.log10(elapsed) - math.log10(self.start)) * self.points_per_decade
        )

    def next_index(self, time: float) -> int | None:
        """
        Bin to record at the current time.

        Returns:
            The bin index, or None when the next bin has not been reached yet
            or the window has been passed.
        """
        if self.index_prev + 1 >= len(self):
            return None
        elapsed = time - self.creation_time
        if elapsed <= self.times[self.index_prev + 1]:
            return None
        index = self.bin_index(elapsed)
        if index >= len(self):
            return None
        return index

    def interval(self, time: float) -> float:
        """Time since the previously recorded bin (s)."""
        elapsed = time - self.creation_time
        if self.index_prev < 0:
            return elapsed
        return elapsed - float(self.times[self.index_prev])

    def backfill(self, index: int, live_ids: Mapping[str, Sequence[int]]) -> None:
        """
        Repeat the previous state in the bins skipped since the last sample.

        Args:
            index: Bin about to be recorded.
            live_ids: Ids of the objects alive now, by species name.
        """
        while self.index_prev < index - 1:
            i = self.index_prev + 1
            for name, count in self._prev_counts.items():
                self.series(f"{name}_counts")[i] += count
            for name, ids in live_ids.items():
                self.series(f"{name}_energies")[i] += sum(
                    self._prev_energies.get(object_id, 0.0) for object_id in ids
                )
            self.index_prev = i

    def remember_count(self, name: str, count: int) -> None:
        """Set the count repeated in back-filled bins."""
        self._prev_counts[name] = count

    def remember_energy(self, object_id: int, energy: float) -> None:
        """Set the energy of an object repeated in back-filled bins."""
        self._prev_energies[object_id] = energy

    def record_count(self, index: int, name: str, count: int) -> None:
        self.series(f"{name}_counts")[index] += count
        self.remember_count(name, count)

    def record_energy(self, index: int, name: str, object_id: int, energy: float) -> None:
        self.series(f"{name}_energies")[index] += energy
        self.remember_energy(object_id, energy)

    def add(self, index: int, name: str, value: float) -> None:
        self.series(name)[index] += value

    def complete(self, index: int) -> None:
        """Mark a bin as recorded."""
        self.index_prev = index

    def get_data(self) -> dict[str, list[float] | int]:
        """Times and all accumulated series as plain lists."""
        result: dict[str, list[float] | int] = {
            "times": self.times.tolist(),
            "n_cycles": self.n_cycles,
        }
        for name, values in sorted(self.data.items()):
            result[name] = values.tolist()
        return result
