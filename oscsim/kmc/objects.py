"""
Mobile quasi-particles living on the lattice: excitons and polarons.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .lattice import Coords

if TYPE_CHECKING:
    from .lattice import Lattice


class Spin(Enum):
    """Exciton spin state."""

    SINGLET = "singlet"
    TRIPLET = "triplet"


class Charge(Enum):
    """Polaron charge; the value is the sign of the charge."""

    ELECTRON = -1
    HOLE = 1


class Species(Enum):
    """Object species used for counters and logging."""

    SINGLET = "singlet"
    TRIPLET = "triplet"
    ELECTRON = "electron"
    HOLE = "hole"


@dataclass(eq=False)
class SimObject:
    """
    Base class for lattice objects.

    Attributes:
        object_id: Globally unique id, the stable key for events and lookups.
        tag: Label; for polarons only the two halves of a dissociated exciton share one.
        creation_time: Simulation time of creation (s).
        coords: Current coordinates.
        initial_coords: Reference coordinates for displacement tracking, set to
            the creation coordinates.
        crossings: Net number of periodic boundary crossings per axis.
    """

    object_id: int
    tag: int = 0
    creation_time: float = 0.0
    coords: Coords = Coords(0, 0, 0)
    initial_coords: Coords = field(init=False)
    crossings: list[int] = field(default_factory=lambda: [0, 0, 0])

    def __post_init__(self) -> None:
        self.initial_coords = self.coords

    @property
    def species(self) -> Species:
        """Species of the object; each subclass defines it."""
        raise NotImplementedError

    def set_coords(self, coords: Coords, lattice: Lattice) -> None:
        """Move the object and record any periodic boundary crossing."""
        for axis in range(3):
            correction = lattice.calculate_periodic_correction(self.coords, coords, axis)
            if correction != 0:
                self.crossings[axis] += correction // lattice.dims[axis]
        self.coords = coords

    def reset_initial_coords(self) -> None:
        """Start displacement tracking from the current position."""
        self.initial_coords = self.coords
        self.crossings = [0, 0, 0]

    def calculate_displacement(self, lattice: Lattice, axis: int | None = None) -> float:
        """
        Displacement from the initial coordinates (nm).

        Args:
            lattice: Lattice the object lives on.
            axis: Axis index for a signed component; None for the magnitude.

        Returns:
            Signed displacement along ``axis`` or the total distance.
        """
        components = [
            (self.coords[i] + self.crossings[i] * lattice.dims[i] - self.initial_coords[i])
            * lattice.unit_size
            for i in range(3)
        ]
        if axis is not None:
            return components[axis]
        return math.sqrt(sum(c * c for c in components))


@dataclass(eq=False)
class Exciton(SimObject):
    """Bound electron-hole pair."""

    spin: Spin = Spin.SINGLET

    @property
    def species(self) -> Species:
        return Species.SINGLET if self.spin == Spin.SINGLET else Species.TRIPLET

    def flip_spin(self) -> None:
        """Switch between singlet and triplet."""
        self.spin = Spin.TRIPLET if self.spin == Spin.SINGLET else Spin.SINGLET

    def __repr__(self) -> str:
        return f"Exciton(id={self.object_id}, {self.spin.value}, at={tuple(self.coords)})"


@dataclass(eq=False)
class Polaron(SimObject):
    """Localized charge carrier."""

    charge: Charge = Charge.ELECTRON

    @property
    def species(self) -> Species:
        return Species.ELECTRON if self.charge == Charge.ELECTRON else Species.HOLE

    @property
    def is_electron(self) -> bool:
        return self.charge == Charge.ELECTRON

    def __repr__(self) -> str:
        return (
            f"Polaron(id={self.object_id}, {self.species.value}, tag={self.tag}, "
            f"at={tuple(self.coords)})"
        )
