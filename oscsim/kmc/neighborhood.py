"""
Precomputed neighbor offset tables.

Event enumeration visits every lattice offset within an interaction range.
The offsets and their distances depend only on the parameters, so they are
built once per simulation.
"""

from __future__ import annotations

import math
from typing import NamedTuple

from .coulomb import CUTOFF_TOLERANCE


class Offset(NamedTuple):
    """Lattice offset and its length in the bulk (nm)."""

    i: int
    j: int
    k: int
    distance: float


def build_offsets(cutoff: float, unit_size: float) -> list[Offset]:
    """
    All non-zero offsets with length up to the cutoff.

    Args:
        cutoff: Maximum distance (nm).
        unit_size: Lattice constant (nm).

    Returns:
        Offsets in enumeration order (i outermost, k innermost).
    """
    reach = math.ceil(cutoff / unit_size)
    offsets: list[Offset] = []
    for i in range(-reach, reach + 1):
        for j in range(-reach, reach + 1):
            for k in range(-reach, reach + 1):
                if i == 0 and j == 0 and k == 0:
                    continue
                distance = unit_size * math.sqrt(i * i + j * j + k * k)
                if distance - CUTOFF_TOLERANCE <= cutoff:
                    offsets.append(Offset(i, j, k, distance))
    return offsets


class Neighborhoods:
    """
    Offset tables for exciton and polaron events.

    Attributes:
        exciton_offsets: Offsets within the larger of the FRET and dissociation cutoffs.
        polaron_offsets: Offsets within the polaron hopping cutoff.
    """

    def __init__(
        self,
        unit_size: float,
        fret_cutoff: float,
        dissociation_cutoff: float,
        polaron_hopping_cutoff: float,
    ) -> None:
        self.unit_size = unit_size
        self.fret_cutoff = fret_cutoff
        self.dissociation_cutoff = dissociation_cutoff
        self.polaron_hopping_cutoff = polaron_hopping_cutoff
        self.exciton_offsets = build_offsets(max(fret_cutoff, dissociation_cutoff), unit_size)
        self.polaron_offsets = build_offsets(polaron_hopping_cutoff, unit_size)

    def distance(self, d2: int) -> float:
        """Distance (nm) for a squared lattice distance."""
        return self.unit_size * math.sqrt(d2)

    @staticmethod
    def within(distance: float, cutoff: float) -> bool:
        """Range membership with the shared distance tolerance."""
        return distance - CUTOFF_TOLERANCE <= cutoff
