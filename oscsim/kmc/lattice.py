"""
Lattice structure for KMC simulation.

This module defines the 3D cubic lattice of an organic semiconductor film,
including site representation, coordinate arithmetic with optional periodic
boundaries, and site occupancy bookkeeping.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple

from .errors import DestinationOccupiedError, InvalidCoordinatesError

if TYPE_CHECKING:
    from collections.abc import Iterator

    import numpy as np


class Coords(NamedTuple):
    """Integer lattice coordinates."""

    x: int
    y: int
    z: int


class SiteType(Enum):
    """Enumeration of site materials."""

    UNASSIGNED = 0
    DONOR = 1
    ACCEPTOR = 2


@dataclass
class Site:
    """
    Represents a single lattice site.

    Attributes:
        site_type: Material of the site.
        energy: Energetic disorder offset of the site (eV).
        object_id: Id of the object on the site, None when empty.
    """

    site_type: SiteType = SiteType.UNASSIGNED
    energy: float = 0.0
    object_id: int | None = None

    def is_occupied(self) -> bool:
        """Check if an object sits on the site."""
        return self.object_id is not None


class Lattice:
    """
    3D cubic lattice of sites.

    The shape is fixed at construction; sites are allocated once and only
    mutated in place afterwards.

    Attributes:
        length: Number of sites along x.
        width: Number of sites along y.
        height: Number of sites along z.
        unit_size: Lattice constant (nm).
        sites: Flat list of sites indexed by ``x*W*H + y*H + z``.
    """

    def __init__(
        self,
        length: int,
        width: int,
        height: int,
        unit_size: float = 1.0,
        periodic_x: bool = True,
        periodic_y: bool = True,
        periodic_z: bool = False,
    ) -> None:
        """
        Initialize the lattice.

        Args:
            length: Lattice size in x.
            width: Lattice size in y.
            height: Lattice size in z.
            unit_size: Lattice constant (nm).
            periodic_x: Periodic boundary in x.
            periodic_y: Periodic boundary in y.
            periodic_z: Periodic boundary in z.

        Raises:
            ValueError: If any dimension is not positive.
        """
        if length <= 0 or width <= 0 or height <= 0:
            raise ValueError(f"Invalid lattice dimensions: {length}x{width}x{height}")
        if unit_size <= 0:
            raise ValueError(f"Invalid unit size: {unit_size}")

        self.length = length
        self.width = width
        self.height = height
        self.unit_size = unit_size
        self.periodic = (periodic_x, periodic_y, periodic_z)
        self.dims = (length, width, height)

        self.sites: list[Site] = [Site() for _ in range(self.num_sites)]

    @property
    def num_sites(self) -> int:
        """Total number of sites."""
        return self.length * self.width * self.height

    @property
    def volume(self) -> float:
        """Lattice volume (cm^3)."""
        return self.num_sites * (1e-7 * self.unit_size) ** 3

    def in_bounds(self, coords: Coords) -> bool:
        """Check if coordinates lie inside the lattice."""
        return all(0 <= c < n for c, n in zip(coords, self.dims, strict=True))

    def get_site_index(self, coords: Coords) -> int:
        """
        Convert coordinates to the flat site index.

        Raises:
            InvalidCoordinatesError: If coordinates are out of range.
        """
        if not self.in_bounds(coords):
            raise InvalidCoordinatesError(
                f"Coordinates {tuple(coords)} are outside the "
                f"{self.length}x{self.width}x{self.height} lattice"
            )
        x, y, z = coords
        return x * self.width * self.height + y * self.height + z

    def get_site_coords(self, index: int) -> Coords:
        """Convert a flat site index back to coordinates."""
        if not 0 <= index < self.num_sites:
            raise InvalidCoordinatesError(f"Site index {index} is out of range")
        x, rem = divmod(index, self.width * self.height)
        y, z = divmod(rem, self.height)
        return Coords(x, y, z)

    def get_site(self, coords: Coords) -> Site:
        """Get site at given coordinates."""
        return self.sites[self.get_site_index(coords)]

    def is_occupied(self, coords: Coords) -> bool:
        """Check if the site at the coordinates holds an object."""
        return self.get_site(coords).is_occupied()

    def iter_coords(self) -> Iterator[Coords]:
        """Iterate over all coordinates in site index order."""
        for x in range(self.length):
            for y in range(self.width):
                for z in range(self.height):
                    yield Coords(x, y, z)

    def check_move_validity(self, coords: Coords, i: int, j: int, k: int) -> bool:
        """
        Check whether an offset from a site leads to a valid destination.

        The zero offset is never valid, nor is any offset that leaves the
        lattice along a non-periodic axis.
        """
        if i == 0 and j == 0 and k == 0:
            return False
        for c, d, n, periodic in zip(coords, (i, j, k), self.dims, self.periodic, strict=True):
            if not periodic and not 0 <= c + d < n:
                return False
        return True

    def calculate_destination_coords(self, coords: Coords, i: int, j: int, k: int) -> Coords:
        """Apply an offset, wrapping periodic axes."""
        dest = []
        for c, d, n, periodic in zip(coords, (i, j, k), self.dims, self.periodic, strict=True):
            value = c + d
            if periodic:
                value %= n
            dest.append(value)
        return Coords(*dest)

    def calculate_lattice_distance_squared(self, a: Coords, b: Coords) -> int:
        """Squared distance in lattice units using the minimum image on periodic axes."""
        total = 0
        for ca, cb, n, periodic in zip(a, b, self.dims, self.periodic, strict=True):
            d = abs(ca - cb)
            if periodic and 2 * d > n:
                d = n - d
            total += d * d
        return total

    def calculate_periodic_correction(self, initial: Coords, final: Coords, axis: int) -> int:
        """
        Correction to add to ``final - initial`` along an axis for the minimum image.

        Returns ``-L`` or ``+L`` when the shortest path crosses the periodic
        boundary of the axis, otherwise 0.
        """
        n = self.dims[axis]
        if not self.periodic[axis]:
            return 0
        delta = final[axis] - initial[axis]
        if 2 * delta > n:
            return -n
        if 2 * delta < -n:
            return n
        return 0

    def generate_random_coords(self, rng: np.random.Generator) -> Coords:
        """Draw uniformly distributed coordinates."""
        return Coords(
            int(rng.integers(self.length)),
            int(rng.integers(self.width)),
            int(rng.integers(self.height)),
        )

    def set_occupant(self, coords: Coords, object_id: int) -> None:
        """
        Mark a site as holding an object.

        Raises:
            DestinationOccupiedError: If the site already holds an object.
        """
        site = self.get_site(coords)
        if site.object_id is not None:
            raise DestinationOccupiedError(
                f"Site {tuple(coords)} is already occupied by object {site.object_id}"
            )
        site.object_id = object_id

    def clear_occupant(self, coords: Coords) -> None:
        """Mark a site as empty."""
        self.get_site(coords).object_id = None

    def move_occupant(self, coords_from: Coords, coords_to: Coords) -> None:
        """
        Move the occupant of one site onto another.

        Both sites are updated together so the occupancy is never duplicated.

        Raises:
            DestinationOccupiedError: If the destination already holds an object.
        """
        source = self.get_site(coords_from)
        dest = self.get_site(coords_to)
        if dest.object_id is not None:
            raise DestinationOccupiedError(
                f"Cannot move object to {tuple(coords_to)}: "
                f"site occupied by object {dest.object_id}"
            )
        dest.object_id = source.object_id
        source.object_id = None

    def count_site_types(self) -> dict[SiteType, int]:
        """Number of sites of each type."""
        counts = dict.fromkeys(SiteType, 0)
        for site in self.sites:
            counts[site.site_type] += 1
        return counts

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"Lattice({self.length}x{self.width}x{self.height}, a={self.unit_size} nm, "
            f"periodic={self.periodic})"
        )
