"""
Coulomb interaction energies between polarons.

Pair energies are tabulated once by squared lattice distance; the energy of a
charge at a site is the sum over all other placed polarons within the cutoff
plus, for films with non-periodic z, the attraction to its image charges in
the two electrodes.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np
from scipy.special import erf

from ..data.constants import COULOMB_CONSTANT, ELEMENTARY_CHARGE, VACUUM_PERMITTIVITY

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .lattice import Coords, Lattice
    from .objects import Charge, Polaron

logger = logging.getLogger(__name__)

# Tolerance for comparing distances against cutoffs (nm)
CUTOFF_TOLERANCE = 1e-4


class CoulombEngine:
    """
    Tabulated Coulomb interactions on a lattice.

    Attributes:
        lattice: Lattice the charges live on.
        cutoff: Interaction cutoff radius (nm).
        coulomb_range: Largest squared lattice distance with a table entry.
        table: Pair energy (eV) indexed by squared lattice distance.
        image_prefactor: Image charge energy prefactor (eV*nm).
    """

    def __init__(
        self,
        lattice: Lattice,
        dielectric_donor: float,
        dielectric_acceptor: float,
        cutoff: float,
        gaussian_delocalization: bool = False,
        delocalization_length: float = 1.0,
    ) -> None:
        """
        Build the interaction table.

        Args:
            lattice: Lattice the charges live on.
            dielectric_donor: Relative dielectric constant of the donor.
            dielectric_acceptor: Relative dielectric constant of the acceptor.
            cutoff: Interaction cutoff radius (nm).
            gaussian_delocalization: Screen short-range interactions of
                Gaussian-delocalized charges.
            delocalization_length: Polaron delocalization length (nm).
        """
        self.lattice = lattice
        self.cutoff = cutoff
        a = lattice.unit_size
        avg_dielectric = 0.5 * (dielectric_donor + dielectric_acceptor)

        self.coulomb_range = math.ceil((cutoff / a) ** 2)
        d2 = np.arange(1, self.coulomb_range + 1, dtype=float)
        distances = a * np.sqrt(d2)
        values = COULOMB_CONSTANT * ELEMENTARY_CHARGE / (avg_dielectric * 1e-9 * distances)
        if gaussian_delocalization:
            values *= erf(distances / (delocalization_length * math.sqrt(2)))
        self.table = np.concatenate(([0.0], values))

        self.image_prefactor = (
            ELEMENTARY_CHARGE / (16 * math.pi * avg_dielectric * VACUUM_PERMITTIVITY) * 1e9
        )

        logger.debug(
            f"Coulomb table built: {self.coulomb_range} entries, "
            f"E(1 site)={self.table[1] if self.coulomb_range else 0.0:.4f} eV"
        )

    def pair_energy(self, d2: int) -> float:
        """Unsigned pair energy (eV) at a squared lattice distance; 0 beyond the cutoff."""
        if d2 <= 0 or d2 > self.coulomb_range:
            return 0.0
        return float(self.table[d2])

    def image_energy(self, z: int) -> float:
        """Interaction energy (eV) of a charge at height z with its electrode images."""
        if self.lattice.periodic[2]:
            return 0.0
        a = self.lattice.unit_size
        energy = 0.0
        for distance in (a * (self.lattice.height - z - 0.5), a * (z + 0.5)):
            if distance - CUTOFF_TOLERANCE <= self.cutoff:
                energy -= self.image_prefactor / distance
        return energy

    def calculate_coulomb(
        self,
        charge: Charge,
        coords: Coords,
        polarons: Iterable[Polaron],
        exclude_id: int | None = None,
        include_image: bool = True,
    ) -> float:
        """
        Coulomb energy (eV) of a charge placed at the coordinates.

        Args:
            charge: Charge placed at the position.
            coords: Position of the charge.
            polarons: All placed polarons.
            exclude_id: Object id of the charge itself, excluded from the sum.
            include_image: Add the electrode image charge terms.

        Returns:
            Interaction energy; same-sign pairs raise it, opposite-sign pairs lower it.
        """
        energy = 0.0
        for polaron in polarons:
            if polaron.object_id == exclude_id:
                continue
            d2 = self.lattice.calculate_lattice_distance_squared(coords, polaron.coords)
            if d2 > self.coulomb_range:
                continue
            if polaron.charge == charge:
                energy += self.table[d2]
            else:
                energy -= self.table[d2]
        if include_image:
            energy += self.image_energy(coords.z)
        return float(energy)
