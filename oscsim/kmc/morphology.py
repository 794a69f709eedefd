"""
Film architecture: assignment of donor/acceptor types to lattice sites.

Procedural architectures (neat film, bilayer, random blend) and import of
morphology files written by Ising_OPV v3.2 or v4.0 and newer are supported.
Imported files are parsed completely before any site is touched, so a bad
file leaves the lattice unchanged.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ..data.osc_parameters import MorphologyType
from .errors import ConfigurationError, MorphologyImportError
from .lattice import SiteType

if TYPE_CHECKING:
    from ..data.osc_parameters import SimulationParameters
    from .lattice import Lattice

logger = logging.getLogger(__name__)

_HEADER_PATTERN = re.compile(r"^Ising_OPV v(\d+)\.(\d+)")


def create_neat(lattice: Lattice) -> None:
    """Make every site a donor site."""
    for site in lattice.sites:
        site.site_type = SiteType.DONOR


def create_bilayer(lattice: Lattice, thickness_acceptor: int) -> None:
    """Acceptor layer at the bottom (z < thickness_acceptor), donor above."""
    for coords in lattice.iter_coords():
        site = lattice.get_site(coords)
        site.site_type = SiteType.ACCEPTOR if coords.z < thickness_acceptor else SiteType.DONOR


def create_random_blend(lattice: Lattice, acceptor_conc: float, rng: np.random.Generator) -> None:
    """
    Randomly mixed blend.

    Args:
        lattice: Lattice to fill.
        acceptor_conc: Fraction of acceptor sites.
        rng: Random number generator.
    """
    n_acceptor = int(lattice.num_sites * acceptor_conc)
    types = np.full(lattice.num_sites, SiteType.DONOR.value)
    types[:n_acceptor] = SiteType.ACCEPTOR.value
    rng.shuffle(types)
    for site, value in zip(lattice.sites, types, strict=True):
        site.site_type = SiteType(int(value))


def parse_morphology_file(path: str | Path, lattice: Lattice) -> np.ndarray:
    """
    Parse an Ising_OPV morphology file into site type values.

    Args:
        path: Morphology file.
        lattice: Lattice the morphology must match.

    Returns:
        Integer site types indexed by lattice site index.

    Raises:
        MorphologyImportError: If the file cannot be read, has an unsupported
            version, does not match the lattice dimensions, is truncated or
            leaves sites unassigned.
    """
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise MorphologyImportError(f"Morphology file {path} could not be opened: {e}") from e

    if not lines:
        raise MorphologyImportError(f"Morphology file {path} is empty")

    header = lines[0]
    match = _HEADER_PATTERN.match(header)
    if match is None:
        raise MorphologyImportError(
            "Morphology file format not recognized. Only morphologies created using "
            "Ising_OPV v3.2 and v4.0 or greater are supported."
        )
    version = (int(match.group(1)), int(match.group(2)))
    if version == (3, 2):
        is_v4 = False
    elif version >= (4, 0):
        is_v4 = True
    else:
        raise MorphologyImportError(
            f"Ising_OPV morphology version {version[0]}.{version[1]} is not supported; "
            "only v3.2 and v4.0 or greater are supported."
        )
    compressed = "uncompressed" not in header

    try:
        length, width, height = (int(lines[i]) for i in (1, 2, 3))
    except (IndexError, ValueError) as e:
        raise MorphologyImportError("Morphology file dimensions could not be read") from e
    if (length, width, height) != lattice.dims:
        raise MorphologyImportError(
            f"Morphology lattice dimensions {length}x{width}x{height} do not match the "
            f"lattice dimensions {lattice.length}x{lattice.width}x{lattice.height}"
        )

    pos = 4
    if is_v4:
        # Boundary conditions, then the number of types and two lines per type
        pos += 3
        try:
            n_types = int(lines[pos])
        except (IndexError, ValueError) as e:
            raise MorphologyImportError("Morphology file site type count could not be read") from e
        pos += 1 + 2 * n_types
    else:
        # Domain sizes and blend ratio
        pos += 3

    body = [line for line in lines[pos:] if line.strip()]
    types = np.zeros(lattice.num_sites, dtype=int)
    if compressed:
        _parse_compressed(body, types, lattice)
    else:
        _parse_uncompressed(body, types, lattice)

    if np.any(types == SiteType.UNASSIGNED.value):
        raise MorphologyImportError(
            "Unassigned site found after morphology import. Check the morphology file for errors."
        )
    return types


def _parse_compressed(body: list[str], types: np.ndarray, lattice: Lattice) -> None:
    # Run-length lines "<type><count>" covering sites in x, y, z order
    index = 0
    for line in body:
        try:
            value = int(line[0])
            count = int(line[1:])
        except ValueError as e:
            raise MorphologyImportError(f"Malformed morphology line: {line!r}") from e
        if index + count > lattice.num_sites:
            raise MorphologyImportError("Morphology file describes more sites than the lattice")
        # Site index order x, y, z matches the file order
        types[index : index + count] = value
        index += count
    if index < lattice.num_sites:
        raise MorphologyImportError(
            "Error parsing imported morphology file. End of file reached before expected."
        )


def _parse_uncompressed(body: list[str], types: np.ndarray, lattice: Lattice) -> None:
    for line in body:
        try:
            x, y, z, value = (int(v) for v in line.split(","))
        except ValueError as e:
            raise MorphologyImportError(f"Malformed morphology line: {line!r}") from e
        coords = (x, y, z)
        if not all(0 <= c < n for c, n in zip(coords, lattice.dims, strict=True)):
            raise MorphologyImportError(f"Morphology site {coords} is outside the lattice")
        types[x * lattice.width * lattice.height + y * lattice.height + z] = value


def import_morphology(lattice: Lattice, path: str | Path) -> None:
    """
    Assign site types from a morphology file.

    Raises:
        MorphologyImportError: See :func:`parse_morphology_file`; no site is
            modified when it is raised.
    """
    types = parse_morphology_file(path, lattice)
    try:
        new_types = [SiteType(int(value)) for value in types]
    except ValueError as e:
        raise MorphologyImportError(f"Unknown site type in morphology file: {e}") from e
    for site, site_type in zip(lattice.sites, new_types, strict=True):
        site.site_type = site_type
    logger.info(f"Imported morphology from {path}")


def initialize_architecture(
    lattice: Lattice, params: SimulationParameters, rng: np.random.Generator
) -> dict[SiteType, int]:
    """
    Build the film architecture selected by the parameters.

    Returns:
        Number of sites of each type.

    Raises:
        MorphologyImportError: If an imported morphology is invalid.
    """
    if params.morphology == MorphologyType.NEAT:
        create_neat(lattice)
    elif params.morphology == MorphologyType.BILAYER:
        create_bilayer(lattice, params.thickness_acceptor)
    elif params.morphology == MorphologyType.RANDOM_BLEND:
        create_random_blend(lattice, params.acceptor_conc, rng)
    elif params.morphology == MorphologyType.IMPORT:
        if params.morphology_filename is None:
            raise ConfigurationError("Morphology import requires a morphology filename")
        import_morphology(lattice, params.morphology_filename)

    counts = lattice.count_site_types()
    logger.info(
        f"Film architecture '{params.morphology.value}': "
        f"{counts[SiteType.DONOR]} donor, {counts[SiteType.ACCEPTOR]} acceptor sites"
    )
    return counts
