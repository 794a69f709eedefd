"""
Site energy assignment.

Each site carries an energetic disorder offset relative to the HOMO/LUMO
level of its material. Offsets come from a Gaussian or exponential density
of states, optionally smoothed into spatially correlated disorder and shifted
at donor/acceptor interfaces, or are read from an energy file.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from ..data.osc_parameters import CorrelationKernel, DOSModel
from .errors import ConfigurationError, EnergyImportError
from .lattice import SiteType

if TYPE_CHECKING:
    from ..data.osc_parameters import SimulationParameters
    from .lattice import Lattice

logger = logging.getLogger(__name__)


def get_energy_array(lattice: Lattice) -> np.ndarray:
    """Site energies as an (L, W, H) array."""
    values = np.fromiter((site.energy for site in lattice.sites), dtype=float)
    return values.reshape(lattice.dims)


def get_type_array(lattice: Lattice) -> np.ndarray:
    """Site type values as an (L, W, H) array."""
    values = np.fromiter((site.site_type.value for site in lattice.sites), dtype=int)
    return values.reshape(lattice.dims)


def set_energy_array(lattice: Lattice, energies: np.ndarray) -> None:
    """Write an (L, W, H) array back into the sites."""
    for site, energy in zip(lattice.sites, energies.ravel(), strict=True):
        site.energy = float(energy)


def _pad(values: np.ndarray, reach: int, periodic: tuple[bool, bool, bool], fill=0) -> np.ndarray:
    # Wrap periodic axes, pad the others with a constant
    for axis, is_periodic in enumerate(periodic):
        width = [(0, 0)] * values.ndim
        width[axis] = (reach, reach)
        if is_periodic:
            values = np.pad(values, width, mode="wrap")
        else:
            values = np.pad(values, width, mode="constant", constant_values=fill)
    return values


def _shifted(padded: np.ndarray, reach: int, dims: tuple[int, int, int], i: int, j: int, k: int):
    return padded[
        reach + i : reach + i + dims[0],
        reach + j : reach + j + dims[1],
        reach + k : reach + k + dims[2],
    ]


def create_disorder(
    lattice: Lattice, params: SimulationParameters, rng: np.random.Generator
) -> np.ndarray:
    """
    Draw uncorrelated disorder offsets for every site.

    Returns:
        (L, W, H) array of offsets; zeros when the DOS model is 'none'.

    Raises:
        ConfigurationError: If any site has no assigned type.
    """
    types = get_type_array(lattice)
    if np.any(types == SiteType.UNASSIGNED.value):
        raise ConfigurationError("Undefined site type detected while assigning site energies")

    energies = np.zeros(lattice.dims)
    if params.dos_model == DOSModel.NONE:
        return energies

    for site_type, stdev, urbach in (
        (SiteType.DONOR, params.energy_stdev_donor, params.energy_urbach_donor),
        (SiteType.ACCEPTOR, params.energy_stdev_acceptor, params.energy_urbach_acceptor),
    ):
        mask = types == site_type.value
        n = int(mask.sum())
        if n == 0:
            continue
        if params.dos_model == DOSModel.GAUSSIAN:
            energies[mask] = rng.normal(0.0, stdev, size=n)
        else:
            # Exponential tail below the band edge
            energies[mask] = -rng.exponential(urbach, size=n)
    return energies


def apply_correlated_disorder(
    lattice: Lattice, energies: np.ndarray, params: SimulationParameters
) -> np.ndarray:
    """
    Smooth random energies into spatially correlated disorder.

    Each site energy becomes a kernel-weighted average of the energies
    within three correlation lengths, then the energies of each material are
    renormalized to zero mean and the target standard deviation.

    Args:
        lattice: Lattice providing geometry and site types.
        energies: Uncorrelated (L, W, H) energies.
        params: Simulation parameters.

    Returns:
        Correlated (L, W, H) energies.
    """
    a = lattice.unit_size
    xi = params.disorder_correlation_length
    reach = max(1, math.ceil(3 * xi / a))
    dims = lattice.dims

    padded = _pad(energies, reach, lattice.periodic)
    valid = _pad(np.ones(dims), reach, lattice.periodic)
    total = np.zeros(dims)
    weights = np.zeros(dims)
    for i in range(-reach, reach + 1):
        for j in range(-reach, reach + 1):
            for k in range(-reach, reach + 1):
                d2 = i * i + j * j + k * k
                if d2 > reach * reach:
                    continue
                r = a * math.sqrt(d2)
                if params.correlation_kernel == CorrelationKernel.GAUSSIAN:
                    w = math.exp(-(r * r) / (2 * xi * xi))
                else:
                    w = (1.0 + r / xi) ** params.power_kernel_exponent
                mask = _shifted(valid, reach, dims, i, j, k)
                total += w * mask * _shifted(padded, reach, dims, i, j, k)
                weights += w * mask
    smoothed = total / weights

    types = get_type_array(lattice)
    for site_type, stdev in (
        (SiteType.DONOR, params.energy_stdev_donor),
        (SiteType.ACCEPTOR, params.energy_stdev_acceptor),
    ):
        mask = types == site_type.value
        if mask.sum() < 2:
            continue
        values = smoothed[mask]
        current = values.std()
        if current > 0:
            smoothed[mask] = (values - values.mean()) * (stdev / current)
    return smoothed


def apply_interfacial_shift(
    lattice: Lattice, energies: np.ndarray, params: SimulationParameters
) -> np.ndarray:
    """
    Shift the energies of sites next to the other material.

    Unlike neighbors at face, edge and corner positions contribute the
    material's shift weighted by 1, 1/sqrt(2) and 1/sqrt(3).
    """
    dims = lattice.dims
    types = get_type_array(lattice)
    padded = _pad(types, 1, lattice.periodic, fill=-1)
    counts = {1: np.zeros(dims), 2: np.zeros(dims), 3: np.zeros(dims)}
    for i in (-1, 0, 1):
        for j in (-1, 0, 1):
            for k in (-1, 0, 1):
                order = abs(i) + abs(j) + abs(k)
                if order == 0:
                    continue
                neighbor = _shifted(padded, 1, dims, i, j, k)
                counts[order] += (neighbor >= 0) & (neighbor != types)

    weight = counts[1] + counts[2] / math.sqrt(2.0) + counts[3] / math.sqrt(3.0)
    shift = np.where(
        types == SiteType.ACCEPTOR.value, params.energy_shift_acceptor, params.energy_shift_donor
    )
    return energies + weight * shift


def export_energies(lattice: Lattice, path: str | Path) -> None:
    """
    Write site energies: length, width and height lines followed by one
    energy per line in x, y, z order.
    """
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"{lattice.length}\n{lattice.width}\n{lattice.height}\n")
        for site in lattice.sites:
            f.write(f"{site.energy!r}\n")
    logger.info(f"Exported site energies to {path}")


def parse_energies_file(path: str | Path, lattice: Lattice) -> np.ndarray:
    """
    Read an energy file written by :func:`export_energies`.

    Returns:
        Flat array of energies in site index order.

    Raises:
        EnergyImportError: If the file cannot be read, its dimensions do not
            match the lattice or the number of energies is wrong.
    """
    try:
        with open(path, encoding="utf-8") as f:
            lines = [line.strip() for line in f.read().splitlines()]
    except OSError as e:
        raise EnergyImportError(f"Site energies file {path} could not be opened: {e}") from e
    while lines and not lines[-1]:
        lines.pop()

    try:
        length, width, height = (int(lines[i]) for i in range(3))
    except (IndexError, ValueError) as e:
        raise EnergyImportError("Lattice dimensions in the energies file are not valid") from e
    if length <= 0 or width <= 0 or height <= 0:
        raise EnergyImportError("Lattice dimensions in the energies file are not valid")
    if (length, width, height) != lattice.dims:
        raise EnergyImportError(
            f"Energies file dimensions {length}x{width}x{height} do not match the lattice "
            f"dimensions {lattice.length}x{lattice.width}x{lattice.height}"
        )
    if len(lines) != lattice.num_sites + 3:
        raise EnergyImportError(
            f"Energies file holds {len(lines) - 3} energies for {lattice.num_sites} sites"
        )
    try:
        return np.array([float(line) for line in lines[3:]])
    except ValueError as e:
        raise EnergyImportError(f"Malformed energy value: {e}") from e


def import_energies(lattice: Lattice, path: str | Path) -> None:
    """
    Assign site energies from a file.

    Raises:
        EnergyImportError: See :func:`parse_energies_file`; no site is modified
            when it is raised.
    """
    energies = parse_energies_file(path, lattice)
    if any(site.site_type == SiteType.UNASSIGNED for site in lattice.sites):
        raise EnergyImportError("Undefined site type detected while importing site energies")
    for site, energy in zip(lattice.sites, energies, strict=True):
        site.energy = float(energy)
    logger.info(f"Imported site energies from {path}")


def assign_site_energies(
    lattice: Lattice, params: SimulationParameters, rng: np.random.Generator
) -> None:
    """
    (Re)assign every site energy according to the parameters.

    Raises:
        ConfigurationError: If a site has no type or an energy file is invalid.
    """
    energies = create_disorder(lattice, params, rng)
    if params.enable_correlated_disorder:
        energies = apply_correlated_disorder(lattice, energies, params)
    if params.enable_interfacial_energy_shift:
        energies = apply_interfacial_shift(lattice, energies, params)
    set_energy_array(lattice, energies)

    if params.enable_import_energies:
        if params.energies_import_filename is None:
            raise ConfigurationError("Energy import requires an energies filename")
        import_energies(lattice, params.energies_import_filename)


def calculate_dos_correlation(
    lattice: Lattice, cutoff_radius: float | None = None, threshold: float = 0.01
) -> list[tuple[float, float]]:
    """
    Spatial correlation function of the site energies.

    Pairs are binned by distance in half lattice units. Without a cutoff the
    radius grows until the correlation drops below the threshold or reaches
    half the smallest lattice dimension.

    Returns:
        (distance in nm, correlation) pairs starting at distance 0.
    """
    energies = get_energy_array(lattice)
    stdev = energies.std()
    if stdev == 0:
        return [(0.0, 1.0)]

    a = lattice.unit_size
    limit = a * max(1, min(lattice.dims) // 2)
    radius = cutoff_radius if cutoff_radius is not None else a
    while True:
        data = _dos_correlation(lattice, energies, stdev, radius)
        if cutoff_radius is not None or data[-1][1] <= threshold or radius >= limit:
            return data
        radius += a


def _dos_correlation(
    lattice: Lattice, energies: np.ndarray, stdev: float, radius: float
) -> list[tuple[float, float]]:
    a = lattice.unit_size
    reach = math.ceil(radius / a)
    n_bins = math.ceil(2 * radius / a) + 1
    dims = lattice.dims
    padded = _pad(energies, reach, lattice.periodic)
    valid = _pad(np.ones(dims), reach, lattice.periodic)
    sums = np.zeros(n_bins)
    counts = np.zeros(n_bins)
    for i in range(-reach, reach + 1):
        for j in range(-reach, reach + 1):
            for k in range(-reach, reach + 1):
                if i == 0 and j == 0 and k == 0:
                    continue
                b = round(2.0 * math.sqrt(i * i + j * j + k * k))
                if b >= n_bins:
                    continue
                mask = _shifted(valid, reach, dims, i, j, k)
                sums[b] += float(np.sum(energies * _shifted(padded, reach, dims, i, j, k) * mask))
                counts[b] += float(mask.sum())

    data = [(0.0, 1.0)]
    for b in range(1, n_bins):
        if counts[b] > 1:
            data.append((a * b / 2.0, sums[b] / ((counts[b] - 1) * stdev * stdev)))
    return data
