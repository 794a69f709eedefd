"""
Tests for film architectures and morphology file import.
"""

from __future__ import annotations

import numpy as np
import pytest

from oscsim.data.osc_parameters import MorphologyType, SimulationParameters
from oscsim.kmc.errors import MorphologyImportError
from oscsim.kmc.lattice import Coords, Lattice, SiteType
from oscsim.kmc.morphology import (
    create_bilayer,
    create_neat,
    create_random_blend,
    import_morphology,
    initialize_architecture,
)

V4_HEADER = "Ising_OPV v4.0 - compressed format\n2\n2\n2\n1\n1\n0\n2\n0\n0\n0\n0\n"


def test_neat_and_bilayer():
    lattice = Lattice(3, 3, 4)
    create_neat(lattice)
    assert lattice.count_site_types()[SiteType.DONOR] == 36

    create_bilayer(lattice, 1)
    assert lattice.get_site(Coords(1, 1, 0)).site_type == SiteType.ACCEPTOR
    assert lattice.get_site(Coords(1, 1, 1)).site_type == SiteType.DONOR
    assert lattice.count_site_types()[SiteType.ACCEPTOR] == 9


def test_random_blend_composition():
    lattice = Lattice(10, 10, 10)
    create_random_blend(lattice, 0.3, np.random.default_rng(5))
    counts = lattice.count_site_types()
    assert counts[SiteType.ACCEPTOR] == 300
    assert counts[SiteType.DONOR] == 700
    assert counts[SiteType.UNASSIGNED] == 0


def test_initialize_architecture_returns_counts():
    params = SimulationParameters(
        length=4, width=4, height=4, morphology=MorphologyType.BILAYER,
        thickness_acceptor=1, thickness_donor=3,
    )
    lattice = Lattice(4, 4, 4)
    counts = initialize_architecture(lattice, params, np.random.default_rng(0))
    assert counts[SiteType.ACCEPTOR] == 16
    assert counts[SiteType.DONOR] == 48


def test_import_compressed_v4(tmp_path):
    path = tmp_path / "morph.txt"
    # Sites in x, y, z order: the first x-slab is acceptor, the second donor
    path.write_text(V4_HEADER + "24\n14\n")
    lattice = Lattice(2, 2, 2)
    import_morphology(lattice, path)
    assert lattice.get_site(Coords(0, 1, 1)).site_type == SiteType.ACCEPTOR
    assert lattice.get_site(Coords(1, 0, 0)).site_type == SiteType.DONOR


def test_import_uncompressed_v3(tmp_path):
    lines = ["Ising_OPV v3.2 - uncompressed format", "2", "2", "1", "5", "5", "0.5"]
    for x in range(2):
        for y in range(2):
            lines.append(f"{x},{y},0,{1 if x == y else 2}")
    path = tmp_path / "morph.txt"
    path.write_text("\n".join(lines) + "\n")
    lattice = Lattice(2, 2, 1)
    import_morphology(lattice, path)
    assert lattice.get_site(Coords(0, 0, 0)).site_type == SiteType.DONOR
    assert lattice.get_site(Coords(0, 1, 0)).site_type == SiteType.ACCEPTOR


@pytest.mark.parametrize(
    "content",
    [
        "",
        "Some other format\n2\n2\n2\n18\n",
        "Ising_OPV v3.1 - compressed format\n2\n2\n2\n0\n0\n0\n18\n",
        V4_HEADER + "24\n",
        V4_HEADER + "24\n13\n01\n",
        V4_HEADER + "24\n34\n",
        V4_HEADER + "2x\n",
    ],
    ids=["empty", "format", "version", "truncated", "unassigned", "unknown-type", "malformed"],
)
def test_invalid_files_leave_lattice_unchanged(tmp_path, content):
    path = tmp_path / "morph.txt"
    path.write_text(content)
    lattice = Lattice(2, 2, 2)
    create_neat(lattice)
    with pytest.raises(MorphologyImportError):
        import_morphology(lattice, path)
    assert all(site.site_type == SiteType.DONOR for site in lattice.sites)


def test_missing_file(tmp_path):
    with pytest.raises(MorphologyImportError):
        import_morphology(Lattice(2, 2, 2), tmp_path / "missing.txt")
