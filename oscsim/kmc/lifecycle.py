"""
Object lifecycle management.

The :class:`ObjectManager` is the single place where excitons and polarons are
created, moved and destroyed. Each transition updates the object registry,
the lattice occupancy, the event slots and the live/created counters together,
so that the lattice never disagrees with the registry.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from .errors import (
    ConsistencyError,
    DestinationOccupiedError,
    ObjectLookupError,
    PhaseRestrictionError,
)
from .events import EXCITON_EVENT_TYPES, POLARON_EVENT_TYPES
from .lattice import SiteType
from .objects import Charge, Exciton, Polaron, SimObject, Spin

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .events import EventCatalog, EventType
    from .lattice import Coords, Lattice, Site

logger = logging.getLogger(__name__)


@dataclass
class SimulationCounters:
    """
    Live populations, creation totals and fate tallies of one simulation.

    A fresh instance belongs to each simulator; counters are never shared.
    """

    # Live populations
    n_singlets: int = 0
    n_triplets: int = 0
    n_electrons: int = 0
    n_holes: int = 0

    # Creation totals
    n_excitons_created: int = 0
    n_excitons_created_donor: int = 0
    n_excitons_created_acceptor: int = 0
    n_electrons_created: int = 0
    n_holes_created: int = 0

    # Exciton fates
    n_singlets_recombined: int = 0
    n_triplets_recombined: int = 0
    n_singlets_dissociated: int = 0
    n_triplets_dissociated: int = 0
    n_singlet_singlet_annihilations: int = 0
    n_singlet_triplet_annihilations: int = 0
    n_triplet_triplet_annihilations: int = 0
    n_singlet_polaron_annihilations: int = 0
    n_triplet_polaron_annihilations: int = 0
    n_intersystem_crossings: int = 0
    n_reverse_intersystem_crossings: int = 0

    # Polaron fates
    n_electrons_recombined: int = 0
    n_holes_recombined: int = 0
    n_electrons_collected: int = 0
    n_holes_collected: int = 0
    n_geminate_recombinations: int = 0
    n_bimolecular_recombinations: int = 0

    n_events_executed: int = 0

    @property
    def n_excitons(self) -> int:
        return self.n_singlets + self.n_triplets

    @property
    def n_excitons_recombined(self) -> int:
        return self.n_singlets_recombined + self.n_triplets_recombined

    @property
    def n_excitons_dissociated(self) -> int:
        return self.n_singlets_dissociated + self.n_triplets_dissociated

    @property
    def n_polarons(self) -> int:
        return self.n_electrons + self.n_holes

    def as_dict(self) -> dict[str, int]:
        """All counters keyed by field name, plus the derived totals."""
        data = asdict(self)
        data["n_excitons_recombined"] = self.n_excitons_recombined
        data["n_excitons_dissociated"] = self.n_excitons_dissociated
        return data


class ObjectManager:
    """
    Registry of live excitons and polarons.

    Attributes:
        lattice: Lattice whose occupancy mirrors the registry.
        catalog: Event catalog holding the objects' event slots.
        counters: Counters updated on every transition.
        enable_phase_restriction: Forbid electrons on donor and holes on acceptor sites.
    """

    def __init__(
        self,
        lattice: Lattice,
        catalog: EventCatalog,
        counters: SimulationCounters,
        enable_phase_restriction: bool = True,
    ) -> None:
        self.lattice = lattice
        self.catalog = catalog
        self.counters = counters
        self.enable_phase_restriction = enable_phase_restriction

        self._next_id = 1
        self._next_polaron_tag = 1
        self._objects: dict[int, SimObject] = {}
        self._excitons: dict[int, Exciton] = {}
        self._electrons: dict[int, Polaron] = {}
        self._holes: dict[int, Polaron] = {}

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_exciton(
        self, coords: Coords, spin: Spin, time: float, tag: int | None = None
    ) -> Exciton:
        """
        Place a new exciton.

        Args:
            coords: Target site.
            spin: Initial spin state.
            time: Creation time (s).
            tag: Exciton tag; defaults to the next exciton number.

        Returns:
            The new exciton.

        Raises:
            InvalidCoordinatesError: If coords are outside the lattice.
            DestinationOccupiedError: If the site is occupied.
        """
        site = self._check_free_site(coords)
        if tag is None:
            tag = self.counters.n_excitons_created + 1
        exciton = Exciton(
            object_id=self._allocate_id(), tag=tag, creation_time=time, coords=coords, spin=spin
        )
        self._register(exciton, EXCITON_EVENT_TYPES)
        self._excitons[exciton.object_id] = exciton

        self.counters.n_excitons_created += 1
        if site.site_type == SiteType.ACCEPTOR:
            self.counters.n_excitons_created_acceptor += 1
        else:
            self.counters.n_excitons_created_donor += 1
        if spin == Spin.SINGLET:
            self.counters.n_singlets += 1
        else:
            self.counters.n_triplets += 1

        logger.debug(f"Created {exciton} at t={time:.4e}")
        return exciton

    def next_polaron_tag(self) -> int:
        """
        Reserve a new polaron tag.

        Tags are shared by electrons and holes, so only the two halves of one
        dissociated exciton ever carry the same tag.
        """
        tag = self._next_polaron_tag
        self._next_polaron_tag += 1
        return tag

    def create_electron(self, coords: Coords, time: float, tag: int | None = None) -> Polaron:
        """Place a new electron. Raises like :meth:`create_exciton`, plus phase restriction."""
        return self._create_polaron(coords, Charge.ELECTRON, time, tag)

    def create_hole(self, coords: Coords, time: float, tag: int | None = None) -> Polaron:
        """Place a new hole. Raises like :meth:`create_exciton`, plus phase restriction."""
        return self._create_polaron(coords, Charge.HOLE, time, tag)

    def _create_polaron(
        self, coords: Coords, charge: Charge, time: float, tag: int | None
    ) -> Polaron:
        site = self._check_free_site(coords)
        self.check_phase_restriction(charge, site.site_type, coords)

        polaron = Polaron(
            object_id=self._allocate_id(),
            tag=self.next_polaron_tag() if tag is None else tag,
            creation_time=time,
            coords=coords,
            charge=charge,
        )
        self._register(polaron, POLARON_EVENT_TYPES)

        if charge == Charge.ELECTRON:
            self._electrons[polaron.object_id] = polaron
            self.counters.n_electrons += 1
            self.counters.n_electrons_created += 1
        else:
            self._holes[polaron.object_id] = polaron
            self.counters.n_holes += 1
            self.counters.n_holes_created += 1

        logger.debug(f"Created {polaron} at t={time:.4e}")
        return polaron

    def check_phase_restriction(self, charge: Charge, site_type: SiteType, coords: Coords) -> None:
        """
        Raises:
            PhaseRestrictionError: If the charge may not occupy the site type.
        """
        if not self.enable_phase_restriction:
            return
        if charge == Charge.ELECTRON and site_type == SiteType.DONOR:
            raise PhaseRestrictionError(f"Electron not allowed on donor site {tuple(coords)}")
        if charge == Charge.HOLE and site_type == SiteType.ACCEPTOR:
            raise PhaseRestrictionError(f"Hole not allowed on acceptor site {tuple(coords)}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def destroy(self, obj: SimObject) -> None:
        """
        Remove an object from the lattice and the registry.

        Raises:
            ObjectLookupError: If the object is not live.
        """
        if obj.object_id not in self._objects:
            raise ObjectLookupError(f"Object {obj.object_id} is not live")

        self.lattice.clear_occupant(obj.coords)
        self.catalog.release_slots(obj.object_id)
        del self._objects[obj.object_id]

        if isinstance(obj, Exciton):
            del self._excitons[obj.object_id]
            if obj.spin == Spin.SINGLET:
                self.counters.n_singlets -= 1
            else:
                self.counters.n_triplets -= 1
        elif isinstance(obj, Polaron):
            if obj.is_electron:
                del self._electrons[obj.object_id]
                self.counters.n_electrons -= 1
            else:
                del self._holes[obj.object_id]
                self.counters.n_holes -= 1

        logger.debug(f"Destroyed {obj}")

    def move(self, obj: SimObject, dest: Coords) -> None:
        """
        Move an object to an unoccupied site.

        Raises:
            DestinationOccupiedError: If the destination holds an object.
        """
        self.lattice.move_occupant(obj.coords, dest)
        obj.set_coords(dest, self.lattice)

    def flip_spin(self, exciton: Exciton) -> None:
        """Flip the spin of an exciton and keep the singlet/triplet counts in step."""
        if exciton.spin == Spin.SINGLET:
            self.counters.n_singlets -= 1
            self.counters.n_triplets += 1
        else:
            self.counters.n_triplets -= 1
            self.counters.n_singlets += 1
        exciton.flip_spin()

    def clear_all(self) -> None:
        """Destroy every live object."""
        for obj in list(self._objects.values()):
            self.destroy(obj)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, object_id: int) -> SimObject:
        """
        Raises:
            ObjectLookupError: If no live object has the id.
        """
        try:
            return self._objects[object_id]
        except KeyError:
            raise ObjectLookupError(f"No live object with id {object_id}") from None

    def contains(self, object_id: int) -> bool:
        return object_id in self._objects

    def object_at(self, coords: Coords) -> SimObject | None:
        """Object occupying a site, None when the site is empty."""
        object_id = self.lattice.get_site(coords).object_id
        if object_id is None:
            return None
        return self.get(object_id)

    @property
    def excitons(self) -> list[Exciton]:
        return list(self._excitons.values())

    @property
    def electrons(self) -> list[Polaron]:
        return list(self._electrons.values())

    @property
    def holes(self) -> list[Polaron]:
        return list(self._holes.values())

    @property
    def polarons(self) -> list[Polaron]:
        return [*self._electrons.values(), *self._holes.values()]

    def all_objects(self) -> list[SimObject]:
        return list(self._objects.values())

    def __len__(self) -> int:
        return len(self._objects)

    def verify_consistency(self) -> None:
        """
        Check that registry, lattice occupancy and live counters agree.

        Raises:
            ConsistencyError: Describing the first mismatch found.
        """
        c = self.counters
        n_singlets = sum(1 for e in self._excitons.values() if e.spin == Spin.SINGLET)
        expected = {
            "singlets": (c.n_singlets, n_singlets),
            "triplets": (c.n_triplets, len(self._excitons) - n_singlets),
            "electrons": (c.n_electrons, len(self._electrons)),
            "holes": (c.n_holes, len(self._holes)),
        }
        for name, (counted, registered) in expected.items():
            if counted != registered:
                raise ConsistencyError(
                    f"Counter for {name} is {counted} but {registered} are registered"
                )

        n_occupied = 0
        for coords in self.lattice.iter_coords():
            object_id = self.lattice.get_site(coords).object_id
            if object_id is None:
                continue
            n_occupied += 1
            obj = self._objects.get(object_id)
            if obj is None:
                raise ConsistencyError(f"Site {tuple(coords)} refers to dead object {object_id}")
            if obj.coords != coords:
                raise ConsistencyError(
                    f"Object {object_id} is at {tuple(obj.coords)} but occupies {tuple(coords)}"
                )
        if n_occupied != len(self._objects):
            raise ConsistencyError(
                f"{n_occupied} occupied sites for {len(self._objects)} live objects"
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_free_site(self, coords: Coords) -> Site:
        site = self.lattice.get_site(coords)
        if site.is_occupied():
            raise DestinationOccupiedError(
                f"Site {tuple(coords)} is already occupied by object {site.object_id}"
            )
        return site

    def _allocate_id(self) -> int:
        object_id = self._next_id
        self._next_id += 1
        return object_id

    def _register(self, obj: SimObject, event_types: Iterable[EventType]) -> None:
        self.lattice.set_occupant(obj.coords, obj.object_id)
        self._objects[obj.object_id] = obj
        self.catalog.allocate_slots(obj.object_id, event_types)
