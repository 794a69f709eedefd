"""
Event definitions for KMC simulation.

This module defines the event types that can occur for excitons and polarons
and the catalog that keeps one candidate slot per mechanism for every live
object, keyed by the object's stable id.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ConsistencyError, ObjectLookupError

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy as np

    from .lattice import Coords


class EventType(Enum):
    """Types of events in the simulation."""

    EXCITON_CREATION = "exciton_creation"
    EXCITON_HOP = "exciton_hop"
    EXCITON_RECOMBINATION = "exciton_recombination"
    EXCITON_DISSOCIATION = "exciton_dissociation"
    EXCITON_EXCITON_ANNIHILATION = "exciton_exciton_annihilation"
    EXCITON_POLARON_ANNIHILATION = "exciton_polaron_annihilation"
    EXCITON_INTERSYSTEM_CROSSING = "exciton_intersystem_crossing"
    POLARON_HOP = "polaron_hop"
    POLARON_RECOMBINATION = "polaron_recombination"
    POLARON_EXTRACTION = "polaron_extraction"


EXCITON_EVENT_TYPES = (
    EventType.EXCITON_HOP,
    EventType.EXCITON_RECOMBINATION,
    EventType.EXCITON_DISSOCIATION,
    EventType.EXCITON_EXCITON_ANNIHILATION,
    EventType.EXCITON_POLARON_ANNIHILATION,
    EventType.EXCITON_INTERSYSTEM_CROSSING,
)

POLARON_EVENT_TYPES = (
    EventType.POLARON_HOP,
    EventType.POLARON_RECOMBINATION,
    EventType.POLARON_EXTRACTION,
)


@dataclass
class Event:
    """
    Represents a single candidate or scheduled event.

    Attributes:
        event_type: Type of the event.
        object_id: Id of the initiating object; None for generation.
        dest_coords: Destination coordinates, None for on-site events.
        target_id: Id of the partner object for annihilation/recombination.
        rate: Event rate (1/s).
        execution_time: Sampled absolute execution time (s).
        delta_energy: Energy change of the transition (eV).
    """

    event_type: EventType
    object_id: int | None = None
    dest_coords: Coords | None = None
    target_id: int | None = None
    rate: float = 0.0
    execution_time: float = 0.0
    delta_energy: float = 0.0

    def calculate_execution_time(self, current_time: float, rng: np.random.Generator) -> float:
        """
        Sample the absolute execution time from an exponential waiting time.

        Args:
            current_time: Current simulation time (s).
            rng: Random number generator.

        Returns:
            Sampled execution time, also stored on the event.
        """
        u = 1.0 - rng.random()  # in (0, 1]
        self.execution_time = current_time - math.log(u) / self.rate
        return self.execution_time

    def __repr__(self) -> str:
        """String representation."""
        if self.dest_coords is not None:
            return (
                f"Event({self.event_type.value}, obj={self.object_id}"
                f"->{tuple(self.dest_coords)}, rate={self.rate:.2e}, "
                f"t={self.execution_time:.3e})"
            )
        return (
            f"Event({self.event_type.value}, obj={self.object_id}, rate={self.rate:.2e}, "
            f"t={self.execution_time:.3e})"
        )


class EventCatalog:
    """
    Catalog of candidate and active events.

    Every live object owns one slot per mechanism valid for its species and
    at most one active (pending) event. The exciton generation event is held
    separately and stays armed while the light is on.
    """

    def __init__(self) -> None:
        """Initialize empty event catalog."""
        self.slots: dict[int, dict[EventType, Event | None]] = {}
        self.active: dict[int, Event] = {}
        self.generation_event: Event | None = None

    def allocate_slots(self, object_id: int, event_types: Iterable[EventType]) -> None:
        """
        Create empty candidate slots for a new object.

        Raises:
            ConsistencyError: If the object already owns slots.
        """
        if object_id in self.slots:
            raise ConsistencyError(f"Event slots for object {object_id} already exist")
        self.slots[object_id] = dict.fromkeys(event_types)

    def release_slots(self, object_id: int) -> None:
        """Drop all slots and the active event of an object."""
        self.slots.pop(object_id, None)
        self.active.pop(object_id, None)

    def get_slot(self, object_id: int, event_type: EventType) -> Event | None:
        """Get the stored candidate of one mechanism."""
        return self._slots_for(object_id)[event_type]

    def schedule(self, object_id: int, event: Event) -> None:
        """
        Store an event in the slot of its kind and make it the active event.

        Raises:
            ObjectLookupError: If the object owns no slots.
            ConsistencyError: If the object has no slot for the event's kind.
        """
        slots = self._slots_for(object_id)
        if event.event_type not in slots:
            raise ConsistencyError(
                f"Object {object_id} has no slot for {event.event_type.value} events"
            )
        slots[event.event_type] = event
        self.active[object_id] = event

    def clear_active(self, object_id: int) -> None:
        """Leave an object without a pending event."""
        self.active.pop(object_id, None)

    def get_active(self, object_id: int) -> Event | None:
        """Pending event of an object, if any."""
        return self.active.get(object_id)

    def set_generation_event(self, event: Event) -> None:
        """Arm the exciton generation event."""
        self.generation_event = event

    def remove_generation_event(self) -> None:
        """Disarm the exciton generation event."""
        self.generation_event = None

    def choose_next_event(self) -> Event | None:
        """
        Select the pending event with the earliest execution time.

        Ties resolve to the first event in insertion order, with the
        generation event considered last.

        Returns:
            The selected event, or None when nothing is pending.
        """
        best: Event | None = None
        for event in self.active.values():
            if best is None or event.execution_time < best.execution_time:
                best = event
        if self.generation_event is not None and (
            best is None or self.generation_event.execution_time < best.execution_time
        ):
            best = self.generation_event
        return best

    def clear(self) -> None:
        """Clear all events from catalog."""
        self.slots.clear()
        self.active.clear()
        self.generation_event = None

    def _slots_for(self, object_id: int) -> dict[EventType, Event | None]:
        try:
            return self.slots[object_id]
        except KeyError:
            raise ObjectLookupError(f"No event slots for object {object_id}") from None

    def __len__(self) -> int:
        """Number of pending events."""
        return len(self.active) + (1 if self.generation_event is not None else 0)

    def __repr__(self) -> str:
        """String representation."""
        return f"EventCatalog(n_objects={len(self.slots)}, n_pending={len(self)})"
