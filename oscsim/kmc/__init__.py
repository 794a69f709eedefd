"""KMC module for exciton and polaron simulation in organic semiconductor films."""

from .errors import (
    ConfigurationError,
    ConsistencyError,
    DestinationOccupiedError,
    EnergyImportError,
    InvalidCoordinatesError,
    MorphologyImportError,
    ObjectLookupError,
    OSCSimError,
    PhaseRestrictionError,
    ResourceExhaustedError,
)
from .events import Event, EventCatalog, EventType
from .lattice import Coords, Lattice, Site, SiteType
from .lifecycle import ObjectManager, SimulationCounters
from .objects import Charge, Exciton, Polaron, Spin
from .rates import MarcusRate, MillerAbrahamsRate, RateCalculator
from .simulator import OSCSimulator

__all__ = [
    "Coords",
    "Lattice",
    "Site",
    "SiteType",
    "Spin",
    "Charge",
    "Exciton",
    "Polaron",
    "Event",
    "EventType",
    "EventCatalog",
    "ObjectManager",
    "SimulationCounters",
    "MillerAbrahamsRate",
    "MarcusRate",
    "RateCalculator",
    "OSCSimulator",
    "OSCSimError",
    "ConfigurationError",
    "MorphologyImportError",
    "EnergyImportError",
    "ConsistencyError",
    "InvalidCoordinatesError",
    "DestinationOccupiedError",
    "PhaseRestrictionError",
    "ObjectLookupError",
    "ResourceExhaustedError",
]
