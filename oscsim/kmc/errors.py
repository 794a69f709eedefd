"""
Exception hierarchy for the KMC engine.

Configuration errors are raised while a simulation is being set up (bad input
files, inconsistent parameters). Consistency errors signal that a requested
state transition would break the lattice/object bookkeeping. The simulator
latches any of these into its error flag and stops at the next check.
"""


class OSCSimError(Exception):
    """Base class for all simulation errors."""


class ConfigurationError(OSCSimError):
    """Invalid parameters or input files."""


class MorphologyImportError(ConfigurationError):
    """A morphology file could not be parsed or does not match the lattice."""


class EnergyImportError(ConfigurationError):
    """A site energy file could not be parsed or does not match the lattice."""


class ConsistencyError(OSCSimError):
    """An operation would leave the lattice or object registry inconsistent."""


class InvalidCoordinatesError(ConsistencyError):
    """Coordinates lie outside the lattice."""


class DestinationOccupiedError(ConsistencyError):
    """Target site already holds an object."""


class PhaseRestrictionError(ConsistencyError):
    """Polaron placed on or found on a site of the wrong type."""


class ObjectLookupError(ConsistencyError):
    """No live object with the requested id or coordinates."""


class ResourceExhaustedError(OSCSimError):
    """No site or event is available where one is required."""
