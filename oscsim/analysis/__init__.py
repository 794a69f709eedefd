"""Data collection for transient and steady-state run modes."""

from .steady import DOS_BIN_SIZE, EnergyHistogram, SteadyStateSampler
from .transients import TransientSampler

__all__ = [
    "DOS_BIN_SIZE",
    "EnergyHistogram",
    "SteadyStateSampler",
    "TransientSampler",
]
