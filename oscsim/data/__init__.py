"""Data module containing physical constants and simulation parameters."""

from .osc_parameters import (
    CorrelationKernel,
    DOSModel,
    HoppingModel,
    MorphologyType,
    RunMode,
    SimulationParameters,
    get_default_parameters,
    load_parameters,
)

__all__ = [
    "SimulationParameters",
    "RunMode",
    "MorphologyType",
    "DOSModel",
    "HoppingModel",
    "CorrelationKernel",
    "get_default_parameters",
    "load_parameters",
]
