"""
Physical parameters for organic semiconductor film simulations.

This module contains the full parameter set consumed by the KMC engine:
lattice geometry, run mode, film architecture, site energetics, exciton and
polaron kinetics, and Coulomb interaction settings. Energies are in eV,
distances in nm, rates in 1/s, times in s and concentrations in cm^-3.
"""

from __future__ import annotations

import math
from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


class RunMode(str, Enum):
    """Simulation test modes; each selects a setup and a termination rule."""

    EXCITON_DIFFUSION = "exciton_diffusion"
    TOF = "tof"
    IQE = "iqe"
    DYNAMICS = "dynamics"
    STEADY_TRANSPORT = "steady_transport"


class MorphologyType(str, Enum):
    """Film architectures."""

    NEAT = "neat"
    BILAYER = "bilayer"
    RANDOM_BLEND = "random_blend"
    IMPORT = "import"


class DOSModel(str, Enum):
    """Energetic disorder models."""

    NONE = "none"
    GAUSSIAN = "gaussian"
    EXPONENTIAL = "exponential"


class HoppingModel(str, Enum):
    """Polaron hopping and dissociation rate laws."""

    MILLER_ABRAHAMS = "miller_abrahams"
    MARCUS = "marcus"


class CorrelationKernel(str, Enum):
    """Smoothing kernels for spatially correlated disorder."""

    GAUSSIAN = "gaussian"
    POWER = "power"


class SimulationParameters(BaseModel):
    """
    Complete parameter set for one simulation run.

    Field constraints cover single-value validity. Cross-field consistency is
    checked by :meth:`check_parameters`, which also runs on construction.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=False)

    # Lattice
    length: int = Field(default=50, description="Lattice size in X", gt=0)
    width: int = Field(default=50, description="Lattice size in Y", gt=0)
    height: int = Field(default=50, description="Lattice size in Z", gt=0)
    unit_size: float = Field(default=1.0, description="Lattice constant (nm)", gt=0)
    enable_periodic_x: bool = True
    enable_periodic_y: bool = True
    enable_periodic_z: bool = False
    temperature: float = Field(default=300.0, description="Temperature (K)", gt=0)
    internal_potential: float = Field(
        default=0.0, description="Potential drop across the film (V)"
    )
    enable_full_recalc: bool = Field(
        default=False, description="Recalculate every object's events after each event"
    )
    recalc_cutoff: float = Field(
        default=3.0, description="Radius of local event invalidation (nm)", gt=0
    )

    # Run mode and limits
    run_mode: RunMode = RunMode.EXCITON_DIFFUSION
    n_tests: int = Field(default=100, description="Number of test excitons/carriers", gt=0)
    max_events: int | None = Field(default=None, description="Maximum number of events", gt=0)
    max_time: float | None = Field(default=None, description="Maximum simulation time (s)", gt=0)

    # Time-of-flight test
    tof_polaron_type: Literal["electron", "hole"] = "hole"
    tof_initial_polarons: int = Field(default=10, gt=0)
    enable_tof_random_placement: bool = True
    enable_tof_energy_placement: bool = False
    tof_placement_energy: float = 0.0
    tof_transient_start: float = Field(default=1e-10, gt=0)
    tof_transient_end: float = Field(default=1e-4, gt=0)
    tof_pnts_per_decade: int = Field(default=20, gt=0)

    # IQE test
    iqe_time_cutoff: float = Field(default=1e-4, gt=0)

    # Dynamics test
    dynamics_initial_exciton_conc: float = Field(default=1e16, gt=0)
    dynamics_transient_start: float = Field(default=1e-13, gt=0)
    dynamics_transient_end: float = Field(default=1e-5, gt=0)
    dynamics_pnts_per_decade: int = Field(default=10, gt=0)
    enable_dynamics_extraction: bool = False

    # Steady transport test
    steady_carrier_density: float = Field(default=1e16, gt=0)
    n_equilibration_events: int = Field(default=100000, ge=0)

    # Film architecture
    morphology: MorphologyType = MorphologyType.NEAT
    thickness_donor: int = Field(default=25, ge=0)
    thickness_acceptor: int = Field(default=25, ge=0)
    acceptor_conc: float = Field(default=0.5, ge=0, le=1)
    morphology_filename: str | None = None

    # Exciton kinetics
    exciton_generation_rate_donor: float = Field(default=1e21, ge=0)
    exciton_generation_rate_acceptor: float = Field(default=1e21, ge=0)
    singlet_lifetime_donor: float = Field(default=500e-12, gt=0)
    singlet_lifetime_acceptor: float = Field(default=500e-12, gt=0)
    triplet_lifetime_donor: float = Field(default=1e-6, gt=0)
    triplet_lifetime_acceptor: float = Field(default=1e-6, gt=0)
    r_singlet_hopping_donor: float = Field(default=1e12, ge=0)
    r_singlet_hopping_acceptor: float = Field(default=1e12, ge=0)
    singlet_localization_donor: float = Field(default=1.0, gt=0)
    singlet_localization_acceptor: float = Field(default=1.0, gt=0)
    r_triplet_hopping_donor: float = Field(default=1e12, ge=0)
    r_triplet_hopping_acceptor: float = Field(default=1e12, ge=0)
    triplet_localization_donor: float = Field(default=2.0, gt=0)
    triplet_localization_acceptor: float = Field(default=2.0, gt=0)
    enable_fret_triplet_annihilation: bool = False
    r_exciton_exciton_annihilation_donor: float = Field(default=1e12, ge=0)
    r_exciton_exciton_annihilation_acceptor: float = Field(default=1e12, ge=0)
    r_exciton_polaron_annihilation_donor: float = Field(default=1e12, ge=0)
    r_exciton_polaron_annihilation_acceptor: float = Field(default=1e12, ge=0)
    fret_cutoff: float = Field(default=1.0, gt=0)
    e_exciton_binding_donor: float = Field(default=0.5, ge=0)
    e_exciton_binding_acceptor: float = Field(default=0.5, ge=0)
    r_exciton_dissociation_donor: float = Field(default=1e14, ge=0)
    r_exciton_dissociation_acceptor: float = Field(default=1e14, ge=0)
    exciton_dissociation_cutoff: float = Field(default=1.0, gt=0)
    r_exciton_isc_donor: float = Field(default=1e8, ge=0)
    r_exciton_isc_acceptor: float = Field(default=1e8, ge=0)
    r_exciton_risc_donor: float = Field(default=1e8, ge=0)
    r_exciton_risc_acceptor: float = Field(default=1e8, ge=0)
    e_exciton_st_donor: float = Field(default=0.7, ge=0)
    e_exciton_st_acceptor: float = Field(default=0.7, ge=0)

    # Polaron kinetics
    enable_phase_restriction: bool = True
    r_polaron_hopping_donor: float = Field(default=1e12, ge=0)
    r_polaron_hopping_acceptor: float = Field(default=1e12, ge=0)
    polaron_localization_donor: float = Field(default=2.0, gt=0)
    polaron_localization_acceptor: float = Field(default=2.0, gt=0)
    hopping_model: HoppingModel = HoppingModel.MILLER_ABRAHAMS
    reorganization_donor: float = Field(default=0.2, gt=0)
    reorganization_acceptor: float = Field(default=0.2, gt=0)
    r_polaron_recombination: float = Field(default=1e12, ge=0)
    polaron_hopping_cutoff: float = Field(default=1.0, gt=0)
    enable_gaussian_polaron_delocalization: bool = False
    polaron_delocalization_length: float = Field(default=1.0, gt=0)

    # Energetics
    homo_donor: float = 5.0
    lumo_donor: float = 3.0
    homo_acceptor: float = 6.0
    lumo_acceptor: float = 4.0
    dos_model: DOSModel = DOSModel.NONE
    energy_stdev_donor: float = Field(default=0.05, ge=0)
    energy_stdev_acceptor: float = Field(default=0.05, ge=0)
    energy_urbach_donor: float = Field(default=0.03, gt=0)
    energy_urbach_acceptor: float = Field(default=0.03, gt=0)
    enable_correlated_disorder: bool = False
    disorder_correlation_length: float = Field(default=1.5, gt=0)
    correlation_kernel: CorrelationKernel = CorrelationKernel.GAUSSIAN
    power_kernel_exponent: int = -1
    enable_interfacial_energy_shift: bool = False
    energy_shift_donor: float = 0.0
    energy_shift_acceptor: float = 0.0
    enable_import_energies: bool = False
    energies_import_filename: str | None = None

    # Coulomb interactions
    dielectric_donor: float = Field(default=3.5, gt=0)
    dielectric_acceptor: float = Field(default=3.5, gt=0)
    coulomb_cutoff: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def validate_consistency(self) -> SimulationParameters:
        """Reject parameter combinations the engine cannot run."""
        errors = self.check_parameters()
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def check_parameters(self) -> list[str]:
        """
        Check cross-field consistency.

        Returns:
            List of human-readable problems; empty when the set is valid.
        """
        errors: list[str] = []

        # Cutoffs
        for name in ("fret_cutoff", "exciton_dissociation_cutoff", "polaron_hopping_cutoff"):
            if getattr(self, name) < self.unit_size:
                errors.append(f"{name} must be at least the lattice unit size")
        max_cutoff = max(
            self.fret_cutoff, self.exciton_dissociation_cutoff, self.polaron_hopping_cutoff
        )
        if self.recalc_cutoff < max_cutoff:
            errors.append("recalc_cutoff must not be smaller than any event cutoff")

        # Film architecture
        if self.morphology == MorphologyType.BILAYER:
            if self.thickness_donor + self.thickness_acceptor != self.height:
                errors.append("bilayer donor and acceptor thicknesses must add up to the height")
        if self.morphology == MorphologyType.IMPORT and not self.morphology_filename:
            errors.append("morphology import requires morphology_filename")

        # Energetics
        if self.enable_correlated_disorder:
            if self.dos_model != DOSModel.GAUSSIAN:
                errors.append("correlated disorder requires the gaussian DOS model")
            if (
                self.correlation_kernel == CorrelationKernel.POWER
                and self.power_kernel_exponent not in (-1, -2)
            ):
                errors.append("power_kernel_exponent must be -1 or -2")
        if self.enable_import_energies and not self.energies_import_filename:
            errors.append("energy import requires energies_import_filename")

        # Run modes
        if self.run_mode == RunMode.TOF:
            if self.enable_periodic_z:
                errors.append("the time-of-flight test requires a non-periodic z-direction")
            if self.enable_tof_random_placement == self.enable_tof_energy_placement:
                errors.append("exactly one time-of-flight placement method must be enabled")
            if self.tof_initial_polarons > self.length * self.width:
                errors.append("tof_initial_polarons exceeds the number of sites in a plane")
            if self.tof_transient_start >= self.tof_transient_end:
                errors.append("tof_transient_start must be before tof_transient_end")
        elif self.run_mode == RunMode.IQE:
            if self.enable_periodic_z:
                errors.append("the IQE test requires a non-periodic z-direction")
        elif self.run_mode == RunMode.DYNAMICS:
            if self.dynamics_transient_start >= self.dynamics_transient_end:
                errors.append("dynamics_transient_start must be before dynamics_transient_end")
            if self.n_initial_excitons < 1:
                errors.append("dynamics_initial_exciton_conc yields no excitons in this lattice")
        elif self.run_mode == RunMode.STEADY_TRANSPORT:
            if not self.enable_periodic_z:
                errors.append("the steady transport test requires a periodic z-direction")
            if self.n_steady_polarons < 1:
                errors.append("steady_carrier_density yields no polarons in this lattice")
        if self.run_mode in (RunMode.EXCITON_DIFFUSION, RunMode.IQE):
            if self.exciton_generation_rate_donor + self.exciton_generation_rate_acceptor <= 0:
                errors.append("exciton generation requires a positive generation rate")

        return errors

    @property
    def volume(self) -> float:
        """Film volume (cm^3)."""
        return self.length * self.width * self.height * (1e-7 * self.unit_size) ** 3

    @property
    def n_initial_excitons(self) -> int:
        """Number of excitons created per dynamics transient cycle."""
        return math.ceil(self.dynamics_initial_exciton_conc * self.volume)

    @property
    def n_steady_polarons(self) -> int:
        """Number of holes placed for the steady transport test."""
        return round(self.steady_carrier_density * self.volume)


def get_default_parameters() -> SimulationParameters:
    """
    Get default simulation parameters.

    Returns:
        SimulationParameters instance with default values.
    """
    return SimulationParameters()


# Parameter sets for common film architectures
NEAT_FILM_PARAMETERS = SimulationParameters()

BILAYER_PARAMETERS = SimulationParameters(
    morphology=MorphologyType.BILAYER,
    run_mode=RunMode.IQE,
    internal_potential=-0.5,
    dos_model=DOSModel.GAUSSIAN,
)

RANDOM_BLEND_PARAMETERS = SimulationParameters(
    morphology=MorphologyType.RANDOM_BLEND,
    run_mode=RunMode.DYNAMICS,
    acceptor_conc=0.5,
    dos_model=DOSModel.GAUSSIAN,
)


def get_parameters_for_architecture(architecture: str = "neat") -> SimulationParameters:
    """
    Get a default parameter set for a film architecture.

    Args:
        architecture: 'neat', 'bilayer' or 'random_blend'.

    Returns:
        SimulationParameters for the architecture.

    Raises:
        ValueError: If the architecture is not recognized.
    """
    architecture_params = {
        "neat": NEAT_FILM_PARAMETERS,
        "bilayer": BILAYER_PARAMETERS,
        "random_blend": RANDOM_BLEND_PARAMETERS,
    }

    if architecture not in architecture_params:
        raise ValueError(
            f"Unknown architecture: {architecture}. Available: {list(architecture_params.keys())}"
        )

    return architecture_params[architecture].model_copy()


def load_parameters(path: str | Path) -> SimulationParameters:
    """
    Load a parameter set from a YAML file.

    Keys that are not given keep their default values.

    Args:
        path: Path to the YAML parameter file.

    Returns:
        Validated SimulationParameters.

    Raises:
        pydantic.ValidationError: If the file contains invalid parameters.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return SimulationParameters.model_validate(data)
