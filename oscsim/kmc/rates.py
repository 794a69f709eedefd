"""
Rate laws for exciton and polaron events.

Distances are in nm, energies in eV and inverse localization lengths in
1/nm. Uphill transitions are Boltzmann-suppressed; downhill transitions keep
the full prefactor, except under the Marcus model.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from ..data.constants import K_BOLTZMANN
from ..data.osc_parameters import HoppingModel

if TYPE_CHECKING:
    from ..data.osc_parameters import SimulationParameters


def boltzmann_factor(delta_energy: float, kt: float) -> float:
    """exp(-ΔE/kT) for uphill transitions, 1 otherwise."""
    if delta_energy > 0:
        return math.exp(-delta_energy / kt)
    return 1.0


class MillerAbrahamsRate:
    """
    Miller-Abrahams hopping rate.

    The rate is given by: R = R₀ * exp(-2γr) * B(ΔE)

    Attributes:
        prefactor: Attempt rate R₀ (1/s).
        localization: Inverse localization length γ (1/nm).
        temperature: Temperature T (K).
    """

    def __init__(
        self,
        prefactor: float,
        localization: float,
        temperature: float,
        k_boltzmann: float = K_BOLTZMANN,
    ) -> None:
        self.prefactor = prefactor
        self.localization = localization
        self.temperature = temperature
        self.kt = k_boltzmann * temperature

    def calculate_rate(self, distance: float, delta_energy: float) -> float:
        """
        Calculate the transition rate.

        Args:
            distance: Hop distance (nm).
            delta_energy: Energy change of the transition (eV).

        Returns:
            Rate in 1/s.
        """
        return (
            self.prefactor
            * math.exp(-2.0 * self.localization * distance)
            * boltzmann_factor(delta_energy, self.kt)
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"MillerAbrahamsRate(R0={self.prefactor:.2e} 1/s, "
            f"gamma={self.localization:.2f} 1/nm, T={self.temperature:.1f} K)"
        )


class MarcusRate:
    """
    Marcus hopping rate.

    The rate is given by: R = R₀ * exp(-2γr) * exp(-(λ + ΔE)² / (4λkT))

    Attributes:
        prefactor: Attempt rate R₀ (1/s).
        localization: Inverse localization length γ (1/nm).
        reorganization: Reorganization energy λ (eV).
        temperature: Temperature T (K).
    """

    def __init__(
        self,
        prefactor: float,
        localization: float,
        reorganization: float,
        temperature: float,
        k_boltzmann: float = K_BOLTZMANN,
    ) -> None:
        self.prefactor = prefactor
        self.localization = localization
        self.reorganization = reorganization
        self.temperature = temperature
        self.kt = k_boltzmann * temperature

    def calculate_rate(self, distance: float, delta_energy: float) -> float:
        """Transition rate (1/s) for a hop of the given length and energy change."""
        lam = self.reorganization
        return (
            self.prefactor
            * math.exp(-2.0 * self.localization * distance)
            * math.exp(-((lam + delta_energy) ** 2) / (4.0 * lam * self.kt))
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"MarcusRate(R0={self.prefactor:.2e} 1/s, gamma={self.localization:.2f} 1/nm, "
            f"lambda={self.reorganization:.3f} eV, T={self.temperature:.1f} K)"
        )


class RateCalculator:
    """
    Calculate rates for all types of events in the simulation.

    This class binds the rate laws to the temperature and the polaron
    hopping model of one parameter set.
    """

    def __init__(self, params: SimulationParameters, k_boltzmann: float = K_BOLTZMANN) -> None:
        """
        Initialize rate calculator.

        Args:
            params: Simulation parameters.
            k_boltzmann: Boltzmann constant (eV/K).
        """
        self.params = params
        self.temperature = params.temperature
        self.k_boltzmann = k_boltzmann
        self.kt = k_boltzmann * params.temperature
        self.unit_size = params.unit_size

    def calculate_fret_rate(self, prefactor: float, distance: float, delta_energy: float) -> float:
        """
        Förster resonance energy transfer rate.

        Args:
            prefactor: Nearest-neighbour transfer rate (1/s).
            distance: Transfer distance (nm).
            delta_energy: Energy change (eV).

        Returns:
            R₀ * (a/r)^6 * B(ΔE).
        """
        return (
            prefactor
            * (self.unit_size / distance) ** 6
            * boltzmann_factor(delta_energy, self.kt)
        )

    def calculate_dexter_rate(
        self, prefactor: float, localization: float, distance: float, delta_energy: float
    ) -> float:
        """Dexter exchange transfer rate: R₀ * exp(-2γr) * B(ΔE)."""
        return (
            prefactor
            * math.exp(-2.0 * localization * distance)
            * boltzmann_factor(delta_energy, self.kt)
        )

    def calculate_miller_abrahams_rate(
        self, prefactor: float, localization: float, distance: float, delta_energy: float
    ) -> float:
        """Miller-Abrahams rate; see :class:`MillerAbrahamsRate`."""
        return MillerAbrahamsRate(
            prefactor, localization, self.temperature, self.k_boltzmann
        ).calculate_rate(distance, delta_energy)

    def calculate_marcus_rate(
        self,
        prefactor: float,
        localization: float,
        distance: float,
        delta_energy: float,
        reorganization: float,
    ) -> float:
        """Marcus rate; see :class:`MarcusRate`."""
        return MarcusRate(
            prefactor, localization, reorganization, self.temperature, self.k_boltzmann
        ).calculate_rate(distance, delta_energy)

    def calculate_charge_transfer_rate(
        self,
        prefactor: float,
        localization: float,
        distance: float,
        delta_energy: float,
        reorganization: float,
    ) -> float:
        """
        Rate of a polaron hop or exciton dissociation under the configured model.

        Args:
            prefactor: Attempt rate (1/s).
            localization: Inverse localization length (1/nm).
            distance: Transfer distance (nm).
            delta_energy: Energy change (eV).
            reorganization: Reorganization energy (eV), Marcus model only.

        Returns:
            Rate in 1/s.
        """
        if self.params.hopping_model == HoppingModel.MARCUS:
            return self.calculate_marcus_rate(
                prefactor, localization, distance, delta_energy, reorganization
            )
        return self.calculate_miller_abrahams_rate(prefactor, localization, distance, delta_energy)

    def calculate_recombination_rate(self, lifetime: float) -> float:
        """Radiative/non-radiative decay rate 1/τ."""
        return 1.0 / lifetime

    def calculate_risc_rate(self, prefactor: float, e_singlet_triplet: float) -> float:
        """Reverse intersystem crossing, uphill by the singlet-triplet gap."""
        return prefactor * boltzmann_factor(e_singlet_triplet, self.kt)
