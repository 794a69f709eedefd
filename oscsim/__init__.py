"""
oscsim: Kinetic Monte Carlo simulation of excitons and charge carriers
in organic semiconductor films.

This package provides an event-driven KMC engine for exciton generation,
diffusion, dissociation, annihilation and recombination, and for polaron
transport and extraction on a 3D lattice of donor and acceptor sites.
"""

__version__ = "0.1.0"
