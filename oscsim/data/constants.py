"""Physical constants in SI units unless noted otherwise."""

K_BOLTZMANN = 8.617333262e-5  # eV/K
ELEMENTARY_CHARGE = 1.602176634e-19  # C
VACUUM_PERMITTIVITY = 8.8541878128e-12  # C/(V*m)
COULOMB_CONSTANT = 8.9875517923e9  # N*m^2/C^2
