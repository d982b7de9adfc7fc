"""
FBS Solver: fermion-boson star shooting solver

Computes static fermion-boson stars, a perfect fluid coupled through gravity
to a complex scalar field. The scalar field frequency is found by shooting:
an adaptive Runge-Kutta-Fehlberg integrator with event detection counts the
nodes of the field, and a bisection in the frequency selects the requested
mode. Total mass, particle numbers and radii follow from the converged
profile. Parameter sweeps over central density and central field value run
in parallel worker processes.
"""

__version__ = "0.1.0"

from .config import Config, load_config, validate_config, save_config
from .vector import StateVector
from .eos import (
    EquationOfState,
    PolytropicEoS,
    CausalEoS,
    EffectiveBosonicEoS,
    TabulatedEoS,
    EOSDomainError,
    create_eos,
)
from .integrator import (
    Event,
    IntegrationOptions,
    IntegrationResult,
    NaNStateError,
    ReturnReason,
    Step,
    cumtrapz,
    rkf45,
    rkf45_step,
)
from .model import (
    FermionBosonStar,
    BisectionResult,
    BisectionStatus,
    BracketError,
    StarProperties,
    NbNfShootingResult,
)
from .sweep import (
    run_sweep,
    run_nbnf_sweep,
    SweepResult,
    NbNfSweepResult,
    StarResult,
    fill_values_power_law,
    fill_values_logarithmic,
)
from .io import (
    save_integration_data,
    load_integration_data,
    save_results,
    save_nbnf_results,
    load_results,
    create_run_folder,
    compute_config_hash,
)
from .logs import setup_logging

__all__ = [
    # Version info
    "__version__",
    # Config
    "Config",
    "load_config",
    "validate_config",
    "save_config",
    # State
    "StateVector",
    # Equations of state
    "EquationOfState",
    "PolytropicEoS",
    "CausalEoS",
    "EffectiveBosonicEoS",
    "TabulatedEoS",
    "EOSDomainError",
    "create_eos",
    # Integrator
    "Event",
    "IntegrationOptions",
    "IntegrationResult",
    "NaNStateError",
    "ReturnReason",
    "Step",
    "cumtrapz",
    "rkf45",
    "rkf45_step",
    # Model
    "FermionBosonStar",
    "BisectionResult",
    "BisectionStatus",
    "BracketError",
    "StarProperties",
    "NbNfShootingResult",
    # Sweep
    "run_sweep",
    "run_nbnf_sweep",
    "SweepResult",
    "NbNfSweepResult",
    "StarResult",
    "fill_values_power_law",
    "fill_values_logarithmic",
    # I/O
    "save_integration_data",
    "load_integration_data",
    "save_results",
    "save_nbnf_results",
    "load_results",
    "create_run_folder",
    "compute_config_hash",
    # Logging
    "setup_logging",
]
