"""
Configuration management for fermion-boson star runs.

Handles loading, validation, and defaulting of YAML configuration files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union, Literal
import yaml

from .integrator import IntegrationOptions


@dataclass
class RunConfig:
    """Run-level configuration."""
    out_dir: str = "out"
    run_name: Optional[str] = None
    log_level: str = "INFO"


@dataclass
class StarConfig:
    """Physical parameters of the star."""
    mu: float = 1.0  # scalar field mass
    lam: float = 0.0  # quartic self-interaction
    rho_c: float = 0.002  # central rest-mass density
    phi_c: float = 0.02  # central scalar field


@dataclass
class EOSConfig:
    """Equation of state of the fermionic fluid."""
    kind: Literal["polytropic", "causal", "effective_bosonic", "table"] = "polytropic"
    kappa: float = 100.0
    Gamma: float = 2.0
    eps_f: float = 0.0
    P_f: float = 0.0
    table_path: Optional[str] = None
    columns: Optional[dict[str, int]] = None


@dataclass
class IntegrationConfig:
    """Step control and integration range."""
    target_error: float = 1e-9
    min_stepsize: float = 1e-16
    max_stepsize: float = 1.0
    initial_stepsize: float = 1e-5
    max_steps: int = 1_000_000
    r_init: float = 1e-10
    r_end: float = 1000.0

    def to_options(self, save_intermediate: bool = False) -> IntegrationOptions:
        return IntegrationOptions(
            target_error=self.target_error,
            min_stepsize=self.min_stepsize,
            max_stepsize=self.max_stepsize,
            initial_stepsize=self.initial_stepsize,
            max_steps=self.max_steps,
            save_intermediate=save_intermediate,
        )


@dataclass
class BisectionConfig:
    """Frequency search."""
    omega_0: float = 1.0
    omega_1: float = 10.0
    n_mode: int = 0
    max_steps: int = 500
    delta_omega: float = 1e-15


@dataclass
class SweepConfig:
    """Grid of central densities and central field values."""
    rho_c_min: float = 1e-8
    rho_c_max: float = 5e-4
    n_rho: int = 10
    phi_c_min: float = 1e-8
    phi_c_max: float = 6e-3
    n_phi: int = 10
    spacing: Literal["linear", "log", "power"] = "linear"
    power: int = 1


@dataclass
class NbNfConfig:
    """Target particle number ratios and central field search."""
    ratio_min: float = 0.1
    ratio_max: float = 1.0
    n_ratio: int = 5
    spacing: Literal["linear", "log"] = "linear"
    accuracy: float = 1e-4
    phi_0_min: float = 1e-10
    phi_0_max: float = 0.1
    max_steps: int = 100


@dataclass
class ParallelConfig:
    """Worker processes for the sweep."""
    n_workers: int = 1
    chunk_size: int = 10


@dataclass
class Config:
    """Complete configuration for a fermion-boson star run."""
    run: RunConfig = field(default_factory=RunConfig)
    star: StarConfig = field(default_factory=StarConfig)
    eos: EOSConfig = field(default_factory=EOSConfig)
    integration: IntegrationConfig = field(default_factory=IntegrationConfig)
    bisection: BisectionConfig = field(default_factory=BisectionConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    nbnf: NbNfConfig = field(default_factory=NbNfConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)

    def to_dict(self) -> dict:
        """Convert config to nested dictionary."""
        return {
            "run": {
                "out_dir": self.run.out_dir,
                "run_name": self.run.run_name,
                "log_level": self.run.log_level,
            },
            "star": {
                "mu": self.star.mu,
                "lam": self.star.lam,
                "rho_c": self.star.rho_c,
                "phi_c": self.star.phi_c,
            },
            "eos": {
                "kind": self.eos.kind,
                "kappa": self.eos.kappa,
                "Gamma": self.eos.Gamma,
                "eps_f": self.eos.eps_f,
                "P_f": self.eos.P_f,
                "table_path": self.eos.table_path,
                "columns": dict(self.eos.columns) if self.eos.columns is not None else None,
            },
            "integration": {
                "target_error": self.integration.target_error,
                "min_stepsize": self.integration.min_stepsize,
                "max_stepsize": self.integration.max_stepsize,
                "initial_stepsize": self.integration.initial_stepsize,
                "max_steps": self.integration.max_steps,
                "r_init": self.integration.r_init,
                "r_end": self.integration.r_end,
            },
            "bisection": {
                "omega_0": self.bisection.omega_0,
                "omega_1": self.bisection.omega_1,
                "n_mode": self.bisection.n_mode,
                "max_steps": self.bisection.max_steps,
                "delta_omega": self.bisection.delta_omega,
            },
            "sweep": {
                "rho_c_min": self.sweep.rho_c_min,
                "rho_c_max": self.sweep.rho_c_max,
                "n_rho": self.sweep.n_rho,
                "phi_c_min": self.sweep.phi_c_min,
                "phi_c_max": self.sweep.phi_c_max,
                "n_phi": self.sweep.n_phi,
                "spacing": self.sweep.spacing,
                "power": self.sweep.power,
            },
            "nbnf": {
                "ratio_min": self.nbnf.ratio_min,
                "ratio_max": self.nbnf.ratio_max,
                "n_ratio": self.nbnf.n_ratio,
                "spacing": self.nbnf.spacing,
                "accuracy": self.nbnf.accuracy,
                "phi_0_min": self.nbnf.phi_0_min,
                "phi_0_max": self.nbnf.phi_0_max,
                "max_steps": self.nbnf.max_steps,
            },
            "parallel": {
                "n_workers": self.parallel.n_workers,
                "chunk_size": self.parallel.chunk_size,
            },
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Config":
        """Create Config from nested dictionary. Unknown keys are ignored."""
        config = cls()
        for section in ("run", "star", "eos", "integration", "bisection", "sweep", "nbnf", "parallel"):
            values = d.get(section) or {}
            target = getattr(config, section)
            for key, value in values.items():
                if hasattr(target, key):
                    setattr(target, key, value)
        return config


def load_config(path: Union[str, Path]) -> Config:
    """
    Load configuration from a YAML file.

    Parameters
    ----------
    path : str or Path
        Path to YAML configuration file.

    Returns
    -------
    Config
        Loaded and validated configuration.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    config = Config.from_dict(data)
    validate_config(config)
    return config


def validate_config(config: Config) -> None:
    """
    Validate configuration values.

    Parameters
    ----------
    config : Config
        Configuration to validate.

    Raises
    ------
    ValueError
        If any configuration value is invalid.
    """
    # Run validation
    if config.run.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"Unknown log_level: {config.run.log_level}")

    # Star validation
    if config.star.mu <= 0:
        raise ValueError("mu must be positive")
    if config.star.lam < 0:
        raise ValueError("lam must be non-negative")
    if config.star.rho_c < 0:
        raise ValueError("rho_c must be non-negative")
    if config.star.phi_c <= 0:
        raise ValueError("phi_c must be positive")

    # EOS validation
    if config.eos.kind not in ("polytropic", "causal", "effective_bosonic", "table"):
        raise ValueError(f"Unknown EOS kind: {config.eos.kind}")
    if config.eos.kind == "polytropic":
        if config.eos.kappa <= 0:
            raise ValueError("kappa must be positive")
        if config.eos.Gamma <= 1:
            raise ValueError("Gamma must be larger than 1")
    if config.eos.kind == "effective_bosonic" and config.star.lam <= 0:
        raise ValueError("the effective bosonic EOS needs lam > 0")
    if config.eos.kind == "table":
        if not config.eos.table_path:
            raise ValueError("table_path must be provided for a tabulated EOS")
        if config.eos.columns is not None and not {"rho", "e", "P"} <= set(config.eos.columns):
            raise ValueError("columns must map rho, e and P")

    # Integration validation
    if config.integration.target_error <= 0:
        raise ValueError("target_error must be positive")
    if config.integration.min_stepsize <= 0:
        raise ValueError("min_stepsize must be positive")
    if config.integration.max_stepsize < config.integration.min_stepsize:
        raise ValueError("max_stepsize must not be smaller than min_stepsize")
    if config.integration.initial_stepsize <= 0:
        raise ValueError("initial_stepsize must be positive")
    if config.integration.max_steps < 1:
        raise ValueError("max_steps must be at least 1")
    if not 0 < config.integration.r_init < config.integration.r_end:
        raise ValueError("need 0 < r_init < r_end")

    # Bisection validation
    if config.bisection.omega_1 <= config.bisection.omega_0:
        raise ValueError("omega_1 must be greater than omega_0")
    if config.bisection.n_mode < 0:
        raise ValueError("n_mode must be non-negative")
    if config.bisection.max_steps < 0:
        raise ValueError("bisection max_steps must be non-negative")
    if config.bisection.delta_omega <= 0:
        raise ValueError("delta_omega must be positive")

    # Sweep validation
    if config.sweep.n_rho < 1:
        raise ValueError("n_rho must be at least 1")
    if config.sweep.n_phi < 1:
        raise ValueError("n_phi must be at least 1")
    if config.sweep.spacing not in ("linear", "log", "power"):
        raise ValueError(f"Unknown spacing: {config.sweep.spacing}")
    if config.sweep.rho_c_min < 0 or config.sweep.rho_c_max < config.sweep.rho_c_min:
        raise ValueError("need 0 <= rho_c_min <= rho_c_max")
    if config.sweep.phi_c_min <= 0 or config.sweep.phi_c_max < config.sweep.phi_c_min:
        raise ValueError("need 0 < phi_c_min <= phi_c_max")
    if config.sweep.spacing == "log" and config.sweep.rho_c_min <= 0:
        raise ValueError("log spacing needs rho_c_min > 0")
    if config.sweep.power < 1:
        raise ValueError("power must be at least 1")

    # N_B/N_F sweep validation
    if config.nbnf.n_ratio < 1:
        raise ValueError("n_ratio must be at least 1")
    if config.nbnf.ratio_min <= 0 or config.nbnf.ratio_max < config.nbnf.ratio_min:
        raise ValueError("need 0 < ratio_min <= ratio_max")
    if config.nbnf.spacing not in ("linear", "log"):
        raise ValueError(f"Unknown N_B/N_F spacing: {config.nbnf.spacing}")
    if config.nbnf.accuracy <= 0:
        raise ValueError("accuracy must be positive")
    if not 0 < config.nbnf.phi_0_min < config.nbnf.phi_0_max:
        raise ValueError("need 0 < phi_0_min < phi_0_max")
    if config.nbnf.max_steps < 1:
        raise ValueError("N_B/N_F max_steps must be at least 1")

    # Parallel validation
    if config.parallel.n_workers < 1:
        raise ValueError("n_workers must be at least 1")
    if config.parallel.chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")


def save_config(config: Config, path: Union[str, Path]) -> None:
    """
    Save configuration to a YAML file.

    Parameters
    ----------
    config : Config
        Configuration to save.
    path : str or Path
        Path to save YAML file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
