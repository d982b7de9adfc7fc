"""
Parameter sweeps over central density and central scalar field.

Every grid point is an independent star: a copy of a base model is made per
point, its frequency is found by bisection and its macroscopic quantities are
evaluated. Points are distributed over worker processes when requested.
"""

import concurrent.futures as cf
import functools
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from .config import BisectionConfig, Config, NbNfConfig
from .eos import EOSDomainError, EquationOfState, create_eos
from .model import BisectionStatus, BracketError, FermionBosonStar

logger = logging.getLogger(__name__)


class PointStatus(IntEnum):
    """Outcome of one grid point."""
    CONVERGED = 0
    NOT_CONVERGED = 1
    BRACKET_FAILED = 2
    EOS_OUT_OF_RANGE = 3


STATUS_NAMES = {
    PointStatus.CONVERGED: "Converged",
    PointStatus.NOT_CONVERGED: "Not converged",
    PointStatus.BRACKET_FAILED: "Bracket failed",
    PointStatus.EOS_OUT_OF_RANGE: "EOS out of range",
}

STATUS_COLORS = {
    PointStatus.CONVERGED: "#2ecc71",
    PointStatus.NOT_CONVERGED: "#f39c12",
    PointStatus.BRACKET_FAILED: "#e74c3c",
    PointStatus.EOS_OUT_OF_RANGE: "#8e44ad",
}


def status_to_string(status: PointStatus) -> str:
    return STATUS_NAMES.get(status, "Unknown")


@dataclass
class StarResult:
    """Results for a single grid point."""
    rho_c: float
    phi_c: float
    omega: float
    M_T: float
    N_B: float
    N_F: float
    R_B: float
    R_F: float
    status: PointStatus
    iterations: int = 0

    @property
    def ratio(self) -> float:
        return self.N_B / self.N_F if self.N_F != 0.0 else float("inf")


@dataclass
class SweepResult:
    """Results from a complete parameter sweep."""
    # Grid parameters
    rho_c_values: NDArray[np.float64]   # Shape (n_rho,)
    phi_c_values: NDArray[np.float64]   # Shape (n_phi,)

    # Result arrays (all shape (n_phi, n_rho))
    omega: NDArray[np.float64]
    M_T: NDArray[np.float64]
    N_B: NDArray[np.float64]
    N_F: NDArray[np.float64]
    R_B: NDArray[np.float64]
    R_F: NDArray[np.float64]
    status_ids: NDArray[np.int32]

    # Metadata
    config: Config
    config_hash: str
    timestamp: str
    elapsed_seconds: float
    total_points: int

    def get_point(self, i_phi: int, i_rho: int) -> StarResult:
        """Get result for a specific grid point."""
        return StarResult(
            rho_c=float(self.rho_c_values[i_rho]),
            phi_c=float(self.phi_c_values[i_phi]),
            omega=float(self.omega[i_phi, i_rho]),
            M_T=float(self.M_T[i_phi, i_rho]),
            N_B=float(self.N_B[i_phi, i_rho]),
            N_F=float(self.N_F[i_phi, i_rho]),
            R_B=float(self.R_B[i_phi, i_rho]),
            R_F=float(self.R_F[i_phi, i_rho]),
            status=PointStatus(self.status_ids[i_phi, i_rho]),
        )

    @property
    def converged_mask(self) -> NDArray[np.bool_]:
        return self.status_ids == int(PointStatus.CONVERGED)


def fill_values_power_law(min_value: float, max_value: float, n: int, power: int = 1) -> NDArray[np.float64]:
    """
    ``n`` values from ``min_value`` to ``max_value``, denser at the lower end for ``power > 1``.

    ``values[i] = min_value + (max_value - min_value) * (i / (n - 1))**power``.
    A single value is ``min_value``.
    """
    if n < 1:
        raise ValueError("n must be at least 1")
    if n == 1:
        return np.array([min_value], dtype=np.float64)
    t = np.linspace(0.0, 1.0, n)
    if power != 1:
        t = t**power
    return min_value + (max_value - min_value) * t


def fill_values_logarithmic(min_value: float, max_value: float, n: int) -> NDArray[np.float64]:
    """``n`` logarithmically spaced values from ``min_value`` to ``max_value``."""
    if min_value <= 0 or max_value <= 0:
        raise ValueError("logarithmic spacing needs positive bounds")
    return np.exp(fill_values_power_law(np.log(min_value), np.log(max_value), n))


def make_grid(config: Config) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Central densities and central field values of the sweep."""
    s = config.sweep
    if s.spacing == "log":
        rho_values = fill_values_logarithmic(s.rho_c_min, s.rho_c_max, s.n_rho)
        phi_values = fill_values_logarithmic(s.phi_c_min, s.phi_c_max, s.n_phi)
    else:
        power = s.power if s.spacing == "power" else 1
        rho_values = fill_values_power_law(s.rho_c_min, s.rho_c_max, s.n_rho, power)
        phi_values = fill_values_power_law(s.phi_c_min, s.phi_c_max, s.n_phi, power)
    return rho_values, phi_values


def eos_from_config(config: Config) -> EquationOfState:
    """Build the equation of state described by ``config.eos``."""
    e = config.eos
    if e.kind == "polytropic":
        return create_eos("polytropic", kappa=e.kappa, Gamma=e.Gamma)
    if e.kind == "causal":
        return create_eos("causal", eps_f=e.eps_f, P_f=e.P_f)
    if e.kind == "effective_bosonic":
        return create_eos("effective_bosonic", mu=config.star.mu, lam=config.star.lam)
    return create_eos("table", path=e.table_path, columns=e.columns)


def star_from_config(config: Config, eos: Optional[EquationOfState] = None) -> FermionBosonStar:
    """Star with the physical parameters and central values of ``config``."""
    return FermionBosonStar(
        eos=eos if eos is not None else eos_from_config(config),
        mu=config.star.mu,
        lam=config.star.lam,
        rho_0=config.star.rho_c,
        phi_0=config.star.phi_c,
        r_init=config.integration.r_init,
        r_end=config.integration.r_end,
        options=config.integration.to_options(),
    )


def _failed_result(star: FermionBosonStar, status: PointStatus) -> StarResult:
    return StarResult(star.rho_0, star.phi_0, np.nan, np.nan, np.nan, np.nan, np.nan, np.nan, status)


def solve_star(star: FermionBosonStar, bisection: BisectionConfig) -> StarResult:
    """
    Find the frequency of ``star`` and evaluate it.

    A bracket that does not contain the requested mode is reported as
    ``BRACKET_FAILED`` and a state outside the EOS table as
    ``EOS_OUT_OF_RANGE`` instead of raising.
    """
    try:
        result = star.bisection(
            bisection.omega_0,
            bisection.omega_1,
            n_mode=bisection.n_mode,
            max_steps=bisection.max_steps,
            delta_omega=bisection.delta_omega,
        )
        props = star.evaluate_model()
    except BracketError as exc:
        logger.warning("Bisection failed for rho_c=%.6g, phi_c=%.6g: %s", star.rho_0, star.phi_0, exc)
        return _failed_result(star, PointStatus.BRACKET_FAILED)
    except EOSDomainError as exc:
        logger.warning("EOS out of range for rho_c=%.6g, phi_c=%.6g: %s", star.rho_0, star.phi_0, exc)
        return _failed_result(star, PointStatus.EOS_OUT_OF_RANGE)

    status = PointStatus.CONVERGED if result.status == BisectionStatus.CONVERGED else PointStatus.NOT_CONVERGED
    if status != PointStatus.CONVERGED:
        logger.warning("Bisection for rho_c=%.6g, phi_c=%.6g ended with %s",
                       star.rho_0, star.phi_0, result.status.name)

    return StarResult(
        rho_c=star.rho_0,
        phi_c=star.phi_0,
        omega=props.omega,
        M_T=props.M_T,
        N_B=props.N_B,
        N_F=props.N_F,
        R_B=props.R_B,
        R_F=props.R_F,
        status=status,
        iterations=result.iterations,
    )


def _solve_all(
    solve: Callable[..., StarResult],
    tasks: list[tuple],
    config: Config,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> list[StarResult]:
    """Run ``solve(*task)`` for every task, in worker processes when configured."""
    total = len(tasks)
    n_workers = config.parallel.n_workers
    results = []
    if n_workers > 1:
        with cf.ProcessPoolExecutor(max_workers=n_workers) as ex:
            for res in ex.map(solve, *zip(*tasks), chunksize=config.parallel.chunk_size):
                results.append(res)
                if progress_callback is not None:
                    progress_callback(len(results), total)
    else:
        for task in tasks:
            results.append(solve(*task))
            if progress_callback is not None:
                progress_callback(len(results), total)
    return results


def _fill_arrays(results: list[StarResult], shape: tuple[int, int], names: tuple[str, ...]):
    arrays = {name: np.zeros(shape, dtype=np.float64) for name in names}
    status_ids = np.zeros(shape, dtype=np.int32)
    n_cols = shape[1]
    for index, res in enumerate(results):
        i, j = divmod(index, n_cols)
        for name, values in arrays.items():
            values[i, j] = getattr(res, name)
        status_ids[i, j] = int(res.status)
    return arrays, status_ids


def run_sweep(
    config: Config,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    eos: Optional[EquationOfState] = None,
) -> SweepResult:
    """
    Run a sweep over central density and central scalar field.

    Parameters
    ----------
    config : Config
        Complete configuration for the sweep.
    progress_callback : callable, optional
        Called with (current_point, total_points) for progress updates.
    eos : EquationOfState, optional
        Equation of state to use instead of the one described by the config.

    Returns
    -------
    result : SweepResult
        Complete sweep results.
    """
    from .io import compute_config_hash

    start_time = time.time()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    rho_values, phi_values = make_grid(config)
    n_rho, n_phi = len(rho_values), len(phi_values)
    total_points = n_rho * n_phi

    # one independent star per grid point, all sharing the EOS
    base = star_from_config(config, eos)
    tasks = [(base.copy(rho_0=float(rho), phi_0=float(phi)),) for phi in phi_values for rho in rho_values]

    solve = functools.partial(solve_star, bisection=config.bisection)
    logger.info("Sweeping %d stars (%d x %d) with %d worker(s)",
                total_points, n_phi, n_rho, config.parallel.n_workers)
    results = _solve_all(solve, tasks, config, progress_callback)

    arrays, status_ids = _fill_arrays(results, (n_phi, n_rho), ("omega", "M_T", "N_B", "N_F", "R_B", "R_F"))

    elapsed = time.time() - start_time
    n_failed = int(np.sum(status_ids != int(PointStatus.CONVERGED)))
    if n_failed:
        logger.warning("%d of %d stars did not converge", n_failed, total_points)
    logger.info("Sweep of %d stars took %.1fs", total_points, elapsed)

    return SweepResult(
        rho_c_values=rho_values,
        phi_c_values=phi_values,
        status_ids=status_ids,
        config=config,
        config_hash=compute_config_hash(config),
        timestamp=timestamp,
        elapsed_seconds=elapsed,
        total_points=total_points,
        **arrays,
    )


@dataclass
class NbNfSweepResult:
    """Results of a sweep over central density and particle number ratio."""
    rho_c_values: NDArray[np.float64]   # Shape (n_rho,)
    ratio_values: NDArray[np.float64]   # Shape (n_ratio,), target N_B/N_F

    # Result arrays (all shape (n_ratio, n_rho))
    phi_c: NDArray[np.float64]
    omega: NDArray[np.float64]
    M_T: NDArray[np.float64]
    N_B: NDArray[np.float64]
    N_F: NDArray[np.float64]
    R_B: NDArray[np.float64]
    R_F: NDArray[np.float64]
    status_ids: NDArray[np.int32]

    config: Config
    config_hash: str
    timestamp: str
    elapsed_seconds: float
    total_points: int

    @property
    def converged_mask(self) -> NDArray[np.bool_]:
        return self.status_ids == int(PointStatus.CONVERGED)


def make_ratio_grid(nbnf: NbNfConfig) -> NDArray[np.float64]:
    """Target N_B/N_F ratios of an N_B/N_F sweep."""
    if nbnf.spacing == "log":
        return fill_values_logarithmic(nbnf.ratio_min, nbnf.ratio_max, nbnf.n_ratio)
    return fill_values_power_law(nbnf.ratio_min, nbnf.ratio_max, nbnf.n_ratio)


def solve_nbnf_star(
    star: FermionBosonStar,
    ratio: float,
    bisection: BisectionConfig,
    nbnf: NbNfConfig,
) -> StarResult:
    """
    Find the central field of ``star`` that gives the particle number ratio ``ratio``.

    Failures are reported through the status like in :func:`solve_star`.
    """
    try:
        result = star.shoot_nbnf_ratio(
            ratio,
            accuracy=nbnf.accuracy,
            omega_0=bisection.omega_0,
            omega_1=bisection.omega_1,
            phi_0_range=(nbnf.phi_0_min, nbnf.phi_0_max),
            n_mode=bisection.n_mode,
            max_steps=nbnf.max_steps,
        )
    except BracketError as exc:
        logger.warning("N_B/N_F=%.6g not reached for rho_c=%.6g: %s", ratio, star.rho_0, exc)
        return _failed_result(star, PointStatus.BRACKET_FAILED)
    except EOSDomainError as exc:
        logger.warning("EOS out of range for rho_c=%.6g, N_B/N_F=%.6g: %s", star.rho_0, ratio, exc)
        return _failed_result(star, PointStatus.EOS_OUT_OF_RANGE)

    status = PointStatus.CONVERGED if result.converged else PointStatus.NOT_CONVERGED
    return StarResult(
        rho_c=star.rho_0,
        phi_c=result.phi_0,
        omega=star.omega,
        M_T=star.M_T,
        N_B=star.N_B,
        N_F=star.N_F,
        R_B=star.R_B,
        R_F=star.R_F,
        status=status,
        iterations=result.iterations,
    )


def run_nbnf_sweep(
    config: Config,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    eos: Optional[EquationOfState] = None,
) -> NbNfSweepResult:
    """
    Run a sweep over central density and target particle number ratio N_B/N_F.

    The densities come from ``config.sweep``, the ratios from ``config.nbnf``.
    Every grid point searches its central field with
    :meth:`FermionBosonStar.shoot_nbnf_ratio`.
    """
    from .io import compute_config_hash

    start_time = time.time()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    rho_values, _ = make_grid(config)
    ratio_values = make_ratio_grid(config.nbnf)
    n_rho, n_ratio = len(rho_values), len(ratio_values)
    total_points = n_rho * n_ratio

    base = star_from_config(config, eos)
    tasks = [
        (base.copy(rho_0=float(rho), phi_0=config.nbnf.phi_0_min), float(ratio))
        for ratio in ratio_values for rho in rho_values
    ]

    solve = functools.partial(solve_nbnf_star, bisection=config.bisection, nbnf=config.nbnf)
    logger.info("Sweeping %d stars (%d ratios x %d densities) with %d worker(s)",
                total_points, n_ratio, n_rho, config.parallel.n_workers)
    results = _solve_all(solve, tasks, config, progress_callback)

    arrays, status_ids = _fill_arrays(
        results, (n_ratio, n_rho), ("phi_c", "omega", "M_T", "N_B", "N_F", "R_B", "R_F")
    )

    elapsed = time.time() - start_time
    logger.info("N_B/N_F sweep of %d stars took %.1fs", total_points, elapsed)

    return NbNfSweepResult(
        rho_c_values=rho_values,
        ratio_values=ratio_values,
        status_ids=status_ids,
        config=config,
        config_hash=compute_config_hash(config),
        timestamp=timestamp,
        elapsed_seconds=elapsed,
        total_points=total_points,
        **arrays,
    )


def get_sweep_summary(result: SweepResult) -> dict:
    """
    Get a summary of sweep results.

    Parameters
    ----------
    result : SweepResult
        Sweep results.

    Returns
    -------
    summary : dict
        Summary statistics.
    """
    status_counts = {}
    for status in PointStatus:
        count = np.sum(result.status_ids == int(status))
        if count > 0:
            status_counts[status_to_string(status)] = int(count)

    mask = result.converged_mask
    return {
        "total_points": result.total_points,
        "converged_points": int(np.sum(mask)),
        "failed_points": int(np.sum(~mask)),
        "converged_fraction": float(np.mean(mask)),
        "M_T_max": float(np.max(result.M_T[mask])) if np.any(mask) else 0.0,
        "status_counts": status_counts,
        "elapsed_seconds": result.elapsed_seconds,
        "points_per_second": result.total_points / result.elapsed_seconds if result.elapsed_seconds > 0 else 0.0
    }
