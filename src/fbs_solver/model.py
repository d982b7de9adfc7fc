"""
Fermion-boson star model.

A perfect fluid described by an equation of state and a complex scalar field
``phi(t, r) = Phi(r) exp(-i omega t)`` with mass ``mu`` and quartic
self-interaction ``lam``, coupled through a static spherically symmetric
metric

    ds^2 = -alpha^2 dt^2 + a^2 dr^2 + r^2 dOmega^2.

The state vector is ``(a, alpha, Phi, Psi = dPhi/dr, P)``. For given central
values ``rho_0`` and ``phi_0`` the frequency ``omega`` is an eigenvalue that is
found by shooting: the field must decay at large radii with a prescribed
number of nodes.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import IntEnum
from pathlib import Path
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray

from .eos import EquationOfState
from .integrator import (
    Event,
    IntegrationOptions,
    IntegrationResult,
    NaNStateError,
    Step,
    cumtrapz,
    rkf45,
)
from .io import save_integration_data
from .vector import StateVector

logger = logging.getLogger(__name__)

# indices into the state vector
A, ALPHA, PHI, PSI, PRESSURE = range(5)

R_INIT = 1e-10
R_END = 1000.0

# the star is considered complete once r dM/dr < MASS_CONVERGENCE * M
MASS_CONVERGENCE = 1e-12

# fraction of the particle number that defines the radii R_B and R_F
RADIUS_FRACTION = 0.99


class BracketError(ValueError):
    """Raised when a bisection interval does not bracket the requested solution."""


class BisectionStatus(IntEnum):
    CONVERGED = 0
    MAX_ITERATIONS = 1
    MODE_NOT_ISOLATED = 2


@dataclass(frozen=True)
class BisectionResult:
    """
    Outcome of the frequency search.

    ``omega_0`` and ``omega_1`` are the final bracket; ``n_roots_0`` and
    ``n_roots_1`` the node counts at its ends. ``iterations`` counts the
    refinement steps on the sign of the field.
    """
    status: BisectionStatus
    omega: float
    omega_0: float
    omega_1: float
    n_roots_0: int
    n_roots_1: int
    iterations: int

    @property
    def converged(self) -> bool:
        return self.status == BisectionStatus.CONVERGED

    @property
    def width(self) -> float:
        return self.omega_1 - self.omega_0


@dataclass
class StarProperties:
    """Macroscopic quantities of an evaluated star."""
    omega: float
    M_T: float
    N_B: float
    N_F: float
    R_B: float
    R_F: float
    trajectory: list[Step] = field(default_factory=list, repr=False)

    @property
    def ratio(self) -> float:
        """Particle number ratio N_B / N_F (inf for a pure boson star)."""
        if self.N_F == 0.0:
            return math.inf
        return self.N_B / self.N_F


@dataclass(frozen=True)
class NbNfShootingResult:
    status: BisectionStatus
    phi_0: float
    ratio: float
    iterations: int

    @property
    def converged(self) -> bool:
        return self.status == BisectionStatus.CONVERGED


def _mass(r: float, a: float) -> float:
    return 0.5 * r * (1.0 - 1.0 / (a * a))


def _radius_fraction(r: NDArray[np.float64], cumulative: NDArray[np.float64]) -> float:
    total = cumulative[-1]
    if total == 0.0:
        return 0.0
    index = int(np.argmax(cumulative >= RADIUS_FRACTION * total))
    return float(r[index])


@dataclass
class FermionBosonStar:
    """
    Fermion-boson star with a shared equation of state.

    Parameters
    ----------
    eos : EquationOfState
        Equation of state of the fermionic fluid. It is never modified and may
        be shared between many stars.
    mu : float
        Mass of the scalar field.
    lam : float
        Quartic self-interaction of the scalar field.
    omega : float
        Frequency of the scalar field, set by :meth:`bisection`.
    rho_0 : float
        Central rest-mass density.
    phi_0 : float
        Central value of the scalar field.
    r_init, r_end : float
        Integration range. ``r_end`` stands in for spatial infinity.
    options : IntegrationOptions
        Step control for all integrations of this star.

    Notes
    -----
    Instances are mutable: :meth:`bisection` sets ``omega`` and
    :meth:`evaluate_model` writes the macroscopic outputs. Use :meth:`copy`
    to hand an independent star to every parallel task.
    """
    eos: EquationOfState
    mu: float = 1.0
    lam: float = 0.0
    omega: float = 0.0
    rho_0: float = 0.0
    phi_0: float = 0.0
    r_init: float = R_INIT
    r_end: float = R_END
    options: IntegrationOptions = field(default_factory=IntegrationOptions)

    M_T: float = 0.0
    N_B: float = 0.0
    N_F: float = 0.0
    R_B: float = 0.0
    R_F: float = 0.0

    def copy(self, **changes) -> "FermionBosonStar":
        """Independent copy sharing the equation of state."""
        return replace(self, **changes)

    def set_initial_conditions(self, rho_0: Optional[float] = None, phi_0: Optional[float] = None) -> StateVector:
        """Set the central values and return the resulting initial state."""
        if rho_0 is not None:
            self.rho_0 = rho_0
        if phi_0 is not None:
            self.phi_0 = phi_0
        return self.initial_conditions

    @property
    def initial_conditions(self) -> StateVector:
        # central densities below the EOS range give a pure boson star
        if self.rho_0 <= 0.0 or self.rho_0 < self.eos.min_rho():
            P_0 = 0.0
        else:
            P_0 = self.eos.get_P_from_rho(self.rho_0)
        return StateVector((1.0, 1.0, self.phi_0, 0.0, P_0))

    def _matter(self, P: float) -> tuple[float, float]:
        # pressures below the EOS range are vacuum
        if P < self.eos.min_P() or P <= 0.0:
            return 0.0, 0.0
        return self.eos.call_eos(P)

    def dy_dr(self, r: float, y: StateVector) -> StateVector:
        """Right-hand side of the field equations."""
        if y.has_nan():
            raise NaNStateError(r, y)
        a, alpha, Phi, Psi, P = y
        mu, lam, omega = self.mu, self.lam, self.omega
        P = max(P, 0.0)
        rho, epsilon = self._matter(P)
        e = rho * (1.0 + epsilon)

        a2 = a * a
        Phi2 = Phi * Phi
        w2 = omega * omega / (alpha * alpha)
        four_pi_r = 4.0 * math.pi * r

        da_dr = 0.5 * a * ((1.0 - a2) / r + four_pi_r * ((w2 + mu * mu + 0.5 * lam * Phi2) * a2 * Phi2
                                                          + Psi * Psi + 2.0 * a2 * e))
        dalpha_dr = 0.5 * alpha * ((a2 - 1.0) / r + four_pi_r * ((w2 - mu * mu - 0.5 * lam * Phi2) * a2 * Phi2
                                                                  + Psi * Psi + 2.0 * a2 * P))
        dPhi_dr = Psi
        dPsi_dr = (-(1.0 + a2 - four_pi_r * r * a2 * (mu * mu * Phi2 + 0.5 * lam * Phi2 * Phi2 + e - P)) * Psi / r
                   - (w2 - mu * mu - lam * Phi2) * a2 * Phi)
        dP_dr = -(e + P) * dalpha_dr / alpha

        return StateVector((da_dr, dalpha_dr, dPhi_dr, dPsi_dr, dP_dr))

    def integrate(
        self,
        events: Optional[list[Event]] = None,
        initial_conditions: Optional[StateVector] = None,
        options: Optional[IntegrationOptions] = None,
        r_init: Optional[float] = None,
        r_end: Optional[float] = None,
    ) -> IntegrationResult:
        """Integrate the field equations with the current ``omega``."""
        return rkf45(
            self.dy_dr,
            self.r_init if r_init is None else r_init,
            self.initial_conditions if initial_conditions is None else initial_conditions,
            self.r_end if r_end is None else r_end,
            events=events,
            options=options or self.options,
        )

    def _field_events(self, n_mode: int) -> list[Event]:
        phi_0 = abs(self.phi_0)
        return [
            # every sign change of Phi is a node; more than n_mode + 1 nodes
            # classify the trial already
            Event(lambda r, dr, y, dy: y[PHI] > 0.0, max_crossings=n_mode + 1, name="phi_positive"),
            Event(lambda r, dr, y, dy: abs(y[PHI]) > phi_0, stopping=True, name="phi_diverging"),
        ]

    def _count_roots(self, omega: float, events: list[Event]) -> int:
        self.omega = omega
        result = self.integrate(events)
        n_roots = result.crossings(0)
        logger.debug("omega=%.15g: %d root(s), %s at r=%.4g", omega, n_roots, result.reason.name, result.last.r)
        return n_roots

    def _sign_at_end(self, omega: float, events: list[Event]) -> bool:
        self.omega = omega
        result = self.integrate(events)
        return result.last.y[PHI] > 0.0

    def bisection(
        self,
        omega_0: float,
        omega_1: float,
        n_mode: int = 0,
        max_steps: int = 500,
        delta_omega: float = 1e-15,
    ) -> BisectionResult:
        """
        Find the frequency of the mode with ``n_mode`` nodes in ``[omega_0, omega_1]``.

        The first stage bisects on the number of nodes of ``Phi`` until the
        bracket contains a single transition between ``n`` and ``n + 1``
        nodes. The second stage bisects on the sign of ``Phi`` at the end of the
        integration until the bracket is narrower than ``delta_omega`` or
        ``max_steps`` iterations were made.

        Parameters
        ----------
        omega_0, omega_1 : float
            Lower and upper bound of the search interval.
        n_mode : int
            Number of nodes of the requested mode.
        max_steps : int
            Maximum number of iterations in the second stage.
        delta_omega : float
            Target width of the final bracket.

        Returns
        -------
        result : BisectionResult
            Final bracket and status. ``self.omega`` is set to its lower end.

        Raises
        ------
        BracketError
            If the interval is empty or does not bracket the requested mode.
        """
        if not omega_0 < omega_1:
            raise BracketError(f"omega_0={omega_0} must be smaller than omega_1={omega_1}")
        if n_mode < 0:
            raise ValueError("n_mode must be non-negative")
        if self.phi_0 == 0.0:
            raise ValueError("bisection needs a non-zero central field phi_0")

        events = self._field_events(n_mode)

        n_roots_0 = self._count_roots(omega_0, events)
        n_roots_1 = self._count_roots(omega_1, events)
        if n_roots_0 == n_roots_1:
            raise BracketError(
                f"omega_0={omega_0} and omega_1={omega_1} both give {n_roots_0} root(s)"
            )
        if not n_roots_0 <= n_mode <= n_roots_1:
            raise BracketError(
                f"mode {n_mode} is not between {n_roots_0} and {n_roots_1} roots "
                f"of omega_0={omega_0} and omega_1={omega_1}"
            )

        # stage 1: isolate the transition n_mode -> n_mode + 1
        while n_roots_1 - n_roots_0 > 1:
            omega_mid = 0.5 * (omega_0 + omega_1)
            if not omega_0 < omega_mid < omega_1:
                logger.warning(
                    "Mode %d not isolated: bracket [%.15g, %.15g] has %d and %d roots",
                    n_mode, omega_0, omega_1, n_roots_0, n_roots_1,
                )
                self.omega = omega_0
                return BisectionResult(BisectionStatus.MODE_NOT_ISOLATED, omega_0, omega_0, omega_1,
                                       n_roots_0, n_roots_1, 0)
            n_roots_mid = self._count_roots(omega_mid, events)
            if n_roots_mid == n_roots_0 or n_roots_mid <= n_mode:
                n_roots_0, omega_0 = n_roots_mid, omega_mid
            else:
                n_roots_1, omega_1 = n_roots_mid, omega_mid

        # stage 2: sign of Phi at the outer boundary
        sign_0 = self._sign_at_end(omega_0, events)
        sign_1 = self._sign_at_end(omega_1, events)
        iterations = 0
        while omega_1 - omega_0 > delta_omega and iterations < max_steps:
            omega_mid = 0.5 * (omega_0 + omega_1)
            if not omega_0 < omega_mid < omega_1:
                break
            sign_mid = self._sign_at_end(omega_mid, events)
            iterations += 1
            if sign_mid == sign_0:
                omega_0 = omega_mid
            elif sign_mid == sign_1:
                omega_1 = omega_mid

        self.omega = omega_0
        if omega_1 - omega_0 <= delta_omega or not omega_0 < 0.5 * (omega_0 + omega_1) < omega_1:
            status = BisectionStatus.CONVERGED
            logger.info("Converged to omega=%.15g after %d iteration(s)", omega_0, iterations)
        else:
            status = BisectionStatus.MAX_ITERATIONS
            logger.warning(
                "Bisection stopped after %d iterations with bracket [%.15g, %.15g] (width %.3g > %.3g)",
                iterations, omega_0, omega_1, omega_1 - omega_0, delta_omega,
            )
        return BisectionResult(status, omega_0, omega_0, omega_1, n_roots_0, n_roots_1, iterations)

    def _mass_converged(self, r: float, dr: float, y: StateVector, dy: StateVector) -> bool:
        a = y[A]
        M = _mass(r, a)
        dM_dr = 0.5 * (1.0 - 1.0 / (a * a)) + r * dy[A] / (a * a * a)
        return M > 0.0 and r * dM_dr < MASS_CONVERGENCE * M

    def _trajectory(self, options: IntegrationOptions) -> list[Step]:
        mass_event = Event(self._mass_converged, stopping=True, name="M_converged")
        diverging = Event(lambda r, dr, y, dy: abs(y[PHI]) > abs(self.phi_0), stopping=True, name="phi_diverging")

        result = self.integrate([mass_event, diverging], options=options)
        steps = result.steps
        if result.stopped_by != diverging.name:
            if not result.success:
                logger.warning("Integration of the star ended with %s at r=%.4g", result.reason.name, result.last.r)
            return steps

        # cut at the last local minimum of |Phi| and continue without the field
        i = len(steps) - 1
        while i > 0 and abs(steps[i - 1].y[PHI]) < abs(steps[i].y[PHI]):
            i -= 1
        r_cut, y_cut = steps[i]
        logger.debug("Scalar field diverges, cutting at r=%.6g", r_cut)
        if not r_cut < self.r_end:
            return steps[:i + 1]
        y_cut = y_cut.replace(PHI, 0.0).replace(PSI, 0.0)

        tail = self.integrate([mass_event], initial_conditions=y_cut, options=options, r_init=r_cut)
        if not tail.success:
            logger.warning("Integration of the star ended with %s at r=%.4g", tail.reason.name, tail.last.r)
        return steps[:i] + tail.steps

    def evaluate_model(
        self,
        filename: Optional[Union[str, Path]] = None,
        options: Optional[IntegrationOptions] = None,
    ) -> StarProperties:
        """
        Integrate the star at the current ``omega`` and compute its macroscopic quantities.

        The total mass ``M_T`` follows from the metric function ``a`` at the
        last step. The particle numbers are

            N_B = int a omega Phi^2 r^2 / alpha dr,
            N_F = int a rho r^2 dr,

        and ``R_B``, ``R_F`` are the radii that enclose 99% of them.

        Parameters
        ----------
        filename : str or Path, optional
            Write the trajectory to this file.
        options : IntegrationOptions, optional
            Step control. Intermediate steps are always kept.

        Returns
        -------
        properties : StarProperties
        """
        options = replace(options or self.options, save_intermediate=True)
        steps = self._trajectory(options)

        r = np.array([s.r for s in steps])
        y = np.array([s.y.array for s in steps])
        a, alpha, Phi = y[:, A], y[:, ALPHA], y[:, PHI]
        rho = np.array([self._matter(max(p, 0.0))[0] for p in y[:, PRESSURE]])

        N_B_cumulative = cumtrapz(r, a * self.omega * Phi**2 * r**2 / alpha)
        N_F_cumulative = cumtrapz(r, a * rho * r**2)

        self.M_T = _mass(r[-1], a[-1])
        self.N_B = float(N_B_cumulative[-1])
        self.N_F = float(N_F_cumulative[-1])
        self.R_B = _radius_fraction(r, N_B_cumulative)
        self.R_F = _radius_fraction(r, N_F_cumulative)

        properties = StarProperties(self.omega, self.M_T, self.N_B, self.N_F, self.R_B, self.R_F, steps)
        logger.info(
            "M_T=%.6g, N_B=%.6g, R_B=%.6g, N_F=%.6g, R_F=%.6g, N_B/N_F=%.6g",
            self.M_T, self.N_B, self.R_B, self.N_F, self.R_F, properties.ratio,
        )

        if filename is not None:
            save_integration_data(steps, filename)

        return properties

    def _nbnf_ratio(self, phi_0: float, omega_0: float, omega_1: float, n_mode: int) -> float:
        self.phi_0 = phi_0
        result = self.bisection(omega_0, omega_1, n_mode=n_mode)
        if not result.converged:
            logger.warning("Frequency search for phi_0=%.6g ended with %s", phi_0, result.status.name)
        return self.evaluate_model().ratio

    def shoot_nbnf_ratio(
        self,
        ratio: float,
        accuracy: float = 1e-4,
        omega_0: float = 1.0,
        omega_1: float = 10.0,
        phi_0_range: tuple[float, float] = (1e-10, 0.1),
        n_mode: int = 0,
        max_steps: int = 100,
    ) -> NbNfShootingResult:
        """
        Find the central field ``phi_0`` for which ``N_B / N_F`` equals ``ratio``.

        Bisects in ``log(phi_0)`` within ``phi_0_range``. Every trial runs a
        full frequency search and evaluation, so the star holds the properties
        of the last trial afterwards.

        Raises
        ------
        BracketError
            If the ratios at the ends of ``phi_0_range`` do not bracket ``ratio``.
        """
        if ratio <= 0:
            raise ValueError("ratio must be positive")
        lower, upper = (math.log(x) for x in phi_0_range)
        diff_lower = self._nbnf_ratio(math.exp(lower), omega_0, omega_1, n_mode) - ratio
        diff_upper = self._nbnf_ratio(math.exp(upper), omega_0, omega_1, n_mode) - ratio
        if diff_lower * diff_upper > 0:
            raise BracketError(
                f"phi_0 range {phi_0_range} gives ratios {diff_lower + ratio:.6g} and {diff_upper + ratio:.6g}, "
                f"not bracketing {ratio}"
            )

        diff_mid = diff_lower
        for iteration in range(1, max_steps + 1):
            mid = 0.5 * (lower + upper)
            diff_mid = self._nbnf_ratio(math.exp(mid), omega_0, omega_1, n_mode) - ratio
            if abs(diff_mid) <= accuracy * ratio:
                return NbNfShootingResult(BisectionStatus.CONVERGED, self.phi_0, diff_mid + ratio, iteration)
            if (diff_mid > 0) == (diff_lower > 0):
                lower, diff_lower = mid, diff_mid
            else:
                upper = mid

        logger.warning("N_B/N_F shooting for ratio %.6g stopped after %d iterations", ratio, max_steps)
        return NbNfShootingResult(BisectionStatus.MAX_ITERATIONS, self.phi_0, diff_mid + ratio, max_steps)
