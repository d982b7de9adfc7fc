"""
Equation-of-state strategies.

Every equation of state maps between pressure ``P``, rest-mass density
``rho``, specific internal energy ``epsilon`` and total energy density
``e = rho * (1 + epsilon)`` in code units (G = c = M_sun = 1).

Implementations carry no mutable state after construction, so one instance
can be shared by any number of star models and worker processes.
"""

import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import brentq

logger = logging.getLogger(__name__)

# Unit conversion for tabulated nuclear equations of state
MEV_FM3_TO_CODE_UNITS = 2.886376934e-6  # MeV/fm^3 -> M_sun c^2 / (G M_sun / c^2)^3
NEUTRON_MASS_MEV = 939.565379

# Default column layout of the tables: rho [1/fm^3], (lepton fraction), e, P
DEFAULT_TABLE_COLUMNS = {"rho": 0, "e": 2, "P": 3}


class EOSDomainError(ValueError):
    """Raised when an equation of state is queried outside its validity range."""

    def __init__(self, quantity: str, value: float, lower: float, upper: float):
        self.quantity = quantity
        self.value = value
        self.lower = lower
        self.upper = upper
        super().__init__(
            f"{quantity}={value:.6g} outside of the tabulated range [{lower:.6g}, {upper:.6g}]"
        )


class EquationOfState(ABC):
    """Interface shared by all equations of state."""

    name: str = "eos"

    @abstractmethod
    def get_P_from_rho(self, rho: float, epsilon: float = 0.0) -> float:
        """Pressure for a rest-mass density (and specific energy where relevant)."""

    @abstractmethod
    def get_P_from_e(self, e: float) -> float:
        """Pressure for a total energy density."""

    @abstractmethod
    def get_e_from_P(self, P: float) -> float:
        """Total energy density for a pressure."""

    @abstractmethod
    def get_rho_from_P(self, P: float) -> float:
        """Rest-mass density for a pressure."""

    @abstractmethod
    def dP_drho(self, rho: float, epsilon: float = 0.0) -> float:
        """Derivative of the pressure with respect to the rest-mass density."""

    @abstractmethod
    def dP_de(self, e: float) -> float:
        """Derivative of the pressure with respect to the total energy density."""

    @abstractmethod
    def call_eos(self, P: float) -> tuple[float, float]:
        """Return ``(rho, epsilon)`` for a pressure."""

    @abstractmethod
    def min_P(self) -> float:
        """Smallest pressure for which the EOS is valid."""

    @abstractmethod
    def min_rho(self) -> float:
        """Smallest rest-mass density for which the EOS is valid."""

    @abstractmethod
    def min_e(self) -> float:
        """Smallest total energy density for which the EOS is valid."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PolytropicEoS(EquationOfState):
    """
    Polytrope ``P = kappa * rho**Gamma``.

    The specific internal energy follows from the first law,
    ``epsilon = kappa * rho**(Gamma - 1) / (Gamma - 1)``.
    """

    name = "polytropic"

    def __init__(self, kappa: float = 100.0, Gamma: float = 2.0):
        if kappa <= 0:
            raise ValueError("kappa must be positive")
        if Gamma <= 1:
            raise ValueError("Gamma must be larger than 1")
        self.kappa = kappa
        self.Gamma = Gamma

    def get_P_from_rho(self, rho: float, epsilon: float = 0.0) -> float:
        return self.kappa * rho**self.Gamma

    def get_rho_from_P(self, P: float) -> float:
        return (P / self.kappa) ** (1.0 / self.Gamma)

    def get_e_from_P(self, P: float) -> float:
        return self.get_rho_from_P(P) + P / (self.Gamma - 1.0)

    def get_P_from_e(self, e: float) -> float:
        if e <= 0.0:
            return 0.0
        # e(rho) = rho + kappa rho^Gamma / (Gamma - 1) is monotonic, and rho <= e
        rho = brentq(lambda x: x + self.kappa * x**self.Gamma / (self.Gamma - 1.0) - e,
                     0.0, e, xtol=1e-300, rtol=4 * np.finfo(float).eps)
        return self.get_P_from_rho(rho)

    def dP_drho(self, rho: float, epsilon: float = 0.0) -> float:
        return self.kappa * self.Gamma * rho ** (self.Gamma - 1.0)

    def dP_de(self, e: float) -> float:
        P = self.get_P_from_e(e)
        rho = self.get_rho_from_P(P)
        dP_drho = self.dP_drho(rho)
        # de/drho = 1 + epsilon + rho depsilon/drho = 1 + dP/drho / (Gamma - 1)
        return dP_drho / (1.0 + dP_drho / (self.Gamma - 1.0))

    def call_eos(self, P: float) -> tuple[float, float]:
        rho = (P / self.kappa) ** (1.0 / self.Gamma)
        epsilon = self.kappa * rho ** (self.Gamma - 1.0) / (self.Gamma - 1.0)
        return rho, epsilon

    def min_P(self) -> float:
        return 0.0

    def min_rho(self) -> float:
        return 0.0

    def min_e(self) -> float:
        return 0.0

    def __repr__(self) -> str:
        return f"PolytropicEoS(kappa={self.kappa}, Gamma={self.Gamma})"


class CausalEoS(EquationOfState):
    """Causal equation of state ``P = P_f + e - eps_f`` (speed of sound = 1)."""

    name = "causal"

    def __init__(self, eps_f: float, P_f: float = 0.0):
        self.eps_f = eps_f
        self.P_f = P_f

    def get_P_from_rho(self, rho: float, epsilon: float = 0.0) -> float:
        return self.P_f + rho * (1.0 + epsilon) - self.eps_f

    def get_P_from_e(self, e: float) -> float:
        return self.P_f + e - self.eps_f

    def get_e_from_P(self, P: float) -> float:
        return P - self.P_f + self.eps_f

    def get_rho_from_P(self, P: float) -> float:
        return self.get_e_from_P(P)

    def dP_drho(self, rho: float, epsilon: float = 0.0) -> float:
        return 1.0 + epsilon

    def dP_de(self, e: float) -> float:
        return 1.0

    def call_eos(self, P: float) -> tuple[float, float]:
        return P - self.P_f + self.eps_f, 0.0

    def min_P(self) -> float:
        return 0.0

    def min_rho(self) -> float:
        return 0.0

    def min_e(self) -> float:
        return self.get_e_from_P(0.0)

    def __repr__(self) -> str:
        return f"CausalEoS(eps_f={self.eps_f}, P_f={self.P_f})"


class EffectiveBosonicEoS(EquationOfState):
    """
    Effective fluid of a strongly self-interacting boson condensate.

    With ``rho0 = mu**4 / (2 * lam)`` the pressure is
    ``P = rho0 / 9 * (sqrt(1 + 3 e / rho0) - 1)**2``. The fluid has no separate
    rest mass, so ``rho`` is the total energy density and ``epsilon = 0``.
    """

    name = "effective_bosonic"

    def __init__(self, mu: float = 1.0, lam: float = 1.0):
        if lam <= 0:
            raise ValueError("the effective bosonic EOS needs a positive self-interaction")
        self.mu = mu
        self.lam = lam
        self.rho0 = mu**4 / (2.0 * lam)

    def get_P_from_e(self, e: float) -> float:
        return self.rho0 / 9.0 * (math.sqrt(1.0 + 3.0 * e / self.rho0) - 1.0) ** 2

    def get_P_from_rho(self, rho: float, epsilon: float = 0.0) -> float:
        return self.get_P_from_e(rho * (1.0 + epsilon))

    def get_e_from_P(self, P: float) -> float:
        return 3.0 * P + 2.0 * math.sqrt(self.rho0 * P)

    def get_rho_from_P(self, P: float) -> float:
        return self.get_e_from_P(P)

    def dP_de(self, e: float) -> float:
        s = math.sqrt(1.0 + 3.0 * e / self.rho0)
        return (s - 1.0) / (3.0 * s)

    def dP_drho(self, rho: float, epsilon: float = 0.0) -> float:
        return self.dP_de(rho * (1.0 + epsilon)) * (1.0 + epsilon)

    def call_eos(self, P: float) -> tuple[float, float]:
        return self.get_e_from_P(P), 0.0

    def min_P(self) -> float:
        return 0.0

    def min_rho(self) -> float:
        return 0.0

    def min_e(self) -> float:
        return 0.0

    def __repr__(self) -> str:
        return f"EffectiveBosonicEoS(mu={self.mu}, lam={self.lam})"


class TabulatedEoS(EquationOfState):
    """
    Tabulated equation of state with linear interpolation.

    Parameters
    ----------
    rho, P, e : array_like
        Rest-mass density, pressure and total energy density in code units.
        Pressure must be strictly increasing.

    Notes
    -----
    Queries outside the tabulated range raise :class:`EOSDomainError`. Callers
    decide what to do with the low-pressure end (the star model treats it as
    vacuum).
    """

    name = "table"

    def __init__(self, rho, P, e):
        self.rho_table = np.asarray(rho, dtype=np.float64)
        self.P_table = np.asarray(P, dtype=np.float64)
        self.e_table = np.asarray(e, dtype=np.float64)

        n = len(self.P_table)
        if n < 2:
            raise ValueError("an EOS table needs at least two rows")
        if len(self.rho_table) != n or len(self.e_table) != n:
            raise ValueError("rho, P and e tables must have equal length")
        if np.any(np.diff(self.P_table) <= 0):
            raise ValueError("EOS table column P must be strictly increasing")
        for label, column in (("rho", self.rho_table), ("e", self.e_table)):
            if np.any(np.diff(column) < 0):
                raise ValueError(f"EOS table column {label} must not decrease")

        for column in (self.rho_table, self.P_table, self.e_table):
            column.flags.writeable = False

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        columns: Optional[dict[str, int]] = None,
        density_factor: float = MEV_FM3_TO_CODE_UNITS * NEUTRON_MASS_MEV,
        energy_factor: float = MEV_FM3_TO_CODE_UNITS,
    ) -> "TabulatedEoS":
        """
        Load a table from a whitespace-delimited text file.

        Lines containing ``#`` and blank lines are skipped.

        Parameters
        ----------
        path : str or Path
            Table file.
        columns : dict, optional
            Column indices for ``"rho"``, ``"e"`` and ``"P"``. Defaults to
            :data:`DEFAULT_TABLE_COLUMNS`.
        density_factor : float
            Multiplier converting the density column to code units (default
            converts a baryon number density in 1/fm^3).
        energy_factor : float
            Multiplier converting energy density and pressure to code units
            (default converts MeV/fm^3).

        Raises
        ------
        OSError
            If the file cannot be opened.
        ValueError
            If a row is malformed or the table is not monotonic.
        """
        path = Path(path)
        columns = dict(DEFAULT_TABLE_COLUMNS if columns is None else columns)
        missing = {"rho", "e", "P"} - set(columns)
        if missing:
            raise ValueError(f"column mapping lacks {sorted(missing)}")
        width = max(columns.values()) + 1

        rho, e, P = [], [], []
        with open(path, "r") as f:
            for lineno, line in enumerate(f, start=1):
                if "#" in line or not line.strip():
                    continue
                fields = line.split()
                if len(fields) < width:
                    raise ValueError(f"{path}:{lineno}: expected {width} columns, got {len(fields)}")
                try:
                    rho.append(float(fields[columns["rho"]]) * density_factor)
                    e.append(float(fields[columns["e"]]) * energy_factor)
                    P.append(float(fields[columns["P"]]) * energy_factor)
                except ValueError as exc:
                    raise ValueError(f"{path}:{lineno}: {exc}") from exc

        logger.debug("Loaded EOS table %s with %d rows", path, len(P))
        return cls(rho, P, e)

    def _interp(self, quantity: str, x: float, xp: NDArray[np.float64], fp: NDArray[np.float64]) -> float:
        if not xp[0] <= x <= xp[-1]:
            raise EOSDomainError(quantity, x, xp[0], xp[-1])
        return float(np.interp(x, xp, fp))

    def _slope(self, quantity: str, x: float, xp: NDArray[np.float64], fp: NDArray[np.float64]) -> float:
        # centred slopes at the nodes, interpolated linearly in between
        if len(xp) < 3:
            return (fp[-1] - fp[0]) / (xp[-1] - xp[0])
        if not xp[1] <= x <= xp[-2]:
            raise EOSDomainError(quantity, x, xp[1], xp[-2])
        secant = np.diff(fp) / np.diff(xp)
        node_slopes = 0.5 * (secant[:-1] + secant[1:])  # at xp[1:-1]
        return float(np.interp(x, xp[1:-1], node_slopes))

    def call_eos(self, P: float) -> tuple[float, float]:
        rho = self._interp("P", P, self.P_table, self.rho_table)
        e = self._interp("P", P, self.P_table, self.e_table)
        if rho == 0.0:
            return rho, 0.0
        return rho, e / rho - 1.0

    def get_P_from_rho(self, rho: float, epsilon: float = 0.0) -> float:
        return self._interp("rho", rho, self.rho_table, self.P_table)

    def get_P_from_e(self, e: float) -> float:
        return self._interp("e", e, self.e_table, self.P_table)

    def get_e_from_P(self, P: float) -> float:
        return self._interp("P", P, self.P_table, self.e_table)

    def get_rho_from_P(self, P: float) -> float:
        return self._interp("P", P, self.P_table, self.rho_table)

    def dP_drho(self, rho: float, epsilon: float = 0.0) -> float:
        return self._slope("rho", rho, self.rho_table, self.P_table)

    def dP_de(self, e: float) -> float:
        return self._slope("e", e, self.e_table, self.P_table)

    def min_P(self) -> float:
        return float(self.P_table[0])

    def min_rho(self) -> float:
        return float(self.rho_table[0])

    def min_e(self) -> float:
        return float(self.e_table[0])

    def __repr__(self) -> str:
        return f"TabulatedEoS(rows={len(self.P_table)})"


def create_eos(kind: str, **params) -> EquationOfState:
    """
    Create an equation of state by name.

    Parameters
    ----------
    kind : {"polytropic", "causal", "effective_bosonic", "table"}
        EOS variant.
    **params
        Constructor arguments. For ``"table"`` pass ``path`` and optionally
        ``columns``.

    Returns
    -------
    eos : EquationOfState
    """
    if kind == "polytropic":
        return PolytropicEoS(**params)
    elif kind == "causal":
        return CausalEoS(**params)
    elif kind == "effective_bosonic":
        return EffectiveBosonicEoS(**params)
    elif kind == "table":
        return TabulatedEoS.from_file(**params)
    else:
        raise ValueError(f"Unknown EOS kind: {kind}")
