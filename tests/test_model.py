"""
Tests for the fermion-boson star model.

The shooting tests integrate a real star (mu = 1, lambda = 0, polytropic
core with rho_c = 0.002, phi_c = 0.02) and share one solved instance.
"""

import math

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fbs_solver.eos import PolytropicEoS, TabulatedEoS
from fbs_solver.integrator import NaNStateError
from fbs_solver.io import load_integration_data
from fbs_solver.model import (
    BisectionStatus,
    BracketError,
    FermionBosonStar,
    StarProperties,
    _mass,
    _radius_fraction,
)
from fbs_solver.vector import StateVector


@pytest.fixture
def star():
    return FermionBosonStar(PolytropicEoS(kappa=100.0, Gamma=2.0), mu=1.0, lam=0.0, rho_0=0.002, phi_0=0.02)


@pytest.fixture
def table():
    rho = [1e-4, 1e-3, 2e-3, 4e-3]
    P = [100.0 * x**2 for x in rho]
    return TabulatedEoS(rho, P, [x + p for x, p in zip(rho, P)])


@pytest.fixture(scope="module")
def solved():
    """Star after a mode-0 frequency search and evaluation."""
    star = FermionBosonStar(PolytropicEoS(kappa=100.0, Gamma=2.0), mu=1.0, lam=0.0, rho_0=0.002, phi_0=0.02)
    result = star.bisection(1.0, 10.0, n_mode=0, max_steps=500, delta_omega=1e-10)
    props = star.evaluate_model()
    return star, result, props


class TestRightHandSide:
    """Field equations and initial conditions."""

    def test_initial_conditions(self, star):
        y0 = star.initial_conditions
        assert list(y0) == pytest.approx([1.0, 1.0, 0.02, 0.0, 4e-4])
        assert star.set_initial_conditions(rho_0=0.001, phi_0=0.01)[2] == pytest.approx(0.01)
        assert star.rho_0 == 0.001

    def test_density_below_table_is_vacuum(self, table):
        assert FermionBosonStar(table, rho_0=0.0, phi_0=0.02).initial_conditions[4] == 0.0
        assert FermionBosonStar(table, rho_0=1e-10, phi_0=0.02).initial_conditions[4] == 0.0
        assert FermionBosonStar(table, rho_0=1e-3, phi_0=0.02).initial_conditions[4] == pytest.approx(1e-4)

    def test_regular_near_center(self, star):
        star.omega = 1.5
        dy = star.dy_dr(1e-10, star.initial_conditions)
        assert len(dy) == 5
        assert dy.is_finite()
        assert dy[2] == 0.0  # dPhi/dr = Psi = 0

    def test_scalar_field_equation(self, star):
        star.omega = 2.0
        y = StateVector([1.0, 1.0, 0.02, 0.0, 0.0])
        dy = star.dy_dr(1e-6, y)
        # dPsi/dr = -(omega^2 - mu^2) Phi at the center of a vacuum core
        assert dy[3] == pytest.approx(-(4.0 - 1.0) * 0.02, rel=1e-6)

    def test_negative_pressure_clamped(self, star):
        star.omega = 1.5
        y_neg = StateVector([1.01, 1.02, 0.01, -0.001, -1e-5])
        y_zero = StateVector([1.01, 1.02, 0.01, -0.001, 0.0])
        assert star.dy_dr(3.0, y_neg) == star.dy_dr(3.0, y_zero)

    def test_nan_state_raises(self, star):
        with pytest.raises(NaNStateError):
            star.dy_dr(1.0, StateVector([1.0, math.nan, 0.0, 0.0, 0.0]))

    def test_copy_is_independent(self, star):
        other = star.copy(rho_0=0.001)
        other.omega = 3.0
        assert star.rho_0 == 0.002
        assert star.omega == 0.0
        assert other.eos is star.eos


class TestBisection:
    """Frequency search."""

    def test_converges_for_ground_state(self, solved):
        star, result, _ = solved
        assert result.status == BisectionStatus.CONVERGED
        assert result.converged
        assert result.width <= 1e-10
        assert result.n_roots_0 == 0
        assert result.n_roots_1 == 1
        assert 1.0 < result.omega < 10.0
        assert star.omega == result.omega_0

    def test_empty_interval_raises(self, star):
        with pytest.raises(BracketError):
            star.bisection(2.0, 1.0)

    def test_equal_root_counts_raise(self, star):
        # below the field mass the field grows without a node at both ends
        with pytest.raises(BracketError):
            star.bisection(0.5, 0.9)

    def test_iteration_budget_reported(self, star):
        result = star.bisection(1.0, 10.0, max_steps=2, delta_omega=1e-15)
        assert result.status == BisectionStatus.MAX_ITERATIONS
        assert not result.converged
        assert result.iterations == 2
        assert result.width > 1e-15

    def test_unresolved_mode_reported(self, star, monkeypatch):
        # node count jumps from 0 to 3 at omega = 2
        monkeypatch.setattr(star, "_count_roots", lambda omega, events: 0 if omega < 2.0 else 3)
        result = star.bisection(1.0, 10.0, n_mode=1)
        assert result.status == BisectionStatus.MODE_NOT_ISOLATED
        assert not result.converged
        assert (result.n_roots_0, result.n_roots_1) == (0, 3)
        assert result.omega_0 < 2.0 <= result.omega_1
        assert result.width < 1e-14
        assert result.iterations == 0

    def test_zero_field_rejected(self, star):
        star.phi_0 = 0.0
        with pytest.raises(ValueError):
            star.bisection(1.0, 10.0)


class TestEvaluateModel:
    """Macroscopic quantities of the solved star."""

    def test_total_mass(self, solved):
        star, _, props = solved
        assert np.isfinite(props.M_T)
        assert props.M_T > 0
        r_end, y_end = props.trajectory[-1]
        assert props.M_T == pytest.approx(0.5 * r_end * (1.0 - 1.0 / y_end[0] ** 2))
        assert star.M_T == props.M_T

    def test_particle_numbers_and_radii(self, solved):
        _, _, props = solved
        assert props.N_B > 0
        assert props.N_F > 0
        assert props.R_B > 0
        assert props.R_F > 0
        assert props.ratio == pytest.approx(props.N_B / props.N_F)

    def test_trajectory_is_ordered(self, solved):
        _, _, props = solved
        r = np.array([s.r for s in props.trajectory])
        assert len(r) > 10
        assert np.all(np.diff(r) > 0)
        assert r[0] == pytest.approx(1e-10)

    def test_field_bounded_at_outer_edge(self, solved):
        _, _, props = solved
        assert abs(props.trajectory[-1].y[2]) < 0.02

    def test_writes_trajectory(self, solved, tmp_path):
        star, _, props = solved
        path = tmp_path / "fbs.txt"
        again = star.evaluate_model(filename=path)
        steps = load_integration_data(path)
        assert len(steps) == len(again.trajectory)
        assert steps[-1].r == pytest.approx(again.trajectory[-1].r, abs=1e-10)
        assert again.M_T == pytest.approx(props.M_T)


class TestHelpers:

    def test_mass_function(self):
        # Schwarzschild exterior: a^2 = 1 / (1 - 2M/r)
        r, M = 50.0, 0.3
        a = 1.0 / math.sqrt(1.0 - 2.0 * M / r)
        assert _mass(r, a) == pytest.approx(M)

    def test_radius_fraction(self):
        r = np.array([0.0, 1.0, 2.0, 3.0])
        assert _radius_fraction(r, np.array([0.0, 0.5, 0.995, 1.0])) == 2.0
        assert _radius_fraction(r, np.zeros(4)) == 0.0

    def test_ratio_of_pure_boson_star(self):
        props = StarProperties(omega=1.1, M_T=0.5, N_B=0.6, N_F=0.0, R_B=7.0, R_F=0.0)
        assert props.ratio == math.inf


class TestNbNfShooting:
    """Central field search for a target particle number ratio."""

    @pytest.fixture
    def linear_ratio(self, star, monkeypatch):
        def fake_ratio(phi_0, omega_0, omega_1, n_mode):
            star.phi_0 = phi_0
            return 10.0 * phi_0

        monkeypatch.setattr(star, "_nbnf_ratio", fake_ratio)
        return star

    def test_finds_central_field(self, linear_ratio):
        result = linear_ratio.shoot_nbnf_ratio(0.05, accuracy=1e-4)
        assert result.status == BisectionStatus.CONVERGED
        assert result.converged
        assert result.phi_0 == pytest.approx(0.005, rel=2e-4)
        assert result.ratio == pytest.approx(0.05, rel=1e-4)
        assert linear_ratio.phi_0 == result.phi_0

    def test_unbracketed_ratio_raises(self, linear_ratio):
        with pytest.raises(BracketError):
            linear_ratio.shoot_nbnf_ratio(10.0)

    def test_iteration_budget(self, linear_ratio):
        result = linear_ratio.shoot_nbnf_ratio(0.05, accuracy=1e-12, max_steps=3)
        assert result.status == BisectionStatus.MAX_ITERATIONS
        assert result.iterations == 3

    @pytest.mark.slow
    def test_full_evaluation(self):
        star = FermionBosonStar(PolytropicEoS(kappa=100.0, Gamma=2.0), mu=1.0, lam=0.0, rho_0=0.002)
        target = star.copy()._nbnf_ratio(0.008, 1.0, 10.0, 0)
        result = star.shoot_nbnf_ratio(target, accuracy=1e-2, phi_0_range=(0.005, 0.02))
        assert result.converged
        assert abs(result.ratio - target) <= 1e-2 * target
        assert 0.005 < result.phi_0 < 0.02
        assert star.N_B / star.N_F == pytest.approx(result.ratio)
