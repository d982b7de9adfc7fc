"""
Smoke tests for the plotting functions.

Only checks that figures are produced and written, not their content.
"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import matplotlib.pyplot as plt

from fbs_solver.config import Config
from fbs_solver.integrator import Step
from fbs_solver.plots import plot_all, plot_evolution, plot_mass_radius, plot_quantity_map
from fbs_solver.sweep import SweepResult
from fbs_solver.vector import StateVector


@pytest.fixture
def result():
    shape = (2, 3)
    status_ids = np.array([[0, 0, 2], [0, 1, 0]], dtype=np.int32)
    M_T = np.array([[0.4, 0.8, np.nan], [0.5, 0.9, 1.1]])
    return SweepResult(
        rho_c_values=np.array([1e-3, 2e-3, 3e-3]),
        phi_c_values=np.array([0.01, 0.02]),
        omega=np.full(shape, 1.3),
        M_T=M_T,
        N_B=np.full(shape, 0.2),
        N_F=np.full(shape, 0.6),
        R_B=np.full(shape, 7.0),
        R_F=np.array([[9.0, 8.5, np.nan], [9.5, 9.0, 8.0]]),
        status_ids=status_ids,
        config=Config(),
        config_hash="abc123def456",
        timestamp="20240101_120000",
        elapsed_seconds=1.0,
        total_points=6,
    )


@pytest.fixture
def steps():
    r = np.linspace(1e-10, 20.0, 50)
    return [Step(float(x), StateVector([1.0 + 0.01 * x, 1.0 + 0.02 * x, 0.02 * np.exp(-x), -0.02 * np.exp(-x), 0.0]))
            for x in r]


class TestPlots:

    def test_plot_all_writes_files(self, result, tmp_path):
        paths = plot_all(result, tmp_path / "plots", dpi=50)
        assert set(paths) == {"mass_radius", "mass_map", "status_map"}
        for path in paths.values():
            assert path.exists()
            assert path.stat().st_size > 0

    def test_plot_evolution(self, steps, tmp_path):
        path = tmp_path / "profile.png"
        fig = plot_evolution(steps, components=(0, 1, 2), crossings=[steps[10]], save_path=path, dpi=50)
        assert path.exists()
        assert len(fig.axes[0].lines) == 4
        plt.close(fig)

    def test_plot_evolution_label_mismatch(self, steps):
        with pytest.raises(ValueError):
            plot_evolution(steps, components=(0, 1), labels=["a"])

    def test_mass_radius_without_converged_stars(self, result):
        result.status_ids[:] = 2
        fig = plot_mass_radius(result)
        assert not fig.axes[0].lines
        plt.close(fig)

    def test_unknown_quantity(self, result):
        with pytest.raises(ValueError):
            plot_quantity_map(result, "spin")
