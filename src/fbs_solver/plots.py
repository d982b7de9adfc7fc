"""
Plotting functions for star trajectories and sweep results.

Provides functions to plot the radial profile of a star, mass-radius curves,
and maps of the sweep grid.
"""

import numpy as np
from pathlib import Path
from typing import Optional, Sequence, Union
import matplotlib
matplotlib.use('Agg')  # Use non-interactive backend
import matplotlib.pyplot as plt
from matplotlib.colors import ListedColormap, BoundaryNorm
import matplotlib.patches as mpatches

from .integrator import Step
from .sweep import SweepResult, PointStatus, STATUS_COLORS, STATUS_NAMES

STATE_LABELS = ("a", r"$\alpha$", r"$\Phi$", r"$\Psi$", "P")


def plot_evolution(
    steps: Sequence[Step],
    components: Sequence[int] = (0, 1, 2, 3, 4),
    labels: Optional[Sequence[str]] = None,
    crossings: Optional[Sequence[Step]] = None,
    log_scale: bool = True,
    save_path: Optional[Union[str, Path]] = None,
    figsize: tuple[float, float] = (10, 6),
    dpi: int = 150
) -> plt.Figure:
    """
    Plot state components against the radius.

    Parameters
    ----------
    steps : sequence of Step
        Trajectory, e.g. ``StarProperties.trajectory``.
    components : sequence of int, optional
        Indices of the state components to draw.
    labels : sequence of str, optional
        Legend labels, one per component.
    crossings : sequence of Step, optional
        Event crossings to mark on the radius axis.
    log_scale : bool, optional
        Logarithmic y axis, drawing absolute values (default True).
    save_path : str or Path, optional
        Path to save the figure. If None, figure is not saved.

    Returns
    -------
    fig : matplotlib.figure.Figure
        The generated figure.
    """
    if labels is None:
        labels = [STATE_LABELS[i] for i in components]
    if len(labels) != len(components):
        raise ValueError("need one label per component")

    r = np.array([s.r for s in steps])
    y = np.array([s.y.array for s in steps])

    fig, ax = plt.subplots(figsize=figsize)
    for index, label in zip(components, labels):
        values = np.abs(y[:, index]) if log_scale else y[:, index]
        ax.plot(r, values, linewidth=1.5, label=label)

    if crossings:
        for step in crossings:
            ax.axvline(step.r, color='gray', alpha=0.5, linestyle=':')

    if log_scale:
        ax.set_yscale('log')
    ax.set_xlabel('$r$', fontsize=12)
    ax.set_title('Radial Profile', fontsize=14)
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')

    return fig


def plot_mass_radius(
    result: SweepResult,
    radius: str = "R_F",
    save_path: Optional[Union[str, Path]] = None,
    figsize: tuple[float, float] = (10, 8),
    dpi: int = 150
) -> plt.Figure:
    """
    Plot mass-radius curves, one per central field value.

    Parameters
    ----------
    result : SweepResult
        Sweep results to plot.
    radius : {"R_F", "R_B"}, optional
        Radius on the horizontal axis (default fermionic radius).
    save_path : str or Path, optional
        Path to save the figure. If None, figure is not saved.

    Returns
    -------
    fig : matplotlib.figure.Figure
        The generated figure.
    """
    if radius not in ("R_F", "R_B"):
        raise ValueError(f"Unknown radius: {radius}")

    fig, ax = plt.subplots(figsize=figsize)

    R = getattr(result, radius)
    mask = result.converged_mask
    cmap = plt.get_cmap('viridis')
    n_phi = len(result.phi_c_values)
    for i_phi, phi_c in enumerate(result.phi_c_values):
        row = mask[i_phi]
        if not np.any(row):
            continue
        ax.plot(
            R[i_phi, row], result.M_T[i_phi, row],
            'o-', markersize=3, color=cmap(i_phi / max(n_phi - 1, 1)),
            label=rf'$\phi_c={phi_c:.3g}$'
        )

    ax.set_xlabel(f'${radius[0]}_{radius[2]}$', fontsize=12)
    ax.set_ylabel('$M_T$', fontsize=12)
    ax.set_title('Mass-Radius Curves', fontsize=14)
    if ax.lines:
        ax.legend(loc='best', fontsize=8)
    else:
        ax.text(
            0.5, 0.5, 'No converged stars',
            transform=ax.transAxes, ha='center', va='center', fontsize=12
        )
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')

    return fig


def plot_quantity_map(
    result: SweepResult,
    quantity: str = "M_T",
    save_path: Optional[Union[str, Path]] = None,
    figsize: tuple[float, float] = (10, 8),
    dpi: int = 150,
    cmap: str = "viridis"
) -> plt.Figure:
    """
    Heatmap of a macroscopic quantity over the (rho_c, phi_c) grid.

    Parameters
    ----------
    result : SweepResult
        Sweep results to plot.
    quantity : str, optional
        One of ``omega``, ``M_T``, ``N_B``, ``N_F``, ``R_B``, ``R_F``.
    save_path : str or Path, optional
        Path to save the figure. If None, figure is not saved.

    Returns
    -------
    fig : matplotlib.figure.Figure
        The generated figure.
    """
    if quantity not in ("omega", "M_T", "N_B", "N_F", "R_B", "R_F"):
        raise ValueError(f"Unknown quantity: {quantity}")

    fig, ax = plt.subplots(figsize=figsize)

    rho_grid, phi_grid = np.meshgrid(result.rho_c_values, result.phi_c_values)
    values = np.ma.masked_invalid(getattr(result, quantity))
    im = ax.pcolormesh(rho_grid, phi_grid, values, cmap=cmap, shading='auto')
    fig.colorbar(im, ax=ax, label=quantity)

    ax.set_xlabel(r'Central density $\rho_c$', fontsize=12)
    ax.set_ylabel(r'Central field $\phi_c$', fontsize=12)
    ax.set_title(f'{quantity} over the sweep grid', fontsize=14)
    ax.grid(True, alpha=0.3, linestyle=':')

    plt.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')

    return fig


def plot_status_map(
    result: SweepResult,
    save_path: Optional[Union[str, Path]] = None,
    figsize: tuple[float, float] = (10, 8),
    dpi: int = 150
) -> plt.Figure:
    """
    Map of the outcome of every grid point.

    Parameters
    ----------
    result : SweepResult
        Sweep results to plot.
    save_path : str or Path, optional
        Path to save the figure. If None, figure is not saved.

    Returns
    -------
    fig : matplotlib.figure.Figure
        The generated figure.
    """
    fig, ax = plt.subplots(figsize=figsize)

    statuses = list(PointStatus)
    cmap = ListedColormap([STATUS_COLORS[s] for s in statuses])
    bounds = [int(s) - 0.5 for s in statuses] + [int(statuses[-1]) + 0.5]
    norm = BoundaryNorm(bounds, cmap.N)

    rho_grid, phi_grid = np.meshgrid(result.rho_c_values, result.phi_c_values)
    ax.pcolormesh(rho_grid, phi_grid, result.status_ids, cmap=cmap, norm=norm, shading='auto')

    present = np.unique(result.status_ids)
    patches = [
        mpatches.Patch(color=STATUS_COLORS[s], label=STATUS_NAMES[s])
        for s in statuses if int(s) in present
    ]
    ax.legend(handles=patches, loc='upper right', fontsize=10)

    ax.set_xlabel(r'Central density $\rho_c$', fontsize=12)
    ax.set_ylabel(r'Central field $\phi_c$', fontsize=12)
    ax.set_title('Bisection Outcome', fontsize=14)

    plt.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')

    return fig


def plot_all(
    result: SweepResult,
    output_dir: Union[str, Path],
    dpi: int = 150
) -> dict[str, Path]:
    """
    Generate all standard sweep plots and save to output directory.

    Parameters
    ----------
    result : SweepResult
        Sweep results to plot.
    output_dir : str or Path
        Directory to save plots.
    dpi : int, optional
        Resolution for saving (default 150).

    Returns
    -------
    paths : dict
        Dictionary mapping plot names to file paths.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = {}

    mr_path = output_dir / "plot_mass_radius.png"
    fig = plot_mass_radius(result, save_path=mr_path, dpi=dpi)
    plt.close(fig)
    paths["mass_radius"] = mr_path

    mass_path = output_dir / "plot_mass_map.png"
    fig = plot_quantity_map(result, "M_T", save_path=mass_path, dpi=dpi)
    plt.close(fig)
    paths["mass_map"] = mass_path

    status_path = output_dir / "plot_status_map.png"
    fig = plot_status_map(result, save_path=status_path, dpi=dpi)
    plt.close(fig)
    paths["status_map"] = status_path

    return paths
