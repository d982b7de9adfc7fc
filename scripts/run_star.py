#!/usr/bin/env python3
"""
Solve a single fermion-boson star and write its radial profile.

Usage:
    python scripts/run_star.py configs/single_star.yaml
    python scripts/run_star.py configs/single_star.yaml --rho-c 1e-3 --phi-c 1e-2
    python scripts/run_star.py configs/single_star.yaml --nbnf-ratio 0.2
"""

import argparse
import sys
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import matplotlib.pyplot as plt

from fbs_solver.config import load_config
from fbs_solver.logs import setup_logging
from fbs_solver.plots import plot_evolution
from fbs_solver.sweep import star_from_config


def main():
    parser = argparse.ArgumentParser(description="Solve a single fermion-boson star.")
    parser.add_argument("config", type=Path, help="Path to YAML configuration file.")
    parser.add_argument("--rho-c", type=float, default=None, help="Override central density.")
    parser.add_argument("--phi-c", type=float, default=None, help="Override central scalar field.")
    parser.add_argument("--nbnf-ratio", type=float, default=None,
                        help="Search the central field giving this N_B/N_F ratio.")
    parser.add_argument("--output-dir", "-o", type=Path, default=None, help="Override output directory from config.")
    parser.add_argument("--no-plots", action="store_true", help="Skip plot generation.")

    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config.run.log_level)
    if args.rho_c is not None:
        config.star.rho_c = args.rho_c
    if args.phi_c is not None:
        config.star.phi_c = args.phi_c

    out_dir = Path(args.output_dir or config.run.out_dir) / (config.run.run_name or "star")
    out_dir.mkdir(parents=True, exist_ok=True)

    star = star_from_config(config)
    b = config.bisection
    if args.nbnf_ratio is not None:
        shooting = star.shoot_nbnf_ratio(args.nbnf_ratio, omega_0=b.omega_0, omega_1=b.omega_1, n_mode=b.n_mode)
        print(f"N_B/N_F shooting: {shooting.status.name}, phi_c={shooting.phi_0:.10g} "
              f"after {shooting.iterations} iteration(s)")
    else:
        result = star.bisection(b.omega_0, b.omega_1, n_mode=b.n_mode, max_steps=b.max_steps,
                                delta_omega=b.delta_omega)
        print(f"Bisection: {result.status.name}, omega in [{result.omega_0:.15g}, {result.omega_1:.15g}]")

    trajectory_path = out_dir / "trajectory.txt"
    props = star.evaluate_model(filename=trajectory_path)

    print(f"omega   = {props.omega:.15g}")
    print(f"M_T     = {props.M_T:.10g}")
    print(f"N_B     = {props.N_B:.10g}  (R_B = {props.R_B:.6g})")
    print(f"N_F     = {props.N_F:.10g}  (R_F = {props.R_F:.6g})")
    print(f"N_B/N_F = {props.ratio:.6g}")
    print(f"Trajectory written to: {trajectory_path}")

    if not args.no_plots:
        fig = plot_evolution(props.trajectory, save_path=out_dir / "evolution.png")
        plt.close(fig)


if __name__ == "__main__":
    main()
