#!/usr/bin/env python3
"""
Run a sweep over central density and central field from a configuration file.

Usage:
    python scripts/run_sweep.py configs/example_sweep.yaml
    python scripts/run_sweep.py configs/example_sweep.yaml --workers 8
    python scripts/run_sweep.py configs/example_sweep.yaml --nbnf
"""

import argparse
import sys
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rich.console import Console
from rich.progress import Progress

from fbs_solver.config import load_config
from fbs_solver.io import create_run_folder, save_nbnf_results, save_results
from fbs_solver.logs import setup_logging
from fbs_solver.plots import plot_all
from fbs_solver.sweep import get_sweep_summary, run_nbnf_sweep, run_sweep


def main():
    parser = argparse.ArgumentParser(description="Run a fermion-boson star sweep.")
    parser.add_argument("config", type=Path, help="Path to YAML configuration file.")
    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Override output directory from config.",
    )
    parser.add_argument("--workers", "-j", type=int, default=None, help="Override number of worker processes.")
    parser.add_argument("--nbnf", action="store_true",
                        help="Sweep central density and target N_B/N_F ratio instead of central field.")
    parser.add_argument("--no-plots", action="store_true", help="Skip plot generation.")
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Suppress progress output."
    )

    args = parser.parse_args()
    console = Console()

    config = load_config(args.config)
    setup_logging("WARNING" if args.quiet else config.run.log_level)

    if args.output_dir is not None:
        config.run.out_dir = str(args.output_dir)
    if args.workers is not None:
        config.parallel.n_workers = args.workers

    if args.nbnf:
        return run_nbnf(config, console, args.quiet)

    total_points = config.sweep.n_rho * config.sweep.n_phi
    if not args.quiet:
        console.print(f"Loading config: {args.config}")
        console.print(
            f"Star: mu={config.star.mu}, lambda={config.star.lam}, EOS={config.eos.kind}"
        )
        console.print(
            f"Sweep: {config.sweep.n_rho} x {config.sweep.n_phi} = {total_points} stars "
            f"on {config.parallel.n_workers} worker(s)"
        )

    with Progress(console=console, disable=args.quiet) as progress:
        task = progress.add_task("Solving stars", total=total_points)
        result = run_sweep(config, progress_callback=lambda done, total: progress.update(task, completed=done))

    run_path = create_run_folder(config, result.timestamp)
    save_results(result, run_path)

    if not args.quiet:
        console.print(f"Results saved to: {run_path}")

    if not args.no_plots:
        plot_paths = plot_all(result, run_path)
        if not args.quiet:
            for name, path in plot_paths.items():
                console.print(f"  - {name}: {path.name}")

    summary = get_sweep_summary(result)
    if not args.quiet:
        console.print()
        console.print("Summary:")
        console.print(
            f"  Converged stars: {summary['converged_points']}/{summary['total_points']} "
            f"({summary['converged_fraction'] * 100:.1f}%)"
        )
        console.print(f"  Largest mass: {summary['M_T_max']:.6g}")
        console.print(
            f"  Elapsed time: {summary['elapsed_seconds']:.2f}s ({summary['points_per_second']:.2f} stars/s)"
        )

    console.print(f"\nRun complete: {run_path}")
    return str(run_path)


def run_nbnf(config, console, quiet):
    total_points = config.sweep.n_rho * config.nbnf.n_ratio
    if not quiet:
        console.print(
            f"N_B/N_F sweep: {config.sweep.n_rho} densities x {config.nbnf.n_ratio} ratios = {total_points} stars "
            f"on {config.parallel.n_workers} worker(s)"
        )

    with Progress(console=console, disable=quiet) as progress:
        task = progress.add_task("Shooting N_B/N_F", total=total_points)
        result = run_nbnf_sweep(config, progress_callback=lambda done, total: progress.update(task, completed=done))

    run_path = create_run_folder(config, result.timestamp)
    save_nbnf_results(result, run_path)

    n_converged = int(result.converged_mask.sum())
    if not quiet:
        console.print(f"Converged stars: {n_converged}/{total_points} ({result.elapsed_seconds:.2f}s)")
    console.print(f"\nRun complete: {run_path}")
    return str(run_path)


if __name__ == "__main__":
    main()
