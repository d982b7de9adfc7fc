"""
Input/Output functionality for fermion-boson star runs.

Handles trajectory files, saving and loading sweep results, creating run
folders, and computing reproducibility hashes.
"""

import json
import hashlib
import logging
import numpy as np
from pathlib import Path
from typing import TYPE_CHECKING, Union, Optional, Sequence
from datetime import datetime

import pandas as pd

from .config import Config, save_config
from .integrator import Step
from .vector import StateVector

if TYPE_CHECKING:
    from .sweep import NbNfSweepResult, SweepResult

logger = logging.getLogger(__name__)

TRAJECTORY_HEADER = "# r\t     a\t    alpha\t    Phi\t    Psi\t    P"
TRAJECTORY_PRECISION = 10


def save_integration_data(steps: Sequence[Step], path: Union[str, Path]) -> Path:
    """
    Write a trajectory as a text table.

    One row per step: ``r`` followed by the state components, fixed-point
    with 10 decimals and separated by spaces, below a ``#`` header line.

    Parameters
    ----------
    steps : sequence of Step
        Trajectory to write.
    path : str or Path
        Output file. Parent directories are created.

    Returns
    -------
    path : Path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        f.write(TRAJECTORY_HEADER + "\n")
        for r, y in steps:
            values = [r, *y]
            f.write(" ".join(f"{v:.{TRAJECTORY_PRECISION}f}" for v in values) + "\n")

    logger.debug("Wrote %d steps to %s", len(steps), path)
    return path


def load_integration_data(path: Union[str, Path]) -> list[Step]:
    """
    Read a trajectory written by :func:`save_integration_data`.

    Parameters
    ----------
    path : str or Path
        Trajectory file.

    Returns
    -------
    steps : list of Step
    """
    data = np.loadtxt(path, comments="#", ndmin=2)
    return [Step(float(row[0]), StateVector(row[1:])) for row in data]


def compute_config_hash(config: Config) -> str:
    """
    Compute a stable hash of the configuration.

    The hash is deterministic and based on the resolved config values.

    Parameters
    ----------
    config : Config
        Configuration to hash.

    Returns
    -------
    hash_str : str
        SHA256 hash of the configuration (first 12 characters).
    """
    config_json = json.dumps(config.to_dict(), sort_keys=True)
    return hashlib.sha256(config_json.encode()).hexdigest()[:12]


def create_run_folder(
    config: Config,
    timestamp: Optional[str] = None
) -> Path:
    """
    Create a unique folder for a run.

    Folder name format: run_<YYYYmmdd_HHMMSS>_<hash>, or
    <run_name>_<YYYYmmdd_HHMMSS>_<hash> when the config names the run.

    Parameters
    ----------
    config : Config
        Configuration for the run.
    timestamp : str, optional
        Timestamp string. If None, uses current time.

    Returns
    -------
    run_path : Path
        Path to the created run folder.
    """
    if timestamp is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    prefix = config.run.run_name or "run"
    run_path = Path(config.run.out_dir) / f"{prefix}_{timestamp}_{compute_config_hash(config)}"
    run_path.mkdir(parents=True, exist_ok=True)

    return run_path


def save_results(
    result: "SweepResult",
    run_path: Union[str, Path]
) -> dict[str, Path]:
    """
    Save sweep results to a run folder.

    Saves:
    - config_resolved.yaml: The resolved configuration
    - results.json: Metadata and arrays as JSON
    - results.csv: One row per star

    Parameters
    ----------
    result : SweepResult
        Sweep results to save.
    run_path : str or Path
        Path to the run folder.

    Returns
    -------
    paths : dict
        Dictionary mapping output names to file paths.
    """
    run_path = Path(run_path)
    run_path.mkdir(parents=True, exist_ok=True)

    paths = {}

    config_path = run_path / "config_resolved.yaml"
    save_config(result.config, config_path)
    paths["config"] = config_path

    json_path = run_path / "results.json"
    with open(json_path, "w") as f:
        json.dump(_result_to_json_dict(result), f, indent=2)
    paths["json"] = json_path

    csv_path = run_path / "results.csv"
    _result_to_dataframe(result).to_csv(csv_path, index=False)
    paths["csv"] = csv_path

    logger.info("Saved results to %s", run_path)
    return paths


def _to_json_list(values: np.ndarray) -> list:
    # NaN marks failed stars and is not valid JSON
    return [[None if np.isnan(v) else float(v) for v in row] for row in values]


def _from_json_list(values: list) -> np.ndarray:
    return np.array([[np.nan if v is None else v for v in row] for row in values], dtype=np.float64)


_QUANTITIES = ("omega", "M_T", "N_B", "N_F", "R_B", "R_F")


def _result_to_json_dict(result: "SweepResult") -> dict:
    """Convert SweepResult to JSON-serializable dictionary."""
    results = {name: _to_json_list(getattr(result, name)) for name in _QUANTITIES}
    results["status_ids"] = result.status_ids.tolist()
    return {
        "metadata": {
            "config_hash": result.config_hash,
            "timestamp": result.timestamp,
            "elapsed_seconds": result.elapsed_seconds,
            "total_points": result.total_points
        },
        "grid": {
            "rho_c_values": result.rho_c_values.tolist(),
            "phi_c_values": result.phi_c_values.tolist(),
            "n_rho": len(result.rho_c_values),
            "n_phi": len(result.phi_c_values)
        },
        "results": results,
        "config": result.config.to_dict()
    }


def _result_to_dataframe(result: "SweepResult") -> pd.DataFrame:
    """Convert SweepResult to a DataFrame with one row per star."""
    from .sweep import PointStatus, status_to_string

    rows = []
    for i_phi, phi_c in enumerate(result.phi_c_values):
        for i_rho, rho_c in enumerate(result.rho_c_values):
            row = {"rho_c": rho_c, "phi_c": phi_c}
            for name in _QUANTITIES:
                row[name] = getattr(result, name)[i_phi, i_rho]
            N_F = row["N_F"]
            row["N_B/N_F"] = row["N_B"] / N_F if N_F else np.inf
            status = PointStatus(result.status_ids[i_phi, i_rho])
            row["status_id"] = int(status)
            row["status"] = status_to_string(status)
            rows.append(row)
    return pd.DataFrame(rows)


def save_nbnf_results(
    result: "NbNfSweepResult",
    run_path: Union[str, Path]
) -> dict[str, Path]:
    """
    Save the results of an N_B/N_F sweep to a run folder.

    Writes config_resolved.yaml and results_nbnf.csv with one row per star.

    Parameters
    ----------
    result : NbNfSweepResult
        Sweep results to save.
    run_path : str or Path
        Path to the run folder.

    Returns
    -------
    paths : dict
        Dictionary mapping output names to file paths.
    """
    from .sweep import PointStatus, status_to_string

    run_path = Path(run_path)
    run_path.mkdir(parents=True, exist_ok=True)

    config_path = run_path / "config_resolved.yaml"
    save_config(result.config, config_path)

    rows = []
    for i_ratio, target in enumerate(result.ratio_values):
        for i_rho, rho_c in enumerate(result.rho_c_values):
            row = {"rho_c": rho_c, "target_N_B/N_F": target}
            for name in ("phi_c",) + _QUANTITIES:
                row[name] = getattr(result, name)[i_ratio, i_rho]
            N_F = row["N_F"]
            row["N_B/N_F"] = row["N_B"] / N_F if N_F else np.inf
            status = PointStatus(result.status_ids[i_ratio, i_rho])
            row["status_id"] = int(status)
            row["status"] = status_to_string(status)
            rows.append(row)

    csv_path = run_path / "results_nbnf.csv"
    pd.DataFrame(rows).to_csv(csv_path, index=False)

    logger.info("Saved N_B/N_F results to %s", run_path)
    return {"config": config_path, "csv": csv_path}


def load_results(run_path: Union[str, Path]) -> "SweepResult":
    """
    Load sweep results from a run folder.

    Parameters
    ----------
    run_path : str or Path
        Path to the run folder.

    Returns
    -------
    result : SweepResult
        Loaded sweep results.
    """
    from .config import load_config
    from .sweep import SweepResult

    run_path = Path(run_path)
    config = load_config(run_path / "config_resolved.yaml")

    with open(run_path / "results.json", "r") as f:
        data = json.load(f)

    arrays = {name: _from_json_list(data["results"][name]) for name in _QUANTITIES}
    return SweepResult(
        rho_c_values=np.array(data["grid"]["rho_c_values"]),
        phi_c_values=np.array(data["grid"]["phi_c_values"]),
        status_ids=np.array(data["results"]["status_ids"], dtype=np.int32),
        config=config,
        config_hash=data["metadata"]["config_hash"],
        timestamp=data["metadata"]["timestamp"],
        elapsed_seconds=data["metadata"]["elapsed_seconds"],
        total_points=data["metadata"]["total_points"],
        **arrays,
    )


def list_runs(out_dir: Union[str, Path] = "out") -> list[Path]:
    """
    List all run folders in an output directory.

    Parameters
    ----------
    out_dir : str or Path
        Output directory to search.

    Returns
    -------
    runs : list of Path
        Run folders (any directory holding a results.json), sorted by name.
    """
    out_path = Path(out_dir)
    if not out_path.exists():
        return []

    runs = [p for p in out_path.iterdir() if p.is_dir() and (p / "results.json").exists()]
    return sorted(runs)


def get_latest_run(out_dir: Union[str, Path] = "out") -> Optional[Path]:
    """Most recently modified run folder, or None if there is none."""
    runs = list_runs(out_dir)
    if not runs:
        return None
    return max(runs, key=lambda p: (p / "results.json").stat().st_mtime)
