# -*- coding: utf-8 -*-
"""
fabisearch.io
=============

Loading time series matrices and persisting change point tables.

Functions
---------
- ``load_timeseries``     : .npy / .csv / .tsv / .txt → ndarray (T, p)
- ``save_change_points``  : DetectionResult → .csv

Usage
-----
    from fabisearch import io, detect_cps

    Y = io.load_timeseries("sub-01_gordon333_timeseries.csv")
    result = detect_cps(Y, seed=1)
    io.save_change_points(result, "sub-01_change_points.csv")
"""

from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from .detect import DetectionResult


def load_timeseries(
    path: Union[str, Path],
    header: bool = True,
) -> np.ndarray:
    """
    Load a time series matrix (rows = time points, columns = variables).

    Parameters
    ----------
    path : str or Path
        ``.npy`` array, ``.csv`` / ``.tsv`` table, or whitespace
        separated ``.txt``.
    header : bool
        Whether the first line of a .csv / .tsv holds column names.

    Returns
    -------
    np.ndarray (T, p)
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Timeseries file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)
    if suffix in (".csv", ".tsv"):
        sep = "\t" if suffix == ".tsv" else ","
        table = pd.read_csv(path, sep=sep, header=0 if header else None)
        return table.to_numpy(dtype=float)
    if suffix == ".txt":
        return np.loadtxt(path, ndmin=2)
    raise ValueError(f"Unsupported timeseries format: {suffix}")


def save_change_points(
    result: DetectionResult,
    path: Union[str, Path],
    *,
    overwrite: bool = True,
) -> Path:
    """
    Write the change point table of a result to CSV.

    The rank and compute time are stored as comment lines above the
    table.

    Returns
    -------
    Path
    """
    path = Path(path)
    if path.exists() and not overwrite:
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(f"# rank: {result.rank}\n")
        f.write(f"# compute_time: {result.compute_time:.3f}\n")
        result.change_points.to_csv(f, index=False)
    return path
